"""
Per-IP request limits for the HTTP surface.

Redirects get a generous budget; creation and metadata refresh, which both
cause outbound fetches, get a tight one. Limits are disabled entirely with
RATE_LIMIT_ENABLED=false (the test suite does this).
"""

from slowapi import Limiter
from slowapi.util import get_remote_address

from shortlinks.core.setting import settings

limiter = Limiter(key_func=get_remote_address, enabled=settings.RATE_LIMIT_ENABLED)

# slowapi limit strings, keyed by route group
RATE_LIMITS = {
    "shorten": "10/minute",
    "redirect": "100/minute",
    "manage": "60/minute",
    "metadata_refresh": "10/minute",
}
