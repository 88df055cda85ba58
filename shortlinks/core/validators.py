"""
Input Validators and Sanitizers

This module provides validation and sanitization functions for user inputs.
These functions help prevent security issues and ensure data integrity.

Security Considerations:
- Input validation prevents injection attacks
- Only http/https destinations are accepted
- Length limits prevent DoS attacks
"""

import re
from typing import Optional
from urllib.parse import urlparse

MAX_URL_LENGTH = 2048

SHORT_CODE_ALPHABET = "0123456789abcdefghijklmnopqrstuvwxyzABCDEFGHIJKLMNOPQRSTUVWXYZ"

# Path segments served by the application itself; a short code must never shadow them.
RESERVED_SHORT_CODES = frozenset({"api", "docs", "redoc", "health", "openapi", "static", "favicon"})

_SHORT_CODE_PATTERN = re.compile(r"^[0-9a-zA-Z]+$")


def sanitize_short_code(short_code: str) -> Optional[str]:
    """
    Sanitize a short code taken from a request path.

    Only base62 characters are allowed. This is a loose check used on the
    read path; the allocator enforces the stricter length policy.

    Returns:
        Sanitized short code if valid, None otherwise
    """
    if not short_code or not isinstance(short_code, str):
        return None

    short_code = short_code.strip()

    if len(short_code) > 20:
        return None

    if not _SHORT_CODE_PATTERN.match(short_code):
        return None

    return short_code


def is_valid_short_code(short_code: str, min_length: int, max_length: int) -> bool:
    """Check a requested code against the alphabet and length policy."""
    if not isinstance(short_code, str):
        return False
    if not min_length <= len(short_code) <= max_length:
        return False
    return bool(_SHORT_CODE_PATTERN.match(short_code))


def is_reserved_short_code(short_code: str) -> bool:
    return short_code.lower() in RESERVED_SHORT_CODES


def validate_url_length(url: str, max_length: int = MAX_URL_LENGTH) -> bool:
    """
    Validate URL length to prevent DoS attacks.

    Args:
        url: The URL to validate
        max_length: Maximum allowed length (default: 2048 per RFC 7230)
    """
    return bool(url) and len(url) <= max_length

def is_valid_url(url: str) -> bool:
    """
    Validate URL format and security.

    Checks that the URL uses http/https and has a valid domain. The scheme
    allow-list is what rules out javascript:, data: and file: destinations;
    the rest of the URL may contain any of those strings (e.g. "/wiki/data:x").

    Returns:
        True if valid and safe, False otherwise
    """
    if not url or not isinstance(url, str):
        return False

    if not validate_url_length(url):
        return False

    try:
        result = urlparse(url)
        # Accessing .port raises ValueError for malformed ports
        result.port
    except ValueError:
        return False

    if not result.scheme or not result.netloc:
        return False

    if result.scheme.lower() not in {"http", "https"}:
        return False

    domain = result.hostname or ""
    if domain != "localhost" and "." not in domain:
        return False

    if any(char.isspace() for char in url):
        return False

    return True
