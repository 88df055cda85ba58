"""
Redirect Service

This service turns a short code into a RedirectOutcome. It does not issue
the redirect itself: the HTTP layer decides between a 302, an "expired"
page, a "not found" page, or a preview rendered from the metadata snapshot.

Design Decisions:
- Expired and not-found are outcomes, not exceptions; both are expected states
- Expired is only reported for active records, soft-deleted ones are NOT_FOUND
- Read-only: resolving the same code twice gives the same outcome until the
  record itself changes
"""

from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from shortlinks.core.validators import sanitize_short_code
from shortlinks.db.models import ShortURL, URLMetadata, as_utc, utc_now
from shortlinks.services.redirect_cache import CachedRedirect, RedirectCache


class RedirectStatus(str, Enum):
    FOUND = "found"
    EXPIRED = "expired"
    NOT_FOUND = "not_found"


@dataclass(frozen=True)
class MetadataSnapshot:
    title: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None


@dataclass(frozen=True)
class RedirectOutcome:
    """Result of resolving a short code."""
    status: RedirectStatus
    short_code: str
    original_url: Optional[str] = None
    metadata: Optional[MetadataSnapshot] = None
    expires_at: Optional[datetime] = None

    @classmethod
    def found(cls, short_code: str, original_url: str, metadata: MetadataSnapshot,
              expires_at: Optional[datetime] = None) -> "RedirectOutcome":
        return cls(RedirectStatus.FOUND, short_code, original_url, metadata, expires_at)

    @classmethod
    def expired(cls, short_code: str, expires_at: datetime) -> "RedirectOutcome":
        return cls(RedirectStatus.EXPIRED, short_code, expires_at=expires_at)

    @classmethod
    def not_found(cls, short_code: str) -> "RedirectOutcome":
        return cls(RedirectStatus.NOT_FOUND, short_code)


class RedirectService:
    """
    Resolves short codes for redirection.

    Optionally reads through a RedirectCache shared across requests.
    """

    def __init__(self, session: AsyncSession, cache: Optional[RedirectCache] = None):
        """
        Args:
            session: Async database session for lookups
            cache: Optional shared redirect cache
        """
        self.session = session
        self.cache = cache

    async def resolve(self, short_code: str, now: Optional[datetime] = None) -> RedirectOutcome:
        """
        Resolve a short code.

        Args:
            short_code: Code taken from the request path
            now: Reference time for expiry checks (default: current UTC time)
        """
        sanitized = sanitize_short_code(short_code)
        if not sanitized:
            return RedirectOutcome.not_found(short_code)

        entry = await self._lookup(sanitized)
        if entry is None:
            return RedirectOutcome.not_found(sanitized)

        expires_at = as_utc(entry.expires_at)
        if expires_at is not None and expires_at <= (now or utc_now()):
            return RedirectOutcome.expired(sanitized, expires_at)

        snapshot = MetadataSnapshot(
            title=entry.title,
            description=entry.description,
            image_url=entry.image_url,
        )
        return RedirectOutcome.found(sanitized, entry.original_url, snapshot, expires_at)

    async def get_redirect_url(self, short_code: str) -> Optional[str]:
        """Get the original URL for redirection, or None unless the link is live."""
        outcome = await self.resolve(short_code)
        if outcome.status is RedirectStatus.FOUND:
            return outcome.original_url
        return None

    async def _lookup(self, short_code: str) -> Optional[CachedRedirect]:
        generation = None
        if self.cache is not None:
            cached = await self.cache.get(short_code)
            if cached is not None:
                return cached
            # Taken before the query so a concurrent invalidate() wins over this fill
            generation = await self.cache.generation(short_code)

        statement = (
            select(ShortURL, URLMetadata)
            .outerjoin(URLMetadata, URLMetadata.url_id == ShortURL.id)
            .where(ShortURL.short_code == short_code, ShortURL.is_active.is_(True))
        )
        result = await self.session.execute(statement)
        row = result.first()
        if row is None:
            return None

        short_url, metadata = row
        entry = CachedRedirect(
            original_url=short_url.original_url,
            expires_at=as_utc(short_url.expires_at),
            title=metadata.title if metadata else None,
            description=metadata.description if metadata else None,
            image_url=metadata.image_url if metadata else None,
        )
        if self.cache is not None:
            await self.cache.store(short_code, entry, generation)
        return entry
