"""
URL Shortening Service

This service handles the business logic for a user's short URLs:
- Creating records under the per-user quota, with a requested or random code
- Attaching fetched metadata at creation time
- Editing metadata, refreshing it, and soft-deleting records

Design Decisions:
- Record and metadata are written in one transaction: both or neither
- The quota slot is taken with a conditional UPDATE in that same transaction,
  so a failed insert also gives the slot back
- Metadata is fetched between transactions; no lock is held during network I/O
- Only the owner may see or change a record; deleted records are invisible
"""

import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Mapping, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from shortlinks.core.exceptions import (
    DatabaseError,
    ForbiddenError,
    InvalidExpirationError,
    InvalidURLError,
    QuotaExceededError,
    ShortCodeExhaustedError,
    ShortCodeTakenError,
    ShortLinksError,
    URLNotFoundError,
)
from shortlinks.core.setting import DuplicateURLPolicy, settings
from shortlinks.core.validators import is_valid_url
from shortlinks.db.models import (
    DESCRIPTION_MAX_LENGTH,
    TITLE_MAX_LENGTH,
    MetadataStatus,
    ShortURL,
    URLMetadata,
    as_utc,
    utc_now,
)
from shortlinks.services.metadata_fetcher import FetchedMetadata, MetadataFetcher
from shortlinks.services.redirect_cache import RedirectCache
from shortlinks.services.short_code_allocator import ShortCodeAllocator
from shortlinks.services.user_service import UserService

logger = logging.getLogger(__name__)

EDITABLE_METADATA_FIELDS = ("title", "description", "image_url")

# How SQLite and PostgreSQL name the unique index on short_urls.short_code
SHORT_CODE_CONFLICT_MARKERS = ("short_urls.short_code", "ix_short_urls_short_code")


@dataclass
class URLCreation:
    """Result of create_url; created is False when an existing record was returned."""
    url: ShortURL
    metadata: URLMetadata
    created: bool


@dataclass
class Quota:
    active: int
    limit: int

    @property
    def remaining(self) -> int:
        return max(self.limit - self.active, 0)


class URLShorteningService:
    """
    Core business logic for a user's short URLs.

    Separated from API layer for testability and maintainability.
    """

    def __init__(
        self,
        session: AsyncSession,
        fetcher: Optional[MetadataFetcher] = None,
        cache: Optional[RedirectCache] = None,
        max_active_urls: Optional[int] = None,
        duplicate_policy: Optional[DuplicateURLPolicy] = None,
        allocator: Optional[ShortCodeAllocator] = None,
        fetch_timeout: Optional[float] = None,
    ):
        """
        Args:
            session: Database session
            fetcher: Metadata fetcher; without one, metadata starts empty
            cache: Redirect cache to invalidate on updates and deletes
            max_active_urls: Per-user quota (default: MAX_ACTIVE_URLS_PER_USER)
            duplicate_policy: Duplicate handling (default: DUPLICATE_URL_POLICY)
            allocator: Short code allocator (default: one bound to session)
            fetch_timeout: Upper bound for a metadata fetch in seconds
        """
        self.session = session
        self.fetcher = fetcher
        self.cache = cache
        self.max_active_urls = max_active_urls or settings.MAX_ACTIVE_URLS_PER_USER
        self.duplicate_policy = duplicate_policy or settings.DUPLICATE_URL_POLICY
        self.allocator = allocator or ShortCodeAllocator(session)
        self.fetch_timeout = fetch_timeout or settings.METADATA_FETCH_TIMEOUT
        self.users = UserService(session)

    async def create_url(
        self,
        owner_id: str,
        original_url: str,
        requested_code: Optional[str] = None,
        expires_at: Optional[datetime] = None,
        fetch_metadata: bool = True,
    ) -> URLCreation:
        """
        Create a short URL for owner_id.

        Args:
            owner_id: Verified user id from the identity provider
            original_url: Destination URL (http/https)
            requested_code: Custom short code, if the user asked for one
            expires_at: Optional expiry, must be after the creation time
            fetch_metadata: Whether to scrape the destination for preview tags

        Returns:
            URLCreation with the record, its metadata and whether it is new

        Raises:
            InvalidURLError: URL is malformed or not http/https
            InvalidExpirationError: expires_at is not in the future
            InvalidShortCodeError: requested_code breaks the format policy
            ShortCodeTakenError: requested_code was issued before, or lost an insert race
            ShortCodeExhaustedError: No free random code was found
            QuotaExceededError: Owner is at the active URL limit
            DatabaseError: Any other storage failure
        """
        original_url = original_url.strip() if isinstance(original_url, str) else original_url
        if not is_valid_url(original_url):
            raise InvalidURLError(
                original_url,
                reason="Invalid URL format. URL must use http:// or https:// and have a valid domain"
            )

        created_at = utc_now()
        if expires_at is not None:
            expires_at = as_utc(expires_at)
            if expires_at <= created_at:
                raise InvalidExpirationError(expires_at, created_at)

        if requested_code is not None:
            self.allocator.validate_format(requested_code)

        user = await self.users.get_or_create(owner_id)

        if requested_code is None and self.duplicate_policy == DuplicateURLPolicy.return_existing:
            existing = await self.find_active_duplicate(owner_id, original_url, expires_at)
            if existing is not None:
                metadata = await self._get_metadata(existing.id)
                await self.session.commit()
                logger.info(f"Returning existing short URL {existing.short_code} for {owner_id}")
                return URLCreation(url=existing, metadata=metadata, created=False)

        # Fail fast before any network I/O; the authoritative checks run again below
        if user.active_url_count >= self.max_active_urls:
            raise QuotaExceededError(owner_id, self.max_active_urls)
        if requested_code is not None and await self.allocator.is_code_taken(requested_code):
            raise ShortCodeTakenError(requested_code)
        await self.session.commit()

        fetched, status = await self._fetch_metadata(original_url, fetch_metadata)

        # A random code can still collide with a concurrent insert; that attempt
        # is rolled back and retried with a fresh code. A requested code that
        # loses the race is reported as taken.
        attempts = 0
        while True:
            attempts += 1
            try:
                short_url, metadata = await self._insert_record(
                    owner_id, original_url, requested_code, created_at, expires_at, fetched, status
                )
                break
            except IntegrityError as e:
                await self.session.rollback()
                if not _is_short_code_conflict(e):
                    raise DatabaseError(f"Failed to create short URL: {str(e)}", original_error=e)
                if requested_code is not None:
                    logger.info(f"Short code {requested_code} taken by a concurrent request")
                    raise ShortCodeTakenError(requested_code) from e
                if attempts >= self.allocator.max_retries:
                    raise ShortCodeExhaustedError(attempts, self.allocator.length) from e
                logger.info(f"Random short code for {owner_id} collided on insert, retrying")
            except ShortLinksError:
                await self.session.rollback()
                raise
            except SQLAlchemyError as e:
                await self.session.rollback()
                raise DatabaseError(f"Failed to create short URL: {str(e)}", original_error=e)

        logger.info(
            f"Created short URL {short_url.short_code} for {owner_id} "
            f"(metadata={status.value})"
        )
        return URLCreation(url=short_url, metadata=metadata, created=True)

    async def _insert_record(
        self,
        owner_id: str,
        original_url: str,
        requested_code: Optional[str],
        created_at: datetime,
        expires_at: Optional[datetime],
        fetched: Optional[FetchedMetadata],
        status: MetadataStatus,
    ) -> tuple[ShortURL, URLMetadata]:
        """Reserve a quota slot, allocate a code and insert both rows in one transaction."""
        if not await self.users.reserve_slot(owner_id, self.max_active_urls):
            raise QuotaExceededError(owner_id, self.max_active_urls)

        short_code = await self.allocator.allocate(requested_code)

        short_url = ShortURL(
            short_code=short_code,
            original_url=original_url,
            owner_id=owner_id,
            created_at=created_at,
            expires_at=expires_at,
            is_active=True,
            has_custom_metadata=False,
            metadata_status=status.value,
        )
        self.session.add(short_url)
        await self.session.flush()

        metadata = URLMetadata(
            url_id=short_url.id,
            title=fetched.title if fetched else None,
            description=fetched.description if fetched else None,
            image_url=fetched.image_url if fetched else None,
            updated_at=created_at,
        )
        self.session.add(metadata)
        await self.session.flush()
        await self.session.commit()
        return short_url, metadata

    async def find_active_duplicate(
        self,
        owner_id: str,
        original_url: str,
        expires_at: Optional[datetime] = None,
    ) -> Optional[ShortURL]:
        """
        Newest active, unexpired record of owner_id pointing at original_url
        with the same expiry (both open-ended, or the same instant).
        """
        statement = (
            select(ShortURL)
            .where(
                ShortURL.owner_id == owner_id,
                ShortURL.original_url == original_url,
                ShortURL.is_active.is_(True),
            )
            .order_by(ShortURL.created_at.desc(), ShortURL.id.desc())
        )
        result = await self.session.execute(statement)
        now = utc_now()
        wanted = as_utc(expires_at)
        for short_url in result.scalars():
            if short_url.is_expired(now):
                continue
            if as_utc(short_url.expires_at) == wanted:
                return short_url
        return None

    async def get_url(self, url_id: int, owner_id: str) -> tuple[ShortURL, URLMetadata]:
        """
        Raises:
            URLNotFoundError: No active record with this id
            ForbiddenError: Record belongs to another user
        """
        short_url = await self._get_owned(url_id, owner_id)
        metadata = await self._get_metadata(short_url.id)
        return short_url, metadata

    async def list_urls(
        self,
        owner_id: str,
        include_inactive: bool = False,
        limit: int = 50,
        offset: int = 0,
    ) -> list[tuple[ShortURL, Optional[URLMetadata]]]:
        """Owner's records, newest first, for the management dashboard."""
        statement = (
            select(ShortURL, URLMetadata)
            .outerjoin(URLMetadata, URLMetadata.url_id == ShortURL.id)
            .where(ShortURL.owner_id == owner_id)
            .order_by(ShortURL.created_at.desc(), ShortURL.id.desc())
            .limit(limit)
            .offset(offset)
        )
        if not include_inactive:
            statement = statement.where(ShortURL.is_active.is_(True))
        result = await self.session.execute(statement)
        return [(short_url, metadata) for short_url, metadata in result.all()]

    async def get_quota(self, owner_id: str) -> Quota:
        user = await self.users.get_user(owner_id)
        active = user.active_url_count if user is not None else 0
        return Quota(active=active, limit=self.max_active_urls)

    async def update_metadata(
        self,
        url_id: int,
        owner_id: str,
        fields: Mapping[str, Any],
    ) -> URLMetadata:
        """
        Apply a partial metadata edit.

        Keys absent from fields are left alone; a None or blank value clears
        that field.

        Raises:
            ValueError: fields contains a key that is not editable
            URLNotFoundError: No active record with this id
            ForbiddenError: Record belongs to another user
            InvalidURLError: image_url is not an http/https URL
        """
        unknown = set(fields) - set(EDITABLE_METADATA_FIELDS)
        if unknown:
            raise ValueError(f"Unknown metadata fields: {', '.join(sorted(unknown))}")

        short_url = await self._get_owned(url_id, owner_id)

        changes = {
            "title": _normalize(fields.get("title"), TITLE_MAX_LENGTH),
            "description": _normalize(fields.get("description"), DESCRIPTION_MAX_LENGTH),
            "image_url": _normalize(fields.get("image_url"), None),
        }
        image_url = changes["image_url"]
        if "image_url" in fields and image_url is not None and not is_valid_url(image_url):
            raise InvalidURLError(image_url, reason="Invalid image URL")

        metadata = await self._get_metadata(short_url.id)
        for name in EDITABLE_METADATA_FIELDS:
            if name in fields:
                setattr(metadata, name, changes[name])

        now = utc_now()
        metadata.updated_at = now
        short_url.has_custom_metadata = True

        await self._commit("update metadata")
        await self._invalidate(short_url.short_code)

        logger.info(f"Metadata updated for {short_url.short_code} by {owner_id}")
        return metadata

    async def refresh_metadata(self, url_id: int, owner_id: str, force: bool = False) -> URLMetadata:
        """
        Re-scrape the destination page.

        Metadata the owner customised is kept unless force is set, in which
        case it is overwritten and has_custom_metadata is cleared. A failed
        fetch keeps the current values and marks the status unavailable.
        """
        short_url = await self._get_owned(url_id, owner_id)
        metadata = await self._get_metadata(short_url.id)
        if short_url.has_custom_metadata and not force:
            return metadata
        await self.session.commit()

        fetched, status = await self._fetch_metadata(short_url.original_url, True)

        short_url.metadata_status = status.value
        if fetched is not None:
            metadata.title = fetched.title
            metadata.description = fetched.description
            metadata.image_url = fetched.image_url
            metadata.updated_at = utc_now()
            short_url.has_custom_metadata = False
        self.session.add_all([short_url, metadata])

        await self._commit("refresh metadata")
        await self._invalidate(short_url.short_code)
        return metadata

    async def soft_delete(self, url_id: int, owner_id: str) -> None:
        """
        Deactivate a record. Its short code stays reserved forever and the
        owner's quota slot is released in the same transaction.

        Raises:
            URLNotFoundError: No active record with this id
            ForbiddenError: Record belongs to another user
        """
        short_url = await self._get_owned(url_id, owner_id)
        short_url.is_active = False
        await self.users.release_slot(owner_id)

        await self._commit("delete short URL")
        await self._invalidate(short_url.short_code)

        logger.info(f"Soft-deleted short URL {short_url.short_code} for {owner_id}")

    async def delete_account(self, owner_id: str) -> bool:
        """
        Remove the owner and all of their records, then drop their cached redirects.

        Returns:
            True if the owner existed
        """
        result = await self.session.execute(select(ShortURL.short_code).where(ShortURL.owner_id == owner_id))
        short_codes = list(result.scalars())

        if not await self.users.delete_account(owner_id):
            return False
        for short_code in short_codes:
            await self._invalidate(short_code)
        return True

    async def _get_owned(self, url_id: int, owner_id: str) -> ShortURL:
        result = await self.session.execute(select(ShortURL).where(ShortURL.id == url_id))
        short_url = result.scalar_one_or_none()
        if short_url is None or not short_url.is_active:
            raise URLNotFoundError(url_id)
        if short_url.owner_id != owner_id:
            raise ForbiddenError(url_id, owner_id)
        return short_url

    async def _get_metadata(self, url_id: int) -> URLMetadata:
        result = await self.session.execute(select(URLMetadata).where(URLMetadata.url_id == url_id))
        metadata = result.scalar_one_or_none()
        if metadata is None:
            # Only reachable for rows written outside this service
            logger.warning(f"Short URL {url_id} had no metadata row; creating an empty one")
            metadata = URLMetadata(url_id=url_id, updated_at=utc_now())
            self.session.add(metadata)
            await self.session.flush()
        return metadata

    async def _fetch_metadata(
        self,
        url: str,
        enabled: bool,
    ) -> tuple[Optional[FetchedMetadata], MetadataStatus]:
        if not enabled or self.fetcher is None:
            return None, MetadataStatus.skipped
        try:
            fetched = await asyncio.wait_for(self.fetcher.fetch(url), timeout=self.fetch_timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Metadata fetch for {url} timed out after {self.fetch_timeout}s")
            return None, MetadataStatus.unavailable
        except ShortLinksError as e:
            logger.warning(str(e))
            return None, MetadataStatus.unavailable
        except Exception as e:
            logger.error(f"Metadata fetch for {url} failed: {str(e)}", exc_info=True)
            return None, MetadataStatus.unavailable
        return fetched, MetadataStatus.fetched

    async def _commit(self, action: str) -> None:
        try:
            await self.session.commit()
        except SQLAlchemyError as e:
            await self.session.rollback()
            raise DatabaseError(f"Failed to {action}: {str(e)}", original_error=e)

    async def _invalidate(self, short_code: str) -> None:
        if self.cache is not None:
            await self.cache.invalidate(short_code)


def _normalize(value: Optional[str], max_length: Optional[int]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    if not value:
        return None
    return value[:max_length] if max_length else value


def _is_short_code_conflict(error: IntegrityError) -> bool:
    """True if error is a unique violation on short_code, not an FK or check failure."""
    message = str(error.orig)
    return any(marker in message for marker in SHORT_CODE_CONFLICT_MARKERS)
