"""
Custom Exceptions

This module defines the error taxonomy shared by the allocator, the record
manager and the HTTP layer. Services raise these; endpoints translate them
into HTTP responses.

Expected redirect states (expired, not found) are not errors: the resolver
returns them as outcomes.
"""

from typing import Optional


class ShortLinksError(Exception):
    """Base exception for the shortlinks service."""
    pass


class AllocationError(ShortLinksError):
    """Base class for short code allocation failures."""
    pass


class InvalidShortCodeError(AllocationError):
    """Raised when a requested short code does not match the code policy."""

    def __init__(self, short_code: str, reason: str = "Invalid short code format"):
        self.short_code = short_code
        self.reason = reason
        super().__init__(f"{reason}: '{short_code}'")


class ShortCodeTakenError(AllocationError):
    """Raised when a short code has already been issued, active or not."""

    def __init__(self, short_code: str):
        self.short_code = short_code
        super().__init__(f"Short code '{short_code}' is already taken")


class ShortCodeExhaustedError(AllocationError):
    """Raised when every random candidate collided with an existing code."""

    def __init__(self, attempts: int, length: int):
        self.attempts = attempts
        self.length = length
        super().__init__(
            f"Could not generate a unique {length}-character short code after {attempts} attempts"
        )


class InvalidURLError(ShortLinksError):
    """Raised when URL validation fails."""

    def __init__(self, url: str, reason: str = "Invalid URL format"):
        self.url = url
        self.reason = reason
        super().__init__(f"{reason}: {url}")


class InvalidExpirationError(ShortLinksError):
    """Raised when an expiration timestamp is not after the creation time."""

    def __init__(self, expires_at, created_at):
        self.expires_at = expires_at
        self.created_at = created_at
        super().__init__(
            f"Expiration {expires_at.isoformat()} must be after creation time {created_at.isoformat()}"
        )


class QuotaExceededError(ShortLinksError):
    """Raised when an owner already has the maximum number of active URLs."""

    def __init__(self, owner_id: str, limit: int):
        self.owner_id = owner_id
        self.limit = limit
        super().__init__(
            f"You have reached the limit of {limit} active short URLs. "
            f"Delete an existing link to create a new one."
        )


class URLNotFoundError(ShortLinksError):
    """Raised when a URL record does not exist or has been deleted."""

    def __init__(self, url_id: int):
        self.url_id = url_id
        super().__init__(f"Short URL {url_id} not found")


class ForbiddenError(ShortLinksError):
    """Raised when a user acts on a URL record owned by someone else."""

    def __init__(self, url_id: int, owner_id: str):
        self.url_id = url_id
        self.owner_id = owner_id
        super().__init__(f"Short URL {url_id} does not belong to the current user")


class MetadataFetchError(ShortLinksError):
    """Raised by metadata fetchers when a page cannot be fetched or parsed."""

    def __init__(self, url: str, reason: str):
        self.url = url
        self.reason = reason
        super().__init__(f"Could not fetch metadata for {url}: {reason}")


class DatabaseError(ShortLinksError):
    """Raised when database operations fail."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        self.original_error = original_error
        super().__init__(f"Database error: {message}")
