"""
Database Models for the shortlinks service

This module defines the SQLModel database schemas for:
- User: Owner of short URLs, keyed by the identity provider's opaque id
- ShortURL: Mapping between a short code and its destination
- URLMetadata: Title/description/image shown in social previews

Design Decisions:
- short_code is unique across active AND inactive rows (codes are never recycled)
- Soft delete only: is_active=False instead of removing rows
- active_url_count on User is a maintained counter, updated in the same
  transaction as the URL rows it counts
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Optional

from sqlalchemy import Boolean, CheckConstraint, DateTime, ForeignKey, Index, Integer, String, Text
from sqlmodel import Column, Field, SQLModel

TITLE_MAX_LENGTH = 300
DESCRIPTION_MAX_LENGTH = 1000


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Return an aware UTC datetime; naive values are taken to be UTC already.

    SQLite hands back naive datetimes even for timezone-aware columns.
    """
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class MetadataStatus(str, Enum):
    """Outcome of the automatic metadata fetch for a URL."""
    fetched = "fetched"
    unavailable = "unavailable"
    skipped = "skipped"


class User(SQLModel, table=True):
    """
    A user known to the service.

    Fields:
    - id: Opaque identifier issued by the identity provider
    - active_url_count: Number of active short URLs owned (quota counter)
    - created_at: First time the user performed an authenticated action
    """
    __tablename__ = "users"
    __table_args__ = (
        CheckConstraint("active_url_count >= 0", name="ck_users_active_url_count"),
    )

    id: str = Field(sa_column=Column(String(255), primary_key=True))
    active_url_count: int = Field(default=0, sa_column=Column(Integer, nullable=False, default=0))
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )


class ShortURL(SQLModel, table=True):
    """
    Main table storing URL shortening mappings.

    Indexes:
    - short_code: Unique index, covers the redirect path and the never-reuse rule
    - (owner_id, is_active): Dashboard listing and duplicate detection
    """
    __tablename__ = "short_urls"
    __table_args__ = (
        CheckConstraint(
            "expires_at IS NULL OR expires_at > created_at",
            name="ck_short_urls_expiry_after_creation",
        ),
        Index("ix_short_urls_owner_id_is_active", "owner_id", "is_active"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    short_code: str = Field(
        sa_column=Column(String(16), nullable=False, unique=True, index=True),
        max_length=16
    )
    original_url: str = Field(sa_column=Column(Text, nullable=False))
    owner_id: str = Field(
        sa_column=Column(String(255), ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    )
    created_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True)
    )
    expires_at: Optional[datetime] = Field(
        default=None,
        sa_column=Column(DateTime(timezone=True), nullable=True)
    )
    is_active: bool = Field(default=True, sa_column=Column(Boolean, nullable=False, default=True, index=True))
    has_custom_metadata: bool = Field(default=False, sa_column=Column(Boolean, nullable=False, default=False))
    metadata_status: str = Field(
        default=MetadataStatus.skipped.value,
        sa_column=Column(String(16), nullable=False, default=MetadataStatus.skipped.value)
    )

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return as_utc(self.expires_at) <= (now or utc_now())


class URLMetadata(SQLModel, table=True):
    """
    Social-preview metadata, one row per ShortURL.

    Created in the same transaction as its ShortURL, either from fetched
    page tags or empty. Edited only by the URL's owner.
    """
    __tablename__ = "url_metadata"

    id: Optional[int] = Field(default=None, primary_key=True)
    url_id: int = Field(
        sa_column=Column(Integer, ForeignKey("short_urls.id", ondelete="CASCADE"), nullable=False, unique=True)
    )
    title: Optional[str] = Field(default=None, sa_column=Column(String(TITLE_MAX_LENGTH), nullable=True))
    description: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    image_url: Optional[str] = Field(default=None, sa_column=Column(Text, nullable=True))
    updated_at: datetime = Field(
        default_factory=utc_now,
        sa_column=Column(DateTime(timezone=True), nullable=False)
    )
