"""
API Request and Response Schemas

This module defines all Pydantic models for API requests and responses.
Separated from endpoints to keep concerns separated and enable reuse.

Design Principles:
- Request models: Define input shape; business validation stays in services
- Response models: Define output structure
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field

from shortlinks.db.models import DESCRIPTION_MAX_LENGTH, TITLE_MAX_LENGTH


class ShortenRequest(BaseModel):
    """Request model for URL shortening endpoint."""
    # Plain str: HttpUrl would normalise the URL before the service sees it
    url: str = Field(..., max_length=2048, description="The long URL to shorten")
    custom_code: Optional[str] = Field(
        default=None, max_length=20, description="Requested short code (letters and digits)"
    )
    expires_at: Optional[datetime] = Field(
        default=None, description="When the link stops redirecting (UTC if no offset is given)"
    )
    fetch_metadata: bool = Field(default=True, description="Scrape the destination for preview tags")


class MetadataUpdateRequest(BaseModel):
    """Partial metadata edit; omitted fields are left unchanged, null clears a field."""
    title: Optional[str] = Field(default=None, max_length=TITLE_MAX_LENGTH)
    description: Optional[str] = Field(default=None, max_length=DESCRIPTION_MAX_LENGTH)
    image_url: Optional[str] = Field(default=None, max_length=2048)


class MetadataResponse(BaseModel):
    title: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None
    updated_at: Optional[datetime] = None


class ShortURLResponse(BaseModel):
    """Response model for a single short URL."""
    id: int
    short_code: str = Field(..., description="The short code")
    short_url: str = Field(..., description="The complete short URL")
    original_url: str = Field(..., description="The original long URL")
    created_at: datetime
    expires_at: Optional[datetime] = None
    is_active: bool
    is_expired: bool
    has_custom_metadata: bool
    metadata_status: str
    metadata: MetadataResponse


class ShortURLListResponse(BaseModel):
    items: list[ShortURLResponse]
    limit: int
    offset: int


class QuotaResponse(BaseModel):
    """Response model for the current user's quota usage."""
    user_id: str
    active_urls: int
    max_active_urls: int
    remaining: int


class ResolveResponse(BaseModel):
    """Resolution result handed to preview renderers."""
    status: str
    short_code: str
    original_url: Optional[str] = None
    expires_at: Optional[datetime] = None
    metadata: Optional[MetadataResponse] = None
