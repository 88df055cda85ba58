"""
FastAPI Endpoints for the shortlinks service

This module defines all REST API endpoints with minimal logic.
Endpoints only handle:
- Request validation (Pydantic models)
- Rate limiting
- Translating domain errors into HTTP responses
- Delegating to service layer

All business logic is in services.
"""

from typing import NoReturn, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response, status
from fastapi.responses import JSONResponse, RedirectResponse

from shortlinks.api.deps import get_current_user_id, get_redirect_service, get_url_service
from shortlinks.api.schemas import (
    MetadataResponse,
    MetadataUpdateRequest,
    QuotaResponse,
    ResolveResponse,
    ShortenRequest,
    ShortURLListResponse,
    ShortURLResponse,
)
from shortlinks.core.exceptions import (
    DatabaseError,
    ForbiddenError,
    InvalidExpirationError,
    InvalidShortCodeError,
    InvalidURLError,
    QuotaExceededError,
    ShortCodeExhaustedError,
    ShortCodeTakenError,
    ShortLinksError,
    URLNotFoundError,
)
from shortlinks.core.rate_limit import RATE_LIMITS, limiter
from shortlinks.core.setting import settings
from shortlinks.db.models import ShortURL, URLMetadata
from shortlinks.services.redirect_service import RedirectService, RedirectStatus
from shortlinks.services.url_service import URLShorteningService

router = APIRouter()

_ERROR_STATUS = (
    (InvalidURLError, status.HTTP_400_BAD_REQUEST),
    (InvalidShortCodeError, status.HTTP_400_BAD_REQUEST),
    (InvalidExpirationError, status.HTTP_400_BAD_REQUEST),
    (ForbiddenError, status.HTTP_403_FORBIDDEN),
    (URLNotFoundError, status.HTTP_404_NOT_FOUND),
    (ShortCodeTakenError, status.HTTP_409_CONFLICT),
    (QuotaExceededError, status.HTTP_429_TOO_MANY_REQUESTS),
    (ShortCodeExhaustedError, status.HTTP_503_SERVICE_UNAVAILABLE),
    (DatabaseError, status.HTTP_500_INTERNAL_SERVER_ERROR),
)


def raise_http_error(error: ShortLinksError) -> NoReturn:
    """Translate a domain error into the matching HTTPException."""
    for error_type, status_code in _ERROR_STATUS:
        if isinstance(error, error_type):
            raise HTTPException(status_code=status_code, detail=str(error)) from error
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(error)) from error


def build_short_url(short_code: str) -> str:
    return f"{settings.BASE_URL.rstrip('/')}/{short_code}"


def to_metadata_response(metadata: Optional[URLMetadata]) -> MetadataResponse:
    if metadata is None:
        return MetadataResponse()
    return MetadataResponse(
        title=metadata.title,
        description=metadata.description,
        image_url=metadata.image_url,
        updated_at=metadata.updated_at,
    )


def to_response(short_url: ShortURL, metadata: Optional[URLMetadata]) -> ShortURLResponse:
    return ShortURLResponse(
        id=short_url.id,
        short_code=short_url.short_code,
        short_url=build_short_url(short_url.short_code),
        original_url=short_url.original_url,
        created_at=short_url.created_at,
        expires_at=short_url.expires_at,
        is_active=short_url.is_active,
        is_expired=short_url.is_expired(),
        has_custom_metadata=short_url.has_custom_metadata,
        metadata_status=short_url.metadata_status,
        metadata=to_metadata_response(metadata),
    )


@router.post(
    "/api/v1/urls",
    response_model=ShortURLResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a short URL",
    description="Shortens a URL for the current user. Returns 200 with the existing link "
                "when the user already shortened the same URL and no custom code was requested."
)
@limiter.limit(RATE_LIMITS["shorten"])
async def create_short_url(
    request: Request,  # Required for rate limiting (slowapi expects parameter named 'request')
    response: Response,
    body: ShortenRequest,
    user_id: str = Depends(get_current_user_id),
    url_service: URLShorteningService = Depends(get_url_service),
) -> ShortURLResponse:
    try:
        creation = await url_service.create_url(
            owner_id=user_id,
            original_url=body.url,
            requested_code=body.custom_code,
            expires_at=body.expires_at,
            fetch_metadata=body.fetch_metadata and settings.METADATA_FETCH_ENABLED,
        )
    except ShortLinksError as e:
        raise_http_error(e)

    if not creation.created:
        response.status_code = status.HTTP_200_OK
    return to_response(creation.url, creation.metadata)


@router.get(
    "/api/v1/urls",
    response_model=ShortURLListResponse,
    summary="List the current user's short URLs",
)
@limiter.limit(RATE_LIMITS["manage"])
async def list_short_urls(
    request: Request,
    include_inactive: bool = Query(default=False),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
    user_id: str = Depends(get_current_user_id),
    url_service: URLShorteningService = Depends(get_url_service),
) -> ShortURLListResponse:
    rows = await url_service.list_urls(user_id, include_inactive=include_inactive, limit=limit, offset=offset)
    return ShortURLListResponse(
        items=[to_response(short_url, metadata) for short_url, metadata in rows],
        limit=limit,
        offset=offset,
    )


@router.get("/api/v1/urls/{url_id}", response_model=ShortURLResponse, summary="Get one short URL")
@limiter.limit(RATE_LIMITS["manage"])
async def get_short_url(
    url_id: int,
    request: Request,
    user_id: str = Depends(get_current_user_id),
    url_service: URLShorteningService = Depends(get_url_service),
) -> ShortURLResponse:
    try:
        short_url, metadata = await url_service.get_url(url_id, user_id)
    except ShortLinksError as e:
        raise_http_error(e)
    return to_response(short_url, metadata)


@router.patch(
    "/api/v1/urls/{url_id}/metadata",
    response_model=MetadataResponse,
    summary="Edit preview metadata",
    description="Updates only the fields present in the body and marks the metadata as customised"
)
@limiter.limit(RATE_LIMITS["manage"])
async def update_metadata(
    url_id: int,
    request: Request,
    body: MetadataUpdateRequest,
    user_id: str = Depends(get_current_user_id),
    url_service: URLShorteningService = Depends(get_url_service),
) -> MetadataResponse:
    try:
        metadata = await url_service.update_metadata(url_id, user_id, body.model_dump(exclude_unset=True))
    except ShortLinksError as e:
        raise_http_error(e)
    return to_metadata_response(metadata)


@router.post(
    "/api/v1/urls/{url_id}/metadata/refresh",
    response_model=MetadataResponse,
    summary="Re-fetch preview metadata from the destination page",
)
@limiter.limit(RATE_LIMITS["metadata_refresh"])
async def refresh_metadata(
    url_id: int,
    request: Request,
    force: bool = Query(default=False, description="Overwrite customised metadata"),
    user_id: str = Depends(get_current_user_id),
    url_service: URLShorteningService = Depends(get_url_service),
) -> MetadataResponse:
    try:
        metadata = await url_service.refresh_metadata(url_id, user_id, force=force)
    except ShortLinksError as e:
        raise_http_error(e)
    return to_metadata_response(metadata)


@router.delete(
    "/api/v1/urls/{url_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete a short URL",
    description="Deactivates the link; its short code is never issued again"
)
@limiter.limit(RATE_LIMITS["manage"])
async def delete_short_url(
    url_id: int,
    request: Request,
    user_id: str = Depends(get_current_user_id),
    url_service: URLShorteningService = Depends(get_url_service),
) -> Response:
    try:
        await url_service.soft_delete(url_id, user_id)
    except ShortLinksError as e:
        raise_http_error(e)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get("/api/v1/me", response_model=QuotaResponse, summary="Current user's quota usage")
@limiter.limit(RATE_LIMITS["manage"])
async def get_quota(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    url_service: URLShorteningService = Depends(get_url_service),
) -> QuotaResponse:
    quota = await url_service.get_quota(user_id)
    return QuotaResponse(
        user_id=user_id,
        active_urls=quota.active,
        max_active_urls=quota.limit,
        remaining=quota.remaining,
    )


@router.delete(
    "/api/v1/me",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Delete the current user's account",
    description="Called when the identity provider deletes an account; removes all of the user's links"
)
@limiter.limit(RATE_LIMITS["manage"])
async def delete_account(
    request: Request,
    user_id: str = Depends(get_current_user_id),
    url_service: URLShorteningService = Depends(get_url_service),
) -> Response:
    deleted = await url_service.delete_account(user_id)
    if not deleted:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Account not found")
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@router.get(
    "/api/v1/resolve/{short_code}",
    response_model=ResolveResponse,
    summary="Resolve a short code without redirecting",
    description="Used by preview renderers to build Open Graph tags for a link"
)
@limiter.limit(RATE_LIMITS["redirect"])
async def resolve_short_code(
    short_code: str,
    request: Request,
    redirect_service: RedirectService = Depends(get_redirect_service),
):
    outcome = await redirect_service.resolve(short_code)
    body = ResolveResponse(
        status=outcome.status.value,
        short_code=outcome.short_code,
        original_url=outcome.original_url,
        expires_at=outcome.expires_at,
        metadata=(
            MetadataResponse(
                title=outcome.metadata.title,
                description=outcome.metadata.description,
                image_url=outcome.metadata.image_url,
            )
            if outcome.metadata is not None else None
        ),
    )
    status_code = {
        RedirectStatus.FOUND: status.HTTP_200_OK,
        RedirectStatus.EXPIRED: status.HTTP_410_GONE,
        RedirectStatus.NOT_FOUND: status.HTTP_404_NOT_FOUND,
    }[outcome.status]
    return JSONResponse(status_code=status_code, content=body.model_dump(mode="json"))


@router.get(
    "/{short_code}",
    status_code=status.HTTP_302_FOUND,
    summary="Redirect to original URL",
    description="Takes a short code and redirects to the original long URL"
)
@limiter.limit(RATE_LIMITS["redirect"])
async def redirect_to_url(
    short_code: str,
    request: Request,
    redirect_service: RedirectService = Depends(get_redirect_service),
) -> RedirectResponse:
    """
    Redirect to the original URL for a given short code.

    Raises:
        HTTPException 404: If short code is unknown or deleted
        HTTPException 410: If the link has expired
        HTTPException 429: If rate limit exceeded
    """
    outcome = await redirect_service.resolve(short_code)

    if outcome.status is RedirectStatus.EXPIRED:
        raise HTTPException(
            status_code=status.HTTP_410_GONE,
            detail="This link has expired"
        )
    if outcome.status is RedirectStatus.NOT_FOUND:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Short code '{short_code}' not found"
        )

    return RedirectResponse(
        url=outcome.original_url,
        status_code=status.HTTP_302_FOUND
    )
