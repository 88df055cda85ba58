"""
FastAPI dependencies.

The identity provider sits in front of this service and forwards the
verified user id in IDENTITY_HEADER; requests without it are rejected.
Process-wide collaborators (metadata fetcher, redirect cache) are created by
the entry point and read from app.state.
"""

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from sqlalchemy.ext.asyncio import AsyncSession

from shortlinks.core.setting import settings
from shortlinks.db.session import get_session
from shortlinks.services.metadata_fetcher import MetadataFetcher
from shortlinks.services.redirect_cache import RedirectCache
from shortlinks.services.redirect_service import RedirectService
from shortlinks.services.url_service import URLShorteningService

MAX_USER_ID_LENGTH = 255


def get_current_user_id(request: Request) -> str:
    """
    Return the authenticated user id set by the identity provider.

    Raises:
        HTTPException 401: If the identity header is missing or malformed
    """
    user_id = request.headers.get(settings.IDENTITY_HEADER, "").strip()
    if not user_id or len(user_id) > MAX_USER_ID_LENGTH:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authentication required",
        )
    return user_id


def get_metadata_fetcher(request: Request) -> Optional[MetadataFetcher]:
    return getattr(request.app.state, "metadata_fetcher", None)


def get_redirect_cache(request: Request) -> Optional[RedirectCache]:
    return getattr(request.app.state, "redirect_cache", None)


def get_url_service(
    session: AsyncSession = Depends(get_session),
    fetcher: Optional[MetadataFetcher] = Depends(get_metadata_fetcher),
    cache: Optional[RedirectCache] = Depends(get_redirect_cache),
) -> URLShorteningService:
    return URLShorteningService(session, fetcher=fetcher, cache=cache)


def get_redirect_service(
    session: AsyncSession = Depends(get_session),
    cache: Optional[RedirectCache] = Depends(get_redirect_cache),
) -> RedirectService:
    return RedirectService(session, cache=cache)
