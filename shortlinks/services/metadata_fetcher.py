"""
Metadata Fetcher

Fetches a destination page and extracts the tags used for social previews
(Open Graph, Twitter cards, plain <title>/<meta name="description">).

Design Decisions:
- MetadataFetcher is the interface the record manager depends on; tests and
  alternative scrapers plug in by implementing fetch()
- Every fetch is bounded by a timeout; callers treat any MetadataFetchError
  as "metadata unavailable", never as a failed URL creation
- Only the first METADATA_MAX_BYTES of an HTML response are parsed
"""

import logging
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Iterable, Optional
from urllib.parse import urljoin

import httpx
from bs4 import BeautifulSoup

from shortlinks.core.exceptions import MetadataFetchError
from shortlinks.core.setting import settings
from shortlinks.core.validators import is_valid_url
from shortlinks.db.models import DESCRIPTION_MAX_LENGTH, TITLE_MAX_LENGTH

logger = logging.getLogger(__name__)

_WHITESPACE = re.compile(r"\s+")
_HTML_CONTENT_TYPES = ("text/html", "application/xhtml+xml")


@dataclass(frozen=True)
class FetchedMetadata:
    """Tags extracted from a page; any field may be missing."""
    title: Optional[str] = None
    description: Optional[str] = None
    image_url: Optional[str] = None

    @property
    def is_empty(self) -> bool:
        return not (self.title or self.description or self.image_url)


class MetadataFetcher(ABC):
    """Interface for anything that can produce preview metadata for a URL."""

    @abstractmethod
    async def fetch(self, url: str) -> FetchedMetadata:
        """
        Raises:
            MetadataFetchError: If the page cannot be fetched or parsed
        """
        pass


def _clean(value: Optional[str], max_length: int) -> Optional[str]:
    if not value:
        return None
    value = _WHITESPACE.sub(" ", value).strip()
    if not value:
        return None
    return value[:max_length]


def _first_meta(soup: BeautifulSoup, keys: Iterable[str]) -> Optional[str]:
    """Return the content of the first <meta property|name=key> present, in key order."""
    for key in keys:
        for attr in ("property", "name"):
            tag = soup.find("meta", attrs={attr: key})
            if tag is not None and tag.get("content"):
                return tag["content"]
    return None


def parse_metadata(html: str, page_url: str) -> FetchedMetadata:
    """
    Extract preview metadata from an HTML document.

    Precedence: Open Graph, then Twitter card, then plain HTML tags.
    Relative image URLs are resolved against page_url.
    """
    soup = BeautifulSoup(html, "html.parser")

    title = _first_meta(soup, ("og:title", "twitter:title"))
    if not title and soup.title is not None:
        title = soup.title.get_text()

    description = _first_meta(soup, ("og:description", "twitter:description", "description"))

    image_url = _first_meta(soup, ("og:image", "og:image:url", "twitter:image", "twitter:image:src"))
    if image_url:
        image_url = urljoin(page_url, image_url.strip())
        if not is_valid_url(image_url):
            image_url = None

    return FetchedMetadata(
        title=_clean(title, TITLE_MAX_LENGTH),
        description=_clean(description, DESCRIPTION_MAX_LENGTH),
        image_url=image_url,
    )


class HTTPMetadataFetcher(MetadataFetcher):
    """
    Fetches pages with httpx and parses them with BeautifulSoup.

    A client may be injected (tests pass one built on httpx.MockTransport);
    otherwise a short-lived client is created per fetch.
    """

    def __init__(
        self,
        timeout: Optional[float] = None,
        max_bytes: Optional[int] = None,
        user_agent: Optional[str] = None,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.timeout = timeout or settings.METADATA_FETCH_TIMEOUT
        self.max_bytes = max_bytes or settings.METADATA_MAX_BYTES
        self.user_agent = user_agent or settings.METADATA_USER_AGENT
        self.client = client

    async def fetch(self, url: str) -> FetchedMetadata:
        headers = {"User-Agent": self.user_agent, "Accept": "text/html,application/xhtml+xml"}
        try:
            if self.client is not None:
                html, final_url = await self._download(self.client, url, headers)
            else:
                async with httpx.AsyncClient(timeout=self.timeout, follow_redirects=True) as client:
                    html, final_url = await self._download(client, url, headers)
        except httpx.TimeoutException as e:
            raise MetadataFetchError(url, f"timed out after {self.timeout}s") from e
        except httpx.HTTPError as e:
            raise MetadataFetchError(url, str(e) or type(e).__name__) from e

        return parse_metadata(html, final_url)

    async def _download(self, client: httpx.AsyncClient, url: str, headers: dict) -> tuple[str, str]:
        async with client.stream("GET", url, headers=headers, timeout=self.timeout,
                                 follow_redirects=True) as response:
            if response.status_code >= 400:
                raise MetadataFetchError(url, f"HTTP {response.status_code}")

            content_type = response.headers.get("content-type", "").split(";")[0].strip().lower()
            if content_type and content_type not in _HTML_CONTENT_TYPES:
                raise MetadataFetchError(url, f"unsupported content type '{content_type}'")

            chunks = []
            received = 0
            async for chunk in response.aiter_bytes():
                chunks.append(chunk)
                received += len(chunk)
                if received >= self.max_bytes:
                    break

            body = b"".join(chunks)[:self.max_bytes]
            encoding = response.encoding or "utf-8"
            return body.decode(encoding, errors="replace"), str(response.url)
