"""Test doubles shared across test modules."""

import asyncio
import random
from typing import Optional

from shortlinks.services.metadata_fetcher import FetchedMetadata, MetadataFetcher


class StubFetcher(MetadataFetcher):
    """Metadata fetcher returning canned results and recording calls."""

    def __init__(
        self,
        metadata: Optional[FetchedMetadata] = None,
        error: Optional[Exception] = None,
        delay: float = 0,
    ):
        self.metadata = metadata or FetchedMetadata()
        self.error = error
        self.delay = delay
        self.calls: list[str] = []

    async def fetch(self, url: str) -> FetchedMetadata:
        self.calls.append(url)
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return self.metadata


EXAMPLE_METADATA = FetchedMetadata(
    title="Example Domain",
    description="This domain is for use in illustrative examples.",
    image_url="https://example.com/og.png",
)


class ScriptedRandom(random.Random):
    """Random source whose choice() walks through a fixed string of characters."""

    def __init__(self, script: str):
        super().__init__()
        self._chars = iter(script)

    def choice(self, seq):
        return next(self._chars)
