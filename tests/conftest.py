"""
Shared fixtures.

Every test gets its own SQLite file under tmp_path, so tests are isolated
and concurrent sessions really contend on the same database.
"""

import fakeredis
import httpx
import pytest
import pytest_asyncio

from shortlinks.core.rate_limit import limiter
from shortlinks.db.session import Database
from shortlinks.main import create_app
from shortlinks.services.redirect_cache import RedirectCache
from tests.stubs import EXAMPLE_METADATA, StubFetcher


@pytest_asyncio.fixture
async def database(tmp_path):
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'shortlinks-test.db'}")
    await db.init(create_tables=True)
    yield db
    await db.close()


@pytest_asyncio.fixture
async def session(database):
    async with database.session() as session:
        yield session


@pytest.fixture
def fetcher():
    return StubFetcher(EXAMPLE_METADATA)


@pytest_asyncio.fixture
async def client(database, fetcher):
    """HTTP client bound to an app that uses the test database and stub fetcher."""
    limiter.enabled = False
    app = create_app(database=database, metadata_fetcher=fetcher)
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as http_client:
        yield http_client
    limiter.enabled = True


@pytest.fixture
def redis_server():
    return fakeredis.FakeServer()


@pytest_asyncio.fixture
async def redirect_cache(redis_server):
    cache = RedirectCache(fakeredis.FakeAsyncRedis(server=redis_server, decode_responses=True), ttl_seconds=60)
    yield cache
    await cache.close()
