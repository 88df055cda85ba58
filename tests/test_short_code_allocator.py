
import pytest

from shortlinks.core.exceptions import (
    InvalidShortCodeError,
    ShortCodeExhaustedError,
    ShortCodeTakenError,
)
from shortlinks.core.validators import SHORT_CODE_ALPHABET
from shortlinks.services.short_code_allocator import ShortCodeAllocator
from shortlinks.services.url_service import URLShorteningService
from tests.stubs import ScriptedRandom


async def create(session, owner_id, url, code=None):
    service = URLShorteningService(session)
    return await service.create_url(owner_id, url, requested_code=code, fetch_metadata=False)


@pytest.mark.asyncio
async def test_free_custom_code_is_returned_unchanged(session):
    allocator = ShortCodeAllocator(session)
    for code in ("abc123", "ZZZZZZ", "a1B2c3D4"):
        assert await allocator.allocate(code) == code


@pytest.mark.asyncio
@pytest.mark.parametrize("code", ["abc12", "abcdefghi", "abc-12", "héllo1", "health"])
async def test_malformed_or_reserved_code_is_rejected(session, code):
    allocator = ShortCodeAllocator(session)
    with pytest.raises(InvalidShortCodeError):
        await allocator.allocate(code)


@pytest.mark.asyncio
async def test_used_code_is_taken(session):
    await create(session, "alice", "https://example.com", code="abc123")

    allocator = ShortCodeAllocator(session)
    with pytest.raises(ShortCodeTakenError) as exc_info:
        await allocator.allocate("abc123")
    assert exc_info.value.short_code == "abc123"


@pytest.mark.asyncio
async def test_soft_deleted_code_is_never_reissued(session):
    creation = await create(session, "alice", "https://example.com", code="gone42")
    await URLShorteningService(session).soft_delete(creation.url.id, "alice")

    allocator = ShortCodeAllocator(session)
    assert await allocator.is_code_taken("gone42")
    with pytest.raises(ShortCodeTakenError):
        await allocator.allocate("gone42")


@pytest.mark.asyncio
async def test_random_codes_use_configured_length_and_alphabet(session):
    allocator = ShortCodeAllocator(session, length=7)
    codes = {await allocator.allocate() for _ in range(20)}
    for code in codes:
        assert len(code) == 7
        assert set(code) <= set(SHORT_CODE_ALPHABET)
    assert len(codes) > 1


@pytest.mark.asyncio
async def test_random_collision_is_retried(session):
    await create(session, "alice", "https://example.com", code="aaaaaaa")

    allocator = ShortCodeAllocator(session, length=7, rng=ScriptedRandom("aaaaaaa" + "bbbbbbb"))
    assert await allocator.allocate() == "bbbbbbb"


@pytest.mark.asyncio
async def test_exhausted_retries(session):
    await create(session, "alice", "https://example.com", code="aaaaaaa")

    allocator = ShortCodeAllocator(session, length=7, max_retries=3, rng=ScriptedRandom("a" * 21))
    with pytest.raises(ShortCodeExhaustedError) as exc_info:
        await allocator.allocate()
    assert exc_info.value.attempts == 3
    assert exc_info.value.length == 7
