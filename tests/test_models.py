from datetime import timedelta

import pytest
from sqlalchemy import inspect, update
from sqlalchemy.exc import IntegrityError

from shortlinks.db.models import ShortURL, User, utc_now


async def add_user(session, user_id="alice"):
    session.add(User(id=user_id))
    await session.commit()


def short_url(**overrides):
    now = utc_now()
    values = {
        "short_code": "chk001",
        "original_url": "https://example.com",
        "owner_id": "alice",
        "created_at": now,
        "expires_at": now + timedelta(hours=1),
    }
    values.update(overrides)
    return ShortURL(**values)


class TestShortURLConstraints:

    @pytest.mark.asyncio
    async def test_expiry_equal_to_creation_is_rejected(self, session):
        await add_user(session)
        now = utc_now()
        session.add(short_url(created_at=now, expires_at=now))
        with pytest.raises(IntegrityError):
            await session.flush()
        await session.rollback()

    @pytest.mark.asyncio
    async def test_expiry_before_creation_is_rejected(self, session):
        await add_user(session)
        now = utc_now()
        session.add(short_url(created_at=now, expires_at=now - timedelta(minutes=1)))
        with pytest.raises(IntegrityError):
            await session.flush()
        await session.rollback()

    @pytest.mark.asyncio
    async def test_open_ended_and_future_expiry_are_accepted(self, session):
        await add_user(session)
        session.add(short_url(short_code="chk002", expires_at=None))
        session.add(short_url(short_code="chk003"))
        await session.commit()

    @pytest.mark.asyncio
    async def test_short_code_is_unique(self, session):
        await add_user(session)
        session.add(short_url())
        await session.commit()

        session.add(short_url(is_active=False))
        with pytest.raises(IntegrityError):
            await session.flush()
        await session.rollback()


class TestUserConstraints:

    @pytest.mark.asyncio
    async def test_active_count_cannot_go_negative(self, session):
        await add_user(session)
        with pytest.raises(IntegrityError):
            await session.execute(update(User).where(User.id == "alice").values(active_url_count=-1))
        await session.rollback()


@pytest.mark.asyncio
async def test_owner_listing_index(database):
    async with database.engine.connect() as conn:
        indexes = await conn.run_sync(lambda sync_conn: inspect(sync_conn).get_indexes("short_urls"))

    by_name = {index["name"]: index for index in indexes}
    assert by_name["ix_short_urls_owner_id_is_active"]["column_names"] == ["owner_id", "is_active"]
    assert by_name["ix_short_urls_short_code"]["unique"]
