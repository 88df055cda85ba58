"""
User Service

Users are created lazily on their first authenticated action; the identity
provider owns everything else about them. This service keeps the
active_url_count quota counter and handles account deletion.
"""

import logging
from typing import Optional

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from shortlinks.db.models import ShortURL, URLMetadata, User

logger = logging.getLogger(__name__)


class UserService:
    """Persistence helpers for User rows."""

    def __init__(self, session: AsyncSession):
        self.session = session

    async def get_user(self, user_id: str) -> Optional[User]:
        # populate_existing: the quota counter is changed by bulk UPDATEs
        statement = select(User).where(User.id == user_id).execution_options(populate_existing=True)
        result = await self.session.execute(statement)
        return result.scalar_one_or_none()

    async def get_or_create(self, user_id: str) -> User:
        """
        Return the user, inserting the row on first sight.

        Two first requests from the same user may race on the insert; the
        loser rolls back and reads the winner's row.
        """
        user = await self.get_user(user_id)
        if user is not None:
            return user

        user = User(id=user_id, active_url_count=0)
        self.session.add(user)
        try:
            await self.session.commit()
        except IntegrityError:
            await self.session.rollback()
            user = await self.get_user(user_id)
            if user is None:
                raise
            return user

        logger.info(f"Registered new user {user_id}")
        return user

    async def count_active_urls(self, user_id: str) -> int:
        """Recount active URLs from short_urls, ignoring the stored counter."""
        statement = select(func.count(ShortURL.id)).where(
            ShortURL.owner_id == user_id,
            ShortURL.is_active.is_(True),
        )
        result = await self.session.execute(statement)
        return result.scalar_one()

    async def reserve_slot(self, user_id: str, limit: int) -> bool:
        """
        Atomically take one quota slot.

        The WHERE clause makes check and increment a single statement, so two
        concurrent creators cannot both pass the limit. Does not commit; the
        slot is released if the caller's transaction rolls back.

        Returns:
            True if a slot was taken, False if the user is at the limit
        """
        statement = (
            update(User)
            .where(User.id == user_id, User.active_url_count < limit)
            .values(active_url_count=User.active_url_count + 1)
        )
        result = await self.session.execute(statement)
        return result.rowcount == 1

    async def release_slot(self, user_id: str) -> None:
        """Give back one quota slot. Does not commit."""
        statement = (
            update(User)
            .where(User.id == user_id, User.active_url_count > 0)
            .values(active_url_count=User.active_url_count - 1)
        )
        await self.session.execute(statement)

    async def reconcile_count(self, user_id: str) -> int:
        """
        Rewrite the stored counter from a recount and commit.

        Returns:
            The recounted number of active URLs
        """
        actual = await self.count_active_urls(user_id)
        user = await self.get_user(user_id)
        if user is not None and user.active_url_count != actual:
            logger.warning(
                f"Active URL counter drift for {user_id}: stored={user.active_url_count} actual={actual}"
            )
            user.active_url_count = actual
            await self.session.commit()
        return actual

    async def delete_account(self, user_id: str) -> bool:
        """
        Hard-delete a user and everything they own.

        Returns:
            True if the user existed
        """
        user = await self.get_user(user_id)
        if user is None:
            return False

        url_ids = select(ShortURL.id).where(ShortURL.owner_id == user_id)
        await self.session.execute(delete(URLMetadata).where(URLMetadata.url_id.in_(url_ids)))
        await self.session.execute(delete(ShortURL).where(ShortURL.owner_id == user_id))
        await self.session.execute(delete(User).where(User.id == user_id))
        await self.session.commit()

        logger.info(f"Deleted account {user_id} and its short URLs")
        return True
