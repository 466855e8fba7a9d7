"""
BotUser repository - database operations for Telegram users.
"""

from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.dialects.postgresql import insert
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.bot_user import BotUser


class BotUserRepository:
    """Repository for BotUser database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get_by_id(self, user_id: int) -> Optional[BotUser]:
        """Get a user by Telegram id."""
        result = await self.db.execute(
            select(BotUser).where(BotUser.id == user_id)
        )
        return result.scalar_one_or_none()

    async def upsert(
        self,
        *,
        user_id: int,
        first_name: str,
        last_name: Optional[str] = None,
        username: Optional[str] = None,
        is_bot: bool = False,
        phone_number: Optional[str] = None,
    ) -> BotUser:
        """
        Insert or refresh a user's profile.

        A missing phone_number never erases one stored earlier.
        """
        stmt = insert(BotUser).values(
            id=user_id,
            first_name=first_name or "",
            last_name=last_name,
            username=username,
            is_bot=is_bot,
            phone_number=phone_number,
        )
        stmt = stmt.on_conflict_do_update(
            index_elements=[BotUser.id],
            set_={
                "first_name": stmt.excluded.first_name,
                "last_name": stmt.excluded.last_name,
                "username": stmt.excluded.username,
                "is_bot": stmt.excluded.is_bot,
                "phone_number": func.coalesce(stmt.excluded.phone_number, BotUser.phone_number),
                "updated_at": func.now(),
            },
        ).returning(BotUser)
        result = await self.db.execute(stmt)
        await self.db.flush()
        return result.scalar_one()
