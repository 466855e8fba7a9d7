"""
ConversationSession repository - durable per-user dialog state.
"""

from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from app.models.conversation_session import ConversationSession, ConversationStep


class ConversationRepository:
    """Repository for ConversationSession database operations."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def get(self, user_id: int) -> Optional[ConversationSession]:
        result = await self.db.execute(
            select(ConversationSession).where(ConversationSession.user_id == user_id)
        )
        return result.scalar_one_or_none()

    async def get_or_create(self, user_id: int) -> ConversationSession:
        """Load the user's session, creating an idle one on first contact."""
        session = await self.get(user_id)
        if session is None:
            session = ConversationSession(
                user_id=user_id,
                step=ConversationStep.IDLE,
                is_reordering=False,
            )
            self.db.add(session)
            await self.db.flush()
        return session

    async def save(self, session: ConversationSession) -> ConversationSession:
        self.db.add(session)
        await self.db.flush()
        return session

    async def reset(self, user_id: int) -> ConversationSession:
        """Clear collected data and return the user to idle."""
        session = await self.get_or_create(user_id)
        session.step = ConversationStep.IDLE
        session.child_name = None
        session.child_age = None
        session.is_reordering = False
        await self.db.flush()
        return session
