"""
ConversationSession model.

Durable per-user conversation state. Keeping it in the database instead of
process memory lets any API process handle any user's next message.
"""

from typing import Optional

from sqlalchemy import BigInteger, Boolean, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.db.base import Base
from app.models.base_model import TimestampMixin


class ConversationStep:
    """Where a user is in the ordering dialog."""
    IDLE = "idle"
    WAITING_PHONE = "waiting_phone"
    WAITING_NAME = "waiting_name"
    WAITING_AGE = "waiting_age"
    WAITING_CONFIRM = "waiting_confirm"

    ALL = [IDLE, WAITING_PHONE, WAITING_NAME, WAITING_AGE, WAITING_CONFIRM]


class ConversationSession(TimestampMixin, Base):
    """Ordering-flow state for one Telegram user."""

    __tablename__ = "conversation_sessions"

    user_id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=False)
    step: Mapped[str] = mapped_column(String(32), nullable=False, default=ConversationStep.IDLE)
    child_name: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    child_age: Mapped[Optional[int]] = mapped_column(Integer, nullable=True)

    # Set when the flow was started from "order another video"
    is_reordering: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    @property
    def in_progress(self) -> bool:
        return self.step != ConversationStep.IDLE
