"""
Telegram Bot API update schemas.

Only the fields the bot reads are declared; everything else Telegram sends
is ignored.
"""

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class TelegramModel(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class TelegramUser(TelegramModel):
    id: int
    is_bot: bool = False
    first_name: str = ""
    last_name: Optional[str] = None
    username: Optional[str] = None


class Chat(TelegramModel):
    id: int
    type: str = "private"


class Contact(TelegramModel):
    phone_number: str
    first_name: str = ""
    last_name: Optional[str] = None
    user_id: Optional[int] = None


class Message(TelegramModel):
    message_id: int
    from_user: Optional[TelegramUser] = Field(default=None, alias="from")
    chat: Chat
    date: int = 0
    text: Optional[str] = None
    contact: Optional[Contact] = None


class CallbackQuery(TelegramModel):
    id: str
    from_user: TelegramUser = Field(alias="from")
    message: Optional[Message] = None
    data: Optional[str] = None


class Update(TelegramModel):
    update_id: int
    message: Optional[Message] = None
    callback_query: Optional[CallbackQuery] = None
