"""
Ordering dialog driven by Telegram updates.

Dialog state lives in conversation_sessions, so any API process (or the
long-polling runner) can handle any user's next update. Each handler changes
state in one short transaction and sends its replies after the commit.

Flow: /start -> shared contact (first time only) -> child name -> age ->
confirm -> reservation. Callbacks: confirm_yes / confirm_no,
order_another_video and retry_video_<asset id>.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional
from uuid import UUID

from sqlalchemy.ext.asyncio import AsyncSession

from app.db.session import SessionFactory, get_async_session_context
from app.errors import DeliveryError
from app.models.conversation_session import ConversationSession, ConversationStep
from app.repositories.conversation_repository import ConversationRepository
from app.repositories.user_repository import BotUserRepository
from app.schemas.telegram import CallbackQuery, Message, TelegramUser, Update
from app.services import messages
from app.services.delivery_gateway import TelegramDeliveryGateway
from app.services.name_validation import parse_child_age, validate_child_name
from app.services.reservation_service import ReservationKind, ReservationService
from app.services.retry_service import RetryOutcome, RetryService
from app.services.tts_service import spoken_name

logger = logging.getLogger(__name__)


@dataclass
class Reply:
    text: str
    reply_markup: Optional[Dict[str, Any]] = None


@dataclass
class Replies:
    items: List[Reply] = field(default_factory=list)

    def add(self, text: str, reply_markup: Optional[Dict[str, Any]] = None) -> None:
        self.items.append(Reply(text, reply_markup))


class ConversationService:
    def __init__(
        self,
        gateway: TelegramDeliveryGateway,
        reservations: Optional[ReservationService] = None,
        retries: Optional[RetryService] = None,
        session_factory: Optional[SessionFactory] = None,
    ):
        self.gateway = gateway
        self.client = gateway.client
        self.session_factory = session_factory
        self.reservations = reservations or ReservationService(session_factory)
        self.retries = retries or RetryService(session_factory)

    def _session(self):
        return get_async_session_context(self.session_factory)

    async def handle_update(self, update: Update) -> None:
        """
        Entry point for one Telegram update.

        Never raises: a failing handler is logged, the user's dialog is reset
        and they are asked to start again.
        """
        user_id: Optional[int] = None
        try:
            if update.callback_query is not None:
                user_id = update.callback_query.from_user.id
                await self._on_callback(update.callback_query)
            elif update.message is not None and update.message.from_user is not None:
                user_id = update.message.from_user.id
                await self._on_message(update.message)
            else:
                logger.debug("Ignoring update %s without a message or callback", update.update_id)
        except Exception:
            logger.exception("Failed to handle update %s from user %s", update.update_id, user_id)
            if user_id is not None:
                await self._recover(user_id)

    async def _recover(self, user_id: int) -> None:
        try:
            async with self._session() as db:
                await ConversationRepository(db).reset(user_id)
            await self.client.send_message(user_id, messages.GENERIC_ERROR, reply_markup=messages.remove_keyboard())
        except Exception:
            logger.error("Could not reset conversation of user %s after an error", user_id, exc_info=True)

    async def _send(self, user_id: int, replies: Replies) -> None:
        for reply in replies.items:
            await self.client.send_message(user_id, reply.text, reply_markup=reply.reply_markup)

    # Messages

    async def _on_message(self, message: Message) -> None:
        if message.chat.type != "private":
            return
        user = message.from_user
        text = (message.text or "").strip()
        command = text.split()[0].split("@")[0].lower() if text.startswith("/") else None

        replies = Replies()
        async with self._session() as db:
            conversations = ConversationRepository(db)
            convo = await conversations.get_or_create(user.id)

            if command == "/start":
                convo.is_reordering = False
                await self._begin(db, convo, user, replies)
            elif command == "/cancel":
                if convo.in_progress:
                    await conversations.reset(user.id)
                    replies.add(messages.CANCELLED, messages.remove_keyboard())
                else:
                    replies.add(messages.NOTHING_TO_CANCEL)
            elif convo.step == ConversationStep.WAITING_PHONE:
                await self._on_phone(db, convo, user, message, replies)
            elif convo.step == ConversationStep.WAITING_NAME:
                self._on_name(convo, text, replies)
            elif convo.step == ConversationStep.WAITING_AGE:
                self._on_age(convo, text, replies)
            elif convo.step == ConversationStep.WAITING_CONFIRM:
                replies.add(messages.USE_BUTTONS)
            else:
                replies.add(messages.IDLE_HINT)

            await conversations.save(convo)

        await self._send(user.id, replies)

    async def _begin(self, db: AsyncSession, convo: ConversationSession, user: TelegramUser, replies: Replies) -> None:
        """Start a new order: straight to the name when the phone is known."""
        users = BotUserRepository(db)
        known = await users.get_by_id(user.id)

        convo.child_name = None
        convo.child_age = None

        if known is not None and known.phone_number:
            if not convo.is_reordering:
                replies.add(messages.WELCOME_BACK)
            convo.is_reordering = False
            convo.step = ConversationStep.WAITING_NAME
            replies.add(messages.ASK_NAME, messages.remove_keyboard())
            return

        await users.upsert(
            user_id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            username=user.username,
            is_bot=user.is_bot,
        )
        convo.is_reordering = False
        convo.step = ConversationStep.WAITING_PHONE
        replies.add(messages.WELCOME, messages.share_phone_keyboard())

    async def _on_phone(
        self,
        db: AsyncSession,
        convo: ConversationSession,
        user: TelegramUser,
        message: Message,
        replies: Replies,
    ) -> None:
        contact = message.contact
        if contact is None or (contact.user_id is not None and contact.user_id != user.id):
            replies.add(messages.PHONE_INVALID, messages.share_phone_keyboard())
            return

        await BotUserRepository(db).upsert(
            user_id=user.id,
            first_name=user.first_name,
            last_name=user.last_name,
            username=user.username,
            is_bot=user.is_bot,
            phone_number=contact.phone_number,
        )
        logger.info("User %s shared a phone number", user.id)
        convo.step = ConversationStep.WAITING_NAME
        replies.add(messages.PHONE_RECEIVED, messages.remove_keyboard())
        replies.add(messages.ASK_NAME)

    def _on_name(self, convo: ConversationSession, text: str, replies: Replies) -> None:
        validation = validate_child_name(text)
        if not validation.is_valid:
            replies.add(messages.name_error(validation.error_key))
            return
        convo.child_name = text.strip()
        convo.step = ConversationStep.WAITING_AGE
        replies.add(messages.ASK_AGE)

    def _on_age(self, convo: ConversationSession, text: str, replies: Replies) -> None:
        age = parse_child_age(text)
        if age is None:
            replies.add(messages.AGE_INVALID)
            return
        convo.child_age = age
        convo.step = ConversationStep.WAITING_CONFIRM
        replies.add(
            messages.confirm_order(spoken_name(convo.child_name), age),
            messages.confirm_keyboard(),
        )

    # Callbacks

    async def _on_callback(self, query: CallbackQuery) -> None:
        try:
            await self.client.answer_callback_query(query.id)
        except DeliveryError as exc:
            # queries older than a few minutes cannot be answered any more
            logger.warning("answerCallbackQuery %s failed: %s", query.id, exc)

        data = query.data or ""
        user = query.from_user

        if data in (messages.CONFIRM_YES, messages.CONFIRM_NO) and query.message is not None:
            try:
                await self.client.delete_message(user.id, query.message.message_id)
            except DeliveryError as exc:
                logger.debug("Could not delete confirmation message: %s", exc)

        if data == messages.CONFIRM_YES:
            await self._confirm(user.id)
        elif data == messages.CONFIRM_NO:
            await self._change_name(user.id)
        elif data == messages.ORDER_ANOTHER:
            await self._order_another(user)
        elif data.startswith(messages.RETRY_PREFIX):
            await self._retry(user.id, data[len(messages.RETRY_PREFIX):])
        else:
            logger.warning("Unknown callback data %r from user %s", data, user.id)

    async def _change_name(self, user_id: int) -> None:
        async with self._session() as db:
            conversations = ConversationRepository(db)
            convo = await conversations.get_or_create(user_id)
            convo.child_name = None
            convo.child_age = None
            convo.step = ConversationStep.WAITING_NAME
            await conversations.save(convo)
        await self.client.send_message(user_id, messages.ASK_NAME_AGAIN)

    async def _order_another(self, user: TelegramUser) -> None:
        replies = Replies()
        async with self._session() as db:
            conversations = ConversationRepository(db)
            convo = await conversations.get_or_create(user.id)
            if convo.in_progress:
                replies.add(messages.ORDER_IN_PROGRESS)
            else:
                convo.is_reordering = True
                replies.add(messages.ORDER_ANOTHER_INTRO)
                await self._begin(db, convo, user, replies)
                await conversations.save(convo)
        await self._send(user.id, replies)

    async def _confirm(self, user_id: int) -> None:
        async with self._session() as db:
            conversations = ConversationRepository(db)
            convo = await conversations.get_or_create(user_id)
            name, age = convo.child_name, convo.child_age
            ready = convo.step == ConversationStep.WAITING_CONFIRM and bool(name)
            # cleared before reserving so a second tap cannot order twice
            await conversations.reset(user_id)

        if not ready:
            await self.client.send_message(user_id, messages.ORDER_DATA_MISSING)
            return

        try:
            outcome = await self.reservations.reserve(user_id, name, age)
        except Exception:
            logger.exception("Reservation failed for user %s name=%r", user_id, name)
            await self.client.send_message(user_id, messages.GENERIC_ERROR)
            return

        if outcome.kind == ReservationKind.SERVE_CACHED:
            await self.gateway.deliver_by_handle(user_id, outcome.file_id)
            await self.gateway.follow_up(user_id, messages.CACHED_READY)
        elif outcome.kind == ReservationKind.SUBSCRIBED:
            await self.client.send_message(user_id, messages.ALREADY_GENERATING)
        else:
            await self.client.send_message(user_id, messages.BEING_PREPARED)

    async def _retry(self, user_id: int, raw_asset_id: str) -> None:
        try:
            asset_id = UUID(raw_asset_id)
        except ValueError:
            await self.client.send_message(user_id, messages.RETRY_NOT_FOUND)
            return

        try:
            result = await self.retries.retry(asset_id, user_id=user_id)
        except Exception:
            logger.exception("Retry of asset %s by user %s failed", asset_id, user_id)
            await self.client.send_message(user_id, messages.RETRY_ERROR)
            return

        if result.outcome == RetryOutcome.NOT_FOUND:
            await self.client.send_message(user_id, messages.RETRY_NOT_FOUND)
        elif result.outcome == RetryOutcome.ALREADY_AVAILABLE:
            await self.client.send_message(user_id, messages.RETRY_ALREADY_READY)
            await self.gateway.deliver_by_handle(user_id, result.file_id)
            await self.gateway.follow_up(user_id, messages.CACHED_READY)
        elif result.outcome == RetryOutcome.IN_PROGRESS:
            await self.client.send_message(user_id, messages.RETRY_IN_PROGRESS)
        else:
            await self.client.send_message(user_id, messages.RETRY_REQUEUED, reply_markup=messages.remove_keyboard())
