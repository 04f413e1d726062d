"""Telegram update source using python-telegram-bot v21+."""

from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from telegram import Bot
from telegram import Message as TGMessage
from telegram import Update as TGUpdate
from telegram.error import TelegramError

from dashcam_remote.core.errors import HandshakeFailure, SendFailure, TransientFetchFailure
from dashcam_remote.core.types import ChatKind, Platform
from dashcam_remote.log import get_logger
from dashcam_remote.messenger.base import UpdateSource
from dashcam_remote.messenger.models import BotIdentity, Message, Update

logger = get_logger(__name__)


class TelegramUpdateSource(UpdateSource):
    """Long-polls the Bot API with ``getUpdates``."""

    def __init__(self, bot_id: str, token: str, bot: Bot | None = None):
        super().__init__(bot_id)
        if not token and bot is None:
            raise ValueError(f"Telegram bot token not configured for bot '{bot_id}'")
        self._bot = bot or Bot(token)
        self._initialized = False

    @property
    def platform(self) -> Platform:
        return Platform.TELEGRAM

    async def identify(self) -> BotIdentity:
        try:
            if not self._initialized:
                await self._bot.initialize()
                self._initialized = True
            me = await self._bot.get_me()
        except TelegramError as e:
            raise HandshakeFailure(f"getMe failed: {e}") from e
        logger.info("telegram_identified", bot_id=self.bot_id, username=me.username)
        return BotIdentity(id=str(me.id), username=me.username or "")

    async def fetch_updates(self, offset: int, timeout: int, limit: int) -> list[Update]:
        try:
            raw = await self._bot.get_updates(
                offset=offset,
                timeout=timeout,
                limit=limit,
                allowed_updates=["message"],
            )
        except TelegramError as e:
            raise TransientFetchFailure(f"getUpdates failed: {e}") from e
        return [_convert_update(u) for u in raw]

    async def send_message(self, chat_id: str, text: str) -> None:
        try:
            await self._bot.send_message(chat_id=int(chat_id), text=text)
        except TelegramError as e:
            raise SendFailure(f"sendMessage to {chat_id} failed: {e}") from e

    async def send_chat_action(self, chat_id: str, action: str) -> None:
        try:
            await self._bot.send_chat_action(chat_id=int(chat_id), action=action)
        except TelegramError as e:
            raise SendFailure(f"sendChatAction to {chat_id} failed: {e}") from e

    async def send_photo(self, chat_id: str, path: Path, caption: Optional[str] = None) -> None:
        try:
            with path.open("rb") as fh:
                await self._bot.send_photo(chat_id=int(chat_id), photo=fh, caption=caption)
        except (TelegramError, OSError) as e:
            raise SendFailure(f"sendPhoto {path.name} to {chat_id} failed: {e}") from e

    async def close(self) -> None:
        if self._initialized:
            try:
                await self._bot.shutdown()
            except TelegramError as e:
                logger.warning("telegram_shutdown_error", bot_id=self.bot_id, error=str(e))
            self._initialized = False


def _convert_update(update: TGUpdate) -> Update:
    msg = update.message
    if msg is None:
        return Update(id=update.update_id)
    return Update(id=update.update_id, message=_convert_message(msg))


def _convert_message(msg: TGMessage) -> Message:
    sent = msg.date or datetime.now(timezone.utc)
    return Message(
        chat_id=str(msg.chat.id),
        chat_kind=_chat_kind(msg.chat.type),
        sent_at=int(sent.timestamp()),
        text=msg.text,
        sender_id=str(msg.from_user.id) if msg.from_user else None,
    )


def _chat_kind(chat_type: str) -> ChatKind:
    for kind in ChatKind:
        if kind == chat_type:
            return kind
    return ChatKind.PRIVATE
