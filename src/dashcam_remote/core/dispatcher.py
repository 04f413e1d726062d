"""Routes parsed remote commands to responses and host actions."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable, Collection
from typing import Any, Optional, Protocol

from dashcam_remote.core.commands import Command, Help, Photo, Record, Status, Unrecognized, parse_command
from dashcam_remote.core.errors import SendFailure
from dashcam_remote.log import get_logger
from dashcam_remote.messenger.base import UpdateSource
from dashcam_remote.messenger.models import Message

logger = get_logger(__name__)

HELP_TEXT = (
    "可用指令：\n"
    "• /record - 开始录制 60 秒视频（默认）\n"
    "• /record 30 - 录制指定秒数视频\n"
    "• 录制 或 录制30 - 中文指令\n"
    "• /photo - 拍摄照片\n"
    "• 拍照 - 中文指令\n"
    "• /status - 查看运行状态\n"
    "• /help - 显示此帮助信息"
)
STATUS_TEXT = "✅ Bot 正在运行中"
UNRECOGNIZED_TEXT = "未识别的指令。发送 /help 查看可用指令。"
PHOTO_ACK_TEXT = "收到拍照指令，正在拍照..."


def record_ack_text(duration_seconds: int) -> str:
    return f"收到录制指令，开始录制 {duration_seconds} 秒视频..."


class CommandActions(Protocol):
    """Host application hooks fired by remote commands."""

    async def trigger_recording(self, chat_id: str, duration_seconds: int) -> None: ...

    async def trigger_photo(self, chat_id: str) -> None: ...


class CommandDispatcher:
    """Handles one allowed message: parse, respond, trigger.

    Record and photo acknowledgements are sent from a background task that
    then fires the action, so the poll loop never waits on them.
    """

    def __init__(
        self,
        bot_id: str,
        source: UpdateSource,
        actions: CommandActions,
        allowed_chat_ids: Collection[str],
    ):
        self._bot_id = bot_id
        self._source = source
        self._actions = actions
        self._allowed_chat_ids = allowed_chat_ids
        self._tasks: set[asyncio.Task[Any]] = set()

    def is_allowed(self, chat_id: str) -> bool:
        return chat_id in self._allowed_chat_ids

    async def dispatch(self, message: Message) -> Optional[Command]:
        """Handle a message; returns the parsed command, or None if dropped."""
        chat_id = message.chat_id
        if not self.is_allowed(chat_id):
            logger.info("chat_not_allowed", bot_id=self._bot_id, chat_id=chat_id)
            return None
        if message.text is None:
            return None

        command = parse_command(message.text)
        logger.info(
            "command_received",
            bot_id=self._bot_id,
            chat_id=chat_id,
            chat_kind=message.chat_kind,
            sender_id=message.sender_id,
            command=type(command).__name__,
        )

        match command:
            case Record(duration_seconds=duration):
                self._spawn(
                    self._acknowledge_then(
                        chat_id,
                        record_ack_text(duration),
                        lambda: self._actions.trigger_recording(chat_id, duration),
                    )
                )
            case Photo():
                self._spawn(
                    self._acknowledge_then(
                        chat_id,
                        PHOTO_ACK_TEXT,
                        lambda: self._actions.trigger_photo(chat_id),
                    )
                )
            case Help():
                await self._reply(chat_id, HELP_TEXT)
            case Status():
                await self._reply(chat_id, STATUS_TEXT)
            case Unrecognized(text=text):
                logger.info("command_unrecognized", bot_id=self._bot_id, text=text)
                await self._reply(chat_id, UNRECOGNIZED_TEXT)
        return command

    async def drain(self) -> None:
        """Wait for in-flight acknowledge-then-trigger tasks."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def _spawn(self, coro: Awaitable[None]) -> None:
        task = asyncio.ensure_future(coro)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _reply(self, chat_id: str, text: str) -> None:
        try:
            await self._source.send_message(chat_id, text)
        except SendFailure as e:
            logger.error("reply_failed", bot_id=self._bot_id, chat_id=chat_id, error=str(e))

    async def _acknowledge_then(
        self,
        chat_id: str,
        text: str,
        action: Callable[[], Awaitable[None]],
    ) -> None:
        try:
            await self._source.send_message(chat_id, text)
            logger.debug("ack_sent", bot_id=self._bot_id, chat_id=chat_id)
        except Exception as e:
            # The action still runs; a lost acknowledgement must not cancel it.
            logger.error("ack_failed", bot_id=self._bot_id, chat_id=chat_id, error=str(e))

        try:
            await action()
        except Exception as e:
            logger.error("action_failed", bot_id=self._bot_id, chat_id=chat_id, error=str(e))
