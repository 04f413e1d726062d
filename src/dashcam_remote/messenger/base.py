"""Abstract update source interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

from dashcam_remote.core.types import Platform
from dashcam_remote.messenger.models import BotIdentity, Update


class UpdateSource(ABC):
    """Base class for chat platforms that deliver remote commands.

    Implementations wrap their transport errors in ``HandshakeFailure``
    (``identify``), ``TransientFetchFailure`` (``fetch_updates``) and
    ``SendFailure`` (the ``send_*`` methods).
    """

    def __init__(self, bot_id: str):
        self.bot_id = bot_id

    @abstractmethod
    async def identify(self) -> BotIdentity:
        """Verify credentials and return the bot identity."""
        ...

    @abstractmethod
    async def fetch_updates(self, offset: int, timeout: int, limit: int) -> list[Update]:
        """Block up to ``timeout`` seconds for at most ``limit`` updates with id >= offset."""
        ...

    @abstractmethod
    async def send_message(self, chat_id: str, text: str) -> None:
        ...

    @abstractmethod
    async def send_chat_action(self, chat_id: str, action: str) -> None:
        ...

    @abstractmethod
    async def send_photo(self, chat_id: str, path: Path, caption: Optional[str] = None) -> None:
        ...

    async def close(self) -> None:
        """Release transport resources."""

    @property
    @abstractmethod
    def platform(self) -> Platform:
        ...
