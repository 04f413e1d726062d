"""Platform-neutral update and message models."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from dashcam_remote.core.types import ChatKind


@dataclass(frozen=True, slots=True)
class Message:
    chat_id: str
    chat_kind: ChatKind
    sent_at: int  # unix seconds
    text: Optional[str] = None
    sender_id: Optional[str] = None


@dataclass(frozen=True, slots=True)
class Update:
    """One delivered update; ids increase monotonically per bot."""

    id: int
    message: Optional[Message] = None


@dataclass(frozen=True, slots=True)
class BotIdentity:
    id: str
    username: str
