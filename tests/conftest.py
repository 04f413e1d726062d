import asyncio
from pathlib import Path
from typing import Optional

import pytest

from dashcam_remote.config import PollingConfig
from dashcam_remote.core.errors import HandshakeFailure, SendFailure
from dashcam_remote.core.events import ConnectionEvent, ConnectionEvents
from dashcam_remote.core.types import ChatKind, Platform
from dashcam_remote.messenger.base import UpdateSource
from dashcam_remote.messenger.models import BotIdentity, Message, Update

NOW = 1_700_000_000
ALLOWED_CHAT = "1001"
OTHER_CHAT = "2002"


class FakeSource(UpdateSource):
    """Scripted update source.

    ``batches`` holds lists of updates or exceptions, consumed one per
    fetch. Once empty, fetches block like an idle long poll.
    """

    def __init__(self, batches=None, identify_errors: int = 0, fail_sends: bool = False):
        super().__init__("test-bot")
        self.batches = list(batches or [])
        self.identify_errors = identify_errors
        self.fail_sends = fail_sends
        self.identify_calls = 0
        self.fetch_offsets: list[int] = []
        self.persisted_at_fetch: list[Optional[int]] = []
        self.sent: list[tuple[str, str]] = []
        self.actions: list[tuple[str, str]] = []
        self.photos: list[tuple[str, str, Optional[str]]] = []
        self.store: Optional["MemoryOffsetStore"] = None
        self.idle = asyncio.Event()
        self.closed = False

    @property
    def platform(self) -> Platform:
        return Platform.TELEGRAM

    async def identify(self) -> BotIdentity:
        self.identify_calls += 1
        if self.identify_calls <= self.identify_errors:
            raise HandshakeFailure(f"handshake attempt {self.identify_calls} refused")
        return BotIdentity(id="42", username="dashcam_bot")

    async def fetch_updates(self, offset: int, timeout: int, limit: int) -> list[Update]:
        self.fetch_offsets.append(offset)
        if self.store is not None:
            self.persisted_at_fetch.append(self.store.offset)
        if not self.batches:
            self.idle.set()
            await asyncio.sleep(3600)
        item = self.batches.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    async def send_message(self, chat_id: str, text: str) -> None:
        if self.fail_sends:
            raise SendFailure("network down")
        self.sent.append((chat_id, text))

    async def send_chat_action(self, chat_id: str, action: str) -> None:
        if self.fail_sends:
            raise SendFailure("network down")
        self.actions.append((chat_id, action))

    async def send_photo(self, chat_id: str, path: Path, caption: Optional[str] = None) -> None:
        if self.fail_sends:
            raise SendFailure("network down")
        self.photos.append((chat_id, path.name, caption))

    async def close(self) -> None:
        self.closed = True


class FakeActions:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.recordings: list[tuple[str, int]] = []
        self.photos: list[str] = []

    async def trigger_recording(self, chat_id: str, duration_seconds: int) -> None:
        self.recordings.append((chat_id, duration_seconds))
        if self.fail:
            raise RuntimeError("camera busy")

    async def trigger_photo(self, chat_id: str) -> None:
        self.photos.append(chat_id)
        if self.fail:
            raise RuntimeError("camera busy")


class MemoryOffsetStore:
    def __init__(self, offset: int = 0, fail: bool = False):
        self.offset = offset
        self.fail = fail
        self.loads = 0
        self.saves: list[int] = []

    async def load(self) -> int:
        self.loads += 1
        return self.offset

    async def save(self, offset: int) -> None:
        if self.fail:
            raise OSError("disk full")
        self.saves.append(offset)
        self.offset = max(self.offset, offset)


def make_message(text: Optional[str] = "/status", chat_id: str = ALLOWED_CHAT, age: int = 5) -> Message:
    return Message(chat_id=chat_id, chat_kind=ChatKind.PRIVATE, sent_at=NOW - age, text=text, sender_id="7")


def make_update(update_id: int, text: Optional[str] = "/status", chat_id: str = ALLOWED_CHAT, age: int = 5) -> Update:
    return Update(id=update_id, message=make_message(text, chat_id, age))


async def collect_events(queue: asyncio.Queue[ConnectionEvent]) -> list[ConnectionEvent]:
    """Let pending loop callbacks run, then drain the queue."""
    for _ in range(3):
        await asyncio.sleep(0)
    events = []
    while not queue.empty():
        events.append(queue.get_nowait())
    return events


async def wait_for(predicate, timeout: float = 2.0) -> None:
    async def _poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(_poll(), timeout)


@pytest.fixture
def fast_polling() -> PollingConfig:
    return PollingConfig(reconnect_delay=0.01, error_retry_delay=0.01)


@pytest.fixture
def events() -> ConnectionEvents:
    return ConnectionEvents()
