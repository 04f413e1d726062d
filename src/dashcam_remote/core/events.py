"""Connection event channel between pollers and their observers."""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from enum import StrEnum
from typing import Optional, Protocol

from dashcam_remote.log import get_logger

logger = get_logger(__name__)


class EventKind(StrEnum):
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    ERROR = "error"


@dataclass(frozen=True, slots=True)
class ConnectionEvent:
    bot_id: str
    kind: EventKind
    error: Optional[str] = None


class ConnectionObserver(Protocol):
    def on_connected(self, bot_id: str) -> None: ...

    def on_disconnected(self, bot_id: str) -> None: ...

    def on_error(self, bot_id: str, message: str) -> None: ...


class ConnectionEvents:
    """Publishes connection events on the event loop, in publication order.

    Pollers call :meth:`publish` from their worker task; delivery to
    observers and subscriber queues happens in a later loop callback, never
    inside the worker's own frame.
    """

    def __init__(self) -> None:
        self._observers: list[ConnectionObserver] = []
        self._queues: list[asyncio.Queue[ConnectionEvent]] = []

    def add_observer(self, observer: ConnectionObserver) -> None:
        self._observers.append(observer)

    def subscribe(self) -> asyncio.Queue[ConnectionEvent]:
        queue: asyncio.Queue[ConnectionEvent] = asyncio.Queue()
        self._queues.append(queue)
        return queue

    def unsubscribe(self, queue: asyncio.Queue[ConnectionEvent]) -> None:
        if queue in self._queues:
            self._queues.remove(queue)

    def publish(self, event: ConnectionEvent) -> None:
        asyncio.get_running_loop().call_soon(self._deliver, event)

    def _deliver(self, event: ConnectionEvent) -> None:
        for queue in self._queues:
            queue.put_nowait(event)
        for observer in self._observers:
            try:
                match event.kind:
                    case EventKind.CONNECTED:
                        observer.on_connected(event.bot_id)
                    case EventKind.DISCONNECTED:
                        observer.on_disconnected(event.bot_id)
                    case EventKind.ERROR:
                        observer.on_error(event.bot_id, event.error or "")
            except Exception as e:
                logger.error("observer_error", bot_id=event.bot_id, kind=event.kind, error=str(e))


class LoggingObserver:
    """Observer that records connection transitions in the log."""

    def on_connected(self, bot_id: str) -> None:
        logger.info("remote_connected", bot_id=bot_id)

    def on_disconnected(self, bot_id: str) -> None:
        logger.info("remote_disconnected", bot_id=bot_id)

    def on_error(self, bot_id: str, message: str) -> None:
        logger.error("remote_error", bot_id=bot_id, error=message)
