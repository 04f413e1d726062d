"""Long-poll worker: handshake, update fetching, offset tracking and reconnects.

State machine::

    IDLE -> CONNECTING -> CONNECTED -> DISCONNECTED   (stop)
                 |  ^
                 |  +-- retry after reconnect_delay while attempts < max
                 +-----> FAILED                        (attempts exhausted)

Only the startup handshake is retried with a bound. Once connected, fetch
errors are retried forever at ``error_retry_delay`` until :meth:`stop`.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable
from typing import Optional

from dashcam_remote.config import PollingConfig
from dashcam_remote.core.dispatcher import CommandDispatcher
from dashcam_remote.core.errors import DispatchFailure
from dashcam_remote.core.events import ConnectionEvent, ConnectionEvents, EventKind
from dashcam_remote.core.types import ConnectionState
from dashcam_remote.log import get_logger
from dashcam_remote.messenger.base import UpdateSource
from dashcam_remote.messenger.models import BotIdentity, Update
from dashcam_remote.storage.offset_store import OffsetStore

logger = get_logger(__name__)


class Poller:
    """Owns the poll worker task for one bot.

    The worker task is the only writer of state, offset and the reconnect
    counter. ``start``, ``stop`` and ``is_running`` may be called from any
    thread; calls from outside the event loop are forwarded onto the loop the
    poller was created (or last started) on.
    """

    def __init__(
        self,
        bot_id: str,
        source: UpdateSource,
        dispatcher: CommandDispatcher,
        offset_store: OffsetStore,
        events: ConnectionEvents,
        config: PollingConfig | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.bot_id = bot_id
        self._source = source
        self._dispatcher = dispatcher
        self._offset_store = offset_store
        self._events = events
        self._config = config or PollingConfig()
        self._clock = clock

        self._state = ConnectionState.IDLE
        self._offset: Optional[int] = None
        self._identity: Optional[BotIdentity] = None
        self._reconnect_attempts = 0
        self._stopping = False
        self._interruptible = True
        self._loop: asyncio.AbstractEventLoop | None = None
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            pass
        self._worker: asyncio.Task[None] | None = None
        self._retry_handle: asyncio.TimerHandle | None = None

    # -- public control ----------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def is_running(self) -> bool:
        """True from ``start`` until stopped or failed, including handshake retries."""
        worker_alive = self._worker is not None and not self._worker.done()
        return worker_alive or self._retry_handle is not None

    @property
    def offset(self) -> Optional[int]:
        return self._offset

    @property
    def identity(self) -> Optional[BotIdentity]:
        return self._identity

    @property
    def reconnect_attempts(self) -> int:
        return self._reconnect_attempts

    def start(self) -> None:
        """Begin the handshake; no-op while already running."""
        if self._forward_to_loop(self.start):
            return
        if self.is_running:
            logger.warning("poller_already_running", bot_id=self.bot_id)
            return
        self._loop = asyncio.get_running_loop()
        self._stopping = False
        self._reconnect_attempts = 0
        self._spawn_worker()

    def stop(self) -> None:
        """Request shutdown and return without waiting for the worker.

        A blocked fetch or handshake is interrupted; a batch being processed
        finishes its current update first. ``DISCONNECTED`` is published when
        the worker exits (see :meth:`wait_closed`).
        """
        if self._forward_to_loop(self.stop):
            return
        logger.info("poller_stopping", bot_id=self.bot_id, state=self._state)
        self._stopping = True

        if self._retry_handle is not None:
            self._retry_handle.cancel()
            self._retry_handle = None
            self._mark_disconnected()

        if self._worker is not None and not self._worker.done() and self._interruptible:
            self._worker.cancel()

    async def wait_closed(self) -> None:
        """Wait until the worker task has exited."""
        if self._worker is not None:
            await asyncio.gather(self._worker, return_exceptions=True)

    # -- worker ------------------------------------------------------------

    def _spawn_worker(self) -> None:
        self._retry_handle = None
        if self._stopping:
            return
        assert self._loop is not None
        self._worker = self._loop.create_task(self._run(), name=f"poller-{self.bot_id}")

    async def _run(self) -> None:
        self._state = ConnectionState.CONNECTING
        logger.info("poller_connecting", bot_id=self.bot_id, attempt=self._reconnect_attempts + 1)

        try:
            if self._offset is None:
                self._offset = await self._offset_store.load()
            identity = await self._source.identify()
        except asyncio.CancelledError:
            self._mark_disconnected()
            return
        except Exception as e:
            self._handshake_failed(e)
            return

        self._identity = identity
        self._reconnect_attempts = 0
        self._state = ConnectionState.CONNECTED
        logger.info(
            "poller_connected",
            bot_id=self.bot_id,
            username=identity.username,
            offset=self._offset,
        )
        self._publish(EventKind.CONNECTED)

        try:
            await self._poll_loop()
        except asyncio.CancelledError:
            if not self._stopping:
                self._mark_disconnected()
                raise
        except Exception as e:
            logger.error("poll_loop_crashed", bot_id=self.bot_id, error=str(e), exc_info=True)
            self._state = ConnectionState.FAILED
            self._publish(EventKind.ERROR, f"poll loop crashed: {e}")
            return

        self._mark_disconnected()

    async def _poll_loop(self) -> None:
        while not self._stopping:
            updates = await self._fetch_batch()
            if updates is None:
                continue

            now = self._clock()
            self._interruptible = False
            try:
                for update in sorted(updates, key=lambda u: u.id):
                    await self._handle_update(update, now)
                    if self._stopping:
                        break
            finally:
                self._interruptible = True

    async def _fetch_batch(self) -> Optional[list[Update]]:
        assert self._offset is not None
        try:
            return await self._source.fetch_updates(
                self._offset,
                self._config.timeout,
                self._config.limit,
            )
        except Exception as e:
            logger.warning(
                "fetch_failed",
                bot_id=self.bot_id,
                offset=self._offset,
                error=str(e),
                retry_in=self._config.error_retry_delay,
            )
            await asyncio.sleep(self._config.error_retry_delay)
            return None

    async def _handle_update(self, update: Update, now: float) -> None:
        assert self._offset is not None
        if update.id < self._offset:
            logger.debug("update_already_handled", bot_id=self.bot_id, update_id=update.id, offset=self._offset)
            return

        message = update.message
        if message is not None:
            age = now - message.sent_at
            if age > self._config.message_expire_seconds:
                logger.info(
                    "update_stale",
                    bot_id=self.bot_id,
                    update_id=update.id,
                    sent_at=message.sent_at,
                    age=int(age),
                )
                await self._advance(update.id + 1)
                return
            try:
                await self._dispatcher.dispatch(message)
            except Exception as e:
                failure = DispatchFailure(update.id, e)
                logger.error("dispatch_failed", bot_id=self.bot_id, update_id=update.id, error=str(failure))

        await self._advance(update.id + 1)

    async def _advance(self, next_offset: int) -> None:
        """Persist, then move the in-memory offset forward."""
        try:
            await self._offset_store.save(next_offset)
        except Exception as e:
            # Still advance in memory so this process does not replay the update.
            logger.error("offset_save_failed", bot_id=self.bot_id, offset=next_offset, error=str(e))
        self._offset = next_offset

    def _handshake_failed(self, error: Exception) -> None:
        self._reconnect_attempts += 1
        logger.error(
            "handshake_failed",
            bot_id=self.bot_id,
            attempt=self._reconnect_attempts,
            max_attempts=self._config.max_reconnect_attempts,
            error=str(error),
        )
        if self._stopping:
            self._mark_disconnected()
            return

        if self._reconnect_attempts < self._config.max_reconnect_attempts:
            logger.info(
                "handshake_retry_scheduled",
                bot_id=self.bot_id,
                delay=self._config.reconnect_delay,
                attempt=self._reconnect_attempts + 1,
            )
            assert self._loop is not None
            self._retry_handle = self._loop.call_later(self._config.reconnect_delay, self._spawn_worker)
            return

        self._state = ConnectionState.FAILED
        self._publish(
            EventKind.ERROR,
            f"handshake failed after {self._reconnect_attempts} attempts: {error}",
        )

    # -- helpers -----------------------------------------------------------

    def _mark_disconnected(self) -> None:
        self._state = ConnectionState.DISCONNECTED
        logger.info("poller_stopped", bot_id=self.bot_id, offset=self._offset)
        self._publish(EventKind.DISCONNECTED)

    def _publish(self, kind: EventKind, error: str | None = None) -> None:
        self._events.publish(ConnectionEvent(bot_id=self.bot_id, kind=kind, error=error))

    def _forward_to_loop(self, method: Callable[[], None]) -> bool:
        """Re-schedule ``method`` on the poller's loop when called from another thread."""
        if self._loop is None or self._loop.is_closed():
            return False
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is self._loop:
            return False
        self._loop.call_soon_threadsafe(method)
        return True
