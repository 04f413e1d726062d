"""Application supervisor - wires every remote and manages their lifecycle."""

from __future__ import annotations

import time
from collections.abc import Callable

from dashcam_remote.config import AppConfig, RemoteConfig
from dashcam_remote.core.dispatcher import CommandActions, CommandDispatcher
from dashcam_remote.core.events import ConnectionEvents, LoggingObserver
from dashcam_remote.core.poller import Poller
from dashcam_remote.core.registry import RemoteRegistry
from dashcam_remote.core.types import Platform
from dashcam_remote.log import get_logger
from dashcam_remote.messenger.base import UpdateSource
from dashcam_remote.services.actions import HookActions
from dashcam_remote.storage.database import Database
from dashcam_remote.storage.offset_store import SqliteOffsetStore

logger = get_logger(__name__)

_STATUS_LABELS = {
    Platform.DINGTALK: "钉钉远程服务运行中",
    Platform.TELEGRAM: "Telegram 远程服务运行中",
}


def create_source(remote: RemoteConfig) -> UpdateSource:
    match remote.platform:
        case Platform.TELEGRAM:
            from dashcam_remote.messenger.telegram import TelegramUpdateSource

            return TelegramUpdateSource(remote.id, remote.token)
        case Platform.DINGTALK:
            from dashcam_remote.messenger.dingtalk import DingTalkUpdateSource

            return DingTalkUpdateSource(remote.id, remote.client_id, remote.client_secret)
        case _:
            raise ValueError(f"Unknown platform: {remote.platform}")


class RemoteApp:
    """Owns the database, event channel and one poller per configured remote.

    Constructed once per process and handed to whatever needs it.
    """

    def __init__(
        self,
        config: AppConfig,
        source_factory: Callable[[RemoteConfig], UpdateSource] = create_source,
        actions_factory: Callable[[RemoteConfig], CommandActions] | None = None,
        clock: Callable[[], float] = time.time,
    ):
        self.config = config
        self.db = Database(config.storage.db_path)
        self.events = ConnectionEvents()
        self.events.add_observer(LoggingObserver())
        self.registry = RemoteRegistry()
        self._source_factory = source_factory
        self._actions_factory = actions_factory or self._hook_actions
        self._clock = clock
        self._sources: dict[str, UpdateSource] = {}
        self._dispatchers: dict[str, CommandDispatcher] = {}

    async def start(self) -> None:
        """Open storage and start polling every remote."""
        await self.db.initialize()

        for remote in self.config.remotes:
            try:
                source = self._source_factory(remote)
                dispatcher = CommandDispatcher(
                    bot_id=remote.id,
                    source=source,
                    actions=self._actions_factory(remote),
                    allowed_chat_ids=remote.allowed_chat_ids,
                )
                poller = Poller(
                    bot_id=remote.id,
                    source=source,
                    dispatcher=dispatcher,
                    offset_store=SqliteOffsetStore(self.db, remote.id),
                    events=self.events,
                    config=self.config.polling,
                    clock=self._clock,
                )
                self.registry.register(remote.id, poller)
                self._sources[remote.id] = source
                self._dispatchers[remote.id] = dispatcher
                poller.start()
                logger.info("remote_started", bot_id=remote.id, platform=remote.platform)
            except Exception as e:
                logger.error("remote_start_failed", bot_id=remote.id, error=str(e))

        logger.info("dashcam_remote_started", remote_count=len(self.registry.ids()))

    async def stop(self) -> None:
        """Stop all pollers, finish pending actions and release resources."""
        pollers = self.registry.all()
        for poller in pollers:
            poller.stop()
        for poller in pollers:
            await poller.wait_closed()

        for dispatcher in self._dispatchers.values():
            await dispatcher.drain()

        for bot_id, source in self._sources.items():
            try:
                await source.close()
            except Exception as e:
                logger.error("source_close_error", bot_id=bot_id, error=str(e))

        await self.db.close()
        logger.info("dashcam_remote_stopped")

    def get_source(self, bot_id: str) -> UpdateSource | None:
        return self._sources.get(bot_id)

    def is_platform_running(self, platform: Platform) -> bool:
        return any(
            self._sources[p.bot_id].platform == platform for p in self.registry.running()
        )

    def has_any_running(self) -> bool:
        return bool(self.registry.running())

    def status_description(self) -> str:
        """Human-readable summary for the host's status display."""
        parts = [label for platform, label in _STATUS_LABELS.items() if self.is_platform_running(platform)]
        return " / ".join(parts) if parts else "远程服务运行中"

    def _hook_actions(self, remote: RemoteConfig) -> CommandActions:
        return HookActions(self.config.actions, remote.id, remote.platform)
