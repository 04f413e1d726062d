"""Registry of active pollers, keyed by bot id."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from dashcam_remote.core.poller import Poller


class RemoteRegistry:
    """Tracks the poller of every configured remote."""

    def __init__(self) -> None:
        self._pollers: dict[str, Poller] = {}

    def register(self, bot_id: str, poller: Poller) -> None:
        if bot_id in self._pollers:
            raise ValueError(f"Remote '{bot_id}' is already registered")
        self._pollers[bot_id] = poller

    def get(self, bot_id: str) -> Poller | None:
        return self._pollers.get(bot_id)

    def remove(self, bot_id: str) -> Poller | None:
        return self._pollers.pop(bot_id, None)

    def all(self) -> list[Poller]:
        return list(self._pollers.values())

    def ids(self) -> list[str]:
        return list(self._pollers.keys())

    def running(self) -> list[Poller]:
        return [p for p in self._pollers.values() if p.is_running]
