"""Host-application hooks that carry out record/photo commands."""

from __future__ import annotations

import asyncio
import contextlib
import os

from dashcam_remote.config import ActionsConfig
from dashcam_remote.core.types import Platform
from dashcam_remote.log import get_logger

logger = get_logger(__name__)


class HookActions:
    """Runs the operator's record/photo commands as subprocesses.

    The command receives the request in its environment:
    ``REMOTE_ACTION`` (``record`` | ``photo``), ``REMOTE_PLATFORM``,
    ``REMOTE_BOT_ID``, ``REMOTE_CHAT_ID`` and ``REMOTE_DURATION``.
    """

    def __init__(self, config: ActionsConfig, bot_id: str, platform: Platform):
        self._config = config
        self._bot_id = bot_id
        self._platform = platform

    async def trigger_recording(self, chat_id: str, duration_seconds: int) -> None:
        await self._run("record", self._config.record_command, chat_id, duration_seconds)

    async def trigger_photo(self, chat_id: str) -> None:
        await self._run("photo", self._config.photo_command, chat_id, 0)

    async def _run(self, action: str, command: list[str], chat_id: str, duration: int) -> None:
        if not command:
            logger.warning("action_hook_not_configured", action=action, bot_id=self._bot_id)
            return

        env = {
            **os.environ,
            "REMOTE_ACTION": action,
            "REMOTE_PLATFORM": self._platform.value,
            "REMOTE_BOT_ID": self._bot_id,
            "REMOTE_CHAT_ID": chat_id,
            "REMOTE_DURATION": str(duration),
        }
        logger.info("action_hook_start", action=action, bot_id=self._bot_id, chat_id=chat_id, duration=duration)

        try:
            process = await asyncio.create_subprocess_exec(
                *command,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                env=env,
            )
        except FileNotFoundError:
            logger.error("action_hook_not_found", action=action, command=command[0])
            return

        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), timeout=self._config.timeout)
        except asyncio.TimeoutError:
            logger.error("action_hook_timeout", action=action, timeout=self._config.timeout)
            return
        finally:
            # Timed out or cancelled
            if process.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    process.kill()
                await process.wait()

        if process.returncode != 0:
            logger.error(
                "action_hook_failed",
                action=action,
                returncode=process.returncode,
                stderr=stderr.decode("utf-8", errors="replace").strip()[:500],
            )
            return

        logger.info(
            "action_hook_done",
            action=action,
            bot_id=self._bot_id,
            output=stdout.decode("utf-8", errors="replace").strip()[:200],
        )
