"""Uploads captured photos back to the chat that requested them."""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from pathlib import Path
from typing import Optional, Protocol

from dashcam_remote.core.errors import SendFailure
from dashcam_remote.log import get_logger
from dashcam_remote.messenger.base import UpdateSource

logger = get_logger(__name__)

UPLOAD_ACTION = "upload_photo"


class UploadCallback(Protocol):
    def on_progress(self, message: str) -> None: ...

    def on_success(self, message: str) -> None: ...

    def on_error(self, error: str) -> None: ...


class PhotoUploadService:
    """Sends photos one at a time with a pause between them."""

    def __init__(self, source: UpdateSource, delay_between: float = 2.0):
        self._source = source
        self._delay_between = delay_between

    async def upload_photos(
        self,
        chat_id: str,
        paths: Sequence[Path],
        callback: Optional[UploadCallback] = None,
    ) -> list[str]:
        """Upload ``paths`` to ``chat_id``; returns the names that were sent."""
        if not paths:
            _notify_error(callback, "没有图片文件可上传")
            return []

        total = len(paths)
        _notify_progress(callback, f"开始上传 {total} 张照片...")
        await self._chat_action(chat_id)

        uploaded: list[str] = []
        for index, path in enumerate(paths, start=1):
            if not path.exists():
                logger.warning("photo_missing", path=str(path))
                continue

            _notify_progress(callback, f"正在上传 ({index}/{total}): {path.name}")
            try:
                await self._chat_action(chat_id)
                await self._source.send_photo(chat_id, path, caption=f"照片 {index}/{total}")
                uploaded.append(path.name)
                logger.info("photo_uploaded", chat_id=chat_id, file=path.name)
            except SendFailure as e:
                logger.error("photo_upload_failed", chat_id=chat_id, file=path.name, error=str(e))
                _notify_error(callback, f"上传失败: {path.name} - {e}")
                continue

            if index < total:
                _notify_progress(callback, f"等待{self._delay_between:g}秒后上传下一张照片...")
                await asyncio.sleep(self._delay_between)

        if not uploaded:
            _notify_error(callback, "所有图片上传失败")
            return uploaded

        summary = f"✅ 图片上传完成！共上传 {len(uploaded)} 张照片"
        if callback:
            callback.on_success(summary)
        try:
            await self._source.send_message(chat_id, summary)
        except SendFailure as e:
            logger.error("upload_summary_failed", chat_id=chat_id, error=str(e))
        return uploaded

    async def _chat_action(self, chat_id: str) -> None:
        try:
            await self._source.send_chat_action(chat_id, UPLOAD_ACTION)
        except SendFailure as e:
            logger.warning("chat_action_failed", chat_id=chat_id, error=str(e))


def _notify_progress(callback: Optional[UploadCallback], message: str) -> None:
    if callback:
        callback.on_progress(message)


def _notify_error(callback: Optional[UploadCallback], error: str) -> None:
    logger.warning("photo_upload_error", error=error)
    if callback:
        callback.on_error(error)
