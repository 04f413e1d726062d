"""Durable per-bot update offsets."""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from dashcam_remote.log import get_logger
from dashcam_remote.storage.database import Database
from dashcam_remote.storage.models import OffsetRecord

logger = get_logger(__name__)


class OffsetStore(Protocol):
    async def load(self) -> int: ...

    async def save(self, offset: int) -> None: ...


class SqliteOffsetStore:
    """Stores the next update id to request for one bot.

    ``save`` commits before returning and never lowers a stored value.
    """

    def __init__(self, db: Database, bot_id: str):
        self._db = db
        self._bot_id = bot_id

    async def load(self) -> int:
        cursor = await self._db.conn.execute(
            "SELECT next_offset FROM update_offsets WHERE bot_id = ?",
            (self._bot_id,),
        )
        row = await cursor.fetchone()
        return int(row["next_offset"]) if row else 0

    async def save(self, offset: int) -> None:
        if offset < 0:
            raise ValueError(f"offset must be non-negative, got {offset}")
        await self._db.conn.execute(
            """INSERT INTO update_offsets (bot_id, next_offset)
               VALUES (?, ?)
               ON CONFLICT(bot_id) DO UPDATE SET
                   next_offset = MAX(next_offset, excluded.next_offset),
                   updated_at = strftime('%Y-%m-%dT%H:%M:%f','now')""",
            (self._bot_id, offset),
        )
        await self._db.conn.commit()


async def list_offsets(db: Database) -> list[OffsetRecord]:
    """All persisted offsets, by bot id."""
    cursor = await db.conn.execute("SELECT * FROM update_offsets ORDER BY bot_id")
    rows = await cursor.fetchall()
    return [
        OffsetRecord(
            bot_id=row["bot_id"],
            next_offset=row["next_offset"],
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )
        for row in rows
    ]


async def reset_offset(db: Database, bot_id: str) -> bool:
    """Forget the stored offset for a bot. Returns True if one existed."""
    cursor = await db.conn.execute("DELETE FROM update_offsets WHERE bot_id = ?", (bot_id,))
    await db.conn.commit()
    if cursor.rowcount:
        logger.info("offset_reset", bot_id=bot_id)
    return bool(cursor.rowcount)
