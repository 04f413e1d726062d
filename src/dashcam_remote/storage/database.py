"""SQLite storage for poll offsets, versioned with ``PRAGMA user_version``."""

from __future__ import annotations

from pathlib import Path

import aiosqlite

from dashcam_remote.log import get_logger

logger = get_logger(__name__)

# Index i upgrades a database at user_version i to i + 1.
MIGRATIONS: tuple[str, ...] = (
    """
    CREATE TABLE IF NOT EXISTS update_offsets (
        bot_id          TEXT    PRIMARY KEY,
        next_offset     INTEGER NOT NULL DEFAULT 0 CHECK(next_offset >= 0),
        updated_at      TEXT    NOT NULL DEFAULT (strftime('%Y-%m-%dT%H:%M:%f','now'))
    );
    """,
)
SCHEMA_VERSION = len(MIGRATIONS)


class Database:
    """Single aiosqlite connection shared by every offset store."""

    def __init__(self, db_path: str | Path):
        self.path = Path(db_path)
        self._conn: aiosqlite.Connection | None = None

    async def __aenter__(self) -> Database:
        await self.initialize()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def initialize(self) -> None:
        """Open the file (creating parent dirs) and apply pending migrations."""
        if self._conn is not None:
            return
        self.path.parent.mkdir(parents=True, exist_ok=True)
        conn = await aiosqlite.connect(self.path)
        conn.row_factory = aiosqlite.Row
        await conn.execute("PRAGMA journal_mode=WAL")
        # Offsets must survive power loss, not just a process crash.
        await conn.execute("PRAGMA synchronous=FULL")
        self._conn = conn

        version = await self.schema_version()
        for target, script in enumerate(MIGRATIONS[version:], start=version + 1):
            await conn.executescript(script)
            await conn.execute(f"PRAGMA user_version={target}")
            logger.info("database_migrated", path=str(self.path), version=target)
        await conn.commit()
        logger.info("database_ready", path=str(self.path), version=SCHEMA_VERSION)

    async def schema_version(self) -> int:
        async with self.conn.execute("PRAGMA user_version") as cursor:
            row = await cursor.fetchone()
        return int(row[0]) if row else 0

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            raise RuntimeError(f"Database {self.path} is not open; call initialize() first")
        return self._conn

    async def close(self) -> None:
        if self._conn is None:
            return
        await self._conn.close()
        self._conn = None
        logger.info("database_closed", path=str(self.path))
