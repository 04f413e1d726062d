import pytest

from dashcam_remote.storage.database import SCHEMA_VERSION, Database
from dashcam_remote.storage.offset_store import SqliteOffsetStore, list_offsets, reset_offset


@pytest.mark.asyncio
async def test_load_defaults_to_zero(tmp_path) -> None:
    db = Database(str(tmp_path / "offsets.db"))
    await db.initialize()
    try:
        assert await SqliteOffsetStore(db, "tg").load() == 0
    finally:
        await db.close()


@pytest.mark.asyncio
async def test_offset_survives_reopen(tmp_path) -> None:
    path = str(tmp_path / "nested" / "offsets.db")
    db = Database(path)
    await db.initialize()
    await SqliteOffsetStore(db, "tg").save(128)
    await db.close()

    reopened = Database(path)
    await reopened.initialize()
    try:
        assert await SqliteOffsetStore(reopened, "tg").load() == 128
    finally:
        await reopened.close()


@pytest.mark.asyncio
async def test_offset_never_decreases(tmp_path) -> None:
    db = Database(str(tmp_path / "offsets.db"))
    await db.initialize()
    try:
        store = SqliteOffsetStore(db, "tg")
        await store.save(40)
        await store.save(12)
        assert await store.load() == 40
        await store.save(41)
        assert await store.load() == 41
    finally:
        await db.close()


@pytest.mark.asyncio
async def test_offsets_are_kept_per_bot(tmp_path) -> None:
    db = Database(str(tmp_path / "offsets.db"))
    await db.initialize()
    try:
        await SqliteOffsetStore(db, "tg").save(7)
        await SqliteOffsetStore(db, "ding").save(3)

        records = await list_offsets(db)
        assert [(r.bot_id, r.next_offset) for r in records] == [("ding", 3), ("tg", 7)]

        assert await reset_offset(db, "tg") is True
        assert await reset_offset(db, "tg") is False
        assert await SqliteOffsetStore(db, "tg").load() == 0
        assert await SqliteOffsetStore(db, "ding").load() == 3
    finally:
        await db.close()


@pytest.mark.asyncio
async def test_negative_offset_is_rejected(tmp_path) -> None:
    db = Database(str(tmp_path / "offsets.db"))
    await db.initialize()
    try:
        with pytest.raises(ValueError):
            await SqliteOffsetStore(db, "tg").save(-1)
    finally:
        await db.close()


def test_conn_requires_initialize(tmp_path) -> None:
    with pytest.raises(RuntimeError):
        Database(str(tmp_path / "x.db")).conn


@pytest.mark.asyncio
async def test_schema_version_is_recorded_and_reopen_is_idempotent(tmp_path) -> None:
    path = tmp_path / "offsets.db"
    async with Database(path) as db:
        assert await db.schema_version() == SCHEMA_VERSION
        await SqliteOffsetStore(db, "tg").save(7)

    async with Database(path) as db:
        assert await db.schema_version() == SCHEMA_VERSION
        assert await SqliteOffsetStore(db, "tg").load() == 7
