import asyncio

import pytest

from conftest import ALLOWED_CHAT, NOW, FakeActions, FakeSource, make_update
from dashcam_remote.app import RemoteApp, create_source
from dashcam_remote.config import AppConfig, RemoteConfig
from dashcam_remote.core.types import ConnectionState, Platform
from dashcam_remote.messenger.dingtalk import DingTalkUpdateSource
from dashcam_remote.messenger.telegram import TelegramUpdateSource
from dashcam_remote.storage.offset_store import SqliteOffsetStore


def _config(tmp_path) -> AppConfig:
    return AppConfig(
        storage={"db_path": str(tmp_path / "remote.db")},
        polling={"reconnect_delay": 0.01, "error_retry_delay": 0.01},
        remotes=[
            {"id": "tg", "platform": "telegram", "token": "123:abc", "allowed_chat_ids": [ALLOWED_CHAT]},
        ],
    )


@pytest.mark.asyncio
async def test_app_polls_persists_and_stops(tmp_path) -> None:
    source = FakeSource(batches=[[make_update(30, "/record 15")]])
    actions = FakeActions()
    app = RemoteApp(
        _config(tmp_path),
        source_factory=lambda remote: source,
        actions_factory=lambda remote: actions,
        clock=lambda: NOW,
    )

    await app.start()
    await asyncio.wait_for(source.idle.wait(), 2)

    assert app.has_any_running()
    assert app.is_platform_running(Platform.TELEGRAM)
    assert not app.is_platform_running(Platform.DINGTALK)
    assert app.status_description() == "Telegram 远程服务运行中"
    assert app.get_source("tg") is source
    assert await SqliteOffsetStore(app.db, "tg").load() == 31

    await app.stop()

    assert actions.recordings == [(ALLOWED_CHAT, 15)]
    assert source.closed
    assert app.registry.get("tg").state == ConnectionState.DISCONNECTED
    assert not app.has_any_running()
    assert app.status_description() == "远程服务运行中"


@pytest.mark.asyncio
async def test_remote_that_fails_to_build_is_skipped(tmp_path) -> None:
    def _factory(remote):
        raise ValueError("bad credentials")

    app = RemoteApp(_config(tmp_path), source_factory=_factory, actions_factory=lambda remote: FakeActions())
    await app.start()

    assert app.registry.ids() == []
    assert not app.has_any_running()
    await app.stop()


def test_create_source_per_platform() -> None:
    tg = create_source(RemoteConfig(id="tg", platform="telegram", token="123:abc"))
    ding = create_source(RemoteConfig(id="ding", platform="dingtalk", client_id="k", client_secret="s"))

    assert isinstance(tg, TelegramUpdateSource)
    assert isinstance(ding, DingTalkUpdateSource)
    assert ding.platform == Platform.DINGTALK
