import textwrap

import pytest
from pydantic import ValidationError

from dashcam_remote.config import AppConfig, RemoteConfig, load_config
from dashcam_remote.core.types import Platform

CONFIG_YAML = textwrap.dedent(
    """
    log_level: DEBUG
    data_dir: ${TEST_DATA_DIR}
    storage:
      db_path: ${data_dir}/remote.db
    polling:
      reconnect_delay: 2.5
    actions:
      record_command: ["/usr/bin/record", "--fast"]
    remotes:
      - id: tg
        platform: telegram
        token: ${TEST_TG_TOKEN}
        allowed_chat_ids: [123456, "-1009"]
      - id: ding
        platform: dingtalk
        client_id: app-key
        client_secret: app-secret
    """
)


def test_load_config_interpolates_env(tmp_path, monkeypatch) -> None:
    monkeypatch.setenv("TEST_DATA_DIR", "/var/lib/dashcam")
    monkeypatch.setenv("TEST_TG_TOKEN", "123:abc")
    config_file = tmp_path / "config.yaml"
    config_file.write_text(CONFIG_YAML, encoding="utf-8")

    config = load_config(config_file, tmp_path / "missing.env")

    assert config.log_level == "DEBUG"
    assert config.storage.db_path == "/var/lib/dashcam/remote.db"
    assert config.polling.reconnect_delay == 2.5
    assert config.polling.timeout == 30
    assert config.polling.max_reconnect_attempts == 5
    assert config.actions.record_command == ["/usr/bin/record", "--fast"]

    tg = config.get_remote("tg")
    assert tg is not None
    assert tg.platform == Platform.TELEGRAM
    assert tg.token == "123:abc"
    assert tg.allowed_chat_ids == {"123456", "-1009"}
    assert config.get_remote("nope") is None


def test_env_file_is_loaded(tmp_path, monkeypatch) -> None:
    monkeypatch.delenv("TEST_TG_TOKEN", raising=False)
    monkeypatch.setenv("TEST_DATA_DIR", str(tmp_path))
    (tmp_path / ".env").write_text("TEST_TG_TOKEN=from-dotenv\n", encoding="utf-8")
    config_file = tmp_path / "config.yaml"
    config_file.write_text(CONFIG_YAML, encoding="utf-8")

    config = load_config(config_file, tmp_path / ".env")

    assert config.get_remote("tg").token == "from-dotenv"


def test_missing_config_file(tmp_path) -> None:
    with pytest.raises(FileNotFoundError):
        load_config(tmp_path / "absent.yaml", tmp_path / ".env")


def test_telegram_requires_token() -> None:
    with pytest.raises(ValidationError):
        RemoteConfig(id="tg", platform="telegram")


def test_dingtalk_requires_client_credentials() -> None:
    with pytest.raises(ValidationError):
        RemoteConfig(id="ding", platform="dingtalk", client_id="only-id")


def test_unknown_platform_rejected() -> None:
    with pytest.raises(ValidationError):
        RemoteConfig(id="x", platform="discord", token="t")


def test_duplicate_remote_ids_rejected() -> None:
    remote = {"id": "tg", "platform": "telegram", "token": "t"}
    with pytest.raises(ValidationError):
        AppConfig(remotes=[remote, remote])
