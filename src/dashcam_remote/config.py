"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

from dashcam_remote.core.types import Platform


class PollingConfig(BaseModel):
    timeout: int = 30  # server-side long-poll wait (seconds)
    limit: int = 5
    message_expire_seconds: int = 600
    max_reconnect_attempts: int = 5
    reconnect_delay: float = 5.0
    error_retry_delay: float = 1.0


class ActionsConfig(BaseModel):
    record_command: list[str] = Field(default_factory=list)
    photo_command: list[str] = Field(default_factory=list)
    timeout: int = 60


class RemoteConfig(BaseModel):
    id: str
    platform: Platform
    token: str = ""  # telegram
    client_id: str = ""  # dingtalk
    client_secret: str = ""  # dingtalk
    allowed_chat_ids: set[str] = Field(default_factory=set)

    @field_validator("allowed_chat_ids", mode="before")
    @classmethod
    def _stringify_chat_ids(cls, value: object) -> object:
        # YAML turns bare Telegram ids into ints
        if isinstance(value, (list, tuple, set)):
            return {str(v).strip() for v in value if str(v).strip()}
        return value

    @model_validator(mode="after")
    def _check_credentials(self) -> "RemoteConfig":
        if self.platform == Platform.TELEGRAM and not self.token:
            raise ValueError(f"Remote '{self.id}': telegram requires 'token'")
        if self.platform == Platform.DINGTALK and not (self.client_id and self.client_secret):
            raise ValueError(f"Remote '{self.id}': dingtalk requires 'client_id' and 'client_secret'")
        return self


class StorageConfig(BaseModel):
    db_path: str = "./data/dashcam_remote.db"


class AppConfig(BaseModel):
    log_level: str = "INFO"
    log_json: bool = False
    data_dir: str = "./data"
    remotes: list[RemoteConfig]
    polling: PollingConfig = Field(default_factory=PollingConfig)
    actions: ActionsConfig = Field(default_factory=ActionsConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)

    @model_validator(mode="after")
    def _unique_remote_ids(self) -> "AppConfig":
        ids = [r.id for r in self.remotes]
        duplicates = sorted({i for i in ids if ids.count(i) > 1})
        if duplicates:
            raise ValueError(f"Duplicate remote ids: {', '.join(duplicates)}")
        return self

    def get_remote(self, remote_id: str) -> Optional[RemoteConfig]:
        for remote in self.remotes:
            if remote.id == remote_id:
                return remote
        return None


_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")


def _interpolate_env_vars(text: str, extra: dict[str, str] | None = None) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values."""

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        if extra and var_name in extra:
            return extra[var_name]
        value = os.environ.get(var_name)
        if value is None:
            return match.group(0)
        return value

    return _ENV_VAR_PATTERN.sub(_replace, text)


def load_config(config_path: str | Path = "config.yaml", env_path: str | Path = ".env") -> AppConfig:
    """Load and validate configuration from YAML file with env-var interpolation."""
    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    raw_text = config_file.read_text(encoding="utf-8")

    # data_dir may be referenced by other keys, so resolve it first
    raw_data = yaml.safe_load(raw_text) or {}
    data_dir = _interpolate_env_vars(str(raw_data.get("data_dir", "./data")))

    interpolated = _interpolate_env_vars(raw_text, extra={"data_dir": data_dir})
    data = yaml.safe_load(interpolated) or {}

    return AppConfig(**data)
