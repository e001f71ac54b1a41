"""Runtime settings for zvpn paths and stop policy."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Literal, Mapping, Optional

from pydantic import BaseModel, field_validator

DEFAULT_CONFIG_DIR = Path.home() / ".zvpn"
DEFAULT_PID_FILE = Path("/tmp/zvpn.pid")
DEFAULT_LOG_FILE = Path("/tmp/zvpn.log")
LAST_CONFIG_NAME = ".last_config"
CONFIG_SUFFIX = ".ovpn"
OPENVPN_BINARY = "openvpn"
STOP_TIMEOUT_SECONDS = 5.0

ENV_OVERRIDES = {
    "config_dir": "ZVPN_CONFIG_DIR",
    "pid_file": "ZVPN_PID_FILE",
    "log_file": "ZVPN_LOG_FILE",
    "openvpn_binary": "ZVPN_OPENVPN_BIN",
    "stop_scope": "ZVPN_STOP_SCOPE",
    "stop_timeout": "ZVPN_STOP_TIMEOUT",
}


class Settings(BaseModel):
    config_dir: Path = DEFAULT_CONFIG_DIR
    pid_file: Path = DEFAULT_PID_FILE
    log_file: Path = DEFAULT_LOG_FILE
    last_config_name: str = LAST_CONFIG_NAME
    config_suffix: str = CONFIG_SUFFIX
    openvpn_binary: str = OPENVPN_BINARY
    stop_scope: Literal["tracked", "name"] = "tracked"
    stop_timeout: float = STOP_TIMEOUT_SECONDS

    @field_validator("config_dir", "pid_file", "log_file")
    @classmethod
    def _expand_user(cls, value: Path) -> Path:
        return Path(value).expanduser()

    @field_validator("stop_scope", mode="before")
    @classmethod
    def _normalize_scope(cls, value: object) -> object:
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("stop_timeout")
    @classmethod
    def _non_negative_timeout(cls, value: float) -> float:
        if value < 0:
            raise ValueError("stop_timeout must be >= 0")
        return value

    @field_validator("openvpn_binary", "config_suffix", "last_config_name")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        cleaned = value.strip()
        if not cleaned:
            raise ValueError("value must be non-empty")
        return cleaned

    @property
    def last_config_path(self) -> Path:
        return self.config_dir / self.last_config_name


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build settings from defaults overridden by ZVPN_* environment variables.

    Raises ValueError when an override does not validate.
    """
    env = os.environ if environ is None else environ
    overrides: dict[str, str] = {}
    for field_name, env_name in ENV_OVERRIDES.items():
        value = str(env.get(env_name, "")).strip()
        if value:
            overrides[field_name] = value
    try:
        return Settings(**overrides)
    except ValueError as exc:
        # pydantic.ValidationError subclasses ValueError; flatten it for the CLI.
        raise ValueError(f"invalid zvpn settings: {exc}") from exc
