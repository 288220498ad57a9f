from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

from .keystore import KeyPolicy

ENV_HOST = "KEYRELAY_HOST"
ENV_PORT = "KEYRELAY_PORT"


class RelayConfig(BaseModel):
    """Server settings, read from YAML with a couple of env overrides."""

    host: str = "0.0.0.0"
    port: int = Field(default=3000, ge=0, le=65535)
    ws_path: str = "/ws"
    index_file: Path = Path("chat.html")
    admin_key_policy: KeyPolicy = KeyPolicy.RETAIN
    strict_protocol: bool = False
    ping_interval: Optional[float] = 20.0
    ping_timeout: Optional[float] = 20.0
    log_level: str = "INFO"

    model_config = ConfigDict(extra="forbid")

    @field_validator("ws_path")
    @classmethod
    def _path_is_absolute(cls, value: str) -> str:
        if not value.startswith("/"):
            raise ValueError("ws_path must start with '/'")
        return value

    @field_validator("log_level")
    @classmethod
    def _upper_level(cls, value: str) -> str:
        return value.upper()


def load_config(path: Optional[Path] = None, env: Optional[Mapping[str, str]] = None) -> RelayConfig:
    """Build a :class:`RelayConfig` from an optional YAML file and the environment.

    Raises ``pydantic.ValidationError`` on bad values and ``ValueError`` when
    the YAML document is not a mapping.
    """
    env = os.environ if env is None else env
    data: Dict[str, Any] = {}
    if path is not None:
        loaded = yaml.safe_load(Path(path).read_text(encoding="utf-8")) or {}
        if not isinstance(loaded, dict):
            raise ValueError(f"{path}: config must be a mapping")
        data.update(loaded)
    if env.get(ENV_HOST):
        data["host"] = env[ENV_HOST]
    if env.get(ENV_PORT):
        data["port"] = env[ENV_PORT]
    return RelayConfig.model_validate(data)


__all__ = ["RelayConfig", "load_config", "ENV_HOST", "ENV_PORT"]
