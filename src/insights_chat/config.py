"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator, model_validator

DEFAULT_BASE_URL = "http://localhost:8080"


class TransportConfig(BaseModel):
    base_url: str = DEFAULT_BASE_URL
    endpoint: str = "/api/v1/admin/insights/chat"
    timeout: float = 30.0  # AI replies are slow; the transport owns the deadline
    api_token: Optional[str] = None

    @field_validator("base_url", mode="before")
    @classmethod
    def _normalize_base_url(cls, value: Any) -> Any:
        if not value or (isinstance(value, str) and _ENV_VAR_PATTERN.fullmatch(value)):
            return DEFAULT_BASE_URL
        return value.rstrip("/") if isinstance(value, str) else value

    @field_validator("api_token", mode="before")
    @classmethod
    def _drop_unresolved_token(cls, value: Any) -> Any:
        # An unset env var is left as the literal ${NAME}.
        if not value or (isinstance(value, str) and _ENV_VAR_PATTERN.fullmatch(value)):
            return None
        return value


class StorageConfig(BaseModel):
    db_path: str = "./data/insights_chat.db"
    history_key: str = "insights_chat_history"
    preferences_key: str = "insights_chat_save_history"
    history_ttl_hours: float = Field(default=24.0, gt=0)


class ChatConfig(BaseModel):
    min_input_length: int = Field(default=2, ge=1)
    max_input_length: int = Field(default=1000, ge=1)
    error_dismiss_seconds: float = Field(default=10.0, gt=0)
    thinking_hint_seconds: float = Field(default=3.0, gt=0)
    default_save_history: bool = True

    @model_validator(mode="after")
    def _check_length_bounds(self) -> "ChatConfig":
        if self.min_input_length > self.max_input_length:
            raise ValueError("min_input_length must not exceed max_input_length")
        return self


class AppConfig(BaseModel):
    log_level: str = "INFO"
    log_json: bool = False
    data_dir: str = "./data"
    transport: TransportConfig = Field(default_factory=TransportConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)
    chat: ChatConfig = Field(default_factory=ChatConfig)


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
    """Load and validate configuration from YAML file with env-var interpolation.

    ``${data_dir}`` may be used inside other values and resolves to the
    configured data directory.
    """
    env_file = Path(env_path)
    if env_file.exists():
        load_dotenv(env_file)

    config_file = Path(config_path)
    if not config_file.exists():
        raise FileNotFoundError(f"Configuration file not found: {config_file}")

    raw_text = config_file.read_text(encoding="utf-8")

    raw_data = yaml.safe_load(raw_text) or {}
    data_dir = _interpolate_env_vars(str(raw_data.get("data_dir", "./data")))

    interpolated = _interpolate_env_vars(raw_text, extra={"data_dir": data_dir})
    data = yaml.safe_load(interpolated) or {}

    return AppConfig(**data)
