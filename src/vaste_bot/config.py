"""Configuration loader with YAML parsing, env-var interpolation, and Pydantic validation."""

from __future__ import annotations

import os
import re
import socket
import uuid
from pathlib import Path
from typing import Optional

import yaml
from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

from vaste_bot.errors import ConfigurationError


DEFAULT_MODELS = {
    "openrouter": "openai/gpt-4o-mini",
    "anthropic": "claude-sonnet-4-20250514",
}


class AIConfig(BaseModel):
    backend: str = "openrouter"  # "openrouter" | "anthropic" | "stub"
    model: str = ""  # empty picks the backend default
    api_key: str = ""
    base_url: Optional[str] = None
    timeout: float = 10.0
    max_tokens: int = 1024
    site_url: str = "http://localhost:3000"
    app_title: str = "Vaste Chatbot"

    @model_validator(mode="after")
    def default_model_for_backend(self) -> AIConfig:
        if not self.model:
            self.model = DEFAULT_MODELS.get(self.backend, "")
        return self


class WidgetConfig(BaseModel):
    knowledge_limit: int = 20
    history_limit: int = 20
    fallback_reply: str = "Sorry, I had trouble generating a response."


class ServerConfig(BaseModel):
    host: str = "0.0.0.0"
    port: int = 8000
    backend_key: str = ""  # shared secret for the bot-runner coordination routes


class RunnerConfig(BaseModel):
    base_url: str = ""
    backend_key: str = ""
    instance_id: str = Field(
        default_factory=lambda: f"{socket.gethostname()}-{os.getpid()}-{uuid.uuid4().hex[:8]}"
    )
    poll_interval: float = 30.0
    heartbeat_interval: float = 30.0
    lock_ttl_ms: int = 60_000
    dedup_window: float = 300.0
    request_timeout: float = 10.0
    history_limit: int = 20
    shutdown_timeout: float = 10.0

    def require_backend(self) -> None:
        """Fail fast when the runner cannot reach the coordination store."""
        missing = [name for name in ("base_url", "backend_key") if not getattr(self, name)]
        if missing:
            raise ConfigurationError(
                f"Runner misconfigured, missing: {', '.join('runner.' + m for m in missing)}",
                details={"missing": missing},
            )
        if self.heartbeat_interval * 1000 >= self.lock_ttl_ms:
            raise ConfigurationError(
                "runner.heartbeat_interval must be shorter than runner.lock_ttl_ms",
                details={
                    "heartbeat_interval": self.heartbeat_interval,
                    "lock_ttl_ms": self.lock_ttl_ms,
                },
            )


class StorageConfig(BaseModel):
    db_path: str = "./data/vaste_bot.db"


class AppConfig(BaseModel):
    log_level: str = "INFO"
    log_format: str = "console"  # "console" | "json"
    data_dir: str = "./data"
    ai: AIConfig = Field(default_factory=AIConfig)
    widget: WidgetConfig = Field(default_factory=WidgetConfig)
    server: ServerConfig = Field(default_factory=ServerConfig)
    runner: RunnerConfig = Field(default_factory=RunnerConfig)
    storage: StorageConfig = Field(default_factory=StorageConfig)


_ENV_VAR_PATTERN = re.compile(r"\$\{(\w+)\}")


def _interpolate_env_vars(text: str, extra: dict[str, str] | None = None) -> str:
    """Replace ${VAR_NAME} patterns with environment variable values.

    Unset variables become empty strings so optional secrets read as "not configured".
    """

    def _replace(match: re.Match) -> str:
        var_name = match.group(1)
        if extra and var_name in extra:
            return extra[var_name]
        return os.environ.get(var_name, "")

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

    # First pass: extract data_dir for self-referencing
    raw_data = yaml.safe_load(raw_text) or {}
    data_dir = _interpolate_env_vars(str(raw_data.get("data_dir", "./data")))

    # Second pass: interpolate all env vars
    interpolated = _interpolate_env_vars(raw_text, extra={"data_dir": data_dir})
    data = yaml.safe_load(interpolated) or {}

    return AppConfig(**data)
