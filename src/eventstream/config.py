"""Demo server configuration models and YAML loading."""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field

from eventstream.options import DEFAULT_RETRY_MS, SessionOptions


class ServerSettings(BaseModel):
    host: str = "127.0.0.1"
    port: int = 8000


class StreamSettings(BaseModel):
    retry_ms: int = Field(default=DEFAULT_RETRY_MS, gt=0)
    tick_seconds: float = Field(default=1.0, gt=0.0)
    heartbeat_seconds: float = Field(default=15.0, gt=0.0)
    trust_client_event_id: bool = True
    headers: dict[str, str] = Field(default_factory=lambda: {"X-Accel-Buffering": "no"})

    def session_options(self) -> SessionOptions:
        return SessionOptions(
            headers=self.headers,
            retry=self.retry_ms,
            trust_client_event_id=self.trust_client_event_id,
        )


class AppSettings(BaseModel):
    server: ServerSettings = Field(default_factory=ServerSettings)
    stream: StreamSettings = Field(default_factory=StreamSettings)


DEFAULT_CONFIG_PATH = Path("configs/default.yaml")


def load_settings(config_path: str | Path | None = None) -> AppSettings:
    """Load YAML configuration into typed app settings."""
    path = Path(config_path) if config_path else DEFAULT_CONFIG_PATH

    if not path.exists():
        return AppSettings()

    with path.open("r", encoding="utf-8") as f:
        raw: dict[str, Any] = yaml.safe_load(f) or {}

    return AppSettings.model_validate(raw)
