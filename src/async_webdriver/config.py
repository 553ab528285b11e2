"""Configuration models for async-webdriver."""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import Path
from typing import Any, Optional

from pydantic import BaseModel, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class RetryConfig(BaseModel):
    """Retry policy for idempotent reads that hit a transient transport failure."""

    max_attempts: int = Field(default=3, ge=1)
    backoff: float = Field(default=0.1, ge=0.0, description="Delay before the first retry, in seconds.")
    backoff_factor: float = Field(default=2.0, ge=1.0)
    max_backoff: float = Field(default=2.0, ge=0.0)

    def delay_for(self, retry: int) -> float:
        """Return the sleep before retry number *retry* (1-based)."""

        return min(self.backoff * self.backoff_factor ** (retry - 1), self.max_backoff)


class SessionTimeouts(BaseModel):
    """Driver-side timeouts applied right after a session is created (seconds)."""

    implicit: Optional[float] = None
    page_load: Optional[float] = None
    script: Optional[float] = None

    def is_empty(self) -> bool:
        return self.implicit is None and self.page_load is None and self.script is None


class LauncherConfig(BaseModel):
    """Settings for spawning a local driver binary."""

    driver: str = Field(default="chromedriver")
    host: str = Field(default="127.0.0.1")
    port: Optional[int] = None
    args: list[str] = Field(default_factory=list)
    startup_timeout: float = Field(default=10.0)


class DriverConfig(BaseSettings):
    """Top-level configuration for talking to a WebDriver server."""

    model_config = SettingsConfigDict(
        env_prefix="ASYNC_WEBDRIVER_",
        env_file=(".env",),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
    )

    webdriver_url: str = Field(default="http://localhost:4444")
    request_timeout: float = Field(
        default=30.0,
        gt=0,
        description="Per-command timeout (in seconds) for a single HTTP exchange.",
    )
    user_agent: Optional[str] = None
    capabilities: dict[str, Any] = Field(
        default_factory=lambda: {"pageLoadStrategy": "normal"},
        description="Capabilities merged under the caller's alwaysMatch set.",
    )
    first_match: list[dict[str, Any]] = Field(default_factory=list)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    timeouts: SessionTimeouts = Field(default_factory=SessionTimeouts)
    launcher: LauncherConfig = Field(default_factory=LauncherConfig)
    poll_interval: float = Field(default=0.1, gt=0)


def load_config(
    path: Path | None = None,
    *,
    env_file: Path | None = None,
    **overrides: object,
) -> DriverConfig:
    """Load configuration from an optional file and overrides."""

    data: dict[str, Any] = {}
    if path:
        import yaml

        data = yaml.safe_load(path.read_text()) or {}
    if overrides:
        _deep_update(data, overrides)
    settings_kwargs: dict[str, object] = {}
    if env_file is not None:
        settings_kwargs["_env_file"] = env_file
    config = DriverConfig(**data, **settings_kwargs)
    if not data:
        return config

    merged = config.model_dump(mode="python")
    _deep_update(merged, data)
    return DriverConfig.model_validate(merged)


def _deep_update(target: dict[str, Any], updates: Mapping[str, Any]) -> None:
    """Recursively merge ``updates`` into ``target`` in-place."""

    for key, value in updates.items():
        if (
            isinstance(value, Mapping)
            and isinstance(existing := target.get(key), Mapping)
        ):
            nested: dict[str, Any]
            if isinstance(existing, dict):
                nested = existing
            else:
                nested = dict(existing)
            _deep_update(nested, value)
            target[key] = nested
        else:
            target[key] = value
