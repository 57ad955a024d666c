"""Process-level configuration for the CLI.

Configuration is loaded from environment variables (and a local `.env` file,
if present). It decides where the settings directory lives and lets the host
and token stored in `cli.yml` be overridden for a single invocation, which is
useful in CI jobs where nothing should be written to disk.

This object is built once at process start and passed to the components that
need it; nothing reads the environment on its own.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from circleci_cli.settings.store import Settings, SettingsStore
from circleci_cli.urls import is_http_url

DEFAULT_HOST = "https://circleci.com"
DEFAULT_SETTINGS_DIR = Path("~/.circleci")


class CLIEnvironment(BaseSettings):
    """Environment settings for the CLI.

    Environment variables:
    - CIRCLECI_CLI_SETTINGS_DIR   (optional)
    - CIRCLECI_CLI_HOST           (optional, overrides cli.yml)
    - CIRCLECI_CLI_TOKEN          (optional, overrides cli.yml)
    - CIRCLECI_CLI_TIMEOUT        (optional)
    - CIRCLECI_CLI_SKIP_UPDATE_CHECK (optional)
    - CIRCLECI_CLI_UPDATE_CHECK_INTERVAL_HOURS (optional)
    - LOG_LEVEL                   (optional)

    Notes:
        Pydantic-settings supports overriding the env file in tests via:
        `CLIEnvironment(_env_file=path_to_env)`.
    """

    settings_dir: Path = Field(
        default=DEFAULT_SETTINGS_DIR,
        validation_alias="CIRCLECI_CLI_SETTINGS_DIR",
        description="Directory holding cli.yml and update_check.yml",
    )
    host: str | None = Field(
        default=None,
        validation_alias="CIRCLECI_CLI_HOST",
        description="Host override; takes precedence over cli.yml",
    )
    token: str | None = Field(
        default=None,
        validation_alias="CIRCLECI_CLI_TOKEN",
        description="Token override; takes precedence over cli.yml",
    )
    request_timeout: float = Field(
        default=60.0,
        gt=0,
        validation_alias="CIRCLECI_CLI_TIMEOUT",
        description="Timeout in seconds for each API request",
    )
    skip_update_check: bool = Field(
        default=False,
        validation_alias="CIRCLECI_CLI_SKIP_UPDATE_CHECK",
        description="Disable the periodic check for a newer release",
    )
    update_check_interval_hours: float = Field(
        default=24.0,
        gt=0,
        validation_alias="CIRCLECI_CLI_UPDATE_CHECK_INTERVAL_HOURS",
        description="Minimum time between two update checks",
    )
    log_level: str = Field(
        default="WARNING",
        validation_alias="LOG_LEVEL",
        description="Root logging level",
    )

    model_config = SettingsConfigDict(
        env_prefix="",
        env_file=".env",
        extra="ignore",
    )

    @field_validator("host")
    @classmethod
    def _validate_host(cls, value: str | None) -> str | None:
        if value is None or not value.strip():
            return None
        if not is_http_url(value):
            raise ValueError("CIRCLECI_CLI_HOST must be an http(s) URL")
        return value.strip()

    @field_validator("log_level")
    @classmethod
    def _validate_log_level(cls, value: str) -> str:
        level = value.strip().upper()
        if not isinstance(logging.getLevelName(level), int):
            raise ValueError(f"unknown log level {value!r}")
        return level

    @property
    def update_check_interval(self) -> timedelta:
        return timedelta(hours=self.update_check_interval_hours)

    def settings_store(self) -> SettingsStore:
        return SettingsStore(self.settings_dir.expanduser())

    def resolve(self, settings: Settings) -> Settings:
        """Return the effective settings for this process.

        Environment overrides win over file values; the default host is used
        when neither provides one. The input is not modified.
        """

        updates: dict[str, str] = {}
        host = self.host or settings.host or DEFAULT_HOST
        if host != settings.host:
            updates["host"] = host
        if self.token is not None and self.token.strip():
            updates["token"] = self.token.strip()
        return settings.model_copy(update=updates) if updates else settings
