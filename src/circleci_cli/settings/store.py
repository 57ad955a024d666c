"""File-backed store for CLI settings and update-check metadata.

Both files live in a single per-user directory (``~/.circleci`` by default):

- ``cli.yml``: host and token (plus any keys written by other tools)
- ``update_check.yml``: when the CLI last looked for a newer release

Writes are atomic: content goes to a temp file in the same directory, which is
then renamed over the target. A crash mid-write leaves the previous file intact.
There is no cross-process locking; concurrent writers are last-writer-wins.
"""

from __future__ import annotations

import logging
import os
import tempfile
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from circleci_cli.errors import ConfigParseError, SettingsIOError
from circleci_cli.urls import is_http_url

logger = logging.getLogger(__name__)

CONFIG_FILENAME = "cli.yml"
UPDATE_CHECK_FILENAME = "update_check.yml"


class Settings(BaseModel):
    """Per-user CLI configuration.

    Unknown keys found in the file are kept on the model and written back on
    save, so other tools (or newer CLI versions) sharing the file keep their data.
    """

    host: str = Field(default="", description="Base URL of the remote service")
    token: str = Field(default="", description="API token; empty means unauthenticated")

    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    @field_validator("host")
    @classmethod
    def _validate_host(cls, value: str) -> str:
        if value and not is_http_url(value):
            raise ValueError(f"host must be an http(s) URL, got {value!r}")
        return value

    @property
    def has_token(self) -> bool:
        return bool(self.token.strip())


class UpdateCheckState(BaseModel):
    """When the CLI last checked for a newer release (None means never)."""

    last_checked_at: datetime | None = Field(default=None, alias="lastCheckedAt")

    model_config = ConfigDict(populate_by_name=True)

    @field_validator("last_checked_at")
    @classmethod
    def _as_utc(cls, value: datetime | None) -> datetime | None:
        if value is None:
            return None
        if value.tzinfo is None:
            return value.replace(tzinfo=UTC)
        return value.astimezone(UTC)


def _read_yaml_mapping(path: Path) -> dict[str, Any] | None:
    """Read a YAML mapping from `path`.

    Returns None when the file does not exist. An empty file is an empty mapping.
    """

    try:
        text = path.read_text(encoding="utf-8")
    except FileNotFoundError:
        return None
    except UnicodeDecodeError as e:
        raise ConfigParseError(path=path, reason=f"not valid UTF-8 ({e.reason})") from e
    except OSError as e:
        raise SettingsIOError(path=path, reason=e.strerror or str(e), operation="read") from e

    try:
        raw = yaml.safe_load(text)
    except yaml.YAMLError as e:
        raise ConfigParseError(path=path, reason=f"invalid YAML: {e}") from e

    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigParseError(
            path=path, reason=f"expected a mapping at top level, got {type(raw).__name__}"
        )
    return raw


def _fsync_directory(directory: Path) -> None:
    # Makes the rename itself durable; not supported on every platform.
    if not hasattr(os, "O_DIRECTORY"):
        return
    try:
        fd = os.open(directory, os.O_RDONLY | os.O_DIRECTORY)
    except OSError:
        return
    try:
        os.fsync(fd)
    except OSError:
        pass
    finally:
        os.close(fd)


def atomic_write_text(path: Path, content: str) -> None:
    """Replace `path` with `content` so readers see either the old or the new file.

    The parent directory is created (mode 0700) if missing. The file is
    readable and writable by the owner only.
    """

    directory = path.parent
    try:
        directory.mkdir(mode=0o700, parents=True, exist_ok=True)
        # mkstemp creates the file with mode 0600.
        fd, tmp_name = tempfile.mkstemp(prefix=f".{path.name}.", suffix=".tmp", dir=directory)
    except OSError as e:
        raise SettingsIOError(path=path, reason=e.strerror or str(e)) from e

    tmp_path = Path(tmp_name)
    try:
        with os.fdopen(fd, "w", encoding="utf-8") as f:
            f.write(content)
            f.flush()
            os.fsync(f.fileno())
        os.replace(tmp_path, path)
    except OSError as e:
        tmp_path.unlink(missing_ok=True)
        raise SettingsIOError(path=path, reason=e.strerror or str(e)) from e
    except BaseException:
        tmp_path.unlink(missing_ok=True)
        raise

    _fsync_directory(directory)


def _dump_yaml(payload: dict[str, Any]) -> str:
    return yaml.safe_dump(payload, default_flow_style=False, sort_keys=False, allow_unicode=True)


class SettingsStore:
    """Loads and saves `Settings` and `UpdateCheckState` under a base directory.

    The store holds no cached state: every `load*` reads the file again and
    callers own the returned copies.
    """

    def __init__(self, base_dir: Path) -> None:
        self._base_dir = Path(base_dir).expanduser()

    @property
    def base_dir(self) -> Path:
        return self._base_dir

    @property
    def config_path(self) -> Path:
        return self._base_dir / CONFIG_FILENAME

    @property
    def update_check_path(self) -> Path:
        return self._base_dir / UPDATE_CHECK_FILENAME

    def load(self) -> Settings:
        """Load settings; a missing file yields defaults.

        Raises:
            ConfigParseError: the file exists but is not a valid settings mapping.
            SettingsIOError: the file exists but cannot be read.
        """

        path = self.config_path
        raw = _read_yaml_mapping(path)
        if raw is None:
            logger.debug("No settings file found, using defaults", extra={"path": str(path)})
            return Settings()

        try:
            return Settings.model_validate(raw)
        except ValidationError as e:
            problems = "; ".join(
                f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors()
            )
            raise ConfigParseError(path=path, reason=problems) from e

    def save(self, settings: Settings) -> None:
        """Atomically overwrite the settings file.

        Raises:
            SettingsIOError: the directory or file could not be written.
        """

        path = self.config_path
        atomic_write_text(path, _dump_yaml(settings.model_dump()))
        logger.info("Settings saved", extra={"path": str(path)})

    def load_update_check(self) -> UpdateCheckState:
        """Load update-check state.

        Never raises for a missing, unreadable or malformed file: all of these
        mean "never checked".
        """

        path = self.update_check_path
        try:
            raw = _read_yaml_mapping(path)
            if raw is None:
                return UpdateCheckState()
            return UpdateCheckState.model_validate(raw)
        except (ConfigParseError, SettingsIOError, ValidationError) as e:
            logger.warning(
                "Ignoring unusable update check file",
                extra={"path": str(path), "error": str(e)},
            )
            return UpdateCheckState()

    def save_update_check(self, state: UpdateCheckState) -> None:
        """Atomically overwrite the update-check file.

        Raises:
            SettingsIOError: the directory or file could not be written.
        """

        path = self.update_check_path
        payload: dict[str, Any] = {
            "lastCheckedAt": (
                state.last_checked_at.isoformat() if state.last_checked_at is not None else None
            )
        }
        atomic_write_text(path, _dump_yaml(payload))
        logger.debug("Update check state saved", extra={"path": str(path)})
