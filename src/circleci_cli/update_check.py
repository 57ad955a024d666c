"""Periodic, best-effort check for a newer CLI release.

The check runs at most once per interval. Its own failures (network errors,
GitHub API hiccups, an unwritable state file) are logged and never block the
command the user actually asked for.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import Protocol

import requests

from circleci_cli import __version__
from circleci_cli.errors import SettingsIOError
from circleci_cli.settings.store import SettingsStore, UpdateCheckState

logger = logging.getLogger(__name__)

DEFAULT_INTERVAL = timedelta(hours=24)
RELEASE_REPOSITORY = "CircleCI-Public/circleci-cli"
GITHUB_API_URL = "https://api.github.com"

_LEADING_DIGITS = re.compile(r"\d+")


class LatestVersionSource(Protocol):
    def latest_version(self) -> str: ...


@dataclass(frozen=True, slots=True)
class UpdateCheckOutcome:
    """Result of `run_update_check`."""

    checked: bool
    latest_version: str | None = None
    update_available: bool = False


def is_update_check_due(
    state: UpdateCheckState,
    *,
    now: datetime,
    interval: timedelta = DEFAULT_INTERVAL,
) -> bool:
    last = state.last_checked_at
    if last is None:
        return True
    if now.tzinfo is None:
        now = now.replace(tzinfo=UTC)
    # A timestamp in the future (clock changes) counts as stale.
    if last > now:
        return True
    return now - last >= interval


def _version_key(value: str) -> tuple[int, ...]:
    core = value.strip().lstrip("vV").split("+", 1)[0].split("-", 1)[0]
    parts: list[int] = []
    for piece in core.split("."):
        match = _LEADING_DIGITS.match(piece)
        if match is None:
            break
        parts.append(int(match.group()))
    return tuple(parts)


def is_newer_version(latest: str, current: str) -> bool:
    """Return True if `latest` is a strictly higher dotted version than `current`.

    A leading `v` and any pre-release/build suffix are ignored. Versions that
    can't be parsed never count as newer.
    """

    latest_key = _version_key(latest)
    current_key = _version_key(current)
    if not latest_key or not current_key:
        return False

    width = max(len(latest_key), len(current_key))
    latest_key += (0,) * (width - len(latest_key))
    current_key += (0,) * (width - len(current_key))
    return latest_key > current_key


class ReleaseChecker:
    """Looks up the latest published release on GitHub."""

    def __init__(
        self,
        *,
        repository: str = RELEASE_REPOSITORY,
        api_url: str = GITHUB_API_URL,
        session: requests.Session | None = None,
        timeout: float = 10.0,
    ) -> None:
        self._repository = repository.strip().strip("/")
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._session = session or requests.Session()
        self._session.headers.update(
            {
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
                "User-Agent": f"circleci-cli/{__version__}",
            }
        )

    def _latest_release_url(self) -> str:
        return f"{self._api_url}/repos/{self._repository}/releases/latest"

    def latest_version(self) -> str:
        resp = self._session.get(self._latest_release_url(), timeout=self._timeout)
        resp.raise_for_status()
        data = resp.json()
        tag = data.get("tag_name") if isinstance(data, dict) else None
        if not isinstance(tag, str) or not tag.strip():
            raise ValueError("Invalid release response: missing tag_name")
        return tag.strip()

    def close(self) -> None:
        self._session.close()


def run_update_check(
    store: SettingsStore,
    *,
    current_version: str,
    checker: LatestVersionSource,
    interval: timedelta = DEFAULT_INTERVAL,
    now: datetime | None = None,
) -> UpdateCheckOutcome:
    """Check for a newer release if the last check is older than `interval`.

    The timestamp is recorded whether or not the lookup succeeded, so a
    failing endpoint isn't hit on every invocation.
    """

    now = now or datetime.now(UTC)
    state = store.load_update_check()
    if not is_update_check_due(state, now=now, interval=interval):
        logger.debug(
            "Update check not due",
            extra={"last_checked_at": str(state.last_checked_at)},
        )
        return UpdateCheckOutcome(checked=False)

    latest: str | None = None
    try:
        latest = checker.latest_version()
    except (requests.RequestException, ValueError) as e:
        # requests' JSON decode errors subclass both.
        logger.warning("Update check failed", extra={"error": str(e)})

    try:
        store.save_update_check(UpdateCheckState(last_checked_at=now))
    except SettingsIOError as e:
        logger.warning("Unable to record update check", extra={"error": str(e)})

    available = latest is not None and is_newer_version(latest, current_version)
    if available:
        logger.info(
            "Newer release available",
            extra={"latest_version": latest, "current_version": current_version},
        )
    return UpdateCheckOutcome(checked=True, latest_version=latest, update_available=available)
