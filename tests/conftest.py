"""Test configuration and fixtures."""

from collections.abc import Callable
from pathlib import Path
from unittest.mock import Mock

import pytest
import requests

from circleci_cli.settings.store import SettingsStore

ResponseFactory = Callable[..., requests.Response]


@pytest.fixture
def settings_dir(tmp_path: Path) -> Path:
    """Provide a settings directory that does not exist yet."""
    return tmp_path / "home" / ".circleci"


@pytest.fixture
def store(settings_dir: Path) -> SettingsStore:
    """Provide a settings store rooted in a temporary directory."""
    return SettingsStore(settings_dir)


@pytest.fixture
def make_response() -> ResponseFactory:
    """Build real `requests.Response` objects without touching the network."""

    def _make(
        status: int,
        body: str | bytes = b"",
        *,
        content_type: str = "application/json; charset=utf-8",
    ) -> requests.Response:
        resp = requests.Response()
        resp.status_code = status
        resp._content = body.encode("utf-8") if isinstance(body, str) else body
        resp.headers["Content-Type"] = content_type
        resp.url = "https://circleci.example.com/graphql-unstable"
        resp.encoding = "utf-8"
        return resp

    return _make


@pytest.fixture
def fake_session() -> Mock:
    """Provide a mocked requests session."""
    session = Mock(spec=requests.Session)
    session.headers = {}
    return session
