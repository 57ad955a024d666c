"""Unit tests for the local settings store."""

from __future__ import annotations

import os
import stat
import threading
from datetime import UTC, datetime, timedelta, timezone
from pathlib import Path

import pytest
import yaml

from circleci_cli.errors import ConfigParseError, SettingsIOError
from circleci_cli.settings.store import Settings, SettingsStore, UpdateCheckState

posix_only = pytest.mark.skipif(os.name != "posix", reason="POSIX file modes")


def test_load_missing_file_returns_defaults(store: SettingsStore, settings_dir: Path) -> None:
    settings = store.load()

    assert settings == Settings()
    assert settings.host == ""
    assert settings.token == ""
    assert not settings_dir.exists()


def test_settings_roundtrip(store: SettingsStore) -> None:
    settings = Settings(host="https://circleci.com", token="secret-token")

    store.save(settings)

    assert store.load() == settings


def test_default_settings_roundtrip(store: SettingsStore) -> None:
    store.save(Settings())

    assert store.load() == Settings()


def test_unknown_keys_are_preserved(store: SettingsStore) -> None:
    store.config_path.parent.mkdir(parents=True)
    store.config_path.write_text(
        "host: https://circleci.com\ntoken: abc\nendpoint: graphql-unstable\ntls_insecure: false\n",
        encoding="utf-8",
    )

    settings = store.load()
    store.save(settings.model_copy(update={"token": "new-token"}))

    raw = yaml.safe_load(store.config_path.read_text(encoding="utf-8"))
    assert raw == {
        "host": "https://circleci.com",
        "token": "new-token",
        "endpoint": "graphql-unstable",
        "tls_insecure": False,
    }


def test_numeric_token_is_read_as_string(store: SettingsStore) -> None:
    store.config_path.parent.mkdir(parents=True)
    store.config_path.write_text("token: 12345\n", encoding="utf-8")

    assert store.load().token == "12345"


def test_empty_file_returns_defaults(store: SettingsStore) -> None:
    store.config_path.parent.mkdir(parents=True)
    store.config_path.write_text("", encoding="utf-8")

    assert store.load() == Settings()


@pytest.mark.parametrize(
    "content",
    [
        "host: [unclosed\n",
        "- just\n- a list\n",
        "host: not-a-url\n",
        "token: {nested: mapping}\n",
    ],
)
def test_malformed_file_raises_config_parse_error(store: SettingsStore, content: str) -> None:
    store.config_path.parent.mkdir(parents=True)
    store.config_path.write_text(content, encoding="utf-8")

    with pytest.raises(ConfigParseError) as excinfo:
        store.load()

    assert excinfo.value.path == store.config_path
    assert str(store.config_path) in str(excinfo.value)


@posix_only
def test_save_creates_private_directory_and_file(store: SettingsStore, settings_dir: Path) -> None:
    store.save(Settings(host="https://circleci.com", token="t"))

    assert stat.S_IMODE(settings_dir.stat().st_mode) == 0o700
    assert stat.S_IMODE(store.config_path.stat().st_mode) == 0o600


def test_save_is_idempotent_on_existing_directory(store: SettingsStore, settings_dir: Path) -> None:
    store.save(Settings(token="first"))
    store.save(Settings(token="second"))

    assert store.load().token == "second"
    assert sorted(p.name for p in settings_dir.iterdir()) == ["cli.yml"]


def test_failed_rename_keeps_previous_file(
    store: SettingsStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    store.save(Settings(host="https://circleci.com", token="old"))
    before = store.config_path.read_bytes()

    def fail_replace(*_args: object, **_kwargs: object) -> None:
        raise PermissionError(13, "Permission denied")

    monkeypatch.setattr("circleci_cli.settings.store.os.replace", fail_replace)

    with pytest.raises(SettingsIOError) as excinfo:
        store.save(Settings(host="https://circleci.com", token="new"))

    assert excinfo.value.path == store.config_path
    assert store.config_path.read_bytes() == before
    assert [p.name for p in store.base_dir.iterdir()] == ["cli.yml"]


def test_interrupted_write_keeps_previous_file(
    store: SettingsStore, monkeypatch: pytest.MonkeyPatch
) -> None:
    class Interrupted(BaseException):
        pass

    store.save(Settings(token="old"))

    def interrupt(_fd: int) -> None:
        raise Interrupted()

    monkeypatch.setattr("circleci_cli.settings.store.os.fsync", interrupt)

    with pytest.raises(Interrupted):
        store.save(Settings(token="new"))

    monkeypatch.undo()
    assert store.load().token == "old"
    assert [p.name for p in store.base_dir.iterdir()] == ["cli.yml"]


def test_unwritable_base_dir_raises_settings_io_error(tmp_path: Path) -> None:
    blocker = tmp_path / "not-a-dir"
    blocker.write_text("", encoding="utf-8")
    store = SettingsStore(blocker / ".circleci")

    with pytest.raises(SettingsIOError):
        store.save(Settings())


def test_readers_never_observe_torn_writes(store: SettingsStore) -> None:
    first = Settings(host="https://a.example.com", token="a" * 4096)
    second = Settings(host="https://b.example.com", token="b" * 8192)
    store.save(first)

    stop = threading.Event()

    def writer() -> None:
        i = 0
        while not stop.is_set():
            store.save(second if i % 2 else first)
            i += 1

    thread = threading.Thread(target=writer)
    thread.start()
    try:
        for _ in range(200):
            assert store.load() in (first, second)
    finally:
        stop.set()
        thread.join()


def test_update_check_missing_means_never_checked(store: SettingsStore) -> None:
    assert store.load_update_check().last_checked_at is None


def test_update_check_roundtrip(store: SettingsStore) -> None:
    checked = datetime(2026, 10, 19, 8, 30, tzinfo=UTC)

    store.save_update_check(UpdateCheckState(last_checked_at=checked))

    assert store.load_update_check().last_checked_at == checked
    raw = yaml.safe_load(store.update_check_path.read_text(encoding="utf-8"))
    assert list(raw) == ["lastCheckedAt"]


def test_update_check_normalizes_to_utc(store: SettingsStore) -> None:
    store.update_check_path.parent.mkdir(parents=True)
    store.update_check_path.write_text(
        "lastCheckedAt: '2026-10-19T10:30:00+02:00'\n", encoding="utf-8"
    )

    loaded = store.load_update_check().last_checked_at

    assert loaded == datetime(2026, 10, 19, 8, 30, tzinfo=UTC)
    assert loaded is not None and loaded.utcoffset() == timedelta(0)


def test_update_check_naive_timestamp_is_treated_as_utc() -> None:
    state = UpdateCheckState(last_checked_at=datetime(2026, 1, 1, 12, 0))

    assert state.last_checked_at == datetime(2026, 1, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize(
    "content",
    ["lastCheckedAt: [broken\n", "lastCheckedAt: yesterday-ish\n", "- 1\n- 2\n"],
)
def test_corrupt_update_check_means_never_checked(store: SettingsStore, content: str) -> None:
    store.update_check_path.parent.mkdir(parents=True)
    store.update_check_path.write_text(content, encoding="utf-8")

    assert store.load_update_check().last_checked_at is None


def test_corrupt_update_check_does_not_affect_settings(store: SettingsStore) -> None:
    store.update_check_path.parent.mkdir(parents=True)
    store.update_check_path.write_text("{{{{", encoding="utf-8")

    store.save(Settings(token="abc"))

    assert store.load().token == "abc"
    store.save_update_check(UpdateCheckState(last_checked_at=datetime(2026, 1, 1, tzinfo=UTC)))
    assert store.load_update_check().last_checked_at == datetime(2026, 1, 1, tzinfo=UTC)


def test_corrupt_settings_do_not_affect_update_check(store: SettingsStore) -> None:
    store.config_path.parent.mkdir(parents=True)
    store.config_path.write_text("host: [", encoding="utf-8")
    checked = datetime(2026, 2, 2, tzinfo=UTC)

    store.save_update_check(UpdateCheckState(last_checked_at=checked))

    assert store.load_update_check().last_checked_at == checked
    with pytest.raises(ConfigParseError):
        store.load()
