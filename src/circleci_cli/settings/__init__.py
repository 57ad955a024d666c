"""Local settings persistence."""

from circleci_cli.settings.store import Settings, SettingsStore, UpdateCheckState

__all__ = [
    "Settings",
    "SettingsStore",
    "UpdateCheckState",
]
