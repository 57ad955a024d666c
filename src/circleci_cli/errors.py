"""Error taxonomy shared by the settings store and the API client.

Nothing here is fatal to the process: every error is returned to the caller,
and the CLI entrypoint decides which exit code to use.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from circleci_cli.api.client import GraphQLErrorDetail


class CLIError(Exception):
    """Base class for all errors raised by the CLI core."""


@dataclass(eq=False)
class ConfigParseError(CLIError):
    """Raised when a local settings file exists but cannot be parsed."""

    path: Path
    reason: str

    def __str__(self) -> str:
        return f"Invalid settings file {self.path}: {self.reason}"


@dataclass(eq=False)
class SettingsIOError(CLIError):
    """Raised when a settings file cannot be read or written (disk or permission failure)."""

    path: Path
    reason: str
    operation: str = "write"

    def __str__(self) -> str:
        return f"Unable to {self.operation} {self.path}: {self.reason}"


class APIError(CLIError):
    """Base class for failures of a single GraphQL call."""


@dataclass(eq=False)
class TransportError(APIError):
    """The request did not complete with a 2xx HTTP status.

    `status_code` is None when no HTTP response was received at all
    (connection refused, DNS failure, timeout).
    """

    status_code: int | None = None
    raw_body: str = ""
    timed_out: bool = False
    reason: str = ""

    def __str__(self) -> str:
        if self.timed_out:
            return f"Request timed out: {self.reason}" if self.reason else "Request timed out"
        if self.status_code is None:
            return f"Request failed: {self.reason}"
        body = self.raw_body.strip()
        if len(body) > 500:
            body = body[:500] + "..."
        return f"HTTP {self.status_code}: {body}" if body else f"HTTP {self.status_code}"


@dataclass(eq=False)
class ProtocolError(APIError):
    """A 2xx response whose body is not a GraphQL response envelope."""

    raw_body: str
    reason: str = ""

    def __str__(self) -> str:
        detail = f" ({self.reason})" if self.reason else ""
        return f"Unexpected response from server{detail}"


@dataclass(eq=False)
class GraphQLError(APIError):
    """The endpoint rejected the operation and returned no data."""

    errors: list[GraphQLErrorDetail] = field(default_factory=list)

    @property
    def messages(self) -> list[str]:
        return [e.message for e in self.errors]

    def __str__(self) -> str:
        # Keep this short; callers that want the full list use `errors`.
        return "; ".join(self.messages) if self.errors else "Unknown GraphQL error"
