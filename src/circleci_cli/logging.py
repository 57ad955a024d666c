"""JSON logging for the CLI.

Log lines go to stderr, one JSON object each, so stdout stays reserved for
command output (e.g. `circleci query ... | jq`). Context passed through
`extra={...}` is nested under an "extra" key; credential-like keys are masked.
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any, TextIO

# Attributes every LogRecord carries; anything else on a record came from `extra`.
_STANDARD_RECORD_ATTRS: frozenset[str] = frozenset(
    logging.LogRecord("", logging.INFO, "", 0, "", None, None).__dict__
) | {"message", "asctime"}

_MASKED_KEYS: frozenset[str] = frozenset({"token", "authorization", "password", "secret"})
_MASK = "[redacted]"


def _record_context(record: logging.LogRecord) -> dict[str, Any]:
    context: dict[str, Any] = {}
    for key, value in record.__dict__.items():
        if key in _STANDARD_RECORD_ATTRS or key.startswith("_"):
            continue
        context[key] = _MASK if key.lower() in _MASKED_KEYS else value
    return context


class JsonFormatter(logging.Formatter):
    """Render each record as a single-line JSON object."""

    def format(self, record: logging.LogRecord) -> str:  # noqa: A003 (record)
        payload: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        context = _record_context(record)
        if context:
            payload["extra"] = context

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        # Values from `extra` may be Paths, datetimes or exceptions.
        return json.dumps(payload, ensure_ascii=False, default=str)


def configure_logging(level: str, *, stream: TextIO | None = None) -> None:
    """Send root logging to `stream` (stderr by default) as JSON lines.

    Calling this again replaces the previous handlers.
    """

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)

    handler = logging.StreamHandler(stream=stream if stream is not None else sys.stderr)
    handler.setFormatter(JsonFormatter())
    root.addHandler(handler)
    root.setLevel(level.upper())

    # urllib3 logs every connection at DEBUG.
    logging.getLogger("urllib3").setLevel(max(root.level, logging.INFO))
