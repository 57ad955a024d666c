"""GraphQL API client.

Wraps a `requests.Session` so HTTP calls stay out of the command layer and tests
can inject a fake session.

A GraphQL response may carry `data` and `errors` at the same time. The client
keeps that distinction instead of collapsing it into success/failure:

- no errors                   -> GraphQLResult(data, warnings=[])
- errors and non-null data    -> GraphQLResult(data, warnings=errors)  (partial success)
- errors and no data          -> raises GraphQLError
"""

from __future__ import annotations

import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

import requests
import urllib3
from pydantic import BaseModel, ConfigDict, ValidationError, model_validator

from circleci_cli import __version__
from circleci_cli.errors import GraphQLError, ProtocolError, TransportError
from circleci_cli.urls import graphql_url

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT_SECONDS = 60.0
CONTENT_TYPE = "application/json; charset=utf-8"


class GraphQLErrorDetail(BaseModel):
    """One entry of a response's `errors` list.

    Keys other than `message`, `path` and `extensions` (such as `locations`)
    are kept as extra fields.
    """

    message: str
    path: list[str | int] | None = None
    extensions: dict[str, Any] | None = None

    model_config = ConfigDict(extra="allow")

    def describe(self) -> str:
        if not self.path:
            return self.message
        location = ".".join(str(p) for p in self.path)
        return f"{self.message} (at {location})"


class GraphQLEnvelope(BaseModel):
    """Top-level shape of every GraphQL response body."""

    data: dict[str, Any] | None = None
    errors: list[GraphQLErrorDetail] | None = None

    model_config = ConfigDict(extra="allow")

    @model_validator(mode="after")
    def _require_data_or_errors(self) -> GraphQLEnvelope:
        if not {"data", "errors"} & self.model_fields_set:
            raise ValueError("response has neither 'data' nor 'errors'")
        return self


@dataclass(frozen=True, slots=True)
class GraphQLResult:
    """Decoded result of a GraphQL call that returned data.

    `warnings` holds errors reported alongside the data. It is up to the
    caller to decide whether they matter for its purpose.
    """

    data: dict[str, Any]
    warnings: list[GraphQLErrorDetail] = field(default_factory=list)

    @property
    def is_partial(self) -> bool:
        return bool(self.warnings)

    def raise_for_warnings(self) -> None:
        """Escalate accompanying errors into a GraphQLError."""

        if self.warnings:
            raise GraphQLError(errors=list(self.warnings))


def parse_envelope(raw: bytes) -> GraphQLEnvelope:
    """Decode a response body into an envelope, or raise ProtocolError."""

    text = raw.decode("utf-8", errors="replace")
    try:
        payload = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise ProtocolError(raw_body=text, reason=f"body is not JSON: {e}") from e

    if not isinstance(payload, dict):
        raise ProtocolError(
            raw_body=text, reason=f"expected a JSON object, got {type(payload).__name__}"
        )

    try:
        return GraphQLEnvelope.model_validate(payload)
    except ValidationError as e:
        raise ProtocolError(raw_body=text, reason=f"unexpected response shape: {e}") from e


def _is_timeout(exc: BaseException) -> bool:
    """Return True if a requests failure was caused by a connect or read timeout.

    A stall while the body is being read surfaces as `requests.ConnectionError`
    wrapping urllib3's `ReadTimeoutError`, not as `requests.Timeout`.
    """

    timeout_types = (requests.Timeout, urllib3.exceptions.TimeoutError, TimeoutError)
    seen: set[int] = set()
    current: BaseException | None = exc
    while current is not None and id(current) not in seen:
        seen.add(id(current))
        if isinstance(current, timeout_types):
            return True
        if any(isinstance(arg, timeout_types) for arg in current.args):
            return True
        current = current.__cause__ or current.__context__
    return False


def classify_envelope(envelope: GraphQLEnvelope) -> GraphQLResult:
    """Apply the data/errors classification rule to a decoded envelope."""

    errors = list(envelope.errors or [])
    if not errors:
        return GraphQLResult(data=envelope.data or {}, warnings=[])
    if envelope.data is not None:
        return GraphQLResult(data=envelope.data, warnings=errors)
    raise GraphQLError(errors=errors)


class APIClient:
    """Executes GraphQL operations against `{host}/graphql-unstable`.

    The client is stateless per call: host, token and headers are fixed at
    construction. No retries are performed; retry policy belongs to the caller.

    The token goes into `Authorization` exactly as given; a blank token means
    the request is sent without that header.
    """

    def __init__(
        self,
        host: str,
        token: str = "",
        *,
        timeout: float = DEFAULT_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ) -> None:
        if not host or not host.strip():
            raise ValueError("host is required")
        if timeout <= 0:
            raise ValueError("timeout must be positive")

        self._host = host.strip()
        self._url = graphql_url(self._host)
        self._token = token
        self._timeout = timeout
        self._session = session or requests.Session()
        self._headers = self._build_headers()

    @property
    def host(self) -> str:
        return self._host

    @property
    def url(self) -> str:
        return self._url

    @property
    def authenticated(self) -> bool:
        return bool(self._token.strip())

    def _build_headers(self) -> dict[str, str]:
        headers = {
            "Content-Type": CONTENT_TYPE,
            "Accept": "application/json",
            "User-Agent": f"circleci-cli/{__version__}",
        }
        if self.authenticated:
            # The token is sent as-is, without a scheme prefix.
            headers["Authorization"] = self._token
        return headers

    def execute(
        self,
        query: str,
        variables: Mapping[str, Any] | None = None,
        *,
        timeout: float | None = None,
    ) -> GraphQLResult:
        """Execute one GraphQL operation.

        Args:
            query: GraphQL document.
            variables: Operation variables (must be JSON-serializable).
            timeout: Per-call timeout in seconds; defaults to the client's timeout.

        Returns:
            The decoded result. `warnings` is non-empty on partial success.

        Raises:
            TransportError: the request failed, timed out, or returned a non-2xx status.
            ProtocolError: a 2xx response body was not a GraphQL envelope.
            GraphQLError: the response carried errors and no data.
        """

        if not query.strip():
            raise ValueError("query must be non-empty")

        body = json.dumps(
            {"query": query, "variables": dict(variables or {})}, ensure_ascii=False
        ).encode("utf-8")
        effective_timeout = self._timeout if timeout is None else timeout

        logger.debug(
            "Sending GraphQL request",
            extra={"url": self._url, "authenticated": self.authenticated},
        )

        try:
            resp = self._session.post(
                self._url,
                data=body,
                headers=dict(self._headers),
                timeout=effective_timeout,
            )
        except requests.RequestException as e:
            if _is_timeout(e):
                logger.warning("GraphQL request timed out", extra={"url": self._url})
                raise TransportError(timed_out=True, reason=str(e)) from e
            logger.warning("GraphQL request failed", extra={"url": self._url, "error": str(e)})
            raise TransportError(reason=str(e)) from e

        raw = resp.content or b""
        if not 200 <= resp.status_code < 300:
            logger.warning(
                "GraphQL request returned an error status",
                extra={"url": self._url, "status_code": resp.status_code},
            )
            raise TransportError(
                status_code=resp.status_code,
                raw_body=raw.decode("utf-8", errors="replace"),
            )

        result = classify_envelope(parse_envelope(raw))
        if result.is_partial:
            logger.info(
                "GraphQL request partially succeeded",
                extra={"url": self._url, "error_count": len(result.warnings)},
            )
        return result

    def close(self) -> None:
        self._session.close()
