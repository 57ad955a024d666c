"""Host URL validation and GraphQL endpoint derivation."""

from __future__ import annotations

from urllib.parse import urlparse, urlunparse

GRAPHQL_PATH = "graphql-unstable"


def is_http_url(value: str) -> bool:
    """Return True if `value` is an absolute http(s) URL with a network location."""

    try:
        parsed = urlparse(value.strip())
    except ValueError:
        return False
    return parsed.scheme in {"http", "https"} and bool(parsed.netloc)


def graphql_url(host: str) -> str:
    """Derive the GraphQL endpoint for a host.

    A host may carry a path prefix (e.g. a server installed under `/circleci`);
    the endpoint is always appended to it:

        https://circleci.com            -> https://circleci.com/graphql-unstable
        https://ci.example.com/circleci/ -> https://ci.example.com/circleci/graphql-unstable
    """

    if not is_http_url(host):
        raise ValueError(f"host must be an http(s) URL, got {host!r}")

    parsed = urlparse(host.strip())
    path = parsed.path.rstrip("/") + "/" + GRAPHQL_PATH
    return urlunparse(parsed._replace(path=path, params="", query="", fragment=""))
