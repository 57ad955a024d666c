#!/usr/bin/env python3
"""Programmatic GraphQL query example.

This demonstrates using the core components directly:

* load environment configuration and `~/.circleci/cli.yml`
* run one GraphQL query with the stored token
* handle partial success (data returned together with errors)
"""

from __future__ import annotations

import argparse
import json
from typing import Sequence

from circleci_cli.api.client import APIClient
from circleci_cli.config import CLIEnvironment
from circleci_cli.errors import APIError, CLIError
from circleci_cli.logging import configure_logging

ORB_QUERY = """
query($name: String!) {
  orb(name: $name) {
    id
    highestVersion
  }
}
"""


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Look up an orb (programmatic example).")
    parser.add_argument("--orb", required=True, help='Orb name in the form "namespace/orb"')
    parser.add_argument(
        "--strict",
        action="store_true",
        help="Treat errors returned alongside data as a failure",
    )
    return parser.parse_args(argv)


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)

    env = CLIEnvironment()
    configure_logging(env.log_level)

    try:
        settings = env.resolve(env.settings_store().load())
    except CLIError as exc:
        print(str(exc))
        return 2

    client = APIClient(settings.host, settings.token, timeout=env.request_timeout)
    try:
        result = client.execute(ORB_QUERY, {"name": args.orb})
        if args.strict:
            result.raise_for_warnings()
    except APIError as exc:
        print(f"Query failed: {exc}")
        return 1
    finally:
        client.close()

    print(json.dumps(result.data, indent=2))
    for warning in result.warnings:
        print(f"warning: {warning.describe()}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
