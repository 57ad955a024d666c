"""CLI entrypoint.

Commands:
- setup: store host and token in cli.yml
- settings: show the effective host and whether a token is configured
- query: run a GraphQL document and print its data as JSON

Exit codes: 0 success, 1 API failure, 2 configuration or local file error.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from circleci_cli import __version__
from circleci_cli.api.client import APIClient, GraphQLErrorDetail
from circleci_cli.config import CLIEnvironment
from circleci_cli.errors import (
    APIError,
    ConfigParseError,
    GraphQLError,
    SettingsIOError,
    TransportError,
)
from circleci_cli.logging import configure_logging
from circleci_cli.settings.store import Settings, SettingsStore
from circleci_cli.update_check import ReleaseChecker, run_update_check

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_API_ERROR = 1
EXIT_CONFIG_ERROR = 2


def _parse_variables(values: list[str] | None) -> dict[str, Any]:
    """Parse repeated KEY=VALUE options; values are decoded as JSON when possible."""

    variables: dict[str, Any] = {}
    for item in values or []:
        key, sep, raw = item.partition("=")
        key = key.strip()
        if not sep or not key:
            raise ValueError(f"Invalid variable {item!r}; expected KEY=VALUE")
        try:
            variables[key] = json.loads(raw)
        except json.JSONDecodeError:
            variables[key] = raw
    return variables


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="circleci",
        description="Command-line client for the CircleCI GraphQL API",
    )
    parser.add_argument("--version", action="version", version=f"circleci-cli {__version__}")

    subparsers = parser.add_subparsers(dest="command", required=True)

    setup = subparsers.add_parser("setup", help="Store the API host and token in cli.yml")
    setup.add_argument("--host", default=None, help="Base URL, e.g. https://circleci.com")
    setup.add_argument("--token", default=None, help="Personal API token")

    subparsers.add_parser("settings", help="Show the effective host and token status")

    query = subparsers.add_parser("query", help="Run a GraphQL document and print its data")
    query.add_argument("file", help="Path to a file containing the GraphQL document, or '-'")
    query.add_argument(
        "--var",
        dest="variables",
        action="append",
        default=None,
        metavar="KEY=VALUE",
        help="Operation variable; VALUE is parsed as JSON when possible (repeatable)",
    )
    query.add_argument(
        "--fail-on-warnings",
        action="store_true",
        help="Exit non-zero when the response carries errors alongside data",
    )

    return parser


def _make_client(settings: Settings, env: CLIEnvironment) -> APIClient:
    return APIClient(settings.host, settings.token, timeout=env.request_timeout)


def _print_graphql_errors(errors: list[GraphQLErrorDetail], *, prefix: str) -> None:
    for error in errors:
        print(f"{prefix}: {error.describe()}", file=sys.stderr)


def _maybe_check_for_updates(env: CLIEnvironment, store: SettingsStore) -> None:
    if env.skip_update_check:
        return

    checker = ReleaseChecker()
    try:
        outcome = run_update_check(
            store,
            current_version=__version__,
            checker=checker,
            interval=env.update_check_interval,
        )
    finally:
        checker.close()

    if outcome.update_available:
        print(
            f"A new version of circleci-cli is available: {outcome.latest_version} "
            f"(installed: {__version__})",
            file=sys.stderr,
        )


def _run_setup(store: SettingsStore, args: argparse.Namespace) -> int:
    if args.host is None and args.token is None:
        print("Nothing to do: pass --host and/or --token", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    try:
        current = store.load()
    except ConfigParseError as e:
        # Setup is how a broken file gets repaired.
        logger.warning("Replacing invalid settings file", extra={"path": str(e.path)})
        current = Settings()

    updates = current.model_dump()
    if args.host is not None:
        updates["host"] = args.host.strip()
    if args.token is not None:
        updates["token"] = args.token.strip()

    try:
        settings = Settings.model_validate(updates)
    except ValidationError as e:
        print(f"Invalid settings: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    store.save(settings)
    print(f"Settings saved to {store.config_path}")
    return EXIT_OK


def _run_query(settings: Settings, env: CLIEnvironment, args: argparse.Namespace) -> int:
    try:
        variables = _parse_variables(args.variables)
    except ValueError as e:
        print(str(e), file=sys.stderr)
        return EXIT_CONFIG_ERROR

    try:
        if args.file == "-":
            query = sys.stdin.read()
        else:
            query = Path(args.file).read_text(encoding="utf-8")
    except OSError as e:
        print(f"Unable to read query: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    if not query.strip():
        print("Query is empty", file=sys.stderr)
        return EXIT_CONFIG_ERROR

    client = _make_client(settings, env)
    try:
        result = client.execute(query, variables)
    finally:
        client.close()

    print(json.dumps(result.data, indent=2, ensure_ascii=False))

    if result.is_partial:
        _print_graphql_errors(result.warnings, prefix="Warning")
        if args.fail_on_warnings:
            return EXIT_API_ERROR
    return EXIT_OK


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        env = CLIEnvironment()
    except ValidationError as e:
        # Logging isn't configured yet; keep it simple and actionable.
        print("Configuration error (check your environment):", file=sys.stderr)
        print(e, file=sys.stderr)
        return EXIT_CONFIG_ERROR

    configure_logging(env.log_level)
    store = env.settings_store()

    try:
        if args.command == "setup":
            return _run_setup(store, args)

        _maybe_check_for_updates(env, store)
        settings = env.resolve(store.load())

        if args.command == "settings":
            print(f"host: {settings.host}")
            print(f"token: {'configured' if settings.has_token else 'not configured'}")
            print(f"settings file: {store.config_path}")
            return EXIT_OK

        if args.command == "query":
            return _run_query(settings, env, args)

    except ConfigParseError as e:
        print(f"Error: {e}", file=sys.stderr)
        print("Run `circleci setup` to write a fresh settings file.", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except SettingsIOError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except GraphQLError as e:
        _print_graphql_errors(e.errors, prefix="Error")
        return EXIT_API_ERROR
    except TransportError as e:
        logger.debug("Transport failure", extra={"status_code": e.status_code})
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_API_ERROR
    except APIError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_API_ERROR

    parser.error(f"Unknown command: {args.command}")
    return EXIT_CONFIG_ERROR


if __name__ == "__main__":
    raise SystemExit(main())
