"""CircleCI command-line client core.

Provides:
- a local settings store (`~/.circleci/cli.yml`, `~/.circleci/update_check.yml`)
- an authenticated GraphQL client with partial-success handling
- structured logging and a small CLI surface
"""

__version__ = "0.1.0"

from circleci_cli.config import CLIEnvironment  # noqa: E402

__all__ = ["__version__", "CLIEnvironment"]
