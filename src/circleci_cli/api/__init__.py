"""GraphQL API access."""

from circleci_cli.api.client import APIClient, GraphQLErrorDetail, GraphQLResult

__all__ = [
    "APIClient",
    "GraphQLErrorDetail",
    "GraphQLResult",
]
