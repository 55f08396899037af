"""GraphQL queries used by the sync engine."""

import logging
from dataclasses import dataclass
from typing import Any

from .client import GitHubClient

logger = logging.getLogger(__name__)

MAX_ASSIGNABLE_USER_PAGES = 10

ASSIGNABLE_USERS_QUERY = """
query($owner: String!, $name: String!, $query: String, $after: String) {
  repository(owner: $owner, name: $name) {
    assignableUsers(first: 100, query: $query, after: $after) {
      nodes { login avatarUrl }
      pageInfo { hasNextPage endCursor }
    }
  }
}
"""


@dataclass(frozen=True)
class AssignableUser:
    login: str
    avatar_url: str | None


async def search_assignable_users(
    client: GitHubClient, owner: str, name: str, query: str | None = None
) -> list[AssignableUser]:
    """Collect users assignable in a repository, sorted by login.

    Follows ``pageInfo`` for at most ten pages. A missing repository yields
    an empty list; GraphQL errors propagate as GitHubGraphQLError.
    """
    users: dict[str, AssignableUser] = {}
    after: str | None = None

    for _ in range(MAX_ASSIGNABLE_USER_PAGES):
        result = await client.graphql(
            ASSIGNABLE_USERS_QUERY,
            {"owner": owner, "name": name, "query": query, "after": after},
        )
        if not result.found:
            return []

        repository: dict[str, Any] | None = (result.data or {}).get("repository")
        if repository is None:
            return []

        connection = repository.get("assignableUsers") or {}
        for node in connection.get("nodes") or []:
            if node and node.get("login"):
                users.setdefault(
                    node["login"], AssignableUser(node["login"], node.get("avatarUrl"))
                )

        page_info = connection.get("pageInfo") or {}
        if not page_info.get("hasNextPage") or not page_info.get("endCursor"):
            break
        after = page_info["endCursor"]
    else:
        logger.info(f"Assignable user search for {owner}/{name} hit the page cap")

    return sorted(users.values(), key=lambda user: user.login.lower())
