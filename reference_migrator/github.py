"""History visitor backed by the issues of a GitHub repository."""

import logging
import random
import re
import time

import requests

from .errors import InsufficientScopesError, RepoError
from .history import Change, ChangeVisitable, parse_labels

GQL_URL = "https://api.github.com/graphql"
MAX_API_RETRIES = 5
BASE_RETRY_DELAY = 2  # seconds
RETRYABLE_STATUSES = [403, 429, 502]
PAGE_SIZE = 50

MIGRATED_FROM_LABEL = "Migrated-From"
MIGRATED_FROM_MARKER = re.compile(r"^Migrated from (?P<value>[\w.-]+/[\w.-]+#\d+)[ \t]*$", re.MULTILINE)

GET_ISSUES_QUERY = "query GetIssues($owner: String!, $name: String!, $first: Int!, $cursor: String) { repository(owner: $owner, name: $name) { issues(first: $first, after: $cursor, states: [OPEN, CLOSED], orderBy: {field: CREATED_AT, direction: DESC}) { pageInfo { hasNextPage, endCursor }, nodes { number, body } } } }"


class GraphQLClient:
    """
    A small client for executing GitHub GraphQL queries.
    Errors are raised as RepoError, with scope problems singled out.
    """

    def __init__(self, token, url=GQL_URL):
        self.url = url
        self._headers = {"Authorization": f"token {token}"}

    def _post(self, query, variables):
        payload = (
            {"query": query, "variables": variables} if variables else {"query": query}
        )
        response = requests.post(self.url, headers=self._headers, json=payload)
        response.raise_for_status()
        data = response.json()
        if "errors" in data:
            first_error = data["errors"][0]
            msg = first_error.get("message", "Unknown GraphQL Error")
            if first_error.get("type") == "INSUFFICIENT_SCOPES":
                raise InsufficientScopesError(msg)
            raise RepoError(f"GraphQL query failed: {msg}")
        return data.get("data")

    def execute(self, query, variables=None):
        """Runs `query`, retrying on rate limiting and gateway errors."""
        for attempt in range(MAX_API_RETRIES):
            try:
                return self._post(query, variables)
            except requests.exceptions.HTTPError as e:
                status = e.response.status_code if e.response is not None else None
                if status not in RETRYABLE_STATUSES:
                    raise RepoError(f"GitHub API request failed: {e}") from e
                delay = (BASE_RETRY_DELAY**attempt) + random.uniform(0, 1)
                logging.warning(
                    f"API call hit a retryable error ({status}). Retrying in {delay:.2f}s..."
                )
                time.sleep(delay)
            except requests.exceptions.RequestException as e:
                raise RepoError(f"GitHub API request failed: {e}") from e
        raise RepoError(f"API call failed after {MAX_API_RETRIES} retries.")


def issue_labels(body):
    """Labels of an issue body, including the `Migrated from org/repo#N` marker."""
    labels = parse_labels(body)
    for match in MIGRATED_FROM_MARKER.finditer(body or ""):
        labels.setdefault(MIGRATED_FROM_LABEL, []).append(match.group("value"))
    return labels


class GitHubIssueHistory(ChangeVisitable):
    """
    Walks the issues of a GitHub repository, newest first.

    Pages are fetched lazily, so a visitor that terminates early never pays for
    the rest of the history. `start` is ignored; issues have no ancestry.
    """

    def __init__(self, client, owner, repo, page_size=PAGE_SIZE):
        self.client = client
        self.owner = owner
        self.repo = repo
        self.page_size = page_size

    def _pages(self):
        cursor = None
        while True:
            data = self.client.execute(
                GET_ISSUES_QUERY,
                {
                    "owner": self.owner,
                    "name": self.repo,
                    "first": self.page_size,
                    "cursor": cursor,
                },
            )
            repository = (data or {}).get("repository")
            if not repository:
                raise RepoError(f"Repository '{self.owner}/{self.repo}' not found.")
            connection = repository["issues"]
            yield [
                Change(
                    ref=str(node["number"]),
                    message=node.get("body") or "",
                    labels=issue_labels(node.get("body")),
                )
                for node in connection["nodes"]
            ]
            if not connection["pageInfo"]["hasNextPage"]:
                return
            cursor = connection["pageInfo"]["endCursor"]

    def visit_changes_with_any_label(self, start, label_names, visitor):
        for page in self._pages():
            logging.debug(f"Fetched {len(page)} issues from {self.owner}/{self.repo}.")
            if not self._visit(page, label_names, visitor):
                return

    def __repr__(self):
        return f"GitHubIssueHistory({self.owner}/{self.repo})"
