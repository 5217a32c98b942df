"""GitHub GraphQL/REST API client used as the exporter's query executor."""

from __future__ import annotations

import logging
import time
from typing import Any, Dict, List, Optional

import requests

from .config import DEFAULT_API_URL
from .errors import AuthenticationError, RateLimitError, TransportError
from .models import Page, QueryName
from .queries import CONNECTIONS, QUERIES

logger = logging.getLogger(__name__)


class GitHubClient:
    """Small, typed client for the GitHub APIs the exporter depends on."""

    _MAX_RETRIES = 3
    _MAX_BACKOFF_SECONDS = 30
    _REST_PAGE_SIZE = 100

    def __init__(self, token: str, api_url: str = DEFAULT_API_URL, timeout_seconds: int = 30) -> None:
        """Initialize an authenticated GitHub API client.

        Args:
            token: Personal access or app token passed as a bearer credential.
            api_url: REST API root; the GraphQL endpoint is ``{api_url}/graphql``.
            timeout_seconds: Per-request timeout in seconds.
        """
        self._api_url = api_url.rstrip("/")
        self._timeout_seconds = timeout_seconds

        self._session = requests.Session()
        self._session.headers.update(
            {
                "Accept": "application/vnd.github+json",
                "Authorization": f"Bearer {token}",
                "User-Agent": "github-metrics-exporter",
            }
        )

    def _build_url(self, path: str) -> str:
        """Build a fully qualified API URL from a path below the API root."""
        if path.startswith("https://") or path.startswith("http://"):
            return path
        return f"{self._api_url}/{path.lstrip('/')}"

    def _extract_backoff_seconds(self, response: requests.Response, attempt: int) -> int:
        """Compute exponential backoff seconds, honoring Retry-After when available."""
        retry_after_header = response.headers.get("Retry-After")
        if retry_after_header:
            try:
                retry_after_seconds = int(retry_after_header)
                return min(self._MAX_BACKOFF_SECONDS, max(1, retry_after_seconds))
            except ValueError:
                pass

        return min(self._MAX_BACKOFF_SECONDS, 2 ** (attempt - 1))

    def _raise_for_status(self, method: str, url: str, response: requests.Response) -> None:
        status_code = response.status_code
        if status_code < 400:
            return

        if status_code == 401:
            raise AuthenticationError(f"GitHub rejected the configured credentials: {method} {url}")

        if status_code in (403, 429) and (
            response.headers.get("X-RateLimit-Remaining") == "0" or status_code == 429
        ):
            raise RateLimitError(
                f"GitHub rate limit exceeded: {method} {url} "
                f"(resets at {response.headers.get('X-RateLimit-Reset', 'unknown')})"
            )

        raise TransportError(
            "GitHub API request failed: "
            f"{method} {url} returned {status_code} - {response.text}"
        )

    def _request(self, method: str, path: str, **kwargs: Any) -> requests.Response:
        """Execute a request with retry logic for 429/5xx responses.

        Raises:
            TransportError: If the request repeatedly fails or returns HTTP >= 400.
        """
        url = self._build_url(path)
        last_error: Optional[Exception] = None

        for attempt in range(1, self._MAX_RETRIES + 1):
            try:
                response = self._session.request(method, url, timeout=self._timeout_seconds, **kwargs)
            except requests.RequestException as exc:
                last_error = exc
                if attempt == self._MAX_RETRIES:
                    raise TransportError(f"GitHub request failed after retries: {method} {url}") from exc
                time.sleep(min(self._MAX_BACKOFF_SECONDS, 2 ** (attempt - 1)))
                continue

            status_code = response.status_code
            is_retryable = status_code == 429 or 500 <= status_code <= 599

            if is_retryable and attempt < self._MAX_RETRIES:
                backoff = self._extract_backoff_seconds(response, attempt)
                logger.warning(
                    "Retrying GitHub request",
                    extra={"url": url, "status_code": status_code, "attempt": attempt, "backoff": backoff},
                )
                time.sleep(backoff)
                continue

            self._raise_for_status(method, url, response)
            return response

        raise TransportError(f"GitHub request failed after retries: {method} {url}") from last_error

    def _json(self, method: str, url: str, response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise TransportError(f"GitHub API returned invalid JSON: {method} {url}") from exc

    def graphql(self, query: str, variables: Dict[str, Any]) -> Dict[str, Any]:
        """Run a GraphQL document and return its ``data`` object.

        Raises:
            RateLimitError: If GitHub reports a ``RATE_LIMITED`` error.
            TransportError: For HTTP failures, GraphQL errors or unexpected payloads.
        """
        response = self._request("POST", "graphql", json={"query": query, "variables": variables})
        payload = self._json("POST", "graphql", response)

        if not isinstance(payload, dict):
            raise TransportError("GitHub GraphQL API returned unexpected payload shape")

        errors = payload.get("errors")
        if errors:
            messages = ", ".join(str(err.get("message")) for err in errors if isinstance(err, dict))
            if any(isinstance(err, dict) and err.get("type") == "RATE_LIMITED" for err in errors):
                raise RateLimitError(f"GitHub GraphQL rate limit exceeded: {messages}")
            raise TransportError(f"GitHub GraphQL error: {messages or errors}")

        data = payload.get("data")
        if not isinstance(data, dict):
            raise TransportError("GitHub GraphQL API returned no data")
        return data

    def execute(self, query_name: QueryName, variables: Dict[str, Any]) -> Page:
        """Fetch one page of a named connection query.

        Args:
            query_name: Which of the known queries to run.
            variables: GraphQL variables including ``owner``, ``name`` and ``after``.

        Returns:
            The page's raw nodes and continuation info.
        """
        data = self.graphql(QUERIES[query_name], variables)

        repository = data.get("repository")
        if not isinstance(repository, dict):
            raise TransportError(
                f"Repository '{variables.get('owner')}/{variables.get('name')}' was not found or is not accessible."
            )

        connection = repository.get(CONNECTIONS[query_name]) or {}
        page_info = connection.get("pageInfo") or {}
        return Page(
            nodes=[node for node in connection.get("nodes") or [] if node is not None],
            has_next_page=bool(page_info.get("hasNextPage")),
            end_cursor=page_info.get("endCursor"),
        )

    def _get_paginated(self, path: str, params: Optional[Dict[str, Any]] = None) -> List[Dict[str, Any]]:
        """Follow REST ``Link: rel="next"`` headers and collect every item."""
        items: List[Dict[str, Any]] = []
        url: Optional[str] = path
        query: Optional[Dict[str, Any]] = {"per_page": self._REST_PAGE_SIZE, **(params or {})}

        while url:
            response = self._request("GET", url, params=query)
            payload = self._json("GET", url, response)
            if not isinstance(payload, list):
                raise TransportError(f"GitHub API returned unexpected payload shape: GET {url}")
            items.extend(item for item in payload if isinstance(item, dict))

            url = (response.links.get("next") or {}).get("url")
            # The next link already carries the query string.
            query = None

        return items

    def get_authenticated_user(self) -> str:
        """Return the login of the account the token belongs to."""
        response = self._request("GET", "user")
        payload = self._json("GET", "user", response)
        login = payload.get("login") if isinstance(payload, dict) else None
        if not login:
            raise TransportError("GitHub API returned no login for the authenticated user")
        return str(login)

    def list_team_members(self, org: str, team_slug: str) -> List[str]:
        """List member logins of an organization team."""
        members = self._get_paginated(f"orgs/{org}/teams/{team_slug}/members")
        return [str(member["login"]) for member in members if member.get("login")]

    def list_labels(self, owner: str, repo: str) -> List[Dict[str, Any]]:
        """List the labels defined on a repository."""
        return self._get_paginated(f"repos/{owner}/{repo}/labels")

    def create_label(
        self,
        owner: str,
        repo: str,
        name: str,
        color: str,
        description: Optional[str] = None,
    ) -> None:
        """Create a label on a repository."""
        body: Dict[str, Any] = {"name": name, "color": color}
        if description:
            body["description"] = description
        self._request("POST", f"repos/{owner}/{repo}/labels", json=body)
