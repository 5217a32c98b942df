"""Domain models for GitHub issue and pull request metrics.

These dataclasses intentionally model only the subset of GraphQL payload
fields that are required for metric aggregation. Every instance is rebuilt
from scratch on each refresh cycle.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, FrozenSet, List, Optional

from .errors import ConfigurationError, DataValidationError

NodePredicate = Callable[[Dict[str, Any]], bool]


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """Parse GitHub ISO8601 timestamps into timezone-aware datetimes.

    Raises:
        DataValidationError: If the value is not an ISO8601 timestamp.
    """
    if not value:
        return None

    normalized = value[:-1] + "+00:00" if value.endswith("Z") else value
    try:
        parsed = datetime.fromisoformat(normalized)
    except (TypeError, ValueError) as exc:
        raise DataValidationError(f"GitHub payload has an invalid timestamp: {value!r}") from exc
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed


def format_timestamp(value: datetime) -> str:
    """Format a datetime as UTC ISO8601 suitable for GraphQL ``DateTime`` inputs."""
    utc_value = value.astimezone(timezone.utc)
    return utc_value.isoformat().replace("+00:00", "Z")


def _require_timestamp(node: Dict[str, Any], key: str) -> datetime:
    parsed = parse_timestamp(node.get(key))
    if parsed is None:
        raise DataValidationError(f"GitHub payload is missing required field '{key}': {node}")
    return parsed


def _author_login(node: Dict[str, Any]) -> Optional[str]:
    # Deleted accounts come back as a null author.
    author = node.get("author") or {}
    login = author.get("login")
    return str(login) if login else None


@dataclass(frozen=True)
class RepositoryCoordinate:
    """Identifies a GitHub repository and its ``repository`` metric label."""

    owner: str
    name: str

    @classmethod
    def parse(cls, value: str) -> "RepositoryCoordinate":
        """Parse an ``owner/name`` string.

        Raises:
            ConfigurationError: If ``value`` is not exactly two non-empty parts.
        """
        parts = [part.strip() for part in value.strip().split("/")]
        if len(parts) != 2 or not all(parts):
            raise ConfigurationError(
                f"Invalid repository '{value}': expected the form 'owner/name'."
            )
        return cls(owner=parts[0], name=parts[1])

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.name}"

    def __str__(self) -> str:
        return self.full_name


class PullRequestState(str, enum.Enum):
    OPEN = "OPEN"
    MERGED = "MERGED"
    CLOSED = "CLOSED"


class ReviewState(str, enum.Enum):
    """Mutually exclusive review states of an open pull request."""

    APPROVED = "Approved"
    NOT_REVIEWED = "NotReviewed"
    WAITING_FOR_REVIEW = "WaitingForReview"
    WAITING_FOR_CHANGES = "WaitingForChanges"


class QueryName(str, enum.Enum):
    """Named GraphQL queries understood by the query executor."""

    ISSUES = "fetchIssues"
    PULL_REQUESTS = "fetchPullRequests"
    PULL_REQUESTS_SIMPLE = "fetchPullRequestsSimple"


@dataclass(slots=True)
class Issue:
    """Represents the minimal issue data required for label metrics."""

    labels: FrozenSet[str]
    author: Optional[str]
    createdAt: datetime
    updatedAt: datetime

    @classmethod
    def from_node(cls, node: Dict[str, Any]) -> "Issue":
        label_nodes = (node.get("labels") or {}).get("nodes") or []
        return cls(
            labels=frozenset(str(label["name"]) for label in label_nodes if label and label.get("name")),
            author=_author_login(node),
            createdAt=_require_timestamp(node, "createdAt"),
            updatedAt=_require_timestamp(node, "updatedAt"),
        )

    @property
    def is_unlabeled(self) -> bool:
        return not self.labels


@dataclass(slots=True)
class PullRequest:
    """Represents the minimal pull request data required for review metrics."""

    author: Optional[str]
    createdAt: datetime
    updatedAt: datetime
    firstReviewAt: Optional[datetime] = None
    reviewRequested: bool = False
    state: Optional[PullRequestState] = None
    approved: bool = False
    isDraft: bool = False

    @classmethod
    def from_node(cls, node: Dict[str, Any]) -> "PullRequest":
        """Build a pull request from either the full or the simplified query shape."""
        review_nodes = (node.get("reviews") or {}).get("nodes") or []
        review_times = [
            parsed
            for parsed in (parse_timestamp((review or {}).get("submittedAt")) for review in review_nodes)
            if parsed is not None
        ]
        review_requests = node.get("reviewRequests") or {}
        raw_state = node.get("state")

        try:
            state = PullRequestState(raw_state) if raw_state else None
        except ValueError as exc:
            raise DataValidationError(f"Unknown pull request state '{raw_state}'") from exc

        return cls(
            author=_author_login(node),
            createdAt=_require_timestamp(node, "createdAt"),
            updatedAt=_require_timestamp(node, "updatedAt"),
            firstReviewAt=min(review_times) if review_times else None,
            reviewRequested=int(review_requests.get("totalCount") or 0) > 0,
            state=state,
            approved=node.get("reviewDecision") == "APPROVED",
            isDraft=bool(node.get("isDraft")),
        )


@dataclass(slots=True)
class Page:
    """One page of GraphQL connection results."""

    nodes: List[Dict[str, Any]]
    has_next_page: bool
    end_cursor: Optional[str] = None


@dataclass(frozen=True)
class FetchSpec:
    """Describes one logical paginated fetch.

    The three query shapes (issues, pull requests, and the simplified
    merged/closed pull request feed) share one pagination algorithm and only
    differ in the query name and variables sent with each page.
    """

    repository: RepositoryCoordinate
    query: QueryName
    state: Optional[str] = None
    since: Optional[datetime] = None
    stop_when: Optional[NodePredicate] = field(default=None, compare=False)

    @classmethod
    def issues(
        cls,
        repository: RepositoryCoordinate,
        state: str,
        since: Optional[datetime] = None,
    ) -> "FetchSpec":
        return cls(repository=repository, query=QueryName.ISSUES, state=state, since=since)

    @classmethod
    def pull_requests(cls, repository: RepositoryCoordinate, state: str) -> "FetchSpec":
        return cls(repository=repository, query=QueryName.PULL_REQUESTS, state=state)

    @classmethod
    def merged_or_closed_pull_requests(
        cls,
        repository: RepositoryCoordinate,
        stop_when: Optional[NodePredicate] = None,
    ) -> "FetchSpec":
        return cls(repository=repository, query=QueryName.PULL_REQUESTS_SIMPLE, stop_when=stop_when)

    def variables(self, after: Optional[str]) -> Dict[str, Any]:
        """Build GraphQL variables for one page of this fetch."""
        variables: Dict[str, Any] = {
            "owner": self.repository.owner,
            "name": self.repository.name,
            "after": after,
        }
        if self.state is not None:
            variables["state"] = self.state
        if self.since is not None:
            variables["since"] = format_timestamp(self.since)
        return variables
