"""Per-repository refresh of issue and pull request metrics.

A refresh fetches a fresh snapshot from GitHub, classifies every item by
label and author affiliation, and replaces the repository's series in the
metric sink. Each series is reset only after the fetch feeding it has
succeeded, so a failed fetch leaves the previously published values in place
until the next successful cycle.
"""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta, timezone
from typing import AbstractSet, Any, Callable, Dict, List, Optional, Sequence

from .classifier import classify, published_affiliations
from .derived import age_in_days, days_to_first_review, review_state
from .errors import DataValidationError, TransportError
from .metrics import MetricSink
from .models import (
    FetchSpec,
    Issue,
    PullRequest,
    PullRequestState,
    RepositoryCoordinate,
    ReviewState,
    parse_timestamp,
)
from .pagination import Paginator

logger = logging.getLogger(__name__)

TRAILING_WINDOW = timedelta(days=7)

Clock = Callable[[], datetime]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def updated_before(cutoff: datetime) -> Callable[[Dict[str, Any]], bool]:
    """Predicate that matches raw nodes last updated before ``cutoff``."""

    def _predicate(node: Dict[str, Any]) -> bool:
        updated_at = parse_timestamp(node.get("updatedAt"))
        return updated_at is not None and updated_at < cutoff

    return _predicate


class RepositoryWatcher:
    """Refreshes the metrics of a single repository."""

    def __init__(
        self,
        paginator: Paginator,
        sink: MetricSink,
        repository: RepositoryCoordinate,
        labels: Sequence[str],
        members: AbstractSet[str] = frozenset(),
        clock: Clock = _utcnow,
    ) -> None:
        self._paginator = paginator
        self._sink = sink
        self.repository = repository
        self._labels = tuple(dict.fromkeys(labels))
        self._members = frozenset(members)
        self._clock = clock

    def _is_community(self, author: Optional[str]) -> str:
        return classify(author, self._members).is_community_label

    def _record_failure(self, phase: str, exc: Exception) -> None:
        self._sink.refresh_failures.labels(repository=self.repository.full_name, phase=phase).inc()
        logger.error(
            "Refresh phase failed; keeping previously published values",
            extra={"repository": self.repository.full_name, "phase": phase, "error": str(exc)},
            exc_info=exc,
        )

    def _record_success(self, phase: str) -> None:
        self._sink.last_refresh.labels(repository=self.repository.full_name, phase=phase).set(time.time())

    def fetch_issues(self, state: str, since: Optional[datetime] = None) -> List[Issue]:
        nodes = self._paginator.fetch_all(FetchSpec.issues(self.repository, state=state, since=since))
        return [Issue.from_node(node) for node in nodes]

    def fetch_open_pull_requests(self) -> List[PullRequest]:
        """Fetch open pull requests, excluding drafts."""
        nodes = self._paginator.fetch_all(FetchSpec.pull_requests(self.repository, state="OPEN"))
        pull_requests = [PullRequest.from_node(node) for node in nodes]
        return [pr for pr in pull_requests if not pr.isDraft]

    def fetch_recently_finished_pull_requests(self, cutoff: datetime) -> List[PullRequest]:
        """Fetch merged or closed pull requests last updated at or after ``cutoff``.

        The feed is ordered newest-update-first, so pagination stops at the
        first page whose last item is older than ``cutoff``.
        """
        spec = FetchSpec.merged_or_closed_pull_requests(self.repository, stop_when=updated_before(cutoff))
        pull_requests = [PullRequest.from_node(node) for node in self._paginator.fetch_all(spec)]
        return [pr for pr in pull_requests if pr.updatedAt >= cutoff]

    def refresh_issues(self) -> None:
        """Recompute open-issue ages, unlabeled issues and closed-issue counts.

        Raises:
            TransportError: If a fetch fails.
            DataValidationError: If an issue payload is malformed.
        """
        sink = self._sink
        repository = self.repository.full_name
        now = self._clock()
        affiliations = published_affiliations(self._members)

        open_issues = self.fetch_issues("OPEN")

        sink.reset(sink.open_issue_age, repository)
        for label in self._labels:
            for affiliation in affiliations:
                sink.zero(
                    sink.open_issue_age,
                    label=label,
                    repository=repository,
                    isCommunity=affiliation.is_community_label,
                )
            for issue in open_issues:
                if label not in issue.labels:
                    continue
                age = age_in_days(issue.createdAt, now)
                if age is None:
                    continue
                sink.observe(
                    sink.open_issue_age,
                    age,
                    label=label,
                    repository=repository,
                    isCommunity=self._is_community(issue.author),
                )

        unlabeled = sum(1 for issue in open_issues if issue.is_unlabeled)
        sink.reset(sink.unlabelled_issues, repository)
        sink.set(sink.unlabelled_issues, unlabeled, repository=repository)

        closed_issues = self.fetch_issues("CLOSED", since=now - TRAILING_WINDOW)

        sink.reset(sink.closed_issues, repository)
        for label in self._labels:
            counts = {affiliation: 0 for affiliation in affiliations}
            for issue in closed_issues:
                if label in issue.labels:
                    counts[classify(issue.author, self._members)] += 1
            for affiliation, count in counts.items():
                sink.set(
                    sink.closed_issues,
                    count,
                    label=label,
                    repository=repository,
                    isCommunity=affiliation.is_community_label,
                )

        logger.info(
            "Refreshed issue metrics",
            extra={
                "repository": repository,
                "open_issues": len(open_issues),
                "unlabeled_issues": unlabeled,
                "closed_issues": len(closed_issues),
            },
        )

    def refresh_pull_requests(self) -> None:
        """Recompute open pull request ages, review states and merge/close counts.

        Raises:
            TransportError: If a fetch fails.
            DataValidationError: If a pull request payload is malformed.
        """
        sink = self._sink
        repository = self.repository.full_name
        now = self._clock()
        affiliations = published_affiliations(self._members)

        open_pull_requests = self.fetch_open_pull_requests()

        for metric in (sink.open_pull_request_age, sink.time_to_first_review, sink.open_pull_requests):
            sink.reset(metric, repository)
        for affiliation in affiliations:
            flag = affiliation.is_community_label
            sink.zero(sink.open_pull_request_age, repository=repository, isCommunity=flag)
            sink.zero(sink.time_to_first_review, repository=repository, isCommunity=flag)
            for state in ReviewState:
                sink.zero(sink.open_pull_requests, repository=repository, isCommunity=flag, state=state.value)

        for pr in open_pull_requests:
            flag = self._is_community(pr.author)

            age = age_in_days(pr.createdAt, now)
            if age is not None:
                sink.observe(sink.open_pull_request_age, age, repository=repository, isCommunity=flag)

            review_days = days_to_first_review(pr)
            if review_days is not None:
                sink.observe(sink.time_to_first_review, review_days, repository=repository, isCommunity=flag)

            sink.inc(sink.open_pull_requests, repository=repository, isCommunity=flag, state=review_state(pr).value)

        finished = self.fetch_recently_finished_pull_requests(now - TRAILING_WINDOW)

        sink.reset(sink.merged_pull_requests, repository)
        sink.reset(sink.closed_pull_requests, repository)
        for affiliation in affiliations:
            sink.zero(sink.merged_pull_requests, repository=repository, isCommunity=affiliation.is_community_label)
            sink.zero(sink.closed_pull_requests, repository=repository, isCommunity=affiliation.is_community_label)

        merged = closed = 0
        for pr in finished:
            flag = self._is_community(pr.author)
            if pr.state is PullRequestState.MERGED:
                merged += 1
                sink.inc(sink.merged_pull_requests, repository=repository, isCommunity=flag)
            elif pr.state is PullRequestState.CLOSED:
                closed += 1
                sink.inc(sink.closed_pull_requests, repository=repository, isCommunity=flag)

        logger.info(
            "Refreshed pull request metrics",
            extra={
                "repository": repository,
                "open_pull_requests": len(open_pull_requests),
                "merged_pull_requests": merged,
                "closed_pull_requests": closed,
            },
        )

    def refresh_metrics(self) -> bool:
        """Run the issue and pull request phases independently.

        Returns:
            ``True`` when both phases succeeded.
        """
        succeeded = True
        phases = (("issues", self.refresh_issues), ("pull_requests", self.refresh_pull_requests))
        for phase, refresh in phases:
            try:
                refresh()
            except (TransportError, DataValidationError) as exc:
                self._record_failure(phase, exc)
                succeeded = False
            else:
                self._record_success(phase)
        return succeeded


def build_watchers(
    paginator: Paginator,
    sink: MetricSink,
    repositories: Sequence[RepositoryCoordinate],
    labels: Sequence[str],
    members: AbstractSet[str] = frozenset(),
) -> List[RepositoryWatcher]:
    return [RepositoryWatcher(paginator, sink, repository, labels, members) for repository in repositories]
