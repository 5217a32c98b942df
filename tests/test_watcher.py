"""Tests for repository refresh cycles against a fake GraphQL executor."""

import sys
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from prometheus_client import CollectorRegistry

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from exporter.errors import TransportError
from exporter.metrics import MetricSink
from exporter.models import Page, QueryName, RepositoryCoordinate, ReviewState
from exporter.pagination import Paginator
from exporter.watcher import RepositoryWatcher

NOW = datetime(2026, 3, 1, 12, 0, 0, tzinfo=timezone.utc)
REPOSITORY = RepositoryCoordinate("acme", "widgets")
REPO = "acme/widgets"
TEAM = frozenset({"teammate"})


def _ts(days_ago: float) -> str:
    return (NOW - timedelta(days=days_ago)).isoformat().replace("+00:00", "Z")


def _issue(labels=(), author: Optional[str] = "outsider", created: float = 1, updated: float = 0) -> dict:
    return {
        "author": {"login": author} if author else None,
        "createdAt": _ts(created),
        "updatedAt": _ts(updated),
        "labels": {"nodes": [{"name": label} for label in labels]},
    }


def _pr(
    author: str = "outsider",
    created: float = 1,
    updated: float = 0,
    draft: bool = False,
    decision: Optional[str] = None,
    reviewed: Optional[float] = None,
    requested: int = 0,
    state: str = "OPEN",
) -> dict:
    return {
        "author": {"login": author},
        "createdAt": _ts(created),
        "updatedAt": _ts(updated),
        "state": state,
        "isDraft": draft,
        "reviewDecision": decision,
        "reviews": {"nodes": [{"submittedAt": _ts(reviewed)}] if reviewed is not None else []},
        "reviewRequests": {"totalCount": requested},
    }


def _pages(*node_lists: List[dict]) -> List[Page]:
    pages = []
    for index, nodes in enumerate(node_lists):
        is_last = index == len(node_lists) - 1
        pages.append(Page(nodes=list(nodes), has_next_page=not is_last, end_cursor=f"cursor-{index + 1}"))
    return pages


class FakeExecutor:
    """Serves canned pages per (query, state) and records every call."""

    def __init__(self, pages: Dict[Tuple[QueryName, Optional[str]], List[Page]]) -> None:
        self.pages = pages
        self.failures: Dict[Tuple[QueryName, Optional[str]], Exception] = {}
        self.calls: List[Tuple[QueryName, dict]] = []

    def execute(self, query_name: QueryName, variables: dict) -> Page:
        self.calls.append((query_name, dict(variables)))
        key = (query_name, variables.get("state"))
        if key in self.failures:
            raise self.failures[key]
        pages = self.pages.get(key) or [Page(nodes=[], has_next_page=False)]
        after = variables.get("after")
        index = 0 if after is None else int(after.rsplit("-", 1)[1])
        return pages[index]

    def calls_for(self, query_name: QueryName) -> List[dict]:
        return [variables for name, variables in self.calls if name is query_name]


def _watcher(executor: FakeExecutor, labels=("bug", "feature"), members=frozenset()):
    sink = MetricSink(registry=CollectorRegistry(), default_collectors=False)
    watcher = RepositoryWatcher(Paginator(executor), sink, REPOSITORY, labels, members, clock=lambda: NOW)
    return watcher, sink


def _value(sink: MetricSink, name: str, **labels: str) -> Optional[float]:
    return sink.registry.get_sample_value(name, labels)


def test_open_bug_by_non_member_lands_in_seven_to_fourteen_day_bucket():
    """Verify a 10-day-old community bug is one observation in the (7, 14] bucket."""
    executor = FakeExecutor({(QueryName.ISSUES, "OPEN"): _pages([_issue(labels=["bug"], created=10)])})
    watcher, sink = _watcher(executor, members=TEAM)

    watcher.refresh_issues()

    bug = {"label": "bug", "repository": REPO, "isCommunity": "true"}
    assert _value(sink, "github_open_issues_age_days_count", **bug) == 1
    assert _value(sink, "github_open_issues_age_days_sum", **bug) == 10
    assert _value(sink, "github_open_issues_age_days_bucket", le="7.0", **bug) == 0
    assert _value(sink, "github_open_issues_age_days_bucket", le="14.0", **bug) == 1
    feature = {"label": "feature", "repository": REPO, "isCommunity": "true"}
    assert _value(sink, "github_open_issues_age_days_count", **feature) == 0
    assert _value(sink, "github_unlabelled_issues", repository=REPO) == 0


def test_issue_with_several_labels_counts_under_each_label():
    """Verify label membership is evaluated independently per label."""
    executor = FakeExecutor(
        {(QueryName.ISSUES, "OPEN"): _pages([_issue(labels=["bug", "feature"], created=2)])}
    )
    watcher, sink = _watcher(executor)

    watcher.refresh_issues()

    for label in ("bug", "feature"):
        assert (
            _value(sink, "github_open_issues_age_days_count", label=label, repository=REPO, isCommunity="true")
            == 1
        )


def test_unlabelled_gauge_counts_empty_label_sets_regardless_of_labels_of_interest():
    """Verify the unlabeled gauge only depends on issues without any label."""
    open_issues = [_issue(), _issue(), _issue(labels=["bug"]), _issue(labels=["docs"])]
    executor = FakeExecutor({(QueryName.ISSUES, "OPEN"): _pages(open_issues[:2], open_issues[2:])})
    watcher, sink = _watcher(executor, labels=("unrelated",))

    watcher.refresh_issues()

    assert _value(sink, "github_unlabelled_issues", repository=REPO) == 2


def test_closed_bug_by_team_member_counts_as_team():
    """Verify closed issues are partitioned by affiliation when a roster is configured."""
    executor = FakeExecutor(
        {(QueryName.ISSUES, "CLOSED"): _pages([_issue(labels=["bug"], author="teammate", updated=3)])}
    )
    watcher, sink = _watcher(executor, members=TEAM)

    watcher.refresh_issues()

    assert _value(sink, "github_closed_issues", label="bug", repository=REPO, isCommunity="false") == 1
    assert _value(sink, "github_closed_issues", label="bug", repository=REPO, isCommunity="true") == 0
    closed_call = executor.calls_for(QueryName.ISSUES)[-1]
    assert closed_call["state"] == "CLOSED"
    assert closed_call["since"] == _ts(7)


def test_closed_issue_partition_sums_to_labelled_total():
    """Verify team and community counts add up to all closed issues with the label."""
    closed = [
        _issue(labels=["bug"], author="teammate"),
        _issue(labels=["bug"], author="outsider"),
        _issue(labels=["bug"], author=None),
        _issue(labels=["feature"], author="outsider"),
    ]
    executor = FakeExecutor({(QueryName.ISSUES, "CLOSED"): _pages(closed)})
    watcher, sink = _watcher(executor, members=TEAM)

    watcher.refresh_issues()

    team = _value(sink, "github_closed_issues", label="bug", repository=REPO, isCommunity="false")
    community = _value(sink, "github_closed_issues", label="bug", repository=REPO, isCommunity="true")
    assert (team, community) == (1, 2)


def test_closed_issues_without_roster_only_publish_community_series():
    """Verify the team variant is skipped when no members are configured."""
    closed = [_issue(labels=["bug"], author="someone"), _issue(labels=["bug"], author="another")]
    executor = FakeExecutor({(QueryName.ISSUES, "CLOSED"): _pages(closed)})
    watcher, sink = _watcher(executor)

    watcher.refresh_issues()

    assert _value(sink, "github_closed_issues", label="bug", repository=REPO, isCommunity="true") == 2
    assert _value(sink, "github_closed_issues", label="bug", repository=REPO, isCommunity="false") is None


def test_refresh_replaces_stale_issue_observations():
    """Verify a second refresh reflects current data rather than accumulating."""
    executor = FakeExecutor({(QueryName.ISSUES, "OPEN"): _pages([_issue(labels=["bug"]), _issue(labels=["bug"])])})
    watcher, sink = _watcher(executor)
    watcher.refresh_issues()

    executor.pages[(QueryName.ISSUES, "OPEN")] = _pages([_issue(labels=["bug"])])
    watcher.refresh_issues()

    assert (
        _value(sink, "github_open_issues_age_days_count", label="bug", repository=REPO, isCommunity="true") == 1
    )


def test_open_pull_requests_are_classified_into_one_review_state_each():
    """Verify every non-draft PR lands in exactly one review state and drafts are ignored."""
    open_prs = [
        _pr(decision="APPROVED", reviewed=1),
        _pr(),
        _pr(reviewed=1, requested=1),
        _pr(reviewed=1, requested=0, decision="CHANGES_REQUESTED"),
        _pr(draft=True),
    ]
    executor = FakeExecutor({(QueryName.PULL_REQUESTS, "OPEN"): _pages(open_prs[:2], open_prs[2:])})
    watcher, sink = _watcher(executor)

    watcher.refresh_pull_requests()

    counts = {
        state: _value(sink, "github_open_pull_requests", repository=REPO, isCommunity="true", state=state.value)
        for state in ReviewState
    }
    assert counts == {
        ReviewState.APPROVED: 1,
        ReviewState.NOT_REVIEWED: 1,
        ReviewState.WAITING_FOR_REVIEW: 1,
        ReviewState.WAITING_FOR_CHANGES: 1,
    }
    assert _value(sink, "github_open_pull_requests_age_days_count", repository=REPO, isCommunity="true") == 4


def test_review_state_gauges_are_explicit_zeros_for_both_affiliations():
    """Verify review states with no PRs read as zero rather than being absent."""
    executor = FakeExecutor({(QueryName.PULL_REQUESTS, "OPEN"): _pages([_pr(author="teammate")])})
    watcher, sink = _watcher(executor, members=TEAM)

    watcher.refresh_pull_requests()

    for state in ReviewState:
        expected_team = 1 if state is ReviewState.NOT_REVIEWED else 0
        assert (
            _value(sink, "github_open_pull_requests", repository=REPO, isCommunity="false", state=state.value)
            == expected_team
        )
        assert _value(sink, "github_open_pull_requests", repository=REPO, isCommunity="true", state=state.value) == 0


def test_open_pull_request_age_and_time_to_first_review():
    """Verify PR age and review latency are observed in whole days."""
    executor = FakeExecutor(
        {(QueryName.PULL_REQUESTS, "OPEN"): _pages([_pr(created=5.5, reviewed=2.5, requested=1)])}
    )
    watcher, sink = _watcher(executor)

    watcher.refresh_pull_requests()

    labels = {"repository": REPO, "isCommunity": "true"}
    assert _value(sink, "github_open_pull_requests_age_days_sum", **labels) == 5
    assert _value(sink, "github_open_pull_requests_age_days_bucket", le="4.0", **labels) == 0
    assert _value(sink, "github_open_pull_requests_age_days_bucket", le="7.0", **labels) == 1
    assert _value(sink, "github_pull_request_time_to_first_review_days_sum", **labels) == 3
    assert _value(sink, "github_pull_request_time_to_first_review_days_count", **labels) == 1


def test_draft_pull_requests_never_reach_any_metric():
    """Verify drafts are dropped before aggregation."""
    executor = FakeExecutor({(QueryName.PULL_REQUESTS, "OPEN"): _pages([_pr(draft=True, reviewed=1)])})
    watcher, sink = _watcher(executor)

    watcher.refresh_pull_requests()

    labels = {"repository": REPO, "isCommunity": "true"}
    assert _value(sink, "github_open_pull_requests_age_days_count", **labels) == 0
    assert _value(sink, "github_pull_request_time_to_first_review_days_count", **labels) == 0
    for state in ReviewState:
        assert _value(sink, "github_open_pull_requests", state=state.value, **labels) == 0


def test_merged_closed_feed_stops_at_first_item_outside_window():
    """Verify the newest-first feed stops paging once items are older than 7 days."""
    first_page = [
        _pr(state="MERGED", updated=1),
        _pr(state="CLOSED", updated=3),
        _pr(state="MERGED", updated=10),
    ]
    executor = FakeExecutor(
        {(QueryName.PULL_REQUESTS_SIMPLE, None): _pages(first_page, [_pr(state="MERGED", updated=20)])}
    )
    watcher, sink = _watcher(executor)

    watcher.refresh_pull_requests()

    labels = {"repository": REPO, "isCommunity": "true"}
    assert len(executor.calls_for(QueryName.PULL_REQUESTS_SIMPLE)) == 1
    assert _value(sink, "github_merged_pull_requests_total", **labels) == 1
    assert _value(sink, "github_closed_pull_requests_total", **labels) == 1


def test_merged_counts_are_rebuilt_each_cycle():
    """Verify merge counters are reset rather than incremented forever."""
    executor = FakeExecutor(
        {(QueryName.PULL_REQUESTS_SIMPLE, None): _pages([_pr(author="teammate", state="MERGED", updated=1)])}
    )
    watcher, sink = _watcher(executor, members=TEAM)

    watcher.refresh_pull_requests()
    watcher.refresh_pull_requests()

    assert _value(sink, "github_merged_pull_requests_total", repository=REPO, isCommunity="false") == 1
    assert _value(sink, "github_merged_pull_requests_total", repository=REPO, isCommunity="true") == 0
    assert _value(sink, "github_closed_pull_requests_total", repository=REPO, isCommunity="false") == 0


def test_refresh_is_idempotent_for_unchanged_data():
    """Verify two refreshes over the same remote data publish the same values."""
    executor = FakeExecutor(
        {
            (QueryName.ISSUES, "OPEN"): _pages([_issue(labels=["bug"], created=10), _issue()]),
            (QueryName.ISSUES, "CLOSED"): _pages([_issue(labels=["feature"], author="teammate")]),
            (QueryName.PULL_REQUESTS, "OPEN"): _pages([_pr(created=3, reviewed=1)]),
            (QueryName.PULL_REQUESTS_SIMPLE, None): _pages([_pr(state="MERGED", updated=2)]),
        }
    )
    watcher, sink = _watcher(executor, members=TEAM)
    samples = [
        ("github_open_issues_age_days_sum", {"label": "bug", "repository": REPO, "isCommunity": "true"}),
        ("github_open_issues_age_days_count", {"label": "bug", "repository": REPO, "isCommunity": "true"}),
        ("github_unlabelled_issues", {"repository": REPO}),
        ("github_closed_issues", {"label": "feature", "repository": REPO, "isCommunity": "false"}),
        ("github_open_pull_requests_age_days_sum", {"repository": REPO, "isCommunity": "true"}),
        (
            "github_open_pull_requests",
            {"repository": REPO, "isCommunity": "true", "state": ReviewState.WAITING_FOR_CHANGES.value},
        ),
        ("github_merged_pull_requests_total", {"repository": REPO, "isCommunity": "true"}),
    ]

    assert watcher.refresh_metrics() is True
    first = [sink.registry.get_sample_value(name, labels) for name, labels in samples]
    assert watcher.refresh_metrics() is True
    second = [sink.registry.get_sample_value(name, labels) for name, labels in samples]

    assert first == second
    assert None not in first


def test_failed_issue_fetch_keeps_previous_values_and_still_refreshes_pull_requests():
    """Verify one failing phase neither wipes its series nor blocks the other phase."""
    executor = FakeExecutor(
        {
            (QueryName.ISSUES, "OPEN"): _pages([_issue(), _issue()]),
            (QueryName.PULL_REQUESTS, "OPEN"): _pages([_pr()]),
        }
    )
    watcher, sink = _watcher(executor)
    assert watcher.refresh_metrics() is True

    executor.failures[(QueryName.ISSUES, "OPEN")] = TransportError("rate limited")
    executor.pages[(QueryName.PULL_REQUESTS, "OPEN")] = _pages([_pr(), _pr()])

    assert watcher.refresh_metrics() is False

    assert _value(sink, "github_unlabelled_issues", repository=REPO) == 2
    assert (
        _value(
            sink,
            "github_open_pull_requests",
            repository=REPO,
            isCommunity="true",
            state=ReviewState.NOT_REVIEWED.value,
        )
        == 2
    )
    assert _value(sink, "github_exporter_refresh_failures_total", repository=REPO, phase="issues") == 1


def test_invalid_issue_timestamp_fails_issue_phase_only():
    """Verify a malformed timestamp is recorded as a phase failure and pull requests still refresh."""
    broken = _issue(labels=["bug"])
    broken["createdAt"] = "yesterday"
    executor = FakeExecutor(
        {
            (QueryName.ISSUES, "OPEN"): _pages([broken]),
            (QueryName.PULL_REQUESTS, "OPEN"): _pages([_pr()]),
        }
    )
    watcher, sink = _watcher(executor)

    assert watcher.refresh_metrics() is False

    assert _value(sink, "github_exporter_refresh_failures_total", repository=REPO, phase="issues") == 1
    assert _value(sink, "github_unlabelled_issues", repository=REPO) is None
    assert (
        _value(
            sink,
            "github_open_pull_requests",
            repository=REPO,
            isCommunity="true",
            state=ReviewState.NOT_REVIEWED.value,
        )
        == 1
    )


def test_repeated_labels_observe_each_issue_once():
    """Verify a label listed twice still yields one observation per matching issue."""
    executor = FakeExecutor({(QueryName.ISSUES, "OPEN"): _pages([_issue(labels=["bug"], created=10)])})
    watcher, sink = _watcher(executor, labels=("bug", "bug"))

    watcher.refresh_issues()

    bug = {"label": "bug", "repository": REPO, "isCommunity": "true"}
    assert _value(sink, "github_open_issues_age_days_count", **bug) == 1
