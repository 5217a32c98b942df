"""Prometheus metric definitions and the per-repository metric sink.

Every metric lives on a ``CollectorRegistry`` owned by one ``MetricSink``
instance that is shared by the watchers and the exposition server. Series
are always labeled with ``repository`` so that one repository's series can
be cleared and repopulated without touching the others:

1. ``reset(metric, repository)`` removes every label combination previously
   published for that repository.
2. The caller repopulates with ``observe``/``set``/``inc``/``zero``.

A scrape that lands between the two steps sees the repository's series
missing or partially filled; scrapers tolerate that for one interval.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import Dict, Optional, Sequence, Set, Tuple, Union

from prometheus_client import (
    CollectorRegistry,
    Counter,
    Gauge,
    GCCollector,
    Histogram,
    PlatformCollector,
    ProcessCollector,
    generate_latest,
)

logger = logging.getLogger(__name__)

Metric = Union[Counter, Gauge, Histogram]

ISSUE_AGE_BUCKETS = (1, 7, 14, 28, 84)
PULL_REQUEST_AGE_BUCKETS = (1, 2, 4, 7, 14)


class MetricSink:
    """Named, labeled counters, gauges and histograms for all watched repositories."""

    def __init__(
        self,
        registry: Optional[CollectorRegistry] = None,
        default_collectors: bool = True,
    ) -> None:
        self.registry = registry if registry is not None else CollectorRegistry()
        self._names: Dict[Metric, str] = {}
        self._labelnames: Dict[Metric, Tuple[str, ...]] = {}
        self._published: Dict[Tuple[Metric, str], Set[Tuple[str, ...]]] = defaultdict(set)

        if default_collectors:
            ProcessCollector(registry=self.registry)
            PlatformCollector(registry=self.registry)
            GCCollector(registry=self.registry)

        # Issues
        self.open_issue_age = self._register(
            Histogram,
            "github_open_issues_age_days",
            "Age in days of open issues tracked against labels.",
            ("label", "repository", "isCommunity"),
            buckets=ISSUE_AGE_BUCKETS,
        )
        self.unlabelled_issues = self._register(
            Gauge,
            "github_unlabelled_issues",
            "The number of open issues with no labels.",
            ("repository",),
        )
        self.closed_issues = self._register(
            Gauge,
            "github_closed_issues",
            "The number of closed issues tracked against labels over the last 7 days.",
            ("label", "repository", "isCommunity"),
        )

        # Pull requests
        self.open_pull_request_age = self._register(
            Histogram,
            "github_open_pull_requests_age_days",
            "Age in days of open, non-draft pull requests.",
            ("repository", "isCommunity"),
            buckets=PULL_REQUEST_AGE_BUCKETS,
        )
        self.time_to_first_review = self._register(
            Histogram,
            "github_pull_request_time_to_first_review_days",
            "Days between opening an open pull request and its first review.",
            ("repository", "isCommunity"),
            buckets=PULL_REQUEST_AGE_BUCKETS,
        )
        self.open_pull_requests = self._register(
            Gauge,
            "github_open_pull_requests",
            "The number of open, non-draft pull requests by review state.",
            ("repository", "isCommunity", "state"),
        )
        self.merged_pull_requests = self._register(
            Counter,
            "github_merged_pull_requests",
            "Pull requests merged over the last 7 days.",
            ("repository", "isCommunity"),
        )
        self.closed_pull_requests = self._register(
            Counter,
            "github_closed_pull_requests",
            "Pull requests closed without merging over the last 7 days.",
            ("repository", "isCommunity"),
        )

        # Exporter health; never reset.
        self.refresh_failures = Counter(
            "github_exporter_refresh_failures",
            "Refresh phases that failed, by repository and phase.",
            ["repository", "phase"],
            registry=self.registry,
        )
        self.last_refresh = Gauge(
            "github_exporter_last_successful_refresh_timestamp_seconds",
            "Unix time of the last successful refresh phase.",
            ["repository", "phase"],
            registry=self.registry,
        )

    def _register(self, metric_type, name: str, documentation: str, labelnames: Sequence[str], **kwargs):
        metric = metric_type(name, documentation, list(labelnames), registry=self.registry, **kwargs)
        self._names[metric] = name
        self._labelnames[metric] = tuple(labelnames)
        return metric

    def _key(self, metric: Metric, labels: Dict[str, str]) -> Tuple[str, ...]:
        key = tuple(str(labels[name]) for name in self._labelnames[metric])
        self._published[(metric, str(labels["repository"]))].add(key)
        return key

    def reset(self, metric: Metric, repository: str) -> None:
        """Remove every series of ``metric`` previously published for ``repository``."""
        published = self._published.pop((metric, repository), set())
        for key in published:
            metric.remove(*key)
        logger.debug(
            "Reset metric series",
            extra={"metric": self._names[metric], "repository": repository, "series": len(published)},
        )

    def zero(self, metric: Metric, **labels: str) -> None:
        """Publish a series at its zero value without recording anything."""
        child = metric.labels(*self._key(metric, labels))
        if isinstance(metric, Gauge):
            child.set(0)

    def observe(self, metric: Histogram, value: float, **labels: str) -> None:
        metric.labels(*self._key(metric, labels)).observe(value)

    def set(self, metric: Gauge, value: float, **labels: str) -> None:
        metric.labels(*self._key(metric, labels)).set(value)

    def inc(self, metric: Union[Counter, Gauge], amount: float = 1, **labels: str) -> None:
        metric.labels(*self._key(metric, labels)).inc(amount)

    def render(self) -> bytes:
        """Render the registry in the Prometheus text exposition format."""
        return generate_latest(self.registry)
