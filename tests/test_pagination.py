"""Tests for cursor pagination."""

import sys
from pathlib import Path
from unittest.mock import Mock

import pytest

# Add src directory to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from exporter.errors import PaginationLimitError, TransportError
from exporter.models import FetchSpec, Page, RepositoryCoordinate
from exporter.pagination import Paginator

REPOSITORY = RepositoryCoordinate("acme", "widgets")


def test_fetch_all_follows_cursor_until_no_next_page():
    """Verify pagination continues while hasNextPage is true and accumulates every node."""
    executor = Mock()
    executor.execute.side_effect = [
        Page(nodes=[{"n": 1}, {"n": 2}], has_next_page=True, end_cursor="c1"),
        Page(nodes=[{"n": 3}], has_next_page=True, end_cursor="c2"),
        Page(nodes=[{"n": 4}], has_next_page=False, end_cursor="c3"),
    ]

    nodes = Paginator(executor).fetch_all(FetchSpec.issues(REPOSITORY, state="OPEN"))

    assert nodes == [{"n": 1}, {"n": 2}, {"n": 3}, {"n": 4}]
    afters = [call.args[1]["after"] for call in executor.execute.call_args_list]
    assert afters == [None, "c1", "c2"]


def test_fetch_all_single_page_makes_one_call():
    """Verify a page without hasNextPage ends the fetch immediately."""
    executor = Mock()
    executor.execute.return_value = Page(nodes=[], has_next_page=False)

    nodes = Paginator(executor).fetch_all(FetchSpec.pull_requests(REPOSITORY, state="OPEN"))

    assert nodes == []
    assert executor.execute.call_count == 1


def test_fetch_all_stops_when_predicate_matches_last_node():
    """Verify early termination evaluates the last node of each page."""
    executor = Mock()
    executor.execute.side_effect = [
        Page(nodes=[{"age": 1}, {"age": 3}], has_next_page=True, end_cursor="c1"),
        Page(nodes=[{"age": 5}, {"age": 10}], has_next_page=True, end_cursor="c2"),
        Page(nodes=[{"age": 12}], has_next_page=False),
    ]
    spec = FetchSpec.merged_or_closed_pull_requests(REPOSITORY, stop_when=lambda node: node["age"] > 7)

    nodes = Paginator(executor).fetch_all(spec)

    assert nodes == [{"age": 1}, {"age": 3}, {"age": 5}, {"age": 10}]
    assert executor.execute.call_count == 2


def test_fetch_all_propagates_transport_errors():
    """Verify a failed page fails the whole fetch."""
    executor = Mock()
    executor.execute.side_effect = [
        Page(nodes=[{"n": 1}], has_next_page=True, end_cursor="c1"),
        TransportError("boom"),
    ]

    with pytest.raises(TransportError):
        Paginator(executor).fetch_all(FetchSpec.issues(REPOSITORY, state="OPEN"))


def test_fetch_all_enforces_page_ceiling():
    """Verify a remote that never stops paginating hits the page ceiling."""
    executor = Mock()
    executor.execute.return_value = Page(nodes=[{"n": 1}], has_next_page=True, end_cursor="same")

    with pytest.raises(PaginationLimitError):
        Paginator(executor, max_pages=3).fetch_all(FetchSpec.issues(REPOSITORY, state="OPEN"))

    assert executor.execute.call_count == 3
