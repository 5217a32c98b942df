"""Cursor pagination over GraphQL connection queries."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional, Protocol

from .errors import PaginationLimitError
from .models import FetchSpec, Page, QueryName

logger = logging.getLogger(__name__)


class QueryExecutor(Protocol):
    def execute(self, query_name: QueryName, variables: Dict[str, Any]) -> Page:
        ...


class Paginator:
    """Drives a query executor until a logical fetch is complete."""

    DEFAULT_MAX_PAGES = 1000

    def __init__(self, executor: QueryExecutor, max_pages: int = DEFAULT_MAX_PAGES) -> None:
        self._executor = executor
        self._max_pages = max_pages

    def fetch_all(self, spec: FetchSpec) -> List[Dict[str, Any]]:
        """Collect every node of a fetch, in the order the remote delivers them.

        Pagination continues while the remote reports ``hasNextPage``. When
        ``spec.stop_when`` is set it is evaluated against the last node of each
        page, and a match ends the fetch after that page; this relies on the
        remote returning items in the order the predicate expects.

        Raises:
            TransportError: If any page fails; nothing is returned in that case.
            PaginationLimitError: If more than ``max_pages`` pages would be fetched.
        """
        nodes: List[Dict[str, Any]] = []
        cursor: Optional[str] = None
        pages = 0

        while True:
            if pages >= self._max_pages:
                raise PaginationLimitError(
                    f"Fetching {spec.query.value} for {spec.repository} exceeded {self._max_pages} pages."
                )

            page = self._executor.execute(spec.query, spec.variables(after=cursor))
            pages += 1
            nodes.extend(page.nodes)

            if not page.has_next_page:
                break

            if spec.stop_when is not None and page.nodes and spec.stop_when(page.nodes[-1]):
                logger.debug(
                    "Stopping pagination early",
                    extra={"query": spec.query.value, "repository": str(spec.repository), "pages": pages},
                )
                break

            cursor = page.end_cursor

        logger.debug(
            "Fetched paginated results",
            extra={
                "query": spec.query.value,
                "repository": str(spec.repository),
                "state": spec.state,
                "pages": pages,
                "nodes": len(nodes),
            },
        )
        return nodes
