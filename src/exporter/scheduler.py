"""Round-robin scheduling of repository refreshes."""

from __future__ import annotations

import logging
import threading
from typing import Optional, Protocol, Sequence

logger = logging.getLogger(__name__)


class Refreshable(Protocol):
    def refresh_metrics(self) -> bool:
        ...


class Scheduler:
    """Refreshes one watcher per tick so a full pass takes one period.

    The tick interval is ``period_seconds / len(watchers)``. ``stop`` cancels
    the pending tick; a refresh already in progress runs to completion.
    """

    def __init__(self, watchers: Sequence[Refreshable], period_seconds: float) -> None:
        if not watchers:
            raise ValueError("Scheduler requires at least one watcher.")
        if period_seconds <= 0:
            raise ValueError("Scheduler period must be greater than 0.")

        self._watchers = list(watchers)
        self._index = 0
        self._stopped = threading.Event()
        self.interval_seconds = period_seconds / len(self._watchers)

    @property
    def stopped(self) -> bool:
        return self._stopped.is_set()

    def refresh_all(self) -> None:
        """Refresh every watcher once, synchronously, in configuration order."""
        for watcher in self._watchers:
            if self.stopped:
                return
            watcher.refresh_metrics()

    def tick(self) -> None:
        """Refresh the next watcher in round-robin order."""
        watcher = self._watchers[self._index]
        self._index = (self._index + 1) % len(self._watchers)
        watcher.refresh_metrics()

    def run(self, max_ticks: Optional[int] = None) -> None:
        """Tick every ``interval_seconds`` until ``stop`` is called.

        Args:
            max_ticks: Stop after this many ticks; ``None`` runs until stopped.
        """
        logger.info(
            "Starting refresh loop",
            extra={"watchers": len(self._watchers), "interval_seconds": self.interval_seconds},
        )
        ticks = 0
        while max_ticks is None or ticks < max_ticks:
            if self._stopped.wait(self.interval_seconds):
                break
            self.tick()
            ticks += 1
        logger.info("Refresh loop stopped", extra={"ticks": ticks})

    def stop(self) -> None:
        self._stopped.set()
