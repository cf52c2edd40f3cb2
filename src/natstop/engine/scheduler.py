"""Refresh scheduler: drives the stats engine on a fixed cadence."""

from __future__ import annotations

import logging
import threading
from typing import Optional

from natstop.engine.stats_engine import StatsEngine
from natstop.metrics import Stats


log = logging.getLogger(__name__)


class StatsScheduler:
    """
    Runs StatsEngine.fetch_stats() in a daemon thread and publishes the
    newest Stats to a single slot.

    Cycles are strictly sequential. The slot is swapped as one object, so a
    reader sees either the previous Stats or the new one, never a mix.
    """

    def __init__(
        self,
        engine: StatsEngine,
        delay: float = 1.0,
        max_cycles: Optional[int] = None,
    ) -> None:
        """
        Args:
            engine: The engine to drive. The scheduler does not close it.
            delay: Seconds to wait between the end of one cycle and the next.
            max_cycles: Stop on its own after this many cycles (None = forever).
        """
        self._engine = engine
        self._delay = delay
        self._max_cycles = max_cycles
        self._stop_event = threading.Event()
        self._published = threading.Event()
        self._thread: Optional[threading.Thread] = None
        self._latest: Optional[Stats] = None
        self._cycles = 0

    @property
    def engine(self) -> StatsEngine:
        return self._engine

    @property
    def delay(self) -> float:
        return self._delay

    @property
    def latest(self) -> Optional[Stats]:
        """Most recent Stats, or None before the first cycle completes."""
        return self._latest

    @property
    def last_good(self) -> Optional[Stats]:
        """Most recent successful Stats (the engine's rate baseline)."""
        return self._engine.last_stats

    @property
    def cycles(self) -> int:
        return self._cycles

    @property
    def is_running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.is_running:
            return

        self._stop_event.clear()
        self._thread = threading.Thread(
            target=self._poll_loop,
            daemon=True,
            name="StatsScheduler",
        )
        self._thread.start()
        log.debug("Scheduler started: delay=%.1fs, max_cycles=%s", self._delay, self._max_cycles)

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        """
        Ask the loop to finish and wait for it.

        A fetch already in flight is allowed to complete; only the
        inter-cycle wait is cut short.
        """
        self._stop_event.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            if self._thread.is_alive():
                log.warning("Scheduler thread still busy after %.1fs", timeout or 0)
            self._thread = None
        log.debug("Scheduler stopped after %d cycles", self._cycles)

    def wait_for_stats(self, timeout: Optional[float] = None) -> Optional[Stats]:
        """Block until the first Stats is published (or timeout)."""
        self._published.wait(timeout=timeout)
        return self._latest

    def run_once(self) -> Stats:
        """One-shot mode: a single synchronous cycle, no thread."""
        stats = self._engine.fetch_stats()
        self._publish(stats)
        return stats

    def _publish(self, stats: Stats) -> None:
        self._latest = stats
        self._cycles += 1
        self._published.set()

    def _poll_loop(self) -> None:
        while not self._stop_event.is_set():
            try:
                stats = self._engine.fetch_stats()
            except Exception as e:
                # fetch_stats() should not raise; keep the loop alive if it does
                log.exception("Unexpected error in stats cycle")
                stats = Stats(error=str(e) or repr(e))
            self._publish(stats)

            if self._max_cycles is not None and self._cycles >= self._max_cycles:
                log.debug("Reached max_cycles=%d", self._max_cycles)
                break

            # Wait for delay seconds or until stop is requested
            self._stop_event.wait(timeout=self._delay)
