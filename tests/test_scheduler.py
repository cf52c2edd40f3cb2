"""Tests for the refresh scheduler."""

import threading
import time
from datetime import datetime, timedelta, timezone

from natstop.collector.base import FetchError, MonitoringSource
from natstop.engine.scheduler import StatsScheduler
from natstop.engine.stats_engine import StatsEngine
from natstop.metrics import ConnectionSet, ServerSnapshot, Stats

T0 = datetime(2024, 5, 1, 12, 0, 0, tzinfo=timezone.utc)


class CountingSource(MonitoringSource):
    """Every /varz call advances one second and ten messages."""

    def __init__(self, fail_after=None):
        self.calls = 0
        self.fail_after = fail_after
        self._lock = threading.Lock()

    def fetch_varz(self):
        with self._lock:
            self.calls += 1
            n = self.calls
        if self.fail_after is not None and n > self.fail_after:
            raise FetchError("/varz", ConnectionError("refused"))
        return ServerSnapshot(in_msgs=n * 10, now=T0 + timedelta(seconds=n))

    def fetch_connz(self, limit, sort, subs=False):
        return ConnectionSet()

    def name(self):
        return "counting"


class SlowSource(CountingSource):
    """Takes a while to answer so stop() lands mid-fetch."""

    def __init__(self, seconds):
        super().__init__()
        self.seconds = seconds
        self.started = threading.Event()
        self.finished = threading.Event()

    def fetch_varz(self):
        self.started.set()
        time.sleep(self.seconds)
        snap = super().fetch_varz()
        self.finished.set()
        return snap


def _scheduler(source, delay=0.01, max_cycles=None) -> StatsScheduler:
    return StatsScheduler(StatsEngine(source), delay=delay, max_cycles=max_cycles)


def test_latest_is_none_before_first_cycle():
    scheduler = _scheduler(CountingSource())
    assert scheduler.latest is None
    assert scheduler.cycles == 0
    assert not scheduler.is_running


def test_run_once_is_synchronous_single_cycle():
    source = CountingSource()
    scheduler = _scheduler(source)

    stats = scheduler.run_once()

    assert isinstance(stats, Stats)
    assert source.calls == 1
    assert scheduler.latest is stats
    assert scheduler.cycles == 1
    assert not scheduler.is_running


def test_loop_publishes_and_computes_rates():
    scheduler = _scheduler(CountingSource(), max_cycles=3)
    scheduler.start()
    scheduler._thread.join(timeout=5)

    assert scheduler.cycles == 3
    assert scheduler.latest.rates is not None
    assert scheduler.latest.rates.in_msgs_rate == 10.0
    scheduler.stop()


def test_max_cycles_stops_the_loop():
    source = CountingSource()
    scheduler = _scheduler(source, max_cycles=2)
    scheduler.start()
    scheduler._thread.join(timeout=5)

    assert not scheduler.is_running
    assert source.calls == 2
    scheduler.stop()


def test_stop_interrupts_a_long_delay():
    scheduler = _scheduler(CountingSource(), delay=60)
    scheduler.start()
    assert scheduler.wait_for_stats(timeout=5) is not None

    started = time.monotonic()
    scheduler.stop(timeout=5)
    elapsed = time.monotonic() - started

    assert elapsed < 2
    assert not scheduler.is_running
    assert scheduler.cycles == 1


def test_stop_lets_in_flight_fetch_finish():
    source = SlowSource(seconds=0.3)
    scheduler = _scheduler(source, delay=60)
    scheduler.start()
    assert source.started.wait(timeout=5)

    scheduler.stop(timeout=5)

    assert source.finished.is_set()
    assert scheduler.cycles == 1
    assert scheduler.latest.error == ""


def test_errors_do_not_stop_the_loop():
    source = CountingSource(fail_after=1)
    scheduler = _scheduler(source, max_cycles=4)
    scheduler.start()
    scheduler._thread.join(timeout=5)

    assert scheduler.cycles == 4
    assert "refused" in scheduler.latest.error
    # Baseline is still the one good cycle
    assert scheduler.last_good.varz.in_msgs == 10
    scheduler.stop()


def test_start_twice_is_harmless():
    scheduler = _scheduler(CountingSource(), delay=60)
    scheduler.start()
    first = scheduler._thread
    scheduler.start()
    assert scheduler._thread is first
    scheduler.stop()


def test_wait_for_stats_times_out_without_start():
    scheduler = _scheduler(CountingSource())
    assert scheduler.wait_for_stats(timeout=0.05) is None
