"""
Stats engine: one fetch-and-diff cycle per call.

Fetches /varz and /connz concurrently, diffs the result against the last
successful cycle and returns a Stats record. Failures never raise; they
come back as Stats.error and leave the baseline exactly as it was, so the
next good cycle diffs against the last good one however old it is.

Rate units differ by scope:
  * server-wide rates are per second (delta / elapsed seconds)
  * per-connection rates are raw deltas since the previous cycle
The per-connection numbers only read as "per second" at a 1s delay.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Dict, Optional

from natstop.collector.base import MonitoringSource
from natstop.config import DisplayOptions
from natstop.metrics import (
    ConnectionInfo,
    ConnectionSet,
    ConnRates,
    Rates,
    ServerSnapshot,
    Stats,
)


log = logging.getLogger(__name__)


def compute_rates(
    varz: ServerSnapshot,
    connz: ConnectionSet,
    previous: Optional[Stats],
    previous_conns: Dict[int, ConnectionInfo],
) -> Optional[Rates]:
    """Derive rates between two successful cycles.

    Returns None when there is no baseline yet or the server clock did not
    move forward (tdelta <= 0). Negative values are passed through: they
    mean the server's counters went backwards, e.g. after a restart.
    """
    if previous is None:
        return None

    prev = previous.varz
    tdelta = (varz.now - prev.now).total_seconds()
    if tdelta <= 0:
        log.debug("Skipping rates, non-positive tdelta=%.6fs", tdelta)
        return None

    connections: Dict[int, ConnRates] = {}
    for conn in connz.connections:
        last = previous_conns.get(conn.cid)
        if last is None:
            # New since the last cycle, no baseline
            connections[conn.cid] = ConnRates()
            continue
        connections[conn.cid] = ConnRates(
            in_msgs_rate=float(conn.in_msgs - last.in_msgs),
            out_msgs_rate=float(conn.out_msgs - last.out_msgs),
            in_bytes_rate=float(conn.in_bytes - last.in_bytes),
            out_bytes_rate=float(conn.out_bytes - last.out_bytes),
        )

    return Rates(
        in_msgs_rate=(varz.in_msgs - prev.in_msgs) / tdelta,
        out_msgs_rate=(varz.out_msgs - prev.out_msgs) / tdelta,
        in_bytes_rate=(varz.in_bytes - prev.in_bytes) / tdelta,
        out_bytes_rate=(varz.out_bytes - prev.out_bytes) / tdelta,
        connections=connections,
    )


class StatsEngine:
    """
    Owns the rate baseline (last_stats / last_connz).

    Only fetch_stats() writes the baseline, and the scheduler never runs two
    cycles at once, so no lock is needed. Other components may read it.
    """

    def __init__(
        self,
        source: MonitoringSource,
        conns: int = 1024,
        sort: str = "cid",
        display: Optional[DisplayOptions] = None,
    ) -> None:
        self._source = source
        self.conns = conns
        self.sort = sort
        self.display = display or DisplayOptions()

        self._last_stats: Optional[Stats] = None
        self._last_connz: Dict[int, ConnectionInfo] = {}

        # One worker per endpoint
        self._pool = ThreadPoolExecutor(max_workers=2, thread_name_prefix="natstop-fetch")

    @property
    def source(self) -> MonitoringSource:
        return self._source

    @property
    def last_stats(self) -> Optional[Stats]:
        """Last successful cycle, or None before the first one."""
        return self._last_stats

    @property
    def last_connz(self) -> Dict[int, ConnectionInfo]:
        return self._last_connz

    def fetch_stats(self) -> Stats:
        """Run one cycle. Never raises; failures land in Stats.error."""
        subs = self.display.display_subs
        varz_future = self._pool.submit(self._source.fetch_varz)
        connz_future = self._pool.submit(self._source.fetch_connz, self.conns, self.sort, subs)

        # Both must finish before we look at either
        wait([varz_future, connz_future])

        try:
            varz = varz_future.result()
            connz = connz_future.result()
        except Exception as e:
            log.info("Fetch cycle failed: %s", e)
            return Stats(varz=ServerSnapshot(), connz=ConnectionSet(), rates=None, error=str(e) or repr(e))

        rates = compute_rates(varz, connz, self._last_stats, self._last_connz)
        stats = Stats(varz=varz, connz=connz, rates=rates)

        self._last_stats = stats
        # Rebuilt rather than merged so closed connections drop out
        self._last_connz = {conn.cid: conn for conn in connz.connections}

        log.debug(
            "Cycle ok: %d/%d connections, rates=%s",
            len(connz.connections),
            connz.num_connections,
            "yes" if rates is not None else "no",
        )
        return stats

    def close(self):
        self._pool.shutdown(wait=True)
