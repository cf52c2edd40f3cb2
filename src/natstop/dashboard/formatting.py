"""Value formatting shared by the table, plain-text and delimited renderers."""

from __future__ import annotations

import socket
from typing import Dict, Optional

from natstop.config import DisplayOptions
from natstop.metrics import ConnectionInfo, ConnRates, DecodeError, Rates, parse_timestamp


# Shown wherever a rate is asked for but no baseline exists yet.
# Distinct from "0" so a fresh dashboard never looks like an idle server.
NO_RATE = "n/a"

_KIB = 1024.0
_MIB = _KIB * 1024
_GIB = _MIB * 1024

_K = 1000.0
_M = _K * 1000
_B = _M * 1000
_T = _B * 1000

# Append-only; a race between two lookups of one address writes the same value
_dns_cache: Dict[str, str] = {}


def psize(raw: bool, size: int) -> str:
    """Byte size as text: 1023 -> "1023", 2097152 -> "2.0M"."""
    if raw or size < _KIB:
        return str(int(size))
    if size < _MIB:
        return f"{size / _KIB:.1f}K"
    if size < _GIB:
        return f"{size / _MIB:.1f}M"
    return f"{size / _GIB:.1f}G"


def nsize(raw: bool, count: int) -> str:
    """Message count as text using decimal units: 1500 -> "1.5K"."""
    if raw or count < _K:
        return str(int(count))
    if count < _M:
        return f"{count / _K:.1f}K"
    if count < _B:
        return f"{count / _M:.1f}M"
    if count < _T:
        return f"{count / _B:.1f}B"
    return f"{count / _T:.1f}T"


def format_msgs_rate(value: Optional[float]) -> str:
    if value is None:
        return NO_RATE
    return f"{value:.1f}"


def format_bytes_rate(raw: bool, value: Optional[float]) -> str:
    if value is None:
        return NO_RATE
    return psize(raw, int(value))


def format_last_activity(value: str) -> str:
    """ISO timestamp -> "YYYY/MM/DD HH:MM" in its own offset. Bad input passes through."""
    if not value:
        return value

    try:
        return parse_timestamp(value).strftime("%Y/%m/%d %H:%M")
    except DecodeError:
        return value


def dns_lookup(ip: str) -> str:
    """Reverse-resolve an address, caching the answer (or the failure) forever."""
    cached = _dns_cache.get(ip)
    if cached is not None:
        return cached

    try:
        hostname = socket.gethostbyaddr(ip)[0]
    except (OSError, UnicodeError):
        hostname = ip

    _dns_cache[ip] = hostname
    return hostname


def host_column(conn: ConnectionInfo, lookup_dns: bool) -> str:
    if lookup_dns:
        return dns_lookup(conn.ip)
    return f"{conn.ip}:{conn.port}"


def subs_column(conn: ConnectionInfo) -> str:
    return ", ".join(conn.subs) if conn.subs else ""


def traffic_columns(
    conn: ConnectionInfo,
    rates: Optional[Rates],
    show_rates: bool,
    raw: bool,
) -> list:
    """The four traffic cells for a row: msgs to/from, bytes to/from.

    "To" is what the server sent the client (out_*), "from" what it received.
    """
    if not show_rates:
        return [
            nsize(raw, conn.out_msgs),
            nsize(raw, conn.in_msgs),
            psize(raw, conn.out_bytes),
            psize(raw, conn.in_bytes),
        ]

    if rates is None:
        return [NO_RATE] * 4

    cr: ConnRates = rates.for_connection(conn.cid)
    return [
        nsize(raw, int(cr.out_msgs_rate)),
        nsize(raw, int(cr.in_msgs_rate)),
        psize(raw, int(cr.out_bytes_rate)),
        psize(raw, int(cr.in_bytes_rate)),
    ]


def traffic_headers(show_rates: bool) -> list:
    if show_rates:
        return ["OUT_MSGS_RATE", "IN_MSGS_RATE", "OUT_BYTES_RATE", "IN_BYTES_RATE"]
    return ["MSGS_TO", "MSGS_FROM", "BYTES_TO", "BYTES_FROM"]


def connection_headers(display: DisplayOptions) -> list:
    headers = ["HOST", "CID", "NAME", "SUBS", "PENDING"]
    headers += traffic_headers(display.show_rates)
    headers += ["LANG", "VERSION", "UPTIME", "LAST_ACTIVITY"]
    if display.display_subs:
        headers.append("SUBSCRIPTIONS")
    return headers


def connection_row(conn: ConnectionInfo, rates: Optional[Rates], display: DisplayOptions) -> list:
    """One connection as a list of cells matching connection_headers()."""
    raw = display.raw_bytes
    row = [
        host_column(conn, display.lookup_dns),
        str(conn.cid),
        conn.name,
        str(conn.subscriptions),
        nsize(raw, conn.pending_bytes),
    ]
    row += traffic_columns(conn, rates, display.show_rates, raw)
    row += [conn.lang, conn.version, conn.uptime, format_last_activity(conn.last_activity)]
    if display.display_subs:
        row.append(subs_column(conn))
    return row
