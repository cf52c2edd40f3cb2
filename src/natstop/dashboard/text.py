"""
Plain-text and delimited renderings of a single Stats capture.

Used by the one-shot `--output` mode; the header lines are also reused by
the Rich dashboard so every output path shows the same numbers.
"""

from __future__ import annotations

import csv
import io
from typing import List

from natstop.config import DisplayOptions
from natstop.dashboard.formatting import (
    connection_headers,
    connection_row,
    format_bytes_rate,
    format_msgs_rate,
    nsize,
    psize,
)
from natstop.metrics import Stats


def _traffic_values(stats: Stats, raw: bool) -> dict:
    varz, rates = stats.varz, stats.rates
    return {
        "in_msgs": nsize(raw, varz.in_msgs),
        "in_bytes": psize(raw, varz.in_bytes),
        "in_msgs_rate": format_msgs_rate(rates.in_msgs_rate if rates else None),
        "in_bytes_rate": format_bytes_rate(raw, rates.in_bytes_rate if rates else None),
        "out_msgs": nsize(raw, varz.out_msgs),
        "out_bytes": psize(raw, varz.out_bytes),
        "out_msgs_rate": format_msgs_rate(rates.out_msgs_rate if rates else None),
        "out_bytes_rate": format_bytes_rate(raw, rates.out_bytes_rate if rates else None),
    }


def header_lines(stats: Stats, display: DisplayOptions) -> List[str]:
    """The server summary block shown above the connection table."""
    varz = stats.varz
    v = _traffic_values(stats, display.raw_bytes)

    title = f"NATS server version {varz.version} (uptime: {varz.uptime})"
    if stats.error:
        title += f" {stats.error}"

    return [
        title,
        f"Server: {varz.server_name}",
        f"  ID:   {varz.server_id}",
        f"  Load: CPU:  {varz.cpu:.1f}%  Memory: {psize(False, varz.mem)}  "
        f"Slow Consumers: {varz.slow_consumers}",
        f"  In:   Msgs: {v['in_msgs']}  Bytes: {v['in_bytes']}  "
        f"Msgs/Sec: {v['in_msgs_rate']}  Bytes/Sec: {v['in_bytes_rate']}",
        f"  Out:  Msgs: {v['out_msgs']}  Bytes: {v['out_bytes']}  "
        f"Msgs/Sec: {v['out_msgs_rate']}  Bytes/Sec: {v['out_bytes_rate']}",
        "",
        f"Connections Polled: {stats.connz.num_connections}",
    ]


def generate_plain_text(stats: Stats, display: DisplayOptions) -> str:
    """Tab-separated paragraph: header block, column names, one line per connection."""
    lines = header_lines(stats, display)
    lines.append("\t".join(connection_headers(display)))
    for conn in stats.connz.connections:
        lines.append("\t".join(connection_row(conn, stats.rates, display)))
    return "\n".join(lines) + "\n"


def generate_delimited(stats: Stats, display: DisplayOptions, delimiter: str = ",") -> str:
    """Same content as the plain text, written through csv with the given delimiter."""
    varz = stats.varz
    v = _traffic_values(stats, display.raw_bytes)

    buf = io.StringIO()
    writer = csv.writer(buf, delimiter=delimiter, lineterminator="\n")

    writer.writerow(["NATS server version", varz.version, f"(uptime: {varz.uptime})", stats.error])
    writer.writerow(["Server:", varz.server_name])
    writer.writerow(["ID", varz.server_id])
    writer.writerow([
        "Load", "CPU", f"{varz.cpu:.1f}%",
        "Memory", psize(False, varz.mem),
        "Slow Consumers", varz.slow_consumers,
    ])
    writer.writerow([
        "In", "Msgs", v["in_msgs"], "Bytes", v["in_bytes"],
        "Msgs/Sec", v["in_msgs_rate"], "Bytes/Sec", v["in_bytes_rate"],
    ])
    writer.writerow([
        "Out", "Msgs", v["out_msgs"], "Bytes", v["out_bytes"],
        "Msgs/Sec", v["out_msgs_rate"], "Bytes/Sec", v["out_bytes_rate"],
    ])
    writer.writerow([])
    writer.writerow(["Connections Polled", stats.connz.num_connections])

    writer.writerow(connection_headers(display))
    for conn in stats.connz.connections:
        writer.writerow(connection_row(conn, stats.rates, display))

    return buf.getvalue()
