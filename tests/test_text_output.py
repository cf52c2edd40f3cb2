"""Tests for the plain-text and delimited one-shot outputs."""

import csv
import io
from datetime import datetime, timezone

from natstop.config import DisplayOptions
from natstop.dashboard.formatting import NO_RATE
from natstop.dashboard.text import generate_delimited, generate_plain_text, header_lines
from natstop.metrics import ConnectionInfo, ConnectionSet, ConnRates, Rates, ServerSnapshot, Stats


def _stats(rates=True, error="", conns=None) -> Stats:
    varz = ServerSnapshot(
        server_id="NABC",
        server_name="nats-1",
        version="2.10.7",
        uptime="3h",
        cpu=4.25,
        mem=2097152,
        in_msgs=1500,
        out_msgs=20,
        in_bytes=2097152,
        out_bytes=512,
        slow_consumers=1,
        now=datetime(2024, 5, 1, tzinfo=timezone.utc),
    )
    if conns is None:
        conns = (
            ConnectionInfo(cid=1, ip="127.0.0.1", port=4000, name="orders", subscriptions=1,
                           out_msgs=10, in_msgs=20, subs=("orders.*",),
                           last_activity="2024-05-01T12:00:00Z"),
        )
    connz = ConnectionSet(num_connections=len(conns), connections=tuple(conns))
    r = None
    if rates:
        r = Rates(
            in_msgs_rate=12.34,
            out_msgs_rate=0.0,
            in_bytes_rate=2097152.0,
            out_bytes_rate=100.0,
            connections={1: ConnRates(out_msgs_rate=4, in_msgs_rate=5)},
        )
    return Stats(varz=varz, connz=connz, rates=r, error=error)


def test_plain_text_header_values():
    text = generate_plain_text(_stats(), DisplayOptions())

    assert text.startswith("NATS server version 2.10.7 (uptime: 3h)\n")
    assert "Server: nats-1" in text
    assert "ID:   NABC" in text
    assert "CPU:  4.2%" in text or "CPU:  4.3%" in text
    assert "Memory: 2.0M" in text
    assert "Msgs: 1.5K  Bytes: 2.0M  Msgs/Sec: 12.3  Bytes/Sec: 2.0M" in text
    assert "Connections Polled: 1" in text


def test_plain_text_row_is_tab_separated():
    text = generate_plain_text(_stats(), DisplayOptions())
    lines = text.splitlines()

    header_idx = next(i for i, line in enumerate(lines) if line.startswith("HOST\t"))
    row = lines[header_idx + 1].split("\t")

    assert row[0] == "127.0.0.1:4000"
    assert row[1] == "1"
    assert row[2] == "orders"
    assert row[-1] == "2024/05/01 12:00"


def test_plain_text_without_rates_says_so():
    text = generate_plain_text(_stats(rates=False), DisplayOptions())
    assert f"Msgs/Sec: {NO_RATE}" in text
    assert f"Bytes/Sec: {NO_RATE}" in text


def test_plain_text_rate_mode_uses_connection_deltas():
    text = generate_plain_text(_stats(), DisplayOptions(show_rates=True))
    lines = text.splitlines()
    assert "OUT_MSGS_RATE" in lines[-2]
    assert lines[-1].split("\t")[5:7] == ["4", "5"]


def test_plain_text_shows_error_with_data():
    text = generate_plain_text(_stats(error="/connz: timed out"), DisplayOptions())
    assert text.splitlines()[0].endswith("/connz: timed out")


def test_plain_text_zero_connections():
    text = generate_plain_text(_stats(conns=()), DisplayOptions())
    lines = text.splitlines()
    assert "Connections Polled: 0" in text
    assert lines[-1].startswith("HOST\t")


def test_raw_bytes_mode():
    text = generate_plain_text(_stats(), DisplayOptions(raw_bytes=True))
    assert "Msgs: 1500  Bytes: 2097152" in text
    # Memory always stays human-readable
    assert "Memory: 2.0M" in text


def test_delimited_parses_as_csv():
    out = generate_delimited(_stats(), DisplayOptions(display_subs=True), ",")
    rows = list(csv.reader(io.StringIO(out)))

    assert rows[0][:2] == ["NATS server version", "2.10.7"]
    header = next(r for r in rows if r and r[0] == "HOST")
    data = rows[rows.index(header) + 1]
    assert header[-1] == "SUBSCRIPTIONS"
    assert data[-1] == "orders.*"
    assert len(data) == len(header)


def test_delimited_quotes_fields_containing_delimiter():
    conns = (ConnectionInfo(cid=2, ip="10.0.0.1", port=1, subs=("a", "b")),)
    out = generate_delimited(_stats(conns=conns), DisplayOptions(display_subs=True), ",")
    rows = list(csv.reader(io.StringIO(out)))
    assert rows[-1][-1] == "a, b"


def test_delimited_custom_delimiter():
    out = generate_delimited(_stats(), DisplayOptions(), ";")
    assert "Connections Polled;1" in out
    assert "HOST;CID;NAME" in out


def test_delimited_without_rates():
    out = generate_delimited(_stats(rates=False), DisplayOptions(), ",")
    in_row = next(r for r in csv.reader(io.StringIO(out)) if r and r[0] == "In")
    assert in_row[6] == NO_RATE
    assert in_row[8] == NO_RATE


def test_same_numbers_in_plain_and_delimited():
    stats = _stats()
    display = DisplayOptions(show_rates=True)

    plain = generate_plain_text(stats, display)
    delimited = generate_delimited(stats, display, ",")
    in_row = next(r for r in csv.reader(io.StringIO(delimited)) if r and r[0] == "In")

    assert f"Msgs/Sec: {in_row[6]}" in plain
    assert f"Bytes/Sec: {in_row[8]}" in plain
    assert in_row[6] == "12.3"


def test_header_lines_count():
    assert len(header_lines(_stats(), DisplayOptions())) == 8
