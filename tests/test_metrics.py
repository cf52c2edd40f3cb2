"""Tests for record decoding and serialisation."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from natstop.metrics import (
    EPOCH,
    ConnectionSet,
    ConnRates,
    DecodeError,
    Rates,
    ServerSnapshot,
    Stats,
    parse_timestamp,
)


def test_parse_timestamp_truncates_nanoseconds():
    ts = parse_timestamp("2024-05-01T12:00:00.123456789Z")
    assert ts == datetime(2024, 5, 1, 12, 0, 0, 123456, tzinfo=timezone.utc)


def test_parse_timestamp_keeps_offset():
    ts = parse_timestamp("2024-05-01T21:00:00.5+09:00")
    assert ts.utcoffset() == timedelta(hours=9)
    assert ts.microsecond == 500000


def test_parse_timestamp_without_fraction():
    assert parse_timestamp("2024-05-01T12:00:00Z").second == 0


def test_parse_timestamp_missing_is_epoch():
    assert parse_timestamp(None) == EPOCH


def test_parse_timestamp_rejects_garbage():
    with pytest.raises(DecodeError):
        parse_timestamp("yesterday")
    with pytest.raises(DecodeError):
        parse_timestamp(12345)


def test_varz_from_dict():
    varz = ServerSnapshot.from_dict({
        "server_id": "NABC",
        "server_name": "n1",
        "version": "2.10.7",
        "uptime": "5m",
        "cpu": 12.5,
        "mem": 1024,
        "in_msgs": 10,
        "out_msgs": 20,
        "in_bytes": 30,
        "out_bytes": 40,
        "slow_consumers": 2,
        "now": "2024-05-01T12:00:00Z",
        "unknown_field": {"ignored": True},
    })
    assert varz.cpu == 12.5
    assert varz.out_bytes == 40
    assert varz.slow_consumers == 2
    assert varz.server_name == "n1"


def test_varz_missing_fields_default_to_zero():
    varz = ServerSnapshot.from_dict({})
    assert varz == ServerSnapshot()
    assert varz.now == EPOCH


def test_varz_rejects_non_object():
    with pytest.raises(DecodeError):
        ServerSnapshot.from_dict([1, 2, 3])


def test_varz_rejects_non_numeric_counter():
    with pytest.raises(DecodeError):
        ServerSnapshot.from_dict({"out_msgs": "12"})


def test_connz_from_dict_preserves_order_and_subs():
    connz = ConnectionSet.from_dict({
        "num_connections": 10,
        "connections": [
            {"cid": 9, "ip": "10.0.0.1", "port": 4000, "subs": ["a.b", "c.>"]},
            {"cid": 2, "ip": "10.0.0.2", "port": 4001},
        ],
    })
    assert connz.num_connections == 10
    assert [c.cid for c in connz.connections] == [9, 2]
    assert connz.connections[0].subs == ("a.b", "c.>")
    assert connz.connections[1].subs is None


def test_connz_null_connections_is_empty():
    connz = ConnectionSet.from_dict({"num_connections": 0, "connections": None})
    assert connz.connections == ()


def test_connz_rejects_bad_connections_field():
    with pytest.raises(DecodeError):
        ConnectionSet.from_dict({"connections": {"cid": 1}})


def test_snapshots_are_immutable():
    varz = ServerSnapshot()
    with pytest.raises(AttributeError):
        varz.in_msgs = 5


def test_rates_for_unknown_connection_is_zero():
    rates = Rates(connections={1: ConnRates(in_msgs_rate=4)})
    assert rates.for_connection(1).in_msgs_rate == 4
    assert rates.for_connection(99) == ConnRates()


def test_stats_to_dict_is_json_serialisable():
    stats = Stats(
        varz=ServerSnapshot(in_msgs=5),
        connz=ConnectionSet.from_dict({"num_connections": 1, "connections": [{"cid": 3}]}),
        rates=Rates(in_msgs_rate=1.5, connections={3: ConnRates(out_msgs_rate=2)}),
    )
    record = json.loads(json.dumps(stats.to_dict()))

    assert record["varz"]["in_msgs"] == 5
    assert record["connz"]["connections"][0]["cid"] == 3
    assert record["rates"]["in_msgs_rate"] == 1.5
    assert record["rates"]["connections"]["3"]["out_msgs_rate"] == 2
    assert record["error"] == ""


def test_stats_to_dict_without_rates():
    record = Stats(error="boom").to_dict()
    assert record["rates"] is None
    assert record["error"] == "boom"


def test_connz_reads_subscriptions_list():
    connz = ConnectionSet.from_dict({
        "num_connections": 1,
        "connections": [
            {"cid": 4, "subscriptions": 2, "subscriptions_list": ["orders.>", "_INBOX.x"]},
        ],
    })
    assert connz.connections[0].subs == ("orders.>", "_INBOX.x")


def test_connz_subscriptions_list_wins_over_subs():
    conn = ConnectionSet.from_dict({
        "connections": [{"cid": 4, "subscriptions_list": ["a"], "subs": ["b"]}],
    }).connections[0]
    assert conn.subs == ("a",)
