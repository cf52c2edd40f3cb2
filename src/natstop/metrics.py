"""
Core record definitions for natstop.

These mirror what the NATS server exposes at its /varz and /connz
monitoring endpoints, plus the rates we derive between two polls.
Everything here is a frozen snapshot; a poll never edits an older one.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Tuple


EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# The server reports nanoseconds; datetime only keeps microseconds
_FRACTION_RE = re.compile(r"\.(\d+)")


class DecodeError(ValueError):
    """A monitoring response did not match the expected schema."""


def parse_timestamp(value: Any) -> datetime:
    """Parse an RFC 3339 timestamp, truncating sub-microsecond precision."""
    if value is None:
        return EPOCH
    if not isinstance(value, str):
        raise DecodeError(f"timestamp must be a string, got {type(value).__name__}")

    text = value.strip()
    if text.endswith(("Z", "z")):
        text = text[:-1] + "+00:00"
    text = _FRACTION_RE.sub(lambda m: "." + m.group(1)[:6].ljust(6, "0"), text, count=1)

    try:
        parsed = datetime.fromisoformat(text)
    except ValueError as e:
        raise DecodeError(f"invalid timestamp {value!r}") from e

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _int(data: Dict[str, Any], key: str) -> int:
    value = data.get(key)
    if value is None:
        return 0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DecodeError(f"field {key!r} must be numeric, got {value!r}")
    return int(value)


def _float(data: Dict[str, Any], key: str) -> float:
    value = data.get(key)
    if value is None:
        return 0.0
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise DecodeError(f"field {key!r} must be numeric, got {value!r}")
    return float(value)


def _str(data: Dict[str, Any], key: str) -> str:
    value = data.get(key)
    if value is None:
        return ""
    return str(value)


def _require_object(data: Any, what: str) -> Dict[str, Any]:
    if not isinstance(data, dict):
        raise DecodeError(f"{what} must be a JSON object, got {type(data).__name__}")
    return data


@dataclass(frozen=True)
class ServerSnapshot:
    """A single point-in-time reading of /varz."""

    cpu: float = 0.0
    mem: int = 0
    uptime: str = ""

    # Cumulative traffic counters
    in_msgs: int = 0
    out_msgs: int = 0
    in_bytes: int = 0
    out_bytes: int = 0

    slow_consumers: int = 0

    # Identity
    server_id: str = ""
    version: str = ""
    server_name: str = ""

    now: datetime = EPOCH

    @classmethod
    def from_dict(cls, data: Any) -> "ServerSnapshot":
        data = _require_object(data, "/varz response")
        return cls(
            cpu=_float(data, "cpu"),
            mem=_int(data, "mem"),
            uptime=_str(data, "uptime"),
            in_msgs=_int(data, "in_msgs"),
            out_msgs=_int(data, "out_msgs"),
            in_bytes=_int(data, "in_bytes"),
            out_bytes=_int(data, "out_bytes"),
            slow_consumers=_int(data, "slow_consumers"),
            server_id=_str(data, "server_id"),
            version=_str(data, "version"),
            server_name=_str(data, "server_name"),
            now=parse_timestamp(data.get("now")),
        )

    def summary(self) -> dict:
        return {
            "server_id": self.server_id,
            "server_name": self.server_name,
            "version": self.version,
            "uptime": self.uptime,
            "cpu": self.cpu,
            "mem": self.mem,
            "slow_consumers": self.slow_consumers,
            "in_msgs": self.in_msgs,
            "out_msgs": self.out_msgs,
            "in_bytes": self.in_bytes,
            "out_bytes": self.out_bytes,
            "now": self.now.isoformat(),
        }


@dataclass(frozen=True)
class ConnectionInfo:
    """One client connection as reported by /connz."""

    cid: int
    ip: str = ""
    port: int = 0
    name: str = ""
    subscriptions: int = 0
    pending_bytes: int = 0

    in_msgs: int = 0
    out_msgs: int = 0
    in_bytes: int = 0
    out_bytes: int = 0

    lang: str = ""
    version: str = ""
    uptime: str = ""
    last_activity: str = ""

    # Only filled in when /connz was asked for subs=1
    subs: Optional[Tuple[str, ...]] = None

    @classmethod
    def from_dict(cls, data: Any) -> "ConnectionInfo":
        data = _require_object(data, "connection entry")
        # nats-server sends subscriptions_list; "subs" is the older name
        subs = data.get("subscriptions_list", data.get("subs"))
        if subs is not None:
            if not isinstance(subs, list):
                raise DecodeError(f"field 'subscriptions_list' must be a list, got {subs!r}")
            subs = tuple(str(s) for s in subs)

        return cls(
            cid=_int(data, "cid"),
            ip=_str(data, "ip"),
            port=_int(data, "port"),
            name=_str(data, "name"),
            subscriptions=_int(data, "subscriptions"),
            pending_bytes=_int(data, "pending_bytes"),
            in_msgs=_int(data, "in_msgs"),
            out_msgs=_int(data, "out_msgs"),
            in_bytes=_int(data, "in_bytes"),
            out_bytes=_int(data, "out_bytes"),
            lang=_str(data, "lang"),
            version=_str(data, "version"),
            uptime=_str(data, "uptime"),
            last_activity=_str(data, "last_activity"),
            subs=subs,
        )

    def summary(self) -> dict:
        record = {
            "cid": self.cid,
            "ip": self.ip,
            "port": self.port,
            "name": self.name,
            "subscriptions": self.subscriptions,
            "pending_bytes": self.pending_bytes,
            "in_msgs": self.in_msgs,
            "out_msgs": self.out_msgs,
            "in_bytes": self.in_bytes,
            "out_bytes": self.out_bytes,
            "lang": self.lang,
            "version": self.version,
            "uptime": self.uptime,
            "last_activity": self.last_activity,
        }
        if self.subs is not None:
            record["subs"] = list(self.subs)
        return record


@dataclass(frozen=True)
class ConnectionSet:
    """The /connz result. num_connections can exceed len(connections) when the server truncates."""

    num_connections: int = 0
    connections: Tuple[ConnectionInfo, ...] = ()

    @classmethod
    def from_dict(cls, data: Any) -> "ConnectionSet":
        data = _require_object(data, "/connz response")
        conns = data.get("connections")
        if conns is None:
            conns = []
        if not isinstance(conns, list):
            raise DecodeError(f"field 'connections' must be a list, got {type(conns).__name__}")

        return cls(
            num_connections=_int(data, "num_connections"),
            connections=tuple(ConnectionInfo.from_dict(c) for c in conns),
        )


@dataclass(frozen=True)
class ConnRates:
    """Per-connection deltas since the previous cycle (not per second)."""

    in_msgs_rate: float = 0.0
    out_msgs_rate: float = 0.0
    in_bytes_rate: float = 0.0
    out_bytes_rate: float = 0.0

    def summary(self) -> dict:
        return {
            "in_msgs_rate": self.in_msgs_rate,
            "out_msgs_rate": self.out_msgs_rate,
            "in_bytes_rate": self.in_bytes_rate,
            "out_bytes_rate": self.out_bytes_rate,
        }


@dataclass(frozen=True)
class Rates:
    """Server-wide per-second rates plus per-connection deltas keyed by cid."""

    in_msgs_rate: float = 0.0
    out_msgs_rate: float = 0.0
    in_bytes_rate: float = 0.0
    out_bytes_rate: float = 0.0
    connections: Dict[int, ConnRates] = field(default_factory=dict)

    def for_connection(self, cid: int) -> ConnRates:
        return self.connections.get(cid, ConnRates())


@dataclass(frozen=True)
class Stats:
    """Result of one monitoring cycle. error is empty on success."""

    varz: ServerSnapshot = field(default_factory=ServerSnapshot)
    connz: ConnectionSet = field(default_factory=ConnectionSet)
    rates: Optional[Rates] = None
    error: str = ""

    @property
    def ok(self) -> bool:
        return not self.error

    def to_dict(self) -> dict:
        """Return a plain JSON-serialisable dict for the jsonl output."""
        rates = None
        if self.rates is not None:
            rates = {
                "in_msgs_rate": self.rates.in_msgs_rate,
                "out_msgs_rate": self.rates.out_msgs_rate,
                "in_bytes_rate": self.rates.in_bytes_rate,
                "out_bytes_rate": self.rates.out_bytes_rate,
                "connections": {
                    str(cid): cr.summary() for cid, cr in self.rates.connections.items()
                },
            }
        return {
            "varz": self.varz.summary(),
            "connz": {
                "num_connections": self.connz.num_connections,
                "connections": [c.summary() for c in self.connz.connections],
            },
            "rates": rates,
            "error": self.error,
        }
