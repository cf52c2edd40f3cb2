"""
Fake NATS monitoring server for running natstop without a broker.

    python -m natstop.mock.fake_nats_server
    natstop -m 8222
"""

from __future__ import annotations

import json
import random
import threading
from datetime import datetime, timezone
from http.server import BaseHTTPRequestHandler, HTTPServer, ThreadingHTTPServer
from urllib.parse import parse_qs, urlparse


_lock = threading.Lock()
_rng = random.Random(42)
_tick = 0

SERVER_ID = "NDJWE4SOUJOJT2TY5Y2YQEOAHGAK5VIGXTGKWJSFHVCII4ITI3LBHBUV"
SERVER_NAME = "fake-nats"
SERVER_VERSION = "2.10.7"

_CLIENTS = [
    {"cid": 3, "ip": "127.0.0.1", "port": 52001, "name": "orders-api", "lang": "go", "version": "1.31.0",
     "subs": ["orders.>", "_INBOX.abc.*"]},
    {"cid": 5, "ip": "127.0.0.1", "port": 52007, "name": "billing", "lang": "python3", "version": "2.6.0",
     "subs": ["billing.invoice"]},
    {"cid": 9, "ip": "10.0.0.12", "port": 40112, "name": "", "lang": "node", "version": "2.19.0",
     "subs": []},
]
# cid -> cumulative counters, grows every /varz poll
_counters = {c["cid"]: {"in_msgs": 0, "out_msgs": 0, "in_bytes": 0, "out_bytes": 0} for c in _CLIENTS}

_SORT_FIELDS = {
    "msgs_to": "out_msgs",
    "msgs_from": "in_msgs",
    "bytes_to": "out_bytes",
    "bytes_from": "in_bytes",
}


def _timestamp() -> str:
    # Same shape as the real server: RFC 3339 with nanoseconds
    now = datetime.now(timezone.utc)
    return now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond:06d}123Z"


def _advance():
    global _tick
    _tick += 1
    for cid, c in _counters.items():
        msgs_in = _rng.randint(5, 50) * cid
        msgs_out = _rng.randint(5, 80) * cid
        c["in_msgs"] += msgs_in
        c["out_msgs"] += msgs_out
        c["in_bytes"] += msgs_in * _rng.randint(64, 512)
        c["out_bytes"] += msgs_out * _rng.randint(64, 512)


def _totals() -> dict:
    totals = {"in_msgs": 0, "out_msgs": 0, "in_bytes": 0, "out_bytes": 0}
    for c in _counters.values():
        for k in totals:
            totals[k] += c[k]
    return totals


def generate_varz() -> dict:
    with _lock:
        _advance()
        totals = _totals()
        tick = _tick
        cpu = round(2.0 + _rng.random() * 10, 1)

    return {
        "server_id": SERVER_ID,
        "server_name": SERVER_NAME,
        "version": SERVER_VERSION,
        "uptime": f"{tick}s",
        "cpu": cpu,
        "mem": 18 * 1024 * 1024 + tick * 4096,
        "slow_consumers": 0,
        "connections": len(_CLIENTS),
        "now": _timestamp(),
        **totals,
    }


def generate_connz(limit: int = 1024, sort: str = "cid", subs: bool = False) -> dict:
    with _lock:
        tick = _tick
        conns = []
        for client in _CLIENTS:
            entry = {
                "cid": client["cid"],
                "ip": client["ip"],
                "port": client["port"],
                "name": client["name"],
                "lang": client["lang"],
                "version": client["version"],
                "subscriptions": len(client["subs"]),
                "pending_bytes": 0,
                "uptime": f"{tick}s",
                "last_activity": _timestamp(),
                **_counters[client["cid"]],
            }
            if subs:
                entry["subscriptions_list"] = list(client["subs"])
            conns.append(entry)

    field = _SORT_FIELDS.get(sort)
    if field:
        conns.sort(key=lambda c: c[field], reverse=True)

    return {
        "server_id": SERVER_ID,
        "now": _timestamp(),
        "num_connections": len(conns),
        "total": len(conns),
        "offset": 0,
        "limit": limit,
        "connections": conns[:limit],
    }


class _MonitorHandler(BaseHTTPRequestHandler):
    def do_GET(self):
        url = urlparse(self.path)
        query = parse_qs(url.query)

        if url.path == "/varz":
            payload = generate_varz()
        elif url.path == "/connz":
            limit = int(query.get("limit", ["1024"])[0])
            sort = query.get("sort", ["cid"])[0]
            subs = query.get("subs", ["0"])[0] in ("1", "true")
            payload = generate_connz(limit=limit, sort=sort, subs=subs)
        else:
            self.send_response(404)
            self.end_headers()
            return

        body = json.dumps(payload).encode()
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        pass  # Suppress request logging noise


def make_server(host: str = "127.0.0.1", port: int = 0) -> HTTPServer:
    """Threaded server so the two concurrent polls don't queue behind each other."""
    return ThreadingHTTPServer((host, port), _MonitorHandler)


def run_fake_server(host: str = "127.0.0.1", port: int = 8222):
    server = make_server(host, port)
    print(f"Fake NATS monitoring server running at http://{host}:{port}/varz")
    print("Press Ctrl+C to stop.\n")
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    server.server_close()
    print("\nServer stopped.")


if __name__ == "__main__":
    run_fake_server()
