"""
Run configuration and presentation flags.

TopConfig is built once by the CLI and never changes afterwards.
DisplayOptions is shared between the key handler, the renderers and the
stats engine; each field is a plain bool so a toggle is a single assignment.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional


# Sort keys accepted by the server's /connz endpoint
SORT_OPTIONS = (
    "cid",
    "start",
    "subs",
    "pending",
    "msgs_to",
    "msgs_from",
    "bytes_to",
    "bytes_from",
    "last",
    "idle",
    "uptime",
    "stop",
    "reason",
    "rtt",
)

STDOUT_SENTINEL = "-"


@dataclass
class DisplayOptions:
    show_rates: bool = False
    display_subs: bool = False
    lookup_dns: bool = False
    raw_bytes: bool = False

    def handle_key(self, key: Optional[str]) -> bool:
        """Apply one keypress. Returns False when the key asks to quit."""
        if key is None:
            return True

        if key in ("q", "Q", "\x03"):
            return False
        if key == " ":
            self.show_rates = not self.show_rates
        elif key in ("s", "S"):
            self.display_subs = not self.display_subs
        elif key in ("d", "D"):
            self.lookup_dns = not self.lookup_dns
        elif key in ("b", "B"):
            self.raw_bytes = not self.raw_bytes
        return True


@dataclass
class TopConfig:
    host: str = "127.0.0.1"
    port: int = 8222
    https_port: int = 0
    conns: int = 1024
    delay: int = 1
    sort: str = "cid"
    lookup_dns: bool = False
    output_file: str = ""
    delimiter: str = ""
    raw_bytes: bool = False
    max_refreshes: Optional[int] = None
    display_subs: bool = False
    output_format: str = "tui"

    # TLS
    cert: str = ""
    key: str = ""
    cacert: str = ""
    skip_verify: bool = False

    timeout_seconds: float = 5.0

    @property
    def use_https(self) -> bool:
        return self.https_port != 0

    @property
    def base_url(self) -> str:
        if self.use_https:
            return f"https://{self.host}:{self.https_port}"
        return f"http://{self.host}:{self.port}"

    @property
    def one_shot(self) -> bool:
        return bool(self.output_file)

    def display_options(self) -> DisplayOptions:
        return DisplayOptions(
            show_rates=False,
            display_subs=self.display_subs,
            lookup_dns=self.lookup_dns,
            raw_bytes=self.raw_bytes,
        )
