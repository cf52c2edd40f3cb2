"""
Collector for a live NATS server. Reads the /varz and /connz monitoring
endpoints and decodes them into ServerSnapshot and ConnectionSet.

One httpx.Client is shared by both endpoints; the stats engine calls
them from two worker threads at once, which httpx supports.
"""

from __future__ import annotations

import json
import logging
import ssl
from typing import Optional, Union

import httpx

from natstop.collector.base import FetchError, MonitoringSource
from natstop.config import TopConfig
from natstop.metrics import ConnectionSet, DecodeError, ServerSnapshot


log = logging.getLogger(__name__)


def build_verify(
    cacert: str = "",
    cert: str = "",
    key: str = "",
    skip_verify: bool = False,
) -> Union[bool, ssl.SSLContext]:
    """Turn the TLS options into something httpx accepts as `verify`."""
    if skip_verify:
        ctx = ssl.create_default_context()
        ctx.check_hostname = False
        ctx.verify_mode = ssl.CERT_NONE
    else:
        ctx = ssl.create_default_context(cafile=cacert or None)

    if cert and key:
        ctx.load_cert_chain(certfile=cert, keyfile=key)
    elif not cacert and not skip_verify:
        # Nothing custom, use the default trust store
        return True
    return ctx


class NatsMonitorClient(MonitoringSource):

    def __init__(
        self,
        base_url: str,
        timeout_seconds: float = 5.0,
        verify: Union[bool, ssl.SSLContext] = True,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self._base_url = base_url.rstrip("/")
        self._timeout = timeout_seconds
        self._client = httpx.Client(
            base_url=self._base_url,
            timeout=self._timeout,
            verify=verify,
            transport=transport,
        )

    @classmethod
    def from_config(cls, config: TopConfig) -> "NatsMonitorClient":
        verify: Union[bool, ssl.SSLContext] = True
        if config.use_https:
            verify = build_verify(
                cacert=config.cacert,
                cert=config.cert,
                key=config.key,
                skip_verify=config.skip_verify,
            )
        return cls(
            base_url=config.base_url,
            timeout_seconds=config.timeout_seconds,
            verify=verify,
        )

    def _get_json(self, path: str, params: Optional[dict] = None):
        try:
            response = self._client.get(path, params=params)
            response.raise_for_status()
            return response.json()
        except (httpx.HTTPError, json.JSONDecodeError, UnicodeDecodeError) as e:
            log.debug("GET %s failed: %s", path, e)
            raise FetchError(path, e) from e

    def fetch_varz(self) -> ServerSnapshot:
        """GET /varz and decode it."""
        body = self._get_json("/varz")
        try:
            return ServerSnapshot.from_dict(body)
        except DecodeError as e:
            raise FetchError("/varz", e) from e

    def fetch_connz(self, limit: int, sort: str, subs: bool = False) -> ConnectionSet:
        """GET /connz?limit=N&sort=KEY[&subs=1] and decode it."""
        params = {"limit": str(limit), "sort": sort}
        if subs:
            params["subs"] = "1"

        body = self._get_json("/connz", params=params)
        try:
            return ConnectionSet.from_dict(body)
        except DecodeError as e:
            raise FetchError("/connz", e) from e

    def name(self) -> str:
        return f"NATS ({self._base_url})"

    def close(self):
        self._client.close()
