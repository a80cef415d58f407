"""A connector for Elasticsearch over its HTTP API."""

from __future__ import annotations

import base64
import binascii
import dataclasses
import gzip
import logging
import ssl
import threading
import time
from collections import Counter
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any
from urllib.parse import urlsplit

import httpx

from .connector import (
    AlreadyConnectedError,
    Connector,
    ConnectorConfig,
    ConnectorError,
    InvalidConfigError,
    NotConnectedError,
    NotSupportedError,
    build_ssl_context,
)

_log = logging.getLogger(__name__)

_PING_PARAMS = {"human": "true", "pretty": "true"}


@dataclass
class ElasticsearchConfig(ConnectorConfig):
    """Elasticsearch connector settings; durations are in seconds.

    ``address`` holds one or more comma separated base URLs. ``cloud_id``
    may be used instead, in which case ``address`` must be empty.
    ``ca_cert`` is PEM text, not a path. ``retry_backoff`` receives the
    attempt number (from 1) and returns the seconds to wait. ``transport``
    replaces the HTTP transport, for custom networking.
    """

    name: str = "elasticsearch"
    address: str = "http://localhost:9200"
    connect_timeout: float = 10.0
    read_timeout: float = 30.0
    write_timeout: float = 30.0
    max_idle_conns: int = 10
    max_open_conns: int = 100
    max_conn_lifetime: float = 3600.0
    max_idle_time: float = 1800.0
    cloud_id: str = ""
    api_key: str = ""
    service_token: str = ""
    ca_cert: str = ""
    retry_on_status: list[int] = field(default_factory=lambda: [502, 503, 504, 429])
    max_retries: int = 3
    retry_backoff: Callable[[int], float] | None = None
    compress_request_body: bool = False
    discover_nodes_on_start: bool = True
    discover_nodes_interval: float = 300.0
    enable_metrics: bool = False
    enable_debug_logger: bool = False
    transport: httpx.BaseTransport | None = None


def _cloud_address(cloud_id: str) -> str:
    """Turn an Elastic Cloud ID into the deployment's base URL."""
    _, sep, payload = cloud_id.rpartition(":")
    if not sep or not payload:
        raise InvalidConfigError(f"invalid cloud ID: {cloud_id}")
    try:
        decoded = base64.b64decode(payload, validate=True).decode("utf-8")
    except (binascii.Error, UnicodeDecodeError) as exc:
        raise InvalidConfigError(f"invalid cloud ID: {exc}") from exc
    parts = decoded.split("$")
    if len(parts) < 2 or not parts[0] or not parts[1]:
        raise InvalidConfigError(f"invalid cloud ID: {cloud_id}")
    return f"https://{parts[1]}.{parts[0]}"


class ElasticsearchClient:
    """Sends requests to a set of nodes in turn, retrying where allowed."""

    def __init__(
        self,
        addresses: list[str],
        http: httpx.Client,
        *,
        max_retries: int = 3,
        retry_on_status: list[int] | None = None,
        retry_backoff: Callable[[int], float] | None = None,
        compress_request_body: bool = False,
        enable_metrics: bool = False,
        enable_debug_logger: bool = False,
    ) -> None:
        if not addresses:
            raise InvalidConfigError("no Elasticsearch addresses")
        self._addresses = [addr.rstrip("/") for addr in addresses]
        self._http = http
        self._max_retries = max_retries
        self._retry_on_status = frozenset(retry_on_status or ())
        self._retry_backoff = retry_backoff
        self._compress = compress_request_body
        self._metrics_enabled = enable_metrics
        self._debug = enable_debug_logger
        self._lock = threading.Lock()
        self._next = 0
        self._requests = 0
        self._failures = 0
        self._responses: Counter[int] = Counter()
        self._stop_discovery: threading.Event | None = None
        self._discovery_thread: threading.Thread | None = None

    @property
    def addresses(self) -> list[str]:
        with self._lock:
            return list(self._addresses)

    @property
    def http(self) -> httpx.Client:
        return self._http

    def _pick(self) -> str:
        with self._lock:
            address = self._addresses[self._next % len(self._addresses)]
            self._next = (self._next + 1) % len(self._addresses)
            return address

    def _record(self, status: int | None) -> None:
        if not self._metrics_enabled:
            return
        with self._lock:
            self._requests += 1
            if status is None:
                self._failures += 1
            else:
                self._responses[status] += 1

    def _wait(self, attempt: int) -> None:
        if self._retry_backoff is not None:
            time.sleep(self._retry_backoff(attempt))

    def perform(
        self,
        method: str,
        path: str,
        *,
        params: Mapping[str, str] | None = None,
        body: bytes | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: float | None = None,
    ) -> httpx.Response:
        """Send a request; raises httpx.TransportError once retries run out."""
        request_headers = dict(headers or {})
        content = body
        if body is not None and self._compress:
            content = gzip.compress(body)
            request_headers["Content-Encoding"] = "gzip"
        extra: dict[str, Any] = {}
        if timeout is not None:
            extra["timeout"] = timeout
        attempts = 1 if self._max_retries <= 0 else self._max_retries + 1

        for attempt in range(1, attempts + 1):
            url = self._pick() + (path if path.startswith("/") else "/" + path)
            last = attempt == attempts
            try:
                response = self._http.request(
                    method, url, params=params, content=content, headers=request_headers, **extra
                )
            except httpx.TransportError as exc:
                self._record(None)
                if self._debug:
                    _log.debug("%s %s failed: %s", method, url, exc)
                if last:
                    raise
                self._wait(attempt)
                continue
            self._record(response.status_code)
            if self._debug:
                _log.debug("%s %s -> %s", method, url, response.status_code)
            if response.status_code in self._retry_on_status and not last:
                response.close()
                self._wait(attempt)
                continue
            return response
        raise AssertionError("unreachable")

    def ping(self, timeout: float | None = None) -> httpx.Response:
        """Send ``HEAD /`` to the next node."""
        return self.perform("HEAD", "/", params=_PING_PARAMS, timeout=timeout)

    def discover_nodes(self) -> list[str]:
        """Replace the node list with the cluster's HTTP publish addresses.

        Returns the addresses found; the list is kept when none are found.
        """
        response = self.perform("GET", "/_nodes/http")
        if response.status_code >= 300:
            raise ConnectorError(f"failed to discover nodes: [{response.status_code}]")
        try:
            data = response.json()
        except ValueError as exc:
            raise ConnectorError(f"failed to discover nodes: {exc}") from exc
        scheme = urlsplit(self.addresses[0]).scheme or "http"
        urls: list[str] = []
        nodes = data.get("nodes") if isinstance(data, dict) else None
        for node in (nodes or {}).values():
            http_info = node.get("http") if isinstance(node, dict) else None
            addr = http_info.get("publish_address") if isinstance(http_info, dict) else None
            if not addr:
                continue
            if "/" in addr:
                host, _, rest = addr.partition("/")
                addr = f"{host}:{rest.rpartition(':')[2]}"
            urls.append(f"{scheme}://{addr}")
        if urls:
            with self._lock:
                self._addresses = urls
                self._next = 0
        return urls

    def start_discovery(self, interval: float) -> None:
        """Rediscover nodes every ``interval`` seconds until closed."""
        if interval <= 0 or self._discovery_thread is not None:
            return
        stop = threading.Event()

        def run() -> None:
            while not stop.wait(interval):
                try:
                    self.discover_nodes()
                except (ConnectorError, httpx.HTTPError) as exc:
                    _log.warning("node discovery failed: %s", exc)

        self._stop_discovery = stop
        self._discovery_thread = threading.Thread(
            target=run, name="elasticsearch-discovery", daemon=True
        )
        self._discovery_thread.start()

    def metrics(self) -> dict[str, Any]:
        """Return request counts; raises NotSupportedError when disabled."""
        if not self._metrics_enabled:
            raise NotSupportedError("transport metrics not enabled")
        with self._lock:
            return {
                "requests": self._requests,
                "failures": self._failures,
                "responses": dict(self._responses),
            }

    def close(self) -> None:
        """Stop node discovery and close the HTTP client."""
        if self._stop_discovery is not None:
            self._stop_discovery.set()
        thread = self._discovery_thread
        if thread is not None and thread is not threading.current_thread():
            thread.join()
        self._stop_discovery = self._discovery_thread = None
        self._http.close()


class ElasticsearchConnector(Connector):
    """Connects to Elasticsearch and keeps the client while connected.

    Settings come from ``config`` (an :class:`ElasticsearchConfig`), with any
    keyword arguments overriding its fields.
    """

    def __init__(self, config: ElasticsearchConfig | None = None, **overrides: Any) -> None:
        base = config if config is not None else ElasticsearchConfig()
        self._config = dataclasses.replace(base, **overrides)
        self._client: ElasticsearchClient | None = None
        self._connected = False
        self._ssl_context: ssl.SSLContext | None = None
        self._lock = threading.RLock()

    @property
    def config(self) -> ElasticsearchConfig:
        return self._config

    def connect(self) -> None:
        with self._lock:
            if self._connected:
                raise AlreadyConnectedError()
            cfg = self._config
            if cfg.enable_tls:
                self._ssl_context = build_ssl_context(cfg)

            addresses = [addr.strip() for addr in cfg.address.split(",")]
            if cfg.cloud_id:
                if any(addresses):
                    raise InvalidConfigError(
                        "cannot create client: both addresses and cloud ID are set"
                    )
                addresses = [_cloud_address(cfg.cloud_id)]

            verify: ssl.SSLContext | bool = True
            context = self._ssl_context
            if cfg.ca_cert:
                if context is None:
                    context = ssl.create_default_context()
                try:
                    context.load_verify_locations(cadata=cfg.ca_cert)
                except (ssl.SSLError, ValueError) as exc:
                    raise ConnectorError(
                        f"failed to create Elasticsearch client: {exc}"
                    ) from exc
            if context is not None:
                verify = context

            headers: dict[str, str] = {}
            auth: httpx.Auth | None = None
            if cfg.api_key:
                headers["Authorization"] = f"ApiKey {cfg.api_key}"
            elif cfg.service_token:
                headers["Authorization"] = f"Bearer {cfg.service_token}"
            elif cfg.username:
                auth = httpx.BasicAuth(cfg.username, cfg.password)

            http = httpx.Client(
                transport=cfg.transport,
                verify=verify,
                headers=headers,
                auth=auth,
                timeout=httpx.Timeout(
                    connect=cfg.connect_timeout,
                    read=cfg.read_timeout,
                    write=cfg.write_timeout,
                    pool=cfg.connect_timeout,
                ),
                limits=httpx.Limits(
                    max_connections=cfg.max_open_conns or None,
                    max_keepalive_connections=cfg.max_idle_conns or None,
                    keepalive_expiry=cfg.max_idle_time or None,
                ),
            )
            try:
                client = ElasticsearchClient(
                    addresses,
                    http,
                    max_retries=cfg.max_retries,
                    retry_on_status=cfg.retry_on_status,
                    retry_backoff=cfg.retry_backoff,
                    compress_request_body=cfg.compress_request_body,
                    enable_metrics=cfg.enable_metrics,
                    enable_debug_logger=cfg.enable_debug_logger,
                )
            except ConnectorError:
                http.close()
                raise

            if cfg.discover_nodes_on_start:
                try:
                    client.discover_nodes()
                except (ConnectorError, httpx.HTTPError) as exc:
                    _log.warning("node discovery failed: %s", exc)

            try:
                self._check(client)
            except ConnectorError:
                client.close()
                raise

            client.start_discovery(cfg.discover_nodes_interval)
            self._client = client
            self._connected = True
            _log.info("Connected to Elasticsearch at %s", cfg.address)

    def disconnect(self) -> None:
        with self._lock:
            if not self._connected:
                raise NotConnectedError()
            if self._client is not None:
                self._client.close()
            self._client = None
            self._connected = False
            _log.info("Disconnected from Elasticsearch at %s", self._config.address)

    def ping(self) -> None:
        with self._lock:
            if not self._connected or self._client is None:
                raise NotConnectedError()
            self._check(self._client)

    def is_connected(self) -> bool:
        with self._lock:
            return self._connected

    def name(self) -> str:
        return self._config.name

    def client(self) -> ElasticsearchClient | None:
        with self._lock:
            return self._client

    def _check(self, client: ElasticsearchClient) -> None:
        try:
            response = client.ping(timeout=self._config.connect_timeout)
        except httpx.HTTPError as exc:
            raise ConnectorError(f"failed to ping Elasticsearch: {exc}") from exc
        if response.status_code > 299:
            raise ConnectorError(
                "failed to ping Elasticsearch: "
                f"[{response.status_code} {response.reason_phrase}] {response.text}"
            )