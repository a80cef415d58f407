"""A connector for Redis in single, sentinel or cluster mode."""

from __future__ import annotations

import dataclasses
import logging
import ssl
import threading
from dataclasses import dataclass
from typing import Any

import redis
from redis.backoff import ExponentialBackoff
from redis.cluster import ClusterNode, RedisCluster
from redis.exceptions import RedisClusterException
from redis.retry import Retry
from redis.sentinel import Sentinel

from .connector import (
    AlreadyConnectedError,
    Connector,
    ConnectorConfig,
    ConnectorError,
    InvalidConfigError,
    NotConnectedError,
    build_ssl_context,
)

_log = logging.getLogger(__name__)

DEFAULT_PORT = 6379

_CLIENT_ERRORS = (redis.RedisError, RedisClusterException, OSError)


@dataclass
class RedisConfig(ConnectorConfig):
    """Redis connector settings; durations are in seconds.

    ``mode`` is one of ``single``, ``sentinel`` or ``cluster`` (any case).
    ``address`` may hold several comma separated ``host:port`` entries; in
    single mode only the first is used.
    """

    name: str = "redis"
    address: str = "localhost:6379"
    connect_timeout: float = 10.0
    read_timeout: float = 3.0
    write_timeout: float = 3.0
    max_idle_conns: int = 10
    max_open_conns: int = 100
    max_conn_lifetime: float = 3600.0
    max_idle_time: float = 1800.0
    mode: str = "single"
    master_name: str = ""
    db: int = 0
    pool_size: int = 10
    min_idle_conns: int = 0
    dial_timeout: float = 5.0
    pool_timeout: float = 4.0
    idle_timeout: float = 300.0
    max_retries: int = 3
    min_retry_backoff: float = 0.008
    max_retry_backoff: float = 0.512


def _split_addresses(address: str) -> list[str]:
    return [part.strip() for part in address.split(",")]


def _host_port(address: str) -> tuple[str, int]:
    """Split ``host:port``; brackets around IPv6 hosts are removed."""
    host, sep, port = address.rpartition(":")
    if not sep or "]" in port:
        host, port = address, ""
    host = host.strip("[]")
    if not port:
        return host, DEFAULT_PORT
    try:
        return host, int(port)
    except ValueError:
        raise InvalidConfigError(f"invalid Redis address: {address}") from None


class RedisConnector(Connector):
    """Connects to Redis and keeps the client while connected.

    Settings come from ``config`` (a :class:`RedisConfig`), with any keyword
    arguments overriding its fields.
    """

    def __init__(self, config: RedisConfig | None = None, **overrides: Any) -> None:
        base = config if config is not None else RedisConfig()
        self._config = dataclasses.replace(base, **overrides)
        self._client: Any = None
        self._connected = False
        self._ssl_context: ssl.SSLContext | None = None
        self._lock = threading.RLock()

    @property
    def config(self) -> RedisConfig:
        return self._config

    def connect(self) -> None:
        with self._lock:
            if self._connected:
                raise AlreadyConnectedError()
            cfg = self._config
            tls = self._tls_kwargs()
            addrs = _split_addresses(cfg.address)
            common: dict[str, Any] = {
                "username": cfg.username or None,
                "password": cfg.password or None,
                "socket_timeout": cfg.read_timeout,
                "socket_connect_timeout": cfg.dial_timeout,
                "max_connections": cfg.pool_size,
                "retry": Retry(
                    ExponentialBackoff(cap=cfg.max_retry_backoff, base=cfg.min_retry_backoff),
                    cfg.max_retries,
                ),
                **tls,
            }

            match cfg.mode.lower():
                case "single":
                    host, port = _host_port(addrs[0])
                    client = redis.Redis(host=host, port=port, db=cfg.db, **common)
                case "sentinel":
                    if not cfg.master_name:
                        raise InvalidConfigError("master name is required for sentinel mode")
                    sentinel = Sentinel(
                        [_host_port(addr) for addr in addrs],
                        sentinel_kwargs={
                            "username": common["username"],
                            "password": common["password"],
                            "socket_timeout": cfg.read_timeout,
                            "socket_connect_timeout": cfg.dial_timeout,
                            **tls,
                        },
                    )
                    client = sentinel.master_for(cfg.master_name, db=cfg.db, **common)
                case "cluster":
                    nodes = [ClusterNode(*_host_port(addr)) for addr in addrs]
                    try:
                        client = RedisCluster(startup_nodes=nodes, **common)
                    except _CLIENT_ERRORS as exc:
                        raise ConnectorError(f"failed to ping Redis: {exc}") from exc
                case _:
                    raise InvalidConfigError(f"unsupported Redis mode: {cfg.mode}")

            try:
                client.ping()
            except _CLIENT_ERRORS as exc:
                try:
                    client.close()
                except _CLIENT_ERRORS:
                    pass
                raise ConnectorError(f"failed to ping Redis: {exc}") from exc

            self._client = client
            self._connected = True
            _log.info("Connected to Redis at %s", cfg.address)

    def disconnect(self) -> None:
        with self._lock:
            if not self._connected:
                raise NotConnectedError()
            try:
                self._client.close()
            except _CLIENT_ERRORS as exc:
                raise ConnectorError(f"failed to close Redis connection: {exc}") from exc
            self._client = None
            self._connected = False
            _log.info("Disconnected from Redis at %s", self._config.address)

    def ping(self) -> None:
        with self._lock:
            if not self._connected:
                raise NotConnectedError()
            try:
                self._client.ping()
            except _CLIENT_ERRORS as exc:
                raise ConnectorError(f"failed to ping Redis: {exc}") from exc

    def is_connected(self) -> bool:
        with self._lock:
            return self._connected

    def name(self) -> str:
        return self._config.name

    def client(self) -> Any:
        with self._lock:
            return self._client

    def _tls_kwargs(self) -> dict[str, Any]:
        """Validate the TLS settings and turn them into client arguments."""
        cfg = self._config
        if not cfg.enable_tls:
            return {}
        self._ssl_context = build_ssl_context(cfg)
        kwargs: dict[str, Any] = {"ssl": True}
        if cfg.tls_skip_verify:
            kwargs["ssl_cert_reqs"] = "none"
            kwargs["ssl_check_hostname"] = False
            return kwargs
        kwargs["ssl_cert_reqs"] = "required"
        if cfg.tls_ca_path:
            kwargs["ssl_ca_certs"] = cfg.tls_ca_path
        if cfg.tls_cert_path and cfg.tls_key_path:
            kwargs["ssl_certfile"] = cfg.tls_cert_path
            kwargs["ssl_keyfile"] = cfg.tls_key_path
        return kwargs