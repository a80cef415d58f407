"""A connector for MySQL."""

from __future__ import annotations

import dataclasses
import logging
import ssl
import threading
from dataclasses import dataclass, field
from typing import Any

import pymysql
from pymysql.constants import CLIENT, FIELD_TYPE
from pymysql.converters import conversions

from .connector import (
    AlreadyConnectedError,
    Connector,
    ConnectorConfig,
    ConnectorError,
    InvalidConfigError,
    NotConnectedError,
    build_ssl_context,
)

DEFAULT_PORT = 3306

_TIME_FIELDS = (FIELD_TYPE.DATETIME, FIELD_TYPE.TIMESTAMP, FIELD_TYPE.DATE, FIELD_TYPE.TIME)


@dataclass
class MySQLConfig(ConnectorConfig):
    """MySQL connector settings; durations are in seconds.

    ``params`` are extra connection-string parameters; they override the
    ones derived from the other settings. With ``parse_time`` off, date and
    time columns are returned as strings.
    """

    name: str = "mysql"
    address: str = "localhost:3306"
    username: str = "root"
    connect_timeout: float = 10.0
    read_timeout: float = 30.0
    write_timeout: float = 30.0
    max_idle_conns: int = 10
    max_open_conns: int = 100
    max_conn_lifetime: float = 3600.0
    max_idle_time: float = 1800.0
    params: dict[str, str] = field(default_factory=dict)
    parse_time: bool = True
    loc: Any = "UTC"
    collation: str = "utf8mb4_general_ci"
    allow_native_passwords: bool = True
    allow_old_passwords: bool = False
    client_found_rows: bool = False
    multi_statements: bool = False
    reject_read_only: bool = False
    logger: logging.Logger | logging.LoggerAdapter = field(
        default_factory=lambda: logging.getLogger(__name__)
    )


def _decimal(value: int, unit: int) -> str:
    whole, frac = divmod(value, unit)
    if not frac:
        return str(whole)
    digits = len(str(unit)) - 1
    return f"{whole}.{str(frac).zfill(digits).rstrip('0')}"


def _duration(seconds: float) -> str:
    """Format a duration the way connection strings expect, e.g. ``1m30s``."""
    ns = round(seconds * 1_000_000_000)
    if ns == 0:
        return "0s"
    sign = "-" if ns < 0 else ""
    ns = abs(ns)
    if ns < 1_000:
        return f"{sign}{ns}ns"
    if ns < 1_000_000:
        return f"{sign}{_decimal(ns, 1_000)}µs"
    if ns < 1_000_000_000:
        return f"{sign}{_decimal(ns, 1_000_000)}ms"
    hours, rem = divmod(ns, 3600 * 1_000_000_000)
    minutes, rem = divmod(rem, 60 * 1_000_000_000)
    secs = f"{_decimal(rem, 1_000_000_000)}s"
    if hours:
        return f"{sign}{hours}h{minutes}m{secs}"
    if minutes:
        return f"{sign}{minutes}m{secs}"
    return f"{sign}{secs}"


def _flag(value: bool) -> str:
    return "true" if value else "false"


def _host_port(address: str) -> tuple[str, int]:
    host, sep, port = address.rpartition(":")
    if not sep or "]" in port:
        host, port = address, ""
    host = host.strip("[]")
    if not port:
        return host, DEFAULT_PORT
    try:
        return host, int(port)
    except ValueError:
        raise InvalidConfigError(f"invalid MySQL address: {address}") from None


class MySQLConnector(Connector):
    """Connects to MySQL and keeps the connection while connected.

    Settings come from ``config`` (a :class:`MySQLConfig`), with any keyword
    arguments overriding its fields.
    """

    def __init__(self, config: MySQLConfig | None = None, **overrides: Any) -> None:
        base = config if config is not None else MySQLConfig()
        self._config = dataclasses.replace(base, **overrides)
        self._client: Any = None
        self._connected = False
        self._ssl_context: ssl.SSLContext | None = None
        self._dsn = ""
        self._lock = threading.RLock()

    @property
    def config(self) -> MySQLConfig:
        return self._config

    @property
    def dsn(self) -> str:
        """The connection string built by the last :meth:`connect`."""
        return self._dsn

    def connect(self) -> None:
        with self._lock:
            if self._connected:
                raise AlreadyConnectedError()
            cfg = self._config
            self._dsn = self.build_dsn()
            if cfg.enable_tls:
                self._ssl_context = build_ssl_context(cfg)

            host, port = _host_port(cfg.address)
            client_flag = 0
            if cfg.client_found_rows:
                client_flag |= CLIENT.FOUND_ROWS
            if cfg.multi_statements:
                client_flag |= CLIENT.MULTI_STATEMENTS
            kwargs: dict[str, Any] = {
                "host": host,
                "port": port,
                "user": cfg.username,
                "password": cfg.password,
                "database": cfg.database or None,
                "connect_timeout": cfg.connect_timeout,
                "read_timeout": cfg.read_timeout,
                "write_timeout": cfg.write_timeout,
                "charset": cfg.collation.split("_", 1)[0],
                "collation": cfg.collation,
                "client_flag": client_flag,
            }
            if not cfg.parse_time:
                conv = dict(conversions)
                for field_type in _TIME_FIELDS:
                    conv.pop(field_type, None)
                kwargs["conv"] = conv
            if self._ssl_context is not None:
                kwargs["ssl"] = self._ssl_context

            try:
                client = pymysql.connect(**kwargs)
            except (pymysql.MySQLError, OSError) as exc:
                raise ConnectorError(f"failed to open MySQL connection: {exc}") from exc

            try:
                client.ping(reconnect=False)
            except (pymysql.MySQLError, OSError) as exc:
                try:
                    client.close()
                except (pymysql.MySQLError, OSError):
                    pass
                raise ConnectorError(f"failed to ping MySQL: {exc}") from exc

            self._client = client
            self._connected = True
            cfg.logger.info("Connected to MySQL at %s", cfg.address)

    def disconnect(self) -> None:
        with self._lock:
            if not self._connected:
                raise NotConnectedError()
            try:
                self._client.close()
            except (pymysql.MySQLError, OSError) as exc:
                raise ConnectorError(f"failed to close MySQL connection: {exc}") from exc
            self._client = None
            self._connected = False
            self._config.logger.info("Disconnected from MySQL at %s", self._config.address)

    def ping(self) -> None:
        with self._lock:
            if not self._connected:
                raise NotConnectedError()
            try:
                self._client.ping(reconnect=False)
            except (pymysql.MySQLError, OSError) as exc:
                raise ConnectorError(f"failed to ping MySQL: {exc}") from exc

    def is_connected(self) -> bool:
        with self._lock:
            return self._connected

    def name(self) -> str:
        return self._config.name

    def client(self) -> Any:
        with self._lock:
            return self._client

    def build_dsn(self) -> str:
        """Return ``user:password@tcp(address)/database?param=value&...``."""
        cfg = self._config
        dsn = f"{cfg.username}:{cfg.password}@tcp({cfg.address})/{cfg.database}"
        params: dict[str, str] = {
            "timeout": _duration(cfg.connect_timeout),
            "readTimeout": _duration(cfg.read_timeout),
            "writeTimeout": _duration(cfg.write_timeout),
            "parseTime": _flag(cfg.parse_time),
            "loc": str(cfg.loc),
            "collation": cfg.collation,
            "allowNativePasswords": _flag(cfg.allow_native_passwords),
            "allowOldPasswords": _flag(cfg.allow_old_passwords),
            "clientFoundRows": _flag(cfg.client_found_rows),
            "multiStatements": _flag(cfg.multi_statements),
            "rejectReadOnly": _flag(cfg.reject_read_only),
        }
        if cfg.enable_tls:
            params["tls"] = "skip-verify" if cfg.tls_skip_verify else "true"
        params.update(cfg.params)
        if params:
            dsn += "?" + "&".join(f"{key}={value}" for key, value in params.items())
        return dsn