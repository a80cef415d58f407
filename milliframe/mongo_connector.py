"""A connector for MongoDB."""

from __future__ import annotations

import dataclasses
import logging
import os
import ssl
import tempfile
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from pymongo import MongoClient
from pymongo.errors import PyMongoError

from .connector import (
    AlreadyConnectedError,
    Connector,
    ConnectorConfig,
    ConnectorError,
    NotConnectedError,
    build_ssl_context,
)

_log = logging.getLogger(__name__)

READ_PREFERENCES = frozenset(
    {"primary", "primaryPreferred", "secondary", "secondaryPreferred", "nearest"}
)

_CONSTRUCT_ERRORS = (PyMongoError, ValueError, TypeError)


@dataclass
class MongoConfig(ConnectorConfig):
    """MongoDB connector settings; durations are in seconds.

    ``address`` is a MongoDB connection string. ``read_preference`` is one of
    the standard mode names; any other value leaves the driver default.
    """

    name: str = "mongo"
    address: str = "mongodb://localhost:27017"
    connect_timeout: float = 10.0
    read_timeout: float = 30.0
    write_timeout: float = 30.0
    max_idle_conns: int = 10
    max_open_conns: int = 100
    max_conn_lifetime: float = 3600.0
    max_idle_time: float = 1800.0
    replica_set: str = ""
    auth_source: str = "admin"
    auth_mechanism: str = ""
    direct: bool = False
    retry_writes: bool = True
    retry_reads: bool = True
    max_pool_size: int = 100
    min_pool_size: int = 0
    max_conn_idle_time: float = 1800.0
    read_preference: str = "primary"
    read_concern: str = "local"
    write_concern: str = "majority"
    app_name: str = "new-milli"


def _combine_pem(cert_path: str, key_path: str) -> str:
    """Write certificate and key into one temporary PEM file; return its path."""
    cert = Path(cert_path).read_bytes()
    key = Path(key_path).read_bytes()
    fd, path = tempfile.mkstemp(suffix=".pem")
    with os.fdopen(fd, "wb") as handle:
        handle.write(cert.rstrip(b"\n") + b"\n" + key)
    return path


class MongoConnector(Connector):
    """Connects to MongoDB and keeps the client while connected.

    Settings come from ``config`` (a :class:`MongoConfig`), with any keyword
    arguments overriding its fields.
    """

    def __init__(self, config: MongoConfig | None = None, **overrides: Any) -> None:
        base = config if config is not None else MongoConfig()
        self._config = dataclasses.replace(base, **overrides)
        self._client: Any = None
        self._db: Any = None
        self._connected = False
        self._ssl_context: ssl.SSLContext | None = None
        self._key_file: str | None = None
        self._lock = threading.RLock()

    @property
    def config(self) -> MongoConfig:
        return self._config

    def connect(self) -> None:
        with self._lock:
            if self._connected:
                raise AlreadyConnectedError()
            cfg = self._config
            try:
                kwargs = self._client_kwargs()
            except BaseException:
                self._remove_key_file()
                raise

            try:
                client = MongoClient(cfg.address, **kwargs)
            except _CONSTRUCT_ERRORS as exc:
                self._remove_key_file()
                raise ConnectorError(f"failed to connect to MongoDB: {exc}") from exc

            try:
                client.admin.command("ping")
            except PyMongoError as exc:
                try:
                    client.close()
                except PyMongoError:
                    pass
                self._remove_key_file()
                raise ConnectorError(f"failed to ping MongoDB: {exc}") from exc

            self._client = client
            self._db = client[cfg.database] if cfg.database else None
            self._connected = True
            _log.info("Connected to MongoDB at %s", cfg.address)

    def disconnect(self) -> None:
        with self._lock:
            if not self._connected:
                raise NotConnectedError()
            try:
                self._client.close()
            except PyMongoError as exc:
                raise ConnectorError(f"failed to disconnect from MongoDB: {exc}") from exc
            self._client = None
            self._db = None
            self._connected = False
            self._remove_key_file()
            _log.info("Disconnected from MongoDB at %s", self._config.address)

    def ping(self) -> None:
        with self._lock:
            if not self._connected:
                raise NotConnectedError()
            try:
                self._client.admin.command("ping")
            except PyMongoError as exc:
                raise ConnectorError(f"failed to ping MongoDB: {exc}") from exc

    def is_connected(self) -> bool:
        with self._lock:
            return self._connected

    def name(self) -> str:
        return self._config.name

    def client(self) -> Any:
        with self._lock:
            return self._client

    def database(self) -> Any:
        """Return the configured database, or None when none is set."""
        with self._lock:
            return self._db

    def collection(self, name: str) -> Any:
        """Return a collection of the configured database, or None."""
        with self._lock:
            if self._db is None:
                return None
            return self._db[name]

    def _client_kwargs(self) -> dict[str, Any]:
        cfg = self._config
        timeout_ms = cfg.connect_timeout * 1000
        kwargs: dict[str, Any] = {
            "connectTimeoutMS": timeout_ms,
            "serverSelectionTimeoutMS": timeout_ms,
            "maxIdleTimeMS": cfg.max_idle_time * 1000,
            "maxConnecting": cfg.max_open_conns,
            "maxPoolSize": cfg.max_pool_size,
            "minPoolSize": cfg.min_pool_size,
            "retryWrites": cfg.retry_writes,
            "retryReads": cfg.retry_reads,
            "directConnection": cfg.direct,
            "appname": cfg.app_name,
        }
        if cfg.username and cfg.password:
            kwargs["username"] = cfg.username
            kwargs["password"] = cfg.password
            kwargs["authSource"] = cfg.auth_source
            if cfg.auth_mechanism:
                kwargs["authMechanism"] = cfg.auth_mechanism
        if cfg.replica_set:
            kwargs["replicaSet"] = cfg.replica_set
        if cfg.enable_tls:
            kwargs.update(self._tls_kwargs())
        if cfg.read_preference in READ_PREFERENCES:
            kwargs["readPreference"] = cfg.read_preference
        if cfg.read_concern:
            kwargs["readConcernLevel"] = cfg.read_concern
        if cfg.write_concern:
            kwargs["w"] = cfg.write_concern
        return kwargs

    def _tls_kwargs(self) -> dict[str, Any]:
        """Validate the TLS settings and turn them into client arguments."""
        cfg = self._config
        self._ssl_context = build_ssl_context(cfg)
        kwargs: dict[str, Any] = {"tls": True}
        if cfg.tls_skip_verify:
            kwargs["tlsAllowInvalidCertificates"] = True
            kwargs["tlsAllowInvalidHostnames"] = True
            return kwargs
        if cfg.tls_ca_path:
            kwargs["tlsCAFile"] = cfg.tls_ca_path
        if cfg.tls_cert_path and cfg.tls_key_path:
            if cfg.tls_cert_path == cfg.tls_key_path:
                kwargs["tlsCertificateKeyFile"] = cfg.tls_cert_path
            else:
                try:
                    self._key_file = _combine_pem(cfg.tls_cert_path, cfg.tls_key_path)
                except OSError as exc:
                    raise ConnectorError(
                        f"failed to load client certificate and key: {exc}"
                    ) from exc
                kwargs["tlsCertificateKeyFile"] = self._key_file
        return kwargs

    def _remove_key_file(self) -> None:
        if self._key_file is not None:
            try:
                os.unlink(self._key_file)
            except OSError:
                pass
            self._key_file = None