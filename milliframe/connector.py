"""The interface for database connectors and a registry of them."""

from __future__ import annotations

import ssl
from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path
from typing import Any


class ConnectorError(Exception):
    """Base class for connector errors."""


class NotConnectedError(ConnectorError):
    def __init__(self, message: str = "connector not connected") -> None:
        super().__init__(message)


class AlreadyConnectedError(ConnectorError):
    def __init__(self, message: str = "connector already connected") -> None:
        super().__init__(message)


class InvalidConfigError(ConnectorError):
    def __init__(self, message: str = "invalid configuration") -> None:
        super().__init__(message)


class NotSupportedError(ConnectorError):
    def __init__(self, message: str = "feature not supported") -> None:
        super().__init__(message)


@dataclass
class ConnectorConfig:
    """Settings shared by all connectors; durations are in seconds."""

    name: str = ""
    address: str = ""
    username: str = ""
    password: str = ""
    database: str = ""
    connect_timeout: float = 0.0
    read_timeout: float = 0.0
    write_timeout: float = 0.0
    max_idle_conns: int = 0
    max_open_conns: int = 0
    max_conn_lifetime: float = 0.0
    max_idle_time: float = 0.0
    enable_tls: bool = False
    tls_cert_path: str = ""
    tls_key_path: str = ""
    tls_ca_path: str = ""
    tls_skip_verify: bool = False


class Connector(ABC):
    """A connection to a database or similar service."""

    @abstractmethod
    def connect(self) -> None:
        """Connect; raises AlreadyConnectedError if already connected."""

    @abstractmethod
    def disconnect(self) -> None:
        """Disconnect; raises NotConnectedError if not connected."""

    @abstractmethod
    def ping(self) -> None:
        """Check the service is reachable; raises on failure."""

    @abstractmethod
    def is_connected(self) -> bool:
        """Return True while connected."""

    @abstractmethod
    def name(self) -> str:
        """Return the connector's name."""

    @abstractmethod
    def client(self) -> Any:
        """Return the underlying client, or None when not connected."""


class Registry:
    """Connectors by name."""

    def __init__(self) -> None:
        self._connectors: dict[str, Connector] = {}

    def register(self, name: str, connector: Connector) -> None:
        self._connectors[name] = connector

    def get(self, name: str) -> Connector | None:
        return self._connectors.get(name)

    def list(self) -> dict[str, Connector]:
        return dict(self._connectors)

    def close(self) -> None:
        """Disconnect every connected connector.

        All are tried; if any failed, the last failure is raised.
        """
        last_error: Exception | None = None
        for connector in self._connectors.values():
            if connector.is_connected():
                try:
                    connector.disconnect()
                except Exception as exc:  # noqa: BLE001 - keep closing the rest
                    last_error = exc
        if last_error is not None:
            raise last_error


_global = Registry()


def register(name: str, connector: Connector) -> None:
    """Register a connector in the process-wide registry."""
    _global.register(name, connector)


def get(name: str) -> Connector | None:
    """Return a connector from the process-wide registry, or None."""
    return _global.get(name)


def list_connectors() -> dict[str, Connector]:
    """Return all connectors in the process-wide registry."""
    return _global.list()


def close_all() -> None:
    """Disconnect every connector in the process-wide registry."""
    _global.close()


_PEM_CERT_MARKER = "-----BEGIN CERTIFICATE-----"


def build_ssl_context(config: ConnectorConfig) -> ssl.SSLContext:
    """Build a client TLS context from a connector's TLS settings.

    With ``tls_skip_verify`` the server is not verified and the file paths
    are ignored. Otherwise the CA file, when given, replaces the system
    roots, and a client certificate is loaded when both cert and key paths
    are given.
    """
    context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
    if config.tls_skip_verify:
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        return context

    if config.tls_ca_path:
        try:
            ca_pem = Path(config.tls_ca_path).read_bytes().decode("utf-8", errors="replace")
        except OSError as exc:
            raise ConnectorError(f"failed to read CA certificate: {exc}") from exc
        if _PEM_CERT_MARKER not in ca_pem:
            raise ConnectorError("failed to append CA certificate")
        try:
            context.load_verify_locations(cadata=ca_pem)
        except (ssl.SSLError, ValueError) as exc:
            raise ConnectorError("failed to append CA certificate") from exc
    else:
        context.load_default_certs()

    if config.tls_cert_path and config.tls_key_path:
        try:
            context.load_cert_chain(config.tls_cert_path, config.tls_key_path)
        except (OSError, ssl.SSLError) as exc:
            raise ConnectorError(f"failed to load client certificate and key: {exc}") from exc

    return context