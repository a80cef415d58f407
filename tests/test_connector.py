import ssl

import pytest

from milliframe import connector as conn
from milliframe.connector import (
    AlreadyConnectedError,
    Connector,
    ConnectorConfig,
    ConnectorError,
    NotConnectedError,
    NotSupportedError,
    Registry,
    build_ssl_context,
)


class _FakeConnector(Connector):
    def __init__(self, label, fail=None):
        self._label = label
        self._fail = fail
        self._connected = False

    def connect(self):
        if self._connected:
            raise AlreadyConnectedError()
        self._connected = True

    def disconnect(self):
        if not self._connected:
            raise NotConnectedError()
        if self._fail is not None:
            raise self._fail
        self._connected = False

    def ping(self):
        if not self._connected:
            raise NotConnectedError()

    def is_connected(self):
        return self._connected

    def name(self):
        return self._label

    def client(self):
        return self if self._connected else None


def test_error_messages():
    assert str(NotConnectedError()) == "connector not connected"
    assert str(AlreadyConnectedError()) == "connector already connected"
    assert isinstance(NotSupportedError(), ConnectorError)


def test_connector_is_abstract():
    with pytest.raises(TypeError):
        Connector()


def test_registry_register_get_list():
    registry = Registry()
    first = _FakeConnector("a")
    registry.register("a", first)
    assert registry.get("a") is first
    assert registry.get("missing") is None
    assert registry.list() == {"a": first}


def test_registry_list_is_a_copy():
    registry = Registry()
    registry.register("a", _FakeConnector("a"))
    registry.list().clear()
    assert "a" in registry.list()


def test_registry_close_disconnects_connected_only():
    registry = Registry()
    connected = _FakeConnector("on")
    idle = _FakeConnector("off")
    connected.connect()
    registry.register("on", connected)
    registry.register("off", idle)
    registry.close()
    assert connected.is_connected() is False
    assert idle.is_connected() is False


def test_registry_close_raises_last_error_after_trying_all():
    registry = Registry()
    failure = RuntimeError("boom")
    bad = _FakeConnector("bad", fail=failure)
    good = _FakeConnector("good")
    bad.connect()
    good.connect()
    registry.register("bad", bad)
    registry.register("good", good)
    with pytest.raises(RuntimeError) as info:
        registry.close()
    assert info.value is failure
    assert good.is_connected() is False


def test_global_registry_functions():
    item = _FakeConnector("global-test")
    item.connect()
    conn.register("global-test-connector", item)
    assert conn.get("global-test-connector") is item
    assert conn.list_connectors()["global-test-connector"] is item
    conn.close_all()
    assert item.is_connected() is False


def test_config_defaults():
    config = ConnectorConfig()
    assert config.enable_tls is False
    assert config.max_open_conns == 0
    assert config.address == ""


def test_ssl_context_skip_verify_ignores_paths(tmp_path):
    config = ConnectorConfig(tls_skip_verify=True, tls_ca_path=str(tmp_path / "none.pem"))
    context = build_ssl_context(config)
    assert context.verify_mode == ssl.CERT_NONE
    assert context.check_hostname is False


def test_ssl_context_verifies_by_default():
    context = build_ssl_context(ConnectorConfig())
    assert context.verify_mode == ssl.CERT_REQUIRED
    assert context.check_hostname is True


def test_ssl_context_missing_ca(tmp_path):
    config = ConnectorConfig(tls_ca_path=str(tmp_path / "none.pem"))
    with pytest.raises(ConnectorError, match="failed to read CA certificate"):
        build_ssl_context(config)


def test_ssl_context_invalid_ca(tmp_path):
    ca = tmp_path / "ca.pem"
    ca.write_text("not a certificate")
    with pytest.raises(ConnectorError, match="failed to append CA certificate"):
        build_ssl_context(ConnectorConfig(tls_ca_path=str(ca)))


def test_ssl_context_missing_client_cert(tmp_path):
    config = ConnectorConfig(
        tls_cert_path=str(tmp_path / "cert.pem"),
        tls_key_path=str(tmp_path / "key.pem"),
    )
    with pytest.raises(ConnectorError, match="failed to load client certificate and key"):
        build_ssl_context(config)