import base64
import gzip

import httpx
import pytest

from milliframe.connector import (
    AlreadyConnectedError,
    ConnectorError,
    InvalidConfigError,
    NotConnectedError,
    NotSupportedError,
)
from milliframe.elasticsearch_connector import (
    ElasticsearchConfig,
    ElasticsearchConnector,
)


class Recorder:
    def __init__(self, statuses=None, nodes=None):
        self.requests = []
        self.statuses = list(statuses or [])
        self.nodes = nodes

    def __call__(self, request):
        self.requests.append(request)
        if request.url.path == "/_nodes/http":
            return httpx.Response(200, json={"nodes": self.nodes or {}})
        status = self.statuses.pop(0) if self.statuses else 200
        return httpx.Response(status)


def make(handler, **overrides):
    overrides.setdefault("discover_nodes_on_start", False)
    overrides.setdefault("discover_nodes_interval", 0)
    return ElasticsearchConnector(transport=httpx.MockTransport(handler), **overrides)


def test_default_config():
    cfg = ElasticsearchConfig()
    assert cfg.name == "elasticsearch"
    assert cfg.address == "http://localhost:9200"
    assert cfg.retry_on_status == [502, 503, 504, 429]
    assert cfg.max_retries == 3
    assert cfg.discover_nodes_on_start is True


def test_overrides_apply_to_config():
    conn = ElasticsearchConnector(address="http://search.example.com:9200", max_retries=1)
    assert conn.config.address == "http://search.example.com:9200"
    assert conn.config.max_retries == 1
    assert conn.name() == "elasticsearch"


def test_connect_sends_ping():
    rec = Recorder()
    conn = make(rec)
    conn.connect()
    assert conn.is_connected()
    assert conn.client() is not None
    request = rec.requests[0]
    assert request.method == "HEAD"
    assert request.url.path == "/"
    assert request.url.params["pretty"] == "true"
    assert request.url.params["human"] == "true"
    conn.disconnect()
    assert not conn.is_connected()
    assert conn.client() is None


def test_connect_twice_raises():
    conn = make(Recorder())
    conn.connect()
    with pytest.raises(AlreadyConnectedError):
        conn.connect()


def test_not_connected_errors():
    conn = make(Recorder())
    with pytest.raises(NotConnectedError):
        conn.disconnect()
    with pytest.raises(NotConnectedError):
        conn.ping()


def test_ping_error_status_fails_connect():
    conn = make(Recorder(statuses=[500]))
    with pytest.raises(ConnectorError, match="failed to ping Elasticsearch"):
        conn.connect()
    assert not conn.is_connected()


def test_retries_on_listed_status():
    rec = Recorder(statuses=[503, 503, 200])
    conn = make(rec)
    conn.connect()
    assert conn.is_connected()
    assert len(rec.requests) == 3


def test_zero_retries_disables_retry():
    rec = Recorder(statuses=[503, 200])
    conn = make(rec, max_retries=0)
    with pytest.raises(ConnectorError):
        conn.connect()
    assert len(rec.requests) == 1


def test_retry_backoff_receives_attempts():
    attempts = []
    rec = Recorder(statuses=[502, 504, 200])
    conn = make(rec, retry_backoff=lambda attempt: attempts.append(attempt) or 0)
    conn.connect()
    assert attempts == [1, 2]


def test_api_key_header():
    rec = Recorder()
    conn = make(rec, api_key="placeholder")
    conn.connect()
    assert rec.requests[0].headers["authorization"] == "ApiKey placeholder"


def test_service_token_header():
    rec = Recorder()
    conn = make(rec, service_token="token")
    conn.connect()
    assert rec.requests[0].headers["authorization"] == "Bearer token"


def test_basic_auth_header():
    password = "password"
    rec = Recorder()
    conn = make(rec, username="elastic", password=password)
    conn.connect()
    expected = "Basic " + base64.b64encode(f"elastic:{password}".encode()).decode()
    assert rec.requests[0].headers["authorization"] == expected


def test_cloud_id_resolves_host():
    payload = base64.b64encode(b"example.com$abc$def").decode()
    rec = Recorder()
    conn = make(rec, address="", cloud_id=f"demo:{payload}")
    conn.connect()
    assert rec.requests[0].url.host == "abc.example.com"
    assert rec.requests[0].url.scheme == "https"


def test_cloud_id_with_address_is_rejected():
    payload = base64.b64encode(b"example.com$abc").decode()
    conn = make(Recorder(), cloud_id=f"demo:{payload}")
    with pytest.raises(InvalidConfigError):
        conn.connect()


def test_addresses_used_in_turn():
    rec = Recorder()
    conn = make(rec, address="http://one.example.com:9200,http://two.example.com:9200")
    conn.connect()
    conn.ping()
    hosts = [request.url.host for request in rec.requests]
    assert hosts == ["one.example.com", "two.example.com"]


def test_discovery_replaces_addresses():
    nodes = {"n1": {"http": {"publish_address": "node1/10.0.0.5:9201"}}}
    rec = Recorder(nodes=nodes)
    conn = make(rec, discover_nodes_on_start=True)
    conn.connect()
    assert conn.client().addresses == ["http://node1:9201"]
    ping = rec.requests[-1]
    assert ping.url.host == "node1"
    assert ping.url.port == 9201


def test_discovery_without_nodes_keeps_addresses():
    rec = Recorder()
    conn = make(rec, discover_nodes_on_start=True)
    conn.connect()
    assert conn.client().addresses == ["http://localhost:9200"]


def test_compressed_request_body():
    seen = []

    def handler(request):
        if request.method == "POST":
            seen.append((request.headers.get("content-encoding"), gzip.decompress(request.content)))
        return httpx.Response(200)

    conn = make(handler, compress_request_body=True)
    conn.connect()
    response = conn.client().perform("POST", "/idx/_doc", body=b'{"a": 1}')
    assert response.status_code == 200
    assert seen == [("gzip", b'{"a": 1}')]


def test_metrics_disabled_raises():
    conn = make(Recorder())
    conn.connect()
    with pytest.raises(NotSupportedError):
        conn.client().metrics()


def test_metrics_count_responses():
    conn = make(Recorder(statuses=[503, 200]), enable_metrics=True)
    conn.connect()
    metrics = conn.client().metrics()
    assert metrics["requests"] == 2
    assert metrics["failures"] == 0
    assert metrics["responses"] == {503: 1, 200: 1}


def test_transport_error_fails_connect():
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    conn = make(handler, max_retries=1)
    with pytest.raises(ConnectorError, match="failed to ping Elasticsearch"):
        conn.connect()
    assert conn.client() is None