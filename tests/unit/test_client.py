from __future__ import annotations

import httpx
import pytest

from brickworks.core.client import ClientConfig, HttpTransport, Transport
from brickworks.core.config import FactoryConfig
from brickworks.core.exceptions import HttpStatusError, NetworkError

CFG = ClientConfig(base_url="https://factory.test", email="me@example.org", secret_key="s3cr3t-key", max_retries=2)


def _transport(handler, sleeps: list[float] | None = None) -> HttpTransport:
    client = httpx.Client(base_url=CFG.base_url, transport=httpx.MockTransport(handler))
    return HttpTransport(CFG, client=client, sleep=(sleeps if sleeps is not None else []).append)


def test_http_transport_satisfies_protocol() -> None:
    assert isinstance(_transport(lambda r: httpx.Response(200)), Transport)


def test_client_config_from_factory_section() -> None:
    cfg = ClientConfig.from_factory(FactoryConfig(url="https://f", email="e", secret_key="k", timeout_s=5, max_retries=1))
    assert (cfg.base_url, cfg.email, cfg.secret_key, cfg.timeout_s, cfg.max_retries) == ("https://f", "e", "k", 5, 1)


def test_auth_headers_and_json_body() -> None:
    seen: list[httpx.Request] = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, text='{"id": "q1", "price": 3}')

    with _transport(handler) as t:
        body = t.send("/ordering/quote-request", "POST", '{"a/000000": 1}')

    assert body == '{"id": "q1", "price": 3}'
    req = seen[0]
    assert req.url.path == "/ordering/quote-request"
    assert req.headers["X-Email"] == "me@example.org"
    assert req.headers["X-Secret-Key"] == "s3cr3t-key"
    assert req.headers["Content-Type"] == "application/json"
    assert req.content == b'{"a/000000": 1}'


def test_error_status_raises_with_code_and_body() -> None:
    t = _transport(lambda r: httpx.Response(402, text="pay up"))
    with pytest.raises(HttpStatusError) as e:
        t.send("/ordering/order/q1", "POST")
    assert e.value.status_code == 402
    assert e.value.body == "pay up"
    assert e.value.endpoint == "/ordering/order/q1"


def test_get_is_retried_on_network_errors() -> None:
    attempts = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        attempts["n"] += 1
        if attempts["n"] < 3:
            raise httpx.ConnectError("refused", request=request)
        return httpx.Response(200, text='{"balance": 5}')

    sleeps: list[float] = []
    assert _transport(handler, sleeps).send("/billing/balance", "GET") == '{"balance": 5}'
    assert attempts["n"] == 3
    assert sleeps == [1, 2]


def test_get_gives_up_after_max_retries() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ReadTimeout("slow", request=request)

    sleeps: list[float] = []
    with pytest.raises(NetworkError):
        _transport(handler, sleeps).send("/billing/balance", "GET")
    assert len(sleeps) == CFG.max_retries


def test_post_is_never_retried() -> None:
    attempts = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        attempts["n"] += 1
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(NetworkError):
        _transport(handler).send("/ordering/order/q1", "POST")
    assert attempts["n"] == 1


def test_error_status_is_not_retried() -> None:
    attempts = {"n": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        attempts["n"] += 1
        return httpx.Response(503)

    with pytest.raises(HttpStatusError):
        _transport(handler).send("/billing/balance", "GET")
    assert attempts["n"] == 1
