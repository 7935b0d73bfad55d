"""
Tests for the requests-backed HTTP transport.

Checklist:
- Status and headers come back as a ResponseObservation
- Body is never read; the response is always closed
- Non-standard statuses up to 999 are observed, not fatal
- requests exceptions surface as TransportError
- Connection pool is sized to the concurrency limit
"""

import pytest
import requests
from requests.structures import CaseInsensitiveDict

from rate_limit_probe.core.errors import TransportError
from rate_limit_probe.io.schema import HttpMethod, RequestDescriptor, StopReason
from rate_limit_probe.io.transport import RequestsTransport, create_transport
from rate_limit_probe.pipeline.dispatcher import run
from rate_limit_probe.pipeline.source import RequestSource
from tests import DEFAULT_TARGET_URL


class _FakeResponse:
    def __init__(self, status_code=200, headers=None):
        self.status_code = status_code
        self.headers = CaseInsensitiveDict(headers or {})
        self.closed = False

    @property
    def content(self):
        raise AssertionError("response body must not be read")

    def close(self):
        self.closed = True


def _patch_request(monkeypatch, transport, response=None, error=None):
    calls = []

    def fake_request(method, url, **kwargs):
        calls.append((method, url, kwargs))
        if error is not None:
            raise error
        return response

    monkeypatch.setattr(transport.session, "request", fake_request)
    return calls


def test_send_returns_status_and_headers(monkeypatch):
    transport = RequestsTransport(pool_size=4, timeout=5)
    response = _FakeResponse(429, {"Retry-After": "12", "X-RateLimit-Remaining": "0"})
    calls = _patch_request(monkeypatch, transport, response=response)

    observation = transport.send(HttpMethod.POST, DEFAULT_TARGET_URL)

    assert observation.status_code == 429
    assert observation.is_rate_limited
    assert observation.headers["Retry-After"] == "12"
    assert observation.headers["X-RateLimit-Remaining"] == "0"
    assert response.closed
    method, url, kwargs = calls[0]
    assert (method, url) == ("POST", DEFAULT_TARGET_URL)
    assert kwargs["stream"] is True
    assert kwargs["timeout"] == 5


@pytest.mark.parametrize(
    "error",
    [
        requests.ConnectionError("connection refused"),
        requests.Timeout("read timed out"),
        requests.TooManyRedirects("redirect loop"),
    ],
)
def test_request_exceptions_become_transport_errors(monkeypatch, error):
    transport = RequestsTransport(pool_size=1)
    _patch_request(monkeypatch, transport, error=error)

    with pytest.raises(TransportError) as excinfo:
        transport.send(HttpMethod.GET, DEFAULT_TARGET_URL)

    assert excinfo.value.__cause__ is error
    assert DEFAULT_TARGET_URL in str(excinfo.value)


def test_nonstandard_status_is_observed(monkeypatch):
    transport = RequestsTransport(pool_size=1)
    response = _FakeResponse(999)
    _patch_request(monkeypatch, transport, response=response)

    observation = transport.send(HttpMethod.GET, DEFAULT_TARGET_URL)

    assert observation.status_code == 999
    assert not observation.is_rate_limited
    assert response.closed


@pytest.mark.timeout(10)
def test_run_continues_past_nonstandard_status(monkeypatch):
    transport = RequestsTransport(pool_size=1)
    responses = iter([_FakeResponse(status) for status in (200, 999, 200, 429, 200)])
    monkeypatch.setattr(transport.session, "request", lambda method, url, **kwargs: next(responses))
    descriptor = RequestDescriptor(method=HttpMethod.GET, url=DEFAULT_TARGET_URL)

    result = run(
        RequestSource(descriptor, 10),
        transport,
        concurrency_limit=1,
        time_budget=60,
        max_requests=10,
    )

    assert result.stop_reason is StopReason.RATE_LIMITED
    assert result.requests_completed == 4


def test_out_of_range_status_is_a_transport_error(monkeypatch):
    transport = RequestsTransport(pool_size=1)
    response = _FakeResponse(1000)
    _patch_request(monkeypatch, transport, response=response)

    with pytest.raises(TransportError, match="malformed"):
        transport.send(HttpMethod.GET, DEFAULT_TARGET_URL)
    assert response.closed


def test_pool_sized_to_concurrency():
    transport = create_transport(pool_size=15, timeout=2)

    adapter = transport.session.get_adapter("https://probe.test/")

    assert adapter._pool_maxsize == 15
    assert adapter._pool_connections == 15
    assert transport.timeout == 2
    transport.close()
