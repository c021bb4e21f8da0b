"""Tests for the HTTP client: error translation, retries and the circuit breaker."""

import httpx
import pytest

from planpulse.common.api_client.client import CircuitBreaker, PlanPulseClient
from planpulse.common.api_client.errors import (
    APIConflictError,
    APIExpiredError,
    APINotFoundError,
    APIServerError,
    APIValidationError,
    PlanPulseAPIError,
    translate_http_error,
)


def _status_error(status, body=None):
    request = httpx.Request("GET", "http://test/api/v1/teams/x")
    response = httpx.Response(status, json=body, request=request)
    return httpx.HTTPStatusError("boom", request=request, response=response)


@pytest.fixture
def no_sleep(monkeypatch):
    monkeypatch.setattr(PlanPulseClient._make_request.retry, "sleep", lambda seconds: None)


def _client(handler, **kwargs):
    return PlanPulseClient(base_url="http://test/", transport=httpx.MockTransport(handler), **kwargs)


@pytest.mark.parametrize("status,expected", [
    (400, APIValidationError),
    (422, APIValidationError),
    (404, APINotFoundError),
    (409, APIConflictError),
    (410, APIExpiredError),
    (500, APIServerError),
    (503, APIServerError),
])
def test_translate_http_error(status, expected):
    error = translate_http_error(_status_error(status, {"error": "x", "detail": "Team not found"}))
    assert isinstance(error, expected)
    assert "Team not found" in str(error)


def test_translate_unknown_status():
    error = translate_http_error(_status_error(418, {"detail": "teapot"}))
    assert type(error) is PlanPulseAPIError
    assert "418" in str(error)


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


def _fail():
    raise RuntimeError("down")


def test_circuit_breaker_opens_and_recovers():
    clock = FakeClock()
    breaker = CircuitBreaker(failure_threshold=2, timeout=30, clock=clock)

    for _ in range(2):
        with pytest.raises(RuntimeError):
            breaker.call(_fail)
    assert breaker.state == "OPEN"

    with pytest.raises(APIServerError, match="try again in 30 seconds"):
        breaker.call(lambda: "never")

    clock.now += 30
    assert breaker.call(lambda: "ok") == "ok"
    assert breaker.state == "CLOSED"
    assert breaker.failures == 0


def test_client_errors_do_not_trip_breaker():
    breaker = CircuitBreaker(failure_threshold=1)

    def not_found():
        raise APINotFoundError("missing")

    with pytest.raises(APINotFoundError):
        breaker.call(not_found)
    assert breaker.state == "CLOSED"
    assert breaker.failures == 0


def test_request_returns_json_and_sends_actor():
    seen = {}

    def handler(request):
        seen["url"] = str(request.url)
        seen["actor"] = request.headers.get("X-PlanPulse-Actor")
        return httpx.Response(200, json={"items": [], "count": 0})

    with _client(handler, actor="planner") as client:
        assert client.list_entities("teams", name="Alpha") == {"items": [], "count": 0}
    assert seen["url"] == "http://test/api/v1/teams/?name=Alpha"
    assert seen["actor"] == "planner"


def test_http_errors_translated():
    def handler(request):
        return httpx.Response(409, json={"error": "Conflict", "detail": "Duplicate email"})

    with _client(handler) as client:
        with pytest.raises(APIConflictError, match="Duplicate email"):
            client.create_entity("people", {"name": "Ann"})
        assert client.circuit_breaker.failures == 0


def test_retries_service_unavailable(no_sleep):
    calls = []

    def handler(request):
        calls.append(request)
        if len(calls) < 3:
            return httpx.Response(503, json={"detail": "busy"})
        return httpx.Response(200, json={"imported": {"people": 1}, "errors": []})

    with _client(handler) as client:
        result = client.import_csv("people", "Name\nAnn\n", dry_run=True)
    assert result["imported"] == {"people": 1}
    assert len(calls) == 3


def test_gives_up_after_three_attempts(no_sleep):
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(503, json={"detail": "busy"})

    with _client(handler) as client:
        with pytest.raises(APIServerError, match="temporarily unavailable"):
            client.report("skills/coverage")
        assert client.circuit_breaker.failures == 1
    assert len(calls) == 3


def test_export_and_health():
    def handler(request):
        if request.url.path == "/health/":
            return httpx.Response(200, json={"status": "healthy"})
        assert request.url.params["cycle_id"] == "q1"
        return httpx.Response(200, text="teamName\nAlpha\n", headers={"Content-Type": "text/csv"})

    with _client(handler) as client:
        assert client.check_health() == {"status": "healthy"}
        assert client.export_csv("allocations", cycle_id="q1") == "teamName\nAlpha\n"
