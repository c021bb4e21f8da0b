"""HTTP client for the PlanPulse API with retries and a circuit breaker.

Used by the scripts under ``scripts/`` to import and export CSVs and to pull
reports from a running server.
"""
import httpx
import logging
import time
from typing import Dict, Any, Optional, Callable
from tenacity import retry, stop_after_attempt, wait_exponential, retry_if_exception

from planpulse.common.api_client.errors import (
    APIConflictError,
    APIExpiredError,
    APINotFoundError,
    APIServerError,
    APITransportError,
    APIValidationError,
    translate_http_error,
)

logger = logging.getLogger(__name__)

CLIENT_ERRORS = (APIValidationError, APINotFoundError, APIConflictError, APIExpiredError)


def _is_retryable(exc: BaseException) -> bool:
    if isinstance(exc, httpx.HTTPStatusError):
        return exc.response.status_code in (503, 429)
    return isinstance(exc, (httpx.TimeoutException, httpx.ConnectError))


class CircuitBreaker:
    """Stops calling a failing server for ``timeout`` seconds.

    After ``failure_threshold`` consecutive failures the breaker is OPEN and
    calls fail fast. Once the timeout passes one trial call is let through
    (HALF_OPEN). Success closes the breaker again. Rejected imports, unknown
    ids and expired scenarios are the caller's problem and are not counted.
    """

    def __init__(self, failure_threshold: int = 5, timeout: int = 60, clock: Callable[[], float] = time.time):
        self.failure_threshold = failure_threshold
        self.timeout = timeout
        self.failures = 0
        self.state = "CLOSED"
        self.opened_at = None
        self._clock = clock

    def _record_failure(self):
        self.failures += 1
        if self.failures >= self.failure_threshold:
            logger.error("PlanPulse API failed %d times in a row, pausing calls for %ss", self.failures, self.timeout)
            self.state = "OPEN"
            self.opened_at = self._clock()

    def call(self, func: Callable, *args, **kwargs):
        """Run ``func`` unless the breaker is open."""
        if self.state == "OPEN":
            elapsed = self._clock() - self.opened_at
            if elapsed >= self.timeout:
                logger.info("Trying the PlanPulse API again")
                self.state = "HALF_OPEN"
            else:
                raise APIServerError(
                    f"PlanPulse API is unavailable after repeated failures. "
                    f"Please try again in {int(self.timeout - elapsed)} seconds."
                )

        try:
            result = func(*args, **kwargs)
        except CLIENT_ERRORS:
            raise
        except Exception:
            self._record_failure()
            raise

        if self.state == "HALF_OPEN":
            logger.info("PlanPulse API recovered")
            self.state = "CLOSED"
        self.failures = 0
        return result


class PlanPulseClient:
    """Synchronous client for the PlanPulse HTTP API.

    Pass ``transport`` to route requests somewhere other than the network,
    e.g. an ``httpx.MockTransport`` in tests.
    """

    def __init__(
        self,
        base_url: str = "http://localhost:8000",
        timeout: float = 30.0,
        circuit_breaker_threshold: int = 5,
        circuit_breaker_timeout: int = 60,
        actor: Optional[str] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.base_url = base_url.rstrip('/')
        headers = {"User-Agent": "PlanPulse-Client/1.0"}
        if actor:
            headers["X-PlanPulse-Actor"] = actor
        self.client = httpx.Client(
            timeout=timeout,
            follow_redirects=True,
            headers=headers,
            transport=transport,
        )
        self.circuit_breaker = CircuitBreaker(
            failure_threshold=circuit_breaker_threshold,
            timeout=circuit_breaker_timeout
        )

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=10),
        retry=retry_if_exception(_is_retryable),
        reraise=True
    )
    def _make_request(self, method: str, path: str, **kwargs) -> httpx.Response:
        """
        Make HTTP request with automatic retry.

        Retries on network errors, 503 and 429. Other statuses are returned
        to the caller untouched.
        """
        url = f"{self.base_url}{path}"
        start = time.perf_counter()
        response = self.client.request(method, url, **kwargs)
        duration_ms = (time.perf_counter() - start) * 1000
        logger.info(
            "http_request method=%s path=%s status=%s duration_ms=%.1f",
            method,
            path,
            response.status_code,
            duration_ms,
        )

        if response.status_code in (503, 429):
            logger.warning(f"Retryable error {response.status_code} from {url}")
            response.raise_for_status()

        return response

    def _send(self, method: str, path: str, **kwargs) -> httpx.Response:
        def _request():
            try:
                response = self._make_request(method, path, **kwargs)
                response.raise_for_status()
                return response
            except httpx.HTTPStatusError as e:
                raise translate_http_error(e) from e
            except httpx.RequestError as e:
                raise APITransportError(f"Failed to connect to API server: {e}") from e

        return self.circuit_breaker.call(_request)

    def request(self, method: str, path: str, **kwargs) -> Any:
        """Make a request and return the decoded JSON body."""
        return self._send(method, path, **kwargs).json()

    # Health

    def check_health(self) -> Dict[str, Any]:
        response = self._make_request("GET", "/health/")
        return response.json()

    # Entities

    def list_entities(self, collection: str, **filters: Any) -> Dict[str, Any]:
        return self.request("GET", f"/api/v1/{collection}/", params=filters)

    def create_entity(self, collection: str, data: Dict[str, Any]) -> Dict[str, Any]:
        return self.request("POST", f"/api/v1/{collection}/", json=data)

    # CSV

    def import_csv(self, kind: str, content: str, dry_run: bool = False) -> Dict[str, Any]:
        return self.request("POST", f"/api/v1/imports/{kind}", json={"content": content, "dry_run": dry_run})

    def export_csv(self, kind: str, cycle_id: Optional[str] = None) -> str:
        params = {"cycle_id": cycle_id} if cycle_id else None
        return self._send("GET", f"/api/v1/exports/{kind}", params=params).text

    # Reports and scenarios

    def report(self, path: str, scenario_id: Optional[str] = None, **params: Any) -> Dict[str, Any]:
        """GET ``/api/v1/reports/<path>``, e.g. ``report("projects/p1/cost")``."""
        if scenario_id:
            params["scenario_id"] = scenario_id
        return self.request("GET", f"/api/v1/reports/{path.lstrip('/')}", params=params)

    def create_scenario(self, name: str, template_id: Optional[str] = None, **template_params: Any) -> Dict[str, Any]:
        payload: Dict[str, Any] = {"name": name}
        if template_id:
            payload["template_id"] = template_id
            payload["template_params"] = template_params
        return self.request("POST", "/api/v1/scenarios/", json=payload)

    def compare_scenario(self, scenario_id: str) -> Dict[str, Any]:
        return self.request("GET", f"/api/v1/scenarios/{scenario_id}/comparison")

    def close(self):
        """Close HTTP client."""
        self.client.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
