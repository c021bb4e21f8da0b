"""Error translation between HTTP responses and client exceptions."""
import httpx


class PlanPulseAPIError(Exception):
    """Base exception for API client errors."""
    pass


class APIValidationError(PlanPulseAPIError):
    """Validation error (maps to 400 and 422)."""
    pass


class APINotFoundError(PlanPulseAPIError):
    """Entity not found (maps to 404)."""
    pass


class APIConflictError(PlanPulseAPIError):
    """Conflict/duplicate error (maps to 409)."""
    pass


class APIExpiredError(PlanPulseAPIError):
    """Scenario expired (maps to 410)."""
    pass


class APIServerError(PlanPulseAPIError):
    """Internal server error (maps to 5xx)."""
    pass


class APITransportError(APIServerError):
    """Network/transport failure talking to the API server."""
    pass


def translate_http_error(http_error: httpx.HTTPStatusError) -> PlanPulseAPIError:
    """
    Translate HTTP error to client error.

    Error mapping:
    - 400, 422 → APIValidationError
    - 404 → APINotFoundError
    - 409 → APIConflictError
    - 410 → APIExpiredError
    - 503 → APIServerError (with retry message)
    - other 5xx → APIServerError
    - Other → PlanPulseAPIError
    """
    status_code = http_error.response.status_code

    try:
        response_body = http_error.response.json() if http_error.response.text else {}
        error_detail = response_body.get("detail", str(http_error))
    except ValueError:
        error_detail = http_error.response.text or str(http_error)

    if status_code in (400, 422):
        return APIValidationError(f"Validation failed: {error_detail}")
    elif status_code == 404:
        return APINotFoundError(f"Not found: {error_detail}")
    elif status_code == 409:
        return APIConflictError(f"Conflict: {error_detail}")
    elif status_code == 410:
        return APIExpiredError(f"Expired: {error_detail}")
    elif status_code == 503:
        return APIServerError(
            f"API server is temporarily unavailable: {error_detail}. "
            "Please try again in a few moments."
        )
    elif status_code >= 500:
        return APIServerError(f"Server error: {error_detail}")
    else:
        return PlanPulseAPIError(f"API request failed ({status_code}): {error_detail}")
