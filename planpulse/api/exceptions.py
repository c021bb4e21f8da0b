"""Domain errors raised by services and the handlers that turn them into JSON."""

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import logging

logger = logging.getLogger(__name__)


class PlanningError(Exception):
    """Base for errors that map onto a client-facing HTTP status."""
    status_code = 400
    title = "Bad request"


class EntityNotFoundError(PlanningError):
    """A referenced team, project, cycle or scenario does not exist."""
    status_code = 404
    title = "Entity not found"


class DuplicateEntityError(PlanningError):
    """An id or unique field (email, generated cycles) already exists."""
    status_code = 409
    title = "Duplicate entity"


class ValidationError(PlanningError):
    status_code = 400
    title = "Validation failed"


class ScenarioExpiredError(PlanningError):
    status_code = 410
    title = "Scenario expired"


async def planning_error_handler(request: Request, exc: PlanningError):
    if exc.status_code >= 404:
        logger.info("%s %s -> %d: %s", request.method, request.url.path, exc.status_code, exc)
    return JSONResponse(
        status_code=exc.status_code,
        content={"error": exc.title, "detail": str(exc)},
    )


async def generic_exception_handler(request: Request, exc: Exception):
    logger.exception("Unhandled exception on %s %s", request.method, request.url.path)
    return JSONResponse(
        status_code=500,
        content={"error": "Internal server error", "detail": "An unexpected error occurred"},
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(PlanningError, planning_error_handler)
    app.add_exception_handler(Exception, generic_exception_handler)
