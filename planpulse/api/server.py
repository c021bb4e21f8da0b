"""FastAPI server entrypoint for the PlanPulse API."""

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import logging
import json
import time
from datetime import datetime, timezone

from planpulse.common.cache.smart_cache import SmartCache
from planpulse.common.config.config import Config
from planpulse.common.storage.database import Database
from planpulse.api.exceptions import PlanningError, register_exception_handlers
from planpulse.api.metrics import metrics

from planpulse.api.routers.health import router as health_router
from planpulse.api.routers.cycles import router as cycles_router
from planpulse.api.routers.entities import routers as entity_routers
from planpulse.api.routers.imports import router as imports_router
from planpulse.api.routers.reports import router as reports_router
from planpulse.api.routers.scenarios import router as scenarios_router
from planpulse.api.routers.settings import router as settings_router
from planpulse.api.routers.cache import router as cache_router
from planpulse.api.services.entity_service import EntityService
from planpulse.api.services.import_service import ImportService
from planpulse.api.services.report_service import ReportService
from planpulse.api.services.scenario_service import ScenarioService
from planpulse.api.services.settings_service import SettingsService

logger = logging.getLogger(__name__)

VERSION = "0.3.0"

# Fetch errors that mean "bad request", not "try again"
NON_RETRYABLE_ERRORS = (PlanningError,)


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record):
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
        }
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)
        return json.dumps(log_data)


def configure_logging(level_name: str = "INFO"):
    """Configure structured JSON logging."""
    handler = logging.StreamHandler()
    handler.setFormatter(JSONFormatter())
    logging.root.handlers = [handler]
    log_level = getattr(logging, level_name, logging.INFO)
    logging.root.setLevel(log_level)
    logging.getLogger("uvicorn.access").setLevel(log_level)
    # Background cache refreshes log every recompute at DEBUG
    logging.getLogger("planpulse.common.cache.smart_cache").setLevel(max(log_level, logging.INFO))


def build_report_cache(config: Config) -> SmartCache:
    return SmartCache(
        namespace="reports",
        default_ttl=config.cache_ttl,
        stale_after=config.cache_stale_after,
        max_size=config.cache_max_bytes,
        persist_path=config.cache_snapshot_path if config.cache_persist else None,
        encryption_key=config.cache_encryption_key,
        non_retryable=NON_RETRYABLE_ERRORS,
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan context manager for startup and shutdown."""
    # Use app.state instead of module globals to avoid circular imports
    config = Config()
    configure_logging(config.log_level)
    logger.info("Starting PlanPulse API server...")

    try:
        app.state.config = config

        app.state.db = Database(config.database_path, echo=config.database_echo)
        app.state.db.init_database()
        logger.info("Database initialized at %s", config.database_path)

        app.state.report_cache = build_report_cache(config)
        logger.info("Report cache ready (ttl=%ss, encrypted=%s)", config.cache_ttl, bool(config.cache_encryption_key))

        cache = app.state.report_cache
        app.state.settings_service = SettingsService(report_cache=cache)
        app.state.entity_service = EntityService(report_cache=cache)
        app.state.import_service = ImportService(app.state.entity_service, fuzzy_cutoff=config.fuzzy_cutoff)
        app.state.scenario_service = ScenarioService(ttl_days=config.scenario_ttl_days, report_cache=cache)
        app.state.report_service = ReportService(
            app.state.db, cache, app.state.settings_service, app.state.scenario_service
        )

        with app.state.db.session_scope() as session:
            app.state.scenario_service.cleanup_expired(session)
        logger.info("Services initialized")

        yield

    finally:
        logger.info("Shutting down PlanPulse API server...")

        if getattr(app.state, "report_cache", None) is not None:
            try:
                app.state.report_cache.close()
            except Exception as e:
                logger.warning(f"Error closing report cache: {e}")

        if getattr(app.state, "db", None) is not None:
            app.state.db.close()
            logger.info("Database connection closed")
        logger.info("PlanPulse API server shut down")


app = FastAPI(
    title="PlanPulse API",
    description="Resource planning: teams, allocations, costs and what-if scenarios",
    version=VERSION,
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.middleware("http")
async def metrics_middleware(request: Request, call_next):
    """Track request metrics."""
    start_time = time.time()
    response = await call_next(request)
    duration = time.time() - start_time
    # Route templates keep metric names bounded (no entity ids)
    route = request.scope.get("route")
    path = getattr(route, "path", request.url.path)
    metrics.record_request(request.method, path, response.status_code, duration)
    return response


register_exception_handlers(app)

app.include_router(health_router)
# Before the entity routers so /api/v1/cycles/current is not read as an id
app.include_router(cycles_router)
for entity_router in entity_routers:
    app.include_router(entity_router)
app.include_router(imports_router)
app.include_router(reports_router)
app.include_router(scenarios_router)
app.include_router(settings_router)
app.include_router(cache_router)


@app.get("/")
def root():
    """Return basic service info for smoke checks."""
    return {
        "service": "PlanPulse API",
        "version": VERSION,
        "status": "running",
    }


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(app, host="0.0.0.0", port=8000, log_level="info")
