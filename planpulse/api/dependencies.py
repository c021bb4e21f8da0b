"""FastAPI dependency injection for shared resources.

Uses app.state to access singletons instead of module globals to avoid circular imports.
"""

from typing import Generator
import logging
import time
from fastapi import Request
from sqlalchemy.orm import Session
from sqlalchemy.exc import OperationalError

logger = logging.getLogger(__name__)

COMMIT_ATTEMPTS = 3
COMMIT_BASE_DELAY = 0.05


def _commit_with_retry(session: Session) -> None:
    """Commit, backing off 0.05s, 0.1s on transient SQLite lock errors."""
    attempt = 0
    while True:
        try:
            session.commit()
            return
        except OperationalError as exc:
            msg = str(exc).lower()
            if ("database is locked" in msg or "database is busy" in msg) and attempt < COMMIT_ATTEMPTS - 1:
                logger.warning("Commit hit a locked database, retrying (attempt %d)", attempt + 1)
                time.sleep(COMMIT_BASE_DELAY * (2 ** attempt))
                attempt += 1
                continue
            raise


def get_db(request: Request):
    """Provide Database instance from app state."""
    return request.app.state.db


def get_db_session(request: Request) -> Generator[Session, None, None]:
    """Request-scoped session, committed when the endpoint returns."""
    session = request.app.state.db.get_session()
    try:
        yield session
        _commit_with_retry(session)
    except Exception:
        session.rollback()
        raise
    finally:
        session.close()


def get_config(request: Request):
    return request.app.state.config


def get_report_cache(request: Request):
    return request.app.state.report_cache


def get_entity_service(request: Request):
    return request.app.state.entity_service


def get_settings_service(request: Request):
    return request.app.state.settings_service


def get_import_service(request: Request):
    return request.app.state.import_service


def get_report_service(request: Request):
    return request.app.state.report_service


def get_scenario_service(request: Request):
    return request.app.state.scenario_service
