"""SQLite engine and session handling for the planning store."""

import logging
from contextlib import contextmanager
from pathlib import Path

from sqlalchemy import create_engine, event
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import NullPool

from .schema import Base

logger = logging.getLogger(__name__)

BUSY_TIMEOUT_SECONDS = 30.0


def _configure_connection(dbapi_conn, connection_record):
    cursor = dbapi_conn.cursor()
    try:
        cursor.execute(f"PRAGMA busy_timeout={int(BUSY_TIMEOUT_SECONDS * 1000)}")
        cursor.execute("PRAGMA foreign_keys=OFF")
        try:
            cursor.execute("PRAGMA journal_mode=WAL")
        except Exception:
            # WAL is unavailable on some network filesystems
            cursor.execute("PRAGMA journal_mode=DELETE")
    finally:
        cursor.close()


class Database:
    """Owns the engine for one SQLite file and hands out sessions."""

    def __init__(self, database_path: str, echo: bool = False):
        self.database_path = database_path
        self.echo = echo
        self.engine = None
        self.session_factory = None

    @property
    def initialized(self) -> bool:
        return self.session_factory is not None

    def init_database(self):
        """Create the engine, the tables and any late-added columns. Safe to call twice."""
        if self.initialized:
            return

        Path(self.database_path).parent.mkdir(parents=True, exist_ok=True)
        # NullPool keeps connections out of the request threads' way
        self.engine = create_engine(
            f"sqlite:///{self.database_path}",
            echo=self.echo,
            poolclass=NullPool,
            connect_args={"check_same_thread": False, "timeout": BUSY_TIMEOUT_SECONDS},
        )
        event.listen(self.engine, "connect", _configure_connection)

        Base.metadata.create_all(self.engine)
        self.session_factory = sessionmaker(bind=self.engine, expire_on_commit=False)
        logger.debug("Planning database ready at %s", self.database_path)

    def get_session(self) -> Session:
        """Open a session the caller must close."""
        if not self.initialized:
            raise RuntimeError("Database not initialized. Call init_database() first.")
        return self.session_factory()

    @contextmanager
    def session_scope(self):
        """Commit on success, roll back on any exception."""
        session = self.get_session()
        try:
            yield session
            session.commit()
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()

    def close(self):
        self.session_factory = None
        if self.engine is not None:
            self.engine.dispose()
            self.engine = None
