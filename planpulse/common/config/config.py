"""Configuration management for the PlanPulse API.

This module automatically loads environment variables from .env file using python-dotenv.
All configuration can be set via environment variables or .env file.

Core environment variables:
- PLANPULSE_DATA_ROOT: Path to data directory (optional; default <project_root>/data, auto-created if missing)
- PLANPULSE_DATABASE_PATH: Path to SQLite database file (optional; default: <data_root>/planpulse.db; relative values resolve under <data_root>)
- PLANPULSE_DATABASE_ECHO: Enable SQLAlchemy SQL logging (optional, default: false)
- PLANPULSE_LOG_LEVEL: Root log level (default: INFO)

Report cache:
- PLANPULSE_CACHE_TTL: Seconds a cached report stays fresh (default: 300)
- PLANPULSE_CACHE_STALE_AFTER: Age in seconds after which a hit triggers background refresh (default: 120)
- PLANPULSE_CACHE_MAX_BYTES: Approximate cache size bound in bytes (default: 52428800)
- PLANPULSE_CACHE_PERSIST: Persist the cache snapshot under <data_root> on shutdown (default: false)
- PLANPULSE_CACHE_ENCRYPTION_KEY: Passphrase used to encrypt the persisted snapshot (optional)

Planning:
- PLANPULSE_SCENARIO_TTL_DAYS: Days before a scenario expires (default: 60)
- PLANPULSE_FUZZY_CUTOFF: Similarity needed to auto-accept a fuzzy CSV name match (default: 0.9, range: 0.0-1.0)

API Client:
- PLANPULSE_API_BASE_URL: API server base URL (default: http://localhost:8000)
- PLANPULSE_API_TIMEOUT: HTTP request timeout in seconds (default: 30.0)
- PLANPULSE_API_CIRCUIT_BREAKER_THRESHOLD: Failures before circuit breaker opens (default: 5)
- PLANPULSE_API_CIRCUIT_BREAKER_TIMEOUT: Seconds before circuit breaker retries (default: 60)
"""
from __future__ import annotations

import logging
import os
from pathlib import Path

from dotenv import load_dotenv

# Auto-load .env from project root (before Config class initialization)
PROJECT_ROOT = Path(__file__).parent.parent.parent.parent
load_dotenv(PROJECT_ROOT / ".env")

logger = logging.getLogger(__name__)

SUPPORTED_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Config:
    """Configuration holder for the PlanPulse API.

    Values are read once from the environment when the object is created.
    See module docstring for the supported variables.
    """

    def __init__(self):
        default_root = PROJECT_ROOT / "data"
        self.data_root = os.getenv("PLANPULSE_DATA_ROOT", str(default_root))

        # Database settings (default under data_root; resolve relative paths under data_root)
        db_env = os.getenv("PLANPULSE_DATABASE_PATH")
        if db_env:
            db_path = Path(db_env)
            if not db_path.is_absolute():
                db_path = Path(self.data_root) / db_path
        else:
            db_path = Path(self.data_root) / "planpulse.db"
        self.database_path = str(db_path)
        self.database_echo = _env_bool("PLANPULSE_DATABASE_ECHO")

        self.log_level = os.getenv("PLANPULSE_LOG_LEVEL", "INFO").upper()

        self.cache_ttl = float(os.getenv("PLANPULSE_CACHE_TTL", "300"))
        self.cache_stale_after = float(os.getenv("PLANPULSE_CACHE_STALE_AFTER", "120"))
        self.cache_max_bytes = int(os.getenv("PLANPULSE_CACHE_MAX_BYTES", str(50 * 1024 * 1024)))
        self.cache_persist = _env_bool("PLANPULSE_CACHE_PERSIST")
        self.cache_encryption_key = os.getenv("PLANPULSE_CACHE_ENCRYPTION_KEY") or None
        self.cache_snapshot_path = str(Path(self.data_root) / "report_cache.json")

        self.scenario_ttl_days = int(os.getenv("PLANPULSE_SCENARIO_TTL_DAYS", "60"))
        self.fuzzy_cutoff = float(os.getenv("PLANPULSE_FUZZY_CUTOFF", "0.9"))

        self.api_base_url = os.getenv("PLANPULSE_API_BASE_URL", "http://localhost:8000")
        self.api_timeout = float(os.getenv("PLANPULSE_API_TIMEOUT", "30.0"))
        self.api_circuit_breaker_threshold = int(os.getenv("PLANPULSE_API_CIRCUIT_BREAKER_THRESHOLD", "5"))
        self.api_circuit_breaker_timeout = int(os.getenv("PLANPULSE_API_CIRCUIT_BREAKER_TIMEOUT", "60"))

        self._validate_paths()
        self._validate_log_level()
        self._validate_cache()
        self._validate_planning()

    def _validate_paths(self):
        """Ensure the data root exists and the database path is usable."""
        root = Path(self.data_root)
        if root.exists() and not root.is_dir():
            raise ValueError(f"PLANPULSE_DATA_ROOT is not a directory: {self.data_root}")
        root.mkdir(parents=True, exist_ok=True)

        db_parent = Path(self.database_path).parent
        if db_parent.exists() and not db_parent.is_dir():
            raise ValueError(f"PLANPULSE_DATABASE_PATH parent is not a directory: {db_parent}")

    def _validate_log_level(self):
        if self.log_level not in SUPPORTED_LOG_LEVELS:
            raise ValueError(
                f"Invalid PLANPULSE_LOG_LEVEL: {self.log_level}. "
                f"Must be one of: {', '.join(SUPPORTED_LOG_LEVELS)}"
            )

    def _validate_cache(self):
        if self.cache_ttl <= 0:
            raise ValueError(f"PLANPULSE_CACHE_TTL must be positive, got {self.cache_ttl}")
        if self.cache_stale_after < 0:
            raise ValueError(f"PLANPULSE_CACHE_STALE_AFTER must be >= 0, got {self.cache_stale_after}")
        if self.cache_max_bytes <= 0:
            raise ValueError(f"PLANPULSE_CACHE_MAX_BYTES must be positive, got {self.cache_max_bytes}")

    def _validate_planning(self):
        if self.scenario_ttl_days <= 0:
            raise ValueError(f"PLANPULSE_SCENARIO_TTL_DAYS must be positive, got {self.scenario_ttl_days}")
        if not 0.0 <= self.fuzzy_cutoff <= 1.0:
            raise ValueError(f"PLANPULSE_FUZZY_CUTOFF must be between 0.0 and 1.0, got {self.fuzzy_cutoff}")
        if self.api_timeout <= 0:
            raise ValueError(f"PLANPULSE_API_TIMEOUT must be positive, got {self.api_timeout}")


_config = None


def get_config() -> Config:
    """Return a process-wide Config, created on first use."""
    global _config
    if _config is None:
        _config = Config()
    return _config
