"""Configuration tests for environment-driven settings."""
import os
from pathlib import Path
import pytest


def _with_env(env: dict):
    class _Ctx:
        def __enter__(self):
            self._prev = {k: os.environ.get(k) for k in env}
            for k, v in env.items():
                if v is None and k in os.environ:
                    os.environ.pop(k, None)
                elif v is not None:
                    os.environ[k] = v
            return self

        def __exit__(self, exc_type, exc, tb):
            for k, prev in self._prev.items():
                if prev is None:
                    os.environ.pop(k, None)
                else:
                    os.environ[k] = prev

    return _Ctx()


def test_config_defaults_under_data_root(tmp_path: Path):
    from planpulse.common.config.config import Config
    data_dir = tmp_path / "data"
    with _with_env({
        "PLANPULSE_DATA_ROOT": str(data_dir),
        "PLANPULSE_DATABASE_PATH": None,
        "PLANPULSE_CACHE_TTL": None,
        "PLANPULSE_FUZZY_CUTOFF": None,
    }):
        cfg = Config()
        # Data root created
        assert data_dir.is_dir()
        assert cfg.database_path == str(data_dir / "planpulse.db")
        assert cfg.cache_snapshot_path == str(data_dir / "report_cache.json")
        assert cfg.cache_ttl == 300
        assert cfg.fuzzy_cutoff == 0.9


def test_relative_database_path_resolves_under_data_root(tmp_path: Path):
    from planpulse.common.config.config import Config
    with _with_env({
        "PLANPULSE_DATA_ROOT": str(tmp_path),
        "PLANPULSE_DATABASE_PATH": "db/plan.db",
        "PLANPULSE_DATABASE_ECHO": "yes",
    }):
        cfg = Config()
        assert cfg.database_path == str(tmp_path / "db" / "plan.db")
        assert cfg.database_echo is True


def test_log_level_is_normalized(tmp_path: Path):
    from planpulse.common.config.config import Config
    with _with_env({"PLANPULSE_DATA_ROOT": str(tmp_path), "PLANPULSE_LOG_LEVEL": "debug"}):
        assert Config().log_level == "DEBUG"


@pytest.mark.parametrize("name,value", [
    ("PLANPULSE_LOG_LEVEL", "chatty"),
    ("PLANPULSE_CACHE_TTL", "0"),
    ("PLANPULSE_CACHE_STALE_AFTER", "-1"),
    ("PLANPULSE_SCENARIO_TTL_DAYS", "0"),
    ("PLANPULSE_FUZZY_CUTOFF", "1.5"),
    ("PLANPULSE_API_TIMEOUT", "0"),
])
def test_config_invalid_values_raise(tmp_path: Path, name, value):
    from planpulse.common.config.config import Config
    with _with_env({"PLANPULSE_DATA_ROOT": str(tmp_path), name: value}):
        with pytest.raises(ValueError):
            Config()


def test_data_root_must_be_directory(tmp_path: Path):
    from planpulse.common.config.config import Config
    not_a_dir = tmp_path / "file.txt"
    not_a_dir.write_text("x")
    with _with_env({"PLANPULSE_DATA_ROOT": str(not_a_dir)}):
        with pytest.raises(ValueError):
            Config()
