import logging

import pytest

from sessionlock.config import Config, LockConstants, LockSettings


_ENV_VARS = [
    "SESSIONLOCK_DATABASE_URL",
    "SESSIONLOCK_DATABASE_ECHO",
    "SESSIONLOCK_DEBUG",
    "SESSIONLOCK_DEFAULT_TIMEOUT_SECONDS",
    "SESSIONLOCK_MAX_ATTEMPT_DELAY_MS",
    "SESSIONLOCK_KEEP_ALIVE_INTERVAL_SECONDS",
]


@pytest.fixture(autouse=True)
def _clear_lock_env(monkeypatch):
    for env_var in _ENV_VARS:
        monkeypatch.delenv(env_var, raising=False)


def test_lock_constants_merge_file_over_defaults(tmp_path):
    path = tmp_path / "lock_constants.yaml"
    path.write_text(
        "locks:\n  keep_alive_interval_seconds: 15\n"
        "database:\n  url: postgresql+asyncpg://db/locks\n",
        encoding="utf-8",
    )

    constants = LockConstants(str(path))

    assert constants.path == path
    assert constants.locks["keep_alive_interval_seconds"] == 15
    assert constants.locks["max_attempt_delay_ms"] == 5000
    assert constants.database["url"] == "postgresql+asyncpg://db/locks"


def test_lock_constants_missing_file_uses_defaults(tmp_path, caplog):
    caplog.set_level(logging.WARNING, logger="sessionlock.config")

    constants = LockConstants(str(tmp_path / "missing.yaml"))

    assert constants.locks["keep_alive_interval_seconds"] == 60.0
    assert any(
        getattr(record, "error_type", None) == "FileNotFoundError"
        for record in caplog.records
    )


@pytest.mark.parametrize("payload", ["- just\n- a list\n", "locks: [unclosed\n"])
def test_lock_constants_invalid_file_uses_defaults(tmp_path, payload):
    path = tmp_path / "lock_constants.yaml"
    path.write_text(payload, encoding="utf-8")

    constants = LockConstants(str(path))

    assert constants.locks["max_attempt_delay_ms"] == 5000
    assert constants.section("missing") == {}


def test_config_reads_file_values(tmp_path):
    path = tmp_path / "lock_constants.yaml"
    path.write_text(
        "locks:\n"
        "  default_timeout_seconds: 12\n"
        "  max_attempt_delay_ms: 750\n"
        "  keep_alive_interval_seconds: 20\n"
        "  keep_alive_query: SELECT 2\n"
        "database:\n"
        "  url: mssql+aioodbc://db\n"
        "  echo: true\n",
        encoding="utf-8",
    )

    cfg = Config(constants=LockConstants(str(path)))

    assert cfg.DATABASE_URL == "mssql+aioodbc://db"
    assert cfg.DATABASE_ECHO is True
    assert cfg.lock_settings == LockSettings(
        default_timeout_seconds=12.0,
        max_attempt_delay_ms=750,
        keep_alive_interval_seconds=20.0,
        keep_alive_query="SELECT 2",
    )


def test_environment_overrides_file_values(tmp_path, monkeypatch):
    monkeypatch.setenv("SESSIONLOCK_DATABASE_URL", "postgresql+asyncpg://env/locks")
    monkeypatch.setenv("SESSIONLOCK_DATABASE_ECHO", "yes")
    monkeypatch.setenv("SESSIONLOCK_DEBUG", "1")
    monkeypatch.setenv("SESSIONLOCK_MAX_ATTEMPT_DELAY_MS", "250")
    monkeypatch.setenv("SESSIONLOCK_KEEP_ALIVE_INTERVAL_SECONDS", "5.5")
    monkeypatch.setenv("SESSIONLOCK_DEFAULT_TIMEOUT_SECONDS", "3")

    cfg = Config(constants=LockConstants(str(tmp_path / "missing.yaml")))

    assert cfg.DATABASE_URL == "postgresql+asyncpg://env/locks"
    assert cfg.DATABASE_ECHO is True
    assert cfg.DEBUG is True
    assert cfg.MAX_ATTEMPT_DELAY_MS == 250
    assert cfg.KEEP_ALIVE_INTERVAL_SECONDS == 5.5
    assert cfg.DEFAULT_TIMEOUT_SECONDS == 3.0


@pytest.mark.parametrize("raw", ["abc", "0", "-5"])
def test_invalid_environment_values_fall_back(tmp_path, monkeypatch, caplog, raw):
    caplog.set_level(logging.WARNING, logger="sessionlock.config")
    monkeypatch.setenv("SESSIONLOCK_MAX_ATTEMPT_DELAY_MS", raw)
    monkeypatch.setenv("SESSIONLOCK_KEEP_ALIVE_INTERVAL_SECONDS", raw)

    cfg = Config(constants=LockConstants(str(tmp_path / "missing.yaml")))

    assert cfg.MAX_ATTEMPT_DELAY_MS == 5000
    assert cfg.KEEP_ALIVE_INTERVAL_SECONDS == 60.0
    assert any("SESSIONLOCK_MAX_ATTEMPT_DELAY_MS" in record.getMessage() for record in caplog.records)
