import logging
from types import SimpleNamespace

import pytest

import sessionlock.bootstrap as bootstrap_module
from sessionlock.bootstrap import build_lock_manager, create_engine_from_config
from sessionlock.config import Config, LockConstants
from sessionlock.connection import EngineConnectionProvider
from sessionlock.lock import DistributedLockManager
from sessionlock.services import PostgresAdvisoryLockService, SqlServerAppLockService


@pytest.fixture(autouse=True)
def logging_calls(monkeypatch):
    calls = []

    def _record(level=logging.INFO, debug_mode=False):
        calls.append((level, debug_mode))

    monkeypatch.setattr(bootstrap_module, "setup_logging", _record)
    return calls


@pytest.fixture
def cfg(tmp_path, monkeypatch):
    monkeypatch.delenv("SESSIONLOCK_DATABASE_URL", raising=False)
    monkeypatch.delenv("SESSIONLOCK_DEBUG", raising=False)
    path = tmp_path / "lock_constants.yaml"
    path.write_text(
        "locks:\n  keep_alive_interval_seconds: 30\n  max_attempt_delay_ms: 900\n",
        encoding="utf-8",
    )
    return Config(constants=LockConstants(str(path)))


@pytest.mark.parametrize(
    "dialect, expected",
    [("mssql", SqlServerAppLockService), ("postgresql", PostgresAdvisoryLockService)],
)
def test_build_lock_manager_picks_service_by_dialect(cfg, dialect, expected, caplog):
    caplog.set_level(logging.INFO, logger="sessionlock")
    engine = SimpleNamespace(dialect=SimpleNamespace(name=dialect))

    manager = build_lock_manager(cfg, engine=engine)

    assert isinstance(manager, DistributedLockManager)
    assert isinstance(manager._service, expected)
    assert isinstance(manager._provider, EngineConnectionProvider)
    assert manager._provider.engine is engine
    assert manager.settings.keep_alive_interval_seconds == 30.0
    assert manager.settings.max_attempt_delay_ms == 900
    assert any(
        getattr(record, "event_type", None) == "lock_manager_configured"
        for record in caplog.records
    )


def test_build_lock_manager_rejects_unsupported_backend(cfg):
    engine = SimpleNamespace(dialect=SimpleNamespace(name="sqlite"))

    with pytest.raises(ValueError):
        build_lock_manager(cfg, engine=engine)


def test_engine_requires_database_url(cfg):
    with pytest.raises(ValueError):
        create_engine_from_config(cfg)


@pytest.mark.parametrize("raw, expected", [("1", True), ("0", False)])
def test_build_lock_manager_sets_up_logging_from_debug_flag(
    tmp_path, monkeypatch, logging_calls, raw, expected
):
    monkeypatch.setenv("SESSIONLOCK_DEBUG", raw)
    cfg = Config(constants=LockConstants(str(tmp_path / "missing.yaml")))
    engine = SimpleNamespace(dialect=SimpleNamespace(name="mssql"))

    build_lock_manager(cfg, engine=engine)

    assert cfg.DEBUG is expected
    assert logging_calls == [(logging.INFO, expected)]


def test_build_lock_manager_can_leave_logging_alone(cfg, logging_calls):
    engine = SimpleNamespace(dialect=SimpleNamespace(name="mssql"))

    build_lock_manager(cfg, engine=engine, configure_logging=False)

    assert logging_calls == []
