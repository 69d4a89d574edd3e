"""Wiring helpers that build a lock manager from configuration."""

from __future__ import annotations

import logging
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncEngine, create_async_engine

from sessionlock.config import Config
from sessionlock.connection import EngineConnectionProvider
from sessionlock.lock import DistributedLockManager
from sessionlock.logging_config import setup_logging
from sessionlock.reentrancy import ReentrancyTracker
from sessionlock.services import service_for_dialect
from sessionlock.utils.logging_helpers import LoggerLike, enforce_context


def create_engine_from_config(cfg: Config) -> AsyncEngine:
    if not cfg.DATABASE_URL:
        raise ValueError(
            "No database URL configured; set SESSIONLOCK_DATABASE_URL or "
            "database.url in the lock constants file."
        )
    return create_async_engine(
        cfg.DATABASE_URL,
        echo=cfg.DATABASE_ECHO,
        pool_pre_ping=True,
    )


def build_lock_manager(
    cfg: Optional[Config] = None,
    *,
    engine: Optional[AsyncEngine] = None,
    logger: Optional[LoggerLike] = None,
    tracker: Optional[ReentrancyTracker] = None,
    configure_logging: bool = True,
) -> DistributedLockManager:
    """Create a :class:`DistributedLockManager` for ``engine``'s database.

    The advisory lock service is chosen from the engine's dialect. Root
    logging is set up from ``cfg.DEBUG`` unless ``configure_logging`` is off.
    """

    cfg = cfg or Config()
    if configure_logging:
        setup_logging(logging.INFO, debug_mode=cfg.DEBUG)
    base_logger = enforce_context(logger or logging.getLogger("sessionlock"))
    resolved_engine = engine or create_engine_from_config(cfg)
    settings = cfg.lock_settings
    service = service_for_dialect(
        resolved_engine.dialect.name, keep_alive_query=settings.keep_alive_query
    )

    base_logger.info(
        "Distributed lock manager configured",
        extra={
            "event_type": "lock_manager_configured",
            "category": "bootstrap",
            "backend": resolved_engine.dialect.name,
            "keep_alive_interval_seconds": settings.keep_alive_interval_seconds,
            "max_attempt_delay_ms": settings.max_attempt_delay_ms,
        },
    )

    return DistributedLockManager(
        EngineConnectionProvider(resolved_engine),
        service,
        settings=settings,
        tracker=tracker,
        logger=base_logger,
    )
