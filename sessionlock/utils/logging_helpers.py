"""Helper utilities for structured logging across the lock package."""

from __future__ import annotations

import logging
from typing import Any, Dict, Mapping, MutableMapping, Tuple, Union


LoggerLike = Union[logging.Logger, logging.LoggerAdapter]

#: Lock log records must include these core context keys so that
#: downstream processing pipelines can rely on a consistent schema.
REQUIRED_LOG_KEYS: Tuple[str, ...] = (
    "resource",
    "owner",
    "event_type",
    "request_category",
)

#: Baseline context included in every logger adapter.
DEFAULT_LOG_CONTEXT: Dict[str, Any] = {key: None for key in REQUIRED_LOG_KEYS}


class ContextLoggerAdapter(logging.LoggerAdapter):
    """Logger adapter that keeps structured context values attached."""

    def __init__(self, logger: logging.Logger, extra: Mapping[str, Any] | None = None):
        super().__init__(logger, dict(extra or {}))

    def process(self, msg: str, kwargs: MutableMapping[str, Any]):
        extra = dict(self.extra)
        provided = kwargs.get("extra")
        if provided:
            extra.update(provided)
        kwargs["extra"] = extra
        return msg, kwargs

    def getChild(self, suffix: str) -> "ContextLoggerAdapter":  # noqa: N802 - mirror logging API
        child = self.logger.getChild(suffix)
        return ContextLoggerAdapter(child, dict(self.extra))

    def bind(self, **kwargs: Any) -> "ContextLoggerAdapter":
        return add_context(self, **kwargs)


def _unwrap_logger(logger: LoggerLike) -> tuple[logging.Logger, Mapping[str, Any]]:
    if isinstance(logger, logging.LoggerAdapter):
        base_logger = logger.logger
        base_extra = getattr(logger, "extra", {})
        return base_logger, dict(base_extra)
    return logger, {}


def add_context(logger: LoggerLike, **kwargs: Any) -> ContextLoggerAdapter:
    """Return a :class:`ContextLoggerAdapter` with merged structured context."""

    base_logger, base_extra = _unwrap_logger(logger)
    merged: Dict[str, Any] = {**DEFAULT_LOG_CONTEXT, **base_extra}
    merged.update(kwargs)
    return ContextLoggerAdapter(base_logger, merged)


def enforce_context(
    logger: LoggerLike, default_ctx: Mapping[str, Any] | None = None
) -> ContextLoggerAdapter:
    """Wrap ``logger`` ensuring :data:`REQUIRED_LOG_KEYS` are always present.

    Intended for boundary wiring (for example :mod:`sessionlock.bootstrap`)
    where infrastructure services receive a logger. ``default_ctx`` values
    override context already attached to ``logger``.
    """

    base_logger, base_extra = _unwrap_logger(logger)
    enforced: Dict[str, Any] = {**DEFAULT_LOG_CONTEXT, **base_extra}
    if default_ctx:
        enforced.update(default_ctx)
    for key in REQUIRED_LOG_KEYS:
        enforced.setdefault(key, None)
    return ContextLoggerAdapter(base_logger, enforced)


def make_service_logger(
    parent_logger: LoggerLike, child_name: str, category: str
) -> ContextLoggerAdapter:
    """Return a child logger enriched with the provided ``category`` context."""

    parent = enforce_context(parent_logger)
    return enforce_context(parent.getChild(child_name), {"request_category": category})


def describe_owner(owner: Any) -> Any:
    """Convert an owner token into something a JSON formatter can emit."""

    if owner is None or isinstance(owner, (str, int)):
        return owner
    get_name = getattr(owner, "get_name", None)
    if callable(get_name):
        return get_name()
    return repr(owner)
