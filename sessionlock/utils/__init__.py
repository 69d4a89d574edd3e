"""Utility helpers for the session lock package."""

from .logging_helpers import add_context, enforce_context, make_service_logger

__all__ = ["add_context", "enforce_context", "make_service_logger"]
