"""Centralised Prometheus metric definitions for distributed locks."""

from __future__ import annotations

from prometheus_client import Counter, Histogram


LOCK_ACQUIRE_ATTEMPTS = Counter(
    "sessionlock_acquire_attempts_total",
    "Advisory lock acquisition attempts by outcome",
    labelnames=["outcome"],
)

LOCK_ACQUIRE_WAIT = Histogram(
    "sessionlock_acquire_wait_seconds",
    "Time spent waiting for an advisory lock grant",
    buckets=[0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 15.0, 30.0, 60.0],
)

LOCK_TIMEOUTS = Counter(
    "sessionlock_timeouts_total",
    "Acquisitions that ran out of time",
)

LOCK_RELEASE_FAILURES = Counter(
    "sessionlock_release_failures_total",
    "Release calls rejected by the advisory lock service",
)

LOCK_KEEP_ALIVE_FAILURES = Counter(
    "sessionlock_keep_alive_failures_total",
    "Keep-alive queries that failed on a dedicated lock connection",
)
