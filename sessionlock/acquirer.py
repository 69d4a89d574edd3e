"""Retry loop placing a session-scoped advisory lock before a timeout elapses."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Optional

from sessionlock.backoff import DEFAULT_MAX_ATTEMPT_DELAY_MS, exponential_backoff
from sessionlock.connection import ConnectionProvider
from sessionlock.errors import (
    DistributedLockTimeoutError,
    LockCallError,
    LockPreconditionError,
)
from sessionlock.metrics import LOCK_ACQUIRE_ATTEMPTS, LOCK_ACQUIRE_WAIT, LOCK_TIMEOUTS
from sessionlock.outcomes import classify_acquire_result
from sessionlock.services import (
    LOCK_MODE_EXCLUSIVE,
    LOCK_OWNER_SESSION,
    AdvisoryLockService,
)
from sessionlock.utils.logging_helpers import LoggerLike, make_service_logger
from sessionlock.utils.time_utils import monotonic


class LockAcquirer:
    """Drive repeated immediate lock attempts until grant, call error or timeout."""

    def __init__(
        self,
        service: AdvisoryLockService,
        provider: ConnectionProvider,
        *,
        logger: Optional[LoggerLike] = None,
        max_attempt_delay_ms: int = DEFAULT_MAX_ATTEMPT_DELAY_MS,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        clock: Callable[[], float] = monotonic,
    ) -> None:
        self._service = service
        self._provider = provider
        self._logger = make_service_logger(
            logger or logging.getLogger("sessionlock"), "acquirer", "lock_acquire"
        )
        self._max_attempt_delay_ms = max_attempt_delay_ms
        self._sleep = sleep
        self._clock = clock

    async def acquire(self, connection: Any, resource: str, timeout: float) -> int:
        """Place the lock on ``resource`` over ``connection``.

        Each attempt asks the server not to wait at all, so the overall
        ``timeout`` is only checked between attempts.

        Returns:
            The number of attempts it took.

        Raises:
            LockPreconditionError: ``connection`` is not open. Opening it
                implicitly could close it again right after the call and
                drop the lock with it.
            LockCallError: The server rejected the call as invalid.
            DistributedLockTimeoutError: ``timeout`` elapsed without a grant.
        """

        if not self._provider.is_open(connection):
            raise LockPreconditionError(
                "Connection must be open before acquiring a distributed lock."
            )

        started = self._clock()
        attempt = 1

        while self._clock() - started < timeout:
            result_code = await self._service.try_acquire(
                connection,
                resource,
                lock_mode=LOCK_MODE_EXCLUSIVE,
                lock_owner=LOCK_OWNER_SESSION,
                lock_timeout_ms=0,
            )
            outcome = classify_acquire_result(result_code)

            if outcome.granted:
                LOCK_ACQUIRE_ATTEMPTS.labels(outcome="granted").inc()
                LOCK_ACQUIRE_WAIT.observe(self._clock() - started)
                return attempt

            if outcome.fatal:
                LOCK_ACQUIRE_ATTEMPTS.labels(outcome="fatal").inc()
                self._logger.error(
                    "Lock call for '%s' rejected: %s",
                    resource,
                    outcome.reason,
                    extra={
                        "event_type": "lock_call_error",
                        "resource": resource,
                        "result_code": result_code,
                        "attempt": attempt,
                    },
                )
                raise LockCallError(resource, outcome.reason or "", result_code)

            LOCK_ACQUIRE_ATTEMPTS.labels(outcome="retryable").inc()
            delay = exponential_backoff(attempt, max_delay_ms=self._max_attempt_delay_ms)
            self._logger.debug(
                "Lock on '%s' denied (%s); retrying in %.3fs",
                resource,
                outcome.reason,
                delay,
                extra={
                    "event_type": "lock_acquire_retry",
                    "resource": resource,
                    "result_code": result_code,
                    "attempt": attempt,
                    "delay": delay,
                },
            )
            attempt += 1
            await self._sleep(delay)

        elapsed = self._clock() - started
        LOCK_TIMEOUTS.inc()
        self._logger.warning(
            "Timed out acquiring lock on '%s' after %d attempt(s)",
            resource,
            attempt - 1,
            extra={
                "event_type": "lock_timeout",
                "resource": resource,
                "attempt": attempt - 1,
                "elapsed": round(elapsed, 3),
            },
        )
        raise DistributedLockTimeoutError(resource)
