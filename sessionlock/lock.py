"""Re-entrant distributed locks backed by session-scoped advisory locks."""

from __future__ import annotations

import asyncio
import datetime as dt
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Hashable, Optional, Union

from sessionlock.acquirer import LockAcquirer
from sessionlock.config import LockSettings
from sessionlock.connection import ConnectionProvider
from sessionlock.errors import (
    LockArgumentError,
    LockPreconditionError,
    LockReleaseError,
)
from sessionlock.keep_alive import KeepAliveJob
from sessionlock.metrics import LOCK_RELEASE_FAILURES
from sessionlock.outcomes import classify_release_result
from sessionlock.reentrancy import ReentrancyTracker, current_owner
from sessionlock.services import LOCK_OWNER_SESSION, AdvisoryLockService
from sessionlock.utils.logging_helpers import (
    ContextLoggerAdapter,
    LoggerLike,
    describe_owner,
    make_service_logger,
)

Timeout = Union[int, float, dt.timedelta]

_INT32_MAX = 2 ** 31 - 1
# Seconds added on top of the lock timeout when it is used as a command
# timeout, which must still fit into a 32-bit integer.
_COMMAND_TIMEOUT_ADDITION_SECONDS = 1
_MAX_TIMEOUT_SECONDS = _INT32_MAX // 1000
_TIMEOUT_TOO_LARGE = (
    "The timeout specified is too large. Please supply a timeout equal to "
    "or less than %d seconds"
)


def _timeout_seconds(timeout: Timeout) -> float:
    if isinstance(timeout, dt.timedelta):
        seconds = timeout.total_seconds()
    elif isinstance(timeout, (int, float)) and not isinstance(timeout, bool):
        try:
            seconds = float(timeout)
        except OverflowError:
            raise LockArgumentError(_TIMEOUT_TOO_LARGE % _MAX_TIMEOUT_SECONDS) from None
    else:
        raise LockArgumentError(f"Unsupported timeout value: {timeout!r}")

    if seconds != seconds or seconds < 0:
        raise LockArgumentError("The timeout specified must be a non-negative duration.")
    if seconds + _COMMAND_TIMEOUT_ADDITION_SECONDS > _INT32_MAX:
        raise LockArgumentError(
            _TIMEOUT_TOO_LARGE % (_INT32_MAX - _COMMAND_TIMEOUT_ADDITION_SECONDS)
        )
    if seconds * 1000 > _INT32_MAX:
        raise LockArgumentError(_TIMEOUT_TOO_LARGE % _MAX_TIMEOUT_SECONDS)
    return seconds


class LockSession:
    """Connection and keep-alive state shared by all holds of one owner.

    ``guard`` serialises keep-alive ticks with :meth:`close`.
    """

    def __init__(
        self,
        resource: str,
        connection: Any,
        *,
        provider: ConnectionProvider,
        service: AdvisoryLockService,
        logger: ContextLoggerAdapter,
    ) -> None:
        self.resource = resource
        self._connection = connection
        self._provider = provider
        self._service = service
        self._logger = logger
        self._guard = asyncio.Lock()
        self._keep_alive: Optional[KeepAliveJob] = None
        self._closed = False

    @property
    def connection(self) -> Any:
        return self._connection

    @property
    def guard(self) -> asyncio.Lock:
        return self._guard

    @property
    def keep_alive(self) -> Optional[KeepAliveJob]:
        return self._keep_alive

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def degraded(self) -> bool:
        return self._keep_alive is not None and self._keep_alive.degraded

    def start_keep_alive(self, interval_seconds: float) -> None:
        if self._keep_alive is not None:
            return
        self._keep_alive = KeepAliveJob(
            self._connection,
            self._service,
            self._guard,
            logger=self._logger,
            interval_seconds=interval_seconds,
        )
        self._keep_alive.start()

    async def close(self) -> None:
        """Stop the keep-alive job, release the lock and return the connection.

        The connection goes back to its provider even when the release call
        fails.
        """

        async with self._guard:
            if self._closed:
                return
            self._closed = True
            connection = self._connection
            try:
                if self._keep_alive is not None:
                    await self._keep_alive.stop()

                if self._provider.is_open(connection):
                    await self._release(connection)
                else:
                    # Session-scoped locks only live as long as the session,
                    # so the server already dropped this one.
                    self._logger.info(
                        "Connection closed before release; lock on '%s' already dropped",
                        self.resource,
                        extra={"event_type": "lock_release_skipped"},
                    )
            finally:
                self._connection = None
                await self._provider.release_connection(connection)

    async def _release(self, connection: Any) -> None:
        result_code = await self._service.release(
            connection, self.resource, lock_owner=LOCK_OWNER_SESSION
        )
        outcome = classify_release_result(result_code)
        if not outcome.released:
            LOCK_RELEASE_FAILURES.inc()
            self._logger.error(
                "Failed to release lock on '%s': %s",
                self.resource,
                outcome.reason,
                extra={"event_type": "lock_release_failed", "result_code": result_code},
            )
            raise LockReleaseError(self.resource, result_code)

        self._logger.info(
            "Lock on '%s' released",
            self.resource,
            extra={"event_type": "lock_released"},
        )


class DistributedLock:
    """One hold on ``resource`` by ``owner``; release it exactly once.

    Usable as an async context manager. Releasing an already completed
    handle does nothing.
    """

    def __init__(
        self,
        resource: str,
        owner: Hashable,
        session: LockSession,
        tracker: ReentrancyTracker,
        *,
        reentered: bool = False,
    ) -> None:
        self._resource = resource
        self._owner = owner
        self._session = session
        self._tracker = tracker
        self._reentered = reentered
        self._completed = False

    @property
    def resource(self) -> str:
        return self._resource

    @property
    def owner(self) -> Hashable:
        return self._owner

    @property
    def reentered(self) -> bool:
        return self._reentered

    @property
    def completed(self) -> bool:
        return self._completed

    @property
    def heartbeat_degraded(self) -> bool:
        return self._session.degraded

    async def release(self) -> None:
        if self._completed:
            return
        self._completed = True

        if not self._tracker.exit(self._owner, self._resource):
            return

        await self._session.close()

    async def __aenter__(self) -> "DistributedLock":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # type: ignore[override]
        await self.release()

    def __repr__(self) -> str:
        state = "completed" if self._completed else "active"
        return f"<DistributedLock resource={self._resource!r} {state}>"


class DistributedLockManager:
    """Hand out re-entrant distributed locks over a connection provider.

    A first acquisition by an owner opens a dedicated connection, places the
    advisory lock there and, unless the provider keeps that connection alive
    itself, starts a keep-alive job. Nested acquisitions by the same owner
    only bump a counter; the lock is released when the last hold goes.
    """

    def __init__(
        self,
        provider: ConnectionProvider,
        service: AdvisoryLockService,
        *,
        settings: Optional[LockSettings] = None,
        tracker: Optional[ReentrancyTracker] = None,
        logger: Optional[LoggerLike] = None,
        acquirer: Optional[LockAcquirer] = None,
    ) -> None:
        base_logger = logger or logging.getLogger("sessionlock")
        self._logger = make_service_logger(base_logger, "lock_manager", "lock_manager")
        self._provider = provider
        self._service = service
        self._settings = settings or LockSettings()
        self._tracker = tracker or ReentrancyTracker()
        self._acquirer = acquirer or LockAcquirer(
            service,
            provider,
            logger=base_logger,
            max_attempt_delay_ms=self._settings.max_attempt_delay_ms,
        )

    @property
    def settings(self) -> LockSettings:
        return self._settings

    @property
    def tracker(self) -> ReentrancyTracker:
        return self._tracker

    async def acquire(
        self,
        resource: str,
        timeout: Optional[Timeout] = None,
        *,
        owner: Optional[Hashable] = None,
    ) -> DistributedLock:
        """Acquire ``resource`` for ``owner`` within ``timeout``.

        ``owner`` defaults to the running task. ``timeout`` defaults to
        :attr:`LockSettings.default_timeout_seconds`.
        """

        if not isinstance(resource, str) or not resource:
            raise LockArgumentError(f"The resource name must be a non-empty string, got {resource!r}.")
        timeout_seconds = _timeout_seconds(
            self._settings.default_timeout_seconds if timeout is None else timeout
        )
        resolved_owner = current_owner() if owner is None else owner
        logger = self._logger.bind(
            resource=resource, owner=describe_owner(resolved_owner)
        )

        if self._tracker.try_enter(resolved_owner, resource):
            session = self._tracker.session_for(resolved_owner, resource)
            if session is None:
                self._tracker.exit(resolved_owner, resource)
                raise LockPreconditionError(
                    f"The lock on '{resource}' is still being acquired by the same owner."
                )
            logger.debug(
                "Re-entered lock on '%s' (holds=%d)",
                resource,
                self._tracker.held_count(resolved_owner, resource),
                extra={"event_type": "lock_reentered"},
            )
            return DistributedLock(
                resource, resolved_owner, session, self._tracker, reentered=True
            )

        try:
            connection = await self._provider.open_connection()
        except BaseException:
            self._tracker.exit(resolved_owner, resource)
            raise

        try:
            attempts = await self._acquirer.acquire(connection, resource, timeout_seconds)
        except BaseException:
            self._tracker.exit(resolved_owner, resource)
            await self._provider.release_connection(connection)
            raise

        session = LockSession(
            resource,
            connection,
            provider=self._provider,
            service=self._service,
            logger=logger,
        )
        if not self._provider.is_managed_connection(connection):
            session.start_keep_alive(self._settings.keep_alive_interval_seconds)
        self._tracker.bind(resolved_owner, resource, session)

        logger.info(
            "Lock on '%s' acquired",
            resource,
            extra={"event_type": "lock_acquired", "attempt": attempts},
        )
        return DistributedLock(resource, resolved_owner, session, self._tracker)

    @asynccontextmanager
    async def lock(
        self,
        resource: str,
        timeout: Optional[Timeout] = None,
        *,
        owner: Optional[Hashable] = None,
    ) -> AsyncIterator[DistributedLock]:
        """Hold ``resource`` for the duration of the ``async with`` block."""

        handle = await self.acquire(resource, timeout, owner=owner)
        try:
            yield handle
        finally:
            await handle.release()
