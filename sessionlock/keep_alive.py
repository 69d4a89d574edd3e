"""
Keep-alive job for connections that hold a distributed lock.
"""
from __future__ import annotations

import asyncio
from typing import Any, Optional

from sessionlock.metrics import LOCK_KEEP_ALIVE_FAILURES
from sessionlock.services import AdvisoryLockService
from sessionlock.utils.logging_helpers import ContextLoggerAdapter


class KeepAliveJob:
    """Periodically ping a dedicated lock connection.

    Managed databases may terminate connections that stay idle for too long,
    which silently drops every session-scoped lock they hold. Each tick runs
    under ``guard``, the same lock the release path takes, so a ping never
    overlaps with the connection being returned to its pool.
    """

    def __init__(
        self,
        connection: Any,
        service: AdvisoryLockService,
        guard: asyncio.Lock,
        *,
        logger: ContextLoggerAdapter,
        interval_seconds: float = 60.0,
    ):
        self._connection = connection
        self._service = service
        self._guard = guard
        self._logger = logger
        self._interval = interval_seconds
        self._running = False
        self._degraded = False
        self._ticks = 0
        self._task: Optional[asyncio.Task] = None

    @property
    def running(self) -> bool:
        return self._running

    @property
    def degraded(self) -> bool:
        return self._degraded

    @property
    def ticks(self) -> int:
        return self._ticks

    def start(self) -> None:
        """Start the keep-alive job."""

        if self._running:
            return

        self._running = True
        self._task = asyncio.create_task(self._keep_alive_loop())
        self._logger.debug(
            "Started lock keep-alive job",
            extra={
                "event_type": "lock_keep_alive_started",
                "interval_seconds": self._interval,
            },
        )

    async def stop(self) -> None:
        """Cancel the job and wait until it is no longer running.

        Must be called with ``guard`` held, which means no tick is in flight.
        """

        self._running = False
        task = self._task
        if task is None:
            return

        task.cancel()

        try:
            await task
        except asyncio.CancelledError:
            pass
        finally:
            self._task = None
            self._connection = None

    async def _keep_alive_loop(self) -> None:
        while self._running:
            await asyncio.sleep(self._interval)
            async with self._guard:
                if not self._running:
                    break
                await self._tick()

    async def _tick(self) -> None:
        if self._degraded or self._connection is None:
            return

        self._ticks += 1
        try:
            await self._service.ping(self._connection)
        except Exception as exc:
            # The connection is broken, so the server has already dropped the
            # lock and the code running under it is no longer protected.
            self._degraded = True
            LOCK_KEEP_ALIVE_FAILURES.inc()
            self._logger.warning(
                "Keep-alive query failed; distributed lock may have been lost",
                extra={
                    "event_type": "lock_keep_alive_degraded",
                    "error_type": type(exc).__name__,
                    "error": str(exc),
                },
            )
