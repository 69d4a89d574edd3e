"""Pytest configuration shared across the test suite."""

import asyncio
import itertools
import logging
import sys
from collections import deque
from pathlib import Path
from typing import Any, Deque, Dict, List, Optional

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))


import pytest

from sessionlock.config import LockSettings
from sessionlock.connection import connection_is_open
from sessionlock.lock import DistributedLockManager
from sessionlock.outcomes import LOCK_CALL_ERROR, LOCK_TIMED_OUT
from sessionlock.reentrancy import ReentrancyTracker


_connection_ids = itertools.count(1)


class FakeConnection:
    def __init__(self) -> None:
        self.id = next(_connection_ids)
        self.closed = False
        self.invalidated = False

    def __repr__(self) -> str:  # pragma: no cover - debugging aid
        return f"<FakeConnection {self.id} closed={self.closed}>"


class FakeConnectionProvider:
    """Hands out fake connections and records what came back."""

    def __init__(self, *, managed: bool = False) -> None:
        self.managed = managed
        self.opened: List[FakeConnection] = []
        self.released: List[FakeConnection] = []

    async def open_connection(self) -> FakeConnection:
        connection = FakeConnection()
        self.opened.append(connection)
        return connection

    async def release_connection(self, connection: FakeConnection) -> None:
        self.released.append(connection)
        if not self.managed:
            connection.closed = True

    def is_managed_connection(self, connection: Any) -> bool:
        return self.managed

    def is_open(self, connection: Any) -> bool:
        return connection_is_open(connection)


class FakeAdvisoryLockService:
    """In-memory lock table granting each resource to one connection at a time.

    ``scripted_codes`` overrides the next return values of ``try_acquire``.
    """

    def __init__(self) -> None:
        self.holders: Dict[str, FakeConnection] = {}
        self.scripted_codes: Deque[int] = deque()
        self.release_code: Optional[int] = None
        self.release_error: Optional[BaseException] = None
        self.ping_error: Optional[BaseException] = None
        self.ping_delay = 0.0
        self.release_delay = 0.0
        self.acquire_calls: List[Dict[str, Any]] = []
        self.release_calls: List[str] = []
        self.pings = 0
        self.events: List[str] = []
        self.in_ping = False
        self.in_release = False
        self.overlaps = 0
        self._ping_started: Optional[asyncio.Event] = None

    @property
    def ping_started(self) -> asyncio.Event:
        # Created on first use so it binds to the running test loop.
        if self._ping_started is None:
            self._ping_started = asyncio.Event()
        return self._ping_started

    async def try_acquire(
        self,
        connection: FakeConnection,
        resource: str,
        *,
        lock_mode: str = "Exclusive",
        lock_owner: str = "Session",
        lock_timeout_ms: int = 0,
    ) -> int:
        self.acquire_calls.append(
            {
                "resource": resource,
                "lock_mode": lock_mode,
                "lock_owner": lock_owner,
                "lock_timeout_ms": lock_timeout_ms,
            }
        )
        if self.scripted_codes:
            code = self.scripted_codes.popleft()
            if code >= 0:
                self.holders[resource] = connection
            return code
        holder = self.holders.get(resource)
        if holder is not None and holder is not connection and not getattr(holder, "closed", False):
            return LOCK_TIMED_OUT
        self.holders[resource] = connection
        return 0

    async def release(
        self,
        connection: FakeConnection,
        resource: str,
        *,
        lock_owner: str = "Session",
    ) -> int:
        self.events.append("release_start")
        self.in_release = True
        if self.in_ping:
            self.overlaps += 1
        try:
            if self.release_delay:
                await asyncio.sleep(self.release_delay)
            self.release_calls.append(resource)
            if self.release_error is not None:
                raise self.release_error
            if self.release_code is not None:
                return self.release_code
            if self.holders.get(resource) is not connection:
                return LOCK_CALL_ERROR
            del self.holders[resource]
            return 0
        finally:
            self.in_release = False
            self.events.append("release_end")

    async def ping(self, connection: FakeConnection) -> None:
        self.events.append("ping_start")
        self.in_ping = True
        if self.in_release:
            self.overlaps += 1
        self.ping_started.set()
        try:
            self.pings += 1
            if self.ping_delay:
                await asyncio.sleep(self.ping_delay)
            if self.ping_error is not None:
                raise self.ping_error
        finally:
            self.in_ping = False
            self.events.append("ping_end")


class ListHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__()
        self.records: List[logging.LogRecord] = []

    def emit(self, record: logging.LogRecord) -> None:  # pragma: no cover - trivial
        self.records.append(record)


@pytest.fixture
def lock_service() -> FakeAdvisoryLockService:
    return FakeAdvisoryLockService()


@pytest.fixture
def provider() -> FakeConnectionProvider:
    return FakeConnectionProvider()


@pytest.fixture
def tracker() -> ReentrancyTracker:
    return ReentrancyTracker()


@pytest.fixture
def settings() -> LockSettings:
    return LockSettings(
        default_timeout_seconds=1.0,
        max_attempt_delay_ms=50,
        keep_alive_interval_seconds=60.0,
    )


@pytest.fixture
def manager(
    provider: FakeConnectionProvider,
    lock_service: FakeAdvisoryLockService,
    tracker: ReentrancyTracker,
    settings: LockSettings,
) -> DistributedLockManager:
    return DistributedLockManager(
        provider,
        lock_service,
        settings=settings,
        tracker=tracker,
        logger=logging.getLogger("sessionlock.tests"),
    )
