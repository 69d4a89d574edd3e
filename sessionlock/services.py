"""Advisory lock services speaking to the database over SQLAlchemy."""

from __future__ import annotations

from typing import Any, Protocol

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncConnection

from sessionlock.outcomes import LOCK_CALL_ERROR, LOCK_TIMED_OUT

LOCK_MODE_EXCLUSIVE = "Exclusive"
LOCK_MODE_SHARED = "Shared"
LOCK_OWNER_SESSION = "Session"

DEFAULT_KEEP_ALIVE_QUERY = "SELECT 1;"


class AdvisoryLockService(Protocol):
    """Server-side advisory lock primitive with a numeric return contract.

    ``try_acquire`` returns a value ``>= 0`` when the lock was granted and a
    negative code otherwise (see :mod:`sessionlock.outcomes`). ``release``
    returns a negative code on failure.
    """

    async def try_acquire(
        self,
        connection: Any,
        resource: str,
        *,
        lock_mode: str = LOCK_MODE_EXCLUSIVE,
        lock_owner: str = LOCK_OWNER_SESSION,
        lock_timeout_ms: int = 0,
    ) -> int:
        ...

    async def release(
        self,
        connection: Any,
        resource: str,
        *,
        lock_owner: str = LOCK_OWNER_SESSION,
    ) -> int:
        ...

    async def ping(self, connection: Any) -> None:
        """Run a trivial statement so idle-connection policies leave it alone."""
        ...


class SqlServerAppLockService:
    """``sp_getapplock`` / ``sp_releaseapplock`` based locks for SQL Server."""

    _GET_APPLOCK = text(
        """
        SET NOCOUNT ON;
        DECLARE @result int;
        EXEC @result = sp_getapplock
            @Resource = :resource,
            @DbPrincipal = 'public',
            @LockMode = :lock_mode,
            @LockOwner = :lock_owner,
            @LockTimeout = :lock_timeout;
        SELECT @result AS result;
        """
    )

    _RELEASE_APPLOCK = text(
        """
        SET NOCOUNT ON;
        DECLARE @result int;
        EXEC @result = sp_releaseapplock
            @Resource = :resource,
            @DbPrincipal = 'public',
            @LockOwner = :lock_owner;
        SELECT @result AS result;
        """
    )

    def __init__(self, *, keep_alive_query: str = DEFAULT_KEEP_ALIVE_QUERY) -> None:
        self._keep_alive = text(keep_alive_query)

    async def try_acquire(
        self,
        connection: AsyncConnection,
        resource: str,
        *,
        lock_mode: str = LOCK_MODE_EXCLUSIVE,
        lock_owner: str = LOCK_OWNER_SESSION,
        lock_timeout_ms: int = 0,
    ) -> int:
        result = await connection.execute(
            self._GET_APPLOCK,
            {
                "resource": resource,
                "lock_mode": lock_mode,
                "lock_owner": lock_owner,
                "lock_timeout": lock_timeout_ms,
            },
        )
        return int(result.scalar_one())

    async def release(
        self,
        connection: AsyncConnection,
        resource: str,
        *,
        lock_owner: str = LOCK_OWNER_SESSION,
    ) -> int:
        result = await connection.execute(
            self._RELEASE_APPLOCK,
            {"resource": resource, "lock_owner": lock_owner},
        )
        return int(result.scalar_one())

    async def ping(self, connection: AsyncConnection) -> None:
        await connection.execute(self._keep_alive)


class PostgresAdvisoryLockService:
    """Session-level ``pg_try_advisory_lock`` mapped onto the return-code contract.

    Resource names are hashed server side with ``hashtext``. PostgreSQL has no
    per-call wait, so only immediate attempts (``lock_timeout_ms == 0``) and
    session ownership are supported; anything else is reported as a call
    error.
    """

    _TRY_LOCK = {
        LOCK_MODE_EXCLUSIVE: text("SELECT pg_try_advisory_lock(hashtext(:resource))"),
        LOCK_MODE_SHARED: text("SELECT pg_try_advisory_lock_shared(hashtext(:resource))"),
    }
    _UNLOCK = text("SELECT pg_advisory_unlock(hashtext(:resource))")

    def __init__(self, *, keep_alive_query: str = DEFAULT_KEEP_ALIVE_QUERY) -> None:
        self._keep_alive = text(keep_alive_query)

    async def try_acquire(
        self,
        connection: AsyncConnection,
        resource: str,
        *,
        lock_mode: str = LOCK_MODE_EXCLUSIVE,
        lock_owner: str = LOCK_OWNER_SESSION,
        lock_timeout_ms: int = 0,
    ) -> int:
        statement = self._TRY_LOCK.get(lock_mode)
        if statement is None or lock_owner != LOCK_OWNER_SESSION or lock_timeout_ms != 0:
            return LOCK_CALL_ERROR
        result = await connection.execute(statement, {"resource": resource})
        return 0 if result.scalar_one() else LOCK_TIMED_OUT

    async def release(
        self,
        connection: AsyncConnection,
        resource: str,
        *,
        lock_owner: str = LOCK_OWNER_SESSION,
    ) -> int:
        if lock_owner != LOCK_OWNER_SESSION:
            return LOCK_CALL_ERROR
        result = await connection.execute(self._UNLOCK, {"resource": resource})
        return 0 if result.scalar_one() else LOCK_CALL_ERROR

    async def ping(self, connection: AsyncConnection) -> None:
        await connection.execute(self._keep_alive)


def service_for_dialect(
    dialect_name: str, *, keep_alive_query: str = DEFAULT_KEEP_ALIVE_QUERY
) -> AdvisoryLockService:
    """Pick the advisory lock service matching a SQLAlchemy dialect name."""

    backend = (dialect_name or "").lower().split("+")[0]
    if backend == "mssql":
        return SqlServerAppLockService(keep_alive_query=keep_alive_query)
    if backend in {"postgresql", "postgres"}:
        return PostgresAdvisoryLockService(keep_alive_query=keep_alive_query)
    raise ValueError(f"Unsupported database backend for advisory locks: {dialect_name!r}")
