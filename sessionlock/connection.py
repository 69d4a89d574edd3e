"""Connection providers handing dedicated connections to distributed locks."""

from __future__ import annotations

from typing import Any, Protocol

from sqlalchemy.ext.asyncio import AsyncConnection, AsyncEngine


class ConnectionProvider(Protocol):
    """Source of connections used to hold session-scoped advisory locks."""

    async def open_connection(self) -> Any:
        """Return an open connection the lock may use for its whole hold."""
        ...

    async def release_connection(self, connection: Any) -> None:
        """Give ``connection`` back once the lock no longer needs it."""
        ...

    def is_managed_connection(self, connection: Any) -> bool:
        """Return ``True`` when something else keeps ``connection`` alive."""
        ...

    def is_open(self, connection: Any) -> bool:
        ...


def connection_is_open(connection: Any) -> bool:
    """Report whether a SQLAlchemy-style connection can still run statements."""

    if connection is None:
        return False
    if getattr(connection, "closed", False):
        return False
    if getattr(connection, "invalidated", False):
        return False
    return True


class EngineConnectionProvider:
    """Open one pooled connection per lock from an :class:`AsyncEngine`.

    Connections are switched to ``AUTOCOMMIT`` so the session-scoped lock
    does not keep an idle transaction open for the duration of the hold.
    """

    def __init__(self, engine: AsyncEngine, *, autocommit: bool = True) -> None:
        self._engine = engine
        self._autocommit = autocommit

    @property
    def engine(self) -> AsyncEngine:
        return self._engine

    async def open_connection(self) -> AsyncConnection:
        connection = await self._engine.connect()
        if self._autocommit:
            try:
                await connection.execution_options(isolation_level="AUTOCOMMIT")
            except BaseException:
                await connection.close()
                raise
        return connection

    async def release_connection(self, connection: AsyncConnection) -> None:
        await connection.close()

    def is_managed_connection(self, connection: Any) -> bool:
        return False

    def is_open(self, connection: Any) -> bool:
        return connection_is_open(connection)


class ExistingConnectionProvider:
    """Reuse a caller-supplied connection whose lifetime the caller manages.

    The connection is never closed here and no keep-alive job is started
    for it.
    """

    def __init__(self, connection: AsyncConnection) -> None:
        self._connection = connection

    async def open_connection(self) -> AsyncConnection:
        return self._connection

    async def release_connection(self, connection: AsyncConnection) -> None:
        return None

    def is_managed_connection(self, connection: Any) -> bool:
        return connection is self._connection

    def is_open(self, connection: Any) -> bool:
        return connection_is_open(connection)

