"""
Re-entrant distributed locks on top of database advisory locks.

Public API surface for the sessionlock package.
"""

from .backoff import exponential_backoff
from .config import Config, LockSettings
from .connection import (
    ConnectionProvider,
    EngineConnectionProvider,
    ExistingConnectionProvider,
)
from .errors import (
    DistributedLockError,
    DistributedLockTimeoutError,
    LockArgumentError,
    LockCallError,
    LockPreconditionError,
    LockReleaseError,
)
from .lock import DistributedLock, DistributedLockManager
from .outcomes import AcquireOutcome, OutcomeKind, ReleaseOutcome
from .reentrancy import ReentrancyTracker
from .services import (
    AdvisoryLockService,
    PostgresAdvisoryLockService,
    SqlServerAppLockService,
)

__all__ = [
    "AcquireOutcome",
    "AdvisoryLockService",
    "Config",
    "ConnectionProvider",
    "DistributedLock",
    "DistributedLockError",
    "DistributedLockManager",
    "DistributedLockTimeoutError",
    "EngineConnectionProvider",
    "ExistingConnectionProvider",
    "LockArgumentError",
    "LockCallError",
    "LockPreconditionError",
    "LockReleaseError",
    "LockSettings",
    "OutcomeKind",
    "PostgresAdvisoryLockService",
    "ReentrancyTracker",
    "ReleaseOutcome",
    "SqlServerAppLockService",
    "exponential_backoff",
]

__version__ = "0.1.0"
