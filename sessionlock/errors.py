"""Exception hierarchy raised by distributed lock operations."""

from __future__ import annotations

from typing import Optional


class DistributedLockError(RuntimeError):
    """Base class for every error raised by the lock package."""


class LockArgumentError(DistributedLockError, ValueError):
    """Raised for an empty resource name or an out-of-range timeout."""


class LockPreconditionError(DistributedLockError):
    """Raised when the connection handed to the acquirer is not open."""


class DistributedLockTimeoutError(DistributedLockError, TimeoutError):
    """Raised when the acquisition timeout elapsed without a grant."""

    def __init__(self, resource: str) -> None:
        self.resource = resource
        super().__init__(
            "Timeout expired. The timeout elapsed prior to obtaining a "
            f"distributed lock on the '{resource}' resource."
        )


class LockCallError(DistributedLockError):
    """Raised when the lock service rejected the request as invalid."""

    def __init__(self, resource: str, reason: str, result_code: Optional[int] = None) -> None:
        self.resource = resource
        self.reason = reason
        self.result_code = result_code
        super().__init__(f"Could not place a lock on the resource '{resource}': {reason}.")


class LockReleaseError(DistributedLockError):
    """Raised when the lock service reported a failed release."""

    def __init__(self, resource: str, result_code: int) -> None:
        self.resource = resource
        self.result_code = result_code
        super().__init__(
            f"Could not release a lock on the resource '{resource}': "
            f"Server returned the '{result_code}' error."
        )


__all__ = [
    "DistributedLockError",
    "DistributedLockTimeoutError",
    "LockArgumentError",
    "LockCallError",
    "LockPreconditionError",
    "LockReleaseError",
]
