"""Mapping of advisory lock return codes onto typed outcomes."""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Dict, Optional

LOCK_TIMED_OUT = -1
LOCK_CANCELED = -2
LOCK_DEADLOCK_VICTIM = -3
LOCK_CALL_ERROR = -999

LOCK_ERROR_MESSAGES: Dict[int, str] = {
    LOCK_TIMED_OUT: "The lock request timed out",
    LOCK_CANCELED: "The lock request was canceled",
    LOCK_DEADLOCK_VICTIM: "The lock request was chosen as a deadlock victim",
    LOCK_CALL_ERROR: "Indicates a parameter validation or other call error",
}


class OutcomeKind(str, enum.Enum):
    GRANTED = "granted"
    RETRYABLE = "retryable"
    FATAL = "fatal"


@dataclass(frozen=True)
class AcquireOutcome:
    """Result of a single lock request to the advisory lock primitive."""

    kind: OutcomeKind
    result_code: int
    reason: Optional[str] = None

    @property
    def granted(self) -> bool:
        return self.kind is OutcomeKind.GRANTED

    @property
    def fatal(self) -> bool:
        return self.kind is OutcomeKind.FATAL


@dataclass(frozen=True)
class ReleaseOutcome:
    released: bool
    result_code: int
    reason: Optional[str] = None


def describe_result_code(result_code: int) -> str:
    return LOCK_ERROR_MESSAGES.get(
        result_code, f"Server returned the '{result_code}' error"
    )


def classify_acquire_result(result_code: int) -> AcquireOutcome:
    """Classify the return value of a lock request.

    Non-negative codes are grants, ``-999`` is a call error that retrying
    cannot fix, and every other negative code (timeout, cancellation,
    deadlock victim, unknown server error) is worth another attempt.
    """

    if result_code >= 0:
        return AcquireOutcome(OutcomeKind.GRANTED, result_code)
    if result_code == LOCK_CALL_ERROR:
        return AcquireOutcome(
            OutcomeKind.FATAL, result_code, describe_result_code(result_code)
        )
    return AcquireOutcome(
        OutcomeKind.RETRYABLE, result_code, describe_result_code(result_code)
    )


def classify_release_result(result_code: int) -> ReleaseOutcome:
    """Classify the return value of a release request; any negative code fails."""

    if result_code >= 0:
        return ReleaseOutcome(True, result_code)
    return ReleaseOutcome(False, result_code, describe_result_code(result_code))
