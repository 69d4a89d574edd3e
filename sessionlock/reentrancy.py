"""Owner-scoped hold counters for re-entrant distributed locks."""

from __future__ import annotations

import asyncio
import threading
from dataclasses import dataclass
from typing import Any, Dict, Hashable, Optional, Tuple


def current_owner() -> Hashable:
    """Return the default owner token for the calling context.

    The running :class:`asyncio.Task` owns locks acquired from a coroutine.
    Outside an event loop the calling thread's identifier is used instead.
    """

    try:
        task = asyncio.current_task()
    except RuntimeError:
        task = None
    if task is not None:
        return task
    return threading.get_ident()


@dataclass
class ReentrancyEntry:
    """Hold count for one ``(owner, resource)`` pair.

    ``session`` carries whatever the first acquisition set up (connection,
    keep-alive job) so nested holds reuse it instead of talking to the
    server again.
    """

    count: int = 0
    session: Optional[Any] = None


class ReentrancyTracker:
    """Process-wide map from ``(owner, resource)`` to a hold count.

    Every owner only touches its own entries, the internal lock merely keeps
    the shared dictionary consistent when several threads or event loops
    use the same tracker.
    """

    def __init__(self) -> None:
        self._entries: Dict[Tuple[Hashable, str], ReentrancyEntry] = {}
        self._guard = threading.Lock()

    def try_enter(self, owner: Hashable, resource: str) -> bool:
        """Register a hold and report whether ``owner`` already held ``resource``."""

        key = (owner, resource)
        with self._guard:
            entry = self._entries.get(key)
            if entry is not None and entry.count > 0:
                entry.count += 1
                return True
            self._entries[key] = ReentrancyEntry(count=1)
            return False

    def exit(self, owner: Hashable, resource: str) -> bool:
        """Drop one hold and report whether the last one was released."""

        key = (owner, resource)
        with self._guard:
            entry = self._entries.get(key)
            if entry is None:
                return False
            entry.count -= 1
            if entry.count > 0:
                return False
            del self._entries[key]
            return True

    def bind(self, owner: Hashable, resource: str, session: Any) -> None:
        with self._guard:
            entry = self._entries.get((owner, resource))
            if entry is None:
                raise KeyError(resource)
            entry.session = session

    def session_for(self, owner: Hashable, resource: str) -> Optional[Any]:
        with self._guard:
            entry = self._entries.get((owner, resource))
            return entry.session if entry is not None else None

    def held_count(self, owner: Hashable, resource: str) -> int:
        with self._guard:
            entry = self._entries.get((owner, resource))
            return entry.count if entry is not None else 0

    def __len__(self) -> int:
        with self._guard:
            return len(self._entries)
