"""Mini README: Keyed locks serialising work on one balance or one project.

Structure:
    * KeyedLockRegistry - hands out one re-entrant lock per key.

Two operations touching the same key run one after the other; operations on
different keys never share a lock. Acquisition is bounded by a timeout and a
timeout surfaces as ``ConcurrencyConflict`` so the service layer can retry.
Callers that need several locks take them in a fixed order: project first,
then balance.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Dict, Hashable, Iterator

from ..errors import ConcurrencyConflict
from ..logging_utils import get_logger

LOGGER = get_logger(__name__)


class KeyedLockRegistry:
    """Lazily created ``RLock`` per key."""

    def __init__(self, *, timeout_seconds: float = 5.0) -> None:
        self.timeout_seconds = timeout_seconds
        self._locks: Dict[Hashable, threading.RLock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, key: Hashable) -> threading.RLock:
        """Return the lock for ``key``, creating it on first use."""

        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = threading.RLock()
                self._locks[key] = lock
            return lock

    @contextmanager
    def hold(self, key: Hashable) -> Iterator[None]:
        """Hold the lock for ``key`` for the duration of the block."""

        lock = self._lock_for(key)
        if not lock.acquire(timeout=self.timeout_seconds):
            LOGGER.warning("Timed out after %ss waiting for lock %s", self.timeout_seconds, key)
            raise ConcurrencyConflict(
                f"Another operation is holding {key}; retry the request",
                details={"key": key},
            )
        try:
            yield
        finally:
            lock.release()

    def __len__(self) -> int:
        """Number of keys that have a lock."""

        return len(self._locks)
