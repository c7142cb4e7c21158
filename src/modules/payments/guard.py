"""In-process idempotency guard.

A set of in-flight keys protected by a lock.  ``try_acquire`` is an atomic
insert-if-absent; exactly one of any number of concurrent callers for the
same key wins.  Only the winner may release.

The guard is process-scoped.  Cross-process safety comes from the order
row lock taken by the lifecycle service.
"""

from __future__ import annotations

import threading
from contextlib import contextmanager
from typing import Iterator, Set

import structlog

logger = structlog.get_logger(__name__)


class IdempotencyGuard:
    def __init__(self) -> None:
        self._keys: Set[str] = set()
        self._lock = threading.Lock()

    def try_acquire(self, key: str) -> bool:
        with self._lock:
            if key in self._keys:
                return False
            self._keys.add(key)
            return True

    def release(self, key: str) -> None:
        with self._lock:
            self._keys.discard(key)

    def is_held(self, key: str) -> bool:
        with self._lock:
            return key in self._keys

    @contextmanager
    def held(self, key: str) -> Iterator[bool]:
        """Yield whether ``key`` was acquired; release on exit only if so."""
        acquired = self.try_acquire(key)
        if not acquired:
            logger.info("payment.guard_contended", key=key)
        try:
            yield acquired
        finally:
            if acquired:
                self.release(key)


payment_guard = IdempotencyGuard()
