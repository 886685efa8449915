# fieldservice/infra/throttle.py
from __future__ import annotations
from datetime import datetime, timedelta
from threading import Lock
from typing import Optional


class MinGapThrottle:
    """
    Keyed minimum-gap throttle (one accepted event per ``min_gap_seconds`` per key).

    The window slides: every accepted event resets the clock for its key.
    Each key has its own lock, so "read last, compare, write last" is atomic
    per key while different keys never wait on each other. The guard lock
    only protects the lock table itself.

    Keys are never forgotten, so use a bounded key space such as user ids.

    ⚠️ NOT horizontally scalable: state lives in this process only.
    """

    def __init__(self, min_gap_seconds: float):
        self.min_gap = timedelta(seconds=min_gap_seconds)
        self._last: dict[str, datetime] = {}
        self._locks: dict[str, Lock] = {}
        self._guard = Lock()

    def _lock_for(self, key: str) -> Lock:
        with self._guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = Lock()
            return lock

    def acquire(self, key: str, now: datetime) -> tuple[bool, Optional[float], Optional[datetime]]:
        """
        Try to accept an event for ``key`` at ``now``.

        Returns:
            (allowed, retry_after_seconds, previous_accepted_at)
        On success the slot is already recorded; pass ``previous`` to
        ``release`` if the event is later abandoned.
        """
        with self._lock_for(key):
            last = self._last.get(key)
            if last is not None:
                elapsed = now - last
                if elapsed < self.min_gap:
                    remaining = (self.min_gap - elapsed).total_seconds()
                    return False, remaining, last
            self._last[key] = now
            return True, None, last

    def release(self, key: str, accepted_at: datetime, previous: Optional[datetime]) -> None:
        """Undo an ``acquire`` unless a newer event has been accepted since."""
        with self._lock_for(key):
            if self._last.get(key) != accepted_at:
                return
            if previous is None:
                self._last.pop(key, None)
            else:
                self._last[key] = previous

    def last_accepted(self, key: str) -> Optional[datetime]:
        with self._lock_for(key):
            return self._last.get(key)
