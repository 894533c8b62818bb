from __future__ import annotations

from datetime import datetime, timezone
from threading import Lock
from typing import Callable, List, Optional

from datastore.base import StoreUnavailable
from models.records import Reading


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class InMemoryReadingStore:
    """Process-local reading store used for tests and broker-only dry runs."""

    def __init__(self, clock: Callable[[], datetime] = _utcnow) -> None:
        self._rows: List[Reading] = []
        self._next_id = 1
        self._clock = clock
        self._lock = Lock()
        self.fail = False

    def insert(self, reading: Reading) -> Reading:
        with self._lock:
            self._check_available()
            recorded_at = self._clock()
            if self._rows and recorded_at < self._rows[-1].recorded_at:  # type: ignore[operator]
                # Clock went backwards; keep timestamps non-decreasing.
                recorded_at = self._rows[-1].recorded_at  # type: ignore[assignment]
            stored = reading.with_identity(self._next_id, recorded_at)
            self._rows.append(stored)
            self._next_id += 1
            return stored

    def latest(self) -> Optional[Reading]:
        with self._lock:
            self._check_available()
            return self._rows[-1] if self._rows else None

    def all(self) -> List[Reading]:
        with self._lock:
            self._check_available()
            # Rows are appended in id and timestamp order already.
            return list(reversed(self._rows))

    def close(self) -> None:
        return None

    def _check_available(self) -> None:
        if self.fail:
            raise StoreUnavailable("in-memory store switched to failure mode")
