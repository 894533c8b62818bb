from __future__ import annotations

from typing import List, Optional, Protocol

from models.records import Reading


class StoreUnavailable(RuntimeError):
    """The backing store could not complete a connection or transaction."""


class ReadingStore(Protocol):
    """Persistence boundary shared by the ingestion loop and the HTTP API.

    Implementations assign ``id`` and ``recorded_at`` on insert and must be
    safe to call from several threads at once. Reads are ordered newest
    first: ``recorded_at`` descending, then ``id`` descending.
    """

    def insert(self, reading: Reading) -> Reading: ...

    def latest(self) -> Optional[Reading]: ...

    def all(self) -> List[Reading]: ...

    def close(self) -> None: ...
