"""Domain models shared across services."""

from __future__ import annotations

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Optional


@dataclass(frozen=True, slots=True)
class Reading:
    """A single sensor observation.

    Readings built by the decoder are transient: ``id`` and ``recorded_at``
    stay unset until a store persists them and hands back a new instance
    carrying both.
    """

    device_id: str
    temperature: float
    humidity: float = 0.0
    recorded_at: Optional[datetime] = None
    id: Optional[int] = None

    @property
    def is_persisted(self) -> bool:
        return self.id is not None and self.recorded_at is not None

    def with_identity(self, reading_id: int, recorded_at: datetime) -> "Reading":
        """Return a persisted copy; only stores should call this."""
        return replace(self, id=reading_id, recorded_at=recorded_at)
