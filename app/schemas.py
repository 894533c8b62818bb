"""Pydantic schemas for the HTTP API layer."""

from __future__ import annotations

import math
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel, Field, field_serializer

from models.records import Reading


class ReadingOut(BaseModel):
    """A persisted reading as served to HTTP clients."""

    id: int = Field(..., description="Store-assigned surrogate key.")
    device_id: str
    temperature: Optional[float]
    humidity: Optional[float]
    created_at: datetime = Field(..., description="Insertion time assigned by the store.")

    @classmethod
    def from_reading(cls, reading: Reading) -> "ReadingOut":
        return cls(
            id=reading.id,
            device_id=reading.device_id,
            temperature=reading.temperature,
            humidity=reading.humidity,
            created_at=reading.recorded_at,
        )

    @field_serializer("temperature", "humidity")
    def serialize_finite(self, value: Optional[float]) -> Optional[float]:
        # JSON has no NaN or Infinity literals.
        if value is None or not math.isfinite(value):
            return None
        return value


class IngestionHealth(BaseModel):
    state: str
    stats: Dict[str, Any] = Field(default_factory=dict)
    error: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    ingestion: Optional[IngestionHealth] = None
