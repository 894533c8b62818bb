"""Synthetic field device that publishes periodic readings."""

from __future__ import annotations

import logging
import random
import time
from typing import Any, Callable, Dict, Optional, Protocol

from broker.base import TransportError

logger = logging.getLogger(__name__)

TEMPERATURE_RANGE = (20.0, 30.0)
HUMIDITY_RANGE = (40.0, 80.0)


class Publisher(Protocol):
    def publish(self, topic: str, payload: Dict[str, Any]) -> None: ...


class DeviceSimulator:
    def __init__(
        self,
        publisher: Publisher,
        topic: str,
        device_id: str = "sensor-1",
        interval: float = 5.0,
        rng: Optional[random.Random] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.publisher = publisher
        self.topic = topic
        self.device_id = device_id
        self.interval = interval
        self.rng = rng or random.Random()
        self.sleep = sleep

    def next_payload(self) -> Dict[str, Any]:
        return {
            "device": self.device_id,
            "temp": self.rng.uniform(*TEMPERATURE_RANGE),
            "humidity": self.rng.uniform(*HUMIDITY_RANGE),
        }

    def run(self, count: int = 0) -> int:
        """Publish ``count`` readings (forever when 0); returns how many were sent."""
        sent = 0
        attempts = 0
        while count <= 0 or attempts < count:
            attempts += 1
            payload = self.next_payload()
            try:
                self.publisher.publish(self.topic, payload)
            except TransportError as exc:
                # Next tick brings a fresh reading anyway.
                logger.warning("Publish failed", extra={"topic": self.topic, "reason": str(exc)})
            else:
                sent += 1
                logger.info("Published reading", extra={"device_id": self.device_id, "topic": self.topic})
            if count <= 0 or attempts < count:
                self.sleep(self.interval)
        return sent
