from __future__ import annotations

import json
import logging
import threading
from typing import Any, Dict, Optional

import paho.mqtt.client as mqtt

from broker.base import TransportError
from broker.mqtt import QOS_AT_MOST_ONCE, build_client

logger = logging.getLogger(__name__)


class MqttPublisher:
    """Publishes JSON readings the way a field device does."""

    def __init__(
        self,
        host: str,
        port: int,
        client_id: str,
        keepalive: int = 5,
        connect_timeout: float = 5.0,
        client: Optional[mqtt.Client] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.client_id = client_id
        self.keepalive = keepalive
        self.connect_timeout = connect_timeout
        self._connack = threading.Event()
        self._client = client if client is not None else build_client(client_id)
        self._client.on_connect = self._on_connect

    def connect(self) -> None:
        try:
            self._client.connect(self.host, self.port, keepalive=self.keepalive)
        except OSError as exc:
            raise TransportError(f"could not reach broker {self.host}:{self.port}: {exc}") from exc
        self._client.loop_start()
        # QoS 0 publishes are refused until CONNACK arrives.
        if not self._connack.wait(self.connect_timeout):
            self._client.loop_stop()
            raise TransportError(f"no CONNACK from {self.host}:{self.port} within {self.connect_timeout}s")
        logger.info(
            "Publisher connected",
            extra={"broker": f"{self.host}:{self.port}", "client_id": self.client_id},
        )

    def publish(self, topic: str, payload: Dict[str, Any]) -> None:
        info = self._client.publish(topic, json.dumps(payload), qos=QOS_AT_MOST_ONCE, retain=False)
        if info.rc != mqtt.MQTT_ERR_SUCCESS:
            raise TransportError(f"publish to {topic!r} failed: {mqtt.error_string(info.rc)}")

    def close(self) -> None:
        self._client.disconnect()
        self._client.loop_stop()

    def _on_connect(self, client: mqtt.Client, userdata: Any, flags: Any, reason_code: Any, properties: Any) -> None:
        if reason_code.is_failure:
            logger.error("Broker refused publisher", extra={"reason": str(reason_code)})
            return
        self._connack.set()
