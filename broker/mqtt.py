"""paho-mqtt adapter exposing the broker as a blocking message source."""

from __future__ import annotations

import logging
import queue
import threading
from typing import Any, Iterator, List, Optional, Union

import paho.mqtt.client as mqtt
from paho.mqtt.reasoncodes import ReasonCode

from broker.base import InboundMessage, TransportError

logger = logging.getLogger(__name__)

# At-most-once: the broker may drop messages but never redelivers them.
QOS_AT_MOST_ONCE = 0

_CLOSED = object()

_Event = Union[InboundMessage, TransportError, object]


def build_client(client_id: str) -> mqtt.Client:
    """Create a paho client that never reconnects on its own."""
    return mqtt.Client(
        callback_api_version=mqtt.CallbackAPIVersion.VERSION2,
        client_id=client_id,
        protocol=mqtt.MQTTv311,
        reconnect_on_failure=False,
    )


class MqttMessageSource:
    """Turns paho's callback API into a blocking iterator of messages.

    paho's network thread pushes messages and connection failures onto a
    queue; ``messages()`` drains that queue on the caller's thread so the
    caller observes them in receipt order.
    """

    def __init__(
        self,
        host: str,
        port: int,
        client_id: str,
        keepalive: int = 10,
        connect_timeout: float = 5.0,
        client: Optional[mqtt.Client] = None,
    ) -> None:
        self.host = host
        self.port = port
        self.client_id = client_id
        self.keepalive = keepalive
        self.connect_timeout = connect_timeout
        self._events: "queue.Queue[_Event]" = queue.Queue()
        self._connack = threading.Event()
        self._suback = threading.Event()
        self._connect_reason: Optional[ReasonCode] = None
        self._subscribe_reasons: List[ReasonCode] = []
        self._closing = False
        self._client = client if client is not None else build_client(client_id)
        self._client.on_connect = self._on_connect
        self._client.on_disconnect = self._on_disconnect
        self._client.on_subscribe = self._on_subscribe
        self._client.on_message = self._on_message

    @property
    def broker(self) -> str:
        return f"{self.host}:{self.port}"

    def connect(self) -> None:
        logger.info(
            "Connecting to MQTT broker",
            extra={"broker": self.broker, "client_id": self.client_id},
        )
        try:
            self._client.connect(self.host, self.port, keepalive=self.keepalive)
        except OSError as exc:
            raise TransportError(f"could not reach broker {self.broker}: {exc}") from exc

        self._client.loop_start()
        if not self._connack.wait(self.connect_timeout):
            self._client.loop_stop()
            raise TransportError(f"no CONNACK from {self.broker} within {self.connect_timeout}s")
        if self._connect_reason is not None and self._connect_reason.is_failure:
            self._client.loop_stop()
            raise TransportError(f"broker {self.broker} refused connection: {self._connect_reason}")

    def subscribe(self, topic: str) -> None:
        result, _mid = self._client.subscribe(topic, qos=QOS_AT_MOST_ONCE)
        if result != mqtt.MQTT_ERR_SUCCESS:
            raise TransportError(f"subscribe to {topic!r} failed: {mqtt.error_string(result)}")
        if not self._suback.wait(self.connect_timeout):
            raise TransportError(f"no SUBACK for {topic!r} within {self.connect_timeout}s")
        failures = [reason for reason in self._subscribe_reasons if reason.is_failure]
        if failures:
            raise TransportError(f"broker rejected subscription to {topic!r}: {failures[0]}")
        logger.info("Subscribed", extra={"topic": topic})

    def messages(self) -> Iterator[InboundMessage]:
        while True:
            event = self._events.get()
            if event is _CLOSED:
                return
            if isinstance(event, TransportError):
                raise event
            yield event  # type: ignore[misc]

    def close(self) -> None:
        if self._closing:
            return
        self._closing = True
        self._client.disconnect()
        self._client.loop_stop()
        # Wakes a consumer even when no DISCONNECT callback fires.
        self._events.put(_CLOSED)

    def _on_connect(
        self,
        client: mqtt.Client,
        userdata: Any,
        flags: Any,
        reason_code: ReasonCode,
        properties: Any,
    ) -> None:
        self._connect_reason = reason_code
        if reason_code.is_failure:
            logger.error("Broker refused connection", extra={"reason": str(reason_code)})
        self._connack.set()

    def _on_subscribe(
        self,
        client: mqtt.Client,
        userdata: Any,
        mid: int,
        reason_code_list: List[ReasonCode],
        properties: Any,
    ) -> None:
        self._subscribe_reasons = list(reason_code_list)
        self._suback.set()

    def _on_message(self, client: mqtt.Client, userdata: Any, msg: mqtt.MQTTMessage) -> None:
        self._events.put(InboundMessage(topic=msg.topic, payload=bytes(msg.payload)))

    def _on_disconnect(
        self,
        client: mqtt.Client,
        userdata: Any,
        disconnect_flags: Any,
        reason_code: ReasonCode,
        properties: Any,
    ) -> None:
        if self._closing:
            self._events.put(_CLOSED)
            return
        logger.warning("Connection to broker lost", extra={"reason": str(reason_code)})
        self._events.put(TransportError(f"connection to {self.broker} lost: {reason_code}"))
