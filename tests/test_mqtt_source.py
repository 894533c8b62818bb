"""Tests for the paho-mqtt adapters using a stand-in client."""

from __future__ import annotations

import json
from typing import Any, List, Optional, Tuple

import paho.mqtt.client as mqtt
import pytest

from broker.base import InboundMessage, TransportError
from broker.mqtt import MqttMessageSource
from broker.publisher import MqttPublisher


class FakeReason:
    def __init__(self, name: str = "Success", failure: bool = False) -> None:
        self.name = name
        self.is_failure = failure

    def __str__(self) -> str:
        return self.name


class FakeMessage:
    def __init__(self, topic: str, payload: bytes) -> None:
        self.topic = topic
        self.payload = payload


class FakePublishInfo:
    def __init__(self, rc: int) -> None:
        self.rc = rc


class FakeClient:
    """Mimics the paho client surface the adapters use, firing callbacks inline."""

    def __init__(
        self,
        connect_error: Optional[BaseException] = None,
        connack: Optional[FakeReason] = None,
        suback: Optional[FakeReason] = None,
        publish_rc: int = mqtt.MQTT_ERR_SUCCESS,
    ) -> None:
        self.connect_error = connect_error
        self.connack = connack
        self.suback = suback or FakeReason("Granted QoS 0")
        self.publish_rc = publish_rc
        self.connect_args: Optional[Tuple[str, int, int]] = None
        self.subscribed: List[Tuple[str, int]] = []
        self.published: List[Tuple[str, str, int, bool]] = []
        self.loop_running = False
        self.disconnected = False
        self.on_connect: Any = None
        self.on_disconnect: Any = None
        self.on_subscribe: Any = None
        self.on_message: Any = None

    def connect(self, host: str, port: int, keepalive: int = 60) -> int:
        if self.connect_error is not None:
            raise self.connect_error
        self.connect_args = (host, port, keepalive)
        return mqtt.MQTT_ERR_SUCCESS

    def loop_start(self) -> None:
        self.loop_running = True
        if self.connack is not None and self.on_connect is not None:
            self.on_connect(self, None, {}, self.connack, None)

    def loop_stop(self) -> None:
        self.loop_running = False

    def subscribe(self, topic: str, qos: int = 0) -> Tuple[int, int]:
        self.subscribed.append((topic, qos))
        if self.on_subscribe is not None:
            self.on_subscribe(self, None, 1, [self.suback], None)
        return mqtt.MQTT_ERR_SUCCESS, 1

    def publish(self, topic: str, payload: str, qos: int = 0, retain: bool = False) -> FakePublishInfo:
        self.published.append((topic, payload, qos, retain))
        return FakePublishInfo(self.publish_rc)

    def disconnect(self) -> int:
        self.disconnected = True
        if self.on_disconnect is not None:
            self.on_disconnect(self, None, {}, FakeReason("Normal disconnection"), None)
        return mqtt.MQTT_ERR_SUCCESS

    def deliver(self, topic: str, payload: bytes) -> None:
        self.on_message(self, None, FakeMessage(topic, payload))

    def drop_connection(self) -> None:
        self.on_disconnect(self, None, {}, FakeReason("Unspecified error", failure=True), None)


def _source(client: FakeClient, timeout: float = 0.2) -> MqttMessageSource:
    return MqttMessageSource(
        host="broker.local",
        port=1883,
        client_id="iot-server",
        keepalive=10,
        connect_timeout=timeout,
        client=client,  # type: ignore[arg-type]
    )


def test_connect_and_subscribe_at_most_once() -> None:
    client = FakeClient(connack=FakeReason())
    source = _source(client)

    source.connect()
    source.subscribe("sensors/temperature")

    assert client.connect_args == ("broker.local", 1883, 10)
    assert client.loop_running is True
    assert client.subscribed == [("sensors/temperature", 0)]


def test_unreachable_broker_raises_transport_error() -> None:
    source = _source(FakeClient(connect_error=ConnectionRefusedError("refused")))

    with pytest.raises(TransportError):
        source.connect()


def test_refused_connack_raises_transport_error() -> None:
    client = FakeClient(connack=FakeReason("Not authorized", failure=True))
    source = _source(client)

    with pytest.raises(TransportError, match="refused"):
        source.connect()
    assert client.loop_running is False


def test_missing_connack_times_out() -> None:
    source = _source(FakeClient(connack=None), timeout=0.05)

    with pytest.raises(TransportError, match="CONNACK"):
        source.connect()


def test_rejected_subscription_raises_transport_error() -> None:
    client = FakeClient(connack=FakeReason(), suback=FakeReason("Unspecified error", failure=True))
    source = _source(client)
    source.connect()

    with pytest.raises(TransportError, match="rejected"):
        source.subscribe("sensors/temperature")


def test_messages_then_connection_loss() -> None:
    client = FakeClient(connack=FakeReason())
    source = _source(client)
    source.connect()
    client.deliver("sensors/temperature", b'{"device":"a","temp":1}')
    client.deliver("sensors/temperature", b"not-json")
    client.drop_connection()

    received: List[InboundMessage] = []
    with pytest.raises(TransportError, match="lost"):
        for item in source.messages():
            received.append(item)

    assert received == [
        InboundMessage("sensors/temperature", b'{"device":"a","temp":1}'),
        InboundMessage("sensors/temperature", b"not-json"),
    ]


def test_close_ends_message_stream() -> None:
    client = FakeClient(connack=FakeReason())
    source = _source(client)
    source.connect()
    client.deliver("sensors/temperature", b"{}")

    source.close()
    received = list(source.messages())

    assert received == [InboundMessage("sensors/temperature", b"{}")]
    assert client.disconnected is True
    assert client.loop_running is False


def test_publisher_sends_json_at_qos_zero() -> None:
    client = FakeClient(connack=FakeReason())
    publisher = MqttPublisher("broker.local", 1883, "iot-device-1", client=client)  # type: ignore[arg-type]

    publisher.connect()
    publisher.publish("sensors/temperature", {"device": "sensor-1", "temp": 25.0})
    publisher.close()

    topic, payload, qos, retain = client.published[0]
    assert topic == "sensors/temperature"
    assert json.loads(payload) == {"device": "sensor-1", "temp": 25.0}
    assert (qos, retain) == (0, False)
    assert client.disconnected is True


def test_publisher_failure_raises_transport_error() -> None:
    client = FakeClient(publish_rc=mqtt.MQTT_ERR_NO_CONN)
    publisher = MqttPublisher("broker.local", 1883, "iot-device-1", client=client)  # type: ignore[arg-type]

    with pytest.raises(TransportError):
        publisher.publish("sensors/temperature", {"device": "sensor-1", "temp": 25.0})


def test_publisher_without_connack_raises_transport_error() -> None:
    client = FakeClient(connack=None)
    publisher = MqttPublisher(
        "broker.local", 1883, "iot-device-1", connect_timeout=0.05, client=client  # type: ignore[arg-type]
    )

    with pytest.raises(TransportError, match="CONNACK"):
        publisher.connect()
    assert client.loop_running is False
