"""Unit tests for payload decoding."""

from __future__ import annotations

import math

import pytest

from models.records import Reading
from services.decoder import DecodeError, decode


def test_decode_full_payload() -> None:
    reading = decode(b'{"device":"sensor-1","temp":22.5,"humidity":55.0}')

    assert reading == Reading(device_id="sensor-1", temperature=22.5, humidity=55.0)
    assert reading.id is None
    assert reading.recorded_at is None
    assert reading.is_persisted is False


def test_decode_defaults_missing_humidity_to_zero() -> None:
    reading = decode(b'{"device":"sensor-1","temp":22.5}')

    assert reading.humidity == 0.0


def test_decode_defaults_null_humidity_to_zero() -> None:
    reading = decode(b'{"device":"sensor-1","temp":22.5,"humidity":null}')

    assert reading.humidity == 0.0


def test_decode_accepts_integers_as_floats() -> None:
    reading = decode(b'{"device":"d","temp":21,"humidity":40}')

    assert reading.temperature == 21.0
    assert isinstance(reading.temperature, float)
    assert isinstance(reading.humidity, float)


def test_decode_passes_through_implausible_values() -> None:
    reading = decode(b'{"device":"d","temp":NaN,"humidity":-1e308}')

    assert math.isnan(reading.temperature)
    assert reading.humidity == -1e308


def test_decode_ignores_unknown_fields_and_accepts_bytearray() -> None:
    reading = decode(bytearray(b'{"device":"d","temp":1.5,"battery":99}'))

    assert reading == Reading(device_id="d", temperature=1.5)


@pytest.mark.parametrize(
    ("payload", "reason"),
    [
        (b"not-json", "payload is not valid JSON"),
        (b"", "payload is not valid JSON"),
        (b"\xff\xfe", "payload is not valid UTF-8"),
        (b'{"device": "d", "temp": ' + b"1" * 5000 + b"}", "payload is not valid JSON"),
        (b"[" * 200000, "payload is not valid JSON"),
        (b"[1, 2]", "payload is not a JSON object"),
        (b'{"temp": 22.5}', "missing device"),
        (b'{"device": null, "temp": 22.5}', "missing device"),
        (b'{"device": 7, "temp": 22.5}', "device must be a string"),
        (b'{"device": "", "temp": 22.5}', "device must not be empty"),
        (b'{"device": "d"}', "missing temp"),
        (b'{"device": "d", "temp": "22.5"}', "temp must be a number"),
        (b'{"device": "d", "temp": true}', "temp must be a number"),
        (b'{"device": "d", "temp": 1, "humidity": "wet"}', "humidity must be a number"),
    ],
)
def test_decode_rejects_malformed_payloads(payload: bytes, reason: str) -> None:
    with pytest.raises(DecodeError) as excinfo:
        decode(payload)

    assert excinfo.value.reason == reason
