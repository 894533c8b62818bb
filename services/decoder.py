"""Decoding of raw broker payloads into readings."""

from __future__ import annotations

import json
from typing import Any, Union

from models.records import Reading

RawPayload = Union[bytes, bytearray, memoryview]


class DecodeError(ValueError):
    """Raised when a payload cannot be turned into a reading."""

    def __init__(self, reason: str) -> None:
        super().__init__(reason)
        self.reason = reason


def _is_number(value: Any) -> bool:
    # bool is a subclass of int but never a sensor value.
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def decode(payload: RawPayload) -> Reading:
    """Decode a UTF-8 JSON payload such as ``{"device": "sensor-1", "temp": 22.5}``.

    ``humidity`` is optional and defaults to ``0.0`` when absent or null.
    Numeric values are taken as-is: NaN and out-of-range readings pass through.
    """
    try:
        text = bytes(payload).decode("utf-8")
    except UnicodeDecodeError as exc:
        raise DecodeError("payload is not valid UTF-8") from exc

    # ValueError also covers integers past the int/str digit limit; deep nesting
    # exhausts the parser's recursion.
    try:
        data = json.loads(text)
    except (ValueError, RecursionError) as exc:
        raise DecodeError("payload is not valid JSON") from exc

    if not isinstance(data, dict):
        raise DecodeError("payload is not a JSON object")

    if "device" not in data or data["device"] is None:
        raise DecodeError("missing device")
    device = data["device"]
    if not isinstance(device, str):
        raise DecodeError("device must be a string")
    if not device:
        raise DecodeError("device must not be empty")

    if "temp" not in data or data["temp"] is None:
        raise DecodeError("missing temp")
    temp = data["temp"]
    if not _is_number(temp):
        raise DecodeError("temp must be a number")

    humidity = data.get("humidity")
    if humidity is None:
        humidity = 0.0
    elif not _is_number(humidity):
        raise DecodeError("humidity must be a number")

    try:
        return Reading(device_id=device, temperature=float(temp), humidity=float(humidity))
    except OverflowError as exc:
        # Integer literals too large for a double.
        raise DecodeError("numeric value does not fit a double") from exc
