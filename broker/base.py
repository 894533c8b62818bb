from __future__ import annotations

from dataclasses import dataclass
from typing import Iterator, Protocol


class TransportError(ConnectionError):
    """The broker connection failed or was lost."""


@dataclass(frozen=True, slots=True)
class InboundMessage:
    topic: str
    payload: bytes


class MessageSource(Protocol):
    """Blocking source of broker messages for a single subscriber."""

    def connect(self) -> None: ...

    def subscribe(self, topic: str) -> None: ...

    def messages(self) -> Iterator[InboundMessage]:
        """Yield messages until closed; raise ``TransportError`` on connection loss."""
        ...

    def close(self) -> None: ...
