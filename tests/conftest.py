from __future__ import annotations

import json
from typing import Iterable, Iterator, List, Optional

import pytest

from broker.base import InboundMessage
from datastore.memory import InMemoryReadingStore

TOPIC = "sensors/temperature"


class CannedMessageSource:
    """Message source replaying a fixed list of messages."""

    def __init__(
        self,
        messages: Iterable[InboundMessage] = (),
        error: Optional[BaseException] = None,
        connect_error: Optional[BaseException] = None,
    ) -> None:
        self._messages = list(messages)
        self.error = error
        self.connect_error = connect_error
        self.connected = False
        self.subscriptions: List[str] = []
        self.closed = False

    def connect(self) -> None:
        if self.connect_error is not None:
            raise self.connect_error
        self.connected = True

    def subscribe(self, topic: str) -> None:
        self.subscriptions.append(topic)

    def messages(self) -> Iterator[InboundMessage]:
        for message in self._messages:
            if self.closed:
                return
            yield message
        if self.error is not None:
            raise self.error

    def close(self) -> None:
        self.closed = True


def message(payload: object, topic: str = TOPIC) -> InboundMessage:
    raw = payload if isinstance(payload, bytes) else json.dumps(payload).encode("utf-8")
    return InboundMessage(topic=topic, payload=raw)


@pytest.fixture
def memory_store() -> InMemoryReadingStore:
    return InMemoryReadingStore()
