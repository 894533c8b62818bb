"""Broker subscription loop that decodes readings and persists them."""

from __future__ import annotations

import logging
import time
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from threading import Event, Lock
from typing import Any, Dict, Optional

from broker.base import InboundMessage, MessageSource, TransportError
from broker.mqtt import MqttMessageSource
from datastore.base import ReadingStore, StoreUnavailable
from models.records import Reading
from services.decoder import DecodeError, decode
from settings import get_settings

logger = logging.getLogger(__name__)


class LoopState(str, Enum):
    """Lifecycle of one subscriber loop instance."""

    idle = "idle"
    connecting = "connecting"
    subscribed = "subscribed"
    receiving = "receiving"
    disconnected = "disconnected"


class IngestionStats:
    """Thread-safe counters read by the health endpoint."""

    def __init__(self) -> None:
        self._lock = Lock()
        self.received = 0
        self.stored = 0
        self.decode_failures = 0
        self.store_failures = 0
        self.ignored = 0
        self.last_message_at: Optional[float] = None

    def increment(self, counter: str) -> None:
        with self._lock:
            setattr(self, counter, getattr(self, counter) + 1)
            if counter == "received":
                self.last_message_at = time.time()

    def snapshot(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "received": self.received,
                "stored": self.stored,
                "decode_failures": self.decode_failures,
                "store_failures": self.store_failures,
                "ignored": self.ignored,
                "last_message_at": self.last_message_at,
            }


class SubscriberLoop:
    """Receives messages for one topic and writes decoded readings to the store.

    Failures local to a message (bad payload, failed insert) drop that message
    and keep the loop alive. A ``TransportError`` ends the loop for good: it
    moves to ``disconnected`` and the error propagates out of ``run()``.
    Reconnecting is left to whatever supervises the process.
    """

    def __init__(self, source: MessageSource, store: ReadingStore, topic: str) -> None:
        self.source = source
        self.store = store
        self.topic = topic
        self.stats = IngestionStats()
        self._state = LoopState.idle
        self._stopping = Event()

    @property
    def state(self) -> LoopState:
        return self._state

    def run(self) -> None:
        if self._state is not LoopState.idle:
            raise RuntimeError(f"subscriber loop cannot run from state {self._state.value}")
        self._set_state(LoopState.connecting)
        try:
            if self._stopping.is_set():
                return
            self.source.connect()
            self.source.subscribe(self.topic)
            self._set_state(LoopState.subscribed)
            for message in self.source.messages():
                if self._state is not LoopState.receiving:
                    self._set_state(LoopState.receiving)
                self.handle_message(message)
        except TransportError as exc:
            logger.error(
                "Transport failure, ingestion loop terminating without reconnect",
                extra={"topic": self.topic, "reason": str(exc)},
            )
            raise
        finally:
            self.source.close()
            self._set_state(LoopState.disconnected)

    def stop(self) -> None:
        """Ask a running loop to finish; the source ends its message stream."""
        self._stopping.set()
        self.source.close()

    def handle_message(self, message: InboundMessage) -> Optional[Reading]:
        self.stats.increment("received")
        if message.topic != self.topic:
            self.stats.increment("ignored")
            logger.debug("Ignoring message for unexpected topic", extra={"topic": message.topic})
            return None

        try:
            reading = decode(message.payload)
        except DecodeError as exc:
            self.stats.increment("decode_failures")
            logger.warning(
                "Dropping malformed payload",
                extra={
                    "topic": message.topic,
                    "reason": exc.reason,
                    "payload_size": len(message.payload),
                },
            )
            return None

        try:
            stored = self.store.insert(reading)
        except StoreUnavailable as exc:
            self.stats.increment("store_failures")
            logger.error(
                "Dropping reading, store unavailable",
                extra={"device_id": reading.device_id, "reason": str(exc.__cause__ or exc)},
            )
            return None
        except Exception as exc:
            # Driver errors outside the DB-API hierarchy (e.g. psycopg2 refusing a
            # NUL in text) surface unwrapped; they concern this reading only.
            self.stats.increment("store_failures")
            logger.exception(
                "Dropping reading, store rejected it",
                extra={"device_id": reading.device_id, "reason": f"{type(exc).__name__}: {exc}"},
            )
            return None

        self.stats.increment("stored")
        logger.debug(
            "Stored reading",
            extra={"device_id": stored.device_id, "reading_id": stored.id},
        )
        return stored

    def _set_state(self, state: LoopState) -> None:
        self._state = state
        logger.info("Subscriber loop state changed", extra={"state": state.value})


class IngestionService:
    """Runs a subscriber loop on a dedicated worker thread."""

    def __init__(self, loop: SubscriberLoop) -> None:
        self.loop = loop
        self.executor = ThreadPoolExecutor(max_workers=1, thread_name_prefix="ingestion")
        self._future: Optional[Future[None]] = None
        self._lock = Lock()

    @property
    def state(self) -> LoopState:
        return self.loop.state

    @property
    def stats(self) -> IngestionStats:
        return self.loop.stats

    @property
    def error(self) -> Optional[BaseException]:
        """The exception that ended the loop, if it ended with one."""
        future = self._future
        if future is None or not future.done() or future.cancelled():
            return None
        return future.exception()

    def start(self) -> None:
        with self._lock:
            if self._future is not None:
                raise RuntimeError("ingestion loop was already started")
            self._future = self.executor.submit(self.loop.run)
        self._future.add_done_callback(self._log_outcome)

    def wait(self, timeout: Optional[float] = None) -> None:
        """Block until the loop ends; re-raises the error that ended it."""
        if self._future is None:
            return
        self._future.result(timeout=timeout)

    def shutdown(self) -> None:
        self.loop.stop()
        self.executor.shutdown(wait=True, cancel_futures=True)

    @staticmethod
    def _log_outcome(future: Future[None]) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is None:
            logger.info("Ingestion loop stopped")
        elif isinstance(exc, TransportError):
            logger.error("Ingestion halted by broker failure; restart the process to resume")
        else:
            logger.error("Ingestion loop crashed", exc_info=exc)


def build_default_ingestion(store: ReadingStore) -> IngestionService:
    """Wire the MQTT source from settings to the given store."""
    settings = get_settings()
    source = MqttMessageSource(
        host=settings.broker_host,
        port=settings.broker_port,
        client_id=settings.client_id,
        keepalive=settings.keepalive,
    )
    return IngestionService(SubscriberLoop(source=source, store=store, topic=settings.topic))
