"""
Messaging protocol between the polling worker and its consumer.

Worker -> consumer: health status (Healthy | Error) and data (DeviceSnapshot,
CalculationResults). Consumer -> worker: ConfigUpdate. Every direction uses a
BoundedChannel whose send() never blocks and never raises.
"""

import logging
import queue
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Generic, TypeVar, Union

from .types import CalculationSnapshot, DeviceConfig, DeviceSnapshot

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 16

T = TypeVar("T")


@dataclass(frozen=True)
class Healthy:
    message: str

    def __str__(self) -> str:
        return f"OK: {self.message}"


@dataclass(frozen=True)
class Error:
    message: str

    def __str__(self) -> str:
        return f"ERROR: {self.message}"


WorkerStatus = Union[Healthy, Error]


@dataclass(frozen=True)
class CalculationResults:
    """Calculation channel states after one evaluation pass."""

    channels: tuple[CalculationSnapshot, ...]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def values(self) -> dict[str, float]:
        return {ch.name: ch.value for ch in self.channels}


DataMessage = Union[DeviceSnapshot, CalculationResults]


@dataclass(frozen=True)
class ConfigUpdate:
    """New connection parameters for one device."""

    device_id: int
    config: DeviceConfig


class BoundedChannel(Generic[T]):
    """
    Bounded FIFO with a drop-oldest overflow policy.

    When full, send() discards the oldest queued message to make room. With capacity 0,
    or after close(), the new message itself is discarded. Discards are counted in
    ``dropped``; the first one is logged as a warning, the rest at debug level.
    """

    def __init__(self, capacity: int = DEFAULT_CAPACITY, name: str = "channel") -> None:
        if capacity < 0:
            raise ValueError(f"capacity must be >= 0, got {capacity}")
        self._capacity = capacity
        self._name = name
        # maxsize=0 would mean unbounded for queue.Queue; capacity 0 never enqueues.
        self._queue: queue.Queue[T] = queue.Queue(maxsize=max(capacity, 1))
        self._lock = threading.Lock()
        self._closed = False
        self.sent = 0
        self.dropped = 0

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def name(self) -> str:
        return self._name

    @property
    def closed(self) -> bool:
        return self._closed

    def _record_drop(self, reason: str) -> None:
        self.dropped += 1
        if self.dropped == 1:
            logger.warning("%s: dropping message (%s)", self._name, reason)
        else:
            logger.debug("%s: dropped %d messages (%s)", self._name, self.dropped, reason)

    def send(self, message: T) -> bool:
        """Deliver a message; returns False if it was discarded."""
        with self._lock:
            if self._closed:
                self._record_drop("closed")
                return False
            if self._capacity == 0:
                self._record_drop("zero capacity")
                return False
            while True:
                try:
                    self._queue.put_nowait(message)
                    break
                except queue.Full:
                    try:
                        self._queue.get_nowait()
                    except queue.Empty:
                        continue
                    self._record_drop("full")
            self.sent += 1
            return True

    def try_receive(self) -> T | None:
        """Non-blocking receive; None if nothing is pending."""
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None

    def receive(self, timeout: float | None = None) -> T | None:
        """Blocking receive with optional timeout; None on timeout."""
        try:
            return self._queue.get(timeout=timeout)
        except queue.Empty:
            return None

    def drain(self) -> list[T]:
        """Remove and return everything currently queued."""
        out: list[T] = []
        while True:
            item = self.try_receive()
            if item is None:
                return out
            out.append(item)

    def close(self) -> None:
        self._closed = True

    def __len__(self) -> int:
        return self._queue.qsize()
