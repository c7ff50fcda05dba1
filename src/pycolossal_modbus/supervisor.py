"""
Polling supervisor: connect / poll / reconnect state machine for one worker.

    DISCONNECTED -> CONNECTING -> CONNECTED -> DISCONNECTED (no device left connected)

There is no terminal state; the loop runs until its shutdown event is set.
The supervisor is CONNECTED while at least one device is. Failures are isolated per
device: connected devices keep being polled while a failed one waits out its own
backoff (fixed, default 5 s, no growth and no retry cap). A device whose poll fails
is closed and retried on the next cycle.
"""

import logging
import threading
import time
from enum import Enum
from typing import Callable

from .calculation import collect_tags, evaluate_all
from .client import ModbusDeviceClient
from .errors import ConnectError, PollError
from .messages import (
    BoundedChannel,
    CalculationResults,
    ConfigUpdate,
    DataMessage,
    Error,
    Healthy,
    WorkerStatus,
)
from .types import CalculationChannel, Device

logger = logging.getLogger(__name__)

DEFAULT_POLL_INTERVAL_S = 1.0
DEFAULT_BACKOFF_S = 5.0

ClientFactory = Callable[[Device], ModbusDeviceClient]


class SupervisorState(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class PollingSupervisor:
    """
    Owns the devices, their clients and the calculation channels of one worker.

    All device and calculation state is mutated only from step(); the consumer sees
    snapshots delivered through the outbound channels.
    """

    def __init__(
        self,
        devices: list[Device],
        calculation_channels: list[CalculationChannel],
        *,
        status: BoundedChannel[WorkerStatus],
        data: BoundedChannel[DataMessage],
        updates: BoundedChannel[ConfigUpdate],
        poll_interval_s: float = DEFAULT_POLL_INTERVAL_S,
        backoff_s: float = DEFAULT_BACKOFF_S,
        client_factory: ClientFactory | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._devices = devices
        self._calculations = calculation_channels
        self._status = status
        self._data = data
        self._updates = updates
        self._poll_interval_s = poll_interval_s
        self._backoff_s = backoff_s
        factory = client_factory or (lambda device: ModbusDeviceClient(device))
        self._clients: dict[int, ModbusDeviceClient] = {d.id: factory(d) for d in devices}
        # device id -> clock time of the next connection attempt; absent means due now
        self._retry_at: dict[int, float] = {}
        self._clock = clock
        self._state = SupervisorState.DISCONNECTED
        self.cycles = 0

    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def devices(self) -> list[Device]:
        return self._devices

    @property
    def calculation_channels(self) -> list[CalculationChannel]:
        return self._calculations

    @property
    def dropped(self) -> int:
        return self._status.dropped + self._data.dropped

    def _emit(self, status: WorkerStatus) -> None:
        if isinstance(status, Error):
            logger.warning("%s", status.message)
        else:
            logger.info("%s", status.message)
        self._status.send(status)

    def _set_state(self, state: SupervisorState) -> None:
        if state != self._state:
            logger.debug("Supervisor %s -> %s", self._state.value, state.value)
            self._state = state

    def _any_connected(self) -> bool:
        return any(client.is_connected for client in self._clients.values())

    def _connect_device(self, device: Device) -> None:
        client = self._clients[device.id]
        try:
            client.connect()
        except ConnectError as e:
            self._retry_at[device.id] = self._clock() + self._backoff_s
            self._emit(Error(f"connection error: {device.name}: {e}"))
            return
        self._retry_at.pop(device.id, None)
        self._emit(Healthy(f"connected to {device.name} ({device.config.address})"))

    def _connect_all(self) -> float:
        # Nothing is connected, and the caller has already waited out the backoff.
        self._set_state(SupervisorState.CONNECTING)
        for device in self._devices:
            if not self._clients[device.id].is_connected:
                self._connect_device(device)
        if self._devices and not self._any_connected():
            self._set_state(SupervisorState.DISCONNECTED)
            return self._backoff_s
        self._set_state(SupervisorState.CONNECTED)
        return 0.0

    def _retry_due(self) -> None:
        now = self._clock()
        for device in self._devices:
            if self._clients[device.id].is_connected:
                continue
            if self._retry_at.get(device.id, now) <= now:
                self._connect_device(device)

    def _apply_update(self, update: ConfigUpdate) -> bool:
        client = self._clients.get(update.device_id)
        if client is None:
            self._emit(Error(f"config update: unknown device id {update.device_id}"))
            return False
        client.reconfigure(update.config)
        self._retry_at.pop(update.device_id, None)
        self._emit(Healthy("config update"))
        return True

    def _poll_all(self) -> bool:
        """Poll every connected device; returns False if any poll failed."""
        ok = True
        for device in self._devices:
            client = self._clients[device.id]
            if not client.is_connected:
                continue
            try:
                client.poll()
            except PollError as e:
                ok = False
                client.close()
                self._retry_at[device.id] = self._clock()
                self._emit(Error(f"poll error: {device.name}: {e}"))
                continue
            self._emit(Healthy(f"poll ok: {device.name}"))
            self._data.send(device.snapshot())
        return ok

    def _evaluate(self) -> None:
        tags = collect_tags(self._devices)
        for channel, err in evaluate_all(self._calculations, tags):
            self._emit(Error(f"calculation error: {channel.name}: {err}"))
        ordered = sorted(self._calculations, key=lambda c: c.id)
        self._data.send(CalculationResults(tuple(ch.snapshot() for ch in ordered)))

    def step(self) -> float:
        """Run one state-machine transition; returns the delay before the next step."""
        if self._state != SupervisorState.CONNECTED:
            return self._connect_all()

        self.cycles += 1
        update = self._updates.try_receive()
        if update is not None and self._apply_update(update) and not self._any_connected():
            self._set_state(SupervisorState.DISCONNECTED)
            return 0.0

        self._retry_due()
        polled = self._poll_all()

        if self._devices and not self._any_connected():
            self._set_state(SupervisorState.DISCONNECTED)
            return self._backoff_s if polled else 0.0

        self._evaluate()
        return self._poll_interval_s

    def run(self, stop: threading.Event) -> None:
        """Loop until ``stop`` is set; the event is checked once per iteration."""
        logger.info("Supervisor started with %d device(s)", len(self._devices))
        try:
            while not stop.is_set():
                try:
                    delay = self.step()
                except Exception as e:
                    logger.exception("Unexpected error in poll loop")
                    self._emit(Error(f"worker error: {e}"))
                    self.close()
                    self._set_state(SupervisorState.DISCONNECTED)
                    delay = self._backoff_s
                if delay > 0:
                    stop.wait(delay)
        finally:
            self.close()
            logger.info("Supervisor stopped after %d cycle(s)", self.cycles)

    def close(self) -> None:
        for client in self._clients.values():
            client.close()
