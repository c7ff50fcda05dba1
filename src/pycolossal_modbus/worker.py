"""Worker startup: run one PollingSupervisor on a background thread with a shutdown signal."""

import logging
import threading
from typing import Any

from .client import ModbusDeviceClient
from .config import WorkerConfig
from .messages import BoundedChannel, ConfigUpdate, DataMessage, WorkerStatus
from .supervisor import ClientFactory, PollingSupervisor
from .types import Device

logger = logging.getLogger(__name__)


class WorkerHandle:
    """
    Handle returned by start(). Owns the message channels and the shutdown event.

    The consumer reads ``status`` and ``data`` and pushes ConfigUpdate messages with
    push_config(); nothing else reaches the supervisor's state.
    """

    def __init__(
        self,
        supervisor: PollingSupervisor,
        thread: threading.Thread,
        stop_event: threading.Event,
        status: BoundedChannel[WorkerStatus],
        data: BoundedChannel[DataMessage],
        updates: BoundedChannel[ConfigUpdate],
    ) -> None:
        self._supervisor = supervisor
        self._thread = thread
        self._stop_event = stop_event
        self.status = status
        self.data = data
        self.updates = updates

    @property
    def is_alive(self) -> bool:
        return self._thread.is_alive()

    @property
    def cycles(self) -> int:
        return self._supervisor.cycles

    @property
    def dropped(self) -> int:
        return self._supervisor.dropped

    def push_config(self, update: ConfigUpdate) -> bool:
        """Queue new connection parameters; applied at most one per poll cycle."""
        return self.updates.send(update)

    def stop(self, timeout: float | None = 10.0) -> bool:
        """Signal shutdown and wait for the thread; returns True if it exited."""
        self._stop_event.set()
        self._thread.join(timeout)
        alive = self._thread.is_alive()
        if alive:
            logger.warning("Worker did not stop within %ss", timeout)
        else:
            self.status.close()
            self.data.close()
        return not alive

    def __enter__(self) -> "WorkerHandle":
        return self

    def __exit__(self, *args: Any) -> None:
        self.stop()


def start(config: WorkerConfig, *, client_factory: ClientFactory | None = None) -> WorkerHandle:
    """
    Validate the configuration and start the polling worker. Call once at startup.

    Raises ConfigError before any thread is started if the configuration is malformed.
    """
    config.validate()

    def _default_factory(device: Device) -> ModbusDeviceClient:
        return ModbusDeviceClient(device, timeout=config.timeout_s, retries=config.retries)

    status: BoundedChannel[WorkerStatus] = BoundedChannel(config.channel_capacity, name="status")
    data: BoundedChannel[DataMessage] = BoundedChannel(config.channel_capacity, name="data")
    updates: BoundedChannel[ConfigUpdate] = BoundedChannel(config.channel_capacity, name="updates")

    supervisor = PollingSupervisor(
        config.devices,
        config.calculation_channels,
        status=status,
        data=data,
        updates=updates,
        poll_interval_s=config.poll_interval_s,
        backoff_s=config.backoff_s,
        client_factory=client_factory or _default_factory,
    )
    stop_event = threading.Event()
    thread = threading.Thread(target=supervisor.run, args=(stop_event,), name="modbus-worker", daemon=True)
    thread.start()
    logger.info("Worker started")
    return WorkerHandle(supervisor, thread, stop_event, status, data, updates)
