"""Shared fixtures: a scripted stand-in for ModbusDeviceClient."""

from collections import deque
from typing import Any, Callable

import pytest

from pycolossal_modbus.errors import ModbusIOError, PollError, TransportError
from pycolossal_modbus.types import Device, DeviceConfig, RealValue


class FakeDeviceClient:
    """
    Scripted device client.

    ``connect_results`` and ``poll_results`` are consumed in order: True succeeds, False
    fails. When a script runs out the last behaviour is success. A successful poll sets
    every enabled channel to ``reading`` (a RealValue for REAL channels).
    """

    def __init__(self, device: Device, connect_results: list[bool] | None = None, poll_results: list[bool] | None = None) -> None:
        self.device = device
        self.connect_results = deque(connect_results or [])
        self.poll_results = deque(poll_results or [])
        self.reading = 3.0
        self.connected = False
        self.connect_calls = 0
        self.poll_calls = 0
        self.close_calls = 0
        self.configs: list[DeviceConfig] = []

    @property
    def is_connected(self) -> bool:
        return self.connected

    def connect(self) -> None:
        self.connect_calls += 1
        if self.connected:
            return
        if self.connect_results and not self.connect_results.popleft():
            raise TransportError(f"Failed to connect to {self.device.config.address}")
        self.connected = True

    def poll(self) -> list:
        self.poll_calls += 1
        if not self.connected:
            raise PollError("*", ModbusIOError("not connected"))
        if self.poll_results and not self.poll_results.popleft():
            raise PollError(self.device.channels[0].name, ModbusIOError("read timeout"))
        for ch in self.device.channels:
            if ch.enabled:
                ch.set_value(RealValue(self.reading))
        return self.device.channels

    def reconfigure(self, config: DeviceConfig) -> None:
        self.close()
        self.configs.append(config)
        self.device.config = config

    def close(self) -> None:
        self.close_calls += 1
        self.connected = False


@pytest.fixture
def fake_clients() -> dict[int, FakeDeviceClient]:
    return {}


@pytest.fixture
def fake_factory(fake_clients: dict[int, FakeDeviceClient]) -> Callable[..., Any]:
    """Factory building FakeDeviceClients; scripts are looked up by device id."""
    scripts: dict[int, dict[str, list[bool]]] = {}

    def factory(device: Device) -> FakeDeviceClient:
        client = FakeDeviceClient(device, **scripts.get(device.id, {}))
        fake_clients[device.id] = client
        return client

    factory.scripts = scripts  # type: ignore[attr-defined]
    return factory
