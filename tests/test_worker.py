"""Tests for worker startup, shutdown and config push."""

import time

import pytest

from pycolossal_modbus import start
from pycolossal_modbus.config import WorkerConfig, init_calculation_channels, init_tcp_device
from pycolossal_modbus.errors import ConfigError
from pycolossal_modbus.messages import ConfigUpdate, Healthy
from pycolossal_modbus.types import DeviceSnapshot, TcpConfig


def make_config(**kwargs) -> WorkerConfig:
    return WorkerConfig(
        devices=[init_tcp_device("127.0.0.1", 5502, "Device_1", 2)],
        calculation_channels=init_calculation_channels(2),
        poll_interval_s=kwargs.pop("poll_interval_s", 0.01),
        backoff_s=kwargs.pop("backoff_s", 0.01),
        **kwargs,
    )


def wait_for(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return False


def test_start_and_stop(fake_factory, fake_clients) -> None:
    handle = start(make_config(), client_factory=fake_factory)
    try:
        assert handle.is_alive
        message = handle.data.receive(timeout=5.0)
        assert isinstance(message, DeviceSnapshot)
    finally:
        assert handle.stop(timeout=5.0)
    assert not handle.is_alive
    assert handle.status.closed
    assert not fake_clients[0].connected


def test_invalid_config_fails_before_thread_starts(fake_factory, fake_clients) -> None:
    with pytest.raises(ConfigError):
        start(make_config(poll_interval_s=0), client_factory=fake_factory)
    assert fake_clients == {}


def test_push_config_reaches_supervisor(fake_factory, fake_clients) -> None:
    with start(make_config(poll_interval_s=0.05), client_factory=fake_factory) as handle:
        assert wait_for(lambda: handle.cycles > 0)
        new_config = TcpConfig(host="10.1.1.1", port=1502)
        assert handle.push_config(ConfigUpdate(device_id=0, config=new_config))
        assert wait_for(lambda: fake_clients[0].configs == [new_config])
        assert wait_for(lambda: Healthy("config update") in handle.status.drain())


def test_zero_capacity_worker_stays_alive(fake_factory) -> None:
    with start(make_config(poll_interval_s=0.001, channel_capacity=0), client_factory=fake_factory) as handle:
        assert wait_for(lambda: handle.cycles >= 50)
        assert handle.is_alive
        assert handle.dropped > 0
