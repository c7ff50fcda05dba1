"""Protocol client: Modbus TCP connect and channel polling over pymodbus (FC3 only)."""

import ipaddress
import logging
import re
from typing import Any

from pymodbus.client import ModbusTcpClient
from pymodbus.exceptions import ModbusException as PymodbusException

from .codec import decode, register_count
from .errors import (
    AddressParseError,
    ModbusIOError,
    PollError,
    TransportError,
    UnsupportedTransportError,
)
from .types import Channel, Device, DeviceConfig, SerialConfig, TcpConfig

logger = logging.getLogger(__name__)

_HOSTNAME_LABEL = re.compile(r"^(?!-)[A-Za-z0-9-]{1,63}(?<!-)$")


def _validate_host(host: str) -> str:
    host = host.strip()
    if not host:
        raise AddressParseError("Host cannot be empty", host=host)
    try:
        return str(ipaddress.ip_address(host.strip("[]")))
    except ValueError:
        pass
    if len(host) > 253 or not all(_HOSTNAME_LABEL.match(label) for label in host.rstrip(".").split(".")):
        raise AddressParseError(f"Malformed host: {host!r}", host=host)
    # all-numeric top label: a mistyped IPv4 literal, not a hostname
    if host.rstrip(".").rsplit(".", 1)[-1].isdigit():
        raise AddressParseError(f"Malformed IP address: {host!r}", host=host)
    return host


def _validate_port(port: Any) -> int:
    if isinstance(port, bool) or not isinstance(port, int):
        raise AddressParseError(f"Port must be an integer, got {port!r}", port=None)
    if not 1 <= port <= 65535:
        raise AddressParseError(f"Port out of range 1-65535: {port}", port=port)
    return port


class ModbusConnection:
    """An open Modbus TCP session to one unit."""

    def __init__(self, transport: ModbusTcpClient, config: TcpConfig) -> None:
        self._transport = transport
        self._config = config

    @property
    def config(self) -> TcpConfig:
        return self._config

    @property
    def connected(self) -> bool:
        return bool(getattr(self._transport, "connected", False))

    def read_holding_registers(self, address: int, count: int) -> list[int]:
        """FC3 read; raises ModbusIOError on error responses, exceptions and short responses."""
        try:
            rr = self._transport.read_holding_registers(address, count=count, device_id=self._config.unit_id)
        except PymodbusException as e:
            raise ModbusIOError(str(e), address=address, count=count, cause=e) from e
        except OSError as e:
            raise ModbusIOError(f"Socket error: {e}", address=address, count=count, cause=e) from e
        if rr.isError():
            raise ModbusIOError(
                str(rr),
                address=address,
                count=count,
                cause=getattr(rr, "exception", None),
            )
        registers = getattr(rr, "registers", None)
        if not registers or len(registers) < count:
            raise ModbusIOError("Short register response", address=address, count=count)
        return [int(r) for r in registers[:count]]

    def close(self) -> None:
        try:
            self._transport.close()
        except Exception as e:
            logger.warning("Error closing Modbus client: %s", e)


def connect(config: DeviceConfig, *, timeout: float = 3.0, retries: int = 1) -> ModbusConnection:
    """
    Open a connection for a device configuration.

    Raises AddressParseError for a malformed host/port, TransportError when the session
    is refused or times out, UnsupportedTransportError for serial configurations.
    """
    if isinstance(config, TcpConfig):
        host = _validate_host(config.host)
        port = _validate_port(config.port)
        transport = ModbusTcpClient(host=host, port=port, timeout=timeout, retries=retries)
        try:
            ok = transport.connect()
        except (PymodbusException, OSError) as e:
            transport.close()
            raise TransportError(f"Failed to connect to {config.address}: {e}", host=host, port=port, cause=e) from e
        if not ok:
            transport.close()
            raise TransportError(f"Failed to connect to {config.address}", host=host, port=port)
        logger.info("Connected to %s (unit %d)", config.address, config.unit_id)
        return ModbusConnection(transport, config)
    if isinstance(config, SerialConfig):
        raise UnsupportedTransportError(f"{config} is not implemented")
    raise UnsupportedTransportError(f"Unknown transport: {type(config).__name__}")


def poll(connection: ModbusConnection, channels: list[Channel]) -> list[Channel]:
    """
    Read every enabled channel in order and write the decoded value back onto it.

    The first failing read aborts the rest of the cycle with PollError; values already
    written for earlier channels are kept. Disabled channels are never read.
    """
    for channel in channels:
        if not channel.enabled:
            continue
        count = register_count(channel.channel_type)
        try:
            registers = connection.read_holding_registers(channel.address, count)
            value = decode(channel.channel_type, registers)
        except (ModbusIOError, ValueError) as e:
            raise PollError(channel.name, e) from e
        channel.set_value(value)
        logger.debug("Read %s @%d = %s", channel.name, channel.address, value)
    return channels


class ModbusDeviceClient:
    """
    Owns one device and its connection.

    connect() and poll() wrap the module functions; reconfigure() swaps the connection
    parameters and drops the current session so the next connect() uses them.
    """

    def __init__(self, device: Device, timeout: float = 3.0, retries: int = 1) -> None:
        self._device = device
        self._timeout = timeout
        self._retries = retries
        self._connection: ModbusConnection | None = None

    @property
    def device(self) -> Device:
        return self._device

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    def connect(self) -> None:
        """Establish the session if not already open."""
        if self._connection is None:
            self._connection = connect(self._device.config, timeout=self._timeout, retries=self._retries)

    def poll(self) -> list[Channel]:
        if self._connection is None:
            raise PollError("*", ModbusIOError(f"Not connected to {self._device.config.address}"))
        return poll(self._connection, self._device.channels)

    def reconfigure(self, config: DeviceConfig) -> None:
        self.close()
        self._device.config = config

    def close(self) -> None:
        if self._connection is not None:
            self._connection.close()
            self._connection = None

    def __enter__(self) -> "ModbusDeviceClient":
        self.connect()
        return self

    def __exit__(self, *args: Any) -> None:
        self.close()
