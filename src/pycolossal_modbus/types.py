"""Core data model: channel types, tag values, channels, devices, calculation channels, snapshots."""

import struct
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Union

DEFAULT_CHANNEL_DESCRIPTION = "Modbus channel. No description."


class ChannelType(str, Enum):
    """Declared channel types; the type fixes how many registers are read and how they decode."""

    INTEGER = "int"
    REAL = "real"
    COIL = "coil"

    def __str__(self) -> str:
        return {
            ChannelType.INTEGER: "INT",
            ChannelType.REAL: "REAL",
            ChannelType.COIL: "COIL",
        }[self]


@dataclass(frozen=True)
class IntegerValue:
    """16-bit unsigned register value."""

    value: int

    def __post_init__(self) -> None:
        if isinstance(self.value, bool) or not isinstance(self.value, int):
            raise TypeError(f"IntegerValue requires int, got {type(self.value).__name__}")
        if not 0 <= self.value <= 0xFFFF:
            raise ValueError(f"IntegerValue out of range 0-65535: {self.value}")

    def __str__(self) -> str:
        return str(self.value)


@dataclass(frozen=True)
class RealValue:
    """IEEE-754 binary32 value, stored as the nearest Python float."""

    value: float

    def __post_init__(self) -> None:
        # Round to binary32 so equal wire patterns give equal values.
        try:
            as_f32 = struct.unpack(">f", struct.pack(">f", float(self.value)))[0]
        except OverflowError:
            raise ValueError(f"RealValue out of binary32 range: {self.value!r}") from None
        object.__setattr__(self, "value", as_f32)

    def __str__(self) -> str:
        return f"{self.value:.2f}"


@dataclass(frozen=True)
class BooleanValue:
    value: bool

    def __post_init__(self) -> None:
        object.__setattr__(self, "value", bool(self.value))

    def __str__(self) -> str:
        return str(self.value).lower()


TagValue = Union[IntegerValue, RealValue, BooleanValue]

_VALUE_CLASS: dict[ChannelType, type] = {
    ChannelType.INTEGER: IntegerValue,
    ChannelType.REAL: RealValue,
    ChannelType.COIL: BooleanValue,
}


def zero_value(channel_type: ChannelType) -> TagValue:
    """Initial value of a freshly configured channel."""
    if channel_type == ChannelType.INTEGER:
        return IntegerValue(0)
    if channel_type == ChannelType.REAL:
        return RealValue(0.0)
    if channel_type == ChannelType.COIL:
        return BooleanValue(False)
    raise ValueError(f"Unknown channel type: {channel_type!r}")


@dataclass(frozen=True)
class ChannelSnapshot:
    id: int
    name: str
    enabled: bool
    address: int
    channel_type: ChannelType
    description: str
    value: TagValue

    def __str__(self) -> str:
        return self.name


@dataclass
class Channel:
    """
    One addressable data point of a device.

    The declared type determines the register count and decoding; the stored value's
    variant always matches it (checked here and on every set_value).
    """

    id: int
    name: str
    address: int
    channel_type: ChannelType
    enabled: bool = True
    description: str = DEFAULT_CHANNEL_DESCRIPTION
    value: TagValue | None = None

    def __post_init__(self) -> None:
        self.channel_type = ChannelType(self.channel_type)
        if not 0 <= self.address <= 0xFFFF:
            raise ValueError(f"address must be 0-65535, got {self.address}")
        if not self.name:
            raise ValueError("channel name cannot be empty")
        if self.value is None:
            self.value = zero_value(self.channel_type)
        else:
            self._check(self.value)

    def _check(self, value: TagValue) -> None:
        expected = _VALUE_CLASS[self.channel_type]
        if not isinstance(value, expected):
            raise TypeError(
                f"channel {self.name} is {self.channel_type}, cannot hold {type(value).__name__}"
            )

    def set_value(self, value: TagValue) -> None:
        self._check(value)
        self.value = value

    def snapshot(self) -> ChannelSnapshot:
        return ChannelSnapshot(
            id=self.id,
            name=self.name,
            enabled=self.enabled,
            address=self.address,
            channel_type=self.channel_type,
            description=self.description,
            value=self.value,
        )

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class TcpConfig:
    """Modbus TCP connection parameters."""

    host: str
    port: int = 502
    unit_id: int = 1

    def __str__(self) -> str:
        return "Modbus TCP"

    @property
    def address(self) -> str:
        if ":" in self.host:
            return f"[{self.host}]:{self.port}"
        return f"{self.host}:{self.port}"


@dataclass(frozen=True)
class SerialConfig:
    """Modbus serial (RTU) parameters; declared but not implemented by the client."""

    port: str = ""
    baudrate: int = 9600
    unit_id: int = 1

    def __str__(self) -> str:
        return "Modbus Serial"

    @property
    def address(self) -> str:
        return self.port or "serial"


DeviceConfig = Union[TcpConfig, SerialConfig]


@dataclass(frozen=True)
class DeviceSnapshot:
    """Immutable copy of a device's state after one successful poll."""

    id: int
    code: str
    name: str
    config: DeviceConfig
    channels: tuple[ChannelSnapshot, ...]
    timestamp: datetime

    def values(self) -> dict[str, TagValue]:
        return {ch.name: ch.value for ch in self.channels}


@dataclass
class Device:
    """A Modbus device; owns its channels exclusively. Channel order is the poll order."""

    id: int
    code: str
    name: str
    config: DeviceConfig
    channels: list[Channel] = field(default_factory=list)

    def __post_init__(self) -> None:
        seen: set[str] = set()
        for ch in self.channels:
            if ch.name in seen:
                raise ValueError(f"Duplicate channel name in device {self.name}: {ch.name}")
            seen.add(ch.name)

    def tag_values(self) -> dict[str, TagValue]:
        return {ch.name: ch.value for ch in self.channels}

    def snapshot(self) -> DeviceSnapshot:
        return DeviceSnapshot(
            id=self.id,
            code=self.code,
            name=self.name,
            config=self.config,
            channels=tuple(ch.snapshot() for ch in self.channels),
            timestamp=datetime.now(timezone.utc),
        )

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class CalculationSnapshot:
    id: int
    name: str
    enabled: bool
    expression: str
    value: float
    error: str | None


@dataclass
class CalculationChannel:
    """
    A derived value computed from an expression over device tags.

    Mutated only by the supervisor's evaluation step; a failed evaluation records
    the error and keeps the last good value.
    """

    id: int
    name: str
    expression: str
    enabled: bool = True
    value: float = 0.0
    error: str | None = None

    def snapshot(self) -> CalculationSnapshot:
        return CalculationSnapshot(
            id=self.id,
            name=self.name,
            enabled=self.enabled,
            expression=self.expression,
            value=self.value,
            error=self.error,
        )
