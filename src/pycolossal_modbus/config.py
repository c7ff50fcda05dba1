"""Worker configuration: JSON loading via importlib.resources or a path, validation, factories."""

import json
import logging
from dataclasses import dataclass, field
from importlib import resources
from pathlib import Path
from typing import Any

from .errors import ConfigError
from .messages import DEFAULT_CAPACITY
from .normalize import TAG_PREFIX, is_tag_name
from .supervisor import DEFAULT_BACKOFF_S, DEFAULT_POLL_INTERVAL_S
from .types import (
    DEFAULT_CHANNEL_DESCRIPTION,
    CalculationChannel,
    Channel,
    ChannelType,
    Device,
    DeviceConfig,
    RealValue,
    SerialConfig,
    TcpConfig,
)

logger = logging.getLogger(__name__)

_DEFAULT_RESOURCE = "pycolossal_modbus.data"
_DEFAULT_NAME = "default_config.json"


@dataclass
class WorkerConfig:
    devices: list[Device]
    calculation_channels: list[CalculationChannel] = field(default_factory=list)
    poll_interval_s: float = DEFAULT_POLL_INTERVAL_S
    backoff_s: float = DEFAULT_BACKOFF_S
    timeout_s: float = 3.0
    retries: int = 1
    channel_capacity: int = DEFAULT_CAPACITY

    def validate(self) -> None:
        """Raise ConfigError for anything that would break the poll loop."""
        if self.poll_interval_s <= 0:
            raise ConfigError(f"poll_interval_s must be positive, got {self.poll_interval_s}")
        if self.backoff_s <= 0:
            raise ConfigError(f"backoff_s must be positive, got {self.backoff_s}")
        if self.timeout_s <= 0:
            raise ConfigError(f"timeout_s must be positive, got {self.timeout_s}")
        if self.retries < 0:
            raise ConfigError(f"retries must be >= 0, got {self.retries}")
        if self.channel_capacity < 0:
            raise ConfigError(f"channel_capacity must be >= 0, got {self.channel_capacity}")

        device_ids: set[int] = set()
        names: dict[str, str] = {}
        for device in self.devices:
            if device.id in device_ids:
                raise ConfigError(f"Duplicate device id: {device.id}")
            device_ids.add(device.id)
            for ch in device.channels:
                if ch.name in names:
                    raise ConfigError(
                        f"Channel name {ch.name!r} used by both {names[ch.name]} and {device.name}"
                    )
                names[ch.name] = device.name
                if not is_tag_name(ch.name):
                    logger.warning(
                        "Channel %s.%s does not match %s<digits> and cannot be used in expressions",
                        device.name,
                        ch.name,
                        TAG_PREFIX,
                    )

        calc_ids: set[int] = set()
        for calc in self.calculation_channels:
            if calc.id in calc_ids:
                raise ConfigError(f"Duplicate calculation channel id: {calc.id}")
            calc_ids.add(calc.id)


def _require(raw: dict[str, Any], key: str, where: str) -> Any:
    try:
        return raw[key]
    except KeyError:
        raise ConfigError(f"{where}: missing {key!r}") from None


def _enabled(raw: dict[str, Any], where: str) -> bool:
    value = raw.get("enabled", True)
    if not isinstance(value, bool):
        raise ConfigError(f"{where}: 'enabled' must be true or false")
    return value


def _parse_connection(raw: dict[str, Any], where: str) -> DeviceConfig:
    transport = str(raw.get("transport", "tcp")).lower()
    if transport == "tcp":
        return TcpConfig(
            host=str(_require(raw, "host", where)),
            port=int(raw.get("port", 502)),
            unit_id=int(raw.get("unit_id", 1)),
        )
    if transport == "serial":
        return SerialConfig(
            port=str(raw.get("port", "")),
            baudrate=int(raw.get("baudrate", 9600)),
            unit_id=int(raw.get("unit_id", 1)),
        )
    raise ConfigError(f"{where}: unknown transport {transport!r}")


def _parse_channel(raw: dict[str, Any], where: str) -> Channel:
    name = _require(raw, "name", where)
    type_str = _require(raw, "type", f"{where} {name}")
    try:
        channel_type = ChannelType(str(type_str).lower())
    except ValueError:
        raise ConfigError(f"{where}: unknown channel type {type_str!r} for {name!r}") from None
    try:
        return Channel(
            id=int(_require(raw, "id", f"{where} {name}")),
            name=str(name),
            address=int(_require(raw, "address", f"{where} {name}")),
            channel_type=channel_type,
            enabled=_enabled(raw, f"{where} {name}"),
            description=str(raw.get("description", DEFAULT_CHANNEL_DESCRIPTION)),
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{where} {name}: {e}") from e


def _parse_device(raw: dict[str, Any]) -> Device:
    name = str(_require(raw, "name", "device"))
    where = f"device {name}"
    connection = _require(raw, "connection", where)
    if not isinstance(connection, dict):
        raise ConfigError(f"{where}: 'connection' must be an object")
    channels = [_parse_channel(c, where) for c in raw.get("channels", [])]
    try:
        return Device(
            id=int(_require(raw, "id", where)),
            code=str(raw.get("code", TAG_PREFIX)),
            name=name,
            config=_parse_connection(connection, where),
            channels=channels,
        )
    except (TypeError, ValueError) as e:
        raise ConfigError(f"{where}: {e}") from e


def _parse_calculation(raw: dict[str, Any]) -> CalculationChannel:
    name = str(_require(raw, "name", "calculation"))
    return CalculationChannel(
        id=int(_require(raw, "id", f"calculation {name}")),
        name=name,
        expression=str(_require(raw, "expression", f"calculation {name}")),
        enabled=_enabled(raw, f"calculation {name}"),
    )


def parse_config(data: dict[str, Any]) -> WorkerConfig:
    """Build and validate a WorkerConfig from decoded JSON."""
    if not isinstance(data, dict):
        raise ConfigError("Configuration root must be an object")
    try:
        config = WorkerConfig(
            devices=[_parse_device(d) for d in data.get("devices", [])],
            calculation_channels=[_parse_calculation(c) for c in data.get("calculations", [])],
            poll_interval_s=float(data.get("poll_interval_s", DEFAULT_POLL_INTERVAL_S)),
            backoff_s=float(data.get("backoff_s", DEFAULT_BACKOFF_S)),
            timeout_s=float(data.get("timeout_s", 3.0)),
            retries=int(data.get("retries", 1)),
            channel_capacity=int(data.get("channel_capacity", DEFAULT_CAPACITY)),
        )
    except (TypeError, ValueError, AttributeError) as e:
        raise ConfigError(str(e)) from e
    config.validate()
    logger.debug(
        "Config loaded: %d device(s), %d calculation(s)",
        len(config.devices),
        len(config.calculation_channels),
    )
    return config


def load_config(path: str | Path) -> WorkerConfig:
    """Load a worker configuration from a JSON file."""
    p = Path(path)
    try:
        with p.open("r", encoding="utf-8") as f:
            data = json.load(f)
    except FileNotFoundError:
        raise ConfigError("Config file not found", path=str(p)) from None
    except json.JSONDecodeError as e:
        raise ConfigError(f"Invalid JSON: {e}", path=str(p)) from e
    try:
        return parse_config(data)
    except ConfigError as e:
        raise ConfigError(str(e), path=str(p)) from e


def default_config() -> WorkerConfig:
    """Load the packaged default configuration (one simulated TCP device)."""
    with resources.files(_DEFAULT_RESOURCE).joinpath(_DEFAULT_NAME).open("r", encoding="utf-8") as f:
        return parse_config(json.load(f))


def init_tcp_device(
    host: str,
    port: int,
    name: str,
    num_channels: int,
    *,
    device_id: int = 0,
) -> Device:
    """A TCP device with REAL channels MB1..MBn at addresses 2, 4, ..., 2n."""
    channels = [
        Channel(
            id=i,
            name=f"{TAG_PREFIX}{i}",
            address=i * 2,
            channel_type=ChannelType.REAL,
            value=RealValue(3.0),
        )
        for i in range(1, num_channels + 1)
    ]
    return Device(
        id=device_id,
        code=TAG_PREFIX,
        name=name,
        config=TcpConfig(host=host, port=port),
        channels=channels,
    )


def init_calculation_channels(n: int) -> list[CalculationChannel]:
    """Calculation channels CH1..CHn, each doubling the matching MBi tag."""
    return [
        CalculationChannel(
            id=i,
            name=f"CH{i}",
            expression=f"{TAG_PREFIX}{i} + {TAG_PREFIX}{i} + 0.0",
        )
        for i in range(1, n + 1)
    ]
