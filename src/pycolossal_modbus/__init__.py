"""pycolossal-modbus: Modbus TCP polling worker with tag decoding and calculation channels."""

__version__ = "0.1.0"

from .calculation import evaluate_all, evaluate_channel, evaluate_expression
from .client import ModbusConnection, ModbusDeviceClient, connect, poll
from .codec import decode_coil, decode_integer, decode_real, encode_real
from .config import WorkerConfig, default_config, load_config, parse_config
from .errors import (
    AddressParseError,
    CalculationError,
    ConfigError,
    ConnectError,
    EvaluationError,
    ModbusIOError,
    PollError,
    PyColossalError,
    TransportError,
    UnknownTagError,
    UnsupportedOperandError,
    UnsupportedTransportError,
)
from .messages import BoundedChannel, CalculationResults, ConfigUpdate, Error, Healthy
from .normalize import find_references, is_tag_name
from .supervisor import PollingSupervisor, SupervisorState
from .types import (
    BooleanValue,
    CalculationChannel,
    Channel,
    ChannelType,
    Device,
    DeviceSnapshot,
    IntegerValue,
    RealValue,
    SerialConfig,
    TcpConfig,
)
from .worker import WorkerHandle, start

__all__ = [
    "__version__",
    "evaluate_all",
    "evaluate_channel",
    "evaluate_expression",
    "ModbusConnection",
    "ModbusDeviceClient",
    "connect",
    "poll",
    "decode_coil",
    "decode_integer",
    "decode_real",
    "encode_real",
    "WorkerConfig",
    "default_config",
    "load_config",
    "parse_config",
    "AddressParseError",
    "CalculationError",
    "ConfigError",
    "ConnectError",
    "EvaluationError",
    "ModbusIOError",
    "PollError",
    "PyColossalError",
    "TransportError",
    "UnknownTagError",
    "UnsupportedOperandError",
    "UnsupportedTransportError",
    "BoundedChannel",
    "CalculationResults",
    "ConfigUpdate",
    "Error",
    "Healthy",
    "find_references",
    "is_tag_name",
    "PollingSupervisor",
    "SupervisorState",
    "BooleanValue",
    "CalculationChannel",
    "Channel",
    "ChannelType",
    "Device",
    "DeviceSnapshot",
    "IntegerValue",
    "RealValue",
    "SerialConfig",
    "TcpConfig",
    "WorkerHandle",
    "start",
]
