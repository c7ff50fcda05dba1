"""Exceptions for pycolossal-modbus: configuration, connection, poll and calculation errors."""


class PyColossalError(Exception):
    """Base exception for pycolossal-modbus."""

    pass


class ConfigError(PyColossalError):
    """Raised when a static worker configuration is malformed (fatal at startup)."""

    def __init__(self, message: str, *, path: str | None = None) -> None:
        self.path = path
        super().__init__(f"{path}: {message}" if path else message)


class ConnectError(PyColossalError):
    """Raised when a device connection cannot be established."""

    def __init__(self, message: str, *, host: str | None = None, port: int | None = None) -> None:
        self.host = host
        self.port = port
        super().__init__(message)


class AddressParseError(ConnectError):
    """Raised when host/port do not form a valid socket address."""


class TransportError(ConnectError):
    """Raised when the TCP session is refused or times out."""

    def __init__(
        self,
        message: str,
        *,
        host: str | None = None,
        port: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.cause = cause
        super().__init__(message, host=host, port=port)


class UnsupportedTransportError(ConnectError):
    """Raised for declared-but-unimplemented transports (Modbus serial)."""


class ModbusIOError(PyColossalError):
    """Raised when a holding-register read fails (wraps pymodbus or connection errors)."""

    def __init__(
        self,
        message: str,
        *,
        address: int | None = None,
        count: int | None = None,
        cause: BaseException | None = None,
    ) -> None:
        self.address = address
        self.count = count
        self.cause = cause
        super().__init__(message)


class PollError(PyColossalError):
    """Raised when reading one channel aborts the rest of a poll cycle."""

    def __init__(self, channel: str, cause: BaseException) -> None:
        self.channel = channel
        self.cause = cause
        super().__init__(f"channel {channel}: {cause}")


class CalculationError(PyColossalError):
    """Base for errors scoped to one calculation channel."""

    pass


class UnknownTagError(CalculationError):
    """Raised when an expression references a tag no device channel is named after."""

    def __init__(self, reference: str, message: str | None = None) -> None:
        self.reference = reference
        super().__init__(message or f"Unknown tag: {reference!r}")


class UnsupportedOperandError(CalculationError):
    """Raised when a referenced tag cannot be used as an arithmetic operand."""

    def __init__(self, reference: str, message: str | None = None) -> None:
        self.reference = reference
        super().__init__(message or f"Unsupported operand: {reference!r}")


class EvaluationError(CalculationError):
    """Raised when the substituted expression fails to parse or evaluate."""

    def __init__(self, detail: str, *, expression: str | None = None) -> None:
        self.detail = detail
        self.expression = expression
        super().__init__(detail)
