#!/usr/bin/env python3
"""Example: start the polling worker and consume its messages; graceful shutdown on Ctrl+C."""

import sys

from pycolossal_modbus import (
    CalculationResults,
    ConfigError,
    DeviceSnapshot,
    Error,
    WorkerConfig,
    start,
)
from pycolossal_modbus.config import init_calculation_channels, init_tcp_device


def main() -> None:
    config = WorkerConfig(
        devices=[init_tcp_device("127.0.0.1", 5502, "Device_1", 10)],  # change to your device
        calculation_channels=init_calculation_channels(5),
    )

    try:
        handle = start(config)
    except ConfigError as e:
        print(f"Invalid configuration: {e}", file=sys.stderr)
        sys.exit(1)

    print("Polling (Ctrl+C to stop)...")
    try:
        with handle:
            while True:
                for status in handle.status.drain():
                    print(status, file=sys.stderr if isinstance(status, Error) else sys.stdout)
                message = handle.data.receive(timeout=0.5)
                if isinstance(message, DeviceSnapshot):
                    print(message.name, {name: str(v) for name, v in message.values().items()})
                elif isinstance(message, CalculationResults):
                    print("calc", message.values())
    except KeyboardInterrupt:
        print("\nStopped.")


if __name__ == "__main__":
    main()
