from typing import Callable, Optional, Protocol

import serial

from instrument_gateway.app.core.gateway_exceptions import (
    TransportConnectionError, TransportIOError, TransportTimeout
)
from instrument_gateway.app.models.device_config import DeviceConfig
from instrument_gateway.app.utilities.telemetry import logger


class Transport(Protocol):
    """Byte-stream session to one device. Not safe for concurrent use."""

    @property
    def is_open(self) -> bool: ...

    def open(self) -> None: ...

    def write(self, data: bytes) -> None: ...

    def read(self, size: int) -> bytes: ...

    def close(self) -> None: ...


TransportFactory = Callable[[DeviceConfig], Transport]


class SerialTransport:
    """pyserial session with a bounded read timeout"""

    def __init__(self, devfile: str, baud: int, read_timeout_s: float = 5.0, device_id: str = None):
        self.devfile = devfile
        self.baud = baud
        self.read_timeout_s = read_timeout_s
        self.device_id = device_id
        self._serial: Optional[serial.Serial] = None

    @classmethod
    def from_device(cls, device: DeviceConfig) -> "SerialTransport":
        return cls(device.devfile, device.baud, device.read_timeout_s, device_id=device.device_id)

    @property
    def is_open(self) -> bool:
        return self._serial is not None and self._serial.is_open

    def open(self) -> None:
        if self.is_open:
            return

        try:
            self._serial = serial.Serial(
                port=self.devfile,
                baudrate=self.baud,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=self.read_timeout_s
            )
        except (serial.SerialException, OSError, ValueError) as e:
            self._serial = None
            raise TransportConnectionError(
                f"Cannot open {self.devfile} at {self.baud} baud: {e}",
                device_id=self.device_id
            ) from e

        logger.debug("Serial port opened", extra={
            "component": "transport",
            "device_id": self.device_id,
            "devfile": self.devfile,
            "baud": self.baud
        })

    def write(self, data: bytes) -> None:
        port = self._require_open()
        try:
            written = port.write(data)
            port.flush()
        except (serial.SerialException, OSError) as e:
            raise TransportIOError(f"Write to {self.devfile} failed: {e}", device_id=self.device_id) from e

        if written is not None and written != len(data):
            raise TransportIOError(
                f"Short write to {self.devfile}: {written} of {len(data)} bytes",
                device_id=self.device_id
            )

    def read(self, size: int) -> bytes:
        """Read exactly ``size`` bytes or raise TransportTimeout"""
        port = self._require_open()
        try:
            data = port.read(size)
        except (serial.SerialException, OSError) as e:
            raise TransportIOError(f"Read from {self.devfile} failed: {e}", device_id=self.device_id) from e

        if len(data) < size:
            raise TransportTimeout(
                f"Expected {size} byte(s) from {self.devfile} within {self.read_timeout_s}s, got {len(data)}",
                device_id=self.device_id
            )
        return data

    def close(self) -> None:
        if self._serial is None:
            return

        port, self._serial = self._serial, None
        try:
            port.close()
        except (serial.SerialException, OSError) as e:
            logger.warning("Error closing serial port", extra={
                "component": "transport",
                "device_id": self.device_id,
                "devfile": self.devfile,
                "error": str(e)
            })
            return

        logger.debug("Serial port closed", extra={
            "component": "transport",
            "device_id": self.device_id,
            "devfile": self.devfile
        })

    def _require_open(self) -> serial.Serial:
        if not self.is_open:
            raise TransportIOError(f"Serial port {self.devfile} is not open", device_id=self.device_id)
        return self._serial
