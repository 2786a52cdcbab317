from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, BinaryIO, Optional

try:
    import serial  # type: ignore[import]
except ImportError:  # pragma: no cover - handled in SerialChannel.open
    serial = None  # type: ignore[assignment]

logger = logging.getLogger(__name__)


class Clock:
    """Source of time and the only place the protocol layer is allowed to sleep."""

    def now(self) -> float:
        raise NotImplementedError

    def sleep(self, seconds: float) -> None:
        raise NotImplementedError


class SystemClock(Clock):
    def now(self) -> float:
        return time.time()

    def sleep(self, seconds: float) -> None:
        if seconds > 0:
            time.sleep(seconds)


class TransportChannel:
    """
    Exclusively owned byte channel.

    `read` never blocks waiting for data: it returns whatever is buffered
    right now, and an empty result means "nothing more at the moment".
    """

    def write(self, data: bytes) -> None:
        raise NotImplementedError

    def read(self, max_bytes: int) -> bytes:
        raise NotImplementedError

    def drain(self) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def __enter__(self) -> "TransportChannel":
        return self

    def __exit__(self, exc_type: Any, exc_value: Any, traceback: Any) -> None:
        self.close()


@dataclass
class SerialSettings:
    port: str
    baudrate: int = 9600
    write_timeout: float = 2.0
    dtr: bool = False
    rts: bool = True


class SerialChannel(TransportChannel):
    """8N1 serial line opened in non-blocking read mode."""

    def __init__(self, settings: SerialSettings):
        self.settings = settings
        self._handle = None

    def open(self) -> "SerialChannel":
        if serial is None:
            raise ImportError("pyserial is required but not installed.")
        self._handle = serial.Serial(
            port=self.settings.port,
            baudrate=self.settings.baudrate,
            bytesize=serial.EIGHTBITS,
            parity=serial.PARITY_NONE,
            stopbits=serial.STOPBITS_ONE,
            timeout=0,
            write_timeout=self.settings.write_timeout,
        )
        self._handle.dtr = self.settings.dtr
        self._handle.rts = self.settings.rts
        self._handle.reset_input_buffer()
        self._handle.reset_output_buffer()
        logger.info("Opened %s at %d baud", self.settings.port, self.settings.baudrate)
        return self

    def _require(self):
        if self._handle is None:
            raise RuntimeError(f"Serial port {self.settings.port} is not open")
        return self._handle

    def write(self, data: bytes) -> None:
        self._require().write(data)

    def read(self, max_bytes: int) -> bytes:
        return bytes(self._require().read(max_bytes))

    def drain(self) -> None:
        self._require().flush()

    def close(self) -> None:
        if self._handle is not None:
            try:
                self._handle.close()
            finally:
                self._handle = None
            logger.info("Closed %s", self.settings.port)


class StreamChannel(TransportChannel):
    """Read-only channel over a recorded byte stream (file or stdin)."""

    def __init__(self, handle: BinaryIO, *, owns_handle: bool = False):
        self._handle: Optional[BinaryIO] = handle
        self._owns_handle = owns_handle

    def write(self, data: bytes) -> None:
        raise RuntimeError("Replay channel is read-only")

    def read(self, max_bytes: int) -> bytes:
        if self._handle is None:
            return b""
        return self._handle.read(max_bytes) or b""

    def drain(self) -> None:
        pass

    def close(self) -> None:
        if self._handle is not None and self._owns_handle:
            self._handle.close()
        self._handle = None
