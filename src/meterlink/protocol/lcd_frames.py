"""
TP4000ZC style 14-byte LCD segment frames.

Each byte carries its 1-based position in the high nibble and four LCD
segment bits in the low nibble. The meter streams frames continuously with
no request, so decoding is split into a pure `decode_lcd_frame` and a
streaming `LcdFrameParser` that hunts for frame starts in arbitrary chunks.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, Mapping, Tuple

from .errors import FrameSyncError
from .records import Channel, MeasurementRecord, Sentinel
from .units import LCD_PREFIX_SYMBOLS, lcd_unit_symbol

FRAME_LENGTH = 14
OVERLOAD_DIGIT = "L"

# (segment bits from the low 3 bits of byte k, low nibble of byte k+1) -> glyph
SEGMENT_TABLE: Mapping[Tuple[int, int], str] = MappingProxyType(
    {
        (0, 5): "1",
        (5, 11): "2",
        (1, 15): "3",
        (2, 7): "4",
        (3, 14): "5",
        (7, 14): "6",
        (1, 5): "7",
        (7, 15): "8",
        (3, 15): "9",
        (7, 13): "0",
        (6, 8): OVERLOAD_DIGIT,
    }
)

# (byte index, bit) -> word, in display order
PREFIX_BITS = ((9, 2, "kilo"), (9, 4, "nano"), (9, 8, "micro"), (10, 2, "mega"), (10, 8, "milli"))
UNIT_BITS = (
    (10, 4, "percent"),
    (11, 4, "ohms"),
    (11, 8, "farads"),
    (12, 2, "hertz"),
    (12, 4, "volts"),
    (12, 8, "amps"),
    (13, 4, "degrees Celsius"),
)
STATUS_BITS = (
    (12, 1, "Low Battery"),
    (0, 1, "RS-232"),
    (10, 1, "Buzzer"),
    (9, 1, "Diode"),
    (11, 1, "Hold"),
    (0, 2, "Auto"),
)

logger = logging.getLogger(__name__)


def decode_segment(high: int, low: int) -> str:
    return SEGMENT_TABLE.get((high, low), " ")


@dataclass(frozen=True)
class LcdFrame:
    display: str
    prefix: str
    units: str
    status: Tuple[str, ...]

    @property
    def overloaded(self) -> bool:
        return OVERLOAD_DIGIT in self.display

    def to_record(self, timestamp: float) -> MeasurementRecord:
        """Numeric parse is deferred to here; an unreadable display is Offline."""
        value = None
        if not self.overloaded:
            try:
                value = float(self.display.replace(" ", ""))
            except ValueError:
                value = None
        if value is None:
            return MeasurementRecord(
                timestamp=timestamp,
                channel=Channel.PRIMARY,
                value=Sentinel.OFF_LINE,
                mode_flags=self.status,
                state="OL" if self.overloaded else "UNREADABLE",
                display=self.display,
            )
        return MeasurementRecord(
            timestamp=timestamp,
            channel=Channel.PRIMARY,
            value=value,
            unit=lcd_unit_symbol(self.units),
            prefix=LCD_PREFIX_SYMBOLS.get(self.prefix, self.prefix),
            mode_flags=self.status,
            decimal_places=_decimal_places(self.display),
            display=self.display,
        )


def _decimal_places(display: str) -> int:
    if "." not in display:
        return 0
    return len(display.rsplit(".", 1)[1].strip())


def decode_lcd_frame(frame: bytes) -> LcdFrame:
    if len(frame) != FRAME_LENGTH:
        raise FrameSyncError(f"LCD frame must be {FRAME_LENGTH} bytes, got {len(frame)}")
    for idx, byte in enumerate(frame):
        if byte >> 4 != idx + 1:
            raise FrameSyncError(f"Byte {idx} carries sequence nibble {byte >> 4}, expected {idx + 1}")

    display = "-" if frame[1] & 8 else ""
    for pos in (1, 3, 5, 7):
        if pos > 1 and frame[pos] & 8:
            display += "."
        display += decode_segment(frame[pos] & 7, frame[pos + 1] & 15)

    prefix = "".join(word for idx, bit, word in PREFIX_BITS if frame[idx] & bit)
    units = "".join(word for idx, bit, word in UNIT_BITS if frame[idx] & bit)
    status = tuple(word for idx, bit, word in STATUS_BITS if frame[idx] & bit)
    if frame[0] & 4 and frame[12] & 12:
        units += " DC"
    if frame[0] & 8:
        units += " AC"
    if frame[11] & 2:
        units += " Δ"
    return LcdFrame(display=display, prefix=prefix, units=units, status=status)


class LcdFrameParser:
    """Streaming parser: resynchronises on the first byte whose high nibble is 1."""

    def __init__(self):
        self._buffer = bytearray()
        self._stats: Dict[str, int] = {"frames": 0, "sync_errors": 0}

    def feed(self, chunk: bytes) -> Iterator[LcdFrame]:
        self._buffer.extend(chunk)
        while True:
            start = next((idx for idx, byte in enumerate(self._buffer) if byte >> 4 == 1), -1)
            if start < 0:
                self._buffer.clear()
                return
            if len(self._buffer) < start + FRAME_LENGTH:
                del self._buffer[:start]
                return
            candidate = bytes(self._buffer[start : start + FRAME_LENGTH])
            del self._buffer[: start + FRAME_LENGTH]
            try:
                frame = decode_lcd_frame(candidate)
            except FrameSyncError as exc:
                self._stats["sync_errors"] += 1
                logger.warning("Invalid frame discarded: %s (%s)", candidate.hex(" "), exc)
                continue
            self._stats["frames"] += 1
            yield frame

    def parse(self, chunks: Iterable[bytes]) -> Iterator[LcdFrame]:
        for chunk in chunks:
            if not chunk:
                continue
            yield from self.feed(chunk)

    def stats(self) -> Dict[str, int]:
        return dict(self._stats)

    def reset(self) -> None:
        self._buffer.clear()
