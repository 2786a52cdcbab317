"""
Knob-indexed dual display decoder for the Fluke 89IV `QD 0` screen dump.

The frame carries two raw channel magnitudes; what they mean depends on the
rotary knob position plus a handful of alternate-function bits, so units
are resolved from `KNOB_UNITS` and then rewritten by a fixed sequence of
override rules.
"""
from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from typing import Dict, List, Tuple

from .errors import FrameSyncError, ModeError
from .records import Channel, MeasurementRecord, Sentinel, Value, unique_flags
from .units import KNOB_UNITS, PREFIX_CODES

FRAME_TAG = b"QD,"
MIN_FRAME_LENGTH = 41

PRIMARY_OFFSET = 7
SECONDARY_OFFSET = 13
MODE_BYTE = 33
KNOB_BYTE = 37
EDGE_BYTE = 38
ALT39_BYTE = 39
ALT40_BYTE = 40

RAW_OL = 1879048221
RAW_LEADS = 1879048225
RAW_OPEN = 1879048214
RAW_NONE = 1879048193

PRIMARY_SENTINELS = {RAW_OL: "OL", RAW_LEADS: "LEADS", RAW_OPEN: "OPEN"}
SECONDARY_SENTINELS = {**PRIMARY_SENTINELS, RAW_NONE: "NONE"}

# Knob positions at or above this value use both displays independently;
# below it a hold/average/min/max mode copies the primary unit to the secondary.
SINGLE_DISPLAY_KNOB_LIMIT = 32

VIEW_MEMORY_KNOB = 0

MODE_BITS = (
    (0x02, "HOLD"),
    (0x04, "AUTO_HOLD"),
    (0x08, "AVG"),
    (0x10, "MAX"),
    (0x20, "MIN"),
)

logger = logging.getLogger(__name__)


@dataclass
class ChannelReading:
    value: Value
    prefix: str = ""
    unit: str = ""
    state: str = "NORMAL"

    @property
    def is_sentinel(self) -> bool:
        return isinstance(self.value, Sentinel)


@dataclass
class DualReading:
    primary: ChannelReading
    secondary: ChannelReading
    modes: Tuple[str, ...]
    knob: int

    def records(self, timestamp: float) -> List[MeasurementRecord]:
        out = []
        for channel, reading in ((Channel.PRIMARY, self.primary), (Channel.SECONDARY, self.secondary)):
            out.append(
                MeasurementRecord(
                    timestamp=timestamp,
                    channel=channel,
                    value=reading.value,
                    unit=reading.unit,
                    prefix=reading.prefix,
                    mode_flags=self.modes,
                    state=reading.state,
                )
            )
        return out


def scale_exponent(raw: int) -> int:
    return raw - 127 if raw > 127 else raw


def _decode_channel(data: bytes, offset: int, sentinels: Dict[int, str], sentinel: Sentinel) -> ChannelReading:
    (magnitude,) = struct.unpack_from("<I", data, offset)
    cause = sentinels.get(magnitude)
    if cause is not None:
        return ChannelReading(value=sentinel, state=cause)
    # Only the low 16 bits are significant, as a signed count.
    (counts,) = struct.unpack("<h", struct.pack("<H", magnitude & 0xFFFF))
    exponent = scale_exponent(data[offset + 4])
    return ChannelReading(value=counts * 10 ** (-exponent))


def _channel_prefix(code: int, knob: int) -> str:
    prefix = PREFIX_CODES.get(code, "")
    if knob in (10, 12) and code == 253:
        prefix = "n"
    if knob == 22 and code == 254:
        prefix = "μ"
    if knob > 64 and code > 4:
        prefix = ""
    return prefix


def decode_display_frame(data: bytes) -> DualReading:
    if data[: len(FRAME_TAG)] != FRAME_TAG:
        raise FrameSyncError(f"Unexpected screen dump tag {data[:3]!r}")
    if len(data) < MIN_FRAME_LENGTH:
        raise FrameSyncError(f"Screen dump too short: {len(data)} bytes")

    knob = data[KNOB_BYTE]
    if knob == VIEW_MEMORY_KNOB:
        raise ModeError("Meter is in VIEW MEMORY mode. Please change the knob and try again.")
    logger.debug("Knob is on %d", knob)

    primary = _decode_channel(data, PRIMARY_OFFSET, PRIMARY_SENTINELS, Sentinel.OFF_LINE)
    secondary = _decode_channel(data, SECONDARY_OFFSET, SECONDARY_SENTINELS, Sentinel.NOT_APPLICABLE)
    primary.prefix = _channel_prefix(data[PRIMARY_OFFSET + 5], knob)
    secondary.prefix = _channel_prefix(data[SECONDARY_OFFSET + 5], knob)
    primary.unit, secondary.unit = KNOB_UNITS.get(knob, ("", ""))

    modes = _apply_overrides(primary, secondary, knob, data)

    for reading in (primary, secondary):
        if reading.is_sentinel:
            reading.prefix = ""
            reading.unit = ""
    return DualReading(primary=primary, secondary=secondary, modes=unique_flags(modes), knob=knob)


def _apply_overrides(primary: ChannelReading, secondary: ChannelReading, knob: int, data: bytes) -> List[str]:
    alt39 = data[ALT39_BYTE]
    alt40 = data[ALT40_BYTE]
    combined = bool(alt39 & 2 and alt39 & 1)

    if knob in (5, 6) and alt39 & 2:
        volts = "V" if knob == 5 else "mV"
        if combined:
            primary.unit, secondary.unit = f"{volts} AC+DC", ""
        else:
            primary.unit, secondary.unit = f"{volts} DC", f"{volts} AC"
    if knob == 2 and alt40 & 16:
        primary.unit, secondary.unit = "mV AC", "dB"
    if knob in (20, 21, 22) and alt39 & 2:
        if combined:
            primary.unit, secondary.unit = "A AC+DC", ""
        else:
            primary.unit, secondary.unit = "A DC", "A AC"

    if alt40 & 1:
        secondary.prefix, secondary.unit = primary.prefix, primary.unit
        primary.prefix = "Δ" + primary.prefix
    if alt40 & 2:
        secondary.prefix, secondary.unit = primary.prefix, primary.unit
        primary.prefix = "Δ%" + primary.prefix

    if knob in (1, 2) and alt40 & 8:
        primary.prefix, primary.unit = "", "dB"
        secondary.unit = "V AC" if knob == 1 else "mV AC"

    modes: List[str] = []
    edge = data[EDGE_BYTE]
    if edge & 64:
        modes.append("RE")
    if edge & 128:
        modes.append("FE")
    for bit, name in MODE_BITS:
        if data[MODE_BYTE] & bit:
            modes.append(name)
            if knob < SINGLE_DISPLAY_KNOB_LIMIT:
                secondary.unit = primary.unit
    return modes
