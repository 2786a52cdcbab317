"""
Decoders for comma/space delimited ASCII replies.

`decode_qdda` handles the full display dump of the Fluke 287/289. The small
`parse_*` helpers cover the single-line replies of the SCPI-ish meters.
"""
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import List, Sequence, Tuple

from .errors import MalformedReplyError
from .records import Channel, MeasurementRecord, Sentinel, unique_flags
from .units import prefix_for_exponent

HEADER_FIELDS = (
    "primary_function",
    "secondary_function",
    "autorange",
    "base_unit",
    "range_number",
    "range_multiplier",
    "high_voltage",
    "minmax_start",
    "mode_count",
)

READING_FIELDS = (
    "reading_id",
    "value",
    "unit",
    "multiplier",
    "decimal_places",
    "display_digits",
    "state",
    "attribute",
    "timestamp",
)

NORMAL_STATE = "NORMAL"
RUNNING_MODE = "RUNNING"
HIGH_VOLTAGE_FLAG = "HV"

STATE_SENTINELS = {
    "OL": Sentinel.OFF_LINE,
    "OL_MINUS": Sentinel.OFF_LINE,
    "OPEN_TC": Sentinel.OPEN_CIRCUIT,
    "LEADS": Sentinel.LEADS,
}

# Meters report overload as 9.9E+37 in their numeric replies.
OVERLOAD_VALUE = 9.9e37


@dataclass
class DisplaySnapshot:
    primary_function: str
    secondary_function: str
    autorange: str
    base_unit: str
    range_number: int
    range_multiplier: int
    high_voltage: bool
    minmax_start: float
    modes: Tuple[str, ...]
    readings: List[MeasurementRecord] = field(default_factory=list)

    @property
    def measuring(self) -> str:
        if self.secondary_function != "NONE":
            return self.secondary_function
        return self.primary_function


def _as_int(token: str, what: str) -> int:
    try:
        return int(token)
    except ValueError:
        raise MalformedReplyError(f"{what} '{token}' is not an integer") from None


def _as_float(token: str, what: str) -> float:
    try:
        return float(token)
    except ValueError:
        raise MalformedReplyError(f"{what} '{token}' is not a number") from None


def decode_qdda(reply: str, *, timestamp: float, delimiter: str = ",") -> DisplaySnapshot:
    tokens = [token.strip() for token in reply.strip().split(delimiter)]
    header_len = len(HEADER_FIELDS)
    if len(tokens) < header_len:
        raise MalformedReplyError("QDDA header", header_len, len(tokens))

    mode_count = _as_int(tokens[8], "mode count")
    count_pos = header_len + mode_count
    if mode_count < 0 or len(tokens) <= count_pos:
        raise MalformedReplyError("QDDA modes", count_pos + 1, len(tokens))
    modes = tuple(tokens[header_len:count_pos])

    reading_count = _as_int(tokens[count_pos], "reading count")
    body = tokens[count_pos + 1 :]
    width = _reading_width(reading_count, len(body))

    high_voltage = tokens[6] == "ON"
    flags = list(modes) if mode_count else [RUNNING_MODE]
    if high_voltage:
        flags.append(HIGH_VOLTAGE_FLAG)
    mode_flags = unique_flags(flags)

    snapshot = DisplaySnapshot(
        primary_function=tokens[0],
        secondary_function=tokens[1],
        autorange=tokens[2],
        base_unit=tokens[3],
        range_number=_as_int(tokens[4], "range number"),
        range_multiplier=_as_int(tokens[5], "range multiplier"),
        high_voltage=high_voltage,
        minmax_start=_as_float(tokens[7], "min/max start"),
        modes=modes,
    )
    for idx in range(reading_count):
        group = body[idx * width : idx * width + len(READING_FIELDS)]
        snapshot.readings.append(_decode_reading(group, timestamp, mode_flags))
    return snapshot


def _reading_width(reading_count: int, available: int) -> int:
    width = len(READING_FIELDS)
    if reading_count < 0:
        raise MalformedReplyError(f"negative reading count {reading_count}")
    if available == reading_count * width:
        return width
    # Some firmware revisions pad every group with one trailing field.
    if reading_count and available == reading_count * (width + 1):
        return width + 1
    raise MalformedReplyError("QDDA readings", reading_count * width, available)


def _decode_reading(group: Sequence[str], timestamp: float, mode_flags: Tuple[str, ...]) -> MeasurementRecord:
    reading_id, raw_value, unit, multiplier, decimals, _digits, state, attribute, _ts = group
    channel = Channel.named(reading_id)
    if state != NORMAL_STATE:
        return MeasurementRecord(
            timestamp=timestamp,
            channel=channel,
            value=STATE_SENTINELS.get(state, Sentinel.NOT_APPLICABLE),
            mode_flags=mode_flags,
            state=state,
            attribute=attribute,
        )
    exponent = _as_int(multiplier, "unit multiplier")
    value = _as_float(raw_value, "reading value") * 10 ** (-exponent)
    return MeasurementRecord(
        timestamp=timestamp,
        channel=channel,
        value=value,
        unit=unit,
        prefix=prefix_for_exponent(exponent),
        mode_flags=mode_flags,
        decimal_places=_as_int(decimals, "decimal places"),
        state=state,
        attribute=attribute,
    )


def parse_fetch_values(reply: str) -> List[float]:
    """Comma separated numeric fields, e.g. `+1.2340E+00,+5.0000E+01`."""
    values = []
    for token in reply.strip().split(","):
        token = token.strip()
        if token:
            values.append(_as_float(token, "reading"))
    if not values:
        raise MalformedReplyError("numeric reply", 1, 0)
    return values


def parse_value_unit_pairs(reply: str) -> List[Tuple[float, str]]:
    """`value unit[, value unit]` replies; a value may come without its unit."""
    tokens = [token for token in re.split(r"[ ,]+", reply.strip()) if token]
    if not tokens:
        raise MalformedReplyError("measurement reply", 1, 0)
    pairs = []
    for idx in range(0, len(tokens), 2):
        unit = tokens[idx + 1] if idx + 1 < len(tokens) else ""
        pairs.append((_as_float(tokens[idx], "reading"), unit))
    return pairs


def parse_quick_measurement(reply: str) -> Tuple[float, str]:
    """`QM,<value> <unit words>` as answered by the Fluke 89IV."""
    text = reply.strip()
    if text.startswith("QM,"):
        text = text[3:]
    parts = text.split(None, 1)
    if not parts:
        raise MalformedReplyError("QM reply", 2, 0)
    unit = parts[1].strip() if len(parts) > 1 else ""
    return _as_float(parts[0], "reading"), unit


def is_overload(value: float) -> bool:
    return abs(value) >= OVERLOAD_VALUE
