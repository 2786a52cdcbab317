"""
Static lookup tables and the unit token resolver.

Everything here is read-only process state: the tables are built once at
import time and exposed through immutable containers.
"""
from __future__ import annotations

from types import MappingProxyType
from typing import Mapping, Optional, Sequence, Tuple

from .errors import UnknownUnitError

UnitTokenTable = Tuple[Tuple[str, str], ...]

# BK Precision 2831E / 5491B answers FUNC? in lower case.
BK_UNIT_TOKENS: UnitTokenTable = (
    ("volt:ac", "VAC"),
    ("volt:dc", "VDC"),
    ("diod", "VDC"),
    ("freq", "HZ"),
    ("per", "Sec"),
    ("res", "Ohm"),
    ("cont", "Ohm"),
    ("curr:ac", "AAC"),
    ("curr:dc", "ADC"),
)

# Agilent U1241AN answers CONF? in upper case; the bare VOLT/CURR entries
# must stay behind their :AC variants.
U1241_UNIT_TOKENS: UnitTokenTable = (
    ("VOLT:AC", "VAC"),
    ("VOLT", "VDC"),
    ("DIOD", "VDC"),
    ("FREQ", "HZ"),
    ("RES", "Ohm"),
    ("CONT", "Ohm"),
    ("CURR:AC", "AAC"),
    ("CURR", "ADC"),
    ("CAP", "F"),
    ("T1:K CEL", "°C"),
    ("T1:K FAR", "°F"),
    ("CPER", "%"),
)

UNIT_TOKENS: UnitTokenTable = BK_UNIT_TOKENS + U1241_UNIT_TOKENS


class UnitResolver:
    """Ordered, case-sensitive substring match of raw tokens to unit symbols."""

    def __init__(self, table: Sequence[Tuple[str, str]] = UNIT_TOKENS):
        self._table: UnitTokenTable = tuple(table)

    def resolve(self, raw_token: str) -> str:
        for pattern, symbol in self._table:
            if pattern in raw_token:
                return symbol
        raise UnknownUnitError(raw_token)

    def try_resolve(self, raw_token: str) -> Optional[str]:
        try:
            return self.resolve(raw_token)
        except UnknownUnitError:
            return None


# Multiplier exponent -> prefix, as reported by QDDA reading groups.
EXPONENT_PREFIXES: Mapping[int, str] = MappingProxyType(
    {9: "G", 6: "M", 3: "K", 0: "", -3: "m", -6: "u", -9: "n"}
)


def prefix_for_exponent(exponent: int) -> str:
    return EXPONENT_PREFIXES.get(exponent, "")


# Prefix code bytes of the QD 0 display dump.
PREFIX_CODES: Mapping[int, str] = MappingProxyType(
    {253: "μ", 255: "m", 0: "", 1: "k", 2: "M"}
)

# Knob position -> (primary unit, secondary unit) for the QD 0 display dump.
KNOB_UNITS: Mapping[int, Tuple[str, str]] = MappingProxyType(
    {
        1: ("V AC", ""),
        2: ("mV AC", ""),
        3: ("V DC", ""),
        4: ("mV DC", ""),
        5: ("V AC", "V DC"),
        6: ("mV AC", "mV DC"),
        9: ("Ω", ""),
        10: ("S", ""),
        11: ("Ω", ""),
        12: ("F", ""),
        13: ("V DC", ""),
        15: ("A AC", ""),
        16: ("A AC", ""),
        17: ("A DC", ""),
        18: ("A DC", ""),
        19: ("μA DC", ""),
        20: ("A AC", "A DC"),
        21: ("A AC", "A DC"),
        22: ("μA AC", "μA DC"),
        26: ("°C", ""),
        27: ("°F", ""),
        65: ("Hz", "V AC"),
        66: ("Hz", "V AC"),
        130: ("% Duty Cycle", "Hz"),
        194: ("ms", "Hz"),
    }
)

# Word forms produced by the seven-segment LCD frame -> compact symbols.
LCD_PREFIX_SYMBOLS: Mapping[str, str] = MappingProxyType(
    {"mega": "M", "kilo": "K", "milli": "m", "micro": "μ", "nano": "n", "": ""}
)

LCD_UNIT_SYMBOLS: Mapping[str, str] = MappingProxyType(
    {
        "volts DC": "VDC",
        "volts AC": "VAC",
        "volts DC Δ": "VDCΔ",
        "volts AC Δ": "VACΔ",
        "ohms": "Ω",
        "hertz": "Hz",
        "farads": "F",
        "farads Δ": "FΔ",
        "amps DC": "ADC",
        "amps AC": "AAC",
        "amps DC Δ": "ADCΔ",
        "amps AC Δ": "AACΔ",
        "percent": "%",
        "degrees Celsius": "°C",
        "degrees Celsius Δ": "°CΔ",
    }
)


def lcd_unit_symbol(units: str) -> str:
    return LCD_UNIT_SYMBOLS.get(units, units)
