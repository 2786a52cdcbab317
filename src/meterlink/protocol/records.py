from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import ClassVar, Iterable, Optional, Tuple, Union


class Sentinel(str, enum.Enum):
    OFF_LINE = "OFF_LINE"
    OPEN_CIRCUIT = "OPEN_CIRCUIT"
    LEADS = "LEADS"
    NOT_APPLICABLE = "NOT_APPLICABLE"

    @property
    def label(self) -> str:
        return _SENTINEL_LABELS[self]


_SENTINEL_LABELS = {
    Sentinel.OFF_LINE: "Offline",
    Sentinel.OPEN_CIRCUIT: "Open",
    Sentinel.LEADS: "Leads",
    Sentinel.NOT_APPLICABLE: "N/A",
}


@dataclass(frozen=True)
class Channel:
    kind: str
    ident: str = ""

    PRIMARY: ClassVar[Channel]
    SECONDARY: ClassVar[Channel]

    @staticmethod
    def named(ident: str) -> "Channel":
        return Channel("named", ident)

    @property
    def label(self) -> str:
        return self.ident if self.kind == "named" else self.kind


Channel.PRIMARY = Channel("primary")
Channel.SECONDARY = Channel("secondary")


Value = Union[float, Sentinel]


def unique_flags(flags: Iterable[str]) -> Tuple[str, ...]:
    """Order-preserving de-duplication of mode flag strings."""
    seen: list[str] = []
    for flag in flags:
        if flag and flag not in seen:
            seen.append(flag)
    return tuple(seen)


@dataclass(frozen=True)
class MeasurementRecord:
    """
    Canonical reading handed to formatters and sinks.

    A sentinel value never carries a unit or prefix; the constructor rejects
    records that mix the two.
    """

    timestamp: float
    channel: Channel
    value: Value
    unit: str = ""
    prefix: str = ""
    mode_flags: Tuple[str, ...] = ()
    decimal_places: Optional[int] = None
    state: str = "NORMAL"
    attribute: str = ""
    display: str = ""

    def __post_init__(self) -> None:
        if isinstance(self.value, Sentinel) and (self.unit or self.prefix):
            raise ValueError(
                f"Sentinel {self.value.value} cannot carry unit '{self.prefix}{self.unit}'"
            )

    @property
    def is_sentinel(self) -> bool:
        return isinstance(self.value, Sentinel)

    @property
    def symbol(self) -> str:
        return f"{self.prefix}{self.unit}"

    def render(self) -> str:
        if isinstance(self.value, Sentinel):
            return self.value.label
        if self.decimal_places is not None:
            return f"{self.value:.{self.decimal_places}f}"
        return f"{self.value:g}"
