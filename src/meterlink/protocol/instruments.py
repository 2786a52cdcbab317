"""
Per-family link and timing profiles.

A profile is chosen by name; nothing here probes the meter to guess it.
"""
from __future__ import annotations

from dataclasses import asdict, dataclass, field, replace
from typing import Any, Dict, Optional

from .config import TimeoutConfig
from .transactor import LinkProfile, StatusMode, StatusQuery


@dataclass(frozen=True)
class InstrumentProfile:
    name: str
    description: str
    baudrate: int
    link: Optional[LinkProfile]  # None for meters that only stream
    min_interval: float = 0.0
    latency: float = 1.0
    number_format: str = "%g"
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)

    @property
    def passive(self) -> bool:
        return self.link is None

    def link_for(self, timeouts: TimeoutConfig) -> LinkProfile:
        """Link profile with the status query and reset delays taken from `timeouts`."""
        if self.link is None:
            raise ValueError(f"Instrument '{self.name}' does not accept commands")
        status_query = self.link.status_query
        if status_query is not None:
            status_query = replace(status_query, timeout=timeouts.status_sec)
        return replace(
            self.link,
            status_query=status_query,
            reset_settle=timeouts.reset_settle_sec,
            default_timeout=timeouts.fetch_sec,
        )


PROFILES: Dict[str, InstrumentProfile] = {
    "bk2831": InstrumentProfile(
        name="bk2831",
        description="BK Precision 2831E / 5491B bench meter",
        baudrate=9600,
        link=LinkProfile(
            terminator="\r",
            status_mode=StatusMode.QUERY,
            status_query=StatusQuery("SYSTEM:ERROR?", 1.0, r"^NO ERROR!$"),
            reset_command="*RST",
        ),
        min_interval=4.0,
        latency=3.0,
        number_format="%.5g",
        timeouts=TimeoutConfig(function_sec=1.0, fetch_sec=2.0, status_sec=1.0),
    ),
    "fluke45": InstrumentProfile(
        name="fluke45",
        description="Fluke 45 dual display bench meter",
        baudrate=9600,
        link=LinkProfile(
            terminator="\r",
            status_mode=StatusMode.PROMPT,
            prompt_marker="=>",
            reset_command="*RST",
            reset_reply=b"=>",
        ),
        latency=1.0,
        number_format="%.6g",
        timeouts=TimeoutConfig(fetch_sec=1.0),
    ),
    "fluke89iv": InstrumentProfile(
        name="fluke89iv",
        description="Fluke 89 series IV handheld (QM quick reading or QD 0 screen dump)",
        baudrate=9600,
        link=LinkProfile(terminator="\r", status_mode=StatusMode.RETURN_CODE),
        latency=1.0,
        timeouts=TimeoutConfig(fetch_sec=1.0),
    ),
    "fluke287": InstrumentProfile(
        name="fluke287",
        description="Fluke 287 / 289 logging handheld",
        baudrate=115200,
        link=LinkProfile(terminator="\r", status_mode=StatusMode.RETURN_CODE, strip_trailer=True),
        latency=1.0,
        timeouts=TimeoutConfig(fetch_sec=1.0),
    ),
    "u1241an": InstrumentProfile(
        name="u1241an",
        description="Agilent / Keysight U1241AN handheld",
        baudrate=9600,
        link=LinkProfile(
            terminator="\n",
            status_mode=StatusMode.QUERY,
            status_query=StatusQuery("SYST:ERR?", 0.15, r'^\+0,"No err'),
            pre_flush=True,
            strip_newlines=True,
        ),
        min_interval=1.0,
        latency=0.675,
        number_format="%.10g",
        timeouts=TimeoutConfig(function_sec=0.2, fetch_sec=0.15, status_sec=0.15),
    ),
    "tp4000": InstrumentProfile(
        name="tp4000",
        description="TP4000ZC / UT60E style 14-byte LCD stream",
        baudrate=2400,
        link=None,
        latency=0.0,
    ),
}


def get_profile(name: str) -> InstrumentProfile:
    key = name.lower()
    if key not in PROFILES:
        raise KeyError(f"Unknown instrument '{name}'. Expected one of {list(PROFILES)}")
    return PROFILES[key]


def profile_defaults(name: str) -> Dict[str, Any]:
    """Config layer for an instrument; the JSON file and overrides sit on top of it."""
    profile = get_profile(name)
    return {"instrument": profile.name, "timeouts": asdict(profile.timeouts)}
