"""
Instrument telemetry protocol layer.

Command transactions against serial multimeters, decoders for their ASCII
and bit-packed replies, and the per-instrument sessions that tie the two
together. Nothing in this subpackage prints; diagnostics go through
`logging` and the transactor trace hook.
"""

from .ascii_frames import DisplaySnapshot, decode_qdda
from .binary_frames import DualReading, decode_display_frame
from .config import MeterConfig, SerialRuntime, TimeoutConfig, load_config
from .errors import (
    DeviceUnavailable,
    FrameSyncError,
    MalformedReplyError,
    MeterError,
    ModeError,
    ProtocolStatusError,
    UnknownUnitError,
)
from .instruments import PROFILES, InstrumentProfile, get_profile, profile_defaults
from .lcd_frames import LcdFrame, LcdFrameParser, decode_lcd_frame
from .records import Channel, MeasurementRecord, Sentinel
from .runner import MeterRunner, build_session, open_channel
from .transactor import CommandTransactor, LinkProfile, StatusMode, StatusQuery, TraceEvent
from .units import UnitResolver

__all__ = [
    "DisplaySnapshot",
    "decode_qdda",
    "DualReading",
    "decode_display_frame",
    "MeterConfig",
    "SerialRuntime",
    "TimeoutConfig",
    "load_config",
    "DeviceUnavailable",
    "FrameSyncError",
    "MalformedReplyError",
    "MeterError",
    "ModeError",
    "ProtocolStatusError",
    "UnknownUnitError",
    "PROFILES",
    "InstrumentProfile",
    "get_profile",
    "profile_defaults",
    "LcdFrame",
    "LcdFrameParser",
    "decode_lcd_frame",
    "Channel",
    "MeasurementRecord",
    "Sentinel",
    "MeterRunner",
    "build_session",
    "open_channel",
    "CommandTransactor",
    "LinkProfile",
    "StatusMode",
    "StatusQuery",
    "TraceEvent",
    "UnitResolver",
]
