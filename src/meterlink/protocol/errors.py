"""Error taxonomy shared by the transactor and the frame decoders."""
from __future__ import annotations

from typing import Optional


class MeterError(Exception):
    """Base class for every failure raised by the protocol layer."""


class DeviceUnavailable(MeterError):
    """No bytes arrived where a reply was expected (meter off or unplugged)."""

    def __init__(self, command: str):
        super().__init__(f"No reply to command '{command}'. Is the meter connected, and turned on?")
        self.command = command


class ProtocolStatusError(MeterError):
    """The instrument explicitly reported a non-success status."""

    def __init__(self, command: str, status: str):
        super().__init__(f"Meter returned '{status}' in response to command '{command}'")
        self.command = command
        self.status = status


class FrameSyncError(MeterError):
    """Framing or tag mismatch in a binary frame; the frame is discarded."""


class MalformedReplyError(MeterError):
    """An ASCII reply does not carry the expected number of fields."""

    def __init__(self, what: str, expected: Optional[int] = None, actual: Optional[int] = None):
        if expected is None:
            super().__init__(f"Malformed reply: {what}")
        else:
            super().__init__(f"Malformed reply: {what} expected {expected} fields, got {actual}")
        self.what = what
        self.expected = expected
        self.actual = actual


class UnknownUnitError(MeterError):
    def __init__(self, token: str):
        super().__init__(f"Unexpected unit of measurement '{token}'")
        self.token = token


class ModeError(MeterError):
    """The meter is in a mode that cannot be decoded."""
