from __future__ import annotations

import numpy as np
import pytest

from meterlink.protocol.binary_frames import (
    RAW_LEADS,
    RAW_NONE,
    RAW_OL,
    RAW_OPEN,
    SINGLE_DISPLAY_KNOB_LIMIT,
    decode_display_frame,
    scale_exponent,
)
from meterlink.protocol.errors import FrameSyncError, ModeError
from meterlink.protocol.records import Channel, Sentinel
from meterlink.protocol.units import PREFIX_CODES


def build_screen(
    knob: int,
    *,
    primary: int = 12345,
    primary_exp: int = 3,
    primary_code: int = 0,
    secondary: int = RAW_NONE,
    secondary_exp: int = 0,
    secondary_code: int = 0,
    mode: int = 0,
    edge: int = 0,
    alt39: int = 0,
    alt40: int = 0,
) -> bytes:
    data = bytearray(41)
    data[0:3] = b"QD,"
    data[7:11] = primary.to_bytes(4, "little")
    data[11] = primary_exp
    data[12] = primary_code
    data[13:17] = secondary.to_bytes(4, "little")
    data[17] = secondary_exp
    data[18] = secondary_code
    data[33] = mode
    data[37] = knob
    data[38] = edge
    data[39] = alt39
    data[40] = alt40
    return bytes(data)


def test_volts_dc_with_inactive_secondary():
    reading = decode_display_frame(build_screen(3))
    assert np.isclose(reading.primary.value, 12.345)
    assert reading.primary.unit == "V DC"
    assert reading.primary.prefix == ""
    assert reading.secondary.value is Sentinel.NOT_APPLICABLE
    assert reading.secondary.unit == ""
    assert reading.secondary.state == "NONE"

    primary, secondary = reading.records(5.0)
    assert primary.channel == Channel.PRIMARY
    assert secondary.channel == Channel.SECONDARY
    assert primary.timestamp == 5.0


def test_signed_low_word_and_biased_exponent():
    reading = decode_display_frame(build_screen(3, primary=0x0001FFFE, primary_exp=129))
    assert scale_exponent(129) == 2
    assert scale_exponent(127) == 127
    assert np.isclose(reading.primary.value, -0.02)


@pytest.mark.parametrize("raw,cause", [(RAW_OL, "OL"), (RAW_LEADS, "LEADS"), (RAW_OPEN, "OPEN")])
@pytest.mark.parametrize("knob", [1, 5, 12, 22, 65, 130, 194])
def test_sentinels_blank_units_for_every_knob(raw, cause, knob):
    reading = decode_display_frame(
        build_screen(knob, primary=raw, primary_code=255, secondary=raw, secondary_code=1, alt40=1, mode=2)
    )
    assert reading.primary.value is Sentinel.OFF_LINE
    assert reading.primary.state == cause
    assert reading.primary.unit == "" and reading.primary.prefix == ""
    assert reading.secondary.value is Sentinel.NOT_APPLICABLE
    assert reading.secondary.unit == "" and reading.secondary.prefix == ""
    for record in reading.records(0.0):
        assert record.is_sentinel


def test_view_memory_knob_is_a_mode_error():
    with pytest.raises(ModeError):
        decode_display_frame(build_screen(0))


def test_bad_tag_and_short_frame():
    with pytest.raises(FrameSyncError):
        decode_display_frame(b"QM," + build_screen(3)[3:])
    with pytest.raises(FrameSyncError):
        decode_display_frame(build_screen(3)[:40])


def test_unknown_knob_has_empty_units():
    reading = decode_display_frame(build_screen(50, secondary=500))
    assert reading.primary.unit == ""
    assert reading.secondary.unit == ""


def test_ac_dc_swap_and_combined():
    swapped = decode_display_frame(build_screen(5, secondary=500, alt39=2))
    assert (swapped.primary.unit, swapped.secondary.unit) == ("V DC", "V AC")
    combined = decode_display_frame(build_screen(6, secondary=500, alt39=3))
    assert (combined.primary.unit, combined.secondary.unit) == ("mV AC+DC", "")
    amps = decode_display_frame(build_screen(21, secondary=500, alt39=3))
    assert amps.primary.unit == "A AC+DC"


def test_prefix_code_overrides():
    assert decode_display_frame(build_screen(12, primary_code=253)).primary.prefix == "n"
    assert decode_display_frame(build_screen(22, primary_code=254)).primary.prefix == "μ"
    assert decode_display_frame(build_screen(9, primary_code=1)).primary.prefix == "k"
    assert decode_display_frame(build_screen(65, primary_code=7)).primary.prefix == ""


def test_relative_delta_moves_reference_to_secondary():
    reading = decode_display_frame(build_screen(3, primary_code=255, secondary=500, alt40=1))
    assert reading.primary.prefix == "Δm"
    assert reading.primary.unit == "V DC"
    assert (reading.secondary.prefix, reading.secondary.unit) == ("m", "V DC")


def test_percent_delta_moves_reference_to_secondary():
    reading = decode_display_frame(build_screen(3, primary_code=255, secondary=500, alt40=2))
    assert reading.primary.prefix == "Δ%m"
    assert reading.primary.unit == "V DC"
    assert (reading.secondary.prefix, reading.secondary.unit) == ("m", "V DC")
    primary, _ = reading.records(0.0)
    assert primary.prefix == "Δ%m"


def test_percent_delta_on_sentinel_leaves_units_blank():
    reading = decode_display_frame(build_screen(3, primary=RAW_OL, secondary=500, alt40=2))
    assert reading.primary.value is Sentinel.OFF_LINE
    assert (reading.primary.prefix, reading.primary.unit) == ("", "")
    assert reading.secondary.unit == "V DC"


def test_knob_10_nano_prefix():
    reading = decode_display_frame(build_screen(10, primary_code=253, secondary_code=253))
    assert reading.primary.prefix == "n"
    assert reading.primary.unit == "S"
    assert reading.secondary.value is Sentinel.NOT_APPLICABLE
    assert reading.secondary.prefix == ""
    assert decode_display_frame(build_screen(11, primary_code=253)).primary.prefix == PREFIX_CODES[253]


def test_decibel_display():
    reading = decode_display_frame(build_screen(1, primary_code=255, secondary=500, alt40=8))
    assert (reading.primary.prefix, reading.primary.unit) == ("", "dB")
    assert reading.secondary.unit == "V AC"
    reading = decode_display_frame(build_screen(2, secondary=500, alt40=16))
    assert (reading.primary.unit, reading.secondary.unit) == ("mV AC", "dB")


def test_hold_mirrors_primary_unit_below_limit_only():
    held = decode_display_frame(build_screen(3, secondary=500, mode=2 | 16))
    assert held.modes == ("HOLD", "MAX")
    assert held.secondary.unit == "V DC"

    assert 65 > SINGLE_DISPLAY_KNOB_LIMIT
    freq = decode_display_frame(build_screen(65, secondary=500, mode=2))
    assert freq.modes == ("HOLD",)
    assert freq.secondary.unit == "V AC"


def test_edge_and_auto_hold_flags():
    reading = decode_display_frame(build_screen(65, edge=64 | 128, mode=4))
    assert reading.modes == ("RE", "FE", "AUTO_HOLD")
