from __future__ import annotations

import numpy as np
import pytest

from meterlink.protocol.ascii_frames import (
    decode_qdda,
    is_overload,
    parse_fetch_values,
    parse_quick_measurement,
    parse_value_unit_pairs,
)
from meterlink.protocol.errors import MalformedReplyError
from meterlink.protocol.records import Channel, Sentinel

HEADER = "V_DC,NONE,AUTO,VDC,2,0,OFF,0.000"


def reading(rid="PRIMARY", value="1.2345", unit="VDC", mult="0", decimals="4", state="NORMAL", attribute="NONE"):
    return f"{rid},{value},{unit},{mult},{decimals},5,{state},{attribute},1388534400.5"


def test_no_modes_two_readings():
    reply = ",".join([HEADER, "0", "2", reading(), reading(rid="LIVE", value="2.5", unit="ADC", mult="-3")])
    snapshot = decode_qdda(reply, timestamp=42.0)
    assert snapshot.modes == ()
    assert snapshot.primary_function == "V_DC"
    assert snapshot.measuring == "V_DC"
    assert len(snapshot.readings) == 2
    first, second = snapshot.readings
    assert first.channel == Channel.named("PRIMARY")
    assert np.isclose(first.value, 1.2345)
    assert first.prefix == ""
    assert first.decimal_places == 4
    assert "RUNNING" in first.mode_flags
    assert second.prefix == "m"
    assert second.unit == "ADC"
    assert second.timestamp == 42.0


def test_value_scaling_uses_negative_multiplier_exponent():
    reply = ",".join([HEADER, "0", "1", reading(value="4.7", unit="OHM", mult="3")])
    record = decode_qdda(reply, timestamp=0.0).readings[0]
    assert np.isclose(record.value, 4.7e-3)
    assert record.prefix == "K"


def test_modes_and_high_voltage_flags():
    header = "V_AC,NONE,MANUAL,VAC,4,0,ON,1388534400"
    reply = ",".join([header, "2", "HOLD", "MIN_MAX_AVG", "1", reading(unit="VAC")])
    snapshot = decode_qdda(reply, timestamp=1.0)
    assert snapshot.high_voltage is True
    assert snapshot.modes == ("HOLD", "MIN_MAX_AVG")
    assert snapshot.readings[0].mode_flags == ("HOLD", "MIN_MAX_AVG", "HV")


@pytest.mark.parametrize(
    "state,expected",
    [
        ("OL", Sentinel.OFF_LINE),
        ("OL_MINUS", Sentinel.OFF_LINE),
        ("OPEN_TC", Sentinel.OPEN_CIRCUIT),
        ("LEADS", Sentinel.LEADS),
        ("INVALID", Sentinel.NOT_APPLICABLE),
    ],
)
def test_non_normal_states_become_sentinels(state, expected):
    reply = ",".join([HEADER, "0", "1", reading(state=state, attribute="OPEN_CIRCUIT")])
    record = decode_qdda(reply, timestamp=0.0).readings[0]
    assert record.value is expected
    assert record.unit == ""
    assert record.prefix == ""
    assert record.state == state
    assert record.attribute == "OPEN_CIRCUIT"


def test_padded_reading_groups_are_accepted():
    group = reading() + ",EXTRA"
    snapshot = decode_qdda(",".join([HEADER, "0", "2", group, group]), timestamp=0.0)
    assert len(snapshot.readings) == 2
    assert snapshot.readings[1].state == "NORMAL"


def test_arity_mismatch_raises():
    reply = ",".join([HEADER, "0", "2", reading()])
    with pytest.raises(MalformedReplyError) as excinfo:
        decode_qdda(reply, timestamp=0.0)
    assert excinfo.value.expected == 18
    assert excinfo.value.actual == 9


def test_truncated_header_raises():
    with pytest.raises(MalformedReplyError):
        decode_qdda("V_DC,NONE,AUTO", timestamp=0.0)


def test_missing_mode_tokens_raise():
    with pytest.raises(MalformedReplyError):
        decode_qdda(",".join([HEADER, "3", "HOLD"]), timestamp=0.0)


def test_simple_reply_parsers():
    assert parse_fetch_values("+1.2340E+00,+5.0000E+01\r\n") == [1.234, 50.0]
    assert parse_value_unit_pairs("+1.2E+0 VDC,+6.0E+1 HZ\r") == [(1.2, "VDC"), (60.0, "HZ")]
    value, unit = parse_quick_measurement("QM,+1.234E+0 VDC\r")
    assert np.isclose(value, 1.234)
    assert unit == "VDC"
    assert is_overload(9.9e37)
    assert not is_overload(1.0)
    with pytest.raises(MalformedReplyError):
        parse_fetch_values("\r\n")
