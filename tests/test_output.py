from __future__ import annotations

import csv
from dataclasses import fields
from pathlib import Path

import numpy as np

from meterlink.protocol.output import CSV_FIELDS, CsvLogger, format_line, format_record
from meterlink.protocol.records import Channel, MeasurementRecord, Sentinel


def make_records(ts: float = 1_700_000_000.0):
    return [
        MeasurementRecord(timestamp=ts, channel=Channel.PRIMARY, value=1.234567, unit="VDC", mode_flags=("HOLD",)),
        MeasurementRecord(timestamp=ts, channel=Channel.SECONDARY, value=Sentinel.NOT_APPLICABLE, state="NONE"),
    ]


def test_format_record_uses_number_format():
    primary, secondary = make_records()
    assert format_record(primary, "%.5g") == "1.2346 VDC"
    assert format_record(secondary) == "N/A"


def test_format_line_joins_channels_and_modes():
    line = format_line(make_records(), "%.5g")
    stamp, body = line.split("\t")
    assert body == "1.2346 VDC / N/A [HOLD]"
    assert len(stamp) == len("11/14/23 22:13:20")
    assert format_line([]) == ""


def test_csv_logger_is_lazy_and_writes_rows(tmp_path: Path) -> None:
    path = tmp_path / "logs" / "readings.csv"
    logger = CsvLogger(path)
    assert not path.exists()
    for record in make_records():
        logger(record)
    logger.close()

    with path.open(newline="", encoding="utf-8") as fh:
        rows = list(csv.DictReader(fh))
    assert logger.rows == 2
    assert rows[0]["channel"] == "primary"
    assert np.isclose(float(rows[0]["value"]), 1.234567)
    assert rows[0]["modes"] == "HOLD"
    assert rows[1]["value"] == "N/A"
    assert rows[1]["state"] == "NONE"


def test_csv_logger_appends_to_existing_log(tmp_path: Path) -> None:
    path = tmp_path / "readings.csv"
    for _ in range(2):
        logger = CsvLogger(path)
        logger(make_records()[0])
        logger.close()

    lines = path.read_text(encoding="utf-8").splitlines()
    assert lines.count(",".join(CSV_FIELDS)) == 1
    with path.open(newline="", encoding="utf-8") as fh:
        rows = list(csv.DictReader(fh))
    assert [row["unit"] for row in rows] == ["VDC", "VDC"]


def test_channel_constants_are_not_fields():
    assert [field.name for field in fields(Channel)] == ["kind", "ident"]
    assert Channel.PRIMARY == Channel("primary")
    assert Channel.SECONDARY.label == "secondary"
    assert Channel.named("LIVE").label == "LIVE"
