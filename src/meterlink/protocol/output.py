from __future__ import annotations

import csv
import time
from pathlib import Path
from typing import Dict, List, Optional, TextIO

from .records import MeasurementRecord

CSV_FIELDS = [
    "timestamp",
    "channel",
    "value",
    "prefix",
    "unit",
    "modes",
    "state",
    "attribute",
]


def record_row(record: MeasurementRecord) -> Dict[str, object]:
    return {
        "timestamp": f"{record.timestamp:.3f}",
        "channel": record.channel.label,
        "value": record.render(),
        "prefix": record.prefix,
        "unit": record.unit,
        "modes": " ".join(record.mode_flags),
        "state": record.state,
        "attribute": record.attribute,
    }


def format_record(record: MeasurementRecord, number_format: str = "%g") -> str:
    """`value prefix+unit` as a person would read it off the display."""
    if record.is_sentinel or record.decimal_places is not None:
        text = record.render()
    else:
        text = number_format % record.value
    symbol = record.symbol
    return f"{text} {symbol}" if symbol else text


def format_line(records: List[MeasurementRecord], number_format: str = "%g") -> str:
    if not records:
        return ""
    stamp = time.strftime("%m/%d/%y %H:%M:%S", time.localtime(records[0].timestamp))
    body = " / ".join(format_record(record, number_format) for record in records)
    flags: List[str] = []
    for record in records:
        for flag in record.mode_flags:
            if flag not in flags:
                flags.append(flag)
    if flags:
        body += f" [{' '.join(flags)}]"
    return f"{stamp}\t{body}"


class CsvLogger:
    """
    Lazily creates the CSV writer when the first record arrives, so dry runs
    never touch the filesystem. An existing log is appended to; the header
    is written only into an empty file.
    """

    def __init__(self, path: Path):
        self.path = path
        self._handle: Optional[csv.DictWriter[str]] = None
        self._file_handle: Optional[TextIO] = None
        self.rows = 0

    def append(self, record: MeasurementRecord) -> None:
        if self._handle is None:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fresh = not self.path.exists() or self.path.stat().st_size == 0
            self._file_handle = self.path.open("a", newline="", encoding="utf-8")
            self._handle = csv.DictWriter(self._file_handle, fieldnames=CSV_FIELDS)
            if fresh:
                self._handle.writeheader()
        assert self._handle is not None
        self._handle.writerow(record_row(record))
        self.rows += 1
        if self._file_handle is not None:
            self._file_handle.flush()

    def __call__(self, record: MeasurementRecord) -> None:
        self.append(record)

    def close(self) -> None:
        if self._file_handle:
            self._file_handle.close()
            self._file_handle = None
            self._handle = None
