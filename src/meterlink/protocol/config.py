from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Sequence


@dataclass
class TimeoutConfig:
    """Settle delays, in seconds, between writing a command and draining its reply."""

    function_sec: float = 1.0
    fetch_sec: float = 1.0
    status_sec: float = 1.0
    reset_settle_sec: float = 2.0


@dataclass
class SerialRuntime:
    write_timeout_sec: float = 2.0
    dtr: bool = False
    rts: bool = True
    chunk_size: int = 256


@dataclass
class MeterConfig:
    instrument: str = "bk2831"
    port: str = "/dev/ttyUSB0"
    baudrate: Optional[int] = None  # None -> instrument default
    interval_sec: float = 0.0  # 0 -> single reading
    screen: bool = False
    led: bool = False
    debug: bool = False
    output_csv: Path | None = None
    timeouts: TimeoutConfig = field(default_factory=TimeoutConfig)
    serial: SerialRuntime = field(default_factory=SerialRuntime)

    @property
    def single(self) -> bool:
        return self.interval_sec <= 0


def _load_json(path: Path) -> Dict[str, Any]:
    with path.open("r", encoding="utf-8") as fh:
        return json.load(fh)


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    merged: Dict[str, Any] = {**base}
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(base.get(key), dict):
            merged[key] = _merge(base[key], value)  # type: ignore[index]
        else:
            merged[key] = value
    return merged


def load_config(
    path: Path | str | None,
    overrides: Sequence[str] | None = None,
    defaults: Mapping[str, Any] | None = None,
) -> MeterConfig:
    """
    Load a meter configuration from JSON and apply CLI-style overrides.

    Layers, lowest first: built-in defaults, `defaults` (an instrument
    profile), the JSON file, then dotted `key=value` overrides, e.g.:
        ["instrument=u1241an", "timeouts.fetch_sec=0.5"]

    A `None` path skips the file.
    """
    data: Dict[str, Any] = _merge(dict(defaults or {}), _load_json(Path(path)) if path is not None else {})
    override_data: Dict[str, Any] = {}
    for override in overrides or []:
        key, raw_value = _parse_override(override)
        _assign_nested(override_data, key, raw_value)
    merged = _merge(data, override_data)
    timeout_data = merged.get("timeouts") or {}
    serial_data = merged.get("serial") or {}
    baudrate = merged.get("baudrate")
    interval = float(merged.get("interval_sec", 0.0))
    if interval < 0:
        raise ValueError(f"interval_sec must not be negative, got {interval}")
    return MeterConfig(
        instrument=str(merged.get("instrument", "bk2831")).lower(),
        port=str(merged.get("port", "/dev/ttyUSB0")),
        baudrate=int(baudrate) if baudrate else None,
        interval_sec=interval,
        screen=bool(merged.get("screen", False)),
        led=bool(merged.get("led", False)),
        debug=bool(merged.get("debug", False)),
        output_csv=Path(merged["output_csv"]) if merged.get("output_csv") else None,
        timeouts=TimeoutConfig(
            function_sec=float(timeout_data.get("function_sec", 1.0)),
            fetch_sec=float(timeout_data.get("fetch_sec", 1.0)),
            status_sec=float(timeout_data.get("status_sec", 1.0)),
            reset_settle_sec=float(timeout_data.get("reset_settle_sec", 2.0)),
        ),
        serial=SerialRuntime(
            write_timeout_sec=float(serial_data.get("write_timeout_sec", 2.0)),
            dtr=bool(serial_data.get("dtr", False)),
            rts=bool(serial_data.get("rts", True)),
            chunk_size=int(serial_data.get("chunk_size", 256)),
        ),
    )


def _parse_override(item: str) -> tuple[str, Any]:
    if "=" not in item:
        raise ValueError(f"Override '{item}' must use key=value syntax")
    key, raw_value = item.split("=", 1)
    key = key.strip()
    if not key:
        raise ValueError("Override key may not be empty")
    value = _coerce_value(raw_value.strip())
    return key, value


def _coerce_value(raw: str) -> Any:
    if raw.lower() in {"true", "false"}:
        return raw.lower() == "true"
    if raw.lower() in {"none", "null"}:
        return None
    try:
        if "." in raw or "e" in raw.lower():
            return float(raw)
        return int(raw)
    except ValueError:
        # Ports, paths and instrument names stay strings.
        return raw


def _assign_nested(target: Dict[str, Any], dotted_key: str, value: Any) -> None:
    cursor = target
    parts = dotted_key.split(".")
    for part in parts[:-1]:
        cursor = cursor.setdefault(part, {})
    cursor[parts[-1]] = value
