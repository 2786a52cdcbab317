from __future__ import annotations

import json
from pathlib import Path

import pytest

from meterlink.protocol.config import load_config
from meterlink.protocol.instruments import PROFILES, get_profile, profile_defaults


def write_config(tmp_path: Path, data: dict) -> Path:
    path = tmp_path / "meter.json"
    path.write_text(json.dumps(data), encoding="utf-8")
    return path


def test_load_config_with_nested_overrides(tmp_path: Path) -> None:
    path = write_config(
        tmp_path,
        {"instrument": "fluke45", "port": "/dev/ttyS1", "timeouts": {"fetch_sec": 1.5, "status_sec": 0.5}},
    )
    cfg = load_config(path, ["timeouts.fetch_sec=0.25", "serial.dtr=true", "output_csv=out/log.csv"])
    assert cfg.instrument == "fluke45"
    assert cfg.port == "/dev/ttyS1"
    assert cfg.timeouts.fetch_sec == 0.25
    assert cfg.timeouts.status_sec == 0.5
    assert cfg.serial.dtr is True
    assert cfg.output_csv == Path("out/log.csv")
    assert cfg.single


def test_defaults_without_file() -> None:
    cfg = load_config(None)
    assert cfg.instrument == "bk2831"
    assert cfg.baudrate is None
    assert cfg.timeouts.reset_settle_sec == 2.0


def test_bad_override_and_negative_interval() -> None:
    with pytest.raises(ValueError):
        load_config(None, ["interval_sec"])
    with pytest.raises(ValueError):
        load_config(None, ["interval_sec=-1"])


def test_shipped_config_loads() -> None:
    path = Path(__file__).resolve().parents[1] / "config" / "meterlink.json"
    cfg = load_config(path)
    assert cfg.instrument in PROFILES
    assert cfg.interval_sec == 5.0


def test_profile_defaults_sit_under_file_and_overrides(tmp_path: Path) -> None:
    defaults = profile_defaults("u1241an")
    assert defaults["instrument"] == "u1241an"
    assert defaults["timeouts"]["fetch_sec"] == 0.15

    cfg = load_config(None, defaults=defaults)
    assert cfg.instrument == "u1241an"
    assert cfg.baudrate is None
    assert cfg.timeouts.function_sec == 0.2

    path = write_config(tmp_path, {"baudrate": 4800, "timeouts": {"fetch_sec": 9.0}})
    cfg = load_config(path, defaults=defaults)
    assert cfg.baudrate == 4800
    assert cfg.timeouts.fetch_sec == 9.0
    assert cfg.timeouts.function_sec == 0.2

    cfg = load_config(path, ["timeouts.fetch_sec=0.3", "baudrate=none"], defaults=defaults)
    assert cfg.timeouts.fetch_sec == 0.3
    assert cfg.baudrate is None


def test_profiles_defined() -> None:
    assert set(PROFILES) == {"bk2831", "fluke45", "fluke89iv", "fluke287", "u1241an", "tp4000"}
    assert get_profile("FLUKE287").baudrate == 115200
    assert get_profile("tp4000").passive
    with pytest.raises(KeyError):
        get_profile("hp34401")


def test_link_for_applies_configured_status_timeout() -> None:
    cfg = load_config(None, ["timeouts.status_sec=0.4"], defaults=profile_defaults("bk2831"))
    link = get_profile("bk2831").link_for(cfg.timeouts)
    assert link.status_query is not None
    assert link.status_query.timeout == 0.4
    assert link.default_timeout == 2.0
    with pytest.raises(ValueError):
        get_profile("tp4000").link_for(cfg.timeouts)
