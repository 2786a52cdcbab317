"""Plotting companion for CSV reading logs."""
from __future__ import annotations

from pathlib import Path
from typing import Any, Dict

import numpy as np
import pandas as pd

REQUIRED_COLUMNS = {"timestamp", "channel", "value"}


def load_log(csv_path: str | Path) -> pd.DataFrame:
    """Read a log written by `CsvLogger`; sentinel readings become NaN."""
    df = pd.read_csv(csv_path, keep_default_na=False)
    missing = REQUIRED_COLUMNS - set(df.columns)
    if missing:
        raise ValueError(f"Missing required columns: {sorted(missing)}")
    df = df.copy()
    df["value"] = pd.to_numeric(df["value"], errors="coerce")
    df["channel"] = df["channel"].astype(str)
    df["elapsed_s"] = df["timestamp"] - df["timestamp"].min()
    return df


def summarize_log(df: pd.DataFrame) -> Dict[str, Dict[str, float]]:
    summary: Dict[str, Dict[str, float]] = {}
    for channel, group in df.groupby("channel", sort=False):
        values = group["value"].to_numpy(dtype=float)
        valid = values[~np.isnan(values)]
        summary[str(channel)] = {
            "count": float(values.size),
            "missing": float(values.size - valid.size),
            "min": float(valid.min()) if valid.size else float("nan"),
            "max": float(valid.max()) if valid.size else float("nan"),
            "mean": float(valid.mean()) if valid.size else float("nan"),
        }
    return summary


def plot_log(csv_path: str | Path, out_path: Path) -> Path:
    plt = _require_matplotlib()
    df = load_log(csv_path)
    channels = list(dict.fromkeys(df["channel"]))
    fig, axes = plt.subplots(len(channels) or 1, 1, figsize=(10, 3 * max(len(channels), 1)), sharex=True, squeeze=False)
    for ax, channel in zip(axes[:, 0], channels):
        group = df[df["channel"] == channel]
        units = sorted({f"{p}{u}" for p, u in zip(group.get("prefix", ""), group.get("unit", "")) if f"{p}{u}"})
        ax.plot(group["elapsed_s"], group["value"], marker=".", linestyle="-", label=channel)
        ax.set_ylabel(f"{channel} [{', '.join(units)}]" if units else channel)
        ax.grid(True, alpha=0.3)
    axes[-1, 0].set_xlabel("Time [s]")
    fig.tight_layout()
    out_path.parent.mkdir(parents=True, exist_ok=True)
    fig.savefig(out_path, dpi=150)
    plt.close(fig)
    return out_path


def _require_matplotlib() -> Any:
    home_cache = Path.home() / ".cache" / "fontconfig"
    try:
        home_cache.mkdir(parents=True, exist_ok=True)
    except OSError as exc:
        raise RuntimeError("matplotlib cannot write font cache in this environment") from exc

    try:
        import matplotlib
        matplotlib.use("Agg", force=True)
        import matplotlib.pyplot as plt  # type: ignore
    except ImportError as exc:  # pragma: no cover - optional dependency
        raise RuntimeError("matplotlib is required for plotting; install meterlink[plot]") from exc
    except Exception as exc:  # pragma: no cover - environment issues
        raise RuntimeError(f"matplotlib initialisation failed: {exc}") from exc
    return plt
