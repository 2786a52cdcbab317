"""Command line interface for the meterlink package."""
from __future__ import annotations

import logging
from pathlib import Path
from typing import List, Optional

import typer

from .protocol.config import MeterConfig, load_config
from .protocol.errors import MeterError
from .protocol.instruments import PROFILES, InstrumentProfile, profile_defaults
from .protocol.output import CsvLogger, format_line
from .protocol.records import MeasurementRecord
from .protocol.runner import Fluke287Session, MeterRunner, build_session, open_channel
from .protocol.transactor import TraceEvent

logger = logging.getLogger("meterlink")

app = typer.Typer(add_completion=False, context_settings={"help_option_names": ["-h", "--help"]})


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if debug else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _trace_to_log(event: TraceEvent) -> None:
    logger.debug("%s %r: %d bytes [%s]", event.direction, event.command, len(event.data), event.hexdump)


def _resolve(
    instrument: Optional[str],
    config_path: Optional[Path],
    override: Optional[List[str]],
) -> tuple[MeterConfig, InstrumentProfile]:
    """
    Profile defaults sit under the config file, which sits under `--set`
    and the command's own flags. `--instrument` wins only when given.
    """
    pinned = list(override or [])
    if instrument is not None:
        key = instrument.lower()
        if key not in PROFILES:
            raise typer.BadParameter(f"Unknown instrument '{instrument}'. Expected one of {list(PROFILES)}")
        pinned.append(f"instrument={key}")
    try:
        # First pass only names the instrument whose defaults go underneath.
        name = load_config(config_path, pinned).instrument
        if name not in PROFILES:
            raise typer.BadParameter(f"Unknown instrument '{name}' in configuration")
        cfg = load_config(config_path, pinned, defaults=profile_defaults(name))
    except ValueError as exc:
        raise typer.BadParameter(str(exc)) from exc
    return cfg, PROFILES[cfg.instrument]


class _LineBuffer:
    """Groups records by timestamp so one poll prints as one line."""

    def __init__(self, number_format: str, csv_logger: Optional[CsvLogger]):
        self.number_format = number_format
        self.csv_logger = csv_logger
        self._pending: List[MeasurementRecord] = []

    def __call__(self, record: MeasurementRecord) -> None:
        if self._pending and self._pending[0].timestamp != record.timestamp:
            self.flush()
        self._pending.append(record)
        if self.csv_logger is not None:
            self.csv_logger.append(record)

    def flush(self) -> None:
        if self._pending:
            typer.echo(format_line(self._pending, self.number_format))
            self._pending = []


def _run(cfg: MeterConfig, profile: InstrumentProfile, replay: Optional[Path] = None, count: Optional[int] = None) -> None:
    csv_logger = CsvLogger(cfg.output_csv) if cfg.output_csv else None
    sink = _LineBuffer(profile.number_format, csv_logger)
    channel = open_channel(cfg, profile, replay=replay)
    try:
        session = build_session(cfg, profile, channel, trace=_trace_to_log if cfg.debug else None)
        runner = MeterRunner(session, profile, interval_sec=cfg.interval_sec)
        if count is not None:
            runner.single = False
        runner.run(sink, iterations=count)
    finally:
        sink.flush()
        channel.close()
        if csv_logger is not None:
            csv_logger.close()


@app.command()
def read(
    instrument: Optional[str] = typer.Option(
        None, "--instrument", "-m", help=f"Instrument profile: {'|'.join(PROFILES)}. Defaults to the config file, else bk2831."
    ),
    port: Optional[str] = typer.Option(None, "--port", "-p", help="Serial device. Use '-' to read a stream from stdin."),
    interval: Optional[float] = typer.Option(None, "--interval", "-i", help="Take a new reading every N seconds."),
    count: Optional[int] = typer.Option(None, "--count", "-n", help="Stop after N polls (frames for streaming meters)."),
    screen: bool = typer.Option(False, "--screen", "-s", help="Fluke 89IV: read the full dual display (QD 0)."),
    csv_path: Optional[Path] = typer.Option(None, "--csv", help="Append readings to this CSV file."),
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="JSON configuration file."),
    override: Optional[List[str]] = typer.Option(
        None, "--set", help="Override config keys, e.g. --set timeouts.fetch_sec=0.5"
    ),
    debug: bool = typer.Option(False, "--debug", "-d", help="Log every raw transaction."),
) -> None:
    """Read measurements from a meter."""

    extra: List[str] = []
    if port is not None:
        extra.append(f"port={port}")
    if interval is not None:
        extra.append(f"interval_sec={float(interval)}")
    if screen:
        extra.append("screen=true")
    if csv_path is not None:
        extra.append(f"output_csv={csv_path}")
    if debug:
        extra.append("debug=true")
    cfg, profile = _resolve(instrument, config_path, (override or []) + extra)
    _configure_logging(cfg.debug)
    try:
        _run(cfg, profile, count=count)
    except MeterError as exc:
        logger.error("FATAL: %s", exc)
        raise typer.Exit(code=1) from exc


@app.command()
def replay(
    source: Path = typer.Argument(..., exists=True, readable=True, help="Recorded TP4000ZC byte stream."),
    count: Optional[int] = typer.Option(None, "--count", "-n", help="Stop after N frames."),
    csv_path: Optional[Path] = typer.Option(None, "--csv", help="Append readings to this CSV file."),
    debug: bool = typer.Option(False, "--debug", "-d"),
) -> None:
    """Decode a recorded LCD frame stream."""

    extra = ["debug=true"] if debug else []
    if csv_path is not None:
        extra.append(f"output_csv={csv_path}")
    cfg, profile = _resolve("tp4000", None, extra + ["interval_sec=1.0"])
    _configure_logging(cfg.debug)
    try:
        _run(cfg, profile, replay=source, count=count)
    except MeterError as exc:
        logger.error("FATAL: %s", exc)
        raise typer.Exit(code=1) from exc


@app.command()
def control(
    action: str = typer.Argument(..., help="reset | backlight | led"),
    instrument: str = typer.Option("fluke287", "--instrument", "-m"),
    port: Optional[str] = typer.Option(None, "--port", "-p"),
    interval: float = typer.Option(1.0, "--interval", "-i", help="LED blink period in seconds."),
    count: Optional[int] = typer.Option(None, "--count", "-n", help="Number of LED toggles."),
    debug: bool = typer.Option(False, "--debug", "-d"),
) -> None:
    """Send a control command: reset the meter, press the backlight, or blink the power LED."""

    action = action.lower()
    if action not in {"reset", "backlight", "led"}:
        raise typer.BadParameter("action must be one of reset, backlight, led", param_hint="ACTION")
    extra = [f"interval_sec={float(interval)}"]
    if port is not None:
        extra.append(f"port={port}")
    if debug:
        extra.append("debug=true")
    if action == "led":
        extra.append("led=true")
    cfg, profile = _resolve(instrument, None, extra)
    if profile.passive:
        raise typer.BadParameter(f"Instrument '{profile.name}' does not accept commands")
    _configure_logging(cfg.debug)

    channel = open_channel(cfg, profile)
    try:
        session = build_session(cfg, profile, channel, trace=_trace_to_log if cfg.debug else None)
        if action != "reset" and not isinstance(session, Fluke287Session):
            raise typer.BadParameter(f"'{action}' is only supported by the fluke287 profile")
        if action == "reset":
            session.reset()
            logger.info("Reset %s", profile.name)
        elif action == "backlight":
            session.backlight()
        else:
            MeterRunner(session, profile, interval_sec=cfg.interval_sec).run(lambda record: None, iterations=count)
    except MeterError as exc:
        logger.error("FATAL: %s", exc)
        raise typer.Exit(code=1) from exc
    finally:
        channel.close()


@app.command()
def plot(
    input_path: Path = typer.Option(..., "--in", exists=True, readable=True, help="CSV log written by 'read --csv'."),
    out: Path = typer.Option(Path("meterlink_plot.png"), "--out", help="Output PNG."),
) -> None:
    """Plot a reading log against time, one panel per channel."""

    try:
        from .plotting import load_log, plot_log, summarize_log
    except ImportError as exc:
        raise typer.BadParameter("pandas and matplotlib are required (pip install .[plot])") from exc
    try:
        summary = summarize_log(load_log(input_path))
        plot_log(input_path, out)
    except (RuntimeError, ValueError) as exc:
        typer.echo(f"[warning] plotting skipped: {exc}")
        raise typer.Exit(code=1) from exc
    for channel, stats in summary.items():
        typer.echo(
            f"{channel}: n={int(stats['count'])} missing={int(stats['missing'])} "
            f"min={stats['min']:g} max={stats['max']:g} mean={stats['mean']:g}"
        )
    typer.echo(f"Plot written to {out}")


@app.command()
def instruments() -> None:
    """List supported instrument profiles."""

    for name, profile in PROFILES.items():
        mode = "stream" if profile.passive else f"min interval {profile.min_interval:g}s"
        typer.echo(f"{name:10s} {profile.baudrate:>6d} baud  {mode:20s} {profile.description}")


def run() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    run()
