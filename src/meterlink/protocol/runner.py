from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Callable, Iterator, List, Optional

from .ascii_frames import decode_qdda, is_overload, parse_fetch_values, parse_quick_measurement, parse_value_unit_pairs
from .binary_frames import decode_display_frame
from .config import MeterConfig, TimeoutConfig
from .instruments import InstrumentProfile
from .lcd_frames import LcdFrameParser
from .records import Channel, MeasurementRecord, Sentinel
from .transactor import CommandTransactor, TraceHook
from .transport import Clock, SerialChannel, SerialSettings, StreamChannel, SystemClock, TransportChannel
from .units import BK_UNIT_TOKENS, U1241_UNIT_TOKENS, UnitResolver

logger = logging.getLogger(__name__)

RecordSink = Callable[[MeasurementRecord], None]


class MeterSession:
    """One instrument family's reading logic on top of a transactor."""

    def __init__(self, transactor: CommandTransactor, timeouts: TimeoutConfig, clock: Optional[Clock] = None):
        self.transactor = transactor
        self.timeouts = timeouts
        self.clock = clock or transactor.clock

    def prepare(self) -> None:
        """Queries made once before polling starts."""

    def read(self) -> List[MeasurementRecord]:
        raise NotImplementedError

    def reset(self) -> bytes:
        return self.transactor.transact("*RST")


class BK2831Session(MeterSession):
    def __init__(self, transactor: CommandTransactor, timeouts: TimeoutConfig, clock: Optional[Clock] = None):
        super().__init__(transactor, timeouts, clock)
        self.resolver = UnitResolver(BK_UNIT_TOKENS)
        self.function: Optional[str] = None
        self.function2 = ""

    def prepare(self) -> None:
        self.function = self.resolver.resolve(self.transactor.query("FUNC?", self.timeouts.function_sec))
        # The secondary display may be off; only the primary function is mandatory.
        secondary = self.transactor.query("FUNC2?", self.timeouts.function_sec)
        self.function2 = self.resolver.try_resolve(secondary) or ""
        logger.info("Measuring %s / %s", self.function, self.function2 or "-")

    def read(self) -> List[MeasurementRecord]:
        if self.function is None:
            self.prepare()
        values = parse_fetch_values(self.transactor.query("FETCH?", self.timeouts.fetch_sec))
        now = self.clock.now()
        records = [MeasurementRecord(timestamp=now, channel=Channel.PRIMARY, value=values[0], unit=self.function or "")]
        if len(values) > 1:
            records.append(
                MeasurementRecord(timestamp=now, channel=Channel.SECONDARY, value=values[1], unit=self.function2)
            )
        return records


class Fluke45Session(MeterSession):
    def read(self) -> List[MeasurementRecord]:
        pairs = parse_value_unit_pairs(self.transactor.query("MEAS?", self.timeouts.fetch_sec))
        now = self.clock.now()
        channels = (Channel.PRIMARY, Channel.SECONDARY)
        return [
            MeasurementRecord(timestamp=now, channel=channel, value=value, unit=unit)
            for channel, (value, unit) in zip(channels, pairs)
        ]


class Fluke89Session(MeterSession):
    def __init__(
        self,
        transactor: CommandTransactor,
        timeouts: TimeoutConfig,
        clock: Optional[Clock] = None,
        screen: bool = False,
    ):
        super().__init__(transactor, timeouts, clock)
        self.screen = screen

    def read(self) -> List[MeasurementRecord]:
        if self.screen:
            frame = decode_display_frame(self.transactor.transact("QD 0", self.timeouts.fetch_sec))
            return frame.records(self.clock.now())
        value, unit = parse_quick_measurement(self.transactor.query("QM", self.timeouts.fetch_sec))
        return [MeasurementRecord(timestamp=self.clock.now(), channel=Channel.PRIMARY, value=value, unit=unit)]


class Fluke287Session(MeterSession):
    def __init__(
        self,
        transactor: CommandTransactor,
        timeouts: TimeoutConfig,
        clock: Optional[Clock] = None,
        led: bool = False,
    ):
        super().__init__(transactor, timeouts, clock)
        self.led = led
        self._led_on = False

    def read(self) -> List[MeasurementRecord]:
        if self.led:
            self.toggle_led()
            return []
        reply = self.transactor.query("QDDA", self.timeouts.fetch_sec)
        snapshot = decode_qdda(reply, timestamp=self.clock.now())
        logger.debug("Measuring %s (%s)", snapshot.measuring, ", ".join(snapshot.modes) or "no modes")
        return snapshot.readings

    def backlight(self) -> None:
        self.transactor.transact("PRESS BACKLIGHT", self.timeouts.fetch_sec)

    def toggle_led(self) -> bool:
        command = "LEDT OFF" if self._led_on else "LEDT ON"
        self.transactor.transact(command, self.timeouts.fetch_sec)
        self._led_on = not self._led_on
        return self._led_on


class U1241Session(MeterSession):
    def __init__(self, transactor: CommandTransactor, timeouts: TimeoutConfig, clock: Optional[Clock] = None):
        super().__init__(transactor, timeouts, clock)
        self.resolver = UnitResolver(U1241_UNIT_TOKENS)

    def read(self) -> List[MeasurementRecord]:
        values = parse_fetch_values(self.transactor.query("FETC?", self.timeouts.fetch_sec))
        unit = self.resolver.resolve(self.transactor.query("CONF?", self.timeouts.function_sec))
        now = self.clock.now()
        if is_overload(values[0]):
            return [MeasurementRecord(timestamp=now, channel=Channel.PRIMARY, value=Sentinel.OFF_LINE, state="OL")]
        return [MeasurementRecord(timestamp=now, channel=Channel.PRIMARY, value=values[0], unit=unit)]


class LcdStreamSession:
    """Passive meter: frames arrive unrequested and are decoded as they come."""

    def __init__(
        self,
        channel: TransportChannel,
        clock: Optional[Clock] = None,
        chunk_size: int = 256,
        follow: bool = False,
        poll_sec: float = 0.05,
    ):
        self.channel = channel
        self.clock = clock or SystemClock()
        self.parser = LcdFrameParser()
        self.chunk_size = chunk_size
        self.follow = follow
        self.poll_sec = poll_sec

    def stream(self) -> Iterator[MeasurementRecord]:
        while True:
            chunk = self.channel.read(self.chunk_size)
            # An empty feed still drains whole frames left over from an earlier stop.
            for frame in self.parser.feed(chunk):
                yield frame.to_record(self.clock.now())
            if not chunk:
                if not self.follow:
                    return
                self.clock.sleep(self.poll_sec)

    def stats(self):
        return self.parser.stats()


class MeterRunner:
    """
    Poll loop: read, hand records to the sink, sleep.

    The sleep is `interval - latency` because every reading already spends
    roughly `latency` seconds inside command settle delays.
    """

    def __init__(
        self,
        session,
        profile: InstrumentProfile,
        interval_sec: float = 0.0,
        clock: Optional[Clock] = None,
    ):
        self.session = session
        self.profile = profile
        self.clock = clock or SystemClock()
        self.single = interval_sec <= 0
        self.interval_sec = self.clamp_interval(interval_sec)
        self.count = 0

    def clamp_interval(self, interval_sec: float) -> float:
        if 0 < interval_sec < self.profile.min_interval:
            logger.warning(
                "Interval %.3fs is below the %s minimum, using %.3fs",
                interval_sec,
                self.profile.name,
                self.profile.min_interval,
            )
            return self.profile.min_interval
        return interval_sec

    @property
    def sleep_sec(self) -> float:
        return max(self.interval_sec - self.profile.latency, 0.0)

    def run(self, sink: RecordSink, iterations: Optional[int] = None) -> int:
        limit = 1 if self.single else iterations
        try:
            if isinstance(self.session, LcdStreamSession):
                self._run_stream(sink, limit)
            else:
                self._run_polled(sink, limit)
        except KeyboardInterrupt:
            logger.info("Stopping (Ctrl+C)")
        if isinstance(self.session, LcdStreamSession):
            stats = self.session.stats()
            logger.info("Frames: %d decoded, %d discarded", stats["frames"], stats["sync_errors"])
        return self.count

    def _run_polled(self, sink: RecordSink, limit: Optional[int]) -> None:
        self.session.prepare()
        polls = 0
        while limit is None or polls < limit:
            for record in self.session.read():
                sink(record)
                self.count += 1
            polls += 1
            if limit is not None and polls >= limit:
                break
            self.clock.sleep(self.sleep_sec)

    def _run_stream(self, sink: RecordSink, limit: Optional[int]) -> None:
        for record in self.session.stream():
            sink(record)
            self.count += 1
            if limit is not None and self.count >= limit:
                break


def open_channel(config: MeterConfig, profile: InstrumentProfile, replay: Optional[Path] = None) -> TransportChannel:
    if replay is not None:
        return StreamChannel(replay.open("rb"), owns_handle=True)
    if config.port == "-":
        return StreamChannel(sys.stdin.buffer)
    settings = SerialSettings(
        port=config.port,
        baudrate=config.baudrate or profile.baudrate,
        write_timeout=config.serial.write_timeout_sec,
        dtr=config.serial.dtr,
        rts=config.serial.rts,
    )
    return SerialChannel(settings).open()


def build_session(
    config: MeterConfig,
    profile: InstrumentProfile,
    channel: TransportChannel,
    *,
    clock: Optional[Clock] = None,
    trace: Optional[TraceHook] = None,
):
    clock = clock or SystemClock()
    if profile.passive:
        return LcdStreamSession(
            channel,
            clock=clock,
            chunk_size=config.serial.chunk_size,
            follow=isinstance(channel, SerialChannel),
        )
    transactor = CommandTransactor(channel, profile.link_for(config.timeouts), clock=clock, trace=trace)
    name = profile.name
    if name == "bk2831":
        return BK2831Session(transactor, config.timeouts, clock)
    if name == "fluke45":
        return Fluke45Session(transactor, config.timeouts, clock)
    if name == "fluke89iv":
        return Fluke89Session(transactor, config.timeouts, clock, screen=config.screen)
    if name == "fluke287":
        return Fluke287Session(transactor, config.timeouts, clock, led=config.led)
    if name == "u1241an":
        return U1241Session(transactor, config.timeouts, clock)
    raise ValueError(f"No session for instrument '{name}'")
