from __future__ import annotations

import enum
import logging
import re
from dataclasses import dataclass
from typing import Callable, List, Optional

from .errors import DeviceUnavailable, ProtocolStatusError
from .transport import Clock, SystemClock, TransportChannel

logger = logging.getLogger(__name__)


class StatusMode(str, enum.Enum):
    NONE = "none"
    QUERY = "query"
    RETURN_CODE = "return_code"
    PROMPT = "prompt"


class TransactionState(str, enum.Enum):
    IDLE = "idle"
    SENT = "sent"
    AWAITING_REPLY = "awaiting_reply"
    SUCCESS = "success"
    STATUS_ERROR = "status_error"
    DEVICE_UNAVAILABLE = "device_unavailable"


@dataclass(frozen=True)
class StatusQuery:
    command: str
    timeout: float
    success_pattern: str

    def accepts(self, status: str) -> bool:
        return re.search(self.success_pattern, status) is not None


@dataclass(frozen=True)
class LinkProfile:
    """How one instrument family frames and verifies its commands."""

    terminator: str = "\r"
    status_mode: StatusMode = StatusMode.NONE
    status_query: Optional[StatusQuery] = None
    prompt_marker: str = "=>"
    pre_flush: bool = False
    strip_newlines: bool = False
    strip_trailer: bool = False
    reset_command: Optional[str] = None
    reset_settle: float = 2.0
    reset_reply: bytes = b""
    default_timeout: float = 1.0


@dataclass(frozen=True)
class CommandTransaction:
    command: str
    reply_timeout: float
    status_query: Optional[StatusQuery] = None

    @property
    def success_pattern(self) -> Optional[str]:
        return self.status_query.success_pattern if self.status_query else None


@dataclass(frozen=True)
class TraceEvent:
    direction: str  # tx | rx | flush
    command: str
    data: bytes

    @property
    def hexdump(self) -> str:
        return " ".join(f"{byte:02X}" for byte in self.data)


TraceHook = Callable[[TraceEvent], None]

# Leading field of a return-code reply: the code, ended by CR, LF, a comma or the reply end.
RETURN_CODE_RE = re.compile(rb"\s*([+-]?\d+)(?:\r|,|\n|\Z)")


def reply_text(data: bytes) -> str:
    return data.decode("latin-1")


def strip_newlines(data: bytes) -> bytes:
    return data.replace(b"\r", b"").replace(b"\n", b"")


class CommandTransactor:
    """
    Runs one command at a time against an exclusively owned channel:
    write, settle, drain the reply, verify status.

    Nothing is retried here; a failed transaction raises and the caller
    decides what happens next.
    """

    def __init__(
        self,
        channel: TransportChannel,
        link: LinkProfile,
        *,
        clock: Optional[Clock] = None,
        trace: Optional[TraceHook] = None,
        read_chunk: int = 4096,
    ):
        self.channel = channel
        self.link = link
        self.clock = clock or SystemClock()
        self._trace = trace
        self._read_chunk = read_chunk
        self.state = TransactionState.IDLE

    def transact(self, command: str, timeout: Optional[float] = None) -> bytes:
        transaction = CommandTransaction(
            command=command,
            reply_timeout=self.link.default_timeout if timeout is None else timeout,
            status_query=self.link.status_query if self.link.status_mode is StatusMode.QUERY else None,
        )
        self.state = TransactionState.IDLE
        if self.link.pre_flush:
            self.flush_input()
        self._send(command)
        self.state = TransactionState.SENT

        if self.link.reset_command is not None and command == self.link.reset_command:
            logger.debug("System reset requested, sleeping %.1fs", self.link.reset_settle)
            self.clock.sleep(self.link.reset_settle)
            self.state = TransactionState.SUCCESS
            return self.link.reset_reply

        self.state = TransactionState.AWAITING_REPLY
        self.clock.sleep(transaction.reply_timeout)
        reply = self._collect(command)
        if self.link.strip_newlines:
            reply = strip_newlines(reply)
        if not reply:
            self.state = TransactionState.DEVICE_UNAVAILABLE
            raise DeviceUnavailable(command)
        try:
            payload = self._verify(transaction, reply)
        except ProtocolStatusError:
            self.state = TransactionState.STATUS_ERROR
            raise
        self.state = TransactionState.SUCCESS
        logger.debug("Command %r OK (%d bytes)", command, len(payload))
        return payload

    def query(self, command: str, timeout: Optional[float] = None) -> str:
        return reply_text(self.transact(command, timeout))

    def flush_input(self) -> bytes:
        garbage = self._collect("", direction="flush")
        if garbage:
            logger.debug("Discarded %d stale bytes before command", len(garbage))
        return garbage

    def _verify(self, transaction: CommandTransaction, reply: bytes) -> bytes:
        mode = self.link.status_mode
        if mode is StatusMode.QUERY:
            self._check_status(transaction)
        elif mode is StatusMode.RETURN_CODE:
            return self._check_return_code(transaction.command, reply)
        elif mode is StatusMode.PROMPT:
            return self._check_prompt(transaction.command, reply)
        return reply

    def _check_status(self, transaction: CommandTransaction) -> None:
        query = transaction.status_query
        assert query is not None
        self._send(query.command)
        self.clock.sleep(query.timeout)
        status = reply_text(strip_newlines(self._collect(query.command)))
        if not query.accepts(status):
            raise ProtocolStatusError(transaction.command, status)
        logger.debug("Status after %r: %r", transaction.command, status)

    def _check_return_code(self, command: str, reply: bytes) -> bytes:
        match = RETURN_CODE_RE.match(reply)
        if match is None:
            raise ProtocolStatusError(command, reply_text(strip_newlines(reply)))
        code = int(match.group(1))
        if code > 0:
            raise ProtocolStatusError(command, f"error code {code}")
        payload = reply[match.end() :]
        if self.link.strip_trailer and payload:
            payload = payload[:-1]
        return payload

    def _check_prompt(self, command: str, reply: bytes) -> bytes:
        lines: List[str] = reply_text(reply).split("\n")
        while lines and not lines[-1]:
            lines.pop()
        if not lines:
            raise ProtocolStatusError(command, "")
        marker = lines[1] if len(lines) > 1 else lines[0]
        if self.link.prompt_marker not in marker:
            raise ProtocolStatusError(command, lines[0])
        return lines[0].encode("latin-1")

    def _send(self, command: str) -> None:
        payload = (command + self.link.terminator).encode("ascii")
        self._emit("tx", command, payload)
        self.channel.write(payload)
        self.channel.drain()

    def _collect(self, command: str, *, direction: str = "rx") -> bytes:
        chunks: List[bytes] = []
        while True:
            chunk = self.channel.read(self._read_chunk)
            if not chunk:
                break
            chunks.append(chunk)
        data = b"".join(chunks)
        self._emit(direction, command, data)
        return data

    def _emit(self, direction: str, command: str, data: bytes) -> None:
        if self._trace is not None:
            self._trace(TraceEvent(direction=direction, command=command, data=data))
