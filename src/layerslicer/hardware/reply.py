"""
Classification of single-line replies from a RepRap-style controller.

The host numbers every outgoing command; the controller answers each line
with one of:

- ``ok`` optionally followed by telemetry fields (``T:200.1 B:60.0``)
- ``rs <n>`` / ``resend <n>`` asking for line ``n`` again
- ``!!`` for a hardware fault
- ``start`` after a controller reset, which restarts line numbering

Errors are reported through the ``on_error`` callback and the returned
:class:`ReplyResult`; nothing here raises for a bad reply, the caller decides
whether to retry or abort.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from layerslicer.core.logging import get_logger

logger = get_logger(__name__)

_FIELD_RE = re.compile(r"^([A-Za-z]):?([-+]?(?:\d+\.?\d*|\.\d+)(?:[eE][-+]?\d+)?)$")
_IGNORED_FIELDS = {"C"}


class ReplyKind(Enum):
    OK = "ok"
    RESEND = "resend"
    START = "start"
    ERROR = "error"


class DeviceErrorCode(Enum):
    """Reply classification errors."""

    UNKNOWN_REPLY = "unknown_reply"
    UNSENT_RESEND = "unsent_resend"
    MALFORMED_RESEND_REQUEST = "malformed_resend_request"
    HARDWARE_FAULT = "hardware_fault"


class TelemetryField(Enum):
    """Inline ``ok`` fields, keyed by their letter."""

    NOZZLE_TEMP = "T"
    BED_TEMP = "B"
    X_POS = "X"
    Y_POS = "Y"
    Z_POS = "Z"
    E_POS = "E"


@dataclass(frozen=True)
class Telemetry:
    field: TelemetryField
    value: float


@dataclass(frozen=True)
class ReplyResult:
    """Outcome of one reply line."""

    kind: ReplyKind
    reply: str
    telemetry: Tuple[Telemetry, ...] = ()
    error: Optional[DeviceErrorCode] = None
    resend_line: Optional[int] = None

    @property
    def ok(self) -> bool:
        return self.error is None


TelemetryCallback = Callable[[Telemetry], None]
ErrorCallback = Callable[[DeviceErrorCode, str], None]
ResendCallback = Callable[[int, Optional[str]], None]


def checksum(line: str) -> int:
    """XOR of all bytes of ``line``, as appended after ``*``."""
    value = 0
    for byte in line.encode("ascii", errors="replace"):
        value ^= byte
    return value


class ReplyHandler:
    """
    Host side of the line-numbered command stream.

    Args:
        initial_line: Line number assigned to the first command after a reset.
        on_telemetry: Called once per telemetry field of an ``ok`` reply.
        on_error: Called with the error code and the raw reply.
        on_resend: Called with the requested line number and the command
            text sent under it (None if it is no longer in the history).

    Example:
        >>> handler = ReplyHandler(on_telemetry=print)
        >>> handler.send("G28")
        'N0 G28*19'
        >>> handler.handle_reply("ok T:200.1").ok
        True
    """

    def __init__(
        self,
        initial_line: int = 0,
        on_telemetry: Optional[TelemetryCallback] = None,
        on_error: Optional[ErrorCallback] = None,
        on_resend: Optional[ResendCallback] = None,
    ) -> None:
        self.initial_line = initial_line
        self.line_number = initial_line
        self.history: Dict[int, str] = {}
        self.on_telemetry = on_telemetry
        self.on_error = on_error
        self.on_resend = on_resend

    def send(self, command: str) -> str:
        """Number ``command``, remember it for resends and return the wire line."""
        line = f"N{self.line_number} {command}"
        self.history[self.line_number] = command
        self.line_number += 1
        return f"{line}*{checksum(line)}"

    def reset_line_number(self) -> None:
        self.line_number = self.initial_line
        self.history.clear()

    def _error(self, code: DeviceErrorCode, reply: str, **extra) -> ReplyResult:
        logger.warning("device_reply_error", code=code.value, reply=reply)
        if self.on_error is not None:
            self.on_error(code, reply)
        return ReplyResult(ReplyKind.ERROR, reply, error=code, **extra)

    def handle_reply(self, reply: str) -> ReplyResult:
        """Classify one reply line and fire the matching callbacks."""
        line = reply.strip()
        lower = line.lower()

        if lower.startswith("ok"):
            return self._handle_ok(line)
        if lower.startswith("rs") or lower.startswith("resend"):
            return self._handle_resend(line)
        if line.startswith("!!"):
            return self._error(DeviceErrorCode.HARDWARE_FAULT, line)
        if lower.startswith("start"):
            self.reset_line_number()
            logger.info("device_restarted", line_number=self.line_number)
            return ReplyResult(ReplyKind.START, line)
        return self._error(DeviceErrorCode.UNKNOWN_REPLY, line)

    def _handle_ok(self, line: str) -> ReplyResult:
        telemetry = []
        for token in line[2:].split():
            match = _FIELD_RE.match(token)
            if match is None:
                return self._error(DeviceErrorCode.UNKNOWN_REPLY, line, telemetry=tuple(telemetry))
            letter = match.group(1).upper()
            if letter in _IGNORED_FIELDS:
                continue
            try:
                field = TelemetryField(letter)
            except ValueError:
                return self._error(DeviceErrorCode.UNKNOWN_REPLY, line, telemetry=tuple(telemetry))
            item = Telemetry(field, float(match.group(2)))
            telemetry.append(item)
            if self.on_telemetry is not None:
                self.on_telemetry(item)
        return ReplyResult(ReplyKind.OK, line, telemetry=tuple(telemetry))

    def _handle_resend(self, line: str) -> ReplyResult:
        start = next((i for i, ch in enumerate(line) if ch in "123456789"), -1)
        if start < 0:
            return self._error(DeviceErrorCode.MALFORMED_RESEND_REQUEST, line)
        digits = re.match(r"\d+", line[start:]).group(0)
        line_no = int(digits)
        if line_no < self.line_number and line[start - 1] != "-":
            logger.info("device_resend", line=line_no)
            if self.on_resend is not None:
                self.on_resend(line_no, self.history.get(line_no))
            return ReplyResult(ReplyKind.RESEND, line, resend_line=line_no)
        return self._error(DeviceErrorCode.UNSENT_RESEND, line, resend_line=line_no)
