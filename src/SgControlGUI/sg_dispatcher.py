"""
Command dispatcher

Sends one command at a time over a transport and reads the response with
the terminator that matches the command kind. Every exchange is reported
to an optional transcript sink as (direction, text) pairs.
"""

import enum
import logging
import threading
from typing import Callable, Optional, Union

from sg_commands import Command, CommandKind, parse_command
from sg_properties import (SHORT_TERMINATOR, LONG_TERMINATOR, ERROR_SENTINEL,
                           POLL_INTERVAL, SINGLE_LINE_TIMEOUT, MULTI_LINE_TIMEOUT)
from sg_reader import Response, ResponseStatus, read_until

logger = logging.getLogger(__name__)


class Direction(enum.Enum):
    OUTBOUND = ">"
    INBOUND = "<"


LogSink = Callable[[Direction, str], None]


def format_transcript_line(direction: Direction, text: str) -> str:
    """
    Render a transcript entry for display.

    Outbound: ">\\t$IDN,0". Inbound multi-line responses get the "<\\t"
    marker on every physical line.
    """
    prefix = direction.value + "\t"
    lines = text.rstrip("\r\n").split("\r\n")
    if direction is Direction.INBOUND and len(lines) > 1:
        return "\n".join(prefix + line for line in lines)
    return prefix + text.rstrip("\r\n")


class _AnyEvent:
    """Set when any of the given events is set"""

    def __init__(self, *events):
        self._events = [e for e in events if e is not None]

    def is_set(self) -> bool:
        return any(e.is_set() for e in self._events)


class CommandDispatcher:
    """
    Runs command/response exchanges on one transport.

    An internal lock guarantees that at most one exchange is in flight, so
    callers on different threads (GUI workers, a CLI) are serialized.

    Args:
        transport: object with `is_open`, `write(bytes) -> bool` and
            `read_available(wait) -> bytes`
        log_sink: called with (Direction, text) for each transcript entry
        poll_interval: seconds per read attempt
        single_line_timeout: overall deadline for single-line commands
        multi_line_timeout: overall deadline for multi-line commands
    """

    def __init__(self, transport, log_sink: Optional[LogSink] = None,
                 poll_interval: float = POLL_INTERVAL,
                 single_line_timeout: Optional[float] = SINGLE_LINE_TIMEOUT,
                 multi_line_timeout: Optional[float] = MULTI_LINE_TIMEOUT):
        self.transport = transport
        self.log_sink = log_sink
        self.poll_interval = poll_interval
        self.single_line_timeout = single_line_timeout
        self.multi_line_timeout = multi_line_timeout
        self._exchange_lock = threading.Lock()
        self._closing = threading.Event()

    @property
    def busy(self) -> bool:
        """True while an exchange is in flight"""
        return self._exchange_lock.locked()

    def close(self):
        """
        Abort the exchange in flight, if any, and close the transport.

        The aborted exchange ends with a CANCELLED response. The transport
        is closed only once that exchange has released the port.
        """
        self._closing.set()
        try:
            with self._exchange_lock:
                self.transport.close()
        finally:
            self._closing.clear()

    def send(self, command: Command,
             cancel: Optional[threading.Event] = None) -> Response:
        """Send using the entry point that matches the command kind"""
        if command.kind is CommandKind.MULTI_LINE:
            return self.send_multi_line(command, cancel)
        return self.send_single_line(command, cancel)

    def send_single_line(self, command: Union[Command, str],
                         cancel: Optional[threading.Event] = None) -> Response:
        """Send a command answered by a single line ending in \\r\\n"""
        return self._exchange(command, SHORT_TERMINATOR,
                              self.single_line_timeout, cancel)

    def send_multi_line(self, command: Union[Command, str],
                        cancel: Optional[threading.Event] = None) -> Response:
        """Send a command answered by several lines ending in OK\\r\\n"""
        return self._exchange(command, LONG_TERMINATOR,
                              self.multi_line_timeout, cancel)

    def _exchange(self, command, terminator, timeout, cancel) -> Response:
        if isinstance(command, str):
            command = parse_command(command)

        with self._exchange_lock:
            if self._closing.is_set():
                return Response(b"", ResponseStatus.CANCELLED)
            if not self.transport.is_open:
                logger.debug("Not sending %s: port is closed", command)
                return Response.empty()

            if self.transport.write(command.to_wire()):
                logger.debug("TX: %s", command)
                self._emit(Direction.OUTBOUND, str(command))

            response = read_until(self.transport, terminator,
                                  error_sentinel=ERROR_SENTINEL,
                                  poll_interval=self.poll_interval,
                                  timeout=timeout,
                                  cancel=_AnyEvent(cancel, self._closing))

            logger.debug("RX: %r (%s)", response.text, response.status.value)
            self._emit(Direction.INBOUND, response.text)
            return response

    def _emit(self, direction: Direction, text: str):
        if self.log_sink is not None:
            self.log_sink(direction, text)
