"""
Response reader

Accumulates bytes from a connection until a terminator pattern or the
error sentinel shows up, the link drops, the deadline passes or the caller
cancels.
"""

import enum
import threading
import time
from dataclasses import dataclass
from typing import Optional

from sg_properties import ERROR_SENTINEL, POLL_INTERVAL


class ResponseStatus(enum.Enum):
    COMPLETE = "complete"
    ERROR_SENTINEL = "error_sentinel"
    CONNECTION_CLOSED = "connection_closed"
    TIMED_OUT = "timed_out"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class Response:
    """Raw response of one exchange plus how the read ended"""
    raw: bytes
    status: ResponseStatus

    @property
    def text(self) -> str:
        return self.raw.decode("utf-8", errors="replace")

    @property
    def ok(self) -> bool:
        return self.status is ResponseStatus.COMPLETE

    @property
    def is_empty(self) -> bool:
        return not self.raw

    @classmethod
    def empty(cls) -> "Response":
        """Response returned when no exchange could take place"""
        return cls(b"", ResponseStatus.COMPLETE)


def read_until(connection, terminator: str,
               error_sentinel: str = ERROR_SENTINEL,
               poll_interval: float = POLL_INTERVAL,
               timeout: Optional[float] = None,
               cancel: Optional[threading.Event] = None) -> Response:
    """
    Read from `connection` until the response is complete.

    Args:
        connection: object with `read_available(wait) -> bytes` and `is_open`
        terminator: pattern that marks the response as complete
        error_sentinel: substring that marks a device-reported error
        poll_interval: seconds to wait for new bytes per iteration
        timeout: overall deadline in seconds, None waits forever
        cancel: event that aborts the wait when set

    Returns:
        Response with the accumulated bytes. The checks run in this order
        after every read: error sentinel, connection closed, terminator,
        deadline, cancellation.
    """
    term = terminator.encode("ascii")
    sentinel = error_sentinel.encode("ascii")
    deadline = None if timeout is None else time.monotonic() + timeout
    buffer = bytearray()

    while True:
        buffer += connection.read_available(poll_interval)

        if sentinel in buffer:
            return Response(bytes(buffer), ResponseStatus.ERROR_SENTINEL)
        if not connection.is_open:
            return Response(bytes(buffer), ResponseStatus.CONNECTION_CLOSED)
        if term in buffer:
            return Response(bytes(buffer), ResponseStatus.COMPLETE)
        if deadline is not None and time.monotonic() >= deadline:
            return Response(bytes(buffer), ResponseStatus.TIMED_OUT)
        if cancel is not None and cancel.is_set():
            return Response(bytes(buffer), ResponseStatus.CANCELLED)
