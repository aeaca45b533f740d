"""
Serial transport for the signal generator board

Owns the pyserial port object and exposes the byte-level primitives the
response reader and dispatcher need: write, read-what-is-available and a
liveness check. Any I/O failure closes the port, the same way a serial
error tears down the connection in the GUI.
"""

import enum
import logging
import time
from typing import Optional

import serial

from sg_properties import (BAUD_RATE, DATA_BITS, PARITY, STOP_BITS, XONXOFF,
                           RTSCTS, WRITE_TIMEOUT)

logger = logging.getLogger(__name__)


class ConnectionState(enum.Enum):
    CLOSED = "closed"
    OPEN = "open"


class SerialTransport:
    """
    Serial connection with the fixed line configuration of the board.

    Usage:
        transport = SerialTransport("/dev/ttyACM0")
        transport.open()
        transport.write(b"$IDN,0\\r\\n")
        data = transport.read_available(0.5)
        transport.close()

    `port_name` may also be a pyserial URL such as "loop://".
    """

    _POLL_SLICE = 0.005

    def __init__(self, port_name: Optional[str] = None,
                 write_timeout: float = WRITE_TIMEOUT):
        self.port_name = port_name
        self.write_timeout = write_timeout
        self._ser: Optional[serial.SerialBase] = None

    @property
    def is_open(self) -> bool:
        return self._ser is not None and self._ser.is_open

    @property
    def state(self) -> ConnectionState:
        return ConnectionState.OPEN if self.is_open else ConnectionState.CLOSED

    def open(self):
        """
        Open the configured port.

        Raises:
            ConnectionError: if no port is configured or pyserial fails to open it
        """
        if self.is_open:
            return
        if not self.port_name:
            raise ConnectionError("No serial port selected")

        try:
            self._ser = serial.serial_for_url(
                self.port_name,
                baudrate=BAUD_RATE,
                bytesize=DATA_BITS,
                parity=PARITY,
                stopbits=STOP_BITS,
                xonxoff=XONXOFF,
                rtscts=RTSCTS,
                timeout=0,
                write_timeout=self.write_timeout,
            )
        except (serial.SerialException, OSError) as e:
            self._ser = None
            raise ConnectionError(f"Failed to open {self.port_name}: {e}") from e
        logger.info("Port opened: %s", self.port_name)

    def close(self):
        """Close the port (no-op when already closed)"""
        ser, self._ser = self._ser, None
        if ser is None:
            return
        try:
            ser.close()
        except (serial.SerialException, OSError) as e:
            logger.warning("Error while closing %s: %s", self.port_name, e)
        logger.info("Port closed: %s", self.port_name)

    def write(self, data: bytes) -> bool:
        """
        Write all bytes.

        Returns:
            True if the write completed within the write timeout, False if it
            did not or the port is closed
        """
        ser = self._ser
        if ser is None or not ser.is_open:
            return False
        try:
            written = ser.write(data)
        except serial.SerialTimeoutException:
            logger.warning("Write to %s did not complete within %.3f s",
                           self.port_name, self.write_timeout)
            return False
        except (serial.SerialException, OSError) as e:
            self._fail(ser, e)
            return False
        return written is None or written == len(data)

    def read_available(self, wait: float) -> bytes:
        """
        Wait up to `wait` seconds for incoming bytes and return whatever is
        buffered. Returns b"" when nothing arrived or the port is closed.
        """
        deadline = time.monotonic() + wait
        while True:
            # Local reference, close() may run on another thread
            ser = self._ser
            if ser is None or not ser.is_open:
                break
            try:
                waiting = ser.in_waiting
                if waiting > 0:
                    return ser.read(waiting)
            except (serial.SerialException, OSError) as e:
                self._fail(ser, e)
                return b""

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                break
            time.sleep(min(self._POLL_SLICE, remaining))
        return b""

    def _fail(self, ser, error):
        if self._ser is not ser:
            # Already closed or reopened elsewhere
            return
        logger.error("Serial port error on %s: %s", self.port_name, error)
        self.close()

    def __enter__(self):
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()
