"""
Signal generator board properties

Fixed serial line settings, USB identifiers and protocol constants shared
by the transport, reader, dispatcher and the applications.
"""

import serial

# USB identifiers of the signal generator board (decimal)
TARGET_VENDOR_ID = 8137
TARGET_PRODUCT_ID = 131

# Serial line configuration (fixed, never negotiated)
BAUD_RATE = 115200
DATA_BITS = serial.EIGHTBITS
PARITY = serial.PARITY_NONE
STOP_BITS = serial.STOPBITS_ONE
XONXOFF = False
RTSCTS = False

# Protocol framing
CHANNEL = "0"
LINE_ENDING = "\r\n"
SHORT_TERMINATOR = "\r\n"
LONG_TERMINATOR = "OK\r\n"
ERROR_SENTINEL = "ERR"
SWEEP_TAG = "$SWPD"

# Timing (seconds)
POLL_INTERVAL = 0.5         # wait per read attempt
WRITE_TIMEOUT = 0.25        # outbound write must finish within this to be logged
SINGLE_LINE_TIMEOUT = 10.0  # overall deadline for single-line exchanges
MULTI_LINE_TIMEOUT = 60.0   # sweeps can take a while
PORT_POLL_INTERVAL = 1000   # ms, port list refresh in the GUI
