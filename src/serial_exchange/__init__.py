"""
Serial Exchange - single command/response exchanges with serial instruments

This package talks to instruments attached over a serial link (RS-232,
USB-serial adapters, virtual COM ports).  One call performs exactly one
exchange:

- **Parameter validation** before any port is touched
- **Link lifecycle** with guaranteed close on every exit path
- **Bounded read** that races incoming data against a timeout and an
  external cancellation signal
- **Response classification** into ACK, NAK, or unclassified replies

Works on Windows (COMx) and Linux (/dev/ttyUSB*, /dev/ttyS*, /dev/ttyACM*).
"""

import logging
import os

logging.getLogger("serial_exchange").addHandler(logging.NullHandler())

__version__ = "0.1.0"

# Serial line settings
SERIAL_BAUD_RATE = 9600
SERIAL_MAX_BAUD_RATE = 115200
SERIAL_DATA_BITS = 8
SERIAL_VALID_DATA_BITS = (5, 6, 7, 8)
SERIAL_LINE_TERMINATOR = "\r\n"
SERIAL_ENCODING = "ascii"

# Timeout settings
SERIAL_EXCHANGE_TIMEOUT_S = 5.0  # seconds — bound on the reply wait, not the write
SERIAL_WRITE_TIMEOUT = 10  # seconds — blocking with failsafe; prevents infinite hangs
SERIAL_POLL_INTERVAL_S = 0.01  # read-wait poll granularity (10 ms)

# Default instrument port.
# On Windows this is a COM port (COM3, COM4, …).
# On Linux this is a /dev/ttyS*, /dev/ttyUSB*, or /dev/ttyACM* path.
# Override via the SERIAL_EXCHANGE_PORT environment variable.
DEFAULT_SERIAL_PORT = os.environ.get("SERIAL_EXCHANGE_PORT", "")

from .config import Handshake, LinkConfig, Parity, StopBits  # noqa: E402
from .diagnostics import (  # noqa: E402
    DiagnosticsSink,
    LoggingDiagnosticsSink,
    NullDiagnosticsSink,
)
from .exceptions import (  # noqa: E402
    AccessDeniedError,
    ExchangeCancelledError,
    ExchangeTimeoutError,
    InvalidConfigError,
    SerialExchangeError,
    SerialIOError,
)
from .exchange import ExchangeRequest, SerialExchanger  # noqa: E402
from .outcome import ExchangeOutcome, FailureKind, OutcomeKind  # noqa: E402
from .session import ExchangeSession  # noqa: E402

__all__ = [
    "AccessDeniedError",
    "DiagnosticsSink",
    "ExchangeCancelledError",
    "ExchangeOutcome",
    "ExchangeRequest",
    "ExchangeSession",
    "ExchangeTimeoutError",
    "FailureKind",
    "Handshake",
    "InvalidConfigError",
    "LinkConfig",
    "LoggingDiagnosticsSink",
    "NullDiagnosticsSink",
    "OutcomeKind",
    "Parity",
    "SerialExchangeError",
    "SerialExchanger",
    "SerialIOError",
    "StopBits",
]
