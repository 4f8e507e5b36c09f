"""Custom exceptions for serial exchanges."""

from __future__ import annotations

from typing import Optional


class SerialExchangeError(Exception):
    """Common base exception for all serial_exchange errors."""
    pass


class InvalidConfigError(SerialExchangeError, ValueError):
    """A connection parameter failed validation.

    Raised before any port is opened, so no resource has been acquired
    when this propagates.

    Attributes:
        field: Name of the offending ``LinkConfig`` field (``"port"``,
            ``"baud_rate"``, ``"data_bits"``, ``"parity"``,
            ``"stop_bits"`` or ``"handshake"``).
    """

    def __init__(self, message: str, *, field: str) -> None:
        super().__init__(message)
        self.field = field


class SerialIOError(SerialExchangeError):
    """Transport failure while opening, writing to, or reading from a port.

    Attributes:
        port: Port identifier the failure happened on.
    """

    def __init__(self, message: str, *, port: str) -> None:
        super().__init__(message)
        self.port = port


class AccessDeniedError(SerialIOError):
    """The port exists but cannot be opened right now.

    Raised for permission errors and busy devices (another process holds
    the port), so callers can tell "retry later" apart from "bad
    configuration".
    """
    pass


class ExchangeTimeoutError(SerialExchangeError):
    """The bounded read did not see any reply in time.

    Attributes:
        port: Port identifier that stayed silent.
        timeout_s: The read bound that expired, in seconds.
    """

    def __init__(
        self,
        message: str,
        *,
        port: str,
        timeout_s: Optional[float] = None,
    ) -> None:
        super().__init__(message)
        self.port = port
        self.timeout_s = timeout_s


class ExchangeCancelledError(ExchangeTimeoutError):
    """The external cancellation signal fired before a reply arrived.

    Subclasses ``ExchangeTimeoutError`` so callers that only handle
    timeouts keep working.
    """
    pass
