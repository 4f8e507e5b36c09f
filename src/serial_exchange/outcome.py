"""Tagged result of a single exchange."""

from __future__ import annotations

import dataclasses
import enum
from typing import Optional

from .exceptions import (
    AccessDeniedError,
    ExchangeCancelledError,
    ExchangeTimeoutError,
    InvalidConfigError,
    SerialExchangeError,
    SerialIOError,
)


class OutcomeKind(enum.Enum):
    """How the exchange ended."""
    ACKNOWLEDGED = "acknowledged"
    REJECTED = "rejected"
    UNCLASSIFIED = "unclassified"
    FAILED = "failed"


class FailureKind(enum.Enum):
    """Why a ``FAILED`` exchange failed."""
    INVALID_CONFIG = "invalid_config"
    ACCESS_DENIED = "access_denied"
    TIMEOUT = "timeout"
    CANCELLED = "cancelled"
    IO_ERROR = "io_error"


# Most specific classes first: lookups walk this list in order
_FAILURE_FOR_EXCEPTION = (
    (InvalidConfigError, FailureKind.INVALID_CONFIG),
    (AccessDeniedError, FailureKind.ACCESS_DENIED),
    (ExchangeCancelledError, FailureKind.CANCELLED),
    (ExchangeTimeoutError, FailureKind.TIMEOUT),
    (SerialIOError, FailureKind.IO_ERROR),
)


def failure_kind_for(exc: BaseException) -> FailureKind:
    """Map an exception to its ``FailureKind``.

    Anything outside the serial_exchange hierarchy counts as an I/O error.
    """
    for exc_type, kind in _FAILURE_FOR_EXCEPTION:
        if isinstance(exc, exc_type):
            return kind
    return FailureKind.IO_ERROR


@dataclasses.dataclass(frozen=True)
class ExchangeOutcome:
    """Immutable result of one command/response exchange.

    Exactly one of these is produced per exchange.

    Attributes:
        kind: ``ACKNOWLEDGED``, ``REJECTED``, ``UNCLASSIFIED`` or ``FAILED``.
        text: The message for the caller (classified reply, or the
            failure description).
        raw: Bytes received from the device.  Empty for failures.
        failure: The failure category.  ``None`` unless ``kind`` is
            ``FAILED``.
        detail: Extra failure information, e.g. the offending field for
            ``INVALID_CONFIG``.  Empty string when not applicable.
        error: The exception behind a failure, kept for
            ``raise_for_failure``.
    """
    kind: OutcomeKind
    text: str
    raw: bytes = b""
    failure: Optional[FailureKind] = None
    detail: str = ""
    error: Optional[SerialExchangeError] = dataclasses.field(
        default=None, compare=False, repr=False,
    )

    @classmethod
    def failed(cls, exc: SerialExchangeError) -> ExchangeOutcome:
        """Build a ``FAILED`` outcome from a serial_exchange exception."""
        detail = getattr(exc, "field", "") or ""
        return cls(
            kind=OutcomeKind.FAILED,
            text=str(exc),
            failure=failure_kind_for(exc),
            detail=detail,
            error=exc,
        )

    @property
    def succeeded(self) -> bool:
        """``True`` when the device answered, whatever the answer was."""
        return self.kind is not OutcomeKind.FAILED

    def raise_for_failure(self) -> None:
        """Re-raise the typed exception behind a ``FAILED`` outcome.

        Does nothing for ACK, NAK and unclassified outcomes.
        """
        if self.kind is not OutcomeKind.FAILED:
            return
        if self.error is not None:
            raise self.error
        raise SerialExchangeError(self.text)
