"""Diagnostics sinks that receive human-readable exchange events.

The exchange engine reports what happened (validation failures,
classified replies, transport errors) through a sink passed in by the
caller.  The default sink forwards everything to the
``serial_exchange.events`` logger, so host applications decide where the
entries end up by configuring logging.
"""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

_EVENTS_LOGGER = "serial_exchange.events"


@runtime_checkable
class DiagnosticsSink(Protocol):
    """Write-only receiver for exchange diagnostics."""

    def log_information(self, message: str) -> None:
        ...

    def log_error(self, message: str) -> None:
        ...


class LoggingDiagnosticsSink:
    """Sink backed by a standard ``logging.Logger``.

    Example::

        sink = LoggingDiagnosticsSink()
        exchanger = SerialExchanger(sink=sink)
    """

    def __init__(self, logger: logging.Logger | None = None) -> None:
        self.logger = logger if logger is not None else logging.getLogger(_EVENTS_LOGGER)

    def log_information(self, message: str) -> None:
        self.logger.info("%s", message)

    def log_error(self, message: str) -> None:
        self.logger.error("%s", message)


class NullDiagnosticsSink:
    """Sink that drops every entry."""

    def log_information(self, message: str) -> None:
        pass

    def log_error(self, message: str) -> None:
        pass
