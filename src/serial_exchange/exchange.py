"""Bounded command/response exchange with a serial instrument.

One exchange is one request followed by one bounded read:

1. **Discard** — reset the receive buffer so stale bytes cannot answer
   the new command.
2. **Write** — send the command followed by ``\\r\\n``.  The write is not
   bounded by the read timeout.
3. **Wait** — cooperatively wait for the first reply byte while racing a
   deadline and an external cancellation signal.  Whichever fires first
   ends the wait.
4. **Drain** — once a byte is in, read everything else already queued on
   the device into the same buffer.
5. **Classify** — ACK, NAK, or unclassified (see ``classifier``).

``SerialExchanger.run`` wraps the whole sequence, validation included,
and always closes the link before returning.  It reports failures as an
``ExchangeOutcome`` instead of raising.

Example::

    exchanger = SerialExchanger()
    request = ExchangeRequest(LinkConfig("/dev/ttyUSB0", 9600), "ID?", timeout_s=2.0)
    outcome = asyncio.run(exchanger.run(request))
    print(outcome.kind, outcome.text)
"""

from __future__ import annotations

import asyncio
import dataclasses
import logging
import time
from typing import Optional

import serial
from typeguard import typechecked

from . import (
    SERIAL_ENCODING,
    SERIAL_EXCHANGE_TIMEOUT_S,
    SERIAL_POLL_INTERVAL_S,
    SERIAL_WRITE_TIMEOUT,
)
from .classifier import classify
from .config import LinkConfig
from .diagnostics import DiagnosticsSink, LoggingDiagnosticsSink
from .exceptions import (
    ExchangeCancelledError,
    ExchangeTimeoutError,
    InvalidConfigError,
    SerialExchangeError,
    SerialIOError,
)
from .link import SerialLink, list_port_names
from .outcome import ExchangeOutcome, OutcomeKind
from .types import CancelSignal, PortLister
from .validation import validate_link_config

logger = logging.getLogger("serial_exchange.exchange")


@dataclasses.dataclass(frozen=True)
class ExchangeRequest:
    """Everything one exchange needs.

    Attributes:
        config: Line settings; validated before any port is opened.
        command: Command line to send, without terminator.  An empty
            string sends only ``\\r\\n``.
        timeout_s: Upper bound on the reply wait, in seconds.
        cancel_signal: Optional ``threading.Event`` / ``asyncio.Event``;
            setting it ends the wait early.
    """
    config: LinkConfig
    command: str = ""
    timeout_s: float = SERIAL_EXCHANGE_TIMEOUT_S
    cancel_signal: Optional[CancelSignal] = dataclasses.field(default=None, compare=False)


async def _wait_for_first_byte(
    ser: serial.Serial,
    port_name: str,
    cancel_signal: Optional[CancelSignal],
    poll_interval_s: float,
) -> bytes:
    """Suspend until at least one byte is readable or cancellation is requested.

    Raises:
        ExchangeCancelledError: *cancel_signal* was set before data arrived.
    """
    while True:
        if ser.in_waiting > 0:
            first = ser.read(1)
            if first:
                return first
        if cancel_signal is not None and cancel_signal.is_set():
            raise ExchangeCancelledError(
                f"Cancelled while reading from port {port_name}",
                port=port_name,
            )
        await asyncio.sleep(poll_interval_s)


async def bounded_exchange(
    link: SerialLink,
    command: str,
    timeout_s: float,
    cancel_signal: Optional[CancelSignal] = None,
    context: str = "",
    encoding: str = SERIAL_ENCODING,
) -> bytes:
    """Send one command line and wait a bounded time for the reply.

    Args:
        link: An **open** ``SerialLink``.
        command: Command to send; ``\\r\\n`` is appended.
        timeout_s: Upper bound on the reply wait, in seconds.
        cancel_signal: Optional signal that ends the wait early.
        context: Description of the purpose, embedded into messages.
        encoding: Encoding for the command line.

    Returns:
        Every byte that was queued on the device once the first reply
        byte arrived.

    Raises:
        ExchangeTimeoutError: No reply within *timeout_s*.
        ExchangeCancelledError: *cancel_signal* was set first.
        SerialIOError: Transport failure during discard, write or read.
    """
    port_name = link.port

    # Discard strictly before write, write strictly before the wait
    link.discard_input(context)
    link.write_line(command, context, encoding)

    ser = link.get_serial()
    logger.info(
        "[EXCHANGE-READ] [%s] Waiting on %s (up to %.3fs, cancellable=%s) ...",
        context, port_name, timeout_s, "yes" if cancel_signal is not None else "no",
    )
    start_time = time.monotonic()

    try:
        first = await asyncio.wait_for(
            _wait_for_first_byte(ser, port_name, cancel_signal, link.poll_interval_s),
            timeout=timeout_s,
        )
        buffer = bytearray(first)
        remaining = ser.in_waiting
        if remaining > 0:
            buffer.extend(ser.read(remaining))
    except asyncio.TimeoutError as exc:
        elapsed = time.monotonic() - start_time
        msg = f"Timeout while reading from port {port_name}"
        logger.warning("[EXCHANGE-READ] [%s] TIMEOUT after %.3fs — %s", context, elapsed, msg)
        raise ExchangeTimeoutError(msg, port=port_name, timeout_s=timeout_s) from exc
    except ExchangeCancelledError as exc:
        exc.timeout_s = timeout_s
        logger.warning(
            "[EXCHANGE-READ] [%s] CANCELLED after %.3fs on %s",
            context, time.monotonic() - start_time, port_name,
        )
        raise
    except (serial.SerialException, OSError) as exc:
        msg = (
            f"[{context}] Failed to read from the serial port {port_name}: {exc}. "
            f"The device may have been disconnected during the read."
        )
        logger.error("[EXCHANGE-READ] ERROR — %s", msg)
        raise SerialIOError(msg, port=port_name) from exc

    logger.info(
        "[EXCHANGE-READ] [%s] Received %d bytes from %s in %.3fs",
        context, len(buffer), port_name, time.monotonic() - start_time,
    )
    return bytes(buffer)


@typechecked
class SerialExchanger:
    """Runs complete exchanges: validate, open, exchange, classify, close.

    Holds no per-exchange state, so one instance can serve many calls.
    It does no locking; callers sharing a physical port should go through
    ``ExchangeSession``.
    """

    def __init__(
        self,
        sink: Optional[DiagnosticsSink] = None,
        port_lister: Optional[PortLister] = None,
        encoding: str = SERIAL_ENCODING,
        write_timeout: Optional[float] = SERIAL_WRITE_TIMEOUT,
        poll_interval_s: float = SERIAL_POLL_INTERVAL_S,
    ) -> None:
        """Initialize the exchanger.

        Args:
            sink: Receives one diagnostics entry per outcome.  Default:
                ``LoggingDiagnosticsSink``.
            port_lister: Returns the currently available port identifiers.
                Default: the ports pyserial enumerates.
            encoding: Encoding for commands and replies.  Default: ASCII.
            write_timeout: Write timeout in seconds passed to the link.
            poll_interval_s: Reply-wait poll granularity in seconds.
        """
        self.sink = sink if sink is not None else LoggingDiagnosticsSink()
        self.port_lister = port_lister if port_lister is not None else list_port_names
        self.encoding = encoding
        self.write_timeout = write_timeout
        self.poll_interval_s = poll_interval_s

    def _open_link(self, config: LinkConfig) -> SerialLink:
        return SerialLink(
            config,
            write_timeout=self.write_timeout,
            poll_interval_s=self.poll_interval_s,
        )

    async def run(self, request: ExchangeRequest) -> ExchangeOutcome:
        """Perform one exchange and report how it ended.

        Never raises for validation or transport problems; those come back
        as a ``FAILED`` outcome carrying the ``FailureKind``.  Cancelling
        the surrounding task still propagates ``asyncio.CancelledError``
        after the link is closed.
        """
        config = request.config
        context = f"exchange {request.command!r} on {config.port}"

        try:
            validate_link_config(config, self.port_lister, self.sink)
        except InvalidConfigError as exc:
            # already reported by the validator
            return ExchangeOutcome.failed(exc)

        if request.timeout_s <= 0:
            msg = f"Invalid parameter value: Invalid timeout ({request.timeout_s!r}) for port {config.port!r}"
            logger.error("[EXCHANGE] %s", msg)
            self.sink.log_error(msg)
            return ExchangeOutcome.failed(InvalidConfigError(msg, field="timeout_s"))

        try:
            with self._open_link(config) as link:
                raw = await bounded_exchange(
                    link,
                    request.command,
                    request.timeout_s,
                    cancel_signal=request.cancel_signal,
                    context=context,
                    encoding=self.encoding,
                )
        except SerialExchangeError as exc:
            self.sink.log_error(str(exc))
            return ExchangeOutcome.failed(exc)
        except (serial.SerialException, OSError) as exc:
            wrapped = SerialIOError(
                f"Failed to read from the serial port: {exc}", port=config.port,
            )
            logger.error("[EXCHANGE] %s", wrapped)
            self.sink.log_error(str(wrapped))
            return ExchangeOutcome.failed(wrapped)

        outcome = classify(raw, self.encoding)
        if outcome.kind is OutcomeKind.REJECTED:
            self.sink.log_error(outcome.text)
        else:
            self.sink.log_information(outcome.text)

        logger.info("[EXCHANGE] [%s] Completed — %s", context, outcome.kind.name)
        return outcome
