"""Serial link lifecycle: open, discard, write, and guaranteed close.

A ``SerialLink`` owns exactly one ``serial.Serial`` handle for the
duration of one exchange.  Use it as a context manager so the handle is
released on every exit path, including exceptions and ``asyncio`` task
cancellation::

    with SerialLink(LinkConfig("/dev/ttyUSB0", 9600)) as link:
        link.discard_input(context="ID query")
        link.write_line("ID?", context="ID query")

Cross-platform: works on both Windows (COMx) and Linux
(/dev/ttyUSB*, /dev/ttyS*, /dev/ttyACM*).
"""

from __future__ import annotations

import errno
import logging
import platform
from typing import List, Optional

import serial
import serial.tools.list_ports
from typeguard import typechecked

from . import (
    SERIAL_ENCODING,
    SERIAL_LINE_TERMINATOR,
    SERIAL_POLL_INTERVAL_S,
    SERIAL_WRITE_TIMEOUT,
)
from .config import Handshake, LinkConfig, Parity, StopBits
from .exceptions import AccessDeniedError, SerialIOError

logger = logging.getLogger("serial_exchange.link")

_IS_WINDOWS = platform.system() == "Windows"

# Map our enums to pyserial constants
_PARITY_MAP = {
    Parity.NONE: serial.PARITY_NONE,
    Parity.ODD: serial.PARITY_ODD,
    Parity.EVEN: serial.PARITY_EVEN,
    Parity.MARK: serial.PARITY_MARK,
    Parity.SPACE: serial.PARITY_SPACE,
}

_STOPBITS_MAP = {
    StopBits.ONE: serial.STOPBITS_ONE,
    StopBits.ONE_POINT_FIVE: serial.STOPBITS_ONE_POINT_FIVE,
    StopBits.TWO: serial.STOPBITS_TWO,
}

_BYTESIZE_MAP = {
    5: serial.FIVEBITS,
    6: serial.SIXBITS,
    7: serial.SEVENBITS,
    8: serial.EIGHTBITS,
}

# Handshake → (xonxoff, rtscts)
_HANDSHAKE_MAP = {
    Handshake.NONE: (False, False),
    Handshake.XON_XOFF: (True, False),
    Handshake.REQUEST_TO_SEND: (False, True),
    Handshake.REQUEST_TO_SEND_XON_XOFF: (True, True),
}

_ACCESS_DENIED_ERRNOS = (errno.EACCES, errno.EPERM, errno.EBUSY)
_ACCESS_DENIED_MARKERS = (
    "permission denied",
    "access is denied",
    "access denied",
    "resource busy",
    "in use",
)


def list_port_names() -> List[str]:
    """Return the identifiers of every serial port the OS currently exposes."""
    return [p.device for p in serial.tools.list_ports.comports()]


def _is_access_denied(exc: BaseException) -> bool:
    """True if *exc* means the port exists but we may not have it right now."""
    for candidate in (exc, exc.__cause__, exc.__context__):
        if candidate is None:
            continue
        if isinstance(candidate, PermissionError):
            return True
        if getattr(candidate, "errno", None) in _ACCESS_DENIED_ERRNOS:
            return True
    text = str(exc).lower()
    return any(marker in text for marker in _ACCESS_DENIED_MARKERS)


def _write_all(
    ser: serial.Serial,
    data: bytes,
    port_name: str,
    context: str = "",
) -> int:
    """Write *all* bytes to the serial port and flush the OS transmit buffer.

    Does **not** catch exceptions — lets ``serial.SerialException`` and
    ``OSError`` propagate to the caller's handlers.

    Raises:
        SerialIOError: If a short write is detected (fewer bytes written
            than requested).
    """
    n = ser.write(data)
    if n != len(data):
        raise SerialIOError(
            f"[{context}] Short write on {port_name}: "
            f"wrote {n}/{len(data)} bytes. "
            f"This usually means write_timeout is 0 (non-blocking) "
            f"and the kernel buffer is full.",
            port=port_name,
        )
    ser.flush()
    logger.debug(
        "[LINK-WRITE-ALL] [%s] Wrote %d bytes to %s",
        context, n, port_name,
    )
    return n


@typechecked
class SerialLink:
    """Owns one serial port handle for the duration of one exchange.

    ``open()`` is idempotent and ``close()`` releases the handle exactly
    once; every later ``close()`` is a no-op.  The configuration is
    assumed to be validated already (see ``validation``).
    """

    def __init__(
        self,
        config: LinkConfig,
        write_timeout: Optional[float] = SERIAL_WRITE_TIMEOUT,
        poll_interval_s: float = SERIAL_POLL_INTERVAL_S,
    ) -> None:
        """Initialize the link.  The port is **not** opened here.

        Args:
            config: Validated line settings.
            write_timeout: Write timeout in seconds.  Default: 10 (blocking
                with failsafe).  ``None`` means block forever.
            poll_interval_s: Sleep granularity used while waiting for
                reply bytes.  Default: 0.01 (10 ms).
        """
        self.config = config
        self.port = config.port
        self.write_timeout = write_timeout
        self.poll_interval_s = poll_interval_s
        self._serial: Optional[serial.Serial] = None

    def open(self, context: str) -> None:
        """Open the serial port unless it is already open.

        Args:
            context: Description of the purpose, embedded into error messages.

        Raises:
            AccessDeniedError: Permission denied, or another process holds
                the port.
            SerialIOError: Any other failure to open the port.
        """
        if self._serial is not None and self._serial.is_open:
            logger.debug("[LINK-OPEN] [%s] Port %s is already open — skipping", context, self.port)
            return

        cfg = self.config
        xonxoff, rtscts = _HANDSHAKE_MAP[Handshake(cfg.handshake)]

        logger.info(
            "[LINK-OPEN] [%s] Opening %s (xonxoff=%s, rtscts=%s) ...",
            context, cfg.describe(), xonxoff, rtscts,
        )

        try:
            self._serial = serial.Serial(
                port=self.port,
                baudrate=cfg.baud_rate,
                bytesize=_BYTESIZE_MAP[cfg.data_bits],
                parity=_PARITY_MAP[Parity(cfg.parity)],
                stopbits=_STOPBITS_MAP[StopBits(cfg.stop_bits)],
                timeout=0,  # non-blocking; the read wait is timed by the exchange
                write_timeout=self.write_timeout,
                xonxoff=xonxoff,
                rtscts=rtscts,
            )
        except (serial.SerialException, OSError) as exc:
            if _is_access_denied(exc):
                msg = f"[{context}] Access to port {self.port} is denied: {exc}. {self._platform_hint()}"
                logger.error("[LINK-OPEN] ACCESS DENIED — %s", msg)
                raise AccessDeniedError(msg, port=self.port) from exc
            msg = (
                f"[{context}] Failed to open serial port {self.port} at "
                f"{cfg.baud_rate} baud: {exc}. {self._platform_hint()}"
            )
            logger.error("[LINK-OPEN] FAILED — %s", msg)
            raise SerialIOError(msg, port=self.port) from exc
        except (ValueError, NotImplementedError) as exc:
            # pyserial raises these when the driver refuses a line setting,
            # e.g. a custom baud rate on Linux or on BSD.
            msg = (
                f"[{context}] Serial port {self.port} rejected {cfg.describe()}: "
                f"{exc}. {self._platform_hint()}"
            )
            logger.error("[LINK-OPEN] UNSUPPORTED SETTINGS — %s", msg)
            raise SerialIOError(msg, port=self.port) from exc

        logger.info("[LINK-OPEN] [%s] Successfully opened %s", context, self.port)

    def is_open(self) -> bool:
        """Check whether the serial port is currently open."""
        return self._serial is not None and self._serial.is_open

    def close(self) -> None:
        """Close the serial port if open.

        The handle is dropped before closing, so a failed close is never
        retried and later calls are no-ops.

        Raises:
            SerialIOError: The driver reported an error while closing.
        """
        if self._serial is None:
            logger.debug("[LINK-CLOSE] close() called on already-closed port %s", self.port)
            return

        ser, self._serial = self._serial, None
        try:
            ser.close()
        except (serial.SerialException, OSError) as exc:
            msg = f"Error closing serial port {self.port}: {exc}"
            logger.error("[LINK-CLOSE] ERROR — %s", msg)
            raise SerialIOError(msg, port=self.port) from exc
        logger.info("[LINK-CLOSE] Closed %s", self.port)

    def get_serial(self) -> serial.Serial:
        """Return the underlying ``serial.Serial`` object.

        Raises:
            SerialIOError: If the port is not open.
        """
        if self._serial is None or not self._serial.is_open:
            raise SerialIOError(
                f"Cannot access serial port {self.port}: port is not open. "
                f"Call open() or use the context manager first.",
                port=self.port,
            )
        return self._serial

    def discard_input(self, context: str) -> int:
        """Discard everything waiting in the receive buffer.

        Returns:
            Number of bytes that were waiting when the buffer was reset.

        Raises:
            SerialIOError: If the port is not open or the reset fails.
        """
        ser = self.get_serial()
        try:
            waiting = ser.in_waiting
            ser.reset_input_buffer()
        except (serial.SerialException, OSError) as exc:
            msg = (
                f"[{context}] Error discarding input on serial port {self.port}: {exc}. "
                f"The port may have been disconnected or the USB cable unplugged."
            )
            logger.error("[LINK-DISCARD] ERROR — %s", msg)
            raise SerialIOError(msg, port=self.port) from exc

        if waiting > 0:
            logger.info(
                "[LINK-DISCARD] [%s] Discarded %d stale bytes from %s",
                context, waiting, self.port,
            )
        else:
            logger.debug("[LINK-DISCARD] [%s] Input buffer on %s was already empty", context, self.port)
        return waiting

    def write_line(
        self,
        command: str,
        context: str,
        encoding: str = SERIAL_ENCODING,
    ) -> int:
        """Write *command* followed by ``\\r\\n``.

        The command is sent unchanged; an empty command sends only the
        terminator.

        Returns:
            Number of bytes written, terminator included.

        Raises:
            SerialIOError: On write failure or if the command cannot be
                encoded.
        """
        ser = self.get_serial()
        try:
            data = (command + SERIAL_LINE_TERMINATOR).encode(encoding)
        except UnicodeEncodeError as exc:
            msg = f"[{context}] Cannot encode command {command!r} as {encoding}: {exc}"
            logger.error("[LINK-WRITE] ENCODE ERROR — %s", msg)
            raise SerialIOError(msg, port=self.port) from exc

        try:
            n = _write_all(ser, data, self.port, context=context)
        except (serial.SerialException, OSError) as exc:
            msg = (
                f"[{context}] Failed to write to serial port {self.port}: {exc}. "
                f"The device may have been disconnected."
            )
            logger.error("[LINK-WRITE] ERROR — %s", msg)
            raise SerialIOError(msg, port=self.port) from exc

        logger.info("[LINK-WRITE] [%s] Wrote %d bytes to %s: %r", context, n, self.port, command[:100])
        return n

    # ---- Context manager ----

    def __enter__(self) -> SerialLink:
        """Context manager entry — opens the serial port."""
        self.open(context=f"Opening {self.port}")
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # type: ignore[no-untyped-def]
        """Context manager exit — ensures the port is closed.

        A close error is raised only when the block itself succeeded;
        otherwise it is logged and the original exception propagates.
        """
        if exc_type is None:
            self.close()
            return
        try:
            self.close()
        except SerialIOError as close_exc:
            logger.warning(
                "[LINK-CLOSE] Ignoring close error while %s propagates: %s",
                exc_type.__name__, close_exc,
            )

    # ---- Helpers ----

    @staticmethod
    def list_available_ports() -> List[str]:
        """Return ``"<device> — <description>"`` for every visible port.

        Useful for diagnostics when the caller is unsure which port to use.
        """
        descriptions = []
        for p in serial.tools.list_ports.comports():
            descriptions.append(f"{p.device} — {p.description}")
            logger.debug("[LINK-LIST] Found port: %s (%s)", p.device, p.description)
        return descriptions

    def _platform_hint(self) -> str:
        """Return a platform-specific troubleshooting hint."""
        available = ", ".join(list_port_names()) or "none"
        if _IS_WINDOWS:
            return (
                "On Windows: verify the COM port number in Device Manager "
                "(Ports → COM & LPT) and make sure no other application "
                "has the port open. Available ports: " + available + "."
            )
        return (
            "On Linux: ensure your user is in the 'dialout' group "
            "(sudo usermod -aG dialout $USER) and that no other process "
            "(minicom, screen, picocom) has the port open. "
            "Available ports: " + available + "."
        )
