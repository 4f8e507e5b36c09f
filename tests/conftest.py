"""Pytest configuration — path setup, logging, and shared serial fixtures."""

import logging
import os
import select
import sys
import threading
import time

import pytest

# ---------------------------------------------------------------------------
# Path setup: ensure the package is importable regardless of installation
# ---------------------------------------------------------------------------
_SRC_DIR = os.path.join(os.path.dirname(__file__), os.pardir, "src")
_SRC_DIR = os.path.normpath(_SRC_DIR)
if _SRC_DIR not in sys.path:
    sys.path.insert(0, _SRC_DIR)

# ---------------------------------------------------------------------------
# Logging: route all library log output to the console so pytest -s shows it
# ---------------------------------------------------------------------------
logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
    datefmt="%H:%M:%S",
)

import serial  # noqa: E402
from typeguard import suppress_type_checks  # noqa: E402

_HAS_PTY = False
try:
    import pty
    _HAS_PTY = True
except ImportError:
    pass


# ---------------------------------------------------------------------------
# Virtual serial port pair (PTY-based)
# ---------------------------------------------------------------------------

class VirtualSerialPair:
    """A connected pair of pseudo-terminal serial ports.

    ``slave_path`` is opened by the code under test; the test plays the
    instrument through the master file descriptor.
    """

    def __init__(self):
        # type: () -> None
        if not _HAS_PTY:
            raise RuntimeError(
                "pty module not available — virtual serial pairs require "
                "a POSIX system (Linux / macOS)"
            )
        self.master_fd, self.slave_fd = pty.openpty()
        self.master_path = os.ttyname(self.master_fd)
        self.slave_path = os.ttyname(self.slave_fd)

    def write_to_master(self, data):
        # type: (bytes) -> int
        """Write bytes into the master end (appears on the slave)."""
        return os.write(self.master_fd, data)

    def read_from_master(self, timeout_s=0.05):
        # type: (float) -> bytes
        """Read whatever the slave side wrote, or b"" after *timeout_s*."""
        ready, _, _ = select.select([self.master_fd], [], [], timeout_s)
        if not ready:
            return b""
        try:
            return os.read(self.master_fd, 4096)
        except OSError:
            return b""

    def respond_once(self, expect, reply, delay_s=0.0, deadline_s=5.0):
        # type: (bytes, bytes, float, float) -> threading.Thread
        """Start a thread that answers *reply* once *expect* was received.

        The received bytes are stored on the thread as ``.received``.
        """
        def device():
            # type: () -> None
            collected = b""
            end = time.monotonic() + deadline_s
            while time.monotonic() < end:
                collected += self.read_from_master()
                if expect in collected:
                    if delay_s > 0:
                        time.sleep(delay_s)
                    if reply:
                        self.write_to_master(reply)
                    break
            t.received = collected

        t = threading.Thread(target=device, daemon=True)
        t.received = b""
        t.start()
        return t

    def close(self):
        # type: () -> None
        for fd in (self.master_fd, self.slave_fd):
            try:
                os.close(fd)
            except OSError:
                pass


@pytest.fixture()
def serial_pair():
    """Create a virtual serial pair for one test (POSIX only)."""
    if not _HAS_PTY or sys.platform.startswith("win"):
        pytest.skip("Virtual serial pairs require PTY support (Linux/macOS only)")
    pair = VirtualSerialPair()
    yield pair
    pair.close()


# ---------------------------------------------------------------------------
# In-memory serial double
# ---------------------------------------------------------------------------

class FakeSerial:
    """Stands in for ``serial.Serial`` and records every call that matters.

    ``events`` lists ``"discard"``, ``("write", data)``, ``("read", n)``
    and ``"close"`` in the order they happened.  Polling ``in_waiting`` is
    not recorded.
    """

    def __init__(self, reply=b"", stale=b"", fail_read=False, fail_close=False, **kwargs):
        self.kwargs = kwargs
        self.reply = reply
        self.fail_read = fail_read
        self.fail_close = fail_close
        self.events = []
        self.close_count = 0
        self.is_open = True
        self._rx = bytearray(stale)

    @property
    def in_waiting(self):
        if self.fail_read and any(e == "discard" for e in self.events):
            raise serial.SerialException("device reports readiness to read but returned no data")
        return len(self._rx)

    def reset_input_buffer(self):
        self.events.append("discard")
        self._rx.clear()

    def write(self, data):
        self.events.append(("write", bytes(data)))
        self._rx.extend(self.reply)
        return len(data)

    def flush(self):
        pass

    def read(self, size=1):
        self.events.append(("read", size))
        chunk = bytes(self._rx[:size])
        del self._rx[:size]
        return chunk

    def close(self):
        self.events.append("close")
        self.close_count += 1
        self.is_open = False
        if self.fail_close:
            raise serial.SerialException("close failed: device unplugged")


class FakeSerialFactory:
    """Replaces ``serial.Serial`` and remembers every instance it built."""

    def __init__(self):
        self.instances = []
        self.options = {}
        self.open_error = None

    def configure(self, **options):
        self.options = options
        return self

    def __call__(self, **kwargs):
        if self.open_error is not None:
            raise self.open_error
        fake = FakeSerial(**dict(self.options, **kwargs))
        self.instances.append(fake)
        return fake


@pytest.fixture()
def fake_serial(monkeypatch):
    """Patch pyserial with ``FakeSerialFactory`` for one test.

    Runtime type checks are suppressed while the fake is in place, since
    it is deliberately not a ``serial.Serial``.
    """
    factory = FakeSerialFactory()
    monkeypatch.setattr(serial, "Serial", factory)
    with suppress_type_checks():
        yield factory


# ---------------------------------------------------------------------------
# Diagnostics
# ---------------------------------------------------------------------------

class RecordingSink:
    """Diagnostics sink that keeps every entry for inspection."""

    def __init__(self):
        # type: () -> None
        self.entries = []

    def log_information(self, message: str) -> None:
        self.entries.append(("info", message))

    def log_error(self, message: str) -> None:
        self.entries.append(("error", message))

    @property
    def errors(self):
        return [m for level, m in self.entries if level == "error"]

    @property
    def infos(self):
        return [m for level, m in self.entries if level == "info"]


@pytest.fixture()
def sink():
    return RecordingSink()
