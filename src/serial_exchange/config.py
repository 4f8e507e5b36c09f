"""Connection parameters for a serial link."""

from __future__ import annotations

import dataclasses
import enum

from . import SERIAL_BAUD_RATE, SERIAL_DATA_BITS


class Parity(enum.IntEnum):
    """Parity checking scheme."""
    NONE = 0
    ODD = 1
    EVEN = 2
    MARK = 3
    SPACE = 4


class StopBits(enum.IntEnum):
    """Number of stop bits per character."""
    ONE = 1
    TWO = 2
    ONE_POINT_FIVE = 3


class Handshake(enum.IntEnum):
    """Flow-control scheme negotiated on the link."""
    NONE = 0
    XON_XOFF = 1
    REQUEST_TO_SEND = 2
    REQUEST_TO_SEND_XON_XOFF = 3


# Lookup tables for the CLI and environment strings
PARITY_NAMES = {
    "none": Parity.NONE,
    "odd": Parity.ODD,
    "even": Parity.EVEN,
    "mark": Parity.MARK,
    "space": Parity.SPACE,
}

STOP_BITS_NAMES = {
    "1": StopBits.ONE,
    "1.5": StopBits.ONE_POINT_FIVE,
    "2": StopBits.TWO,
}

HANDSHAKE_NAMES = {
    "none": Handshake.NONE,
    "xonxoff": Handshake.XON_XOFF,
    "rts": Handshake.REQUEST_TO_SEND,
    "rts-xonxoff": Handshake.REQUEST_TO_SEND_XON_XOFF,
}


@dataclasses.dataclass(frozen=True)
class LinkConfig:
    """Line settings for one serial link.

    Values are stored as given; nothing is checked here.  Run the
    config through ``validation.validate_link_config`` before opening a
    link with it.

    Attributes:
        port: Port identifier, e.g. ``/dev/ttyUSB0`` or ``COM3``.
        baud_rate: Line speed in bits per second.
        parity: Parity scheme.
        data_bits: Data bits per character (5-8).
        stop_bits: Stop bits per character.
        handshake: Flow-control scheme.
    """
    port: str
    baud_rate: int = SERIAL_BAUD_RATE
    parity: Parity = Parity.NONE
    data_bits: int = SERIAL_DATA_BITS
    stop_bits: StopBits = StopBits.ONE
    handshake: Handshake = Handshake.NONE

    def describe(self) -> str:
        """Short human-readable form, e.g. ``/dev/ttyUSB0 9600 8N1``."""
        try:
            parity_char = Parity(self.parity).name[0]
        except ValueError:
            parity_char = "?"
        try:
            stop = {StopBits.ONE: "1", StopBits.TWO: "2",
                    StopBits.ONE_POINT_FIVE: "1.5"}[StopBits(self.stop_bits)]
        except ValueError:
            stop = "?"
        return f"{self.port} {self.baud_rate} {self.data_bits}{parity_char}{stop}"
