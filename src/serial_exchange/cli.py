"""Command-line interface for serial exchanges."""

from __future__ import annotations

import argparse
import logging
import sys
from typing import List, Optional

from . import (
    DEFAULT_SERIAL_PORT,
    SERIAL_BAUD_RATE,
    SERIAL_DATA_BITS,
    SERIAL_EXCHANGE_TIMEOUT_S,
)
from .config import HANDSHAKE_NAMES, PARITY_NAMES, STOP_BITS_NAMES
from .link import SerialLink
from .outcome import FailureKind, OutcomeKind
from .session import ExchangeSession


def command_exchange(args) -> int:
    """Send one command and print the classified reply."""
    port = args.serial_port or DEFAULT_SERIAL_PORT

    if not port:
        print(
            "Error: No serial port configured. Set SERIAL_EXCHANGE_PORT "
            "or pass --serial-port.",
            file=sys.stderr,
        )
        return 1

    session = ExchangeSession()

    try:
        outcome = session.perform_exchange(
            port,
            args.baud_rate,
            PARITY_NAMES[args.parity],
            args.data_bits,
            STOP_BITS_NAMES[args.stop_bits],
            HANDSHAKE_NAMES[args.handshake],
            timeout_s=args.timeout,
            command=args.serial_command,
        )
    except KeyboardInterrupt:
        print("\n[cancelled]", file=sys.stderr)
        return 130

    if outcome.kind is OutcomeKind.FAILED:
        print(f"Error ({outcome.failure.value}): {outcome.text}", file=sys.stderr)
        if outcome.failure is FailureKind.INVALID_CONFIG and outcome.detail == "port":
            ports = SerialLink.list_available_ports()
            print(
                "Available serial ports: " + (", ".join(ports) if ports else "none"),
                file=sys.stderr,
            )
        return 1

    print(outcome.text)
    return 1 if outcome.kind is OutcomeKind.REJECTED else 0


def command_list_ports(args) -> int:
    """List available serial ports."""
    ports = SerialLink.list_available_ports()
    if not ports:
        print("No serial ports found.")
    else:
        print("Available serial ports:")
        for p in ports:
            print(f"  {p}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for ``serial-exchange``."""
    parser = argparse.ArgumentParser(
        description="Serial Exchange - send one command to a serial instrument "
                    "and classify the reply (ACK / NAK / other)"
    )

    parser.add_argument(
        "--verbose", "-v", action="store_true", default=False,
        help="Log library activity to stderr",
    )

    # Subcommands
    subparsers = parser.add_subparsers(dest="subcommand", required=True)

    # Exchange
    exchange_parser = subparsers.add_parser(
        "exchange", help="Send a command line and wait for one reply",
    )
    exchange_parser.add_argument(
        "serial_command", metavar="COMMAND", nargs="?", default="",
        help="Command to send (\\r\\n is appended). Omit to send only the terminator.",
    )
    exchange_parser.add_argument(
        "--serial-port", type=str, default=None,
        help="Serial port path (e.g. /dev/ttyUSB0 or COM3). "
             "Overrides SERIAL_EXCHANGE_PORT.",
    )
    exchange_parser.add_argument(
        "--baud-rate", type=int, default=SERIAL_BAUD_RATE,
        help=f"Baud rate, 1-115200 (default: {SERIAL_BAUD_RATE})",
    )
    exchange_parser.add_argument(
        "--parity", choices=sorted(PARITY_NAMES), default="none",
        help="Parity (default: none)",
    )
    exchange_parser.add_argument(
        "--data-bits", type=int, default=SERIAL_DATA_BITS,
        help=f"Data bits, 5-8 (default: {SERIAL_DATA_BITS})",
    )
    exchange_parser.add_argument(
        "--stop-bits", choices=sorted(STOP_BITS_NAMES), default="1",
        help="Stop bits (default: 1)",
    )
    exchange_parser.add_argument(
        "--handshake", choices=sorted(HANDSHAKE_NAMES), default="none",
        help="Flow control (default: none)",
    )
    exchange_parser.add_argument(
        "--timeout", type=float, default=SERIAL_EXCHANGE_TIMEOUT_S,
        help=f"Reply timeout in seconds (default: {SERIAL_EXCHANGE_TIMEOUT_S:g})",
    )
    exchange_parser.set_defaults(func=command_exchange)

    # List ports
    list_parser = subparsers.add_parser(
        "list-ports", help="List available serial ports",
    )
    list_parser.set_defaults(func=command_list_ports)

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point for CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.basicConfig(
            level=logging.DEBUG,
            format="%(asctime)s | %(levelname)-7s | %(name)s | %(message)s",
            datefmt="%H:%M:%S",
        )

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
