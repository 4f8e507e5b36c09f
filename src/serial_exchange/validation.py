"""Connection parameter validation.

Every predicate here is pure: no port is opened and nothing is cached.
``validate_link_config`` runs them in a fixed order and stops at the first
failure, so an invalid configuration never reaches the link layer.
"""

from __future__ import annotations

import enum
import logging
from typing import Optional, Type

from . import SERIAL_MAX_BAUD_RATE, SERIAL_VALID_DATA_BITS
from .config import Handshake, LinkConfig, Parity, StopBits
from .diagnostics import DiagnosticsSink, NullDiagnosticsSink
from .exceptions import InvalidConfigError
from .link import list_port_names
from .types import PortLister

logger = logging.getLogger("serial_exchange.validation")


def _is_member(enum_cls: Type[enum.IntEnum], value: object) -> bool:
    """True if *value* is a member of *enum_cls* or a raw int naming one."""
    if isinstance(value, bool):
        return False
    if isinstance(value, enum_cls):
        return True
    if isinstance(value, enum.Enum):
        # A member of some other enum is never acceptable, even if its
        # integer value happens to line up
        return False
    if isinstance(value, int):
        try:
            enum_cls(value)
        except ValueError:
            return False
        return True
    return False


def is_port_name_valid(name: object, port_lister: PortLister = list_port_names) -> bool:
    """True if *name* is one of the ports the OS currently exposes."""
    if not isinstance(name, str) or not name:
        return False
    return name in set(port_lister())


def is_baud_rate_valid(rate: object) -> bool:
    """True if ``0 < rate <= 115200``."""
    if isinstance(rate, bool) or not isinstance(rate, int):
        return False
    return 0 < rate <= SERIAL_MAX_BAUD_RATE


def is_data_bits_valid(bits: object) -> bool:
    """True if *bits* is 5, 6, 7 or 8."""
    if isinstance(bits, bool) or not isinstance(bits, int):
        return False
    return bits in SERIAL_VALID_DATA_BITS


def is_parity_valid(parity: object) -> bool:
    """True if *parity* is a ``Parity`` member or its integer value."""
    return _is_member(Parity, parity)


def is_stop_bits_valid(stop_bits: object) -> bool:
    """True if *stop_bits* is a ``StopBits`` member or its integer value."""
    return _is_member(StopBits, stop_bits)


def is_handshake_valid(handshake: object) -> bool:
    """True if *handshake* is a ``Handshake`` member or its integer value."""
    return _is_member(Handshake, handshake)


def validate_link_config(
    config: LinkConfig,
    port_lister: PortLister = list_port_names,
    sink: Optional[DiagnosticsSink] = None,
) -> None:
    """Check every field of *config*, failing fast on the first bad one.

    Order: port, baud rate, data bits, parity, stop bits, handshake.

    Args:
        config: The configuration to check.
        port_lister: Returns the port identifiers currently available.
        sink: Receives one error entry before the failure is raised.

    Raises:
        InvalidConfigError: With ``field`` set to the offending field.
    """
    sink = sink if sink is not None else NullDiagnosticsSink()

    checks = (
        ("port", lambda: is_port_name_valid(config.port, port_lister), "Invalid port name"),
        ("baud_rate", lambda: is_baud_rate_valid(config.baud_rate), "Invalid baud rate"),
        ("data_bits", lambda: is_data_bits_valid(config.data_bits), "Invalid data bits"),
        ("parity", lambda: is_parity_valid(config.parity), "Invalid parity value"),
        ("stop_bits", lambda: is_stop_bits_valid(config.stop_bits), "Invalid stop bits value"),
        ("handshake", lambda: is_handshake_valid(config.handshake), "Invalid handshake value"),
    )

    for field, check, reason in checks:
        if not check():
            value = getattr(config, field)
            msg = f"Invalid parameter value: {reason} ({value!r}) for port {config.port!r}"
            logger.error("[VALIDATE] %s", msg)
            sink.log_error(msg)
            raise InvalidConfigError(msg, field=field)

    logger.debug("[VALIDATE] Configuration accepted: %s", config.describe())
