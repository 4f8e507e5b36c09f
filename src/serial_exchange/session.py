"""Synchronous, lock-serialised access to the exchange engine."""

from __future__ import annotations

import asyncio
import logging
import threading
from typing import Optional, Union

from typeguard import typechecked

from . import SERIAL_EXCHANGE_TIMEOUT_S
from .config import Handshake, LinkConfig, Parity, StopBits
from .exchange import ExchangeRequest, SerialExchanger
from .outcome import ExchangeOutcome
from .types import CancelSignal

logger = logging.getLogger("serial_exchange.session")


@typechecked
class ExchangeSession:
    """Serialises exchanges from many threads onto one engine.

    The lock is held across the whole open → exchange → close sequence,
    so two threads never share a physical port.  Each call runs its own
    event loop, which means these methods must not be called from inside
    a running ``asyncio`` loop; ``await SerialExchanger.run()`` there
    instead.

    Example::

        session = ExchangeSession()
        text = session.get_data(
            "COM3", 9600, Parity.NONE, 8, StopBits.ONE, Handshake.NONE,
            timeout_s=2.0, command="ID?",
        )
    """

    def __init__(self, exchanger: Optional[SerialExchanger] = None) -> None:
        self.exchanger = exchanger if exchanger is not None else SerialExchanger()
        self._lock = threading.Lock()

    def perform_exchange(
        self,
        port: str,
        baud_rate: int,
        parity: Union[Parity, int],
        data_bits: int,
        stop_bits: Union[StopBits, int],
        handshake: Union[Handshake, int],
        timeout_s: float = SERIAL_EXCHANGE_TIMEOUT_S,
        command: str = "",
        cancel_signal: Optional[CancelSignal] = None,
    ) -> ExchangeOutcome:
        """Run one exchange and return its outcome.

        Args:
            port: Port identifier, e.g. ``/dev/ttyUSB0`` or ``COM3``.
            baud_rate: Line speed; must be in ``1..115200``.
            parity: Parity scheme.
            data_bits: 5, 6, 7 or 8.
            stop_bits: Stop bits per character.
            handshake: Flow-control scheme.
            timeout_s: Upper bound on the reply wait, in seconds.
            command: Command line to send.  Empty sends only ``\\r\\n``.
            cancel_signal: Optional ``threading.Event`` another thread may
                set to end the wait early.

        Returns:
            The ``ExchangeOutcome``; failures are reported, not raised.
        """
        request = ExchangeRequest(
            config=LinkConfig(
                port=port,
                baud_rate=baud_rate,
                parity=parity,
                data_bits=data_bits,
                stop_bits=stop_bits,
                handshake=handshake,
            ),
            command=command,
            timeout_s=timeout_s,
            cancel_signal=cancel_signal,
        )

        with self._lock:
            logger.debug("[SESSION] Lock acquired for %s", port)
            try:
                return asyncio.run(self.exchanger.run(request))
            finally:
                logger.debug("[SESSION] Lock released for %s", port)

    def get_data(
        self,
        port: str,
        baud_rate: int,
        parity: Union[Parity, int],
        data_bits: int,
        stop_bits: Union[StopBits, int],
        handshake: Union[Handshake, int],
        timeout_s: float = SERIAL_EXCHANGE_TIMEOUT_S,
        command: str = "",
        cancel_signal: Optional[CancelSignal] = None,
    ) -> str:
        """Run one exchange and return the reply text.

        Same arguments as ``perform_exchange``.

        Raises:
            InvalidConfigError, AccessDeniedError, ExchangeTimeoutError,
            ExchangeCancelledError, SerialIOError: According to how the
                exchange failed.
        """
        outcome = self.perform_exchange(
            port, baud_rate, parity, data_bits, stop_bits, handshake,
            timeout_s=timeout_s, command=command, cancel_signal=cancel_signal,
        )
        outcome.raise_for_failure()
        return outcome.text
