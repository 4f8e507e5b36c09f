"""ACK/NAK classification of instrument replies."""

from __future__ import annotations

import logging

from . import SERIAL_ENCODING
from .outcome import ExchangeOutcome, OutcomeKind

logger = logging.getLogger("serial_exchange.classifier")

ACK = "\x06"
NAK = "\x15"


def decode_response(raw: bytes, encoding: str = SERIAL_ENCODING) -> str:
    """Decode reply bytes one byte per character.

    Bytes the codec cannot map are replaced, never dropped, so control
    characters and interior bytes survive untouched.
    """
    return raw.decode(encoding, errors="replace")


def classify(raw: bytes, encoding: str = SERIAL_ENCODING) -> ExchangeOutcome:
    """Turn raw reply bytes into an ACK, NAK or unclassified outcome.

    Any ACK byte anywhere in the reply wins, even when a NAK is present
    too.  Only leading and trailing whitespace is trimmed from the text.
    """
    data = decode_response(raw, encoding)
    trimmed = data.strip()

    if ACK in data:
        kind = OutcomeKind.ACKNOWLEDGED
        text = "Command successfully completed \nReceived response: " + trimmed
    elif NAK in data:
        kind = OutcomeKind.REJECTED
        text = "Error: Invalid command string \nReceived response: " + trimmed
    else:
        kind = OutcomeKind.UNCLASSIFIED
        text = "Received response: " + trimmed

    logger.debug(
        "[CLASSIFY] %d bytes → %s (%r)", len(raw), kind.name, trimmed[:100],
    )
    return ExchangeOutcome(kind=kind, text=text, raw=bytes(raw))
