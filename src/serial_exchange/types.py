"""Type definitions for Serial Exchange."""

from typing import Callable, Iterable, Protocol, runtime_checkable

# Port enumeration collaborator: returns the identifiers the OS exposes right now
PortLister = Callable[[], Iterable[str]]


@runtime_checkable
class CancelSignal(Protocol):
    """Anything that can report whether cancellation was requested.

    ``threading.Event`` and ``asyncio.Event`` both qualify.
    """

    def is_set(self) -> bool:
        ...
