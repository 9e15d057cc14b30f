"""Event source protocol definitions.

This module defines the `EventSource` protocol accepted by
:func:`asynchro.core.adapters.promisify.promisify_events`.
"""

from collections.abc import Callable
from typing import Any, Protocol, runtime_checkable

Listener = Callable[..., Any]


@runtime_checkable
class EventSource(Protocol):
    """Structural interface (duck typing) for event emitters."""

    def on(self, event: str, listener: Listener) -> Any:
        """Call `listener` with the event arguments every time `event` is emitted."""
        ...

    def remove_listener(self, event: str, listener: Listener) -> Any:
        """Stop calling `listener` for `event`."""
        ...


def ensure_event_source(obj: object) -> EventSource:
    """Return `obj` when it implements the EventSource protocol.

    Raises:
        TypeError: If obj does not implement EventSource (missing on/remove_listener).
    """
    if not isinstance(obj, EventSource):
        raise TypeError(f"{type(obj).__name__} does not implement EventSource (missing on/remove_listener)")
    return obj
