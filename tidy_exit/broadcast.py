"""One-shot shutdown broadcast."""

from __future__ import annotations

from collections.abc import Callable

ShutdownListener = Callable[[str], None]


class ShutdownBroadcast:
    """Ordered observer list that fires once and then forgets its subscribers.

    The subscriber list is swapped out before any listener runs, so a
    listener subscribed while the broadcast is firing is not part of that
    emission.
    """

    def __init__(self) -> None:
        self._listeners: list[ShutdownListener] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._listeners)

    def subscribe(self, listener: ShutdownListener) -> ShutdownListener:
        self._listeners.append(listener)
        return listener

    def unsubscribe(self, listener: ShutdownListener) -> bool:
        """Remove *listener* if it has not fired yet.  Returns whether it was found."""
        try:
            self._listeners.remove(listener)
        except ValueError:
            return False
        return True

    def fire(self, source: str) -> int:
        """Notify every current subscriber with *source*; return how many ran."""
        listeners, self._listeners = self._listeners, []
        for listener in listeners:
            listener(source)
        return len(listeners)

    def clear(self) -> None:
        self._listeners = []
