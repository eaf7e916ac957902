"""Grace-period resolution across handler, global and default timeouts."""

from __future__ import annotations

from .config import DEFAULT_GRACEFUL_TIMEOUT_MS


def resolve_timeout(
    handler_timeout_ms: int | None,
    max_timeout_ms: int | None,
    default_ms: int = DEFAULT_GRACEFUL_TIMEOUT_MS,
) -> int:
    """Return the effective grace period in milliseconds.

    The largest handler timeout wins as long as no smaller max timeout is
    set; an explicit max timeout caps it; the default applies only when
    neither is known.  ``0`` and ``None`` both mean "unset".
    """
    if handler_timeout_ms and (not max_timeout_ms or max_timeout_ms > handler_timeout_ms):
        return handler_timeout_ms
    if max_timeout_ms:
        return max_timeout_ms
    return default_ms


class TimeoutState:
    """The three timeout inputs tracked by a coordinator."""

    def __init__(
        self,
        default_ms: int = DEFAULT_GRACEFUL_TIMEOUT_MS,
        max_timeout_ms: int | None = None,
    ) -> None:
        self.default_ms = default_ms
        self.max_timeout_ms = max_timeout_ms
        self.max_handler_timeout_ms = 0

    def observe(self, timeout_ms: int | None) -> None:
        """Raise the running handler maximum if *timeout_ms* exceeds it."""
        if timeout_ms is not None and timeout_ms > self.max_handler_timeout_ms:
            self.max_handler_timeout_ms = timeout_ms

    def resolve(self) -> int:
        return resolve_timeout(self.max_handler_timeout_ms, self.max_timeout_ms, self.default_ms)
