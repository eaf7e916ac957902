"""Termination signal and shutdown-message listeners."""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Callable, Iterable
from typing import Any

import structlog

from .logging import ExitLogger

logger = structlog.get_logger()

MESSAGE = "message"

Trigger = Callable[[str], None]


def platform_signals(names: Iterable[str]) -> list[tuple[str, signal.Signals]]:
    """Resolve signal *names*, skipping the ones this platform lacks (e.g. SIGBREAK)."""
    resolved = []
    for name in names:
        signum = getattr(signal, name, None)
        if signum is not None:
            resolved.append((name, signal.Signals(signum)))
    return resolved


class SignalListenerRegistry:
    """Binds single-fire shutdown listeners and remembers them for teardown.

    OS signals are bound with :meth:`asyncio.AbstractEventLoop.add_signal_handler`
    (falling back to :func:`signal.signal` on loops without it).  The
    inter-process message channel is fed through :meth:`dispatch_message`.
    """

    def __init__(
        self,
        signals: Iterable[str] = ("SIGTERM", "SIGINT", "SIGBREAK"),
        *,
        shutdown_message: str = "shutdown",
        log: ExitLogger | None = None,
    ) -> None:
        self._signal_names = list(signals)
        self._shutdown_message = shutdown_message
        self._log = log or ExitLogger()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._listening = False
        self._handlers: dict[str, list[Callable[..., None]]] = {}
        self._message_listeners: list[Callable[[Any], None]] = []
        self._previous: dict[str, Any] = {}

    @property
    def listening(self) -> bool:
        return self._listening

    @property
    def bound_signals(self) -> list[str]:
        return [name for name, listeners in self._handlers.items() if listeners]

    # ------------------------------------------------------------------
    # Binding
    # ------------------------------------------------------------------

    def register(self, trigger: Trigger, loop: asyncio.AbstractEventLoop) -> None:
        """Bind every shutdown listener once; repeat calls are no-ops until teardown."""
        if self._listening:
            return
        self._loop = loop

        def _on_message(payload: Any) -> None:
            if payload == self._shutdown_message:
                self._message_listeners.remove(_on_message)
                trigger(payload)

        self._message_listeners.append(_on_message)
        self._track(MESSAGE, _on_message)

        for name, signum in platform_signals(self._signal_names):
            self._bind_os_signal(name, signum, trigger)

        self._listening = True
        logger.debug("signal_listeners_registered", signals=self.bound_signals)

    def _bind_os_signal(self, name: str, signum: signal.Signals, trigger: Trigger) -> None:
        assert self._loop is not None
        loop = self._loop

        def _on_signal() -> None:
            if _on_signal not in self._handlers.get(name, ()):
                return
            self._unbind(name, _on_signal)
            logger.info("shutdown_signal_received", signal=name)
            trigger(name)

        try:
            loop.add_signal_handler(signum, _on_signal)
        except NotImplementedError:
            # Windows event loops: forward from the C-level handler onto the loop
            def _forward(sig: int, frame: Any) -> None:
                loop.call_soon_threadsafe(_on_signal)

            self._previous[name] = signal.signal(signum, _forward)

        self._track(name, _on_signal)

    def _track(self, name: str, listener: Callable[..., None]) -> None:
        self._handlers.setdefault(name, []).append(listener)

    # ------------------------------------------------------------------
    # Delivery
    # ------------------------------------------------------------------

    def dispatch_message(self, payload: Any) -> None:
        """Deliver an inter-process message to the bound message listeners."""
        for listener in list(self._message_listeners):
            listener(payload)

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    def _unbind(self, name: str, listener: Callable[..., None]) -> None:
        if name == MESSAGE:
            self._message_listeners.remove(listener)
            return

        signum = getattr(signal, name)
        if name in self._previous:
            previous = self._previous.pop(name)
            signal.signal(signum, previous if previous is not None else signal.SIG_DFL)
            return

        assert self._loop is not None
        if not self._loop.remove_signal_handler(signum):
            raise LookupError(f"no handler bound for {name}")

    def teardown(self) -> None:
        """Unbind every tracked listener and allow :meth:`register` again.

        Listeners that already removed themselves after firing cannot be
        unbound twice; that failure is logged and swallowed.
        """
        for name, listeners in self._handlers.items():
            for listener in listeners:
                try:
                    self._unbind(name, listener)
                except (LookupError, ValueError, RuntimeError) as exc:
                    self._log.debug(
                        "signal_listener_remove_failed",
                        f"Error while removing handler on {name}",
                        exc,
                        signal=name,
                        error=str(exc),
                    )
        self._handlers = {}
        self._message_listeners = []
        self._previous = {}
        self._listening = False
