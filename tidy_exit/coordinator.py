"""ExitCoordinator: fan a shutdown out to cleanup tasks and fan their completion back in.

Lifecycle of one shutdown cycle::

    coordinator = ExitCoordinator()
    coordinator.add_exit_handler(close_db, "database", timeout_ms=5000)
        # first registration arms the signal listeners

    # SIGTERM / SIGINT / "shutdown" message
        -> _emit_shutdown(source)
           -> registers the safety-net task
           -> snapshots the subscriber count
           -> arms the forced-exit timer
           -> fires the one-shot broadcast
    # every done() / finished coroutine
        -> _handler_done(slot) -> exit(0) once everything is drained
    # safety-net timer
        -> exit(1) if something is still pending
"""

from __future__ import annotations

import asyncio
import sys
from collections.abc import Callable
from functools import partial
from typing import Any

import structlog

from .broadcast import ShutdownBroadcast, ShutdownListener
from .config import ExitSettings
from .logging import ExitLogger, LogSink
from .models import CleanupTask, ExitCode
from .signals import SignalListenerRegistry
from .timeout import TimeoutState
from .tracker import CompletionTracker

logger = structlog.get_logger()

DEFAULT_HANDLER_DESCRIPTION = "default timeout handler"


class ExitCoordinator:
    """Coordinates the graceful exit of one process.

    Parameters
    ----------
    settings:
        Timeouts, trigger signals and the shutdown message.  Read from the
        environment when omitted.
    loop:
        Event loop that owns signal handlers, timers and async cleanup
        tasks.  Defaults to the loop running at the first registration.
    exit_func:
        Called with the exit status once the cycle ends.  Defaults to
        :func:`sys.exit`.
    """

    def __init__(
        self,
        settings: ExitSettings | None = None,
        *,
        loop: asyncio.AbstractEventLoop | None = None,
        exit_func: Callable[[int], Any] | None = None,
    ) -> None:
        self.settings = settings or ExitSettings()
        self._bound_loop = loop
        self._loop = loop
        self._exit_func = exit_func or sys.exit
        self._log = ExitLogger()
        self._signals = SignalListenerRegistry(
            self.settings.signals,
            shutdown_message=self.settings.shutdown_message,
            log=self._log,
        )
        self._broadcast = ShutdownBroadcast()
        self._tracker = CompletionTracker()
        self._timeouts = TimeoutState()
        self._cleanup_tasks: set[asyncio.Task[Any]] = set()
        self._exit_timer: asyncio.TimerHandle | None = None
        self._init()

    def _init(self) -> None:
        self._broadcast.clear()
        self._broadcast = ShutdownBroadcast()
        self._tracker = CompletionTracker()
        self._registered_count = 0
        self._loop = self._bound_loop

        self._log.reset()
        self._signals.teardown()

        self._timeouts = TimeoutState(
            default_ms=self.settings.default_timeout_ms,
            max_timeout_ms=self.settings.max_timeout_ms,
        )

        if self._exit_timer is not None:
            self._exit_timer.cancel()
        self._exit_timer = None
        for task in self._cleanup_tasks:
            if not task.get_loop().is_closed():
                task.cancel()
        self._cleanup_tasks = set()

        self._shutting_down = False
        self._exited = False

    # ------------------------------------------------------------------
    # Public properties
    # ------------------------------------------------------------------

    @property
    def listening(self) -> bool:
        return self._signals.listening

    @property
    def bound_signals(self) -> list[str]:
        return self._signals.bound_signals

    @property
    def is_shutting_down(self) -> bool:
        return self._shutting_down

    @property
    def exited(self) -> bool:
        return self._exited

    @property
    def pending_count(self) -> int:
        """Notified cleanup tasks that have not reported completion yet."""
        return self._tracker.pending

    # ------------------------------------------------------------------
    # Configuration
    # ------------------------------------------------------------------

    def set_logger(self, sink: LogSink | None) -> None:
        """Install a callable receiving one status line per event (``print`` works)."""
        self._log.set_sink(sink)

    def set_max_timeout(self, timeout_ms: int | None) -> None:
        """Cap the grace period; ``None`` removes the cap."""
        self._timeouts.max_timeout_ms = timeout_ms

    def get_timeout(self) -> int:
        """Effective grace period in milliseconds."""
        return self._timeouts.resolve()

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def add_exit_handler(
        self,
        task: Callable[..., Any],
        description: str | None = None,
        timeout_ms: int | None = None,
    ) -> None:
        """Register *task* to run when the process is asked to exit.

        Usage::

            def close_pool(error, done):
                pool.close()
                done()

            coordinator.add_exit_handler(close_pool, "db pool", timeout_ms=2000)
        """
        self.register(CleanupTask(callback=task, description=description, timeout_ms=timeout_ms))

    def register(self, task: CleanupTask) -> ShutdownListener:
        """Subscribe *task* to the shutdown broadcast and return its listener."""
        self._signals.register(self._emit_shutdown, self._get_loop())

        def _on_shutdown(source: str) -> None:
            slot = self._tracker.add_slot()
            self._log.info(
                "graceful_exit_triggered",
                f"Graceful exit triggered by {source} for {task.description}",
                source=source,
                description=task.description,
                slot=slot,
            )
            self._invoke(task, slot)

        listener = self._broadcast.subscribe(_on_shutdown)
        self._timeouts.observe(task.timeout_ms)
        return listener

    def unregister(self, listener: ShutdownListener) -> bool:
        """Drop a listener that has not fired yet.  Returns whether it was bound."""
        return self._broadcast.unsubscribe(listener)

    def _get_loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            try:
                self._loop = asyncio.get_running_loop()
            except RuntimeError:
                raise RuntimeError(
                    "ExitCoordinator needs an event loop: register handlers from a "
                    "running loop or pass loop= to the constructor"
                ) from None
        return self._loop

    # ------------------------------------------------------------------
    # Shutdown trigger
    # ------------------------------------------------------------------

    def handle_message(self, payload: Any) -> None:
        """Feed an inter-process message; only the shutdown message triggers an exit."""
        self._signals.dispatch_message(payload)

    def _emit_shutdown(self, source: str) -> None:
        if self._shutting_down:
            logger.info("graceful_exit_already_in_progress", source=source)
            return
        self._shutting_down = True

        self._register_default_handler()
        self._registered_count = self._broadcast.subscriber_count
        logger.info(
            "graceful_exit_started",
            source=source,
            handlers=self._registered_count,
            timeout_ms=self.get_timeout(),
        )
        self._arm_exit_timer()
        self._broadcast.fire(source)

    def _register_default_handler(self) -> None:
        self.register(
            CleanupTask(callback=self._default_exit_handler, description=DEFAULT_HANDLER_DESCRIPTION)
        )

    # ------------------------------------------------------------------
    # Cleanup task invocation and completion
    # ------------------------------------------------------------------

    def _invoke(self, task: CleanupTask, slot: int) -> None:
        done = partial(self._handler_done, slot, self._tracker)
        if not task.is_async:
            task.callback(None, done)
            return

        async def _run() -> None:
            try:
                await task.callback(None)
            except Exception:
                logger.exception(
                    "cleanup_task_failed",
                    description=task.description,
                    slot=slot,
                )
                return
            done()

        cleanup = self._get_loop().create_task(_run())
        self._cleanup_tasks.add(cleanup)
        cleanup.add_done_callback(self._cleanup_tasks.discard)

    def _handler_done(self, slot: int, tracker: CompletionTracker | None = None) -> None:
        if tracker is not None and tracker is not self._tracker:
            logger.debug("stale_completion_ignored", slot=slot)
            return
        self._check_handlers_done(slot)

    def _check_handlers_done(self, slot: int | None = None) -> bool:
        if slot is not None and not self._tracker.mark_done(slot):
            self._log.warning(
                "invalid_completion_slot",
                f"Invalid callback handler number: {slot}",
                slot=slot,
                slots=len(self._tracker),
            )

        if not self._tracker.is_drained(self._registered_count):
            return False
        self._exit(ExitCode.SUCCESS)
        return True

    def _arm_exit_timer(self) -> None:
        # Must be armed before the broadcast fires; a cleanup task may raise mid-fire.
        if self._exit_timer is not None or self._exited:
            return
        timeout_ms = self.get_timeout()
        self._exit_timer = self._get_loop().call_later(timeout_ms / 1000, self._on_exit_timeout)
        logger.debug("exit_timer_armed", timeout_ms=timeout_ms)

    def _default_exit_handler(self, error: Any, done: Callable[[], None]) -> None:
        """Safety net: make sure the forced-exit timer runs, then report done."""
        self._arm_exit_timer()
        done()

    def _on_exit_timeout(self) -> None:
        self._exit_timer = None
        if not self._check_handlers_done():
            self._log.warning(
                "graceful_exit_timed_out",
                "Timed out waiting for graceful exit. Quitting hard now",
                pending=self._tracker.pending,
                timeout_ms=self.get_timeout(),
            )
            self._exit(ExitCode.TIMEOUT)

    # ------------------------------------------------------------------
    # Exit
    # ------------------------------------------------------------------

    def _exit(self, code: ExitCode) -> None:
        if self._exited:
            logger.debug("exit_already_committed", code=int(code))
            return
        self._exited = True
        if self._exit_timer is not None:
            self._exit_timer.cancel()
            self._exit_timer = None
        logger.info("graceful_exit_complete", code=int(code))
        self._exit_func(int(code))

    # ------------------------------------------------------------------
    # Reset
    # ------------------------------------------------------------------

    def reset(self) -> None:
        """Return to a freshly constructed state: no handlers, listeners or timers."""
        self._init()

    _reset = reset
