"""Structured logging for tidy-exit.

Every coordinator event goes to structlog.  Applications that want plain
status lines as well (the classic ``set_logger(print)`` use) install a sink
on :class:`ExitLogger`; the sink receives one human-readable message per
event and is a no-op by default.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Callable
from typing import TYPE_CHECKING, Any

import structlog

if TYPE_CHECKING:
    from .config import ExitSettings

LogSink = Callable[..., Any]

EXIT_LOGGER_NAME = "tidy_exit"


def noop_sink(message: str, *args: Any) -> None:
    """Default sink: drop everything."""


def setup_logging(
    settings: ExitSettings | None = None,
    *,
    json: bool | None = None,
    level: str | None = None,
    exit_level: str | None = None,
) -> None:
    """Configure structlog for the host process.

    Parameters
    ----------
    settings:
        Optional :class:`~tidy_exit.config.ExitSettings`; its ``log_json``
        and ``log_level`` are used unless overridden by the keywords.
    json:
        If *True* (the default, suitable for production / K8s), output
        JSON lines.  If *False*, use a human-friendly console renderer.
    level:
        Root log level name (e.g. ``"DEBUG"``, ``"INFO"``).
    exit_level:
        Level for the ``tidy_exit`` logger tree only, so shutdown events can
        be traced without lowering the root level.  Unset means inherit.
    """
    if json is None:
        json = settings.log_json if settings is not None else True
    if level is None:
        level = settings.log_level if settings is not None else "INFO"
    if exit_level is None and settings is not None:
        exit_level = settings.exit_log_level

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    if json:
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level.upper())
    logging.getLogger(EXIT_LOGGER_NAME).setLevel(exit_level.upper() if exit_level else logging.NOTSET)


class ExitLogger:
    """Emit a structlog event and mirror a status line to the user sink."""

    def __init__(self, name: str = EXIT_LOGGER_NAME) -> None:
        self._logger = structlog.get_logger(name)
        self._sink: LogSink = noop_sink

    @property
    def sink(self) -> LogSink:
        return self._sink

    def set_sink(self, sink: LogSink | None) -> None:
        self._sink = sink if sink is not None else noop_sink

    def reset(self) -> None:
        self._sink = noop_sink

    def debug(self, event: str, message: str, *args: Any, **context: Any) -> None:
        self._logger.debug(event, **context)
        self._sink(message, *args)

    def info(self, event: str, message: str, *args: Any, **context: Any) -> None:
        self._logger.info(event, **context)
        self._sink(message, *args)

    def warning(self, event: str, message: str, *args: Any, **context: Any) -> None:
        self._logger.warning(event, **context)
        self._sink(message, *args)

    def error(self, event: str, message: str, *args: Any, **context: Any) -> None:
        self._logger.error(event, **context)
        self._sink(message, *args)
