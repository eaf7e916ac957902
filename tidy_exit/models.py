"""Data models for the exit coordinator."""

from __future__ import annotations

import inspect
from collections.abc import Callable
from enum import IntEnum
from typing import Any

from pydantic import BaseModel, Field

DoneCallback = Callable[[], None]


class ExitCode(IntEnum):
    """Process exit status committed by the coordinator."""

    SUCCESS = 0
    TIMEOUT = 1


class CleanupTask(BaseModel):
    """A unit of cleanup work registered by application code.

    ``callback`` is either ``callback(error, done)`` (call ``done()`` when
    finished) or a coroutine function ``async def callback(error)`` that is
    considered done when it returns.  ``error`` is always ``None``.
    """

    callback: Callable[..., Any] = Field(description="Cleanup callable invoked on shutdown")
    description: str | None = Field(
        default=None,
        description="Short human-readable description, used only for logging",
    )
    timeout_ms: int | None = Field(
        default=None,
        description="Grace period this task asks for, in milliseconds",
    )

    @property
    def is_async(self) -> bool:
        """True for coroutine functions and for objects with an ``async def __call__``."""
        if inspect.iscoroutinefunction(self.callback):
            return True
        return inspect.iscoroutinefunction(getattr(self.callback, "__call__", None))
