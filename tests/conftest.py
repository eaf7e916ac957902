"""Shared test fixtures for the tidy_exit test suite."""

from __future__ import annotations

from collections.abc import Iterator

import pytest

from tidy_exit.config import ExitSettings
from tidy_exit.coordinator import ExitCoordinator


@pytest.fixture
def exit_settings() -> ExitSettings:
    return ExitSettings(
        default_timeout_ms=120_000,
        max_timeout_ms=None,
        signals=["SIGTERM", "SIGBREAK"],
        shutdown_message="shutdown",
    )


@pytest.fixture
def exit_calls() -> list[int]:
    """Exit statuses the coordinator tried to commit."""
    return []


@pytest.fixture
def coordinator(exit_settings: ExitSettings, exit_calls: list[int]) -> Iterator[ExitCoordinator]:
    c = ExitCoordinator(exit_settings, exit_func=exit_calls.append)
    yield c
    # Must run after every test so no signal handler or timer outlives it.
    c.reset()


@pytest.fixture
def log_lines(coordinator: ExitCoordinator) -> list[str]:
    """Status lines mirrored to the coordinator's user sink."""
    lines: list[str] = []
    coordinator.set_logger(lambda message, *args: lines.append(message))
    return lines
