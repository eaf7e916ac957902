"""Tests for tidy_exit.config and tidy_exit.models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from tidy_exit.config import DEFAULT_GRACEFUL_TIMEOUT_MS, ExitSettings
from tidy_exit.models import CleanupTask, ExitCode


class TestExitSettings:
    def test_defaults(self, monkeypatch):
        for name in ("DEFAULT_TIMEOUT_MS", "MAX_TIMEOUT_MS", "SIGNALS", "SHUTDOWN_MESSAGE"):
            monkeypatch.delenv(f"TIDY_EXIT_{name}", raising=False)

        settings = ExitSettings()

        assert settings.default_timeout_ms == DEFAULT_GRACEFUL_TIMEOUT_MS == 120_000
        assert settings.max_timeout_ms is None
        assert settings.signals == ["SIGTERM", "SIGINT", "SIGBREAK"]
        assert settings.shutdown_message == "shutdown"

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("TIDY_EXIT_MAX_TIMEOUT_MS", "30000")
        monkeypatch.setenv("TIDY_EXIT_SIGNALS", '["SIGTERM"]')
        monkeypatch.setenv("TIDY_EXIT_SHUTDOWN_MESSAGE", "stop")
        monkeypatch.setenv("TIDY_EXIT_LOG_JSON", "false")

        settings = ExitSettings()

        assert settings.max_timeout_ms == 30000
        assert settings.signals == ["SIGTERM"]
        assert settings.shutdown_message == "stop"
        assert settings.log_json is False

    def test_default_timeout_must_be_positive(self):
        with pytest.raises(ValidationError):
            ExitSettings(default_timeout_ms=0)


class TestModels:
    def test_exit_codes(self):
        assert int(ExitCode.SUCCESS) == 0
        assert int(ExitCode.TIMEOUT) == 1

    def test_cleanup_task_detects_coroutines(self):
        async def _async(error):
            return None

        def _sync(error, done):
            done()

        assert CleanupTask(callback=_async).is_async
        assert not CleanupTask(callback=_sync).is_async

    def test_cleanup_task_detects_async_callable_objects(self):
        class _AsyncCloser:
            async def __call__(self, error):
                return None

        class _SyncCloser:
            def __call__(self, error, done):
                done()

        assert CleanupTask(callback=_AsyncCloser()).is_async
        assert not CleanupTask(callback=_SyncCloser()).is_async

    def test_cleanup_task_optional_fields(self):
        task = CleanupTask(callback=print)
        assert task.description is None
        assert task.timeout_ms is None
