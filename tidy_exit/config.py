"""Exit coordinator configuration loaded from environment variables.

Uses pydantic-settings so every field can be overridden via env vars,
which is how orchestrators (K8s, systemd, PM2) usually tune grace periods.
"""

from __future__ import annotations

from pydantic import Field
from pydantic_settings import BaseSettings

DEFAULT_GRACEFUL_TIMEOUT_MS = 2 * 60 * 1000


class ExitSettings(BaseSettings):
    """Settings for an :class:`~tidy_exit.coordinator.ExitCoordinator`.

    All env vars are prefixed with ``TIDY_EXIT_``.
    Example: ``TIDY_EXIT_MAX_TIMEOUT_MS=30000``
    """

    model_config = {"env_prefix": "TIDY_EXIT_"}

    # --- Timeouts -----------------------------------------------------------
    default_timeout_ms: int = Field(
        default=DEFAULT_GRACEFUL_TIMEOUT_MS,
        gt=0,
        description="Grace period used when neither handlers nor max timeout specify one",
    )
    max_timeout_ms: int | None = Field(
        default=None,
        description="Global ceiling on the grace period (same as set_max_timeout)",
    )

    # --- Triggers -----------------------------------------------------------
    signals: list[str] = Field(
        default_factory=lambda: ["SIGTERM", "SIGINT", "SIGBREAK"],
        description="OS signal names that start a graceful exit (missing ones are skipped)",
    )
    shutdown_message: str = Field(
        default="shutdown",
        description="Inter-process message payload that starts a graceful exit",
    )

    # --- Logging ------------------------------------------------------------
    log_level: str = Field(default="INFO", description="Log level")
    exit_log_level: str | None = Field(
        default=None,
        description="Level for tidy_exit's own loggers (inherits the root level when unset)",
    )
    log_json: bool = Field(
        default=True,
        description="Use JSON log output (True for prod, False for dev)",
    )
