"""tidy-exit: graceful shutdown coordination for asyncio servers.

Public API re-exported here for convenience::

    from tidy_exit import ExitCoordinator, hook_http_server, hook_request_router
"""

from .config import ExitSettings
from .coordinator import ExitCoordinator
from .hooks import (
    AsyncioServer,
    ExitHandle,
    ExitStateMiddleware,
    HttpServer,
    RoutingApp,
    StarletteRouter,
    UvicornServer,
    hook_http_server,
    hook_request_router,
)
from .logging import setup_logging
from .models import CleanupTask, ExitCode
from .timeout import resolve_timeout

__all__ = [
    "AsyncioServer",
    "CleanupTask",
    "ExitCode",
    "ExitCoordinator",
    "ExitHandle",
    "ExitSettings",
    "ExitStateMiddleware",
    "HttpServer",
    "RoutingApp",
    "StarletteRouter",
    "UvicornServer",
    "hook_http_server",
    "hook_request_router",
    "resolve_timeout",
    "setup_logging",
]
