"""Hooks that attach an :class:`ExitCoordinator` to HTTP servers and routers.

* :func:`hook_http_server` registers a cleanup task that stops the server
  accepting connections and waits for in-flight requests.
* :func:`hook_request_router` exposes an exit-state flag on a router and
  installs :class:`ExitStateMiddleware`, which asks keep-alive clients to
  close their connection once shutdown has started.
"""

from __future__ import annotations

import abc
import asyncio
import socket
from collections.abc import Callable, Iterable
from functools import partial
from typing import TYPE_CHECKING, Any

import structlog
import uvicorn
from starlette.applications import Starlette
from starlette.datastructures import MutableHeaders
from starlette.types import ASGIApp, Message, Receive, Scope, Send

from .models import CleanupTask

if TYPE_CHECKING:
    from .coordinator import ExitCoordinator

logger = structlog.get_logger()

EXIT_STATE_KEY = "tidy_exit_state"


class ExitHandle:
    """Returned by the hooks; :meth:`close` unbinds their registrations early."""

    def __init__(self, closers: Iterable[Callable[[], Any]] = ()) -> None:
        self._closers = list(closers)
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        for closer in self._closers:
            closer()


# ----------------------------------------------------------------------
# Routers
# ----------------------------------------------------------------------


class RoutingApp(abc.ABC):
    """What a request router must offer to be hooked.

    ``get_state`` returns ``None`` for keys that were never set, so the
    exit-state flag reads as unset / ``False`` / ``True``.
    """

    @abc.abstractmethod
    def add_middleware(self, middleware_class: type, **options: Any) -> None: ...

    @abc.abstractmethod
    def get_state(self, key: str) -> Any: ...

    @abc.abstractmethod
    def set_state(self, key: str, value: Any) -> None: ...


class StarletteRouter(RoutingApp):
    """:class:`RoutingApp` over a Starlette (or FastAPI) application."""

    def __init__(self, app: Starlette) -> None:
        self.app = app

    def add_middleware(self, middleware_class: type, **options: Any) -> None:
        """Add *middleware_class*, wrapping the built stack if the app already started."""
        if self.app.middleware_stack is None:
            self.app.add_middleware(middleware_class, **options)
            return
        logger.debug("middleware_wrapped_running_app", middleware=middleware_class.__name__)
        self.app.middleware_stack = middleware_class(self.app.middleware_stack, **options)

    def get_state(self, key: str) -> Any:
        return getattr(self.app.state, key, None)

    def set_state(self, key: str, value: Any) -> None:
        setattr(self.app.state, key, value)


def as_router(candidate: Any) -> RoutingApp | None:
    """Return *candidate* as a :class:`RoutingApp`, or ``None`` if it cannot be hooked."""
    if isinstance(candidate, RoutingApp):
        return candidate
    if isinstance(candidate, Starlette):
        return StarletteRouter(candidate)
    return None


class ExitStateMiddleware:
    """ASGI middleware adding ``Connection: close`` to responses while exiting."""

    def __init__(self, app: ASGIApp, router: RoutingApp) -> None:
        self.app = app
        self.router = router

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] != "http":
            await self.app(scope, receive, send)
            return

        async def send_wrapper(message: Message) -> None:
            if message["type"] == "http.response.start" and self.router.get_state(EXIT_STATE_KEY) is True:
                headers = MutableHeaders(scope=message)
                headers["connection"] = "close"
            await send(message)

        await self.app(scope, receive, send_wrapper)


def hook_request_router(coordinator: ExitCoordinator, router: Any) -> ExitHandle | None:
    """Expose the exit-state flag on *router* and flip it when shutdown starts.

    Returns ``None`` if the router was already hooked.
    """
    resolved = as_router(router)
    if resolved is None:
        raise TypeError(f"{type(router).__name__} is neither a RoutingApp nor a Starlette app")

    if resolved.get_state(EXIT_STATE_KEY) is not None:
        logger.debug("request_router_already_hooked")
        return None

    resolved.add_middleware(ExitStateMiddleware, router=resolved)
    resolved.set_state(EXIT_STATE_KEY, False)

    def _flag_exiting(error: Any, done: Callable[[], None]) -> None:
        resolved.set_state(EXIT_STATE_KEY, True)
        done()

    listener = coordinator.register(CleanupTask(callback=_flag_exiting, description="requestRouter"))
    return ExitHandle([partial(coordinator.unregister, listener)])


# ----------------------------------------------------------------------
# Servers
# ----------------------------------------------------------------------


class HttpServer(abc.ABC):
    """What an HTTP server must offer to be hooked."""

    @abc.abstractmethod
    async def close(self) -> None:
        """Stop accepting connections and wait for in-flight ones to finish."""

    def request_listeners(self) -> list[Any]:
        """Applications serving requests, checked for routers to hook."""
        return []


class AsyncioServer(HttpServer):
    """:class:`HttpServer` over an :class:`asyncio.Server`."""

    def __init__(self, server: asyncio.Server, app: Any = None) -> None:
        self.server = server
        self.app = app

    async def close(self) -> None:
        self.server.close()
        await self.server.wait_closed()

    def request_listeners(self) -> list[Any]:
        return [self.app] if self.app is not None else []


class UvicornServer(HttpServer):
    """:class:`HttpServer` over a :class:`uvicorn.Server`.

    Run the server through :meth:`serve` so :meth:`close` can wait for
    uvicorn's own shutdown sequence to finish.
    """

    def __init__(self, server: uvicorn.Server) -> None:
        self.server = server
        self._serving = False
        self._stopped = asyncio.Event()

    async def serve(self, sockets: list[socket.socket] | None = None) -> None:
        self._serving = True
        self._stopped.clear()
        try:
            await self.server.serve(sockets=sockets)
        finally:
            self._serving = False
            self._stopped.set()

    async def close(self) -> None:
        self.server.should_exit = True
        if self._serving:
            await self._stopped.wait()

    def request_listeners(self) -> list[Any]:
        return [self.server.config.app]


def hook_http_server(
    coordinator: ExitCoordinator,
    server: HttpServer,
    hook_sub_apps: bool = True,
) -> ExitHandle:
    """Close *server* on shutdown; with *hook_sub_apps*, also hook its routers."""
    if not isinstance(server, HttpServer):
        raise TypeError(f"{type(server).__name__} is not an HttpServer")

    async def _close_server(error: Any) -> None:
        await server.close()

    listener = coordinator.register(CleanupTask(callback=_close_server, description="httpServer"))
    closers: list[Callable[[], Any]] = [partial(coordinator.unregister, listener)]

    if hook_sub_apps:
        for candidate in server.request_listeners():
            router = as_router(candidate)
            if router is None:
                continue
            handle = hook_request_router(coordinator, router)
            if handle is not None:
                closers.append(handle.close)

    return ExitHandle(closers)
