"""
HTTP host for contract RPC.

Mounts an RPCHandler on a FastAPI application under the configured prefix.
Requests the handler does not match fall through to the application's other
routes. The Starlette request is adapted to the dispatcher's transport
protocol with its native ``json`` and ``form`` accessors, so the body is
consumed through Starlette exactly once.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import PlainTextResponse, Response

from contract_rpc import __version__
from contract_rpc.config import AppConfig, load_config
from contract_rpc.context import ContextFactory
from contract_rpc.dispatcher import RPCHandler
from contract_rpc.logging import get_logger, setup_logging
from contract_rpc.protocol import strip_prefix
from contract_rpc.security.sessions import SessionContextFactory, SessionTokenCodec

if TYPE_CHECKING:
    from contract_rpc.router import Router

logger = get_logger(__name__)


class StarletteTransportRequest:
    """Transport view of a Starlette request."""

    def __init__(self, request: Request) -> None:
        self._request = request
        self.method = request.method
        self.path = request.url.path
        self.headers = dict(request.headers)
        self.query = dict(request.query_params)

    async def body(self) -> bytes:
        return await self._request.body()

    async def json(self) -> Any:
        return await self._request.json()

    async def form(self) -> Any:
        return await self._request.form()


def build_context_factory(config: AppConfig) -> ContextFactory | None:
    """
    Create the session context factory from configuration.

    Returns:
        A SessionContextFactory, or None when no session secret is configured
        (every request is then anonymous and protected procedures reject).
    """
    if not config.auth.secret:
        logger.warning("No session secret configured; all requests are anonymous")
        return None
    codec = SessionTokenCodec.from_config(config.auth)
    return SessionContextFactory(codec, cookie_name=config.auth.cookie_name)


def create_app(
    config: AppConfig | None = None,
    router: Router | None = None,
    context_factory: ContextFactory | None = None,
) -> FastAPI:
    """
    Build the FastAPI application.

    Args:
        config: Application configuration (defaults to built-in defaults).
        router: Root router to serve (defaults to the example application).
        context_factory: Context factory (defaults to session lookup built
            from ``config.auth``).

    Returns:
        The configured FastAPI app. The RPCHandler is available as
        ``app.state.rpc_handler``.
    """
    config = config or AppConfig()
    if router is None:
        from contract_rpc.app.routers import app_router

        router = app_router
    if context_factory is None:
        context_factory = build_context_factory(config)

    prefix = config.rpc.prefix
    handler = RPCHandler(
        router,
        context_factory=context_factory,
        strict_paths=config.rpc.strict_paths,
    )

    app = FastAPI(title="Contract RPC", version=__version__)
    app.state.rpc_handler = handler

    @app.middleware("http")
    async def rpc_mount(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        if strip_prefix(request.url.path, prefix) is None:
            return await call_next(request)

        result = await handler.handle(StarletteTransportRequest(request), prefix=prefix)
        if not result.matched or result.response is None:
            return await call_next(request)

        return Response(
            content=result.response.body,
            status_code=result.response.status,
            headers=result.response.headers,
        )

    @app.middleware("http")
    async def log_requests(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        response = await call_next(request)
        logger.info(
            "%s %s %s",
            request.method,
            request.url.path,
            response.status_code,
            extra={"status": response.status_code},
        )
        return response

    # Added last so preflight requests never reach the RPC mount
    app.add_middleware(
        CORSMiddleware,
        allow_origins=config.cors.allowed_origins,
        allow_methods=config.cors.allow_methods,
        allow_headers=config.cors.allow_headers,
        allow_credentials=config.cors.allow_credentials,
        max_age=config.cors.max_age,
    )

    @app.get("/", response_class=PlainTextResponse)
    async def health() -> str:
        return "OK"

    logger.debug(
        "RPC procedures mounted",
        extra={"prefix": prefix, "procedures": router.list_paths()},
    )
    return app


def main(argv: list[str] | None = None) -> None:
    """Load configuration and serve the example application."""
    config = load_config(cli_args=argv)
    setup_logging(config.logging)

    app = create_app(config)
    logger.info(
        "Server is running on http://%s:%d",
        config.server.host,
        config.server.port,
    )
    uvicorn.run(
        app,
        host=config.server.host,
        port=config.server.port,
        log_level=config.server.log_level,
        access_log=False,
    )
