"""
Request dispatcher for contract RPC.

RPCHandler resolves an inbound request under a mount prefix to a Procedure,
runs it, and serializes the outcome into a Response. It keeps no mutable
state between calls; the router it dispatches to is built once at startup.

Request lifecycle:
1. Strip the mount prefix (requests outside it are reported as unmatched)
2. Resolve the remaining path segments against the router
3. Build the context (host values, then the context factory, then request meta)
4. Run middlewares, then load and validate input, call the handler, and
   validate its output
5. Serialize the output or the error with the status for its kind
"""

from __future__ import annotations

import inspect
import time
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from contract_rpc.context import ContextFactory, RequestMeta, create_context
from contract_rpc.errors import (
    InternalError,
    MethodNotSupportedError,
    MiddlewareContractError,
    NotFoundError,
    RPCError,
)
from contract_rpc.logging import get_logger
from contract_rpc.procedure import Procedure
from contract_rpc.protocol import (
    SUPPORTED_METHODS,
    format_error_response,
    format_success_response,
    split_path,
    strip_prefix,
)
from contract_rpc.router import Router
from contract_rpc.transport import BodyReader, Response, TransportRequest

logger = get_logger(__name__)

DEFAULT_PREFIX = "/rpc"


@dataclass
class HandleResult:
    """
    Outcome of RPCHandler.handle.

    Attributes:
        matched: False when the request is not addressed to a procedure; the
            host should fall through to its other routes.
        response: The response to send when matched.
    """

    matched: bool
    response: Response | None = None


class RPCHandler:
    """
    Dispatches HTTP requests to the procedures of a router.

    Example:
        >>> handler = RPCHandler(app_router, context_factory=sessions)
        >>> result = await handler.handle(request, prefix="/rpc")
        >>> if result.matched:
        ...     return result.response

    Attributes:
        router: Root router (the single dispatch target).
        context_factory: Optional callable ``(RequestMeta) -> mapping`` called
            once per matched request, before middleware.
        strict_paths: Answer unknown paths under the prefix with NOT_FOUND
            instead of reporting them as unmatched.
    """

    def __init__(
        self,
        router: Router,
        *,
        context_factory: ContextFactory | None = None,
        strict_paths: bool = False,
    ) -> None:
        self.router = router
        self.context_factory = context_factory
        self.strict_paths = strict_paths

    async def handle(
        self,
        request: TransportRequest,
        *,
        prefix: str = DEFAULT_PREFIX,
        context: Mapping[str, Any] | None = None,
    ) -> HandleResult:
        """
        Handle one request.

        Args:
            request: The inbound request.
            prefix: Mount prefix the procedures live under.
            context: Initial context values supplied by the host.

        Returns:
            HandleResult; never raises for request-level failures.
        """
        remainder = strip_prefix(request.path, prefix)
        if remainder is None:
            return HandleResult(matched=False)

        segments = split_path(remainder)
        procedure = self.router.resolve(segments)
        if procedure is None:
            if not self.strict_paths:
                logger.debug("No procedure for path", extra={"path": request.path})
                return HandleResult(matched=False)
            error = NotFoundError(
                message="Procedure not found",
                metadata={"path": "/".join(segments)},
            )
            return HandleResult(matched=True, response=format_error_response(error))

        response = await self._dispatch(procedure, request, context)
        return HandleResult(matched=True, response=response)

    async def _dispatch(
        self,
        procedure: Procedure,
        request: TransportRequest,
        context: Mapping[str, Any] | None,
    ) -> Response:
        meta = RequestMeta.from_headers(
            request.method, request.path, request.headers, procedure.path
        )
        started = time.monotonic()

        try:
            if meta.method not in SUPPORTED_METHODS:
                raise MethodNotSupportedError(
                    message=f"Method {meta.method} is not supported",
                    metadata={"allowed": sorted(SUPPORTED_METHODS)},
                )

            initial = dict(context or {})
            if self.context_factory is not None:
                produced = self.context_factory(meta)
                if inspect.isawaitable(produced):
                    produced = await produced
                initial.update(produced)

            ctx = create_context(meta, initial)
            reader = BodyReader(request)
            output = await procedure.call(ctx, reader.read)

        except MiddlewareContractError as e:
            logger.error(
                "Middleware contract violation",
                extra={"procedure": meta.procedure_name, "error": e.message, **e.metadata},
            )
            return self._respond(meta, started, InternalError(message="Internal server error"))

        except RPCError as e:
            return self._respond(meta, started, e)

        except Exception as e:
            # Handler faults stay on the server; the caller only sees INTERNAL
            logger.exception(
                "Unexpected error dispatching procedure",
                extra={"procedure": meta.procedure_name, "error": str(e)},
            )
            return self._respond(meta, started, InternalError(message="Internal server error"))

        response = format_success_response(output)
        logger.debug(
            "Procedure completed",
            extra={
                **meta.to_dict(),
                "status": response.status,
                "duration_ms": round((time.monotonic() - started) * 1000, 2),
            },
        )
        return response

    def _respond(self, meta: RequestMeta, started: float, error: RPCError) -> Response:
        response = format_error_response(error)
        logger.info(
            "Procedure failed",
            extra={
                **meta.to_dict(),
                "status": response.status,
                "kind": error.kind_name,
                "duration_ms": round((time.monotonic() - started) * 1000, 2),
            },
        )
        return response
