"""
Middleware chain for contract RPC procedures.

A middleware is an async callable ``(ctx, next_fn) -> MiddlewareResult``. It
either calls ``next_fn`` exactly once (optionally with an extended context)
and returns what ``next_fn`` returned, or short-circuits without calling it
by raising an RPCError (returning one has the same effect). An error raised
downstream of ``next_fn`` must propagate; returning normally after it is a
violation.

MiddlewareChain keeps the middlewares as an ordered tuple and runs them by
index. Each step receives its own NextFn which records how it was used, so
misuse is detected structurally and surfaced as INTERNAL.

Every middleware awaits its continuation, so the Python stack grows by one
frame pair per middleware. Chains are short, and keeping each step as a
plain ``await`` preserves tracebacks through the whole chain.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from contract_rpc.context import Context, extend_context, missing_keys
from contract_rpc.errors import MiddlewareContractError, RPCError, UnauthorizedError
from contract_rpc.logging import get_logger

logger = get_logger(__name__)

Middleware = Callable[[Context, "NextFn"], Awaitable["MiddlewareResult"]]

# The innermost step: receives the final context, returns the procedure output
Terminal = Callable[[Context], Awaitable[Any]]


@dataclass
class MiddlewareResult:
    """
    Result passed back up the chain.

    Attributes:
        output: The procedure output produced by the terminal step.
        context: The context the terminal step ran with.
    """

    output: Any
    context: Context


class NextFn:
    """
    Call-once continuation handed to a single middleware.

    Calling it runs the rest of the chain. A second call raises
    MiddlewareContractError and marks the step as violated, so the violation
    is reported even if the middleware swallows the exception.
    """

    def __init__(
        self,
        chain: MiddlewareChain,
        index: int,
        upstream: Context,
        terminal: Terminal,
    ) -> None:
        self._chain = chain
        self._index = index
        self._upstream = upstream
        self._terminal = terminal
        self.called = False
        self.violation: str | None = None
        self.completed = False
        self.result: MiddlewareResult | None = None

    @property
    def middleware_name(self) -> str:
        """Return the name of the middleware owning this continuation."""
        middleware = self._chain.middlewares[self._index]
        return getattr(middleware, "__name__", type(middleware).__name__)

    async def __call__(self, ctx: Mapping[str, Any] | None = None) -> MiddlewareResult:
        if self.called:
            self.violation = "next called more than once"
            raise MiddlewareContractError(
                message=f"Middleware '{self.middleware_name}' called next more than once",
            )
        self.called = True

        next_ctx = self._upstream if ctx is None else ctx
        dropped = missing_keys(self._upstream, next_ctx)
        if dropped:
            self.violation = "context keys removed"
            raise MiddlewareContractError(
                message=f"Middleware '{self.middleware_name}' removed context keys",
                metadata={"keys": dropped},
            )

        self.result = await self._chain.run_from(
            self._index + 1, dict(next_ctx), self._terminal
        )
        self.completed = True
        return self.result


class MiddlewareChain:
    """
    Ordered, immutable list of middlewares.

    The chain holds no per-call state and may be shared by any number of
    concurrent dispatches.

    Example:
        >>> chain = MiddlewareChain().append(auth_middleware)
        >>> result = await chain.run(ctx, terminal)
        >>> result.output
    """

    def __init__(self, middlewares: Sequence[Middleware] = ()) -> None:
        self.middlewares: tuple[Middleware, ...] = tuple(middlewares)

    def append(self, middleware: Middleware) -> MiddlewareChain:
        """Return a new chain with middleware added at the end."""
        return MiddlewareChain((*self.middlewares, middleware))

    def __len__(self) -> int:
        return len(self.middlewares)

    async def run(self, ctx: Context, terminal: Terminal) -> MiddlewareResult:
        """
        Run every middleware front to back, then the terminal step.

        Args:
            ctx: The initial context.
            terminal: Step invoked with the final context once all middlewares
                passed control onward.

        Returns:
            The MiddlewareResult produced by the terminal step.

        Raises:
            RPCError: Whatever a middleware or the terminal step raised.
            MiddlewareContractError: If a middleware misused its next function.
        """
        return await self.run_from(0, ctx, terminal)

    async def run_from(
        self, index: int, ctx: Context, terminal: Terminal
    ) -> MiddlewareResult:
        """Run the chain starting at the middleware at index."""
        if index >= len(self.middlewares):
            output = await terminal(ctx)
            return MiddlewareResult(output=output, context=ctx)

        middleware = self.middlewares[index]
        next_fn = NextFn(self, index, ctx, terminal)
        result = await middleware(ctx, next_fn)

        if next_fn.violation is not None:
            raise MiddlewareContractError(
                message=f"Middleware '{next_fn.middleware_name}' violated the chain contract",
                metadata={"violation": next_fn.violation},
            )
        if not next_fn.called:
            if isinstance(result, RPCError):
                raise result
            raise MiddlewareContractError(
                message=f"Middleware '{next_fn.middleware_name}' returned without calling next",
            )
        if not next_fn.completed:
            raise MiddlewareContractError(
                message=f"Middleware '{next_fn.middleware_name}' swallowed an error from next",
            )
        if result is not next_fn.result:
            raise MiddlewareContractError(
                message=f"Middleware '{next_fn.middleware_name}' did not return the result of next",
            )
        return result


# =============================================================================
# Authentication Middleware
# =============================================================================


def _session_user(session: Any) -> Any | None:
    """Return the session's user if it carries an identity."""
    if session is None:
        return None
    if isinstance(session, Mapping):
        user = session.get("user")
    else:
        user = getattr(session, "user", None)
    if user is None:
        return None

    user_id = user.get("id") if isinstance(user, Mapping) else getattr(user, "id", None)
    if not user_id:
        return None
    return user


async def auth_middleware(ctx: Context, next_fn: NextFn) -> MiddlewareResult:
    """
    Require a session with a user identity.

    Reads ``ctx["session"]``; short-circuits with UNAUTHORIZED when it is
    absent or has no user, otherwise adds ``ctx["user"]`` and continues.
    The session itself is never modified.
    """
    user = _session_user(ctx.get("session"))
    if user is None:
        request = ctx.get("request")
        logger.warning(
            "Rejected unauthenticated call",
            extra={"procedure": getattr(request, "procedure_name", None)},
        )
        raise UnauthorizedError(message="Authentication required")

    return await next_fn(extend_context(ctx, user=user))
