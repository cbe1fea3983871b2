"""
Procedure builder for contract RPC.

``implement(contract)`` returns an Implementer mirroring the contract tree.
Navigating to a leaf yields a ProcedureBuilder; ``.handler(fn)`` on it
finalizes a Procedure that binds the contract leaf, the middleware chain
accumulated so far, and the handler.

Example:
    >>> public_procedure = implement(app_contract)
    >>> protected_procedure = public_procedure.use(auth_middleware)
    >>>
    >>> @protected_procedure.private.greeting.handler
    ... async def private_greeting(ctx: Context, input: GreetingInput) -> dict:
    ...     return {"text": f"Hello, {ctx['user'].name}"}
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, Union

from contract_rpc.context import Context
from contract_rpc.contract import ContractProcedure, ContractRouter
from contract_rpc.errors import BadRequestError, InternalError
from contract_rpc.logging import get_logger
from contract_rpc.middleware import Middleware, MiddlewareChain
from contract_rpc.schema import SchemaValidationError

if TYPE_CHECKING:
    from contract_rpc.router import Router

logger = get_logger(__name__)

# Handlers receive the final context and the validated input
Handler = Callable[[Context, Any], Awaitable[Any]]

# Loads the raw (decoded but unvalidated) input on demand
InputLoader = Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class Procedure:
    """
    A contract leaf bound to a middleware chain and a handler.

    Procedures are built once at startup and hold no per-call state, so a
    single instance serves concurrent dispatches.

    Attributes:
        contract: The contract leaf this procedure implements.
        chain: Middlewares applied before the handler, in order.
        handler: Async function producing the output.
    """

    contract: ContractProcedure
    chain: MiddlewareChain
    handler: Handler

    @property
    def path(self) -> tuple[str, ...]:
        """Return the key path of the implemented contract leaf."""
        return self.contract.path

    async def call(self, ctx: Context, load_input: InputLoader) -> Any:
        """
        Run the procedure for one request.

        Middlewares run first; only when all of them pass control onward is
        the input loaded and validated, the handler invoked, and its return
        value validated against the output schema.

        Args:
            ctx: The initial context for this request.
            load_input: Coroutine function returning the raw input.

        Returns:
            The output in its JSON-compatible wire form.

        Raises:
            BadRequestError: If the input does not match the input schema.
            InternalError: If the output does not match the output schema.
            RPCError: Whatever a middleware or the handler raised.
        """

        async def terminal(final_ctx: Context) -> Any:
            raw_input = await load_input()
            try:
                value = self.contract.input_schema.validate(raw_input)
            except SchemaValidationError as e:
                raise BadRequestError(
                    message="Input validation failed",
                    metadata={"issues": e.issues},
                ) from e

            output = await self.handler(final_ctx, value)

            try:
                validated = self.contract.output_schema.validate(output)
            except SchemaValidationError as e:
                # The handler broke its own contract; the caller did nothing wrong
                logger.error(
                    "Output validation failed",
                    extra={"procedure": self.contract.path_name, "issues": e.issues},
                )
                raise InternalError(message="Output validation failed") from e

            return self.contract.output_schema.dump(validated, exclude_unset=False)

        result = await self.chain.run(ctx, terminal)
        return result.output


class ProcedureBuilder:
    """Builder for a single contract leaf."""

    def __init__(self, contract: ContractProcedure, chain: MiddlewareChain) -> None:
        self.contract = contract
        self.chain = chain

    def use(self, middleware: Middleware) -> ProcedureBuilder:
        """Return a builder with middleware appended; this one is unchanged."""
        return ProcedureBuilder(self.contract, self.chain.append(middleware))

    def handler(self, fn: Handler) -> Procedure:
        """
        Finalize a Procedure.

        The middleware chain is captured now; middlewares added to other
        builders later never apply to the returned Procedure.

        Args:
            fn: Async handler ``(ctx, input) -> output``.

        Returns:
            The immutable Procedure.
        """
        if not callable(fn):
            raise TypeError(f"Handler for '{self.contract.path_name}' must be callable")
        return Procedure(contract=self.contract, chain=self.chain, handler=fn)

    def __repr__(self) -> str:
        return (
            f"ProcedureBuilder(path={self.contract.path_name!r}, "
            f"middlewares={len(self.chain)})"
        )


BuilderNode = Union["Implementer", ProcedureBuilder]


class Implementer:
    """
    Builder bound to a contract sub-tree.

    Children are derived once from the contract's keys and reached by
    attribute (``builder.public.greeting``) or item access
    (``builder["public"]["greeting"]``).
    """

    def __init__(self, contract: ContractRouter, chain: MiddlewareChain) -> None:
        self.contract = contract
        self.chain = chain
        children: dict[str, BuilderNode] = {}
        for key, node in contract.items():
            if isinstance(node, ContractProcedure):
                children[key] = ProcedureBuilder(node, chain)
            else:
                children[key] = Implementer(node, chain)
        self._children = children

    def __getattr__(self, name: str) -> BuilderNode:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._children[name]
        except KeyError:
            raise AttributeError(
                f"Contract '{'/'.join(self.contract.path) or '<root>'}' has no key '{name}'"
            ) from None

    def __getitem__(self, key: str) -> BuilderNode:
        return self._children[key]

    def __contains__(self, key: object) -> bool:
        return key in self._children

    def keys(self) -> list[str]:
        """Return the contract keys at this level."""
        return list(self._children)

    def use(self, middleware: Middleware) -> Implementer:
        """
        Return a builder with middleware appended for every procedure below.

        Procedures already finalized from this builder are not affected.
        """
        return Implementer(self.contract, self.chain.append(middleware))

    def router(self, entries: Mapping[str, Any]) -> Router:
        """
        Build a Router for this level, checked against the contract.

        Raises:
            RouterShapeError: If the entries do not mirror the contract.
        """
        from contract_rpc.router import build_router

        return build_router(self.contract, entries)

    def __repr__(self) -> str:
        return (
            f"Implementer(path={'/'.join(self.contract.path)!r}, "
            f"keys={self.keys()!r}, middlewares={len(self.chain)})"
        )


def implement(contract: ContractRouter) -> Implementer:
    """
    Start implementing a contract.

    Args:
        contract: A contract tree produced by define_contract.

    Returns:
        An Implementer with an empty middleware chain.
    """
    if not isinstance(contract, ContractRouter):
        raise TypeError("implement() expects a contract built with define_contract()")
    return Implementer(contract, MiddlewareChain())
