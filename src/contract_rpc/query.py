"""
Query-cache integration for the typed client.

``create_query_utils(client)`` mirrors a client tree. Each leaf turns a call
into a QueryOptions object holding a deterministic cache key and a fetch
function, which an external data-fetching cache uses to store, deduplicate,
and invalidate results. This module does no caching itself.

Keys are ``(*path, canonical_input)`` where canonical_input is the validated,
serialized input dumped as JSON with sorted keys: equal path and input give
equal keys, and changing any input field changes the key.

Example:
    >>> orpc = create_query_utils(client)
    >>> options = orpc.public.greeting.query_options(name="Ada")
    >>> options.query_key
    ('public', 'greeting', '{"name":"Ada"}')
    >>> result = await options.query_fn()
"""

from __future__ import annotations

import json
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Union

from contract_rpc.client import ClientRouter, ProcedureClient

QueryKey = tuple[str, ...]


def canonical_json(value: Any) -> str:
    """Serialize value to JSON with sorted keys and no insignificant whitespace."""
    return json.dumps(value, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


@dataclass(frozen=True)
class QueryOptions:
    """
    What a query cache needs to run and store one query.

    Attributes:
        query_key: Deterministic, hashable cache key.
        query_fn: Coroutine function performing the call.
    """

    query_key: QueryKey
    query_fn: Callable[[], Awaitable[Any]]


@dataclass(frozen=True)
class MutationOptions:
    """
    What a query cache needs to run a mutation.

    Attributes:
        mutation_key: Path key of the procedure.
        mutation_fn: Coroutine function taking the input.
    """

    mutation_key: QueryKey
    mutation_fn: Callable[[Any], Awaitable[Any]]


class ProcedureQueryUtils:
    """Query helpers for one procedure."""

    def __init__(self, procedure: ProcedureClient) -> None:
        self.procedure = procedure

    def path_key(self) -> QueryKey:
        """Return the key prefix shared by every input (for invalidation)."""
        return tuple(self.procedure.path)

    def query_key(self, input: Any = None, /, **fields: Any) -> QueryKey:
        """
        Return the full cache key for an input.

        Raises:
            BadRequestError: If the input does not match the input schema.
        """
        payload = self.procedure.serialize_input(input, **fields)
        return (*self.path_key(), canonical_json(payload))

    def query_options(self, input: Any = None, /, **fields: Any) -> QueryOptions:
        """
        Build the QueryOptions for an input.

        The input is validated and serialized once; the fetch function sends
        exactly the payload the key was derived from.
        """
        payload = self.procedure.serialize_input(input, **fields)

        async def query_fn() -> Any:
            return await self.procedure.call_serialized(payload)

        return QueryOptions(
            query_key=(*self.path_key(), canonical_json(payload)),
            query_fn=query_fn,
        )

    def mutation_options(self) -> MutationOptions:
        """Build the MutationOptions for this procedure."""

        async def mutation_fn(input: Any = None) -> Any:
            return await self.procedure(input)

        return MutationOptions(mutation_key=self.path_key(), mutation_fn=mutation_fn)

    def __repr__(self) -> str:
        return f"ProcedureQueryUtils(path={self.procedure.contract.path_name!r})"


QueryUtilsNode = Union["QueryUtils", ProcedureQueryUtils]


class QueryUtils:
    """Query helpers mirroring a client sub-tree."""

    def __init__(self, client: ClientRouter) -> None:
        self.client = client
        children: dict[str, QueryUtilsNode] = {}
        for key, node in client.items():
            if isinstance(node, ProcedureClient):
                children[key] = ProcedureQueryUtils(node)
            else:
                children[key] = QueryUtils(node)
        self._children = children

    def path_key(self) -> QueryKey:
        """Return the key prefix of every procedure below this node."""
        return tuple(self.client.contract.path)

    def __getattr__(self, name: str) -> QueryUtilsNode:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._children[name]
        except KeyError:
            raise AttributeError(f"No procedure or router named '{name}'") from None

    def __getitem__(self, key: str) -> QueryUtilsNode:
        return self._children[key]


def create_query_utils(client: ClientRouter) -> QueryUtils:
    """
    Wrap a typed client for use with a query cache.

    Args:
        client: Root (or sub-tree) of a client built by create_client.

    Returns:
        The QueryUtils mirroring the client.
    """
    return QueryUtils(client)
