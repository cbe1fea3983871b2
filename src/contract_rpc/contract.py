"""
Contract registry for contract RPC.

A contract is an immutable tree: internal nodes map keys to sub-trees and
leaves declare one procedure's input and output schemas. The same contract
object is imported by the server (to implement it) and by the client (to call
it), so both sides always validate against identical shapes.

Example:
    >>> greeting = procedure_contract(input=GreetingInput, output=GreetingOutput)
    >>> app_contract = define_contract({"public": {"greeting": greeting}})
    >>> app_contract.get_procedure(("public", "greeting")).path
    ('public', 'greeting')
"""

from __future__ import annotations

import re
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, replace
from types import MappingProxyType
from typing import Any, Union

from contract_rpc.schema import Schema

# Keys become URL path segments, so they must not contain separators
KEY_PATTERN = re.compile(r"^[A-Za-z_][A-Za-z0-9_-]*$")


class ContractDefinitionError(ValueError):
    """Raised when a contract tree is malformed (fails at definition time)."""


@dataclass(frozen=True)
class ContractProcedure:
    """
    A contract leaf: the declared shapes of one procedure.

    Attributes:
        input_schema: Schema the raw input must match.
        output_schema: Schema the handler's return value must match.
        path: Key path from the contract root (set by define_contract).
        description: Optional human-readable summary.
    """

    input_schema: Schema
    output_schema: Schema
    path: tuple[str, ...] = ()
    description: str | None = None

    @property
    def path_name(self) -> str:
        """Return the path joined with '/' (e.g., "public/greeting")."""
        return "/".join(self.path)


ContractNode = Union[ContractProcedure, "ContractRouter"]


class ContractRouter(Mapping[str, ContractNode]):
    """
    Immutable internal node of a contract tree.

    Behaves as a read-only mapping from key to ContractProcedure or nested
    ContractRouter. Instances are only created by define_contract.
    """

    def __init__(self, children: Mapping[str, ContractNode], path: tuple[str, ...]) -> None:
        self._children: Mapping[str, ContractNode] = MappingProxyType(dict(children))
        self.path = path

    def __getitem__(self, key: str) -> ContractNode:
        return self._children[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._children)

    def __len__(self) -> int:
        return len(self._children)

    def __repr__(self) -> str:
        return f"ContractRouter(path={self.path!r}, keys={list(self._children)!r})"

    def get_procedure(self, path: tuple[str, ...] | list[str]) -> ContractProcedure | None:
        """
        Resolve a key path to a leaf.

        Args:
            path: Key path relative to this node.

        Returns:
            The ContractProcedure, or None if the path does not end at a leaf.
        """
        node: ContractNode = self
        for segment in path:
            if not isinstance(node, ContractRouter) or segment not in node:
                return None
            node = node[segment]
        return node if isinstance(node, ContractProcedure) else None

    def iter_procedures(self) -> Iterator[ContractProcedure]:
        """Yield every leaf below this node in definition order."""
        for child in self._children.values():
            if isinstance(child, ContractProcedure):
                yield child
            else:
                yield from child.iter_procedures()


def procedure_contract(
    *,
    input: Any,
    output: Any,
    description: str | None = None,
) -> ContractProcedure:
    """
    Declare a contract leaf.

    Args:
        input: Input shape (any pydantic-validatable type).
        output: Output shape (any pydantic-validatable type).
        description: Optional summary of the procedure.

    Returns:
        A ContractProcedure without a path; define_contract assigns it.
    """
    return ContractProcedure(
        input_schema=Schema(input),
        output_schema=Schema(output),
        description=description,
    )


def define_contract(tree: Mapping[str, Any]) -> ContractRouter:
    """
    Freeze a nested mapping of leaves into a contract tree.

    Every leaf is copied and stamped with its key path, so a leaf declared once
    may safely appear under several keys. Malformed trees fail here, at process
    start, never at request time.

    Args:
        tree: Nested mapping whose leaves are ContractProcedure instances.

    Returns:
        The immutable root ContractRouter.

    Raises:
        ContractDefinitionError: On invalid keys, non-contract values, empty
            sub-trees, or duplicate procedure paths.
    """
    seen: set[str] = set()
    return _freeze(tree, (), seen)


def _freeze(node: Mapping[str, Any], prefix: tuple[str, ...], seen: set[str]) -> ContractRouter:
    if isinstance(node, ContractRouter):
        node = dict(node)
    if not node:
        raise ContractDefinitionError(
            f"Contract node '{'/'.join(prefix) or '<root>'}' has no procedures"
        )

    children: dict[str, ContractNode] = {}
    for key, value in node.items():
        if not isinstance(key, str) or not KEY_PATTERN.match(key):
            raise ContractDefinitionError(
                f"Invalid contract key {key!r} under '{'/'.join(prefix) or '<root>'}'"
            )
        path = (*prefix, key)

        if isinstance(value, ContractProcedure):
            path_name = "/".join(path)
            if path_name in seen:
                raise ContractDefinitionError(f"Duplicate procedure path '{path_name}'")
            seen.add(path_name)
            children[key] = replace(value, path=path)
        elif isinstance(value, Mapping):
            children[key] = _freeze(value, path, seen)
        else:
            raise ContractDefinitionError(
                f"Contract entry '{'/'.join(path)}' must be a procedure contract "
                f"or a mapping, got {type(value).__name__}"
            )

    return ContractRouter(children, prefix)
