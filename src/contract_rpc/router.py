"""
Procedure routing for contract RPC.

A Router nests Procedures and sub-routers under the same keys as the contract
it implements. Its shape is checked against the contract when it is built, so
a server whose routers diverge from the shared contract fails at startup.

This module provides:
- Router: read-only tree of procedures with path resolution
- build_router: shape-checked construction from a nested mapping
- RouterShapeError: raised when the mapping diverges from the contract
"""

from __future__ import annotations

from collections.abc import Iterator, Mapping, Sequence
from types import MappingProxyType
from typing import Any, Union

from contract_rpc.contract import ContractProcedure, ContractRouter
from contract_rpc.procedure import Procedure

RouterNode = Union[Procedure, "Router"]


class RouterShapeError(ValueError):
    """
    Raised when a router does not mirror its contract.

    Attributes:
        problems: One line per divergence (missing key, extra key, wrong
            node type, or a procedure implementing another contract leaf).
    """

    def __init__(self, problems: list[str]) -> None:
        super().__init__("Router does not match contract: " + "; ".join(problems))
        self.problems = problems


class Router(Mapping[str, RouterNode]):
    """
    Read-only tree of procedures mirroring a contract.

    Example:
        >>> router = build_router(app_contract, {"public": {"greeting": proc}})
        >>> router.resolve(["public", "greeting"]) is proc
        True
    """

    def __init__(self, contract: ContractRouter, entries: Mapping[str, RouterNode]) -> None:
        self.contract = contract
        self._entries: Mapping[str, RouterNode] = MappingProxyType(dict(entries))

    def __getitem__(self, key: str) -> RouterNode:
        return self._entries[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self._entries)

    def __len__(self) -> int:
        return len(self._entries)

    def __repr__(self) -> str:
        return f"Router(path={'/'.join(self.contract.path)!r}, keys={list(self._entries)!r})"

    def resolve(self, segments: Sequence[str]) -> Procedure | None:
        """
        Follow path segments down to a Procedure.

        Args:
            segments: Key path relative to this router.

        Returns:
            The Procedure, or None if any segment is absent or the path stops
            at a sub-router.
        """
        node: RouterNode = self
        for segment in segments:
            if not isinstance(node, Router):
                return None
            child = node._entries.get(segment)
            if child is None:
                return None
            node = child
        return node if isinstance(node, Procedure) else None

    def iter_procedures(self) -> Iterator[Procedure]:
        """Yield every procedure in the tree, in contract order."""
        for entry in self._entries.values():
            if isinstance(entry, Procedure):
                yield entry
            else:
                yield from entry.iter_procedures()

    def list_paths(self) -> list[str]:
        """List every procedure path joined with '/'."""
        return [procedure.contract.path_name for procedure in self.iter_procedures()]


def build_router(contract: ContractRouter, entries: Mapping[str, Any]) -> Router:
    """
    Build a Router, checking it against the contract.

    Entries may be Procedures, Routers, or plain nested mappings of those.

    Args:
        contract: Contract node the router implements.
        entries: Mapping with exactly the contract's keys.

    Returns:
        The Router.

    Raises:
        RouterShapeError: On missing or extra keys, a leaf where the contract
            has a sub-tree (or the reverse), or a procedure built for another
            contract leaf.
    """
    problems: list[str] = []
    router = _build(contract, entries, problems)
    if problems:
        raise RouterShapeError(problems)
    return router


def _build(contract: ContractRouter, entries: Mapping[str, Any], problems: list[str]) -> Router:
    here = "/".join(contract.path) or "<root>"
    if isinstance(entries, Router):
        if entries.contract is not contract:
            problems.append(f"'{here}': router implements a different contract")
        return entries

    built: dict[str, RouterNode] = {}
    for key, node in contract.items():
        path_name = "/".join((*contract.path, key))
        if key not in entries:
            problems.append(f"'{path_name}': missing")
            continue
        entry = entries[key]

        if isinstance(node, ContractProcedure):
            if not isinstance(entry, Procedure):
                problems.append(
                    f"'{path_name}': expected a procedure, got {type(entry).__name__}"
                )
            elif entry.contract is not node:
                problems.append(
                    f"'{path_name}': procedure implements "
                    f"'{entry.contract.path_name}' from another contract"
                )
            else:
                built[key] = entry
        elif isinstance(entry, (Router, Mapping)):
            built[key] = _build(node, entry, problems)
        else:
            problems.append(
                f"'{path_name}': expected a router, got {type(entry).__name__}"
            )

    for key in sorted(set(entries) - set(contract)):
        problems.append(f"'{'/'.join((*contract.path, str(key)))}': not in contract")

    return Router(contract, built)
