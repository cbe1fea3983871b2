"""
Request context for contract RPC.

This module defines RequestMeta, the transport-independent view of an inbound
request, and the helpers used to build and extend the per-request Context
mapping threaded through middleware into handlers.
"""

from __future__ import annotations

from collections.abc import Awaitable, Callable, Mapping
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

# A context is a plain mapping of named values, created fresh per request
Context = dict[str, Any]

ContextFactory = Callable[["RequestMeta"], Awaitable[Mapping[str, Any]] | Mapping[str, Any]]


@dataclass
class RequestMeta:
    """
    Metadata of a single inbound request.

    Attributes:
        method: HTTP method (upper case).
        path: Full request path, including the mount prefix.
        procedure_path: Key path of the resolved procedure.
        headers: Request headers with lower-cased names.
        received_at: When the request was received (UTC).
    """

    method: str
    path: str
    procedure_path: tuple[str, ...] = ()
    headers: dict[str, str] = field(default_factory=dict)
    received_at: datetime = field(default_factory=lambda: datetime.now(UTC))

    @property
    def procedure_name(self) -> str:
        """Return the procedure path joined with '/'."""
        return "/".join(self.procedure_path)

    def header(self, name: str, default: str | None = None) -> str | None:
        """Look up a header case-insensitively."""
        return self.headers.get(name.lower(), default)

    def to_dict(self) -> dict[str, Any]:
        """
        Convert RequestMeta to a dictionary for logging.

        Header values are left out; they may carry credentials.
        """
        return {
            "method": self.method,
            "path": self.path,
            "procedure": self.procedure_name,
            "received_at": self.received_at.isoformat(),
        }

    @classmethod
    def from_headers(
        cls,
        method: str,
        path: str,
        headers: Mapping[str, str],
        procedure_path: tuple[str, ...] = (),
    ) -> RequestMeta:
        """Create RequestMeta, normalizing header names to lower case."""
        return cls(
            method=method.upper(),
            path=path,
            procedure_path=procedure_path,
            headers={key.lower(): value for key, value in headers.items()},
        )


def create_context(meta: RequestMeta, initial: Mapping[str, Any] | None = None) -> Context:
    """
    Create the initial context for a request.

    Args:
        meta: Request metadata, stored under "request" unless already set.
        initial: Values supplied by the host or a context factory.

    Returns:
        A new Context owned by this request.
    """
    ctx: Context = dict(initial or {})
    ctx.setdefault("request", meta)
    return ctx


def extend_context(ctx: Mapping[str, Any], **values: Any) -> Context:
    """
    Return a copy of ctx with additional values.

    Keys already present are overwritten but never removed.

    Example:
        >>> extend_context({"session": s}, user=s.user)
        {'session': ..., 'user': ...}
    """
    return {**ctx, **values}


def missing_keys(upstream: Mapping[str, Any], downstream: Mapping[str, Any]) -> list[str]:
    """Return the upstream keys that downstream dropped."""
    return [key for key in upstream if key not in downstream]
