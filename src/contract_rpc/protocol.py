"""
Wire protocol for contract RPC over HTTP.

This module defines how procedure paths are derived from request paths and
how outcomes are serialized. Client and server both use it so the two sides
cannot drift apart.

Wire format:
- Request: ``POST {prefix}/{key}/{key}...`` with the JSON input as body, or
  ``GET`` with the JSON input in the ``data`` query parameter
- Success: status 200, body = JSON output value
- Error: status per kind, body = ``{"kind", "message", "metadata"?}``

Status Mapping:
- BAD_REQUEST: 400
- UNAUTHORIZED: 401
- FORBIDDEN: 403
- NOT_FOUND: 404
- METHOD_NOT_SUPPORTED: 405
- TIMEOUT: 408
- CONFLICT: 409
- TOO_MANY_REQUESTS: 429
- INTERNAL: 500
"""

from __future__ import annotations

import json
from typing import Any

from contract_rpc.errors import ErrorKind, RPCError
from contract_rpc.transport import JSON_CONTENT_TYPE, Response

SUCCESS_STATUS = 200

STATUS_CODE_MAP: dict[ErrorKind, int] = {
    ErrorKind.BAD_REQUEST: 400,
    ErrorKind.UNAUTHORIZED: 401,
    ErrorKind.FORBIDDEN: 403,
    ErrorKind.NOT_FOUND: 404,
    ErrorKind.METHOD_NOT_SUPPORTED: 405,
    ErrorKind.TIMEOUT: 408,
    ErrorKind.CONFLICT: 409,
    ErrorKind.TOO_MANY_REQUESTS: 429,
    ErrorKind.INTERNAL: 500,
}

# Status for kinds without an explicit mapping
DEFAULT_ERROR_STATUS = 500

SUPPORTED_METHODS = frozenset({"GET", "POST"})

# Header marking a response as produced by the RPC dispatcher
RPC_ERROR_HEADER = "x-rpc-error"


def status_for(error: RPCError) -> int:
    """
    Return the HTTP status for an error.

    Args:
        error: The RPCError to map.

    Returns:
        The mapped status, or 500 for unmapped kinds.
    """
    if isinstance(error.kind, ErrorKind):
        return STATUS_CODE_MAP.get(error.kind, DEFAULT_ERROR_STATUS)
    return DEFAULT_ERROR_STATUS


def is_success_status(status: int) -> bool:
    """Return True for statuses carrying an output value."""
    return 200 <= status < 300


def strip_prefix(path: str, prefix: str) -> str | None:
    """
    Remove the mount prefix from a request path.

    Args:
        path: The request path (e.g., "/rpc/public/greeting").
        prefix: The mount prefix (e.g., "/rpc"); "" or "/" mounts at root.

    Returns:
        The remainder (e.g., "/public/greeting"), or None when the path is
        not under the prefix.

    Example:
        >>> strip_prefix("/rpc/public/greeting", "/rpc")
        '/public/greeting'
        >>> strip_prefix("/rpcx/public", "/rpc") is None
        True
    """
    prefix = prefix.rstrip("/")
    if not prefix:
        return path
    if path == prefix:
        return ""
    if path.startswith(prefix + "/"):
        return path[len(prefix) :]
    return None


def split_path(remainder: str) -> list[str]:
    """Split a prefix-stripped path into procedure key segments."""
    return [segment for segment in remainder.split("/") if segment]


def join_path(prefix: str, segments: tuple[str, ...] | list[str]) -> str:
    """Build the request path for a procedure (inverse of split_path)."""
    return prefix.rstrip("/") + "/" + "/".join(segments)


def _encode(payload: Any) -> bytes:
    return json.dumps(payload, separators=(",", ":")).encode("utf-8")


def format_success_response(output: Any) -> Response:
    """
    Format a success response.

    Args:
        output: The output in its JSON-compatible wire form.

    Returns:
        Response with status 200.
    """
    return Response(
        body=_encode(output),
        status=SUCCESS_STATUS,
        headers={"content-type": JSON_CONTENT_TYPE},
    )


def format_error_response(error: RPCError) -> Response:
    """
    Format an error response.

    Args:
        error: The RPCError to serialize.

    Returns:
        Response with the kind's status and the error payload as body.
    """
    return Response(
        body=_encode(error.to_dict()),
        status=status_for(error),
        headers={"content-type": JSON_CONTENT_TYPE, RPC_ERROR_HEADER: error.kind_name},
    )


def parse_error_payload(status: int, payload: Any) -> RPCError:
    """
    Rebuild an RPCError from a non-success response.

    Payloads without a kind (e.g., a proxy's error page decoded as JSON) are
    mapped to the kind matching the status.

    Args:
        status: The HTTP status received.
        payload: The decoded response body.

    Returns:
        The reconstructed RPCError.
    """
    if isinstance(payload, dict) and "kind" in payload:
        return RPCError.from_dict(payload)

    kind = next(
        (kind for kind, code in STATUS_CODE_MAP.items() if code == status),
        ErrorKind.INTERNAL,
    )
    return RPCError.from_dict(
        {
            "kind": kind.value,
            "message": f"Request failed with status {status}",
            "metadata": {"status": status},
        }
    )
