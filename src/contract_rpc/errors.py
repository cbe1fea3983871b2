"""
Error types for contract RPC.

This module defines the RPCError base class and one subclass per error kind.
Procedures and middleware express failures by raising RPCError (or a subclass)
instead of building response payloads or status codes themselves. The
dispatcher maps the kind to an HTTP status and the client rebuilds the same
subclass from the wire payload.
"""

from __future__ import annotations

from enum import Enum
from typing import Any


class ErrorKind(str, Enum):
    """Error kinds understood by both the dispatcher and the client."""

    BAD_REQUEST = "BAD_REQUEST"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    METHOD_NOT_SUPPORTED = "METHOD_NOT_SUPPORTED"
    TIMEOUT = "TIMEOUT"
    CONFLICT = "CONFLICT"
    TOO_MANY_REQUESTS = "TOO_MANY_REQUESTS"
    INTERNAL = "INTERNAL"
    # Client side only, never sent over the wire
    TRANSPORT = "TRANSPORT"


class RPCError(Exception):
    """
    Base exception class for RPC errors.

    RPCError instances raised by middleware or handlers are caught at the
    dispatcher boundary and serialized with their kind; they are never widened
    to INTERNAL.

    Attributes:
        kind: Error kind (an ErrorKind value, or an unknown kind string
            received from a newer server).
        message: Human-readable error message.
        metadata: Optional structured metadata (e.g., validation issues).

    Example:
        >>> raise RPCError(
        ...     kind=ErrorKind.CONFLICT,
        ...     message="Greeting already sent",
        ...     metadata={"name": "Ada"},
        ... )
    """

    def __init__(
        self,
        kind: ErrorKind | str,
        message: str,
        metadata: dict[str, Any] | None = None,
    ) -> None:
        """
        Initialize an RPCError.

        Args:
            kind: Error kind identifying the error category.
            message: Human-readable error message.
            metadata: Optional dictionary with structured error metadata.
        """
        super().__init__(message)
        self.kind = _coerce_kind(kind)
        self.message = message
        self.metadata = metadata or {}

    @property
    def kind_name(self) -> str:
        """Return the kind as a plain string."""
        return self.kind.value if isinstance(self.kind, ErrorKind) else self.kind

    def __repr__(self) -> str:
        """Return a detailed string representation."""
        return (
            f"{self.__class__.__name__}("
            f"kind={self.kind_name!r}, "
            f"message={self.message!r}, "
            f"metadata={self.metadata!r})"
        )

    def to_dict(self) -> dict[str, Any]:
        """
        Convert the error to its wire payload.

        Returns:
            Dictionary with kind, message, and metadata (when present).
        """
        payload: dict[str, Any] = {
            "kind": self.kind_name,
            "message": self.message,
        }
        if self.metadata:
            payload["metadata"] = self.metadata
        return payload

    @classmethod
    def from_dict(cls, payload: dict[str, Any]) -> RPCError:
        """
        Rebuild an error from its wire payload.

        The subclass registered for the payload's kind is used, so callers can
        catch e.g. UnauthorizedError on the client exactly as on the server.

        Args:
            payload: Dictionary with kind, message, and optional metadata.

        Returns:
            The reconstructed RPCError (or subclass) instance.
        """
        kind = _coerce_kind(str(payload.get("kind", ErrorKind.INTERNAL.value)))
        message = str(payload.get("message", ""))
        metadata = payload.get("metadata")
        if not isinstance(metadata, dict):
            metadata = None

        error_cls = _KIND_TO_CLASS.get(kind) if isinstance(kind, ErrorKind) else None
        if error_cls is None:
            return RPCError(kind=kind, message=message, metadata=metadata)
        return error_cls(message=message, metadata=metadata)


def _coerce_kind(kind: ErrorKind | str) -> ErrorKind | str:
    if isinstance(kind, ErrorKind):
        return kind
    try:
        return ErrorKind(kind)
    except ValueError:
        return kind


class BadRequestError(RPCError):
    """
    Error raised when input does not match the procedure's input schema.

    This error maps to the BAD_REQUEST kind (HTTP 400).
    """

    def __init__(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        """Initialize a BadRequestError."""
        super().__init__(kind=ErrorKind.BAD_REQUEST, message=message, metadata=metadata)


class UnauthorizedError(RPCError):
    """
    Error raised when the caller has no valid session.

    This error maps to the UNAUTHORIZED kind (HTTP 401).
    """

    def __init__(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        """Initialize an UnauthorizedError."""
        super().__init__(kind=ErrorKind.UNAUTHORIZED, message=message, metadata=metadata)


class ForbiddenError(RPCError):
    """Error raised when an authenticated caller may not perform the call."""

    def __init__(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        """Initialize a ForbiddenError."""
        super().__init__(kind=ErrorKind.FORBIDDEN, message=message, metadata=metadata)


class NotFoundError(RPCError):
    """
    Error raised when a request path does not resolve to a procedure.

    This error maps to the NOT_FOUND kind (HTTP 404).
    """

    def __init__(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        """Initialize a NotFoundError."""
        super().__init__(kind=ErrorKind.NOT_FOUND, message=message, metadata=metadata)


class MethodNotSupportedError(RPCError):
    """Error raised for HTTP methods other than GET and POST."""

    def __init__(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        """Initialize a MethodNotSupportedError."""
        super().__init__(
            kind=ErrorKind.METHOD_NOT_SUPPORTED, message=message, metadata=metadata
        )


class InternalError(RPCError):
    """
    Error raised for unexpected server-side failures.

    This error maps to the INTERNAL kind (HTTP 500). Handler faults and output
    schema violations end up here; the message sent to the caller carries no
    internal detail.
    """

    def __init__(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        """Initialize an InternalError."""
        super().__init__(kind=ErrorKind.INTERNAL, message=message, metadata=metadata)


class MiddlewareContractError(InternalError):
    """
    Error raised when a middleware misuses its next function.

    Calling next more than once, returning without calling it, returning a
    result other than the one next produced, or dropping upstream context keys
    all land here.
    """


class TransportError(RPCError):
    """
    Client-side error for network failures and undecodable responses.

    This kind is never produced by the dispatcher.
    """

    def __init__(self, message: str, metadata: dict[str, Any] | None = None) -> None:
        """Initialize a TransportError."""
        super().__init__(kind=ErrorKind.TRANSPORT, message=message, metadata=metadata)


class ResponseDecodeError(TransportError):
    """Client-side error for a response that does not match the output schema."""


_KIND_TO_CLASS: dict[ErrorKind, type[RPCError]] = {
    ErrorKind.BAD_REQUEST: BadRequestError,
    ErrorKind.UNAUTHORIZED: UnauthorizedError,
    ErrorKind.FORBIDDEN: ForbiddenError,
    ErrorKind.NOT_FOUND: NotFoundError,
    ErrorKind.METHOD_NOT_SUPPORTED: MethodNotSupportedError,
    ErrorKind.INTERNAL: InternalError,
    ErrorKind.TRANSPORT: TransportError,
}
