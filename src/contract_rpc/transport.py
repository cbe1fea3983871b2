"""
Transport abstraction for the contract RPC dispatcher.

The dispatcher does not speak to any HTTP server directly. Hosts hand it an
object satisfying TransportRequest and turn the returned Response into their
own response type.

Some hosts corrupt or double-consume the body when it is read through the
wrong accessor first. BodyReader therefore picks the parse method from the
Content-Type and calls the transport's native accessor of that name (``json``,
``form``, ``text``) when one exists, falling back to decoding the generic
``body()`` bytes itself otherwise. The body is read at most once.
"""

from __future__ import annotations

import inspect
import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any, Protocol, runtime_checkable
from urllib.parse import parse_qsl

from contract_rpc.errors import BadRequestError

JSON_CONTENT_TYPE = "application/json"

FORM_CONTENT_TYPES = frozenset({"multipart/form-data", "application/x-www-form-urlencoded"})

# Query parameter carrying JSON input on GET requests
GET_INPUT_PARAM = "data"


@runtime_checkable
class TransportRequest(Protocol):
    """
    Minimal request surface the dispatcher needs.

    Transports may additionally expose native body accessors named ``json``,
    ``form`` or ``text`` (sync or async, no arguments).
    """

    method: str
    path: str
    headers: Mapping[str, str]
    query: Mapping[str, str]

    async def body(self) -> bytes:
        """Return the raw request body."""
        ...


@dataclass
class Response:
    """
    Transport-neutral response produced by the dispatcher.

    Attributes:
        body: Serialized payload.
        status: HTTP status code.
        headers: Response headers.
    """

    body: bytes
    status: int = 200
    headers: dict[str, str] = field(default_factory=lambda: {"content-type": JSON_CONTENT_TYPE})

    def json(self) -> Any:
        """Decode the body as JSON."""
        return json.loads(self.body) if self.body else None


@dataclass
class InMemoryRequest:
    """
    A TransportRequest held entirely in memory.

    Exposes only the generic ``body()`` accessor, so the dispatcher decodes the
    bytes itself. Used by tests and by hosts that already buffered the body.
    """

    method: str
    path: str
    headers: dict[str, str] = field(default_factory=dict)
    query: dict[str, str] = field(default_factory=dict)
    content: bytes = b""

    async def body(self) -> bytes:
        return self.content

    @classmethod
    def json_post(
        cls, path: str, payload: Any, headers: Mapping[str, str] | None = None
    ) -> InMemoryRequest:
        """Build a POST request carrying payload as JSON."""
        merged = {"content-type": JSON_CONTENT_TYPE, **(headers or {})}
        return cls(
            method="POST",
            path=path,
            headers=merged,
            content=json.dumps(payload).encode("utf-8"),
        )


def header_value(headers: Mapping[str, str], name: str) -> str | None:
    """Look up a header case-insensitively."""
    value = headers.get(name)
    if value is not None:
        return value
    lowered = name.lower()
    for key, candidate in headers.items():
        if key.lower() == lowered:
            return candidate
    return None


def select_parse_method(content_type: str | None) -> str:
    """
    Choose the body accessor for a Content-Type.

    Returns:
        One of "json", "form", "text" or "body" (binary).
    """
    media_type = (content_type or "").split(";", 1)[0].strip().lower()
    if not media_type or media_type == JSON_CONTENT_TYPE or media_type.endswith("+json"):
        return "json"
    if media_type in FORM_CONTENT_TYPES:
        return "form"
    if media_type.startswith("text/"):
        return "text"
    return "body"


async def _call_accessor(accessor: Any) -> Any:
    value = accessor()
    if inspect.isawaitable(value):
        value = await value
    return value


def _form_to_dict(form: Any) -> dict[str, Any]:
    items = form.multi_items() if hasattr(form, "multi_items") else list(form.items())
    result: dict[str, Any] = {}
    for key, value in items:
        if key in result:
            existing = result[key]
            result[key] = [*existing, value] if isinstance(existing, list) else [existing, value]
        else:
            result[key] = value
    return result


def _parse_json(text: str | bytes) -> Any:
    if not text:
        return None
    try:
        return json.loads(text)
    except ValueError as e:
        raise BadRequestError(message="Malformed JSON body") from e


class BodyReader:
    """
    Reads a request's input once, using the best available accessor.

    Example:
        >>> reader = BodyReader(request)
        >>> raw_input = await reader.read()
    """

    def __init__(self, request: TransportRequest) -> None:
        self._request = request
        self._loaded = False
        self._value: Any = None
        self.parse_method = select_parse_method(
            header_value(request.headers, "content-type")
        )
        self.used_native = False

    async def read(self) -> Any:
        """
        Return the decoded input, reading the transport at most once.

        GET requests take their input from the ``data`` query parameter.

        Raises:
            BadRequestError: If the body cannot be decoded.
        """
        if not self._loaded:
            self._value = await self._load()
            self._loaded = True
        return self._value

    async def _load(self) -> Any:
        if self._request.method.upper() == "GET":
            return _parse_json(self._request.query.get(GET_INPUT_PARAM, ""))

        if header_value(self._request.headers, "content-length") == "0":
            return None

        method = self.parse_method
        native = getattr(self._request, method, None) if method != "body" else None
        if callable(native):
            self.used_native = True
            return await self._read_native(method, native)

        raw = await self._request.body()
        if method == "json":
            return _parse_json(raw)
        if method == "text":
            return _parse_json(raw.decode("utf-8", errors="replace"))
        if method == "form":
            content_type = header_value(self._request.headers, "content-type") or ""
            if content_type.lower().startswith("multipart/"):
                raise BadRequestError(
                    message="Multipart bodies require a transport form accessor"
                )
            return dict(parse_qsl(raw.decode("utf-8"), keep_blank_values=True))
        return raw

    async def _read_native(self, method: str, accessor: Any) -> Any:
        try:
            value = await _call_accessor(accessor)
        except ValueError as e:
            raise BadRequestError(message=f"Malformed {method} body") from e

        if method == "form":
            return _form_to_dict(value)
        if method == "text":
            return _parse_json(value)
        return value
