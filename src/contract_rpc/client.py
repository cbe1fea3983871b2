"""
Typed client for contract RPC.

The client is derived once from the same contract the server implements:
``create_client(contract, link)`` returns a ClientRouter with the contract's
keys, whose leaves are ProcedureClient callables. Each call validates its
input, posts it through an RPCLink, and validates the response against the
output schema. Error responses are raised as the matching RPCError subclass.

Example:
    >>> link = RPCLink("http://localhost:3000/rpc", headers=lambda: {"Cookie": jar()})
    >>> client = create_client(app_contract, link)
    >>> result = await client.public.greeting(name="Ada")
    >>> result.text
    'Hello, Ada from public greeting procedure!'
"""

from __future__ import annotations

import inspect
import json
from collections.abc import Awaitable, Callable, Mapping
from typing import TYPE_CHECKING, Any, Union

import httpx
from pydantic import BaseModel

from contract_rpc.contract import ContractProcedure, ContractRouter
from contract_rpc.errors import (
    BadRequestError,
    ResponseDecodeError,
    TransportError,
)
from contract_rpc.logging import get_logger
from contract_rpc.protocol import is_success_status, join_path, parse_error_payload
from contract_rpc.schema import SchemaValidationError
from contract_rpc.transport import GET_INPUT_PARAM, JSON_CONTENT_TYPE

if TYPE_CHECKING:
    from contract_rpc.config import ClientConfig

logger = get_logger(__name__)

HeaderSupplier = Union[
    Mapping[str, str],
    Callable[[], Union[Mapping[str, str], Awaitable[Mapping[str, str]]]],
]

DEFAULT_TIMEOUT = 10.0


class RPCLink:
    """
    HTTP link between a typed client and a dispatcher.

    Attributes:
        url: Base URL including the mount prefix (e.g.,
            "http://localhost:3000/rpc").
        timeout: Request timeout in seconds when the link owns its client.
        method: HTTP method used for calls ("POST", or "GET" with the input
            in the ``data`` query parameter).
    """

    def __init__(
        self,
        url: str,
        *,
        headers: HeaderSupplier | None = None,
        timeout: float = DEFAULT_TIMEOUT,
        client: httpx.AsyncClient | None = None,
        method: str = "POST",
    ) -> None:
        """
        Initialize the link.

        Args:
            url: Base URL including the mount prefix.
            headers: Static headers, or a zero-argument callable (sync or
                async) consulted on every call, e.g. to attach the current
                session cookie.
            timeout: Request timeout in seconds.
            client: Optional shared httpx.AsyncClient. When omitted, each call
                opens a short-lived client.
            method: "POST" (default) or "GET".
        """
        self.url = url.rstrip("/")
        self.timeout = timeout
        self.method = method.upper()
        self._headers = headers
        self._client = client

    @classmethod
    def from_config(
        cls,
        config: ClientConfig,
        headers: HeaderSupplier | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> RPCLink:
        """
        Create a link from configuration.

        Args:
            config: ClientConfig with base URL, prefix, and timeout.
            headers: Optional header supplier.
            client: Optional shared httpx.AsyncClient.

        Returns:
            Configured RPCLink instance.
        """
        return cls(
            config.base_url.rstrip("/") + config.prefix,
            headers=headers,
            timeout=config.timeout_seconds,
            client=client,
        )

    async def resolve_headers(self) -> dict[str, str]:
        """Return the headers for one call, consulting the supplier afresh."""
        supplied = self._headers
        if callable(supplied):
            supplied = supplied()
            if inspect.isawaitable(supplied):
                supplied = await supplied
        return dict(supplied or {})

    async def call(self, path: tuple[str, ...], payload: Any) -> Any:
        """
        Send one procedure call and return the decoded success body.

        Args:
            path: Procedure key path.
            payload: JSON-compatible input.

        Returns:
            The decoded JSON body of a success response.

        Raises:
            RPCError: Rebuilt from an error response.
            TransportError: On network failures.
            ResponseDecodeError: If the body is not valid JSON.
        """
        url = join_path(self.url, path)
        headers = {"accept": JSON_CONTENT_TYPE, **(await self.resolve_headers())}
        encoded = json.dumps(payload, separators=(",", ":"))

        try:
            if self._client is not None:
                response = await self._send(self._client, url, headers, encoded)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    response = await self._send(client, url, headers, encoded)
        except httpx.HTTPError as e:
            logger.warning("RPC request failed", extra={"url": url, "error": str(e)})
            raise TransportError(
                message=f"Request to {url} failed: {e}",
                metadata={"url": url},
            ) from e

        try:
            body = response.json() if response.content else None
        except ValueError as e:
            if not is_success_status(response.status_code):
                raise parse_error_payload(response.status_code, None) from e
            raise ResponseDecodeError(
                message="Response body is not valid JSON",
                metadata={"url": url, "status": response.status_code},
            ) from e

        if not is_success_status(response.status_code):
            raise parse_error_payload(response.status_code, body)
        return body

    async def _send(
        self,
        client: httpx.AsyncClient,
        url: str,
        headers: dict[str, str],
        encoded: str,
    ) -> httpx.Response:
        if self.method == "GET":
            return await client.get(url, params={GET_INPUT_PARAM: encoded}, headers=headers)
        return await client.post(
            url,
            content=encoded.encode("utf-8"),
            headers={"content-type": JSON_CONTENT_TYPE, **headers},
        )

    async def aclose(self) -> None:
        """Close the shared client, if any."""
        if self._client is not None:
            await self._client.aclose()

    async def __aenter__(self) -> RPCLink:
        return self

    async def __aexit__(self, *exc_info: Any) -> None:
        await self.aclose()


def _accepts_empty_object(contract: ContractProcedure) -> bool:
    annotation = contract.input_schema.annotation
    return inspect.isclass(annotation) and issubclass(annotation, BaseModel)


class ProcedureClient:
    """
    Callable for one contract leaf.

    Call with an input value (model instance or mapping) or with keyword
    fields: ``await greeting(name="Ada")``. Calling with nothing sends an
    empty object when the input schema is a model.
    """

    def __init__(self, contract: ContractProcedure, link: RPCLink) -> None:
        self.contract = contract
        self.link = link

    @property
    def path(self) -> tuple[str, ...]:
        """Return the procedure key path."""
        return self.contract.path

    def serialize_input(self, input: Any = None, **fields: Any) -> Any:
        """
        Validate input and return its JSON-compatible wire form.

        Raises:
            BadRequestError: If the input does not match the input schema;
                nothing is sent in that case.
        """
        if input is None and (fields or _accepts_empty_object(self.contract)):
            input = dict(fields)
        elif fields:
            raise TypeError("Pass either an input value or keyword fields, not both")

        schema = self.contract.input_schema
        try:
            value = schema.validate(input)
        except SchemaValidationError as e:
            raise BadRequestError(
                message="Input validation failed",
                metadata={"issues": e.issues},
            ) from e
        return schema.dump(value)

    async def __call__(self, input: Any = None, /, **fields: Any) -> Any:
        payload = self.serialize_input(input, **fields)
        return await self.call_serialized(payload)

    async def call_serialized(self, payload: Any) -> Any:
        """Send an already serialized input and return the typed output."""
        raw = await self.link.call(self.contract.path, payload)
        try:
            return self.contract.output_schema.validate(raw)
        except SchemaValidationError as e:
            raise ResponseDecodeError(
                message="Response does not match output schema",
                metadata={"procedure": self.contract.path_name, "issues": e.issues},
            ) from e

    def __repr__(self) -> str:
        return f"ProcedureClient(path={self.contract.path_name!r})"


ClientNode = Union["ClientRouter", ProcedureClient]


class ClientRouter:
    """Client sub-tree with the contract's keys."""

    def __init__(self, contract: ContractRouter, link: RPCLink) -> None:
        self.contract = contract
        self.link = link
        children: dict[str, ClientNode] = {}
        for key, node in contract.items():
            if isinstance(node, ContractProcedure):
                children[key] = ProcedureClient(node, link)
            else:
                children[key] = ClientRouter(node, link)
        self._children = children

    def __getattr__(self, name: str) -> ClientNode:
        if name.startswith("_"):
            raise AttributeError(name)
        try:
            return self._children[name]
        except KeyError:
            raise AttributeError(
                f"Contract '{'/'.join(self.contract.path) or '<root>'}' has no key '{name}'"
            ) from None

    def __getitem__(self, key: str) -> ClientNode:
        return self._children[key]

    def items(self) -> list[tuple[str, ClientNode]]:
        """Return (key, child) pairs in contract order."""
        return list(self._children.items())

    def __repr__(self) -> str:
        return f"ClientRouter(path={'/'.join(self.contract.path)!r}, keys={list(self._children)!r})"


def create_client(contract: ContractRouter, link: RPCLink) -> ClientRouter:
    """
    Build a typed client for a contract.

    Args:
        contract: The shared contract tree.
        link: The link used for every call.

    Returns:
        The root ClientRouter.
    """
    return ClientRouter(contract, link)
