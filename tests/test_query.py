"""
Tests for the query-cache utilities.
"""

from __future__ import annotations

import json

import httpx
import pytest

from contract_rpc.app.contracts import GreetingInput, GreetingOutput, app_contract
from contract_rpc.client import RPCLink, create_client
from contract_rpc.errors import BadRequestError
from contract_rpc.query import (
    MutationOptions,
    ProcedureQueryUtils,
    QueryOptions,
    QueryUtils,
    canonical_json,
    create_query_utils,
)


@pytest.fixture
def sent() -> list[dict]:
    return []


@pytest.fixture
def orpc(sent: list[dict]) -> QueryUtils:
    """Query utils over a mock greeting server."""

    def handler(request: httpx.Request) -> httpx.Response:
        payload = json.loads(request.content)
        sent.append(payload)
        return httpx.Response(200, json={"text": f"Hello, {payload.get('name', 'Anonymous')}"})

    link = RPCLink(
        "http://testserver/rpc",
        client=httpx.AsyncClient(transport=httpx.MockTransport(handler)),
    )
    return create_query_utils(create_client(app_contract, link))


class TestCanonicalJson:
    """Tests for canonical_json."""

    def test_sorted_and_compact(self) -> None:
        assert canonical_json({"b": 1, "a": [1, 2]}) == '{"a":[1,2],"b":1}'

    def test_unicode_kept(self) -> None:
        assert canonical_json({"name": "Zoë"}) == '{"name":"Zoë"}'


class TestQueryKeys:
    """Tests for cache key derivation."""

    def test_tree_mirrors_client(self, orpc: QueryUtils) -> None:
        assert isinstance(orpc.public, QueryUtils)
        assert isinstance(orpc.public.greeting, ProcedureQueryUtils)
        assert orpc["private"]["greeting"].path_key() == ("private", "greeting")
        assert orpc.public.path_key() == ("public",)

    def test_key_includes_path_and_input(self, orpc: QueryUtils) -> None:
        key = orpc.public.greeting.query_key(name="Ada")
        assert key == ("public", "greeting", '{"name":"Ada"}')

    def test_equal_inputs_equal_keys(self, orpc: QueryUtils) -> None:
        """Keys are deterministic across input forms."""
        utils = orpc.public.greeting

        assert utils.query_key(name="Ada") == utils.query_key({"name": "Ada"})
        assert utils.query_key(name="Ada") == utils.query_key(GreetingInput(name="Ada"))
        assert utils.query_key() == utils.query_key({})

    def test_different_inputs_different_keys(self, orpc: QueryUtils) -> None:
        utils = orpc.public.greeting

        assert utils.query_key(name="Ada") != utils.query_key(name="Bob")
        assert utils.query_key(name="Ada") != utils.query_key()

    def test_same_input_different_procedures(self, orpc: QueryUtils) -> None:
        """Procedures sharing schemas still get distinct keys."""
        assert orpc.public.greeting.query_key(name="Ada") != orpc.private.greeting.query_key(
            name="Ada"
        )

    def test_keys_are_hashable(self, orpc: QueryUtils) -> None:
        cache = {orpc.public.greeting.query_key(name="Ada"): "cached"}
        assert cache[orpc.public.greeting.query_key({"name": "Ada"})] == "cached"

    def test_invalid_input_rejected(self, orpc: QueryUtils) -> None:
        with pytest.raises(BadRequestError):
            orpc.public.greeting.query_key(name=["not", "a", "string"])

    def test_path_key_is_prefix(self, orpc: QueryUtils) -> None:
        """The path key prefixes every full key, for invalidation."""
        utils = orpc.public.greeting
        key = utils.query_key(name="Ada")

        assert key[: len(utils.path_key())] == utils.path_key()


class TestQueryOptions:
    """Tests for query and mutation options."""

    @pytest.mark.asyncio
    async def test_query_options(self, orpc: QueryUtils, sent: list[dict]) -> None:
        options = orpc.public.greeting.query_options(name="Ada")

        assert isinstance(options, QueryOptions)
        assert options.query_key == ("public", "greeting", '{"name":"Ada"}')

        result = await options.query_fn()

        assert isinstance(result, GreetingOutput)
        assert result.text == "Hello, Ada"
        assert sent == [{"name": "Ada"}]

    def test_query_options_validate_eagerly(self, orpc: QueryUtils, sent: list[dict]) -> None:
        """Invalid input fails when options are built, before any fetch."""
        with pytest.raises(BadRequestError):
            orpc.public.greeting.query_options(name=1)

        assert sent == []

    @pytest.mark.asyncio
    async def test_mutation_options(self, orpc: QueryUtils, sent: list[dict]) -> None:
        options = orpc.public.greeting.mutation_options()

        assert isinstance(options, MutationOptions)
        assert options.mutation_key == ("public", "greeting")

        result = await options.mutation_fn({"name": "Bob"})

        assert result.text == "Hello, Bob"
        assert sent == [{"name": "Bob"}]
