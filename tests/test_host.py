"""
Integration tests for the FastAPI host.

These run the full stack in-process: the typed client talks to the ASGI app
through httpx.ASGITransport, and plain HTTP behaviour is checked with
FastAPI's TestClient.
"""

from __future__ import annotations

from typing import Any

import httpx
import pytest
from fastapi.testclient import TestClient

from contract_rpc.app.contracts import app_contract
from contract_rpc.client import RPCLink, create_client
from contract_rpc.config import AppConfig, AuthConfig, RPCConfig
from contract_rpc.errors import BadRequestError, UnauthorizedError
from contract_rpc.host import build_context_factory, create_app
from contract_rpc.query import create_query_utils
from contract_rpc.security.sessions import SessionContextFactory, SessionTokenCodec, User

SECRET = "host-test-secret"


@pytest.fixture
def config() -> AppConfig:
    return AppConfig(auth=AuthConfig(secret=SECRET))


@pytest.fixture
def token() -> str:
    return SessionTokenCodec(SECRET).issue(User(id="user-1", name="Ada"))


@pytest.fixture
def test_client(config: AppConfig) -> TestClient:
    return TestClient(create_app(config))


def asgi_link(app: Any, headers: Any = None, prefix: str = "/rpc") -> RPCLink:
    transport = httpx.ASGITransport(app=app)
    return RPCLink(
        f"http://testserver{prefix}",
        headers=headers,
        client=httpx.AsyncClient(transport=transport),
    )


# =============================================================================
# Tests for the App
# =============================================================================


class TestCreateApp:
    """Tests for application construction."""

    def test_health(self, test_client: TestClient) -> None:
        response = test_client.get("/")

        assert response.status_code == 200
        assert response.text == "OK"

    def test_handler_on_state(self, config: AppConfig) -> None:
        app = create_app(config)
        assert app.state.rpc_handler.router.list_paths() == [
            "public/greeting",
            "private/greeting",
        ]

    def test_context_factory_from_config(self, config: AppConfig) -> None:
        assert isinstance(build_context_factory(config), SessionContextFactory)
        assert build_context_factory(AppConfig()) is None

    def test_unknown_rpc_path_falls_through(self, test_client: TestClient) -> None:
        """Undeclared procedures reach FastAPI's own 404."""
        response = test_client.post("/rpc/public/farewell", json={})

        assert response.status_code == 404
        assert response.json() == {"detail": "Not Found"}

    def test_unknown_rpc_path_strict(self) -> None:
        config = AppConfig(auth=AuthConfig(secret=SECRET), rpc=RPCConfig(strict_paths=True))
        response = TestClient(create_app(config)).post("/rpc/public/farewell", json={})

        assert response.status_code == 404
        assert response.json()["kind"] == "NOT_FOUND"

    def test_cors_preflight(self, test_client: TestClient) -> None:
        response = test_client.options(
            "/rpc/public/greeting",
            headers={
                "Origin": "http://localhost:3001",
                "Access-Control-Request-Method": "POST",
            },
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "http://localhost:3001"
        assert response.headers["access-control-allow-credentials"] == "true"

    def test_cors_on_rpc_response(self, test_client: TestClient) -> None:
        response = test_client.post(
            "/rpc/public/greeting",
            json={"name": "Ada"},
            headers={"Origin": "http://localhost:8081"},
        )

        assert response.status_code == 200
        assert response.headers["access-control-allow-origin"] == "http://localhost:8081"


# =============================================================================
# Tests for RPC over HTTP
# =============================================================================


class TestRPCOverHTTP:
    """Tests for raw HTTP requests against the mount."""

    def test_public_greeting(self, test_client: TestClient) -> None:
        response = test_client.post("/rpc/public/greeting", json={"name": "Ada"})

        assert response.status_code == 200
        assert response.json() == {"text": "Hello, Ada from public greeting procedure!"}

    def test_private_without_session(self, test_client: TestClient) -> None:
        response = test_client.post("/rpc/private/greeting", json={"name": "Ada"})

        assert response.status_code == 401
        assert response.json()["kind"] == "UNAUTHORIZED"
        assert response.headers["x-rpc-error"] == "UNAUTHORIZED"

    def test_private_with_cookie(self, test_client: TestClient, token: str) -> None:
        response = test_client.post(
            "/rpc/private/greeting",
            json={},
            headers={"Cookie": f"session_token={token}"},
        )

        assert response.status_code == 200
        assert response.json() == {"text": "Hello, Anonymous from private greeting procedure!"}

    def test_form_body(self, test_client: TestClient) -> None:
        """Form bodies are read through Starlette's form parser."""
        response = test_client.post("/rpc/public/greeting", data={"name": "Ada"})

        assert response.status_code == 200
        assert response.json()["text"].startswith("Hello, Ada")

    def test_get_request(self, test_client: TestClient) -> None:
        response = test_client.get("/rpc/public/greeting", params={"data": '{"name":"Ada"}'})

        assert response.status_code == 200
        assert response.json()["text"].startswith("Hello, Ada")

    def test_malformed_json(self, test_client: TestClient) -> None:
        response = test_client.post(
            "/rpc/public/greeting",
            content=b"{broken",
            headers={"content-type": "application/json"},
        )

        assert response.status_code == 400
        assert response.json()["kind"] == "BAD_REQUEST"

    def test_method_not_supported(self, test_client: TestClient) -> None:
        response = test_client.put("/rpc/public/greeting", json={})

        assert response.status_code == 405
        assert response.json()["kind"] == "METHOD_NOT_SUPPORTED"


# =============================================================================
# Tests for the Typed Client against the App
# =============================================================================


@pytest.mark.integration
class TestClientAgainstApp:
    """End-to-end tests: typed client, HTTP, dispatcher, procedures."""

    @pytest.mark.asyncio
    async def test_public_call(self, config: AppConfig) -> None:
        client = create_client(app_contract, asgi_link(create_app(config)))

        result = await client.public.greeting(name="Ada")

        assert result.text == "Hello, Ada from public greeting procedure!"

    @pytest.mark.asyncio
    async def test_private_call_with_header_supplier(self, config: AppConfig, token: str) -> None:
        calls: list[int] = []

        def supplier() -> dict[str, str]:
            calls.append(1)
            return {"Cookie": f"session_token={token}"}

        client = create_client(app_contract, asgi_link(create_app(config), headers=supplier))

        first = await client.private.greeting(name="Ada")
        second = await client.private.greeting()

        assert first.text == "Hello, Ada from private greeting procedure!"
        assert second.text == "Hello, Anonymous from private greeting procedure!"
        assert len(calls) == 2

    @pytest.mark.asyncio
    async def test_private_call_rejected(self, config: AppConfig) -> None:
        client = create_client(app_contract, asgi_link(create_app(config)))

        with pytest.raises(UnauthorizedError, match="Authentication required"):
            await client.private.greeting(name="Ada")

    @pytest.mark.asyncio
    async def test_server_side_validation(self, config: AppConfig) -> None:
        """Inputs bypassing client validation are rejected by the server."""
        link = asgi_link(create_app(config))

        with pytest.raises(BadRequestError):
            await link.call(("public", "greeting"), {"name": 42})

    @pytest.mark.asyncio
    async def test_custom_prefix(self) -> None:
        config = AppConfig(auth=AuthConfig(secret=SECRET), rpc=RPCConfig(prefix="/api/rpc"))
        link = asgi_link(create_app(config), prefix="/api/rpc")

        result = await create_client(app_contract, link).public.greeting(name="Ada")

        assert result.text.startswith("Hello, Ada")

    @pytest.mark.asyncio
    async def test_query_options(self, config: AppConfig) -> None:
        orpc = create_query_utils(create_client(app_contract, asgi_link(create_app(config))))

        options = orpc.public.greeting.query_options(name="Ada")
        result = await options.query_fn()

        assert options.query_key == ("public", "greeting", '{"name":"Ada"}')
        assert result.text == "Hello, Ada from public greeting procedure!"
