"""
Pytest configuration for the contract RPC tests.
"""

from __future__ import annotations

import pytest

from contract_rpc.dispatcher import RPCHandler
from contract_rpc.security.sessions import SessionContextFactory, SessionTokenCodec, User

# Configure pytest-asyncio mode
pytest_plugins = ["pytest_asyncio"]

TEST_SECRET = "test-secret-for-session-tokens"


def pytest_configure(config: pytest.Config) -> None:
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers",
        "integration: marks tests as integration tests (deselect with '-m \"not integration\"')",
    )


# =============================================================================
# Shared Fixtures
# =============================================================================


@pytest.fixture
def codec() -> SessionTokenCodec:
    """Session token codec with a fixed test secret."""
    return SessionTokenCodec(secret=TEST_SECRET)


@pytest.fixture
def ada() -> User:
    """A signed-in user."""
    return User(id="user-1", email="ada@example.com", name="Ada")


@pytest.fixture
def ada_token(codec: SessionTokenCodec, ada: User) -> str:
    """A valid session token for ada."""
    return codec.issue(ada)


@pytest.fixture
def app_handler(codec: SessionTokenCodec) -> RPCHandler:
    """Dispatcher for the example application with session lookup."""
    from contract_rpc.app.routers import app_router

    return RPCHandler(app_router, context_factory=SessionContextFactory(codec))
