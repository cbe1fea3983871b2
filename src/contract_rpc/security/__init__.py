"""
Session handling for contract RPC.

Components:
- SessionTokenCodec: Issues and decodes signed session tokens
- SessionContextFactory: Resolves ``ctx["session"]`` for each request
- User / Session: The identity values procedures read
"""

from contract_rpc.security.sessions import (
    Session,
    SessionContextFactory,
    SessionTokenCodec,
    User,
)

__all__ = [
    "Session",
    "SessionContextFactory",
    "SessionTokenCodec",
    "User",
]
