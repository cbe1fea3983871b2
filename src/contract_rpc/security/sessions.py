"""
Session lookup for contract RPC requests.

Sessions are carried as signed JWTs (HS256) in either an ``Authorization:
Bearer`` header or a session cookie. SessionContextFactory is the context
factory the dispatcher calls once per request: it decodes the token and puts
the resulting Session (or None) under ``ctx["session"]``, with
``ctx["session_needs_refresh"]`` set once the token is older than the update
age so the host can reissue it. It only reads; issuing tokens is left to
whatever signs users in.
"""

from __future__ import annotations

import logging
import uuid
from dataclasses import dataclass
from datetime import UTC, datetime, timedelta
from typing import TYPE_CHECKING, Any

import jwt
from jwt.exceptions import ExpiredSignatureError, InvalidTokenError
from starlette.requests import cookie_parser

if TYPE_CHECKING:
    from contract_rpc.config import AuthConfig
    from contract_rpc.context import RequestMeta

logger = logging.getLogger("contract_rpc.security.sessions")

ALGORITHM = "HS256"


@dataclass(frozen=True)
class User:
    """
    Identity attached to a session.

    Attributes:
        id: Stable user identifier.
        email: Email address, if known.
        name: Display name, if known.
        user_type: Application-defined user category.
    """

    id: str
    email: str | None = None
    name: str | None = None
    user_type: str = "default"

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "id": self.id,
            "email": self.email,
            "name": self.name,
            "user_type": self.user_type,
        }


@dataclass(frozen=True)
class Session:
    """
    A decoded, unexpired session.

    Attributes:
        id: Session identifier (the token's ``sid`` claim).
        user: The signed-in user.
        issued_at: When the token was issued.
        expires_at: When the token expires.
    """

    id: str
    user: User | None
    issued_at: datetime
    expires_at: datetime

    def age(self, now: datetime | None = None) -> timedelta:
        """Return how long ago the session token was issued."""
        return (now or datetime.now(UTC)) - self.issued_at


class SessionTokenCodec:
    """
    Issues and decodes session tokens.

    Example:
        >>> codec = SessionTokenCodec(secret="dev-secret")
        >>> token = codec.issue(User(id="u1", email="ada@example.com"))
        >>> codec.decode(token).user.id
        'u1'
    """

    def __init__(
        self,
        secret: str,
        expires_in_seconds: int = 60 * 60 * 24 * 7,
        update_age_seconds: int = 60 * 60 * 24,
    ) -> None:
        """
        Initialize the codec.

        Args:
            secret: HMAC signing secret.
            expires_in_seconds: Token lifetime.
            update_age_seconds: Age after which needs_refresh() is True.
        """
        if not secret:
            raise ValueError("Session secret must not be empty")
        self._secret = secret
        self._expires_in = timedelta(seconds=expires_in_seconds)
        self._update_age = timedelta(seconds=update_age_seconds)

    @classmethod
    def from_config(cls, config: AuthConfig) -> SessionTokenCodec:
        """
        Create a codec from configuration.

        Raises:
            ValueError: If no secret is configured.
        """
        return cls(
            secret=config.secret,
            expires_in_seconds=config.session_expires_seconds,
            update_age_seconds=config.session_update_age_seconds,
        )

    def issue(self, user: User, now: datetime | None = None) -> str:
        """
        Sign a session token for a user.

        Args:
            user: The user the session belongs to.
            now: Issue time (defaults to the current time).

        Returns:
            The encoded JWT.
        """
        issued_at = now or datetime.now(UTC)
        claims = {
            "sub": user.id,
            "sid": uuid.uuid4().hex,
            "email": user.email,
            "name": user.name,
            "user_type": user.user_type,
            "iat": issued_at,
            "exp": issued_at + self._expires_in,
        }
        return jwt.encode(claims, self._secret, algorithm=ALGORITHM)

    def decode(self, token: str) -> Session | None:
        """
        Decode a session token.

        Args:
            token: The encoded JWT.

        Returns:
            The Session, or None for expired, tampered, or malformed tokens.
        """
        try:
            claims = jwt.decode(
                token,
                self._secret,
                algorithms=[ALGORITHM],
                options={"require": ["exp", "iat", "sub"]},
            )
        except ExpiredSignatureError:
            logger.debug("Session token expired")
            return None
        except InvalidTokenError as e:
            logger.debug("Invalid session token: %s", str(e))
            return None

        user = User(
            id=str(claims["sub"]),
            email=claims.get("email"),
            name=claims.get("name"),
            user_type=claims.get("user_type") or "default",
        )
        return Session(
            id=str(claims.get("sid") or ""),
            user=user,
            issued_at=datetime.fromtimestamp(claims["iat"], UTC),
            expires_at=datetime.fromtimestamp(claims["exp"], UTC),
        )

    def needs_refresh(self, session: Session, now: datetime | None = None) -> bool:
        """Return True once the session is older than the update age."""
        return session.age(now) >= self._update_age


class SessionContextFactory:
    """
    Context factory resolving the caller's session.

    Example:
        >>> factory = SessionContextFactory(codec)
        >>> handler = RPCHandler(app_router, context_factory=factory)
    """

    def __init__(self, codec: SessionTokenCodec, cookie_name: str = "session_token") -> None:
        self.codec = codec
        self.cookie_name = cookie_name

    def extract_token(self, meta: RequestMeta) -> str | None:
        """
        Find the session token in the request headers.

        A bearer token takes precedence over the session cookie.
        """
        authorization = meta.header("authorization")
        if authorization:
            scheme, _, credentials = authorization.partition(" ")
            if scheme.lower() == "bearer" and credentials.strip():
                return credentials.strip()

        cookie_header = meta.header("cookie")
        if cookie_header:
            # Lenient parsing: one unparseable cookie must not hide the others
            value = cookie_parser(cookie_header).get(self.cookie_name)
            if value:
                return value

        return None

    def __call__(self, meta: RequestMeta) -> dict[str, Any]:
        token = self.extract_token(meta)
        session = self.codec.decode(token) if token else None
        return {
            "session": session,
            "session_needs_refresh": session is not None and self.codec.needs_refresh(session),
        }
