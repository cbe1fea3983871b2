"""
Configuration for the contract RPC server and client.

Settings live in pydantic models grouped by concern (server, rpc, cors,
auth, client, logging). ``load_config`` layers them, each layer overriding
the one before:

- model defaults
- a YAML file (``--config`` or /etc/contract-rpc/config.yml)
- ``CONTRACT_RPC_*`` environment variables, ``__`` separating sections
- command-line flags
"""

from __future__ import annotations

import argparse
import os
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, field_validator

DEFAULT_CONFIG_PATH = Path("/etc/contract-rpc/config.yml")

DEFAULT_ENV_PREFIX = "CONTRACT_RPC_"

_VALID_LOG_LEVELS = {"debug", "info", "warn", "warning", "error", "critical"}


def _normalize_log_level(value: str) -> str:
    v_lower = value.lower()
    if v_lower not in _VALID_LOG_LEVELS:
        raise ValueError(
            f"Invalid log level: {value}. Must be one of: {', '.join(sorted(_VALID_LOG_LEVELS))}"
        )
    # Normalize 'warn' to 'warning'
    if v_lower == "warn":
        return "warning"
    return v_lower


def _normalize_prefix(value: str) -> str:
    if not value.startswith("/"):
        raise ValueError(f"Mount prefix must start with '/': {value!r}")
    if len(value) > 1 and value.endswith("/"):
        raise ValueError(f"Mount prefix must not end with '/': {value!r}")
    return value


# =============================================================================
# Server Configuration
# =============================================================================


class ServerConfig(BaseModel):
    """Server settings configuration.

    Attributes:
        listen: Listen address and port (e.g., "127.0.0.1:3000").
        log_level: Initial application log level.
    """

    listen: str = Field(
        default="127.0.0.1:3000",
        description="Listen address and port (e.g., '127.0.0.1:3000' or '0.0.0.0:3000')",
    )
    log_level: str = Field(
        default="info",
        description="Log level: debug, info, warn, error",
    )

    @field_validator("listen")
    @classmethod
    def validate_listen(cls, v: str) -> str:
        """Validate the host:port form."""
        host, sep, port = v.rpartition(":")
        if not sep or not host or not port.isdigit():
            raise ValueError(f"Invalid listen address: {v}. Expected 'host:port'")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate and normalize log level."""
        return _normalize_log_level(v)

    @property
    def host(self) -> str:
        """Return the host part of the listen address."""
        return self.listen.rpartition(":")[0]

    @property
    def port(self) -> int:
        """Return the port part of the listen address."""
        return int(self.listen.rpartition(":")[2])


# =============================================================================
# RPC Configuration
# =============================================================================


class RPCConfig(BaseModel):
    """Dispatcher configuration.

    Attributes:
        prefix: Mount prefix the procedures are served under.
        strict_paths: Answer unknown procedure paths under the prefix with
            NOT_FOUND instead of falling through to other routes.
    """

    prefix: str = Field(
        default="/rpc",
        description="Mount prefix for procedures (e.g., '/rpc')",
    )
    strict_paths: bool = Field(
        default=False,
        description="Return 404 for unknown procedures instead of falling through",
    )

    @field_validator("prefix")
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        """Validate the mount prefix."""
        return _normalize_prefix(v)


class CORSConfig(BaseModel):
    """Cross-origin settings for browser and native clients.

    Attributes:
        allowed_origins: Origins allowed to call the server.
        allow_methods: Allowed HTTP methods.
        allow_headers: Allowed request headers.
        allow_credentials: Whether cookies may be sent cross-origin.
        max_age: Preflight cache lifetime in seconds.
    """

    allowed_origins: list[str] = Field(
        default_factory=lambda: ["http://localhost:3001", "http://localhost:8081"],
        description="Origins allowed to call the server",
    )
    allow_methods: list[str] = Field(
        default_factory=lambda: ["GET", "POST", "OPTIONS"],
        description="Allowed HTTP methods",
    )
    allow_headers: list[str] = Field(
        default_factory=lambda: ["Content-Type", "Authorization"],
        description="Allowed request headers",
    )
    allow_credentials: bool = Field(
        default=True,
        description="Allow cookies on cross-origin requests",
    )
    max_age: int = Field(
        default=600,
        description="Preflight cache lifetime in seconds",
        ge=0,
    )


# =============================================================================
# Auth Configuration
# =============================================================================


class AuthConfig(BaseModel):
    """Session token settings.

    Attributes:
        secret: Secret used to sign session tokens.
        session_expires_seconds: Session lifetime.
        session_update_age_seconds: Age after which a session is refreshed.
        cookie_name: Cookie carrying the session token.
    """

    secret: str = Field(
        default="",
        description="Secret used to sign session tokens",
    )
    session_expires_seconds: int = Field(
        default=60 * 60 * 24 * 7,
        description="Session lifetime in seconds (7 days)",
        ge=60,
    )
    session_update_age_seconds: int = Field(
        default=60 * 60 * 24,
        description="Session age in seconds after which it is refreshed (1 day)",
        ge=0,
    )
    cookie_name: str = Field(
        default="session_token",
        description="Cookie carrying the session token",
    )


# =============================================================================
# Client Configuration
# =============================================================================


class ClientConfig(BaseModel):
    """Typed client settings.

    Attributes:
        base_url: Server origin (e.g., "http://localhost:3000").
        prefix: Mount prefix of the procedures on that server.
        timeout_seconds: Request timeout.
    """

    base_url: str = Field(
        default="http://localhost:3000",
        description="Server origin the client talks to",
    )
    prefix: str = Field(
        default="/rpc",
        description="Mount prefix of the procedures",
    )
    timeout_seconds: float = Field(
        default=10.0,
        description="Request timeout in seconds",
        gt=0,
    )

    @field_validator("prefix")
    @classmethod
    def validate_prefix(cls, v: str) -> str:
        """Validate the mount prefix."""
        return _normalize_prefix(v)


# =============================================================================
# Logging Configuration
# =============================================================================


class LoggingConfig(BaseModel):
    """Application logger settings.

    Attributes:
        level: Level of the ``contract_rpc`` logger.
        log_to_stdout: Attach a stdout handler.
        json_format: Emit one JSON object per line.
        debug_mode: Log mounted paths and other startup detail.
    """

    level: str = Field(
        default="info",
        description="Level of the contract_rpc logger",
    )
    log_to_stdout: bool = Field(
        default=True,
        description="Attach a stdout handler",
    )
    json_format: bool = Field(
        default=True,
        description="Emit JSON-formatted log lines",
    )
    debug_mode: bool = Field(
        default=False,
        description="Log startup detail such as mounted paths",
    )

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        """Validate and normalize log level."""
        return _normalize_log_level(v)


# =============================================================================
# Main Application Configuration
# =============================================================================


class AppConfig(BaseModel):
    """
    Main application configuration model.

    Attributes:
        server: Server settings.
        rpc: Dispatcher settings.
        cors: Cross-origin settings.
        auth: Session token settings.
        client: Typed client settings.
        logging: Logging configuration.
    """

    server: ServerConfig = Field(
        default_factory=ServerConfig,
        description="Server settings",
    )
    rpc: RPCConfig = Field(
        default_factory=RPCConfig,
        description="Dispatcher settings",
    )
    cors: CORSConfig = Field(
        default_factory=CORSConfig,
        description="Cross-origin settings",
    )
    auth: AuthConfig = Field(
        default_factory=AuthConfig,
        description="Session token settings",
    )
    client: ClientConfig = Field(
        default_factory=ClientConfig,
        description="Typed client settings",
    )
    logging: LoggingConfig = Field(
        default_factory=LoggingConfig,
        description="Logging configuration",
    )


# =============================================================================
# Layered Loading
# =============================================================================


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    """Merge ``override`` into a copy of ``base``, recursing into nested sections."""
    merged = dict(base)
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            value = _deep_merge(current, value)
        merged[key] = value
    return merged


def _load_yaml_config(config_path: Path) -> dict[str, Any]:
    """Read one YAML document; an empty file yields no overrides."""
    if not config_path.is_file():
        raise FileNotFoundError(f"Configuration file not found: {config_path}")

    data = yaml.safe_load(config_path.read_text())
    return data or {}


def _parse_env_value(value: str) -> Any:
    """
    Coerce a raw environment string.

    Booleans accept true/yes/on and false/no/off. Numbers become int or
    float. A value containing commas becomes a list, each item coerced in
    turn. Anything else stays a string.
    """
    lowered = value.lower()
    if lowered in ("true", "yes", "on"):
        return True
    if lowered in ("false", "no", "off"):
        return False

    for cast in (int, float):
        try:
            return cast(value)
        except ValueError:
            pass

    if "," in value:
        return [_parse_env_value(item.strip()) for item in value.split(",") if item.strip()]

    return value


def _load_env_config(prefix: str = DEFAULT_ENV_PREFIX) -> dict[str, Any]:
    """
    Collect overrides from ``<prefix>SECTION__KEY`` variables.

    ``CONTRACT_RPC_RPC__PREFIX=/api/rpc`` sets ``rpc.prefix``.
    """
    overrides: dict[str, Any] = {}

    for name, raw in os.environ.items():
        if not name.startswith(prefix):
            continue

        *sections, leaf = name[len(prefix) :].lower().split("__")
        target = overrides
        for section in sections:
            target = target.setdefault(section, {})
        target[leaf] = _parse_env_value(raw)

    return overrides


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="contract-rpc-server",
        description="Contract RPC server",
        formatter_class=argparse.ArgumentDefaultsHelpFormatter,
    )
    parser.add_argument("--config", "-c", type=str, help="Path to configuration file")
    parser.add_argument("--listen", type=str, help="Listen address, e.g. 0.0.0.0:3000")
    parser.add_argument(
        "--log-level",
        type=str,
        choices=["debug", "info", "warning", "error"],
        help="Log level for both the server and the application loggers",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug mode")
    return parser


def _parse_cli_args(args: list[str] | None = None) -> dict[str, Any]:
    """
    Turn command-line flags into a nested override dictionary.

    ``--config`` is returned under the private ``_config_path`` key so the
    caller can pick the YAML file before merging.
    """
    parsed = _build_arg_parser().parse_args(args)

    overrides: dict[str, Any] = {}
    if parsed.config:
        overrides["_config_path"] = parsed.config

    server: dict[str, Any] = {}
    logging_section: dict[str, Any] = {}
    if parsed.listen:
        server["listen"] = parsed.listen
    level = "debug" if parsed.debug else parsed.log_level
    if level:
        server["log_level"] = level
        logging_section["level"] = level
    if parsed.debug:
        logging_section["debug_mode"] = True

    if server:
        overrides["server"] = server
    if logging_section:
        overrides["logging"] = logging_section
    return overrides


def _resolve_config_path(explicit: Path | str | None, cli_path: str | None) -> Path | None:
    if explicit is not None:
        return Path(explicit)
    if cli_path is not None:
        return Path(cli_path)
    # The system-wide file is optional; explicit paths are not.
    return DEFAULT_CONFIG_PATH if DEFAULT_CONFIG_PATH.exists() else None


def load_config(
    config_path: Path | str | None = None,
    env_prefix: str = DEFAULT_ENV_PREFIX,
    cli_args: list[str] | None = None,
) -> AppConfig:
    """
    Build an AppConfig from defaults, YAML, environment and CLI, in that order.

    Later layers win key by key, so a YAML file can set ``rpc.prefix`` while
    an environment variable overrides only ``auth.secret``.

    Args:
        config_path: YAML file to read. Falls back to ``--config`` and then
            to ``DEFAULT_CONFIG_PATH`` when that file exists.
        env_prefix: Prefix of the environment variables to read.
        cli_args: Argument list to parse; ``sys.argv`` when None.

    Raises:
        FileNotFoundError: An explicitly named file is missing.
        ValidationError: The merged values do not validate.

    Example:
        >>> load_config(cli_args=[]).rpc.prefix
        '/rpc'
    """
    cli_overrides = _parse_cli_args(cli_args)
    path = _resolve_config_path(config_path, cli_overrides.pop("_config_path", None))

    layers: list[dict[str, Any]] = []
    if path is not None:
        layers.append(_load_yaml_config(path))
    layers.append(_load_env_config(env_prefix))
    layers.append(cli_overrides)

    merged: dict[str, Any] = {}
    for layer in layers:
        merged = _deep_merge(merged, layer)
    return AppConfig.model_validate(merged)
