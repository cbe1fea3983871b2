"""
Tests for the configuration module.

This test module validates:
- Configuration loading from YAML files
- Environment variable overrides
- CLI argument overrides
- Configuration precedence (defaults < YAML < env vars < CLI args)
- Pydantic model validation with invalid inputs
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any
from unittest import mock

import pytest
import yaml
from pydantic import ValidationError

from contract_rpc.config import (
    AppConfig,
    ClientConfig,
    RPCConfig,
    ServerConfig,
    _deep_merge,
    _load_env_config,
    _load_yaml_config,
    _parse_cli_args,
    _parse_env_value,
    load_config,
)

# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture
def sample_yaml_config() -> dict[str, Any]:
    """Sample YAML configuration for testing."""
    return {
        "server": {"listen": "0.0.0.0:9000", "log_level": "warning"},
        "rpc": {"prefix": "/api/rpc", "strict_paths": True},
        "cors": {"allowed_origins": ["https://app.example.com"]},
        "auth": {"secret": "yaml-secret"},
    }


@pytest.fixture
def config_file(tmp_path: Path, sample_yaml_config: dict[str, Any]) -> Path:
    """Write the sample configuration to a temporary file."""
    path = tmp_path / "config.yml"
    path.write_text(yaml.safe_dump(sample_yaml_config))
    return path


@pytest.fixture
def clean_env() -> Any:
    """Run with no CONTRACT_RPC_ variables set."""
    env = {k: v for k, v in os.environ.items() if not k.startswith("CONTRACT_RPC_")}
    with mock.patch.dict(os.environ, env, clear=True):
        yield


# =============================================================================
# Tests for Models
# =============================================================================


class TestModels:
    """Tests for configuration models."""

    def test_defaults(self) -> None:
        config = AppConfig()

        assert config.server.listen == "127.0.0.1:3000"
        assert config.server.host == "127.0.0.1"
        assert config.server.port == 3000
        assert config.rpc.prefix == "/rpc"
        assert config.rpc.strict_paths is False
        assert config.cors.allowed_origins == ["http://localhost:3001", "http://localhost:8081"]
        assert config.auth.secret == ""
        assert config.client.base_url == "http://localhost:3000"
        assert config.logging.json_format is True

    @pytest.mark.parametrize("listen", ["3000", "localhost:", ":3000", "host:abc"])
    def test_invalid_listen(self, listen: str) -> None:
        with pytest.raises(ValidationError, match="Invalid listen address"):
            ServerConfig(listen=listen)

    def test_log_level_normalized(self) -> None:
        assert ServerConfig(log_level="WARN").log_level == "warning"

    def test_invalid_log_level(self) -> None:
        with pytest.raises(ValidationError, match="Invalid log level"):
            ServerConfig(log_level="verbose")

    @pytest.mark.parametrize("prefix", ["rpc", "/rpc/"])
    def test_invalid_prefix(self, prefix: str) -> None:
        with pytest.raises(ValidationError):
            RPCConfig(prefix=prefix)
        with pytest.raises(ValidationError):
            ClientConfig(prefix=prefix)

    def test_root_prefix_allowed(self) -> None:
        assert RPCConfig(prefix="/").prefix == "/"

    def test_client_timeout_positive(self) -> None:
        with pytest.raises(ValidationError):
            ClientConfig(timeout_seconds=0)


# =============================================================================
# Tests for Loader Helpers
# =============================================================================


class TestHelpers:
    """Tests for the private loading helpers."""

    def test_deep_merge(self) -> None:
        base = {"server": {"listen": "a:1", "log_level": "info"}, "rpc": {"prefix": "/rpc"}}
        override = {"server": {"listen": "b:2"}}

        merged = _deep_merge(base, override)

        assert merged == {
            "server": {"listen": "b:2", "log_level": "info"},
            "rpc": {"prefix": "/rpc"},
        }
        assert base["server"]["listen"] == "a:1"

    @pytest.mark.parametrize(
        ("raw", "expected"),
        [
            ("true", True),
            ("On", True),
            ("no", False),
            ("42", 42),
            ("2.5", 2.5),
            ("a, b", ["a", "b"]),
            ("/rpc", "/rpc"),
        ],
    )
    def test_parse_env_value(self, raw: str, expected: Any) -> None:
        assert _parse_env_value(raw) == expected

    def test_load_yaml_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            _load_yaml_config(tmp_path / "missing.yml")

    def test_load_yaml_empty_file(self, tmp_path: Path) -> None:
        path = tmp_path / "empty.yml"
        path.write_text("")
        assert _load_yaml_config(path) == {}

    def test_load_env_config(self) -> None:
        env = {
            "TEST_RPC__PREFIX": "/api",
            "TEST_CORS__ALLOWED_ORIGINS": "http://a,http://b",
            "OTHER": "ignored",
        }
        with mock.patch.dict(os.environ, env, clear=True):
            result = _load_env_config("TEST_")

        assert result == {
            "rpc": {"prefix": "/api"},
            "cors": {"allowed_origins": ["http://a", "http://b"]},
        }

    def test_parse_cli_args(self) -> None:
        result = _parse_cli_args(["--listen", "0.0.0.0:8000", "--log-level", "debug"])

        assert result["server"] == {"listen": "0.0.0.0:8000", "log_level": "debug"}
        assert result["logging"] == {"level": "debug"}

    def test_parse_cli_debug(self) -> None:
        result = _parse_cli_args(["--debug"])

        assert result["logging"] == {"debug_mode": True, "level": "debug"}
        assert result["server"] == {"log_level": "debug"}

    def test_parse_cli_empty(self) -> None:
        assert _parse_cli_args([]) == {}


# =============================================================================
# Tests for load_config
# =============================================================================


@pytest.mark.usefixtures("clean_env")
class TestLoadConfig:
    """Tests for layered configuration loading."""

    def test_defaults_only(self, tmp_path: Path) -> None:
        with mock.patch("contract_rpc.config.DEFAULT_CONFIG_PATH", tmp_path / "none.yml"):
            config = load_config(cli_args=[])

        assert config == AppConfig()

    def test_yaml_file(self, config_file: Path) -> None:
        config = load_config(config_file, cli_args=[])

        assert config.server.port == 9000
        assert config.server.log_level == "warning"
        assert config.rpc.prefix == "/api/rpc"
        assert config.rpc.strict_paths is True
        assert config.cors.allowed_origins == ["https://app.example.com"]

    def test_config_path_from_cli(self, config_file: Path) -> None:
        config = load_config(cli_args=["--config", str(config_file)])
        assert config.auth.secret == "yaml-secret"

    def test_missing_explicit_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "missing.yml"), cli_args=[])

    def test_precedence(self, config_file: Path) -> None:
        """CLI beats environment beats YAML beats defaults."""
        env = {
            "CONTRACT_RPC_SERVER__LISTEN": "127.0.0.1:7000",
            "CONTRACT_RPC_AUTH__SECRET": "env-secret",
        }
        with mock.patch.dict(os.environ, env):
            config = load_config(config_file, cli_args=["--listen", "127.0.0.1:6000"])

        assert config.server.port == 6000
        assert config.auth.secret == "env-secret"
        assert config.rpc.prefix == "/api/rpc"
        assert config.client.prefix == "/rpc"

    def test_invalid_values_rejected(self, tmp_path: Path) -> None:
        path = tmp_path / "bad.yml"
        path.write_text(yaml.safe_dump({"rpc": {"prefix": "no-slash"}}))

        with pytest.raises(ValidationError):
            load_config(path, cli_args=[])
