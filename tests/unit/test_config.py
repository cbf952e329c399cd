"""
Unit tests for configuration loading and validation.

Tests cover:
1. Environment parsing
2. Field validation and ranges
3. Overrides and required settings
4. Signer requirements
5. Input validation helpers
"""

import os
from unittest.mock import patch

import pytest

from intent_solver.core.config import (
    DEFAULT_TOKENS,
    SolverConfig,
    config_from_env,
    load_config,
    validate_config,
)
from intent_solver.core.errors import ConfigurationError
from intent_solver.crypto import keypair_from_hex
from intent_solver.utils.validation import validate_address, validate_private_key, validate_url

CONTRACT = "0x" + "d4" * 32
KEY = "0x" + "11" * 32


@pytest.fixture
def env():
    return {
        "RPC_URL": "https://rpc.testnet.example/v1",
        "CONTRACT_ADDRESS": CONTRACT,
        "SOLVER_PRIVATE_KEY": KEY,
    }


# =============================================================================
# Loading Tests
# =============================================================================


class TestLoadConfig:
    """Tests for load_config."""

    def test_defaults(self, env):
        config = load_config(environ=env)

        assert config.rpc_url == "https://rpc.testnet.example/v1"
        assert config.poll_interval == 5.0
        assert config.max_concurrent == 5
        assert config.skip_existing_on_startup is True
        assert config.min_deadline_seconds == 30
        assert config.price_cache_seconds == 300
        assert config.dutch_max_price_percent == 100
        assert config.dry_run is False
        assert set(config.tokens) == set(DEFAULT_TOKENS)

    def test_env_values_parsed(self, env):
        env.update({
            "POLL_INTERVAL": "2.5",
            "MAX_CONCURRENT": "12",
            "SKIP_EXISTING": "false",
            "ENABLE_DCA": "0",
            "INPUT_TOKEN_WHITELIST": "tMOVE, 0xabc ,",
            "TOKENS": '{"0xabc": {"symbol": "WETH", "decimals": 18}}',
            "LOG_LEVEL": "WARN",
        })
        config = load_config(environ=env)

        assert config.poll_interval == 2.5
        assert config.max_concurrent == 12
        assert config.skip_existing_on_startup is False
        assert config.enable_dca is False
        assert config.input_token_whitelist == ["tMOVE", "0xabc"]
        assert config.tokens["0xabc"].decimals == 18
        assert config.log_level == "warning"

    def test_overrides_win(self, env):
        env["MAX_CONCURRENT"] = "12"
        config = load_config(environ=env, max_concurrent=3, poll_interval=None)

        assert config.max_concurrent == 3
        assert config.poll_interval == 5.0

    def test_missing_required(self):
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(environ={"RPC_URL": "http://localhost:8080"})
        assert "CONTRACT_ADDRESS" in str(exc_info.value)

    def test_invalid_values_reported(self, env):
        env["MAX_CONCURRENT"] = "500"
        env["POLL_INTERVAL"] = "0.1"
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(environ=env)
        message = str(exc_info.value)
        assert "max_concurrent" in message
        assert "poll_interval" in message

    def test_unusable_private_key_is_configuration_error(self, env):
        """A key that cannot be loaded fails at config time, not when the client is built."""
        env["SOLVER_PRIVATE_KEY"] = "0x" + "11" * 31
        with pytest.raises(ConfigurationError) as exc_info:
            load_config(environ=env)
        assert "private_key" in str(exc_info.value)

    def test_prefixed_private_key_accepted(self, env):
        env["SOLVER_PRIVATE_KEY"] = "ed25519-priv-" + KEY
        config = load_config(environ=env)
        assert keypair_from_hex(config.private_key).address == keypair_from_hex(KEY).address

    def test_node_settings(self, env):
        env["NODE_API_KEY"] = "node-secret"
        env["FEE_CONFIG_ADDRESS"] = "0x" + "fe" * 32
        config = load_config(environ=env)
        assert config.node_api_key == "node-secret"
        assert config.fee_config_address == "0x" + "fe" * 32

    def test_invalid_tokens_json(self, env):
        env["TOKENS"] = "{not json"
        with pytest.raises(ConfigurationError):
            load_config(environ=env)

    def test_empty_values_ignored(self, env):
        env["POLL_INTERVAL"] = ""
        assert "poll_interval" not in config_from_env(env)

    def test_env_file(self, tmp_path):
        """A .env file seeds the process environment."""
        env_file = tmp_path / ".env"
        env_file.write_text(f"RPC_URL=http://localhost:9000\nCONTRACT_ADDRESS={CONTRACT}\nPOLL_INTERVAL=7\n")

        with patch.dict(os.environ, {}, clear=True):
            config = load_config(env_file=str(env_file))

        assert config.rpc_url == "http://localhost:9000"
        assert config.poll_interval == 7.0


# =============================================================================
# Validation Tests
# =============================================================================


class TestSolverConfig:
    """Tests for SolverConfig validation."""

    def _config(self, **overrides):
        values = {"rpc_url": "http://localhost:8080", "contract_address": CONTRACT}
        values.update(overrides)
        return SolverConfig(**values)

    @pytest.mark.parametrize("field,value", [
        ("poll_interval", 0.5),
        ("max_concurrent", 0),
        ("max_concurrent", 101),
        ("min_deadline_seconds", 4),
        ("price_cache_seconds", 29),
        ("dutch_max_price_percent", 0),
        ("rpc_url", "ftp://node"),
        ("contract_address", "abc"),
        ("private_key", "0x1234"),
        ("log_level", "verbose"),
    ])
    def test_rejected_values(self, field, value):
        with pytest.raises(ValueError):
            self._config(**{field: value})

    def test_unknown_field_rejected(self):
        with pytest.raises(ValueError):
            self._config(pool_interval=3)

    def test_amount_range(self):
        with pytest.raises(ValueError):
            self._config(min_input_amount=10, max_input_amount=5)

    def test_frozen(self):
        config = self._config()
        with pytest.raises(ValueError):
            config.poll_interval = 9

    def test_signer_required_outside_dry_run(self):
        config = self._config()
        assert not config.has_signer
        with pytest.raises(ConfigurationError):
            config.require_signer()
        assert validate_config(config) == (False, "SOLVER_PRIVATE_KEY is required unless --dry-run is set")

    def test_dry_run_without_signer(self):
        config = self._config(dry_run=True)
        config.require_signer()
        assert validate_config(config) == (True, "")

    def test_summary_hides_key(self):
        summary = self._config(private_key=KEY).to_summary()
        assert "configured" in summary
        assert KEY[2:] not in summary


# =============================================================================
# Validation Helper Tests
# =============================================================================


class TestValidationHelpers:
    """Tests for the (bool, str) validators."""

    def test_address(self):
        assert validate_address(CONTRACT) == (True, "")
        assert not validate_address("d4d4d4d4d4d4")[0]
        assert not validate_address("0x12")[0]
        assert not validate_address("0xzzzzzzzzzz")[0]
        assert not validate_address(123)[0]

    def test_private_key(self):
        assert validate_private_key(KEY)[0]
        assert validate_private_key(KEY[2:])[0]
        assert not validate_private_key(KEY + "00")[0]
        assert not validate_private_key("0x" + "g" * 64)[0]
        assert validate_private_key("ed25519-priv-" + KEY)[0]
        assert not validate_private_key(None)[0]

    def test_url(self):
        assert validate_url("https://node.example:8080/v1")[0]
        assert not validate_url("node.example")[0]
        assert not validate_url("")[0]

