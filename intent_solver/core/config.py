"""
Solver configuration.

Settings come from the process environment (optionally seeded from a .env
file) overlaid with explicit overrides, usually CLI options. Values are
validated once at startup; any problem raises ConfigurationError so the
process exits before a loop starts.
"""

import json
import os
from typing import Any, Dict, List, Mapping, Optional, Tuple

from dotenv import load_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from intent_solver.core.errors import ConfigurationError
from intent_solver.utils.validation import (
    validate_address,
    validate_private_key,
    validate_url,
)


MAX_U64 = 2**64 - 1

DEFAULT_PRICE_FEED_URL = "https://api.coingecko.com/api/v3/simple/price"

# Testnet token directory: address -> (symbol, decimals)
DEFAULT_TOKENS: Dict[str, Dict[str, Any]] = {
    "0xd249fd3776a6bf959963d2f7712386da3f343a973f0d88ed05b1e9e6be6cb015": {
        "symbol": "tUSDC",
        "decimals": 8,
    },
    "0x9913b3a2cd19b572521bcc890058dfd285943fbfa33b7c954879f55bbe5da89": {
        "symbol": "tMOVE",
        "decimals": 8,
    },
}


class TokenConfig(BaseModel):
    """Display metadata for one token address"""

    model_config = ConfigDict(frozen=True)

    symbol: str
    decimals: int = Field(default=8, ge=0, le=32)


class SolverConfig(BaseModel):
    """All solver settings. Intervals are in seconds."""

    model_config = ConfigDict(frozen=True, extra="forbid")

    # Network
    rpc_url: str
    contract_address: str
    fee_config_address: Optional[str] = None
    private_key: Optional[str] = None
    node_api_key: Optional[str] = None
    rpc_timeout: float = Field(default=15.0, gt=0)
    finality_timeout: float = Field(default=30.0, gt=0)

    # Behavior
    poll_interval: float = Field(default=5.0, ge=1.0)
    skip_existing_on_startup: bool = True
    max_concurrent: int = Field(default=5, ge=1, le=100)
    dry_run: bool = False

    # Intent filtering
    enable_swap: bool = True
    enable_limit_order: bool = True
    enable_twap: bool = True
    enable_dca: bool = True
    enable_sealed_bid_auction: bool = True
    enable_dutch_auction: bool = True
    min_input_amount: int = Field(default=0, ge=0)
    max_input_amount: int = Field(default=MAX_U64, ge=0)
    input_token_whitelist: List[str] = Field(default_factory=list)
    output_token_whitelist: List[str] = Field(default_factory=list)

    # Profitability
    min_profit_bps: int = Field(default=10, ge=0, le=10_000)
    spread_bps: int = Field(default=10, ge=0, le=10_000)
    max_exposure: int = Field(default=1_000_000_000_000, ge=0)
    gas_price: int = Field(default=100, ge=0)
    max_gas_price: int = Field(default=1000, ge=0)
    min_profit_margin: int = Field(default=0, ge=0)
    min_deadline_seconds: int = Field(default=30, ge=5)

    # Limit orders and scheduled intents
    limit_order_check_interval: float = Field(default=15.0, gt=0)
    monitor_scheduled_intents: bool = True
    scheduled_check_interval: float = Field(default=5.0, gt=0)

    # Auctions
    auction_poll_interval: float = Field(default=2.0, gt=0)
    dutch_max_price_percent: int = Field(default=100, ge=1, le=200)
    sealed_bid_premium_bps: int = Field(default=50, ge=0, le=10_000)

    # Pricing
    price_feed_url: str = DEFAULT_PRICE_FEED_URL
    price_cache_seconds: int = Field(default=300, ge=30, le=300)
    tokens: Dict[str, TokenConfig] = Field(
        default_factory=lambda: {k: TokenConfig(**v) for k, v in DEFAULT_TOKENS.items()}
    )

    # Fill recording
    record_url: Optional[str] = None

    # Logging
    log_level: str = "info"
    colored_output: bool = True
    log_dir: Optional[str] = None

    @field_validator("rpc_url", "price_feed_url")
    @classmethod
    def _check_url(cls, value: str) -> str:
        valid, error = validate_url(value)
        if not valid:
            raise ValueError(error)
        return value

    @field_validator("record_url")
    @classmethod
    def _check_record_url(cls, value: Optional[str]) -> Optional[str]:
        if value:
            valid, error = validate_url(value, "record_url")
            if not valid:
                raise ValueError(error)
        return value or None

    @field_validator("contract_address")
    @classmethod
    def _check_contract(cls, value: str) -> str:
        valid, error = validate_address(value, "contract_address")
        if not valid:
            raise ValueError(error)
        return value

    @field_validator("fee_config_address")
    @classmethod
    def _check_fee_config(cls, value: Optional[str]) -> Optional[str]:
        if value:
            valid, error = validate_address(value, "fee_config_address")
            if not valid:
                raise ValueError(error)
        return value or None

    @field_validator("private_key")
    @classmethod
    def _check_private_key(cls, value: Optional[str]) -> Optional[str]:
        if value:
            valid, error = validate_private_key(value)
            if not valid:
                raise ValueError(error)
        return value or None

    @field_validator("log_level")
    @classmethod
    def _check_log_level(cls, value: str) -> str:
        level = value.lower()
        if level == "warn":
            level = "warning"
        if level not in ("debug", "info", "warning", "error"):
            raise ValueError(f"unknown log level: {value}")
        return level

    @model_validator(mode="after")
    def _check_amount_range(self) -> "SolverConfig":
        if self.min_input_amount > self.max_input_amount:
            raise ValueError("min_input_amount exceeds max_input_amount")
        return self

    # =========================================================================
    # Helpers
    # =========================================================================

    @property
    def has_signer(self) -> bool:
        return self.private_key is not None

    def require_signer(self) -> None:
        """Live mode needs a signing key; dry runs do not."""
        if not self.dry_run and not self.has_signer:
            raise ConfigurationError("SOLVER_PRIVATE_KEY is required unless --dry-run is set")

    def to_summary(self) -> str:
        """Human-readable multi-line summary (no secrets)."""
        def flag(value: bool) -> str:
            return "✓" if value else "✗"

        contract = self.contract_address
        return "\n".join([
            f"RPC URL:        {self.rpc_url}",
            f"Contract:       {contract[:10]}...{contract[-8:]}",
            f"Signer:         {'configured' if self.has_signer else 'none'}",
            f"Intent types:   Swap {flag(self.enable_swap)} | Limit {flag(self.enable_limit_order)} | "
            f"TWAP {flag(self.enable_twap)} | DCA {flag(self.enable_dca)}",
            f"Auctions:       Sealed bid {flag(self.enable_sealed_bid_auction)} | "
            f"Dutch {flag(self.enable_dutch_auction)}",
            f"Profitability:  min profit {self.min_profit_bps} bps | spread {self.spread_bps} bps | "
            f"max gas {self.max_gas_price}",
            f"Deadlines:      min {self.min_deadline_seconds}s",
            f"Polling:        {self.poll_interval}s | max concurrent {self.max_concurrent}",
            f"Skip existing:  {flag(self.skip_existing_on_startup)} | Dry run {flag(self.dry_run)}",
        ])


# =============================================================================
# Loading
# =============================================================================

# Environment variable -> config field
ENV_FIELDS: Dict[str, str] = {
    "RPC_URL": "rpc_url",
    "CONTRACT_ADDRESS": "contract_address",
    "FEE_CONFIG_ADDRESS": "fee_config_address",
    "SOLVER_PRIVATE_KEY": "private_key",
    "NODE_API_KEY": "node_api_key",
    "RPC_TIMEOUT": "rpc_timeout",
    "FINALITY_TIMEOUT": "finality_timeout",
    "POLL_INTERVAL": "poll_interval",
    "SKIP_EXISTING": "skip_existing_on_startup",
    "MAX_CONCURRENT": "max_concurrent",
    "DRY_RUN": "dry_run",
    "ENABLE_SWAP": "enable_swap",
    "ENABLE_LIMIT_ORDER": "enable_limit_order",
    "ENABLE_TWAP": "enable_twap",
    "ENABLE_DCA": "enable_dca",
    "ENABLE_SEALED_BID_AUCTION": "enable_sealed_bid_auction",
    "ENABLE_DUTCH_AUCTION": "enable_dutch_auction",
    "MIN_INPUT_AMOUNT": "min_input_amount",
    "MAX_INPUT_AMOUNT": "max_input_amount",
    "INPUT_TOKEN_WHITELIST": "input_token_whitelist",
    "OUTPUT_TOKEN_WHITELIST": "output_token_whitelist",
    "MIN_PROFIT_BPS": "min_profit_bps",
    "SPREAD_BPS": "spread_bps",
    "MAX_EXPOSURE": "max_exposure",
    "GAS_PRICE": "gas_price",
    "MAX_GAS_PRICE": "max_gas_price",
    "MIN_PROFIT_MARGIN": "min_profit_margin",
    "MIN_DEADLINE_SECONDS": "min_deadline_seconds",
    "LIMIT_ORDER_CHECK_INTERVAL": "limit_order_check_interval",
    "MONITOR_SCHEDULED": "monitor_scheduled_intents",
    "SCHEDULED_CHECK_INTERVAL": "scheduled_check_interval",
    "AUCTION_POLL_INTERVAL": "auction_poll_interval",
    "DUTCH_MAX_PRICE_PERCENT": "dutch_max_price_percent",
    "SEALED_BID_PREMIUM_BPS": "sealed_bid_premium_bps",
    "PRICE_FEED_URL": "price_feed_url",
    "PRICE_CACHE_SECONDS": "price_cache_seconds",
    "TOKENS": "tokens",
    "RECORD_URL": "record_url",
    "LOG_LEVEL": "log_level",
    "COLORED_OUTPUT": "colored_output",
    "LOG_DIR": "log_dir",
}

_LIST_FIELDS = ("input_token_whitelist", "output_token_whitelist")


def _parse_env_value(field: str, raw: str) -> Any:
    """Environment strings -> python values pydantic can coerce."""
    if field in _LIST_FIELDS:
        return [item.strip() for item in raw.split(",") if item.strip()]
    if field == "tokens":
        try:
            return json.loads(raw)
        except json.JSONDecodeError as e:
            raise ConfigurationError(f"TOKENS is not valid JSON: {e}") from e
    return raw


def config_from_env(environ: Optional[Mapping[str, str]] = None) -> Dict[str, Any]:
    """Collect config fields present in the environment."""
    environ = os.environ if environ is None else environ
    values: Dict[str, Any] = {}
    for env_name, field in ENV_FIELDS.items():
        raw = environ.get(env_name)
        if raw is None or raw == "":
            continue
        values[field] = _parse_env_value(field, raw)
    return values


def format_validation_error(error: ValidationError) -> List[str]:
    """One line per invalid field."""
    lines = []
    for item in error.errors():
        location = ".".join(str(part) for part in item["loc"]) or "config"
        lines.append(f"{location}: {item['msg']}")
    return lines


def load_config(
    env_file: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    **overrides: Any,
) -> SolverConfig:
    """
    Load configuration from environment and overrides.

    Args:
        env_file: Optional .env file loaded into the process environment first
        environ: Mapping to read instead of os.environ (tests)
        **overrides: Field values that win over the environment; None is ignored

    Returns:
        Validated SolverConfig

    Raises:
        ConfigurationError: on missing or invalid values
    """
    if env_file and environ is None:
        load_dotenv(env_file, override=False)

    values = config_from_env(environ)
    values.update({k: v for k, v in overrides.items() if v is not None})

    missing = [name for name, field in (("RPC_URL", "rpc_url"), ("CONTRACT_ADDRESS", "contract_address"))
               if not values.get(field)]
    if missing:
        raise ConfigurationError(f"Missing required settings: {', '.join(missing)}")

    try:
        return SolverConfig(**values)
    except ValidationError as e:
        raise ConfigurationError("Invalid configuration:\n  " + "\n  ".join(format_validation_error(e))) from e


def validate_config(config: SolverConfig) -> Tuple[bool, str]:
    """Startup checks beyond field validation."""
    try:
        config.require_signer()
    except ConfigurationError as e:
        return False, str(e)
    return True, ""
