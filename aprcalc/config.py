"""
Runtime configuration for the Katana APR service.

Everything is read from the environment once (after `.env` is loaded via
python-dotenv, without clobbering variables already set):

- RPC_URL_KATANA:           Katana JSON-RPC endpoint (strategy programs need it)
- YDAEMON_BASE_URI:         yDaemon vault listing
- MERKL_BASE_URI:           Merkl opportunities API
- APR_DEBUG_*:              debug sampler gate / vault filter / sample cap
- KONG_WEBHOOK_SECRET:      HMAC secret for the batch webhook
- CACHE_REFRESH_SECRET:     token for forced cache rebuilds
- APR_TABLES_PATH:          JSON file with the static per-symbol tables

Static tables (bonus APY, native yield, Steer point rates, reward-token
allowlists) are plain data. Edit configs/apr_tables.json, not the aggregator.

Usage:
    from aprcalc.config import load_settings
    settings = load_settings()
"""

from __future__ import annotations

import json
import logging
import os
from dataclasses import dataclass, field
from pathlib import Path

from dotenv import load_dotenv

from .errors import ConfigurationError

logger = logging.getLogger(__name__)

# ============================================================================
# CONSTANTS
# ============================================================================

KATANA_CHAIN_ID = 747474
MULTICALL3_ADDRESS = "0xcA11bde05977b3631167028862bE2a173976CA11"

DEFAULT_YDAEMON_URL = "https://ydaemon.yearn.fi"
DEFAULT_MERKL_URL = "https://api.merkl.xyz"

# Assumed fully-diluted valuation attached to KAT reward tokens
KATANA_TOKEN_FDV = 1_000_000_000

# KAT and its wrapped variants; only these reward tokens count towards APR
WRAPPED_KAT_ADDRESSES = (
    "0x6E9C1F88a960fE63387eb4b71BC525a9313d8461",  # v2 wrapped KAT
    "0x3ba1fbC4c3aEA775d335b31fb53778f46FD3a330",  # v1 wrapped KAT
    "0x0161A31702d6CF715aaa912d64c6A190FD0093aa",  # KAT
)

# Steer points per dollar, keyed by pool pair. Matched case-insensitively
# against strategy names.
STEER_REWARD_RATES = {
    "weETH-vbETH": 2.0,
    "AUSD-vbUSDC": 1.0,
    "vbUSDC-vbUSDT": 1.0,
    "vbWBTC-LBTC": 0.0,
    "vbWBTC-BTCK": 0.0,
}

# Pool types produced by each reward program
POOL_TYPE_YEARN = "yearn"
POOL_TYPE_FIXED_RATE = "fixed rate"
POOL_TYPE_MORPHO = "morpho"
POOL_TYPE_SUSHI = "sushi"

# Search order for the static tables file
TABLES_SEARCH_PATHS = [
    Path("."),
    Path("configs"),
    Path(__file__).parent.parent / "configs",
]


# ============================================================================
# STATIC TABLES
# ============================================================================


@dataclass(frozen=True)
class AprTables:
    """Per-symbol lookups and allowlists fed into the aggregator."""

    bonus_apy_by_symbol: dict[str, float] = field(default_factory=dict)
    native_yield_by_symbol: dict[str, float] = field(default_factory=dict)
    steer_reward_rates: dict[str, float] = field(
        default_factory=lambda: dict(STEER_REWARD_RATES)
    )
    # pool type -> allowed reward token addresses
    reward_token_allowlists: dict[str, tuple[str, ...]] = field(default_factory=dict)

    def allowed_reward_tokens(self, pool_type: str) -> tuple[str, ...]:
        return self.reward_token_allowlists.get(pool_type, WRAPPED_KAT_ADDRESSES)

    def bonus_apy(self, symbol: str) -> float:
        return float(self.bonus_apy_by_symbol.get(symbol, 0.0))

    def native_yield(self, symbol: str) -> float:
        return float(self.native_yield_by_symbol.get(symbol, 0.0))

    @classmethod
    def from_dict(cls, raw: dict) -> AprTables:
        allowlists = {
            pool_type: tuple(addresses)
            for pool_type, addresses in (raw.get("rewardTokenAllowlists") or {}).items()
        }
        return cls(
            bonus_apy_by_symbol={
                k: float(v) for k, v in (raw.get("bonusApyBySymbol") or {}).items()
            },
            native_yield_by_symbol={
                k: float(v) for k, v in (raw.get("nativeYieldBySymbol") or {}).items()
            },
            steer_reward_rates={
                k: float(v)
                for k, v in (raw.get("steerRewardRates") or STEER_REWARD_RATES).items()
            },
            reward_token_allowlists=allowlists,
        )


def resolve_tables_path(tables_path: str) -> Path | None:
    """
    Resolve the tables file, searching TABLES_SEARCH_PATHS.

    Returns None when nothing is found; the built-in defaults apply then.
    """
    p = Path(tables_path)
    if p.is_absolute() or p.exists():
        return p if p.exists() else None

    for base in TABLES_SEARCH_PATHS:
        candidate = base / p
        if candidate.exists():
            return candidate
        candidate = base / p.name
        if candidate.exists():
            return candidate
    return None


def load_tables(tables_path: str | None) -> AprTables:
    if not tables_path:
        return AprTables()
    path = resolve_tables_path(tables_path)
    if path is None:
        logger.warning("APR tables file %s not found, using built-in defaults", tables_path)
        return AprTables()
    try:
        with open(path) as f:
            raw = json.load(f)
    except (OSError, ValueError) as e:
        raise ConfigurationError(f"Could not read APR tables from {path}: {e}") from e
    return AprTables.from_dict(raw)


# ============================================================================
# SETTINGS
# ============================================================================


def _parse_boolean(value: str | None, default: bool = False) -> bool:
    if value is None or value == "":
        return default
    return value.strip().lower() == "true"


def _parse_positive_int(value: str | None) -> int | None:
    if not value:
        return None
    try:
        parsed = int(value, 10)
    except ValueError:
        return None
    return parsed if parsed > 0 else None


@dataclass(frozen=True)
class Settings:
    """Immutable service configuration."""

    chain_id: int = KATANA_CHAIN_ID
    rpc_url: str = ""
    yearn_api_url: str = DEFAULT_YDAEMON_URL
    merkl_api_url: str = DEFAULT_MERKL_URL
    multicall_address: str = MULTICALL3_ADDRESS
    http_timeout: float = 30.0

    # Debug sampler
    apr_debug_enabled: bool = False
    apr_debug_vault_address: str | None = None
    apr_debug_sample_limit: int | None = None

    # Secrets
    webhook_secret: str | None = None
    refresh_secret: str | None = None

    # Cache
    cache_ttl_seconds: float = 900.0

    # Whether fixed-rate rewards count towards the webhook's netAPR
    fixed_rate_in_net_apr: bool = True

    tables: AprTables = field(default_factory=AprTables)

    # Server bind
    host: str = "0.0.0.0"
    port: int = 3000

    def require_rpc_url(self) -> str:
        if not self.rpc_url:
            raise ConfigurationError(
                "RPC_URL_KATANA not set in environment. "
                "Set it in your .env file or environment variables."
            )
        return self.rpc_url


def load_settings(env_file: str | None = None) -> Settings:
    """Build Settings from the environment (and an optional .env file)."""
    load_dotenv(env_file, override=False)
    env = os.environ

    debug_vault = env.get("APR_DEBUG_VAULT_ADDRESS")
    return Settings(
        chain_id=int(env.get("KATANA_CHAIN_ID", KATANA_CHAIN_ID)),
        rpc_url=env.get("RPC_URL_KATANA", ""),
        yearn_api_url=env.get("YDAEMON_BASE_URI") or DEFAULT_YDAEMON_URL,
        merkl_api_url=env.get("MERKL_BASE_URI") or DEFAULT_MERKL_URL,
        http_timeout=float(env.get("HTTP_TIMEOUT_SECONDS", 30)),
        apr_debug_enabled=_parse_boolean(env.get("APR_DEBUG_ENABLED")),
        apr_debug_vault_address=debug_vault.lower() if debug_vault else None,
        apr_debug_sample_limit=_parse_positive_int(env.get("APR_DEBUG_SAMPLE_LIMIT")),
        webhook_secret=env.get("KONG_WEBHOOK_SECRET") or None,
        refresh_secret=env.get("CACHE_REFRESH_SECRET") or None,
        cache_ttl_seconds=float(env.get("APR_CACHE_TTL_SECONDS", 900)),
        fixed_rate_in_net_apr=_parse_boolean(env.get("FIXED_RATE_IN_NET_APR"), default=True),
        tables=load_tables(env.get("APR_TABLES_PATH", "configs/apr_tables.json")),
        host=env.get("HOST", "0.0.0.0"),
        port=int(env.get("PORT", 3000)),
    )
