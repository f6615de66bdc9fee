"""
Katana vault APR aggregation.

Combines the yDaemon vault list, Merkl incentive opportunities and on-chain
reads into one APR record per Yearn vault on Katana (chain 747474).

Configuration comes from environment (.env): RPC_URL_KATANA, YDAEMON_BASE_URI,
MERKL_BASE_URI, KONG_WEBHOOK_SECRET, CACHE_REFRESH_SECRET, APR_DEBUG_*.

Core workflow:
    >>> import asyncio
    >>> from aprcalc import AprDataBuilder, AprDataCache, load_settings
    >>>
    >>> settings = load_settings()
    >>> cache = AprDataCache(AprDataBuilder.from_settings(settings))
    >>> snapshot = asyncio.run(cache.get())
    >>> for address, record in snapshot.data.items():
    ...     print(address, record.apr_extra.get("katanaAppRewardsAPR", 0))

Single vault, single program:
    >>> from aprcalc import MerklClient, calculate_vault_rewards_apr, WRAPPED_KAT_ADDRESSES
    >>> opps = MerklClient().get_erc20_log_processor_opportunities()
    >>> calculate_vault_rewards_apr("yvUSDC", "0x...", opps, "yearn", WRAPPED_KAT_ADDRESSES)
"""

from .aggregator import VaultAggregator
from .blacklist import (
    EXCLUDED_CAMPAIGN_IDS,
    apply_campaign_blacklist,
    filter_excluded_identifiers,
    is_excluded_campaign_id,
)
from .cache import (
    AprDataBuilder,
    AprDataCache,
    CacheSnapshot,
    find_vault_record,
    serialize_apr_data,
)
from .calculators import (
    AprCalculator,
    FixedRateAprCalculator,
    MorphoAprCalculator,
    SushiAprCalculator,
    YearnAprCalculator,
)
from .config import (
    KATANA_CHAIN_ID,
    WRAPPED_KAT_ADDRESSES,
    AprTables,
    Settings,
    load_settings,
)
from .contracts import ContractReader
from .debug import (
    AprDebugSampler,
    VaultAprDebugEvent,
    configure_debug_sampler,
    log_vault_apr_debug,
    reset_debug_state,
)
from .diagnose import VaultDiagnosis, diagnose_vault, summarize
from .errors import (
    AprServiceError,
    ConfigurationError,
    MissingAddressError,
    RpcError,
    UpstreamError,
    VaultListUnavailableError,
)
from .extractor import (
    ExtractionOutcome,
    ExtractionReason,
    calculate_strategy_apr,
    calculate_vault_rewards_apr,
    classify_rewards,
    combine_token_breakdowns,
)
from .matching import addresses_equal, identifier_matches_address, is_address
from .merkl import MerklClient
from .models import (
    FallbackVaultRecord,
    Opportunity,
    Strategy,
    StrategyRewardResult,
    TokenBreakdown,
    Vault,
    VaultRewardResult,
)
from .points import SteerPointsCalculator
from .report import build_quick_apy_table
from .webhook import WebhookOutput, compute_webhook_outputs
from .yearn import YDaemonClient

__all__ = [
    # Config
    "KATANA_CHAIN_ID",
    "WRAPPED_KAT_ADDRESSES",
    "AprTables",
    "Settings",
    "load_settings",
    # Errors
    "AprServiceError",
    "ConfigurationError",
    "MissingAddressError",
    "RpcError",
    "UpstreamError",
    "VaultListUnavailableError",
    # Models
    "FallbackVaultRecord",
    "Opportunity",
    "Strategy",
    "StrategyRewardResult",
    "TokenBreakdown",
    "Vault",
    "VaultRewardResult",
    # Matching / blacklist
    "addresses_equal",
    "identifier_matches_address",
    "is_address",
    "EXCLUDED_CAMPAIGN_IDS",
    "apply_campaign_blacklist",
    "filter_excluded_identifiers",
    "is_excluded_campaign_id",
    # Extraction
    "ExtractionOutcome",
    "ExtractionReason",
    "calculate_strategy_apr",
    "calculate_vault_rewards_apr",
    "classify_rewards",
    "combine_token_breakdowns",
    # Collaborators
    "ContractReader",
    "MerklClient",
    "YDaemonClient",
    # Programs
    "AprCalculator",
    "FixedRateAprCalculator",
    "MorphoAprCalculator",
    "SushiAprCalculator",
    "YearnAprCalculator",
    # Aggregation
    "SteerPointsCalculator",
    "VaultAggregator",
    # Cache
    "AprDataBuilder",
    "AprDataCache",
    "CacheSnapshot",
    "find_vault_record",
    "serialize_apr_data",
    # Outputs
    "WebhookOutput",
    "compute_webhook_outputs",
    "build_quick_apy_table",
    # Diagnosis
    "VaultDiagnosis",
    "diagnose_vault",
    "summarize",
    # Debug
    "AprDebugSampler",
    "VaultAprDebugEvent",
    "configure_debug_sampler",
    "log_vault_apr_debug",
    "reset_debug_state",
]
