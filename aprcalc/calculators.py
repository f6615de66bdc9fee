"""
Per-program reward APR calculators.

Each calculator fetches its program's Merkl opportunities and maps every vault
address to a list of reward results:

    YearnAprCalculator       forwarded app rewards     vault-level     "yearn"
    FixedRateAprCalculator   fixed-rate rewards        vault-level     "fixed rate"
    MorphoAprCalculator      Morpho lending rewards    strategy-level  "morpho"
    SushiAprCalculator       Steer/Sushi LP rewards    strategy-level  "sushi"

Blocking HTTP (requests) runs in worker threads so several programs can be
computed concurrently with asyncio.gather.

Strategy-level programs resolve each strategy's underlying pool or vault with
one batched contract read. If that read fails as a whole the program yields
{} for this run; a single unresolved strategy is skipped.
"""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from typing import Sequence

from .config import (
    POOL_TYPE_FIXED_RATE,
    POOL_TYPE_MORPHO,
    POOL_TYPE_SUSHI,
    POOL_TYPE_YEARN,
    AprTables,
)
from .contracts import ContractReader
from .errors import MissingAddressError, UpstreamError
from .extractor import calculate_strategy_apr, calculate_vault_rewards_apr
from .merkl import MerklClient
from .models import Opportunity, RewardResult, StrategyRewardResult, Vault
from .yearn import get_active_morpho_strategies, get_active_sushi_strategies

logger = logging.getLogger(__name__)

VaultResults = dict[str, list[RewardResult]]


class AprCalculator(ABC):
    """One reward program: vaults in, {vault address: results} out."""

    pool_type: str = ""

    def __init__(self, merkl: MerklClient, tables: AprTables | None = None):
        self.merkl = merkl
        self.tables = tables or AprTables()

    @property
    def allowed_reward_tokens(self) -> tuple[str, ...]:
        return self.tables.allowed_reward_tokens(self.pool_type)

    @abstractmethod
    def fetch_opportunities(self) -> list[Opportunity]:
        ...

    @abstractmethod
    async def calculate_vault_aprs(self, vaults: Sequence[Vault]) -> VaultResults:
        ...


# ============================================================================
# VAULT-LEVEL PROGRAMS
# ============================================================================


class _VaultLevelCalculator(AprCalculator):
    async def calculate_vault_aprs(self, vaults: Sequence[Vault]) -> VaultResults:
        opportunities = await asyncio.to_thread(self.fetch_opportunities)
        results: VaultResults = {}
        for vault in vaults:
            try:
                results[vault.address] = calculate_vault_rewards_apr(
                    vault.name,
                    vault.address,
                    opportunities,
                    self.pool_type,
                    self.allowed_reward_tokens,
                )
            except MissingAddressError:
                continue
        return results


class YearnAprCalculator(_VaultLevelCalculator):
    """
    Rewards forwarded directly to Yearn vaults (ERC20 log processor campaigns).

    Covers Steer rewards that accrue at the strategy but are distributed to
    vault depositors.
    """

    pool_type = POOL_TYPE_YEARN

    def fetch_opportunities(self) -> list[Opportunity]:
        return self.merkl.get_erc20_log_processor_opportunities()


class FixedRateAprCalculator(_VaultLevelCalculator):
    """Fixed-APR KAT campaigns targeting vaults (ERC20_FIX_APR)."""

    pool_type = POOL_TYPE_FIXED_RATE

    def fetch_opportunities(self) -> list[Opportunity]:
        return self.merkl.get_erc20_fix_apr_opportunities()


# ============================================================================
# STRATEGY-LEVEL PROGRAMS
# ============================================================================


class _StrategyLevelCalculator(AprCalculator):
    def __init__(
        self,
        merkl: MerklClient,
        reader: ContractReader,
        tables: AprTables | None = None,
    ):
        super().__init__(merkl, tables)
        self.reader = reader

    @abstractmethod
    def select_strategies(self, vault: Vault) -> list[str]:
        ...

    @abstractmethod
    def resolve_underlying(self, strategy_addresses: list[str]) -> dict[str, str]:
        """strategy (lowercased) -> underlying address."""

    async def calculate_vault_aprs(self, vaults: Sequence[Vault]) -> VaultResults:
        opportunities = await asyncio.to_thread(self.fetch_opportunities)

        vault_strategies = [
            (vault, strategies)
            for vault in vaults
            if (strategies := self.select_strategies(vault))
        ]
        all_strategies = [s for _, strategies in vault_strategies for s in strategies]
        if not all_strategies:
            return {}

        try:
            underlying = await asyncio.to_thread(self.resolve_underlying, all_strategies)
        except UpstreamError as e:
            logger.error("%s: strategy resolution failed, skipping program: %s", self.pool_type, e)
            return {}

        results: VaultResults = {}
        for vault, strategies in vault_strategies:
            vault_results: list[StrategyRewardResult] = []
            for strategy in strategies:
                try:
                    vault_results.extend(
                        calculate_strategy_apr(
                            strategy,
                            underlying.get(strategy.lower()),
                            opportunities,
                            self.pool_type,
                            self.allowed_reward_tokens,
                            vault_address=vault.address,
                            vault_name=vault.name,
                        )
                    )
                except MissingAddressError:
                    logger.debug("%s: no underlying address for strategy %s", self.pool_type, strategy)
            if vault_results:
                results[vault.address] = vault_results
        return results


class MorphoAprCalculator(_StrategyLevelCalculator):
    """Rewards on Morpho vaults that Yearn strategies deposit into."""

    pool_type = POOL_TYPE_MORPHO

    def fetch_opportunities(self) -> list[Opportunity]:
        return self.merkl.get_morpho_opportunities()

    def select_strategies(self, vault: Vault) -> list[str]:
        return get_active_morpho_strategies(vault)

    def resolve_underlying(self, strategy_addresses: list[str]) -> dict[str, str]:
        return self.reader.get_morpho_vaults_from_strategies(strategy_addresses)


class SushiAprCalculator(_StrategyLevelCalculator):
    """Rewards on Sushi pools behind Steer LP strategies."""

    pool_type = POOL_TYPE_SUSHI

    def fetch_opportunities(self) -> list[Opportunity]:
        return self.merkl.get_sushi_opportunities()

    def select_strategies(self, vault: Vault) -> list[str]:
        return get_active_sushi_strategies(vault)

    def resolve_underlying(self, strategy_addresses: list[str]) -> dict[str, str]:
        return self.reader.get_sushi_pools_from_strategies(strategy_addresses)
