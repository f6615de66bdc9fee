"""
Merge every program's reward results into one vault record.

Vault-level program totals are converted from percentage points to decimal
here (apr / 100), and only here:

    yearn       -> apr.extra.katanaAppRewardsAPR
    fixed rate  -> apr.extra.fixedRateKatanaRewards

Static per-symbol components come from AprTables:

    katanaBonusAPY, katanaNativeYield

plus steerPointsPerDollar (SteerPointsCalculator) and the legacy
katanaRewardsAPR, a debt-weighted sum of strategy-level reward APRs.
"""

from __future__ import annotations

import logging
from copy import deepcopy
from typing import Sequence

import numpy as np

from .config import KATANA_TOKEN_FDV, POOL_TYPE_FIXED_RATE, POOL_TYPE_YEARN, AprTables
from .matching import addresses_equal
from .models import (
    FallbackVaultRecord,
    RewardResult,
    Strategy,
    StrategyRewardResult,
    Vault,
    VaultApr,
    VaultRecord,
    VaultRewardResult,
)
from .points import SteerPointsCalculator

logger = logging.getLogger(__name__)

# Vault-level pool type -> apr.extra key
VAULT_PROGRAM_COMPONENTS = {
    POOL_TYPE_YEARN: "katanaAppRewardsAPR",
    POOL_TYPE_FIXED_RATE: "fixedRateKatanaRewards",
}


def fallback_record(vault: Vault) -> FallbackVaultRecord:
    return FallbackVaultRecord(name=vault.name)


class VaultAggregator:
    def __init__(
        self,
        tables: AprTables | None = None,
        points: SteerPointsCalculator | None = None,
        token_fdv: float = KATANA_TOKEN_FDV,
    ):
        self.tables = tables or AprTables()
        self.points = points or SteerPointsCalculator(self.tables.steer_reward_rates)
        self.token_fdv = token_fdv

    # ------------------------------------------------------------------
    # strategies
    # ------------------------------------------------------------------

    def _strategy_result(
        self, strategy: Strategy, results: Sequence[RewardResult]
    ) -> StrategyRewardResult | None:
        for r in results:
            if isinstance(r, StrategyRewardResult) and addresses_equal(
                r.strategy_address, strategy.address
            ):
                return r
        return None

    def _attach_strategy_rewards(
        self, strategy: Strategy, results: Sequence[RewardResult]
    ) -> tuple[Strategy, float]:
        """Strategy with reward metadata attached, and its reward APR (decimal)."""
        if not strategy.is_active:
            return strategy, 0.0

        updated = deepcopy(strategy)
        result = self._strategy_result(strategy, results)
        if result is None:
            return updated, 0.0

        updated.reward_token = {**result.breakdown.token.to_dict(), "assumedFDV": self.token_fdv}
        updated.underlying_contract = result.pool_address
        return updated, result.breakdown.apr / 100

    # ------------------------------------------------------------------
    # vault
    # ------------------------------------------------------------------

    def program_totals(self, results: Sequence[RewardResult]) -> dict[str, float]:
        totals = {component: 0.0 for component in VAULT_PROGRAM_COMPONENTS.values()}
        for r in results:
            if not isinstance(r, VaultRewardResult):
                continue
            component = VAULT_PROGRAM_COMPONENTS.get(r.pool_type)
            if component is not None:
                totals[component] += r.breakdown.apr / 100
        return totals

    def aggregate(self, vault: Vault, results: Sequence[RewardResult]) -> VaultRecord:
        if not results:
            return fallback_record(vault)

        strategies = []
        strategy_aprs = []
        debt_fractions = []
        for strategy in vault.strategies:
            updated, apr = self._attach_strategy_rewards(strategy, results)
            strategies.append(updated)
            if strategy.is_active:
                strategy_aprs.append(apr)
                debt_fractions.append(strategy.debt_fraction)

        legacy_rewards_apr = float(np.dot(strategy_aprs, debt_fractions)) if strategy_aprs else 0.0

        extra = dict(vault.apr_extra)
        extra.update(self.program_totals(results))
        extra["katanaBonusAPY"] = self.tables.bonus_apy(vault.symbol)
        extra["katanaNativeYield"] = self.tables.native_yield(vault.symbol)
        extra["steerPointsPerDollar"] = self.points.calculate_for_vault(vault)
        extra["katanaRewardsAPR"] = legacy_rewards_apr

        if vault.apr is not None:
            apr = VaultApr(net_apr=vault.apr.net_apr, extra=extra, raw=deepcopy(vault.apr.raw))
        else:
            apr = VaultApr(extra=extra)

        return Vault(
            address=vault.address,
            symbol=vault.symbol,
            name=vault.name,
            chain_id=vault.chain_id,
            strategies=strategies,
            apr=apr,
            tvl=deepcopy(vault.tvl),
            token=deepcopy(vault.token),
        )
