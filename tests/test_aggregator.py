"""
Tests for merging program results into one vault record.

Run with: pytest tests/test_aggregator.py -v
"""

import pytest
from aprcalc.aggregator import VaultAggregator
from aprcalc.config import KATANA_TOKEN_FDV, AprTables
from aprcalc.models import (
    FallbackVaultRecord,
    RewardToken,
    StrategyRewardResult,
    TokenBreakdown,
    Vault,
    VaultRewardResult,
)
from conftest import KAT_ADDRESS, VAULT_ADDRESS, make_strategy, make_vault

STRAT_A = "0x00000000000000000000000000000000000000a1"
STRAT_B = "0x00000000000000000000000000000000000000a2"
POOL = "0x00000000000000000000000000000000000000e1"
KAT = RewardToken(KAT_ADDRESS, "KAT", 18)

TABLES = AprTables(
    bonus_apy_by_symbol={"TST": 0.068},
    native_yield_by_symbol={"TST": 0.05},
)


def _vault_result(apr, pool_type="yearn"):
    return VaultRewardResult(
        vault_name="Test Vault",
        vault_address=VAULT_ADDRESS,
        pool_type=pool_type,
        breakdown=TokenBreakdown(apr=apr, token=KAT),
    )


def _strategy_result(strategy, apr, pool_type="morpho"):
    return StrategyRewardResult(
        strategy_address=strategy,
        pool_address=POOL,
        pool_type=pool_type,
        breakdown=TokenBreakdown(apr=apr, token=KAT),
    )


class TestVaultAggregator:
    """Test merging program results into one vault record."""

    aggregator = VaultAggregator(TABLES)

    def test_no_results_gives_fallback_record(self):
        """No results at all produces the zero fallback record."""
        record = self.aggregator.aggregate(make_vault(), [])
        assert isinstance(record, FallbackVaultRecord)
        assert record.to_dict() == {
            "name": "Test Vault",
            "apr": 0.0,
            "pools": None,
            "breakdown": [],
        }

    def test_program_totals_divided_by_100_once(self):
        """Vault-level totals are summed per program, then converted to decimal."""
        vault = make_vault(apr={"netAPR": 0.02, "extra": {}})
        record = self.aggregator.aggregate(
            vault,
            [_vault_result(5.0), _vault_result(7.0), _vault_result(3.0, "fixed rate")],
        )
        extra = record.apr_extra
        assert extra["katanaAppRewardsAPR"] == pytest.approx(0.12)
        assert extra["fixedRateKatanaRewards"] == pytest.approx(0.03)

    def test_fixed_rate_never_folded_into_app_rewards(self):
        """Fixed-rate rewards land in their own component only."""
        record = self.aggregator.aggregate(make_vault(), [_vault_result(4.0, "fixed rate")])
        assert record.apr_extra["katanaAppRewardsAPR"] == 0
        assert record.apr_extra["fixedRateKatanaRewards"] == pytest.approx(0.04)

    def test_static_tables_by_symbol(self):
        """Bonus APY and native yield come from the per-symbol tables."""
        record = self.aggregator.aggregate(make_vault(), [_vault_result(0)])
        assert record.apr_extra["katanaBonusAPY"] == pytest.approx(0.068)
        assert record.apr_extra["katanaNativeYield"] == pytest.approx(0.05)

    def test_unknown_symbol_gets_zero(self):
        """Symbols missing from the tables contribute zero."""
        record = self.aggregator.aggregate(make_vault(symbol="NOPE"), [_vault_result(1.0)])
        assert record.apr_extra["katanaBonusAPY"] == 0
        assert record.apr_extra["katanaNativeYield"] == 0

    def test_existing_apr_fields_preserved(self):
        """Raw apr fields and existing extras survive aggregation."""
        vault = make_vault(
            apr={
                "type": "v3",
                "netAPR": 0.02,
                "fees": {"performance": 0.1},
                "extra": {"extrinsicYield": 0.01},
            }
        )
        record = self.aggregator.aggregate(vault, [_vault_result(1.0)])
        out = record.to_dict()["apr"]
        assert out["type"] == "v3"
        assert out["netAPR"] == 0.02
        assert out["fees"] == {"performance": 0.1}
        assert out["extra"]["extrinsicYield"] == 0.01

    def test_apr_created_when_missing(self):
        """A vault without an apr block gets one."""
        record = self.aggregator.aggregate(make_vault(), [_vault_result(1.0)])
        assert record.apr is not None
        assert "netAPR" not in record.to_dict()["apr"]

    def test_identity_fields_preserved(self):
        """Address, symbol, name, chain, token and TVL are carried over."""
        vault = make_vault()
        vault.token = {"symbol": "USDC"}
        vault.tvl = {"tvl": 1_000_000}
        record = self.aggregator.aggregate(vault, [_vault_result(1.0)])
        assert isinstance(record, Vault)
        assert (record.address, record.symbol, record.name, record.chain_id) == (
            vault.address,
            vault.symbol,
            vault.name,
            vault.chain_id,
        )
        assert record.token == {"symbol": "USDC"}
        assert record.tvl == {"tvl": 1_000_000}

    def test_strategy_reward_metadata_and_legacy_apr(self):
        """Strategy results attach reward token metadata and weight the legacy APR by debt."""
        vault = make_vault(
            strategies=[
                make_strategy(STRAT_A, "Morpho A", debt_ratio=6000),
                make_strategy(STRAT_B, "Morpho B", debt_ratio=4000),
            ]
        )
        record = self.aggregator.aggregate(
            vault, [_strategy_result(STRAT_A, 10.0), _strategy_result(STRAT_B, 5.0)]
        )
        a, b = record.strategies
        assert a.reward_token["assumedFDV"] == KATANA_TOKEN_FDV
        assert a.reward_token["address"] == KAT_ADDRESS
        assert a.underlying_contract == POOL
        # 0.10 * 0.6 + 0.05 * 0.4
        assert record.apr_extra["katanaRewardsAPR"] == pytest.approx(0.08)

    def test_inactive_strategy_untouched(self):
        """Inactive strategies get no reward metadata and no legacy APR."""
        vault = make_vault(strategies=[make_strategy(STRAT_A, "Morpho A", status="retired")])
        record = self.aggregator.aggregate(vault, [_strategy_result(STRAT_A, 10.0)])
        (strategy,) = record.strategies
        assert strategy.reward_token is None
        assert record.apr_extra["katanaRewardsAPR"] == 0

    def test_debt_ratio_clamped_in_legacy_apr(self):
        """Debt ratios above 100% are clamped in the legacy APR."""
        vault = make_vault(strategies=[make_strategy(STRAT_A, "Morpho A", debt_ratio=20000)])
        record = self.aggregator.aggregate(vault, [_strategy_result(STRAT_A, 10.0)])
        assert record.apr_extra["katanaRewardsAPR"] == pytest.approx(0.10)

    def test_steer_points_included(self):
        """Steer points per dollar are written to apr.extra."""
        vault = make_vault(
            strategies=[make_strategy(STRAT_A, "Steer weETH-vbETH", debt_ratio=5000)]
        )
        record = self.aggregator.aggregate(vault, [_vault_result(1.0)])
        assert record.apr_extra["steerPointsPerDollar"] == pytest.approx(1.0)

    def test_source_vault_not_mutated(self):
        """Aggregation returns a new vault and leaves the input alone."""
        vault = make_vault(
            apr={"netAPR": 0.02, "extra": {}},
            strategies=[make_strategy(STRAT_A, "Morpho A")],
        )
        self.aggregator.aggregate(vault, [_strategy_result(STRAT_A, 10.0), _vault_result(1.0)])
        assert vault.apr_extra == {}
        assert vault.strategies[0].reward_token is None
