"""
Tests for reward APR extraction and breakdown combining.

Run with: pytest tests/test_extractor.py -v
"""

import random

import pytest
from aprcalc.errors import MissingAddressError
from aprcalc.extractor import (
    ExtractionReason,
    calculate_strategy_apr,
    calculate_vault_rewards_apr,
    classify_rewards,
    combine_token_breakdowns,
)
from aprcalc.models import EMPTY_TOKEN, RewardToken, TokenBreakdown, VaultRewardResult
from conftest import KAT_ADDRESS, OTHER_TOKEN, VAULT_ADDRESS, make_campaign, make_opportunity

STRATEGY = "0x00000000000000000000000000000000000000d1"
POOL = "0x00000000000000000000000000000000000000e1"


def _is_placeholder(result) -> bool:
    b = result.breakdown
    return b.apr == 0 and b.token == EMPTY_TOKEN and b.weight == 0


# ============================================================================
# CLASSIFICATION
# ============================================================================


class TestClassifyRewards:
    """Test classifying an address against Merkl opportunities."""

    def test_empty_address_raises(self):
        """An empty address raises MissingAddressError."""
        with pytest.raises(MissingAddressError):
            classify_rewards("", [make_opportunity()], [KAT_ADDRESS])

    def test_missing_address_error_is_value_error(self):
        """MissingAddressError is a ValueError."""
        with pytest.raises(ValueError):
            classify_rewards("", [], [KAT_ADDRESS])

    def test_no_opportunity(self, debug_events):
        """No matching opportunity is reported and logged."""
        outcome = classify_rewards(VAULT_ADDRESS, [], [KAT_ADDRESS], pool_type="yearn")
        assert outcome.reason is ExtractionReason.OPPORTUNITY_MISSING
        stages = [(e.stage, e.reason) for e in debug_events]
        assert ("opportunity_lookup", "opportunity_missing") in stages
        assert ("result_summary", "opportunity_missing") in stages

    def test_no_campaigns(self):
        """An opportunity without campaigns is reported."""
        outcome = classify_rewards(
            VAULT_ADDRESS, [make_opportunity(campaigns=[])], [KAT_ADDRESS]
        )
        assert outcome.reason is ExtractionReason.NO_CAMPAIGNS
        assert outcome.opportunity is not None

    def test_first_matching_opportunity_wins(self):
        """Only the first matching opportunity is used."""
        first = make_opportunity(breakdowns=[{"identifier": "campaign-1", "value": 1.0}])
        second = make_opportunity(breakdowns=[{"identifier": "campaign-1", "value": 50.0}])
        outcome = classify_rewards(VAULT_ADDRESS, [first, second], [KAT_ADDRESS])
        assert [a.apr for a in outcome.accepted] == [1.0]

    def test_breakdown_matched_case_insensitively(self):
        """Breakdown identifiers match campaign IDs in any case."""
        opp = make_opportunity(
            campaigns=[make_campaign("0xABCDEF")],
            breakdowns=[{"identifier": "0xabcdef", "value": 2.0}],
        )
        outcome = classify_rewards(VAULT_ADDRESS, [opp], [KAT_ADDRESS])
        assert outcome.computed

    @pytest.mark.parametrize("value", [None, "12.5", True])
    def test_non_numeric_breakdown_skipped(self, value):
        """Non-numeric breakdown values do not count as a match."""
        opp = make_opportunity(breakdowns=[{"identifier": "campaign-1", "value": value}])
        outcome = classify_rewards(VAULT_ADDRESS, [opp], [KAT_ADDRESS])
        assert outcome.reason is ExtractionReason.NO_MATCH
        assert outcome.apr_matched_campaign_ids == []

    def test_token_filtered(self, debug_events):
        """Campaigns paying other tokens are filtered and logged."""
        opp = make_opportunity(campaigns=[make_campaign("campaign-1", token=OTHER_TOKEN)])
        outcome = classify_rewards(VAULT_ADDRESS, [opp], [KAT_ADDRESS])
        assert outcome.reason is ExtractionReason.NO_MATCH
        assert outcome.apr_matched_campaign_ids == ["campaign-1"]
        assert outcome.filtered_campaign_ids == ["campaign-1"]
        token_events = [e for e in debug_events if e.stage == "token_filter"]
        assert token_events[0].reason == "reward_token_filtered"

    def test_malformed_reward_token_never_allowed(self):
        """A reward token without an address is never allowed."""
        opp = make_opportunity(campaigns=[make_campaign("campaign-1", token="0xbb")])
        outcome = classify_rewards(VAULT_ADDRESS, [opp], ["0xbb"])
        assert not outcome.computed


# ============================================================================
# VAULT-LEVEL RESULTS
# ============================================================================


class TestCalculateVaultRewardsApr:
    """Test vault-level reward results."""

    def test_single_campaign(self):
        """Allowed token: one result carrying the raw percentage-point APR."""
        results = calculate_vault_rewards_apr(
            "Vault", VAULT_ADDRESS, [make_opportunity()], "yearn", [KAT_ADDRESS]
        )
        assert len(results) == 1
        (result,) = results
        assert result.breakdown.apr == 12.5
        assert result.breakdown.token.address == KAT_ADDRESS
        assert result.vault_name == "Vault"
        assert result.pool_type == "yearn"

    def test_token_not_allowed_gives_placeholder(self, debug_events):
        """Filtered tokens yield the zero placeholder."""
        results = calculate_vault_rewards_apr(
            "Vault", VAULT_ADDRESS, [make_opportunity()], "yearn", [OTHER_TOKEN]
        )
        assert len(results) == 1 and _is_placeholder(results[0])
        summary = [e for e in debug_events if e.stage == "result_summary"]
        assert summary[-1].reason == "no_matching_campaigns_after_filters"

    def test_no_campaigns_gives_placeholder(self, debug_events):
        """No campaigns yields the zero placeholder."""
        results = calculate_vault_rewards_apr(
            "Vault", VAULT_ADDRESS, [make_opportunity(campaigns=[])], "yearn", [KAT_ADDRESS]
        )
        assert len(results) == 1 and _is_placeholder(results[0])
        summary = [e for e in debug_events if e.stage == "result_summary"]
        assert summary[-1].reason == "opportunity_has_no_campaigns"

    def test_no_opportunity_gives_placeholder(self):
        """No opportunity yields the zero placeholder."""
        results = calculate_vault_rewards_apr("Vault", VAULT_ADDRESS, [], "yearn", [KAT_ADDRESS])
        assert len(results) == 1 and _is_placeholder(results[0])
        assert results[0].to_dict() == {
            "vaultName": "Vault",
            "vaultAddress": VAULT_ADDRESS,
            "poolType": "yearn",
            "breakdown": {
                "apr": 0,
                "token": {"address": "", "symbol": "", "decimals": 0},
                "weight": 0,
            },
        }

    def test_same_token_campaigns_are_summed(self):
        """Campaigns paying the same token are summed."""
        opp = make_opportunity(
            campaigns=[make_campaign("c1"), make_campaign("c2")],
            breakdowns=[
                {"identifier": "c1", "value": 5.0},
                {"identifier": "c2", "value": 7.0},
            ],
        )
        results = calculate_vault_rewards_apr("Vault", VAULT_ADDRESS, [opp], "yearn", [KAT_ADDRESS])
        assert len(results) == 1
        assert results[0].breakdown.apr == pytest.approx(12.0)

    def test_distinct_tokens_stay_separate(self):
        """Campaigns paying different tokens stay separate."""
        second_kat = "0x00000000000000000000000000000000000000bc"
        opp = make_opportunity(
            campaigns=[make_campaign("c1"), make_campaign("c2", token=second_kat)],
            breakdowns=[
                {"identifier": "c1", "value": 5.0},
                {"identifier": "c2", "value": 7.0},
            ],
        )
        results = calculate_vault_rewards_apr(
            "Vault", VAULT_ADDRESS, [opp], "yearn", [KAT_ADDRESS, second_kat]
        )
        assert sorted(r.breakdown.apr for r in results) == [5.0, 7.0]

    def test_never_empty(self):
        """Every input shape yields at least one result."""
        cases = [
            [],
            [make_opportunity(campaigns=[])],
            [make_opportunity(breakdowns=[])],
            [make_opportunity()],
        ]
        for opportunities in cases:
            assert calculate_vault_rewards_apr(
                "Vault", VAULT_ADDRESS, opportunities, "yearn", [KAT_ADDRESS]
            )


# ============================================================================
# STRATEGY-LEVEL RESULTS
# ============================================================================


class TestCalculateStrategyApr:
    """Test strategy-level reward results."""

    def test_matches_by_pool_address(self):
        """Strategies match opportunities through their pool address."""
        opp = make_opportunity(identifier=f"{POOL}-morpho")
        results = calculate_strategy_apr(STRATEGY, POOL, [opp], "morpho", [KAT_ADDRESS])
        (result,) = results
        assert result.strategy_address == STRATEGY
        assert result.pool_address == POOL
        assert result.breakdown.apr == 12.5
        assert result.to_dict()["strategyAddress"] == STRATEGY

    def test_missing_pool_address_raises(self):
        """A strategy without a pool address raises."""
        with pytest.raises(MissingAddressError):
            calculate_strategy_apr(STRATEGY, None, [make_opportunity()], "morpho", [KAT_ADDRESS])


# ============================================================================
# COMBINER
# ============================================================================


def _result(apr: float, token: str = KAT_ADDRESS, pool_type: str = "yearn") -> VaultRewardResult:
    return VaultRewardResult(
        vault_name="Vault",
        vault_address=VAULT_ADDRESS,
        pool_type=pool_type,
        breakdown=TokenBreakdown(apr=apr, token=RewardToken(token, "KAT", 18), weight=0),
    )


def _totals(results) -> dict:
    return {r.combine_key(): r.breakdown.apr for r in results}


class TestCombineTokenBreakdowns:
    """Test summing results that share a combine key."""

    def test_idempotent(self):
        """Combining twice gives the same totals."""
        results = [_result(5.0), _result(7.0), _result(1.0, token=OTHER_TOKEN)]
        once = combine_token_breakdowns(results)
        twice = combine_token_breakdowns(once)
        assert _totals(once) == _totals(twice)

    def test_order_independent(self):
        """Input order does not change the totals."""
        results = [_result(5.0), _result(7.0), _result(1.0, token=OTHER_TOKEN), _result(2.5)]
        expected = _totals(combine_token_breakdowns(results))
        rng = random.Random(7)
        for _ in range(5):
            shuffled = results[:]
            rng.shuffle(shuffled)
            got = _totals(combine_token_breakdowns(shuffled))
            assert got.keys() == expected.keys()
            for key in expected:
                assert got[key] == pytest.approx(expected[key])

    def test_pool_type_is_part_of_key(self):
        """Different pool types are not merged."""
        combined = combine_token_breakdowns([_result(1.0), _result(2.0, pool_type="fixed rate")])
        assert len(combined) == 2

    def test_inputs_not_mutated(self):
        """Input results keep their APR."""
        first = _result(5.0)
        combine_token_breakdowns([first, _result(7.0)])
        assert first.breakdown.apr == 5.0
