"""
Per-vault / per-strategy reward APR extraction from Merkl opportunities.

For one target address:
    1. find the first opportunity whose identifier matches the address
    2. for each campaign, find its aprRecord breakdown (by campaignId)
    3. keep campaigns whose reward token is on the program's allowlist
    4. sum campaigns that reward the same token (combine_token_breakdowns)

The outcome is an explicit tagged value (ExtractionOutcome). It collapses to
the zero-valued placeholder result only when callers ask for results, so a
vault without rewards always yields exactly one zero entry and never an empty
list.

APR values stay in Merkl's percentage points here (12.5 = 12.5%).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Sequence, TypeVar

from .debug import VaultAprDebugEvent, log_vault_apr_debug
from .errors import MissingAddressError
from .matching import addresses_equal, identifier_matches_address
from .models import (
    ZERO_BREAKDOWN,
    Campaign,
    Opportunity,
    StrategyRewardResult,
    TokenBreakdown,
    VaultRewardResult,
    is_number,
)

R = TypeVar("R", StrategyRewardResult, VaultRewardResult)


class ExtractionReason(str, Enum):
    OPPORTUNITY_MISSING = "opportunity_missing"
    NO_CAMPAIGNS = "opportunity_has_no_campaigns"
    NO_MATCH = "no_matching_campaigns_after_filters"
    COMPUTED = "apr_calculated"


@dataclass(frozen=True)
class AcceptedCampaign:
    campaign: Campaign
    apr: float  # percentage points


@dataclass
class ExtractionOutcome:
    """Result of matching one address against an opportunity list."""

    reason: ExtractionReason
    opportunity: Opportunity | None = None
    accepted: list[AcceptedCampaign] = field(default_factory=list)
    # campaigns that had an APR breakdown (accepted or not)
    apr_matched_campaign_ids: list[str] = field(default_factory=list)
    # campaigns with APR whose reward token was not allowed
    filtered_campaign_ids: list[str] = field(default_factory=list)

    @property
    def computed(self) -> bool:
        return self.reason is ExtractionReason.COMPUTED

    def breakdowns(self) -> list[TokenBreakdown]:
        """Per-campaign breakdowns, or the single zero placeholder."""
        if not self.computed:
            return [ZERO_BREAKDOWN]
        return [
            TokenBreakdown(apr=a.apr, token=a.campaign.reward_token, weight=0)
            for a in self.accepted
        ]


# ============================================================================
# CLASSIFICATION
# ============================================================================


def _is_allowed_token(token_address: str, allowed_reward_tokens: Sequence[str]) -> bool:
    return any(addresses_equal(token_address, allowed) for allowed in allowed_reward_tokens)


def classify_rewards(
    address: str,
    opportunities: Sequence[Opportunity],
    allowed_reward_tokens: Sequence[str],
    pool_type: str = "",
    vault_address: str | None = None,
    vault_name: str | None = None,
) -> ExtractionOutcome:
    """
    Match `address` against `opportunities` and collect allowed campaign APRs.

    vault_address / vault_name only label debug events (strategy lookups are
    logged under their owning vault).

    Raises:
        MissingAddressError: address is empty
    """
    if not address:
        raise MissingAddressError(f"No {pool_type or 'target'} address provided")

    debug_base = {
        "vault_address": vault_address or address,
        "vault_name": vault_name,
        "pool_type": pool_type,
    }

    opportunity = next(
        (opp for opp in opportunities if identifier_matches_address(opp.identifier, address)),
        None,
    )

    if opportunity is None:
        log_vault_apr_debug(
            VaultAprDebugEvent(
                stage="opportunity_lookup",
                opportunities_total=len(opportunities),
                reason="opportunity_missing",
                **debug_base,
            )
        )
        outcome = ExtractionOutcome(reason=ExtractionReason.OPPORTUNITY_MISSING)
        _log_summary(outcome, debug_base)
        return outcome

    log_vault_apr_debug(
        VaultAprDebugEvent(
            stage="opportunity_lookup",
            opportunity_identifier=opportunity.identifier,
            opportunities_total=len(opportunities),
            campaigns_total=len(opportunity.campaigns),
            reason="opportunity_found",
            **debug_base,
        )
    )

    if not opportunity.campaigns:
        outcome = ExtractionOutcome(
            reason=ExtractionReason.NO_CAMPAIGNS, opportunity=opportunity
        )
        _log_summary(outcome, debug_base)
        return outcome

    log_vault_apr_debug(
        VaultAprDebugEvent(
            stage="campaign_scan",
            opportunity_identifier=opportunity.identifier,
            campaigns_total=len(opportunity.campaigns),
            apr_breakdowns_total=len(opportunity.breakdowns),
            **debug_base,
        )
    )

    outcome = ExtractionOutcome(reason=ExtractionReason.NO_MATCH, opportunity=opportunity)
    for campaign in opportunity.campaigns:
        entry = opportunity.find_breakdown(campaign.campaign_id)
        matched = entry is not None and is_number(entry.value)
        log_vault_apr_debug(
            VaultAprDebugEvent(
                stage="campaign_apr_match",
                campaign_id=campaign.campaign_id,
                apr_breakdown_matched=matched,
                apr_value=float(entry.value) if matched else None,
                reason="apr_breakdown_found" if matched else "apr_breakdown_missing",
                **debug_base,
            )
        )
        if not matched:
            continue

        apr = float(entry.value)
        outcome.apr_matched_campaign_ids.append(str(campaign.campaign_id))
        token = campaign.reward_token
        token_matched = _is_allowed_token(token.address, allowed_reward_tokens)
        log_vault_apr_debug(
            VaultAprDebugEvent(
                stage="token_filter",
                campaign_id=campaign.campaign_id,
                reward_token_address=token.address,
                reward_token_symbol=token.symbol,
                token_matched=token_matched,
                apr_value=apr,
                reason="reward_token_accepted" if token_matched else "reward_token_filtered",
                **debug_base,
            )
        )
        if token_matched:
            outcome.accepted.append(AcceptedCampaign(campaign=campaign, apr=apr))
        else:
            outcome.filtered_campaign_ids.append(str(campaign.campaign_id))

    if outcome.accepted:
        outcome.reason = ExtractionReason.COMPUTED
    _log_summary(outcome, debug_base)
    return outcome


def _log_summary(outcome: ExtractionOutcome, debug_base: dict) -> None:
    log_vault_apr_debug(
        VaultAprDebugEvent(
            stage="result_summary",
            accepted_campaigns=len(outcome.accepted),
            reason=outcome.reason.value,
            **debug_base,
        )
    )


# ============================================================================
# RESULTS
# ============================================================================


def combine_token_breakdowns(results: Sequence[R]) -> list[R]:
    """
    Sum APR of results that share address, pool type, token, weight and pool.

    Distinct tokens/pools stay separate line items. Inputs are not mutated.
    """
    combined: dict[tuple, R] = {}
    for item in results:
        key = item.combine_key()
        existing = combined.get(key)
        if existing is None:
            combined[key] = item
        else:
            combined[key] = existing.with_apr(existing.breakdown.apr + item.breakdown.apr)
    return list(combined.values())


def calculate_vault_rewards_apr(
    vault_name: str,
    vault_address: str,
    opportunities: Sequence[Opportunity],
    pool_type: str,
    allowed_reward_tokens: Sequence[str],
) -> list[VaultRewardResult]:
    """Reward APR forwarded directly to a vault (one entry per reward token)."""
    outcome = classify_rewards(
        vault_address,
        opportunities,
        allowed_reward_tokens,
        pool_type=pool_type,
        vault_address=vault_address,
        vault_name=vault_name,
    )
    results = [
        VaultRewardResult(
            vault_name=vault_name,
            vault_address=vault_address,
            pool_type=pool_type,
            breakdown=breakdown,
        )
        for breakdown in outcome.breakdowns()
    ]
    return combine_token_breakdowns(results)


def calculate_strategy_apr(
    strategy_address: str,
    pool_address: str | None,
    opportunities: Sequence[Opportunity],
    pool_type: str,
    allowed_reward_tokens: Sequence[str],
    vault_address: str | None = None,
    vault_name: str | None = None,
) -> list[StrategyRewardResult]:
    """Reward APR a strategy earns through its underlying pool/vault."""
    outcome = classify_rewards(
        pool_address or "",
        opportunities,
        allowed_reward_tokens,
        pool_type=pool_type,
        vault_address=vault_address,
        vault_name=vault_name,
    )
    results = [
        StrategyRewardResult(
            strategy_address=strategy_address,
            pool_address=pool_address or "",
            pool_type=pool_type,
            breakdown=breakdown,
        )
        for breakdown in outcome.breakdowns()
    ]
    return combine_token_breakdowns(results)
