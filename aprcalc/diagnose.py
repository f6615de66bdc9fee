"""
Why does (or doesn't) a vault receive app-rewards APR?

Classifies each vault against the ERC20 log processor opportunities using the
same matching rules as the extractor:

    NO_OPPORTUNITY          no opportunity identifier points at the vault
    NO_CAMPAIGNS            opportunity found, but it has no campaigns
    NO_APR_BREAKDOWN_MATCH  no campaign has a numeric APR breakdown
    TOKEN_FILTERED_OUT      APR exists, but only for non-allowlisted tokens
    APR_CALCULATED          at least one campaign contributes APR
"""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from typing import Sequence

from .config import POOL_TYPE_YEARN, WRAPPED_KAT_ADDRESSES
from .extractor import ExtractionReason, classify_rewards
from .models import Opportunity, Vault

DIAGNOSIS_REASONS = (
    "NO_OPPORTUNITY",
    "NO_CAMPAIGNS",
    "NO_APR_BREAKDOWN_MATCH",
    "TOKEN_FILTERED_OUT",
    "APR_CALCULATED",
)


@dataclass
class VaultDiagnosis:
    vaultAddress: str
    vaultName: str
    vaultSymbol: str
    reason: str
    opportunityIdentifier: str | None = None
    campaignsTotal: int | None = None
    aprBreakdownsTotal: int | None = None
    matchedCampaigns: list[str] = field(default_factory=list)
    filteredCampaigns: list[str] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}


def diagnose_vault(
    vault: Vault,
    opportunities: Sequence[Opportunity],
    allowed_reward_tokens: Sequence[str] = WRAPPED_KAT_ADDRESSES,
) -> VaultDiagnosis:
    outcome = classify_rewards(
        vault.address,
        opportunities,
        allowed_reward_tokens,
        pool_type=POOL_TYPE_YEARN,
        vault_name=vault.name,
    )
    diagnosis = VaultDiagnosis(
        vaultAddress=vault.address,
        vaultName=vault.name,
        vaultSymbol=vault.symbol,
        reason="NO_OPPORTUNITY",
    )
    opportunity = outcome.opportunity
    if opportunity is None:
        return diagnosis

    diagnosis.opportunityIdentifier = opportunity.identifier
    diagnosis.campaignsTotal = len(opportunity.campaigns)
    diagnosis.aprBreakdownsTotal = len(opportunity.breakdowns)
    diagnosis.matchedCampaigns = [
        str(a.campaign.campaign_id) for a in outcome.accepted
    ]
    diagnosis.filteredCampaigns = list(outcome.filtered_campaign_ids)

    if outcome.reason is ExtractionReason.NO_CAMPAIGNS:
        diagnosis.reason = "NO_CAMPAIGNS"
    elif outcome.reason is ExtractionReason.COMPUTED:
        diagnosis.reason = "APR_CALCULATED"
    elif outcome.apr_matched_campaign_ids:
        diagnosis.reason = "TOKEN_FILTERED_OUT"
    else:
        diagnosis.reason = "NO_APR_BREAKDOWN_MATCH"
    return diagnosis


def summarize(diagnoses: Sequence[VaultDiagnosis]) -> dict[str, int]:
    counts = {reason: 0 for reason in DIAGNOSIS_REASONS}
    for d in diagnoses:
        counts[d.reason] += 1
    return counts
