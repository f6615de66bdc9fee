"""
Merkl campaign exclusions.

Two filters run on every opportunity list right after it is fetched, before
any APR is extracted:

- EXCLUDED_CAMPAIGN_IDS: individual campaigns known to report bogus APR.
  They are removed from the opportunity's campaign list.
- EXCLUDED_IDENTIFIER_SUFFIXES: whole opportunities whose identifier carries
  one of these program suffixes (e.g. "0x...-jumper") are dropped.
"""

from __future__ import annotations

from .debug import VaultAprDebugEvent, log_vault_apr_debug
from .matching import identifier_address, identifier_suffix
from .models import Opportunity

EXCLUDED_CAMPAIGN_IDS = frozenset(
    {
        "0x487022e5f413f60e3e6aa251712f9c2d6601f01d14b565e779a61b68c173bd6c",
        "0xc5a22d022154d5c64ff14b2f4071f134eb83cf159f9f846ad0ba0908a755e86d",
    }
)

EXCLUDED_IDENTIFIER_SUFFIXES = frozenset({"JUMPER"})


def is_excluded_campaign_id(campaign_id: str | None) -> bool:
    if not campaign_id:
        return False
    return campaign_id.lower() in EXCLUDED_CAMPAIGN_IDS


def is_excluded_identifier(identifier: str | None) -> bool:
    suffix = identifier_suffix(identifier)
    return suffix is not None and suffix in EXCLUDED_IDENTIFIER_SUFFIXES


def filter_excluded_identifiers(opportunities: list[Opportunity]) -> list[Opportunity]:
    return [opp for opp in opportunities if not is_excluded_identifier(opp.identifier)]


def apply_campaign_blacklist(opportunities: list[Opportunity]) -> list[Opportunity]:
    """Remove blacklisted campaigns; opportunities without campaigns pass through."""
    filtered: list[Opportunity] = []
    for opportunity in opportunities:
        if not opportunity.campaigns:
            filtered.append(opportunity)
            continue

        kept = tuple(
            c for c in opportunity.campaigns if not is_excluded_campaign_id(c.campaign_id)
        )
        if len(kept) == len(opportunity.campaigns):
            filtered.append(opportunity)
            continue

        removed_ids = [
            c.campaign_id
            for c in opportunity.campaigns
            if is_excluded_campaign_id(c.campaign_id)
        ]
        # Removed campaigns that actually carried APR change the vault's number
        apr_linked_ids = [
            campaign_id
            for campaign_id in removed_ids
            if opportunity.find_breakdown(campaign_id) is not None
        ]
        log_vault_apr_debug(
            VaultAprDebugEvent(
                stage="blacklist_filter",
                vault_address=identifier_address(opportunity.identifier)
                or opportunity.identifier,
                opportunity_identifier=opportunity.identifier,
                opportunity_type=opportunity.type,
                campaigns_total=len(opportunity.campaigns),
                blacklisted_campaigns=len(removed_ids),
                blacklisted_campaign_ids=removed_ids,
                blacklisted_apr_breakdown_campaign_ids=apr_linked_ids,
                reason=(
                    "apr_breakdown_campaign_blacklisted"
                    if apr_linked_ids
                    else "campaign_blacklisted"
                ),
            )
        )
        filtered.append(opportunity.with_campaigns(kept))
    return filtered
