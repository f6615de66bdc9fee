"""
Gated, sampled debug events for the APR pipeline.

Every decision point (blacklist, opportunity lookup, campaign scan, token
filter, summary, fallback) emits a VaultAprDebugEvent. Events are dropped
unless APR_DEBUG_ENABLED is set, optionally restricted to one vault address
and capped to the first N distinct vault addresses seen. Vaults admitted under
the cap keep logging for the lifetime of the process.

Emitting an event never raises.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

logger = logging.getLogger("aprcalc.debug")


@dataclass
class VaultAprDebugEvent:
    stage: str
    vault_address: str | None = None
    vault_name: str | None = None
    vault_symbol: str | None = None
    chain_id: int | None = None
    pool_type: str | None = None
    opportunity_type: str | None = None
    opportunity_identifier: str | None = None
    opportunities_total: int | None = None
    campaign_id: str | None = None
    campaigns_total: int | None = None
    apr_breakdowns_total: int | None = None
    reward_token_address: str | None = None
    reward_token_symbol: str | None = None
    apr_breakdown_matched: bool | None = None
    token_matched: bool | None = None
    apr_value: float | None = None
    accepted_campaigns: int | None = None
    blacklisted_campaigns: int | None = None
    blacklisted_campaign_ids: list[str] = field(default_factory=list)
    blacklisted_apr_breakdown_campaign_ids: list[str] = field(default_factory=list)
    total_vaults: int | None = None
    with_results: int | None = None
    fallback_count: int | None = None
    reason: str | None = None


# ============================================================================
# FORMATTING
# ============================================================================


def _short(address: str | None) -> str:
    if not address:
        return "unknown"
    if len(address) <= 12:
        return address
    return f"{address[:6]}...{address[-4:]}"


def _vault_label(event: VaultAprDebugEvent) -> str:
    short = _short(event.vault_address)
    return f"{event.vault_name} ({short})" if event.vault_name else short


def format_debug_event(event: VaultAprDebugEvent) -> str | None:
    """Render an event as a one-line message, or None to drop it."""
    label = _vault_label(event)
    stage = event.stage

    if stage == "vault_fetch":
        symbol = f" [{event.vault_symbol}]" if event.vault_symbol else ""
        total = event.total_vaults if event.total_vaults is not None else "?"
        return f"Vault fetched: {label}{symbol} (total vaults: {total})"
    if stage == "blacklist_filter":
        return (
            f"Blacklist removed {event.blacklisted_campaigns or 0} campaign(s) for {label}. "
            f"APR-linked removals: {len(event.blacklisted_apr_breakdown_campaign_ids)}"
        )
    if stage == "opportunity_fetch":
        kind = event.opportunity_type or event.pool_type or "unknown"
        return (
            f"Opportunity loaded for {label}: {kind} "
            f"with {event.campaigns_total or 0} campaign(s)"
        )
    if stage == "opportunity_lookup":
        pool_type = event.pool_type or "unknown"
        if event.reason == "opportunity_found":
            return (
                f"Opportunity found for {label} ({pool_type}): "
                f"{_short(event.opportunity_identifier)}"
            )
        return f"No opportunity found for {label} ({pool_type})"
    if stage == "campaign_scan":
        return (
            f"Scanning {event.campaigns_total or 0} campaign(s) and "
            f"{event.apr_breakdowns_total or 0} APR breakdown(s) for {label}"
        )
    if stage == "campaign_apr_match":
        if not event.apr_breakdown_matched:
            return None
        value = f" ({event.apr_value:.4f}%)" if event.apr_value is not None else ""
        return f"Campaign {event.campaign_id or 'unknown-campaign'} has APR breakdown{value}"
    if stage == "token_filter":
        verdict = "accepted" if event.token_matched else "filtered"
        return (
            f"   Token {event.reward_token_symbol or 'unknown'} "
            f"({_short(event.reward_token_address)}) {verdict}"
        )
    if stage == "result_summary":
        reason = event.reason
        if reason == "apr_calculated":
            return (
                f"Summary for {label}: {event.accepted_campaigns or 0} "
                "campaign(s) contributed APR"
            )
        if reason == "no_matching_campaigns_after_filters":
            return f"Summary for {label}: campaigns exist but none matched APR + token filters"
        if reason == "vault_results_aggregated":
            return (
                f"Vault aggregated for {label} with "
                f"{event.accepted_campaigns or 0} result entry(ies)"
            )
        if reason == "opportunity_missing":
            return f"Summary for {label}: no matching opportunity"
        if reason == "opportunity_has_no_campaigns":
            return f"Summary for {label}: opportunity has no campaigns"
        return f"Summary for {label}: {reason or 'completed'}"
    if stage == "fallback":
        return f"Fallback used for {label}: {event.reason or 'unknown_reason'}"
    return f"{stage}: {event.reason or 'event'}"


# ============================================================================
# SAMPLER
# ============================================================================


class AprDebugSampler:
    """Decides which vault addresses get debug output."""

    def __init__(
        self,
        enabled: bool = False,
        vault_address: str | None = None,
        sample_limit: int | None = None,
    ):
        self.enabled = enabled
        self.vault_address = vault_address.lower() if vault_address else None
        self.sample_limit = sample_limit
        self._sampled: set[str] = set()

    def _matches_vault_filter(self, vault_address: str | None) -> bool:
        if not self.vault_address:
            return True
        if not vault_address:
            return False
        return vault_address.lower() == self.vault_address

    def _within_sample_limit(self, vault_address: str | None) -> bool:
        if not self.sample_limit:
            return True
        if not vault_address:
            return False
        normalized = vault_address.lower()
        if normalized in self._sampled:
            return True
        if len(self._sampled) >= self.sample_limit:
            return False
        self._sampled.add(normalized)
        return True

    def should_log(self, vault_address: str | None) -> bool:
        if not self.enabled:
            return False
        return self._matches_vault_filter(vault_address) and self._within_sample_limit(
            vault_address
        )

    def log(self, event: VaultAprDebugEvent) -> None:
        try:
            if not self.should_log(event.vault_address):
                return
            message = format_debug_event(event)
            if message:
                logger.info("[apr-debug] %s", message)
        except Exception:
            logger.debug("apr debug event dropped", exc_info=True)

    def reset(self) -> None:
        self._sampled.clear()


_sampler = AprDebugSampler()


def configure_debug_sampler(
    enabled: bool,
    vault_address: str | None = None,
    sample_limit: int | None = None,
) -> AprDebugSampler:
    """Replace the process-wide sampler (called once at startup)."""
    global _sampler
    _sampler = AprDebugSampler(enabled, vault_address, sample_limit)
    return _sampler


def log_vault_apr_debug(event: VaultAprDebugEvent) -> None:
    _sampler.log(event)


def reset_debug_state() -> None:
    """Forget sampled vault addresses (test isolation)."""
    _sampler.reset()
