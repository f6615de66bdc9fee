"""
Merkl opportunities API client.

GET {MERKL_BASE_URI}/v4/opportunities: the response is either a bare list of
opportunities or {"opportunities": [...]}; both are normalized here so the rest
of the pipeline only sees list[Opportunity].

Each fetch:
    - drops opportunities with excluded identifier suffixes (e.g. JUMPER)
    - removes blacklisted campaigns (see blacklist.py)
    - returns [] on any HTTP / decoding failure (logged)

Programs (all on the configured chain, with campaigns=true):
    - sushi:        name=sushi
    - morpho:       name=morpho
    - yearn:        name=yearn
    - app rewards:  type=ERC20LOGPROCESSOR, status=LIVE
    - fixed rate:   type=ERC20_FIX_APR, status=LIVE
"""

from __future__ import annotations

import logging

import requests

from .blacklist import apply_campaign_blacklist, filter_excluded_identifiers
from .config import DEFAULT_MERKL_URL, KATANA_CHAIN_ID
from .debug import VaultAprDebugEvent, log_vault_apr_debug
from .matching import identifier_address
from .models import Opportunity

logger = logging.getLogger(__name__)


def normalize_opportunities(payload) -> list[dict]:
    """Accept a bare list or {"opportunities": [...]} and return the list."""
    if isinstance(payload, list):
        return [item for item in payload if isinstance(item, dict)]
    if isinstance(payload, dict):
        items = payload.get("opportunities") or []
        return [item for item in items if isinstance(item, dict)]
    return []


class MerklClient:
    """Thin wrapper over the Merkl v4 opportunities endpoint."""

    def __init__(
        self,
        api_url: str = DEFAULT_MERKL_URL,
        chain_id: int = KATANA_CHAIN_ID,
        timeout: float = 30.0,
    ):
        self.api_url = api_url.rstrip("/")
        self.chain_id = chain_id
        self.timeout = timeout

    def fetch_opportunities(self, label: str, **params) -> list[Opportunity]:
        """Fetch, normalize and filter one program's opportunities."""
        query = {"chainId": self.chain_id, "campaigns": "true", **params}
        try:
            resp = requests.get(
                f"{self.api_url}/v4/opportunities", params=query, timeout=self.timeout
            )
            resp.raise_for_status()
            raw = normalize_opportunities(resp.json())
        except (requests.RequestException, ValueError) as e:
            logger.error("Error fetching %s opportunities: %s", label, e)
            return []

        opportunities = []
        for item in raw:
            try:
                opportunities.append(Opportunity.from_dict(item))
            except (ValueError, TypeError) as e:
                logger.warning(
                    "Skipping malformed %s opportunity %s: %s", label, item.get("identifier"), e
                )

        opportunities = apply_campaign_blacklist(filter_excluded_identifiers(opportunities))
        for opp in opportunities:
            log_vault_apr_debug(
                VaultAprDebugEvent(
                    stage="opportunity_fetch",
                    vault_address=identifier_address(opp.identifier) or opp.identifier,
                    chain_id=self.chain_id,
                    opportunity_type=opp.type or label,
                    opportunity_identifier=opp.identifier,
                    campaigns_total=len(opp.campaigns),
                    reason="fetched_from_merkl",
                )
            )
        logger.info("Fetched %d %s opportunities", len(opportunities), label)
        return opportunities

    def get_sushi_opportunities(self) -> list[Opportunity]:
        return self.fetch_opportunities("sushi", name="sushi")

    def get_morpho_opportunities(self) -> list[Opportunity]:
        return self.fetch_opportunities("morpho", name="morpho")

    def get_yearn_opportunities(self) -> list[Opportunity]:
        return self.fetch_opportunities("yearn", name="yearn")

    def get_erc20_log_processor_opportunities(self) -> list[Opportunity]:
        return self.fetch_opportunities(
            "ERC20 log processor", status="LIVE", type="ERC20LOGPROCESSOR"
        )

    def get_erc20_fix_apr_opportunities(self) -> list[Opportunity]:
        return self.fetch_opportunities("ERC20 fixed APR", status="LIVE", type="ERC20_FIX_APR")
