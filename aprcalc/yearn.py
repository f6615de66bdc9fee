"""
yDaemon vault listing for Katana.

GET {YDAEMON_BASE_URI}/vaults/katana with strategy details, in-queue strategies
only. Returns [] on failure (logged); the cache builder treats an empty list
as a hard error.
"""

from __future__ import annotations

import logging

import requests

from .config import DEFAULT_YDAEMON_URL, KATANA_CHAIN_ID
from .debug import VaultAprDebugEvent, log_vault_apr_debug
from .models import Strategy, Vault

logger = logging.getLogger(__name__)

# Strategy name markers for strategy-level reward programs
STEER_STRATEGY_MARKER = "Steer"
MORPHO_STRATEGY_MARKER = "Morpho"


class YDaemonClient:
    def __init__(
        self,
        api_url: str = DEFAULT_YDAEMON_URL,
        chain_id: int = KATANA_CHAIN_ID,
        timeout: float = 30.0,
    ):
        self.api_url = api_url.rstrip("/")
        self.chain_id = chain_id
        self.timeout = timeout

    def get_vaults(self, chain_id: int | None = None) -> list[Vault]:
        chain_id = chain_id or self.chain_id
        params = {
            "hideAlways": "true",
            "orderBy": "featuringScore",
            "orderDirection": "desc",
            "strategiesDetails": "withDetails",
            "strategiesCondition": "inQueue",
            "chainIDs": str(chain_id),
            "limit": "2500",
        }
        try:
            resp = requests.get(
                f"{self.api_url}/vaults/katana", params=params, timeout=self.timeout
            )
            resp.raise_for_status()
            payload = resp.json() or []
            vaults = [Vault.from_dict(v) for v in payload if isinstance(v, dict)]
        except (requests.RequestException, ValueError, TypeError) as e:
            logger.error("Error fetching vaults from yDaemon: %s", e)
            return []

        for vault in vaults:
            log_vault_apr_debug(
                VaultAprDebugEvent(
                    stage="vault_fetch",
                    vault_address=vault.address,
                    vault_name=vault.name,
                    vault_symbol=vault.symbol,
                    chain_id=chain_id,
                    total_vaults=len(vaults),
                    reason="fetched_from_ydaemon",
                )
            )
        return vaults


# ============================================================================
# STRATEGY SELECTION
# ============================================================================


def get_active_strategies(vault: Vault, name_contains: str | None = None) -> list[Strategy]:
    """Strategies with non-zero debt, optionally filtered by name substring."""
    return [
        s
        for s in vault.strategies
        if s.has_active_debt and (name_contains is None or name_contains in s.name)
    ]


def get_active_sushi_strategies(vault: Vault) -> list[str]:
    return [s.address for s in get_active_strategies(vault, STEER_STRATEGY_MARKER)]


def get_active_morpho_strategies(vault: Vault) -> list[str]:
    return [s.address for s in get_active_strategies(vault, MORPHO_STRATEGY_MARKER)]
