"""Shared builders for Merkl / yDaemon payloads."""

import pytest
from aprcalc import debug
from aprcalc.models import Opportunity, Vault

VAULT_ADDRESS = "0x00000000000000000000000000000000000000aa"
KAT_ADDRESS = "0x00000000000000000000000000000000000000bb"
OTHER_TOKEN = "0x00000000000000000000000000000000000000cc"


def make_opportunity(
    identifier: str = VAULT_ADDRESS,
    campaigns: list[dict] | None = None,
    breakdowns: list[dict] | None = None,
    **extra,
) -> Opportunity:
    if campaigns is None:
        campaigns = [make_campaign("campaign-1")]
    if breakdowns is None:
        breakdowns = [{"identifier": "campaign-1", "value": 12.5}]
    raw = {
        "name": "Test Opportunity",
        "identifier": identifier,
        "campaigns": campaigns,
        "aprRecord": {"breakdowns": breakdowns},
        **extra,
    }
    return Opportunity.from_dict(raw)


def make_campaign(campaign_id: str, token: str = KAT_ADDRESS, symbol: str = "KAT") -> dict:
    return {
        "campaignId": campaign_id,
        "rewardToken": {"address": token, "symbol": symbol, "decimals": 18},
    }


def make_strategy(
    address: str,
    name: str = "Strategy",
    total_debt: str = "1000",
    debt_ratio: int = 10_000,
    status: str = "active",
) -> dict:
    return {
        "address": address,
        "name": name,
        "status": status,
        "details": {"totalDebt": total_debt, "debtRatio": debt_ratio},
    }


def make_vault(
    address: str = VAULT_ADDRESS,
    symbol: str = "TST",
    name: str = "Test Vault",
    strategies: list[dict] | None = None,
    apr: dict | None = None,
) -> Vault:
    raw = {
        "address": address,
        "symbol": symbol,
        "name": name,
        "chainID": 747474,
        "strategies": strategies or [],
    }
    if apr is not None:
        raw["apr"] = apr
    return Vault.from_dict(raw)


@pytest.fixture(autouse=True)
def _debug_sampler_off():
    """Every test starts with a disabled, empty debug sampler."""
    debug.configure_debug_sampler(False)
    yield
    debug.configure_debug_sampler(False)


@pytest.fixture
def debug_events(monkeypatch):
    """Capture every debug event emitted through log_vault_apr_debug."""
    events = []

    def capture(event):
        events.append(event)

    for module in (
        "aprcalc.extractor",
        "aprcalc.blacklist",
        "aprcalc.merkl",
        "aprcalc.yearn",
        "aprcalc.cache",
    ):
        monkeypatch.setattr(f"{module}.log_vault_apr_debug", capture)
    return events
