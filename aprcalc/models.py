"""
Data model for vaults, strategies, Merkl opportunities and reward results.

Parsing happens once at the collaborator boundary (`from_dict`); the core only
sees these dataclasses. `to_dict` emits the camelCase JSON shape the HTTP API
has always served (yDaemon field names for vaults, Merkl names for tokens).

Unit conventions:
- TokenBreakdown.apr: PERCENTAGE POINTS as reported by Merkl (12.5 = 12.5%)
- VaultApr.extra values: DECIMAL (0.125 = 12.5%), divided by 100 exactly once
  in the aggregator
- Strategy.debt_ratio: basis points (10000 = 100%)
"""

from __future__ import annotations

from copy import deepcopy
from dataclasses import dataclass, field, replace
from typing import Any

import numpy as np

# ============================================================================
# MERKL
# ============================================================================


def is_number(value: Any) -> bool:
    """True for int/float values; bools are not APR values."""
    return isinstance(value, (int, float)) and not isinstance(value, bool)


@dataclass(frozen=True)
class RewardToken:
    address: str
    symbol: str
    decimals: int

    @classmethod
    def from_dict(cls, raw: dict | None) -> RewardToken:
        raw = raw or {}
        return cls(
            address=str(raw.get("address") or ""),
            symbol=str(raw.get("symbol") or ""),
            decimals=int(raw.get("decimals") or 0),
        )

    def to_dict(self) -> dict:
        return {"address": self.address, "symbol": self.symbol, "decimals": self.decimals}


EMPTY_TOKEN = RewardToken(address="", symbol="", decimals=0)


@dataclass(frozen=True)
class Campaign:
    """One Merkl campaign attached to an opportunity."""

    campaign_id: str | None
    reward_token: RewardToken
    amount: str | None = None
    start_timestamp: int | None = None
    end_timestamp: int | None = None

    @classmethod
    def from_dict(cls, raw: dict) -> Campaign:
        campaign_id = raw.get("campaignId")
        return cls(
            campaign_id=str(campaign_id) if campaign_id is not None else None,
            reward_token=RewardToken.from_dict(raw.get("rewardToken")),
            amount=raw.get("amount"),
            start_timestamp=raw.get("startTimestamp"),
            end_timestamp=raw.get("endTimestamp"),
        )


@dataclass(frozen=True)
class AprBreakdownEntry:
    """aprRecord.breakdowns[] entry; `value` is kept raw and checked on use."""

    identifier: str | None
    value: Any

    @classmethod
    def from_dict(cls, raw: dict) -> AprBreakdownEntry:
        identifier = raw.get("identifier")
        return cls(
            identifier=str(identifier) if identifier is not None else None,
            value=raw.get("value"),
        )

    def matches_campaign(self, campaign_id: str | None) -> bool:
        if not self.identifier:
            return False
        return self.identifier.lower() == str(campaign_id).lower()


@dataclass(frozen=True)
class Opportunity:
    """A Merkl opportunity: identifier + live campaigns + APR breakdowns."""

    identifier: str
    name: str = ""
    campaigns: tuple[Campaign, ...] = ()
    breakdowns: tuple[AprBreakdownEntry, ...] = ()
    chain_id: int | None = None
    status: str | None = None
    type: str | None = None

    @classmethod
    def from_dict(cls, raw: dict) -> Opportunity:
        apr_record = raw.get("aprRecord") or {}
        breakdowns = apr_record.get("breakdowns")
        if not isinstance(breakdowns, list):
            breakdowns = []
        return cls(
            identifier=str(raw.get("identifier") or ""),
            name=str(raw.get("name") or ""),
            campaigns=tuple(Campaign.from_dict(c) for c in raw.get("campaigns") or []),
            breakdowns=tuple(
                AprBreakdownEntry.from_dict(b) for b in breakdowns if isinstance(b, dict)
            ),
            chain_id=raw.get("chainId"),
            status=raw.get("status"),
            type=raw.get("type"),
        )

    def find_breakdown(self, campaign_id: str | None) -> AprBreakdownEntry | None:
        for entry in self.breakdowns:
            if entry.matches_campaign(campaign_id):
                return entry
        return None

    def with_campaigns(self, campaigns: tuple[Campaign, ...]) -> Opportunity:
        return replace(self, campaigns=tuple(campaigns))


# ============================================================================
# YEARN
# ============================================================================


@dataclass
class Strategy:
    """A vault strategy as listed by yDaemon (withDetails)."""

    address: str
    name: str = ""
    status: str | None = None
    details: dict = field(default_factory=dict)
    reward_token: dict | None = None
    underlying_contract: str | None = None
    raw: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: dict) -> Strategy:
        return cls(
            address=str(raw.get("address") or ""),
            name=str(raw.get("name") or ""),
            status=raw.get("status"),
            details=dict(raw.get("details") or {}),
            reward_token=raw.get("rewardToken"),
            underlying_contract=raw.get("underlyingContract"),
            raw=dict(raw),
        )

    @property
    def total_debt(self) -> float:
        raw = self.details.get("totalDebt")
        if raw in (None, "", "0", "0x0"):
            return 0.0
        try:
            if isinstance(raw, str) and raw.startswith("0x"):
                return float(int(raw, 16))
            return float(raw)
        except (TypeError, ValueError):
            return 0.0

    @property
    def has_active_debt(self) -> bool:
        return self.total_debt > 0

    @property
    def debt_ratio(self) -> float:
        """Raw debt ratio in basis points (0 when missing)."""
        raw = self.details.get("debtRatio")
        try:
            return float(raw) if raw is not None else 0.0
        except (TypeError, ValueError):
            return 0.0

    @property
    def debt_fraction(self) -> float:
        """Debt ratio as a fraction, clamped to [0, 1]."""
        return float(np.clip(self.debt_ratio / 10_000, 0.0, 1.0))

    @property
    def is_active(self) -> bool:
        return bool(self.address) and (self.status or "").lower() == "active"

    def to_dict(self) -> dict:
        out = deepcopy(self.raw)
        out.update(
            {
                "address": self.address,
                "name": self.name,
                "details": deepcopy(self.details),
            }
        )
        if self.status is not None:
            out["status"] = self.status
        if self.reward_token is not None:
            out["rewardToken"] = deepcopy(self.reward_token)
        if self.underlying_contract is not None:
            out["underlyingContract"] = self.underlying_contract
        return out


@dataclass
class VaultApr:
    """`apr` block of a vault: base netAPR plus named extra components."""

    net_apr: float | None = None
    extra: dict[str, float] = field(default_factory=dict)
    raw: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: dict | None) -> VaultApr | None:
        if raw is None:
            return None
        net_apr = raw.get("netAPR")
        return cls(
            net_apr=float(net_apr) if is_number(net_apr) else None,
            extra={k: v for k, v in (raw.get("extra") or {}).items() if is_number(v)},
            raw=dict(raw),
        )

    def to_dict(self) -> dict:
        out = deepcopy(self.raw)
        if self.net_apr is not None:
            out["netAPR"] = self.net_apr
        out["extra"] = dict(self.extra)
        return out


@dataclass
class Vault:
    """A Yearn vault on Katana."""

    address: str
    symbol: str = ""
    name: str = ""
    chain_id: int | None = None
    strategies: list[Strategy] = field(default_factory=list)
    apr: VaultApr | None = None
    tvl: dict | None = None
    token: dict | None = None

    @classmethod
    def from_dict(cls, raw: dict) -> Vault:
        chain_id = raw.get("chainID", raw.get("chainId"))
        return cls(
            address=str(raw.get("address") or ""),
            symbol=str(raw.get("symbol") or ""),
            name=str(raw.get("name") or ""),
            chain_id=int(chain_id) if chain_id is not None else None,
            strategies=[Strategy.from_dict(s) for s in raw.get("strategies") or []],
            apr=VaultApr.from_dict(raw.get("apr")),
            tvl=raw.get("tvl"),
            token=raw.get("token"),
        )

    @property
    def apr_extra(self) -> dict[str, float]:
        return dict(self.apr.extra) if self.apr else {}

    def to_dict(self) -> dict:
        out: dict[str, Any] = {
            "address": self.address,
            "symbol": self.symbol,
            "name": self.name,
            "chainID": self.chain_id,
            "strategies": [s.to_dict() for s in self.strategies],
        }
        if self.token is not None:
            out["token"] = deepcopy(self.token)
        if self.tvl is not None:
            out["tvl"] = deepcopy(self.tvl)
        if self.apr is not None:
            out["apr"] = self.apr.to_dict()
        return out


@dataclass(frozen=True)
class FallbackVaultRecord:
    """Zero-valued record served for vaults without any reward results."""

    name: str
    apr: float = 0.0
    pools: list[str] | None = None
    breakdown: tuple = ()

    @property
    def apr_extra(self) -> dict[str, float]:
        return {}

    def to_dict(self) -> dict:
        return {
            "name": self.name,
            "apr": self.apr,
            "pools": self.pools,
            "breakdown": list(self.breakdown),
        }


VaultRecord = Vault | FallbackVaultRecord


# ============================================================================
# REWARD RESULTS
# ============================================================================


@dataclass(frozen=True)
class TokenBreakdown:
    apr: float  # percentage points
    token: RewardToken
    weight: float = 0

    def to_dict(self) -> dict:
        return {"apr": self.apr, "token": self.token.to_dict(), "weight": self.weight}


ZERO_BREAKDOWN = TokenBreakdown(apr=0, token=EMPTY_TOKEN, weight=0)


@dataclass(frozen=True)
class StrategyRewardResult:
    """Reward APR earned by one strategy through its underlying pool."""

    strategy_address: str
    pool_address: str
    pool_type: str
    breakdown: TokenBreakdown

    @property
    def address(self) -> str:
        return self.strategy_address

    def combine_key(self) -> tuple:
        token = self.breakdown.token
        return (
            self.strategy_address,
            self.pool_type,
            token.address,
            token.symbol,
            token.decimals,
            self.breakdown.weight,
            self.pool_address,
        )

    def with_apr(self, apr: float) -> StrategyRewardResult:
        return replace(self, breakdown=replace(self.breakdown, apr=apr))

    def to_dict(self) -> dict:
        return {
            "strategyAddress": self.strategy_address,
            "poolAddress": self.pool_address,
            "poolType": self.pool_type,
            "breakdown": self.breakdown.to_dict(),
        }


@dataclass(frozen=True)
class VaultRewardResult:
    """Reward APR forwarded directly to a vault."""

    vault_name: str
    vault_address: str
    pool_type: str
    breakdown: TokenBreakdown

    @property
    def address(self) -> str:
        return self.vault_address

    def combine_key(self) -> tuple:
        token = self.breakdown.token
        return (
            self.vault_address,
            self.pool_type,
            token.address,
            token.symbol,
            token.decimals,
            self.breakdown.weight,
            "",
        )

    def with_apr(self, apr: float) -> VaultRewardResult:
        return replace(self, breakdown=replace(self.breakdown, apr=apr))

    def to_dict(self) -> dict:
        return {
            "vaultName": self.vault_name,
            "vaultAddress": self.vault_address,
            "poolType": self.pool_type,
            "breakdown": self.breakdown.to_dict(),
        }


RewardResult = StrategyRewardResult | VaultRewardResult
