"""Steer points per dollar deposited, per vault."""

from __future__ import annotations

import numpy as np

from .config import STEER_REWARD_RATES
from .models import Vault


class SteerPointsCalculator:
    def __init__(self, rates: dict[str, float] | None = None):
        rates = STEER_REWARD_RATES if rates is None else rates
        # lowercased key -> rate, positive rates only, insertion order kept
        self.positive_rates = {
            key.lower(): float(rate) for key, rate in rates.items() if rate > 0
        }

    def _match_rate(self, strategy_name: str) -> float | None:
        name = strategy_name.lower()
        for key, rate in self.positive_rates.items():
            if key in name:
                return rate
        return None

    def calculate_for_vault(self, vault: Vault) -> float:
        """
        Sum rate * clamp(debtRatio / 10000) over strategies whose name contains
        a positive-rate key (first match wins) and that hold debt.
        """
        rates = []
        weights = []
        for strategy in vault.strategies:
            rate = self._match_rate(strategy.name)
            if rate is None or not strategy.has_active_debt:
                continue
            rates.append(rate)
            weights.append(strategy.debt_ratio / 10_000)

        if not rates:
            return 0.0
        return float(np.dot(rates, np.clip(weights, 0.0, 1.0)))
