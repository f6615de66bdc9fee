"""
APR data cache: build the per-vault records and keep them in memory.

AprDataBuilder runs one full pass:

    vault list (yDaemon)
      -> every reward program concurrently (asyncio.gather)
      -> per-vault aggregation (one bad vault never fails the pass)

AprDataCache wraps the builder with:
    - TTL (APR_CACHE_TTL_SECONDS)
    - in-flight dedup: concurrent callers await the same rebuild
    - stale fallback: a failed rebuild serves the previous data, flagged stale

The data mapping is replaced wholesale after each successful rebuild.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Callable, Sequence

from .aggregator import VaultAggregator, fallback_record
from .calculators import (
    AprCalculator,
    FixedRateAprCalculator,
    MorphoAprCalculator,
    SushiAprCalculator,
    YearnAprCalculator,
)
from .config import Settings
from .contracts import ContractReader
from .debug import VaultAprDebugEvent, log_vault_apr_debug
from .errors import VaultListUnavailableError
from .merkl import MerklClient
from .models import RewardResult, Vault, VaultRecord
from .points import SteerPointsCalculator
from .yearn import YDaemonClient

logger = logging.getLogger(__name__)

AprDataMap = dict[str, VaultRecord]


def find_vault_record(data: AprDataMap, address: str) -> VaultRecord | None:
    """Exact key, then lowercased key, then a case-insensitive scan."""
    if address in data:
        return data[address]
    lowered = address.lower()
    if lowered in data:
        return data[lowered]
    for key, record in data.items():
        if key.lower() == lowered:
            return record
    return None


def serialize_apr_data(data: AprDataMap) -> dict[str, dict]:
    return {address: record.to_dict() for address, record in data.items()}


# ============================================================================
# BUILDER
# ============================================================================


class AprDataBuilder:
    def __init__(
        self,
        ydaemon: YDaemonClient,
        calculators: Sequence[AprCalculator],
        aggregator: VaultAggregator,
        chain_id: int | None = None,
    ):
        self.ydaemon = ydaemon
        self.calculators = list(calculators)
        self.aggregator = aggregator
        self.chain_id = chain_id or ydaemon.chain_id

    @classmethod
    def from_settings(cls, settings: Settings) -> AprDataBuilder:
        ydaemon = YDaemonClient(settings.yearn_api_url, settings.chain_id, settings.http_timeout)
        merkl = MerklClient(settings.merkl_api_url, settings.chain_id, settings.http_timeout)
        tables = settings.tables

        calculators: list[AprCalculator] = [
            YearnAprCalculator(merkl, tables),
            FixedRateAprCalculator(merkl, tables),
        ]
        if settings.rpc_url:
            reader = ContractReader(
                settings.rpc_url, settings.multicall_address, settings.http_timeout
            )
            calculators += [
                SushiAprCalculator(merkl, reader, tables),
                MorphoAprCalculator(merkl, reader, tables),
            ]
        else:
            logger.warning("RPC_URL_KATANA not set; Sushi and Morpho rewards are skipped")

        aggregator = VaultAggregator(tables, SteerPointsCalculator(tables.steer_reward_rates))
        return cls(ydaemon, calculators, aggregator, settings.chain_id)

    async def _run_calculators(self, vaults: list[Vault]) -> list[dict[str, list[RewardResult]]]:
        outputs = await asyncio.gather(
            *(calc.calculate_vault_aprs(vaults) for calc in self.calculators),
            return_exceptions=True,
        )
        program_results = []
        for calc, output in zip(self.calculators, outputs):
            if isinstance(output, BaseException):
                logger.error(
                    "%s calculator failed: %s", calc.pool_type, output, exc_info=output
                )
                program_results.append({})
            else:
                program_results.append(output)
        return program_results

    def _vault_record(
        self, vault: Vault, program_results: list[dict[str, list[RewardResult]]]
    ) -> tuple[VaultRecord, bool]:
        """(record, used_fallback) for one vault."""
        results: list[RewardResult] = []
        for by_vault in program_results:
            results.extend(by_vault.get(vault.address) or [])

        if not results:
            log_vault_apr_debug(
                VaultAprDebugEvent(
                    stage="fallback",
                    vault_address=vault.address,
                    vault_name=vault.name,
                    vault_symbol=vault.symbol,
                    reason="empty_results_after_calculation",
                )
            )
            return fallback_record(vault), True

        try:
            record = self.aggregator.aggregate(vault, results)
        except Exception as e:
            logger.error("Error processing vault %s: %s", vault.address, e, exc_info=True)
            log_vault_apr_debug(
                VaultAprDebugEvent(
                    stage="fallback",
                    vault_address=vault.address,
                    vault_name=vault.name,
                    vault_symbol=vault.symbol,
                    reason="aggregation_error",
                )
            )
            return fallback_record(vault), True

        log_vault_apr_debug(
            VaultAprDebugEvent(
                stage="result_summary",
                vault_address=vault.address,
                vault_name=vault.name,
                vault_symbol=vault.symbol,
                accepted_campaigns=len(results),
                reason="vault_results_aggregated",
            )
        )
        return record, False

    async def generate_vault_apr_data(self) -> AprDataMap:
        """
        One full rebuild.

        Raises:
            VaultListUnavailableError: yDaemon returned no vaults
        """
        vaults = await asyncio.to_thread(self.ydaemon.get_vaults, self.chain_id)
        if not vaults:
            raise VaultListUnavailableError("No vaults returned by yDaemon")

        program_results = await self._run_calculators(vaults)

        data: AprDataMap = {}
        fallback_count = 0
        for vault in vaults:
            record, used_fallback = self._vault_record(vault, program_results)
            data[vault.address] = record
            fallback_count += used_fallback

        logger.info(
            "Generated APR data for %d vaults (%d with results, %d fallback)",
            len(data),
            len(data) - fallback_count,
            fallback_count,
        )
        return data


# ============================================================================
# CACHE
# ============================================================================


@dataclass(frozen=True)
class CacheSnapshot:
    data: AprDataMap
    refreshed_at: float
    stale: bool = False
    error: str | None = None


class AprDataCache:
    """TTL cache over AprDataBuilder with shared in-flight rebuilds."""

    def __init__(
        self,
        builder: AprDataBuilder,
        ttl_seconds: float = 900.0,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.builder = builder
        self.ttl_seconds = ttl_seconds
        self.clock = clock
        self._snapshot: CacheSnapshot | None = None
        self._inflight: asyncio.Task | None = None
        self._lock = asyncio.Lock()

    def _is_fresh(self) -> bool:
        if self._snapshot is None:
            return False
        return self.clock() - self._snapshot.refreshed_at < self.ttl_seconds

    async def get(self) -> CacheSnapshot:
        """Cached data while fresh, otherwise a (shared) rebuild."""
        if self._is_fresh():
            return self._snapshot
        return await self._refresh()

    async def force_refresh(self) -> CacheSnapshot:
        """Rebuild regardless of TTL (joins a rebuild already running)."""
        return await self._refresh()

    def invalidate(self) -> None:
        self._snapshot = None

    async def _refresh(self) -> CacheSnapshot:
        async with self._lock:
            if self._inflight is None:
                self._inflight = asyncio.ensure_future(self._rebuild())
            task = self._inflight
        # cancelling one caller leaves the shared rebuild running
        return await asyncio.shield(task)

    async def _rebuild(self) -> CacheSnapshot:
        try:
            data = await self.builder.generate_vault_apr_data()
        except Exception as e:
            if self._snapshot is None:
                logger.error("APR data rebuild failed with no cached data: %s", e)
                raise
            logger.error("APR data rebuild failed, serving stale data: %s", e)
            return CacheSnapshot(
                data=self._snapshot.data,
                refreshed_at=self._snapshot.refreshed_at,
                stale=True,
                error=str(e),
            )
        finally:
            self._inflight = None

        self._snapshot = CacheSnapshot(data=data, refreshed_at=self.clock())
        return self._snapshot
