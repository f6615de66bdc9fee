"""
On-chain reads for strategy-level reward programs, batched through Multicall3.

Strategies only know their own address; the Merkl opportunity is keyed by the
pool (Sushi/Steer) or lending vault (Morpho) they deposit into. Resolving those
addresses takes one aggregate3 call per hop:

    Sushi:   strategy.STEER_LP() -> steerLp.pool()
    Morpho:  strategy.vault()

aggregate3 is called with allowFailure=true, so a single reverting strategy is
skipped instead of failing the batch. A transport/RPC failure of the whole
batch raises RpcError.

Returned maps are keyed by lowercased strategy address.
"""

from __future__ import annotations

import logging
from typing import Sequence

import requests

from .config import MULTICALL3_ADDRESS
from .errors import RpcError

logger = logging.getLogger(__name__)

# Function selectors
AGGREGATE3_SEL = "0x82ad56cb"  # aggregate3((address,bool,bytes)[])
STEER_LP_SEL = "0xa1bac550"  # STEER_LP()
POOL_SEL = "0x16f0115b"  # pool()
VAULT_SEL = "0xfbfa77cf"  # vault()

ZERO_ADDRESS = "0x" + "0" * 40
_WORD = 32


# ============================================================================
# ABI ENCODING
# ============================================================================


def _word(value: int) -> bytes:
    return value.to_bytes(_WORD, "big")


def _pad_right(data: bytes) -> bytes:
    remainder = len(data) % _WORD
    return data + b"\x00" * ((_WORD - remainder) % _WORD)


def _encode_address_word(addr: str) -> bytes:
    h = addr[2:] if addr.startswith("0x") else addr
    return bytes.fromhex(h.rjust(64, "0"))


def _hex_to_bytes(hex_str: str) -> bytes:
    h = hex_str[2:] if hex_str.startswith("0x") else hex_str
    return bytes.fromhex(h)


def encode_aggregate3(calls: Sequence[tuple[str, str]], allow_failure: bool = True) -> str:
    """
    Calldata for aggregate3 given (target, calldata_hex) pairs.

    Layout: selector | offset(array) | len | element offsets | elements, where
    each element is (address, bool, offset(bytes), len, padded bytes).
    """
    elements = []
    for target, data in calls:
        payload = _hex_to_bytes(data)
        elements.append(
            _encode_address_word(target)
            + _word(1 if allow_failure else 0)
            + _word(3 * _WORD)
            + _word(len(payload))
            + _pad_right(payload)
        )

    offsets = []
    cursor = len(elements) * _WORD
    for element in elements:
        offsets.append(_word(cursor))
        cursor += len(element)

    body = _word(_WORD) + _word(len(elements)) + b"".join(offsets) + b"".join(elements)
    return AGGREGATE3_SEL + body.hex()


def _read_word(data: bytes, offset: int) -> int:
    if offset + _WORD > len(data):
        raise ValueError("ABI data too short")
    return int.from_bytes(data[offset : offset + _WORD], "big")


def decode_aggregate3(hex_str: str) -> list[tuple[bool, bytes]]:
    """Decode the (bool success, bytes returnData)[] result of aggregate3."""
    data = _hex_to_bytes(hex_str)
    if not data:
        return []
    array_start = _read_word(data, 0)
    count = _read_word(data, array_start)
    elements_start = array_start + _WORD

    results = []
    for i in range(count):
        tuple_start = elements_start + _read_word(data, elements_start + i * _WORD)
        success = _read_word(data, tuple_start) != 0
        bytes_start = tuple_start + _read_word(data, tuple_start + _WORD)
        length = _read_word(data, bytes_start)
        return_data = data[bytes_start + _WORD : bytes_start + _WORD + length]
        results.append((success, return_data))
    return results


def decode_address(return_data: bytes) -> str | None:
    """Address from a 32-byte return word; None for short data or zero address."""
    if len(return_data) < _WORD:
        return None
    addr = "0x" + return_data[_WORD - 20 : _WORD].hex()
    return None if addr == ZERO_ADDRESS else addr


# ============================================================================
# READER
# ============================================================================


class ContractReader:
    """Batched eth_call reads against one RPC endpoint."""

    def __init__(
        self,
        rpc_url: str,
        multicall_address: str = MULTICALL3_ADDRESS,
        timeout: float = 30.0,
    ):
        self.rpc_url = rpc_url
        self.multicall_address = multicall_address
        self.timeout = timeout

    def _eth_call(self, to: str, data: str) -> str:
        """Raw eth_call, returns hex result."""
        try:
            resp = requests.post(
                self.rpc_url,
                json={
                    "jsonrpc": "2.0",
                    "method": "eth_call",
                    "params": [{"to": to, "data": data}, "latest"],
                    "id": 1,
                },
                timeout=self.timeout,
            )
            resp.raise_for_status()
            result = resp.json()
        except (requests.RequestException, ValueError) as e:
            raise RpcError(f"eth_call to {to} failed: {e}") from e
        if "error" in result:
            raise RpcError(f"eth_call error: {result['error']}")
        return result.get("result") or "0x"

    def multicall(self, calls: Sequence[tuple[str, str]]) -> list[tuple[bool, bytes]]:
        """aggregate3 with allowFailure=true; one (success, data) per call."""
        if not calls:
            return []
        raw = self._eth_call(self.multicall_address, encode_aggregate3(calls))
        try:
            results = decode_aggregate3(raw)
        except ValueError as e:
            raise RpcError(f"Malformed aggregate3 response: {e}") from e
        if len(results) != len(calls):
            raise RpcError(
                f"aggregate3 returned {len(results)} results for {len(calls)} calls"
            )
        return results

    def read_addresses(self, targets: Sequence[str], selector: str) -> dict[str, str]:
        """Call an address-returning getter on every target; failures are skipped."""
        results = self.multicall([(target, selector) for target in targets])
        out: dict[str, str] = {}
        for target, (success, return_data) in zip(targets, results):
            if not success:
                logger.debug("Call %s on %s reverted, skipping", selector, target)
                continue
            addr = decode_address(return_data)
            if addr is not None:
                out[target.lower()] = addr
        return out

    def get_sushi_pools_from_strategies(self, strategy_addresses: Sequence[str]) -> dict[str, str]:
        """strategy -> Sushi pool address, via STEER_LP() then pool()."""
        if not strategy_addresses:
            return {}
        steer_lps = self.read_addresses(strategy_addresses, STEER_LP_SEL)
        if not steer_lps:
            return {}

        lp_addresses = list(dict.fromkeys(steer_lps.values()))
        pools_by_lp = self.read_addresses(lp_addresses, POOL_SEL)

        pools: dict[str, str] = {}
        for strategy, lp in steer_lps.items():
            pool = pools_by_lp.get(lp.lower())
            if pool:
                pools[strategy] = pool
        logger.info("Resolved %d/%d Sushi pools", len(pools), len(strategy_addresses))
        return pools

    def get_morpho_vaults_from_strategies(
        self, strategy_addresses: Sequence[str]
    ) -> dict[str, str]:
        """strategy -> Morpho vault address, via vault()."""
        if not strategy_addresses:
            return {}
        vaults = self.read_addresses(strategy_addresses, VAULT_SEL)
        logger.info("Resolved %d/%d Morpho vaults", len(vaults), len(strategy_addresses))
        return vaults
