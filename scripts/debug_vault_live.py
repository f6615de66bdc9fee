"""
Live app-rewards diagnosis for Katana vaults.

Fetches the yDaemon vault list and the ERC20 log processor opportunities, then
prints (as JSON) why each selected vault does or does not receive APR.

Usage:
    python scripts/debug_vault_live.py --vault 0x93Fec6639717b6215A48E5a72a162C50DCC40d68
    python scripts/debug_vault_live.py --all --limit 100
"""

from __future__ import annotations

import argparse
import json
import sys
from concurrent.futures import ThreadPoolExecutor

from aprcalc.config import POOL_TYPE_YEARN, load_settings
from aprcalc.diagnose import diagnose_vault, summarize
from aprcalc.matching import is_address
from aprcalc.merkl import MerklClient
from aprcalc.yearn import YDaemonClient


def positive_int(value: str) -> int:
    parsed = int(value)
    if parsed < 1:
        raise argparse.ArgumentTypeError("--limit must be a positive integer")
    return parsed


def run(vault_address: str | None, limit: int) -> dict:
    settings = load_settings()
    ydaemon = YDaemonClient(settings.yearn_api_url, settings.chain_id, settings.http_timeout)
    merkl = MerklClient(settings.merkl_api_url, settings.chain_id, settings.http_timeout)

    with ThreadPoolExecutor(max_workers=2) as pool:
        vaults_future = pool.submit(ydaemon.get_vaults)
        opps_future = pool.submit(merkl.get_erc20_log_processor_opportunities)
        vaults = vaults_future.result()
        opportunities = opps_future.result()

    if vault_address:
        selected = [v for v in vaults if v.address.lower() == vault_address.lower()]
    else:
        selected = vaults[:limit]

    if not selected:
        return {
            "chainId": settings.chain_id,
            "selectedVaults": 0,
            "message": (
                "No vault matched the provided address in yDaemon response"
                if vault_address
                else "No vaults selected"
            ),
        }

    allowed = settings.tables.allowed_reward_tokens(POOL_TYPE_YEARN)
    diagnoses = [diagnose_vault(v, opportunities, allowed) for v in selected]
    return {
        "chainId": settings.chain_id,
        "yearnVaultCount": len(vaults),
        "merklOpportunityCount": len(opportunities),
        "selectedVaults": len(selected),
        "summary": summarize(diagnoses),
        "results": [d.to_dict() for d in diagnoses],
    }


def main():
    parser = argparse.ArgumentParser(description="Diagnose app-rewards APR for Katana vaults")
    parser.add_argument("--vault", default=None, help="Single vault address to inspect")
    parser.add_argument(
        "--all",
        action="store_true",
        help="Inspect the first --limit vaults (default when --vault is not given)",
    )
    parser.add_argument("--limit", type=positive_int, default=25)
    args = parser.parse_args()

    if args.vault and not is_address(args.vault):
        parser.error(f"Invalid vault address: {args.vault}")

    try:
        report = run(args.vault, args.limit)
    except Exception as e:
        print(json.dumps({"message": "Vault debug run failed", "error": str(e)}, indent=2))
        sys.exit(1)
    print(json.dumps(report, indent=2))


if __name__ == "__main__":
    main()
