"""
Quick-APY table: every vault's APR components side by side.

Works on the serialized /api/vaults payload (dict keyed by address, or a list
of records), so the dashboard can read it from a running server or a saved
JSON file. Values stay decimal (0.05 = 5%); formatting is left to the caller.
"""

from __future__ import annotations

import pandas as pd

REPORT_COMPONENTS = [
    "katanaAppRewardsAPR",
    "fixedRateKatanaRewards",
    "katanaBonusAPY",
    "extrinsicYield",
    "katanaNativeYield",
]

REPORT_COLUMNS = (
    ["address", "name", "netAPR"]
    + REPORT_COMPONENTS
    + ["katanaRewardsAPR", "steerPointsPerDollar", "totalAPR"]
)


def _number(value) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    return float(value)


def _records(payload) -> list[dict]:
    if isinstance(payload, dict):
        vaults = payload.get("vaults")
        if isinstance(vaults, list):
            return [v for v in vaults if isinstance(v, dict)]
        return [
            {"address": address, **record}
            for address, record in payload.items()
            if isinstance(record, dict)
        ]
    if isinstance(payload, list):
        return [v for v in payload if isinstance(v, dict)]
    return []


def build_quick_apy_table(payload) -> pd.DataFrame:
    """
    One row per vault with netAPR, each component and totalAPR.

    totalAPR = netAPR + sum(REPORT_COMPONENTS). The legacy katanaRewardsAPR and
    steerPointsPerDollar are shown but not summed. Fallback records (no apr
    block) contribute zeros.
    """
    rows = []
    for record in _records(payload):
        apr = record.get("apr") if isinstance(record.get("apr"), dict) else {}
        extra = apr.get("extra") or {}
        row = {
            "address": record.get("address", ""),
            "name": record.get("name", ""),
            "netAPR": _number(apr.get("netAPR")),
        }
        for component in REPORT_COMPONENTS + ["katanaRewardsAPR", "steerPointsPerDollar"]:
            row[component] = _number(extra.get(component))
        rows.append(row)

    df = pd.DataFrame(rows, columns=REPORT_COLUMNS[:-1])
    df["totalAPR"] = df[["netAPR"] + REPORT_COMPONENTS].sum(axis=1)
    return df.sort_values("totalAPR", ascending=False).reset_index(drop=True)


def format_percentages(df: pd.DataFrame) -> pd.DataFrame:
    """Copy of the table with rate columns as '12.34' percentage strings."""
    out = df.copy()
    rate_columns = ["netAPR"] + REPORT_COMPONENTS + ["katanaRewardsAPR", "totalAPR"]
    for col in rate_columns:
        out[col] = (out[col] * 100).map(lambda v: f"{v:.2f}")
    return out
