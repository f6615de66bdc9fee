"""
Quick APYs dashboard.

Breakdown of every APR component per Katana vault, read from a running APR
service (/api/vaults) or a saved JSON snapshot of it.

Usage:
    streamlit run dashboard/app.py
    APR_SERVICE_URL=http://localhost:3000 streamlit run dashboard/app.py
"""

from __future__ import annotations

import json
import os
from pathlib import Path

import pandas as pd
import requests
import streamlit as st
from dotenv import load_dotenv

from aprcalc.report import REPORT_COMPONENTS, build_quick_apy_table

load_dotenv()

# ============================================================================
# PAGE CONFIG
# ============================================================================

st.set_page_config(
    page_title="Katana Vaults - Quick APYs",
    page_icon="📈",
    layout="wide",
)

DEFAULT_SERVICE_URL = os.environ.get("APR_SERVICE_URL", "http://localhost:3000")

COLUMN_LABELS = {
    "name": "Vault",
    "netAPR": "Net APR (%)",
    "katanaAppRewardsAPR": "App Rewards (%)",
    "fixedRateKatanaRewards": "Fixed Rate (%)",
    "katanaBonusAPY": "Bonus APY (%)",
    "extrinsicYield": "Extrinsic (%)",
    "katanaNativeYield": "Native Yield (%)",
    "katanaRewardsAPR": "Legacy Rewards (%)",
    "steerPointsPerDollar": "Steer pts/$",
    "totalAPR": "Total APR (%)",
}


# ============================================================================
# DATA LOADING
# ============================================================================


@st.cache_data(ttl=300)
def fetch_vaults(service_url: str) -> dict:
    resp = requests.get(f"{service_url.rstrip('/')}/api/vaults", timeout=120)
    resp.raise_for_status()
    return resp.json()


@st.cache_data
def load_snapshot(path: str) -> dict:
    with open(path) as f:
        return json.load(f)


def to_display(df: pd.DataFrame) -> pd.DataFrame:
    out = df.drop(columns=["address"]).copy()
    pct_columns = ["netAPR"] + REPORT_COMPONENTS + ["katanaRewardsAPR", "totalAPR"]
    out[pct_columns] = out[pct_columns] * 100
    return out.rename(columns=COLUMN_LABELS)


# ============================================================================
# MAIN APP
# ============================================================================


def main():
    st.title("📈 Quick APYs")
    st.caption(
        "Breakdown of all APR components including rewards, bonuses and yields."
    )

    st.sidebar.header("Source")
    source = st.sidebar.radio("Load from", ["Service", "Snapshot file"])
    try:
        if source == "Service":
            service_url = st.sidebar.text_input("Service URL", DEFAULT_SERVICE_URL)
            payload = fetch_vaults(service_url)
        else:
            snapshot_path = st.sidebar.text_input("Snapshot JSON", "results/vaults.json")
            if not Path(snapshot_path).exists():
                st.error(f"Snapshot `{snapshot_path}` not found.")
                return
            payload = load_snapshot(snapshot_path)
    except (requests.RequestException, ValueError) as e:
        st.error(f"Error fetching vaults: {e}")
        return

    df = build_quick_apy_table(payload)
    if df.empty:
        st.info("No vaults found.")
        return

    hide_zero = st.sidebar.checkbox("Hide vaults with zero total APR", value=False)
    if hide_zero:
        df = df[df["totalAPR"] > 0]

    col_a, col_b, col_c = st.columns(3)
    with col_a:
        st.metric("Vaults", len(df))
    with col_b:
        st.metric("Median Total APR", f"{df['totalAPR'].median():.2%}")
    with col_c:
        st.metric("Max Total APR", f"{df['totalAPR'].max():.2%}")

    display = to_display(df)
    st.dataframe(
        display.style.format(
            {label: "{:.2f}" for key, label in COLUMN_LABELS.items() if key != "name"}
        ),
        use_container_width=True,
        height=min(800, 60 + len(display) * 35),
    )

    with st.expander("Vault addresses"):
        st.dataframe(df[["name", "address"]], use_container_width=True)


if __name__ == "__main__":
    main()
