"""
Kong batch webhook outputs.

For every requested vault found in the APR data, one row per component:

    katanaAppRewardsAPR, fixedRateKatanaRewards, katanaBonusAPY,
    katanaNativeYield, steerPointsPerDollar

followed by two derived rows:

    netAPR = katanaAppRewardsAPR + katanaNativeYield (+ fixedRateKatanaRewards)
    netAPY = katanaBonusAPY

Whether fixed-rate rewards count towards netAPR is a setting
(FIXED_RATE_IN_NET_APR). Vaults missing from the data produce no rows.
"""

from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Sequence

from .cache import AprDataMap, find_vault_record

DEFAULT_LABEL = "katana-apr"

COMPONENTS = (
    "katanaAppRewardsAPR",
    "fixedRateKatanaRewards",
    "katanaBonusAPY",
    "katanaNativeYield",
    "steerPointsPerDollar",
)


@dataclass(frozen=True)
class WebhookOutput:
    chainId: int
    address: str
    label: str
    component: str
    value: float
    blockNumber: str
    blockTime: str

    def to_dict(self) -> dict:
        return asdict(self)


def compute_webhook_outputs(
    data: AprDataMap,
    addresses: Sequence[str],
    chain_id: int,
    block_number: int,
    block_time: int,
    label: str = DEFAULT_LABEL,
    fixed_rate_in_net_apr: bool = True,
) -> list[WebhookOutput]:
    outputs: list[WebhookOutput] = []
    for address in addresses:
        record = find_vault_record(data, address)
        if record is None:
            continue

        extra = record.apr_extra

        def row(component: str, value: float) -> WebhookOutput:
            return WebhookOutput(
                chainId=chain_id,
                address=address,
                label=label,
                component=component,
                value=float(value),
                blockNumber=str(block_number),
                blockTime=str(block_time),
            )

        for component in COMPONENTS:
            outputs.append(row(component, extra.get(component, 0.0)))

        net_apr = extra.get("katanaAppRewardsAPR", 0.0) + extra.get("katanaNativeYield", 0.0)
        if fixed_rate_in_net_apr:
            net_apr += extra.get("fixedRateKatanaRewards", 0.0)
        outputs.append(row("netAPR", net_apr))
        outputs.append(row("netAPY", extra.get("katanaBonusAPY", 0.0)))
    return outputs
