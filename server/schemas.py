"""Request / response models for the HTTP API."""

from __future__ import annotations

from pydantic import BaseModel, Field

from aprcalc.webhook import DEFAULT_LABEL


class KongSubscription(BaseModel):
    id: str
    url: str = ""
    abiPath: str = ""
    type: str = ""
    labels: list[str] = Field(default_factory=list)


class KongBatchWebhook(BaseModel):
    abiPath: str
    chainId: int
    blockNumber: int
    blockTime: int
    subscription: KongSubscription
    vaults: list[str] = Field(default_factory=list)

    @property
    def label(self) -> str:
        labels = self.subscription.labels
        return labels[0] if labels else DEFAULT_LABEL


class HealthResponse(BaseModel):
    status: str = "ok"
    timestamp: str


class ErrorResponse(BaseModel):
    message: str
    error: str
