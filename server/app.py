"""
HTTP API for the Katana APR service.

Routes:
    GET     /api/health              liveness
    GET     /api/vaults              full APR data (CDN-cacheable)
    OPTIONS /api/vaults              CORS preflight
    GET     /api/vaults/{address}    one vault record
    POST    /api/webhook             Kong batch webhook (HMAC-signed)

The APR cache is created once per app and kept on app.state; tests inject
their own.
"""

from __future__ import annotations

import json
import logging
import os
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse, Response
from pydantic import ValidationError

from aprcalc.cache import (
    AprDataBuilder,
    AprDataCache,
    CacheSnapshot,
    find_vault_record,
    serialize_apr_data,
)
from aprcalc.config import Settings, load_settings
from aprcalc.debug import configure_debug_sampler
from aprcalc.webhook import compute_webhook_outputs

from .auth import verify_webhook_signature
from .schemas import ErrorResponse, HealthResponse, KongBatchWebhook

logger = logging.getLogger(__name__)

CORS_HEADERS = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type",
}

# CDN caches, browsers don't
CACHE_CONTROL = "public, max-age=0, s-maxage=900, stale-while-revalidate=600"
FETCH_ERROR_MESSAGE = "An error occurred while fetching data."


def _cache_headers(snapshot: CacheSnapshot) -> dict[str, str]:
    headers = {**CORS_HEADERS, "Cache-Control": CACHE_CONTROL}
    if snapshot.stale:
        headers["X-Cache-Status"] = "stale"
        if snapshot.error:
            headers["X-Cache-Error"] = snapshot.error
    return headers


def _fetch_error(e: Exception) -> JSONResponse:
    return JSONResponse(
        ErrorResponse(message=FETCH_ERROR_MESSAGE, error=str(e)).model_dump(),
        status_code=502,
        headers={**CORS_HEADERS, "Cache-Control": "no-store"},
    )


def create_app(settings: Settings | None = None, cache: AprDataCache | None = None) -> FastAPI:
    settings = settings or load_settings()
    configure_debug_sampler(
        settings.apr_debug_enabled,
        settings.apr_debug_vault_address,
        settings.apr_debug_sample_limit,
    )
    if cache is None:
        cache = AprDataCache(
            AprDataBuilder.from_settings(settings), ttl_seconds=settings.cache_ttl_seconds
        )

    app = FastAPI(title="Katana APR Service", version="0.1.0")
    app.state.settings = settings
    app.state.cache = cache

    @app.get("/api/health")
    async def health() -> HealthResponse:
        return HealthResponse(timestamp=datetime.now(timezone.utc).isoformat())

    @app.options("/api/vaults")
    async def vaults_preflight() -> Response:
        return Response(status_code=204, headers={**CORS_HEADERS, "Cache-Control": "public, max-age=0"})

    @app.get("/api/vaults")
    async def get_vaults(request: Request):
        refresh = request.query_params.get("refresh", "").lower() == "true"
        if refresh:
            refresh_secret = settings.refresh_secret
            if not refresh_secret:
                return JSONResponse(
                    {"error": "cache refresh is not enabled"},
                    status_code=403,
                    headers=CORS_HEADERS,
                )
            token = request.headers.get("x-refresh-token") or request.query_params.get("token")
            if not token or token != refresh_secret:
                return JSONResponse(
                    {"error": "invalid refresh token"}, status_code=401, headers=CORS_HEADERS
                )

        try:
            snapshot = await (cache.force_refresh() if refresh else cache.get())
        except Exception as e:
            logger.error("Failed to load APR data: %s", e)
            return _fetch_error(e)

        return JSONResponse(serialize_apr_data(snapshot.data), headers=_cache_headers(snapshot))

    @app.get("/api/vaults/{address}")
    async def get_vault(address: str):
        try:
            snapshot = await cache.get()
        except Exception as e:
            logger.error("Failed to load APR data: %s", e)
            return _fetch_error(e)

        record = find_vault_record(snapshot.data, address)
        if record is None:
            return JSONResponse(
                {"error": f"vault {address} not found"}, status_code=404, headers=CORS_HEADERS
            )
        return JSONResponse(record.to_dict(), headers=_cache_headers(snapshot))

    @app.post("/api/webhook")
    async def webhook(request: Request) -> Response:
        secret = os.environ.get("KONG_WEBHOOK_SECRET") or settings.webhook_secret
        if not secret:
            return JSONResponse({"error": "webhook secret not configured"}, status_code=500)

        signature = request.headers.get("kong-signature")
        if not signature:
            return Response("Missing signature", status_code=401)

        raw_body = (await request.body()).decode("utf-8")
        if not verify_webhook_signature(signature, raw_body, secret):
            return Response("Invalid signature", status_code=401)

        try:
            hook = KongBatchWebhook.model_validate(json.loads(raw_body))
        except (ValueError, ValidationError):
            return JSONResponse({"error": "invalid payload"}, status_code=400)

        if not hook.vaults:
            return JSONResponse([])

        try:
            snapshot = await cache.get()
            outputs = compute_webhook_outputs(
                snapshot.data,
                hook.vaults,
                chain_id=hook.chainId,
                block_number=hook.blockNumber,
                block_time=hook.blockTime,
                label=hook.label,
                fixed_rate_in_net_apr=settings.fixed_rate_in_net_apr,
            )
        except Exception as e:
            logger.error("Webhook error: %s", e, exc_info=True)
            return JSONResponse({"error": str(e)}, status_code=500)

        return JSONResponse([o.to_dict() for o in outputs])

    return app
