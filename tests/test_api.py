"""
Tests for the HTTP API.

Run with: pytest tests/test_api.py -v
"""

import json

import pytest
from aprcalc.cache import CacheSnapshot
from aprcalc.config import Settings
from aprcalc.errors import UpstreamError
from aprcalc.models import FallbackVaultRecord
from conftest import VAULT_ADDRESS, make_vault
from fastapi.testclient import TestClient
from server import create_app
from server.auth import sign_payload

SECRET = "kong-secret"
REFRESH_SECRET = "refresh-me"


def _data():
    return {
        VAULT_ADDRESS: make_vault(
            apr={"netAPR": 0.03, "extra": {"katanaAppRewardsAPR": 0.1, "katanaNativeYield": 0.05}}
        ),
        "0x00000000000000000000000000000000000000ff": FallbackVaultRecord(name="Empty"),
    }


class FakeCache:
    def __init__(self, snapshot=None, error=None):
        self.snapshot = snapshot or CacheSnapshot(data=_data(), refreshed_at=0.0)
        self.error = error
        self.gets = 0
        self.refreshes = 0

    async def get(self):
        self.gets += 1
        if self.error:
            raise self.error
        return self.snapshot

    async def force_refresh(self):
        self.refreshes += 1
        if self.error:
            raise self.error
        return self.snapshot


def _client(cache=None, **settings):
    app = create_app(Settings(**settings), cache=cache or FakeCache())
    return TestClient(app)


# ============================================================================
# VAULTS
# ============================================================================


class TestVaultsEndpoint:
    """Test the vault list endpoint and its headers."""

    def test_health(self):
        """Health check reports ok."""
        resp = _client().get("/api/health")
        assert resp.status_code == 200
        assert resp.json()["status"] == "ok"

    def test_all_vaults(self):
        """Full data is served with CORS and CDN cache headers."""
        resp = _client().get("/api/vaults")
        assert resp.status_code == 200
        body = resp.json()
        assert body[VAULT_ADDRESS]["apr"]["extra"]["katanaAppRewardsAPR"] == 0.1
        assert body["0x00000000000000000000000000000000000000ff"] == {
            "name": "Empty",
            "apr": 0.0,
            "pools": None,
            "breakdown": [],
        }
        assert resp.headers["access-control-allow-origin"] == "*"
        assert "s-maxage=900" in resp.headers["cache-control"]
        assert "x-cache-status" not in resp.headers

    def test_upstream_failure_is_502_and_uncached(self):
        """A failed first build returns 502 with no-store."""
        resp = _client(FakeCache(error=UpstreamError("ydaemon down"))).get("/api/vaults")
        assert resp.status_code == 502
        assert resp.json() == {
            "message": "An error occurred while fetching data.",
            "error": "ydaemon down",
        }
        assert resp.headers["cache-control"] == "no-store"

    def test_preflight(self):
        """OPTIONS returns 204 with CORS headers."""
        resp = _client().options("/api/vaults")
        assert resp.status_code == 204
        assert resp.headers["access-control-allow-methods"] == "GET, OPTIONS"

    def test_stale_data_flagged(self):
        """Stale snapshots carry X-Cache-Status and X-Cache-Error."""
        snapshot = CacheSnapshot(data=_data(), refreshed_at=0.0, stale=True, error="merkl down")
        resp = _client(FakeCache(snapshot)).get("/api/vaults")
        assert resp.status_code == 200
        assert resp.headers["x-cache-status"] == "stale"
        assert resp.headers["x-cache-error"] == "merkl down"


class TestRefresh:
    """Test token-gated forced rebuilds."""

    def test_refresh_disabled_without_secret(self):
        """Refresh is forbidden when no refresh secret is configured."""
        cache = FakeCache()
        resp = _client(cache).get("/api/vaults?refresh=true")
        assert resp.status_code == 403
        assert cache.refreshes == 0

    @pytest.mark.parametrize("token", [None, "wrong"])
    def test_refresh_rejects_bad_token(self, token):
        """Missing or wrong tokens are rejected without rebuilding."""
        cache = FakeCache()
        headers = {"x-refresh-token": token} if token else {}
        resp = _client(cache, refresh_secret=REFRESH_SECRET).get(
            "/api/vaults?refresh=true", headers=headers
        )
        assert resp.status_code == 401
        assert resp.json() == {"error": "invalid refresh token"}
        assert cache.refreshes == 0

    def test_refresh_with_header_token(self):
        """The x-refresh-token header forces a rebuild."""
        cache = FakeCache()
        resp = _client(cache, refresh_secret=REFRESH_SECRET).get(
            "/api/vaults?refresh=true", headers={"x-refresh-token": REFRESH_SECRET}
        )
        assert resp.status_code == 200
        assert (cache.refreshes, cache.gets) == (1, 0)

    def test_refresh_with_query_token(self):
        """The token query parameter forces a rebuild."""
        cache = FakeCache()
        resp = _client(cache, refresh_secret=REFRESH_SECRET).get(
            f"/api/vaults?refresh=true&token={REFRESH_SECRET}"
        )
        assert resp.status_code == 200
        assert cache.refreshes == 1


class TestSingleVault:
    """Test the single vault endpoint."""

    def test_found_case_insensitive(self):
        """Address lookup ignores case."""
        resp = _client().get("/api/vaults/0x00000000000000000000000000000000000000AA")
        assert resp.status_code == 200
        assert resp.json()["address"] == VAULT_ADDRESS

    def test_not_found(self):
        """Unknown addresses return 404."""
        resp = _client().get("/api/vaults/0x0000000000000000000000000000000000000001")
        assert resp.status_code == 404
        assert "not found" in resp.json()["error"]


# ============================================================================
# WEBHOOK
# ============================================================================


def _hook_body(vaults):
    return json.dumps(
        {
            "abiPath": "yearn/3/vault",
            "chainId": 747474,
            "blockNumber": 123,
            "blockTime": 1700000000,
            "subscription": {"id": "sub-1", "labels": ["katana-estimated-apr"]},
            "vaults": vaults,
        }
    )


class TestWebhook:
    """Test the signed Kong batch webhook."""

    @pytest.fixture(autouse=True)
    def _no_env_secret(self, monkeypatch):
        monkeypatch.delenv("KONG_WEBHOOK_SECRET", raising=False)

    def _post(self, client, body, signature=None):
        headers = {"content-type": "application/json"}
        if signature is not None:
            headers["kong-signature"] = signature
        return client.post("/api/webhook", content=body, headers=headers)

    def test_secret_not_configured(self):
        """No secret configured returns 500."""
        resp = self._post(_client(), _hook_body([VAULT_ADDRESS]), "t=1,v1=00")
        assert resp.status_code == 500

    def test_missing_signature(self):
        """Requests without Kong-Signature return 401."""
        resp = self._post(_client(webhook_secret=SECRET), _hook_body([VAULT_ADDRESS]))
        assert resp.status_code == 401
        assert resp.text == "Missing signature"

    def test_invalid_signature(self):
        """Signatures made with another secret return 401."""
        body = _hook_body([VAULT_ADDRESS])
        resp = self._post(_client(webhook_secret=SECRET), body, sign_payload(body, "wrong"))
        assert resp.status_code == 401
        assert resp.text == "Invalid signature"

    def test_invalid_payload(self):
        """Signed but malformed payloads return 400."""
        body = '{"chainId": "not a number"}'
        resp = self._post(_client(webhook_secret=SECRET), body, sign_payload(body, SECRET))
        assert resp.status_code == 400

    def test_outputs(self):
        """Valid requests return component rows labelled from the subscription."""
        body = _hook_body([VAULT_ADDRESS])
        resp = self._post(_client(webhook_secret=SECRET), body, sign_payload(body, SECRET))
        assert resp.status_code == 200
        rows = resp.json()
        assert len(rows) == 7
        assert {r["label"] for r in rows} == {"katana-estimated-apr"}
        net = next(r for r in rows if r["component"] == "netAPR")
        assert net["value"] == pytest.approx(0.15)
        assert net["blockNumber"] == "123"

    def test_env_secret_takes_precedence(self, monkeypatch):
        """KONG_WEBHOOK_SECRET overrides the secret loaded at startup."""
        monkeypatch.setenv("KONG_WEBHOOK_SECRET", "env-secret")
        body = _hook_body([VAULT_ADDRESS])
        client = _client(webhook_secret=SECRET)
        assert self._post(client, body, sign_payload(body, SECRET)).status_code == 401
        assert self._post(client, body, sign_payload(body, "env-secret")).status_code == 200

    def test_empty_vault_list(self):
        """No vaults requested returns an empty list."""
        body = _hook_body([])
        resp = self._post(_client(webhook_secret=SECRET), body, sign_payload(body, SECRET))
        assert resp.status_code == 200
        assert resp.json() == []

    def test_cache_failure_is_500(self):
        """Cache failures surface as 500 with the error message."""
        body = _hook_body([VAULT_ADDRESS])
        client = _client(FakeCache(error=UpstreamError("merkl down")), webhook_secret=SECRET)
        resp = self._post(client, body, sign_payload(body, SECRET))
        assert resp.status_code == 500
        assert resp.json() == {"error": "merkl down"}
