"""Tests for credential lookup, expiry handling and token refresh."""

import uuid
from datetime import datetime, timedelta, timezone

import httpx
import pytest
from tenacity import wait_none

from novura.models import MarketplaceApp, MERCADO_LIVRE, SHOPEE
from novura.schemas.common import MarketplaceName
from novura.services.credentials import (
    CredentialsError,
    CredentialsService,
    IntegrationNotFoundError,
    get_token_cipher,
    is_token_expired,
    normalize_marketplace,
)
from novura.services.mercado_livre import MercadoLivreClient
from novura.utils.crypto import decrypt_token


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TestHelpers:
    def test_expiry(self):
        now = _now()
        assert is_token_expired(None)
        assert is_token_expired(now - timedelta(seconds=1), now=now)
        assert is_token_expired(now, now=now)
        assert not is_token_expired(now + timedelta(minutes=5), now=now)

    def test_naive_datetimes_are_utc(self):
        naive_future = (_now() + timedelta(hours=1)).replace(tzinfo=None)
        assert not is_token_expired(naive_future)

    @pytest.mark.parametrize(
        "name,expected",
        [("Mercado Livre", MarketplaceName.MERCADO_LIVRE), ("shopee", MarketplaceName.SHOPEE), (None, MarketplaceName.MERCADO_LIVRE)],
    )
    def test_normalize_marketplace(self, name, expected):
        assert normalize_marketplace(name) == expected


class TestCredentialsService:
    async def test_valid_token_is_decrypted(self, db, organization, make_integration, ml_client, shopee_client, ml_api):
        integration = await make_integration(organization)

        creds = await CredentialsService(db, ml_client, shopee_client).get_valid_credentials(integration.id)

        assert creds.access_token == "APP_USR-access"
        assert creds.marketplace == MarketplaceName.MERCADO_LIVRE
        assert creds.is_expired is False
        assert ml_api.requests == []

    async def test_expired_token_is_refreshed(self, db, organization, make_integration, ml_client, shopee_client, ml_api):
        integration = await make_integration(organization, expires_in=_now() - timedelta(minutes=1))
        ml_api.add("POST", "/oauth/token", {
            "access_token": "APP_USR-new",
            "refresh_token": "TG-new",
            "expires_in": 21600,
            "user_id": 42,
        })

        creds = await CredentialsService(db, ml_client, shopee_client).get_valid_credentials(integration.id)

        assert creds.access_token == "APP_USR-new"
        form = dict(httpx.QueryParams(ml_api.calls("POST", "/oauth/token")[0].content.decode()))
        assert form["grant_type"] == "refresh_token"
        assert form["refresh_token"] == "TG-refresh"
        cipher = get_token_cipher()
        assert decrypt_token(cipher, integration.refresh_token) == "TG-new"
        assert integration.meli_user_id == "42"
        assert not is_token_expired(integration.expires_in)

    async def test_app_credentials_preferred(self, db, organization, make_integration, ml_client, shopee_client, ml_api):
        db.add(MarketplaceApp(name=MERCADO_LIVRE, client_id="app-id", client_secret="app-secret"))
        integration = await make_integration(organization, expires_in=_now() - timedelta(minutes=1))
        ml_api.add("POST", "/oauth/token", {"access_token": "APP_USR-new"})

        await CredentialsService(db, ml_client, shopee_client).refresh_integration(integration)

        form = dict(httpx.QueryParams(ml_api.calls("POST", "/oauth/token")[0].content.decode()))
        assert form["client_id"] == "app-id"
        assert decrypt_token(get_token_cipher(), integration.refresh_token) == "TG-refresh"

    async def test_missing_refresh_token(self, db, organization, make_integration, ml_client, shopee_client):
        integration = await make_integration(organization, refresh_token=None)

        with pytest.raises(CredentialsError, match="no refresh token"):
            await CredentialsService(db, ml_client, shopee_client).refresh_integration(integration)

    async def test_unknown_integration(self, db, ml_client, shopee_client):
        with pytest.raises(IntegrationNotFoundError):
            await CredentialsService(db, ml_client, shopee_client).get_valid_credentials(uuid.uuid4())

    async def test_shopee_refresh(self, db, organization, make_integration, ml_client, shopee_client, shopee_api):
        integration = await make_integration(
            organization,
            marketplace_name=SHOPEE,
            meli_user_id="555",
            config={"shopee_shop_id": "555"},
        )
        shopee_api.add("POST", "/api/v2/auth/access_token", {
            "access_token": "sp-new",
            "refresh_token": "sp-r2",
            "expire_in": 14400,
        })

        token = await CredentialsService(db, ml_client, shopee_client).refresh_integration(integration)

        assert token == "sp-new"
        assert decrypt_token(get_token_cipher(), integration.refresh_token) == "sp-r2"
        assert integration.meli_user_id == "555"

    async def test_refresh_all_shopee_expiring(self, db, organization, make_integration, ml_client, shopee_client, shopee_api):
        soon = await make_integration(
            organization, marketplace_name=SHOPEE, meli_user_id="1", expires_in=_now() + timedelta(minutes=5)
        )
        await make_integration(
            organization, marketplace_name=SHOPEE, meli_user_id="2", expires_in=_now() + timedelta(hours=3)
        )
        await make_integration(organization, expires_in=_now() - timedelta(hours=1))
        shopee_api.add("POST", "/api/v2/auth/access_token", {"access_token": "sp-new", "refresh_token": "sp-r2"})

        result = await CredentialsService(db, ml_client, shopee_client).refresh_all(
            marketplace=MarketplaceName.SHOPEE,
            expiring_within=timedelta(minutes=10),
        )

        assert result["refreshed"] == 1
        assert result["failed"] == 0
        assert result["results"] == [{"integration_id": str(soon.id), "ok": True}]

    async def test_refresh_all_reports_failures(self, db, organization, make_integration, ml_client, shopee_client, ml_api):
        await make_integration(organization, refresh_token=None)
        ml_api.add("POST", "/oauth/token", {"access_token": "x"})

        result = await CredentialsService(db, ml_client, shopee_client).refresh_all(marketplace=MarketplaceName.MERCADO_LIVRE)

        assert result["ok"] is False
        assert result["failed"] == 1
        assert result["results"][0]["error"] == "Integration has no refresh token"

    async def test_refresh_all_continues_after_connection_error(
        self, db, organization, make_integration, ml_client, shopee_client, ml_api, monkeypatch
    ):
        monkeypatch.setattr(MercadoLivreClient.refresh_token.retry, "wait", wait_none())
        unreachable = await make_integration(organization, refresh_token="TG-unreachable", meli_user_id="1")
        healthy = await make_integration(organization, refresh_token="TG-healthy", meli_user_id="2")

        def token_endpoint(request: httpx.Request) -> httpx.Response:
            if b"TG-unreachable" in request.content:
                raise httpx.ConnectError("connection refused", request=request)
            return httpx.Response(200, json={"access_token": "APP_USR-new", "expires_in": 21600})

        ml_api.add("POST", "/oauth/token", token_endpoint)

        result = await CredentialsService(db, ml_client, shopee_client).refresh_all(marketplace=MarketplaceName.MERCADO_LIVRE)

        assert result["ok"] is True
        assert result["refreshed"] == 1
        assert result["failed"] == 1
        by_id = {r["integration_id"]: r for r in result["results"]}
        assert by_id[str(healthy.id)] == {"integration_id": str(healthy.id), "ok": True}
        assert by_id[str(unreachable.id)]["ok"] is False
        assert by_id[str(unreachable.id)]["error"].startswith("Token refresh request failed")
        assert len(ml_api.calls("POST", "/oauth/token")) == 4


class TestIntegrationRoutes:
    async def test_refresh_one(self, client, organization, make_integration, ml_api):
        integration = await make_integration(organization)
        ml_api.add("POST", "/oauth/token", {"access_token": "APP_USR-new"})

        response = await client.post("/api/integrations/refresh", json={"integration_id": str(integration.id)})

        assert response.status_code == 200
        assert response.json()["refreshed"] == 1

    async def test_refresh_failure_is_400(self, client, organization, make_integration, ml_api):
        integration = await make_integration(organization)
        ml_api.add("POST", "/oauth/token", httpx.Response(400, json={"message": "invalid_grant"}))

        response = await client.post("/api/integrations/refresh", json={"integration_id": str(integration.id)})

        assert response.status_code == 400
        assert response.json()["results"][0]["error"] == "invalid_grant"

    async def test_shopee_refresh_expiring(self, client):
        response = await client.post("/api/integrations/shopee/refresh-expiring")
        assert response.status_code == 200
        assert response.json()["refreshed"] == 0

    async def test_credentials_status(self, client, organization, make_integration):
        integration = await make_integration(organization, expires_in=_now() - timedelta(minutes=1))

        response = await client.get(f"/api/integrations/{integration.id}/credentials-status")

        assert response.status_code == 200
        body = response.json()
        assert body["marketplace"] == "mercado_livre"
        assert body["is_expired"] is True
        assert body["meli_user_id"] == "123456789"
        assert "access_token" not in body

    async def test_credentials_status_not_found(self, client):
        response = await client.get(f"/api/integrations/{uuid.uuid4()}/credentials-status")
        assert response.status_code == 404
