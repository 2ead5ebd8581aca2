"""Shared fixtures: in-memory database, fake Redis, mocked marketplace APIs."""

import os

# Settings are read on import, so the environment goes first
os.environ.setdefault("APP_ENV", "development")
os.environ["ADMIN_API_KEY"] = ""
os.environ["TOKENS_ENCRYPTION_KEY"] = "00112233445566778899aabbccddeeff00112233445566778899aabbccddeeff"
os.environ["ML_CLIENT_ID"] = "ml-client-id"
os.environ["ML_CLIENT_SECRET"] = "ml-client-secret"
os.environ["ML_REDIRECT_URI"] = "https://novuraerp.com.br/oauth/mercado-livre/callback"
os.environ["SHOPEE_PARTNER_ID"] = "2001234"
os.environ["SHOPEE_PARTNER_KEY"] = "shopee-partner-key"
os.environ["SHOPEE_ENV"] = "production"

import uuid
from collections.abc import AsyncGenerator, Callable
from datetime import datetime, timedelta, timezone
from typing import Any

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from novura.config import get_settings
from novura.db.base import Base
from novura.models import Company, MarketplaceIntegration, Organization, MERCADO_LIVRE
from novura.services.credentials import get_token_cipher
from novura.services.mercado_livre import MercadoLivreClient
from novura.services.shopee import ShopeeClient
from novura.utils.crypto import encrypt_token

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

get_settings.cache_clear()


class FakeRedis:
    """In-memory stand-in for the redis.asyncio calls the app makes."""

    def __init__(self) -> None:
        self.store: dict[str, str] = {}
        self.ttls: dict[str, int] = {}

    async def get(self, key: str) -> str | None:
        return self.store.get(key)

    async def set(self, key: str, value: str) -> bool:
        self.store[key] = value
        return True

    async def setex(self, key: str, ttl: int, value: str) -> bool:
        self.store[key] = value
        self.ttls[key] = ttl
        return True

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        return None


Handler = Callable[[httpx.Request], httpx.Response]


class MockMarketplace:
    """Routes (method, path) to canned responses and records every request."""

    def __init__(self) -> None:
        self.routes: dict[tuple[str, str], list[Handler]] = {}
        self.requests: list[httpx.Request] = []

    def add(self, method: str, path: str, *responses: Handler | httpx.Response | dict) -> None:
        """Queue responses for a route; the last one repeats."""
        handlers = []
        for response in responses:
            if isinstance(response, httpx.Response):
                handlers.append(
                    lambda request, r=response: httpx.Response(
                        r.status_code, headers=r.headers, content=r.content
                    )
                )
            elif isinstance(response, dict):
                handlers.append(lambda request, body=response: httpx.Response(200, json=body))
            else:
                handlers.append(response)
        self.routes[(method.upper(), path)] = handlers

    def calls(self, method: str, path: str) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == method.upper() and r.url.path == path]

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        handlers = self.routes.get((request.method, request.url.path))
        if not handlers:
            return httpx.Response(404, json={"message": "not found"})
        handler = handlers.pop(0) if len(handlers) > 1 else handlers[0]
        return handler(request)

    @property
    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


@pytest_asyncio.fixture
async def engine():
    engine = create_async_engine(
        TEST_DATABASE_URL,
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield engine
    await engine.dispose()


@pytest_asyncio.fixture
async def db(engine) -> AsyncGenerator[AsyncSession, None]:
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_maker() as session:
        yield session


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest.fixture
def ml_api() -> MockMarketplace:
    return MockMarketplace()


@pytest.fixture
def shopee_api() -> MockMarketplace:
    return MockMarketplace()


@pytest_asyncio.fixture
async def ml_client(ml_api: MockMarketplace) -> AsyncGenerator[MercadoLivreClient, None]:
    client = MercadoLivreClient(transport=ml_api.transport)
    yield client
    await client.close()


@pytest_asyncio.fixture
async def shopee_client(shopee_api: MockMarketplace) -> AsyncGenerator[ShopeeClient, None]:
    client = ShopeeClient(transport=shopee_api.transport)
    yield client
    await client.close()


@pytest_asyncio.fixture
async def client(
    db: AsyncSession,
    fake_redis: FakeRedis,
    ml_client: MercadoLivreClient,
    shopee_client: ShopeeClient,
) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client against the app with every external dependency replaced."""
    from novura.api.deps import get_ml_client, get_redis, get_shopee_api
    from novura.core.rate_limit import limiter
    from novura.db.session import get_db
    from novura.main import app

    async def get_db_override() -> AsyncGenerator[AsyncSession, None]:
        yield db

    app.dependency_overrides[get_db] = get_db_override
    app.dependency_overrides[get_redis] = lambda: fake_redis
    app.dependency_overrides[get_ml_client] = lambda: ml_client
    app.dependency_overrides[get_shopee_api] = lambda: shopee_client
    limiter.enabled = False

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://testserver") as http:
        yield http

    app.dependency_overrides.clear()


# =============================================================================
# Data helpers
# =============================================================================


@pytest_asyncio.fixture
async def organization(db: AsyncSession) -> Organization:
    org = Organization(name="Loja Exemplo")
    db.add(org)
    await db.commit()
    return org


@pytest_asyncio.fixture
async def company(db: AsyncSession, organization: Organization) -> Company:
    company = Company(
        organization_id=organization.id,
        razao_social="Loja Exemplo LTDA",
        cnpj="12345678000199",
        tributacao="Simples Nacional",
    )
    db.add(company)
    await db.commit()
    return company


@pytest.fixture
def make_integration(db: AsyncSession) -> Callable[..., Any]:
    """Factory for integrations with encrypted tokens."""

    async def factory(
        organization: Organization,
        marketplace_name: str = MERCADO_LIVRE,
        access_token: str = "APP_USR-access",
        refresh_token: str | None = "TG-refresh",
        meli_user_id: str | None = "123456789",
        expires_in: datetime | None = None,
        company_id: uuid.UUID | None = None,
        config: dict | None = None,
    ) -> MarketplaceIntegration:
        cipher = get_token_cipher()
        integration = MarketplaceIntegration(
            organizations_id=organization.id,
            company_id=company_id,
            marketplace_name=marketplace_name,
            access_token=encrypt_token(cipher, access_token),
            refresh_token=encrypt_token(cipher, refresh_token) if refresh_token else None,
            meli_user_id=meli_user_id,
            expires_in=expires_in or datetime.now(timezone.utc) + timedelta(hours=1),
            config=config or {},
        )
        db.add(integration)
        await db.commit()
        return integration

    return factory

