"""Pytest bootstrap configuration.

Ensure mandatory environment variables are set before test collection
and module imports that depend on application settings.
"""
import os

# Mandatory secret key for settings validation
os.environ.setdefault("SECRET_KEY", "test-secret-key-for-refresh-rotation")

from datetime import datetime, timedelta, timezone

import fakeredis
import pytest

from application.services.refresh_token_service import RefreshTokenService
from application.services.token_refresh_service import TokenRefreshService
from core.config import TokenRefreshSettings
from infrastructure.accounts.memory import InMemoryAccountDirectory
from infrastructure.cache.redis_store import RedisTTLStore
from infrastructure.security.jwt_issuer import JWTAccessTokenIssuer


NAMESPACE = "test"


class FakeClock:
    """Controllable UTC clock for grace/expiry boundaries."""

    def __init__(self, start: datetime) -> None:
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now = self.now + timedelta(**kwargs)
        return self.now


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime.now(timezone.utc))


@pytest.fixture
def refresh_config() -> TokenRefreshSettings:
    # Short follower polling so concurrency tests finish quickly
    return TokenRefreshSettings(
        lock_timeout=timedelta(seconds=5),
        token_cache_ttl=timedelta(seconds=5),
        grace_period=timedelta(seconds=20),
        wait_attempts=100,
        wait_interval=0.01,
    )


@pytest.fixture
async def redis_client():
    client = fakeredis.FakeAsyncRedis(decode_responses=True)
    await client.flushall()
    try:
        yield client
    finally:
        await client.aclose()


@pytest.fixture
def store(redis_client) -> RedisTTLStore:
    return RedisTTLStore(client=redis_client, namespace=NAMESPACE)


@pytest.fixture
def engine(store, refresh_config, clock) -> RefreshTokenService:
    return RefreshTokenService(store, config=refresh_config, clock=clock)


@pytest.fixture
def accounts() -> InMemoryAccountDirectory:
    directory = InMemoryAccountDirectory()
    directory.register(1)
    directory.register(2)
    return directory


@pytest.fixture
def issuer() -> JWTAccessTokenIssuer:
    return JWTAccessTokenIssuer(secret_key="test-secret-key-for-refresh-rotation", algorithm="HS256", expire_minutes=30)


@pytest.fixture
def coordinator(engine, accounts, issuer, store, refresh_config) -> TokenRefreshService:
    return TokenRefreshService(
        refresh_tokens=engine,
        accounts=accounts,
        access_tokens=issuer,
        store=store,
        config=refresh_config,
    )
