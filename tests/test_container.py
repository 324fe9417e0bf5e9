import pytest

from infrastructure import container
from infrastructure.accounts.memory import InMemoryAccountDirectory
from infrastructure.cache.memory_store import InMemoryTTLStore


@pytest.mark.asyncio
async def test_container_falls_back_to_in_memory_store(monkeypatch):
    monkeypatch.setattr(container.settings.redis, "url", None)
    monkeypatch.setattr(container, "_memory_store", None)
    accounts = InMemoryAccountDirectory()
    accounts.register(1)

    store = await container.get_ttl_store()
    refresh_tokens = await container.get_refresh_token_service()
    coordinator = await container.get_token_refresh_service(accounts)

    assert isinstance(store, InMemoryTTLStore)
    assert await container.get_ttl_store() is store

    token = await refresh_tokens.issue(1)
    result = await coordinator.refresh(1, token)
    assert result.ok
    assert await refresh_tokens.validate(result.pair.refresh_token) == 1


@pytest.mark.asyncio
async def test_shutdown_closes_in_memory_store(monkeypatch):
    monkeypatch.setattr(container.settings.redis, "url", None)
    monkeypatch.setattr(container, "_memory_store", None)

    store = await container.get_ttl_store()
    await store.set("k", "v")

    await container.shutdown_ttl_store()

    assert await store.get("k") is None
    assert container._memory_store is None
    assert await container.get_ttl_store() is not store
