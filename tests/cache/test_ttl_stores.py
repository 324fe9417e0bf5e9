import pytest

from infrastructure.cache.memory_store import InMemoryTTLStore
from infrastructure.cache.redis_store import RedisTTLStore


pytestmark = pytest.mark.asyncio


class MonotonicStub:
    def __init__(self) -> None:
        self.value = 1000.0

    def __call__(self) -> float:
        return self.value


@pytest.fixture(params=["memory", "redis"])
def any_store(request, redis_client):
    if request.param == "memory":
        return InMemoryTTLStore()
    return RedisTTLStore(client=redis_client, namespace="stores")


async def test_get_set_delete_roundtrip(any_store):
    await any_store.set("k", {"a": 1, "b": ["x"]}, ttl=10)

    assert await any_store.get("k") == {"a": 1, "b": ["x"]}
    assert await any_store.delete("k") is True
    assert await any_store.get("k") is None
    assert await any_store.delete("k") is False


async def test_set_if_absent_is_exclusive(any_store):
    assert await any_store.set_if_absent("lock", "owner-a", ttl=5) is True
    assert await any_store.set_if_absent("lock", "owner-b", ttl=5) is False
    assert await any_store.get("lock") == "owner-a"


async def test_delete_if_equals_only_removes_own_value(any_store):
    await any_store.set_if_absent("lock", "owner-a", ttl=5)

    assert await any_store.delete_if_equals("lock", "owner-b") is False
    assert await any_store.get("lock") == "owner-a"
    assert await any_store.delete_if_equals("lock", "owner-a") is True
    assert await any_store.get("lock") is None
    assert await any_store.delete_if_equals("lock", "owner-a") is False


async def test_set_membership(any_store):
    await any_store.add_to_set("idx", "t1", ttl=60)
    await any_store.add_to_set("idx", "t2", ttl=60)
    await any_store.remove_from_set("idx", "t1")

    assert await any_store.members_of("idx") == {"t2"}
    assert await any_store.delete("idx") is True
    assert await any_store.members_of("idx") == set()


async def test_redis_store_applies_namespace_and_ttl(redis_client):
    store = RedisTTLStore(client=redis_client, namespace="ns:")

    await store.set("key", "v", ttl=2.5)
    await store.add_to_set("members", "m", ttl=30)

    assert await redis_client.get("ns:key") == '"v"'
    assert 0 < await redis_client.pttl("ns:key") <= 2_500
    assert 0 < await redis_client.pttl("ns:members") <= 30_000


async def test_redis_store_without_ttl_persists(redis_client):
    store = RedisTTLStore(client=redis_client)

    await store.set("forever", 1)

    assert await redis_client.pttl("forever") == -1


async def test_memory_store_expires_entries():
    now = MonotonicStub()
    store = InMemoryTTLStore(clock=now)
    await store.set("cache", "pair", ttl=5)
    await store.set_if_absent("lock", "owner", ttl=1)
    await store.add_to_set("idx", "t1", ttl=10)

    now.value += 1
    assert await store.get("lock") is None
    assert await store.set_if_absent("lock", "next-owner", ttl=1) is True
    assert await store.get("cache") == "pair"

    now.value += 10
    assert await store.get("cache") is None
    assert await store.members_of("idx") == set()
