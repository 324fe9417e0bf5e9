"""缓存/TTL存储层对外暴露的接口"""
from .memory_store import InMemoryTTLStore
from .redis_store import (
    RedisTTLStore,
    init_redis_store,
    shutdown_redis_store,
    get_redis_store,
)

__all__ = [
    "InMemoryTTLStore",
    "RedisTTLStore",
    "init_redis_store",
    "shutdown_redis_store",
    "get_redis_store",
]
