"""Redis TTL存储实现"""
from __future__ import annotations

import asyncio
import json
from typing import Any, Awaitable, Callable, Optional, Set

from redis import asyncio as aioredis
from redis.exceptions import RedisError, WatchError

from application.ports.ttl_store import TTLStore
from core.config import settings
from core.logging_config import get_logger
from domain.common.exceptions import StoreUnavailableException


logger = get_logger(__name__)


def _json_dumps(value: Any) -> str:
    """将任意对象序列化为JSON字符串"""
    return json.dumps(value, default=str)


def _json_loads(value: Optional[str]) -> Any:
    """将JSON字符串反序列化为对象"""
    if value is None:
        return None
    return json.loads(value)


def _decode(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8")
    return value


def _ttl_ms(ttl: Optional[float]) -> Optional[int]:
    """秒 -> 毫秒；非正数视为不过期"""
    if ttl is None or ttl <= 0:
        return None
    return max(1, int(ttl * 1000))


class RedisTTLStore(TTLStore):
    """基于Redis的TTL存储，所有键带命名空间前缀"""

    def __init__(self, client: aioredis.Redis, namespace: str = "") -> None:
        self._client = client
        self._namespace = namespace.strip(":")

    def _format_key(self, key: str) -> str:
        if not self._namespace:
            return key
        return f"{self._namespace}:{key}"

    async def _call(self, operation: str, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """执行Redis命令，连接类故障统一转换为 StoreUnavailableException（不重试）"""
        try:
            return await func(*args, **kwargs)
        except RedisError as e:
            logger.error("ttl_store_unavailable", operation=operation, error=str(e))
            raise StoreUnavailableException(operation, str(e)) from e

    async def get(self, key: str) -> Any:
        value = await self._call("get", self._client.get, self._format_key(key))
        return _json_loads(_decode(value))

    async def set(self, key: str, value: Any, ttl: Optional[float] = None) -> None:
        await self._call(
            "set",
            self._client.set,
            self._format_key(key),
            _json_dumps(value),
            px=_ttl_ms(ttl),
        )

    async def delete(self, key: str) -> bool:
        return bool(await self._call("delete", self._client.delete, self._format_key(key)))

    async def set_if_absent(self, key: str, value: Any, ttl: float) -> bool:
        result = await self._call(
            "set_if_absent",
            self._client.set,
            self._format_key(key),
            _json_dumps(value),
            px=_ttl_ms(ttl),
            nx=True,
        )
        return bool(result)

    async def delete_if_equals(self, key: str, value: Any) -> bool:
        """原子比较并删除：使用 WATCH/MULTI/EXEC 乐观锁，值被并发修改时放弃删除"""
        formatted_key = self._format_key(key)
        expected = _json_dumps(value)

        async def _compare_and_delete() -> bool:
            async with self._client.pipeline(transaction=True) as pipe:
                try:
                    await pipe.watch(formatted_key)
                    current = _decode(await pipe.get(formatted_key))
                    if current != expected:
                        await pipe.unwatch()
                        return False
                    pipe.multi()
                    pipe.delete(formatted_key)
                    results = await pipe.execute()
                    return bool(results[0])
                except WatchError:
                    # 键在 WATCH 之后被并发修改，说明已不属于当前持有者
                    logger.warning("ttl_store_compare_delete_conflict", key=formatted_key)
                    return False

        return await self._call("delete_if_equals", _compare_and_delete)

    async def add_to_set(self, set_key: str, member: str, ttl: Optional[float] = None) -> None:
        formatted_key = self._format_key(set_key)

        async def _add() -> None:
            async with self._client.pipeline(transaction=True) as pipe:
                pipe.sadd(formatted_key, member)
                expire_ms = _ttl_ms(ttl)
                if expire_ms is not None:
                    pipe.pexpire(formatted_key, expire_ms)
                await pipe.execute()

        await self._call("add_to_set", _add)

    async def remove_from_set(self, set_key: str, member: str) -> None:
        await self._call("remove_from_set", self._client.srem, self._format_key(set_key), member)

    async def members_of(self, set_key: str) -> Set[str]:
        members = await self._call("members_of", self._client.smembers, self._format_key(set_key))
        return {_decode(m) for m in members or ()}

    async def aclose(self) -> None:
        await self._client.aclose()


_redis_client: Optional[aioredis.Redis] = None
_store_instance: Optional[RedisTTLStore] = None
_lock = asyncio.Lock()


async def init_redis_store(namespace: Optional[str] = None) -> RedisTTLStore:
    """初始化Redis存储实例"""
    global _redis_client, _store_instance

    if _store_instance is not None:
        return _store_instance

    async with _lock:
        if _store_instance is not None:
            return _store_instance

        if not settings.redis.url:
            raise RuntimeError("REDIS__URL 未配置，无法初始化Redis存储")

        client = aioredis.from_url(
            settings.redis.url,
            encoding="utf-8",
            decode_responses=True,
            max_connections=settings.redis.max_connections,
        )

        _redis_client = client
        _store_instance = RedisTTLStore(
            client=client,
            namespace=namespace or settings.redis.namespace,
        )
        logger.info("redis_store_initialized", namespace=namespace or settings.redis.namespace)
        return _store_instance


async def get_redis_store() -> RedisTTLStore:
    """获取全局Redis存储实例"""
    if _store_instance is None:
        return await init_redis_store()
    return _store_instance


async def shutdown_redis_store() -> None:
    """关闭Redis连接"""
    global _redis_client, _store_instance

    if _redis_client is not None:
        try:
            await _redis_client.aclose()
            logger.info("redis_store_closed")
        finally:
            _redis_client = None
            _store_instance = None
