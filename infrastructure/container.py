"""
依赖装配 - 根据配置组装TTL存储、刷新令牌服务与刷新协调服务
"""
from typing import Optional

from application.ports.access_tokens import AccessTokenIssuer
from application.ports.accounts import AccountLookup
from application.ports.ttl_store import TTLStore
from application.services.refresh_token_service import RefreshTokenService
from application.services.token_refresh_service import TokenRefreshService
from core.config import settings
from core.logging_config import get_logger
from infrastructure.cache import InMemoryTTLStore, get_redis_store, shutdown_redis_store
from infrastructure.security.jwt_issuer import JWTAccessTokenIssuer


logger = get_logger(__name__)

_memory_store: Optional[InMemoryTTLStore] = None


async def get_ttl_store() -> TTLStore:
    """配置了 Redis 时使用 Redis，否则退回单进程内存存储（仅限开发环境）"""
    global _memory_store

    if settings.redis.url:
        return await get_redis_store()

    if _memory_store is None:
        logger.warning("ttl_store_in_memory", reason="redis.url not configured")
        _memory_store = InMemoryTTLStore()
    return _memory_store


async def shutdown_ttl_store() -> None:
    """关闭 get_ttl_store 创建的存储（应用退出时调用）"""
    global _memory_store

    if settings.redis.url:
        await shutdown_redis_store()
    if _memory_store is not None:
        await _memory_store.aclose()
        _memory_store = None


async def get_refresh_token_service(store: Optional[TTLStore] = None) -> RefreshTokenService:
    return RefreshTokenService(store or await get_ttl_store())


async def get_token_refresh_service(
    accounts: AccountLookup,
    *,
    access_tokens: Optional[AccessTokenIssuer] = None,
    store: Optional[TTLStore] = None,
) -> TokenRefreshService:
    store = store or await get_ttl_store()
    return TokenRefreshService(
        refresh_tokens=await get_refresh_token_service(store),
        accounts=accounts,
        access_tokens=access_tokens or JWTAccessTokenIssuer(),
        store=store,
    )


__all__ = [
    "get_ttl_store",
    "shutdown_ttl_store",
    "get_refresh_token_service",
    "get_token_refresh_service",
]
