"""
Token 刷新协调服务（分布式锁方案）

同一用户的并发刷新请求（多标签页、网络重试、后台刷新竞争）只会执行一次轮转：
- 持有分布式锁的请求（胜出者）执行轮转并把 TokenPair 写入共享缓存
- 未获得锁的请求（跟随者）轮询共享缓存，读取胜出者的结果
锁与缓存都保存在TTL存储中，保证跨进程实例的正确性。
"""
import asyncio
import uuid
from typing import Optional

from pydantic import ValidationError

from application.dto import RefreshFailureKind, RefreshResult, TokenPair
from application.ports.access_tokens import AccessTokenIssuer
from application.ports.accounts import AccountLookup
from application.ports.ttl_store import TTLStore
from application.services.refresh_token_service import RefreshTokenService
from core.config import TokenRefreshSettings, settings
from core.logging_config import get_logger
from domain.common.exceptions import StoreUnavailableException
from domain.token.entity import DeviceMeta


logger = get_logger(__name__)

LOCK_PREFIX = "token:refresh:lock:"
CACHE_PREFIX = "token:refresh:cache:"


def lock_key(user_id: int) -> str:
    return f"{LOCK_PREFIX}{user_id}"


def cache_key(user_id: int) -> str:
    return f"{CACHE_PREFIX}{user_id}"


class TokenRefreshService:
    """Token 刷新协调服务 - 唯一入口为 refresh()"""

    def __init__(
        self,
        *,
        refresh_tokens: RefreshTokenService,
        accounts: AccountLookup,
        access_tokens: AccessTokenIssuer,
        store: TTLStore,
        config: Optional[TokenRefreshSettings] = None,
    ) -> None:
        self._refresh_tokens = refresh_tokens
        self._accounts = accounts
        self._access_tokens = access_tokens
        self._store = store
        self._config = config or settings.token_refresh

    async def user_id_from_refresh_token(
        self, refresh_token: str, device: Optional[DeviceMeta] = None
    ) -> Optional[int]:
        """从刷新令牌解析用户ID（供传输层确定锁的粒度）"""
        return await self._refresh_tokens.validate(refresh_token, device)

    async def refresh(
        self,
        user_id: int,
        old_token: str,
        device: Optional[DeviceMeta] = None,
    ) -> RefreshResult:
        """
        使用分布式锁刷新 Token

        Returns:
            成功时 RefreshResult.pair 为新的 TokenPair；失败时 RefreshResult.failure 为失败类型。
            StoreUnavailable 以失败结果返回，其他异常在释放锁之后向上抛出。
        """
        try:
            return await self._refresh(user_id, old_token, device)
        except StoreUnavailableException as e:
            logger.error(
                "token_refresh_store_unavailable",
                user_id=user_id,
                details=e.details,
            )
            return RefreshResult.fail(RefreshFailureKind.STORE_UNAVAILABLE, user_id)

    async def _refresh(
        self,
        user_id: int,
        old_token: str,
        device: Optional[DeviceMeta],
    ) -> RefreshResult:
        # 0. 令牌必须有效且属于该用户，否则不创建锁也不读取缓存
        owner = await self._refresh_tokens.validate(old_token, device)
        if owner is None or owner != user_id:
            logger.warning(
                "token_refresh_rejected",
                user_id=user_id,
                owner_mismatch=owner is not None,
            )
            return RefreshResult.fail(RefreshFailureKind.INVALID_REFRESH_TOKEN, user_id)

        # 1. 检查缓存（可能已被其他请求刷新）
        cached = await self._read_cached_pair(user_id)
        if cached is not None:
            logger.info("token_refresh_cache_hit", user_id=user_id, stage="fast_path")
            return RefreshResult.success(cached, user_id)

        # 2. 尝试获取分布式锁
        owner_id = uuid.uuid4().hex
        acquired = await self._store.set_if_absent(
            lock_key(user_id),
            owner_id,
            ttl=self._config.lock_timeout.total_seconds(),
        )

        if acquired:
            return await self._refresh_with_lock_held(user_id, old_token, device, owner_id)

        logger.info("token_refresh_waiting", user_id=user_id)
        return await self._wait_for_cached_pair(user_id)

    async def _refresh_with_lock_held(
        self,
        user_id: int,
        old_token: str,
        device: Optional[DeviceMeta],
        owner_id: str,
    ) -> RefreshResult:
        """持有锁时执行刷新，任何退出路径都会释放锁"""
        logger.info("token_refresh_lock_acquired", user_id=user_id)
        try:
            # 双重检查缓存
            cached = await self._read_cached_pair(user_id)
            if cached is not None:
                logger.info("token_refresh_cache_hit", user_id=user_id, stage="double_check")
                return RefreshResult.success(cached, user_id)

            return await self._perform_refresh(user_id, old_token, device)
        finally:
            await self._release_lock(user_id, owner_id)

    async def _perform_refresh(
        self,
        user_id: int,
        old_token: str,
        device: Optional[DeviceMeta],
    ) -> RefreshResult:
        """执行实际的 Token 刷新"""
        rotation = await self._refresh_tokens.rotate(old_token, device)
        if rotation is None or rotation.user_id != user_id:
            logger.warning("token_refresh_invalid_token", user_id=user_id)
            return RefreshResult.fail(RefreshFailureKind.INVALID_REFRESH_TOKEN, user_id)

        # 轮转已发生且不回滚；账户不可用时丢弃本次结果
        account = await self._accounts.get_account(user_id)
        if not account.can_refresh:
            logger.warning(
                "token_refresh_account_disabled",
                user_id=user_id,
                exists=account.exists,
                enabled=account.enabled,
            )
            return RefreshResult.fail(RefreshFailureKind.ACCOUNT_DISABLED, user_id)

        pair = TokenPair(
            access_token=self._access_tokens.mint(user_id),
            refresh_token=rotation.refresh_token,
        )
        await self._store.set(
            cache_key(user_id),
            pair.model_dump(mode="json"),
            ttl=self._config.token_cache_ttl.total_seconds(),
        )
        logger.info("token_refresh_succeeded", user_id=user_id, refresh_token=pair.refresh_token)
        return RefreshResult.success(pair, user_id)

    async def _release_lock(self, user_id: int, owner_id: str) -> None:
        try:
            released = await self._store.delete_if_equals(lock_key(user_id), owner_id)
        except StoreUnavailableException as e:
            # 锁会在 lock_timeout 后自动过期
            logger.error("token_refresh_lock_release_failed", user_id=user_id, details=e.details)
            return
        if released:
            logger.debug("token_refresh_lock_released", user_id=user_id)
        else:
            logger.warning("token_refresh_lock_expired_before_release", user_id=user_id)

    async def _read_cached_pair(self, user_id: int) -> Optional[TokenPair]:
        raw = await self._store.get(cache_key(user_id))
        if raw is None:
            return None
        try:
            pair = TokenPair.model_validate(raw)
        except ValidationError as e:
            logger.warning("token_refresh_cache_corrupted", user_id=user_id, error=str(e))
            return None

        # 缓存期间令牌可能已被撤销（如登出所有设备），失效的结果按未命中处理
        if await self._refresh_tokens.validate(pair.refresh_token) != user_id:
            logger.warning("token_refresh_cache_stale", user_id=user_id, refresh_token=pair.refresh_token)
            return None
        return pair

    async def _wait_for_cached_pair(self, user_id: int) -> RefreshResult:
        """等待并从缓存获取 Token（非忙等，可被取消）"""
        attempts = self._config.wait_attempts
        interval = self._config.wait_interval
        try:
            for attempt in range(1, attempts + 1):
                await asyncio.sleep(interval)
                cached = await self._read_cached_pair(user_id)
                if cached is not None:
                    logger.info("token_refresh_cache_hit", user_id=user_id, stage="wait", attempt=attempt)
                    return RefreshResult.success(cached, user_id)
        except asyncio.CancelledError:
            logger.warning("token_refresh_wait_cancelled", user_id=user_id)
            raise

        logger.error(
            "token_refresh_wait_timeout",
            user_id=user_id,
            attempts=attempts,
            waited_seconds=self._config.max_wait_seconds,
        )
        return RefreshResult.fail(RefreshFailureKind.REFRESH_TIMEOUT, user_id)
