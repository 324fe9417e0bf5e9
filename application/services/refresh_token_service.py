"""
刷新令牌服务 - 处理刷新令牌的签发、校验、轮转与撤销
"""
from typing import Callable, Optional
from datetime import datetime, timedelta, timezone
import uuid

from application.dto import RotationResult
from application.ports.ttl_store import TTLStore
from core.config import TokenRefreshSettings, settings
from core.logging_config import get_logger
from domain.token.entity import DeviceMeta, RefreshTokenRecord


logger = get_logger(__name__)

TOKEN_PREFIX = "refresh_token:"
USER_TOKENS_PREFIX = "user_tokens:"


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


def token_key(token: str) -> str:
    return f"{TOKEN_PREFIX}{token}"


def user_tokens_key(user_id: int) -> str:
    return f"{USER_TOKENS_PREFIX}{user_id}"


class RefreshTokenService:
    """
    刷新令牌服务 - 实现带宽限期的刷新令牌轮转（Refresh Token Rotation）

    特性：
    1. 令牌为不可猜测的随机串，记录保存在TTL存储中，过期自动清除
    2. 轮转后旧令牌在宽限期内仍可通过校验，容忍客户端并发重试
    3. 宽限期内重复轮转是幂等的：返回同一个继任令牌，不会生成第二个
    4. 每个用户维护令牌索引，支持一键撤销全部令牌

    本服务只负责令牌生命周期，不接触刷新锁与共享结果缓存；存储故障直接向上抛出，不做重试。
    """

    def __init__(
        self,
        store: TTLStore,
        config: Optional[TokenRefreshSettings] = None,
        clock: Callable[[], datetime] = _utc_now,
    ):
        self._store = store
        self._config = config or settings.token_refresh
        self._clock = clock

    def _generate_token(self) -> str:
        """生成不可猜测、不会复用的刷新令牌"""
        return uuid.uuid4().hex

    async def _load(self, token: str) -> Optional[RefreshTokenRecord]:
        if not token:
            return None
        data = await self._store.get(token_key(token))
        if data is None:
            return None
        return RefreshTokenRecord.from_dict(data)

    async def _save(self, record: RefreshTokenRecord, ttl: timedelta) -> None:
        await self._store.set(token_key(record.token), record.to_dict(), ttl=ttl.total_seconds())

    async def _issue(self, user_id: int, device: DeviceMeta, now: datetime) -> str:
        token = self._generate_token()
        lifetime = self._config.refresh_token_ttl
        record = RefreshTokenRecord.issue(token, user_id, device, now, lifetime)

        await self._save(record, lifetime)
        # 索引的TTL随最新（寿命最长）的成员刷新
        await self._store.add_to_set(
            user_tokens_key(user_id), token, ttl=lifetime.total_seconds()
        )

        logger.debug("refresh_token_created", user_id=user_id, token=token)
        return token

    async def issue(self, user_id: int, device: Optional[DeviceMeta] = None) -> str:
        """
        签发新的刷新令牌并写入用户索引

        Args:
            user_id: 用户ID
            device: 签发时的客户端信息（IP、User-Agent）

        Returns:
            刷新令牌字符串
        """
        return await self._issue(user_id, device or DeviceMeta(), self._clock())

    def _check(
        self,
        record: Optional[RefreshTokenRecord],
        token: str,
        now: datetime,
        device: Optional[DeviceMeta],
    ) -> Optional[int]:
        """校验记录是否可用于认证，可用时返回用户ID"""
        if record is None:
            logger.warning("refresh_token_not_found", token=token)
            return None

        user_id = record.user_id

        if record.revoked:
            logger.warning("refresh_token_revoked", user_id=user_id, token=token)
            return None

        mismatched = record.device.mismatches(device)
        if mismatched:
            logger.warning(
                "refresh_token_device_mismatch",
                user_id=user_id,
                token=token,
                fields=mismatched,
                original_ip=record.device.ip_address,
                current_ip=device.ip_address,
                enforced=self._config.enforce_device_match,
            )
            if self._config.enforce_device_match:
                return None

        if record.is_expired(now):
            logger.warning("refresh_token_expired", user_id=user_id, token=token)
            return None

        if not record.rotated:
            return user_id

        if record.in_grace(now):
            remaining = max((record.grace_expires_at - now).total_seconds(), 0.0)
            logger.debug(
                "refresh_token_in_grace",
                user_id=user_id,
                token=token,
                remaining_seconds=remaining,
            )
            return user_id

        logger.warning("refresh_token_rotated_past_grace", user_id=user_id, token=token)
        return None

    async def validate(self, token: str, device: Optional[DeviceMeta] = None) -> Optional[int]:
        """校验刷新令牌（只读），有效时返回用户ID，否则返回 None"""
        record = await self._load(token)
        return self._check(record, token, self._clock(), device)

    async def rotate(
        self,
        old_token: str,
        device: Optional[DeviceMeta] = None,
    ) -> Optional[RotationResult]:
        """
        刷新令牌轮转

        流程：
        1. 按 validate 的规则重新校验旧令牌，无效返回 None
        2. 已轮转且处于宽限期：直接返回已有的继任令牌（幂等）
        3. 未轮转：先签发继任令牌，再标记旧令牌已轮转并设置宽限期截止时间
        4. 旧记录的TTL至少保留一个宽限期，保证宽限期内仍可查询
        5. 轮转期间旧令牌被撤销：删除新旧两条记录并返回 None
        """
        now = self._clock()
        record = await self._load(old_token)
        user_id = self._check(record, old_token, now, device)
        if user_id is None:
            return None

        if record.rotated:
            logger.info(
                "refresh_token_rotation_replayed",
                user_id=user_id,
                old_token=old_token,
                new_token=record.replaced_by,
            )
            return RotationResult(user_id=user_id, refresh_token=record.replaced_by)

        # 继任记录必须先于旧记录的 replaced_by 存在
        new_token = await self._issue(user_id, device or record.device, now)

        grace_period = self._config.grace_period
        record.mark_rotated(new_token, now, grace_period)
        await self._save(record, max(record.remaining_lifetime(now), grace_period))

        # 轮转期间旧令牌被撤销时，上面的写入会让它复活：撤销会把旧令牌移出用户索引
        if old_token not in await self._store.members_of(user_tokens_key(user_id)):
            await self._discard(user_id, old_token, new_token)
            logger.warning(
                "refresh_token_revoked_during_rotation",
                user_id=user_id,
                old_token=old_token,
                new_token=new_token,
            )
            return None

        logger.info(
            "refresh_token_rotated",
            user_id=user_id,
            old_token=old_token,
            new_token=new_token,
            grace_expires_at=record.grace_expires_at.isoformat(),
        )
        return RotationResult(user_id=user_id, refresh_token=new_token)

    async def rotate_simple(self, old_token: str, device: Optional[DeviceMeta] = None) -> Optional[str]:
        """轮转刷新令牌（仅返回新令牌）"""
        result = await self.rotate(old_token, device)
        return result.refresh_token if result else None

    async def _discard(self, user_id: int, *tokens: str) -> None:
        index_key = user_tokens_key(user_id)
        for token in tokens:
            await self._store.delete(token_key(token))
            await self._store.remove_from_set(index_key, token)

    async def revoke(self, token: str) -> bool:
        """撤销单个刷新令牌（用户登出），不存在时不做任何处理"""
        record = await self._load(token)
        if record is None:
            return False

        await self._discard(record.user_id, token)

        logger.info("refresh_token_revoked", user_id=record.user_id, token=token)
        return True

    async def revoke_all(self, user_id: int) -> int:
        """撤销用户所有刷新令牌（登出所有设备/安全事件）"""
        index_key = user_tokens_key(user_id)
        tokens = await self._store.members_of(index_key)

        count = 0
        for token in tokens:
            if await self._store.delete(token_key(token)):
                count += 1
        await self._store.delete(index_key)

        logger.info("user_refresh_tokens_revoked", user_id=user_id, count=count)
        return count
