"""
刷新令牌领域实体 - 包含令牌生命周期的核心业务规则
"""
from datetime import datetime, timedelta
from typing import Any, Dict, List, Optional
from dataclasses import dataclass, field


UNKNOWN = "unknown"


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


@dataclass(frozen=True)
class DeviceMeta:
    """签发时记录的客户端信息，仅用于异常检测"""

    ip_address: str = UNKNOWN
    user_agent: str = UNKNOWN

    @classmethod
    def of(cls, ip_address: Optional[str] = None, user_agent: Optional[str] = None) -> "DeviceMeta":
        return cls(ip_address=ip_address or UNKNOWN, user_agent=user_agent or UNKNOWN)

    def mismatches(self, current: Optional["DeviceMeta"]) -> List[str]:
        """返回与当前请求不一致的字段；任一侧为 unknown 的字段不参与比较"""
        if current is None:
            return []
        changed = []
        for name in ("ip_address", "user_agent"):
            original, now = getattr(self, name), getattr(current, name)
            if UNKNOWN in (original, now):
                continue
            if original != now:
                changed.append(name)
        return changed


@dataclass
class RefreshTokenRecord:
    """刷新令牌记录 - 每个签发的刷新令牌对应一条"""

    token: str
    user_id: int
    device: DeviceMeta
    created_at: datetime
    expires_at: datetime
    rotated: bool = False
    rotated_at: Optional[datetime] = None
    replaced_by: Optional[str] = None
    grace_expires_at: Optional[datetime] = None
    revoked: bool = False
    revoked_at: Optional[datetime] = None
    updated_at: Optional[datetime] = field(default=None)

    @classmethod
    def issue(
        cls,
        token: str,
        user_id: int,
        device: DeviceMeta,
        now: datetime,
        lifetime: timedelta,
    ) -> "RefreshTokenRecord":
        return cls(
            token=token,
            user_id=user_id,
            device=device,
            created_at=now,
            expires_at=now + lifetime,
            updated_at=now,
        )

    def is_expired(self, now: datetime) -> bool:
        return now > self.expires_at

    def in_grace(self, now: datetime) -> bool:
        """业务规则：已轮转的令牌在宽限期截止时刻（含）之前仍可用"""
        if not self.rotated or self.grace_expires_at is None:
            return False
        return now <= self.grace_expires_at

    def is_usable(self, now: datetime) -> bool:
        """业务规则：未撤销、未过期，且未轮转或仍处于宽限期"""
        if self.revoked or self.is_expired(now):
            return False
        return not self.rotated or self.in_grace(now)

    def mark_rotated(self, successor: str, now: datetime, grace_period: timedelta) -> None:
        """业务规则：标记为已轮转，一个令牌只能有一个继任者"""
        if self.rotated:
            raise ValueError("刷新令牌已经轮转，不能再次生成继任者")
        self.rotated = True
        self.rotated_at = now
        self.replaced_by = successor
        self.grace_expires_at = now + grace_period
        self.updated_at = now

    def remaining_lifetime(self, now: datetime) -> timedelta:
        return max(self.expires_at - now, timedelta(0))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "token": self.token,
            "user_id": self.user_id,
            "ip_address": self.device.ip_address,
            "user_agent": self.device.user_agent,
            "created_at": _iso(self.created_at),
            "expires_at": _iso(self.expires_at),
            "rotated": self.rotated,
            "rotated_at": _iso(self.rotated_at),
            "replaced_by": self.replaced_by,
            "grace_expires_at": _iso(self.grace_expires_at),
            "revoked": self.revoked,
            "revoked_at": _iso(self.revoked_at),
            "updated_at": _iso(self.updated_at),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RefreshTokenRecord":
        return cls(
            token=data["token"],
            user_id=int(data["user_id"]),
            device=DeviceMeta.of(data.get("ip_address"), data.get("user_agent")),
            created_at=_parse(data["created_at"]),
            expires_at=_parse(data["expires_at"]),
            rotated=bool(data.get("rotated", False)),
            rotated_at=_parse(data.get("rotated_at")),
            replaced_by=data.get("replaced_by"),
            grace_expires_at=_parse(data.get("grace_expires_at")),
            revoked=bool(data.get("revoked", False)),
            revoked_at=_parse(data.get("revoked_at")),
            updated_at=_parse(data.get("updated_at")),
        )
