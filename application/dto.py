"""
数据传输对象（DTO）- 应用层与调用方之间的数据传输
"""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

from domain.common.exceptions import (
    AccountDisabledException,
    BusinessException,
    InvalidRefreshTokenException,
    RefreshTimeoutException,
    StoreUnavailableException,
)


class DTOBase(BaseModel):
    model_config = ConfigDict(frozen=True)


class TokenPair(DTOBase):
    """一次刷新的结果，也是共享缓存中的唯一编码格式"""
    access_token: str = Field(..., min_length=1)
    refresh_token: str = Field(..., min_length=1)
    token_type: str = "bearer"


class RotationResult(DTOBase):
    """轮转结果：令牌所属用户与继任刷新令牌"""
    user_id: int
    refresh_token: str


class RefreshFailureKind(str, Enum):
    INVALID_REFRESH_TOKEN = "invalid_refresh_token"
    ACCOUNT_DISABLED = "account_disabled"
    REFRESH_TIMEOUT = "refresh_timeout"
    STORE_UNAVAILABLE = "store_unavailable"

    @property
    def retryable(self) -> bool:
        """只有等待超时不涉及破坏性状态变更，可由客户端稍后重试；其余均需重新认证"""
        return self is RefreshFailureKind.REFRESH_TIMEOUT


class RefreshResult(DTOBase):
    """刷新结果：成功时携带 pair，失败时携带 failure"""
    pair: Optional[TokenPair] = None
    failure: Optional[RefreshFailureKind] = None
    user_id: Optional[int] = None

    @model_validator(mode="after")
    def _exactly_one_outcome(self):
        if (self.pair is None) == (self.failure is None):
            raise ValueError("RefreshResult 必须且只能包含 pair 或 failure 之一")
        return self

    @classmethod
    def success(cls, pair: TokenPair, user_id: Optional[int] = None) -> "RefreshResult":
        return cls(pair=pair, user_id=user_id)

    @classmethod
    def fail(cls, failure: RefreshFailureKind, user_id: Optional[int] = None) -> "RefreshResult":
        return cls(failure=failure, user_id=user_id)

    @property
    def ok(self) -> bool:
        return self.pair is not None

    def to_exception(self) -> Optional[BusinessException]:
        if self.failure is None:
            return None
        if self.failure is RefreshFailureKind.INVALID_REFRESH_TOKEN:
            return InvalidRefreshTokenException(self.user_id)
        if self.failure is RefreshFailureKind.ACCOUNT_DISABLED:
            return AccountDisabledException(self.user_id)
        if self.failure is RefreshFailureKind.REFRESH_TIMEOUT:
            return RefreshTimeoutException(self.user_id)
        return StoreUnavailableException("refresh")

    def raise_for_failure(self) -> TokenPair:
        """失败时抛出对应的业务异常，成功时返回 TokenPair"""
        exc = self.to_exception()
        if exc is not None:
            raise exc
        return self.pair
