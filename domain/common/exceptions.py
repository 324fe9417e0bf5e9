"""领域层业务异常定义，供领域、应用与基础设施使用。

刷新流程本身以类型化结果返回失败（见 application.dto.RefreshResult），
这里的异常用于存储故障的传播，以及调用方选择以异常风格处理失败时的转换。
"""
from __future__ import annotations

from typing import Optional
from shared.codes import BusinessCode


class BusinessException(Exception):
    """业务异常基类"""

    def __init__(
        self,
        code: int,
        message: str,
        error_type: str = "BusinessError",
        details: Optional[dict] = None,
        field: Optional[str] = None,
        message_key: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message
        self.error_type = error_type
        self.details = details
        self.field = field
        self.message_key = message_key
        super().__init__(self.message)


class InvalidRefreshTokenException(BusinessException):
    """刷新令牌不存在、已撤销、已过期或已超过轮转宽限期"""

    def __init__(self, user_id: Optional[int] = None):
        details = {"user_id": user_id} if user_id is not None else None
        super().__init__(
            code=BusinessCode.REFRESH_TOKEN_INVALID,
            message="Invalid refresh token",
            error_type="InvalidRefreshToken",
            details=details,
            message_key="auth.refresh_token.invalid",
        )


class AccountDisabledException(BusinessException):
    """刷新时账户不存在或已被禁用"""

    def __init__(self, user_id: Optional[int] = None):
        details = {"user_id": user_id} if user_id is not None else None
        super().__init__(
            code=BusinessCode.ACCOUNT_DISABLED,
            message="User account is missing or disabled",
            error_type="AccountDisabled",
            details=details,
            message_key="user.disabled",
        )


class RefreshTimeoutException(BusinessException):
    """等待其他请求的刷新结果超时，客户端可稍后重试"""

    def __init__(self, user_id: Optional[int] = None, waited_seconds: Optional[float] = None):
        details = {}
        if user_id is not None:
            details["user_id"] = user_id
        if waited_seconds is not None:
            details["waited_seconds"] = waited_seconds
        super().__init__(
            code=BusinessCode.REFRESH_TIMEOUT,
            message="Timed out waiting for a concurrent token refresh",
            error_type="RefreshTimeout",
            details=details or None,
            message_key="auth.refresh.timeout",
        )


class StoreUnavailableException(BusinessException):
    """底层TTL存储不可用（不在内部重试）"""

    def __init__(self, operation: str, reason: Optional[str] = None):
        details = {"operation": operation}
        if reason:
            details["reason"] = reason
        super().__init__(
            code=BusinessCode.STORE_UNAVAILABLE,
            message="Credential store unavailable",
            error_type="StoreUnavailable",
            details=details,
            message_key="store.unavailable",
        )


class TokenExpiredException(BusinessException):
    """访问令牌已过期"""

    def __init__(self):
        super().__init__(
            code=BusinessCode.TOKEN_EXPIRED,
            message="Token expired",
            error_type="TokenExpired",
            message_key="auth.token.expired",
        )
