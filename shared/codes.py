"""
Shared business codes used across layers (Domain/Core/Application).

This module provides a single source of truth to avoid drift between
multiple enum definitions scattered across the codebase.
"""
from enum import IntEnum


class BusinessCode(IntEnum):
    """业务状态码定义（单一来源）"""

    # 成功
    SUCCESS = 0

    # 业务错误 (2xxxx)
    TOKEN_EXPIRED = 20005
    REFRESH_TOKEN_INVALID = 20007
    REFRESH_TIMEOUT = 20008

    # 权限错误 (3xxxx)
    ACCOUNT_DISABLED = 30003

    # 系统错误 (4xxxx)
    STORE_UNAVAILABLE = 40004


__all__ = ["BusinessCode"]
