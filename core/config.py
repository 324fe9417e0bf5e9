"""
配置文件 - 项目配置管理
"""
from datetime import timedelta
from typing import Optional

from pydantic import AliasChoices, BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class RedisSettings(BaseModel):
    url: Optional[str] = None
    max_connections: int = 10
    namespace: str = "token-forge"


class TokenRefreshSettings(BaseModel):
    """刷新令牌轮转与并发刷新协调配置"""

    # 分布式锁超时（防止持锁进程崩溃后死锁）
    lock_timeout: timedelta = timedelta(seconds=5)
    # TokenPair 共享缓存时长（供并发请求读取胜出者的结果）
    token_cache_ttl: timedelta = timedelta(seconds=5)
    # RefreshToken 有效期
    refresh_token_ttl: timedelta = timedelta(days=7)
    # 轮转宽限期（旧 token 在并发窗口内短暂可用）
    grace_period: timedelta = timedelta(seconds=20)
    # 跟随者轮询缓存的次数与间隔（秒）
    wait_attempts: int = Field(default=50, ge=1)
    wait_interval: float = Field(default=0.1, gt=0)
    # 设备/IP 变化时是否拒绝（默认仅记录告警）
    enforce_device_match: bool = False

    @model_validator(mode="after")
    def _validate_cache_outlives_wait(self):
        # 缓存必须比跟随者的最长等待时间活得久，否则会出现虚假超时
        max_wait = self.wait_attempts * self.wait_interval
        if self.token_cache_ttl.total_seconds() < max_wait:
            raise ValueError(
                f"token_cache_ttl ({self.token_cache_ttl.total_seconds()}s) 必须不小于 "
                f"wait_attempts * wait_interval ({max_wait}s)"
            )
        if self.lock_timeout.total_seconds() <= 0:
            raise ValueError("lock_timeout 必须为正数")
        if self.grace_period.total_seconds() < 0:
            raise ValueError("grace_period 不能为负数")
        return self

    @property
    def max_wait_seconds(self) -> float:
        return self.wait_attempts * self.wait_interval


class Settings(BaseSettings):
    """项目配置"""

    # 基础配置
    PROJECT_NAME: str = Field(default="Token Rotation Forge")
    VERSION: str = Field(default="1.0.0")
    DEBUG: bool = Field(default=True)
    ENVIRONMENT: str = Field(default="development")

    # 分组配置：Redis/刷新协调 采用嵌套模型
    redis: RedisSettings = Field(default_factory=RedisSettings)
    token_refresh: TokenRefreshSettings = Field(default_factory=TokenRefreshSettings)

    # 安全配置
    SECRET_KEY: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("SECRET_KEY", "JWT_SECRET_KEY"),
        description="JWT签名密钥，生产环境必须设置"
    )
    ALGORITHM: str = Field(default="HS256", validation_alias=AliasChoices("ALGORITHM", "JWT_ALGORITHM"))
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(
        default=30,
        validation_alias=AliasChoices("ACCESS_TOKEN_EXPIRE_MINUTES", "JWT_EXPIRATION_MINUTES"),
    )  # 30分钟

    # pydantic-settings v2 configuration
    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False,
        extra="allow",
        env_nested_delimiter="__",
        populate_by_name=True,
    )

    @model_validator(mode="after")
    def _validate_secret_key(self):
        # 所有环境均要求显式配置 SECRET_KEY（或 JWT_SECRET_KEY），避免重启导致 Token 失效
        if not self.SECRET_KEY:
            raise ValueError(
                "SECRET_KEY 未配置。请在环境变量或 .env 中设置 SECRET_KEY（或 JWT_SECRET_KEY）"
            )
        return self


settings = Settings()
