"""
访问令牌签发 - 无状态的短期 JWT
"""
from typing import Callable, Optional
from datetime import datetime, timedelta, timezone
import uuid

import jwt

from core.config import settings
from core.logging_config import get_logger
from domain.common.exceptions import TokenExpiredException


logger = get_logger(__name__)


class JWTAccessTokenIssuer:
    """使用 PyJWT 签发和校验访问令牌，不依赖TTL存储"""

    def __init__(
        self,
        secret_key: Optional[str] = None,
        algorithm: Optional[str] = None,
        expire_minutes: Optional[int] = None,
        clock: Callable[[], datetime] = lambda: datetime.now(timezone.utc),
    ):
        self._secret_key = secret_key or settings.SECRET_KEY
        self._algorithm = algorithm or settings.ALGORITHM
        self._expire = timedelta(
            minutes=expire_minutes if expire_minutes is not None else settings.ACCESS_TOKEN_EXPIRE_MINUTES
        )
        self._clock = clock

    @property
    def expires_in(self) -> int:
        """访问令牌有效期（秒）"""
        return int(self._expire.total_seconds())

    def mint(self, user_id: int) -> str:
        """创建访问令牌"""
        now = self._clock()
        to_encode = {
            "sub": str(user_id),
            "iat": now,
            "exp": now + self._expire,
            "type": "access",
            "jti": str(uuid.uuid4()),
        }
        return jwt.encode(to_encode, self._secret_key, algorithm=self._algorithm)

    def verify(self, token: str) -> Optional[int]:
        """Verify an access JWT and return the user id.

        - Expired token: raise TokenExpiredException
        - Invalid token or wrong type: return None
        """
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError:
            raise TokenExpiredException()
        except jwt.InvalidTokenError as e:
            logger.warning("invalid_access_token", error=str(e))
            return None

        if payload.get("type") != "access":
            return None

        user_id = payload.get("sub")
        if user_id is None:
            return None
        return int(user_id)
