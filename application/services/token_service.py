"""
令牌服务 - 签发与校验认证 JWT
"""
from typing import Any, Dict, Optional
from datetime import datetime, timedelta, timezone
import jwt
import uuid

from domain.user.entity import User
from core.config import settings
from core.logging_config import get_logger


logger = get_logger(__name__)

TOKEN_TYPE = "access"


class TokenService:
    """Stateless JWT issuance/verification.

    Tokens carry enough claims (`sub`, `google_id`, `email`) for the user to
    be located again even if one of the identifiers changed.
    """

    def __init__(self, secret_key: Optional[str] = None, algorithm: Optional[str] = None,
                 expire_days: Optional[int] = None) -> None:
        self._secret_key = secret_key or settings.SECRET_KEY
        self._algorithm = algorithm or settings.ALGORITHM
        self._expire_days = expire_days if expire_days is not None else settings.AUTH_TOKEN_EXPIRE_DAYS

    def create_auth_token(self, user: User) -> str:
        """创建认证令牌"""
        expire = datetime.now(timezone.utc) + timedelta(days=self._expire_days)
        to_encode = {
            "sub": str(user.id),
            "google_id": user.google_id,
            "email": user.email,
            "username": user.username,
            "role": user.role,
            "name": user.display_name or user.username,
            "picture": user.picture or "",
            "exp": expire,
            "type": TOKEN_TYPE,
            "jti": str(uuid.uuid4()),
        }
        return jwt.encode(to_encode, self._secret_key, algorithm=self._algorithm)

    def verify_auth_token(self, token: Optional[str]) -> Optional[Dict[str, Any]]:
        """Return the token's claims, or None if it is missing, invalid or expired.

        Never raises: callers classify a None result themselves.
        """
        if not token or not isinstance(token, str):
            return None
        try:
            payload = jwt.decode(token, self._secret_key, algorithms=[self._algorithm])
        except jwt.ExpiredSignatureError:
            logger.info("auth_token_expired")
            return None
        except jwt.InvalidTokenError as exc:
            logger.info("auth_token_invalid", error=str(exc))
            return None

        if payload.get("type") != TOKEN_TYPE:
            return None
        return payload
