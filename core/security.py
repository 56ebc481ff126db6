"""
Bearer token 驗證（PyJWT）

帳號系統在外部，這裡只負責簽發 / 驗證 token。
Token claims：
- sub：使用者 ID（即 Exercise.facilitator_id）
- role：facilitator / admin
"""
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt

from database import get_settings

FACILITATOR_ROLES = ("facilitator", "admin")
DEFAULT_TOKEN_TTL = timedelta(hours=12)


class InvalidToken(Exception):
    """Token 無法驗證或缺少必要 claim"""
    pass


def create_access_token(user_id: str, role: str = "facilitator", expires_delta: Optional[timedelta] = None) -> str:
    settings = get_settings()
    expire = datetime.now(timezone.utc) + (expires_delta or DEFAULT_TOKEN_TTL)
    payload = {"sub": str(user_id), "role": role, "exp": expire}
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Dict[str, Any]:
    """
    驗證 token 並返回 claims

    異常：
        InvalidToken: 簽章錯誤、過期或缺少 sub
    """
    settings = get_settings()
    try:
        payload = jwt.decode(token, settings.jwt_secret, algorithms=[settings.jwt_algorithm])
    except jwt.PyJWTError as e:
        raise InvalidToken(str(e)) from e

    if not payload.get("sub"):
        raise InvalidToken("Token has no subject")
    return payload
