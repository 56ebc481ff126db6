"""
API 共用 dependency

- get_current_user：驗證 bearer token，取得 user.id / role
- facilitator_only：只允許 facilitator / admin
- get_broadcaster：取得 process 唯一的 RealtimeBroadcaster
"""
from dataclasses import dataclass
from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from core.broadcaster import RealtimeBroadcaster
from core.security import FACILITATOR_ROLES, InvalidToken, decode_access_token

bearer = HTTPBearer(auto_error=False)


@dataclass
class AuthUser:
    id: str
    role: str


def get_current_user(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer)
) -> AuthUser:
    unauthorized = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )
    if credentials is None:
        raise unauthorized

    try:
        payload = decode_access_token(credentials.credentials)
    except InvalidToken:
        raise unauthorized

    return AuthUser(id=str(payload["sub"]), role=payload.get("role", ""))


def facilitator_only(user: AuthUser = Depends(get_current_user)) -> AuthUser:
    if user.role not in FACILITATOR_ROLES:
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Facilitator access required")
    return user


def get_broadcaster(request: Request) -> RealtimeBroadcaster:
    return request.app.state.broadcaster
