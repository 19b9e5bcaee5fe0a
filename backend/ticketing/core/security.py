"""
Bearer-token helpers.

Access tokens are issued by the external auth service and signed with the
shared SECRET_KEY; this service only verifies them. create_access_token
exists for service-to-service calls and tests.
"""

import secrets
from datetime import timedelta
from typing import Optional

from fastapi import Depends, Header
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from jose import JWTError, jwt

from ticketing.core import timezone as tz
from ticketing.core.config import get_settings
from ticketing.core.errors import AuthenticationError

bearer_scheme = HTTPBearer(auto_error=False)


def create_access_token(data: dict, expires_minutes: int = 60) -> str:
    settings = get_settings()
    payload = dict(data)
    payload.setdefault("aud", settings.JWT_AUDIENCE)
    payload["exp"] = int((tz.utcnow() + timedelta(minutes=expires_minutes)).timestamp())
    return jwt.encode(payload, settings.SECRET_KEY, algorithm=settings.ALGORITHM)


def decode_access_token(token: str) -> dict:
    settings = get_settings()
    try:
        return jwt.decode(
            token,
            settings.SECRET_KEY,
            algorithms=[settings.ALGORITHM],
            audience=settings.JWT_AUDIENCE,
        )
    except JWTError as e:
        raise AuthenticationError("Invalid token") from e


def get_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(bearer_scheme),
) -> str:
    if credentials is None or not credentials.credentials:
        raise AuthenticationError("Missing authorization header")
    return credentials.credentials


def get_current_user_id(token: str = Depends(get_bearer_token)) -> str:
    claims = decode_access_token(token)
    user_id = claims.get("sub")
    if not user_id:
        raise AuthenticationError("Invalid token")
    return str(user_id)


def require_service_token(x_service_token: Optional[str] = Header(default=None)) -> None:
    """Guards job and admin endpoints triggered by the scheduler or operators."""
    expected = get_settings().SERVICE_TOKEN
    if not x_service_token or not secrets.compare_digest(x_service_token, expected):
        raise AuthenticationError("Invalid service token")
