"""
Session validator: checks the caller's authentication state against the
auth service, retrying transport failures with exponential backoff.

Failures are classified, not just counted:
  network  - timeout / connection / DNS trouble, retried; retryable=True
  expired  - the credential is invalid or the session has run out, one call
  unknown  - anything else, one call

The retry ladder is sequential and bounded by attempt count only. Callers
that need a wall-clock deadline wrap validate_with_retry themselves.
"""

import asyncio
import time
from dataclasses import asdict, dataclass
from typing import Any, Awaitable, Callable, Optional, Protocol

import httpx
from fastapi import Depends
from jose import JWTError, jwt

from ticketing.core.config import get_settings
from ticketing.core.errors import TerminalAuthError, TransientNetworkError
from ticketing.core.logging import get_logger
from ticketing.core.metrics import record_session_attempt
from ticketing.core.security import get_bearer_token

logger = get_logger(__name__)

NETWORK_ERROR_MARKERS = ("timeout", "timed out", "network", "connection", "dns", "fetch")


@dataclass
class SessionError:
    type: str
    retryable: bool
    message: Optional[str] = None


@dataclass
class SessionValidationResult:
    valid: bool
    user: Optional[dict] = None
    session: Optional[dict] = None
    error: Optional[SessionError] = None

    def as_dict(self) -> dict:
        return asdict(self)


class AuthProvider(Protocol):
    async def get_user(self) -> Optional[dict]: ...

    async def get_session(self) -> Optional[dict]: ...


def is_network_error(exc: BaseException) -> bool:
    if isinstance(exc, (TransientNetworkError, httpx.TransportError, asyncio.TimeoutError, ConnectionError)):
        return True
    message = str(exc).lower()
    return any(marker in message for marker in NETWORK_ERROR_MARKERS)


def is_session_expired(session: Optional[dict], now: Optional[float] = None) -> bool:
    """Sessions without expires_at are treated as live."""
    if not session:
        return False
    expires_at = session.get("expires_at")
    if expires_at is None:
        return False
    current = time.time() if now is None else now
    return float(expires_at) <= current


class SessionValidator:
    def __init__(
        self,
        auth_provider: AuthProvider,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        base_delay: Optional[float] = None,
    ):
        self.auth_provider = auth_provider
        self._sleep = sleep
        self.base_delay = base_delay if base_delay is not None else get_settings().SESSION_RETRY_BASE_SECONDS

    async def validate_with_retry(self, max_attempts: Optional[int] = None) -> SessionValidationResult:
        attempts = max_attempts or get_settings().SESSION_RETRY_MAX_ATTEMPTS
        last_error: Optional[BaseException] = None

        for attempt in range(1, attempts + 1):
            try:
                user = await self.auth_provider.get_user()
            except TerminalAuthError as e:
                record_session_attempt("expired")
                logger.info("session_auth_rejected", attempt=attempt, error=str(e))
                return SessionValidationResult(valid=False, error=SessionError("expired", False, str(e)))
            except Exception as e:
                if not is_network_error(e):
                    record_session_attempt("unknown")
                    logger.warning("session_check_failed", attempt=attempt, error=str(e))
                    return SessionValidationResult(valid=False, error=SessionError("unknown", False, str(e)))

                record_session_attempt("network")
                last_error = e
                if attempt < attempts:
                    delay = self.base_delay * (2 ** (attempt - 1))
                    logger.info("session_check_retry", attempt=attempt, delay_seconds=delay, error=str(e))
                    await self._sleep(delay)
                continue

            if not user:
                record_session_attempt("expired")
                return SessionValidationResult(
                    valid=False, error=SessionError("expired", False, "No authenticated user")
                )

            session = await self.auth_provider.get_session()
            if is_session_expired(session):
                record_session_attempt("expired")
                return SessionValidationResult(
                    valid=False, user=user, error=SessionError("expired", False, "Session expired")
                )

            record_session_attempt("success")
            return SessionValidationResult(valid=True, user=user, session=session)

        logger.warning("session_check_exhausted", attempts=attempts, error=str(last_error))
        return SessionValidationResult(
            valid=False,
            error=SessionError("network", True, str(last_error) if last_error else None),
        )


class HttpAuthProvider:
    """Talks to the external auth service on behalf of one bearer token."""

    def __init__(self, token: str, base_url: str, api_key: str = "", timeout: float = 5.0, transport=None):
        self.token = token
        headers = {"Authorization": f"Bearer {token}"}
        if api_key:
            headers["apikey"] = api_key
        self._client = httpx.AsyncClient(base_url=base_url, timeout=timeout, headers=headers, transport=transport)

    async def get_user(self) -> Optional[dict]:
        try:
            response = await self._client.get("/auth/v1/user")
        except httpx.TransportError as e:
            raise TransientNetworkError(f"Auth service unreachable: {e}") from e

        if response.status_code in (401, 403):
            raise TerminalAuthError("Invalid or expired credential")
        if response.status_code >= 500:
            raise TransientNetworkError(f"Auth service error {response.status_code}")
        if response.status_code >= 400:
            raise RuntimeError(f"Unexpected auth service response {response.status_code}")
        return response.json() or None

    async def get_session(self) -> Optional[dict]:
        try:
            claims = jwt.get_unverified_claims(self.token)
        except JWTError:
            return None
        session = {"user_id": claims.get("sub")}
        if claims.get("exp") is not None:
            session["expires_at"] = claims["exp"]
        return session

    async def aclose(self) -> None:
        await self._client.aclose()


async def get_auth_provider(token: str = Depends(get_bearer_token)):
    """FastAPI dependency yielding a provider for the request's bearer token."""
    settings = get_settings()
    provider = HttpAuthProvider(
        token,
        settings.AUTH_URL,
        api_key=settings.AUTH_API_KEY,
        timeout=settings.AUTH_TIMEOUT_SECONDS,
    )
    try:
        yield provider
    finally:
        await provider.aclose()
