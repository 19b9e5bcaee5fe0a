"""
Tests for session validation with exponential backoff.
"""

import time

import httpx
import pytest
from httpx import AsyncClient

from ticketing.core.errors import TerminalAuthError, TransientNetworkError
from ticketing.core.security import create_access_token
from ticketing.main import app
from ticketing.services.session_validator import (
    HttpAuthProvider,
    SessionValidator,
    get_auth_provider,
    is_session_expired,
)

USER = {"id": "user-1", "email": "visitor@example.com"}


class ScriptedProvider:
    """Fails get_user with the given exceptions in order, then succeeds."""

    def __init__(self, failures=(), user=USER, session=None):
        self.failures = list(failures)
        self.user = user
        self.session = session if session is not None else {"expires_at": time.time() + 3600}
        self.calls = 0

    async def get_user(self):
        self.calls += 1
        if self.failures:
            raise self.failures.pop(0)
        return self.user

    async def get_session(self):
        return self.session


class RecordingSleep:
    def __init__(self):
        self.delays = []

    async def __call__(self, seconds):
        self.delays.append(seconds)


@pytest.mark.asyncio
async def test_succeeds_after_network_failures_with_backoff():
    """Two network failures then success: three calls, waits of 1s then 2s."""
    provider = ScriptedProvider([TransientNetworkError("timeout"), ConnectionError("connection refused")])
    sleep = RecordingSleep()

    result = await SessionValidator(provider, sleep=sleep, base_delay=1.0).validate_with_retry(3)

    assert result.valid is True
    assert result.user == USER
    assert provider.calls == 3
    assert sleep.delays == [1.0, 2.0]


@pytest.mark.asyncio
async def test_gives_up_after_max_attempts():
    provider = ScriptedProvider([TransientNetworkError("dns lookup failed")] * 4)
    sleep = RecordingSleep()

    result = await SessionValidator(provider, sleep=sleep, base_delay=1.0).validate_with_retry(4)

    assert result.valid is False
    assert result.error.type == "network"
    assert result.error.retryable is True
    assert provider.calls == 4
    assert sleep.delays == [1.0, 2.0, 4.0]


@pytest.mark.asyncio
async def test_message_based_network_detection():
    provider = ScriptedProvider([RuntimeError("Failed to fetch")])
    result = await SessionValidator(provider, sleep=RecordingSleep()).validate_with_retry(2)
    assert result.valid is True
    assert provider.calls == 2


@pytest.mark.asyncio
async def test_authorization_failure_is_not_retried():
    provider = ScriptedProvider([TerminalAuthError("invalid JWT")])
    sleep = RecordingSleep()

    result = await SessionValidator(provider, sleep=sleep).validate_with_retry(3)

    assert result.valid is False
    assert result.error.type == "expired"
    assert result.error.retryable is False
    assert provider.calls == 1
    assert sleep.delays == []


@pytest.mark.asyncio
async def test_missing_user_counts_as_expired():
    provider = ScriptedProvider(user=None)
    result = await SessionValidator(provider, sleep=RecordingSleep()).validate_with_retry(3)
    assert result.error.type == "expired"
    assert provider.calls == 1


@pytest.mark.asyncio
async def test_unknown_failure_is_not_retried():
    provider = ScriptedProvider([KeyError("boom")])
    result = await SessionValidator(provider, sleep=RecordingSleep()).validate_with_retry(3)
    assert result.error.type == "unknown"
    assert result.error.retryable is False
    assert provider.calls == 1


@pytest.mark.asyncio
async def test_expired_session_is_rejected():
    provider = ScriptedProvider(session={"expires_at": time.time() - 10})
    result = await SessionValidator(provider, sleep=RecordingSleep()).validate_with_retry(3)
    assert result.valid is False
    assert result.error.type == "expired"


def test_session_without_expiry_is_live():
    assert is_session_expired({}) is False
    assert is_session_expired({"user_id": "u"}) is False
    assert is_session_expired({"expires_at": 100}, now=200) is True
    assert is_session_expired({"expires_at": 300}, now=200) is False


def _provider(status_code: int):
    token = create_access_token(data={"sub": "user-1"})
    transport = httpx.MockTransport(lambda request: httpx.Response(status_code, json=USER))
    return HttpAuthProvider(token, "https://auth.test", transport=transport)


@pytest.mark.asyncio
async def test_http_provider_classifies_responses():
    ok = _provider(200)
    assert await ok.get_user() == USER
    session = await ok.get_session()
    assert session["user_id"] == "user-1"
    assert session["expires_at"] > time.time()
    await ok.aclose()

    with pytest.raises(TerminalAuthError):
        await _provider(401).get_user()
    with pytest.raises(TransientNetworkError):
        await _provider(503).get_user()


@pytest.mark.asyncio
async def test_validate_endpoint(client: AsyncClient, auth_headers):
    async def override():
        provider = _provider(401)
        try:
            yield provider
        finally:
            await provider.aclose()

    app.dependency_overrides[get_auth_provider] = override

    response = await client.get("/api/v1/session/validate", headers=auth_headers)

    assert response.status_code == 200
    assert response.json()["valid"] is False
    assert response.json()["error"]["type"] == "expired"
    assert response.json()["error"]["retryable"] is False
