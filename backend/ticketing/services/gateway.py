"""
Payment gateway contract: notification signatures and the status API.

The gateway signs each notification with
    SHA-512(order_id + status_code + gross_amount + server_key)
as a lowercase hex digest in `signature_key`. status_code and gross_amount
arrive either as JSON numbers or strings; both forms are normalised to the
gateway's canonical text ("200", "10000.00") before hashing.
"""

import base64
import hashlib
import hmac
from decimal import Decimal
from typing import Any, Optional

import httpx

from ticketing.core.config import get_settings
from ticketing.core.errors import GatewayError
from ticketing.core.logging import get_logger

logger = get_logger(__name__)


def normalize_status_code(value: Any) -> str:
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, (int, float, Decimal)):
        return str(int(value))
    return str(value)


def normalize_gross_amount(value: Any) -> str:
    if value is None or isinstance(value, bool):
        return ""
    if isinstance(value, (int, float, Decimal)):
        return f"{Decimal(str(value)):.2f}"
    return str(value)


def compute_signature(order_id: str, status_code: str, gross_amount: str, server_key: str) -> str:
    data = f"{order_id}{status_code}{gross_amount}{server_key}"
    return hashlib.sha512(data.encode("utf-8")).hexdigest()


def verify_signature(payload: dict, server_key: Optional[str] = None) -> bool:
    key = server_key if server_key is not None else get_settings().GATEWAY_SERVER_KEY
    received = str(payload.get("signature_key") or "")
    if not received:
        return False
    expected = compute_signature(
        str(payload.get("order_id") or ""),
        normalize_status_code(payload.get("status_code")),
        normalize_gross_amount(payload.get("gross_amount")),
        key,
    )
    return hmac.compare_digest(expected.encode(), received.lower().encode())


class GatewayClient:
    """Thin async client for the gateway's transaction status endpoint."""

    def __init__(self, base_url: str, server_key: str, timeout: float = 10.0, transport=None):
        token = base64.b64encode(f"{server_key}:".encode()).decode()
        self._client = httpx.AsyncClient(
            base_url=base_url,
            timeout=timeout,
            transport=transport,
            headers={
                "Accept": "application/json",
                "Content-Type": "application/json",
                "Authorization": f"Basic {token}",
            },
        )

    async def get_status(self, order_number: str) -> dict:
        try:
            response = await self._client.get(f"/v2/{order_number}/status")
        except httpx.HTTPError as e:
            logger.error("gateway_status_unreachable", order_number=order_number, error=str(e))
            raise GatewayError() from e

        if response.status_code >= 400:
            logger.error("gateway_status_failed", order_number=order_number, status_code=response.status_code)
            raise GatewayError()

        try:
            data = response.json()
        except ValueError as e:
            raise GatewayError("Gateway returned a malformed status payload") from e
        if not isinstance(data, dict):
            raise GatewayError("Gateway returned a malformed status payload")
        return data

    async def aclose(self) -> None:
        await self._client.aclose()


async def get_gateway_client():
    """FastAPI dependency yielding a client bound to the configured gateway."""
    settings = get_settings()
    client = GatewayClient(
        settings.GATEWAY_API_URL,
        settings.GATEWAY_SERVER_KEY,
        timeout=settings.GATEWAY_TIMEOUT_SECONDS,
    )
    try:
        yield client
    finally:
        await client.aclose()
