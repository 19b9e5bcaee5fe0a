"""
Session validation endpoint.
"""

from fastapi import APIRouter, Depends

from ticketing.schemas.session import SessionValidationResponse
from ticketing.services.session_validator import HttpAuthProvider, SessionValidator, get_auth_provider

router = APIRouter(prefix="/session", tags=["Session"])


@router.get("/validate", response_model=SessionValidationResponse)
async def validate_session(provider: HttpAuthProvider = Depends(get_auth_provider)):
    """
    Check the bearer token against the auth service.

    Always answers 200; `valid` and `error.retryable` tell the client
    whether to continue, retry, or send the user to log in again.
    """
    result = await SessionValidator(provider).validate_with_retry()
    return result.as_dict()
