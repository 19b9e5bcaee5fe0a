"""
Pydantic schemas for session validation results.
"""

from typing import Any, Optional
from pydantic import BaseModel


class SessionErrorResponse(BaseModel):
    type: str
    retryable: bool
    message: Optional[str] = None


class SessionValidationResponse(BaseModel):
    valid: bool
    user: Optional[dict[str, Any]] = None
    session: Optional[dict[str, Any]] = None
    error: Optional[SessionErrorResponse] = None
