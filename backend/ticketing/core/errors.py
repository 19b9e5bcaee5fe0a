"""
Domain errors shared by services and routes.

Routes never translate these by hand: the handler registered in main.py
turns any DomainError into a JSON response carrying its status code.
"""

from fastapi import Request, status
from fastapi.responses import JSONResponse

from ticketing.core.logging import get_logger

logger = get_logger(__name__)


class DomainError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        self.message = message
        self.status_code = status_code
        super().__init__(message)


class AuthenticationError(DomainError):
    """Bad webhook signature or missing/invalid bearer token."""

    def __init__(self, message: str = "Invalid signature"):
        super().__init__(message, status.HTTP_401_UNAUTHORIZED)


class ForbiddenError(DomainError):
    def __init__(self, message: str = "Forbidden"):
        super().__init__(message, status.HTTP_403_FORBIDDEN)


class NotFoundError(DomainError):
    def __init__(self, message: str):
        super().__init__(message, status.HTTP_404_NOT_FOUND)


class ConflictError(DomainError):
    """Optimistic version mismatch on a capacity slot; retried inside the capacity store."""

    def __init__(self, message: str):
        super().__init__(message, status.HTTP_409_CONFLICT)


class ValidationError(DomainError):
    def __init__(self, message: str):
        super().__init__(message, status.HTTP_422_UNPROCESSABLE_ENTITY)


class GatewayError(DomainError):
    """The payment gateway could not be reached or answered with an error."""

    def __init__(self, message: str = "Failed to fetch payment status"):
        super().__init__(message, status.HTTP_502_BAD_GATEWAY)


class TransientNetworkError(Exception):
    """Retryable transport failure while talking to the auth service."""


class TerminalAuthError(Exception):
    """The credential is invalid or expired; retrying cannot help."""


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("domain_error", detail=exc.message, status_code=exc.status_code)
    else:
        logger.warning("domain_error", detail=exc.message, status_code=exc.status_code)
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


def register_exception_handlers(app) -> None:
    app.add_exception_handler(DomainError, domain_error_handler)
