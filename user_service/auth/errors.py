"""
Error kinds raised by the authentication core.

Every failure that reaches the transport layer is one of the ``AuthError``
subclasses below. Each carries the HTTP status it maps to and a short
message that is safe to show to the caller.
"""
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse


class AuthError(Exception):
    """Base class for errors surfaced to API callers."""
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Request failed"

    def __init__(self, message: str = None):
        self.message = message or self.message
        super().__init__(self.message)


class ValidationError(AuthError):
    status_code = status.HTTP_400_BAD_REQUEST
    message = "Invalid request"


class DuplicateEmail(AuthError):
    status_code = status.HTTP_409_CONFLICT
    message = "User with this email already exists"


class InvalidCredentials(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Invalid email or password"


class InvalidToken(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Invalid or expired token"


class UserNotFound(AuthError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "User not found"


class SessionUserNotFound(UserNotFound):
    """The user behind a verified refresh token no longer exists; ends the session."""
    status_code = status.HTTP_401_UNAUTHORIZED


class MissingToken(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Access token required"


class Unauthorized(AuthError):
    status_code = status.HTTP_401_UNAUTHORIZED
    message = "Invalid or expired access token"


class Forbidden(AuthError):
    status_code = status.HTTP_403_FORBIDDEN
    message = "Insufficient permissions"


class InternalError(AuthError):
    status_code = status.HTTP_500_INTERNAL_SERVER_ERROR
    message = "Internal server error"


class Conflict(Exception):
    """Raised by a user store when a unique constraint is violated."""


def _describe_validation_error(exc: RequestValidationError) -> str:
    fields = []
    for error in exc.errors():
        loc = [str(part) for part in error.get("loc", ()) if part != "body"]
        if loc:
            fields.append(".".join(loc))
    if not fields:
        return ValidationError.message
    return "Invalid or missing fields: " + ", ".join(sorted(set(fields)))


def register_exception_handlers(app: FastAPI):
    """Install handlers that render errors as ``{"error": message}``."""

    @app.exception_handler(AuthError)
    async def handle_auth_error(request: Request, exc: AuthError):
        headers = None
        if exc.status_code == status.HTTP_401_UNAUTHORIZED:
            headers = {"WWW-Authenticate": "Bearer"}
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.message},
            headers=headers,
        )

    @app.exception_handler(RequestValidationError)
    async def handle_request_validation(request: Request, exc: RequestValidationError):
        return JSONResponse(
            status_code=ValidationError.status_code,
            content={"error": _describe_validation_error(exc)},
        )
