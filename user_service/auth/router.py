"""
Authentication router.

This module provides FastAPI router for authentication endpoints:
- User registration and login
- Session refresh and logout
- User profile management
- Doctor directory

Session tokens travel as http-only cookies; response bodies only carry
``{message, user}``.
"""
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Request, Response, status

from user_service.base_microservice import BaseMicroservice
from user_service.config import Settings
from user_service.auth.errors import AuthError, InternalError, MissingToken
from user_service.auth.jwt import AccessTokenPayload, SessionTokens
from user_service.auth.middleware import (
    ACCESS_TOKEN_COOKIE, REFRESH_TOKEN_COOKIE, RBACMiddleware, get_current_user
)
from user_service.auth.models import Role
from user_service.auth.users import (
    LoginRequest, ProfileUpdate, RefreshRequest, RegisterRequest, SessionManager
)

# Create router
router = APIRouter(tags=["auth"])

# Create service instance
base_service = BaseMicroservice("auth")


def get_session_manager(request: Request) -> SessionManager:
    return request.app.state.session_manager


def get_app_settings(request: Request) -> Settings:
    return request.app.state.settings


def _cookie_options(settings: Settings) -> Dict[str, Any]:
    return {
        "httponly": True,
        "secure": settings.cookie_secure,
        "samesite": settings.cookie_samesite,
        "path": settings.cookie_path,
    }


def set_session_cookies(response: Response, tokens: SessionTokens, settings: Settings):
    """Attach both tokens of a session pair as cookies."""
    options = _cookie_options(settings)
    response.set_cookie(
        ACCESS_TOKEN_COOKIE,
        tokens.access_token,
        max_age=settings.access_cookie_max_age,
        **options
    )
    response.set_cookie(
        REFRESH_TOKEN_COOKIE,
        tokens.refresh_token,
        max_age=settings.refresh_cookie_max_age,
        **options
    )


def clear_session_cookies(response: Response, settings: Settings):
    options = _cookie_options(settings)
    response.delete_cookie(ACCESS_TOKEN_COOKIE, **options)
    response.delete_cookie(REFRESH_TOKEN_COOKIE, **options)


# --- Session Endpoints ---

@router.post("/register", status_code=status.HTTP_201_CREATED)
async def register_user(
    user_data: RegisterRequest,
    response: Response,
    manager: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(get_app_settings)
):
    """
    Register a new user.

    Returns:
        Dict with message and user information; tokens are set as cookies
    """
    try:
        result = await manager.register(user_data)
    except AuthError:
        raise
    except Exception as e:
        base_service.log_error(e, context="User registration")
        raise InternalError("Registration failed")

    set_session_cookies(response, result.tokens, settings)

    base_service.log_event("user.registered", {
        "id": result.user.id,
        "role": result.user.role.value
    })

    return {
        "message": "User registered successfully",
        "user": result.user.to_wire()
    }


@router.post("/login")
async def login(
    login_data: LoginRequest,
    response: Response,
    manager: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(get_app_settings)
):
    """
    Authenticate a user.

    Returns:
        Dict with message and user information; tokens are set as cookies
    """
    try:
        result = await manager.login(login_data)
    except AuthError as e:
        # Log failed login attempt
        base_service.log_event("user.login.failed", {"reason": e.message})
        raise
    except Exception as e:
        base_service.log_error(e, context="User login")
        raise InternalError("Login failed")

    set_session_cookies(response, result.tokens, settings)

    base_service.log_event("user.login", {"id": result.user.id})

    return {
        "message": "Login successful",
        "user": result.user.to_wire()
    }


@router.post("/refresh")
async def refresh_token(
    request: Request,
    response: Response,
    body: Optional[RefreshRequest] = None,
    manager: SessionManager = Depends(get_session_manager),
    settings: Settings = Depends(get_app_settings)
):
    """
    Issue a new session pair from a refresh token.

    The refresh token is read from the ``refreshToken`` cookie, or from the
    JSON body when no cookie is present.
    """
    token = request.cookies.get(REFRESH_TOKEN_COOKIE)
    if not token and body is not None:
        token = body.refresh_token
    if not token:
        raise MissingToken("Refresh token required")

    try:
        result = await manager.refresh(token)
    except AuthError as e:
        base_service.log_event("token.refresh.failed", {"reason": e.message})
        raise
    except Exception as e:
        base_service.log_error(e, context="Token refresh")
        raise InternalError("Token refresh failed")

    set_session_cookies(response, result.tokens, settings)

    base_service.log_event("token.refreshed", {"id": result.user.id})

    return {
        "message": "Tokens refreshed successfully",
        "user": result.user.to_wire()
    }


@router.post("/logout")
async def logout(
    response: Response,
    settings: Settings = Depends(get_app_settings)
):
    """
    Clear the session cookies.

    Tokens are stateless, so a copy kept by the client stays valid until
    it expires.
    """
    clear_session_cookies(response, settings)
    base_service.log_event("user.logout")
    return {"message": "Logged out successfully"}


# --- Profile Endpoints ---

@router.get("/me")
async def get_current_user_info(
    token_data: AccessTokenPayload = Depends(get_current_user),
    manager: SessionManager = Depends(get_session_manager)
):
    """Get information about the current authenticated user."""
    try:
        user = await manager.get_by_id(token_data.user_id)
    except AuthError:
        raise
    except Exception as e:
        base_service.log_error(e, context="Get current user")
        raise InternalError("Failed to get user")

    return {"user": user.to_wire()}


@router.get("/doctors")
async def get_doctors(
    token_data: AccessTokenPayload = Depends(get_current_user),
    manager: SessionManager = Depends(get_session_manager)
):
    """List every user with the DOCTOR role."""
    try:
        doctors = await manager.list_doctors()
    except Exception as e:
        base_service.log_error(e, context="Get doctors")
        raise InternalError("Failed to get doctors")

    return {"doctors": [doctor.to_wire() for doctor in doctors]}


@router.patch("/profile")
async def update_profile(
    update_data: ProfileUpdate,
    token_data: AccessTokenPayload = Depends(get_current_user),
    manager: SessionManager = Depends(get_session_manager)
):
    """
    Update the current user's name, image or password.

    A password change needs both ``currentPassword`` and ``newPassword``.
    """
    try:
        user = await manager.update_profile(token_data.user_id, update_data)
    except AuthError:
        raise
    except Exception as e:
        base_service.log_error(e, context="Update profile")
        raise InternalError("Failed to update profile")

    base_service.log_event("user.updated", {
        "id": token_data.user_id,
        "fields": sorted(update_data.model_dump(exclude_unset=True).keys())
    })

    return {
        "message": "Profile updated successfully",
        "user": user.to_wire()
    }


@router.get("/users/{user_id}")
async def get_user(
    user_id: str,
    token_data: AccessTokenPayload = Depends(RBACMiddleware.has_roles([Role.DOCTOR, Role.ADMIN])),
    manager: SessionManager = Depends(get_session_manager)
):
    """Look up any user by id. Restricted to doctors and administrators."""
    try:
        user = await manager.get_by_id(user_id)
    except AuthError:
        raise
    except Exception as e:
        base_service.log_error(e, context="Get user")
        raise InternalError("Failed to get user")

    return {"user": user.to_wire()}


# --- Health Check ---

@router.get("/ping")
async def ping():
    """Health check endpoint for the auth service."""
    return {
        "status": "ok",
        "message": "Auth service is alive",
        "timestamp": datetime.now(timezone.utc).isoformat()
    }
