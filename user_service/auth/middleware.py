"""
Authentication middleware.

This module provides:
- Bearer token extraction (Authorization header, then cookie)
- Access token validation
- Role-based access control
"""
from typing import FrozenSet, Iterable, Optional

from fastapi import Depends, Request

from user_service.auth.errors import Forbidden, InvalidToken, MissingToken, Unauthorized
from user_service.auth.jwt import AccessTokenPayload, TokenCodec
from user_service.auth.models import Role

ACCESS_TOKEN_COOKIE = "accessToken"
REFRESH_TOKEN_COOKIE = "refreshToken"


def extract_bearer_token(request: Request) -> Optional[str]:
    """Return the access token, preferring the Authorization header."""
    auth_header = request.headers.get("Authorization")
    if auth_header and auth_header.startswith("Bearer "):
        token = auth_header[len("Bearer "):].strip()
        if token:
            return token
    return request.cookies.get(ACCESS_TOKEN_COOKIE) or None


class AccessGuard:
    """
    Authenticates requests from their access token and checks roles.

    Args:
        codec: Token codec used to verify access tokens
    """

    def __init__(self, codec: TokenCodec):
        self.codec = codec

    def authenticate(self, request: Request) -> AccessTokenPayload:
        """
        Verify the request's access token and attach the identity to it.

        Expired, malformed and badly signed tokens are rejected alike.

        Raises:
            MissingToken: If the request carries no token
            Unauthorized: If the token does not verify
        """
        token = extract_bearer_token(request)
        if token is None:
            raise MissingToken()
        try:
            identity = self.codec.verify_access(token)
        except InvalidToken:
            raise Unauthorized()
        request.state.user = identity
        return identity

    @staticmethod
    def authorize(identity: AccessTokenPayload, allowed_roles: FrozenSet[Role]) -> AccessTokenPayload:
        """Fail with Forbidden unless the identity's role is in the allowed set."""
        if identity.role not in allowed_roles:
            raise Forbidden()
        return identity


async def get_current_user(request: Request) -> AccessTokenPayload:
    """
    FastAPI dependency to get the current authenticated user from token.

    Returns:
        Claims of the verified access token
    """
    guard: AccessGuard = request.app.state.access_guard
    return guard.authenticate(request)


class RBACMiddleware:
    """Creates FastAPI dependencies for protecting routes by role."""

    @staticmethod
    def has_roles(roles: Iterable[Role]):
        """
        Dependency to check if the user has one of the specified roles.

        Args:
            roles: Allowed roles (any match is sufficient)

        Returns:
            Dependency function
        """
        allowed = frozenset(roles)
        for role in allowed:
            if not isinstance(role, Role):
                raise TypeError(f"Unknown role: {role!r}")

        async def verify_roles(token_data: AccessTokenPayload = Depends(get_current_user)):
            return AccessGuard.authorize(token_data, allowed)

        return verify_roles
