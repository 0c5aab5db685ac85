"""
JWT token handling for authentication.

This module provides functionality for:
- Creating access and refresh tokens
- Verifying access and refresh tokens

Access and refresh tokens are signed with different secrets and carry a
``type`` claim, so one can never be accepted in place of the other. No token
state is kept on the server: a token is valid while its signature checks out
and it has not expired. There is no revocation list, so logging out does not
invalidate a token the client still holds.
"""
import uuid
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from jwt.exceptions import PyJWTError
from pydantic import BaseModel, ConfigDict
from pydantic import ValidationError as PydanticValidationError

from user_service.config import Settings
from user_service.auth.errors import InvalidToken
from user_service.auth.models import Role

ACCESS_TOKEN_TYPE = "access"
REFRESH_TOKEN_TYPE = "refresh"


class AccessTokenPayload(BaseModel):
    """Identity claims carried by an access token."""
    model_config = ConfigDict(frozen=True)

    user_id: str
    email: str
    name: str
    role: Role


class RefreshTokenPayload(BaseModel):
    """A refresh token only names the user; everything else is re-read."""
    model_config = ConfigDict(frozen=True)

    user_id: str


class SessionTokens(BaseModel):
    """The access/refresh pair issued together by every session flow."""
    access_token: str
    refresh_token: str


class TokenCodec:
    """
    Signs and verifies the two token classes.

    Args:
        settings: Secrets, algorithm and expiry policy
    """

    def __init__(self, settings: Settings):
        self.algorithm = settings.jwt_algorithm
        self._access_secret = settings.access_token_secret
        self._refresh_secret = settings.refresh_token_secret
        self.access_expire = settings.access_token_expire
        self.refresh_expire = settings.refresh_token_expire

    def _encode(
        self,
        claims: Dict[str, Any],
        token_type: str,
        secret: str,
        lifetime: timedelta,
        now: Optional[datetime] = None,
    ) -> str:
        issued_at = now or datetime.now(timezone.utc)
        to_encode = dict(claims)
        to_encode.update({
            "type": token_type,
            "iat": issued_at,
            "exp": issued_at + lifetime,
            "jti": uuid.uuid4().hex,
        })
        return jwt.encode(to_encode, secret, algorithm=self.algorithm)

    def _decode(self, token: str, token_type: str, secret: str) -> Dict[str, Any]:
        if not isinstance(token, str) or not token:
            raise InvalidToken()
        try:
            claims = jwt.decode(
                token,
                secret,
                algorithms=[self.algorithm],
                options={"require": ["exp", "iat", "sub", "type"]},
            )
        except PyJWTError:
            raise InvalidToken()
        if claims.get("type") != token_type:
            raise InvalidToken()
        return claims

    def issue_access(self, payload: AccessTokenPayload, now: Optional[datetime] = None) -> str:
        """
        Create a JWT access token.

        Args:
            payload: Identity claims to embed
            now: Issue time, defaults to the current time

        Returns:
            Encoded JWT token string
        """
        claims = {
            "sub": payload.user_id,
            "email": payload.email,
            "name": payload.name,
            "role": payload.role.value,
        }
        return self._encode(claims, ACCESS_TOKEN_TYPE, self._access_secret, self.access_expire, now)

    def issue_refresh(self, payload: RefreshTokenPayload, now: Optional[datetime] = None) -> str:
        """Create a JWT refresh token with longer expiration."""
        claims = {"sub": payload.user_id}
        return self._encode(claims, REFRESH_TOKEN_TYPE, self._refresh_secret, self.refresh_expire, now)

    def issue_pair(self, payload: AccessTokenPayload, now: Optional[datetime] = None) -> SessionTokens:
        """Create both tokens for a user."""
        return SessionTokens(
            access_token=self.issue_access(payload, now),
            refresh_token=self.issue_refresh(RefreshTokenPayload(user_id=payload.user_id), now),
        )

    def verify_access(self, token: str) -> AccessTokenPayload:
        """
        Verify an access token and return its claims.

        Raises:
            InvalidToken: If the token is malformed, badly signed, expired
                or not an access token
        """
        claims = self._decode(token, ACCESS_TOKEN_TYPE, self._access_secret)
        try:
            return AccessTokenPayload(
                user_id=claims["sub"],
                email=claims["email"],
                name=claims["name"],
                role=claims["role"],
            )
        except (KeyError, PydanticValidationError):
            raise InvalidToken()

    def verify_refresh(self, token: str) -> RefreshTokenPayload:
        """Verify a refresh token and return the user it names."""
        claims = self._decode(token, REFRESH_TOKEN_TYPE, self._refresh_secret)
        try:
            return RefreshTokenPayload(user_id=claims["sub"])
        except (KeyError, PydanticValidationError):
            raise InvalidToken()
