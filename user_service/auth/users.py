"""
User management service.

This module provides functionality for:
- User registration
- User authentication
- Session token refresh
- User profile management

Every session-creating flow (register, login, refresh) issues a brand-new
access/refresh pair. Refresh re-reads the user from the store so a role or
name change is picked up by the next pair.
"""
import asyncio
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator

from user_service.config import Settings
from user_service.auth.errors import (
    Conflict, DuplicateEmail, InvalidCredentials, SessionUserNotFound, UserNotFound, ValidationError
)
from user_service.auth.jwt import AccessTokenPayload, SessionTokens, TokenCodec
from user_service.auth.models import Role, UserRecord
from user_service.auth.passwords import MAX_PASSWORD_BYTES, PasswordHasher
from user_service.auth.store import UserStore


def _password_fits(value: Optional[str]) -> Optional[str]:
    if value is not None and len(value.encode("utf-8")) > MAX_PASSWORD_BYTES:
        raise ValueError(f"Password must be at most {MAX_PASSWORD_BYTES} bytes")
    return value


# Pydantic models for request validation
class RegisterRequest(BaseModel):
    """Model for user registration."""
    email: EmailStr
    password: str = Field(..., min_length=1)
    name: str = Field(..., min_length=1)
    role: Optional[Role] = None

    @field_validator("name")
    @classmethod
    def name_must_not_be_blank(cls, v):
        if not v.strip():
            raise ValueError("Name must not be blank")
        return v.strip()

    @field_validator("password")
    @classmethod
    def password_must_fit(cls, v):
        return _password_fits(v)


class LoginRequest(BaseModel):
    """Model for user login."""
    email: str = Field(..., min_length=1)
    password: str = Field(..., min_length=1)


class RefreshRequest(BaseModel):
    refresh_token: Optional[str] = None


class ProfileUpdate(BaseModel):
    """Model for updating the caller's profile."""
    model_config = ConfigDict(populate_by_name=True)

    name: Optional[str] = None
    current_password: Optional[str] = Field(None, alias="currentPassword")
    new_password: Optional[str] = Field(None, alias="newPassword")
    image: Optional[str] = None

    @field_validator("new_password")
    @classmethod
    def new_password_must_fit(cls, v):
        return _password_fits(v)


class UserOut(BaseModel):
    """Model for user information returned to clients."""
    model_config = ConfigDict(populate_by_name=True)

    id: str
    email: str
    name: str
    image: Optional[str] = None
    role: Role
    created_at: datetime = Field(..., serialization_alias="createdAt")

    @classmethod
    def from_record(cls, user: UserRecord) -> "UserOut":
        return cls(
            id=user.id,
            email=user.email,
            name=user.name,
            image=user.image,
            role=user.role,
            created_at=user.created_at,
        )

    def to_wire(self) -> dict:
        return self.model_dump(mode="json", by_alias=True)


class SessionResult(BaseModel):
    """Outcome of a session-creating flow."""
    user: UserOut
    tokens: SessionTokens


class SessionManager:
    """
    Orchestrates the register, login, refresh and profile flows.

    Holds no per-request state; the store, codec and hasher are shared and
    the settings are immutable.
    """

    def __init__(
        self,
        store: UserStore,
        codec: TokenCodec,
        hasher: PasswordHasher,
        settings: Settings,
    ):
        self.store = store
        self.codec = codec
        self.hasher = hasher
        self.settings = settings

    async def _hash(self, password: str) -> str:
        return await asyncio.to_thread(self.hasher.hash, password)

    async def _verify(self, password: str, hashed_password: Optional[str]) -> bool:
        return await asyncio.to_thread(self.hasher.verify, password, hashed_password)

    def _start_session(self, user: UserRecord) -> SessionResult:
        tokens = self.codec.issue_pair(
            AccessTokenPayload(
                user_id=user.id,
                email=user.email,
                name=user.name,
                role=user.role,
            )
        )
        return SessionResult(user=UserOut.from_record(user), tokens=tokens)

    async def register(self, data: RegisterRequest) -> SessionResult:
        """
        Register a new user and start a session.

        Raises:
            DuplicateEmail: If the email is already registered
            ValidationError: If the requested role may not self-register
        """
        role = data.role or Role.PATIENT
        if role is Role.ADMIN and not self.settings.allow_admin_registration:
            raise ValidationError("Role not permitted for registration")

        if await self.store.find_by_email(data.email) is not None:
            raise DuplicateEmail()

        hashed_password = await self._hash(data.password)
        try:
            user = await self.store.create(
                email=data.email,
                password_hash=hashed_password,
                name=data.name,
                role=role,
            )
        except Conflict:
            # Lost a race with a concurrent registration
            raise DuplicateEmail()

        return self._start_session(user)

    async def login(self, data: LoginRequest) -> SessionResult:
        """
        Authenticate a user and start a session.

        Unknown email and wrong password raise the same error.
        """
        user = await self.store.find_by_email(data.email)
        password_ok = await self._verify(data.password, user.password_hash if user else None)
        if user is None or not password_ok:
            raise InvalidCredentials()
        return self._start_session(user)

    async def refresh(self, refresh_token: str) -> SessionResult:
        """
        Exchange a refresh token for a new session pair.

        The presented token is not invalidated.

        Raises:
            InvalidToken: If the token does not verify
            SessionUserNotFound: If the user no longer exists
        """
        payload = self.codec.verify_refresh(refresh_token)
        user = await self.store.find_by_id(payload.user_id)
        if user is None:
            raise SessionUserNotFound()
        return self._start_session(user)

    async def get_by_id(self, user_id: str) -> UserOut:
        user = await self.store.find_by_id(user_id)
        if user is None:
            raise UserNotFound()
        return UserOut.from_record(user)

    async def list_doctors(self) -> List[UserOut]:
        doctors = await self.store.list_by_role(Role.DOCTOR)
        return [UserOut.from_record(user) for user in doctors]

    async def update_profile(self, user_id: str, data: ProfileUpdate) -> UserOut:
        """
        Update the profile of a user.

        The password only changes when both the current and the new password
        are given and the current one verifies. With nothing to change the
        current profile is returned unchanged.

        Raises:
            UserNotFound: If the user does not exist
            InvalidCredentials: If the current password is wrong
        """
        user = await self.store.find_by_id(user_id)
        if user is None:
            raise UserNotFound()

        changes = {}

        if data.name and data.name.strip() and data.name.strip() != user.name:
            changes["name"] = data.name.strip()

        if data.current_password and data.new_password:
            if not await self._verify(data.current_password, user.password_hash):
                raise InvalidCredentials("Current password is incorrect")
            changes["password_hash"] = await self._hash(data.new_password)

        # An explicit null clears the image
        if "image" in data.model_fields_set and data.image != user.image:
            changes["image"] = data.image

        if not changes:
            return UserOut.from_record(user)

        updated = await self.store.update(user_id, changes)
        if updated is None:
            raise UserNotFound()
        return UserOut.from_record(updated)
