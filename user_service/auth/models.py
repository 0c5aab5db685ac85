"""
User models for the user service.

This module defines:
- The closed set of user roles
- The SQLAlchemy ``users`` table
- ``UserRecord``, the immutable view a user store hands to callers
"""
import enum
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import Column, String, DateTime, Enum
from user_service.base_microservice import Base


class Role(str, enum.Enum):
    """User roles. The set is closed; authorization is plain membership."""
    PATIENT = "PATIENT"
    DOCTOR = "DOCTOR"
    ADMIN = "ADMIN"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def new_user_id() -> str:
    return str(uuid.uuid4())


def normalize_email(email: str) -> str:
    """Canonical form used for storage and lookup."""
    return email.strip().lower()


class User(Base):
    """User account row."""
    __tablename__ = "users"

    id = Column(String(36), primary_key=True, default=new_user_id)
    email = Column(String(320), unique=True, index=True, nullable=False)
    password = Column(String, nullable=False)
    name = Column(String, nullable=False)
    image = Column(String, nullable=True)
    role = Column(Enum(Role, name="role"), nullable=False, default=Role.PATIENT)
    created_at = Column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at = Column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)

    def to_record(self) -> "UserRecord":
        return UserRecord(
            id=self.id,
            email=self.email,
            password_hash=self.password,
            name=self.name,
            image=self.image,
            role=Role(self.role),
            created_at=self.created_at,
        )


@dataclass(frozen=True)
class UserRecord:
    """A stored user. ``password_hash`` never leaves the auth core."""
    id: str
    email: str
    password_hash: str
    name: str
    role: Role
    created_at: datetime
    image: Optional[str] = None
