"""
User stores.

A user store owns the durable user fields. Two implementations share one
interface:
- ``SQLAlchemyUserStore`` backed by the ``users`` table
- ``InMemoryUserStore`` for tests and local runs without a database

Emails are normalised before every write and lookup. Creating a second user
with the same email raises ``Conflict``; the check is atomic in both stores.
"""
import asyncio
from dataclasses import replace
from typing import Any, Dict, List, Optional, Protocol

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import async_sessionmaker

from user_service.auth.errors import Conflict
from user_service.auth.models import Role, User, UserRecord, new_user_id, normalize_email, utcnow

# Fields a profile update may change
UPDATABLE_FIELDS = ("name", "password_hash", "image", "role")


class UserStore(Protocol):
    async def find_by_email(self, email: str) -> Optional[UserRecord]: ...

    async def find_by_id(self, user_id: str) -> Optional[UserRecord]: ...

    async def create(
        self,
        email: str,
        password_hash: str,
        name: str,
        role: Role = Role.PATIENT,
        image: Optional[str] = None,
    ) -> UserRecord: ...

    async def update(self, user_id: str, fields: Dict[str, Any]) -> Optional[UserRecord]: ...

    async def list_by_role(self, role: Role) -> List[UserRecord]: ...

    # Account removal for admin tooling; not reachable from the HTTP routes
    async def delete(self, user_id: str) -> bool: ...


def _check_fields(fields: Dict[str, Any]):
    unknown = set(fields) - set(UPDATABLE_FIELDS)
    if unknown:
        raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")
    if "password_hash" in fields and not fields["password_hash"]:
        raise ValueError("password_hash cannot be empty")


class SQLAlchemyUserStore:
    """User store backed by SQLAlchemy async sessions."""

    def __init__(self, session_factory: async_sessionmaker):
        self.session_factory = session_factory

    async def find_by_email(self, email: str) -> Optional[UserRecord]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(User).where(User.email == normalize_email(email))
            )
            user = result.scalar_one_or_none()
            return user.to_record() if user else None

    async def find_by_id(self, user_id: str) -> Optional[UserRecord]:
        async with self.session_factory() as db:
            user = await db.get(User, user_id)
            return user.to_record() if user else None

    async def create(
        self,
        email: str,
        password_hash: str,
        name: str,
        role: Role = Role.PATIENT,
        image: Optional[str] = None,
    ) -> UserRecord:
        """
        Insert a new user.

        Raises:
            Conflict: If the email is already registered
        """
        async with self.session_factory() as db:
            new_user = User(
                id=new_user_id(),
                email=normalize_email(email),
                password=password_hash,
                name=name,
                image=image,
                role=role,
            )
            db.add(new_user)
            try:
                await db.commit()
            except IntegrityError:
                await db.rollback()
                raise Conflict("Email already registered")
            await db.refresh(new_user)
            return new_user.to_record()

    async def update(self, user_id: str, fields: Dict[str, Any]) -> Optional[UserRecord]:
        _check_fields(fields)
        async with self.session_factory() as db:
            user = await db.get(User, user_id)
            if user is None:
                return None
            for key, value in fields.items():
                setattr(user, "password" if key == "password_hash" else key, value)
            await db.commit()
            await db.refresh(user)
            return user.to_record()

    async def list_by_role(self, role: Role) -> List[UserRecord]:
        async with self.session_factory() as db:
            result = await db.execute(
                select(User).where(User.role == role).order_by(User.created_at)
            )
            return [user.to_record() for user in result.scalars().all()]

    async def delete(self, user_id: str) -> bool:
        async with self.session_factory() as db:
            user = await db.get(User, user_id)
            if user is None:
                return False
            await db.delete(user)
            await db.commit()
            return True


class InMemoryUserStore:
    """Dictionary-backed user store."""

    def __init__(self):
        self._users: Dict[str, UserRecord] = {}
        self._ids_by_email: Dict[str, str] = {}
        self._lock = asyncio.Lock()

    async def find_by_email(self, email: str) -> Optional[UserRecord]:
        user_id = self._ids_by_email.get(normalize_email(email))
        return self._users.get(user_id) if user_id else None

    async def find_by_id(self, user_id: str) -> Optional[UserRecord]:
        return self._users.get(user_id)

    async def create(
        self,
        email: str,
        password_hash: str,
        name: str,
        role: Role = Role.PATIENT,
        image: Optional[str] = None,
    ) -> UserRecord:
        email = normalize_email(email)
        async with self._lock:
            if email in self._ids_by_email:
                raise Conflict("Email already registered")
            record = UserRecord(
                id=new_user_id(),
                email=email,
                password_hash=password_hash,
                name=name,
                role=role,
                image=image,
                created_at=utcnow(),
            )
            self._users[record.id] = record
            self._ids_by_email[email] = record.id
            return record

    async def update(self, user_id: str, fields: Dict[str, Any]) -> Optional[UserRecord]:
        _check_fields(fields)
        async with self._lock:
            user = self._users.get(user_id)
            if user is None:
                return None
            updated = replace(user, **fields)
            self._users[user_id] = updated
            return updated

    async def list_by_role(self, role: Role) -> List[UserRecord]:
        return sorted(
            (user for user in self._users.values() if user.role == role),
            key=lambda user: user.created_at,
        )

    async def delete(self, user_id: str) -> bool:
        async with self._lock:
            user = self._users.pop(user_id, None)
            if user is None:
                return False
            self._ids_by_email.pop(user.email, None)
            return True
