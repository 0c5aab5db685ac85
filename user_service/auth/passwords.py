"""
Password hashing.

bcrypt with a fixed cost factor. Verification never raises: a mismatch and
an unreadable stored hash both come back as ``False``.
"""
import logging
from typing import Optional

import bcrypt

logger = logging.getLogger("user_service")

# bcrypt only looks at the first 72 bytes of the input
MAX_PASSWORD_BYTES = 72


class PasswordHasher:
    """Salted one-way hashing with constant-time verification."""

    def __init__(self, rounds: int = 10):
        self.rounds = rounds
        self._dummy_hash: Optional[bytes] = None

    def hash(self, password: str) -> str:
        """Generate password hash using bcrypt."""
        return bcrypt.hashpw(
            password.encode("utf-8"),
            bcrypt.gensalt(rounds=self.rounds)
        ).decode("utf-8")

    def verify(self, password: str, hashed_password: Optional[str]) -> bool:
        """
        Check if provided password matches the stored hash.

        When there is no stored hash (unknown account) a dummy hash is
        checked instead, so the call costs the same either way.
        """
        if hashed_password is None:
            self._check(password, self._get_dummy_hash())
            return False
        try:
            stored = hashed_password.encode("utf-8")
        except (AttributeError, UnicodeEncodeError):
            logger.warning("Stored password hash is unreadable")
            return False
        return self._check(password, stored)

    def _check(self, password: str, stored: bytes) -> bool:
        try:
            return bcrypt.checkpw(password.encode("utf-8"), stored)
        except (ValueError, TypeError):
            # Malformed hash or over-long input
            return False

    def _get_dummy_hash(self) -> bytes:
        if self._dummy_hash is None:
            self._dummy_hash = bcrypt.hashpw(b"dummy-password", bcrypt.gensalt(rounds=self.rounds))
        return self._dummy_hash
