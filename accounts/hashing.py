"""
Password hashing built on passlib.

PBKDF2-SHA256 is used because it has no password length limit and does
not depend on the separately released bcrypt backend. The round count is
the adaptive cost factor; raising it marks older hashes for re-hashing.
"""

from typing import Optional

import structlog
from passlib.context import CryptContext

logger = structlog.get_logger(__name__)

DEFAULT_ROUNDS = 29000


class PasswordHasher:
    """Salted one-way hashing with constant-time verification."""

    def __init__(self, rounds: int = DEFAULT_ROUNDS):
        """
        Initialize the hasher.

        Args:
            rounds: PBKDF2 iteration count for new hashes
        """
        self.rounds = rounds
        self._context = CryptContext(
            schemes=["pbkdf2_sha256"],
            deprecated="auto",
            pbkdf2_sha256__default_rounds=rounds,
            pbkdf2_sha256__min_rounds=rounds,
        )

    def hash(self, password: str) -> str:
        """
        Hash a plaintext password.

        Args:
            password: Plaintext password

        Returns:
            Modular-crypt hash string including salt and round count
        """
        return self._context.hash(password)

    def verify(self, password: str, password_hash: Optional[str]) -> bool:
        """
        Verify a password against a stored hash.

        Args:
            password: Plaintext password
            password_hash: Previously stored hash

        Returns:
            True if the password matches, False otherwise (including
            malformed or unrecognised hashes)
        """
        if not password_hash:
            return False
        try:
            return self._context.verify(password, password_hash)
        except (ValueError, TypeError):
            logger.warning("Unrecognised password hash format")
            return False

    def verify_dummy(self) -> bool:
        """Spend a verify's worth of work against a throwaway hash. Always False."""
        return self._context.dummy_verify()

    def needs_rehash(self, password_hash: str) -> bool:
        """Whether a hash was made with parameters weaker than the current ones."""
        try:
            return self._context.needs_update(password_hash)
        except (ValueError, TypeError):
            return False
