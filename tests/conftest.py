"""
Pytest configuration and shared fixtures.
"""

import itertools
from datetime import datetime, timedelta, timezone
from typing import Dict, Optional

import pytest

from accounts.errors import DuplicateKey
from accounts.hashing import PasswordHasher
from accounts.models import RegistrationData, UserAccount
from accounts.reset_tokens import ResetTokenManager
from accounts.service import AuthService
from accounts.tokens import TokenIssuer, TokenSettings

TEST_SECRET_KEY = "ThisIsAVeryLongSecretKeyForJWT_MinimumLengthRequired"
TEST_ROUNDS = 1000


class InMemoryUserStore:
    """
    UserStore kept in a dict.
    Enforces username/email uniqueness at write time like the unique indexes.
    """

    def __init__(self):
        self.users: Dict[str, UserAccount] = {}
        self.update_calls = 0
        self._ids = itertools.count(1)

    def _find(self, **criteria) -> Optional[UserAccount]:
        for user in self.users.values():
            if all(getattr(user, key) == value for key, value in criteria.items()):
                return user.copy(deep=True)
        return None

    def _check_unique(self, user: UserAccount) -> None:
        for other in self.users.values():
            if other.id == user.id:
                continue
            if other.username == user.username:
                raise DuplicateKey("username")
            if other.email == user.email:
                raise DuplicateKey("email")

    async def find_by_username(self, username: str) -> Optional[UserAccount]:
        return self._find(username=username)

    async def find_by_email(self, email: str) -> Optional[UserAccount]:
        return self._find(email=email)

    async def find_by_reset_token(self, token: str) -> Optional[UserAccount]:
        user = self._find(reset_token=token)
        if user is None or user.reset_token_expiry <= datetime.now(timezone.utc):
            return None
        return user

    async def create(self, user: UserAccount) -> UserAccount:
        self._check_unique(user)
        created = user.copy(update={"id": str(next(self._ids))}, deep=True)
        self.users[created.id] = created
        return created.copy(deep=True)

    async def update(self, user: UserAccount, fields=None) -> None:
        self._check_unique(user)
        self.update_calls += 1
        if fields is None:
            self.users[user.id] = user.copy(deep=True)
            return
        self.users[user.id] = self.users[user.id].copy(
            update={field: getattr(user, field) for field in fields}, deep=True
        )

    async def swap_password_hash(self, user_id: str, expected_hash: str, new_hash: str) -> bool:
        stored = self.users.get(user_id)
        if stored is None or stored.password_hash != expected_hash:
            return False
        stored.password_hash = new_hash
        return True

    async def complete_reset(self, user_id: str, token: str, password_hash: str) -> bool:
        stored = self.users.get(user_id)
        if (stored is None or stored.reset_token != token
                or stored.reset_token_expiry <= datetime.now(timezone.utc)):
            return False
        stored.password_hash = password_hash
        stored.reset_token = None
        stored.reset_token_expiry = None
        return True

    async def health_check(self):
        return {"status": "healthy", "users_count": len(self.users)}


class FakeClock:
    """Settable UTC clock."""

    def __init__(self, now: Optional[datetime] = None):
        self.now = now or datetime(2025, 1, 15, 10, 30, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock():
    """Create a fixed clock for deterministic expiry tests."""
    return FakeClock()


@pytest.fixture
def token_settings():
    """Create token settings for testing."""
    return TokenSettings(
        secret_key=TEST_SECRET_KEY,
        issuer="BookAPI",
        audience="BookAPIUsers",
        expire_minutes=60
    )


@pytest.fixture
def token_issuer(token_settings):
    """Create a token issuer using the real clock."""
    return TokenIssuer(token_settings)


@pytest.fixture
def hasher():
    """Create a fast password hasher for testing."""
    return PasswordHasher(rounds=TEST_ROUNDS)


@pytest.fixture
def reset_manager():
    """Create a reset token manager using the real clock."""
    return ResetTokenManager()


@pytest.fixture
def user_store():
    """Create an empty in-memory user store."""
    return InMemoryUserStore()


@pytest.fixture
def auth_service(user_store, hasher, token_issuer, reset_manager):
    """Create an AuthService over the in-memory store."""
    return AuthService(
        store=user_store,
        hasher=hasher,
        token_issuer=token_issuer,
        reset_tokens=reset_manager
    )


@pytest.fixture
def alice_registration():
    """Registration data for the reference user."""
    return RegistrationData(
        username="alice",
        email="alice@x.com",
        password="secret1",
        mobile="1234567890"
    )


@pytest.fixture
def sample_user(hasher):
    """Create a saved user account for testing."""
    return UserAccount(
        id="42",
        username="testuser",
        email="test@example.com",
        password_hash=hasher.hash("testpass"),
        mobile="1234567890"
    )
