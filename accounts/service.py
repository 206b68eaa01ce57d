"""
Authentication service.

Orchestrates the account flows: registration, login, password reset
request and password reset. Each flow is a short linear sequence that
either returns a result or raises an AuthError subclass.

Login and reset-request give the same outcome whether or not the
account exists.
"""

import asyncio
import hmac
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

from accounts.database import UserStore
from accounts.errors import (
    AuthError, DuplicateKey, EmailTaken, InternalError, InvalidCredentials,
    InvalidOrExpiredToken, InvalidRequest, TokenError, UsernameTaken
)
from accounts.hashing import PasswordHasher
from accounts.models import AuthResult, RegistrationData, TokenClaims, UserAccount, normalize_email
from accounts.reset_tokens import ResetTokenManager
from accounts.tokens import TokenIssuer
from utilities.logger import AuthEventLogger

# Receives (user, token, expiry); delivers the token out of band.
ResetTokenSender = Callable[[UserAccount, str, datetime], Awaitable[None]]


class AuthService:
    """Entry point for every authentication flow."""

    def __init__(
        self,
        store: UserStore,
        hasher: PasswordHasher,
        token_issuer: TokenIssuer,
        reset_tokens: ResetTokenManager,
        reset_token_sender: Optional[ResetTokenSender] = None,
        event_logger: Optional[AuthEventLogger] = None
    ):
        """
        Initialize the service.

        Args:
            store: User storage
            hasher: Password hasher
            token_issuer: Bearer token issuer built from immutable settings
            reset_tokens: Reset token manager
            reset_token_sender: Optional out-of-band delivery for reset tokens
            event_logger: Audit logger for auth events
        """
        self.store = store
        self.hasher = hasher
        self.token_issuer = token_issuer
        self.reset_tokens = reset_tokens
        self.reset_token_sender = reset_token_sender
        self.events = event_logger or AuthEventLogger()

    async def _run_blocking(self, func: Callable[..., Any], *args: Any) -> Any:
        """Run CPU-bound work (hashing) off the event loop."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func, *args)

    async def _store_call(self, operation: str, call: Awaitable[Any]) -> Any:
        """Await a store call, turning unexpected failures into InternalError."""
        try:
            return await call
        except (DuplicateKey, AuthError):
            raise
        except Exception as e:
            self.events.log_error(operation, str(e))
            raise InternalError() from e

    def _issue(self, user: UserAccount) -> AuthResult:
        token, expires_at = self.token_issuer.issue_with_expiry(user)
        return AuthResult(
            token=token,
            username=user.username,
            email=user.email,
            expires_at=expires_at,
        )

    async def register(self, data: RegistrationData) -> AuthResult:
        """
        Register a new user and issue a token.

        Args:
            data: Validated registration input

        Returns:
            AuthResult for the new account

        Raises:
            UsernameTaken: username already registered
            EmailTaken: email already registered
            InternalError: storage failure
        """
        username = data.username
        email = normalize_email(data.email)

        existing = await self._store_call("register", self.store.find_by_username(username))
        if existing is not None:
            self.events.log_registration(username, None, success=False, reason="username_taken")
            raise UsernameTaken()

        existing = await self._store_call("register", self.store.find_by_email(email))
        if existing is not None:
            self.events.log_registration(username, None, success=False, reason="email_taken")
            raise EmailTaken()

        password_hash = await self._run_blocking(self.hasher.hash, data.password)
        account = UserAccount(
            username=username,
            email=email,
            password_hash=password_hash,
            mobile=data.mobile,
        )

        # The pre-checks above can race; the store's unique indexes decide.
        try:
            created = await self._store_call("register", self.store.create(account))
        except DuplicateKey as e:
            self.events.log_registration(username, None, success=False, reason=f"duplicate_{e.field}")
            if e.field == "email":
                raise EmailTaken()
            raise UsernameTaken()

        self.events.log_registration(username, created.id)
        return self._issue(created)

    async def login(self, username: str, password: str) -> AuthResult:
        """
        Authenticate with username and password.

        Raises:
            InvalidCredentials: unknown username or wrong password
            InternalError: storage failure
        """
        user = await self._store_call("login", self.store.find_by_username(username))
        if user is None:
            await self._run_blocking(self.hasher.verify_dummy)
            self.events.log_login(username, success=False, reason="unknown_user")
            raise InvalidCredentials()

        if not await self._run_blocking(self.hasher.verify, password, user.password_hash):
            self.events.log_login(username, success=False, reason="wrong_password")
            raise InvalidCredentials()

        if self.hasher.needs_rehash(user.password_hash):
            await self._rehash(user, password)

        self.events.log_login(username, success=True)
        return self._issue(user)

    async def _rehash(self, user: UserAccount, password: str) -> None:
        """Upgrade a stored hash made with weaker parameters. Failure keeps the old hash."""
        new_hash = await self._run_blocking(self.hasher.hash, password)
        try:
            swapped = await self.store.swap_password_hash(user.id, user.password_hash, new_hash)
        except Exception as e:
            self.events.log_error("rehash", str(e))
            return
        if swapped:
            user.password_hash = new_hash

    async def request_password_reset(self, email: str) -> None:
        """
        Start a password reset for the account registered with *email*.

        Returns nothing whether or not the account exists. The token is
        handed only to the configured sender.

        Raises:
            InternalError: storage failure
        """
        email = normalize_email(email)
        user = await self._store_call("password_reset_request", self.store.find_by_email(email))
        if user is None:
            self.events.log_reset_requested(user_found=False)
            return None

        token, expiry = self.reset_tokens.issue_for(user)
        await self._store_call(
            "password_reset_request",
            self.store.update(user, fields=("reset_token", "reset_token_expiry"))
        )
        self.events.log_reset_requested(user_found=True, user_id=user.id)

        if self.reset_token_sender is not None:
            try:
                await self.reset_token_sender(user, token, expiry)
            except Exception as e:
                # Delivery problems must not change the caller-visible outcome
                self.events.log_error("reset_token_delivery", str(e))
        return None

    async def reset_password(self, token: str, email: str, new_password: str) -> None:
        """
        Complete a password reset.

        Args:
            token: Reset token delivered out of band
            email: Email the reset was requested for
            new_password: Replacement password

        Raises:
            InvalidOrExpiredToken: unknown, mismatched or expired token
            InvalidRequest: email does not match the token holder, or empty password
            InternalError: storage failure
        """
        user = None
        if token:
            user = await self._store_call("password_reset", self.store.find_by_reset_token(token))

        # The store filters expired tokens; check again here in constant time.
        if user is None or not self.reset_tokens.validate(user, token):
            self.events.log_password_reset(success=False, reason="invalid_or_expired_token")
            raise InvalidOrExpiredToken()

        supplied_email = normalize_email(email or "").encode("utf-8")
        if not hmac.compare_digest(supplied_email, user.email.encode("utf-8")):
            self.events.log_password_reset(success=False, user_id=user.id, reason="email_mismatch")
            raise InvalidRequest()

        if not new_password:
            self.events.log_password_reset(success=False, user_id=user.id, reason="empty_password")
            raise InvalidRequest("New password must not be empty")

        password_hash = await self._run_blocking(self.hasher.hash, new_password)

        # Consumes the token atomically; a concurrent reset with it loses here.
        consumed = await self._store_call(
            "password_reset",
            self.store.complete_reset(user.id, token, password_hash)
        )
        if not consumed:
            self.events.log_password_reset(success=False, user_id=user.id, reason="token_already_used")
            raise InvalidOrExpiredToken()

        user.password_hash = password_hash
        self.reset_tokens.clear(user)
        self.events.log_password_reset(success=True, user_id=user.id)

    def authenticate(self, token: str) -> TokenClaims:
        """
        Validate a bearer token.

        Raises:
            TokenError: one of ExpiredToken, BadSignature, MalformedToken, IssuerMismatch
        """
        try:
            return self.token_issuer.validate(token)
        except TokenError as e:
            self.events.log_token_rejected(e.code)
            raise
