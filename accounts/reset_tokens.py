"""
Password reset token lifecycle.

Tokens are 32 random bytes from the ``secrets`` module, URL-safe base64
encoded. With 256 bits of entropy no collision check against existing
tokens is made.
"""

import hmac
import secrets
from datetime import datetime, timedelta
from typing import Callable, Tuple

from accounts.models import UserAccount, utc_now

RESET_TOKEN_BYTES = 32
DEFAULT_LIFETIME_HOURS = 24


class ResetTokenManager:
    """Generates, validates and clears single-use reset tokens."""

    def __init__(
        self,
        lifetime_hours: int = DEFAULT_LIFETIME_HOURS,
        clock: Callable[[], datetime] = utc_now
    ):
        if lifetime_hours < 1:
            raise ValueError("lifetime_hours must be at least 1")
        self.lifetime = timedelta(hours=lifetime_hours)
        self._clock = clock

    @staticmethod
    def generate() -> str:
        """Generate a new reset token."""
        return secrets.token_urlsafe(RESET_TOKEN_BYTES)

    def issue_for(self, user: UserAccount) -> Tuple[str, datetime]:
        """
        Bind a fresh token to *user*.

        The record is updated in place; the caller persists it.

        Args:
            user: Account requesting the reset

        Returns:
            Tuple of (token, expiry)
        """
        token = self.generate()
        expiry = self._clock() + self.lifetime
        user.reset_token = token
        user.reset_token_expiry = expiry
        return token, expiry

    def validate(self, user: UserAccount, supplied_token: str) -> bool:
        """
        Check a supplied token against the one stored on *user*.

        Both the comparison and the expiry check always run so that a
        mismatch and an expired token take the same path.
        """
        stored = (user.reset_token or "").encode("utf-8")
        supplied = (supplied_token or "").encode("utf-8")
        matches = hmac.compare_digest(stored, supplied)

        expiry = user.reset_token_expiry
        not_expired = expiry is not None and self._clock() <= expiry

        return user.has_pending_reset and matches and not_expired

    @staticmethod
    def clear(user: UserAccount) -> None:
        """Remove the pending token so it cannot be replayed."""
        user.reset_token = None
        user.reset_token_expiry = None
