"""
Exception hierarchy for the authentication core.

Two families live here:
- AuthError: outcomes of the account flows (register, login, reset).
- TokenError: reasons a bearer token failed validation.
"""

from typing import Optional


class ConfigurationError(RuntimeError):
    """Raised at startup when security-relevant configuration is unusable."""


class AuthError(Exception):
    """Base class for account flow failures that are safe to surface."""

    code = "auth_error"
    message = "Authentication error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)


class UsernameTaken(AuthError):
    code = "username_taken"
    message = "Username already exists"


class EmailTaken(AuthError):
    code = "email_taken"
    message = "Email already exists"


class InvalidCredentials(AuthError):
    """Unknown username and wrong password both end up here."""

    code = "invalid_credentials"
    message = "Invalid username or password"


class InvalidOrExpiredToken(AuthError):
    code = "invalid_or_expired_token"
    message = "Invalid or expired reset token"


class InvalidRequest(AuthError):
    code = "invalid_request"
    message = "Invalid reset request"


class InternalError(AuthError):
    """Persistence or other unexpected failure. The message stays generic."""

    code = "internal_error"
    message = "Internal server error"


class TokenError(Exception):
    """Base class for bearer token validation failures."""

    code = "invalid_token"

    def __init__(self, message: str = "Invalid token"):
        self.message = message
        super().__init__(message)


class ExpiredToken(TokenError):
    code = "token_expired"


class BadSignature(TokenError):
    code = "bad_signature"


class MalformedToken(TokenError):
    code = "malformed_token"


class IssuerMismatch(TokenError):
    """Issuer or audience claim does not match configuration."""

    code = "issuer_mismatch"


class DuplicateKey(Exception):
    """Raised by a UserStore when a unique constraint rejects a write."""

    def __init__(self, field: str):
        self.field = field
        super().__init__(f"Duplicate value for unique field '{field}'")
