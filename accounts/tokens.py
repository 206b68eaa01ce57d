"""
Bearer token issuance and validation.

Tokens are HS256-signed JWTs carrying the user's id, username and email.
Nothing is stored server side; a token is valid purely by signature,
issuer/audience and expiry at the moment it is checked.
"""

import hmac
import re
from datetime import datetime, timedelta, timezone
from typing import Callable, Tuple

import jwt
from jwt.algorithms import HMACAlgorithm
from jwt.utils import base64url_encode
from pydantic import BaseModel, Field, validator

from accounts.errors import (
    BadSignature, ExpiredToken, IssuerMismatch, MalformedToken
)
from accounts.models import TokenClaims, UserAccount, utc_now

ALGORITHM = "HS256"
MIN_SECRET_KEY_BYTES = 32
REQUIRED_CLAIMS = ["sub", "username", "email", "iss", "aud", "iat", "exp"]
# A 32-byte HMAC-SHA256 digest as unpadded base64url
SIGNATURE_PATTERN = re.compile(r"[A-Za-z0-9_-]{43}")


class TokenSettings(BaseModel):
    """Immutable signing configuration, built once at startup."""
    secret_key: str = Field(..., repr=False, description="HMAC signing secret")
    issuer: str = Field(default="BookAPI", min_length=1, description="iss claim")
    audience: str = Field(default="BookAPIUsers", min_length=1, description="aud claim")
    expire_minutes: int = Field(default=60, ge=1, description="Token lifetime in minutes")

    @validator('secret_key')
    def validate_secret_key(cls, v):
        """Ensure the signing secret is long enough for HS256."""
        if len(v.encode("utf-8")) < MIN_SECRET_KEY_BYTES:
            raise ValueError(
                f'secret_key must be at least {MIN_SECRET_KEY_BYTES} bytes'
            )
        return v

    model_config = {
        "frozen": True
    }


class TokenIssuer:
    """Issues and validates signed bearer tokens."""

    def __init__(self, settings: TokenSettings, clock: Callable[[], datetime] = utc_now):
        """
        Initialize the issuer.

        Args:
            settings: Signing configuration
            clock: Source of the current UTC time for iat/exp and the expiry check
        """
        self.settings = settings
        self._clock = clock
        self._hmac = HMACAlgorithm(HMACAlgorithm.SHA256)
        self._key = self._hmac.prepare_key(settings.secret_key)

    def issue(self, user: UserAccount) -> str:
        """Issue a token for *user*."""
        token, _ = self.issue_with_expiry(user)
        return token

    def issue_with_expiry(self, user: UserAccount) -> Tuple[str, datetime]:
        """
        Issue a token for *user* and report when it expires.

        Args:
            user: Persisted account (must have an id)

        Returns:
            Tuple of (token, expires_at)
        """
        if user.id is None:
            raise ValueError("Cannot issue a token for an unsaved user")

        issued_at = self._clock().replace(microsecond=0)
        expires_at = issued_at + timedelta(minutes=self.settings.expire_minutes)
        payload = {
            "sub": user.id,
            "username": user.username,
            "email": user.email,
            "iss": self.settings.issuer,
            "aud": self.settings.audience,
            "iat": issued_at,
            "exp": expires_at,
        }
        token = jwt.encode(payload, self.settings.secret_key, algorithm=ALGORITHM)
        return token, expires_at

    def _check_signature(self, token: str) -> None:
        """
        Verify the HMAC over the raw signing input before anything is decoded.

        Raises:
            MalformedToken: input does not have the shape of an HS256 JWT
            BadSignature: the signature does not match header and payload
        """
        if not isinstance(token, str) or token.count(".") != 2:
            raise MalformedToken("Malformed token: expected three segments")

        signing_input, _, signature = token.rpartition(".")
        header, _, payload = signing_input.partition(".")
        if not header or not payload or not SIGNATURE_PATTERN.fullmatch(signature):
            raise MalformedToken("Malformed token: not an HS256 token")

        expected = base64url_encode(self._hmac.sign(signing_input.encode("utf-8"), self._key))
        if not hmac.compare_digest(expected, signature.encode("ascii")):
            raise BadSignature("Token signature verification failed")

    def validate(self, token: str) -> TokenClaims:
        """
        Validate a token and return its claims.

        Args:
            token: Encoded JWT

        Returns:
            TokenClaims parsed from the token

        Raises:
            ExpiredToken: the clock is at or past the exp claim
            BadSignature: signature does not match the signed segments
            IssuerMismatch: iss or aud differ from configuration
            MalformedToken: anything else wrong with the token
        """
        self._check_signature(token)

        # Expiry is checked below against the injected clock
        try:
            payload = jwt.decode(
                token,
                self.settings.secret_key,
                algorithms=[ALGORITHM],
                audience=self.settings.audience,
                issuer=self.settings.issuer,
                options={"require": REQUIRED_CLAIMS, "verify_exp": False, "verify_iat": False},
            )
        except jwt.InvalidSignatureError:
            raise BadSignature("Token signature verification failed")
        except jwt.InvalidIssuerError:
            raise IssuerMismatch("Token issuer does not match")
        except jwt.InvalidAudienceError:
            raise IssuerMismatch("Token audience does not match")
        except (jwt.InvalidTokenError, TypeError, ValueError) as e:
            raise MalformedToken(f"Malformed token: {e}")

        try:
            claims = TokenClaims(
                subject_id=str(payload["sub"]),
                username=payload["username"],
                email=payload["email"],
                issuer=payload["iss"],
                audience=payload["aud"],
                issued_at=datetime.fromtimestamp(payload["iat"], tz=timezone.utc),
                expires_at=datetime.fromtimestamp(payload["exp"], tz=timezone.utc),
            )
        except (KeyError, TypeError, ValueError, OverflowError, OSError) as e:
            raise MalformedToken(f"Malformed token claims: {e}")

        if self._clock() >= claims.expires_at:
            raise ExpiredToken("Token has expired")
        return claims
