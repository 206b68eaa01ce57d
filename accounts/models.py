"""
Pydantic models for user accounts and authentication results.
Implements the UserAccount record plus the request and token payload shapes.
"""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, EmailStr, Field, validator


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def normalize_email(email: str) -> str:
    """Normalise an email address: strip whitespace and lowercase."""
    return email.strip().lower()


class UserAccount(BaseModel):
    """
    Stored user record.

    The reset token and its expiry travel together: either both are set
    or neither is.
    """
    id: Optional[str] = Field(None, description="Store-assigned identifier")
    username: str = Field(..., min_length=1, description="Unique, case-sensitive login name")
    email: str = Field(..., min_length=3, description="Unique email address (normalised)")
    password_hash: str = Field(..., description="PasswordHasher output, never plaintext")
    mobile: str = Field(default="", description="Contact number")
    reset_token: Optional[str] = Field(None, description="Pending password reset token")
    reset_token_expiry: Optional[datetime] = Field(None, description="Reset token expiry (UTC)")
    created_at: datetime = Field(default_factory=utc_now, description="When the account was created")

    @validator('reset_token_expiry', always=True)
    def validate_reset_pair(cls, v, values):
        """Ensure reset token and expiry are set together."""
        has_token = values.get('reset_token') is not None
        if has_token != (v is not None):
            raise ValueError('reset_token and reset_token_expiry must be set together')
        return v

    @property
    def has_pending_reset(self) -> bool:
        return bool(self.reset_token)

    def to_document(self) -> dict:
        """Convert to a storage document without the id field."""
        return self.dict(exclude={"id"})

    class Config:
        """Pydantic configuration."""
        json_encoders = {
            datetime: lambda v: v.isoformat()
        }


class RegistrationData(BaseModel):
    """Input for the registration flow."""
    username: str = Field(..., min_length=1, max_length=64, description="Desired username")
    email: EmailStr = Field(..., description="Email address")
    password: str = Field(..., min_length=1, description="Plaintext password")
    mobile: str = Field(default="", max_length=32, description="Contact number")

    @validator('username')
    def validate_username(cls, v):
        """Reject usernames that are blank once whitespace is removed."""
        v = v.strip()
        if not v:
            raise ValueError('username must not be empty')
        return v

    @validator('email')
    def validate_email(cls, v):
        """Store emails in normalised form."""
        return normalize_email(str(v))

    class Config:
        """Pydantic configuration."""
        json_schema_extra = {
            "example": {
                "username": "alice",
                "email": "alice@example.com",
                "password": "secret1",
                "mobile": "1234567890"
            }
        }


class TokenClaims(BaseModel):
    """Identity claims carried by a validated bearer token."""
    subject_id: str = Field(..., description="User identifier (sub)")
    username: str = Field(..., description="Username at issue time")
    email: str = Field(..., description="Email at issue time")
    issuer: str = Field(..., description="Token issuer (iss)")
    audience: str = Field(..., description="Token audience (aud)")
    issued_at: datetime = Field(..., description="Issue time (iat)")
    expires_at: datetime = Field(..., description="Expiry time (exp)")


class AuthResult(BaseModel):
    """Outcome of a successful register or login."""
    token: str = Field(..., description="Signed bearer token")
    token_type: str = Field(default="bearer", description="Token type for the Authorization header")
    username: str = Field(..., description="Authenticated username")
    email: str = Field(..., description="Authenticated email")
    expires_at: datetime = Field(..., description="Token expiry (UTC)")

    class Config:
        """Pydantic configuration."""
        json_encoders = {
            datetime: lambda v: v.isoformat()
        }
