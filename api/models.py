"""
API models and schemas for the FastAPI application.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, EmailStr, Field


class LoginRequest(BaseModel):
    """Login request body."""
    username: str = Field(..., description="Username")
    password: str = Field(..., description="Password")


class PasswordResetRequest(BaseModel):
    """Body for requesting a password reset."""
    email: EmailStr = Field(..., description="Email address of the account")


class PasswordResetConfirm(BaseModel):
    """Body for completing a password reset."""
    token: str = Field(..., description="Reset token delivered by email")
    email: EmailStr = Field(..., description="Email address of the account")
    new_password: str = Field(..., min_length=1, description="New password")


class MessageResponse(BaseModel):
    """Plain message response."""
    message: str = Field(..., description="Result message")


class CurrentUserResponse(BaseModel):
    """Identity of the bearer of a valid token."""
    user_id: str = Field(..., description="User identifier")
    username: str = Field(..., description="Username")
    email: str = Field(..., description="Email address")
    expires_at: datetime = Field(..., description="Token expiry")


class ErrorResponse(BaseModel):
    """Error response model."""
    error: str = Field(..., description="Error message")
    code: Optional[str] = Field(None, description="Machine-readable error code")
    detail: Optional[str] = Field(None, description="Additional error details")
    status_code: int = Field(..., description="HTTP status code")


class HealthResponse(BaseModel):
    """Health check response model."""
    status: str = Field(..., description="Service status")
    timestamp: datetime = Field(..., description="Current timestamp")
    version: str = Field(..., description="API version")
    database_status: str = Field(..., description="Database connection status")
