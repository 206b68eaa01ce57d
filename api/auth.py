"""
Bearer token authentication dependencies for the FastAPI API.
"""

from typing import Optional

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer

from accounts.errors import ExpiredToken, TokenError
from accounts.models import TokenClaims
from accounts.service import AuthService

# Security scheme; missing headers are reported by verify_bearer_token
security = HTTPBearer(auto_error=False)

BEARER_CHALLENGE = {"WWW-Authenticate": "Bearer"}


def get_auth_service(request: Request) -> AuthService:
    """Return the AuthService built during application startup."""
    service = getattr(request.app.state, "auth_service", None)
    if service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Authentication service not available"
        )
    return service


async def verify_bearer_token(
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    auth_service: AuthService = Depends(get_auth_service)
) -> TokenClaims:
    """
    Verify the bearer token on a protected request.

    Args:
        credentials: HTTP authorization credentials
        auth_service: Authentication service

    Returns:
        Claims of the validated token

    Raises:
        HTTPException: If the header is missing or the token is invalid
    """
    if credentials is None or not credentials.credentials:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Authorization header missing",
            headers=BEARER_CHALLENGE,
        )

    try:
        return auth_service.authenticate(credentials.credentials)
    except ExpiredToken:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Token has expired",
            headers=BEARER_CHALLENGE,
        )
    except TokenError:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid token",
            headers=BEARER_CHALLENGE,
        )
