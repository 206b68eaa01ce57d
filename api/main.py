"""
FastAPI main application for the Book Catalog API.
"""

from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request, status
from fastapi.responses import JSONResponse

from accounts.database import MongoUserStore, UserStore
from accounts.errors import (
    AuthError, EmailTaken, InternalError, InvalidCredentials,
    InvalidOrExpiredToken, InvalidRequest, UsernameTaken
)
from accounts.hashing import PasswordHasher
from accounts.models import AuthResult, RegistrationData, TokenClaims
from accounts.reset_tokens import ResetTokenManager
from accounts.service import AuthService
from accounts.tokens import TokenIssuer, TokenSettings
from api.auth import get_auth_service, verify_bearer_token
from api.config import APIConfig, config as api_config
from api.models import (
    CurrentUserResponse, ErrorResponse, HealthResponse, LoginRequest,
    MessageResponse, PasswordResetConfirm, PasswordResetRequest
)
from utilities.config import config
from utilities.logger import get_logger, setup_logging

logger = get_logger(__name__)

RESET_REQUEST_MESSAGE = "If the email exists, a password reset token has been generated."
RESET_DONE_MESSAGE = "Password has been reset successfully"

AUTH_ERROR_STATUS = {
    UsernameTaken: status.HTTP_409_CONFLICT,
    EmailTaken: status.HTTP_409_CONFLICT,
    InvalidCredentials: status.HTTP_401_UNAUTHORIZED,
    InvalidOrExpiredToken: status.HTTP_400_BAD_REQUEST,
    InvalidRequest: status.HTTP_400_BAD_REQUEST,
    InternalError: status.HTTP_500_INTERNAL_SERVER_ERROR,
}


def create_auth_service(store: UserStore, token_settings: TokenSettings,
                        settings: APIConfig) -> AuthService:
    """Wire the authentication core from configuration."""
    return AuthService(
        store=store,
        hasher=PasswordHasher(rounds=settings.password_hash_rounds),
        token_issuer=TokenIssuer(token_settings),
        reset_tokens=ResetTokenManager(lifetime_hours=settings.password_reset_token_hours),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    setup_logging(
        log_level=config.log_level,
        log_format=config.log_format,
        log_file=config.get_log_file_path(),
        debug=config.debug
    )
    logger.info("Starting Book Catalog API")

    # Raises ConfigurationError on a missing or short signing key; the app never serves.
    token_settings = api_config.token_settings()

    store = MongoUserStore(
        connection_url=config.mongodb_url,
        database_name=config.mongodb_database,
        collection_name=config.users_collection
    )
    try:
        await store.connect()
    except Exception as e:
        logger.error("Failed to connect to database", error=str(e))
        raise

    app.state.user_store = store
    app.state.auth_service = create_auth_service(store, token_settings, api_config)

    yield

    # Shutdown
    logger.info("Shutting down Book Catalog API")
    await store.disconnect()


# Create FastAPI application
app = FastAPI(
    title=api_config.api_title,
    description=api_config.api_description,
    version=api_config.api_version,
    lifespan=lifespan
)

auth_router = APIRouter(prefix="/api/auth", tags=["Authentication"])


# Exception handlers
@app.exception_handler(AuthError)
async def auth_exception_handler(request: Request, exc: AuthError):
    """Translate account flow failures into HTTP responses."""
    status_code = AUTH_ERROR_STATUS.get(type(exc), status.HTTP_400_BAD_REQUEST)
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, InvalidCredentials) else None
    return JSONResponse(
        status_code=status_code,
        content=ErrorResponse(
            error=exc.message,
            code=exc.code,
            status_code=status_code
        ).dict(),
        headers=headers
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions."""
    return JSONResponse(
        status_code=exc.status_code,
        content=ErrorResponse(
            error=exc.detail,
            status_code=exc.status_code
        ).dict(),
        headers=exc.headers
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Handle general exceptions."""
    logger.error("Unhandled exception", error=str(exc), path=request.url.path)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content=ErrorResponse(
            error="Internal server error",
            detail=str(exc) if api_config.debug else None,
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR
        ).dict()
    )


# Health check endpoint (no authentication required)
@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check(request: Request):
    """Health check endpoint."""
    db_status = "unknown"
    store = getattr(request.app.state, "user_store", None)
    if store is not None:
        health_info = await store.health_check()
        db_status = health_info.get("status", "unknown")

    return HealthResponse(
        status="healthy" if db_status == "healthy" else "degraded",
        timestamp=datetime.now(timezone.utc),
        version=api_config.api_version,
        database_status=db_status
    )


# Authentication endpoints
@auth_router.post("/register", response_model=AuthResult)
async def register(
    data: RegistrationData,
    auth_service: AuthService = Depends(get_auth_service)
):
    """
    Register a new user.

    - **username**: Unique username
    - **email**: Unique email address
    - **password**: Password
    - **mobile**: Optional contact number
    """
    return await auth_service.register(data)


@auth_router.post("/login", response_model=AuthResult)
async def login(
    data: LoginRequest,
    auth_service: AuthService = Depends(get_auth_service)
):
    """Login with username and password."""
    return await auth_service.login(data.username, data.password)


@auth_router.post("/password-reset-request", response_model=MessageResponse)
async def request_password_reset(
    data: PasswordResetRequest,
    auth_service: AuthService = Depends(get_auth_service)
):
    """
    Request a password reset token.

    The response is the same whether or not the email is registered.
    The token is delivered out of band, never in this response.
    """
    await auth_service.request_password_reset(data.email)
    return MessageResponse(message=RESET_REQUEST_MESSAGE)


@auth_router.post("/password-reset", response_model=MessageResponse)
async def reset_password(
    data: PasswordResetConfirm,
    auth_service: AuthService = Depends(get_auth_service)
):
    """Reset a password using a reset token."""
    await auth_service.reset_password(data.token, data.email, data.new_password)
    return MessageResponse(message=RESET_DONE_MESSAGE)


@auth_router.get("/me", response_model=CurrentUserResponse)
async def current_user(claims: TokenClaims = Depends(verify_bearer_token)):
    """Return the identity carried by the bearer token."""
    return CurrentUserResponse(
        user_id=claims.subject_id,
        username=claims.username,
        email=claims.email,
        expires_at=claims.expires_at
    )


app.include_router(auth_router)


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "api.main:app",
        host=api_config.host,
        port=api_config.port,
        reload=api_config.debug,
        log_level="info"
    )
