"""
API configuration settings.
"""

from typing import Optional

from pydantic import Field, ValidationError
from pydantic_settings import BaseSettings

from accounts.errors import ConfigurationError
from accounts.hashing import DEFAULT_ROUNDS
from accounts.reset_tokens import DEFAULT_LIFETIME_HOURS
from accounts.tokens import TokenSettings


class APIConfig(BaseSettings):
    """API configuration settings."""

    # API Settings
    api_title: str = "Book Catalog API"
    api_version: str = "1.0.0"
    api_description: str = "Book catalog API with username/password authentication and bearer tokens"

    # Server Settings
    host: str = "0.0.0.0"
    port: int = 8000
    debug: bool = False

    # Token Settings (JWT_SECRET_KEY has no default: startup fails without it)
    jwt_secret_key: Optional[str] = Field(default=None, repr=False)
    jwt_issuer: str = "BookAPI"
    jwt_audience: str = "BookAPIUsers"
    jwt_expire_minutes: int = 60

    # Password Settings
    password_hash_rounds: int = DEFAULT_ROUNDS
    password_reset_token_hours: int = DEFAULT_LIFETIME_HOURS

    model_config = {
        "env_file": ".env",
        "extra": "ignore"  # Ignore extra fields from .env
    }

    def token_settings(self) -> TokenSettings:
        """
        Build the immutable token configuration.

        Raises:
            ConfigurationError: secret missing, too short, or other values invalid
        """
        if not self.jwt_secret_key:
            raise ConfigurationError(
                "JWT_SECRET_KEY is not set. The API cannot start without a signing key."
            )
        try:
            return TokenSettings(
                secret_key=self.jwt_secret_key,
                issuer=self.jwt_issuer,
                audience=self.jwt_audience,
                expire_minutes=self.jwt_expire_minutes,
            )
        except ValidationError as e:
            fields = ", ".join(str(err["loc"][0]) for err in e.errors())
            raise ConfigurationError(f"Invalid token configuration: {fields}") from None


# Global config instance
config = APIConfig()
