"""
Logging system using structlog.
Provides structured logging with JSON or console output and an
audit-style helper for authentication events.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

import structlog
from structlog.stdlib import LoggerFactory


def setup_logging(
    log_level: str = "INFO",
    log_format: str = "json",
    log_file: Optional[Union[str, Path]] = None,
    debug: bool = False
) -> None:
    """
    Set up structured logging with configurable output formats.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Output format (json or console)
        log_file: Optional log file path
        debug: Add call-site information to every event
    """
    level = getattr(logging, log_level.upper())

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=level,
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if debug:
        processors.append(structlog.processors.CallsiteParameterAdder())

    if log_format == "json":
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=True))

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.FileHandler(log_path)
        file_handler.setLevel(level)
        file_handler.setFormatter(logging.Formatter('%(message)s'))
        logging.getLogger().addHandler(file_handler)

    logger = structlog.get_logger(__name__)
    logger.info(
        "Logging system initialized",
        level=log_level,
        format=log_format,
        file=str(log_file) if log_file else None,
        debug=debug
    )


def get_logger(name: str) -> structlog.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


class AuthEventLogger:
    """
    Specialized logger for authentication events.

    Never pass passwords, hashes or tokens to these methods.
    """

    def __init__(self, name: str = "accounts.audit"):
        self.logger = structlog.get_logger(name)

    def log_registration(self, username: str, user_id: Optional[str], success: bool = True,
                         reason: Optional[str] = None) -> None:
        """Log a registration attempt."""
        level = "info" if success else "warning"
        getattr(self.logger, level)(
            "User registration",
            username=username,
            user_id=user_id,
            success=success,
            reason=reason,
        )

    def log_login(self, username: str, success: bool, reason: Optional[str] = None) -> None:
        """Log a login attempt. The reason stays internal."""
        level = "info" if success else "warning"
        getattr(self.logger, level)(
            "Login attempt",
            username=username,
            success=success,
            reason=reason,
        )

    def log_reset_requested(self, user_found: bool, user_id: Optional[str] = None) -> None:
        """Log a password reset request."""
        self.logger.info(
            "Password reset requested",
            user_found=user_found,
            user_id=user_id,
        )

    def log_password_reset(self, success: bool, user_id: Optional[str] = None,
                           reason: Optional[str] = None) -> None:
        """Log a password reset completion attempt."""
        level = "info" if success else "warning"
        getattr(self.logger, level)(
            "Password reset",
            user_id=user_id,
            success=success,
            reason=reason,
        )

    def log_token_rejected(self, reason: str) -> None:
        """Log a rejected bearer token."""
        self.logger.warning(
            "Bearer token rejected",
            reason=reason,
        )

    def log_error(self, operation: str, error: str) -> None:
        """Log an internal failure with context."""
        self.logger.error(
            "Authentication operation failed",
            operation=operation,
            error=error,
        )
