"""
Authentication core for the Book Catalog API.

This package contains:
- Password hashing and verification
- Bearer token issuance and validation
- Password reset token lifecycle
- Registration, login and password reset flows
- MongoDB-backed user storage
"""

__version__ = "1.0.0"
