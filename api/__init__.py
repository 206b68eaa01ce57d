"""
FastAPI RESTful API for the Book Catalog.

This module provides the HTTP surface for:
- User registration and login
- Password reset request and completion
- Bearer token authentication for protected routes
"""
