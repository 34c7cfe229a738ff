# folio/services/auth/__init__.py
"""
Authentication.

Requests carry a bearer JWT; JWTHandler signs and verifies it. Account
management (registration, passwords, OAuth) lives outside this service.

Usage:
    from folio.services.auth import JWTHandler

    token = JWTHandler.create_access_token(user_id=1, email="user@example.com")
    payload = JWTHandler.validate_access_token(token)
"""

from folio.services.auth.jwt_handler import JWTHandler

__all__ = [
    "JWTHandler",
]
