# folio/services/auth/jwt_handler.py
"""
JWT access token creation and validation.

Tokens are stateless bearer tokens signed with JWT_SECRET_KEY. Nothing is
stored server side; revocation is by expiry only.

Claims:
- sub: User ID (string)
- email: User's email
- exp / iat: Expiry and issue time
- type: "access"
"""

from datetime import datetime, timedelta, timezone
from typing import Any

from jose import ExpiredSignatureError, JWTError, jwt

from folio.config import settings
from folio.services.exceptions import InvalidCredentialsError, TokenExpiredError

ACCESS_TOKEN_TYPE = "access"


class JWTHandler:
    """
    Signs and verifies access tokens.

    Example:
        token = JWTHandler.create_access_token(user_id=1, email="user@example.com")
        user_id = JWTHandler.user_id_from_token(token)
    """

    @staticmethod
    def create_access_token(
        user_id: int,
        email: str,
        expires_delta: timedelta | None = None,
    ) -> str:
        """
        Create a signed access token.

        Args:
            user_id: The user's database ID
            email: The user's email address
            expires_delta: Lifetime; defaults to JWT_ACCESS_TOKEN_EXPIRE_MINUTES
        """
        if expires_delta is None:
            expires_delta = timedelta(minutes=settings.jwt_access_token_expire_minutes)

        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "email": email,
            "exp": now + expires_delta,
            "iat": now,
            "type": ACCESS_TOKEN_TYPE,
        }
        return jwt.encode(payload, settings.jwt_secret_key, algorithm=settings.jwt_algorithm)

    @staticmethod
    def validate_access_token(token: str) -> dict[str, Any]:
        """
        Verify signature, expiry and token type.

        Returns:
            The decoded claims

        Raises:
            TokenExpiredError: If the token has expired
            InvalidCredentialsError: If the token is invalid or not an access token
        """
        try:
            payload = jwt.decode(token, settings.jwt_secret_key, algorithms=[settings.jwt_algorithm])
        except ExpiredSignatureError:
            raise TokenExpiredError("Access token has expired")
        except JWTError as e:
            raise InvalidCredentialsError(f"Invalid token: {e}")

        if payload.get("type") != ACCESS_TOKEN_TYPE:
            raise InvalidCredentialsError("Invalid token type")
        return payload

    @classmethod
    def user_id_from_token(cls, token: str) -> int:
        """
        Validated `sub` claim as an int.

        Raises:
            InvalidCredentialsError: If `sub` is missing or not an integer
        """
        payload = cls.validate_access_token(token)
        try:
            return int(payload["sub"])
        except (KeyError, TypeError, ValueError):
            raise InvalidCredentialsError("Invalid token subject")
