"""Security utilities for authentication.

Tokens are issued by the platform's user service; this service only
validates them. Provides:
- JWT access token validation (type == "access")
- Numeric user id extraction from the ``sub`` claim
- Access token creation, used by tests and local tooling
"""

from datetime import UTC, datetime, timedelta
from typing import Any

from jose import JWTError, jwt

from src.config.settings import get_settings


def create_access_token(
    user_id: int,
    expires_delta: timedelta | None = None,
    extra_claims: dict[str, Any] | None = None,
) -> str:
    """Create a JWT access token for a user.

    Args:
        user_id: Numeric user id, stored as a string in ``sub``
        expires_delta: Token lifetime (default from settings)
        extra_claims: Additional claims to embed

    Returns:
        Encoded JWT string
    """
    settings = get_settings()

    to_encode = dict(extra_claims or {})
    expire = datetime.now(UTC) + (
        expires_delta or timedelta(minutes=settings.auth_access_token_expire_minutes)
    )

    to_encode.update(
        {
            "sub": str(user_id),
            "exp": expire,
            "iat": datetime.now(UTC),
            "type": "access",
        }
    )

    return jwt.encode(
        to_encode,
        settings.auth_secret_key,
        algorithm=settings.auth_algorithm,
    )


def decode_access_token(token: str) -> dict[str, Any]:
    """Decode and validate an access token.

    Validates:
    - JWT signature
    - Expiration time
    - Token type == "access"

    Raises:
        JWTError: If token is invalid, expired, or wrong type
    """
    settings = get_settings()

    payload = jwt.decode(
        token,
        settings.auth_secret_key,
        algorithms=[settings.auth_algorithm],
    )

    if payload.get("type") != "access":
        msg = "Invalid token type: expected 'access'"
        raise JWTError(msg)

    return payload


def user_id_from_token(token: str) -> int:
    """Validate a token and return the numeric user id from ``sub``.

    Raises:
        JWTError: If the token is invalid or ``sub`` is not a numeric id
    """
    payload = decode_access_token(token)
    try:
        return int(payload["sub"])
    except (KeyError, TypeError, ValueError) as e:
        msg = "Token subject is not a user id"
        raise JWTError(msg) from e
