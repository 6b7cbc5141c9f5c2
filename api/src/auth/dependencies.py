"""FastAPI dependencies for authentication.

Provides dependency injection for:
- Bearer token extraction
- Required and optional current user id
"""

from typing import Annotated

from fastapi import Depends, HTTPException, Request, status
from jose import JWTError

from src.auth.security import user_id_from_token
from src.core.context import set_user_id


def get_token_from_header(request: Request) -> str | None:
    """Extract Bearer token from Authorization header.

    Returns:
        Token string or None if not present
    """
    auth_header = request.headers.get("Authorization")
    if not auth_header:
        return None

    expected_parts = 2
    parts = auth_header.split()
    if len(parts) != expected_parts or parts[0].lower() != "bearer":
        return None

    return parts[1]


async def get_current_user_id(
    token: Annotated[str | None, Depends(get_token_from_header)],
) -> int:
    """Get the authenticated user's id from the JWT access token.

    Raises:
        HTTPException(401): If token is missing, invalid, or expired
    """
    if not token:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Access token not provided",
            headers={"WWW-Authenticate": "Bearer"},
        )

    try:
        user_id = user_id_from_token(token)
    except JWTError as e:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        ) from e

    # Set user_id in context for logging
    set_user_id(user_id)
    return user_id


async def get_current_user_id_optional(
    token: Annotated[str | None, Depends(get_token_from_header)],
) -> int | None:
    """Get the user id if authenticated, None otherwise.

    Use this for endpoints that work for both authenticated and anonymous
    users. An invalid token is treated as anonymous.
    """
    if not token:
        return None

    try:
        user_id = user_id_from_token(token)
    except JWTError:
        return None

    set_user_id(user_id)
    return user_id


# ==============================================================================
# Type Aliases for Cleaner Code
# ==============================================================================

# Authenticated user id
CurrentUserId = Annotated[int, Depends(get_current_user_id)]

# Optional user id (for endpoints that work both ways)
OptionalUserId = Annotated[int | None, Depends(get_current_user_id_optional)]
