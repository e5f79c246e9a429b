"""FastAPI dependency injection functions."""

from typing import Annotated, Any

from fastapi import Depends, Header

from sage.api.middleware.auth import AuthError, AuthErrorCode, decode_jwt
from sage.api.middleware.error_handler import AuthenticationError
from sage.schemas.auth import UserContext
from sage.services.lifecycle_dispatcher import LifecycleDispatcher, get_lifecycle_dispatcher
from sage.services.profile_service import ProfileService


async def get_current_user(
    authorization: Annotated[str, Header(description="Bearer token")] = "",
) -> UserContext:
    """Extract and validate the current user from the Authorization header.

    Raises:
        AuthenticationError: 401 if the token is missing, malformed,
            expired or wrongly signed.
    """
    if not authorization:
        raise AuthenticationError("Unauthorized")

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthenticationError("Invalid authorization header format. Expected: Bearer <token>")

    try:
        payload = decode_jwt(parts[1])
        return payload.to_user_context()
    except AuthError as e:
        if e.code == AuthErrorCode.TOKEN_EXPIRED:
            raise AuthenticationError("Token has expired") from e
        raise AuthenticationError(e.message) from e
    except ValueError as e:
        raise AuthenticationError("Token subject is not a valid user id") from e


CurrentUser = Annotated[UserContext, Depends(get_current_user)]


async def get_current_profile(user: CurrentUser) -> dict[str, Any]:
    """Get the caller's profile, creating it with the free credits on first use."""
    return await ProfileService().get_or_create_profile(user.user_id, user.email)


CurrentProfile = Annotated[dict[str, Any], Depends(get_current_profile)]
Dispatcher = Annotated[LifecycleDispatcher, Depends(get_lifecycle_dispatcher)]
