from typing import Annotated
import uuid
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from app.database import get_db
from app.core.security import verify_access_token
from app.core.permissions import AuthenticatedUser, PermissionChecker


logger = logging.getLogger(__name__)

# HTTP Bearer security scheme
security = HTTPBearer()


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
) -> AuthenticatedUser:
    """
    Dependency to get the current authenticated user.

    Tokens are issued by the identity service and carry the user id in
    ``sub`` and the granted permission codes in ``permissions``.
    """
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
        headers={"WWW-Authenticate": "Bearer"},
    )

    payload = verify_access_token(credentials.credentials)
    if payload is None:
        logger.warning("Token verification failed - invalid or expired token")
        raise credentials_exception

    try:
        user_uuid = uuid.UUID(payload["sub"])
    except ValueError:
        logger.warning(f"Invalid user_id in token: {payload['sub']}")
        raise credentials_exception

    permissions = payload.get("permissions") or []
    return AuthenticatedUser(
        id=user_uuid,
        permissions=set(permissions),
        email=payload.get("email"),
    )


async def get_permission_checker(
    user: Annotated[AuthenticatedUser, Depends(get_current_user)],
) -> PermissionChecker:
    return PermissionChecker(user)


def require_permissions(*required_permissions: str):
    """
    Dependency factory to require specific permissions.

    Usage:
        @router.get("/waves", dependencies=[Depends(require_permissions("picking:view"))])
        async def list_waves():
            ...
    """
    async def permission_dependency(
        permission_checker: Annotated[PermissionChecker, Depends(get_permission_checker)]
    ):
        for permission in required_permissions:
            if not permission_checker.has_permission(permission):
                raise HTTPException(
                    status_code=status.HTTP_403_FORBIDDEN,
                    detail=f"Permission denied. Required: {permission}"
                )
        return True

    return permission_dependency


# Type aliases for cleaner endpoint signatures
CurrentUser = Annotated[AuthenticatedUser, Depends(get_current_user)]
DB = Annotated[AsyncSession, Depends(get_db)]
