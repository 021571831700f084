from typing import Annotated
import uuid
import logging

from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy.ext.asyncio import AsyncSession

from craftmarket.database import get_db
from craftmarket.core.exceptions import AccessDeniedError, UserNotFoundError
from craftmarket.core.security import verify_access_token
from craftmarket.models.user import User, UserRole
from craftmarket.services.user_service import UserService


logger = logging.getLogger(__name__)

# HTTP Bearer security scheme
security = HTTPBearer()

DB = Annotated[AsyncSession, Depends(get_db)]


async def get_current_user(
    credentials: Annotated[HTTPAuthorizationCredentials, Depends(security)],
    db: DB,
) -> User:
    """
    Dependency to get the current authenticated user.

    Tokens are issued by the auth service; this only verifies the signature,
    expiry and claims, then loads the active user row.
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

    try:
        user = await UserService(db).get_user(user_uuid)
    except UserNotFoundError:
        logger.warning(f"User {user_uuid} from token not found")
        raise credentials_exception

    if not user.is_active:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="User account is deactivated"
        )

    if payload["role"] != user.role:
        logger.warning(f"Token role {payload['role']} does not match user {user.id} role {user.role}")
        raise credentials_exception

    return user


CurrentUser = Annotated[User, Depends(get_current_user)]


def require_roles(*roles: UserRole):
    """
    Dependency factory restricting an endpoint to the given roles.

    Usage:
        @router.post("", dependencies=[Depends(require_roles(UserRole.ARTISAN))])
    """
    allowed = {role.value for role in roles}

    async def role_dependency(user: CurrentUser) -> User:
        if user.role not in allowed:
            raise AccessDeniedError(
                f"This action requires role: {', '.join(sorted(allowed))}"
            )
        return user

    return role_dependency


CustomerUser = Annotated[User, Depends(require_roles(UserRole.CUSTOMER))]
ArtisanUser = Annotated[User, Depends(require_roles(UserRole.ARTISAN))]
