"""
FastAPI dependency for authenticating API requests

Usage:
    @router.post("/{shop_id}/approve")
    async def approve(
        user: User = Depends(get_current_user),
        db: AsyncSession = Depends(get_db),
    ):
        ...

The token only identifies the caller. Permission checks run in the
services against the user row loaded here.
"""
from fastapi import Depends, HTTPException, status
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.auth import verify_token
from marketplace.db.database import get_db
from marketplace.db.models.user import User
from marketplace.core.logging import get_logger

logger = get_logger(__name__)

security = HTTPBearer(auto_error=False)


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Depends(security),
    db: AsyncSession = Depends(get_db),
) -> User:
    """
    Verify the bearer JWT and load the active user it names.

    401 when the token is missing, invalid or expired, or the user is gone
    or deactivated.
    """
    if credentials is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing bearer token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token_data = verify_token(credentials.credentials)
    if not token_data:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid or expired token",
            headers={"WWW-Authenticate": "Bearer"},
        )

    result = await db.execute(select(User).where(User.id == token_data.user_id))
    user = result.scalar_one_or_none()
    if not user or not user.is_active:
        logger.warning(
            "API access denied, user missing or inactive",
            extra_data={
                "user_id": token_data.user_id,
                "user_found": user is not None,
            },
        )
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="User account is not active",
            headers={"WWW-Authenticate": "Bearer"},
        )

    if token_data.role != user.permission.value:
        logger.info(
            "Token role differs from stored permission, using stored permission",
            extra_data={
                "user_id": user.id,
                "token_role": token_data.role,
                "permission": user.permission.value,
            },
        )
    return user
