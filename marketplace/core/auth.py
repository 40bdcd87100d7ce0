"""
JWT access tokens for the marketplace API.

Tokens are issued by the identity service (out of scope here); this module
only needs to mint them for tests and internal tools and to verify them on
every request. The role in the token is advisory: the request dependency
reloads the user and trusts the database permission.
"""
from datetime import datetime, timedelta, timezone
from typing import Optional

import jwt as pyjwt
from pydantic import BaseModel

from marketplace.core.config import settings
from marketplace.core.logging import get_logger

logger = get_logger(__name__)


class TokenPayload(BaseModel):
    """Decoded JWT contents"""
    user_id: int
    role: str
    exp: int  # Unix timestamp, JWT standard


def create_access_token(user_id: int, role: str) -> str:
    """Create a signed access token"""
    if not settings.JWT_SECRET_KEY:
        raise ValueError("JWT_SECRET_KEY is not configured; cannot issue tokens")
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES)
    payload = {
        "user_id": user_id,
        "role": role,
        "exp": int(expire.timestamp()),
    }
    encoded = pyjwt.encode(payload, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)
    logger.info("JWT token created", extra_data={"user_id": user_id, "role": role})
    return encoded


def verify_token(token: str) -> Optional[TokenPayload]:
    """Verify a JWT; returns None when invalid or expired"""
    if not settings.JWT_SECRET_KEY:
        logger.error("JWT_SECRET_KEY is empty; tokens cannot be verified")
        return None
    try:
        payload = pyjwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
        )
        return TokenPayload(**payload)
    except pyjwt.InvalidTokenError:
        logger.warning("JWT token invalid or expired")
        return None
    except (KeyError, ValueError) as e:
        logger.warning("JWT payload malformed", extra_data={"error": str(e)})
        return None
