"""
Access checks shared by the ledger services.

The HTTP layer only authenticates; every service re-checks the actor's
permission so in-process callers get the same guarantees.
"""
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from marketplace.core.exceptions import ForbiddenException
from marketplace.core.logging import get_logger
from marketplace.db.models.shop import Shop
from marketplace.db.models.user import User, Permission

logger = get_logger(__name__)


def ensure_super_admin(actor: User, action: str) -> None:
    """Raise ForbiddenException unless the actor is a platform admin"""
    if actor is None or not actor.is_active or not actor.is_super_admin:
        logger.warning(
            "Admin-only operation denied",
            extra_data={
                "action": action,
                "user_id": actor.id if actor else None,
                "permission": actor.permission.value if actor else None,
            },
        )
        raise ForbiddenException(action, user_id=actor.id if actor else None)


async def owned_shop_ids(db: AsyncSession, actor: User) -> List[int]:
    """Shops an actor may see: owned shops for owners, the assigned shop for staff"""
    if actor.permission == Permission.STORE_OWNER:
        result = await db.execute(select(Shop.id).where(Shop.owner_id == actor.id))
        return list(result.scalars().all())
    if actor.permission == Permission.STAFF and actor.shop_id:
        return [actor.shop_id]
    return []


async def ensure_shop_owner_or_admin(db: AsyncSession, actor: User, shop_id: int, action: str) -> None:
    """Platform admins pass; otherwise the actor must own the shop"""
    if actor.is_super_admin and actor.is_active:
        return
    if actor.is_active and actor.is_store_owner:
        result = await db.execute(
            select(Shop.id).where(Shop.id == shop_id, Shop.owner_id == actor.id)
        )
        if result.scalar_one_or_none() is not None:
            return
    logger.warning(
        "Shop operation denied",
        extra_data={"action": action, "user_id": actor.id, "shop_id": shop_id},
    )
    raise ForbiddenException(action, user_id=actor.id)
