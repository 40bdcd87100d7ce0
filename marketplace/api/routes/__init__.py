"""
API Routes
"""
from fastapi import APIRouter

from marketplace.api.routes.shops import router as shops_router
from marketplace.api.routes.balances import router as balances_router
from marketplace.api.routes.withdraws import router as withdraws_router
from marketplace.api.routes.refunds import router as refunds_router
from marketplace.api.routes.wallets import router as wallets_router
from marketplace.api.routes.orders import router as orders_router
from marketplace.api.routes.analytics import router as analytics_router

router = APIRouter()

router.include_router(shops_router, prefix="/shops", tags=["Shops"])
router.include_router(balances_router, prefix="/balances", tags=["Balances"])
router.include_router(withdraws_router, prefix="/withdraws", tags=["Withdraws"])
router.include_router(refunds_router, prefix="/refunds", tags=["Refunds"])
router.include_router(wallets_router, prefix="/wallets", tags=["Wallets"])
router.include_router(orders_router, prefix="/orders", tags=["Orders"])
router.include_router(analytics_router, prefix="/analytics", tags=["Analytics"])
