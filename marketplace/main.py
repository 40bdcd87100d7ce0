"""
Marketplace Ledger - Main FastAPI Application
"""
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from marketplace.core.config import settings
from marketplace.core.logging import setup_logging, get_logger
from marketplace.core.middleware import setup_middleware, setup_exception_handlers
from marketplace.api.routes import router as api_router
from marketplace.db.database import engine, Base
import marketplace.db.models  # noqa: F401  registers tables on Base.metadata

# Setup logging before anything else
setup_logging(
    level="DEBUG" if settings.DEBUG else "INFO",
    json_format=not settings.DEBUG,
    app_name=settings.APP_NAME
)

logger = get_logger(__name__)


def _parse_allowed_origins(raw: str) -> list[str]:
    """Parse comma-separated CORS origins string into a clean list."""
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


_OPENAPI_TAGS = [
    {"name": "Shops", "description": "Shop approval and commission setup."},
    {"name": "Balances", "description": "Shop balances and their movement history."},
    {"name": "Withdraws", "description": "Shop payout requests and their review."},
    {"name": "Refunds", "description": "Refund requests and approval."},
    {"name": "Wallets", "description": "Customer points wallets."},
    {"name": "Orders", "description": "Split orders and their status; completion settles shops."},
    {"name": "Analytics", "description": "Revenue, refund and order figures."},
]


app = FastAPI(
    title=settings.APP_NAME,
    version="1.0.0",
    description=(
        "Order settlement and financial ledger for a multi-vendor marketplace: "
        "shop balances, commissions, refunds, withdrawals and customer wallets."
    ),
    openapi_tags=_OPENAPI_TAGS,
    openapi_url="/openapi.json",
)

# Setup middleware (correlation ID, request logging)
setup_middleware(app)
setup_exception_handlers(app)

allowed_origins = _parse_allowed_origins(settings.ALLOWED_ORIGINS)

# Safe dev default to support local frontend development without opening CORS in production.
if not allowed_origins and settings.DEBUG:
    allowed_origins = [
        "http://localhost",
        "http://localhost:3000",
        "http://127.0.0.1:3000",
    ]

if allowed_origins:
    app.add_middleware(
        CORSMiddleware,
        allow_origins=allowed_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Correlation-ID"],
    )

app.include_router(api_router, prefix="/api")


@app.on_event("startup")
async def startup() -> None:
    """Initialize database tables on startup"""
    logger.info("Starting application", extra_data={"app_name": settings.APP_NAME})
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    logger.info("Database tables initialized")


@app.on_event("shutdown")
async def shutdown() -> None:
    """Cleanup on shutdown"""
    logger.info("Shutting down application")
    await engine.dispose()
    logger.info("Database connections disposed")


@app.get(
    "/health",
    summary="Liveness probe",
    description="Cheap check that the process is up. Does not touch the database.",
    tags=["Health"],
)
async def health_check() -> dict[str, str]:
    """Liveness probe"""
    return {"status": "healthy"}
