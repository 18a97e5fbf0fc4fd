"""
FastAPI Backend for Social Account Connection and Publishing
"""
# Load environment variables BEFORE any other imports
from dotenv import load_dotenv

load_dotenv()

from config.settings import settings, validate_production_config

# Configure structured logging BEFORE other imports that use logging
from utils.logging_config import configure_logging

configure_logging(settings)

# ============================================================================
# SENTRY ERROR TRACKING - Initialize before FastAPI app
# ============================================================================
import sentry_sdk
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.sqlalchemy import SqlalchemyIntegration
from sentry_sdk.integrations.redis import RedisIntegration
from loguru import logger

# Initialize Sentry only if DSN is provided
if settings.SENTRY_DSN:
    sentry_sdk.init(
        dsn=settings.SENTRY_DSN,
        environment=settings.ENVIRONMENT,
        integrations=[
            FastApiIntegration(
                transaction_style="url",  # Group by URL pattern, not specific URLs
                failed_request_status_codes=[range(500, 599)],
            ),
            SqlalchemyIntegration(),
            RedisIntegration(),
        ],
        traces_sample_rate=0.1,
        # Provider tokens travel in query strings and form bodies
        send_default_pii=False,
        attach_stacktrace=True,
        max_breadcrumbs=50,
    )
    logger.info(f"Sentry error tracking initialized for environment: {settings.ENVIRONMENT}")
else:
    logger.warning(
        "Sentry DSN not configured - error tracking disabled. "
        "Set SENTRY_DSN environment variable to enable."
    )

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager
import uvicorn

from api.social import router as social_router
from config.redis_config import close_redis_connections, test_redis_connection
from database import init_db
from utils.exception_handlers import register_exception_handlers


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup, cleanup on shutdown"""
    init_db()

    for warning in validate_production_config():
        logger.warning(warning)

    if not test_redis_connection():
        logger.warning("Redis not available - OAuth connect flows will fail until it is reachable")

    yield

    close_redis_connections()

    if settings.SENTRY_DSN:
        sentry_sdk.flush(timeout=2.0)
        logger.info("Sentry events flushed")

    logger.info("Application shutdown complete")


app = FastAPI(
    title="Social Publishing API",
    description="Connect Twitter, Facebook, Instagram and LinkedIn accounts and publish to them",
    version="1.0.0",
    lifespan=lifespan,
    redirect_slashes=False,
)

# Must be registered before routes so every error uses the standard format
register_exception_handlers(app)

# ============================================================================
# CORS
# ============================================================================
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=settings.CORS_ALLOW_CREDENTIALS,
    allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)

# ============================================================================
# ROUTERS
# ============================================================================
app.include_router(social_router, prefix="/api/social", tags=["social"])


@app.get("/health")
async def health():
    """Liveness check"""
    return {"status": "ok"}


if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
