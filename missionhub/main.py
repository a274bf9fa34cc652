"""MissionHub Backend API - FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from . import __version__
from .config import get_settings
from .database import USERS_TABLE, get_supabase_client, run_query
from .errors import register_error_handlers
from .logging_config import configure_logging, get_logger
from .rate_limit import limiter
from .routes import (
    admin_router,
    auth_router,
    chat_router,
    missions_router,
    payments_router,
    users_router,
)

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings = get_settings()
    configure_logging(settings)
    logger.info(f"Starting MissionHub Backend API (environment={settings.environment})")
    yield
    logger.info("Shutting down MissionHub Backend API")


app = FastAPI(
    title="MissionHub Backend API",
    description="Marketplace API connecting clients with local service providers",
    version=__version__,
    lifespan=lifespan,
)

# Rate limiting
app.state.limiter = limiter
app.add_exception_handler(RateLimitExceeded, _rate_limit_exceeded_handler)

# CORS middleware
settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

register_error_handlers(app, settings)

# Include routers
app.include_router(auth_router, prefix="/api")
app.include_router(users_router, prefix="/api")
app.include_router(missions_router, prefix="/api")
app.include_router(payments_router, prefix="/api")
app.include_router(admin_router, prefix="/api")
app.include_router(chat_router)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "service": "missionhub-backend",
        "version": __version__,
        "status": "ok",
    }


@app.get("/health")
async def health():
    """Detailed health check with actual database verification."""
    db_status = "disconnected"
    try:
        db = get_supabase_client()
        await run_query(db.table(USERS_TABLE).select("id").limit(1))
        db_status = "connected"
    except Exception as e:
        logger.warning(f"Health check database probe failed: {type(e).__name__}")
        db_status = f"error: {str(e)[:50]}"

    return {
        "status": "healthy" if db_status == "connected" else "degraded",
        "database": db_status,
    }
