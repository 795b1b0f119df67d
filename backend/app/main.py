"""Gigboard Backend API - FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from slowapi import _rate_limit_exceeded_handler
from slowapi.errors import RateLimitExceeded

from .config import get_settings
from .database import JOBS_TABLE
from .logging_config import get_logger, setup_logging
from .rate_limit import limiter
from .routes import admin_router, jobs_router

API_PREFIX = "/api/v1"

logger = get_logger("gigboard.api")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan events."""
    settings = get_settings()
    setup_logging(settings.log_level)
    logger.info(f"Starting Gigboard Backend API (debug={settings.debug})")
    yield
    logger.info("Shutting down Gigboard Backend API")


app = FastAPI(
    title="Gigboard Backend API",
    description="Job feed ranking, rotation and worker capacity",
    version="0.1.0",
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

# Include routers
app.include_router(jobs_router, prefix=API_PREFIX)
app.include_router(admin_router, prefix=API_PREFIX)


@app.get("/")
async def root():
    """Health check endpoint."""
    return {
        "service": "gigboard-backend",
        "version": "0.1.0",
        "status": "ok",
    }


@app.get("/health")
async def health():
    """Detailed health check with actual database verification."""
    import asyncio

    from .database import get_supabase_client

    db_status = "disconnected"
    try:
        db = get_supabase_client()
        await asyncio.to_thread(db.table(JOBS_TABLE).select("id").limit(1).execute)
        db_status = "connected"
    except Exception as e:
        logger.warning(f"Health check database probe failed: {e}")
        db_status = f"error: {str(e)[:50]}"

    overall_status = "healthy" if db_status == "connected" else "degraded"

    return {
        "status": overall_status,
        "database": db_status,
    }
