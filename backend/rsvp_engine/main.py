"""
RSVP Admission Engine - Main Application Entry Point

Capacity-constrained RSVP admission and waitlist ordering:
- Immediate admit / waitlist / reject decided inside one transaction
- Gap-free, membership-weighted waitlist positions
- Family members that follow their primary attendee
- Promotion from the waitlist as soon as a seat frees up
- Optimistic concurrency on a per-event version, one jittered retry
"""

from contextlib import asynccontextmanager
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from rsvp_engine.core.config import get_settings
from rsvp_engine.core.logging import setup_logging, get_logger
from rsvp_engine.core.metrics import metrics_endpoint
from rsvp_engine.api.errors import register_exception_handlers
from rsvp_engine.api.router import api_router
from rsvp_engine.api.middleware import RequestLoggingMiddleware
from rsvp_engine.services.cache_service import get_redis, close_redis, get_cache_stats
from rsvp_engine.services.store_factory import build_rsvp_service

settings = get_settings()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifecycle: startup and shutdown hooks."""
    setup_logging()
    logger = get_logger(__name__)

    logger.info(
        "application_starting",
        app=settings.APP_NAME,
        version=settings.APP_VERSION,
        environment=settings.ENVIRONMENT,
        store=settings.STORE_BACKEND,
    )

    app.state.rsvp_service = build_rsvp_service(settings)

    # Initialize Redis connection
    redis_client = await get_redis()
    if redis_client:
        logger.info("redis_ready")
    else:
        logger.warning("redis_unavailable", message="Serving capacity reads without cache")

    yield

    # Cleanup
    await app.state.rsvp_service.close()
    await close_redis()
    logger.info("application_shutdown")


app = FastAPI(
    title=settings.APP_NAME,
    version=settings.APP_VERSION,
    description="RSVP admission and waitlist engine with concurrency-safe capacity control",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc",
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],  # Restrict in production
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Custom middleware
app.add_middleware(RequestLoggingMiddleware)

# Error mapping
register_exception_handlers(app)

# Routes
app.include_router(api_router)


@app.get("/health", tags=["Health"])
async def health_check():
    """Health check endpoint for Docker and load balancers."""
    cache_stats = await get_cache_stats()
    return {
        "status": "healthy",
        "version": settings.APP_VERSION,
        "environment": settings.ENVIRONMENT,
        "store": settings.STORE_BACKEND,
        "cache": cache_stats,
    }


@app.get("/metrics", tags=["Health"], include_in_schema=False)
def metrics():
    return metrics_endpoint()


@app.get("/", tags=["Root"])
async def root():
    return {
        "message": f"Welcome to {settings.APP_NAME}",
        "version": settings.APP_VERSION,
        "docs": "/docs",
    }
