"""
FastAPI application main entry point.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request, WebSocket
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from insight_engine.api.routes import digest_router, profile_router, questions_router
from insight_engine.api.websocket import websocket_endpoint
from insight_engine.core.cache import cache
from insight_engine.core.config import settings
from insight_engine.core.database import close_db, init_db
from insight_engine.core.exceptions import EngineError
from insight_engine.core.logging import configure_logging

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.
    Handles startup and shutdown events.
    """
    configure_logging()
    logger.info("Starting Insight Engine", environment=settings.environment)

    # Redis only backs the digest cache; the API works without it
    try:
        await cache.connect()
        logger.info("Redis connected")
    except Exception as e:
        logger.warning("Redis connection failed", error=str(e))

    await init_db()
    logger.info("Database initialized")

    try:
        from insight_engine.core.observability import init_sentry
        init_sentry()
    except Exception as e:
        logger.warning("Sentry initialization failed", error=str(e))

    yield

    logger.info("Shutting down Insight Engine")
    await cache.disconnect()
    await close_db()


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="""
    Question lifecycle and personalization engine.

    - Submit analytics questions and answer clarifying follow-ups
    - Per-user pillar weights that decay and reinforce with every question
    - Weekly digest of question trends
    """,
    docs_url="/docs" if settings.environment != "production" else None,
    redoc_url="/redoc" if settings.environment != "production" else None,
    lifespan=lifespan,
)

# Configure CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(EngineError)
async def engine_error_handler(request: Request, exc: EngineError) -> JSONResponse:
    """Report domain errors as structured JSON with their own status code."""
    logger.info(
        "Request rejected",
        path=request.url.path,
        error_code=exc.error_code,
        status_code=exc.status_code,
    )
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


# Include API routes
app.include_router(questions_router, prefix=settings.api_v1_prefix)
app.include_router(profile_router, prefix=settings.api_v1_prefix)
app.include_router(digest_router, prefix=settings.api_v1_prefix)


# WebSocket endpoint
@app.websocket("/ws/{client_id}")
async def ws_updates(websocket: WebSocket, client_id: str):
    """WebSocket endpoint for real-time lifecycle updates."""
    await websocket_endpoint(websocket, client_id)


# Health check endpoint
@app.get("/health")
async def health_check() -> dict:
    """Health check endpoint."""
    return {
        "status": "healthy",
        "version": settings.app_version,
        "environment": settings.environment,
    }


# Root endpoint
@app.get("/")
async def root() -> dict:
    """Root endpoint with API information."""
    return {
        "name": settings.app_name,
        "version": settings.app_version,
        "docs": "/docs",
        "endpoints": {
            "questions": f"{settings.api_v1_prefix}/questions",
            "weights": f"{settings.api_v1_prefix}/profile/weights",
            "digest": f"{settings.api_v1_prefix}/digest",
            "websocket": "/ws/{client_id}",
        },
    }
