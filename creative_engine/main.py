"""
Creative Engine API - Product Creative Generation Pipeline
FastAPI Backend Entry Point
"""

import io
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from creative_engine.core.config import settings
from creative_engine.core.database import init_db
from creative_engine.core.errors import StorageError
from creative_engine.api import generations, jobs

logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".webp": "image/webp",
    ".gif": "image/gif",
    ".mp4": "video/mp4",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info("Starting Creative Engine API...")
    init_db()
    logger.info("Database tables created")
    yield
    logger.info("Shutting down Creative Engine API...")


app = FastAPI(
    title=settings.APP_NAME,
    description="Product-faithful image and video generation with QA selection and deterministic fallback",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(generations.router, prefix="/api/v1/generations", tags=["Generations"])
app.include_router(jobs.router, prefix="/api/v1/jobs", tags=["Jobs"])


@app.get("/health", tags=["Health"])
def health_check():
    """
    Health check endpoint for Cloud Run and monitoring.
    Returns detailed status of critical services.
    """
    status = {
        "status": "healthy",
        "version": "0.1.0",
        "services": {}
    }

    # Check database connection
    try:
        from sqlalchemy import text
        from creative_engine.core.database import SessionLocal
        db = SessionLocal()
        try:
            db.execute(text("SELECT 1"))
        finally:
            db.close()
        status["services"]["database"] = "ok"
    except Exception as e:
        status["services"]["database"] = f"error: {str(e)}"
        status["status"] = "degraded"

    # Check Redis connection
    try:
        from creative_engine.core.redis import redis_health_check
        redis_status = redis_health_check()
        if redis_status.get("connected"):
            status["services"]["redis"] = "ok"
            status["services"]["redis_version"] = redis_status.get("redis_version")
            from creative_engine.workers.queue import get_queue_manager
            status["services"]["queues"] = get_queue_manager().get_queue_stats()
        else:
            status["services"]["redis"] = f"error: {redis_status.get('error', 'not connected')}"
            status["status"] = "degraded"
    except Exception as e:
        status["services"]["redis"] = f"error: {str(e)}"
        status["status"] = "degraded"

    # Check storage availability
    try:
        from creative_engine.services.storage import StorageService
        status["services"]["storage"] = StorageService().health_check().get("backend")
    except Exception as e:
        status["services"]["storage"] = f"error: {str(e)}"
        status["status"] = "degraded"

    return status


@app.get("/files/{file_path:path}", tags=["Files"])
def serve_file(file_path: str):
    """
    Serve stored assets (images, videos).
    Proxies files from GCS/S3/local storage to clients.
    """
    from creative_engine.services.storage import StorageService

    try:
        file_bytes = StorageService().get_file(file_path)
    except StorageError as e:
        raise HTTPException(status_code=404, detail=f"File not found: {e.message}")

    suffix = file_path[file_path.rfind("."):].lower() if "." in file_path else ""
    return StreamingResponse(
        io.BytesIO(file_bytes),
        media_type=CONTENT_TYPES.get(suffix, "application/octet-stream"),
        headers={"Cache-Control": "public, max-age=3600"}
    )


@app.get("/", tags=["Root"])
def root():
    """Root endpoint."""
    return {
        "message": "Creative Engine API",
        "docs": "/docs",
        "health": "/health",
    }
