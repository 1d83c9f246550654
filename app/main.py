"""
ShortsForge API - AI Short-Form Video Generation
FastAPI Backend Entry Point
"""

import io
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import StreamingResponse

from app.core.config import settings
from app.core.database import init_db
from app.core.redis import get_redis_manager
from app.api import credits, generations, uploads, videos

logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
)
logger = logging.getLogger(__name__)

CONTENT_TYPES = {
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".gif": "image/gif",
    ".webp": "image/webp",
    ".mp4": "video/mp4",
    ".mov": "video/quicktime",
    ".webm": "video/webm",
}


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown events."""
    logger.info(f"Starting {settings.APP_NAME}...")
    init_db()
    logger.info("Database tables ready")
    yield
    logger.info(f"Shutting down {settings.APP_NAME}...")
    get_redis_manager().close()


app = FastAPI(
    title=settings.APP_NAME,
    description="AI short-form video generation: script, talking avatar and final composition",
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
app.include_router(uploads.router, prefix="/api/v1/uploads", tags=["Uploads"])
app.include_router(videos.router, prefix="/api/v1/videos", tags=["Videos"])
app.include_router(credits.router, prefix="/api/v1/credits", tags=["Credits"])


@app.get("/health", tags=["Health"])
async def health_check():
    """
    Health check endpoint for monitoring.
    Returns detailed status of critical services.
    """
    status = {
        "status": "healthy",
        "version": "0.1.0",
        "environment": {
            "task_queue": "rq" if settings.USE_TASK_QUEUE else "in-process",
            "database": "sqlite" if settings.DATABASE_URL.startswith("sqlite") else "postgresql",
        },
        "services": {}
    }

    # Check database connection
    try:
        from app.core.database import SessionLocal
        from sqlalchemy import text
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
        from app.core.redis import redis_health_check
        redis_status = redis_health_check()
        if redis_status.get("connected"):
            status["services"]["redis"] = "ok"
            status["services"]["redis_version"] = redis_status.get("redis_version")
        else:
            status["services"]["redis"] = f"error: {redis_status.get('error', 'not connected')}"
            status["status"] = "degraded"
    except Exception as e:
        status["services"]["redis"] = f"error: {str(e)}"
        status["status"] = "degraded"

    if settings.USE_TASK_QUEUE and status["services"].get("redis") == "ok":
        from app.workers.queue import get_queue_manager
        status["services"]["queues"] = get_queue_manager().get_queue_stats()

    # Check storage availability
    try:
        from app.services.storage import StorageService
        storage = StorageService()
        status["environment"]["storage"] = storage.backend
        status["services"]["storage"] = storage.health_check()
    except Exception as e:
        status["services"]["storage"] = f"error: {str(e)}"
        status["status"] = "degraded"

    return status


@app.get("/files/{file_path:path}", tags=["Files"])
async def serve_file(file_path: str):
    """
    Serve uploaded files from storage so vendors and the frontend can fetch
    them by URL.
    """
    from app.services.storage import StorageService

    try:
        file_bytes = await StorageService().get_file(file_path)
    except Exception as e:
        logger.debug(f"[Files] {file_path} not served: {e}")
        raise HTTPException(status_code=404, detail="File not found")

    suffix = "." + file_path.rsplit(".", 1)[-1].lower() if "." in file_path else ""
    return StreamingResponse(
        io.BytesIO(file_bytes),
        media_type=CONTENT_TYPES.get(suffix, "application/octet-stream"),
        headers={
            "Cache-Control": "public, max-age=3600",
            "Access-Control-Allow-Origin": "*"
        }
    )


@app.get("/", tags=["Root"])
async def root():
    """Root endpoint."""
    return {
        "message": f"{settings.APP_NAME} - AI Short-Form Video Generation",
        "docs": "/docs",
        "health": "/health",
    }
