"""
POSEMATCH Backend API
Real-time pose matching against a reference image

FastAPI application entry point with WebSocket streaming and worker threads
for non-blocking pose inference.
"""

import logging
import sys
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

from core.config import settings
from shared.utils import LOG_DATE_FORMAT, LOG_FORMAT, parse_log_level, setup_logger

# ============================================
# Configure Root Logger First
# ============================================
logging.basicConfig(
    level=parse_log_level(settings.LOG_LEVEL),
    format=LOG_FORMAT,
    datefmt=LOG_DATE_FORMAT,
    handlers=[logging.StreamHandler(sys.stdout)]
)

from core.threading import video_worker_pool, ml_worker_pool
from matching_service.models import get_match_service
from matching_service.router import router as match_router

logger = setup_logger("posematch.main", level=parse_log_level(settings.LOG_LEVEL))
request_logger = setup_logger("posematch.requests", level=parse_log_level(settings.LOG_LEVEL))


# ============================================
# Request Logging Middleware
# ============================================

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log all incoming requests and responses with timing."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        query_string = f"?{request.url.query}" if request.url.query else ""
        request_logger.info(f"➡️  {request.method} {request.url.path}{query_string}")

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = (time.time() - start_time) * 1000
            request_logger.exception(
                f"💥 {request.method} {request.url.path} → ERROR: {type(e).__name__}: {e} ({process_time:.1f}ms)"
            )
            raise

        process_time = (time.time() - start_time) * 1000
        if response.status_code < 400:
            status_emoji = "✅"
        elif response.status_code < 500:
            status_emoji = "⚠️"
        else:
            status_emoji = "❌"
        request_logger.info(
            f"{status_emoji} {request.method} {request.url.path} → {response.status_code} ({process_time:.1f}ms)"
        )
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown."""
    # ===== STARTUP =====
    logger.info("🚀 POSEMATCH API starting up...")

    # Model load; the reference image loads alongside it
    service = get_match_service()
    await service.startup()

    logger.info("✅ POSEMATCH API ready!")

    yield  # Application runs here

    # ===== SHUTDOWN =====
    logger.info("👋 POSEMATCH API shutting down...")

    await service.shutdown()

    video_worker_pool.shutdown(wait=True)
    ml_worker_pool.shutdown(wait=True)

    logger.info("✅ Shutdown complete")


app = FastAPI(
    title="POSEMATCH API",
    description="Live pose similarity scoring against a reference image",
    version="1.0.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan
)

# CORS configuration
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Add request logging middleware
app.add_middleware(RequestLoggingMiddleware)


# Health check endpoint
@app.get("/health")
async def health_check():
    """Health check endpoint for monitoring."""
    service = get_match_service()
    return {
        "status": "healthy",
        "service": "posematch-api",
        "model_ready": service.model_ready,
        "scoring_enabled": service.reference_store.scoring_enabled,
    }


@app.get("/stats")
async def get_stats():
    """Get service statistics."""
    return {
        "video_pool": video_worker_pool.get_stats(),
        "ml_pool": ml_worker_pool.get_stats(),
    }


# Include service routers
app.include_router(match_router, prefix="/api/match", tags=["Pose Matching"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
