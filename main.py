"""
FITDUEL Training Engine API

FastAPI application entry point for real-time exercise form analysis and
anti-cheat trust validation.
"""

import logging
import sys
import time
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

# ============================================
# Configure Root Logger First
# ============================================
logging.basicConfig(
    level=logging.DEBUG,
    format="%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
    handlers=[logging.StreamHandler(sys.stdout)]
)

# Service routers
from form_service.router import router as training_router

# Core utilities
from core.config import settings
from form_service.models import get_session_handler, list_exercise_rules
from shared.utils import setup_logger

# Setup logging
logger = setup_logger("fitduel.main", level=logging.DEBUG)
request_logger = setup_logger("fitduel.requests", level=logging.DEBUG)


# ============================================
# Request Logging Middleware
# ============================================

class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log incoming requests and responses with timing."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        query_string = f"?{request.url.query}" if request.url.query else ""
        request_logger.info(f"{request.method} {request.url.path}{query_string}")

        try:
            response = await call_next(request)
        except Exception as e:
            process_time = (time.time() - start_time) * 1000
            request_logger.exception(
                f"{request.method} {request.url.path} -> ERROR: {type(e).__name__}: {e} ({process_time:.1f}ms)"
            )
            raise

        process_time = (time.time() - start_time) * 1000
        log = request_logger.warning if response.status_code >= 400 else request_logger.info
        log(f"{request.method} {request.url.path} -> {response.status_code} ({process_time:.1f}ms)")
        return response


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup/shutdown."""
    # ===== STARTUP =====
    logger.info(f"{settings.APP_NAME} starting up...")
    logger.info(f"Exercise rules loaded: {', '.join(r.exercise.value for r in list_exercise_rules())}")

    yield  # Application runs here

    # ===== SHUTDOWN =====
    handler = get_session_handler()
    open_sessions = handler.open_session_count()
    if open_sessions:
        logger.warning(f"Shutting down with {open_sessions} open session(s)")
    logger.info("Shutdown complete")


app = FastAPI(
    title="FITDUEL Training Engine API",
    description="Exercise form analysis and anti-cheat validation for fitness duels",
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
    return {
        "status": "healthy",
        "service": "fitduel-training-engine",
        "active_sessions": get_session_handler().open_session_count(),
        "exercises": len(list_exercise_rules()),
    }


# Include service routers
app.include_router(training_router, prefix="/api/training", tags=["Training"])


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=settings.DEBUG)
