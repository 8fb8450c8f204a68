#!/usr/bin/env python3
"""
Main entry point for the MeLink service

This module creates and configures the FastAPI application, wiring together
the API routes, blob storage, the meeting store and static assets.
"""

import asyncio
import logging
import os
import sys
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.trustedhost import TrustedHostMiddleware
from fastapi.responses import FileResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

from api.routes import api_router
from api.error_handlers import setup_error_handlers
from api.handlers import HealthCheckHandler
from storage.blob_store import get_blob_store, BlobNotFoundError
from storage.meeting_store import get_meeting_store, MeetingStoreError
import config

# Configure logging based on environment
def setup_logging():
    """Configure logging for the application."""
    log_level = logging.DEBUG if config.DEBUG else getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)
    log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    # Configure root logger
    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(config.LOG_FILE) if not config.DEBUG else logging.NullHandler()
        ]
    )

    # Set specific logger levels
    logging.getLogger('uvicorn').setLevel(logging.INFO)
    logging.getLogger('fastapi').setLevel(logging.INFO)

    return logging.getLogger(__name__)

logger = setup_logging()

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager for startup and shutdown procedures."""
    logger.info("Starting MeLink service...")

    # Blob storage must be writable before any upload is accepted
    blob_store = get_blob_store()
    blob_store.ensure_directories()
    logger.info("Blob store initialized")

    # Redis may come up after us; requests report 503 until it does
    try:
        meeting_store = get_meeting_store()
        logger.info(f"Meeting store initialized ({meeting_store.get_stats()['meetings']} meetings)")
    except MeetingStoreError as e:
        logger.warning(f"Meeting store unavailable at startup: {e}")

    logger.info("All services initialized successfully")

    yield

    logger.info("Service shutdown complete")

# Create FastAPI application with lifespan management
app = FastAPI(
    title="MeLink",
    description="Share meeting recordings with their transcription and summary",
    version="1.0.0",
    docs_url="/docs" if config.DEBUG else None,
    redoc_url="/redoc" if config.DEBUG else None,
    lifespan=lifespan
)

# Configure middleware based on environment
def setup_middleware(app: FastAPI):
    """Setup middleware for the application."""

    if not config.DEBUG:
        allowed_hosts = ["localhost", "127.0.0.1"]
        production_hosts = os.getenv("ALLOWED_HOSTS", "").split(",")
        allowed_hosts.extend([host.strip() for host in production_hosts if host.strip()])

        app.add_middleware(
            TrustedHostMiddleware,
            allowed_hosts=allowed_hosts
        )

    # CORS middleware - configure based on environment
    cors_origins = ["http://localhost:3000", "http://localhost:8000"]
    if not config.DEBUG:
        production_origins = os.getenv("CORS_ORIGINS", "").split(",")
        cors_origins.extend([origin.strip() for origin in production_origins if origin.strip()])

    app.add_middleware(
        CORSMiddleware,
        allow_origins=cors_origins,
        allow_credentials=True,
        allow_methods=["GET", "POST", "OPTIONS"],
        allow_headers=["*"],
    )

setup_middleware(app)

# Security headers middleware
@app.middleware("http")
async def add_security_headers(request: Request, call_next):
    """Add security headers to all responses."""
    response = await call_next(request)

    response.headers["X-Content-Type-Options"] = "nosniff"
    response.headers["X-Frame-Options"] = "DENY"
    response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"

    return response

# Setup error handlers
setup_error_handlers(app)

# Include API routes
app.include_router(api_router)

# Mount static assets (placeholder thumbnail)
try:
    app.mount("/static", StaticFiles(directory=str(config.STATIC_DIR)), name="static")
    logger.info("Static files mounted successfully")
except RuntimeError as e:
    logger.warning(f"Failed to mount static files: {e}")

@app.get("/")
async def root():
    """Service information."""
    return {
        "service": "MeLink",
        "version": "1.0.0",
        "upload": "/api/upload",
        "docs": "/docs" if config.DEBUG else None
    }

@app.get(config.PUBLIC_BLOB_URL.rstrip("/") + "/{blob_name}")
async def serve_blob(blob_name: str):
    """Serve a stored blob under its public URL."""
    try:
        path = get_blob_store().get_path(blob_name)
    except BlobNotFoundError:
        raise HTTPException(
            status_code=404,
            detail={
                "error": "not_found",
                "message": f"File '{blob_name}' not found"
            }
        )
    return FileResponse(path)

@app.get("/health")
async def health_check():
    """Health check endpoint with service status"""
    try:
        handler = HealthCheckHandler(get_blob_store())
        return await handler.health_check()
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return JSONResponse(
            status_code=503,
            content={
                "status": "unhealthy",
                "error": "Health check failed",
                "message": str(e)
            }
        )

# Request logging middleware
@app.middleware("http")
async def log_requests(request: Request, call_next):
    """Log all requests for monitoring."""
    start_time = asyncio.get_running_loop().time()

    logger.info(f"Request: {request.method} {request.url}")

    response = await call_next(request)

    process_time = asyncio.get_running_loop().time() - start_time
    logger.info(f"Response: {response.status_code} - {process_time:.3f}s")

    return response

def create_app() -> FastAPI:
    """Factory function to create the FastAPI application."""
    return app

if __name__ == "__main__":
    logger.info("Starting MeLink service...")

    try:
        uvicorn.run(
            "main:app",
            host=config.API_HOST,
            port=config.API_PORT,
            reload=config.DEBUG,
            log_level="debug" if config.DEBUG else "info",
            access_log=True
        )
    except KeyboardInterrupt:
        logger.info("Service interrupted by user")
    except Exception as e:
        logger.error(f"Failed to start service: {e}")
        sys.exit(1)
