#!/usr/bin/env python3
"""
Production startup script for the MeLink service.

Validates storage and Redis before handing over to uvicorn.
"""

import argparse
import logging
import sys
from pathlib import Path

import uvicorn

def setup_production_logging():
    """Setup production logging configuration."""
    import config

    log_format = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    log_level = getattr(logging, config.LOG_LEVEL.upper(), logging.INFO)

    logging.basicConfig(
        level=log_level,
        format=log_format,
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(config.LOG_FILE) if config.LOG_FILE else logging.NullHandler()
        ]
    )

    logging.getLogger('uvicorn').setLevel(logging.INFO)
    logging.getLogger('fastapi').setLevel(logging.INFO)

    return logging.getLogger(__name__)

def validate_environment():
    """Validate that the environment is properly configured."""
    import config

    logger = logging.getLogger(__name__)

    try:
        Path(config.BLOB_DIR).mkdir(parents=True, exist_ok=True)
        logger.info(f"Blob directory ready: {config.BLOB_DIR}")
    except OSError as e:
        logger.error(f"Failed to create blob directory {config.BLOB_DIR}: {e}")
        return False

    if not Path(config.STATIC_DIR).is_dir():
        logger.warning(f"Static directory missing: {config.STATIC_DIR}; placeholder thumbnail will 404")

    from storage.meeting_store import get_meeting_store, MeetingStoreError
    try:
        if get_meeting_store().health_check():
            logger.info("Redis connection healthy")
        else:
            logger.warning("Redis connection unhealthy - uploads will fail until it recovers")
    except MeetingStoreError as e:
        logger.warning(f"Redis check failed: {e}")

    if config.ENVIRONMENT == "production":
        logger.info(f"Production configuration validated (public URL {config.PUBLIC_BASE_URL})")

    return True

def main():
    """Main entry point for the server."""
    parser = argparse.ArgumentParser(description="MeLink Service")
    parser.add_argument("--host", default=None, help="Host to bind to")
    parser.add_argument("--port", type=int, default=None, help="Port to bind to")
    parser.add_argument("--workers", type=int, default=1, help="Number of worker processes")
    parser.add_argument("--reload", action="store_true", help="Enable auto-reload (development only)")
    parser.add_argument("--log-level", default=None, help="Log level (debug, info, warning, error)")
    parser.add_argument("--validate-only", action="store_true", help="Only validate configuration and exit")

    args = parser.parse_args()

    logger = setup_production_logging()

    import config

    logger.info("Starting MeLink Service")
    logger.info(f"Environment: {config.ENVIRONMENT}")
    logger.info(f"Debug mode: {config.DEBUG}")

    if not validate_environment():
        logger.error("Environment validation failed")
        sys.exit(1)

    if args.validate_only:
        logger.info("Configuration validation complete")
        sys.exit(0)

    host = args.host or config.API_HOST
    port = args.port or config.API_PORT
    reload = args.reload or config.DEBUG
    log_level = args.log_level or config.LOG_LEVEL.lower()

    if config.ENVIRONMENT == "production" and reload:
        logger.warning("Auto-reload disabled in production")
        reload = False

    logger.info(f"Server configuration: host={host} port={port} workers={args.workers} "
                f"reload={reload} log_level={log_level}")

    try:
        uvicorn.run(
            "main:app",
            host=host,
            port=port,
            workers=args.workers if not reload else 1,
            reload=reload,
            log_level=log_level,
            access_log=True,
            server_header=False
        )
    except KeyboardInterrupt:
        logger.info("Service interrupted by user")
    except Exception as e:
        logger.error(f"Failed to start service: {e}")
        sys.exit(1)

if __name__ == "__main__":
    main()
