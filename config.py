"""
Configuration settings for MeLink

This module provides configuration for the different environments
(development, testing, production). Production values come from
environment variables; every class is validated on creation.
"""

import os
from pathlib import Path
from typing import Dict, Any
import logging

logger = logging.getLogger(__name__)

class Config:
    """Base configuration class."""

    def __init__(self):
        self.validate_config()

    def validate_config(self):
        """Validate configuration settings."""
        try:
            self.BLOB_DIR.mkdir(parents=True, exist_ok=True)
        except Exception as e:
            logger.error(f"Failed to create directory {self.BLOB_DIR}: {e}")
            raise

        if not self.REDIS_URL:
            raise ValueError("REDIS_URL cannot be empty")

        if not (1 <= self.API_PORT <= 65535):
            raise ValueError("API_PORT must be between 1 and 65535")

        if self.THUMBNAIL_TIMEOUT_SECONDS <= 0:
            raise ValueError("THUMBNAIL_TIMEOUT_SECONDS must be positive")

        if not (1 <= self.THUMBNAIL_JPEG_QUALITY <= 100):
            raise ValueError("THUMBNAIL_JPEG_QUALITY must be between 1 and 100")

    def get_config_dict(self) -> Dict[str, Any]:
        """Get configuration as dictionary for logging/debugging."""
        return {
            "environment": self.ENVIRONMENT,
            "debug": self.DEBUG,
            "api_host": self.API_HOST,
            "api_port": self.API_PORT,
            "redis_url": self.REDIS_URL,
            "max_file_size": self.MAX_FILE_SIZE,
            "blob_dir": str(self.BLOB_DIR),
            "public_base_url": self.PUBLIC_BASE_URL,
            "thumbnail_timeout_seconds": self.THUMBNAIL_TIMEOUT_SECONDS
        }

class DevelopmentConfig(Config):
    """Development environment configuration."""

    # Environment
    ENVIRONMENT = "development"
    DEBUG = True

    # Base directories
    BASE_DIR = Path(__file__).parent
    BLOB_DIR = BASE_DIR / "storage" / "blobs"
    STATIC_DIR = BASE_DIR / "static"

    # Public URLs
    PUBLIC_BASE_URL = "http://localhost:8000"
    PUBLIC_BLOB_URL = "/files"
    PLACEHOLDER_THUMBNAIL_URL = "/static/placeholder-thumbnail.svg"

    # Upload settings
    MAX_FILE_SIZE = 500 * 1024 * 1024  # 500MB
    ALLOWED_VIDEO_EXTENSIONS = {".mp4", ".m4v", ".mov", ".webm", ".avi", ".mkv"}

    # Redis settings
    REDIS_URL = "redis://localhost:6379/0"

    # Thumbnail settings
    THUMBNAIL_TIMEOUT_SECONDS = 30.0
    THUMBNAIL_SETTLE_DELAY_SECONDS = 0.3
    THUMBNAIL_JPEG_QUALITY = 75
    THUMBNAIL_CACHE_TTL_SECONDS = 7 * 24 * 3600

    # API settings
    API_HOST = "0.0.0.0"
    API_PORT = 8000

    # Logging
    LOG_LEVEL = "DEBUG"
    LOG_FILE = "app.log"

class ProductionConfig(Config):
    """Production environment configuration."""

    # Environment
    ENVIRONMENT = "production"
    DEBUG = False

    # Base directories
    BASE_DIR = Path(__file__).parent
    BLOB_DIR = Path(os.getenv("BLOB_DIR", str(BASE_DIR / "storage" / "blobs")))
    STATIC_DIR = BASE_DIR / "static"

    # Public URLs
    PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL")
    PUBLIC_BLOB_URL = os.getenv("PUBLIC_BLOB_URL", "/files")
    PLACEHOLDER_THUMBNAIL_URL = os.getenv("PLACEHOLDER_THUMBNAIL_URL", "/static/placeholder-thumbnail.svg")

    # Upload settings
    MAX_FILE_SIZE = int(os.getenv("MAX_FILE_SIZE", 500 * 1024 * 1024))
    ALLOWED_VIDEO_EXTENSIONS = {
        ext.strip().lower()
        for ext in os.getenv("ALLOWED_VIDEO_EXTENSIONS", ".mp4,.m4v,.mov,.webm,.avi,.mkv").split(",")
        if ext.strip()
    }

    # Redis settings
    REDIS_URL = os.getenv("REDIS_URL", "redis://localhost:6379/0")

    # Thumbnail settings
    THUMBNAIL_TIMEOUT_SECONDS = float(os.getenv("THUMBNAIL_TIMEOUT_SECONDS", 30.0))
    THUMBNAIL_SETTLE_DELAY_SECONDS = float(os.getenv("THUMBNAIL_SETTLE_DELAY_SECONDS", 0.3))
    THUMBNAIL_JPEG_QUALITY = int(os.getenv("THUMBNAIL_JPEG_QUALITY", 75))
    THUMBNAIL_CACHE_TTL_SECONDS = int(os.getenv("THUMBNAIL_CACHE_TTL_SECONDS", 7 * 24 * 3600))

    # API settings
    API_HOST = os.getenv("API_HOST", "0.0.0.0")
    API_PORT = int(os.getenv("API_PORT", 8000))

    # Logging
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_FILE = os.getenv("LOG_FILE", "/var/log/melink.log")

    def validate_config(self):
        """Additional validation for production."""
        super().validate_config()

        if not self.PUBLIC_BASE_URL:
            raise ValueError("PUBLIC_BASE_URL must be set in production")

        if not self.PUBLIC_BASE_URL.startswith("https://"):
            logger.warning("PUBLIC_BASE_URL is not served over HTTPS")

class TestingConfig(Config):
    """Testing environment configuration."""

    # Environment
    ENVIRONMENT = "testing"
    DEBUG = True

    # Base directories
    BASE_DIR = Path(__file__).parent
    BLOB_DIR = BASE_DIR / "test_storage" / "blobs"
    STATIC_DIR = BASE_DIR / "static"

    # Public URLs
    PUBLIC_BASE_URL = "http://testserver"
    PUBLIC_BLOB_URL = "/files"
    PLACEHOLDER_THUMBNAIL_URL = "/static/placeholder-thumbnail.svg"

    # Upload settings
    MAX_FILE_SIZE = 50 * 1024 * 1024  # 50MB for testing
    ALLOWED_VIDEO_EXTENSIONS = {".mp4", ".m4v", ".mov", ".webm", ".avi", ".mkv"}

    # Redis settings (use different DB for testing)
    REDIS_URL = "redis://localhost:6379/1"

    # Thumbnail settings
    THUMBNAIL_TIMEOUT_SECONDS = 5.0  # Shorter for faster testing
    THUMBNAIL_SETTLE_DELAY_SECONDS = 0.0
    THUMBNAIL_JPEG_QUALITY = 75
    THUMBNAIL_CACHE_TTL_SECONDS = 60

    # API settings
    API_HOST = "127.0.0.1"
    API_PORT = 8001

    # Logging
    LOG_LEVEL = "DEBUG"
    LOG_FILE = "test.log"

# Configuration factory
def get_config() -> Config:
    """Get configuration based on environment."""
    env = os.getenv("ENVIRONMENT", "development").lower()

    config_map = {
        "development": DevelopmentConfig,
        "production": ProductionConfig,
        "testing": TestingConfig
    }

    config_class = config_map.get(env, DevelopmentConfig)
    return config_class()

# Global configuration instance
_config = get_config()

# Export configuration attributes as module constants
ENVIRONMENT = _config.ENVIRONMENT
DEBUG = _config.DEBUG
BASE_DIR = _config.BASE_DIR
BLOB_DIR = _config.BLOB_DIR
STATIC_DIR = _config.STATIC_DIR
PUBLIC_BASE_URL = _config.PUBLIC_BASE_URL
PUBLIC_BLOB_URL = _config.PUBLIC_BLOB_URL
PLACEHOLDER_THUMBNAIL_URL = _config.PLACEHOLDER_THUMBNAIL_URL
MAX_FILE_SIZE = _config.MAX_FILE_SIZE
ALLOWED_VIDEO_EXTENSIONS = _config.ALLOWED_VIDEO_EXTENSIONS
REDIS_URL = _config.REDIS_URL
THUMBNAIL_TIMEOUT_SECONDS = _config.THUMBNAIL_TIMEOUT_SECONDS
THUMBNAIL_SETTLE_DELAY_SECONDS = _config.THUMBNAIL_SETTLE_DELAY_SECONDS
THUMBNAIL_JPEG_QUALITY = _config.THUMBNAIL_JPEG_QUALITY
THUMBNAIL_CACHE_TTL_SECONDS = _config.THUMBNAIL_CACHE_TTL_SECONDS
API_HOST = _config.API_HOST
API_PORT = _config.API_PORT
LOG_LEVEL = _config.LOG_LEVEL
LOG_FILE = _config.LOG_FILE

def get_config_instance() -> Config:
    """Get the current configuration instance."""
    return _config
