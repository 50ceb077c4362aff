"""API-specific configuration."""

from typing import List
from pydantic_settings import BaseSettings


class APIConfig(BaseSettings):
    """API-specific configuration settings."""

    # API Metadata
    API_TITLE: str = "F1 Qualifying Weather Analysis API"
    API_VERSION: str = "1.0.0"
    API_DESCRIPTION: str = (
        "Qualifying lap time predictions from weather conditions, with precomputed "
        "feature importance, accumulated local effects and summary tables"
    )
    LOG_LEVEL: str = "info"

    # CORS Configuration
    CORS_CREDENTIALS: bool = True
    CORS_METHODS: List[str] = ["GET", "POST"]
    CORS_HEADERS: List[str] = ["*"]

    # Performance
    ENABLE_COMPRESSION: bool = True
    COMPRESSION_LEVEL: int = 6

    class Config:
        env_file = ".env"
        env_prefix = "API_"
        extra = "ignore"


# Global config instance
api_config = APIConfig()
