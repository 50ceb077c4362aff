"""
Centralized Settings Module - Environment-based configuration

Uses Pydantic BaseSettings for type-safe configuration management.
"""

from pydantic_settings import BaseSettings
from pydantic import Field, field_validator
from typing import List, Optional
from functools import lru_cache
from pathlib import Path


CONFIG_DIR = Path(__file__).resolve().parent


class ArtifactSettings(BaseSettings):
    """Location and profile of the artifact bundle served by the API."""

    dir: str = Field(
        default="./artifacts/f1_weather",
        description="Directory holding the artifact bundle"
    )
    profile: str = Field(
        default="f1_weather",
        description="Feature profile the bundle must have been trained for"
    )

    class Config:
        env_prefix = "ARTIFACT_"


class TrainingSettings(BaseSettings):
    """Offline training and model selection configuration."""

    seed: int = Field(default=123, description="Random seed for folds, search and permutations")
    n_splits: int = Field(default=5, ge=2, description="Folds per cross-validation repeat")
    n_repeats: int = Field(default=3, ge=1, description="Cross-validation repeats")
    strata_bins: int = Field(default=4, ge=1, description="Quantile strata of the outcome")
    n_candidates: int = Field(default=20, ge=1, description="Space-filling candidates per tunable family")
    permutation_repeats: int = Field(default=10, ge=1, description="Permutations per feature for importance")
    ale_bins: int = Field(default=20, ge=2, description="Maximum quantile bins per ALE curve")
    n_jobs: int = Field(default=1, description="Parallel jobs for fold evaluation")
    search_space_file: str = Field(
        default=str(CONFIG_DIR / "training.yaml"),
        description="YAML file holding hyperparameter search spaces"
    )

    class Config:
        env_prefix = "TRAINING_"


class APISettings(BaseSettings):
    """API server configuration."""

    host: str = Field(default="0.0.0.0", description="API host")
    port: int = Field(default=8000, ge=1024, le=65535, description="API port")
    workers: int = Field(default=1, description="Number of worker processes")
    reload: bool = Field(default=False, description="Auto-reload on code changes")
    cors_origins: List[str] = Field(
        default=["http://localhost:3000"],
        description="Allowed CORS origins"
    )

    @field_validator("cors_origins", mode="before")
    @classmethod
    def parse_cors_origins(cls, v):
        """Parse CORS origins from string or list."""
        if isinstance(v, str):
            return [origin.strip() for origin in v.split(",")]
        return v

    class Config:
        env_prefix = "API_"


class LoggingSettings(BaseSettings):
    """Logging configuration."""

    level: str = Field(default="INFO", description="Log level")
    format: str = Field(default="text", description="Log format (json/text)")
    file_path: Optional[str] = Field(default=None, description="Log file path")
    enable_console: bool = Field(default=True, description="Enable console logging")

    @field_validator("level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is valid."""
        valid_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v_upper

    @field_validator("format")
    @classmethod
    def validate_log_format(cls, v: str) -> str:
        v_lower = v.lower()
        if v_lower not in ("json", "text"):
            raise ValueError("Invalid log format. Must be 'json' or 'text'")
        return v_lower

    class Config:
        env_prefix = "LOG_"


class Settings(BaseSettings):
    """Main settings aggregating all configuration sections."""

    # Environment
    env: str = Field(default="development", description="Environment name")
    debug: bool = Field(default=False, description="Debug mode")

    # Sub-settings
    artifacts: ArtifactSettings = Field(default_factory=ArtifactSettings)
    training: TrainingSettings = Field(default_factory=TrainingSettings)
    api: APISettings = Field(default_factory=APISettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    @field_validator("env")
    @classmethod
    def validate_env(cls, v: str) -> str:
        """Validate environment is recognized."""
        valid_envs = ["development", "staging", "production", "testing"]
        if v.lower() not in valid_envs:
            raise ValueError(f"Invalid environment. Must be one of: {valid_envs}")
        return v.lower()

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        case_sensitive = False
        env_nested_delimiter = "__"


@lru_cache()
def get_settings() -> Settings:
    """
    Get cached settings instance.

    Returns:
        Settings: Application settings
    """
    return Settings()


settings = get_settings()
