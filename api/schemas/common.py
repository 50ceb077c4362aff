"""Common API schemas."""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from pydantic import BaseModel, Field
from enum import Enum


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ErrorCode(str, Enum):
    """Standard error codes."""
    VALIDATION_ERROR = "validation_error"
    NOT_FOUND = "not_found"
    ARTIFACT_ERROR = "artifact_error"
    INTERNAL_ERROR = "internal_error"
    BAD_REQUEST = "bad_request"


class ErrorResponse(BaseModel):
    """Standard error response."""
    error_code: ErrorCode
    message: str
    details: Optional[Dict[str, Any]] = None
    timestamp: datetime = Field(default_factory=_utcnow)
    request_id: Optional[str] = None

    class Config:
        json_schema_extra = {
            "example": {
                "error_code": "validation_error",
                "message": "Invalid value for 'rainfall': Input should be 'No' or 'Yes'",
                "details": {"field": "rainfall"},
                "timestamp": "2024-12-06T10:30:00Z",
                "request_id": "req_abc123"
            }
        }


class ComponentStatus(str, Enum):
    """Component health status; the service only runs with every artifact loaded."""
    HEALTHY = "healthy"


class ComponentHealth(BaseModel):
    """Health status for a component."""
    status: ComponentStatus
    message: Optional[str] = None


class HealthCheckResponse(BaseModel):
    """Health check response."""
    status: ComponentStatus
    version: str
    uptime_seconds: float
    profile: str
    model_family: str
    model_version: str
    components: Dict[str, ComponentHealth]
    timestamp: datetime = Field(default_factory=_utcnow)

    class Config:
        json_schema_extra = {
            "example": {
                "status": "healthy",
                "version": "1.0.0",
                "uptime_seconds": 3600.5,
                "profile": "f1_weather",
                "model_family": "random_forest",
                "model_version": "1.0.20240115_143022",
                "components": {
                    "artifacts": {"status": "healthy", "message": "Loaded from ./artifacts/f1_weather"}
                },
                "timestamp": "2024-12-06T10:30:00Z"
            }
        }
