"""Health and monitoring endpoints."""

import time
from fastapi import APIRouter, Depends, Request

from api.schemas.common import HealthCheckResponse, ComponentHealth, ComponentStatus
from api.config import api_config
from api.dependencies import get_context
from models.qualifying.inference import ServiceContext

router = APIRouter()


@router.get("/health", response_model=HealthCheckResponse)
async def health_check(request: Request, context: ServiceContext = Depends(get_context)):
    """
    Basic health check endpoint.

    The application only starts once every artifact has loaded, so a
    responding service always reports its artifacts as healthy.
    """
    components = {
        "artifacts": ComponentHealth(
            status=ComponentStatus.HEALTHY,
            message=f"Loaded from {context.artifact_dir}",
        ),
    }

    uptime = time.time() - request.app.state.started_at

    return HealthCheckResponse(
        status=ComponentStatus.HEALTHY,
        version=api_config.API_VERSION,
        uptime_seconds=uptime,
        profile=context.profile.name,
        model_family=context.bundle.family,
        model_version=context.bundle.version,
        components=components,
    )
