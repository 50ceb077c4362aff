"""Prediction endpoints for the deployed lap time model."""

from typing import Any, Dict
from fastapi import APIRouter, Body, Depends

from api.schemas.predictions import (
    PREDICTION_REQUEST_EXAMPLE,
    FeatureInfo,
    FeaturesResponse,
    PredictionResponse,
)
from api.dependencies import get_context
from app.utils.logger import get_logger
from models.qualifying.inference import ServiceContext

logger = get_logger(__name__)

router = APIRouter()


@router.post("/predict", response_model=PredictionResponse)
async def predict_lap_time(
    payload: Dict[str, Any] = Body(..., examples=[PREDICTION_REQUEST_EXAMPLE]),
    context: ServiceContext = Depends(get_context),
):
    """
    Predict the lap time for one set of conditions.

    The body holds exactly the deployed profile's feature fields. A missing,
    unexpected or invalid field is rejected with 422 naming the field.
    """
    output = context.predictor.predict(payload)
    logger.debug(f"Prediction {output.prediction:.4f} for {payload}")

    return PredictionResponse(
        prediction=output.prediction,
        rounded=output.rounded,
        display=output.display,
        profile=context.profile.name,
        model_family=context.bundle.family,
        model_version=context.bundle.version,
    )


@router.get("/features", response_model=FeaturesResponse)
async def list_features(context: ServiceContext = Depends(get_context)):
    """Enumerated input features, their labels and accepted levels."""
    return FeaturesResponse(
        profile=context.profile.name,
        target=context.profile.target,
        prediction_label=context.predictor.label,
        features=[FeatureInfo(**info) for info in context.lookup.describe_features()],
    )
