"""Request/response schemas for prediction endpoints."""

from typing import List, Optional
from pydantic import BaseModel, Field


# Example body for the f1_weather profile; the body is a flat mapping of
# feature name to value, validated against the deployed profile.
PREDICTION_REQUEST_EXAMPLE = {
    "air_temp": 25.0,
    "humidity": 50.0,
    "pressure": 1013.0,
    "rainfall": "No",
    "track_temp": 35.0,
    "wind_speed": 2.0,
    "rain_laps": 0,
}


class PredictionResponse(BaseModel):
    """Response for lap time prediction."""

    prediction: float = Field(..., description="Unrounded model prediction")
    rounded: float = Field(..., description="Prediction rounded to 3 decimals")
    display: str = Field(..., description="Display text, e.g. 'Predicted Lap Time (s): 91.234'")
    profile: str = Field(..., description="Deployed feature profile")
    model_family: str = Field(..., description="Model family of the deployed predictor")
    model_version: str = Field(..., description="Artifact bundle version")

    class Config:
        json_schema_extra = {
            "example": {
                "prediction": 91.23412,
                "rounded": 91.234,
                "display": "Predicted Lap Time (s): 91.234",
                "profile": "f1_weather",
                "model_family": "random_forest",
                "model_version": "1.0.20240115_143022",
            }
        }


class FeatureInfo(BaseModel):
    """One enumerated model input."""

    name: str
    label: str
    kind: str = Field(..., description="numeric or categorical")
    levels: Optional[List[str]] = Field(default=None, description="Accepted values of a categorical input")
    description: str = ""


class FeaturesResponse(BaseModel):
    """Enumerated features of the deployed predictor."""

    profile: str
    target: str
    prediction_label: str
    features: List[FeatureInfo]
