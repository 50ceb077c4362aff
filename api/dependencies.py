"""Dependency injection for FastAPI endpoints."""

from fastapi import Request

from models.qualifying.inference import InterpretabilityLookup, LapTimePredictor, ServiceContext


def get_context(request: Request) -> ServiceContext:
    """Service context loaded once in the application lifespan."""
    return request.app.state.context


def get_predictor(request: Request) -> LapTimePredictor:
    """Prediction service of the loaded context."""
    return get_context(request).predictor


def get_lookup(request: Request) -> InterpretabilityLookup:
    """Interpretability lookup of the loaded context."""
    return get_context(request).lookup
