"""
ML Models Package - Predictive models for qualifying lap times

Contains the weather-driven qualifying lap time models and their artifacts.
"""

from models.qualifying import (
    ArtifactStore,
    InterpretabilityLookup,
    LapTimePredictor,
    ModelTrainer,
    ServiceContext,
)

__all__ = [
    'ArtifactStore',
    'InterpretabilityLookup',
    'LapTimePredictor',
    'ModelTrainer',
    'ServiceContext',
]

__version__ = '1.0.0'
