"""
Qualifying Lap Time Models Package

Relates session weather to Formula One qualifying lap times:
- Linear and random-intercept (per circuit) regression
- Random forest and boosted trees tuned by space-filling search
- Model selection on repeated, outcome-stratified cross-validation

Model Inputs (f1_weather profile):
    - air_temp: Air temperature in °C
    - humidity: Relative humidity in %
    - pressure: Air pressure in mbar
    - rainfall: Is it raining? ("No"/"Yes")
    - track_temp: Track temperature in °C
    - wind_speed: Wind speed in m/s
    - rain_laps: Raining laps so far in the session

Model Outputs:
    - prediction: Predicted lap time in seconds
    - display: "Predicted Lap Time (s): <value rounded to 3 decimals>"

Precomputed Artifacts:
    - Permutation feature importance
    - Accumulated local effect curve per feature
    - Summary, correlation and model metrics tables

Usage:
    from models.qualifying import ServiceContext

    context = ServiceContext.from_directory('artifacts/f1_weather', 'f1_weather')

    output = context.predictor.predict({
        'air_temp': 25.0,
        'humidity': 50.0,
        'pressure': 1013.0,
        'rainfall': 'No',
        'track_temp': 35.0,
        'wind_speed': 2.0,
        'rain_laps': 0,
    })
    print(output.display)

    curve = context.lookup.ale_curve('Humidity')
"""

from .artifact_store import ArtifactBundle, ArtifactStore, thaw
from .base import (
    DEMO,
    F1_FULL,
    F1_WEATHER,
    PROFILES,
    FeatureProfile,
    FeatureSpec,
    ModelConfig,
    PredictionOutput,
    get_profile,
)
from .candidates import FAMILIES, BoostedTreeRegressor, build_pipeline
from .data_preparation import (
    DataPreparationPipeline,
    apply_107_percent_rule,
    build_preprocessor,
    load_observations,
    make_demo_dataset,
    prepare_dataset,
)
from .errors import (
    CorruptArtifact,
    InvalidDataset,
    InvalidInput,
    MissingArtifact,
    QualifyingModelError,
    TrainingDegeneracy,
    UnknownFeature,
)
from .evaluation import CandidateResult, ModelEvaluator
from .inference import InterpretabilityLookup, LapTimePredictor, ServiceContext
from .mixed_effects import RandomInterceptRegressor
from .training import ModelTrainer, TrainingResult

__all__ = [
    # Profiles and records
    'FeatureProfile',
    'FeatureSpec',
    'ModelConfig',
    'PredictionOutput',
    'PROFILES',
    'F1_WEATHER',
    'F1_FULL',
    'DEMO',
    'get_profile',

    # Data preparation
    'DataPreparationPipeline',
    'load_observations',
    'prepare_dataset',
    'apply_107_percent_rule',
    'make_demo_dataset',
    'build_preprocessor',

    # Models and training
    'FAMILIES',
    'build_pipeline',
    'BoostedTreeRegressor',
    'RandomInterceptRegressor',
    'ModelTrainer',
    'TrainingResult',
    'ModelEvaluator',
    'CandidateResult',

    # Artifacts and services
    'ArtifactBundle',
    'ArtifactStore',
    'thaw',
    'LapTimePredictor',
    'InterpretabilityLookup',
    'ServiceContext',

    # Errors
    'QualifyingModelError',
    'InvalidInput',
    'UnknownFeature',
    'MissingArtifact',
    'CorruptArtifact',
    'TrainingDegeneracy',
    'InvalidDataset',
]

__version__ = '1.0.0'
