"""
Shared test fixtures: synthetic datasets and trained artifact bundles.

Training runs use a reduced resampling and search configuration and are
session-scoped so each bundle is trained once per test run.
"""

import shutil
from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from config.settings import TrainingSettings
from models.qualifying.artifact_store import ArtifactStore
from models.qualifying.base import DEMO, F1_WEATHER
from models.qualifying.data_preparation import make_demo_dataset
from models.qualifying.training import ModelTrainer

CIRCUITS = {
    # circuit: (base lap time, track length km, turns, circuit type)
    "Monza": (80.5, 5.793, 11, "permanent"),
    "Monaco": (71.0, 3.337, 19, "street"),
    "Silverstone": (86.0, 5.891, 18, "permanent"),
    "Singapore": (92.0, 4.940, 19, "street"),
}


def make_weather_observations(n_laps: int = 30, seed: int = 42) -> pd.DataFrame:
    """Synthetic qualifying laps: two sessions per circuit, weather-driven lap times."""
    rng = np.random.default_rng(seed)
    rows = []
    session_key = 9000
    for meeting_key, (circuit, (base, length, turns, kind)) in enumerate(CIRCUITS.items(), start=1200):
        for _ in range(2):
            session_key += 1
            air_temp = rng.uniform(15, 32)
            raining = rng.random() < 0.5
            for lap in range(1, n_laps + 1):
                rainfall = bool(raining and lap > n_laps // 2)
                humidity = rng.uniform(40, 80)
                track_temp = air_temp + rng.uniform(5, 15)
                lap_duration = (
                    base
                    + 0.04 * humidity
                    - 0.03 * track_temp
                    + (2.5 if rainfall else 0.0)
                    + rng.normal(0, 0.3)
                )
                rows.append({
                    "session_key": session_key,
                    "meeting_key": meeting_key,
                    "driver_number": int(rng.choice([1, 4, 16, 44, 63])),
                    "circuit": circuit,
                    "track_length_km": length,
                    "turns": turns,
                    "circuit_type": kind,
                    "lap_number": lap,
                    "air_temp": air_temp + rng.normal(0, 0.5),
                    "track_temp": track_temp,
                    "humidity": humidity,
                    "pressure": rng.uniform(1005, 1020),
                    "wind_speed": rng.uniform(0, 5),
                    "rainfall": rainfall,
                    "lap_duration": lap_duration,
                })
    return pd.DataFrame(rows)


@pytest.fixture(scope="session")
def quick_training_settings() -> TrainingSettings:
    """Reduced resampling and search for fast training runs."""
    return TrainingSettings(
        seed=123,
        n_splits=3,
        n_repeats=1,
        strata_bins=4,
        n_candidates=2,
        permutation_repeats=2,
        ale_bins=5,
        n_jobs=1,
    )


@pytest.fixture(scope="session")
def small_search_spaces() -> dict:
    """Narrow search spaces keeping tree ensembles small."""
    return {
        "random_forest": {
            "n_estimators": {"type": "int", "low": 10, "high": 30},
            "mtry": {"type": "float", "low": 0.3, "high": 1.0},
            "min_samples_leaf": {"type": "int", "low": 2, "high": 10},
        },
        "xgboost": {
            "n_estimators": {"type": "int", "low": 10, "high": 30},
            "mtry": {"type": "float", "low": 0.3, "high": 1.0},
            "min_child_weight": {"type": "int", "low": 1, "high": 5},
            "max_depth": {"type": "int", "low": 1, "high": 4},
            "learning_rate": {"type": "float", "low": 0.05, "high": 0.3, "log": True},
            "subsample": {"type": "float", "low": 0.5, "high": 1.0},
            "early_stopping_rounds": {"type": "int", "low": 3, "high": 5},
        },
    }


@pytest.fixture
def demo_data() -> pd.DataFrame:
    return make_demo_dataset(n=200, seed=123)


@pytest.fixture
def weather_observations() -> pd.DataFrame:
    return make_weather_observations()


@pytest.fixture
def scenario_input() -> dict:
    """Dashboard inputs for a dry qualifying session."""
    return {
        "air_temp": 25.0,
        "humidity": 50.0,
        "pressure": 1013.0,
        "rainfall": "No",
        "track_temp": 35.0,
        "wind_speed": 2.0,
        "rain_laps": 0,
    }


@pytest.fixture(scope="session")
def demo_training_result(quick_training_settings, small_search_spaces):
    trainer = ModelTrainer(DEMO, settings=quick_training_settings, search_spaces=small_search_spaces)
    return trainer.run(make_demo_dataset(n=200, seed=123), version="1.0.test")


@pytest.fixture(scope="session")
def weather_training_result(quick_training_settings, small_search_spaces):
    trainer = ModelTrainer(F1_WEATHER, settings=quick_training_settings, search_spaces=small_search_spaces)
    return trainer.run(make_weather_observations(), version="1.0.test")


@pytest.fixture(scope="session")
def demo_bundle_dir(demo_training_result, tmp_path_factory) -> Path:
    directory = tmp_path_factory.mktemp("artifacts") / "demo"
    ArtifactStore(directory).save(demo_training_result.bundle)
    return directory


@pytest.fixture(scope="session")
def weather_bundle_dir(weather_training_result, tmp_path_factory) -> Path:
    directory = tmp_path_factory.mktemp("artifacts") / "f1_weather"
    ArtifactStore(directory).save(weather_training_result.bundle)
    return directory


@pytest.fixture
def weather_bundle_copy(weather_bundle_dir, tmp_path) -> Path:
    """Writable copy of the weather bundle for tests that damage it."""
    directory = tmp_path / "f1_weather"
    shutil.copytree(weather_bundle_dir, directory)
    return directory
