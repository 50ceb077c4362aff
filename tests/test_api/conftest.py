"""API test fixtures: an application serving a freshly trained bundle."""

import pytest
from fastapi.testclient import TestClient

from api.main import create_app
from config.settings import ArtifactSettings, Settings


def make_settings(artifact_dir, profile: str = "f1_weather") -> Settings:
    return Settings(env="testing", artifacts=ArtifactSettings(dir=str(artifact_dir), profile=profile))


@pytest.fixture
def client(weather_bundle_dir):
    """Test client whose lifespan loads the weather bundle."""
    with TestClient(create_app(make_settings(weather_bundle_dir))) as test_client:
        yield test_client


@pytest.fixture
def make_app():
    """Factory building an application for any bundle directory."""
    def _make(artifact_dir, profile: str = "f1_weather"):
        return create_app(make_settings(artifact_dir, profile))
    return _make
