"""
Online services over a loaded artifact bundle.

- ``LapTimePredictor`` validates a raw feature vector and scores it
- ``InterpretabilityLookup`` resolves a feature name to its stored artifacts
- ``ServiceContext`` bundles both with the artifacts, built once per process
"""

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Type, Union

import pandas as pd
from pydantic import BaseModel

from config.settings import Settings, get_settings
from .artifact_store import ALE_DIR, IMPORTANCE_FILE, ArtifactBundle, ArtifactStore
from .base import FeatureProfile, PredictionOutput, build_input_model, get_profile, validate_feature_vector
from .errors import CorruptArtifact, MissingArtifact, UnknownFeature

logger = logging.getLogger(__name__)


def format_prediction(label: str, value: float) -> str:
    """Display text for a prediction, rounded to 3 decimals."""
    return f"{label}: {round(value, 3)}"


class LapTimePredictor:
    """
    Stateless prediction service over a trained pipeline.

    Validation happens before scoring; a non-finite model output is treated
    as a broken artifact rather than replaced by a placeholder.

    Attributes:
        profile: Deployed feature profile
        bundle: Loaded artifact bundle
        input_model: Pydantic model validating raw feature vectors
    """

    def __init__(self, bundle: ArtifactBundle, profile: FeatureProfile, artifact_dir: Union[str, Path] = "."):
        if bundle.profile_name != profile.name:
            raise CorruptArtifact(
                artifact_dir, f"bundle trained for {bundle.profile_name!r}, not {profile.name!r}"
            )
        self.profile = profile
        self.bundle = bundle
        self.artifact_dir = Path(artifact_dir)
        self.input_model: Type[BaseModel] = build_input_model(profile)

    @property
    def label(self) -> str:
        return self.bundle.manifest.get('prediction_label', self.profile.prediction_label)

    def _frame(self, encoded: Mapping[str, Any]) -> pd.DataFrame:
        row = {name: [encoded[name]] for name in self.profile.feature_names}
        if self.profile.group_column:
            # population-level prediction, no group offset
            row[self.profile.group_column] = [None]
        return pd.DataFrame(row, columns=self.profile.model_columns)

    def predict_value(self, raw: Mapping[str, Any]) -> float:
        """
        Validate and score one raw feature vector.

        Args:
            raw: Feature values keyed by feature name

        Returns:
            Unrounded prediction

        Raises:
            InvalidInput: If a field is missing, unexpected or invalid
            CorruptArtifact: If the predictor produces a non-finite value
        """
        encoded = validate_feature_vector(self.profile, raw, self.input_model)
        output = self.bundle.predictor.predict(self._frame(encoded))
        value = float(output[0])
        if not math.isfinite(value):
            raise CorruptArtifact(
                self.artifact_dir / "predictor.joblib", f"non-finite prediction {value} for {encoded}"
            )
        return value

    def predict(self, raw: Mapping[str, Any]) -> PredictionOutput:
        """Score one raw feature vector and format it for display."""
        value = self.predict_value(raw)
        return PredictionOutput(
            prediction=value,
            rounded=round(value, 3),
            display=format_prediction(self.label, value),
        )


class InterpretabilityLookup:
    """
    Resolves feature names to precomputed interpretability artifacts.

    Features may be addressed by column name or display label. Values are
    returned exactly as stored; nothing is computed on demand.
    """

    def __init__(self, bundle: ArtifactBundle, profile: FeatureProfile, artifact_dir: Union[str, Path] = "."):
        self.bundle = bundle
        self.profile = profile
        self.artifact_dir = Path(artifact_dir)

        self._aliases: Dict[str, str] = {}
        for name in bundle.feature_names:
            spec = profile.get_feature(name)
            for alias in (name, spec.label, spec.label.lower()):
                self._aliases.setdefault(alias, name)

        self._importance: Dict[str, Mapping[str, Any]] = {
            record['feature']: record for record in bundle.importance
        }

    @property
    def feature_names(self) -> Tuple[str, ...]:
        return self.bundle.feature_names

    def resolve(self, feature: str) -> str:
        """
        Canonical feature name for a name or label.

        Raises:
            UnknownFeature: If the feature is not in the deployed feature set
        """
        try:
            return self._aliases[feature]
        except (KeyError, TypeError):
            raise UnknownFeature(feature, valid=list(self.feature_names)) from None

    def ale_curve(self, feature: str) -> Mapping[str, Any]:
        """Stored ALE curve of a feature."""
        name = self.resolve(feature)
        try:
            return self.bundle.ale[name]
        except KeyError:
            raise MissingArtifact(self.artifact_dir / ALE_DIR / f"{name}.json", "no ALE curve stored") from None

    def importance_of(self, feature: str) -> Mapping[str, Any]:
        """Stored importance record of a feature."""
        name = self.resolve(feature)
        try:
            return self._importance[name]
        except KeyError:
            raise MissingArtifact(
                self.artifact_dir / IMPORTANCE_FILE, f"no importance entry for {name}"
            ) from None

    def importance_ranking(self) -> Tuple[Mapping[str, Any], ...]:
        """Importance records in stored (descending) order."""
        return self.bundle.importance

    def summary_table(self) -> Tuple[Mapping[str, Any], ...]:
        return self.bundle.summary

    def correlation_table(self) -> Mapping[str, Any]:
        return self.bundle.correlation

    def metrics_table(self) -> Mapping[str, Any]:
        return self.bundle.metrics

    def describe_features(self) -> List[Dict[str, Any]]:
        """Enumerated features with their labels and accepted input levels."""
        described = []
        for name in self.feature_names:
            spec = self.profile.get_feature(name)
            described.append({
                'name': spec.name,
                'label': spec.label,
                'kind': spec.kind,
                'levels': [label for label, _ in spec.levels] or None,
                'description': spec.description,
            })
        return described


@dataclass(frozen=True)
class ServiceContext:
    """
    Everything the online service reads, built once at startup.

    Attributes:
        profile: Deployed feature profile
        bundle: Loaded artifact bundle
        predictor: Prediction service
        lookup: Interpretability lookup
        artifact_dir: Directory the bundle was loaded from
        loaded_at: Load timestamp
    """
    profile: FeatureProfile
    bundle: ArtifactBundle
    predictor: LapTimePredictor
    lookup: InterpretabilityLookup
    artifact_dir: Path
    loaded_at: datetime

    @classmethod
    def from_directory(cls, directory: Union[str, Path], profile_name: str) -> 'ServiceContext':
        """
        Load a bundle and build the services over it.

        Args:
            directory: Bundle directory
            profile_name: Feature profile the service is deployed for

        Raises:
            MissingArtifact: If any artifact is absent or unreadable
            CorruptArtifact: If any artifact is invalid or incompatible
        """
        profile = get_profile(profile_name)
        directory = Path(directory)
        bundle = ArtifactStore(directory).load(profile)
        context = cls(
            profile=profile,
            bundle=bundle,
            predictor=LapTimePredictor(bundle, profile, directory),
            lookup=InterpretabilityLookup(bundle, profile, directory),
            artifact_dir=directory,
            loaded_at=datetime.now(),
        )
        logger.info(f"Service context ready for profile {profile.name} ({bundle.family})")
        return context

    @classmethod
    def from_settings(cls, settings: Optional[Settings] = None) -> 'ServiceContext':
        """Build the context from the application's artifact settings."""
        settings = settings or get_settings()
        return cls.from_directory(settings.artifacts.dir, settings.artifacts.profile)
