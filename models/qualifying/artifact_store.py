"""
Artifact Store for trained qualifying lap time models.

One bundle directory holds every precomputed artifact the online service
needs, one file per artifact:

    manifest.json         format version, profile tag, feature list, family
    predictor.joblib      fitted scikit-learn pipeline
    importance.json       ranked permutation importance
    ale/<feature>.json    one accumulated local effect curve per feature
    summary.json          descriptive statistics
    correlation.json      Pearson correlation matrix
    metrics.json          cross-validated metrics of every candidate family

Bundles are written to a temporary sibling directory and swapped into place,
so a failed save never leaves a partial set behind.
"""

import json
import logging
import shutil
import tempfile
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

import joblib

from .base import ARTIFACT_FORMAT_VERSION, FeatureProfile, ModelConfig
from .errors import CorruptArtifact, MissingArtifact

logger = logging.getLogger(__name__)

MANIFEST_FILE = "manifest.json"
PREDICTOR_FILE = "predictor.joblib"
IMPORTANCE_FILE = "importance.json"
ALE_DIR = "ale"
SUMMARY_FILE = "summary.json"
CORRELATION_FILE = "correlation.json"
METRICS_FILE = "metrics.json"


def freeze(value: Any) -> Any:
    """Recursively convert dicts to read-only mappings and lists to tuples."""
    if isinstance(value, Mapping):
        return MappingProxyType({key: freeze(item) for key, item in value.items()})
    if isinstance(value, (list, tuple)):
        return tuple(freeze(item) for item in value)
    return value


def thaw(value: Any) -> Any:
    """Inverse of :func:`freeze`, producing JSON-serializable dicts and lists."""
    if isinstance(value, Mapping):
        return {key: thaw(item) for key, item in value.items()}
    if isinstance(value, (list, tuple)):
        return [thaw(item) for item in value]
    return value


@dataclass(frozen=True)
class ArtifactBundle:
    """
    Immutable set of precomputed artifacts for one trained predictor.

    Attributes:
        manifest: Compatibility and provenance record
        predictor: Fitted pipeline mapping a model input frame to predictions
        importance: Ranked permutation importance records
        ale: ALE curve per feature name
        summary: Summary statistics records
        correlation: Correlation matrix record
        metrics: Candidate metrics table
    """
    manifest: Mapping[str, Any]
    predictor: Any
    importance: Tuple[Mapping[str, Any], ...]
    ale: Mapping[str, Mapping[str, Any]]
    summary: Tuple[Mapping[str, Any], ...]
    correlation: Mapping[str, Any]
    metrics: Mapping[str, Any]

    @classmethod
    def create(
        cls,
        manifest: Mapping[str, Any],
        predictor: Any,
        importance,
        ale,
        summary,
        correlation,
        metrics
    ) -> 'ArtifactBundle':
        """Build a bundle, freezing every structured record."""
        return cls(
            manifest=freeze(manifest),
            predictor=predictor,
            importance=freeze(importance),
            ale=freeze(ale),
            summary=freeze(summary),
            correlation=freeze(correlation),
            metrics=freeze(metrics),
        )

    @property
    def profile_name(self) -> str:
        return self.manifest['profile']

    @property
    def feature_names(self) -> Tuple[str, ...]:
        return tuple(self.manifest['features'])

    @property
    def family(self) -> str:
        return self.manifest['family']

    @property
    def version(self) -> str:
        return self.manifest.get('version', 'unknown')

    @property
    def model_config(self) -> ModelConfig:
        """Selected family, hyperparameters and version recorded in the manifest."""
        return ModelConfig.from_dict({
            'family': self.family,
            'hyperparameters': thaw(self.manifest.get('hyperparameters', {})),
            'version': self.version,
        })


def build_manifest(
    profile: FeatureProfile,
    config: ModelConfig,
    seed: int,
    n_observations: int,
    created_at: Optional[str] = None
) -> Dict[str, Any]:
    """
    Create the manifest written alongside a trained predictor.

    Args:
        profile: Feature profile the predictor was trained for
        config: Selected family, hyperparameters and bundle version
        seed: Training seed
        n_observations: Rows in the training dataset
        created_at: ISO timestamp (now if None)

    Returns:
        Manifest dictionary
    """
    manifest = {
        'format_version': ARTIFACT_FORMAT_VERSION,
        'created_at': created_at or datetime.now().isoformat(),
        'seed': seed,
        'n_observations': n_observations,
        'prediction_label': profile.prediction_label,
    }
    manifest.update(config.to_dict())
    manifest.update(profile.signature())
    manifest['files'] = expected_files(profile)
    return manifest


def expected_files(profile: FeatureProfile) -> List[str]:
    """Relative paths of every file a bundle for ``profile`` contains."""
    files = [MANIFEST_FILE, PREDICTOR_FILE, IMPORTANCE_FILE, SUMMARY_FILE, CORRELATION_FILE, METRICS_FILE]
    files += [f"{ALE_DIR}/{name}.json" for name in profile.feature_names]
    return files


def _write_json(path: Path, payload: Any) -> None:
    with open(path, 'w') as f:
        json.dump(thaw(payload), f, indent=2, allow_nan=False)


def _read_json(path: Path) -> Any:
    if not path.is_file():
        raise MissingArtifact(path)
    try:
        with open(path, 'r') as f:
            return json.load(f)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        raise CorruptArtifact(path, f"invalid JSON: {e}") from e
    except OSError as e:
        raise MissingArtifact(path, f"unreadable: {e}") from e


class ArtifactStore:
    """
    Reads and writes artifact bundles in one directory.

    Attributes:
        directory: Bundle directory
    """

    def __init__(self, directory: Union[str, Path]):
        """
        Initialize artifact store.

        Args:
            directory: Bundle directory (created on first save)
        """
        self.directory = Path(directory)

    def exists(self) -> bool:
        return (self.directory / MANIFEST_FILE).is_file()

    def save(self, bundle: ArtifactBundle) -> Path:
        """
        Persist a bundle, replacing any bundle already in the directory.

        Args:
            bundle: Bundle to write

        Returns:
            Bundle directory
        """
        parent = self.directory.parent
        parent.mkdir(parents=True, exist_ok=True)
        staging = Path(tempfile.mkdtemp(prefix=f".{self.directory.name}.tmp-", dir=parent))
        backup = None

        try:
            _write_json(staging / MANIFEST_FILE, bundle.manifest)
            joblib.dump(bundle.predictor, staging / PREDICTOR_FILE)
            _write_json(staging / IMPORTANCE_FILE, bundle.importance)
            (staging / ALE_DIR).mkdir()
            for name, curve in bundle.ale.items():
                _write_json(staging / ALE_DIR / f"{name}.json", curve)
            _write_json(staging / SUMMARY_FILE, bundle.summary)
            _write_json(staging / CORRELATION_FILE, bundle.correlation)
            _write_json(staging / METRICS_FILE, bundle.metrics)

            if self.directory.exists():
                backup = parent / f".{self.directory.name}.old-{datetime.now().strftime('%Y%m%d%H%M%S%f')}"
                self.directory.rename(backup)
            staging.rename(self.directory)
            if backup is not None:
                shutil.rmtree(backup, ignore_errors=True)
        except BaseException:
            shutil.rmtree(staging, ignore_errors=True)
            if backup is not None and backup.exists() and not self.directory.exists():
                # put the previous bundle back
                backup.rename(self.directory)
            raise

        logger.info(f"Saved artifact bundle {bundle.version} ({bundle.family}) to {self.directory}")
        return self.directory

    def load(self, expected_profile: FeatureProfile) -> ArtifactBundle:
        """
        Load and validate every artifact of the bundle.

        Args:
            expected_profile: Profile the service is deployed for

        Returns:
            Immutable artifact bundle

        Raises:
            MissingArtifact: If the directory or any expected file is absent or unreadable
            CorruptArtifact: If a file cannot be deserialized or does not match the profile
        """
        if not self.directory.is_dir():
            raise MissingArtifact(self.directory, "artifact directory not found")

        manifest = _read_json(self.directory / MANIFEST_FILE)
        self._check_manifest(manifest, expected_profile)

        predictor = self._load_predictor(expected_profile)

        importance = _read_json(self.directory / IMPORTANCE_FILE)
        if not isinstance(importance, list) or not all(
            isinstance(r, dict) and 'feature' in r and 'importance' in r for r in importance
        ):
            raise CorruptArtifact(self.directory / IMPORTANCE_FILE, "expected a list of importance records")

        ale = {}
        for name in expected_profile.feature_names:
            path = self.directory / ALE_DIR / f"{name}.json"
            curve = _read_json(path)
            if not isinstance(curve, dict) or not {'values', 'effects'} <= set(curve):
                raise CorruptArtifact(path, "expected an ALE curve record with values and effects")
            if len(curve['values']) != len(curve['effects']):
                raise CorruptArtifact(path, "values and effects differ in length")
            ale[name] = curve

        summary = _read_json(self.directory / SUMMARY_FILE)
        if not isinstance(summary, list):
            raise CorruptArtifact(self.directory / SUMMARY_FILE, "expected a list of summary records")

        correlation = _read_json(self.directory / CORRELATION_FILE)
        if not isinstance(correlation, dict) or not {'variables', 'matrix'} <= set(correlation):
            raise CorruptArtifact(self.directory / CORRELATION_FILE, "expected variables and matrix")

        metrics = _read_json(self.directory / METRICS_FILE)
        if not isinstance(metrics, dict) or 'candidates' not in metrics:
            raise CorruptArtifact(self.directory / METRICS_FILE, "expected a candidate metrics table")

        bundle = ArtifactBundle.create(
            manifest=manifest,
            predictor=predictor,
            importance=importance,
            ale=ale,
            summary=summary,
            correlation=correlation,
            metrics=metrics,
        )
        logger.info(
            f"Loaded artifact bundle {bundle.version} ({bundle.family}) for profile "
            f"{bundle.profile_name} from {self.directory}"
        )
        return bundle

    def _check_manifest(self, manifest: Any, profile: FeatureProfile) -> None:
        path = self.directory / MANIFEST_FILE
        if not isinstance(manifest, dict):
            raise CorruptArtifact(path, "manifest is not a JSON object")

        version = manifest.get('format_version')
        if version != ARTIFACT_FORMAT_VERSION:
            raise CorruptArtifact(
                path, f"format version {version!r} is not supported (expected {ARTIFACT_FORMAT_VERSION!r})"
            )

        for key, expected in profile.signature().items():
            found = manifest.get(key)
            if found != expected:
                raise CorruptArtifact(path, f"{key} mismatch: bundle has {found!r}, expected {expected!r}")

        if not manifest.get('family'):
            raise CorruptArtifact(path, "manifest does not name the model family")

    def _load_predictor(self, profile: FeatureProfile) -> Any:
        path = self.directory / PREDICTOR_FILE
        if not path.is_file():
            raise MissingArtifact(path)
        try:
            predictor = joblib.load(path)
        except OSError as e:
            raise MissingArtifact(path, f"unreadable: {e}") from e
        except Exception as e:
            raise CorruptArtifact(path, f"cannot deserialize predictor: {e}") from e

        if not hasattr(predictor, 'predict'):
            raise CorruptArtifact(path, f"{type(predictor).__name__} has no predict method")

        columns = getattr(predictor, 'feature_names_in_', None)
        if columns is None or list(columns) != profile.model_columns:
            raise CorruptArtifact(
                path,
                f"predictor input columns {None if columns is None else list(columns)} "
                f"do not match {profile.model_columns}",
            )
        return predictor
