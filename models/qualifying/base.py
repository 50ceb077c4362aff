"""
Base definitions for qualifying lap time models.

Defines the feature profiles the models are trained for, the input/output
data structures of the prediction service and the model configuration
record shared by training and the artifact store.
"""

import math
from dataclasses import dataclass, field
from typing import Annotated, Any, Dict, List, Literal, Mapping, Optional, Tuple, Type

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError, create_model

from app.utils.validators import RainfallLevel
from .errors import InvalidInput

# Bumped whenever the on-disk layout of an artifact bundle changes
ARTIFACT_FORMAT_VERSION = "1"

NUMERIC = "numeric"
CATEGORICAL = "categorical"


@dataclass(frozen=True)
class FeatureSpec:
    """
    One model input column.

    Attributes:
        name: Column name in the dataset and field name of the input vector
        label: Display label used by the dashboards
        kind: 'numeric' or 'categorical'
        levels: For categorical features, (user level, dataset code) pairs
        impute: Whether gaps are imputed during preparation instead of dropped
        description: Human readable description
    """
    name: str
    label: str
    kind: str = NUMERIC
    levels: Tuple[Tuple[str, Any], ...] = ()
    impute: bool = False
    description: str = ""

    @property
    def is_categorical(self) -> bool:
        return self.kind == CATEGORICAL

    @property
    def level_codes(self) -> Dict[str, Any]:
        """Mapping of user-facing level to dataset code."""
        return dict(self.levels)

    @property
    def codes(self) -> List[Any]:
        """Dataset codes in level order, used as frozen one-hot categories."""
        return [code for _, code in self.levels]


@dataclass(frozen=True)
class FeatureProfile:
    """
    A named feature set a model is trained and served for.

    The profile name and feature list are written to the artifact manifest
    and checked again when a bundle is loaded.
    """
    name: str
    target: str
    features: Tuple[FeatureSpec, ...]
    prediction_label: str
    group_column: Optional[str] = None
    session_column: Optional[str] = None
    order_column: Optional[str] = None
    description: str = ""

    @property
    def feature_names(self) -> List[str]:
        return [spec.name for spec in self.features]

    @property
    def numeric_features(self) -> List[str]:
        return [spec.name for spec in self.features if not spec.is_categorical]

    @property
    def categorical_features(self) -> List[str]:
        return [spec.name for spec in self.features if spec.is_categorical]

    @property
    def model_columns(self) -> List[str]:
        """Columns the fitted pipeline is fed: features plus the group column."""
        columns = self.feature_names
        if self.group_column:
            columns = columns + [self.group_column]
        return columns

    def get_feature(self, name: str) -> FeatureSpec:
        for spec in self.features:
            if spec.name == name:
                return spec
        raise KeyError(name)

    def signature(self) -> Dict[str, Any]:
        """Compatibility tag stored alongside the trained model."""
        return {
            'profile': self.name,
            'target': self.target,
            'features': self.feature_names,
            'group_column': self.group_column,
        }


RAINFALL = FeatureSpec(
    name="rainfall",
    label="Rainfall",
    kind=CATEGORICAL,
    levels=tuple((level.value, level.code) for level in RainfallLevel),
    description="Is it raining? (No/Yes)",
)

WEATHER_FEATURES: Tuple[FeatureSpec, ...] = (
    FeatureSpec("air_temp", "Air Temperature", description="Air temperature (°C)"),
    FeatureSpec("humidity", "Humidity", description="Relative humidity (%)"),
    FeatureSpec("pressure", "Pressure", description="Air pressure (mbar)"),
    RAINFALL,
    FeatureSpec("track_temp", "Track Temperature", description="Track temperature (°C)"),
    FeatureSpec("wind_speed", "Wind Speed", description="Wind speed (m/s)"),
    FeatureSpec("rain_laps", "Rain Laps", description="Number of raining laps so far in the session"),
)

TRACK_FEATURES: Tuple[FeatureSpec, ...] = (
    FeatureSpec("track_length_km", "Track Length", impute=True, description="Circuit length (km)"),
    FeatureSpec("turns", "Turns", impute=True, description="Number of turns"),
    FeatureSpec(
        "circuit_type",
        "Circuit Type",
        kind=CATEGORICAL,
        levels=(("permanent", "permanent"), ("street", "street")),
        impute=True,
        description="Permanent racing circuit or street circuit",
    ),
)

F1_WEATHER = FeatureProfile(
    name="f1_weather",
    target="lap_duration",
    features=WEATHER_FEATURES,
    prediction_label="Predicted Lap Time (s)",
    group_column="circuit",
    session_column="session_key",
    order_column="lap_number",
    description="Qualifying lap time from weather conditions only",
)

F1_FULL = FeatureProfile(
    name="f1_full",
    target="lap_duration",
    features=TRACK_FEATURES + WEATHER_FEATURES,
    prediction_label="Predicted Lap Time (s)",
    group_column="circuit",
    session_column="session_key",
    order_column="lap_number",
    description="Qualifying lap time from track attributes and weather",
)

DEMO = FeatureProfile(
    name="demo",
    target="y",
    features=tuple(FeatureSpec(f"x{i}", f"X{i}") for i in range(1, 8)),
    prediction_label="Predicted Value",
    description="Synthetic linear signal for the generic dashboard",
)

PROFILES: Dict[str, FeatureProfile] = {
    profile.name: profile for profile in (F1_WEATHER, F1_FULL, DEMO)
}


def get_profile(name: str) -> FeatureProfile:
    """Return a registered feature profile by name."""
    try:
        return PROFILES[name]
    except KeyError:
        raise ValueError(f"Unknown feature profile: {name}. Available: {sorted(PROFILES)}") from None


def _reject_bool(value: Any) -> Any:
    if isinstance(value, bool):
        raise ValueError("expected a number, got a boolean")
    return value


def build_input_model(profile: FeatureProfile) -> Type[BaseModel]:
    """
    Create the pydantic model validating one raw feature vector of a profile.

    Numeric fields must parse as finite numbers. Categorical fields must be
    one of the profile's user-facing levels. Unexpected fields are rejected.
    """
    fields: Dict[str, Any] = {}
    for spec in profile.features:
        if spec.is_categorical:
            annotation = Literal[tuple(label for label, _ in spec.levels)]
            fields[spec.name] = (annotation, Field(..., description=spec.description))
        else:
            annotation = Annotated[float, BeforeValidator(_reject_bool)]
            fields[spec.name] = (
                annotation,
                Field(..., allow_inf_nan=False, description=spec.description),
            )
    model_name = "".join(part.capitalize() for part in profile.name.split("_")) + "Input"
    return create_model(
        model_name,
        __config__=ConfigDict(extra="forbid"),
        **fields,
    )


def validate_feature_vector(
    profile: FeatureProfile,
    raw: Mapping[str, Any],
    input_model: Optional[Type[BaseModel]] = None,
) -> Dict[str, Any]:
    """
    Validate a raw feature vector and encode it into dataset codes.

    Args:
        profile: Feature profile of the deployed predictor
        raw: User-supplied values keyed by feature name
        input_model: Pre-built input model (built from the profile if None)

    Returns:
        Dictionary of feature name to encoded value

    Raises:
        InvalidInput: Naming the first offending field
    """
    if not isinstance(raw, Mapping):
        raise InvalidInput("<input>", f"expected a mapping of feature values, got {type(raw).__name__}")

    model = input_model or build_input_model(profile)
    try:
        parsed = model.model_validate(dict(raw))
    except ValidationError as e:
        error = e.errors()[0]
        field_name = str(error['loc'][0]) if error.get('loc') else "<input>"
        if error.get('type') == 'missing':
            message = "field is required"
        elif error.get('type') == 'extra_forbidden':
            message = "unexpected field"
        else:
            message = error.get('msg', 'invalid value')
        raise InvalidInput(field_name, message) from None

    encoded: Dict[str, Any] = {}
    for spec in profile.features:
        value = getattr(parsed, spec.name)
        if spec.is_categorical:
            encoded[spec.name] = spec.level_codes[value]
        else:
            if not math.isfinite(value):
                raise InvalidInput(spec.name, "must be a finite number")
            encoded[spec.name] = float(value)
    return encoded


class PredictionOutput(BaseModel):
    """
    Output from lap time prediction.

    Attributes:
        prediction: Canonical unrounded prediction
        rounded: Prediction rounded to 3 decimals for display
        display: Text shown by the dashboard
    """
    prediction: float = Field(..., description="Unrounded model prediction")
    rounded: float = Field(..., description="Prediction rounded to 3 decimals")
    display: str = Field(..., description="Display text")

    model_config = ConfigDict(frozen=True)


@dataclass
class ModelConfig:
    """
    Configuration of one candidate model.

    Attributes:
        family: Candidate family (linear, random_intercept, random_forest, xgboost)
        hyperparameters: Family-specific hyperparameters
        version: Model version
    """
    family: str
    hyperparameters: Dict[str, Any] = field(default_factory=dict)
    version: str = "1.0.0"

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            'family': self.family,
            'hyperparameters': dict(self.hyperparameters),
            'version': self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ModelConfig':
        """Create configuration from dictionary."""
        return cls(**data)
