"""
Data preparation pipeline for qualifying lap time model training.

Handles loading of the cleaned lap/weather dataset, the 107% rule, rain lap
counting, one-off imputation and the frozen pre-processing transform shared
by every candidate model.
"""

import pandas as pd
import numpy as np
from pathlib import Path
from typing import Dict, List, Optional, Tuple, Union
from sklearn.compose import ColumnTransformer
from sklearn.preprocessing import OneHotEncoder, StandardScaler

from app.utils.logger import get_logger
from app.utils.validators import parse_rainfall, validate_dataframe
from .base import FeatureProfile
from .errors import InvalidDataset

logger = get_logger(__name__)

# Column spellings found in raw pulls mapped onto dataset names
COLUMN_ALIASES: Dict[str, str] = {
    'air_temperature': 'air_temp',
    'track_temperature': 'track_temp',
    'circuit_short_name': 'circuit',
    'lap_time': 'lap_duration',
}

PREPARED_ATTR = 'prepared_profile'
RAIN_LAPS = 'rain_laps'


def load_observations(path: Union[str, Path]) -> pd.DataFrame:
    """
    Load a cleaned observation dataset from CSV or Parquet.

    Column names are normalised to lower case and known aliases are renamed.

    Args:
        path: Dataset file path

    Returns:
        Observation DataFrame
    """
    path = Path(path)
    if not path.exists():
        raise InvalidDataset(f"Dataset not found: {path}")

    if path.suffix.lower() in ('.parquet', '.pq'):
        df = pd.read_parquet(path)
    elif path.suffix.lower() == '.csv':
        df = pd.read_csv(path)
    else:
        raise InvalidDataset(f"Unsupported dataset format: {path.suffix}")

    df = normalize_columns(df)
    logger.info(f"Loaded {len(df)} observations with {len(df.columns)} columns from {path}")
    return df


def normalize_columns(df: pd.DataFrame) -> pd.DataFrame:
    """Lower-case column names and apply ``COLUMN_ALIASES``."""
    renamed = {col: str(col).strip().lower() for col in df.columns}
    df = df.rename(columns=renamed)
    aliases = {old: new for old, new in COLUMN_ALIASES.items() if old in df.columns and new not in df.columns}
    return df.rename(columns=aliases)


def apply_107_percent_rule(
    df: pd.DataFrame,
    session_column: str,
    target: str,
    threshold: float = 1.07
) -> pd.DataFrame:
    """
    Drop laps slower than ``threshold`` times the fastest lap of their session.

    Args:
        df: Observations
        session_column: Session identifier column
        target: Lap duration column
        threshold: Allowed ratio to the session's fastest lap

    Returns:
        Filtered copy of the observations
    """
    fastest = df.groupby(session_column)[target].transform('min')
    keep = df[target] <= fastest * threshold
    dropped = int((~keep).sum())
    if dropped:
        logger.info(f"107% rule removed {dropped} of {len(df)} laps")
    return df.loc[keep].copy()


def count_rain_laps(
    df: pd.DataFrame,
    session_column: Optional[str],
    order_column: Optional[str] = None
) -> pd.Series:
    """
    Cumulative number of raining laps within each session, in lap order.

    Args:
        df: Observations with a 0/1 ``rainfall`` column
        session_column: Session identifier column (whole frame is one session if None)
        order_column: Column giving the chronological lap order, if available

    Returns:
        Series aligned with ``df.index``
    """
    ordered = df
    if order_column and order_column in df.columns:
        sort_cols = [col for col in (session_column, order_column) if col and col in df.columns]
        ordered = df.sort_values(sort_cols, kind='mergesort')

    rain = ordered['rainfall'].astype(int)
    if session_column and session_column in ordered.columns:
        counts = rain.groupby(ordered[session_column]).cumsum()
    else:
        counts = rain.cumsum()
    return counts.reindex(df.index)


def make_demo_dataset(n: int = 1000, seed: int = 123) -> pd.DataFrame:
    """
    Synthetic dataset for the generic demo dashboard.

    Seven standard normal features and a linear target with N(0, 0.1) noise.
    """
    rng = np.random.default_rng(seed)
    data = pd.DataFrame({f'x{i}': rng.normal(size=n) for i in range(1, 8)})
    data['y'] = (
        2.0 * data['x1']
        - 1.5 * data['x2']
        + 0.5 * data['x3']
        + 0.8 * data['x4']
        - 0.3 * data['x5']
        + 1.2 * data['x6']
        - 0.7 * data['x7']
        + rng.normal(0.0, 0.1, size=n)
    )
    return data


def transformed_width(profile: FeatureProfile) -> int:
    """Number of columns the pre-processing transform emits for the features."""
    width = len(profile.numeric_features)
    for name in profile.categorical_features:
        # one reference level is dropped
        width += max(len(profile.get_feature(name).codes) - 1, 1)
    return width


def build_preprocessor(profile: FeatureProfile, include_group: bool = False) -> ColumnTransformer:
    """
    Build the pre-processing transform shared by all candidates.

    Numeric features are standardized, categorical features are one-hot
    encoded against the profile's fixed levels (first level as reference).
    The group column is passed through as the last output column only for
    the random-intercept model and dropped otherwise.

    Args:
        profile: Feature profile
        include_group: Whether to pass the group column through

    Returns:
        Unfitted ColumnTransformer
    """
    transformers = []
    if profile.numeric_features:
        transformers.append(('numeric', StandardScaler(), profile.numeric_features))
    if profile.categorical_features:
        categories = [profile.get_feature(name).codes for name in profile.categorical_features]
        transformers.append((
            'categorical',
            OneHotEncoder(categories=categories, drop='first', sparse_output=False, handle_unknown='error'),
            profile.categorical_features,
        ))
    if include_group:
        if not profile.group_column:
            raise ValueError(f"Profile {profile.name} has no group column")
        transformers.append(('group', 'passthrough', [profile.group_column]))

    return ColumnTransformer(transformers, remainder='drop', verbose_feature_names_out=False)


class DataPreparationPipeline:
    """
    Data preparation pipeline for qualifying lap time prediction.

    Features:
    - Schema enforcement against the feature profile
    - Rainfall flag normalisation to 0/1
    - Removal of laps with missing outcome or weather
    - 107% rule per session
    - Rain lap counting when the column is absent
    - One-off imputation of the remaining gaps
    """

    def __init__(self, profile: FeatureProfile, apply_107_rule: bool = True):
        """
        Initialize data preparation pipeline.

        Args:
            profile: Feature profile the dataset is prepared for
            apply_107_rule: Whether to drop laps outside 107% of the session's fastest
        """
        self.profile = profile
        self.apply_107_rule = apply_107_rule
        self.imputation_values: Dict[str, object] = {}

    @property
    def required_columns(self) -> List[str]:
        columns = [self.profile.target] + [
            name for name in self.profile.feature_names if name != RAIN_LAPS
        ]
        if self.profile.group_column:
            columns.append(self.profile.group_column)
        return columns

    def prepare(self, df: pd.DataFrame) -> pd.DataFrame:
        """
        Clean a raw observation frame into a modelling dataset.

        A frame already prepared for this profile is returned unchanged so that
        imputation happens exactly once.

        Args:
            df: Observations

        Returns:
            Prepared copy containing the model columns and the target
        """
        if df.attrs.get(PREPARED_ATTR) == self.profile.name:
            logger.debug("Dataset already prepared, skipping")
            return df

        df = normalize_columns(df.copy())

        is_valid, error = validate_dataframe(df, required_columns=self.required_columns, check_nulls=False)
        if not is_valid:
            raise InvalidDataset(error)

        if 'rainfall' in self.profile.feature_names:
            df['rainfall'] = self._encode_rainfall(df['rainfall'])

        df = self._drop_incomplete(df)

        if self.apply_107_rule and self.profile.session_column in df.columns:
            df = apply_107_percent_rule(df, self.profile.session_column, self.profile.target)

        if RAIN_LAPS in self.profile.feature_names and RAIN_LAPS not in df.columns:
            df[RAIN_LAPS] = count_rain_laps(df, self.profile.session_column, self.profile.order_column)
            logger.info("Derived rain_laps from rainfall flags")

        df = self._impute(df)
        self._check_numeric(df)

        keep = self.profile.model_columns + [self.profile.target]
        extra = [
            col for col in (self.profile.session_column, self.profile.order_column)
            if col and col in df.columns and col not in keep
        ]
        prepared = df[keep + extra].reset_index(drop=True)

        if len(prepared) == 0:
            raise InvalidDataset("No observations left after cleaning")

        prepared.attrs[PREPARED_ATTR] = self.profile.name
        logger.info(f"Prepared {len(prepared)} observations for profile {self.profile.name}")
        return prepared

    def split_features_target(self, df: pd.DataFrame) -> Tuple[pd.DataFrame, pd.Series]:
        """Split a prepared dataset into the pipeline input frame and the target."""
        return df[self.profile.model_columns], df[self.profile.target].astype(float)

    def _encode_rainfall(self, column: pd.Series) -> pd.Series:
        encoded = []
        for position, value in enumerate(column):
            if pd.isna(value):
                encoded.append(np.nan)
                continue
            try:
                encoded.append(parse_rainfall(value))
            except ValueError as e:
                raise InvalidDataset(f"Row {position}: {e}") from None
        return pd.Series(encoded, index=column.index, dtype='float64')

    def _drop_incomplete(self, df: pd.DataFrame) -> pd.DataFrame:
        must_have = [self.profile.target] + [
            spec.name for spec in self.profile.features
            if not spec.impute and spec.name in df.columns
        ]
        complete = df.dropna(subset=must_have)
        dropped = len(df) - len(complete)
        if dropped:
            logger.info(f"Dropped {dropped} rows with missing outcome or weather")
        complete = complete.copy()
        if 'rainfall' in complete.columns:
            complete['rainfall'] = complete['rainfall'].astype(int)
        return complete

    def _impute(self, df: pd.DataFrame) -> pd.DataFrame:
        for spec in self.profile.features:
            if not spec.impute or spec.name not in df.columns:
                continue
            missing = int(df[spec.name].isna().sum())
            if not missing:
                continue
            if spec.is_categorical:
                modes = df[spec.name].mode(dropna=True)
                if modes.empty:
                    raise InvalidDataset(f"Column '{spec.name}' has no observed values to impute from")
                fill = modes.iloc[0]
            else:
                fill = df[spec.name].median()
                if pd.isna(fill):
                    raise InvalidDataset(f"Column '{spec.name}' has no observed values to impute from")
            df[spec.name] = df[spec.name].fillna(fill)
            self.imputation_values[spec.name] = fill
            logger.info(f"Imputed {missing} missing values in {spec.name} with {fill}")

        group = self.profile.group_column
        if group and df[group].isna().any():
            raise InvalidDataset(f"Group column '{group}' contains missing values")
        return df

    def _check_numeric(self, df: pd.DataFrame) -> None:
        dtypes = {name: 'numeric' for name in self.profile.numeric_features + [self.profile.target]}
        is_valid, error = validate_dataframe(df, min_rows=0, column_dtypes=dtypes, check_nulls=False)
        if not is_valid:
            raise InvalidDataset(error)
        for spec in self.profile.features:
            if spec.is_categorical:
                unknown = set(df[spec.name].unique()) - set(spec.codes)
                if unknown:
                    raise InvalidDataset(
                        f"Column '{spec.name}' has unrecognized levels: {sorted(map(str, unknown))}"
                    )


def prepare_dataset(
    df: pd.DataFrame,
    profile: FeatureProfile,
    apply_107_rule: bool = True
) -> pd.DataFrame:
    """Prepare a raw observation frame for ``profile`` with a fresh pipeline."""
    return DataPreparationPipeline(profile, apply_107_rule=apply_107_rule).prepare(df)
