"""
Interpretability artifacts for a fitted lap time predictor.

Computed once, offline, against the full training dataset:

- permutation importance (increase in RMSE when a feature is shuffled)
- accumulated local effect (ALE) curves per feature
- descriptive summary and Pearson correlation tables
"""

import logging
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd
from sklearn.inspection import permutation_importance

from .base import FeatureProfile, FeatureSpec

logger = logging.getLogger(__name__)

ALE_NUMERIC = 'numeric'
ALE_CATEGORICAL = 'categorical'


def _finite_or_none(value: Any) -> Optional[float]:
    value = float(value)
    return value if np.isfinite(value) else None


def compute_permutation_importance(
    pipeline,
    X: pd.DataFrame,
    y: pd.Series,
    profile: FeatureProfile,
    n_repeats: int = 10,
    seed: int = 123,
    n_jobs: int = 1
) -> List[Dict[str, Any]]:
    """
    Permutation importance of each profile feature.

    Args:
        pipeline: Fitted prediction pipeline
        X: Model input frame
        y: Observed outcome
        profile: Feature profile
        n_repeats: Permutations per feature
        seed: Random seed
        n_jobs: Parallel jobs

    Returns:
        Records ranked by descending importance
    """
    result = permutation_importance(
        pipeline,
        X,
        np.asarray(y, dtype=float),
        scoring='neg_root_mean_squared_error',
        n_repeats=n_repeats,
        random_state=seed,
        n_jobs=n_jobs,
    )

    columns = list(X.columns)
    records = []
    for spec in profile.features:
        position = columns.index(spec.name)
        records.append({
            'feature': spec.name,
            'label': spec.label,
            'importance': float(result.importances_mean[position]),
            'std': float(result.importances_std[position]),
        })

    records.sort(key=lambda r: r['importance'], reverse=True)
    for rank, record in enumerate(records, start=1):
        record['rank'] = rank

    logger.info(
        "Permutation importance: "
        + ", ".join(f"{r['feature']}={r['importance']:.4f}" for r in records)
    )
    return records


def _predict_with(pipeline, X: pd.DataFrame, column: str, values) -> np.ndarray:
    modified = X.copy()
    modified[column] = values
    return np.asarray(pipeline.predict(modified), dtype=float)


def _centre(effects: np.ndarray, weights: np.ndarray) -> np.ndarray:
    total = weights.sum()
    if total <= 0:
        return effects
    return effects - float(np.sum(effects * weights) / total)


def _numeric_ale(pipeline, X: pd.DataFrame, spec: FeatureSpec, n_bins: int) -> Dict[str, Any]:
    x = X[spec.name].to_numpy(dtype=float)
    edges = np.unique(np.quantile(x, np.linspace(0.0, 1.0, n_bins + 1)))

    if len(edges) < 2:
        return {
            'feature': spec.name,
            'label': spec.label,
            'kind': ALE_NUMERIC,
            'values': [float(edges[0])],
            'effects': [0.0],
            'counts': [int(len(x))],
        }

    # bin k covers (edges[k-1], edges[k]]; the lowest edge joins bin 1
    bins = np.clip(np.searchsorted(edges, x, side='left'), 1, len(edges) - 1)
    upper = _predict_with(pipeline, X, spec.name, edges[bins])
    lower = _predict_with(pipeline, X, spec.name, edges[bins - 1])
    local = upper - lower

    n_intervals = len(edges) - 1
    counts = np.bincount(bins - 1, minlength=n_intervals).astype(float)
    sums = np.bincount(bins - 1, weights=local, minlength=n_intervals)
    deltas = np.divide(sums, counts, out=np.zeros_like(sums), where=counts > 0)

    accumulated = np.concatenate([[0.0], np.cumsum(deltas)])
    # interval effect is the midpoint of its edges, weighted by interval counts
    midpoints = (accumulated[:-1] + accumulated[1:]) / 2.0
    offset = float(np.sum(midpoints * counts) / counts.sum())
    effects = accumulated - offset

    return {
        'feature': spec.name,
        'label': spec.label,
        'kind': ALE_NUMERIC,
        'values': [float(v) for v in edges],
        'effects': [float(e) for e in effects],
        'counts': [int(c) for c in counts],
    }


def _categorical_ale(pipeline, X: pd.DataFrame, spec: FeatureSpec) -> Dict[str, Any]:
    labels = [label for label, _ in spec.levels]
    codes = spec.codes
    column = X[spec.name]
    counts = np.array([int((column == code).sum()) for code in codes], dtype=float)

    deltas = [0.0]
    for k in range(1, len(codes)):
        rows = column.isin([codes[k - 1], codes[k]]).to_numpy()
        if not rows.any():
            deltas.append(0.0)
            continue
        subset = X.loc[rows]
        n = len(subset)
        upper = _predict_with(pipeline, subset, spec.name, [codes[k]] * n)
        lower = _predict_with(pipeline, subset, spec.name, [codes[k - 1]] * n)
        deltas.append(float(np.mean(upper - lower)))

    effects = _centre(np.cumsum(deltas), counts)
    return {
        'feature': spec.name,
        'label': spec.label,
        'kind': ALE_CATEGORICAL,
        'values': labels,
        'effects': [float(e) for e in effects],
        'counts': [int(c) for c in counts],
    }


def compute_ale(
    pipeline,
    X: pd.DataFrame,
    profile: FeatureProfile,
    n_bins: int = 20
) -> Dict[str, Dict[str, Any]]:
    """
    Accumulated local effect curve for every profile feature.

    Numeric features are binned on quantile edges; ``values`` holds the edges,
    ``effects`` the centred accumulated effect at each edge and ``counts`` the
    rows per interval. Categorical features use their levels in profile order
    with one count per level.

    Args:
        pipeline: Fitted prediction pipeline
        X: Model input frame
        profile: Feature profile
        n_bins: Maximum number of quantile intervals for numeric features

    Returns:
        Curve record per feature name
    """
    curves = {}
    for spec in profile.features:
        if spec.is_categorical:
            curves[spec.name] = _categorical_ale(pipeline, X, spec)
        else:
            curves[spec.name] = _numeric_ale(pipeline, X, spec, n_bins)
        logger.debug(f"ALE for {spec.name}: {len(curves[spec.name]['values'])} points")
    return curves


def _numeric_view(df: pd.DataFrame, profile: FeatureProfile) -> pd.DataFrame:
    """Features and target with numeric dataset encodings, in profile order."""
    columns = {}
    for spec in profile.features:
        series = df[spec.name]
        if spec.is_categorical and not pd.api.types.is_numeric_dtype(series):
            logger.debug(f"Skipping non-numeric categorical {spec.name} in tables")
            continue
        columns[spec.name] = series.astype(float)
    columns[profile.target] = df[profile.target].astype(float)
    return pd.DataFrame(columns)


def _label_for(profile: FeatureProfile, name: str) -> str:
    if name == profile.target:
        return profile.target
    return profile.get_feature(name).label


def compute_summary_table(df: pd.DataFrame, profile: FeatureProfile) -> List[Dict[str, Any]]:
    """Mean, SD, min and max of each numeric feature and the target."""
    view = _numeric_view(df, profile)
    records = []
    for name in view.columns:
        column = view[name]
        records.append({
            'variable': name,
            'label': _label_for(profile, name),
            'n': int(column.notna().sum()),
            'mean': _finite_or_none(column.mean()),
            'sd': _finite_or_none(column.std(ddof=1)),
            'min': _finite_or_none(column.min()),
            'max': _finite_or_none(column.max()),
        })
    return records


def compute_correlation_table(df: pd.DataFrame, profile: FeatureProfile) -> Dict[str, Any]:
    """
    Pearson correlation matrix over the numeric features and the target.

    Correlations undefined for constant columns are stored as None.
    """
    view = _numeric_view(df, profile)
    matrix = view.corr(method='pearson')
    return {
        'variables': list(view.columns),
        'labels': [_label_for(profile, name) for name in view.columns],
        'matrix': [
            [_finite_or_none(value) for value in row]
            for row in matrix.to_numpy()
        ],
    }
