"""
Candidate model families for lap time regression.

Every candidate is a scikit-learn ``Pipeline`` made of the shared
pre-processing transform and one estimator:

- linear: ordinary least squares
- random_intercept: linear model with a random intercept per group
- random_forest: bagged regression trees
- xgboost: gradient boosted trees with early stopping
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional, Union

import numpy as np
import optuna
import xgboost as xgb
import yaml
from sklearn.base import BaseEstimator, RegressorMixin
from sklearn.ensemble import RandomForestRegressor
from sklearn.linear_model import LinearRegression
from sklearn.pipeline import Pipeline
from sklearn.utils.validation import check_is_fitted

from .base import FeatureProfile
from .data_preparation import build_preprocessor, transformed_width
from .mixed_effects import RandomInterceptRegressor

logger = logging.getLogger(__name__)

LINEAR = "linear"
RANDOM_INTERCEPT = "random_intercept"
RANDOM_FOREST = "random_forest"
XGBOOST = "xgboost"

FAMILIES = (LINEAR, RANDOM_INTERCEPT, RANDOM_FOREST, XGBOOST)
TUNABLE_FAMILIES = (RANDOM_FOREST, XGBOOST)


class BoostedTreeRegressor(RegressorMixin, BaseEstimator):
    """
    XGBoost regressor with early stopping on a hold-out slice of the training data.

    The hold-out rows are drawn deterministically from ``random_state`` so that
    refitting on the same data gives the same model.
    """

    def __init__(
        self,
        n_estimators: int = 200,
        colsample_bynode: float = 1.0,
        min_child_weight: float = 1.0,
        max_depth: int = 6,
        learning_rate: float = 0.1,
        subsample: float = 1.0,
        early_stopping_rounds: Optional[int] = None,
        validation_fraction: float = 0.1,
        random_state: int = 0,
        n_jobs: int = 1,
    ):
        self.n_estimators = n_estimators
        self.colsample_bynode = colsample_bynode
        self.min_child_weight = min_child_weight
        self.max_depth = max_depth
        self.learning_rate = learning_rate
        self.subsample = subsample
        self.early_stopping_rounds = early_stopping_rounds
        self.validation_fraction = validation_fraction
        self.random_state = random_state
        self.n_jobs = n_jobs

    def _make_booster(self, early_stopping: bool) -> xgb.XGBRegressor:
        return xgb.XGBRegressor(
            objective='reg:squarederror',
            n_estimators=int(self.n_estimators),
            colsample_bynode=float(self.colsample_bynode),
            min_child_weight=float(self.min_child_weight),
            max_depth=int(self.max_depth),
            learning_rate=float(self.learning_rate),
            subsample=float(self.subsample),
            early_stopping_rounds=int(self.early_stopping_rounds) if early_stopping else None,
            tree_method='hist',
            random_state=self.random_state,
            n_jobs=self.n_jobs,
        )

    def fit(self, X, y):
        X = np.asarray(X, dtype=float)
        y = np.asarray(y, dtype=float)

        n_val = int(round(len(y) * self.validation_fraction))
        early_stopping = bool(self.early_stopping_rounds) and n_val >= 1 and len(y) - n_val >= 2

        if early_stopping:
            order = np.random.default_rng(self.random_state).permutation(len(y))
            val_idx, train_idx = order[:n_val], order[n_val:]
            self.booster_ = self._make_booster(early_stopping=True)
            self.booster_.fit(
                X[train_idx], y[train_idx],
                eval_set=[(X[val_idx], y[val_idx])],
                verbose=False,
            )
            self.best_iteration_ = int(self.booster_.best_iteration)
        else:
            self.booster_ = self._make_booster(early_stopping=False)
            self.booster_.fit(X, y, verbose=False)
            self.best_iteration_ = int(self.n_estimators) - 1

        self.n_features_in_ = X.shape[1]
        return self

    def predict(self, X):
        check_is_fitted(self, "booster_")
        return self.booster_.predict(np.asarray(X, dtype=float))


def load_search_spaces(path: Union[str, Path]) -> Dict[str, Dict[str, Dict[str, Any]]]:
    """
    Load hyperparameter search spaces from YAML.

    Args:
        path: YAML file with one mapping per tunable family

    Returns:
        Search spaces keyed by family
    """
    with open(path, 'r') as f:
        spaces = yaml.safe_load(f) or {}

    for family in TUNABLE_FAMILIES:
        if family not in spaces:
            raise ValueError(f"Search space for {family} missing from {path}")
        for name, spec in spaces[family].items():
            if spec.get('type') not in ('int', 'float'):
                raise ValueError(f"Parameter {family}.{name} must have type int or float")
            if spec['low'] > spec['high']:
                raise ValueError(f"Parameter {family}.{name} has low > high")
    return spaces


def suggest_params(trial: optuna.Trial, space: Dict[str, Dict[str, Any]]) -> Dict[str, Any]:
    """Draw one configuration from a search space."""
    params: Dict[str, Any] = {}
    for name, spec in space.items():
        if spec['type'] == 'int':
            params[name] = trial.suggest_int(name, int(spec['low']), int(spec['high']))
        else:
            params[name] = trial.suggest_float(
                name, float(spec['low']), float(spec['high']), log=bool(spec.get('log', False))
            )
    return params


def _mtry_count(fraction: float, width: int) -> int:
    return int(min(max(round(fraction * width), 1), width))


def build_estimator(
    family: str,
    params: Optional[Dict[str, Any]],
    profile: FeatureProfile,
    seed: int
):
    """
    Create an unfitted estimator of a candidate family.

    Args:
        family: Candidate family name
        params: Hyperparameters (ignored by untuned families)
        profile: Feature profile (used to resolve mtry)
        seed: Random seed

    Returns:
        Unfitted estimator
    """
    params = dict(params or {})
    width = transformed_width(profile)

    if family == LINEAR:
        return LinearRegression()
    elif family == RANDOM_INTERCEPT:
        return RandomInterceptRegressor(group_index=-1)
    elif family == RANDOM_FOREST:
        return RandomForestRegressor(
            n_estimators=int(params.get('n_estimators', 500)),
            max_features=_mtry_count(params.get('mtry', 1 / 3), width),
            min_samples_leaf=int(params.get('min_samples_leaf', 5)),
            random_state=seed,
            n_jobs=1,
        )
    elif family == XGBOOST:
        mtry = _mtry_count(params.get('mtry', 1.0), width)
        return BoostedTreeRegressor(
            n_estimators=int(params.get('n_estimators', 200)),
            colsample_bynode=mtry / width,
            min_child_weight=float(params.get('min_child_weight', 1)),
            max_depth=int(params.get('max_depth', 6)),
            learning_rate=float(params.get('learning_rate', 0.1)),
            subsample=float(params.get('subsample', 1.0)),
            early_stopping_rounds=params.get('early_stopping_rounds'),
            random_state=seed,
        )
    else:
        raise ValueError(f"Unknown model family: {family}")


def build_pipeline(
    family: str,
    profile: FeatureProfile,
    params: Optional[Dict[str, Any]] = None,
    seed: int = 123
) -> Pipeline:
    """
    Wrap a candidate estimator in the shared pre-processing transform.

    Args:
        family: Candidate family name
        profile: Feature profile
        params: Hyperparameters
        seed: Random seed

    Returns:
        Unfitted pipeline
    """
    estimator = build_estimator(family, params, profile, seed)
    preprocessor = build_preprocessor(profile, include_group=family == RANDOM_INTERCEPT)
    return Pipeline([
        ('preprocess', preprocessor),
        ('model', estimator),
    ])


def families_for(profile: FeatureProfile) -> tuple:
    """Candidate families applicable to a profile (random intercept needs a group column)."""
    if profile.group_column:
        return FAMILIES
    return tuple(family for family in FAMILIES if family != RANDOM_INTERCEPT)
