"""
Linear model with a per-group random intercept.

Fixed effects are estimated by least squares on the group-adjusted target;
group intercepts are shrunken towards zero using method-of-moments variance
components, alternating until the fixed effects converge. Groups not seen
during fitting (or a missing group label) fall back to the population
intercept.
"""

import logging
from typing import Dict, Optional

import numpy as np
import pandas as pd
from sklearn.base import BaseEstimator, RegressorMixin
from sklearn.linear_model import LinearRegression
from sklearn.utils.validation import check_is_fitted

logger = logging.getLogger(__name__)


def _split_groups(X, group_index: int):
    """Separate the numeric design matrix from the group label column."""
    X = np.asarray(X, dtype=object)
    if X.ndim != 2 or X.shape[1] < 1:
        raise ValueError("Expected a 2D design matrix with a group column")
    index = group_index % X.shape[1]
    groups = np.array([None if pd.isna(g) else str(g) for g in X[:, index]], dtype=object)
    design = np.delete(X, index, axis=1).astype(float)
    return design, groups


class RandomInterceptRegressor(RegressorMixin, BaseEstimator):
    """
    Hierarchical linear regression with a random intercept per group.

    Attributes:
        coef_: Fixed-effect coefficients
        intercept_: Population intercept
        group_effects_: Shrunken intercept offset per group label
        sigma2_residual_: Within-group residual variance
        sigma2_group_: Between-group intercept variance
        n_iter_: Alternating iterations used
    """

    def __init__(self, group_index: int = -1, max_iter: int = 50, tol: float = 1e-6):
        self.group_index = group_index
        self.max_iter = max_iter
        self.tol = tol

    def fit(self, X, y):
        design, groups = _split_groups(X, self.group_index)
        y = np.asarray(y, dtype=float)
        if len(y) != design.shape[0]:
            raise ValueError("X and y have inconsistent lengths")

        labels = np.array([g if g is not None else "__missing__" for g in groups], dtype=object)
        unique, inverse = np.unique(labels.astype(str), return_inverse=True)
        counts = np.bincount(inverse).astype(float)

        offsets = np.zeros(len(unique))
        linear = LinearRegression()
        previous: Optional[np.ndarray] = None
        sigma2_e = float(np.var(y)) if len(y) > 1 else 0.0
        sigma2_u = 0.0

        for iteration in range(1, self.max_iter + 1):
            linear.fit(design, y - offsets[inverse])
            residual = y - linear.predict(design)

            group_means = np.bincount(inverse, weights=residual) / counts
            within = residual - group_means[inverse]
            dof = max(len(y) - len(unique) - design.shape[1], 1)
            sigma2_e = float(np.sum(within ** 2) / dof)

            if len(unique) > 1:
                sigma2_u = float(max(np.var(group_means, ddof=1) - np.mean(sigma2_e / counts), 0.0))
            else:
                sigma2_u = 0.0

            denom = counts * sigma2_u + sigma2_e
            shrink = np.divide(counts * sigma2_u, denom, out=np.zeros_like(counts), where=denom > 0)
            offsets = shrink * group_means

            params = np.concatenate([[linear.intercept_], linear.coef_])
            if previous is not None and np.max(np.abs(params - previous)) < self.tol:
                break
            previous = params

        self.coef_ = linear.coef_.copy()
        self.intercept_ = float(linear.intercept_)
        self.group_effects_: Dict[str, float] = {
            str(label): float(offset)
            for label, offset in zip(unique, offsets)
            if label != "__missing__"
        }
        self.sigma2_residual_ = sigma2_e
        self.sigma2_group_ = sigma2_u
        self.n_iter_ = iteration
        self.n_features_in_ = design.shape[1] + 1

        logger.debug(
            f"Random intercept fit: {len(self.group_effects_)} groups, "
            f"sigma2_group={sigma2_u:.4f}, sigma2_residual={sigma2_e:.4f}, iterations={iteration}"
        )
        return self

    def predict(self, X):
        check_is_fitted(self, "group_effects_")
        design, groups = _split_groups(X, self.group_index)
        fixed = design @ self.coef_ + self.intercept_
        offsets = np.array([self.group_effects_.get(g, 0.0) if g is not None else 0.0 for g in groups])
        return fixed + offsets
