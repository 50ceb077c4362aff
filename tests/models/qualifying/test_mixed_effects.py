"""
Tests for the random-intercept regression model.
"""

import pytest
import numpy as np
from sklearn.exceptions import NotFittedError

from models.qualifying.mixed_effects import RandomInterceptRegressor


def make_grouped_data(seed: int = 0, n_per_group: int = 60):
    rng = np.random.default_rng(seed)
    offsets = {'A': -2.0, 'B': -1.0, 'C': 0.0, 'D': 1.0, 'E': 2.0}
    x, groups, y = [], [], []
    for group, offset in offsets.items():
        values = rng.normal(size=n_per_group)
        x.extend(values)
        groups.extend([group] * n_per_group)
        y.extend(1.0 + 3.0 * values + offset + rng.normal(0, 0.1, size=n_per_group))
    X = np.empty((len(x), 2), dtype=object)
    X[:, 0] = x
    X[:, 1] = groups
    return X, np.array(y), offsets


class TestRandomInterceptRegressor:
    """Test random-intercept fitting and prediction."""

    def test_recovers_fixed_effects(self):
        X, y, _ = make_grouped_data()
        model = RandomInterceptRegressor().fit(X, y)

        assert model.coef_[0] == pytest.approx(3.0, abs=0.05)
        assert model.intercept_ == pytest.approx(1.0, abs=0.2)
        assert model.sigma2_residual_ == pytest.approx(0.01, rel=0.5)
        assert model.sigma2_group_ > 1.0

    def test_group_effects_follow_offsets(self):
        X, y, offsets = make_grouped_data()
        model = RandomInterceptRegressor().fit(X, y)

        assert set(model.group_effects_) == set(offsets)
        ordered = sorted(model.group_effects_, key=model.group_effects_.get)
        assert ordered == sorted(offsets, key=offsets.get)
        for group, offset in offsets.items():
            assert model.group_effects_[group] == pytest.approx(offset, abs=0.2)

    def test_unseen_and_missing_groups_use_population_intercept(self):
        X, y, _ = make_grouped_data()
        model = RandomInterceptRegressor().fit(X, y)

        new = np.empty((2, 2), dtype=object)
        new[:, 0] = [0.5, 0.5]
        new[:, 1] = ['Z', None]
        expected = model.intercept_ + model.coef_[0] * 0.5

        np.testing.assert_allclose(model.predict(new), [expected, expected])

    def test_known_group_adds_offset(self):
        X, y, _ = make_grouped_data()
        model = RandomInterceptRegressor().fit(X, y)

        new = np.empty((1, 2), dtype=object)
        new[0] = [0.0, 'E']
        assert model.predict(new)[0] == pytest.approx(model.intercept_ + model.group_effects_['E'])

    def test_single_group_has_no_group_variance(self):
        X, y, _ = make_grouped_data()
        X[:, 1] = 'A'
        model = RandomInterceptRegressor().fit(X, y)
        assert model.sigma2_group_ == 0.0
        assert model.group_effects_['A'] == 0.0

    def test_predict_before_fit(self):
        X, _, _ = make_grouped_data()
        with pytest.raises(NotFittedError):
            RandomInterceptRegressor().predict(X)

    def test_length_mismatch(self):
        X, y, _ = make_grouped_data()
        with pytest.raises(ValueError):
            RandomInterceptRegressor().fit(X, y[:-1])
