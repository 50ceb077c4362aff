"""
Tests for the resampled training and model selection pipeline.
"""

import pytest
import numpy as np
import pandas as pd

from config.settings import TrainingSettings
from models.qualifying.base import DEMO, F1_WEATHER
from models.qualifying.candidates import RANDOM_INTERCEPT
from models.qualifying.errors import TrainingDegeneracy
from models.qualifying.training import ModelTrainer


@pytest.fixture
def trainer(quick_training_settings, small_search_spaces):
    return ModelTrainer(DEMO, settings=quick_training_settings, search_spaces=small_search_spaces)


class TestStrata:
    """Test outcome strata and fold construction."""

    def test_strata_merged_for_small_datasets(self, small_search_spaces):
        settings = TrainingSettings(n_splits=5, strata_bins=4)
        trainer = ModelTrainer(DEMO, settings=settings, search_spaces=small_search_spaces)

        strata = trainer.make_strata(pd.Series(np.arange(12, dtype=float)))

        assert sorted(np.unique(strata)) == [0, 1]
        assert np.bincount(strata).min() >= 5

    def test_too_few_rows_raises(self, small_search_spaces):
        settings = TrainingSettings(n_splits=5)
        trainer = ModelTrainer(DEMO, settings=settings, search_spaces=small_search_spaces)

        with pytest.raises(TrainingDegeneracy):
            trainer.make_strata(pd.Series([1.0, 2.0, 3.0, 4.0]))

    def test_folds_deterministic(self, trainer, demo_data):
        first = trainer.make_folds(demo_data['y'])
        second = trainer.make_folds(demo_data['y'])

        assert len(first) == 3
        for (train_a, test_a), (train_b, test_b) in zip(first, second):
            np.testing.assert_array_equal(train_a, train_b)
            np.testing.assert_array_equal(test_a, test_b)

    def test_folds_partition_rows(self, trainer, demo_data):
        folds = trainer.make_folds(demo_data['y'])
        held_out = np.concatenate([test for _, test in folds])
        assert sorted(held_out) == list(range(len(demo_data)))


class TestModelTrainer:
    """Test the full training procedure."""

    def test_cross_validate_linear(self, trainer, demo_data):
        X, y = demo_data[DEMO.model_columns], demo_data['y']
        summary = trainer.cross_validate('linear', {}, X, y, trainer.make_folds(y))

        assert summary['rmse']['n'] == 3
        assert summary['rmse']['mean'] < 0.2
        assert summary['rsq']['mean'] > 0.99

    def test_constant_outcome_raises(self, trainer, demo_data):
        data = demo_data.copy()
        data['y'] = 1.0

        with pytest.raises(TrainingDegeneracy):
            trainer.run(data, version="1.0.test")

    def test_demo_selects_lowest_rmse(self, demo_training_result):
        result = demo_training_result
        best = min(result.results, key=lambda r: r.mean_rmse)

        assert result.bundle.family == best.family
        assert result.selected is best
        assert list(result.leaderboard.index)[0] == best.family
        assert {r.family for r in result.results} == {'linear', 'random_forest', 'xgboost'}

    def test_tuned_families_record_trials(self, demo_training_result):
        tuned = {r.family: r for r in demo_training_result.results if r.family != 'linear'}
        assert all(r.n_trials == 2 for r in tuned.values())
        assert 'mtry' in tuned['random_forest'].hyperparameters

    def test_bundle_contents(self, demo_training_result):
        bundle = demo_training_result.bundle

        assert bundle.version == "1.0.test"
        assert bundle.profile_name == 'demo'
        assert bundle.feature_names == tuple(DEMO.feature_names)
        assert set(bundle.ale) == set(DEMO.feature_names)
        assert len(bundle.importance) == 7
        assert bundle.metrics['selected_family'] == bundle.family
        assert bundle.manifest['n_observations'] == 200

    @pytest.mark.slow
    def test_weather_profile_includes_random_intercept(self, weather_training_result):
        families = {r.family for r in weather_training_result.results}
        assert RANDOM_INTERCEPT in families
        assert weather_training_result.bundle.manifest['group_column'] == 'circuit'
        assert weather_training_result.bundle.ale['rainfall']['values'] == ('No', 'Yes')

    def test_same_seed_same_selection(self, quick_training_settings, small_search_spaces, demo_training_result):
        trainer = ModelTrainer(DEMO, settings=quick_training_settings, search_spaces=small_search_spaces)
        again = trainer.run(demo_training_result.data, version="1.0.test")

        assert again.bundle.family == demo_training_result.bundle.family
        assert [r.hyperparameters for r in again.results] == \
            [r.hyperparameters for r in demo_training_result.results]

    def test_write_plots(self, trainer, demo_training_result, tmp_path):
        trainer.write_plots(demo_training_result, tmp_path)

        assert (tmp_path / 'importance.png').exists()
        assert len(list((tmp_path / 'ale').glob('*.png'))) == 7
