"""
Tests for model evaluation framework.
"""

import math

import pytest
import numpy as np

from models.qualifying.errors import TrainingDegeneracy
from models.qualifying.evaluation import CandidateResult, ModelEvaluator, results_from_records


def make_result(family: str, rmse: float) -> CandidateResult:
    return CandidateResult(
        family=family,
        hyperparameters={'n_estimators': 10} if family != 'linear' else {},
        metrics={
            'rmse': {'mean': rmse, 'std_err': 0.1, 'n': 3},
            'mae': {'mean': rmse * 0.8, 'std_err': 0.1, 'n': 3},
            'rsq': {'mean': 0.9, 'std_err': 0.01, 'n': 3},
        },
    )


class TestModelEvaluator:
    """Test evaluation metrics."""

    def test_compute_metrics(self):
        evaluator = ModelEvaluator()
        y_true = np.array([1.0, 2.0, 3.0, 4.0])
        y_pred = np.array([1.0, 2.0, 3.0, 6.0])

        metrics = evaluator.compute_metrics(y_true, y_pred)

        assert metrics['rmse'] == pytest.approx(1.0)
        assert metrics['mae'] == pytest.approx(0.5)
        assert metrics['rsq'] == pytest.approx(1 - 4.0 / 5.0)

    def test_constant_outcome_gives_non_finite_rsq(self):
        metrics = ModelEvaluator().compute_metrics([2.0, 2.0, 2.0], [2.0, 2.1, 1.9])
        assert not math.isfinite(metrics['rsq'])

    def test_non_finite_predictions(self):
        metrics = ModelEvaluator().compute_metrics([1.0, 2.0], [np.nan, 2.0])
        assert all(math.isnan(v) for v in metrics.values())

    def test_summarize_folds(self):
        folds = [
            {'rmse': 1.0, 'mae': 0.5, 'rsq': 0.8},
            {'rmse': 2.0, 'mae': 1.5, 'rsq': 0.6},
            {'rmse': 3.0, 'mae': 2.5, 'rsq': 0.7},
        ]
        summary = ModelEvaluator().summarize_folds(folds)

        assert summary['rmse']['mean'] == pytest.approx(2.0)
        assert summary['rmse']['std_err'] == pytest.approx(1.0 / math.sqrt(3))
        assert summary['rsq']['n'] == 3

    def test_non_finite_fold_metric_raises(self):
        folds = [
            {'rmse': 1.0, 'mae': 0.5, 'rsq': 0.8},
            {'rmse': 1.0, 'mae': 0.5, 'rsq': float('nan')},
        ]
        with pytest.raises(TrainingDegeneracy, match="rsq"):
            ModelEvaluator().summarize_folds(folds, label="linear")

    def test_no_folds_raises(self):
        with pytest.raises(TrainingDegeneracy):
            ModelEvaluator().summarize_folds([])

    def test_leaderboard_sorted_by_rmse(self):
        board = ModelEvaluator().leaderboard([
            make_result('linear', 1.5),
            make_result('random_forest', 0.9),
            make_result('xgboost', 1.1),
        ])
        assert list(board.index) == ['random_forest', 'xgboost', 'linear']
        assert board.loc['linear', 'mae_mean'] == pytest.approx(1.2)

    def test_metrics_table_marks_selected(self):
        results = [make_result('linear', 1.5), make_result('random_forest', 0.9)]
        table = ModelEvaluator().metrics_table(results, 'random_forest')

        assert table['selected_family'] == 'random_forest'
        assert [c['family'] for c in table['candidates']] == ['random_forest', 'linear']
        assert [c['selected'] for c in table['candidates']] == [True, False]

        rebuilt = results_from_records(table['candidates'])
        assert {r.family: r.mean_rmse for r in rebuilt} == {'random_forest': 0.9, 'linear': 1.5}


class TestPlots:
    """Test diagnostic plot output."""

    def test_plots_written(self, tmp_path):
        evaluator = ModelEvaluator()
        actuals = np.linspace(80, 90, 20)

        evaluator.plot_evaluation(actuals + 0.1, actuals, tmp_path)
        evaluator.plot_importance(
            [{'feature': 'humidity', 'label': 'Humidity', 'importance': 0.3},
             {'feature': 'rainfall', 'label': 'Rainfall', 'importance': 0.1}],
            tmp_path,
        )
        evaluator.plot_ale(
            {
                'humidity': {'label': 'Humidity', 'kind': 'numeric',
                             'values': [40.0, 60.0, 80.0], 'effects': [-0.1, 0.0, 0.1]},
                'rainfall': {'label': 'Rainfall', 'kind': 'categorical',
                             'values': ['No', 'Yes'], 'effects': [-0.5, 0.5]},
            },
            tmp_path,
        )

        assert (tmp_path / 'prediction_vs_actual.png').exists()
        assert (tmp_path / 'residuals.png').exists()
        assert (tmp_path / 'importance.png').exists()
        assert (tmp_path / 'ale' / 'humidity.png').exists()
        assert (tmp_path / 'ale' / 'rainfall.png').exists()
