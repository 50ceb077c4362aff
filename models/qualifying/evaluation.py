"""
Model Evaluation Framework

Resampled regression metrics, the candidate leaderboard and diagnostic plots
for qualifying lap time models.
"""

import logging
import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
import seaborn as sns
from sklearn.metrics import mean_absolute_error, mean_squared_error, r2_score

from .errors import TrainingDegeneracy

logger = logging.getLogger(__name__)

METRIC_NAMES = ('rmse', 'mae', 'rsq')


@dataclass
class CandidateResult:
    """
    Cross-validated performance of one candidate configuration.

    Attributes:
        family: Candidate family
        hyperparameters: Configuration evaluated
        metrics: Metric name -> {'mean', 'std_err', 'n'}
        n_trials: Number of configurations searched for the family
    """
    family: str
    hyperparameters: Dict[str, Any] = field(default_factory=dict)
    metrics: Dict[str, Dict[str, float]] = field(default_factory=dict)
    n_trials: int = 1

    @property
    def mean_rmse(self) -> float:
        return self.metrics['rmse']['mean']


class ModelEvaluator:
    """
    Evaluation framework for lap time models.

    Metrics:
    - RMSE, MAE, R² per resample
    - Mean and standard error across resamples

    Attributes:
        None (stateless)
    """

    def compute_metrics(self, y_true, y_pred) -> Dict[str, float]:
        """
        Regression metrics for one resample.

        R² is left non-finite for a constant outcome so that degenerate
        resamples surface instead of being reported as 0.

        Args:
            y_true: Observed values
            y_pred: Predicted values

        Returns:
            Dictionary with rmse, mae and rsq
        """
        y_true = np.asarray(y_true, dtype=float)
        y_pred = np.asarray(y_pred, dtype=float)
        if not np.all(np.isfinite(y_pred)):
            return {name: float('nan') for name in METRIC_NAMES}
        return {
            'rmse': float(np.sqrt(mean_squared_error(y_true, y_pred))),
            'mae': float(mean_absolute_error(y_true, y_pred)),
            'rsq': float(r2_score(y_true, y_pred, force_finite=False)),
        }

    def summarize_folds(
        self,
        fold_metrics: Sequence[Mapping[str, float]],
        label: str = "candidate"
    ) -> Dict[str, Dict[str, float]]:
        """
        Summarize per-resample metrics as mean and standard error.

        Args:
            fold_metrics: One metrics dictionary per resample
            label: Name used in error messages

        Returns:
            Metric name -> {'mean', 'std_err', 'n'}

        Raises:
            TrainingDegeneracy: If there are no resamples or any metric is non-finite
        """
        if not fold_metrics:
            raise TrainingDegeneracy(f"No resamples were evaluated for {label}")

        summary = {}
        for name in METRIC_NAMES:
            values = np.array([fold[name] for fold in fold_metrics], dtype=float)
            bad = np.flatnonzero(~np.isfinite(values))
            if bad.size:
                raise TrainingDegeneracy(
                    f"Non-finite {name} for {label} in resample(s) {bad.tolist()}"
                )
            n = len(values)
            std_err = float(np.std(values, ddof=1) / math.sqrt(n)) if n > 1 else 0.0
            summary[name] = {'mean': float(values.mean()), 'std_err': std_err, 'n': n}
        return summary

    def leaderboard(self, results: Sequence[CandidateResult]) -> pd.DataFrame:
        """
        Compare candidates by cross-validated metrics.

        Args:
            results: Best result per family

        Returns:
            DataFrame indexed by family, sorted by mean RMSE
        """
        rows = []
        for result in results:
            row: Dict[str, Any] = {'family': result.family, 'n_trials': result.n_trials}
            for name in METRIC_NAMES:
                row[f'{name}_mean'] = result.metrics[name]['mean']
                row[f'{name}_std_err'] = result.metrics[name]['std_err']
            rows.append(row)

        board = pd.DataFrame(rows).set_index('family')
        return board.sort_values('rmse_mean', kind='mergesort')

    def metrics_table(
        self,
        results: Sequence[CandidateResult],
        selected_family: str
    ) -> Dict[str, Any]:
        """Artifact record of the candidates' metrics and the selected family."""
        return {
            'selected_family': selected_family,
            'metric_names': list(METRIC_NAMES),
            'candidates': [
                {
                    'family': result.family,
                    'selected': result.family == selected_family,
                    'hyperparameters': dict(result.hyperparameters),
                    'n_trials': result.n_trials,
                    'metrics': {name: dict(values) for name, values in result.metrics.items()},
                }
                for result in sorted(results, key=lambda r: r.mean_rmse)
            ],
        }

    def plot_evaluation(
        self,
        predictions: np.ndarray,
        actuals: pd.Series,
        output_path: Path,
        label: str = "Lap Time (s)"
    ) -> None:
        """
        Observed vs predicted and residual plots.

        Args:
            predictions: In-sample predictions of the deployed predictor
            actuals: Observed outcome
            output_path: Directory to save plots
            label: Axis label for the outcome
        """
        output_path = Path(output_path)
        output_path.mkdir(parents=True, exist_ok=True)
        actuals = np.asarray(actuals, dtype=float)
        predictions = np.asarray(predictions, dtype=float)

        plt.figure(figsize=(10, 6))
        plt.scatter(actuals, predictions, alpha=0.5)
        plt.plot([actuals.min(), actuals.max()], [actuals.min(), actuals.max()], 'r--', lw=2)
        plt.xlabel(f'Observed {label}')
        plt.ylabel(f'Predicted {label}')
        plt.title('Predicted vs Observed')
        plt.grid(True, alpha=0.3)
        plt.savefig(output_path / 'prediction_vs_actual.png', dpi=150, bbox_inches='tight')
        plt.close()

        residuals = actuals - predictions
        plt.figure(figsize=(10, 6))
        plt.scatter(predictions, residuals, alpha=0.5)
        plt.axhline(y=0, color='r', linestyle='--', lw=2)
        plt.xlabel(f'Predicted {label}')
        plt.ylabel('Residual')
        plt.title('Residual Plot')
        plt.grid(True, alpha=0.3)
        plt.savefig(output_path / 'residuals.png', dpi=150, bbox_inches='tight')
        plt.close()

    def plot_importance(
        self,
        importance: Sequence[Mapping[str, Any]],
        output_path: Path
    ) -> None:
        """Horizontal bar chart of permutation importance."""
        output_path = Path(output_path)
        output_path.mkdir(parents=True, exist_ok=True)
        frame = pd.DataFrame(list(importance))

        plt.figure(figsize=(10, 6))
        sns.barplot(data=frame, x='importance', y='label', color='steelblue')
        plt.xlabel('Increase in RMSE when permuted')
        plt.ylabel('')
        plt.title('Permutation Feature Importance')
        plt.savefig(output_path / 'importance.png', dpi=150, bbox_inches='tight')
        plt.close()

    def plot_ale(
        self,
        curves: Mapping[str, Mapping[str, Any]],
        output_path: Path,
        label: Optional[str] = None
    ) -> None:
        """One accumulated local effect plot per feature."""
        output_path = Path(output_path) / 'ale'
        output_path.mkdir(parents=True, exist_ok=True)

        for name, curve in curves.items():
            plt.figure(figsize=(8, 5))
            if curve['kind'] == 'categorical':
                sns.barplot(x=[str(v) for v in curve['values']], y=list(curve['effects']), color='steelblue')
            else:
                plt.plot(curve['values'], curve['effects'], marker='o')
                plt.grid(True, alpha=0.3)
            plt.axhline(y=0, color='grey', linestyle='--', lw=1)
            plt.xlabel(curve.get('label', name))
            plt.ylabel(f'ALE of {label}' if label else 'ALE')
            plt.title(f"Accumulated Local Effect: {curve.get('label', name)}")
            plt.savefig(output_path / f'{name}.png', dpi=150, bbox_inches='tight')
            plt.close()

        logger.info(f"ALE plots saved to {output_path}")


def results_from_records(records: Sequence[Mapping[str, Any]]) -> List[CandidateResult]:
    """Rebuild candidate results from a stored metrics table."""
    return [
        CandidateResult(
            family=record['family'],
            hyperparameters=dict(record.get('hyperparameters', {})),
            metrics={name: dict(values) for name, values in record['metrics'].items()},
            n_trials=int(record.get('n_trials', 1)),
        )
        for record in records
    ]
