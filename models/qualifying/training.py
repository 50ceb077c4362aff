"""
Model Training Pipeline with Resampled Model Selection

Orchestrates the offline batch procedure:
- Repeated stratified k-fold resampling of the prepared dataset
- Space-filling hyperparameter search (Optuna QMC sampler) per tunable family
- Selection of the family with the lowest mean RMSE and refit on all data
- Interpretability artifacts for the refit predictor
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
import optuna
from joblib import Parallel, delayed
from optuna.samplers import QMCSampler
from sklearn.model_selection import RepeatedStratifiedKFold
from sklearn.pipeline import Pipeline

from config.settings import TrainingSettings, get_settings
from .artifact_store import ArtifactBundle, build_manifest, thaw
from .base import FeatureProfile, ModelConfig
from .candidates import TUNABLE_FAMILIES, build_pipeline, families_for, load_search_spaces, suggest_params
from .data_preparation import DataPreparationPipeline
from .errors import TrainingDegeneracy
from .evaluation import CandidateResult, ModelEvaluator
from .interpretability import (
    compute_ale,
    compute_correlation_table,
    compute_permutation_importance,
    compute_summary_table,
)

logger = logging.getLogger(__name__)

Fold = Tuple[np.ndarray, np.ndarray]


def _fit_and_score(
    family: str,
    profile: FeatureProfile,
    params: Dict[str, Any],
    seed: int,
    X: pd.DataFrame,
    y: pd.Series,
    train_idx: np.ndarray,
    test_idx: np.ndarray
) -> Dict[str, float]:
    """Fit one candidate on a training fold and score it on the held-out fold."""
    pipeline = build_pipeline(family, profile, params, seed)
    pipeline.fit(X.iloc[train_idx], y.iloc[train_idx])
    predictions = pipeline.predict(X.iloc[test_idx])
    return ModelEvaluator().compute_metrics(y.iloc[test_idx], predictions)


@dataclass
class TrainingResult:
    """
    Outcome of one training run.

    Attributes:
        bundle: Artifact bundle ready to be saved
        pipeline: Refit deployed predictor
        results: Best cross-validated result per family
        leaderboard: Results as a DataFrame sorted by mean RMSE
        data: Prepared training dataset
    """
    bundle: ArtifactBundle
    pipeline: Pipeline
    results: List[CandidateResult]
    leaderboard: pd.DataFrame
    data: pd.DataFrame = field(repr=False)

    @property
    def selected(self) -> CandidateResult:
        return next(r for r in self.results if r.family == self.bundle.family)


class ModelTrainer:
    """
    Training pipeline for qualifying lap time models.

    Features:
    - Repeated k-fold resampling stratified on outcome quantiles
    - Space-filling search over each tunable family's hyperparameters
    - Automatic model selection on mean RMSE
    - Permutation importance, ALE, summary and correlation artifacts

    Attributes:
        profile: Feature profile being trained
        settings: Training configuration
        data_pipeline: Data preparation pipeline
        evaluator: Model evaluator for metrics
    """

    def __init__(
        self,
        profile: FeatureProfile,
        settings: Optional[TrainingSettings] = None,
        search_spaces: Optional[Dict[str, Dict[str, Dict[str, Any]]]] = None
    ):
        """
        Initialize training pipeline.

        Args:
            profile: Feature profile to train for
            settings: Training settings (application settings if None)
            search_spaces: Hyperparameter search spaces (read from the settings' YAML if None)
        """
        self.profile = profile
        self.settings = settings or get_settings().training
        self.search_spaces = search_spaces or load_search_spaces(self.settings.search_space_file)
        self.data_pipeline = DataPreparationPipeline(profile)
        self.evaluator = ModelEvaluator()

    def make_strata(self, y: pd.Series) -> np.ndarray:
        """
        Bin the outcome into quantile strata usable by every fold.

        Starts from ``strata_bins`` quantile bins and merges to fewer bins
        until the smallest stratum holds at least one row per fold.

        Raises:
            TrainingDegeneracy: If even a single stratum cannot supply one row per fold
        """
        values = np.asarray(y, dtype=float)
        n_splits = self.settings.n_splits

        if len(values) < n_splits:
            raise TrainingDegeneracy(
                f"{len(values)} observations cannot be split into {n_splits} folds"
            )

        for n_bins in range(self.settings.strata_bins, 0, -1):
            edges = np.unique(np.quantile(values, np.linspace(0.0, 1.0, n_bins + 1)))
            strata = np.searchsorted(edges[1:-1], values, side='right')
            smallest = int(np.bincount(strata).min())
            if smallest >= n_splits:
                if n_bins < self.settings.strata_bins:
                    logger.warning(
                        f"Merged outcome strata from {self.settings.strata_bins} to {n_bins} bins "
                        f"so each stratum has at least {n_splits} rows"
                    )
                return strata

        raise TrainingDegeneracy(
            f"Cannot build outcome strata with at least {n_splits} rows each"
        )

    def make_folds(self, y: pd.Series) -> List[Fold]:
        """Deterministic repeated stratified k-fold (train, test) index pairs."""
        strata = self.make_strata(y)
        splitter = RepeatedStratifiedKFold(
            n_splits=self.settings.n_splits,
            n_repeats=self.settings.n_repeats,
            random_state=self.settings.seed,
        )
        folds = list(splitter.split(np.zeros(len(strata)), strata))
        logger.info(
            f"Created {len(folds)} resamples ({self.settings.n_splits} folds x "
            f"{self.settings.n_repeats} repeats) over {len(np.unique(strata))} strata"
        )
        return folds

    def cross_validate(
        self,
        family: str,
        params: Dict[str, Any],
        X: pd.DataFrame,
        y: pd.Series,
        folds: Sequence[Fold]
    ) -> Dict[str, Dict[str, float]]:
        """
        Cross-validated metrics of one candidate configuration.

        Args:
            family: Candidate family
            params: Hyperparameters
            X: Model input frame
            y: Outcome
            folds: Resamples from :meth:`make_folds`

        Returns:
            Metric name -> {'mean', 'std_err', 'n'}
        """
        fold_metrics = Parallel(n_jobs=self.settings.n_jobs)(
            delayed(_fit_and_score)(
                family, self.profile, params, self.settings.seed, X, y, train_idx, test_idx
            )
            for train_idx, test_idx in folds
        )
        return self.evaluator.summarize_folds(fold_metrics, label=family)

    def tune(
        self,
        family: str,
        X: pd.DataFrame,
        y: pd.Series,
        folds: Sequence[Fold],
        n_candidates: Optional[int] = None
    ) -> CandidateResult:
        """
        Space-filling search over a family's hyperparameters.

        Args:
            family: Tunable candidate family
            X: Model input frame
            y: Outcome
            folds: Resamples shared by all candidates
            n_candidates: Configurations to evaluate (settings default if None)

        Returns:
            Best configuration by mean RMSE
        """
        if family not in TUNABLE_FAMILIES:
            raise ValueError(f"Family {family} has no hyperparameters to tune")

        n_candidates = n_candidates or self.settings.n_candidates
        space = self.search_spaces[family]

        def objective(trial: optuna.Trial) -> float:
            """Optuna objective function."""
            params = suggest_params(trial, space)
            summary = self.cross_validate(family, params, X, y, folds)
            trial.set_user_attr('params', params)
            trial.set_user_attr('metrics', summary)
            return summary['rmse']['mean']

        optuna.logging.set_verbosity(optuna.logging.WARNING)
        study = optuna.create_study(
            direction='minimize',
            sampler=QMCSampler(
                qmc_type='sobol',
                scramble=True,
                seed=self.settings.seed,
                warn_independent_sampling=False,
            ),
        )
        study.optimize(objective, n_trials=n_candidates)

        best = study.best_trial
        logger.info(f"Best {family} candidate RMSE: {best.value:.4f} with {best.user_attrs['params']}")
        return CandidateResult(
            family=family,
            hyperparameters=best.user_attrs['params'],
            metrics=best.user_attrs['metrics'],
            n_trials=len(study.trials),
        )

    def run(
        self,
        df: pd.DataFrame,
        n_candidates: Optional[int] = None,
        version: Optional[str] = None
    ) -> TrainingResult:
        """
        Full offline procedure: prepare, resample, search, select, refit, explain.

        Args:
            df: Raw or prepared observations
            n_candidates: Configurations per tunable family (settings default if None)
            version: Bundle version (auto-generated if None)

        Returns:
            Training result holding the artifact bundle
        """
        logger.info(f"Starting training pipeline for profile {self.profile.name}")

        prepared = self.data_pipeline.prepare(df)
        X, y = self.data_pipeline.split_features_target(prepared)
        logger.info(f"Training samples: {len(X)}, features: {self.profile.feature_names}")

        folds = self.make_folds(y)

        results: List[CandidateResult] = []
        for family in families_for(self.profile):
            logger.info(f"Evaluating {family}...")
            if family in TUNABLE_FAMILIES:
                result = self.tune(family, X, y, folds, n_candidates)
            else:
                result = CandidateResult(
                    family=family,
                    metrics=self.cross_validate(family, {}, X, y, folds),
                )
            logger.info(
                f"{family}: RMSE {result.metrics['rmse']['mean']:.4f} "
                f"(SE {result.metrics['rmse']['std_err']:.4f}), "
                f"R² {result.metrics['rsq']['mean']:.4f}"
            )
            results.append(result)

        best = min(results, key=lambda r: r.mean_rmse)
        config = ModelConfig(
            family=best.family,
            hyperparameters=best.hyperparameters,
            version=version or self._generate_version(),
        )
        logger.info(f"Selected {config.family} (mean RMSE {best.mean_rmse:.4f}), refitting on all data")

        pipeline = build_pipeline(config.family, self.profile, config.hyperparameters, self.settings.seed)
        pipeline.fit(X, y)

        bundle = self._build_bundle(pipeline, prepared, X, y, results, config)
        return TrainingResult(
            bundle=bundle,
            pipeline=pipeline,
            results=results,
            leaderboard=self.evaluator.leaderboard(results),
            data=prepared,
        )

    def write_plots(self, result: TrainingResult, output_path: Path) -> None:
        """
        Save diagnostic plots of a training run.

        Args:
            result: Training result
            output_path: Report directory
        """
        output_path = Path(output_path)
        X, y = self.data_pipeline.split_features_target(result.data)
        self.evaluator.plot_evaluation(
            result.pipeline.predict(X), y, output_path, label=self.profile.target
        )
        self.evaluator.plot_importance(thaw(result.bundle.importance), output_path)
        self.evaluator.plot_ale(thaw(result.bundle.ale), output_path, label=self.profile.target)
        logger.info(f"Evaluation plots saved to {output_path}")

    def _build_bundle(
        self,
        pipeline: Pipeline,
        prepared: pd.DataFrame,
        X: pd.DataFrame,
        y: pd.Series,
        results: List[CandidateResult],
        config: ModelConfig
    ) -> ArtifactBundle:
        logger.info("Computing interpretability artifacts...")
        importance = compute_permutation_importance(
            pipeline, X, y, self.profile,
            n_repeats=self.settings.permutation_repeats,
            seed=self.settings.seed,
            n_jobs=self.settings.n_jobs,
        )
        ale = compute_ale(pipeline, X, self.profile, n_bins=self.settings.ale_bins)

        manifest = build_manifest(
            self.profile,
            config,
            seed=self.settings.seed,
            n_observations=len(prepared),
        )
        return ArtifactBundle.create(
            manifest=manifest,
            predictor=pipeline,
            importance=importance,
            ale=ale,
            summary=compute_summary_table(prepared, self.profile),
            correlation=compute_correlation_table(prepared, self.profile),
            metrics=self.evaluator.metrics_table(results, config.family),
        )

    def _generate_version(self) -> str:
        """
        Generate version string based on timestamp.

        Returns:
            Version string (e.g., "1.0.20240115_143022")
        """
        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
        return f"1.0.{timestamp}"
