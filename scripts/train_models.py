"""
Training CLI for Qualifying Lap Time Models

Command-line interface for training models, generating the demo dataset and
inspecting artifact bundles.

Usage:
    python -m scripts.train_models train --data-path data/laps.csv --profile f1_weather \
        --seed 123 --output-dir artifacts/f1_weather
"""

import logging
from pathlib import Path
from typing import Optional
import sys

import click

from app.utils.logger import setup_logging_from_settings
from config.settings import get_settings
from models.qualifying.artifact_store import ArtifactStore
from models.qualifying.base import PROFILES, get_profile
from models.qualifying.data_preparation import load_observations, make_demo_dataset
from models.qualifying.evaluation import ModelEvaluator, results_from_records
from models.qualifying.training import ModelTrainer

logger = logging.getLogger(__name__)


@click.group()
def cli():
    """Qualifying Lap Time Model Training CLI"""
    setup_logging_from_settings(get_settings().logging)


@cli.command()
@click.option(
    '--data-path',
    type=click.Path(exists=True, dir_okay=False),
    required=True,
    help='Cleaned observation dataset (CSV or Parquet)'
)
@click.option(
    '--profile',
    type=click.Choice(sorted(PROFILES)),
    default='f1_weather',
    help='Feature profile to train'
)
@click.option('--seed', type=int, default=None, help='Random seed (settings default if not specified)')
@click.option(
    '--output-dir',
    type=click.Path(file_okay=False),
    required=True,
    help='Directory to write the artifact bundle to'
)
@click.option(
    '--n-candidates',
    type=click.IntRange(min=1),
    default=None,
    help='Configurations searched per tunable family'
)
@click.option(
    '--plots',
    type=click.Path(file_okay=False),
    default=None,
    help='Directory to save evaluation plots'
)
@click.option('--version', type=str, default=None, help='Bundle version (auto-generated if not specified)')
def train(
    data_path: str,
    profile: str,
    seed: Optional[int],
    output_dir: str,
    n_candidates: Optional[int],
    plots: Optional[str],
    version: Optional[str]
):
    """Train, select and persist a qualifying lap time model."""
    logger.info(f"Starting training for profile {profile}")

    try:
        training_settings = get_settings().training
        if seed is not None:
            training_settings = training_settings.model_copy(update={'seed': seed})

        trainer = ModelTrainer(get_profile(profile), settings=training_settings)
        data = load_observations(data_path)
        result = trainer.run(data, n_candidates=n_candidates, version=version)

        if plots:
            trainer.write_plots(result, Path(plots))
        ArtifactStore(output_dir).save(result.bundle)

        # Display results
        click.echo("\n" + "="*60)
        click.echo("TRAINING RESULTS")
        click.echo("="*60)
        click.echo(f"Profile: {profile}")
        click.echo(f"Version: {result.bundle.version}")
        click.echo(f"Selected: {result.bundle.family}")
        click.echo(f"\nCross-validated metrics:")
        click.echo(result.leaderboard.to_string(float_format=lambda v: f"{v:.4f}"))
        click.echo(f"\nArtifacts saved to: {output_dir}")

        click.echo("\n✅ Training completed successfully!")

    except Exception as e:
        logger.error(f"Training failed: {e}", exc_info=True)
        click.echo(f"❌ Training failed: {e}", err=True)
        sys.exit(1)


@cli.command('make-demo-data')
@click.option('--output', type=click.Path(dir_okay=False), required=True, help='CSV file to write')
@click.option('--n', 'n_rows', type=click.IntRange(min=1), default=1000, help='Number of rows')
@click.option('--seed', type=int, default=123, help='Random seed')
def make_demo_data(output: str, n_rows: int, seed: int):
    """Write the synthetic dataset used by the demo profile."""
    try:
        data = make_demo_dataset(n=n_rows, seed=seed)
        path = Path(output)
        path.parent.mkdir(parents=True, exist_ok=True)
        data.to_csv(path, index=False)
        click.echo(f"✅ Wrote {len(data)} rows to {path}")

    except Exception as e:
        logger.error(f"Demo data generation failed: {e}", exc_info=True)
        click.echo(f"❌ Demo data generation failed: {e}", err=True)
        sys.exit(1)


@cli.command()
@click.option(
    '--artifact-dir',
    type=click.Path(file_okay=False),
    required=True,
    help='Artifact bundle directory'
)
@click.option(
    '--profile',
    type=click.Choice(sorted(PROFILES)),
    default='f1_weather',
    help='Feature profile the bundle must match'
)
def inspect(artifact_dir: str, profile: str):
    """Load an artifact bundle and print its contents."""
    try:
        bundle = ArtifactStore(artifact_dir).load(get_profile(profile))

        click.echo("\n" + "="*60)
        click.echo("ARTIFACT BUNDLE")
        click.echo("="*60)
        click.echo(f"Profile: {bundle.profile_name}")
        click.echo(f"Version: {bundle.version}")
        click.echo(f"Created: {bundle.manifest.get('created_at')}")
        config = bundle.model_config
        click.echo(f"Family: {config.family}")
        if config.hyperparameters:
            click.echo(f"Hyperparameters: {config.hyperparameters}")
        click.echo(f"Observations: {bundle.manifest.get('n_observations')}")

        click.echo(f"\nFeature importance:")
        for record in bundle.importance:
            click.echo(f"  {record['rank']}. {record['label']}: {record['importance']:.4f}")

        click.echo(f"\nCross-validated metrics:")
        board = ModelEvaluator().leaderboard(results_from_records(bundle.metrics['candidates']))
        click.echo(board.to_string(float_format=lambda v: f"{v:.4f}"))

        click.echo("\n✅ Bundle is valid")

    except Exception as e:
        logger.error(f"Inspection failed: {e}", exc_info=True)
        click.echo(f"❌ Inspection failed: {e}", err=True)
        sys.exit(1)


if __name__ == '__main__':
    cli()
