"""
Tests for the training command-line interface.
"""

import pytest
import yaml
from click.testing import CliRunner

from config.settings import Settings
from models.qualifying.artifact_store import ArtifactStore
from models.qualifying.base import DEMO
from models.qualifying.training import ModelTrainer
from scripts import train_models


@pytest.fixture
def quick_settings(monkeypatch, tmp_path, quick_training_settings, small_search_spaces):
    """Point the CLI at reduced training settings and search spaces."""
    space_file = tmp_path / "training.yaml"
    space_file.write_text(yaml.safe_dump(small_search_spaces))
    settings = Settings(
        env="testing",
        training=quick_training_settings.model_copy(update={'search_space_file': str(space_file)}),
    )
    monkeypatch.setattr(train_models, "get_settings", lambda: settings)
    return settings


@pytest.fixture
def runner():
    return CliRunner()


class TestMakeDemoData:

    def test_writes_csv(self, runner, tmp_path):
        output = tmp_path / "demo.csv"
        result = runner.invoke(train_models.cli, ['make-demo-data', '--output', str(output), '--n', '50'])

        assert result.exit_code == 0, result.output
        lines = output.read_text().strip().splitlines()
        assert lines[0] == "x1,x2,x3,x4,x5,x6,x7,y"
        assert len(lines) == 51


class TestTrainCommand:

    @pytest.mark.slow
    def test_train_and_inspect(self, runner, tmp_path, quick_settings):
        data_path = tmp_path / "demo.csv"
        output_dir = tmp_path / "artifacts" / "demo"
        runner.invoke(train_models.cli, ['make-demo-data', '--output', str(data_path), '--n', '150'])

        result = runner.invoke(train_models.cli, [
            'train',
            '--data-path', str(data_path),
            '--profile', 'demo',
            '--output-dir', str(output_dir),
            '--version', '1.0.cli',
            '--plots', str(tmp_path / "plots"),
        ])

        assert result.exit_code == 0, result.output
        assert "Training completed successfully" in result.output
        bundle = ArtifactStore(output_dir).load(DEMO)
        assert bundle.version == '1.0.cli'
        assert (tmp_path / "plots" / "importance.png").exists()

        inspected = runner.invoke(train_models.cli, ['inspect', '--artifact-dir', str(output_dir), '--profile', 'demo'])
        assert inspected.exit_code == 0, inspected.output
        assert "Bundle is valid" in inspected.output

    def test_plot_failure_writes_no_bundle(self, runner, tmp_path, quick_settings, monkeypatch):
        data_path = tmp_path / "demo.csv"
        output_dir = tmp_path / "out"
        runner.invoke(train_models.cli, ['make-demo-data', '--output', str(data_path), '--n', '60'])

        def broken_plots(self, result, output_path):
            raise RuntimeError("no display backend")

        monkeypatch.setattr(ModelTrainer, "write_plots", broken_plots)
        result = runner.invoke(train_models.cli, [
            'train', '--data-path', str(data_path), '--profile', 'demo',
            '--output-dir', str(output_dir), '--plots', str(tmp_path / "plots"),
        ])

        assert result.exit_code == 1
        assert "no display backend" in result.output
        assert not output_dir.exists()

    def test_missing_data_path(self, runner, tmp_path):
        result = runner.invoke(train_models.cli, [
            'train', '--data-path', str(tmp_path / "missing.csv"), '--output-dir', str(tmp_path / "out"),
        ])
        assert result.exit_code != 0

    def test_degenerate_dataset_fails(self, runner, tmp_path, quick_settings):
        data_path = tmp_path / "constant.csv"
        data_path.write_text("x1,x2,x3,x4,x5,x6,x7,y\n" + "\n".join(
            f"{i},{i},{i},{i},{i},{i},{i},1.0" for i in range(30)
        ))

        result = runner.invoke(train_models.cli, [
            'train', '--data-path', str(data_path), '--profile', 'demo', '--output-dir', str(tmp_path / "out"),
        ])

        assert result.exit_code == 1
        assert not (tmp_path / "out").exists()


class TestInspectCommand:

    def test_missing_bundle(self, runner, tmp_path, quick_settings):
        result = runner.invoke(train_models.cli, ['inspect', '--artifact-dir', str(tmp_path / "none")])
        assert result.exit_code == 1
        assert "Inspection failed" in result.output
