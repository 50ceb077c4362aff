"""
Tests for data preparation pipeline.
"""

import pytest
import numpy as np
import pandas as pd

from models.qualifying.base import DEMO, F1_FULL, F1_WEATHER
from models.qualifying.data_preparation import (
    DataPreparationPipeline,
    apply_107_percent_rule,
    build_preprocessor,
    count_rain_laps,
    load_observations,
    make_demo_dataset,
    normalize_columns,
    prepare_dataset,
    transformed_width,
)
from models.qualifying.errors import InvalidDataset


class TestLoading:
    """Test dataset loading and column normalisation."""

    def test_load_csv_normalizes_aliases(self, tmp_path, weather_observations):
        raw = weather_observations.rename(columns={
            'air_temp': 'Air_Temperature',
            'track_temp': 'track_temperature',
            'circuit': 'circuit_short_name',
        })
        path = tmp_path / "laps.csv"
        raw.to_csv(path, index=False)

        loaded = load_observations(path)

        assert {'air_temp', 'track_temp', 'circuit'} <= set(loaded.columns)
        assert len(loaded) == len(weather_observations)

    def test_missing_file(self, tmp_path):
        with pytest.raises(InvalidDataset, match="not found"):
            load_observations(tmp_path / "missing.csv")

    def test_unsupported_format(self, tmp_path):
        path = tmp_path / "laps.xlsx"
        path.write_text("not a dataset")
        with pytest.raises(InvalidDataset, match="Unsupported"):
            load_observations(path)

    def test_alias_does_not_overwrite_existing_column(self):
        df = pd.DataFrame({'lap_time': [90.0], 'lap_duration': [91.0]})
        normalized = normalize_columns(df)
        assert normalized['lap_duration'].tolist() == [91.0]


class TestDataRules:
    """Test the 107% rule and rain lap counting."""

    def test_107_percent_rule_drops_slow_laps(self):
        df = pd.DataFrame({
            'session_key': [1, 1, 1, 2, 2],
            'lap_duration': [80.0, 85.0, 86.0, 100.0, 108.0],
        })
        kept = apply_107_percent_rule(df, 'session_key', 'lap_duration')

        # 86.0 > 80 * 1.07 = 85.6; 108.0 > 100 * 1.07 = 107.0
        assert kept['lap_duration'].tolist() == [80.0, 85.0, 100.0]

    def test_rain_laps_cumulative_within_session(self):
        df = pd.DataFrame({
            'session_key': [1, 1, 1, 2, 2],
            'lap_number': [3, 1, 2, 1, 2],
            'rainfall': [1, 0, 1, 1, 1],
        })
        counts = count_rain_laps(df, 'session_key', 'lap_number')

        # session 1 in lap order: lap1=0, lap2=1, lap3=1 -> 0, 1, 2
        assert counts.tolist() == [2, 0, 1, 1, 2]

    def test_rain_laps_without_session_column(self):
        df = pd.DataFrame({
            'lap_number': [3, 1, 2],
            'rainfall': [1, 1, 0],
        })
        counts = count_rain_laps(df, 'session_key', 'lap_number')

        # whole frame is one session: lap1=1, lap2=1, lap3=2
        assert counts.tolist() == [2, 1, 1]


class TestDataPreparationPipeline:
    """Test data preparation pipeline."""

    def test_prepare_weather_dataset(self, weather_observations):
        prepared = DataPreparationPipeline(F1_WEATHER).prepare(weather_observations)

        assert list(prepared.columns[:len(F1_WEATHER.model_columns)]) == F1_WEATHER.model_columns
        assert F1_WEATHER.target in prepared.columns
        assert set(prepared['rainfall'].unique()) <= {0, 1}
        assert prepared['rain_laps'].min() >= 0
        assert not prepared[F1_WEATHER.model_columns].isna().any().any()

    def test_prepare_without_session_column(self, weather_observations):
        df = weather_observations.drop(columns=['session_key'])
        prepared = prepare_dataset(df, F1_WEATHER)

        assert len(prepared) == len(df)
        assert 'session_key' not in prepared.columns
        assert prepared['rain_laps'].max() == int(df['rainfall'].sum())

    def test_missing_required_column(self, weather_observations):
        with pytest.raises(InvalidDataset, match="humidity"):
            DataPreparationPipeline(F1_WEATHER).prepare(weather_observations.drop(columns=['humidity']))

    def test_rainfall_levels_are_encoded(self, weather_observations):
        df = weather_observations.head(4).copy()
        df['rainfall'] = ['Yes', 'No', 1, False]
        prepared = DataPreparationPipeline(F1_WEATHER, apply_107_rule=False).prepare(df)
        assert prepared['rainfall'].tolist() == [1, 0, 1, 0]

    def test_invalid_rainfall_rejected(self, weather_observations):
        df = weather_observations.head(3).copy()
        df['rainfall'] = ['No', 'drizzle', 'Yes']
        with pytest.raises(InvalidDataset, match="drizzle"):
            DataPreparationPipeline(F1_WEATHER).prepare(df)

    def test_rows_missing_weather_are_dropped(self, weather_observations):
        df = weather_observations.copy()
        df.loc[[0, 5], 'humidity'] = np.nan
        df.loc[7, 'lap_duration'] = np.nan

        pipeline = DataPreparationPipeline(F1_WEATHER, apply_107_rule=False)
        prepared = pipeline.prepare(df)

        assert len(prepared) == len(df) - 3

    def test_track_attributes_imputed_once(self, weather_observations):
        df = weather_observations.copy()
        df.loc[[0, 1], 'turns'] = np.nan
        df.loc[2, 'circuit_type'] = None

        pipeline = DataPreparationPipeline(F1_FULL, apply_107_rule=False)
        prepared = pipeline.prepare(df)

        assert not prepared[['turns', 'circuit_type']].isna().any().any()
        assert pipeline.imputation_values['turns'] == df['turns'].median()
        assert 'circuit_type' in pipeline.imputation_values

        # A second pass over the prepared frame is a no-op
        assert pipeline.prepare(prepared) is prepared

    def test_unknown_category_rejected(self, weather_observations):
        df = weather_observations.copy()
        df.loc[0, 'circuit_type'] = 'oval'
        with pytest.raises(InvalidDataset, match="oval"):
            DataPreparationPipeline(F1_FULL, apply_107_rule=False).prepare(df)

    def test_empty_after_cleaning(self, weather_observations):
        df = weather_observations.copy()
        df['humidity'] = np.nan
        with pytest.raises(InvalidDataset, match="No observations"):
            DataPreparationPipeline(F1_WEATHER).prepare(df)

    def test_split_features_target(self, demo_data):
        pipeline = DataPreparationPipeline(DEMO)
        X, y = pipeline.split_features_target(prepare_dataset(demo_data, DEMO))
        assert list(X.columns) == DEMO.model_columns
        assert len(y) == len(demo_data)


class TestDemoDataset:
    """Test the synthetic demo dataset."""

    def test_shape_and_columns(self):
        data = make_demo_dataset()
        assert data.shape == (1000, 8)
        assert list(data.columns) == [f'x{i}' for i in range(1, 8)] + ['y']

    def test_deterministic(self):
        pd.testing.assert_frame_equal(make_demo_dataset(n=50, seed=7), make_demo_dataset(n=50, seed=7))

    def test_linear_signal(self):
        data = make_demo_dataset(n=2000, seed=1)
        coef, *_ = np.linalg.lstsq(
            np.column_stack([data[[f'x{i}' for i in range(1, 8)]].to_numpy(), np.ones(len(data))]),
            data['y'].to_numpy(),
            rcond=None,
        )
        np.testing.assert_allclose(coef[:7], [2.0, -1.5, 0.5, 0.8, -0.3, 1.2, -0.7], atol=0.02)


class TestPreprocessor:
    """Test the shared pre-processing transform."""

    def test_output_width(self, weather_observations):
        prepared = prepare_dataset(weather_observations, F1_FULL)
        transformed = build_preprocessor(F1_FULL).fit_transform(prepared[F1_FULL.model_columns])
        assert transformed.shape[1] == transformed_width(F1_FULL)

    def test_group_passed_through_last(self, weather_observations):
        prepared = prepare_dataset(weather_observations, F1_WEATHER)
        preprocessor = build_preprocessor(F1_WEATHER, include_group=True)
        transformed = preprocessor.fit_transform(prepared[F1_WEATHER.model_columns])

        assert transformed.shape[1] == transformed_width(F1_WEATHER) + 1
        assert list(transformed[:, -1]) == prepared['circuit'].tolist()

    def test_group_requires_group_column(self):
        with pytest.raises(ValueError):
            build_preprocessor(DEMO, include_group=True)

    def test_numeric_features_standardized(self, demo_data):
        transformed = build_preprocessor(DEMO).fit_transform(demo_data[DEMO.model_columns])
        np.testing.assert_allclose(transformed.mean(axis=0), 0.0, atol=1e-10)
        np.testing.assert_allclose(transformed.std(axis=0), 1.0, atol=1e-10)
