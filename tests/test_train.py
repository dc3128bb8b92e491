"""Tests for suitability model training (rsmap/ml/train.py)."""

import json

import numpy as np
import pytest

from rsmap.errors import InsufficientRegions
from rsmap.labeling import assign_regions
from rsmap.ml.background import sample_background
from rsmap.ml.config import MLConfig
from rsmap.ml.features import extract_features
from rsmap.ml.train import (
    BinaryClassifier,
    FoldResult,
    SuitabilitySurface,
    build_classifier,
    predict_surface,
    train_suitability,
)


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------


@pytest.fixture
def training_data(grid, habitat_stack, patch_presences):
    """Presence/absence features with four regions and a planted signal."""
    presences = assign_regions(patch_presences, radius=50.0)
    absences = sample_background(presences, habitat_stack, grid, method="random").absences
    return (
        extract_features(habitat_stack, presences),
        extract_features(habitat_stack, absences),
        presences.regions,
    )


class ConstantClassifier:
    """Predicts the same presence probability everywhere."""

    def __init__(self, p):
        self.p = p
        self.n_fit = 0

    def fit(self, X, y):
        self.n_fit += 1
        return self

    def predict_proba(self, X):
        p = np.full(len(X), self.p)
        return np.column_stack([1 - p, p])


# ---------------------------------------------------------------------------
# train_suitability
# ---------------------------------------------------------------------------


class TestTrainSuitability:
    def test_returns_surface(self, training_data, habitat_stack, small_ml_config):
        X_p, X_a, regions = training_data
        surface = train_suitability(X_p, X_a, regions, habitat_stack, config=small_ml_config)
        assert isinstance(surface, SuitabilitySurface)
        assert surface.probability.shape == habitat_stack.shape[1:]

    def test_one_fold_per_region(self, training_data, habitat_stack, small_ml_config):
        X_p, X_a, regions = training_data
        surface = train_suitability(X_p, X_a, regions, habitat_stack, config=small_ml_config)
        assert surface.n_folds == 4
        assert [f.region for f in surface.folds] == [0, 1, 2, 3]
        assert all(isinstance(f, FoldResult) for f in surface.folds)

    def test_held_out_region_excluded_from_training(self, training_data, habitat_stack, small_ml_config):
        X_p, X_a, regions = training_data
        surface = train_suitability(X_p, X_a, regions, habitat_stack, config=small_ml_config)
        for fold in surface.folds:
            n_region = int((regions == fold.region).sum())
            assert fold.n_train_presence == len(X_p) - n_region
            # Validation absences balance validation presences
            assert (fold.val_labels == 1).sum() == n_region
            assert (fold.val_labels == 0).sum() == n_region
            assert fold.n_train_absence == len(X_a) - n_region

    def test_probabilities_in_range(self, training_data, habitat_stack, small_ml_config):
        X_p, X_a, regions = training_data
        surface = train_suitability(X_p, X_a, regions, habitat_stack, config=small_ml_config)
        assert np.nanmin(surface.probability) >= 0.0
        assert np.nanmax(surface.probability) <= 1.0

    def test_learns_planted_signal(self, training_data, habitat_stack, small_ml_config):
        X_p, X_a, regions = training_data
        surface = train_suitability(X_p, X_a, regions, habitat_stack, config=small_ml_config)
        assert surface.scores.at["presence", "f1"] > 0.8
        # Habitat patch cells score higher than the open background
        assert surface.probability[2:6, 2:6].mean() > surface.probability[15:25, 15:25].mean()

    def test_pooled_counts_sum_folds(self, training_data, habitat_stack, small_ml_config):
        X_p, X_a, regions = training_data
        surface = train_suitability(X_p, X_a, regions, habitat_stack, config=small_ml_config)
        total_tp = sum(f.counts.at["presence", "tp"] for f in surface.folds)
        total_fn = sum(f.counts.at["presence", "fn"] for f in surface.folds)
        assert surface.scores.at["presence", "tp"] == total_tp
        assert surface.scores.at["presence", "tp"] + surface.scores.at["presence", "fn"] == len(X_p)
        assert surface.scores.at["presence", "fn"] == total_fn

    def test_invalid_cells_are_nan(self, training_data, habitat_stack, small_ml_config):
        X_p, X_a, regions = training_data
        stack = habitat_stack.copy()
        stack[2, 20, 20] = np.nan
        surface = train_suitability(X_p, X_a, regions, stack, config=small_ml_config)
        assert np.isnan(surface.probability[20, 20])
        assert np.isfinite(surface.probability[21, 21])

    def test_refit_mode(self, training_data, habitat_stack, small_ml_config):
        X_p, X_a, regions = training_data
        small_ml_config.surface_mode = "refit"
        surface = train_suitability(X_p, X_a, regions, habitat_stack, config=small_ml_config)
        assert surface.model is not None
        np.testing.assert_allclose(
            surface.probability, predict_surface(surface.model, habitat_stack)
        )

    def test_parallel_folds_match_sequential(self, training_data, habitat_stack, small_ml_config):
        X_p, X_a, regions = training_data
        sequential = train_suitability(X_p, X_a, regions, habitat_stack, config=small_ml_config)
        small_ml_config.cv_n_jobs = 2
        parallel = train_suitability(X_p, X_a, regions, habitat_stack, config=small_ml_config)
        np.testing.assert_allclose(sequential.probability, parallel.probability)
        assert sequential.scores.equals(parallel.scores)

    def test_single_region_raises(self, training_data, habitat_stack, small_ml_config):
        X_p, X_a, _ = training_data
        with pytest.raises(InsufficientRegions, match="at least 2 regions"):
            train_suitability(X_p, X_a, np.zeros(len(X_p)), habitat_stack, config=small_ml_config)

    def test_region_length_mismatch(self, training_data, habitat_stack, small_ml_config):
        X_p, X_a, regions = training_data
        with pytest.raises(ValueError, match="region ids"):
            train_suitability(X_p, X_a, regions[:-1], habitat_stack, config=small_ml_config)

    def test_band_mismatch(self, training_data, habitat_stack, small_ml_config):
        X_p, X_a, regions = training_data
        with pytest.raises(ValueError, match="presence_X must have shape"):
            train_suitability(X_p[:, :2], X_a, regions, habitat_stack, config=small_ml_config)

    def test_non_finite_features(self, training_data, habitat_stack, small_ml_config):
        X_p, X_a, regions = training_data
        X_a = X_a.copy()
        X_a[0, 0] = np.nan
        with pytest.raises(ValueError, match="non-finite"):
            train_suitability(X_p, X_a, regions, habitat_stack, config=small_ml_config)


class TestCustomClassifier:
    def test_factory_called_per_fold(self, training_data, habitat_stack, small_ml_config):
        X_p, X_a, regions = training_data
        made = []

        def factory():
            model = ConstantClassifier(0.9)
            made.append(model)
            return model

        train_suitability(
            X_p, X_a, regions, habitat_stack, config=small_ml_config, classifier_factory=factory
        )
        assert len(made) == 4
        assert all(m.n_fit == 1 for m in made)

    def test_always_absence_gives_zero_presence_f1(self, training_data, habitat_stack, small_ml_config):
        X_p, X_a, regions = training_data
        # Presence has FN but no TP, so its F1 is 0 rather than undefined
        surface = train_suitability(
            X_p, X_a, regions, habitat_stack,
            config=small_ml_config,
            classifier_factory=lambda: ConstantClassifier(0.0),
        )
        assert surface.scores.at["presence", "f1"] == 0.0
        assert surface.scores.at["absence", "recall"] == 1.0
        np.testing.assert_allclose(surface.probability, 0.0)


    def test_protocol(self):
        assert isinstance(ConstantClassifier(0.5), BinaryClassifier)
        assert isinstance(build_classifier(MLConfig(n_estimators=5)), BinaryClassifier)


# ---------------------------------------------------------------------------
# SuitabilitySurface
# ---------------------------------------------------------------------------


class TestSuitabilitySurface:
    def test_to_mask(self, training_data, habitat_stack, small_ml_config):
        X_p, X_a, regions = training_data
        surface = train_suitability(X_p, X_a, regions, habitat_stack, config=small_ml_config)
        mask = surface.to_mask(0.5)
        assert mask.dtype == np.uint8
        assert set(np.unique(mask)).issubset({0, 1})
        assert mask.sum() == int((surface.probability >= 0.5).sum())

    def test_save_and_load_roundtrip(self, training_data, habitat_stack, small_ml_config, tmp_path):
        X_p, X_a, regions = training_data
        surface = train_suitability(X_p, X_a, regions, habitat_stack, config=small_ml_config)

        path = tmp_path / "surface.joblib"
        surface.save(path)
        loaded = SuitabilitySurface.load(path)

        np.testing.assert_array_equal(loaded.probability, surface.probability)
        assert loaded.scores.equals(surface.scores)

        metadata = json.loads(path.with_suffix(".json").read_text())
        assert metadata["n_folds"] == 4
        assert metadata["regions"] == [0, 1, 2, 3]
        assert set(metadata["scores"]) == {"presence", "absence"}
