"""Tests for predictor feature extraction (rsmap/ml/features.py)."""

import numpy as np
import pytest

from rsmap.ml.features import (
    check_stack,
    drop_invalid,
    extract_features,
    stack_to_matrix,
    valid_cell_mask,
)
from rsmap.samples import PRESENCE, SampleSet


class TestCheckStack:
    def test_single_band_promoted(self):
        assert check_stack(np.zeros((4, 5))).shape == (1, 4, 5)

    def test_bad_ndim(self):
        with pytest.raises(ValueError, match="bands, rows, cols"):
            check_stack(np.zeros(10))

    def test_grid_shape_mismatch(self, grid):
        with pytest.raises(ValueError, match="does not match grid shape"):
            check_stack(np.zeros((2, 10, 10)), grid)


class TestValidity:
    def test_any_nan_band_invalidates_cell(self):
        stack = np.ones((3, 2, 2))
        stack[1, 0, 1] = np.nan
        stack[2, 1, 0] = np.inf
        mask = valid_cell_mask(stack)
        np.testing.assert_array_equal(mask, [[True, False], [False, True]])

    def test_drop_invalid(self, grid, habitat_stack):
        stack = habitat_stack.copy()
        stack[0, 3, 3] = np.nan
        samples = SampleSet.from_cells(grid, [3, 4], [3, 4], label=PRESENCE)
        kept = drop_invalid(stack, samples)
        assert len(kept) == 1
        assert kept.rows.tolist() == [4]


class TestExtraction:
    def test_stack_to_matrix(self):
        stack = np.arange(12, dtype=float).reshape(3, 2, 2)
        matrix = stack_to_matrix(stack)
        assert matrix.shape == (4, 3)
        np.testing.assert_array_equal(matrix[1], [1.0, 5.0, 9.0])

    def test_extract_features(self, grid, habitat_stack):
        samples = SampleSet.from_cells(grid, [2, 20], [2, 20], label=PRESENCE)
        X = extract_features(habitat_stack, samples)
        assert X.shape == (2, 3)
        assert X.dtype == np.float64
        np.testing.assert_array_equal(X[1], habitat_stack[:, 20, 20])
        # Patch cell is greener than open background
        assert X[0, 0] > X[1, 0]

    def test_extract_empty(self, habitat_stack):
        assert extract_features(habitat_stack, SampleSet.empty()).shape == (0, 3)
