"""
Shared pytest fixtures for rsmap tests.

These fixtures provide small synthetic grids, predictor stacks and
trajectories with a planted habitat signal.
"""

import numpy as np
import pytest

from rsmap.grid import Grid
from rsmap.ml.config import MLConfig
from rsmap.samples import PRESENCE, SampleSet
from rsmap.trajectory import Trajectory

# Upper-left (row, col) of the four 4x4 habitat patches, far apart
PATCH_ORIGINS = [(2, 2), (2, 30), (30, 2), (30, 30)]


# =============================================================================
# Grid Fixtures
# =============================================================================

@pytest.fixture
def grid() -> Grid:
    """40 x 40 grid of 10 m cells with upper-left corner at (1000, 2000)."""
    return Grid(x_origin=1000.0, y_origin=2000.0, res_x=10.0, res_y=10.0, n_rows=40, n_cols=40)


@pytest.fixture
def rect_grid() -> Grid:
    """Small grid with non-square pixels."""
    return Grid(x_origin=0.0, y_origin=100.0, res_x=20.0, res_y=5.0, n_rows=20, n_cols=5)


# =============================================================================
# Predictor Stack Fixtures
# =============================================================================

@pytest.fixture
def habitat_stack(grid) -> np.ndarray:
    """Three-band stack where four square patches have a distinct signature.

    Band 0 ("greenness") is high inside the patches and low elsewhere,
    band 1 is a smooth gradient, band 2 is noise.
    """
    rng = np.random.RandomState(42)
    n_rows, n_cols = grid.shape
    stack = np.empty((3, n_rows, n_cols), dtype=np.float64)

    stack[0] = rng.normal(0.2, 0.05, grid.shape)
    for r0, c0 in PATCH_ORIGINS:
        stack[0, r0:r0 + 4, c0:c0 + 4] = rng.normal(0.8, 0.03, (4, 4))

    rows, cols = np.indices(grid.shape)
    stack[1] = (rows + cols) / (n_rows + n_cols)
    stack[2] = rng.normal(0.0, 1.0, grid.shape)
    return stack


@pytest.fixture
def patch_presences(grid) -> SampleSet:
    """One presence per cell of every habitat patch (64 samples)."""
    rows, cols = [], []
    for r0, c0 in PATCH_ORIGINS:
        rr, cc = np.meshgrid(np.arange(r0, r0 + 4), np.arange(c0, c0 + 4), indexing="ij")
        rows.append(rr.ravel())
        cols.append(cc.ravel())
    return SampleSet.from_cells(grid, np.concatenate(rows), np.concatenate(cols), label=PRESENCE)


# =============================================================================
# Trajectory Fixtures
# =============================================================================

@pytest.fixture
def feeding_trajectory(grid) -> Trajectory:
    """Animal that lingers 30 minutes in each patch and passes quickly between them.

    Fixes every 5 minutes. Inside a patch the animal stays in one cell for
    seven fixes; transit fixes move to a new cell every fix.
    """
    xs, ys, ts = [], [], []
    t = 0.0
    for r0, c0 in PATCH_ORIGINS:
        for dr in range(2):
            for dc in range(2):
                x, y = grid.coordinate_of(r0 + dr, c0 + dc)
                for _ in range(7):
                    xs.append(x + 1.0)
                    ys.append(y - 1.0)
                    ts.append(t)
                    t += 300.0
        # Quick transit along the diagonal of free cells
        for k in range(3):
            x, y = grid.coordinate_of(15 + k, 15 + k)
            xs.append(x)
            ys.append(y)
            ts.append(t)
            t += 300.0
    return Trajectory(x=np.array(xs), y=np.array(ys), t=np.array(ts))


# =============================================================================
# Config Fixtures
# =============================================================================

@pytest.fixture
def small_ml_config() -> MLConfig:
    """Fast config for testing (few trees, single core)."""
    return MLConfig(
        n_estimators=10,
        max_depth=3,
        min_samples_leaf=1,
        min_samples_split=2,
        random_state=42,
        n_jobs=1,
    )
