"""
Feature extraction from predictor stacks.

Predictor stacks are arrays shaped (bands, n_rows, n_cols) co-registered
with a Grid. A cell is valid when every band holds a finite value.
"""

import logging
from typing import Optional

import numpy as np

from rsmap.grid import Grid
from rsmap.samples import SampleSet

logger = logging.getLogger(__name__)


def check_stack(stack: np.ndarray, grid: Optional[Grid] = None) -> np.ndarray:
    """Validate a predictor stack, promoting a single band to 3D."""
    stack = np.asarray(stack)
    if stack.ndim == 2:
        stack = stack[np.newaxis]
    if stack.ndim != 3:
        raise ValueError(f"Predictor stack must have shape (bands, rows, cols), got {stack.shape}")
    if grid is not None and stack.shape[1:] != grid.shape:
        raise ValueError(
            f"Predictor stack shape {stack.shape[1:]} does not match grid shape {grid.shape}"
        )
    return stack


def valid_cell_mask(stack: np.ndarray) -> np.ndarray:
    """(n_rows, n_cols) mask of cells with finite values in every band."""
    stack = check_stack(stack)
    return np.isfinite(stack).all(axis=0)


def stack_to_matrix(stack: np.ndarray) -> np.ndarray:
    """Reshape a (bands, rows, cols) stack to a (rows * cols, bands) matrix."""
    stack = check_stack(stack)
    bands = stack.shape[0]
    return stack.reshape(bands, -1).T


def extract_features(stack: np.ndarray, samples: SampleSet) -> np.ndarray:
    """
    Pull the predictor vector of each sample's cell.

    Parameters
    ----------
    stack : np.ndarray
        (bands, n_rows, n_cols) predictor stack.
    samples : SampleSet
        Samples located on the stack's grid.

    Returns
    -------
    np.ndarray
        (N, bands) float64 feature matrix (NaN where the cell is invalid).
    """
    stack = check_stack(stack)
    if len(samples) == 0:
        return np.empty((0, stack.shape[0]), dtype=np.float64)
    return stack[:, samples.rows, samples.cols].T.astype(np.float64)


def drop_invalid(stack: np.ndarray, samples: SampleSet) -> SampleSet:
    """Return only the samples whose cells are valid in every band."""
    valid = valid_cell_mask(stack)[samples.rows, samples.cols]
    n_dropped = int((~valid).sum())
    if n_dropped:
        logger.warning(f"Dropping {n_dropped} sample(s) on cells with missing predictor values")
    return samples.subset(valid)
