"""
Plausibility testing of suitability masks against a categorical layer.

Cross-tabulates the selected pixels of each binary mask against the
categories of an independent reference raster (e.g. land cover), as
absolute counts and as per-mask shares.
"""

from dataclasses import dataclass
from typing import Optional, Sequence, Union

import numpy as np
import pandas as pd

from rsmap.errors import LabelMismatch


@dataclass
class PlausibilityReport:
    """Counts of selected pixels per mask and reference category.

    Attributes
    ----------
    counts : pd.DataFrame
        Rows are masks, columns are category labels, values are pixel counts.
    relative : pd.DataFrame
        ``counts`` normalized so each mask's row sums to 1 (NaN for an
        empty mask).
    categories : np.ndarray
        Category codes in column order.
    """

    counts: pd.DataFrame
    relative: pd.DataFrame
    categories: np.ndarray

    def to_long(self) -> pd.DataFrame:
        """Long-form table (mask, category, count, share) for plotting."""
        counts = self.counts.rename_axis("mask").reset_index().melt(
            id_vars="mask", var_name="category", value_name="count"
        )
        shares = self.relative.rename_axis("mask").reset_index().melt(
            id_vars="mask", var_name="category", value_name="share"
        )
        return counts.merge(shares, on=["mask", "category"])


def _as_mask_stack(masks) -> np.ndarray:
    if isinstance(masks, np.ndarray):
        stack = masks
    else:
        stack = np.stack([np.asarray(m) for m in masks])
    if stack.ndim == 2:
        stack = stack[np.newaxis]
    if stack.ndim != 3:
        raise ValueError(f"Masks must have shape (n_masks, rows, cols), got {stack.shape}")
    return stack


def plausibility_test(
    masks: Union[np.ndarray, Sequence[np.ndarray]],
    reference: np.ndarray,
    labels: Sequence[str],
    mask_names: Optional[Sequence[str]] = None,
    nodata: Optional[int] = None,
) -> PlausibilityReport:
    """
    Count masked pixels per reference category.

    Parameters
    ----------
    masks : np.ndarray or sequence of np.ndarray
        (n_masks, rows, cols) binary masks; a pixel is selected where the
        mask equals 1.
    reference : np.ndarray
        (rows, cols) integer category raster.
    labels : sequence of str
        One label per distinct category, in ascending code order.
    mask_names : sequence of str, optional
        Row names; defaults to "mask_0", "mask_1", ...
    nodata : int, optional
        Reference code to ignore (excluded from categories and counts).

    Returns
    -------
    PlausibilityReport

    Raises
    ------
    LabelMismatch
        If ``len(labels)`` differs from the number of distinct categories.
    """
    stack = _as_mask_stack(masks)
    reference = np.asarray(reference)
    if stack.shape[1:] != reference.shape:
        raise ValueError(
            f"Mask shape {stack.shape[1:]} does not match reference shape {reference.shape}"
        )

    valid = np.ones(reference.shape, dtype=bool)
    if np.issubdtype(reference.dtype, np.floating):
        valid &= np.isfinite(reference)
    if nodata is not None:
        valid &= reference != nodata

    categories = np.unique(reference[valid])
    labels = list(labels)
    if len(labels) != len(categories):
        raise LabelMismatch(
            f"Got {len(labels)} labels for {len(categories)} categories "
            f"in the reference layer: {categories.tolist()}"
        )

    if mask_names is None:
        mask_names = [f"mask_{i}" for i in range(len(stack))]
    elif len(mask_names) != len(stack):
        raise ValueError(f"Got {len(mask_names)} mask names for {len(stack)} masks")

    table = np.zeros((len(stack), len(categories)), dtype=np.int64)
    for i, mask in enumerate(stack):
        codes = reference[(mask == 1) & valid]
        table[i] = np.bincount(np.searchsorted(categories, codes), minlength=len(categories))

    counts = pd.DataFrame(table, index=list(mask_names), columns=labels)
    totals = counts.sum(axis=1).replace(0, np.nan)
    relative = counts.div(totals, axis=0)

    return PlausibilityReport(counts=counts, relative=relative, categories=categories)
