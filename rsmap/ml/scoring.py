"""
Per-fold confusion counts and pooled F1 scores.

F1 is computed from counts summed across all cross-validation folds, not
averaged per fold, so small regions are not over-weighted. A class with no
true positives, false positives or false negatives has an undefined (NaN)
F1; this is reported, never replaced with zero.
"""

import warnings
from typing import Sequence

import numpy as np
import pandas as pd

from rsmap.errors import UndefinedScore
from rsmap.samples import ABSENCE, CLASS_NAMES, PRESENCE

COUNT_COLUMNS = ["tp", "fp", "fn"]
CLASS_ORDER = [CLASS_NAMES[PRESENCE], CLASS_NAMES[ABSENCE]]


def fold_counts(y_true: np.ndarray, y_pred: np.ndarray) -> pd.DataFrame:
    """
    Confusion counts for both classes of one fold.

    Parameters
    ----------
    y_true : np.ndarray
        (N,) true labels (PRESENCE / ABSENCE).
    y_pred : np.ndarray
        (N,) predicted labels.

    Returns
    -------
    pd.DataFrame
        Indexed by class name ("presence", "absence") with integer columns
        tp, fp, fn. Each class is scored as the positive class in turn.
    """
    y_true = np.asarray(y_true)
    y_pred = np.asarray(y_pred)
    if y_true.shape != y_pred.shape:
        raise ValueError(f"Label shapes differ: {y_true.shape} vs {y_pred.shape}")

    rows = {}
    for label in (PRESENCE, ABSENCE):
        rows[CLASS_NAMES[label]] = {
            "tp": int(((y_true == label) & (y_pred == label)).sum()),
            "fp": int(((y_true != label) & (y_pred == label)).sum()),
            "fn": int(((y_true == label) & (y_pred != label)).sum()),
        }
    return pd.DataFrame.from_dict(rows, orient="index")[COUNT_COLUMNS].loc[CLASS_ORDER]


def _ratio(num: float, den: float) -> float:
    return num / den if den > 0 else np.nan


def f1_from_counts(tp: int, fp: int, fn: int) -> float:
    """F1 = 2TP / (2TP + FP + FN); NaN when the denominator is zero."""
    return _ratio(2 * tp, 2 * tp + fp + fn)


def pooled_f1_table(counts: Sequence[pd.DataFrame]) -> pd.DataFrame:
    """
    Pool fold counts and compute precision, recall and F1 per class.

    Parameters
    ----------
    counts : sequence of pd.DataFrame
        Outputs of ``fold_counts``.

    Returns
    -------
    pd.DataFrame
        Indexed by class name with columns tp, fp, fn, precision, recall, f1.
        Undefined values are NaN and trigger an UndefinedScore warning.
    """
    if len(counts) == 0:
        pooled = pd.DataFrame(0, index=CLASS_ORDER, columns=COUNT_COLUMNS)
    else:
        pooled = sum(c[COUNT_COLUMNS] for c in counts).loc[CLASS_ORDER]

    table = pooled.astype(np.int64).copy()
    table["precision"] = [_ratio(r.tp, r.tp + r.fp) for r in pooled.itertuples()]
    table["recall"] = [_ratio(r.tp, r.tp + r.fn) for r in pooled.itertuples()]
    table["f1"] = [f1_from_counts(r.tp, r.fp, r.fn) for r in pooled.itertuples()]

    undefined = table.index[table["f1"].isna()].tolist()
    if undefined:
        warnings.warn(
            f"Pooled F1 is undefined for {undefined}: no true positives, "
            f"false positives or false negatives across folds",
            UndefinedScore,
            stacklevel=2,
        )
    return table
