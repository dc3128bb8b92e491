"""
Suitability model training with leave-one-region-out cross-validation.

Each region of presence samples is held out in turn. A class-balanced set
of absences is held out with it, a fresh classifier is trained on the rest,
and the held-out confusion counts are pooled across folds into one F1
table per class. The probability surface is either the mean of the fold
models' predictions over the grid or the prediction of a model refit on
all samples.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Protocol, Tuple, Union, runtime_checkable

import joblib
import numpy as np
import pandas as pd
from joblib import Parallel, delayed
from sklearn.ensemble import RandomForestClassifier
from tqdm import tqdm

from rsmap.errors import InsufficientRegions
from rsmap.ml.config import MLConfig
from rsmap.ml.features import check_stack, stack_to_matrix, valid_cell_mask
from rsmap.ml.scoring import fold_counts, pooled_f1_table
from rsmap.samples import ABSENCE, PRESENCE

logger = logging.getLogger(__name__)


@runtime_checkable
class BinaryClassifier(Protocol):
    """Anything that can be fit on features/labels and return class probabilities."""

    def fit(self, X: np.ndarray, y: np.ndarray) -> Any:
        ...

    def predict_proba(self, X: np.ndarray) -> np.ndarray:
        ...


ClassifierFactory = Callable[[], BinaryClassifier]


def build_classifier(config: Optional[MLConfig] = None) -> RandomForestClassifier:
    """Random Forest configured from ``config``."""
    config = config or MLConfig()
    return RandomForestClassifier(
        n_estimators=config.n_estimators,
        max_depth=config.max_depth,
        min_samples_leaf=config.min_samples_leaf,
        min_samples_split=config.min_samples_split,
        class_weight=config.class_weight,
        random_state=config.random_state,
        n_jobs=config.n_jobs,
    )


def presence_probability(model: BinaryClassifier, X: np.ndarray) -> np.ndarray:
    """Probability of the presence class for each row of ``X``."""
    proba = np.asarray(model.predict_proba(X))
    if proba.ndim == 1:
        return proba
    classes = getattr(model, "classes_", None)
    column = list(classes).index(PRESENCE) if classes is not None else 1
    return proba[:, column]


@dataclass
class FoldResult:
    """One leave-one-region-out iteration.

    Attributes
    ----------
    region : int
        Region held out for validation.
    model : BinaryClassifier
        Classifier trained without that region.
    n_train_presence, n_train_absence : int
        Training set sizes.
    val_labels : np.ndarray
        True labels of the validation samples (presences first).
    val_proba : np.ndarray
        Predicted presence probability of the validation samples.
    counts : pd.DataFrame
        TP/FP/FN per class for this fold (see ``fold_counts``).
    """

    region: int
    model: Any
    n_train_presence: int
    n_train_absence: int
    val_labels: np.ndarray
    val_proba: np.ndarray
    counts: pd.DataFrame

    @property
    def n_val(self) -> int:
        return len(self.val_labels)


@dataclass
class SuitabilitySurface:
    """Probability surface and pooled cross-validation scores.

    Attributes
    ----------
    probability : np.ndarray
        (n_rows, n_cols) presence probability, NaN on invalid cells.
    scores : pd.DataFrame
        Pooled F1 table (rows: presence, absence).
    folds : list of FoldResult
        Per-region results, in region order.
    surface_mode : str
        "mean" or "refit".
    model : BinaryClassifier, optional
        Final model trained on all samples ("refit" mode only).
    train_metadata : dict
        Sample counts and training date.
    """

    probability: np.ndarray
    scores: pd.DataFrame
    folds: List[FoldResult]
    surface_mode: str
    model: Optional[Any] = None
    train_metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def n_folds(self) -> int:
        return len(self.folds)

    def to_mask(self, threshold: float = 0.5) -> np.ndarray:
        """Binary mask (uint8) of cells with probability >= threshold."""
        with np.errstate(invalid="ignore"):
            return (self.probability >= threshold).astype(np.uint8)

    def save(self, path: Union[str, Path]) -> None:
        """Save the surface with joblib plus a JSON metadata sidecar.

        Parameters
        ----------
        path : str or Path
            Output path (will save as .joblib).
        """
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        joblib.dump(self, path)
        logger.info(f"Suitability surface saved to {path}")

        metadata_path = path.with_suffix(".json")
        metadata = {
            "surface_mode": self.surface_mode,
            "shape": list(self.probability.shape),
            "n_folds": self.n_folds,
            "regions": [f.region for f in self.folds],
            "scores": {
                cls: {k: (None if pd.isna(v) else float(v)) for k, v in row.items()}
                for cls, row in self.scores.to_dict(orient="index").items()
            },
            "train_metadata": {
                k: str(v) if isinstance(v, (datetime, pd.Timestamp)) else v
                for k, v in self.train_metadata.items()
            },
        }
        with open(metadata_path, "w") as f:
            json.dump(metadata, f, indent=2, default=str)
        logger.info(f"Metadata saved to {metadata_path}")

    @classmethod
    def load(cls, path: Union[str, Path]) -> "SuitabilitySurface":
        """Load a surface saved with ``save``."""
        return joblib.load(path)


def predict_surface(
    model: BinaryClassifier,
    stack: np.ndarray,
    batch_size: int = 500_000,
) -> np.ndarray:
    """
    Predict presence probability over every valid cell of a stack.

    Parameters
    ----------
    model : BinaryClassifier
        Fitted classifier.
    stack : np.ndarray
        (bands, n_rows, n_cols) predictor stack.
    batch_size : int
        Cells per predict call.

    Returns
    -------
    np.ndarray
        (n_rows, n_cols) float64 probabilities, NaN on invalid cells.
    """
    stack = check_stack(stack)
    _, n_rows, n_cols = stack.shape
    flat = stack_to_matrix(stack)
    valid_idx = np.flatnonzero(valid_cell_mask(stack).ravel())

    surface = np.full(n_rows * n_cols, np.nan, dtype=np.float64)
    for start in range(0, len(valid_idx), batch_size):
        sel = valid_idx[start:start + batch_size]
        surface[sel] = presence_probability(model, flat[sel])
    return surface.reshape(n_rows, n_cols)


def _check_features(name: str, X: np.ndarray, n_bands: int) -> np.ndarray:
    X = np.asarray(X, dtype=np.float64)
    if X.ndim != 2 or X.shape[1] != n_bands:
        raise ValueError(f"{name} must have shape (N, {n_bands}), got {X.shape}")
    if not np.isfinite(X).all():
        raise ValueError(f"{name} contains non-finite values")
    return X


def _run_fold(
    region: int,
    presence_X: np.ndarray,
    absence_X: np.ndarray,
    presence_regions: np.ndarray,
    seed: int,
    classifier_factory: ClassifierFactory,
    threshold: float,
    stack: Optional[np.ndarray],
    batch_size: int,
) -> Tuple[FoldResult, Optional[np.ndarray]]:
    """Train and validate one fold; optionally predict the fold model over the grid."""
    rng = np.random.RandomState(seed)

    held_out = presence_regions == region
    val_pres = presence_X[held_out]
    train_pres = presence_X[~held_out]

    # Match validation absences to validation presences, keeping at least one for training
    n_val_abs = min(len(val_pres), len(absence_X) - 1)
    order = rng.permutation(len(absence_X))
    val_abs = absence_X[order[:n_val_abs]]
    train_abs = absence_X[order[n_val_abs:]]

    X_train = np.vstack([train_pres, train_abs])
    y_train = np.concatenate([
        np.full(len(train_pres), PRESENCE, dtype=np.int8),
        np.full(len(train_abs), ABSENCE, dtype=np.int8),
    ])
    X_val = np.vstack([val_pres, val_abs])
    y_val = np.concatenate([
        np.full(len(val_pres), PRESENCE, dtype=np.int8),
        np.full(len(val_abs), ABSENCE, dtype=np.int8),
    ])

    model = classifier_factory()
    model.fit(X_train, y_train)

    val_proba = presence_probability(model, X_val)
    y_pred = np.where(val_proba >= threshold, PRESENCE, ABSENCE)

    result = FoldResult(
        region=int(region),
        model=model,
        n_train_presence=len(train_pres),
        n_train_absence=len(train_abs),
        val_labels=y_val,
        val_proba=val_proba,
        counts=fold_counts(y_val, y_pred),
    )
    surface = predict_surface(model, stack, batch_size) if stack is not None else None
    return result, surface


def train_suitability(
    presence_X: np.ndarray,
    absence_X: np.ndarray,
    presence_regions: np.ndarray,
    stack: np.ndarray,
    config: Optional[MLConfig] = None,
    classifier_factory: Optional[ClassifierFactory] = None,
    verbose: bool = False,
) -> SuitabilitySurface:
    """
    Spatially cross-validate a presence/absence classifier and map suitability.

    Parameters
    ----------
    presence_X : np.ndarray
        (P, bands) presence feature vectors.
    absence_X : np.ndarray
        (A, bands) absence feature vectors.
    presence_regions : np.ndarray
        (P,) region id of each presence.
    stack : np.ndarray
        (bands, n_rows, n_cols) predictor stack for the final surface.
    config : MLConfig, optional
        Training configuration.
    classifier_factory : callable, optional
        Returns a fresh, unfitted classifier. Defaults to a Random Forest
        built from ``config``.
    verbose : bool
        Print per-fold progress.

    Returns
    -------
    SuitabilitySurface
        Probability raster, pooled F1 table and fold results.

    Raises
    ------
    InsufficientRegions
        If the presences span fewer than two regions.
    """
    config = config or MLConfig()
    if classifier_factory is None:
        def classifier_factory():
            return build_classifier(config)

    stack = check_stack(stack)
    n_bands = stack.shape[0]
    presence_X = _check_features("presence_X", presence_X, n_bands)
    absence_X = _check_features("absence_X", absence_X, n_bands)
    presence_regions = np.asarray(presence_regions)
    if len(presence_regions) != len(presence_X):
        raise ValueError(
            f"Got {len(presence_regions)} region ids for {len(presence_X)} presences"
        )

    regions = np.unique(presence_regions)
    if len(regions) < 2:
        raise InsufficientRegions(
            f"Spatial cross-validation needs at least 2 regions, got {len(regions)}"
        )
    if len(absence_X) < 2:
        raise ValueError(f"Need at least 2 absence samples, got {len(absence_X)}")

    rng = np.random.RandomState(config.random_state)
    seeds = rng.randint(0, 2**31 - 1, size=len(regions))
    predict_folds = config.surface_mode == "mean"

    if verbose:
        print(
            f"Leave-one-region-out CV: {len(regions)} regions, "
            f"{len(presence_X)} presences, {len(absence_X)} absences"
        )
    logger.info(f"Running {len(regions)} folds (cv_n_jobs={config.cv_n_jobs})")

    outputs = Parallel(n_jobs=config.cv_n_jobs)(
        delayed(_run_fold)(
            region,
            presence_X,
            absence_X,
            presence_regions,
            int(seed),
            classifier_factory,
            config.threshold,
            stack if predict_folds else None,
            config.batch_size,
        )
        for region, seed in tqdm(
            zip(regions, seeds), total=len(regions), desc="Folds", disable=not verbose
        )
    )
    folds = [fold for fold, _ in outputs]

    if verbose:
        for i, fold in enumerate(folds):
            c = fold.counts
            print(
                f"  Fold {i + 1} (region {fold.region}): "
                f"presence TP={c.at['presence', 'tp']} FN={c.at['presence', 'fn']}, "
                f"absence TP={c.at['absence', 'tp']} FN={c.at['absence', 'fn']}"
            )

    scores = pooled_f1_table([fold.counts for fold in folds])

    final_model = None
    if predict_folds:
        probability = np.mean(np.stack([surface for _, surface in outputs]), axis=0)
    else:
        if verbose:
            print("Training final model on all samples...")
        final_model = classifier_factory()
        final_model.fit(
            np.vstack([presence_X, absence_X]),
            np.concatenate([
                np.full(len(presence_X), PRESENCE, dtype=np.int8),
                np.full(len(absence_X), ABSENCE, dtype=np.int8),
            ]),
        )
        probability = predict_surface(final_model, stack, config.batch_size)

    if verbose:
        print("\nPooled cross-validation scores:")
        print(scores.to_string(float_format=lambda v: f"{v:.3f}"))

    return SuitabilitySurface(
        probability=probability,
        scores=scores,
        folds=folds,
        surface_mode=config.surface_mode,
        model=final_model,
        train_metadata={
            "train_date": datetime.now(),
            "n_presence": len(presence_X),
            "n_absence": len(absence_X),
            "n_regions": len(regions),
            "n_features": n_bands,
        },
    )
