"""
Configuration for suitability model training.
"""

from dataclasses import dataclass
from typing import Optional

SURFACE_MODES = ("mean", "refit")


@dataclass
class MLConfig:
    """Configuration for the classifier and spatial cross-validation.

    Model Hyperparameters
    ---------------------
    n_estimators : int
        Number of trees in Random Forest.
    max_depth : int or None
        Maximum tree depth.
    min_samples_leaf : int
        Minimum samples per leaf.
    min_samples_split : int
        Minimum samples to split an internal node.
    class_weight : str
        How to handle class imbalance.
    random_state : int
        Random seed for reproducibility (classifier and absence splits).
    n_jobs : int
        Cores used by each Random Forest.

    Cross-validation
    ----------------
    threshold : float
        Probability at or above which a cell is predicted as presence.
    surface_mode : str
        "mean" averages the fold models' predictions over the grid;
        "refit" trains one final model on all samples.
    cv_n_jobs : int
        Folds run in parallel (joblib). 1 runs them sequentially.
    batch_size : int
        Grid cells per prediction batch.
    """

    # Model hyperparameters
    n_estimators: int = 100
    max_depth: Optional[int] = None
    min_samples_leaf: int = 5
    min_samples_split: int = 10
    class_weight: str = "balanced"
    random_state: int = 42
    n_jobs: int = -1  # Use all cores

    # Cross-validation and prediction
    threshold: float = 0.5
    surface_mode: str = "mean"
    cv_n_jobs: int = 1
    batch_size: int = 500_000

    def __post_init__(self):
        """Check choices and ranges."""
        if self.surface_mode not in SURFACE_MODES:
            raise ValueError(
                f"surface_mode must be one of {SURFACE_MODES}, got {self.surface_mode!r}"
            )
        if not 0.0 <= self.threshold <= 1.0:
            raise ValueError(f"threshold must be in [0, 1], got {self.threshold}")
