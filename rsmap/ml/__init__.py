"""
Machine learning module for rsmap suitability mapping.

Key components:
- background: absence sampling (random or PCA feature-distance)
- features: predictor stack access and feature extraction
- train: leave-one-region-out cross-validation and suitability surfaces
- scoring: per-fold confusion counts and pooled F1
"""

from .config import MLConfig
from .background import BackgroundResult, sample_background
from .features import drop_invalid, extract_features, stack_to_matrix, valid_cell_mask
from .scoring import f1_from_counts, fold_counts, pooled_f1_table
from .train import (
    BinaryClassifier,
    FoldResult,
    SuitabilitySurface,
    build_classifier,
    predict_surface,
    train_suitability,
)

__all__ = [
    "MLConfig",
    # Background sampling
    "BackgroundResult",
    "sample_background",
    # Features
    "drop_invalid",
    "extract_features",
    "stack_to_matrix",
    "valid_cell_mask",
    # Scoring
    "f1_from_counts",
    "fold_counts",
    "pooled_f1_table",
    # Training
    "BinaryClassifier",
    "FoldResult",
    "SuitabilitySurface",
    "build_classifier",
    "predict_surface",
    "train_suitability",
]
