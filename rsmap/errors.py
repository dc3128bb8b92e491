"""
Exceptions and warning categories for rsmap.

Structural problems (coordinates off the grid, malformed trajectories,
mismatched labels, too few regions) raise. Statistical degeneracies
(small background pools, undefined F1 scores) are reported as warnings
and the degenerate result is returned to the caller.
"""


class RSMError(Exception):
    """Base class for rsmap errors."""


class OutOfBounds(RSMError, ValueError):
    """Coordinate lies outside the grid extent."""


class InvalidTrajectory(RSMError, ValueError):
    """Trajectory timestamps are not non-decreasing, or the arrays disagree."""


class InsufficientRegions(RSMError, ValueError):
    """Spatial cross-validation needs at least two regions."""


class LabelMismatch(RSMError, ValueError):
    """Number of category labels differs from the categories in the reference layer."""


class DegenerateSampling(UserWarning):
    """Background pool was smaller than requested; a smaller set was returned."""


class UndefinedScore(RuntimeWarning):
    """A pooled F1 score is NaN because the class has no TP, FP or FN."""
