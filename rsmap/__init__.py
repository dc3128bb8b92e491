"""
rsmap: Resource Suitability Mapping from animal tracking data.

Turns GPS trajectories and a stack of environmental rasters into a
spatially cross-validated probability surface of where conditions match
the locations an animal used for a behavior such as feeding.
"""

__version__ = "0.1.0"

# Import public API
from rsmap.config import RSMConfig, load_config, save_config
from rsmap.errors import (
    DegenerateSampling,
    InsufficientRegions,
    InvalidTrajectory,
    LabelMismatch,
    OutOfBounds,
    UndefinedScore,
)
from rsmap.grid import Grid
from rsmap.samples import ABSENCE, PRESENCE, SampleSet
from rsmap.trajectory import (
    Trajectory,
    VisitRecord,
    dwell_time_surface,
    reduce_trajectory,
    select_presences,
)
from rsmap.labeling import assign_regions, label_regions
from rsmap.ml import MLConfig, SuitabilitySurface, sample_background, train_suitability
from rsmap.reporting import PlausibilityReport, plausibility_test
from rsmap.pipeline import PipelineResult, SuitabilityPipeline

__all__ = [
    "__version__",
    # Config
    "RSMConfig",
    "MLConfig",
    "load_config",
    "save_config",
    # Errors
    "DegenerateSampling",
    "InsufficientRegions",
    "InvalidTrajectory",
    "LabelMismatch",
    "OutOfBounds",
    "UndefinedScore",
    # Grid and samples
    "Grid",
    "SampleSet",
    "PRESENCE",
    "ABSENCE",
    # Trajectory
    "Trajectory",
    "VisitRecord",
    "reduce_trajectory",
    "dwell_time_surface",
    "select_presences",
    # Regions
    "label_regions",
    "assign_regions",
    # Modeling
    "sample_background",
    "train_suitability",
    "SuitabilitySurface",
    # Plausibility
    "PlausibilityReport",
    "plausibility_test",
    # Pipeline
    "SuitabilityPipeline",
    "PipelineResult",
]
