"""
Suitability pipeline - chains the rsmap stages for one trajectory.

trajectory -> visits -> presences -> regions -> background -> features
-> spatial cross-validation -> suitability surface -> plausibility.
"""

import logging
import time
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

import numpy as np

from rsmap.config import RSMConfig
from rsmap.grid import Grid
from rsmap.labeling import assign_regions
from rsmap.ml.background import BackgroundResult, sample_background
from rsmap.ml.config import MLConfig
from rsmap.ml.features import check_stack, drop_invalid, extract_features
from rsmap.ml.train import ClassifierFactory, SuitabilitySurface, train_suitability
from rsmap.reporting.plausibility import PlausibilityReport, plausibility_test
from rsmap.samples import SampleSet
from rsmap.trajectory import Trajectory, VisitRecord, dwell_time_surface, reduce_trajectory, select_presences

logger = logging.getLogger(__name__)


@dataclass
class PipelineResult:
    """Container for pipeline outputs.

    Attributes
    ----------
    visits : list of VisitRecord
        Per-cell visits from trajectory reduction.
    dwell : np.ndarray
        (n_rows, n_cols) summed dwell seconds per cell.
    presences : SampleSet
        Presence samples with region ids.
    background : BackgroundResult
        Absence samples and sampling diagnostics.
    surface : SuitabilitySurface
        Probability surface and pooled F1 table.
    timing : dict
        Seconds spent per stage.
    """

    visits: List[VisitRecord]
    dwell: np.ndarray
    presences: SampleSet
    background: BackgroundResult
    surface: SuitabilitySurface
    timing: Dict[str, float] = field(default_factory=dict)

    @property
    def absences(self) -> SampleSet:
        return self.background.absences

    @property
    def n_regions(self) -> int:
        return len(np.unique(self.presences.regions))


class SuitabilityPipeline:
    """Run the full suitability workflow for one tracked individual.

    Parameters
    ----------
    config : RSMConfig, optional
        Pipeline parameters. Uses defaults if not provided.
    ml_config : MLConfig, optional
        Classifier and cross-validation parameters.

    Examples
    --------
    >>> from rsmap import Grid, SuitabilityPipeline, Trajectory
    >>> pipeline = SuitabilityPipeline()
    >>> result = pipeline.run(trajectory, stack, grid)
    >>> result.surface.scores
    """

    def __init__(self, config: Optional[RSMConfig] = None, ml_config: Optional[MLConfig] = None):
        self.config = config or RSMConfig()
        self.ml_config = ml_config or MLConfig()

    def run(
        self,
        trajectory: Trajectory,
        stack: np.ndarray,
        grid: Grid,
        classifier_factory: Optional[ClassifierFactory] = None,
        verbose: bool = False,
    ) -> PipelineResult:
        """
        Run trajectory reduction through suitability mapping.

        Parameters
        ----------
        trajectory : Trajectory
            GPS fixes of one individual.
        stack : np.ndarray
            (bands, n_rows, n_cols) predictor stack on ``grid``.
        grid : Grid
            Grid shared by every stage.
        classifier_factory : callable, optional
            Returns a fresh classifier per fold; defaults to a Random Forest.
        verbose : bool
            Print progress information.

        Returns
        -------
        PipelineResult
        """
        cfg = self.config
        stack = check_stack(stack, grid)
        timing = {}
        total_start = time.time()

        # Step 1: Reduce trajectory to visits
        t0 = time.time()
        if verbose:
            print(f"Reducing {len(trajectory):,} fixes...")
        visits = reduce_trajectory(trajectory, grid, on_outside=cfg.on_outside)
        dwell = dwell_time_surface(visits, grid)
        timing["reduce"] = time.time() - t0

        # Step 2: Presences from long stays on valid cells
        t0 = time.time()
        presences = select_presences(visits, grid, min_dwell=cfg.min_dwell)
        presences = drop_invalid(stack, presences)
        if verbose:
            print(f"  {len(visits)} visits, {len(presences)} presence cells")
        timing["presences"] = time.time() - t0

        # Step 3: Regions
        t0 = time.time()
        presences = assign_regions(presences, cfg.agg_radius)
        if verbose:
            print(f"  {len(np.unique(presences.regions))} regions (radius={cfg.agg_radius})")
        timing["regions"] = time.time() - t0

        # Step 4: Background
        t0 = time.time()
        background = sample_background(
            presences,
            stack,
            grid,
            method=cfg.background_method,
            absence_ratio=cfg.absence_ratio,
            pca_variance=cfg.pca_variance,
            min_separation=cfg.min_separation,
            max_distance_quantile=cfg.max_distance_quantile,
            random_state=cfg.random_state,
        )
        if verbose:
            print(f"  {len(background.absences)} absences ({cfg.background_method})")
        timing["background"] = time.time() - t0

        # Step 5: Train and map
        t0 = time.time()
        surface = train_suitability(
            extract_features(stack, presences),
            extract_features(stack, background.absences),
            presences.regions,
            stack,
            config=self.ml_config,
            classifier_factory=classifier_factory,
            verbose=verbose,
        )
        timing["train"] = time.time() - t0

        timing["total"] = time.time() - total_start
        logger.info(f"Pipeline finished in {timing['total']:.2f}s")
        if verbose:
            print(f"Done in {timing['total']:.2f}s")

        return PipelineResult(
            visits=visits,
            dwell=dwell,
            presences=presences,
            background=background,
            surface=surface,
            timing=timing,
        )

    @staticmethod
    def plausibility(
        result: PipelineResult,
        reference: np.ndarray,
        labels: Sequence[str],
        thresholds: Sequence[float] = (0.5,),
        nodata: Optional[int] = None,
    ) -> PlausibilityReport:
        """Compare thresholded suitability masks with a categorical reference layer."""
        masks = np.stack([result.surface.to_mask(t) for t in thresholds])
        names = [f"p>={t:g}" for t in thresholds]
        return plausibility_test(masks, reference, labels, mask_names=names, nodata=nodata)
