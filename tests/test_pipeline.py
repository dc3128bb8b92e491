"""Integration tests for the suitability pipeline (rsmap/pipeline.py)."""

import numpy as np
import pytest

from rsmap.config import RSMConfig
from rsmap.errors import InsufficientRegions, OutOfBounds
from rsmap.pipeline import PipelineResult, SuitabilityPipeline
from rsmap.samples import ABSENCE, PRESENCE
from rsmap.trajectory import Trajectory


@pytest.fixture
def pipeline(small_ml_config):
    return SuitabilityPipeline(RSMConfig(min_dwell=600.0, agg_radius=250.0), small_ml_config)


class TestSuitabilityPipeline:
    def test_run(self, pipeline, feeding_trajectory, habitat_stack, grid):
        result = pipeline.run(feeding_trajectory, habitat_stack, grid)

        assert isinstance(result, PipelineResult)
        assert len(result.presences) == 16
        assert result.n_regions == 4
        assert len(result.absences) == 16
        assert result.surface.n_folds == 4
        assert result.dwell.shape == grid.shape
        assert result.dwell.sum() == pytest.approx(16 * 1800.0)

    def test_labels(self, pipeline, feeding_trajectory, habitat_stack, grid):
        result = pipeline.run(feeding_trajectory, habitat_stack, grid)
        assert (result.presences.labels == PRESENCE).all()
        assert (result.absences.labels == ABSENCE).all()

    def test_absences_avoid_presence_cells(self, pipeline, feeding_trajectory, habitat_stack, grid):
        result = pipeline.run(feeding_trajectory, habitat_stack, grid)
        shared = np.intersect1d(result.presences.cell_ids(grid), result.absences.cell_ids(grid))
        assert len(shared) == 0

    def test_timing_recorded(self, pipeline, feeding_trajectory, habitat_stack, grid):
        result = pipeline.run(feeding_trajectory, habitat_stack, grid)
        for stage in ("reduce", "presences", "regions", "background", "train", "total"):
            assert result.timing[stage] >= 0.0

    def test_verbose_prints(self, pipeline, feeding_trajectory, habitat_stack, grid, capsys):
        pipeline.run(feeding_trajectory, habitat_stack, grid, verbose=True)
        out = capsys.readouterr().out
        assert "presence cells" in out
        assert "Pooled cross-validation scores" in out

    def test_large_radius_single_region(self, small_ml_config, feeding_trajectory, habitat_stack, grid):
        pipeline = SuitabilityPipeline(RSMConfig(agg_radius=1000.0), small_ml_config)
        with pytest.raises(InsufficientRegions):
            pipeline.run(feeding_trajectory, habitat_stack, grid)

    def test_outside_points(self, small_ml_config, feeding_trajectory, habitat_stack, grid):
        x = np.append(feeding_trajectory.x, 0.0)
        y = np.append(feeding_trajectory.y, 0.0)
        t = np.append(feeding_trajectory.t, feeding_trajectory.t[-1] + 300.0)
        trajectory = Trajectory(x=x, y=y, t=t)

        with pytest.raises(OutOfBounds):
            SuitabilityPipeline(RSMConfig(), small_ml_config).run(trajectory, habitat_stack, grid)

        result = SuitabilityPipeline(RSMConfig(on_outside="drop"), small_ml_config).run(
            trajectory, habitat_stack, grid
        )
        assert len(result.presences) == 16

    def test_stack_grid_mismatch(self, pipeline, feeding_trajectory, habitat_stack, grid):
        with pytest.raises(ValueError, match="does not match grid shape"):
            pipeline.run(feeding_trajectory, habitat_stack[:, :20, :], grid)


class TestPlausibility:
    def test_plausibility_from_result(self, pipeline, feeding_trajectory, habitat_stack, grid):
        result = pipeline.run(feeding_trajectory, habitat_stack, grid)

        reference = np.zeros(grid.shape, dtype=np.int64)
        reference[habitat_stack[0] > 0.5] = 1
        report = SuitabilityPipeline.plausibility(
            result, reference, ["open", "habitat"], thresholds=(0.25, 0.5)
        )

        assert list(report.counts.index) == ["p>=0.25", "p>=0.5"]
        # A lower threshold never selects fewer pixels
        assert report.counts.loc["p>=0.25"].sum() >= report.counts.loc["p>=0.5"].sum()
