"""
Trajectory reduction for rsmap.

Collapses a time-ordered GPS trajectory into per-cell visit records with
dwell time, sums dwell time per cell into a raster, and selects presence
samples from cells where the animal stayed long enough.
"""

import logging
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np
import pandas as pd

from rsmap.errors import InvalidTrajectory
from rsmap.grid import Grid
from rsmap.samples import PRESENCE, SampleSet

logger = logging.getLogger(__name__)


def _to_seconds(t) -> np.ndarray:
    """Convert numeric or datetime-like timestamps to float seconds."""
    if isinstance(t, (pd.Series, pd.Index)) and pd.api.types.is_datetime64_any_dtype(t):
        tz = getattr(t.dt, "tz", None) if isinstance(t, pd.Series) else t.tz
        epoch = pd.Timestamp("1970-01-01", tz=tz)
        return np.asarray((t - epoch) / pd.Timedelta(seconds=1), dtype=np.float64)

    t = np.asarray(t)
    if np.issubdtype(t.dtype, np.datetime64):
        if np.isnat(t).any():
            raise InvalidTrajectory("Trajectory contains missing timestamps (NaT)")
        return t.astype("datetime64[ns]").astype(np.int64) / 1e9
    return t.astype(np.float64)


@dataclass
class Trajectory:
    """Ordered sequence of timestamped positions for one tracked individual.

    Parameters
    ----------
    x, y : np.ndarray
        (N,) coordinates in the grid's reference system.
    t : np.ndarray
        (N,) timestamps. Datetime values are converted to seconds since
        the Unix epoch; numeric values are taken as seconds.
    individual_id : str, optional
        Identifier of the tracked animal.

    Raises
    ------
    InvalidTrajectory
        If the arrays differ in length or timestamps decrease.
    """

    x: np.ndarray
    y: np.ndarray
    t: np.ndarray
    individual_id: Optional[str] = None

    def __post_init__(self):
        self.x = np.asarray(self.x, dtype=np.float64)
        self.y = np.asarray(self.y, dtype=np.float64)
        self.t = _to_seconds(self.t)

        if not (len(self.x) == len(self.y) == len(self.t)):
            raise InvalidTrajectory(
                f"Coordinate and time arrays differ in length: "
                f"x={len(self.x)}, y={len(self.y)}, t={len(self.t)}"
            )
        if not np.isfinite(self.t).all():
            raise InvalidTrajectory("Trajectory contains non-finite timestamps")
        backwards = np.flatnonzero(np.diff(self.t) < 0)
        if len(backwards) > 0:
            i = int(backwards[0])
            raise InvalidTrajectory(
                f"Timestamps must be non-decreasing: t[{i + 1}]={self.t[i + 1]} "
                f"< t[{i}]={self.t[i]} ({len(backwards)} decreasing step(s))"
            )

    @classmethod
    def from_dataframe(
        cls,
        df: pd.DataFrame,
        x_col: str = "x",
        y_col: str = "y",
        time_col: str = "timestamp",
        individual_id: Optional[str] = None,
    ) -> "Trajectory":
        """Build a trajectory from a DataFrame with coordinate and time columns."""
        missing = [c for c in (x_col, y_col, time_col) if c not in df.columns]
        if missing:
            raise ValueError(f"Trajectory DataFrame is missing columns: {missing}")
        times = df[time_col]
        if not pd.api.types.is_numeric_dtype(times):
            times = pd.to_datetime(times)
        return cls(
            x=df[x_col].to_numpy(),
            y=df[y_col].to_numpy(),
            t=_to_seconds(times),
            individual_id=individual_id,
        )

    def __len__(self) -> int:
        return len(self.t)


@dataclass(frozen=True)
class VisitRecord:
    """One maximal run of consecutive trajectory points in the same cell.

    Attributes
    ----------
    cell : tuple of int
        (row, col) of the visited cell.
    entry_time : float
        Timestamp (s) of the first point of the run.
    exit_time : float
        Timestamp (s) of the last point of the run.
    dwell : float
        exit_time - entry_time, in seconds.
    x, y : float
        Representative coordinate (cell center).
    n_points : int
        Number of trajectory points in the run.
    """

    cell: Tuple[int, int]
    entry_time: float
    exit_time: float
    dwell: float
    x: float
    y: float
    n_points: int


def reduce_trajectory(
    trajectory: Trajectory,
    grid: Grid,
    on_outside: str = "raise",
) -> List[VisitRecord]:
    """
    Collapse a trajectory into per-cell visit records.

    Consecutive points falling in the same cell extend the current visit;
    a change of cell closes it. Time gaps never split a run on their own.

    Parameters
    ----------
    trajectory : Trajectory
        Time-ordered positions.
    grid : Grid
        Reference grid (normally the predictor stack's grid).
    on_outside : str
        "raise" to fail on points outside the grid, "drop" to skip them.
        Dropped points still end the visit in progress.

    Returns
    -------
    list of VisitRecord
        One record per run, in temporal order.

    Raises
    ------
    OutOfBounds
        If ``on_outside="raise"`` and a point is outside the grid.
    """
    if on_outside not in ("raise", "drop"):
        raise ValueError(f"on_outside must be 'raise' or 'drop', got {on_outside!r}")

    n = len(trajectory)
    if n == 0:
        return []

    rows, cols, inside = grid.cells_of(
        trajectory.x, trajectory.y, strict=(on_outside == "raise")
    )
    if not inside.all():
        logger.warning(f"Dropping {int((~inside).sum())} trajectory point(s) outside the grid")

    key = np.where(inside, rows * grid.n_cols + cols, -1)
    starts = np.flatnonzero(np.r_[True, key[1:] != key[:-1]])
    ends = np.r_[starts[1:] - 1, n - 1]

    t = trajectory.t
    visits = []
    for start, end in zip(starts, ends):
        if key[start] < 0:
            continue
        row, col = int(rows[start]), int(cols[start])
        cx, cy = grid.coordinate_of(row, col)
        visits.append(VisitRecord(
            cell=(row, col),
            entry_time=float(t[start]),
            exit_time=float(t[end]),
            dwell=float(t[end] - t[start]),
            x=cx,
            y=cy,
            n_points=int(end - start + 1),
        ))

    logger.info(f"Reduced {n} trajectory points to {len(visits)} visits")
    return visits


def visits_to_frame(visits: List[VisitRecord]) -> pd.DataFrame:
    """Tabulate visit records (one row per visit)."""
    return pd.DataFrame(
        {
            "row": [v.cell[0] for v in visits],
            "col": [v.cell[1] for v in visits],
            "entry_time": [v.entry_time for v in visits],
            "exit_time": [v.exit_time for v in visits],
            "dwell": [v.dwell for v in visits],
            "x": [v.x for v in visits],
            "y": [v.y for v in visits],
            "n_points": [v.n_points for v in visits],
        },
        columns=["row", "col", "entry_time", "exit_time", "dwell", "x", "y", "n_points"],
    )


def dwell_time_surface(visits: List[VisitRecord], grid: Grid) -> np.ndarray:
    """
    Sum dwell time per cell across all visits.

    Returns
    -------
    np.ndarray
        (n_rows, n_cols) float64 raster of total dwell seconds (0 where unvisited).
    """
    surface = np.zeros(grid.shape, dtype=np.float64)
    if not visits:
        return surface
    rows = np.array([v.cell[0] for v in visits], dtype=np.int64)
    cols = np.array([v.cell[1] for v in visits], dtype=np.int64)
    dwell = np.array([v.dwell for v in visits], dtype=np.float64)
    np.add.at(surface, (rows, cols), dwell)
    return surface


def select_presences(
    visits: List[VisitRecord],
    grid: Grid,
    min_dwell: float = 0.0,
) -> SampleSet:
    """
    Select presence samples from cells with enough total dwell time.

    Dwell is summed over every visit to a cell; one presence sample is
    produced per qualifying cell, in order of first visit.

    Parameters
    ----------
    visits : list of VisitRecord
        Output of ``reduce_trajectory``.
    grid : Grid
        Grid the visits refer to.
    min_dwell : float
        Minimum summed dwell (seconds) for a cell to count as used.

    Returns
    -------
    SampleSet
        Presence samples at cell centers.
    """
    if not visits:
        return SampleSet.empty()

    df = visits_to_frame(visits)
    per_cell = df.groupby(["row", "col"], sort=False).agg(
        total_dwell=("dwell", "sum"),
    ).reset_index()
    per_cell = per_cell[per_cell["total_dwell"] >= min_dwell]

    logger.info(
        f"Selected {len(per_cell)} presence cells with dwell >= {min_dwell}s "
        f"out of {df.groupby(['row', 'col']).ngroups} visited"
    )
    return SampleSet.from_cells(
        grid,
        per_cell["row"].to_numpy(),
        per_cell["col"].to_numpy(),
        label=PRESENCE,
    )
