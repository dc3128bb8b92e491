"""
Presence/absence sample containers.

A SampleSet holds parallel arrays describing samples on the grid: their
coordinates, cell indices, class label and (once labeled) region id.
Stages never modify a SampleSet in place; they return new ones.
"""

from dataclasses import dataclass, replace
from typing import Optional, Sequence

import numpy as np
import pandas as pd

PRESENCE = 1
ABSENCE = 0

CLASS_NAMES = {
    PRESENCE: "presence",
    ABSENCE: "absence",
}

# Region id for samples not assigned to any region
NO_REGION = -1


@dataclass(frozen=True)
class SampleSet:
    """Samples tagged with a class label and optional region id.

    Attributes
    ----------
    x, y : np.ndarray
        (N,) sample coordinates (cell centers).
    rows, cols : np.ndarray
        (N,) grid cell indices.
    labels : np.ndarray
        (N,) class labels, PRESENCE (1) or ABSENCE (0).
    regions : np.ndarray, optional
        (N,) region ids, None until the samples have been labeled.
    """

    x: np.ndarray
    y: np.ndarray
    rows: np.ndarray
    cols: np.ndarray
    labels: np.ndarray
    regions: Optional[np.ndarray] = None

    def __post_init__(self):
        n = len(self.x)
        for name in ("y", "rows", "cols", "labels"):
            if len(getattr(self, name)) != n:
                raise ValueError(
                    f"SampleSet arrays must have equal length: x has {n}, "
                    f"{name} has {len(getattr(self, name))}"
                )
        if self.regions is not None and len(self.regions) != n:
            raise ValueError(f"regions has {len(self.regions)} entries, expected {n}")

    @classmethod
    def from_cells(
        cls,
        grid,
        rows: np.ndarray,
        cols: np.ndarray,
        label: int,
        regions: Optional[np.ndarray] = None,
    ) -> "SampleSet":
        """Build samples at the centers of the given cells, all with one label."""
        rows = np.asarray(rows, dtype=np.int64)
        cols = np.asarray(cols, dtype=np.int64)
        x, y = grid.coordinates_of(rows, cols)
        return cls(
            x=x,
            y=y,
            rows=rows,
            cols=cols,
            labels=np.full(len(rows), label, dtype=np.int8),
            regions=None if regions is None else np.asarray(regions, dtype=np.int64),
        )

    @classmethod
    def empty(cls) -> "SampleSet":
        return cls(
            x=np.empty(0, dtype=np.float64),
            y=np.empty(0, dtype=np.float64),
            rows=np.empty(0, dtype=np.int64),
            cols=np.empty(0, dtype=np.int64),
            labels=np.empty(0, dtype=np.int8),
        )

    def __len__(self) -> int:
        return len(self.x)

    @property
    def coords(self) -> np.ndarray:
        """(N, 2) XY coordinates."""
        return np.column_stack([self.x, self.y])

    def cell_ids(self, grid) -> np.ndarray:
        """Flat cell ids on ``grid``."""
        return grid.flat_index(self.rows, self.cols)

    def with_regions(self, regions: np.ndarray) -> "SampleSet":
        """Return a copy tagged with region ids."""
        return replace(self, regions=np.asarray(regions, dtype=np.int64))

    def subset(self, index: np.ndarray) -> "SampleSet":
        """Return the samples selected by a boolean mask or index array."""
        return SampleSet(
            x=self.x[index],
            y=self.y[index],
            rows=self.rows[index],
            cols=self.cols[index],
            labels=self.labels[index],
            regions=None if self.regions is None else self.regions[index],
        )

    @staticmethod
    def concat(sets: Sequence["SampleSet"]) -> "SampleSet":
        """Concatenate sample sets; regions are kept only if every set has them."""
        sets = [s for s in sets if s is not None]
        if not sets:
            return SampleSet.empty()
        has_regions = all(s.regions is not None for s in sets)
        return SampleSet(
            x=np.concatenate([s.x for s in sets]),
            y=np.concatenate([s.y for s in sets]),
            rows=np.concatenate([s.rows for s in sets]),
            cols=np.concatenate([s.cols for s in sets]),
            labels=np.concatenate([s.labels for s in sets]),
            regions=np.concatenate([s.regions for s in sets]) if has_regions else None,
        )

    def to_frame(self) -> pd.DataFrame:
        df = pd.DataFrame({
            "x": self.x,
            "y": self.y,
            "row": self.rows,
            "col": self.cols,
            "label": self.labels,
        })
        if self.regions is not None:
            df["region"] = self.regions
        return df
