"""
Grid indexing for rsmap.

Maps geographic coordinates to raster cells (row, col) and back using
deterministic floor division on the grid's upper-left origin and pixel
size. Cells are half-open, so the right and bottom extent edges fall
outside the grid.
"""

from dataclasses import dataclass
from typing import Any, Optional, Tuple

import numpy as np

from rsmap.errors import OutOfBounds

Cell = Tuple[int, int]


@dataclass(frozen=True)
class Grid:
    """A north-up raster grid.

    Parameters
    ----------
    x_origin : float
        X coordinate of the upper-left corner.
    y_origin : float
        Y coordinate of the upper-left corner.
    res_x : float
        Pixel width in geographic units (positive).
    res_y : float
        Pixel height in geographic units (positive).
    n_rows : int
        Number of rows.
    n_cols : int
        Number of columns.
    crs : str, optional
        Coordinate reference identifier, carried for collaborators only.
    """

    x_origin: float
    y_origin: float
    res_x: float
    res_y: float
    n_rows: int
    n_cols: int
    crs: Optional[str] = None

    def __post_init__(self):
        if self.res_x <= 0 or self.res_y <= 0:
            raise ValueError(
                f"Pixel size must be positive, got ({self.res_x}, {self.res_y})"
            )
        if self.n_rows <= 0 or self.n_cols <= 0:
            raise ValueError(
                f"Grid shape must be positive, got ({self.n_rows}, {self.n_cols})"
            )

    @classmethod
    def from_affine(cls, transform: Any, shape: Tuple[int, int], crs: Optional[str] = None) -> "Grid":
        """Build a grid from an affine transform (e.g. rasterio's ``Affine``).

        Only north-up transforms are supported: ``a`` is the pixel width,
        ``e`` the (negative) pixel height, ``c``/``f`` the upper-left corner.
        """
        if getattr(transform, "b", 0.0) != 0.0 or getattr(transform, "d", 0.0) != 0.0:
            raise ValueError("Rotated transforms are not supported")
        if transform.e >= 0:
            raise ValueError(f"Expected a north-up transform (e < 0), got e={transform.e}")
        n_rows, n_cols = shape
        return cls(
            x_origin=float(transform.c),
            y_origin=float(transform.f),
            res_x=float(transform.a),
            res_y=float(-transform.e),
            n_rows=int(n_rows),
            n_cols=int(n_cols),
            crs=crs,
        )

    @property
    def shape(self) -> Tuple[int, int]:
        return (self.n_rows, self.n_cols)

    @property
    def n_cells(self) -> int:
        return self.n_rows * self.n_cols

    @property
    def bounds(self) -> Tuple[float, float, float, float]:
        """(xmin, ymin, xmax, ymax) of the grid extent."""
        return (
            self.x_origin,
            self.y_origin - self.n_rows * self.res_y,
            self.x_origin + self.n_cols * self.res_x,
            self.y_origin,
        )

    def cell_of(self, x: float, y: float) -> Cell:
        """
        Return the (row, col) of the cell containing a coordinate.

        Raises
        ------
        OutOfBounds
            If the coordinate lies outside the grid extent.
        """
        row = int(np.floor((self.y_origin - y) / self.res_y))
        col = int(np.floor((x - self.x_origin) / self.res_x))
        if not (0 <= row < self.n_rows and 0 <= col < self.n_cols):
            raise OutOfBounds(f"Coordinate ({x}, {y}) is outside grid bounds {self.bounds}")
        return row, col

    def cells_of(
        self,
        x: np.ndarray,
        y: np.ndarray,
        strict: bool = True,
    ) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Vectorized ``cell_of``.

        Parameters
        ----------
        x, y : np.ndarray
            (N,) coordinates.
        strict : bool
            If True, raise OutOfBounds when any coordinate is outside the grid.

        Returns
        -------
        rows, cols : np.ndarray
            (N,) int64 indices (-1 where outside).
        inside : np.ndarray
            (N,) boolean mask of coordinates inside the grid.
        """
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        rows = np.floor((self.y_origin - y) / self.res_y)
        cols = np.floor((x - self.x_origin) / self.res_x)
        inside = (
            np.isfinite(rows) & np.isfinite(cols)
            & (rows >= 0) & (rows < self.n_rows)
            & (cols >= 0) & (cols < self.n_cols)
        )
        if strict and not inside.all():
            n_out = int((~inside).sum())
            raise OutOfBounds(f"{n_out} coordinate(s) outside grid bounds {self.bounds}")
        rows = np.where(inside, rows, -1).astype(np.int64)
        cols = np.where(inside, cols, -1).astype(np.int64)
        return rows, cols, inside

    def coordinate_of(self, row: int, col: int) -> Tuple[float, float]:
        """Return the center coordinate of a cell."""
        if not (0 <= row < self.n_rows and 0 <= col < self.n_cols):
            raise OutOfBounds(f"Cell ({row}, {col}) is outside grid shape {self.shape}")
        return (
            self.x_origin + (col + 0.5) * self.res_x,
            self.y_origin - (row + 0.5) * self.res_y,
        )

    def coordinates_of(self, rows: np.ndarray, cols: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Vectorized ``coordinate_of`` (no bounds check)."""
        rows = np.asarray(rows)
        cols = np.asarray(cols)
        x = self.x_origin + (cols + 0.5) * self.res_x
        y = self.y_origin - (rows + 0.5) * self.res_y
        return x.astype(np.float64), y.astype(np.float64)

    def cell_distance(self, a: Cell, b: Cell) -> float:
        """Euclidean distance in geographic units between two cell centers.

        Samples sit at cell centers, so this is the distance ``label_regions``
        compares against the aggregation radius; use it to check whether two
        cells would merge into one region under non-square pixels.
        """
        drow = (a[0] - b[0]) * self.res_y
        dcol = (a[1] - b[1]) * self.res_x
        return float(np.hypot(drow, dcol))

    def flat_index(self, rows: np.ndarray, cols: np.ndarray) -> np.ndarray:
        """Row-major flat cell ids."""
        return np.ravel_multi_index((np.asarray(rows), np.asarray(cols)), self.shape)

    def unravel(self, flat: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """Inverse of ``flat_index``."""
        rows, cols = np.unravel_index(np.asarray(flat), self.shape)
        return rows.astype(np.int64), cols.astype(np.int64)
