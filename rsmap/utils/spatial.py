"""
Spatial indexing utilities for rsmap.

Provides the SpatialIndex class wrapping scipy's cKDTree for radius
pair queries on 2D sample coordinates, and a disjoint-set forest used to merge
samples into connected regions.
"""

from typing import List

import numpy as np
from scipy.spatial import cKDTree


class SpatialIndex:
    """Wrapper around scipy cKDTree for 2D neighbor queries.

    Parameters
    ----------
    points : np.ndarray
        (N, 2) array of XY coordinates.

    Attributes
    ----------
    points : np.ndarray
        Original point coordinates.
    tree : cKDTree
        Spatial index structure.
    n_points : int
        Number of points in the index.
    """

    def __init__(self, points: np.ndarray):
        points = np.asarray(points)
        if points.ndim != 2 or points.shape[1] != 2:
            raise ValueError(f"Points must have shape (N, 2), got {points.shape}")

        self.points = np.ascontiguousarray(points, dtype=np.float64)
        self.tree = cKDTree(self.points)
        self.n_points = len(points)

    def query_pairs(self, radius: float) -> np.ndarray:
        """
        Find all index pairs whose Euclidean distance is at most ``radius``.

        The tree is queried with a slightly inflated radius and the candidate
        pairs are then filtered on the exact distance, so pairs lying exactly
        on the radius are kept regardless of rounding inside the tree.

        Parameters
        ----------
        radius : float
            Search radius in the same units as the points.

        Returns
        -------
        pairs : np.ndarray
            (M, 2) int64 array of index pairs with i < j.
        """
        if radius < 0:
            raise ValueError(f"Radius must be non-negative, got {radius}")
        if self.n_points < 2:
            return np.empty((0, 2), dtype=np.int64)

        slack = max(radius * 1e-9, 1e-12)
        pairs = self.tree.query_pairs(radius + slack, output_type="ndarray")
        if len(pairs) == 0:
            return np.empty((0, 2), dtype=np.int64)

        diff = self.points[pairs[:, 0]] - self.points[pairs[:, 1]]
        dist = np.hypot(diff[:, 0], diff[:, 1])
        return pairs[dist <= radius].astype(np.int64)


class DisjointSet:
    """Union-find over the integers ``0..n-1`` with path halving and union by size.

    Parameters
    ----------
    n : int
        Number of elements.
    """

    def __init__(self, n: int):
        self.parent = np.arange(n, dtype=np.int64)
        self.size = np.ones(n, dtype=np.int64)

    def __len__(self) -> int:
        return len(self.parent)

    def find(self, i: int) -> int:
        parent = self.parent
        while parent[i] != i:
            parent[i] = parent[parent[i]]
            i = parent[i]
        return int(i)

    def union(self, a: int, b: int) -> int:
        """Merge the sets containing ``a`` and ``b``; returns the new root."""
        ra, rb = self.find(a), self.find(b)
        if ra == rb:
            return ra
        if self.size[ra] < self.size[rb]:
            ra, rb = rb, ra
        self.parent[rb] = ra
        self.size[ra] += self.size[rb]
        return ra

    def roots(self) -> np.ndarray:
        """(n,) root of every element."""
        return np.array([self.find(i) for i in range(len(self.parent))], dtype=np.int64)

    def groups(self) -> List[np.ndarray]:
        """Members of each set, ordered by their smallest element."""
        roots = self.roots()
        _, first, inverse = np.unique(roots, return_index=True, return_inverse=True)
        order = np.argsort(first, kind="stable")
        return [np.flatnonzero(inverse == k) for k in order]
