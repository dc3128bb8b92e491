"""Utility module for spatial indexing and region merging."""

from rsmap.utils.spatial import DisjointSet, SpatialIndex

__all__ = [
    "DisjointSet",
    "SpatialIndex",
]
