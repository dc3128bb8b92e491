"""
Background (absence) sampling.

Draws absence samples from the valid raster domain, never on a presence
cell and never twice on the same cell. Two strategies:

- ``random``: uniform draw over all non-presence cells.
- ``feature-distance``: project every valid cell into a PCA feature space,
  and for each region prefer cells whose distance to that region's presence
  centroid lies beyond the presence spread (mean + ``min_separation`` std)
  but below the ``max_distance_quantile`` of all candidate distances. This
  keeps background environmentally distinct without picking only extreme,
  trivially separable cells. When the band holds too few cells the request
  is filled from the remaining candidates, closest to the band first.
"""

import logging
import warnings
from dataclasses import dataclass
from typing import Optional, Union

import numpy as np
import pandas as pd
from sklearn.decomposition import PCA
from sklearn.preprocessing import StandardScaler

from rsmap.errors import DegenerateSampling
from rsmap.grid import Grid
from rsmap.ml.features import check_stack, stack_to_matrix, valid_cell_mask
from rsmap.samples import ABSENCE, SampleSet

logger = logging.getLogger(__name__)

SAMPLING_METHODS = ("random", "feature-distance")


@dataclass
class BackgroundResult:
    """Background samples plus per-region sampling diagnostics.

    Attributes
    ----------
    absences : SampleSet
        Absence samples (tagged with the region they balance, when the
        presences carried region ids).
    method : str
        Sampling method used.
    n_requested : int
        Total number of absences requested.
    summary : pd.DataFrame
        One row per region: requested, eligible and selected counts, and
        for ``feature-distance`` the count filled from outside the distance
        band and the lower/upper distance thresholds.
    explained_variance_ratio : np.ndarray, optional
        Variance explained by each retained principal component.
    """

    absences: SampleSet
    method: str
    n_requested: int
    summary: pd.DataFrame
    explained_variance_ratio: Optional[np.ndarray] = None

    @property
    def degenerate(self) -> bool:
        return len(self.absences) < self.n_requested


def _requested_per_group(presences: SampleSet, absence_ratio: float):
    """Per-sample group ids, the distinct groups, and absences requested per group."""
    if presences.regions is None:
        groups = np.zeros(len(presences), dtype=np.int64)
    else:
        groups = presences.regions
    ids, counts = np.unique(groups, return_counts=True)
    requested = np.rint(counts * absence_ratio).astype(np.int64)
    return groups, ids, requested


def sample_background(
    presences: SampleSet,
    stack: np.ndarray,
    grid: Grid,
    method: str = "feature-distance",
    absence_ratio: float = 1.0,
    pca_variance: Union[float, int] = 0.95,
    min_separation: float = 1.0,
    max_distance_quantile: float = 0.95,
    random_state: int = 42,
) -> BackgroundResult:
    """
    Generate absence samples for a set of presences.

    Parameters
    ----------
    presences : SampleSet
        Presence samples; if they carry region ids, absences are balanced
        per region.
    stack : np.ndarray
        (bands, n_rows, n_cols) predictor stack on ``grid``.
    grid : Grid
        Grid of the stack.
    method : str
        "random" or "feature-distance".
    absence_ratio : float
        Absences requested per presence (per region when labeled).
    pca_variance : float or int
        Float in (0, 1]: variance fraction retained by PCA. Int: number of
        components.
    min_separation : float
        Feature-distance lower threshold in standard deviations of the
        presence-to-centroid distances above their mean.
    max_distance_quantile : float
        Feature-distance upper cutoff, as a quantile of all candidate
        distances to the centroid. 1.0 disables the cutoff.
    random_state : int
        Random seed.

    Returns
    -------
    BackgroundResult
        Absence samples and diagnostics. When fewer valid candidates exist
        than requested, a DegenerateSampling warning is issued and all
        available candidates are returned.
    """
    if method not in SAMPLING_METHODS:
        raise ValueError(f"Unknown sampling method {method!r}, expected one of {SAMPLING_METHODS}")
    if absence_ratio < 0:
        raise ValueError(f"absence_ratio must be non-negative, got {absence_ratio}")
    if not 0.0 < max_distance_quantile <= 1.0:
        raise ValueError(f"max_distance_quantile must be in (0, 1], got {max_distance_quantile}")

    stack = check_stack(stack, grid)
    rng = np.random.RandomState(random_state)

    valid_ids = np.flatnonzero(valid_cell_mask(stack).ravel())
    presence_ids = presences.cell_ids(grid) if len(presences) else np.empty(0, dtype=np.int64)
    candidate_ids = np.setdiff1d(valid_ids, presence_ids)

    groups, group_ids, requested = _requested_per_group(presences, absence_ratio)
    n_requested = int(requested.sum())

    logger.info(
        f"Sampling {n_requested} absences ({method}) from {len(candidate_ids)} "
        f"candidate cells for {len(presences)} presences in {len(group_ids)} group(s)"
    )

    if method == "random" or len(candidate_ids) == 0:
        chosen, tags, summary = _sample_random(candidate_ids, group_ids, requested, rng)
        explained = None
    else:
        chosen, tags, summary, explained = _sample_feature_distance(
            stack,
            valid_ids,
            candidate_ids,
            presence_ids,
            groups,
            group_ids,
            requested,
            pca_variance=pca_variance,
            min_separation=min_separation,
            max_distance_quantile=max_distance_quantile,
            rng=rng,
        )

    if len(chosen) < n_requested:
        warnings.warn(
            f"Background domain too small: requested {n_requested} absences, "
            f"returning {len(chosen)}",
            DegenerateSampling,
            stacklevel=2,
        )

    rows, cols = grid.unravel(chosen)
    absences = SampleSet.from_cells(
        grid,
        rows,
        cols,
        label=ABSENCE,
        regions=tags if presences.regions is not None else None,
    )
    return BackgroundResult(
        absences=absences,
        method=method,
        n_requested=n_requested,
        summary=summary,
        explained_variance_ratio=explained,
    )


def _sample_random(candidate_ids, group_ids, requested, rng):
    """Uniform draw without replacement, split across groups in region order."""
    n_total = int(requested.sum())
    n_draw = min(n_total, len(candidate_ids))
    chosen = rng.choice(candidate_ids, size=n_draw, replace=False)

    tags = np.empty(n_draw, dtype=np.int64)
    rows = []
    offset = 0
    for gid, n_req in zip(group_ids, requested):
        n_sel = int(min(n_req, n_draw - offset))
        tags[offset:offset + n_sel] = gid
        rows.append({
            "region": int(gid),
            "n_requested": int(n_req),
            "n_eligible": len(candidate_ids),
            "n_selected": n_sel,
        })
        offset += n_sel

    return chosen.astype(np.int64), tags, pd.DataFrame(rows)


def _fit_projection(matrix: np.ndarray, pca_variance):
    """Standardize and project feature vectors onto principal components."""
    scaled = StandardScaler().fit_transform(matrix)
    if isinstance(pca_variance, (int, np.integer)) and not isinstance(pca_variance, bool):
        n_components = min(int(pca_variance), scaled.shape[1])
    elif 0.0 < pca_variance < 1.0:
        n_components = float(pca_variance)
    elif pca_variance == 1.0:
        n_components = None
    else:
        raise ValueError(f"pca_variance must be an int or a float in (0, 1], got {pca_variance}")
    pca = PCA(n_components=n_components, svd_solver="full")
    return pca.fit_transform(scaled), pca.explained_variance_ratio_


def _sample_feature_distance(
    stack,
    valid_ids,
    candidate_ids,
    presence_ids,
    groups,
    group_ids,
    requested,
    pca_variance,
    min_separation,
    max_distance_quantile,
    rng,
):
    """Per-region draw favoring cells at a moderate PCA distance from the presence centroid."""
    matrix = stack_to_matrix(stack)[valid_ids].astype(np.float64)
    projected, explained = _fit_projection(matrix, pca_variance)

    # valid_ids is sorted, so positions can be looked up by binary search
    presence_pos = np.searchsorted(valid_ids, presence_ids)
    in_valid = np.isin(presence_ids, valid_ids)
    if not in_valid.all():
        raise ValueError(
            f"{int((~in_valid).sum())} presence sample(s) lie on cells with missing predictor values"
        )
    candidate_pos = np.searchsorted(valid_ids, candidate_ids)
    candidate_z = projected[candidate_pos]
    available = np.ones(len(candidate_ids), dtype=bool)

    chosen, tags, rows = [], [], []
    for gid, n_req in zip(group_ids, requested):
        member_z = projected[presence_pos[groups == gid]]
        centroid = member_z.mean(axis=0)
        presence_dist = np.linalg.norm(member_z - centroid, axis=1)
        low = presence_dist.mean() + min_separation * presence_dist.std()

        dist = np.linalg.norm(candidate_z - centroid, axis=1)
        high = np.quantile(dist, max_distance_quantile) if len(dist) else np.inf
        eligible = np.flatnonzero(available & (dist > low) & (dist <= high))

        n_band = int(min(n_req, len(eligible)))
        picked = rng.choice(eligible, size=n_band, replace=False) if n_band else np.empty(0, dtype=np.int64)
        available[picked] = False

        n_fill = 0
        if n_band < n_req:
            # Top up from the rest of the pool, closest to the band first
            rest = np.flatnonzero(available)
            rest = rest[rng.permutation(len(rest))]
            gap = np.where(dist[rest] > high, dist[rest] - high, low - dist[rest])
            fill = rest[np.argsort(gap, kind="stable")[:n_req - n_band]]
            available[fill] = False
            picked = np.concatenate([picked, fill])
            n_fill = len(fill)
            logger.info(
                f"Region {gid}: {len(eligible)} background cells in distance band "
                f"{low:.3f}-{high:.3f}, filled {n_fill} of {n_req} from outside it"
            )

        n_sel = len(picked)
        chosen.append(candidate_ids[picked])
        tags.append(np.full(n_sel, gid, dtype=np.int64))
        rows.append({
            "region": int(gid),
            "n_requested": int(n_req),
            "n_eligible": len(eligible),
            "n_selected": n_sel,
            "n_filled": n_fill,
            "distance_low": float(low),
            "distance_high": float(high),
        })

    chosen = np.concatenate(chosen) if chosen else np.empty(0, dtype=np.int64)
    tags = np.concatenate(tags) if tags else np.empty(0, dtype=np.int64)
    return chosen.astype(np.int64), tags, pd.DataFrame(rows), explained
