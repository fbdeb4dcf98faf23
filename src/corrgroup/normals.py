"""Surface normals from k-nearest-neighbour PCA."""

from __future__ import annotations

import logging

import numpy as np

from corrgroup.geometry import Points, Vec3, as_f64, as_points, finite_rows
from corrgroup.search import KDTreeIndex

logger = logging.getLogger(__name__)


def estimate_normals(
    points: Points,
    *,
    k: int = 10,
    viewpoint: Vec3 | None = None,
    workers: int = 1,
) -> Points:
    """
    Normal per point: smallest-eigenvalue eigenvector of the covariance of
    its k nearest finite neighbours (the point included), flipped to face
    ``viewpoint`` (origin by default).

    Non-finite points, and every point when fewer than 3 finite points
    exist, get a NaN normal.
    """
    pts = as_points(points)
    normals = np.full(pts.shape, np.nan, dtype=np.float64)
    ok = finite_rows(pts)
    good = pts[ok]
    if good.shape[0] < 3:
        return normals

    k = min(k, good.shape[0])
    index = KDTreeIndex(workers=workers).build(good)
    nn = index.nearest_k(good, k)

    nbrs = good[nn.indices]                       # (M, k, 3)
    centered = nbrs - nbrs.mean(axis=1, keepdims=True)
    cov = np.einsum("mki,mkj->mij", centered, centered) / k
    # eigh sorts eigenvalues ascending; column 0 is the normal direction.
    _, vecs = np.linalg.eigh(cov)
    n = vecs[:, :, 0]

    vp = np.zeros(3) if viewpoint is None else as_f64(viewpoint).reshape(3)
    flip = np.einsum("mi,mi->m", n, vp - good) < 0
    n[flip] *= -1.0

    normals[ok] = n
    logger.debug("normals: %d estimated, %d skipped", good.shape[0], int((~ok).sum()))
    return normals
