"""Characteristic point spacing of a cloud."""

from __future__ import annotations

import logging

import numpy as np

from corrgroup.geometry import Points, as_points, finite_rows
from corrgroup.search import IndexFactory, KDTreeIndex

logger = logging.getLogger(__name__)


def compute_cloud_resolution(
    points: Points,
    *,
    index_factory: IndexFactory = KDTreeIndex,
) -> float:
    """
    Mean distance from every finite point to its nearest *other* point.

    The first neighbour of a k=2 query is the point itself, so the second
    one is used. Points whose second neighbour does not exist (a single
    finite point) do not contribute. Returns 0.0 when nothing contributes.
    """
    pts = as_points(points)
    pts = pts[finite_rows(pts)]
    if pts.shape[0] == 0:
        return 0.0

    index = index_factory().build(pts)
    nn = index.nearest_k(pts, 2)
    second = nn.dists[:, 1]
    ok = np.isfinite(second)
    if not ok.any():
        return 0.0

    res = float(second[ok].mean())
    logger.debug("resolution %.6g over %d points", res, int(ok.sum()))
    return res
