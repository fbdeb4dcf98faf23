"""Keypoint extraction by uniform sampling."""

from __future__ import annotations

import numpy as np
from numpy.typing import NDArray

from corrgroup.geometry import I64, Points, as_points, finite_rows


def uniform_sampling(points: Points, radius: float) -> NDArray[I64]:
    """
    Keep, for every occupied voxel of edge ``radius``, the point closest to
    the voxel centre. Returns sorted indices into ``points``.

    Ties are broken by the lower point index, so the result is deterministic.
    """
    if not radius > 0.0:
        raise ValueError("radius must be positive.")
    pts = as_points(points)
    idx = np.flatnonzero(finite_rows(pts)).astype(np.int64)
    if idx.size == 0:
        return idx

    good = pts[idx]
    cells = np.floor(good / radius).astype(np.int64)
    centres = (cells + 0.5) * radius
    d2 = np.einsum("ij,ij->i", good - centres, good - centres)

    # Group by voxel, closest first, then by index.
    order = np.lexsort((idx, d2, cells[:, 2], cells[:, 1], cells[:, 0]))
    cells_sorted = cells[order]
    first = np.ones(order.size, dtype=bool)
    first[1:] = np.any(cells_sorted[1:] != cells_sorted[:-1], axis=1)
    return np.sort(idx[order[first]])
