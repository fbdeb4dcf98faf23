"""
Nearest-neighbor search behind a small capability interface.

Algorithms only need ``build(points)`` and ``nearest_k(query, k)`` (plus a
radius query for neighbourhood gathering), so the KD-tree backend can be
swapped without touching resolution estimation or descriptor matching.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Protocol

import numpy as np
from numpy.typing import NDArray
from scipy.spatial import cKDTree

from corrgroup.geometry import F64, I64, as_f64


@dataclass(frozen=True, slots=True)
class NNResult:
    """k-nearest-neighbor query result for a batch of query vectors.

    Missing neighbours (fewer than k indexed vectors) have distance ``inf``
    and index equal to the number of indexed vectors.
    """
    dists: NDArray[F64]     # Shape: (N, k)
    indices: NDArray[I64]   # Shape: (N, k), indices into the indexed set

    def found(self) -> NDArray[np.bool_]:
        """Mask of neighbours that actually exist."""
        return np.isfinite(self.dists)


class NearestNeighborIndex(Protocol):
    """Capability required by the matching and resolution stages."""

    def build(self, points: NDArray) -> "NearestNeighborIndex": ...

    def nearest_k(self, query: NDArray, k: int) -> NNResult: ...


IndexFactory = Callable[[], NearestNeighborIndex]


class KDTreeIndex:
    """``scipy.spatial.cKDTree`` backed index over vectors of any dimension."""

    def __init__(self, *, workers: int = 1, leafsize: int = 16) -> None:
        self.workers = workers
        self.leafsize = leafsize
        self._tree: cKDTree | None = None

    def build(self, points: NDArray) -> KDTreeIndex:
        data = as_f64(points)
        if data.ndim != 2:
            raise ValueError("points must be a 2D array (N,D).")
        # KD-tree built once and queried in batches.
        self._tree = cKDTree(data, leafsize=self.leafsize)
        return self

    @property
    def tree(self) -> cKDTree:
        if self._tree is None:
            raise RuntimeError("Index queried before build().")
        return self._tree

    def __len__(self) -> int:
        return 0 if self._tree is None else int(self._tree.n)

    def nearest_k(self, query: NDArray, k: int) -> NNResult:
        if k < 1:
            raise ValueError("k must be >= 1.")
        q = as_f64(query)
        if q.ndim == 1:
            q = q.reshape(1, -1)
        if q.shape[0] == 0:
            return NNResult(
                dists=np.empty((0, k), dtype=np.float64),
                indices=np.empty((0, k), dtype=np.int64),
            )
        d, idx = self.tree.query(q, k=k, workers=self.workers)
        return NNResult(
            dists=as_f64(d).reshape(q.shape[0], k),
            indices=np.asarray(idx, dtype=np.int64).reshape(q.shape[0], k),
        )

    def radius(self, center: NDArray, r: float) -> NDArray[I64]:
        """Indices of indexed points within distance ``r`` of ``center``, sorted."""
        idx = self.tree.query_ball_point(as_f64(center).reshape(-1), r)
        return np.asarray(sorted(idx), dtype=np.int64)


def kdtree_index(points: NDArray, *, workers: int = 1) -> KDTreeIndex:
    """Build a :class:`KDTreeIndex` in one call."""
    return KDTreeIndex(workers=workers).build(points)
