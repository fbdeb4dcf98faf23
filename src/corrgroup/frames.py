"""
Local reference frames (LRF) at keypoints.

Frame layout
------------
A frame is a 3x3 matrix whose *rows* are the x, y, z axes in world
coordinates. World -> local is ``F @ v``; local -> world is ``F.T @ v``.

Disambiguation
--------------
- z: the keypoint normal, flipped so that most neighbours lie on its
  positive side (ties: sign of the weighted sum; still zero: keep as given).
- x: dominant eigenvector of the weighted in-plane scatter, flipped so that
  a strict majority of neighbours project positively on it. A tie leaves the
  axis ambiguous and the frame is marked invalid.
- Both votes ignore neighbours whose projection is within a small multiple
  of the radius of zero, so rounding never decides a sign.
- y: z × x.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np
from numpy.typing import NDArray

from corrgroup.geometry import F64, I64, Mat3, Points, Vec3, as_points, finite_rows
from corrgroup.parallel import map_ordered
from corrgroup.search import KDTreeIndex

logger = logging.getLogger(__name__)

# Relative to the support radius.
_PLANE_EPS = 1e-9


@dataclass(frozen=True, slots=True)
class Surface:
    """Finite points of a cloud with their normals, indexed for radius queries."""
    points: Points = field(repr=False)
    normals: Points = field(repr=False)
    index: KDTreeIndex = field(repr=False)

    @classmethod
    def build(cls, points: Points, normals: Points, *, workers: int = 1) -> Surface:
        pts = as_points(points)
        nrm = as_points(normals, "normals")
        if pts.shape != nrm.shape:
            raise ValueError("points and normals must have the same shape.")
        ok = finite_rows(pts)
        pts = pts[ok]
        index = KDTreeIndex(workers=workers)
        if pts.shape[0]:
            index.build(pts)
        return cls(pts, nrm[ok], index)

    def neighbors(self, center: Vec3, radius: float) -> NDArray[I64]:
        if len(self.index) == 0:
            return np.empty(0, dtype=np.int64)
        return self.index.radius(center, radius)


@dataclass(frozen=True, slots=True)
class ReferenceFrames:
    """Per-keypoint frames (K,3,3) and validity flags (K,). Invalid frames are NaN."""
    axes: NDArray[F64] = field(repr=False)
    valid: NDArray[np.bool_]

    def __post_init__(self) -> None:
        axes = np.asarray(self.axes, dtype=np.float64).reshape(-1, 3, 3)
        valid = np.asarray(self.valid, dtype=bool).reshape(-1)
        if axes.shape[0] != valid.shape[0]:
            raise ValueError("axes and valid must have the same length.")
        axes.flags.writeable = False
        valid.flags.writeable = False
        object.__setattr__(self, "axes", axes)
        object.__setattr__(self, "valid", valid)

    def __len__(self) -> int:
        return int(self.valid.shape[0])

    @property
    def num_invalid(self) -> int:
        return int((~self.valid).sum())


def frame_at(
    keypoint: Vec3,
    normal: Vec3,
    surface: Surface,
    radius: float,
    *,
    min_neighbors: int = 5,
) -> Mat3 | None:
    """Frame at one keypoint, or None when it cannot be disambiguated."""
    if not (np.isfinite(keypoint).all() and np.isfinite(normal).all()):
        return None
    nlen = float(np.linalg.norm(normal))
    if nlen == 0.0:
        return None

    idx = surface.neighbors(keypoint, radius)
    if idx.size < min_neighbors:
        return None

    d = surface.points[idx] - keypoint
    w = radius - np.linalg.norm(d, axis=1)
    # Projections within tol of zero lie on the splitting plane and do not vote.
    tol = _PLANE_EPS * radius

    z = normal / nlen
    proj = d @ z
    pos = int((proj > tol).sum())
    neg = int((proj < -tol).sum())
    if neg > pos or (neg == pos and float(w @ proj) < 0.0):
        z = -z
        proj = -proj

    q = d - proj[:, None] * z
    S = (q * w[:, None]).T @ q
    vals, vecs = np.linalg.eigh(S)
    if not vals[2] > 1e-12 * radius**3 * idx.size:
        return None
    x = vecs[:, 2]

    sx = q @ x
    pos = int((sx > tol).sum())
    neg = int((sx < -tol).sum())
    if pos == neg:
        return None
    if neg > pos:
        x = -x

    # z may not be exactly orthogonal to x after the eigen solve.
    x = x - (x @ z) * z
    x /= np.linalg.norm(x)
    y = np.cross(z, x)
    return np.stack([x, y, z])


def estimate_reference_frames(
    keypoints: Points,
    keypoint_normals: Points,
    surface: Surface,
    radius: float,
    *,
    min_neighbors: int = 5,
    workers: int = 1,
) -> ReferenceFrames:
    """Frames for every keypoint; invalid ones are flagged, never raised."""
    if not radius > 0.0:
        raise ValueError("radius must be positive.")
    kps = as_points(keypoints, "keypoints")
    nrm = as_points(keypoint_normals, "keypoint_normals")
    if kps.shape != nrm.shape:
        raise ValueError("keypoints and keypoint_normals must match.")

    def one(i: int) -> Mat3 | None:
        return frame_at(kps[i], nrm[i], surface, radius, min_neighbors=min_neighbors)

    frames = map_ordered(one, range(kps.shape[0]), workers=workers)

    axes = np.full((kps.shape[0], 3, 3), np.nan, dtype=np.float64)
    valid = np.zeros(kps.shape[0], dtype=bool)
    for i, F in enumerate(frames):
        if F is not None:
            axes[i] = F
            valid[i] = True

    result = ReferenceFrames(axes, valid)
    logger.debug("frames: %d keypoints, %d invalid", len(result), result.num_invalid)
    return result
