"""
SHOT-style local shape descriptor.

The support sphere around a keypoint is split in its local frame into
8 azimuth x 2 elevation x 2 radial volumes. Each volume holds an 11-bin
histogram of |cos| between neighbour normals and the frame's z axis
(linear interpolation between adjacent cosine bins). The 352 values are
normalised to unit L2 length, so squared descriptor distances lie in [0, 4].

A descriptor that cannot be computed (invalid frame, empty support) is a
row of NaN; consumers must skip it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Protocol

import numpy as np
from numpy.typing import NDArray

from corrgroup.frames import Surface, estimate_reference_frames
from corrgroup.geometry import F64, Mat3, Points, Vec3, as_points
from corrgroup.parallel import map_ordered

logger = logging.getLogger(__name__)

N_AZIMUTH = 8
N_ELEVATION = 2
N_RADIAL = 2
N_COS = 11
DESCRIPTOR_LENGTH = N_AZIMUTH * N_ELEVATION * N_RADIAL * N_COS


class LocalDescriptorEngine(Protocol):
    """Anything that turns keypoints on a surface into fixed-length vectors."""

    def compute(self, keypoints: Points, keypoint_normals: Points, surface: Surface) -> NDArray[F64]: ...


def invalid_descriptors(descriptors: NDArray[F64]) -> NDArray[np.bool_]:
    """Rows flagged invalid by a non-finite leading value."""
    d = np.asarray(descriptors, dtype=np.float64)
    if d.ndim != 2:
        raise ValueError("descriptors must be a 2D array (K,D).")
    if d.shape[1] == 0:
        return np.ones(d.shape[0], dtype=bool)
    return ~np.isfinite(d[:, 0])


def shot_at(keypoint: Vec3, frame: Mat3, surface: Surface, radius: float) -> NDArray[F64] | None:
    """Descriptor of one keypoint given its (valid) frame."""
    idx = surface.neighbors(keypoint, radius)
    if idx.size == 0:
        return None

    nrm = surface.normals[idx]
    ok = np.isfinite(nrm).all(axis=1)
    if not ok.any():
        return None
    d = surface.points[idx][ok] - keypoint
    nrm = nrm[ok]

    local = d @ frame.T
    dist = np.linalg.norm(d, axis=1)

    az = np.floor((np.arctan2(local[:, 1], local[:, 0]) + np.pi) / (2.0 * np.pi / N_AZIMUTH))
    az = np.clip(az.astype(np.int64), 0, N_AZIMUTH - 1)
    el = (local[:, 2] > 0).astype(np.int64)
    rad = (dist > 0.5 * radius).astype(np.int64)
    vol = (az * N_ELEVATION + el) * N_RADIAL + rad

    cos = np.clip(np.abs(nrm @ frame[2]), 0.0, 1.0) * (N_COS - 1)
    lo = np.floor(cos).astype(np.int64)
    frac = cos - lo
    hi = np.minimum(lo + 1, N_COS - 1)

    hist = np.zeros((N_AZIMUTH * N_ELEVATION * N_RADIAL, N_COS), dtype=np.float64)
    np.add.at(hist, (vol, lo), 1.0 - frac)
    np.add.at(hist, (vol, hi), frac)

    desc = hist.reshape(-1)
    length = float(np.linalg.norm(desc))
    if length == 0.0:
        return None
    return desc / length


@dataclass(frozen=True, slots=True)
class ShotDescriptorEngine:
    """Default descriptor engine; computes its own frames at ``radius``."""
    radius: float
    min_neighbors: int = 5
    workers: int = 1

    def compute(self, keypoints: Points, keypoint_normals: Points, surface: Surface) -> NDArray[F64]:
        if not self.radius > 0.0:
            raise ValueError("radius must be positive.")
        kps = as_points(keypoints, "keypoints")
        frames = estimate_reference_frames(
            kps, keypoint_normals, surface, self.radius,
            min_neighbors=self.min_neighbors, workers=self.workers,
        )

        def one(i: int) -> NDArray[F64] | None:
            if not frames.valid[i]:
                return None
            return shot_at(kps[i], frames.axes[i], surface, self.radius)

        rows = map_ordered(one, range(kps.shape[0]), workers=self.workers)

        out = np.full((kps.shape[0], DESCRIPTOR_LENGTH), np.nan, dtype=np.float64)
        for i, row in enumerate(rows):
            if row is not None:
                out[i] = row

        logger.debug("descriptors: %d keypoints, %d invalid",
                     out.shape[0], int(invalid_descriptors(out).sum()))
        return out
