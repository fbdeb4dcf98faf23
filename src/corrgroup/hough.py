"""
Hough-voting geometric consistency grouping.

Overview
--------
Every correspondence predicts where the model reference point (centroid of
the model keypoints) sits in the scene:

    offset = F_m (c - m)          # reference point in the model keypoint's frame
    vote   = s + F_s.T offset     # same offset re-expressed from the scene keypoint

True matches under consistent frames agree on one vote position; false ones
scatter. Votes are accumulated in a sparse grid of cubic bins (edge
``bin_size``, anchored at the origin), optionally spread trilinearly over
the 8 surrounding bins. Bins whose total exceeds ``threshold`` and that are
peaks of their 26-neighbourhood become clusters; the rigid motion of each
cluster is the least-squares fit between its model and scene keypoints.

No deduplication of near-identical poses is done here.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass, field

import numpy as np
from numpy.typing import NDArray

from corrgroup.frames import ReferenceFrames
from corrgroup.geometry import (
    F64, I64, Mat3, Mat4, Points, Vec3, apply_transform, as_f64, as_points,
    finite_rows, kabsch, kabsch_se3, make_transform,
)
from corrgroup.matching import DEFAULT_MAX_DISTANCE, Correspondences

logger = logging.getLogger(__name__)

# Offsets of the 26 neighbours of a bin.
_NEIGHBOURS = np.array(
    [d for d in itertools.product((-1, 0, 1), repeat=3) if d != (0, 0, 0)], dtype=np.int64
)
# Corners of the interpolation cell.
_CORNERS = np.array(list(itertools.product((0, 1), repeat=3)), dtype=np.int64)


@dataclass(frozen=True, slots=True)
class ClusterParams:
    """
    Hough grouping configuration.

    bin_size:
      edge length of a vote bin (absolute units)
    threshold:
      a bin must collect strictly more than this many (weighted) votes
    max_distance:
      with distance weighting, a correspondence weighs
      ``1 - distance / max_distance`` (1 for an exact match, nothing at or
      beyond max_distance)
    ransac_threshold:
      None disables per-cluster RANSAC; otherwise the inlier distance used to
      filter cluster members before the final fit
    """
    bin_size: float = 0.01
    threshold: float = 5.0
    use_interpolation: bool = True
    use_distance_weight: bool = False
    max_distance: float = DEFAULT_MAX_DISTANCE
    ransac_threshold: float | None = None
    ransac_max_iter: int = 1000
    seed: int = 0


@dataclass(frozen=True, slots=True)
class PoseCluster:
    """One recognised instance: scene_point = rotation @ model_point + translation."""
    rotation: Mat3 = field(repr=False)
    translation: Vec3
    correspondences: Correspondences
    votes: float

    @property
    def transform(self) -> Mat4:
        return make_transform(self.rotation, self.translation)

    def __len__(self) -> int:
        return len(self.correspondences)


@dataclass(frozen=True, slots=True)
class VoteSet:
    """Votes of the correspondences that were allowed to vote."""
    positions: Points           # Shape: (V, 3)
    weights: NDArray[F64]       # Shape: (V,)
    voters: NDArray[I64]        # Shape: (V,), indices into the correspondence set


@dataclass(frozen=True, slots=True)
class Accumulator:
    """Sparse vote grid: occupied bin keys, their totals and their voters."""
    keys: NDArray[I64]          # Shape: (B, 3)
    totals: NDArray[F64]        # Shape: (B,)
    entry_bin: NDArray[I64]     # Shape: (E,), bin of each (bin, voter) entry
    entry_voter: NDArray[I64]   # Shape: (E,), correspondence index of each entry

    def members(self, b: int) -> NDArray[I64]:
        """Sorted unique correspondence indices that put weight into bin ``b``."""
        return np.unique(self.entry_voter[self.entry_bin == b])


# ---------------------------------------------------------------------------
# Voting
# ---------------------------------------------------------------------------

def cast_votes(
    model_keypoints: Points,
    model_frames: ReferenceFrames,
    scene_keypoints: Points,
    scene_frames: ReferenceFrames,
    correspondences: Correspondences,
    reference_point: Vec3,
    *,
    use_distance_weight: bool = False,
    max_distance: float = DEFAULT_MAX_DISTANCE,
) -> VoteSet:
    """
    Predicted reference-point positions, one per eligible correspondence.

    A correspondence votes only if both of its frames are valid and both
    keypoints are finite. With distance weighting a correspondence at or
    beyond ``max_distance`` carries no weight and does not vote.
    """
    m_idx = correspondences.model_indices
    s_idx = correspondences.scene_indices
    if m_idx.size and (
        m_idx.min() < 0 or m_idx.max() >= model_keypoints.shape[0]
        or s_idx.min() < 0 or s_idx.max() >= scene_keypoints.shape[0]
    ):
        raise ValueError("correspondence index out of range of its keypoint set.")

    m = model_keypoints[m_idx]
    s = scene_keypoints[s_idx]
    ok = (
        model_frames.valid[m_idx]
        & scene_frames.valid[s_idx]
        & finite_rows(m)
        & finite_rows(s)
    )
    weights = np.ones(m_idx.size, dtype=np.float64)
    if use_distance_weight:
        if not max_distance > 0.0:
            raise ValueError("max_distance must be positive.")
        weights = 1.0 - correspondences.distances / max_distance
        ok &= weights > 0.0
    voters = np.flatnonzero(ok).astype(np.int64)

    Fm = model_frames.axes[m_idx[voters]]
    Fs = scene_frames.axes[s_idx[voters]]
    offsets = np.einsum("nij,nj->ni", Fm, reference_point - m[voters])
    positions = s[voters] + np.einsum("nji,nj->ni", Fs, offsets)

    return VoteSet(positions=positions, weights=weights[voters], voters=voters)


def accumulate(votes: VoteSet, bin_size: float, *, use_interpolation: bool = True) -> Accumulator:
    """Sum votes into bins; with interpolation each vote feeds up to 8 bins."""
    if not bin_size > 0.0:
        raise ValueError("bin_size must be positive.")
    if votes.voters.size == 0:
        return Accumulator(
            keys=np.empty((0, 3), np.int64),
            totals=np.empty(0, np.float64),
            entry_bin=np.empty(0, np.int64),
            entry_voter=np.empty(0, np.int64),
        )

    scaled = votes.positions / bin_size
    if use_interpolation:
        # Bin b has its centre at (b + 0.5) * bin_size.
        centred = scaled - 0.5
        base = np.floor(centred).astype(np.int64)
        frac = centred - base
        keys = (base[:, None, :] + _CORNERS[None, :, :]).reshape(-1, 3)
        per_axis = np.where(_CORNERS[None, :, :] == 1, frac[:, None, :], 1.0 - frac[:, None, :])
        w = (per_axis.prod(axis=2) * votes.weights[:, None]).reshape(-1)
        voter = np.repeat(votes.voters, _CORNERS.shape[0])
        keep = w > 0.0
        keys, w, voter = keys[keep], w[keep], voter[keep]
    else:
        keys = np.floor(scaled).astype(np.int64)
        w = votes.weights
        voter = votes.voters

    uniq, inverse = np.unique(keys, axis=0, return_inverse=True)
    inverse = inverse.reshape(-1)
    totals = np.bincount(inverse, weights=w, minlength=uniq.shape[0])
    return Accumulator(keys=uniq, totals=totals, entry_bin=inverse, entry_voter=voter)


def find_peaks(acc: Accumulator, threshold: float) -> NDArray[I64]:
    """
    Bins whose total is > threshold and not exceeded by any of their 26
    neighbours. Ordered by descending total, then by bin key.
    """
    candidates = np.flatnonzero(acc.totals > threshold)
    if candidates.size == 0:
        return candidates.astype(np.int64)

    lookup = {tuple(k): float(v) for k, v in zip(acc.keys.tolist(), acc.totals)}
    peaks = []
    for b in candidates:
        key = acc.keys[b]
        total = acc.totals[b]
        if all(lookup.get(tuple((key + d).tolist()), -np.inf) <= total for d in _NEIGHBOURS):
            peaks.append(int(b))

    peaks_arr = np.asarray(peaks, dtype=np.int64)
    keys = acc.keys[peaks_arr]
    order = np.lexsort((keys[:, 2], keys[:, 1], keys[:, 0], -acc.totals[peaks_arr]))
    return peaks_arr[order]


# ---------------------------------------------------------------------------
# RANSAC over cluster members
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class RANSACResult:
    """RANSAC output bundle."""
    T: Mat4
    inliers: NDArray[np.bool_]
    num_inliers: int
    iters: int


def ransac_se3(
    src_corr: Points,
    dst_corr: Points,
    *,
    threshold: float,
    max_iter: int = 1000,
    confidence: float = 0.999,
    seed: int = 0,
) -> RANSACResult:
    """
    RANSAC over 3-point minimal samples to estimate an SE(3) transform.

    - repeatedly sample 3 pairs, fit SE(3), count inliers
    - refit using all inliers when an improved model is found
    - adaptively reduce the required iterations from the best inlier ratio
    """
    src = as_points(src_corr, "src_corr")
    dst = as_points(dst_corr, "dst_corr")
    if src.shape != dst.shape:
        raise ValueError("src_corr and dst_corr must have same shape (K,3).")
    K = src.shape[0]
    if K < 3:
        raise ValueError("Need at least 3 correspondences for SE(3) RANSAC.")

    rng = np.random.default_rng(seed)

    best_T = np.eye(4, dtype=np.float64)
    best_inliers = np.zeros(K, dtype=bool)
    best_cnt = 0

    max_iter_adapt = max_iter
    it = 0

    def nondegenerate(tri: Points) -> bool:
        # Nearly collinear triples do not constrain the rotation.
        a, b, c = tri
        return float(np.linalg.norm(np.cross(b - a, c - a))) > 1e-12

    while it < max_iter and it < max_iter_adapt:
        it += 1

        idx = rng.choice(K, size=3, replace=False)
        if not nondegenerate(src[idx]):
            continue

        T = kabsch_se3(src[idx], dst[idx])
        d = np.linalg.norm(apply_transform(T, src) - dst, axis=1)

        inl = d < threshold
        cnt = int(inl.sum())
        if cnt <= best_cnt:
            continue

        best_cnt = cnt
        best_inliers = inl
        best_T = kabsch_se3(src[inl], dst[inl])

        w = best_cnt / K
        p_no_outliers = float(np.clip(1.0 - w**3, 1e-12, 1.0 - 1e-12))
        max_iter_adapt = int(np.ceil(np.log(1.0 - confidence) / np.log(p_no_outliers)))

    return RANSACResult(T=best_T, inliers=best_inliers, num_inliers=best_cnt, iters=it)


# ---------------------------------------------------------------------------
# Clusterer
# ---------------------------------------------------------------------------

class HoughClusterer:
    """Turns correspondences + frames into a list of :class:`PoseCluster`."""

    def __init__(self, params: ClusterParams = ClusterParams()) -> None:
        if not params.bin_size > 0.0:
            raise ValueError("bin_size must be positive.")
        self.params = params

    def recognize(
        self,
        model_keypoints: Points,
        model_frames: ReferenceFrames,
        scene_keypoints: Points,
        scene_frames: ReferenceFrames,
        correspondences: Correspondences,
        *,
        reference_point: Vec3 | None = None,
    ) -> list[PoseCluster]:
        p = self.params
        mk = as_points(model_keypoints, "model_keypoints")
        sk = as_points(scene_keypoints, "scene_keypoints")
        if len(model_frames) != mk.shape[0] or len(scene_frames) != sk.shape[0]:
            raise ValueError("frames must have one entry per keypoint.")

        if len(correspondences) == 0:
            return []
        if reference_point is None:
            finite = mk[finite_rows(mk)]
            if finite.shape[0] == 0:
                return []
            reference_point = finite.mean(axis=0)
        ref = as_f64(reference_point).reshape(3)

        votes = cast_votes(
            mk, model_frames, sk, scene_frames, correspondences, ref,
            use_distance_weight=p.use_distance_weight, max_distance=p.max_distance,
        )
        logger.debug("hough: %d of %d correspondences voted", votes.voters.size, len(correspondences))

        acc = accumulate(votes, p.bin_size, use_interpolation=p.use_interpolation)
        clusters = []
        for b in find_peaks(acc, p.threshold):
            cluster = self._fit(mk, sk, correspondences.subset(acc.members(b)), float(acc.totals[b]))
            if cluster is not None:
                clusters.append(cluster)

        logger.debug("hough: %d occupied bins, %d clusters", acc.keys.shape[0], len(clusters))
        return clusters

    def _fit(
        self, mk: Points, sk: Points, members: Correspondences, votes: float
    ) -> PoseCluster | None:
        p = self.params
        src = mk[members.model_indices]
        dst = sk[members.scene_indices]

        if p.ransac_threshold is not None and len(members) >= 3:
            r = ransac_se3(
                src, dst, threshold=p.ransac_threshold,
                max_iter=p.ransac_max_iter, seed=p.seed,
            )
            if r.num_inliers <= p.threshold:
                return None
            members = members.subset(r.inliers)
            src, dst = src[r.inliers], dst[r.inliers]

        R, t = kabsch(src, dst)
        return PoseCluster(rotation=R, translation=t, correspondences=members, votes=votes)
