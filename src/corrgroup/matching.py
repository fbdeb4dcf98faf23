"""
Model <-> scene correspondences from descriptor nearest neighbours.

For each valid scene descriptor the single nearest model descriptor is
taken (k=1, no mutual check); the pair is kept iff its squared descriptor
distance is below ``max_distance``. Many scene keypoints may map to the same
model keypoint. Wrong matches are expected and are filtered by clustering.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Iterator, NamedTuple

import numpy as np
from numpy.typing import NDArray

from corrgroup.descriptors import invalid_descriptors
from corrgroup.geometry import F64, I64
from corrgroup.search import IndexFactory, KDTreeIndex

logger = logging.getLogger(__name__)

DEFAULT_MAX_DISTANCE = 0.25


class Correspondence(NamedTuple):
    """One proposed match: model keypoint index, scene keypoint index, distance."""
    model_index: int
    scene_index: int
    distance: float


@dataclass(frozen=True, slots=True)
class Correspondences:
    """Read-only struct-of-arrays set of correspondences."""
    model_indices: NDArray[I64] = field(repr=False)
    scene_indices: NDArray[I64] = field(repr=False)
    distances: NDArray[F64] = field(repr=False)

    def __post_init__(self) -> None:
        m = np.array(self.model_indices, dtype=np.int64).reshape(-1)
        s = np.array(self.scene_indices, dtype=np.int64).reshape(-1)
        d = np.array(self.distances, dtype=np.float64).reshape(-1)
        if not (m.shape == s.shape == d.shape):
            raise ValueError("model_indices, scene_indices and distances must have equal length.")
        for arr, name in ((m, "model_indices"), (s, "scene_indices"), (d, "distances")):
            arr.flags.writeable = False
            object.__setattr__(self, name, arr)

    @classmethod
    def empty(cls) -> Correspondences:
        return cls(np.empty(0, np.int64), np.empty(0, np.int64), np.empty(0, np.float64))

    @classmethod
    def from_pairs(cls, pairs: list[Correspondence] | list[tuple[int, int, float]]) -> Correspondences:
        if not pairs:
            return cls.empty()
        m, s, d = zip(*pairs)
        return cls(np.asarray(m), np.asarray(s), np.asarray(d))

    def __len__(self) -> int:
        return int(self.model_indices.shape[0])

    def __iter__(self) -> Iterator[Correspondence]:
        for m, s, d in zip(self.model_indices, self.scene_indices, self.distances):
            yield Correspondence(int(m), int(s), float(d))

    def subset(self, selector: NDArray) -> Correspondences:
        """Correspondences picked by an index array or boolean mask."""
        return Correspondences(
            self.model_indices[selector],
            self.scene_indices[selector],
            self.distances[selector],
        )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Correspondences):
            return NotImplemented
        return (
            np.array_equal(self.model_indices, other.model_indices)
            and np.array_equal(self.scene_indices, other.scene_indices)
            and np.array_equal(self.distances, other.distances)
        )


def find_correspondences(
    model_descriptors: NDArray[F64],
    scene_descriptors: NDArray[F64],
    *,
    max_distance: float = DEFAULT_MAX_DISTANCE,
    index_factory: IndexFactory = KDTreeIndex,
) -> Correspondences:
    """
    Match every valid scene descriptor to its nearest valid model descriptor.

    Output is in scene-index order. Distances are squared L2 distances.
    """
    model = np.asarray(model_descriptors, dtype=np.float64)
    scene = np.asarray(scene_descriptors, dtype=np.float64)
    if model.ndim != 2 or scene.ndim != 2:
        raise ValueError("descriptors must be 2D arrays (K,D).")
    if model.shape[0] and scene.shape[0] and model.shape[1] != scene.shape[1]:
        raise ValueError(
            f"descriptor lengths differ: model {model.shape[1]}, scene {scene.shape[1]}."
        )

    model_ok = np.flatnonzero(~invalid_descriptors(model))
    scene_ok = np.flatnonzero(~invalid_descriptors(scene))
    if model_ok.size == 0 or scene_ok.size == 0:
        logger.info("Correspondences found: 0")
        return Correspondences.empty()

    index = index_factory().build(model[model_ok])
    nn = index.nearest_k(scene[scene_ok], 1)
    sq = nn.dists[:, 0] ** 2
    keep = np.isfinite(sq) & (sq < max_distance)

    corrs = Correspondences(
        model_ok[nn.indices[keep, 0]],
        scene_ok[keep],
        sq[keep],
    )
    logger.info("Correspondences found: %d", len(corrs))
    return corrs
