"""Recognition configuration."""

from __future__ import annotations

from dataclasses import dataclass, replace

from corrgroup.hough import ClusterParams
from corrgroup.matching import DEFAULT_MAX_DISTANCE

# Options expressed as multiples of the model resolution.
DISTANCE_OPTIONS = ("model_ss", "scene_ss", "rf_rad", "descr_rad", "cg_size", "ransac_thresh")


@dataclass(frozen=True, slots=True)
class RecognitionConfig:
    """
    Every option of a recognition run.

    Distance options (see DISTANCE_OPTIONS) are in units of model resolution
    until :meth:`scaled` turns them into absolute distances.
    """
    model_ss: float = 10.0
    scene_ss: float = 30.0
    rf_rad: float = 15.0
    descr_rad: float = 20.0
    cg_size: float = 10.0
    cg_thresh: float = 5.0

    match_thresh: float = DEFAULT_MAX_DISTANCE
    normal_k: int = 10
    min_neighbors: int = 5
    use_interpolation: bool = True
    use_distance_weight: bool = False
    ransac_thresh: float | None = None
    workers: int = 1

    show_keypoints: bool = False
    show_correspondences: bool = False

    def __post_init__(self) -> None:
        for name in DISTANCE_OPTIONS:
            value = getattr(self, name)
            if value is not None and not value > 0.0:
                raise ValueError(f"{name} must be positive, got {value}.")
        if not self.match_thresh > 0.0:
            raise ValueError(f"match_thresh must be positive, got {self.match_thresh}.")
        if self.normal_k < 3:
            raise ValueError("normal_k must be >= 3.")
        if self.workers < 1:
            raise ValueError("workers must be >= 1.")

    def scaled(self, resolution: float) -> RecognitionConfig:
        """
        Copy with distance options multiplied by ``resolution``.

        A zero resolution leaves the options unchanged.
        """
        if resolution == 0.0:
            return self
        changes = {}
        for name in DISTANCE_OPTIONS:
            value = getattr(self, name)
            if value is not None:
                changes[name] = value * resolution
        return replace(self, **changes)

    def cluster_params(self) -> ClusterParams:
        return ClusterParams(
            bin_size=self.cg_size,
            threshold=self.cg_thresh,
            use_interpolation=self.use_interpolation,
            use_distance_weight=self.use_distance_weight,
            max_distance=self.match_thresh,
            ransac_threshold=self.ransac_thresh,
        )
