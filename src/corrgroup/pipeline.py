"""
End-to-end recognition of one model in one scene.

Stages run in order, each on the outputs of the previous ones:

    resolution -> normals -> keypoints -> descriptors + frames
               -> correspondences -> pose clusters

``recognize`` holds all per-run state locally; the same inputs and
configuration always give the same result.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Iterator

import numpy as np
from numpy.typing import NDArray

from corrgroup.cloud import PointCloud
from corrgroup.config import RecognitionConfig
from corrgroup.descriptors import LocalDescriptorEngine, ShotDescriptorEngine
from corrgroup.frames import ReferenceFrames, Surface, estimate_reference_frames
from corrgroup.geometry import F64, I64, Points
from corrgroup.hough import HoughClusterer, PoseCluster
from corrgroup.keypoints import uniform_sampling
from corrgroup.matching import Correspondences, find_correspondences
from corrgroup.normals import estimate_normals
from corrgroup.resolution import compute_cloud_resolution
from corrgroup.search import KDTreeIndex

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class CloudFeatures:
    """Everything derived from one cloud."""
    cloud: PointCloud
    normals: Points = field(repr=False)
    keypoint_indices: NDArray[I64] = field(repr=False)
    descriptors: NDArray[F64] = field(repr=False)
    frames: ReferenceFrames = field(repr=False)

    @property
    def keypoints(self) -> Points:
        return self.cloud.points[self.keypoint_indices]


@dataclass(frozen=True, slots=True)
class RecognitionResult:
    """Output of one run. ``config`` holds the resolution-scaled options."""
    resolution: float
    config: RecognitionConfig
    model: CloudFeatures
    scene: CloudFeatures
    correspondences: Correspondences
    clusters: list[PoseCluster]
    timings: dict[str, float] = field(default_factory=dict, repr=False)


@contextmanager
def _stage(name: str, timings: dict[str, float]) -> Iterator[None]:
    start = time.perf_counter()
    try:
        yield
    finally:
        timings[name] = time.perf_counter() - start
        logger.info("%s: %.3f s", name, timings[name])


def _as_cloud(cloud: PointCloud | Points, name: str) -> PointCloud:
    return cloud if isinstance(cloud, PointCloud) else PointCloud(np.asarray(cloud), name=name)


def _describe(
    cloud: PointCloud,
    normals: Points,
    keypoint_indices: NDArray[I64],
    cfg: RecognitionConfig,
    engine: LocalDescriptorEngine,
) -> CloudFeatures:
    surface = Surface.build(cloud.points, normals, workers=cfg.workers)
    kps = cloud.points[keypoint_indices]
    kp_normals = normals[keypoint_indices]
    descriptors = engine.compute(kps, kp_normals, surface)
    frames = estimate_reference_frames(
        kps, kp_normals, surface, cfg.rf_rad,
        min_neighbors=cfg.min_neighbors, workers=cfg.workers,
    )
    return CloudFeatures(cloud, normals, keypoint_indices, descriptors, frames)


def recognize(
    model: PointCloud | Points,
    scene: PointCloud | Points,
    config: RecognitionConfig = RecognitionConfig(),
    *,
    model_keypoints: NDArray[I64] | None = None,
    scene_keypoints: NDArray[I64] | None = None,
    descriptor_engine: LocalDescriptorEngine | None = None,
) -> RecognitionResult:
    """
    Find instances of ``model`` in ``scene``.

    ``model_keypoints`` / ``scene_keypoints`` are optional keypoint indices
    that replace uniform sampling. ``descriptor_engine`` replaces the
    built-in SHOT-style engine (its own radius is then used as is).
    """
    model = _as_cloud(model, "model")
    scene = _as_cloud(scene, "scene")
    timings: dict[str, float] = {}

    with _stage("set up resolution", timings):
        resolution = compute_cloud_resolution(
            model.points, index_factory=lambda: KDTreeIndex(workers=config.workers)
        )
        cfg = config.scaled(resolution)
    logger.info("Model resolution:       %g", resolution)
    logger.info("Model sampling size:    %g", cfg.model_ss)
    logger.info("Scene sampling size:    %g", cfg.scene_ss)
    logger.info("LRF support radius:     %g", cfg.rf_rad)
    logger.info("Descriptor radius:      %g", cfg.descr_rad)
    logger.info("Clustering bin size:    %g", cfg.cg_size)

    with _stage("compute normals", timings):
        model_normals = estimate_normals(model.points, k=cfg.normal_k, workers=cfg.workers)
        scene_normals = estimate_normals(scene.points, k=cfg.normal_k, workers=cfg.workers)

    with _stage("extract keypoints", timings):
        if model_keypoints is None:
            model_keypoints = uniform_sampling(model.points, cfg.model_ss)
        if scene_keypoints is None:
            scene_keypoints = uniform_sampling(scene.points, cfg.scene_ss)
        model_keypoints = np.asarray(model_keypoints, dtype=np.int64)
        scene_keypoints = np.asarray(scene_keypoints, dtype=np.int64)
    logger.info("Model total points: %d; Selected Keypoints: %d", len(model), model_keypoints.size)
    logger.info("Scene total points: %d; Selected Keypoints: %d", len(scene), scene_keypoints.size)

    engine = descriptor_engine or ShotDescriptorEngine(
        radius=cfg.descr_rad, min_neighbors=cfg.min_neighbors, workers=cfg.workers
    )
    with _stage("compute descriptors and frames", timings):
        model_features = _describe(model, model_normals, model_keypoints, cfg, engine)
        scene_features = _describe(scene, scene_normals, scene_keypoints, cfg, engine)

    with _stage("find model-scene correspondences", timings):
        correspondences = find_correspondences(
            model_features.descriptors,
            scene_features.descriptors,
            max_distance=cfg.match_thresh,
            index_factory=lambda: KDTreeIndex(workers=cfg.workers),
        )

    with _stage("cluster using Hough 3D", timings):
        clusters = HoughClusterer(cfg.cluster_params()).recognize(
            model_features.keypoints,
            model_features.frames,
            scene_features.keypoints,
            scene_features.frames,
            correspondences,
        )
    logger.info("Model instances found: %d", len(clusters))

    return RecognitionResult(
        resolution=resolution,
        config=cfg,
        model=model_features,
        scene=scene_features,
        correspondences=correspondences,
        clusters=clusters,
        timings=timings,
    )
