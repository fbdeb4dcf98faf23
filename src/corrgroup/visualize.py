"""
open3d geometries for inspecting a recognition result.

The scene is drawn as loaded; each instance is the model moved by its pose
(red). With keypoints or correspondences enabled, an untransformed copy of
the model is shifted by -1 along x so it does not overlap the scene.
"""

from __future__ import annotations

import numpy as np
import open3d as o3d

from corrgroup.geometry import apply_transform
from corrgroup.pipeline import RecognitionResult

OFF_SCENE_SHIFT = np.array([-1.0, 0.0, 0.0])


def _colored(points: np.ndarray, rgb: tuple[float, float, float]) -> o3d.geometry.PointCloud:
    pts = points[np.isfinite(points).all(axis=1)]
    pcd = o3d.geometry.PointCloud()
    pcd.points = o3d.utility.Vector3dVector(np.ascontiguousarray(pts))
    pcd.paint_uniform_color(rgb)
    return pcd


def build_geometries(
    result: RecognitionResult,
    *,
    show_keypoints: bool = False,
    show_correspondences: bool = False,
) -> list[o3d.geometry.Geometry]:
    """Geometries for :func:`show`, without opening a window."""
    scene = result.scene.cloud
    model = result.model.cloud
    geoms: list[o3d.geometry.Geometry] = [scene.to_open3d()]

    off_model_kps = result.model.keypoints + OFF_SCENE_SHIFT
    if show_keypoints or show_correspondences:
        geoms.append(_colored(model.points + OFF_SCENE_SHIFT, (1.0, 1.0, 0.5)))

    if show_keypoints:
        geoms.append(_colored(result.scene.keypoints, (0.0, 0.0, 1.0)))
        geoms.append(_colored(off_model_kps, (0.0, 0.0, 1.0)))

    scene_kps = result.scene.keypoints
    for cluster in result.clusters:
        geoms.append(_colored(apply_transform(cluster.transform, model.points), (1.0, 0.0, 0.0)))

        if show_correspondences and len(cluster):
            ends = np.vstack([
                off_model_kps[cluster.correspondences.model_indices],
                scene_kps[cluster.correspondences.scene_indices],
            ])
            n = len(cluster)
            lines = np.column_stack([np.arange(n), np.arange(n) + n])
            ls = o3d.geometry.LineSet(
                points=o3d.utility.Vector3dVector(ends),
                lines=o3d.utility.Vector2iVector(lines.astype(np.int32)),
            )
            ls.paint_uniform_color((0.0, 1.0, 0.0))
            geoms.append(ls)

    return geoms


def show(result: RecognitionResult, *, show_keypoints: bool = False,
         show_correspondences: bool = False) -> None:
    """Open a blocking viewer window."""
    o3d.visualization.draw_geometries(
        build_geometries(result, show_keypoints=show_keypoints,
                         show_correspondences=show_correspondences),
        window_name="Correspondence Grouping",
    )
