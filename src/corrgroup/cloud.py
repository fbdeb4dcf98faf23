"""
Point cloud value type and file loading.

Loading goes through ``open3d.io.read_point_cloud`` (PCD, PLY, XYZ, ...).
Non-finite points are kept so that every later stage sees the same indices
as the file; the stages skip them on their own.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path

import numpy as np
import open3d as o3d
from numpy.typing import NDArray

from corrgroup.geometry import F64, Points, as_points, finite_rows

logger = logging.getLogger(__name__)


class CloudLoadError(OSError):
    """A point cloud file is missing, unreadable, or holds no points."""


@dataclass(frozen=True, slots=True)
class PointCloud:
    """Immutable cloud: (N,3) positions and optional (N,3) colors in [0,1]."""
    points: Points = field(repr=False)
    colors: NDArray[F64] | None = field(default=None, repr=False)
    name: str = ""

    def __post_init__(self) -> None:
        pts = as_points(self.points).copy()
        pts.flags.writeable = False
        object.__setattr__(self, "points", pts)
        if self.colors is not None:
            cols = as_points(self.colors, "colors").copy()
            if cols.shape != pts.shape:
                raise ValueError("colors must match points in shape.")
            cols.flags.writeable = False
            object.__setattr__(self, "colors", cols)

    def __len__(self) -> int:
        return int(self.points.shape[0])

    @property
    def finite(self) -> NDArray[np.bool_]:
        return finite_rows(self.points)

    def scaled(self, factor: float) -> PointCloud:
        return PointCloud(self.points * float(factor), self.colors, self.name)

    def to_open3d(self) -> o3d.geometry.PointCloud:
        pcd = o3d.geometry.PointCloud()
        ok = self.finite
        pcd.points = o3d.utility.Vector3dVector(np.ascontiguousarray(self.points[ok]))
        if self.colors is not None:
            pcd.colors = o3d.utility.Vector3dVector(np.ascontiguousarray(self.colors[ok]))
        return pcd


def load_cloud(path: str | Path) -> PointCloud:
    """
    Read a point cloud file.

    Raises:
      CloudLoadError: the file does not exist, cannot be parsed, or is empty.
    """
    path = Path(path)
    if not path.is_file():
        raise CloudLoadError(f"No such point cloud file: {path}")

    try:
        pcd = o3d.io.read_point_cloud(
            str(path), remove_nan_points=False, remove_infinite_points=False
        )
    except RuntimeError as exc:
        raise CloudLoadError(f"Cannot read point cloud {path}: {exc}") from exc

    # open3d reports parse failures as an empty cloud rather than an exception.
    if not pcd.has_points():
        raise CloudLoadError(f"Point cloud {path} holds no points.")

    points = np.asarray(pcd.points, dtype=np.float64)
    colors = np.asarray(pcd.colors, dtype=np.float64) if pcd.has_colors() else None
    cloud = PointCloud(points, colors, name=path.stem)
    logger.debug("loaded %s: %d points (%d finite)", path, len(cloud), int(cloud.finite.sum()))
    return cloud


def save_cloud(cloud: PointCloud, path: str | Path) -> None:
    """Write the finite points of ``cloud`` to ``path`` (format from the suffix)."""
    path = Path(path)
    if not o3d.io.write_point_cloud(str(path), cloud.to_open3d()):
        raise CloudLoadError(f"Cannot write point cloud {path}")
