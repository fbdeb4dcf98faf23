"""Rigid 3D object recognition by correspondence grouping (Hough voting)."""

from corrgroup.cloud import CloudLoadError, PointCloud, load_cloud
from corrgroup.config import RecognitionConfig
from corrgroup.frames import ReferenceFrames, Surface, estimate_reference_frames
from corrgroup.hough import ClusterParams, HoughClusterer, PoseCluster
from corrgroup.matching import Correspondence, Correspondences, find_correspondences
from corrgroup.pipeline import RecognitionResult, recognize
from corrgroup.resolution import compute_cloud_resolution
from corrgroup.search import KDTreeIndex, NearestNeighborIndex

__all__ = [
    "CloudLoadError",
    "ClusterParams",
    "Correspondence",
    "Correspondences",
    "HoughClusterer",
    "KDTreeIndex",
    "NearestNeighborIndex",
    "PointCloud",
    "PoseCluster",
    "RecognitionConfig",
    "RecognitionResult",
    "ReferenceFrames",
    "Surface",
    "compute_cloud_resolution",
    "estimate_reference_frames",
    "find_correspondences",
    "load_cloud",
    "recognize",
]
