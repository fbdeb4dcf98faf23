import numpy as np
import pytest

from corrgroup.keypoints import uniform_sampling


def test_one_keypoint_per_voxel_closest_to_centre():
    pts = np.array([
        [0.1, 0.1, 0.1],
        [0.45, 0.55, 0.5],   # closest to the centre of voxel (0,0,0)
        [0.9, 0.9, 0.9],
        [1.2, 0.2, 0.2],     # alone in voxel (1,0,0)
        [np.nan, 0.0, 0.0],
    ])

    idx = uniform_sampling(pts, 1.0)

    assert idx.tolist() == [1, 3]


def test_ties_keep_the_lowest_index():
    pts = np.array([[0.25, 0.5, 0.5], [0.75, 0.5, 0.5]])
    assert uniform_sampling(pts, 1.0).tolist() == [0]


def test_every_point_kept_when_voxels_are_tiny(surface_points):
    idx = uniform_sampling(surface_points, 1e-6)
    assert idx.tolist() == list(range(len(surface_points)))


def test_radius_must_be_positive():
    with pytest.raises(ValueError):
        uniform_sampling(np.zeros((1, 3)), 0.0)
