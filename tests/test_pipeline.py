import logging

import numpy as np
import pytest

from corrgroup.cloud import PointCloud
from corrgroup.config import RecognitionConfig
from corrgroup.geometry import make_transform, pose_error, random_rotation
from corrgroup.keypoints import uniform_sampling
from corrgroup.pipeline import _stage, recognize
from corrgroup.resolution import compute_cloud_resolution
from corrgroup.synthetic import SurfaceConfig, height_field, transformed, uniform_noise_cloud

# Same sampling density on both sides, so model and scene keypoints coincide.
DENSE = RecognitionConfig(model_ss=3.0, scene_ss=3.0)


@pytest.fixture(scope="module")
def self_run(surface_points):
    model = PointCloud(surface_points, name="model")
    return recognize(model, model, DENSE)


def test_model_found_in_itself(self_run):
    result = self_run

    assert len(result.clusters) == 1
    (cluster,) = result.clusters
    np.testing.assert_allclose(cluster.rotation, np.eye(3), atol=1e-6)
    np.testing.assert_allclose(cluster.translation, np.zeros(3), atol=1e-6)
    assert len(cluster) > DENSE.cg_thresh
    members = cluster.correspondences
    np.testing.assert_array_equal(members.model_indices, members.scene_indices)


def test_model_found_in_itself_with_default_config():
    points = height_field(np.random.default_rng(1234), SurfaceConfig(n=150))
    cfg = RecognitionConfig()

    result = recognize(PointCloud(points), PointCloud(points), cfg)

    assert len(result.clusters) == 1
    (cluster,) = result.clusters
    rot_err, trans_err = pose_error(cluster.transform, np.eye(4))
    assert rot_err < 0.2
    assert trans_err < result.config.cg_size
    assert len(cluster) > cfg.cg_thresh


def test_correspondences_are_valid(self_run):
    corrs = self_run.correspondences
    n_model = self_run.model.keypoint_indices.size
    n_scene = self_run.scene.keypoint_indices.size

    assert len(corrs) > 0
    assert (corrs.distances < self_run.config.match_thresh).all()
    assert ((corrs.model_indices >= 0) & (corrs.model_indices < n_model)).all()
    assert ((corrs.scene_indices >= 0) & (corrs.scene_indices < n_scene)).all()


def test_result_records_scaled_config(self_run, surface_points):
    res = compute_cloud_resolution(surface_points)

    assert self_run.resolution == pytest.approx(res)
    assert self_run.config.cg_size == pytest.approx(10.0 * res)
    assert set(self_run.timings) >= {"compute normals", "cluster using Hough 3D"}


def test_runs_are_repeatable(self_run, surface_points):
    again = recognize(PointCloud(surface_points), PointCloud(surface_points), DENSE)

    assert again.correspondences == self_run.correspondences
    assert len(again.clusters) == len(self_run.clusters)
    for a, b in zip(again.clusters, self_run.clusters):
        np.testing.assert_allclose(a.rotation, b.rotation, atol=1e-12)
        np.testing.assert_allclose(a.translation, b.translation, atol=1e-12)
        assert a.correspondences == b.correspondences


def test_known_motion_is_recovered(surface_points):
    rng = np.random.default_rng(99)
    res = compute_cloud_resolution(surface_points)
    T = make_transform(random_rotation(rng), np.array([0.8, -0.3, 1.5]))
    scene = transformed(surface_points, T, rng=rng, noise=0.01 * res)
    keypoints = uniform_sampling(surface_points, 3.0 * res)

    result = recognize(surface_points, scene, DENSE,
                       model_keypoints=keypoints, scene_keypoints=keypoints)

    assert len(result.clusters) == 1
    (best,) = result.clusters
    rot_err, trans_err = pose_error(best.transform, T)
    assert rot_err < 0.02
    assert trans_err < res
    assert len(best) > DENSE.cg_thresh


def test_uniform_rescaling(surface_points):
    rng = np.random.default_rng(5)
    T = make_transform(random_rotation(rng), np.array([0.2, 0.4, -0.1]))
    scene = transformed(surface_points, T)
    k = 10.0
    keypoints = uniform_sampling(surface_points, 3.0 * compute_cloud_resolution(surface_points))

    small = recognize(surface_points, scene, DENSE,
                      model_keypoints=keypoints, scene_keypoints=keypoints)
    big = recognize(surface_points * k, scene * k, DENSE,
                    model_keypoints=keypoints, scene_keypoints=keypoints)

    assert big.resolution == pytest.approx(k * small.resolution)
    np.testing.assert_array_equal(big.correspondences.model_indices, small.correspondences.model_indices)
    np.testing.assert_array_equal(big.correspondences.scene_indices, small.correspondences.scene_indices)
    assert len(big.clusters) == len(small.clusters) >= 1
    np.testing.assert_allclose(big.clusters[0].rotation, small.clusters[0].rotation, atol=1e-6)
    np.testing.assert_allclose(big.clusters[0].translation, k * small.clusters[0].translation,
                               atol=1e-5 * k)


def test_unrelated_scene_yields_nothing(surface_points):
    noise = uniform_noise_cloud(np.random.default_rng(3), 1600)
    assert recognize(surface_points, noise).clusters == []


class IdentityEngine:
    """Descriptor collaborator stand-in: keypoint i gets the i-th unit vector."""

    def compute(self, keypoints, keypoint_normals, surface):
        return np.eye(len(keypoints))


def test_descriptor_engine_is_pluggable(surface_points):
    res = compute_cloud_resolution(surface_points)
    keypoints = uniform_sampling(surface_points, 3.0 * res)

    result = recognize(surface_points, surface_points, DENSE, descriptor_engine=IdentityEngine(),
                       model_keypoints=keypoints, scene_keypoints=keypoints)

    assert len(result.correspondences) == keypoints.size
    assert len(result.clusters) == 1
    np.testing.assert_allclose(result.clusters[0].translation, 0.0, atol=1e-6)


def test_failed_stage_is_still_timed(caplog):
    timings = {}

    with caplog.at_level(logging.INFO, logger="corrgroup.pipeline"):
        with pytest.raises(RuntimeError):
            with _stage("compute normals", timings):
                raise RuntimeError("stage failed")

    assert timings["compute normals"] >= 0.0
    assert "compute normals:" in caplog.text
