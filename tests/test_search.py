import numpy as np
import pytest

from corrgroup.search import KDTreeIndex, kdtree_index


def test_nearest_k_matches_brute_force(rng):
    data = rng.normal(size=(200, 5))
    query = rng.normal(size=(30, 5))

    nn = kdtree_index(data).nearest_k(query, 3)

    d = np.linalg.norm(query[:, None, :] - data[None, :, :], axis=2)
    expected = np.argsort(d, axis=1)[:, :3]
    np.testing.assert_array_equal(nn.indices, expected)
    np.testing.assert_allclose(nn.dists, np.take_along_axis(d, expected, axis=1))


def test_missing_neighbours_are_flagged():
    index = kdtree_index(np.zeros((1, 3)))

    nn = index.nearest_k(np.zeros((1, 3)), 2)

    assert nn.found().tolist() == [[True, False]]
    assert nn.indices[0, 1] == len(index)


def test_query_before_build_raises():
    with pytest.raises(RuntimeError):
        KDTreeIndex().nearest_k(np.zeros((1, 3)), 1)


def test_radius_returns_sorted_indices():
    pts = np.array([[0.0, 0.0, 0.0], [5.0, 0.0, 0.0], [0.1, 0.0, 0.0], [0.0, 0.2, 0.0]])
    idx = kdtree_index(pts).radius(np.zeros(3), 0.5)
    assert idx.tolist() == [0, 2, 3]


def test_empty_query_gives_empty_result():
    nn = kdtree_index(np.zeros((3, 3))).nearest_k(np.empty((0, 3)), 1)
    assert nn.dists.shape == (0, 1)
