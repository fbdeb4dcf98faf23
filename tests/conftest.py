import numpy as np
import pytest

from corrgroup.synthetic import height_field


@pytest.fixture
def rng():
    return np.random.default_rng(7)


@pytest.fixture(scope="session")
def surface_points():
    """Bumpy asymmetric height field, 1600 points."""
    return height_field(np.random.default_rng(1234))


def paraboloid_patch(x_range=(-0.6, 1.0), y_range=(-0.4, 0.4), step=0.1):
    """Grid on z = 0.4 x^2 + 0.1 y^2 around the origin, with the origin included."""
    xs = np.arange(x_range[0], x_range[1] + step / 2, step)
    ys = np.arange(y_range[0], y_range[1] + step / 2, step)
    x, y = np.meshgrid(xs, ys, indexing="ij")
    z = 0.4 * x * x + 0.1 * y * y
    return np.column_stack([x.ravel(), y.ravel(), z.ravel()])
