"""
Deterministic synthetic clouds for quick sanity checks.

All generators take an explicit ``numpy.random.Generator`` so every
experiment is reproducible from its seed.
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from corrgroup.geometry import Mat4, Points, apply_transform


@dataclass(frozen=True, slots=True)
class SurfaceConfig:
    """A jittered grid on a bumpy, asymmetric height field."""
    n: int = 40
    extent: float = 1.0
    jitter: float = 0.2     # fraction of the grid spacing
    amplitude: float = 0.25


def height_field(rng: np.random.Generator, cfg: SurfaceConfig = SurfaceConfig()) -> Points:
    """(n*n, 3) points on z = f(x, y) with no rotational or mirror symmetry."""
    spacing = 2.0 * cfg.extent / (cfg.n - 1)
    g = np.linspace(-cfg.extent, cfg.extent, cfg.n)
    x, y = np.meshgrid(g, g, indexing="ij")
    x = x + rng.uniform(-cfg.jitter, cfg.jitter, size=x.shape) * spacing
    y = y + rng.uniform(-cfg.jitter, cfg.jitter, size=y.shape) * spacing
    a = cfg.amplitude
    z = (
        a * np.sin(2.1 * x + 0.3) * np.cos(1.7 * y - 0.2)
        + 0.5 * a * x * x
        + 0.3 * a * x * y
        + 0.2 * a * y
    )
    return np.column_stack([x.ravel(), y.ravel(), z.ravel()]).astype(np.float64)


def transformed(points: Points, T: Mat4, *, rng: np.random.Generator | None = None,
                noise: float = 0.0) -> Points:
    """Apply ``T``, then add isotropic Gaussian noise of std ``noise``."""
    out = apply_transform(T, points)
    if noise > 0.0:
        if rng is None:
            raise ValueError("rng is required when noise > 0.")
        out = out + rng.normal(scale=noise, size=out.shape)
    return out


def uniform_noise_cloud(rng: np.random.Generator, n: int, *, extent: float = 1.0) -> Points:
    """Points drawn uniformly in a cube: a scene with no structure."""
    return rng.uniform(-extent, extent, size=(n, 3)).astype(np.float64)
