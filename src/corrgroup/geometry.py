"""
Rigid SE(3) helpers shared by the recognition stages.

What this module provides
-------------------------
- array type aliases used across the package
- homogeneous transform construction / application
- least-squares rigid alignment from known point pairs (Kabsch / SVD)
- random rotations and pose comparison
"""

from __future__ import annotations

from typing import TypeAlias

import numpy as np
from numpy.typing import NDArray

# ---------------------------------------------------------------------------
# Types: make intent explicit and catch shape/precision mistakes early in review
# ---------------------------------------------------------------------------

F64: TypeAlias = np.float64
I64: TypeAlias = np.int64

Points: TypeAlias = NDArray[F64]  # Expected shape: (N, 3)
Mat4: TypeAlias = NDArray[F64]    # Expected shape: (4, 4)
Mat3: TypeAlias = NDArray[F64]    # Expected shape: (3, 3)
Vec3: TypeAlias = NDArray[F64]    # Expected shape: (3,)


def as_f64(x: NDArray) -> NDArray[F64]:
    """Convert input array-like to a float64 numpy array."""
    return np.asarray(x, dtype=np.float64)


def as_points(x: NDArray, name: str = "points") -> Points:
    """Convert to float64 and require an (N, 3) layout."""
    pts = as_f64(x)
    if pts.ndim != 2 or pts.shape[1] != 3:
        raise ValueError(f"{name} must have shape (N,3), got {pts.shape}.")
    return pts


def finite_rows(pts: Points) -> NDArray[np.bool_]:
    """Mask of rows whose three coordinates are all finite."""
    return np.isfinite(pts).all(axis=1)


# ---------------------------------------------------------------------------
# SE(3) transform utilities
# ---------------------------------------------------------------------------

def make_transform(R: Mat3, t: Vec3) -> Mat4:
    """
    Build a 4x4 homogeneous transform from rotation R and translation t.
    """
    T = np.eye(4, dtype=np.float64)
    T[:3, :3] = as_f64(R)
    T[:3, 3] = as_f64(t).reshape(3)
    return T


def apply_transform(T: Mat4, pts: Points) -> Points:
    """Apply a homogeneous transform to a set of 3D points."""
    pts = as_f64(pts)
    T = as_f64(T)
    return pts @ T[:3, :3].T + T[:3, 3]


# ---------------------------------------------------------------------------
# Rigid alignment with known correspondences (Kabsch / SVD)
# ---------------------------------------------------------------------------

def kabsch(A: Points, B: Points) -> tuple[Mat3, Vec3]:
    """
    Least-squares rigid motion A->B given pairs A[i] <-> B[i].

    Returns (R, t) with B ~= A @ R.T + t and det(R) = +1.
    """
    A = as_f64(A)
    B = as_f64(B)

    if A.shape != B.shape or A.ndim != 2 or A.shape[1] != 3:
        raise ValueError("A and B must have shape (N,3) and match.")
    if A.shape[0] == 0:
        raise ValueError("At least one point pair is required.")

    # Center both sets to decouple translation from rotation.
    cA = A.mean(axis=0)
    cB = B.mean(axis=0)
    AA = A - cA
    BB = B - cB

    U, _, Vt = np.linalg.svd(AA.T @ BB)
    R = Vt.T @ U.T

    # Reflection fix: enforce det(R)=+1 for a proper rotation.
    if np.linalg.det(R) < 0:
        Vt[-1, :] *= -1
        R = Vt.T @ U.T

    t = cB - R @ cA
    return R, t


def kabsch_se3(A: Points, B: Points) -> Mat4:
    """Same as :func:`kabsch`, packed as a homogeneous transform."""
    R, t = kabsch(A, B)
    return make_transform(R, t)


def pose_error(T_est: Mat4, T_gt: Mat4) -> tuple[float, float]:
    """
    Compare estimated and ground-truth transforms.

    Returns:
      (rotation_angle_radians, translation_error_norm)
    """
    Terr = np.linalg.inv(as_f64(T_est)) @ as_f64(T_gt)
    R = Terr[:3, :3]
    t = Terr[:3, 3]
    angle = float(np.arccos(np.clip((np.trace(R) - 1.0) / 2.0, -1.0, 1.0)))
    return angle, float(np.linalg.norm(t))


# ---------------------------------------------------------------------------
# Rotation helpers
# ---------------------------------------------------------------------------

def random_rotation(rng: np.random.Generator) -> Mat3:
    """Generate a random proper rotation matrix (QR-based)."""
    M = rng.normal(size=(3, 3))
    Q, _ = np.linalg.qr(M)
    if np.linalg.det(Q) < 0:
        Q[:, 0] *= -1
    return as_f64(Q)
