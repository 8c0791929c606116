"""Planar rotation helpers built on unit quaternions.

Map merging works with rotations about the map's out-of-plane (z) axis only,
but poses crossing the package boundary carry full quaternions. This module
provides the conversions needed to move between the two:
- yaw angle <-> quaternion about z
- yaw extraction from an arbitrary quaternion (ZYX convention)
- quaternion normalization and sign canonicalization
- quaternion -> 3x3 rotation matrix

Conventions:
- Quaternion arrays are ordered [qw, qx, qy, qz] where qw is the scalar part
- Yaw is measured counter-clockwise about +z, in radians
- Rotation matrices are 3x3 numpy arrays such that v_world = R @ v_local
"""

import numpy as np
from numpy.typing import NDArray


def quat_normalize(q: NDArray[np.float64]) -> NDArray[np.float64]:
    """Scale a quaternion to unit norm.

    Args:
        q: Quaternion as numpy array [qw, qx, qy, qz].

    Returns:
        Unit quaternion [qw, qx, qy, qz].

    Raises:
        ValueError: If q is not a 4-element array or has zero norm.

    Example:
        >>> q = quat_normalize(np.array([2.0, 0.0, 0.0, 0.0]))
        >>> print(q)  # [1. 0. 0. 0.]
    """
    q = np.asarray(q, dtype=np.float64)
    if q.shape != (4,):
        raise ValueError(f"Expected 4-element quaternion, got shape {q.shape}")

    norm = np.linalg.norm(q)
    if not np.isfinite(norm) or norm == 0.0:
        raise ValueError(f"Quaternion must have finite non-zero norm, got {q}")

    return q / norm


def quat_canonical_sign(q: NDArray[np.float64]) -> NDArray[np.float64]:
    """Return the representative of {q, -q} with a non-negative scalar part.

    q and -q encode the same rotation. Comparing quaternions for equality
    only makes sense after both have been brought to the same hemisphere.

    Args:
        q: Quaternion as numpy array [qw, qx, qy, qz].

    Returns:
        Quaternion equal to q or -q, with qw >= 0.

    Example:
        >>> quat_canonical_sign(np.array([-1.0, 0.0, 0.0, 0.0]))
        array([ 1., -0., -0., -0.])
    """
    q = np.asarray(q, dtype=np.float64)
    if q[0] < 0.0:
        return -q
    return q.copy()


def yaw_to_quat(yaw: float) -> NDArray[np.float64]:
    """Build the unit quaternion of a rotation about the z-axis.

    Args:
        yaw: Rotation angle about +z in radians.

    Returns:
        Unit quaternion [cos(yaw/2), 0, 0, sin(yaw/2)].

    Example:
        >>> q = yaw_to_quat(np.pi / 2)  # 90° about z
        >>> print(f"Norm (should be 1.0): {np.linalg.norm(q):.6f}")
    """
    half = 0.5 * yaw
    q = np.array([np.cos(half), 0.0, 0.0, np.sin(half)], dtype=np.float64)

    # cos^2 + sin^2 can drift off 1 in the last bit
    return q / np.linalg.norm(q)


def quat_to_yaw(q: NDArray[np.float64]) -> float:
    """Extract the yaw angle (rotation about z) from a quaternion.

    Uses the ZYX (yaw-pitch-roll) decomposition, so roll and pitch
    components of a general 3D rotation are discarded. The quaternion is
    normalized first, so slightly non-unit inputs are accepted.

    Args:
        q: Quaternion as numpy array [qw, qx, qy, qz].

    Returns:
        Yaw angle in radians, in [-π, π].

    Raises:
        ValueError: If q is not a 4-element array or has zero norm.

    Example:
        >>> yaw = quat_to_yaw(yaw_to_quat(0.3))
        >>> print(f"{yaw:.3f}")  # 0.300
    """
    qw, qx, qy, qz = quat_normalize(q)

    sin_yaw_cos_pitch = 2.0 * (qw * qz + qx * qy)
    cos_yaw_cos_pitch = 1.0 - 2.0 * (qy * qy + qz * qz)
    return float(np.arctan2(sin_yaw_cos_pitch, cos_yaw_cos_pitch))


def quat_to_rotation_matrix(q: NDArray[np.float64]) -> NDArray[np.float64]:
    """Convert quaternion to rotation matrix.

    Args:
        q: Unit quaternion as numpy array [qw, qx, qy, qz].

    Returns:
        3x3 rotation matrix R such that v_world = R @ v_local.

    Raises:
        ValueError: If q is not a 4-element array.

    Example:
        >>> R = quat_to_rotation_matrix(np.array([1.0, 0.0, 0.0, 0.0]))
        >>> print(R)  # identity
    """
    q = np.asarray(q, dtype=np.float64)
    if q.shape != (4,):
        raise ValueError(f"Expected 4-element quaternion, got shape {q.shape}")

    qw, qx, qy, qz = q

    R = np.array(
        [
            [
                1.0 - 2.0 * (qy * qy + qz * qz),
                2.0 * (qx * qy - qw * qz),
                2.0 * (qx * qz + qw * qy),
            ],
            [
                2.0 * (qx * qy + qw * qz),
                1.0 - 2.0 * (qx * qx + qz * qz),
                2.0 * (qy * qz - qw * qx),
            ],
            [
                2.0 * (qx * qz - qw * qy),
                2.0 * (qy * qz + qw * qx),
                1.0 - 2.0 * (qx * qx + qy * qy),
            ],
        ],
        dtype=np.float64,
    )

    return R
