"""Conversions between external poses and internal 2D transform matrices.

Two representations of the same planar transform are used:
    - ExternalTransform: translation (x, y, z) + quaternion (x, y, z, w),
      exchanged with callers
    - internal 3x3 homogeneous matrix in grid-cell coordinates,
      used for estimation and warping:
            T = [[s*cos(yaw), -s*sin(yaw), tx],
                 [s*sin(yaw),  s*cos(yaw), ty],
                 [         0,           0,  1]]

Going to the external form keeps only yaw and (tx, ty); any uniform scale
in the matrix is dropped. Going to the internal form keeps only the yaw of
the quaternion and the x/y translation.

Both conversions are pure functions.
"""

import numpy as np
from numpy.typing import NDArray

from ..coords.rotations import (
    quat_canonical_sign,
    quat_to_rotation_matrix,
    quat_to_yaw,
    yaw_to_quat,
)
from ..grids.types import ExternalTransform


def to_external(T: NDArray[np.float64]) -> ExternalTransform:
    """
    Convert an internal 3x3 transform to translation + quaternion form.

    Args:
        T: Homogeneous transform of shape (3, 3).

    Returns:
        ExternalTransform with unit quaternion about z and zero z-translation.
        The sign of the quaternion is not canonicalized.

    Raises:
        ValueError: If T is not 3x3 or contains non-finite values.

    Examples:
        >>> T = np.array([[0.0, -1.0, 2.0], [1.0, 0.0, 3.0], [0.0, 0.0, 1.0]])
        >>> t = to_external(T)
        >>> t.translation
        (2.0, 3.0, 0.0)
    """
    T = np.asarray(T, dtype=np.float64)
    if T.shape != (3, 3):
        raise ValueError(f"T must have shape (3, 3), got {T.shape}")
    if not np.all(np.isfinite(T)):
        raise ValueError("T must be finite")

    yaw = np.arctan2(T[1, 0], T[0, 0])
    qw, qx, qy, qz = yaw_to_quat(yaw)

    return ExternalTransform(
        translation=(T[0, 2], T[1, 2], 0.0),
        rotation=(qx, qy, qz, qw),
    )


def to_internal(transform: ExternalTransform) -> NDArray[np.float64]:
    """
    Convert an external transform to an internal 3x3 rigid transform.

    z-translation and rotation about any axis other than z are discarded.

    Args:
        transform: External transform. The quaternion need not be exactly
                   unit length.

    Returns:
        Homogeneous transform of shape (3, 3).

    Examples:
        >>> t = ExternalTransform(translation=(1.0, 2.0, 5.0))
        >>> to_internal(t)[:2, 2]
        array([1., 2.])
    """
    qx, qy, qz, qw = transform.rotation
    yaw = quat_to_yaw(np.array([qw, qx, qy, qz]))
    c = np.cos(yaw)
    s = np.sin(yaw)
    x, y, _ = transform.translation

    return np.array(
        [[c, -s, x], [s, c, y], [0.0, 0.0, 1.0]],
        dtype=np.float64,
    )


def normalize_quaternion_sign(transform: ExternalTransform) -> ExternalTransform:
    """
    Return the same transform with the quaternion's w made non-negative.

    Use before comparing rotations, since q and -q are the same rotation.
    """
    qx, qy, qz, qw = transform.rotation
    qw, qx, qy, qz = quat_canonical_sign(np.array([qw, qx, qy, qz]))
    return ExternalTransform(translation=transform.translation, rotation=(qx, qy, qz, qw))


def apply_external(transform: ExternalTransform, point: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Apply an external transform to a 3D point: R(q) @ p + t.

    Args:
        transform: Transform to apply.
        point: Point of shape (3,).

    Returns:
        Transformed point of shape (3,).
    """
    point = np.asarray(point, dtype=np.float64)
    if point.shape != (3,):
        raise ValueError(f"point must have shape (3,), got {point.shape}")

    qx, qy, qz, qw = transform.rotation
    R = quat_to_rotation_matrix(np.array([qw, qx, qy, qz]))
    return R @ point + np.asarray(transform.translation)


def apply_internal(T: NDArray[np.float64], points: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Apply an internal transform to 2D points.

    Args:
        T: Homogeneous transform of shape (3, 3).
        points: Points of shape (N, 2) or (2,).

    Returns:
        Transformed points with the same shape as the input.
    """
    points = np.asarray(points, dtype=np.float64)
    single = points.ndim == 1
    pts = np.atleast_2d(points)
    if pts.shape[1] != 2:
        raise ValueError(f"points must have shape (N, 2) or (2,), got {points.shape}")

    homogeneous = np.column_stack([pts, np.ones(len(pts))])
    mapped = homogeneous @ np.asarray(T, dtype=np.float64).T
    result = mapped[:, :2] / mapped[:, 2:3]
    return result[0] if single else result
