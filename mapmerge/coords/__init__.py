"""Rotation helpers for planar map alignment.

Quaternions used at the package boundary are converted to and from yaw
angles about the out-of-plane axis here.
"""

from mapmerge.coords.rotations import (
    quat_canonical_sign,
    quat_normalize,
    quat_to_rotation_matrix,
    quat_to_yaw,
    yaw_to_quat,
)

__all__ = [
    "quat_canonical_sign",
    "quat_normalize",
    "quat_to_rotation_matrix",
    "quat_to_yaw",
    "yaw_to_quat",
]
