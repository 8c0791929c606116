"""Transform estimation and composition of occupancy grids.

Main components:
    - MergingPipeline: feed -> estimate_transform -> compose_grids
    - estimate_transforms: feature-based alignment of N grids
    - to_external / to_internal: pose <-> 3x3 matrix conversions
    - compose_grids / fuse_cells: warping and cell fusion

Example usage:
    >>> from mapmerge.merging import MergingPipeline
    >>> pipeline = MergingPipeline()
    >>> pipeline.feed(grids)
    >>> if pipeline.estimate_transform():
    ...     merged = pipeline.compose_grids()
"""

from .compose import canvas_bounds, compose_grids, fuse_cells, warp_grid
from .config import PRESETS, MergeConfig, config_from_preset
from .errors import MapMergeError, TransformCountMismatch
from .estimate_transform import (
    FeatureBackend,
    PairwiseMatch,
    anchor_transforms,
    estimate_transforms,
    match_mask,
)
from .global_estimation import estimate_global_transforms
from .opencv_backend import OpenCVBackend
from .pipeline import MergingPipeline, PipelineState
from .transforms import (
    apply_external,
    apply_internal,
    normalize_quaternion_sign,
    to_external,
    to_internal,
)

__all__ = [
    # Pipeline
    "MergingPipeline",
    "PipelineState",
    # Configuration and errors
    "MergeConfig",
    "PRESETS",
    "config_from_preset",
    "MapMergeError",
    "TransformCountMismatch",
    # Estimation
    "FeatureBackend",
    "OpenCVBackend",
    "PairwiseMatch",
    "estimate_transforms",
    "estimate_global_transforms",
    "anchor_transforms",
    "match_mask",
    # Conversion
    "to_external",
    "to_internal",
    "normalize_quaternion_sign",
    "apply_external",
    "apply_internal",
    # Composition
    "compose_grids",
    "fuse_cells",
    "warp_grid",
    "canvas_bounds",
]
