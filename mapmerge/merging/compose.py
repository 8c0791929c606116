"""Composition of aligned occupancy grids into one merged grid.

Given one transform per grid (mapping the grid's cell coordinates into the
cell frame of grid 0), composition:
    1. Computes the canvas: the integer bounding box of all transformed grid
       footprints in grid-0 cell coordinates
    2. Warps every grid into the canvas with nearest-cell resampling
    3. Fuses the warped grids cell by cell, in input order

Cell coordinates are continuous with the corner of cell (col, row) at
(x, y) = (col, row); the cell's center is at (col + 0.5, row + 0.5).

Cell fusion rule (fuse_cells):
    - A known value always replaces unknown
    - Two known values: 'max' keeps the more occupied one (independent of
      input order), 'first' keeps the value of the earlier grid
"""

import logging
import warnings
from typing import List, Optional, Sequence, Tuple

import cv2
import numpy as np
from numpy.typing import NDArray

from ..coords.rotations import quat_to_yaw
from ..grids.types import UNKNOWN, OccupancyGrid, Pose
from .config import FUSION_RULES
from .errors import TransformCountMismatch
from .transforms import apply_internal

logger = logging.getLogger(__name__)

# Tolerance for snapping transformed corners onto integer cell boundaries
_CORNER_EPS = 1e-6


def fuse_cells(
    existing: NDArray[np.int8], incoming: NDArray[np.int8], rule: str = "max"
) -> NDArray[np.int8]:
    """
    Resolve overlapping cells of the canvas and an incoming warped grid.

    `existing` holds the fused result of all earlier grids, so 'first'
    gives precedence to the lower input index.

    Args:
        existing: Current canvas values, int8 array.
        incoming: Values of the next grid warped into the canvas, same shape.
        rule: 'max' or 'first', applied when both values are known.

    Returns:
        New int8 array with the fused values. Inputs are not modified.

    Raises:
        ValueError: If shapes differ or the rule is unknown.

    Examples:
        >>> fuse_cells(np.array([-1, 0, 100], np.int8), np.array([0, 100, -1], np.int8))
        array([  0, 100, 100], dtype=int8)
        >>> fuse_cells(np.array([-1, 0], np.int8), np.array([0, 100], np.int8), "first")
        array([0, 0], dtype=int8)
    """
    if rule not in FUSION_RULES:
        raise ValueError(f"rule must be one of {FUSION_RULES}, got {rule!r}")
    existing = np.asarray(existing, dtype=np.int8)
    incoming = np.asarray(incoming, dtype=np.int8)
    if existing.shape != incoming.shape:
        raise ValueError(
            f"shape mismatch: existing {existing.shape}, incoming {incoming.shape}"
        )

    fused = existing.copy()
    fill = (existing == UNKNOWN) & (incoming != UNKNOWN)
    fused[fill] = incoming[fill]

    if rule == "max":
        both = (existing != UNKNOWN) & (incoming != UNKNOWN)
        fused[both] = np.maximum(existing[both], incoming[both])

    return fused


def grid_footprint(grid: OccupancyGrid, T: NDArray[np.float64]) -> NDArray[np.float64]:
    """
    Corners of a grid mapped through T.

    Returns:
        Array of shape (4, 2) with the transformed corners (0, 0), (w, 0),
        (0, h), (w, h).
    """
    w, h = grid.width, grid.height
    corners = np.array([[0.0, 0.0], [w, 0.0], [0.0, h], [w, h]])
    return apply_internal(T, corners)


def canvas_bounds(
    grids: Sequence[OccupancyGrid], transforms: Sequence[NDArray[np.float64]]
) -> Tuple[int, int, int, int]:
    """
    Integer bounding box covering every transformed grid.

    Returns:
        (min_x, min_y, width, height) in grid-0 cell coordinates.
    """
    footprints = [
        grid_footprint(grid, T) for grid, T in zip(grids, transforms) if grid.size > 0
    ]
    if not footprints:
        return 0, 0, 0, 0

    points = np.vstack(footprints)
    lo = np.floor(points.min(axis=0) + _CORNER_EPS).astype(np.int64)
    hi = np.ceil(points.max(axis=0) - _CORNER_EPS).astype(np.int64)
    return int(lo[0]), int(lo[1]), int(hi[0] - lo[0]), int(hi[1] - lo[1])


def warp_grid(
    grid: OccupancyGrid,
    T: NDArray[np.float64],
    offset: Tuple[int, int],
    canvas_size: Tuple[int, int],
) -> NDArray[np.int8]:
    """
    Warp a grid into the canvas with nearest-cell resampling.

    Args:
        grid: Source grid.
        T: Forward transform from grid cells to grid-0 cells, shape (3, 3).
        offset: (min_x, min_y) of the canvas in grid-0 cell coordinates.
        canvas_size: (width, height) of the canvas.

    Returns:
        int8 array of shape (height, width); cells not covered by the grid
        are unknown.
    """
    width, height = canvas_size
    if grid.size == 0:
        return np.full((height, width), UNKNOWN, dtype=np.int8)

    # warpAffine indexes pixel centers, T maps cell corners
    to_center = np.array([[1.0, 0.0, 0.5], [0.0, 1.0, 0.5], [0.0, 0.0, 1.0]])
    from_center = np.array(
        [[1.0, 0.0, -0.5 - offset[0]], [0.0, 1.0, -0.5 - offset[1]], [0.0, 0.0, 1.0]]
    )
    M = (from_center @ np.asarray(T, dtype=np.float64) @ to_center)[:2]

    # OpenCV has no signed 8-bit warp
    warped = cv2.warpAffine(
        grid.as_array().astype(np.int16),
        M,
        (width, height),
        flags=cv2.INTER_NEAREST,
        borderMode=cv2.BORDER_CONSTANT,
        borderValue=UNKNOWN,
    )
    return warped.astype(np.int8)


def canvas_origin(reference: OccupancyGrid, offset: Tuple[int, int]) -> Pose:
    """
    World pose of the canvas cell (0, 0).

    The canvas is laid out in the reference grid's cell frame, shifted by
    `offset` cells, so its origin is the reference origin moved by
    offset * resolution along the reference grid's axes.
    """
    qx, qy, qz, qw = reference.origin.orientation
    yaw = quat_to_yaw(np.array([qw, qx, qy, qz]))
    dx = offset[0] * reference.resolution
    dy = offset[1] * reference.resolution
    x0, y0, z0 = reference.origin.position

    return Pose(
        position=(
            x0 + dx * np.cos(yaw) - dy * np.sin(yaw),
            y0 + dx * np.sin(yaw) + dy * np.cos(yaw),
            z0,
        ),
        orientation=reference.origin.orientation,
    )


def compose_grids(
    grids: Sequence[OccupancyGrid],
    transforms: Sequence[NDArray[np.float64]],
    rule: str = "max",
    max_canvas_cells: Optional[int] = None,
) -> Optional[OccupancyGrid]:
    """
    Merge grids into one grid using per-grid transforms.

    Args:
        grids: Input grids; grid 0 defines the output frame and resolution.
        transforms: One 3x3 transform per grid, mapping grid cells to grid-0
                    cells.
        rule: Fusion rule for overlapping known cells ('max' or 'first').
        max_canvas_cells: Reject canvases with more cells than this.

    Returns:
        Merged grid, or None if there is nothing to merge or the transforms
        produce an unusable canvas. A single grid is returned as an exact
        copy without resampling.

    Raises:
        TransformCountMismatch: If len(transforms) != len(grids).
    """
    n_grids = len(grids)
    if len(transforms) != n_grids:
        raise TransformCountMismatch(len(transforms), n_grids)

    if n_grids == 0:
        return None
    elif n_grids == 1:
        return grids[0].copy()

    return _compose_many(grids, transforms, rule, max_canvas_cells)


def _compose_many(
    grids: Sequence[OccupancyGrid],
    transforms: Sequence[NDArray[np.float64]],
    rule: str,
    max_canvas_cells: Optional[int],
) -> Optional[OccupancyGrid]:
    matrices: List[NDArray[np.float64]] = [
        np.asarray(T, dtype=np.float64) for T in transforms
    ]
    for i, T in enumerate(matrices):
        if T.shape != (3, 3) or not np.all(np.isfinite(T)):
            logger.warning("transform %d is not a finite 3x3 matrix, cannot compose", i)
            return None

    reference = grids[0]
    resolutions = {grid.resolution for grid in grids}
    if len(resolutions) > 1:
        warnings.warn(
            f"Merging grids with different resolutions {sorted(resolutions)}; "
            f"output uses {reference.resolution}",
            UserWarning,
        )

    min_x, min_y, width, height = canvas_bounds(grids, matrices)
    if width <= 0 or height <= 0:
        logger.warning("transformed grids cover no cells, nothing to compose")
        return None
    if max_canvas_cells is not None and width * height > max_canvas_cells:
        logger.warning(
            "merged canvas %dx%d exceeds %d cells, rejecting transforms",
            width,
            height,
            max_canvas_cells,
        )
        return None

    logger.debug("composing %d grids into %dx%d canvas", len(grids), width, height)
    merged = np.full((height, width), UNKNOWN, dtype=np.int8)
    for grid, T in zip(grids, matrices):
        warped = warp_grid(grid, T, (min_x, min_y), (width, height))
        merged = fuse_cells(merged, warped, rule)

    return OccupancyGrid.from_array(
        merged,
        resolution=reference.resolution,
        origin=canvas_origin(reference, (min_x, min_y)),
    )
