"""Synthetic occupancy maps for testing and demos.

Generates a floor plan (rooms separated by walls with doorways, furnished
with rectangular obstacles) and cuts it into overlapping "mapping sessions",
each expressed in its own frame: cropped, optionally rotated by multiples of
90°, and padded with unknown cells. The exact transform of every session into
the frame of session 0 is returned alongside, which makes the sessions usable
as ground truth for transform estimation and composition.
"""

from dataclasses import dataclass
from typing import List, Optional, Sequence, Tuple

import numpy as np

from ..grids.types import FREE, OCCUPIED, UNKNOWN, OccupancyGrid, Pose


@dataclass
class SyntheticSession:
    """
    One synthetic map with its ground-truth placement.

    Attributes:
        grid: The session's occupancy grid.
        transform: 3x3 transform mapping the grid's cell coordinates into the
                   cell coordinates of session 0.
    """

    grid: OccupancyGrid
    transform: np.ndarray


def generate_floor_plan(
    width: int = 400,
    height: int = 400,
    room_size: int = 80,
    wall_thickness: int = 2,
    door_width: int = 14,
    n_obstacles: int = 120,
    obstacle_size: Tuple[int, int] = (3, 14),
    seed: Optional[int] = 0,
) -> np.ndarray:
    """
    Generate a fully explored floor plan.

    Args:
        width: Plan width in cells.
        height: Plan height in cells.
        room_size: Nominal room edge length in cells.
        wall_thickness: Wall thickness in cells.
        door_width: Width of doorways in internal walls.
        n_obstacles: Number of rectangular obstacles.
        obstacle_size: (min, max) obstacle edge length in cells.
        seed: Random seed.

    Returns:
        int8 array of shape (height, width) with free (0) and occupied (100)
        cells.

    Example:
        >>> plan = generate_floor_plan(200, 150, seed=1)
        >>> plan.shape
        (150, 200)
    """
    if width < 4 * wall_thickness or height < 4 * wall_thickness:
        raise ValueError(f"plan {width}x{height} too small for walls")
    rng = np.random.default_rng(seed)
    cells = np.full((height, width), FREE, dtype=np.int8)

    # Outer walls
    t = wall_thickness
    cells[:t, :] = OCCUPIED
    cells[-t:, :] = OCCUPIED
    cells[:, :t] = OCCUPIED
    cells[:, -t:] = OCCUPIED

    # Internal walls on a jittered lattice, each segment with one doorway
    xs = _wall_positions(width, room_size, rng)
    ys = _wall_positions(height, room_size, rng)
    y_bounds = [0] + ys + [height]
    x_bounds = [0] + xs + [width]
    for x in xs:
        cells[:, x : x + t] = OCCUPIED
        for y0, y1 in zip(y_bounds[:-1], y_bounds[1:]):
            _cut_door(cells, x, y0, y1, t, door_width, rng, vertical=True)
    for y in ys:
        cells[y : y + t, :] = OCCUPIED
        for x0, x1 in zip(x_bounds[:-1], x_bounds[1:]):
            _cut_door(cells, y, x0, x1, t, door_width, rng, vertical=False)

    # Furniture
    lo, hi = obstacle_size
    for _ in range(n_obstacles):
        w, h = rng.integers(lo, hi + 1, size=2)
        x = rng.integers(t, max(t + 1, width - t - w))
        y = rng.integers(t, max(t + 1, height - t - h))
        cells[y : y + h, x : x + w] = OCCUPIED

    return cells


def _wall_positions(extent: int, room_size: int, rng: np.random.Generator) -> List[int]:
    positions = []
    jitter = max(1, room_size // 5)
    p = room_size
    while p < extent - room_size // 2:
        positions.append(int(p + rng.integers(-jitter, jitter + 1)))
        p += room_size
    return positions


def _cut_door(
    cells: np.ndarray,
    wall: int,
    start: int,
    stop: int,
    thickness: int,
    door_width: int,
    rng: np.random.Generator,
    vertical: bool,
) -> None:
    span = stop - start - 2 * thickness - door_width
    if span <= 0:
        return
    d = start + thickness + int(rng.integers(0, span + 1))
    if vertical:
        cells[d : d + door_width, wall : wall + thickness] = FREE
    else:
        cells[wall : wall + thickness, d : d + door_width] = FREE


def rotate_cells_90(cells: np.ndarray, k: int) -> Tuple[np.ndarray, np.ndarray]:
    """
    Rotate a cell array by k * 90° counter-clockwise (as np.rot90).

    Args:
        cells: Array of shape (height, width).
        k: Number of quarter turns.

    Returns:
        Tuple of (rotated cells, T) where T maps cell coordinates of the
        rotated array back to cell coordinates of the input array.
    """
    T = np.eye(3)
    rotated = np.asarray(cells)
    for _ in range(k % 4):
        w = rotated.shape[1]
        # rotated[i, j] = previous[j, w - 1 - i]
        step = np.array([[0.0, -1.0, w], [1.0, 0.0, 0.0], [0.0, 0.0, 1.0]])
        T = T @ step
        rotated = np.rot90(rotated)
    return np.ascontiguousarray(rotated), T


def make_sessions(
    plan: np.ndarray,
    windows: Sequence[Tuple[int, int, int, int]],
    rotations: Optional[Sequence[int]] = None,
    resolution: float = 0.05,
    pad: int = 10,
) -> List[SyntheticSession]:
    """
    Cut a floor plan into overlapping maps with independent frames.

    Args:
        plan: Floor plan from generate_floor_plan.
        windows: (x, y, width, height) crop of the plan for each session.
        rotations: Quarter turns applied to each session after cropping.
                   Session 0 should not be rotated so that its frame matches
                   the plan's orientation; defaults to no rotation.
        resolution: Cell size of the produced grids in meters.
        pad: Unknown cells added around every crop.

    Returns:
        Sessions with grids and their exact transforms into session 0.
    """
    if rotations is None:
        rotations = [0] * len(windows)
    if len(rotations) != len(windows):
        raise ValueError("rotations must have one entry per window")

    sessions = []
    x_ref, y_ref = (windows[0][0], windows[0][1]) if windows else (0, 0)
    for (x, y, w, h), k in zip(windows, rotations):
        if x < 0 or y < 0 or x + w > plan.shape[1] or y + h > plan.shape[0]:
            raise ValueError(f"window {(x, y, w, h)} outside plan {plan.shape[::-1]}")

        crop = np.full((h + 2 * pad, w + 2 * pad), UNKNOWN, dtype=np.int8)
        crop[pad : pad + h, pad : pad + w] = plan[y : y + h, x : x + w]
        cells, R = rotate_cells_90(crop, k)

        shift = np.array([[1.0, 0.0, x - x_ref], [0.0, 1.0, y - y_ref], [0.0, 0.0, 1.0]])
        origin = Pose(position=((x - pad) * resolution, (y - pad) * resolution, 0.0))
        grid = OccupancyGrid.from_array(cells, resolution=resolution, origin=origin)
        sessions.append(SyntheticSession(grid=grid, transform=shift @ R))

    return sessions
