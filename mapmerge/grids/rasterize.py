"""Rendering occupancy grids as grayscale images.

Feature detectors need intensity images. Occupancy values are mapped
linearly from white (free) to black (occupied), while unknown cells get a
mid-gray value that no known cell can produce, so the boundary between
explored and unexplored space does not masquerade as a wall.
"""

import numpy as np
from numpy.typing import NDArray

from .types import OCCUPIED, UNKNOWN, OccupancyGrid

# 255 - 2.55 * v never rounds to 127 for integer v in [0, 100]
UNKNOWN_INTENSITY = 127


def occupancy_to_intensity(cells: NDArray) -> NDArray[np.uint8]:
    """
    Map occupancy values to 8-bit intensities.

    Args:
        cells: Array of occupancy values (-1 or 0..100), any shape.

    Returns:
        uint8 array of the same shape: unknown -> 127, known value v ->
        round(255 - 2.55 * v), i.e. free = 255 and occupied = 0.

    Examples:
        >>> occupancy_to_intensity(np.array([-1, 0, 100]))
        array([127, 255,   0], dtype=uint8)
    """
    cells = np.asarray(cells)
    known = np.clip(cells, 0, OCCUPIED).astype(np.float64)
    intensity = np.rint(255.0 - 2.55 * known).astype(np.uint8)
    intensity[cells == UNKNOWN] = UNKNOWN_INTENSITY
    return intensity


def grid_to_image(grid: OccupancyGrid) -> NDArray[np.uint8]:
    """
    Render an occupancy grid as a single-channel image.

    Args:
        grid: Source occupancy grid.

    Returns:
        uint8 image of shape (grid.height, grid.width). Pixel (row, col)
        corresponds to cell (row, col) of the grid.

    Examples:
        >>> grid = OccupancyGrid(width=3, height=1, resolution=0.05,
        ...                      data=[-1, 0, 100])
        >>> grid_to_image(grid)
        array([[127, 255,   0]], dtype=uint8)
    """
    return occupancy_to_intensity(grid.as_array())
