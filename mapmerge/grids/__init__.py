"""Occupancy grid data model, rendering and map files."""

from .io import load_map, save_map
from .rasterize import UNKNOWN_INTENSITY, grid_to_image, occupancy_to_intensity
from .types import FREE, OCCUPIED, UNKNOWN, ExternalTransform, OccupancyGrid, Pose

__all__ = [
    # Types
    "OccupancyGrid",
    "Pose",
    "ExternalTransform",
    "UNKNOWN",
    "FREE",
    "OCCUPIED",
    # Rendering
    "grid_to_image",
    "occupancy_to_intensity",
    "UNKNOWN_INTENSITY",
    # Map files
    "load_map",
    "save_map",
]
