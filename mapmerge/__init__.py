"""Merging of occupancy-grid maps built in unrelated coordinate frames.

This package contains:
- grids: Occupancy grid data model, image rendering and map files
- coords: Quaternion / yaw helpers for planar rotations
- merging: Transform estimation, conversion and grid composition
- sim: Synthetic maps for tests and demos
"""

__version__ = "0.1.0"
