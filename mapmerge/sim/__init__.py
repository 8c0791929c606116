"""Synthetic maps for tests and demos."""

from .maps import SyntheticSession, generate_floor_plan, make_sessions, rotate_cells_90

__all__ = [
    "SyntheticSession",
    "generate_floor_plan",
    "make_sessions",
    "rotate_cells_90",
]
