"""Exceptions raised by the merging pipeline.

Estimation failures (too little overlap between grids) are not exceptions:
they are reported as a False return from estimate_transform() so callers can
retry with other inputs. Only API misuse raises.
"""


class MapMergeError(Exception):
    """Base class for map merging errors."""


class TransformCountMismatch(MapMergeError, ValueError):
    """Number of transforms does not match the number of grids."""

    def __init__(self, n_transforms: int, n_grids: int):
        self.n_transforms = n_transforms
        self.n_grids = n_grids
        super().__init__(
            f"got {n_transforms} transforms for {n_grids} grids; "
            f"counts must be equal"
        )
