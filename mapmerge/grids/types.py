"""Data structures for occupancy-grid map merging.

Key types:
    - Pose: 3D position + unit quaternion, used for grid origins
    - ExternalTransform: translation + quaternion, the transform form exposed
      to callers of the merging pipeline
    - OccupancyGrid: 2D grid of occupancy values with metric placement

Cell values follow the usual occupancy-grid convention:
    -1       unknown
    0..100   occupancy probability in percent (0 = free, 100 = occupied)
"""

from dataclasses import dataclass, field
from typing import Optional, Sequence, Tuple

import numpy as np

UNKNOWN = -1
FREE = 0
OCCUPIED = 100


def _as_vector(values: Sequence[float], size: int, name: str) -> Tuple[float, ...]:
    arr = np.asarray(values, dtype=np.float64)
    if arr.shape != (size,):
        raise ValueError(f"{name} must have {size} elements, got shape {arr.shape}")
    if not np.all(np.isfinite(arr)):
        raise ValueError(f"{name} must be finite, got {arr}")
    return tuple(float(v) for v in arr)


@dataclass(frozen=True)
class Pose:
    """
    Placement of a grid in the world frame.

    Attributes:
        position: (x, y, z) in meters.
        orientation: Unit quaternion (x, y, z, w). Only the rotation about z
                     is meaningful for a planar map.

    Examples:
        >>> origin = Pose(position=(-10.0, -10.0, 0.0))
        >>> origin.orientation
        (0.0, 0.0, 0.0, 1.0)
    """

    position: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    orientation: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 1.0)

    def __post_init__(self) -> None:
        """Validate and normalize field types."""
        object.__setattr__(self, "position", _as_vector(self.position, 3, "position"))
        object.__setattr__(
            self, "orientation", _as_vector(self.orientation, 4, "orientation")
        )


@dataclass(frozen=True)
class ExternalTransform:
    """
    Rigid transform in translation + quaternion form.

    This is the representation exchanged with callers. Internally the
    merging code works with 3x3 homogeneous matrices in cell coordinates;
    see mapmerge.merging.transforms for the conversions.

    Attributes:
        translation: (x, y, z). z is accepted but has no planar meaning.
        rotation: Quaternion (x, y, z, w). Rotation components about axes
                  other than z are accepted and ignored in-plane.

    Notes:
        - q and -q describe the same rotation; compare rotations only after
          normalizing the sign (e.g. w >= 0).
    """

    translation: Tuple[float, float, float] = (0.0, 0.0, 0.0)
    rotation: Tuple[float, float, float, float] = (0.0, 0.0, 0.0, 1.0)

    def __post_init__(self) -> None:
        """Validate and normalize field types."""
        object.__setattr__(
            self, "translation", _as_vector(self.translation, 3, "translation")
        )
        object.__setattr__(self, "rotation", _as_vector(self.rotation, 4, "rotation"))

    @classmethod
    def identity(cls) -> "ExternalTransform":
        """Transform with zero translation and no rotation."""
        return cls()

    def __repr__(self) -> str:
        """Readable string representation."""
        tx, ty, tz = self.translation
        qx, qy, qz, qw = self.rotation
        return (
            f"ExternalTransform(t=[{tx:.4f}, {ty:.4f}, {tz:.4f}], "
            f"q=[{qx:.4f}, {qy:.4f}, {qz:.4f}, {qw:.4f}])"
        )


@dataclass(frozen=True, eq=False)
class OccupancyGrid:
    """
    Occupancy grid map.

    Cells are stored row-major starting at cell (0, 0), whose corner sits
    at `origin` in the world frame. Row index grows along the grid's +y axis
    and column index along +x.

    Attributes:
        width: Number of columns (cells).
        height: Number of rows (cells).
        resolution: Cell edge length in meters.
        data: Flat int8 array of length width * height with values in
              {-1} U [0, 100]. Stored read-only.
        origin: Pose of cell (0, 0) in the world frame.

    Examples:
        >>> grid = OccupancyGrid(width=2, height=1, resolution=0.05,
        ...                      data=[-1, 100])
        >>> grid.as_array().shape
        (1, 2)
    """

    width: int
    height: int
    resolution: float
    data: np.ndarray
    origin: Pose = field(default_factory=Pose)

    def __post_init__(self) -> None:
        """Validate dimensions and freeze cell data."""
        if int(self.width) < 0 or int(self.height) < 0:
            raise ValueError(
                f"width and height must be non-negative, got {self.width}x{self.height}"
            )
        if not np.isfinite(self.resolution) or self.resolution <= 0:
            raise ValueError(f"resolution must be positive, got {self.resolution}")

        values = np.asarray(self.data).ravel()
        if values.size != int(self.width) * int(self.height):
            raise ValueError(
                f"data has {values.size} cells, expected "
                f"{self.width} * {self.height} = {int(self.width) * int(self.height)}"
            )
        if values.size and (values.min() < UNKNOWN or values.max() > OCCUPIED):
            raise ValueError(
                f"cell values must be -1 or in [0, 100], got range "
                f"[{values.min()}, {values.max()}]"
            )

        data = values.astype(np.int8, copy=True)
        data.flags.writeable = False

        object.__setattr__(self, "width", int(self.width))
        object.__setattr__(self, "height", int(self.height))
        object.__setattr__(self, "resolution", float(self.resolution))
        object.__setattr__(self, "data", data)

    @classmethod
    def from_array(
        cls, cells: np.ndarray, resolution: float, origin: Optional[Pose] = None
    ) -> "OccupancyGrid":
        """
        Create a grid from a (height, width) array of cell values.

        Args:
            cells: 2D array of occupancy values, shape (height, width).
            resolution: Cell size in meters.
            origin: Pose of cell (0, 0). Defaults to the world origin.

        Returns:
            OccupancyGrid owning a read-only copy of the cells.

        Raises:
            ValueError: If cells is not 2D.
        """
        cells = np.asarray(cells)
        if cells.ndim != 2:
            raise ValueError(f"cells must be 2D, got shape {cells.shape}")
        return cls(
            width=cells.shape[1],
            height=cells.shape[0],
            resolution=resolution,
            data=cells,
            origin=origin if origin is not None else Pose(),
        )

    def as_array(self) -> np.ndarray:
        """Read-only (height, width) view of the cell data."""
        return self.data.reshape(self.height, self.width)

    def copy(self) -> "OccupancyGrid":
        """Deep copy with identical geometry and cell bytes."""
        return OccupancyGrid(
            width=self.width,
            height=self.height,
            resolution=self.resolution,
            data=self.data.copy(),
            origin=self.origin,
        )

    @property
    def size(self) -> int:
        """Number of cells."""
        return self.width * self.height

    def __repr__(self) -> str:
        """Readable string representation."""
        return (
            f"OccupancyGrid({self.width}x{self.height} @ {self.resolution:.3f} m, "
            f"origin={self.origin.position})"
        )
