"""Reading and writing maps in the map_server PGM + YAML format.

A map on disk is a pair of files:
    - <name>.pgm: 8-bit grayscale image, top image row = highest y
    - <name>.yaml: metadata (image, resolution, origin [x, y, yaw], negate,
      occupied_thresh, free_thresh)

Loading follows the "trinary" interpretation: pixels darker than the
occupied threshold become 100, lighter than the free threshold become 0,
and everything in between is unknown.
"""

from pathlib import Path
from typing import Dict, Union

import cv2
import numpy as np
import yaml

from ..coords.rotations import quat_to_yaw, yaw_to_quat
from .types import FREE, OCCUPIED, UNKNOWN, OccupancyGrid, Pose

DEFAULT_OCCUPIED_THRESH = 0.65
DEFAULT_FREE_THRESH = 0.196

# map_saver output intensities
_SAVE_FREE = 254
_SAVE_OCCUPIED = 0
_SAVE_UNKNOWN = 205

PathLike = Union[str, Path]


def image_to_occupancy(
    image: np.ndarray,
    negate: bool = False,
    occupied_thresh: float = DEFAULT_OCCUPIED_THRESH,
    free_thresh: float = DEFAULT_FREE_THRESH,
) -> np.ndarray:
    """
    Convert grayscale pixels to trinary occupancy values.

    Args:
        image: uint8 image, any shape.
        negate: If True, white means occupied.
        occupied_thresh: Occupancy probability above which a cell is occupied.
        free_thresh: Occupancy probability below which a cell is free.

    Returns:
        int8 array of the same shape with values in {-1, 0, 100}.
    """
    if not 0.0 <= free_thresh <= occupied_thresh <= 1.0:
        raise ValueError(
            f"thresholds must satisfy 0 <= free <= occupied <= 1, "
            f"got free={free_thresh}, occupied={occupied_thresh}"
        )

    pixels = np.asarray(image, dtype=np.float64)
    p = pixels / 255.0 if negate else (255.0 - pixels) / 255.0

    cells = np.full(pixels.shape, UNKNOWN, dtype=np.int8)
    cells[p > occupied_thresh] = OCCUPIED
    cells[p < free_thresh] = FREE
    return cells


def occupancy_to_image(cells: np.ndarray) -> np.ndarray:
    """
    Convert occupancy values to map_saver intensities.

    Values <= 25 are saved as free, >= 65 as occupied, the rest as unknown.
    """
    cells = np.asarray(cells)
    image = np.full(cells.shape, _SAVE_UNKNOWN, dtype=np.uint8)
    image[(cells >= FREE) & (cells <= 25)] = _SAVE_FREE
    image[cells >= 65] = _SAVE_OCCUPIED
    return image


def load_map(yaml_path: PathLike) -> OccupancyGrid:
    """
    Load a map_server map.

    Args:
        yaml_path: Path to the map's YAML metadata file. The image path inside
                   it is resolved relative to the YAML file.

    Returns:
        OccupancyGrid with origin and resolution taken from the metadata.

    Raises:
        FileNotFoundError: If the YAML or the image file does not exist.
        ValueError: If required metadata keys are missing.
    """
    yaml_path = Path(yaml_path)
    with open(yaml_path, "r") as f:
        meta: Dict = yaml.safe_load(f)

    for key in ("image", "resolution", "origin"):
        if key not in meta:
            raise ValueError(f"{yaml_path}: missing required key '{key}'")

    image_path = Path(meta["image"])
    if not image_path.is_absolute():
        image_path = yaml_path.parent / image_path
    image = cv2.imread(str(image_path), cv2.IMREAD_GRAYSCALE)
    if image is None:
        raise FileNotFoundError(f"Cannot read map image {image_path}")

    cells = image_to_occupancy(
        image,
        negate=bool(meta.get("negate", 0)),
        occupied_thresh=float(meta.get("occupied_thresh", DEFAULT_OCCUPIED_THRESH)),
        free_thresh=float(meta.get("free_thresh", DEFAULT_FREE_THRESH)),
    )

    x, y, yaw = (float(v) for v in meta["origin"])
    qw, qx, qy, qz = yaw_to_quat(yaw)
    origin = Pose(position=(x, y, 0.0), orientation=(qx, qy, qz, qw))

    # image row 0 is the top of the map, grid row 0 is the bottom
    return OccupancyGrid.from_array(
        np.flipud(cells), resolution=float(meta["resolution"]), origin=origin
    )


def save_map(grid: OccupancyGrid, basename: PathLike) -> Path:
    """
    Save a grid as <basename>.pgm + <basename>.yaml.

    Args:
        grid: Grid to save.
        basename: Output path without extension. Missing parent directories are
                  created.

    Returns:
        Path of the written YAML file.
    """
    basename = Path(basename)
    image_path = basename.with_suffix(".pgm")
    yaml_path = basename.with_suffix(".yaml")
    basename.parent.mkdir(parents=True, exist_ok=True)

    image = np.flipud(occupancy_to_image(grid.as_array()))
    if not cv2.imwrite(str(image_path), np.ascontiguousarray(image)):
        raise OSError(f"Failed to write map image {image_path}")

    qx, qy, qz, qw = grid.origin.orientation
    meta = {
        "image": image_path.name,
        "resolution": grid.resolution,
        "origin": [
            grid.origin.position[0],
            grid.origin.position[1],
            quat_to_yaw(np.array([qw, qx, qy, qz])),
        ],
        "negate": 0,
        "occupied_thresh": DEFAULT_OCCUPIED_THRESH,
        "free_thresh": DEFAULT_FREE_THRESH,
    }
    with open(yaml_path, "w") as f:
        yaml.safe_dump(meta, f, default_flow_style=None)

    return yaml_path
