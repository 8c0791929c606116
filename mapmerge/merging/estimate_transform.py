"""Feature-based estimation of grid-to-grid transforms.

Estimation runs in three stages, each delegated to a FeatureBackend:
    1. Feature extraction, one rendered grid at a time. Grids are
       independent, so this stage runs on a thread pool.
    2. Pairwise matching across the whole set. Candidate pairs can be limited
       to a neighbourhood in input order (see match_mask).
    3. Global estimation of one transform per grid from the pairwise
       correspondences.

The result is anchored on grid 0: transform i maps cell coordinates of grid i
into cell coordinates of grid 0, and transform 0 is the identity.

Coordinates used throughout are cell-corner coordinates: the corner of cell
(col, row) is at (x, y) = (col, row).
"""

import logging
from abc import ABC, abstractmethod
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import Any, List, Optional, Sequence

import numpy as np
from numpy.typing import NDArray

from ..grids.rasterize import grid_to_image
from ..grids.types import OccupancyGrid
from .config import MergeConfig

logger = logging.getLogger(__name__)


@dataclass
class PairwiseMatch:
    """
    Correspondences between two rendered grids.

    Attributes:
        src: Index of the source grid.
        dst: Index of the destination grid.
        H: 3x3 transform mapping source cell coordinates to destination cell
           coordinates, estimated from the inliers.
        confidence: Match confidence; higher means more trustworthy.
        src_points: Inlier keypoints in the source grid, shape (K, 2).
        dst_points: Corresponding inlier keypoints in the destination grid,
                    shape (K, 2).
    """

    src: int
    dst: int
    H: NDArray[np.float64]
    confidence: float
    src_points: NDArray[np.float64] = field(default_factory=lambda: np.empty((0, 2)))
    dst_points: NDArray[np.float64] = field(default_factory=lambda: np.empty((0, 2)))

    @property
    def num_inliers(self) -> int:
        """Number of inlier correspondences."""
        return len(self.src_points)


class FeatureBackend(ABC):
    """Vision primitives used by transform estimation."""

    @abstractmethod
    def find_features(self, image: NDArray[np.uint8], index: int) -> Any:
        """
        Detect and describe features in one rendered grid.

        Must not share mutable state between calls: it is called
        concurrently for different images.

        Args:
            image: uint8 grayscale image of the grid.
            index: Position of the grid in the input set.

        Returns:
            Backend-specific feature set.
        """

    @abstractmethod
    def match(self, features: Sequence[Any], mask: NDArray[np.uint8]) -> List[PairwiseMatch]:
        """
        Match features between grid pairs.

        Args:
            features: Feature sets in input order.
            mask: (N, N) uint8 matrix; pair (i, j) with i < j is matched only
                  where mask[i, j] is non-zero.

        Returns:
            Pairwise matches found. Pairs without a usable transform may be
            omitted.
        """

    @abstractmethod
    def estimate(
        self, features: Sequence[Any], matches: Sequence[PairwiseMatch]
    ) -> Optional[List[NDArray[np.float64]]]:
        """
        Compute mutually consistent transforms for all grids.

        Returns:
            One 3x3 transform per grid, mapping the grid's cell coordinates
            into a common frame, or None if the matches do not constrain
            every grid.
        """


def match_mask(n_images: int, match_range: Optional[int]) -> NDArray[np.uint8]:
    """
    Candidate pairs for matching.

    Args:
        n_images: Number of grids.
        match_range: Maximum index distance of matched pairs. None selects
                     all pairs.

    Returns:
        (n_images, n_images) uint8 matrix with 1 for pairs to match (upper
        triangle only).

    Examples:
        >>> match_mask(3, 1)
        array([[0, 1, 0],
               [0, 0, 1],
               [0, 0, 0]], dtype=uint8)
    """
    mask = np.triu(np.ones((n_images, n_images), dtype=np.uint8), k=1)
    if match_range is not None:
        mask = np.triu(mask, k=1) - np.triu(mask, k=match_range + 1)
    return mask.astype(np.uint8)


def estimate_transforms(
    grids: Sequence[OccupancyGrid],
    config: Optional[MergeConfig] = None,
    backend: Optional[FeatureBackend] = None,
) -> Optional[List[NDArray[np.float64]]]:
    """
    Estimate the transform of every grid into the frame of grid 0.

    Args:
        grids: Input grids, grid 0 is the reference.
        config: Estimation parameters. Defaults to MergeConfig().
        backend: Vision primitives. Defaults to the OpenCV backend.

    Returns:
        List of 3x3 transforms (element 0 is the identity), or None if the
        grids could not be aligned. An empty input gives an empty list and a
        single grid gives [identity] without any feature work.
    """
    if config is None:
        config = MergeConfig()

    n_grids = len(grids)
    if n_grids == 0:
        return []
    elif n_grids == 1:
        return [np.eye(3)]

    if backend is None:
        from .opencv_backend import OpenCVBackend

        backend = OpenCVBackend(config)

    logger.debug("computing features for %d grids", n_grids)

    def extract(index: int) -> Any:
        return backend.find_features(grid_to_image(grids[index]), index)

    with ThreadPoolExecutor(max_workers=config.n_workers) as pool:
        features = list(pool.map(extract, range(n_grids)))

    logger.debug("pairwise matching features")
    matches = backend.match(features, match_mask(n_grids, config.match_range))

    logger.debug("estimating global transforms from %d pairwise matches", len(matches))
    frames = backend.estimate(features, matches)
    if frames is None:
        logger.warning("could not estimate transforms: grids do not overlap enough")
        return None
    if len(frames) != n_grids:
        logger.warning(
            "estimator returned %d transforms for %d grids", len(frames), n_grids
        )
        return None

    return anchor_transforms(frames)


def anchor_transforms(
    frames: Sequence[NDArray[np.float64]],
) -> Optional[List[NDArray[np.float64]]]:
    """
    Re-express transforms into a common frame relative to frame 0.

    Args:
        frames: Transforms F_i mapping grid i into some common frame.

    Returns:
        Transforms T_i = F_0^-1 F_i mapping grid i into grid 0, with T_0
        exactly the identity, or None if F_0 is singular or any result is
        not finite.
    """
    frames = [np.asarray(F, dtype=np.float64) for F in frames]
    try:
        to_reference = np.linalg.inv(frames[0])
    except np.linalg.LinAlgError:
        logger.warning("reference transform is singular")
        return None

    transforms = [np.eye(3)]
    for F in frames[1:]:
        T = to_reference @ F
        if not np.all(np.isfinite(T)) or abs(T[2, 2]) < 1e-12:
            logger.warning("estimated transform is degenerate")
            return None
        transforms.append(T / T[2, 2])

    return transforms
