"""Stateful map merging pipeline.

Typical use:
    >>> pipeline = MergingPipeline()
    >>> pipeline.feed([grid_a, grid_b, grid_c])
    >>> if pipeline.estimate_transform():
    ...     merged = pipeline.compose_grids()

State transitions:
    EMPTY --feed--> FED --estimate_transform--> ESTIMATE_SUCCEEDED | ESTIMATE_FAILED
    FED / ESTIMATE_* --set_transforms--> ESTIMATE_SUCCEEDED
    ESTIMATE_SUCCEEDED --compose_grids--> COMPOSED
    any state --feed--> FED (previous transforms are discarded)

All calls are synchronous. A pipeline instance holds all of its state, so
separate instances can be used from separate threads.
"""

import logging
from enum import Enum
from typing import Iterable, List, Optional, Sequence, Tuple

import numpy as np
from numpy.typing import NDArray

from ..grids.types import ExternalTransform, OccupancyGrid
from .compose import compose_grids
from .config import MergeConfig
from .errors import TransformCountMismatch
from .estimate_transform import FeatureBackend, estimate_transforms
from .transforms import to_external, to_internal

logger = logging.getLogger(__name__)


class PipelineState(Enum):
    """Lifecycle of a MergingPipeline."""

    EMPTY = "empty"
    FED = "fed"
    ESTIMATE_SUCCEEDED = "estimate_succeeded"
    ESTIMATE_FAILED = "estimate_failed"
    COMPOSED = "composed"


class MergingPipeline:
    """
    Align and merge a batch of occupancy grids.

    Attributes:
        config: Estimation and composition parameters.
        backend: Vision primitives used for estimation; None selects the
                 OpenCV backend built from config.
    """

    def __init__(
        self,
        config: Optional[MergeConfig] = None,
        backend: Optional[FeatureBackend] = None,
    ):
        self.config = config if config is not None else MergeConfig()
        self.backend = backend
        self._grids: Tuple[OccupancyGrid, ...] = ()
        self._transforms: List[NDArray[np.float64]] = []
        self._state = PipelineState.EMPTY

    @property
    def state(self) -> PipelineState:
        """Current pipeline state."""
        return self._state

    @property
    def grids(self) -> Tuple[OccupancyGrid, ...]:
        """Snapshot of the grids passed to the last feed()."""
        return self._grids

    def feed(self, grids: Iterable[OccupancyGrid]) -> None:
        """
        Replace the input grids.

        The order of grids matters: grid 0 defines the frame of the merged
        map. Any previously estimated or assigned transforms are discarded.

        Args:
            grids: Grids to merge.
        """
        grids = tuple(grids)
        for i, grid in enumerate(grids):
            if not isinstance(grid, OccupancyGrid):
                raise TypeError(f"grid {i} must be an OccupancyGrid, got {type(grid)}")

        self._grids = grids
        self._transforms = []
        self._state = PipelineState.FED
        logger.debug("fed %d grids", len(grids))

    def estimate_transform(self) -> bool:
        """
        Estimate the transform of every grid into the frame of grid 0.

        Returns:
            True on success, including the trivial cases of zero or one grid.
            False if the grids do not overlap enough to be aligned; in that
            case no transforms are kept.
        """
        transforms = estimate_transforms(self._grids, self.config, self.backend)
        if transforms is None:
            self._transforms = []
            self._state = PipelineState.ESTIMATE_FAILED
            return False

        self._transforms = transforms
        self._state = PipelineState.ESTIMATE_SUCCEEDED
        return True

    def compose_grids(self) -> Optional[OccupancyGrid]:
        """
        Merge the grids using the current transforms.

        Returns:
            The merged grid, or None if no grids were fed, no transforms are
            available, or the transforms cannot be composed.
        """
        if not self._grids:
            return None
        if len(self._transforms) != len(self._grids):
            logger.info("no transforms available, estimate or set them first")
            return None

        merged = compose_grids(
            self._grids,
            self._transforms,
            rule=self.config.fusion_rule,
            max_canvas_cells=self.config.max_canvas_cells,
        )
        if merged is not None:
            self._state = PipelineState.COMPOSED
        return merged

    def get_transforms(self) -> List[ExternalTransform]:
        """
        Current transforms as translation + quaternion.

        Returns:
            One transform per grid once transforms are available, otherwise
            an empty list.
        """
        return [to_external(T) for T in self._transforms]

    def set_transforms(self, transforms: Sequence[ExternalTransform]) -> None:
        """
        Assign transforms directly, bypassing estimation.

        Args:
            transforms: One transform per fed grid.

        Raises:
            TransformCountMismatch: If the number of transforms differs from
                                    the number of grids.
        """
        transforms = list(transforms)
        if len(transforms) != len(self._grids):
            raise TransformCountMismatch(len(transforms), len(self._grids))

        self._transforms = [to_internal(t) for t in transforms]
        self._state = PipelineState.ESTIMATE_SUCCEEDED
