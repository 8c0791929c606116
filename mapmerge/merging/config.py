"""Configuration for the map merging pipeline."""

from dataclasses import asdict, dataclass, replace
from typing import Any, Dict, Optional

FEATURE_TYPES = ("orb", "akaze")
FUSION_RULES = ("max", "first")


@dataclass(frozen=True)
class MergeConfig:
    """
    Tuning parameters for transform estimation and grid composition.

    Attributes:
        feature_type: Keypoint detector used on rendered grids ('orb' or 'akaze').
        confidence: Minimum pairwise match confidence for two grids to be
                    considered overlapping; weaker pairs are ignored by
                    global estimation.
        match_conf: Ratio-test threshold of the nearest-neighbour matcher.
        match_range: Each grid is matched only against grids at most this many
                     positions away in input order. None matches all pairs.
        refine: Jointly refine the chained transforms by robust least squares
                over all inlier correspondences.
        n_workers: Thread count for per-grid feature extraction. None lets
                   the executor choose.
        fusion_rule: How two known values competing for one output cell are
                     resolved; see mapmerge.merging.compose.fuse_cells.
        max_canvas_cells: Upper bound on merged grid size; larger canvases
                          indicate a broken transform and are rejected.

    Examples:
        >>> config = MergeConfig(feature_type="akaze", match_range=None)
        >>> config.fusion_rule
        'max'
    """

    feature_type: str = "orb"
    confidence: float = 1.0
    match_conf: float = 0.3
    match_range: Optional[int] = 5
    refine: bool = True
    n_workers: Optional[int] = None
    fusion_rule: str = "max"
    max_canvas_cells: int = 50_000_000

    def __post_init__(self) -> None:
        """Validate configuration values."""
        if self.feature_type not in FEATURE_TYPES:
            raise ValueError(
                f"feature_type must be one of {FEATURE_TYPES}, got {self.feature_type!r}"
            )
        if self.fusion_rule not in FUSION_RULES:
            raise ValueError(
                f"fusion_rule must be one of {FUSION_RULES}, got {self.fusion_rule!r}"
            )
        if self.confidence < 0:
            raise ValueError(f"confidence must be non-negative, got {self.confidence}")
        if not 0.0 < self.match_conf < 1.0:
            raise ValueError(f"match_conf must be in (0, 1), got {self.match_conf}")
        if self.match_range is not None and self.match_range < 1:
            raise ValueError(f"match_range must be >= 1, got {self.match_range}")
        if self.n_workers is not None and self.n_workers < 1:
            raise ValueError(f"n_workers must be >= 1, got {self.n_workers}")
        if self.max_canvas_cells < 1:
            raise ValueError(
                f"max_canvas_cells must be positive, got {self.max_canvas_cells}"
            )

    def to_dict(self) -> Dict[str, Any]:
        """Plain dict of all parameters, e.g. for printing or JSON export."""
        return asdict(self)


PRESETS: Dict[str, Dict[str, Any]] = {
    "default": {
        "description": "ORB features, neighbourhood matching, joint refinement",
    },
    "fast": {
        "description": "Match only adjacent grids and skip refinement",
        "match_range": 1,
        "refine": False,
    },
    "robust": {
        "description": "AKAZE features matched across all pairs",
        "feature_type": "akaze",
        "match_range": None,
    },
}


def config_from_preset(name: str, **overrides: Any) -> MergeConfig:
    """
    Build a MergeConfig from a named preset.

    Args:
        name: Key of PRESETS.
        **overrides: Fields to override on top of the preset.

    Returns:
        Validated MergeConfig.

    Raises:
        KeyError: If the preset does not exist.
    """
    if name not in PRESETS:
        raise KeyError(f"Unknown preset {name!r}; available: {sorted(PRESETS)}")
    params = {k: v for k, v in PRESETS[name].items() if k != "description"}
    return replace(MergeConfig(**params), **overrides)
