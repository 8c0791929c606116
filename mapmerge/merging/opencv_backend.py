"""OpenCV implementation of the feature backend.

Features are ORB or AKAZE keypoints computed with cv2.detail, and pairs of
grids are matched with the affine best-of-2-nearest matcher, which fits a
rotation + uniform scale + translation model with RANSAC. The global step
is done by mapmerge.merging.global_estimation.

OpenCV reports keypoints with pixel centers at integer coordinates. They are
shifted by half a cell here so that every point and transform leaving this
module uses cell-corner coordinates.
"""

import logging
from typing import Any, List, Optional, Sequence

import cv2
import numpy as np
from numpy.typing import NDArray

from .config import MergeConfig
from .estimate_transform import FeatureBackend, PairwiseMatch
from .global_estimation import estimate_global_transforms

logger = logging.getLogger(__name__)

_HALF_CELL = np.array([[1.0, 0.0, 0.5], [0.0, 1.0, 0.5], [0.0, 0.0, 1.0]])
_HALF_CELL_INV = np.array([[1.0, 0.0, -0.5], [0.0, 1.0, -0.5], [0.0, 0.0, 1.0]])


def create_feature_finder(feature_type: str) -> Any:
    """New OpenCV detector/descriptor for the given feature type."""
    if feature_type == "orb":
        return cv2.ORB_create()
    elif feature_type == "akaze":
        return cv2.AKAZE_create()
    raise ValueError(f"Unsupported feature type: {feature_type!r}")


class OpenCVBackend(FeatureBackend):
    """
    Feature extraction and matching with OpenCV's stitching primitives.

    Example:
        >>> backend = OpenCVBackend(MergeConfig(feature_type="akaze"))
        >>> transforms = estimate_transforms(grids, backend=backend)
    """

    def __init__(self, config: Optional[MergeConfig] = None):
        self.config = config if config is not None else MergeConfig()

    def find_features(self, image: NDArray[np.uint8], index: int) -> Any:
        # detectors are not shared between threads
        finder = create_feature_finder(self.config.feature_type)
        features = cv2.detail.computeImageFeatures2(finder, image)
        features.img_idx = index
        logger.debug("grid %d: %d keypoints", index, len(features.getKeypoints()))
        return features

    def match(self, features: Sequence[Any], mask: NDArray[np.uint8]) -> List[PairwiseMatch]:
        matcher = cv2.detail_AffineBestOf2NearestMatcher(
            full_affine=False, try_use_gpu=False, match_conf=self.config.match_conf
        )
        pairwise = matcher.apply2(list(features), cv2.UMat(np.ascontiguousarray(mask)))
        matcher.collectGarbage()

        keypoints = [f.getKeypoints() for f in features]
        matches = []
        for info in pairwise:
            # OpenCV fills both (i, j) and (j, i); keep the direction that was asked for
            if info.src_img_idx < 0 or info.src_img_idx >= info.dst_img_idx:
                continue
            H = np.asarray(info.H, dtype=np.float64) if info.H is not None else None
            if H is None or H.shape != (3, 3) or info.num_inliers == 0:
                continue

            src_points, dst_points = _inlier_points(
                info, keypoints[info.src_img_idx], keypoints[info.dst_img_idx]
            )
            matches.append(
                PairwiseMatch(
                    src=int(info.src_img_idx),
                    dst=int(info.dst_img_idx),
                    H=_HALF_CELL @ H @ _HALF_CELL_INV,
                    confidence=match_confidence(info.num_inliers, len(info.getMatches())),
                    src_points=src_points,
                    dst_points=dst_points,
                )
            )
            logger.debug(
                "match %d -> %d: %d inliers, confidence %.3f",
                info.src_img_idx,
                info.dst_img_idx,
                info.num_inliers,
                matches[-1].confidence,
            )
        return matches

    def estimate(
        self, features: Sequence[Any], matches: Sequence[PairwiseMatch]
    ) -> Optional[List[NDArray[np.float64]]]:
        return estimate_global_transforms(
            len(features), matches, self.config.confidence, refine=self.config.refine
        )


def match_confidence(num_inliers: int, num_matches: int) -> float:
    """
    Confidence of a pairwise match, as used by OpenCV's stitching matchers.

    OpenCV additionally zeroes confidences above 3 to drop near-duplicate
    panorama frames. Overlapping maps are exactly that case, so the cutoff is
    not applied here.

    Examples:
        >>> match_confidence(100, 120)
        2.272727272727273
    """
    return num_inliers / (8.0 + 0.3 * num_matches)


def _inlier_points(info: Any, src_keypoints: Sequence[Any], dst_keypoints: Sequence[Any]):
    """Inlier correspondences of one MatchesInfo, in cell-corner coordinates."""
    dmatches = info.getMatches()
    inliers = np.asarray(info.getInliers(), dtype=bool).ravel()
    pairs = [
        (src_keypoints[d.queryIdx].pt, dst_keypoints[d.trainIdx].pt)
        for d, keep in zip(dmatches, inliers)
        if keep
    ]
    if not pairs:
        return np.empty((0, 2)), np.empty((0, 2))

    src = np.array([p for p, _ in pairs], dtype=np.float64) + 0.5
    dst = np.array([q for _, q in pairs], dtype=np.float64) + 0.5
    return src, dst
