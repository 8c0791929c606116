"""End-to-end merging with the OpenCV feature backend.

Two overlapping sessions are cut from one synthetic floor plan, so the true
transform between them is known. Feature-based estimation should recover it
to within a couple of cells.
"""

import numpy as np
import pytest

from mapmerge.grids import grid_to_image
from mapmerge.merging import MergeConfig, MergingPipeline, OpenCVBackend, to_internal
from mapmerge.merging.opencv_backend import create_feature_finder, match_confidence
from mapmerge.sim import generate_floor_plan, make_sessions


@pytest.fixture(scope="module")
def plan():
    return generate_floor_plan(
        300, 300, room_size=90, n_obstacles=200, obstacle_size=(3, 10), seed=7
    )


def test_create_feature_finder_rejects_unknown():
    with pytest.raises(ValueError):
        create_feature_finder("surf")


@pytest.mark.parametrize("feature_type", ["orb", "akaze"])
def test_create_feature_finder_supported_types(feature_type):
    finder = create_feature_finder(feature_type)
    image = np.full((64, 64), 255, dtype=np.uint8)
    image[20:40, 20:40] = 0
    assert finder.detect(image, None) is not None


def test_match_confidence_has_no_upper_cutoff():
    assert match_confidence(1000, 1000) > 3.0
    assert match_confidence(0, 50) == 0.0


@pytest.mark.parametrize("rotations", [(0, 0), (0, 1)])
def test_merge_two_sessions(plan, rotations):
    sessions = make_sessions(
        plan, [(0, 0, 200, 200), (80, 60, 200, 200)], rotations=rotations, pad=10
    )
    grids = [s.grid for s in sessions]
    truth = sessions[1].transform

    pipeline = MergingPipeline(MergeConfig())
    pipeline.feed(grids)
    assert pipeline.estimate_transform()

    transforms = pipeline.get_transforms()
    assert len(transforms) == 2
    np.testing.assert_allclose(to_internal(transforms[0]), np.eye(3), atol=1e-12)

    T1 = to_internal(transforms[1])
    estimated_yaw = np.arctan2(T1[1, 0], T1[0, 0])
    true_yaw = np.arctan2(truth[1, 0], truth[0, 0])
    assert abs(np.angle(np.exp(1j * (estimated_yaw - true_yaw)))) < 0.05

    # compare where the centre of session 1 lands
    center = np.array([grids[1].width / 2, grids[1].height / 2, 1.0])
    np.testing.assert_allclose((T1 @ center)[:2], (truth @ center)[:2], atol=2.0)

    merged = pipeline.compose_grids()
    assert merged is not None
    assert merged.size == merged.width * merged.height
    known = np.count_nonzero(merged.data != -1)
    assert known > max(np.count_nonzero(g.data != -1) for g in grids)


def test_backend_reports_pairwise_match(plan):
    sessions = make_sessions(plan, [(0, 0, 200, 200), (80, 60, 200, 200)])
    backend = OpenCVBackend(MergeConfig(feature_type="akaze"))

    features = [backend.find_features(grid_to_image(s.grid), i) for i, s in enumerate(sessions)]
    matches = backend.match(features, np.array([[0, 1], [0, 0]], dtype=np.uint8))

    assert len(matches) == 1
    match = matches[0]
    assert (match.src, match.dst) == (0, 1)
    assert match.num_inliers > 0
    assert match.src_points.shape == match.dst_points.shape
    # H maps session 0 cells into session 1 cells
    center = np.array([110.0, 110.0, 1.0])
    np.testing.assert_allclose((match.H @ center)[:2], [30.0, 50.0], atol=2.0)
