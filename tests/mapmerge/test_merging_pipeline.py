"""Unit tests for MergingPipeline.

Tests cover:
- Trivial inputs: zero and one grid
- State transitions across feed / estimate / compose
- set_transforms / get_transforms consistency and count validation
- feed discarding previous transforms
"""

import unittest

import numpy as np

from mapmerge.coords import yaw_to_quat
from mapmerge.grids import ExternalTransform, OccupancyGrid
from mapmerge.merging import (
    FeatureBackend,
    MapMergeError,
    MergingPipeline,
    PipelineState,
    TransformCountMismatch,
    normalize_quaternion_sign,
)


class FixedFramesBackend(FeatureBackend):
    """Backend that skips vision and reports preset frames."""

    def __init__(self, frames):
        self.frames = frames

    def find_features(self, image, index):
        return index

    def match(self, features, mask):
        return []

    def estimate(self, features, matches):
        return self.frames


def make_grid(width=10, height=8, value=0):
    return OccupancyGrid.from_array(np.full((height, width), value, np.int8), resolution=0.05)


def planar(yaw, tx, ty):
    qw, qx, qy, qz = yaw_to_quat(yaw)
    return ExternalTransform(translation=(tx, ty, 0.0), rotation=(qx, qy, qz, qw))


def shift(dx, dy):
    return np.array([[1.0, 0.0, dx], [0.0, 1.0, dy], [0.0, 0.0, 1.0]])


class TestPipelineTrivialInputs(unittest.TestCase):
    """Zero and one grid."""

    def test_new_pipeline(self):
        pipeline = MergingPipeline()
        self.assertEqual(pipeline.state, PipelineState.EMPTY)
        self.assertEqual(pipeline.get_transforms(), [])
        self.assertIsNone(pipeline.compose_grids())

    def test_zero_grids(self):
        pipeline = MergingPipeline()
        pipeline.feed([])

        self.assertTrue(pipeline.estimate_transform())
        self.assertEqual(pipeline.get_transforms(), [])
        self.assertIsNone(pipeline.compose_grids())

    def test_one_grid(self):
        grid = make_grid(value=100)
        pipeline = MergingPipeline()
        pipeline.feed([grid])

        self.assertTrue(pipeline.estimate_transform())
        transforms = pipeline.get_transforms()
        self.assertEqual(len(transforms), 1)
        np.testing.assert_allclose(transforms[0].translation, (0.0, 0.0, 0.0))
        np.testing.assert_allclose(transforms[0].rotation, (0.0, 0.0, 0.0, 1.0))

        merged = pipeline.compose_grids()
        np.testing.assert_array_equal(merged.data, grid.data)
        self.assertEqual(merged.origin, grid.origin)
        self.assertEqual(pipeline.state, PipelineState.COMPOSED)


class TestPipelineEstimation(unittest.TestCase):
    """Estimation success and failure paths."""

    def test_success(self):
        backend = FixedFramesBackend([np.eye(3), shift(4.0, 2.0)])
        pipeline = MergingPipeline(backend=backend)
        pipeline.feed([make_grid(), make_grid(value=100)])

        self.assertTrue(pipeline.estimate_transform())
        self.assertEqual(pipeline.state, PipelineState.ESTIMATE_SUCCEEDED)

        transforms = pipeline.get_transforms()
        np.testing.assert_allclose(transforms[1].translation, (4.0, 2.0, 0.0))

        merged = pipeline.compose_grids()
        self.assertEqual((merged.width, merged.height), (14, 10))
        self.assertEqual(merged.size, merged.width * merged.height)
        self.assertEqual(pipeline.state, PipelineState.COMPOSED)

    def test_failure(self):
        pipeline = MergingPipeline(backend=FixedFramesBackend(None))
        pipeline.feed([make_grid(), make_grid()])

        self.assertFalse(pipeline.estimate_transform())
        self.assertEqual(pipeline.state, PipelineState.ESTIMATE_FAILED)
        self.assertEqual(pipeline.get_transforms(), [])
        self.assertIsNone(pipeline.compose_grids())

    def test_feed_discards_transforms(self):
        pipeline = MergingPipeline(backend=FixedFramesBackend([np.eye(3), np.eye(3)]))
        pipeline.feed([make_grid(), make_grid()])
        pipeline.estimate_transform()

        pipeline.feed([make_grid(), make_grid()])

        self.assertEqual(pipeline.state, PipelineState.FED)
        self.assertEqual(pipeline.get_transforms(), [])
        self.assertIsNone(pipeline.compose_grids())

    def test_feed_snapshots_input(self):
        grids = [make_grid(), make_grid()]
        pipeline = MergingPipeline()
        pipeline.feed(grids)
        grids.append(make_grid())

        self.assertEqual(len(pipeline.grids), 2)

    def test_feed_rejects_non_grids(self):
        pipeline = MergingPipeline()
        with self.assertRaises(TypeError):
            pipeline.feed([make_grid(), np.zeros((3, 3))])


class TestPipelineSetTransforms(unittest.TestCase):
    """Externally supplied transforms."""

    def setUp(self):
        self.pipeline = MergingPipeline()
        self.pipeline.feed([make_grid(), make_grid(value=100), make_grid(value=50)])

    def test_count_mismatch(self):
        with self.assertRaises(TransformCountMismatch) as ctx:
            self.pipeline.set_transforms([ExternalTransform()] * 2)

        self.assertIsInstance(ctx.exception, MapMergeError)
        self.assertIsInstance(ctx.exception, ValueError)
        self.assertEqual(ctx.exception.n_transforms, 2)
        self.assertEqual(ctx.exception.n_grids, 3)

    def test_mismatch_keeps_state(self):
        with self.assertRaises(TransformCountMismatch):
            self.pipeline.set_transforms([])
        self.assertEqual(self.pipeline.state, PipelineState.FED)

    def test_set_then_get(self):
        transforms = [ExternalTransform(), planar(0.5, 3.0, -2.0), planar(-2.0, 7.0, 1.0)]
        self.pipeline.set_transforms(transforms)

        self.assertEqual(self.pipeline.state, PipelineState.ESTIMATE_SUCCEEDED)
        for got, expected in zip(self.pipeline.get_transforms(), transforms):
            got = normalize_quaternion_sign(got)
            expected = normalize_quaternion_sign(expected)
            np.testing.assert_allclose(got.translation, expected.translation, atol=1e-9)
            np.testing.assert_allclose(got.rotation, expected.rotation, atol=1e-9)

    def test_get_set_idempotent(self):
        self.pipeline.set_transforms([ExternalTransform(), planar(1.0, 2.0, 3.0), planar(2.0, 0.0, 5.0)])
        first = self.pipeline.get_transforms()

        self.pipeline.set_transforms(first)
        second = self.pipeline.get_transforms()

        for a, b in zip(first, second):
            np.testing.assert_allclose(a.translation, b.translation, atol=1e-12)
            np.testing.assert_allclose(a.rotation, b.rotation, atol=1e-12)

    def test_repeated_get_is_stable(self):
        self.pipeline.set_transforms([ExternalTransform(), planar(0.8, -4.0, 6.0), planar(-2.5, 9.0, 1.0)])

        first = self.pipeline.get_transforms()
        second = self.pipeline.get_transforms()

        self.assertEqual(len(first), 3)
        for a, b in zip(first, second):
            self.assertEqual(a.translation, b.translation)
            self.assertEqual(a.rotation, b.rotation)
        self.assertEqual(self.pipeline.state, PipelineState.ESTIMATE_SUCCEEDED)

    def test_compose_with_set_transforms(self):
        self.pipeline.set_transforms(
            [ExternalTransform(), planar(0.0, 10.0, 0.0), planar(0.0, 0.0, 8.0)]
        )
        merged = self.pipeline.compose_grids()

        self.assertEqual((merged.width, merged.height), (20, 16))
        cells = merged.as_array()
        self.assertTrue(np.all(cells[0:8, 0:10] == 0))
        self.assertTrue(np.all(cells[0:8, 10:20] == 100))
        self.assertTrue(np.all(cells[8:16, 0:10] == 50))
        self.assertTrue(np.all(cells[8:16, 10:20] == -1))

    def test_z_and_tilt_ignored(self):
        tilted = ExternalTransform(translation=(0.0, 0.0, 3.0), rotation=(0.3, 0.0, 0.0, 0.95))
        self.pipeline.set_transforms([ExternalTransform(), tilted, ExternalTransform()])

        got = self.pipeline.get_transforms()[1]
        np.testing.assert_allclose(got.translation, (0.0, 0.0, 0.0), atol=1e-12)
        np.testing.assert_allclose(got.rotation, (0.0, 0.0, 0.0, 1.0), atol=1e-12)


if __name__ == "__main__":
    unittest.main()
