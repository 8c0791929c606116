"""Unit tests for grid data types and rendering.

Tests cover:
- OccupancyGrid validation and immutability
- Pose / ExternalTransform field normalization
- Occupancy -> intensity rendering used for feature detection
"""

import unittest

import numpy as np

from mapmerge.grids import (
    UNKNOWN_INTENSITY,
    ExternalTransform,
    OccupancyGrid,
    Pose,
    grid_to_image,
    occupancy_to_intensity,
)


class TestOccupancyGrid(unittest.TestCase):
    """Test OccupancyGrid construction and accessors."""

    def test_from_array_shape(self):
        cells = np.zeros((3, 5), dtype=np.int8)
        grid = OccupancyGrid.from_array(cells, resolution=0.05)

        self.assertEqual(grid.width, 5)
        self.assertEqual(grid.height, 3)
        self.assertEqual(grid.size, 15)
        self.assertEqual(grid.as_array().shape, (3, 5))
        self.assertEqual(grid.data.dtype, np.int8)

    def test_row_major_layout(self):
        grid = OccupancyGrid(width=3, height=2, resolution=1.0, data=[0, 1, 2, 3, 4, 5])
        np.testing.assert_array_equal(grid.as_array(), [[0, 1, 2], [3, 4, 5]])

    def test_data_is_copied_and_read_only(self):
        cells = np.zeros((2, 2), dtype=np.int8)
        grid = OccupancyGrid.from_array(cells, resolution=0.1)
        cells[0, 0] = 100

        self.assertEqual(grid.as_array()[0, 0], 0)
        with self.assertRaises(ValueError):
            grid.as_array()[0, 0] = 50

    def test_size_mismatch_raises(self):
        with self.assertRaises(ValueError):
            OccupancyGrid(width=2, height=2, resolution=0.05, data=[0, 0, 0])

    def test_value_range_checked(self):
        with self.assertRaises(ValueError):
            OccupancyGrid(width=2, height=1, resolution=0.05, data=[0, 101])
        with self.assertRaises(ValueError):
            OccupancyGrid(width=2, height=1, resolution=0.05, data=[-2, 0])

    def test_non_positive_resolution_raises(self):
        with self.assertRaises(ValueError):
            OccupancyGrid(width=1, height=1, resolution=0.0, data=[0])

    def test_empty_grid_allowed(self):
        grid = OccupancyGrid(width=0, height=0, resolution=0.05, data=[])
        self.assertEqual(grid.size, 0)

    def test_copy_is_independent_and_equal(self):
        origin = Pose(position=(1.0, 2.0, 0.0))
        grid = OccupancyGrid.from_array(
            np.array([[-1, 0], [50, 100]]), resolution=0.05, origin=origin
        )
        clone = grid.copy()

        self.assertIsNot(clone, grid)
        self.assertIsNot(clone.data, grid.data)
        np.testing.assert_array_equal(clone.data, grid.data)
        self.assertEqual(clone.origin, origin)
        self.assertEqual(clone.resolution, grid.resolution)


class TestPoseTypes(unittest.TestCase):
    """Test Pose and ExternalTransform."""

    def test_pose_defaults(self):
        pose = Pose()
        self.assertEqual(pose.position, (0.0, 0.0, 0.0))
        self.assertEqual(pose.orientation, (0.0, 0.0, 0.0, 1.0))

    def test_fields_become_float_tuples(self):
        t = ExternalTransform(translation=np.array([1, 2, 3]), rotation=[0, 0, 0, 1])
        self.assertEqual(t.translation, (1.0, 2.0, 3.0))
        self.assertIsInstance(t.rotation[3], float)

    def test_wrong_length_raises(self):
        with self.assertRaises(ValueError):
            ExternalTransform(translation=(1.0, 2.0))
        with self.assertRaises(ValueError):
            Pose(orientation=(0.0, 0.0, 1.0))

    def test_non_finite_raises(self):
        with self.assertRaises(ValueError):
            ExternalTransform(translation=(np.inf, 0.0, 0.0))

    def test_identity(self):
        self.assertEqual(ExternalTransform.identity(), ExternalTransform())


class TestRasterize(unittest.TestCase):
    """Test occupancy -> intensity rendering."""

    def test_reference_values(self):
        np.testing.assert_array_equal(
            occupancy_to_intensity(np.array([-1, 0, 50, 100])), [127, 255, 128, 0]
        )

    def test_known_values_never_look_unknown(self):
        values = np.arange(0, 101)
        intensity = occupancy_to_intensity(values)

        self.assertFalse(np.any(intensity == UNKNOWN_INTENSITY))
        expected = np.rint(255.0 - 2.55 * values).astype(np.uint8)
        np.testing.assert_array_equal(intensity, expected)

    def test_more_occupied_is_darker(self):
        intensity = occupancy_to_intensity(np.arange(0, 101)).astype(int)
        self.assertTrue(np.all(np.diff(intensity) <= 0))

    def test_grid_image_layout(self):
        grid = OccupancyGrid.from_array(np.array([[-1, 0], [100, 0]]), resolution=0.05)
        image = grid_to_image(grid)

        self.assertEqual(image.dtype, np.uint8)
        self.assertEqual(image.shape, (2, 2))
        np.testing.assert_array_equal(image, [[127, 255], [0, 255]])


if __name__ == "__main__":
    unittest.main()
