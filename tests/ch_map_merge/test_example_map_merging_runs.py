"""Smoke tests for the map merging example and dataset generator.

Runs the scripts as a user would, with the Agg backend so no display is
needed, and checks the dataset files they exchange.
"""

import json
import os
import subprocess
import sys
import tempfile
import unittest
from pathlib import Path

import numpy as np

from ch_map_merge.example_map_merging import load_dataset


class TestMapMergingScripts(unittest.TestCase):
    """Generator output can be loaded and merged by the example."""

    def setUp(self):
        self.workspace_root = Path(__file__).parent.parent.parent
        self.generator = self.workspace_root / "scripts" / "generate_map_merge_dataset.py"
        self.tmp = tempfile.TemporaryDirectory()
        self.data_dir = Path(self.tmp.name) / "map_merge_two_robots"
        self.env = dict(os.environ, MPLBACKEND="Agg")

    def tearDown(self):
        self.tmp.cleanup()

    def _generate(self):
        result = subprocess.run(
            [sys.executable, str(self.generator), "--preset", "two_robots", "--output", str(self.data_dir)],
            capture_output=True,
            text=True,
            cwd=str(self.workspace_root),
            env=self.env,
            timeout=120,
        )
        self.assertEqual(result.returncode, 0, msg=result.stderr)
        return result

    def test_generator_writes_sessions(self):
        self._generate()

        for name in ("session_0.pgm", "session_0.yaml", "session_1.yaml", "ground_truth.json", "config.json"):
            self.assertTrue((self.data_dir / name).exists(), msg=name)

        with open(self.data_dir / "config.json") as f:
            config = json.load(f)
        self.assertEqual(config["preset"], "two_robots")

    def test_load_dataset(self):
        self._generate()
        grids, truth = load_dataset(self.data_dir)

        self.assertEqual(len(grids), 2)
        self.assertEqual(len(truth), 2)
        np.testing.assert_array_equal(truth[0], np.eye(3))
        np.testing.assert_array_equal(truth[1][:2, 2], [90.0, 70.0])
        self.assertEqual((grids[0].width, grids[0].height), (220, 220))

    def test_example_runs_on_dataset(self):
        self._generate()
        output_dir = Path(self.tmp.name) / "figs"

        result = subprocess.run(
            [
                sys.executable, "-m", "ch_map_merge.example_map_merging",
                "--data", str(self.data_dir),
                "--output", str(output_dir),
            ],
            capture_output=True,
            text=True,
            cwd=str(self.workspace_root),
            env=self.env,
            timeout=300,
        )

        self.assertEqual(result.returncode, 0, msg=result.stderr)
        self.assertIn("Estimating transforms", result.stdout)
        self.assertTrue(any(output_dir.glob("map_merging_*.png")))


if __name__ == "__main__":
    unittest.main()
