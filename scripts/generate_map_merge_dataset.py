"""
Generate Map Merging Dataset.

This script cuts a synthetic floor plan into overlapping occupancy grids, as
if several robots (or several runs of one robot) had each mapped a part of
the same building in their own frame. Every session is saved in the
map_server format (PGM + YAML) together with the ground-truth transform of
each session into the frame of session 0.

Output layout:
    <output>/session_<i>.pgm, <output>/session_<i>.yaml
    <output>/ground_truth.json   3x3 cell-frame transforms, one per session
    <output>/config.json         generation parameters
"""

import argparse
import json
import sys
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from mapmerge.grids import save_map
from mapmerge.sim import generate_floor_plan, make_sessions

PRESETS: Dict[str, Dict] = {
    "two_robots": {
        "description": "Two sessions, translated, large overlap",
        "plan_size": (300, 300),
        "windows": [(0, 0, 200, 200), (90, 70, 200, 200)],
        "rotations": [0, 0],
    },
    "rotated": {
        "description": "Three sessions with 90/270 degree frame rotations",
        "plan_size": (320, 300),
        "windows": [(0, 0, 190, 190), (110, 40, 190, 190), (50, 100, 190, 190)],
        "rotations": [0, 1, 3],
    },
    "corridor": {
        "description": "Four sessions along a building, each overlapping only its neighbours",
        "plan_size": (560, 200),
        "windows": [(0, 0, 200, 200), (120, 0, 200, 200), (240, 0, 200, 200), (360, 0, 200, 200)],
        "rotations": [0, 0, 0, 0],
    },
}


def generate_dataset(
    output_dir: str,
    plan_size: Tuple[int, int],
    windows: Sequence[Tuple[int, int, int, int]],
    rotations: Optional[Sequence[int]] = None,
    resolution: float = 0.05,
    pad: int = 10,
    n_obstacles: Optional[int] = None,
    seed: int = 42,
    preset: Optional[str] = None,
) -> List[Path]:
    """
    Generate and save one multi-session dataset.

    Args:
        output_dir: Output directory.
        plan_size: (width, height) of the floor plan in cells.
        windows: (x, y, width, height) crop per session.
        rotations: Quarter turns per session.
        resolution: Cell size in meters.
        pad: Unknown border around each session, in cells.
        n_obstacles: Furniture count; default scales with plan area.
        seed: Random seed.
        preset: Preset name recorded in config.json.

    Returns:
        Paths of the written session YAML files.
    """
    width, height = plan_size
    if n_obstacles is None:
        n_obstacles = int(width * height / 450)

    print("\n" + "=" * 70)
    print(f"Generating Map Merging Dataset: {Path(output_dir).name}")
    print("=" * 70)

    print("\nStep 1: Generating floor plan...")
    plan = generate_floor_plan(width, height, n_obstacles=n_obstacles, seed=seed)
    print(f"  Size: {width} x {height} cells ({width * resolution:.1f} x {height * resolution:.1f} m)")
    print(f"  Occupied cells: {np.count_nonzero(plan == 100)}")

    print("\nStep 2: Cutting sessions...")
    sessions = make_sessions(plan, windows, rotations=rotations, resolution=resolution, pad=pad)
    for i, session in enumerate(sessions):
        print(f"  Session {i}: {session.grid.width} x {session.grid.height} cells")

    print("\nStep 3: Saving...")
    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)
    yaml_paths = [save_map(s.grid, out / f"session_{i}") for i, s in enumerate(sessions)]

    with open(out / "ground_truth.json", "w") as f:
        json.dump({"transforms": [s.transform.tolist() for s in sessions]}, f, indent=2)

    config = {
        "dataset": "map_merge",
        "preset": preset,
        "plan_size_cells": list(plan_size),
        "windows": [list(w) for w in windows],
        "rotations": list(rotations) if rotations is not None else [0] * len(windows),
        "resolution_m": resolution,
        "pad_cells": pad,
        "n_obstacles": n_obstacles,
        "seed": seed,
    }
    with open(out / "config.json", "w") as f:
        json.dump(config, f, indent=2)

    print(f"\n  Saved dataset to: {out}")
    print(f"    Sessions: {len(sessions)}")
    print("\n" + "=" * 70)
    print("Dataset generation complete!")
    print("=" * 70)
    return yaml_paths


def main():
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Generate Map Merging Dataset",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Presets:
  two_robots    Two translated sessions with large overlap
  rotated       Three sessions, frames rotated by 90/270 degrees
  corridor      Four sessions, each overlapping only its neighbours

Examples:
  # Generate a preset
  python scripts/generate_map_merge_dataset.py --preset rotated

  # Custom: two sessions cut from a 400x300 plan
  python scripts/generate_map_merge_dataset.py \\
      --output data/sim/my_maps \\
      --plan-size 400 300 \\
      --window 0 0 250 250 --window 150 50 250 250
        """,
    )

    parser.add_argument(
        "--preset",
        type=str,
        choices=sorted(PRESETS),
        help="Use preset configuration (overrides plan size and windows)",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Output directory (default: data/sim/map_merge_<preset or custom>)",
    )

    plan_group = parser.add_argument_group("Floor Plan Parameters")
    plan_group.add_argument(
        "--plan-size", type=int, nargs=2, default=[300, 300], metavar=("W", "H"),
        help="Floor plan size in cells (default: 300 300)",
    )
    plan_group.add_argument(
        "--n-obstacles", type=int, default=None, help="Number of obstacles (default: by area)"
    )
    plan_group.add_argument(
        "--resolution", type=float, default=0.05, help="Cell size in meters (default: 0.05)"
    )

    session_group = parser.add_argument_group("Session Parameters")
    session_group.add_argument(
        "--window", type=int, nargs=4, action="append", metavar=("X", "Y", "W", "H"),
        help="Session crop of the plan in cells; repeat once per session",
    )
    session_group.add_argument(
        "--rotation", type=int, action="append",
        help="Quarter turns of each session; repeat once per session",
    )
    session_group.add_argument(
        "--pad", type=int, default=10, help="Unknown border in cells (default: 10)"
    )

    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")

    args = parser.parse_args()

    if args.preset:
        preset = PRESETS[args.preset]
        plan_size = preset["plan_size"]
        windows = preset["windows"]
        rotations = preset["rotations"]
        name = args.preset
    else:
        plan_size = tuple(args.plan_size)
        windows = [tuple(w) for w in args.window] if args.window else [
            (0, 0, 200, 200),
            (90, 70, 200, 200),
        ]
        rotations = args.rotation
        name = "custom"

    generate_dataset(
        output_dir=args.output or f"data/sim/map_merge_{name}",
        plan_size=plan_size,
        windows=windows,
        rotations=rotations,
        resolution=args.resolution,
        pad=args.pad,
        n_obstacles=args.n_obstacles,
        seed=args.seed,
        preset=args.preset,
    )


if __name__ == "__main__":
    main()
