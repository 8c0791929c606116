"""Occupancy Grid Map Merging Example.

This example demonstrates the full merging pipeline:
    1. Load (or generate) occupancy grids from several mapping sessions
    2. Estimate the transform of every grid into the frame of grid 0 from
       image features of the rendered grids
    3. Compose the aligned grids into one merged grid
    4. Compare estimated transforms with ground truth when available
    5. Visualize inputs and result, and save the merged map

Can run with:
    - Inline data (default): python -m ch_map_merge.example_map_merging
    - Generated dataset: python -m ch_map_merge.example_map_merging --data map_merge_rotated
    - Your own maps: python -m ch_map_merge.example_map_merging --maps a.yaml b.yaml
"""

import argparse
import json
import logging
from pathlib import Path
from typing import List, Optional

import matplotlib.pyplot as plt
import numpy as np

from mapmerge.grids import OccupancyGrid, grid_to_image, load_map, save_map
from mapmerge.merging import PRESETS, MergingPipeline, config_from_preset, to_internal
from mapmerge.sim import generate_floor_plan, make_sessions


def load_dataset(data_dir: Path):
    """Load session_*.yaml maps and, if present, ground_truth.json."""
    yaml_paths = sorted(
        data_dir.glob("session_*.yaml"), key=lambda p: int(p.stem.split("_")[1])
    )
    grids = [load_map(p) for p in yaml_paths]

    truth = None
    truth_file = data_dir / "ground_truth.json"
    if truth_file.exists():
        with open(truth_file) as f:
            truth = [np.array(T) for T in json.load(f)["transforms"]]
    return grids, truth


def inline_sessions(seed: int = 42):
    """Three overlapping sessions cut from a generated floor plan."""
    plan = generate_floor_plan(320, 300, n_obstacles=210, seed=seed)
    sessions = make_sessions(
        plan,
        [(0, 0, 190, 190), (110, 40, 190, 190), (50, 100, 190, 190)],
        rotations=[0, 1, 0],
    )
    return [s.grid for s in sessions], [s.transform for s in sessions]


def report_errors(estimated: List[np.ndarray], truth: List[np.ndarray], grids: List[OccupancyGrid]) -> None:
    """Print rotation and centre-position error of each estimated transform."""
    print("\nAccuracy vs ground truth:")
    print(f"  {'grid':>4}  {'yaw err [deg]':>14}  {'centre err [cells]':>18}")
    for i, (T, T_true, grid) in enumerate(zip(estimated, truth, grids)):
        yaw = np.arctan2(T[1, 0], T[0, 0])
        yaw_true = np.arctan2(T_true[1, 0], T_true[0, 0])
        yaw_err = np.degrees(np.angle(np.exp(1j * (yaw - yaw_true))))
        centre = np.array([grid.width / 2, grid.height / 2, 1.0])
        pos_err = np.linalg.norm((T @ centre)[:2] - (T_true @ centre)[:2])
        print(f"  {i:>4}  {yaw_err:>14.3f}  {pos_err:>18.2f}")


def plot_results(grids: List[OccupancyGrid], merged: Optional[OccupancyGrid], output_file: Path) -> None:
    n_panels = len(grids) + (1 if merged is not None else 0)
    fig, axes = plt.subplots(1, n_panels, figsize=(4 * n_panels, 4.5))
    axes = np.atleast_1d(axes)

    for i, grid in enumerate(grids):
        axes[i].imshow(grid_to_image(grid), cmap="gray", origin="lower", vmin=0, vmax=255)
        axes[i].set_title(f"Session {i} ({grid.width}x{grid.height})", fontsize=12)
        axes[i].set_xlabel("column")
        axes[i].set_ylabel("row")

    if merged is not None:
        ax = axes[-1]
        ax.imshow(grid_to_image(merged), cmap="gray", origin="lower", vmin=0, vmax=255)
        ax.set_title(f"Merged ({merged.width}x{merged.height})", fontsize=12, fontweight="bold")
        ax.set_xlabel("column")

    plt.tight_layout()
    output_file.parent.mkdir(parents=True, exist_ok=True)
    plt.savefig(output_file, dpi=150, bbox_inches="tight")
    print(f"\n[OK] Saved figure: {output_file}")


def run(grids: List[OccupancyGrid], truth: Optional[List[np.ndarray]], preset: str, feature: Optional[str], output_dir: Path, show: bool) -> None:
    overrides = {"feature_type": feature} if feature else {}
    config = config_from_preset(preset, **overrides)
    output_dir.mkdir(parents=True, exist_ok=True)

    print(f"\nInput: {len(grids)} grids")
    for i, grid in enumerate(grids):
        known = np.count_nonzero(grid.data != -1)
        print(f"  [{i}] {grid!r}, {known} known cells")
    print(f"\nConfiguration (preset '{preset}'):")
    for key, value in config.to_dict().items():
        print(f"  {key}: {value}")

    pipeline = MergingPipeline(config)
    pipeline.feed(grids)

    print("\nStep 1: Estimating transforms...")
    if not pipeline.estimate_transform():
        print("  [FAIL] Grids could not be aligned (not enough overlap)")
        plot_results(grids, None, output_dir / "map_merging_inputs.png")
        return

    transforms = pipeline.get_transforms()
    for i, t in enumerate(transforms):
        print(f"  [{i}] {t!r}")

    if truth is not None:
        report_errors([to_internal(t) for t in transforms], truth, grids)

    print("\nStep 2: Composing grids...")
    merged = pipeline.compose_grids()
    if merged is None:
        print("  [FAIL] Transforms produced no usable canvas")
        return
    print(f"  Merged: {merged!r}")
    print(f"  Known cells: {np.count_nonzero(merged.data != -1)}")

    yaml_path = save_map(merged, output_dir / "merged_map")
    print(f"  Saved map: {yaml_path}")

    plot_results(grids, merged, output_dir / "map_merging_results.png")
    if show:
        plt.show()


def main():
    """Main entry point with CLI argument parsing."""
    parser = argparse.ArgumentParser(
        description="Occupancy Grid Map Merging Example",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Run with inline generated sessions (default)
  python -m ch_map_merge.example_map_merging

  # Run with a dataset from scripts/generate_map_merge_dataset.py
  python -m ch_map_merge.example_map_merging --data map_merge_rotated

  # Merge your own map_server maps with AKAZE features
  python -m ch_map_merge.example_map_merging --maps a.yaml b.yaml --feature akaze
        """,
    )
    source = parser.add_mutually_exclusive_group()
    source.add_argument(
        "--data", type=str, default=None,
        help="Dataset name or path (e.g., 'map_merge_rotated' or full path)",
    )
    source.add_argument(
        "--maps", type=str, nargs="+", default=None,
        help="map_server YAML files; the first one is the reference frame",
    )
    parser.add_argument(
        "--preset", type=str, choices=sorted(PRESETS), default="default",
        help="Merging configuration preset (default: default)",
    )
    parser.add_argument(
        "--feature", type=str, choices=["orb", "akaze"], default=None,
        help="Override the feature type of the preset",
    )
    parser.add_argument(
        "--output", type=str, default="ch_map_merge/figs",
        help="Output directory for figures and the merged map",
    )
    parser.add_argument("--seed", type=int, default=42, help="Seed for inline data (default: 42)")
    parser.add_argument("--show", action="store_true", help="Show the figure window")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")

    args = parser.parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    print("=" * 70)
    print("OCCUPANCY GRID MAP MERGING EXAMPLE")
    print("=" * 70)

    if args.maps:
        grids = [load_map(p) for p in args.maps]
        truth = None
    elif args.data:
        data_path = Path(args.data)
        if not data_path.exists():
            data_path = Path("data/sim") / args.data
        if not data_path.exists():
            print(f"Error: Dataset not found at '{args.data}' or 'data/sim/{args.data}'")
            print("Generate one with: python scripts/generate_map_merge_dataset.py --preset rotated")
            return
        print(f"Using dataset: {data_path}")
        grids, truth = load_dataset(data_path)
    else:
        grids, truth = inline_sessions(args.seed)

    run(grids, truth, args.preset, args.feature, Path(args.output), args.show)


if __name__ == "__main__":
    main()
