"""
Run the NDT-PSO scan matcher on a scan sequence.

Replays either a synthetic sequence (ray-cast scans of a room along an arc)
or a recorded one (.npz) through the scan matcher node, prints the
trajectory error against the reference poses and exports the trajectory,
map and figures.

Recorded sequences are .npz files with:
    ranges           (M, N) range readings
    angle_min        scalar, angle of the first beam (rad)
    angle_increment  scalar, beam spacing (rad)
    range_max        scalar, maximum range (m)
    stamps           (M,) timestamps (s), optional
    poses            (M, 3) reference poses, optional

Output ends with a machine-readable line:
    [NDTPSO_SUMMARY] {"n_scans": ..., "position_rmse": ..., ...}

Author: Li-Ta Hsu
"""

import argparse
import json
import logging
import sys
import time
from pathlib import Path
from typing import List, Optional, Tuple

import matplotlib.pyplot as plt
import numpy as np
from tqdm import tqdm

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from ndtpso.config import NodeConfig, load_config
from ndtpso.errors import NDTPSOError
from ndtpso.eval.metrics import summarize_trajectory
from ndtpso.eval.plots import plot_trajectory_2d, save_figure
from ndtpso.node import ScanMatcherNode, TransformBuffer
from ndtpso.sim import make_room_walls, make_trajectory, simulate_scan
from ndtpso.slam.types import LaserScan


def synthetic_sequence(
    n_scans: int,
    num_rays: int,
    noise_std: float,
    sensor_offset: np.ndarray,
    seed: int,
) -> Tuple[List[LaserScan], np.ndarray]:
    """Ray-cast scans along an arc through a furnished room."""
    rng = np.random.default_rng(seed)
    walls = make_room_walls(12.0, 9.0)
    poses = make_trajectory(n_poses=n_scans, radius=1.5, arc=np.pi)
    scans = [
        simulate_scan(
            pose,
            walls,
            num_rays=num_rays,
            max_range=10.0,
            noise_std=noise_std,
            stamp=0.1 * k,
            sensor_offset=sensor_offset,
            rng=rng,
        )
        for k, pose in enumerate(poses)
    ]
    return scans, poses


def recorded_sequence(path: Path) -> Tuple[List[LaserScan], Optional[np.ndarray]]:
    """Load scans from an .npz recording."""
    data = np.load(path)
    ranges = np.atleast_2d(data["ranges"])
    stamps = data["stamps"] if "stamps" in data else 0.1 * np.arange(len(ranges))
    poses = data["poses"] if "poses" in data else None
    scans = [
        LaserScan(
            ranges=r,
            angle_min=float(data["angle_min"]),
            angle_increment=float(data["angle_increment"]),
            range_max=float(data["range_max"]),
            stamp=float(t),
        )
        for r, t in zip(ranges, stamps)
    ]
    return scans, poses


def run(args: argparse.Namespace) -> int:
    config = load_config(args.config) if args.config else NodeConfig()
    if args.output_dir:
        config.export_dir = args.output_dir
    if args.seed is not None:
        config.ndtpso.pso.seed = args.seed

    sensor_offset = np.asarray(args.sensor_offset, dtype=np.float64)

    print("\n" + "=" * 70)
    print("NDT-PSO Scan Matching")
    print("=" * 70)

    if args.recording:
        print(f"\n1. Loading recording {args.recording}...")
        scans, reference = recorded_sequence(Path(args.recording))
    else:
        print("\n1. Simulating scans...")
        scans, reference = synthetic_sequence(
            args.n_scans, args.num_rays, args.noise, sensor_offset, args.seed or 0
        )
    print(f"   Scans: {len(scans)}")
    print(f"   Beams per scan: {scans[0].ranges.shape[0] if scans else 0}")

    print("\n2. Bootstrapping node...")
    transforms = TransformBuffer()
    transforms.set_transform(config.base_frame, config.scan_frame, sensor_offset)
    node = ScanMatcherNode(config, transforms=transforms)
    node.bootstrap()
    print(f"   Sensor offset: {sensor_offset}")

    print("\n3. Matching...")
    start = time.perf_counter()
    for k, scan in enumerate(tqdm(scans, desc="Scan matching", unit="scan", disable=args.quiet)):
        seed_pose = reference[k] if reference is not None else None
        node.process(scan, seed_pose=seed_pose)
    elapsed = time.perf_counter() - start

    paths = node.stop(export=not args.no_export)
    print(f"   Cycles: {node.matcher.n_cycles}")
    print(f"   Average rate: {node.matcher.n_cycles / max(elapsed, 1e-9):.2f} Hz")
    print(f"   Informative cells: {node.matcher.reference.n_informative_cells}")

    print("\n4. Evaluating...")
    summary = summarize_trajectory(node.trajectory.reference_poses, node.trajectory.poses)
    if summary:
        print(f"   Position RMSE: {summary['position_rmse']:.4f} m")
        print(f"   Heading RMSE: {summary['yaw_rmse_deg']:.3f} deg")
        print(f"   Final position error: {summary['final_position_error']:.4f} m")
    else:
        print("   No reference poses, skipping error metrics")

    figures = []
    if paths and summary:
        fig = plot_trajectory_2d(
            {"NDT-PSO": node.trajectory.poses[:, :2]},
            truth_xy=node.trajectory.reference_poses[:, :2],
            title="NDT-PSO Scan Matching",
        )
        figures = save_figure(fig, config.export_dir, f"{paths[0].name.split('.')[0]}.trajectory")
        plt.close(fig)

    if paths:
        print("\n5. Exported:")
        for path in paths + figures:
            print(f"   {path}")

    print("\n" + "=" * 70)
    print("SCAN MATCHING COMPLETE")
    print("=" * 70)

    result = {
        "n_scans": len(scans),
        "n_cycles": node.matcher.n_cycles,
        "dropped_scans": node.dropped_scans,
        "elapsed_s": round(elapsed, 4),
        "n_informative_cells": node.matcher.reference.n_informative_cells,
        "exported": [str(p) for p in paths],
        "figures": [str(p) for p in figures],
        **summary,
    }
    print(f"[NDTPSO_SUMMARY] {json.dumps(result)}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Run the NDT-PSO scan matcher on a scan sequence",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Synthetic room, default settings
  python scripts/run_ndtpso_slam.py

  # Short run without exports
  python scripts/run_ndtpso_slam.py --n-scans 10 --no-export

  # Recorded scans with a JSON configuration
  python scripts/run_ndtpso_slam.py --recording scans.npz --config ndtpso.json
        """,
    )
    parser.add_argument("--config", type=str, default=None, help="JSON configuration file")
    parser.add_argument("--recording", type=str, default=None, help="Recorded scans (.npz)")
    parser.add_argument(
        "--output-dir", type=str, default=None, help="Export directory (overrides config)"
    )
    parser.add_argument("--no-export", action="store_true", help="Skip CSV and figure export")
    parser.add_argument(
        "--sensor-offset",
        type=float,
        nargs=3,
        default=[0.1, 0.0, 0.0],
        metavar=("X", "Y", "YAW"),
        help="Sensor mount pose on the base (default: 0.1 0 0)",
    )

    sim_group = parser.add_argument_group("Simulation Parameters")
    sim_group.add_argument("--n-scans", type=int, default=30, help="Number of scans (default: 30)")
    sim_group.add_argument("--num-rays", type=int, default=360, help="Beams per scan (default: 360)")
    sim_group.add_argument(
        "--noise", type=float, default=0.01, help="Range noise std in meters (default: 0.01)"
    )
    parser.add_argument("--seed", type=int, default=42, help="Random seed (default: 42)")
    parser.add_argument("--quiet", action="store_true", help="Hide the progress bar")
    parser.add_argument("--verbose", action="store_true", help="Log node activity")

    args = parser.parse_args(argv)
    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        return run(args)
    except (NDTPSOError, FileNotFoundError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
