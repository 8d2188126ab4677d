"""
Trajectory interpolator node.

Hosts the interpolation pipeline across planning cycles: owns the velocity
and elastic band smoothers, carries the ego history and the previous
output, and applies parameter updates between cycles.

Usage:
    python -m trajectory_interpolator.node --input trajectory.yaml
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional

import numpy as np
import yaml

from .formats.data_format import AccelerationState, Odometry, Pose, TrajectoryPoint, TrajectoryPoints
from .geometry import create_quaternion_from_yaw, get_yaw
from .params import TrajectoryInterpolatorParams, build_params, load_config, update_params
from .smoothers.elastic_band_smoother import EBPathSmoother, build_elastic_band_smoother
from .smoothers.jerk_filtered_smoother import JerkFilteredSmoother, build_jerk_filtered_smoother
from .utils import (
    add_ego_state_to_trajectory,
    create_trajectory_point,
    expand_trajectory_with_ego_history,
    interpolate_trajectory,
)

logger = logging.getLogger(__name__)


class TrajectoryInterpolatorNode:
    """
    Runs one interpolation cycle per incoming trajectory.

    ``previous_output`` holds the last published trajectory for callers that
    republish or inspect it; the pipeline itself does not read it.
    """

    def __init__(self, config: Optional[Mapping[str, Any]] = None,
                 config_path: Optional[str] = None) -> None:
        """
        Initialize the node.

        Args:
            config: Configuration dictionary. Loaded from ``config_path`` (or
                the default config file) when omitted.
            config_path: Path to a YAML configuration file.
        """
        if config is None:
            config = load_config(config_path)
        self.params: TrajectoryInterpolatorParams = build_params(config)
        self.jerk_filtered_smoother: Optional[JerkFilteredSmoother] = build_jerk_filtered_smoother(
            config.get("jerk_filtered_smoother", {})
        )
        self.eb_path_smoother: Optional[EBPathSmoother] = build_elastic_band_smoother(
            config.get("elastic_band", {})
        )
        self.ego_history: TrajectoryPoints = []
        self.previous_output: Optional[TrajectoryPoints] = None

    def reset(self) -> None:
        """Clear ego history, previous output and smoother state."""
        self.ego_history = []
        self.previous_output = None
        if self.eb_path_smoother is not None:
            self.eb_path_smoother.reset_previous_data()

    def on_parameter(self, updates: Mapping[str, Any]) -> bool:
        """
        Apply a partial parameter update.

        Returns:
            True if the update was applied. Invalid updates are rejected as a
            whole and the previous parameters stay in effect.
        """
        try:
            self.params = update_params(self.params, updates)
        except ValueError as exc:
            logger.error(f"Rejected parameter update: {exc}")
            return False
        logger.info(f"Updated parameters: {sorted(updates)}")
        return True

    def on_trajectory(self, trajectory: TrajectoryPoints, odometry: Optional[Odometry],
                      acceleration: Optional[AccelerationState]) -> Optional[TrajectoryPoints]:
        """
        Process one raw trajectory.

        Returns:
            The processed trajectory, or None when this cycle has no valid
            output (missing ego state or too few points).
        """
        if odometry is None or acceleration is None:
            logger.warning("Waiting for odometry and acceleration")
            return None

        params = self.params
        add_ego_state_to_trajectory(self.ego_history, odometry, params)

        traj_points = [point.copy() for point in trajectory]
        if params.extend_trajectory_backward:
            expand_trajectory_with_ego_history(traj_points, self.ego_history)

        ok = interpolate_trajectory(
            traj_points, odometry, acceleration, params,
            self.jerk_filtered_smoother, self.eb_path_smoother,
        )
        if not ok:
            return None
        self.previous_output = traj_points
        return traj_points


def point_from_dict(data: Mapping[str, Any]) -> TrajectoryPoint:
    point = create_trajectory_point(
        x=float(data.get("x", 0.0)),
        y=float(data.get("y", 0.0)),
        z=float(data.get("z", 0.0)),
        yaw=float(data.get("yaw", 0.0)),
        velocity=float(data.get("velocity", 0.0)),
        acceleration=float(data.get("acceleration", 0.0)),
    )
    point.heading_rate_rps = float(data.get("heading_rate", 0.0))
    point.time_from_start = float(data.get("time_from_start", 0.0))
    return point


def point_to_dict(point: TrajectoryPoint) -> Dict[str, float]:
    x, y, z = (float(v) for v in point.pose.position)
    return {
        "x": x,
        "y": y,
        "z": z,
        "yaw": float(get_yaw(point.pose.orientation)),
        "velocity": float(point.longitudinal_velocity_mps),
        "acceleration": float(point.acceleration_mps2),
        "heading_rate": float(point.heading_rate_rps),
        "time_from_start": float(point.time_from_start),
    }


def _load_trajectory_file(path: Path) -> dict:
    with open(path, "r") as f:
        # JSON is a subset of YAML
        return yaml.safe_load(f) or {}


def main(argv: Optional[List[str]] = None) -> int:
    """Command-line entry point: run one cycle on a trajectory file."""
    parser = argparse.ArgumentParser(description="Run one trajectory interpolation cycle")
    parser.add_argument("--input", type=str, required=True,
                        help="YAML/JSON file with 'points' and optional 'odometry'/'acceleration'")
    parser.add_argument("--config", type=str, default=None,
                        help="Path to configuration YAML file (built-in defaults when omitted outside a source checkout)")
    parser.add_argument("--x", type=float, default=None, help="Ego x position (overrides input file)")
    parser.add_argument("--y", type=float, default=None, help="Ego y position (overrides input file)")
    parser.add_argument("--yaw", type=float, default=None, help="Ego yaw in radians (overrides input file)")
    parser.add_argument("--speed", type=float, default=None, help="Ego speed in m/s (overrides input file)")
    parser.add_argument("--acc", type=float, default=None, help="Ego acceleration in m/s^2 (overrides input file)")
    parser.add_argument("--log-level", type=str, default="WARNING", help="Logging level")
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level.upper(), logging.WARNING),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    input_path = Path(args.input)
    if not input_path.exists():
        parser.error(f"Input file not found: {input_path}")
    data = _load_trajectory_file(input_path)

    trajectory = [point_from_dict(p) for p in data.get("points", [])]
    odom_cfg = data.get("odometry", {}) or {}
    ego_x = args.x if args.x is not None else float(odom_cfg.get("x", 0.0))
    ego_y = args.y if args.y is not None else float(odom_cfg.get("y", 0.0))
    ego_yaw = args.yaw if args.yaw is not None else float(odom_cfg.get("yaw", 0.0))
    ego_speed = args.speed if args.speed is not None else float(odom_cfg.get("speed", 0.0))
    ego_acc = args.acc if args.acc is not None else float(data.get("acceleration", 0.0))

    odometry = Odometry(
        pose=Pose(position=np.array([ego_x, ego_y, 0.0]), orientation=create_quaternion_from_yaw(ego_yaw)),
        longitudinal_velocity_mps=ego_speed,
    )
    acceleration = AccelerationState(linear_acceleration_mps2=ego_acc)

    node = TrajectoryInterpolatorNode(config_path=args.config)
    output = node.on_trajectory(trajectory, odometry, acceleration)
    if output is None:
        logger.error("No valid trajectory produced")
        return 1

    print(json.dumps({"points": [point_to_dict(p) for p in output]}, indent=2))
    return 0


if __name__ == "__main__":
    sys.exit(main())
