"""
Jerk-limited velocity smoother for trajectory points.

Reference implementation of the velocity smoother used by the trajectory
interpolator. It limits velocity by lateral acceleration and steering rate,
resamples along arc length, and shapes the longitudinal profile with a
backward deceleration pass followed by a jerk-limited forward pass.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import List, Optional, Tuple

import numpy as np

from ..formats.data_format import Pose, TrajectoryPoints
from ..geometry import (
    calc_arc_lengths,
    find_first_nearest_index_with_soft_constraints,
    insert_orientation,
)

logger = logging.getLogger(__name__)


@dataclass
class JerkFilteredSmootherConfig:
    """Configuration for jerk-limited velocity smoothing."""

    max_accel: float = 1.0  # m/s^2
    min_decel: float = -1.0  # m/s^2
    max_jerk: float = 1.0  # m/s^3
    min_jerk: float = -1.0  # m/s^3
    max_lateral_accel: float = 1.0  # m/s^2
    min_curve_velocity: float = 2.74  # m/s
    max_steering_angle_rate: float = 0.7  # rad/s
    wheelbase: float = 2.79  # m
    lateral_filter_resample_interval_m: float = 1.0
    resample_time_s: float = 0.2
    min_resample_interval_m: float = 0.5
    max_trajectory_length_m: float = 200.0
    initial_velocity_tolerance_mps: float = 0.3
    min_velocity_for_dt: float = 0.1  # m/s


class JerkFilteredSmoother:
    """Velocity smoother with lateral acceleration, steering rate and jerk limits."""

    def __init__(self, config: Optional[JerkFilteredSmootherConfig] = None) -> None:
        self.config = config or JerkFilteredSmootherConfig()

    def _resample_by_distance(self, points: TrajectoryPoints, interval: float) -> TrajectoryPoints:
        """Linearly resample points every ``interval`` metres of arc length."""
        if len(points) < 2 or interval <= 0.0:
            return [p.copy() for p in points]
        bases = calc_arc_lengths(points)
        total = float(bases[-1])
        if not math.isfinite(total) or total <= 0.0:
            return [p.copy() for p in points]
        total = min(total, self.config.max_trajectory_length_m)

        samples = np.arange(0.0, total, interval)
        if total - samples[-1] > 1e-3:
            samples = np.append(samples, total)

        positions = np.array([p.pose.position for p in points], dtype=float)
        velocities = np.array([p.longitudinal_velocity_mps for p in points], dtype=float)
        accelerations = np.array([p.acceleration_mps2 for p in points], dtype=float)
        heading_rates = np.array([p.heading_rate_rps for p in points], dtype=float)

        resampled = []
        for s in samples:
            idx = int(np.searchsorted(bases, s, side="right")) - 1
            idx = min(max(idx, 0), len(points) - 1)
            point = points[idx].copy()
            point.pose.position = np.array([np.interp(s, bases, positions[:, k]) for k in range(3)])
            point.longitudinal_velocity_mps = float(np.interp(s, bases, velocities))
            point.acceleration_mps2 = float(np.interp(s, bases, accelerations))
            point.heading_rate_rps = float(np.interp(s, bases, heading_rates))
            resampled.append(point)
        insert_orientation(resampled, is_driving_forward=True)
        return resampled

    @staticmethod
    def _curvatures(points: TrajectoryPoints) -> np.ndarray:
        """Signed three-point curvature at each point."""
        n = len(points)
        curvature = np.zeros(n)
        if n < 3:
            return curvature
        xy = np.array([[p.pose.position[0], p.pose.position[1]] for p in points], dtype=float)
        for i in range(1, n - 1):
            a, b, c = xy[i - 1], xy[i], xy[i + 1]
            ab = np.linalg.norm(b - a)
            bc = np.linalg.norm(c - b)
            ac = np.linalg.norm(c - a)
            denom = ab * bc * ac
            if denom < 1e-9:
                continue
            cross = (b[0] - a[0]) * (c[1] - b[1]) - (b[1] - a[1]) * (c[0] - b[0])
            curvature[i] = 2.0 * cross / denom
        curvature[0] = curvature[1]
        curvature[-1] = curvature[-2]
        return curvature

    def apply_lateral_acceleration_filter(
        self,
        points: TrajectoryPoints,
        v0: float,
        a0: float,
        enable_smooth_limit: bool = True,
        use_resampling: bool = True,
    ) -> TrajectoryPoints:
        """
        Cap velocity so that v^2 * |curvature| stays below the lateral limit.

        Points within braking range of ``v0`` are not limited below what can
        be reached with the maximum deceleration. ``a0`` is accepted for
        interface compatibility.
        """
        if len(points) < 3:
            return [p.copy() for p in points]
        cfg = self.config
        if use_resampling:
            output = self._resample_by_distance(points, cfg.lateral_filter_resample_interval_m)
        else:
            output = [p.copy() for p in points]

        curvature = np.abs(self._curvatures(output))
        limit = np.sqrt(cfg.max_lateral_accel / np.maximum(curvature, 1e-6))
        limit = np.maximum(limit, cfg.min_curve_velocity)

        bases = calc_arc_lengths(output)
        if enable_smooth_limit:
            # Decelerate ahead of curves instead of stepping down at them.
            for i in range(len(limit) - 2, -1, -1):
                ds = bases[i + 1] - bases[i]
                limit[i] = min(limit[i], math.sqrt(limit[i + 1] ** 2 + 2.0 * abs(cfg.min_decel) * ds))

        reachable = np.sqrt(np.maximum(v0 * v0 + 2.0 * cfg.min_decel * bases, 0.0))
        limit = np.maximum(limit, reachable)

        for point, v_lim in zip(output, limit):
            point.longitudinal_velocity_mps = min(point.longitudinal_velocity_mps, float(v_lim))
        return output

    def apply_steering_rate_limit(self, points: TrajectoryPoints, use_resampling: bool = True) -> TrajectoryPoints:
        """Cap velocity so the implied steering angle rate stays within limits."""
        if len(points) < 3:
            return [p.copy() for p in points]
        cfg = self.config
        if use_resampling:
            output = self._resample_by_distance(points, cfg.lateral_filter_resample_interval_m)
        else:
            output = [p.copy() for p in points]

        steering = np.arctan(cfg.wheelbase * self._curvatures(output))
        bases = calc_arc_lengths(output)
        for i in range(len(output) - 1):
            ds = bases[i + 1] - bases[i]
            steer_diff = abs(steering[i + 1] - steering[i])
            if steer_diff < 1e-9 or ds <= 0.0:
                continue
            v_lim = max(cfg.max_steering_angle_rate * ds / steer_diff, cfg.min_curve_velocity)
            for point in (output[i], output[i + 1]):
                point.longitudinal_velocity_mps = min(point.longitudinal_velocity_mps, v_lim)
        return output

    def resample_trajectory(
        self,
        points: TrajectoryPoints,
        v0: float,
        current_pose: Pose,
        nearest_dist_threshold: float,
        nearest_yaw_threshold: float,
    ) -> TrajectoryPoints:
        """
        Resample from just behind the ego pose with an ego-speed based interval.
        """
        if len(points) < 2:
            return [p.copy() for p in points]
        cfg = self.config
        nearest_idx = find_first_nearest_index_with_soft_constraints(
            points, current_pose, nearest_dist_threshold, nearest_yaw_threshold
        )
        start_idx = max(nearest_idx - 1, 0)
        interval = max(cfg.min_resample_interval_m, abs(v0) * cfg.resample_time_s)
        return self._resample_by_distance(points[start_idx:], interval)

    def find_nearest_index(
        self,
        points: TrajectoryPoints,
        current_pose: Pose,
        nearest_dist_threshold: float,
        nearest_yaw_threshold: float,
    ) -> int:
        return find_first_nearest_index_with_soft_constraints(
            points, current_pose, nearest_dist_threshold, nearest_yaw_threshold
        )

    def apply(self, v0: float, a0: float, points: TrajectoryPoints) -> Tuple[bool, TrajectoryPoints]:
        """
        Shape the velocity profile starting from (v0, a0).

        Returns:
            (success, trajectory). On failure the input points are returned
            unchanged; failure means the profile cannot start at ``v0`` within
            the deceleration limit or the input is not finite.
        """
        if len(points) < 2:
            return False, points
        cfg = self.config

        bases = calc_arc_lengths(points)
        ds = np.diff(bases)
        v_max = np.array([p.longitudinal_velocity_mps for p in points], dtype=float)
        if not (np.all(np.isfinite(ds)) and np.all(np.isfinite(v_max))):
            logger.debug("Non-finite input to jerk filtered smoother")
            return False, points
        v_max = np.maximum(v_max, 0.0)

        # Backward pass: every upper bound must be reachable by braking.
        for i in range(len(v_max) - 2, -1, -1):
            v_max[i] = min(v_max[i], math.sqrt(v_max[i + 1] ** 2 + 2.0 * abs(cfg.min_decel) * ds[i]))

        if v0 > v_max[0] + cfg.initial_velocity_tolerance_mps:
            logger.debug(f"Initial velocity {v0:.2f} exceeds brakeable velocity {v_max[0]:.2f}")
            return False, points

        velocities = self._forward_jerk_pass(v0, a0, v_max, ds)
        if velocities is None:
            return False, points

        output = [p.copy() for p in points]
        for i, point in enumerate(output):
            point.longitudinal_velocity_mps = float(velocities[i])
            if i < len(output) - 1 and ds[i] > 1e-6:
                point.acceleration_mps2 = float((velocities[i + 1] ** 2 - velocities[i] ** 2) / (2.0 * ds[i]))
            else:
                point.acceleration_mps2 = 0.0
        return True, output

    def _forward_jerk_pass(self, v0: float, a0: float, v_max: np.ndarray,
                           ds: np.ndarray) -> Optional[List[float]]:
        cfg = self.config
        velocities = [float(v0)]
        accel = float(np.clip(a0, cfg.min_decel, cfg.max_accel))
        for i in range(1, len(v_max)):
            v_prev = velocities[-1]
            if ds[i - 1] <= 1e-6:
                velocities.append(min(v_prev, float(v_max[i])))
                continue
            dt = ds[i - 1] / max(v_prev, cfg.min_velocity_for_dt)

            target_accel = (v_max[i] - v_prev) / dt
            target_accel = max(cfg.min_decel, min(cfg.max_accel, target_accel))
            accel_delta = max(cfg.min_jerk * dt, min(cfg.max_jerk * dt, target_accel - accel))
            accel = max(cfg.min_decel, min(cfg.max_accel, accel + accel_delta))

            v_next = math.sqrt(max(v_prev * v_prev + 2.0 * accel * ds[i - 1], 0.0))
            if v_next > v_max[i]:
                v_next = float(v_max[i])
                accel = (v_next * v_next - v_prev * v_prev) / (2.0 * ds[i - 1])
            velocities.append(v_next)

        if not all(math.isfinite(v) for v in velocities):
            return None
        return velocities


def build_jerk_filtered_smoother(smoother_cfg: Optional[dict] = None) -> JerkFilteredSmoother:
    """Build a JerkFilteredSmoother from a config dictionary."""
    smoother_cfg = smoother_cfg or {}
    defaults = JerkFilteredSmootherConfig()
    config = JerkFilteredSmootherConfig(
        **{
            name: float(smoother_cfg.get(name, getattr(defaults, name)))
            for name in JerkFilteredSmootherConfig.__dataclass_fields__
        }
    )
    if config.min_decel > 0.0 or config.min_jerk > 0.0:
        raise ValueError("min_decel and min_jerk must be non-positive")
    return JerkFilteredSmoother(config)
