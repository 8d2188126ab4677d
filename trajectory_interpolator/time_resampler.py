"""
Fixed time-step resampling along a trajectory's velocity profile.
"""

from __future__ import annotations

import logging
import math

from .formats.data_format import TrajectoryPoint, TrajectoryPoints
from .geometry import calc_distance2d

logger = logging.getLogger(__name__)

MIN_RESAMPLE_DT = 1e-2
DISTANCE_EPSILON = 1e-6


def interpolate_point(start: TrajectoryPoint, end: TrajectoryPoint, ratio: float) -> TrajectoryPoint:
    """
    Linearly interpolate position and heading rate between two points.

    Orientation, velocity and acceleration are taken from ``start``; the
    orientation is intentionally not interpolated.
    """
    point = start.copy()
    point.pose.position = start.pose.position + ratio * (end.pose.position - start.pose.position)
    point.heading_rate_rps = start.heading_rate_rps + ratio * (end.heading_rate_rps - start.heading_rate_rps)
    return point


def resample_trajectory_by_time(traj_points: TrajectoryPoints, dt: float) -> None:
    """
    Resample the trajectory at a fixed time step (in place).

    Samples advance v * dt along each segment, where v is the velocity of the
    segment's start point; segments shorter than one step are skipped.
    time_from_start of the k-th emitted sample is exactly k * dt.
    """
    if not dt >= MIN_RESAMPLE_DT:
        logger.error(f"Resample time interval {dt} is below {MIN_RESAMPLE_DT}")
        return
    if len(traj_points) < 2:
        logger.error("Not enough points in trajectory for time resampling")
        return

    first = traj_points[0].copy()
    first.time_from_start = 0.0
    output = [first]
    sample_index = 0

    for i in range(len(traj_points) - 1):
        start = traj_points[i]
        end = traj_points[i + 1]
        segment_length = calc_distance2d(start, end)
        step = start.longitudinal_velocity_mps * dt
        if not (math.isfinite(step) and math.isfinite(segment_length)):
            logger.warning(f"Skipping non-finite segment {i} in time resampling")
            continue
        if step <= 0.0 or step > segment_length:
            continue

        travelled = 0.0
        while True:
            travelled += step
            if travelled > segment_length + DISTANCE_EPSILON:
                break
            sample_index += 1
            point = interpolate_point(start, end, min(travelled / segment_length, 1.0))
            point.time_from_start = dt * sample_index
            output.append(point)
            if abs(travelled - segment_length) <= DISTANCE_EPSILON:
                break

    traj_points[:] = output
