"""
Trajectory interpolation stages and the per-cycle pipeline.

Every stage mutates the trajectory list in place and never raises: when a
stage cannot run it logs the reason and leaves the trajectory unchanged.
"""

from __future__ import annotations

import logging
import math

import numpy as np

from .akima_trajectory import AkimaTrajectory
from .formats.data_format import (
    AccelerationState,
    InitialMotion,
    Odometry,
    Pose,
    TrajectoryPoint,
    TrajectoryPoints,
)
from .geometry import (
    calc_distance2d,
    calculate_time_from_start,
    create_quaternion_from_yaw,
    get_yaw,
    insert_orientation,
    normalize_degree,
    remove_first_invalid_orientation_points,
    validate_pose,
)
from .params import TrajectoryInterpolatorParams
from .time_resampler import resample_trajectory_by_time

logger = logging.getLogger(__name__)

# Distance/yaw below which the ego state is considered already represented,
# and the tolerance for matching the spline end to the original goal.
EPSILON = 1e-2


def smooth_trajectory_with_elastic_band(traj_points: TrajectoryPoints, current_odometry: Odometry,
                                        eb_path_smoother) -> None:
    """Smooth the path geometry with the elastic band, then clear its state."""
    if eb_path_smoother is None:
        logger.error("Elastic band path smoother is not initialized")
        return
    traj_points[:] = eb_path_smoother.smooth_trajectory(traj_points, current_odometry.pose)
    eb_path_smoother.reset_previous_data()


def remove_close_proximity_points(traj_points: TrajectoryPoints, min_dist: float) -> None:
    """Drop points closer than ``min_dist`` to the previously kept point."""
    if len(traj_points) < 2:
        return
    kept = [traj_points[0]]
    for point in traj_points[1:]:
        if calc_distance2d(point, kept[-1]) < min_dist:
            continue
        kept.append(point)
    traj_points[:] = kept


def remove_invalid_points(traj_points: TrajectoryPoints, min_dist: float = EPSILON,
                          max_yaw_diff: float = math.pi / 2.0) -> None:
    """
    Remove overlapping points and points with inconsistent orientation.

    Orientation is re-derived from the successor of every point and the first
    inconsistent point is dropped, repeating until the size stops changing.
    """
    if len(traj_points) < 2:
        logger.error("Not enough points in trajectory to remove invalid points")
        return
    remove_close_proximity_points(traj_points, min_dist)

    # Each pass removes at most one point, so len(traj_points) passes suffice.
    for _ in range(len(traj_points)):
        insert_orientation(traj_points, is_driving_forward=True)
        if not remove_first_invalid_orientation_points(traj_points, max_yaw_diff):
            break


def clamp_velocities(traj_points: TrajectoryPoints, min_velocity: float, min_acceleration: float) -> None:
    for point in traj_points:
        point.longitudinal_velocity_mps = max(point.longitudinal_velocity_mps, min_velocity)
        point.acceleration_mps2 = max(point.acceleration_mps2, min_acceleration)


def set_max_velocity(traj_points: TrajectoryPoints, max_velocity: float) -> None:
    for point in traj_points:
        point.longitudinal_velocity_mps = min(point.longitudinal_velocity_mps, max_velocity)


def filter_velocity(traj_points: TrajectoryPoints, initial_motion: InitialMotion,
                    params: TrajectoryInterpolatorParams, smoother,
                    current_odometry: Odometry) -> None:
    """
    Run the jerk filtered velocity smoother over the trajectory.

    The trajectory is clipped to start at the point nearest the ego pose
    before the final optimization. If the optimization fails, the clipped
    pre-optimization profile is kept.
    """
    if smoother is None:
        logger.error("JerkFilteredSmoother is not initialized")
        return

    nearest_dist_threshold = params.nearest_dist_threshold_m
    nearest_yaw_threshold = params.nearest_yaw_threshold_rad
    ego_pose = current_odometry.pose

    traj = smoother.apply_lateral_acceleration_filter(
        traj_points, initial_motion.speed_mps, initial_motion.acc_mps2,
        enable_smooth_limit=True, use_resampling=True,
    )
    # Already resampled by the lateral acceleration filter.
    traj = smoother.apply_steering_rate_limit(traj, use_resampling=False)
    traj = smoother.resample_trajectory(
        traj, initial_motion.speed_mps, ego_pose, nearest_dist_threshold, nearest_yaw_threshold
    )
    traj_points[:] = traj

    if len(traj_points) < 2:
        return

    closest_idx = smoother.find_nearest_index(
        traj_points, ego_pose, nearest_dist_threshold, nearest_yaw_threshold
    )
    del traj_points[:closest_idx]

    ok, optimized = smoother.apply(initial_motion.speed_mps, initial_motion.acc_mps2, traj_points)
    if not ok:
        logger.warning("Fail to solve optimization.")
        return
    traj_points[:] = optimized


def apply_spline(traj_points: TrajectoryPoints, params: TrajectoryInterpolatorParams) -> None:
    """
    Resample the trajectory on an Akima spline at a fixed arc-length resolution.

    The original end point is appended when the last sample does not land
    on it, so the goal is preserved exactly.
    """
    ds = params.spline_interpolation_resolution_m
    if ds <= 0.0:
        logger.error(f"Invalid spline interpolation resolution: {ds}")
        return

    spline = AkimaTrajectory.build(traj_points)
    if spline is None:
        logger.warning("Failed to build interpolation trajectory")
        return

    output_points = []
    s = 0.0
    length = spline.length()
    while s <= length:
        point = spline.compute(s)
        s += ds
        if not validate_pose(point.pose):
            continue
        output_points.append(point)

    if len(output_points) < 2:
        logger.warning("Not enough points in trajectory after akima spline interpolation")
        return

    original_last_point = traj_points[-1]
    if not validate_pose(original_last_point.pose):
        logger.warning("Last point in original trajectory is invalid. Removing last point")
        traj_points[:] = output_points
        return

    if calc_distance2d(output_points[-1], original_last_point) > EPSILON:
        output_points.append(original_last_point)
    traj_points[:] = output_points


def compute_initial_motion(current_speed: float, current_acceleration: float,
                           params: TrajectoryInterpolatorParams) -> InitialMotion:
    """Start from the ego motion when moving faster than the pull-out target."""
    if current_speed > params.target_pull_out_speed_mps:
        return InitialMotion(speed_mps=current_speed, acc_mps2=current_acceleration)
    return InitialMotion(
        speed_mps=params.target_pull_out_speed_mps, acc_mps2=params.target_pull_out_acc_mps2
    )


def interpolate_trajectory(traj_points: TrajectoryPoints, current_odometry: Odometry,
                           current_acceleration: AccelerationState,
                           params: TrajectoryInterpolatorParams,
                           jerk_filtered_smoother=None, eb_path_smoother=None) -> bool:
    """
    Run all enabled stages over one trajectory (in place).

    Returns:
        True if the processed trajectory has at least two points and can be
        published, False if this cycle produced no valid output.
    """
    if params.fix_invalid_points:
        remove_invalid_points(traj_points, params.min_point_distance_m, params.max_yaw_deviation_rad)

    if len(traj_points) < 2:
        logger.error("Not enough points in trajectory after overlap points removal")
        return False

    current_speed = current_odometry.longitudinal_velocity_mps
    initial_motion = compute_initial_motion(
        current_speed, current_acceleration.linear_acceleration_mps2, params
    )

    # Engage from a stop
    if current_speed < params.target_pull_out_speed_mps:
        clamp_velocities(traj_points, initial_motion.speed_mps, initial_motion.acc_mps2)

    if params.limit_velocity:
        set_max_velocity(traj_points, params.max_speed_mps)

    if params.smooth_velocities:
        filter_velocity(traj_points, initial_motion, params, jerk_filtered_smoother, current_odometry)

    if params.use_akima_spline_interpolation:
        apply_spline(traj_points, params)

    if params.smooth_trajectories:
        smooth_trajectory_with_elastic_band(traj_points, current_odometry, eb_path_smoother)

    calculate_time_from_start(traj_points, current_odometry.pose.position)

    if params.resample_by_time:
        resample_trajectory_by_time(traj_points, params.time_resample_interval_s)

    if len(traj_points) < 2:
        logger.error("Not enough points in trajectory after interpolation")
        return False
    return True


def add_ego_state_to_trajectory(traj_points: TrajectoryPoints, current_odometry: Odometry,
                                params: TrajectoryInterpolatorParams) -> None:
    """
    Append the ego state to a history trajectory and trim it from the back.

    A jump larger than the nearest-search thresholds discards the history.
    """
    ego_state = TrajectoryPoint(
        pose=current_odometry.pose.copy(),
        longitudinal_velocity_mps=current_odometry.longitudinal_velocity_mps,
    )

    if not traj_points:
        traj_points.append(ego_state)
        return

    last_point = traj_points[-1]
    yaw_diff_deg = abs(normalize_degree(
        math.degrees(get_yaw(ego_state.pose.orientation) - get_yaw(last_point.pose.orientation))
    ))
    distance = calc_distance2d(last_point, ego_state)

    if distance < EPSILON and yaw_diff_deg < EPSILON:
        return

    if (distance > params.nearest_dist_threshold_m
            or yaw_diff_deg > math.degrees(params.nearest_yaw_threshold_rad)):
        traj_points[:] = [ego_state]
        return

    traj_points.append(ego_state)

    clip_idx = 0
    accumulated_length = 0.0
    for i in range(len(traj_points) - 1, 0, -1):
        accumulated_length += calc_distance2d(traj_points[i - 1], traj_points[i])
        if accumulated_length > params.backward_path_extension_m:
            clip_idx = i
            break
    del traj_points[:clip_idx]


def expand_trajectory_with_ego_history(traj_points: TrajectoryPoints,
                                       ego_history_points: TrajectoryPoints) -> None:
    """Prepend the ego history to the trajectory, keeping order."""
    if not ego_history_points or not traj_points:
        return
    traj_points[:0] = [point.copy() for point in ego_history_points]


def create_trajectory_point(x: float, y: float, yaw: float = 0.0, velocity: float = 0.0,
                            acceleration: float = 0.0, z: float = 0.0) -> TrajectoryPoint:
    """Convenience constructor used by the CLI and tests."""
    return TrajectoryPoint(
        pose=Pose(position=np.array([x, y, z], dtype=float), orientation=create_quaternion_from_yaw(yaw)),
        longitudinal_velocity_mps=float(velocity),
        acceleration_mps2=float(acceleration),
    )
