"""
Geometry primitives and motion utilities for trajectory points.

Points, poses and raw position arrays are accepted interchangeably by the
distance helpers. Orientation is stored as an [x, y, z, w] quaternion.
"""

from __future__ import annotations

import math
from typing import Sequence, Union

import numpy as np
from scipy.spatial.transform import Rotation

from .formats.data_format import Pose, TrajectoryPoint, TrajectoryPoints

PoseLike = Union[TrajectoryPoint, Pose, np.ndarray, Sequence[float]]


def get_pose(obj: Union[TrajectoryPoint, Pose]) -> Pose:
    if isinstance(obj, TrajectoryPoint):
        return obj.pose
    return obj


def get_position(obj: PoseLike) -> np.ndarray:
    if isinstance(obj, TrajectoryPoint):
        return obj.pose.position
    if isinstance(obj, Pose):
        return obj.position
    return np.asarray(obj, dtype=float)


def calc_distance2d(a: PoseLike, b: PoseLike) -> float:
    """Euclidean distance between two objects on the x-y plane."""
    pa = get_position(a)
    pb = get_position(b)
    return math.hypot(float(pa[0] - pb[0]), float(pa[1] - pb[1]))


def calc_squared_distance2d(a: PoseLike, b: PoseLike) -> float:
    pa = get_position(a)
    pb = get_position(b)
    dx = float(pa[0] - pb[0])
    dy = float(pa[1] - pb[1])
    return dx * dx + dy * dy


def normalize_degree(deg: float, min_deg: float = -180.0) -> float:
    """Wrap an angle in degrees into [min_deg, min_deg + 360)."""
    value = math.fmod(deg - min_deg, 360.0)
    if value < 0.0:
        value += 360.0
    return value + min_deg


def normalize_radian(rad: float, min_rad: float = -math.pi) -> float:
    """Wrap an angle in radians into [min_rad, min_rad + 2*pi)."""
    value = math.fmod(rad - min_rad, 2.0 * math.pi)
    if value < 0.0:
        value += 2.0 * math.pi
    return value + min_rad


def validate_pose(pose: Pose) -> bool:
    """Return True if every position and orientation component is finite."""
    return bool(np.all(np.isfinite(pose.position)) and np.all(np.isfinite(pose.orientation)))


def get_yaw(orientation: np.ndarray) -> float:
    """Yaw angle (radians) of an [x, y, z, w] quaternion."""
    x, y, z, w = (float(v) for v in orientation)
    return math.atan2(2.0 * (w * z + x * y), 1.0 - 2.0 * (y * y + z * z))


def create_quaternion_from_rpy(roll: float, pitch: float, yaw: float) -> np.ndarray:
    return Rotation.from_euler("xyz", [roll, pitch, yaw]).as_quat()


def create_quaternion_from_yaw(yaw: float) -> np.ndarray:
    return np.array([0.0, 0.0, math.sin(yaw / 2.0), math.cos(yaw / 2.0)])


def calc_azimuth_angle(src: PoseLike, dst: PoseLike) -> float:
    ps = get_position(src)
    pd = get_position(dst)
    return math.atan2(float(pd[1] - ps[1]), float(pd[0] - ps[0]))


def calc_elevation_angle(src: PoseLike, dst: PoseLike) -> float:
    ps = get_position(src)
    pd = get_position(dst)
    dz = float(pd[2] - ps[2])
    return -math.atan2(dz, calc_distance2d(ps, pd))


def calc_yaw_deviation(base_pose: Pose, target_pose: Pose) -> float:
    return normalize_radian(get_yaw(target_pose.orientation) - get_yaw(base_pose.orientation))


def is_driving_forward(src_pose: Pose, dst_pose: Pose) -> bool:
    """True if dst lies ahead of src with respect to src's heading."""
    src_yaw = get_yaw(src_pose.orientation)
    direction_yaw = calc_azimuth_angle(src_pose, dst_pose)
    return abs(normalize_radian(src_yaw - direction_yaw)) < math.pi / 2.0


def insert_orientation(points: TrajectoryPoints, is_driving_forward: bool = True) -> None:
    """
    Point every pose toward its successor (in place).

    The last point inherits the orientation of the point before it.
    """
    if len(points) < 2:
        return
    for i in range(len(points) - 1):
        src = points[i].pose
        dst = points[i + 1].pose
        pitch = calc_elevation_angle(src, dst)
        yaw = calc_azimuth_angle(src, dst)
        if not is_driving_forward:
            pitch = -pitch
            yaw = yaw + math.pi
        src.orientation = create_quaternion_from_rpy(0.0, pitch, yaw)
    points[-1].pose.orientation = points[-2].pose.orientation.copy()


def remove_first_invalid_orientation_points(
    points: TrajectoryPoints, max_yaw_diff: float = math.pi / 2.0
) -> bool:
    """
    Remove the first point whose orientation is inconsistent with its predecessor.

    A point is invalid when its yaw deviates from the previous point's yaw by
    more than ``max_yaw_diff`` or when it lies behind the previous point.

    Returns:
        True if a point was removed.
    """
    for i in range(len(points) - 1):
        p1 = points[i].pose
        p2 = points[i + 1].pose
        yaw_diff = normalize_radian(get_yaw(p1.orientation) - get_yaw(p2.orientation))
        if max_yaw_diff < abs(yaw_diff) or not is_driving_forward(p1, p2):
            del points[i + 1]
            return True
    return False


def calc_arc_lengths(points: TrajectoryPoints) -> np.ndarray:
    """Cumulative x-y arc length at each point (first entry is 0)."""
    if not points:
        return np.zeros(0)
    xy = np.array([[p.pose.position[0], p.pose.position[1]] for p in points], dtype=float)
    seg = np.hypot(np.diff(xy[:, 0]), np.diff(xy[:, 1]))
    return np.concatenate([[0.0], np.cumsum(seg)])


def find_nearest_index(points: TrajectoryPoints, position: PoseLike) -> int:
    if not points:
        raise ValueError("points must not be empty")
    dists = [calc_squared_distance2d(p, position) for p in points]
    return int(np.argmin(dists))


def find_nearest_segment_index(points: TrajectoryPoints, position: PoseLike) -> int:
    """Index of the start of the segment closest to ``position``."""
    nearest_idx = find_nearest_index(points, position)
    if nearest_idx == 0:
        return 0
    if nearest_idx == len(points) - 1:
        return len(points) - 2

    base = get_position(points[nearest_idx])
    nxt = get_position(points[nearest_idx + 1])
    target = get_position(position)
    seg = np.array([nxt[0] - base[0], nxt[1] - base[1]], dtype=float)
    seg_len = float(np.hypot(seg[0], seg[1]))
    if seg_len < 1e-9:
        return nearest_idx
    offset = float(np.dot(seg, [target[0] - base[0], target[1] - base[1]])) / seg_len
    if offset <= 0.0:
        return nearest_idx - 1
    return nearest_idx


def find_first_nearest_index_with_soft_constraints(
    points: TrajectoryPoints,
    pose: Pose,
    dist_threshold: float = math.inf,
    yaw_threshold: float = math.inf,
) -> int:
    """
    Find the first nearest point to ``pose`` that satisfies the thresholds.

    Falls back to the distance threshold only, then to the plain nearest
    point when no candidate satisfies the constraints.
    """
    squared_dist_threshold = dist_threshold * dist_threshold

    for use_yaw in (True, False):
        min_squared_dist = math.inf
        min_idx = 0
        is_within_constraints = False
        for i, point in enumerate(points):
            squared_dist = calc_squared_distance2d(point, pose)
            outside = squared_dist_threshold < squared_dist
            if use_yaw:
                outside = outside or yaw_threshold < abs(calc_yaw_deviation(point.pose, pose))
            if outside:
                if is_within_constraints:
                    break
                continue
            if min_squared_dist <= squared_dist:
                continue
            min_squared_dist = squared_dist
            min_idx = i
            is_within_constraints = True
        if is_within_constraints:
            return min_idx

    return find_nearest_index(points, pose)


def calculate_time_from_start(
    points: TrajectoryPoints, current_position: PoseLike, min_velocity: float = 1.0
) -> None:
    """
    Recompute time_from_start for every point (in place).

    Points up to the segment nearest the ego position get zero; later points
    accumulate segment length divided by the start point's velocity, which is
    floored at ``min_velocity``.
    """
    if len(points) < 2:
        return
    nearest_segment_idx = find_nearest_segment_index(points, current_position)
    for point in points:
        point.time_from_start = 0.0
    for idx in range(nearest_segment_idx + 1, len(points)):
        src = points[idx - 1]
        dst = points[idx]
        velocity = max(min_velocity, src.longitudinal_velocity_mps)
        if velocity != 0.0:
            dst.time_from_start = src.time_from_start + calc_distance2d(src, dst) / velocity
