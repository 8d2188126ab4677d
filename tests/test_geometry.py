"""
Unit tests for geometry primitives and time-from-start computation.
"""

import math

import numpy as np
import pytest

from trajectory_interpolator.formats.data_format import Pose
from trajectory_interpolator.geometry import (
    calc_distance2d,
    calculate_time_from_start,
    create_quaternion_from_rpy,
    create_quaternion_from_yaw,
    find_first_nearest_index_with_soft_constraints,
    find_nearest_index,
    find_nearest_segment_index,
    get_yaw,
    insert_orientation,
    normalize_degree,
    normalize_radian,
    remove_first_invalid_orientation_points,
    validate_pose,
)
from trajectory_interpolator.utils import create_trajectory_point


def _make_line(xs, velocity=1.0):
    return [create_trajectory_point(x, 0.0, velocity=velocity) for x in xs]


def test_calc_distance2d_ignores_z():
    a = create_trajectory_point(0.0, 0.0, z=0.0)
    b = create_trajectory_point(3.0, 4.0, z=9.0)
    assert calc_distance2d(a, b) == pytest.approx(5.0)
    assert calc_distance2d(a.pose, [3.0, 4.0, -2.0]) == pytest.approx(5.0)


@pytest.mark.parametrize(
    "deg, expected",
    [(0.0, 0.0), (190.0, -170.0), (-190.0, 170.0), (180.0, -180.0), (-180.0, -180.0), (540.0, -180.0)],
)
def test_normalize_degree_range(deg, expected):
    assert normalize_degree(deg) == pytest.approx(expected)


def test_normalize_radian_range():
    assert normalize_radian(1.5 * math.pi) == pytest.approx(-0.5 * math.pi)
    assert normalize_radian(-1.5 * math.pi) == pytest.approx(0.5 * math.pi)
    for value in np.linspace(-10.0, 10.0, 41):
        wrapped = normalize_radian(value)
        assert -math.pi <= wrapped < math.pi


class TestValidatePose:
    def test_finite_pose_is_valid(self):
        pose = Pose(position=[1.0, 1.0, 1.0], orientation=[0.0, 0.0, 0.0, 1.0])
        assert validate_pose(pose)

    @pytest.mark.parametrize("index", range(7))
    @pytest.mark.parametrize("bad_value", [float("nan"), float("inf"), float("-inf")])
    def test_non_finite_component_is_invalid(self, index, bad_value):
        pose = Pose(position=[1.0, 1.0, 1.0], orientation=[0.0, 0.0, 0.0, 1.0])
        if index < 3:
            pose.position[index] = bad_value
        else:
            pose.orientation[index - 3] = bad_value
        assert not validate_pose(pose)


def test_yaw_quaternion_round_trip():
    for yaw in (-3.0, -0.7, 0.0, 0.7, 3.0):
        assert get_yaw(create_quaternion_from_yaw(yaw)) == pytest.approx(yaw, abs=1e-9)
    assert np.allclose(create_quaternion_from_rpy(0.0, 0.0, 0.7), create_quaternion_from_yaw(0.7))


def test_insert_orientation_points_to_successor():
    points = [create_trajectory_point(0.0, 0.0), create_trajectory_point(1.0, 0.0),
              create_trajectory_point(1.0, 1.0)]
    insert_orientation(points)
    yaws = [get_yaw(p.pose.orientation) for p in points]
    assert yaws == pytest.approx([0.0, math.pi / 2.0, math.pi / 2.0], abs=1e-9)


def test_remove_first_invalid_orientation_point():
    points = _make_line([0.0, 1.0, 0.5, 2.0])
    insert_orientation(points)

    assert remove_first_invalid_orientation_points(points)
    assert [p.pose.position[0] for p in points] == pytest.approx([0.0, 0.5, 2.0])

    insert_orientation(points)
    assert not remove_first_invalid_orientation_points(points)
    assert len(points) == 3


class TestNearestSearch:
    def test_find_nearest_index_empty_raises(self):
        with pytest.raises(ValueError):
            find_nearest_index([], [0.0, 0.0, 0.0])

    def test_find_nearest_segment_index(self):
        points = _make_line([0.0, 1.0, 2.0, 3.0, 4.0])
        assert find_nearest_segment_index(points, [1.8, 0.0, 0.0]) == 1
        assert find_nearest_segment_index(points, [2.4, 0.3, 0.0]) == 2
        assert find_nearest_segment_index(points, [-1.0, 0.0, 0.0]) == 0
        assert find_nearest_segment_index(points, [9.0, 0.0, 0.0]) == 3

    def test_soft_constraints_prefer_matching_heading(self):
        # Path drives east along y=0, then back west along y=0.5.
        points = [create_trajectory_point(x, 0.0, yaw=0.0) for x in range(5)]
        points += [create_trajectory_point(x, 0.5, yaw=math.pi) for x in range(4, -1, -1)]
        pose = Pose(position=[2.0, 0.3, 0.0], orientation=create_quaternion_from_yaw(math.pi))

        assert find_nearest_index(points, pose) == 7
        assert find_first_nearest_index_with_soft_constraints(points, pose, 1.0, 0.5) == 7

        pose.orientation = create_quaternion_from_yaw(0.0)
        assert find_first_nearest_index_with_soft_constraints(points, pose, 1.0, 0.5) == 2

    def test_soft_constraints_fall_back_to_nearest(self):
        points = _make_line([0.0, 1.0, 2.0, 3.0])
        insert_orientation(points)
        pose = Pose(position=[2.1, 5.0, 0.0], orientation=create_quaternion_from_yaw(math.pi))
        assert find_first_nearest_index_with_soft_constraints(points, pose, 1.0, 0.5) == 2


class TestCalculateTimeFromStart:
    def test_time_accumulates_from_ego(self):
        points = _make_line([0.0, 1.0, 2.0, 3.0, 4.0], velocity=2.0)
        calculate_time_from_start(points, [0.0, 0.0, 0.0])
        assert [p.time_from_start for p in points] == pytest.approx([0.0, 0.5, 1.0, 1.5, 2.0])

    def test_points_behind_ego_have_zero_time(self):
        points = _make_line([0.0, 1.0, 2.0, 3.0, 4.0], velocity=2.0)
        calculate_time_from_start(points, [2.2, 0.0, 0.0])
        assert [p.time_from_start for p in points] == pytest.approx([0.0, 0.0, 0.0, 0.5, 1.0])

    def test_slow_points_use_minimum_velocity(self):
        points = _make_line([0.0, 1.0, 2.0], velocity=0.0)
        calculate_time_from_start(points, [0.0, 0.0, 0.0])
        assert [p.time_from_start for p in points] == pytest.approx([0.0, 1.0, 2.0])
        assert all(math.isfinite(p.time_from_start) for p in points)
