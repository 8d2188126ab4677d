"""
Tests for the elastic band path smoother and its pipeline adapter.
"""

import logging
from unittest.mock import MagicMock

import numpy as np
import pytest

from trajectory_interpolator.formats.data_format import Odometry, Pose
from trajectory_interpolator.geometry import get_yaw
from trajectory_interpolator.smoothers.elastic_band_smoother import (
    EBPathSmoother,
    ElasticBandConfig,
    build_elastic_band_smoother,
)
from trajectory_interpolator.utils import create_trajectory_point, smooth_trajectory_with_elastic_band


def _make_zigzag(n=11, amplitude=0.3):
    points = []
    for i in range(n):
        y = 0.0 if i in (0, n - 1) else amplitude * (1 if i % 2 else -1)
        points.append(create_trajectory_point(float(i), y))
    return points


def _roughness(xy):
    return float(np.sum((xy[:-2] + xy[2:] - 2.0 * xy[1:-1]) ** 2))


def _xy(points):
    return np.array([[p.pose.position[0], p.pose.position[1]] for p in points])


class TestEBPathSmoother:
    def test_straight_path_is_unchanged(self):
        smoother = EBPathSmoother()
        points = [create_trajectory_point(float(i), 0.0) for i in range(10)]

        output = smoother.smooth_trajectory(points, Pose())

        assert np.allclose(_xy(output), _xy(points))
        assert all(get_yaw(p.pose.orientation) == pytest.approx(0.0, abs=1e-9) for p in output)

    def test_zigzag_is_smoothed_within_deviation(self):
        config = ElasticBandConfig(max_deviation_m=0.5)
        smoother = EBPathSmoother(config)
        points = _make_zigzag()
        ego = Pose(position=np.array([-5.0, 0.0, 0.0]))

        output = smoother.smooth_trajectory(points, ego)

        original = _xy(points)
        smoothed = _xy(output)
        assert _roughness(smoothed) < _roughness(original)
        assert np.all(np.linalg.norm(smoothed - original, axis=1) <= config.max_deviation_m + 1e-9)
        assert np.array_equal(smoothed[0], original[0])
        assert np.array_equal(smoothed[-1], original[-1])

    def test_points_behind_ego_stay_fixed(self):
        smoother = EBPathSmoother()
        points = _make_zigzag()
        ego = Pose(position=np.array([5.0, 0.0, 0.0]))

        output = smoother.smooth_trajectory(points, ego)

        assert np.array_equal(_xy(output)[:6], _xy(points)[:6])

    def test_input_is_not_mutated(self):
        points = _make_zigzag()
        before = _xy(points)
        EBPathSmoother().smooth_trajectory(points, Pose(position=np.array([-5.0, 0.0, 0.0])))
        assert np.array_equal(_xy(points), before)

    def test_short_path_is_copied(self):
        points = [create_trajectory_point(0.0, 0.0), create_trajectory_point(1.0, 0.3)]
        output = EBPathSmoother().smooth_trajectory(points, Pose())
        assert np.array_equal(_xy(output), _xy(points))
        assert output[0] is not points[0]

    def test_reset_clears_warm_start(self):
        smoother = EBPathSmoother()
        smoother.smooth_trajectory(_make_zigzag(), Pose(position=np.array([-5.0, 0.0, 0.0])))
        assert smoother._prev_band is not None

        smoother.reset_previous_data()
        assert smoother._prev_band is None


def test_build_rejects_unstable_weight():
    with pytest.raises(ValueError):
        build_elastic_band_smoother({"smoothing_weight": 0.6})
    assert build_elastic_band_smoother({"num_iterations": 10}).config.num_iterations == 10


class TestElasticBandAdapter:
    def test_adapter_replaces_points_and_resets(self):
        smoother = MagicMock()
        smoothed = [create_trajectory_point(0.0, 1.0), create_trajectory_point(1.0, 1.0)]
        smoother.smooth_trajectory.return_value = smoothed
        odometry = Odometry()
        traj = [create_trajectory_point(0.0, 0.0), create_trajectory_point(1.0, 0.0)]

        smooth_trajectory_with_elastic_band(traj, odometry, smoother)

        smoother.smooth_trajectory.assert_called_once()
        assert smoother.smooth_trajectory.call_args[0][1] is odometry.pose
        smoother.reset_previous_data.assert_called_once()
        assert [p.pose.position[1] for p in traj] == pytest.approx([1.0, 1.0])

    def test_missing_smoother_is_noop(self, caplog):
        traj = [create_trajectory_point(0.0, 0.0), create_trajectory_point(1.0, 0.0)]
        with caplog.at_level(logging.ERROR):
            smooth_trajectory_with_elastic_band(traj, Odometry(), None)
        assert len(traj) == 2
        assert "not initialized" in caplog.text
