"""
Arc-length parameterized trajectory with Akima interpolation on x-y.
"""

from __future__ import annotations

import logging
import math
from typing import Optional

import numpy as np
from scipy.interpolate import Akima1DInterpolator

from .formats.data_format import Pose, TrajectoryPoint, TrajectoryPoints
from .geometry import calc_arc_lengths, create_quaternion_from_yaw

logger = logging.getLogger(__name__)

# Akima needs two neighbours on each side of an interval to estimate slopes.
MIN_AKIMA_POINTS = 5


class AkimaTrajectory:
    """
    Continuous trajectory over arc length s in [0, length].

    x and y use Akima splines, z is linear, and velocity, acceleration and
    heading rate are held from the preceding input point. Orientation is
    taken from the direction of the curve.
    """

    def __init__(self, bases: np.ndarray, xs: np.ndarray, ys: np.ndarray, zs: np.ndarray,
                 velocities: np.ndarray, accelerations: np.ndarray, heading_rates: np.ndarray):
        self.bases = bases
        self._x = Akima1DInterpolator(bases, xs)
        self._y = Akima1DInterpolator(bases, ys)
        self._zs = zs
        self._velocities = velocities
        self._accelerations = accelerations
        self._heading_rates = heading_rates

    @classmethod
    def build(cls, points: TrajectoryPoints) -> Optional["AkimaTrajectory"]:
        """Fit the trajectory, or return None if the points cannot be fitted."""
        if len(points) < MIN_AKIMA_POINTS:
            logger.debug(f"Akima interpolation needs {MIN_AKIMA_POINTS} points, got {len(points)}")
            return None
        bases = calc_arc_lengths(points)
        if not np.all(np.isfinite(bases)) or np.any(np.diff(bases) <= 0.0):
            logger.debug("Arc length is not strictly increasing, cannot fit Akima spline")
            return None
        positions = np.array([p.pose.position for p in points], dtype=float)
        try:
            return cls(
                bases,
                positions[:, 0],
                positions[:, 1],
                positions[:, 2],
                np.array([p.longitudinal_velocity_mps for p in points], dtype=float),
                np.array([p.acceleration_mps2 for p in points], dtype=float),
                np.array([p.heading_rate_rps for p in points], dtype=float),
            )
        except ValueError as exc:
            logger.debug(f"Akima fit failed: {exc}")
            return None

    def length(self) -> float:
        return float(self.bases[-1])

    def compute(self, s: float) -> TrajectoryPoint:
        s = min(max(s, 0.0), self.length())
        idx = int(np.searchsorted(self.bases, s, side="right")) - 1
        idx = min(max(idx, 0), len(self.bases) - 1)

        x = float(self._x(s))
        y = float(self._y(s))
        z = float(np.interp(s, self.bases, self._zs))
        yaw = math.atan2(float(self._y(s, 1)), float(self._x(s, 1)))

        return TrajectoryPoint(
            pose=Pose(position=np.array([x, y, z]), orientation=create_quaternion_from_yaw(yaw)),
            longitudinal_velocity_mps=float(self._velocities[idx]),
            acceleration_mps2=float(self._accelerations[idx]),
            heading_rate_rps=float(self._heading_rates[idx]),
        )
