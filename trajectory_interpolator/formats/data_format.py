"""
Data format definitions for the trajectory interpolator.
"""

from dataclasses import dataclass, field
from typing import List

import numpy as np


def _identity_quaternion() -> np.ndarray:
    return np.array([0.0, 0.0, 0.0, 1.0])


@dataclass
class Pose:
    """Position and orientation in the map frame."""
    position: np.ndarray = field(default_factory=lambda: np.zeros(3))  # [x, y, z]
    orientation: np.ndarray = field(default_factory=_identity_quaternion)  # [x, y, z, w] quaternion

    def __post_init__(self):
        self.position = np.asarray(self.position, dtype=float)
        self.orientation = np.asarray(self.orientation, dtype=float)

    def copy(self) -> "Pose":
        return Pose(position=self.position.copy(), orientation=self.orientation.copy())


@dataclass
class TrajectoryPoint:
    """Single point in a trajectory."""
    pose: Pose = field(default_factory=Pose)
    longitudinal_velocity_mps: float = 0.0
    acceleration_mps2: float = 0.0
    heading_rate_rps: float = 0.0
    time_from_start: float = 0.0  # seconds

    def copy(self) -> "TrajectoryPoint":
        return TrajectoryPoint(
            pose=self.pose.copy(),
            longitudinal_velocity_mps=self.longitudinal_velocity_mps,
            acceleration_mps2=self.acceleration_mps2,
            heading_rate_rps=self.heading_rate_rps,
            time_from_start=self.time_from_start,
        )


TrajectoryPoints = List[TrajectoryPoint]


@dataclass
class Odometry:
    """Vehicle odometry: current pose and longitudinal speed."""
    pose: Pose = field(default_factory=Pose)
    longitudinal_velocity_mps: float = 0.0
    timestamp: float = 0.0


@dataclass
class AccelerationState:
    """Current linear acceleration estimate (independent of odometry)."""
    linear_acceleration_mps2: float = 0.0
    timestamp: float = 0.0


@dataclass
class InitialMotion:
    """Velocity and acceleration the processed trajectory starts from."""
    speed_mps: float
    acc_mps2: float
