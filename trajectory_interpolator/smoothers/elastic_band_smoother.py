"""
Elastic band path smoother.

Relaxes the x-y path toward local smoothness while an anchor term and a
maximum deviation keep it close to the original points. Points up to the
one nearest the ego pose, and the final point, stay fixed. The last
optimized band is kept as the initial guess for the next call until
``reset_previous_data`` is called.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..formats.data_format import Pose, TrajectoryPoints
from ..geometry import find_nearest_index, insert_orientation

logger = logging.getLogger(__name__)


@dataclass
class ElasticBandConfig:
    """Configuration for elastic band smoothing."""

    num_iterations: int = 100
    smoothing_weight: float = 0.25  # must stay below 0.5 for a stable update
    anchor_weight: float = 0.05
    max_deviation_m: float = 0.5


class EBPathSmoother:
    """Elastic band smoother with warm-start state."""

    def __init__(self, config: Optional[ElasticBandConfig] = None) -> None:
        self.config = config or ElasticBandConfig()
        self._prev_band: Optional[np.ndarray] = None

    def reset_previous_data(self) -> None:
        self._prev_band = None

    def smooth_trajectory(self, points: TrajectoryPoints, current_pose: Pose) -> TrajectoryPoints:
        if len(points) < 3:
            return [p.copy() for p in points]
        cfg = self.config

        original = np.array([[p.pose.position[0], p.pose.position[1]] for p in points], dtype=float)
        if not np.all(np.isfinite(original)):
            logger.warning("Elastic band received non-finite points, skipping smoothing")
            return [p.copy() for p in points]

        fixed = np.zeros(len(points), dtype=bool)
        fixed[: find_nearest_index(points, current_pose) + 1] = True
        fixed[-1] = True
        free = ~fixed[1:-1, None]

        if self._prev_band is not None and self._prev_band.shape == original.shape:
            band = self._prev_band.copy()
        else:
            band = original.copy()

        for _ in range(cfg.num_iterations):
            laplacian = band[:-2] + band[2:] - 2.0 * band[1:-1]
            update = cfg.smoothing_weight * laplacian + cfg.anchor_weight * (original[1:-1] - band[1:-1])
            band[1:-1] += np.where(free, update, 0.0)

            deviation = band - original
            norm = np.linalg.norm(deviation, axis=1)
            over = norm > cfg.max_deviation_m
            if np.any(over):
                band[over] = original[over] + deviation[over] * (cfg.max_deviation_m / norm[over])[:, None]

        band[fixed] = original[fixed]
        self._prev_band = band.copy()

        output = [p.copy() for p in points]
        for point, (x, y) in zip(output, band):
            point.pose.position[0] = x
            point.pose.position[1] = y
        insert_orientation(output, is_driving_forward=True)
        return output


def build_elastic_band_smoother(eb_cfg: Optional[dict] = None) -> EBPathSmoother:
    """Build an EBPathSmoother from a config dictionary."""
    eb_cfg = eb_cfg or {}
    config = ElasticBandConfig(
        num_iterations=int(eb_cfg.get("num_iterations", 100)),
        smoothing_weight=float(eb_cfg.get("smoothing_weight", 0.25)),
        anchor_weight=float(eb_cfg.get("anchor_weight", 0.05)),
        max_deviation_m=float(eb_cfg.get("max_deviation_m", 0.5)),
    )
    if not 0.0 <= config.smoothing_weight < 0.5:
        raise ValueError(f"smoothing_weight must be in [0, 0.5), got {config.smoothing_weight}")
    return EBPathSmoother(config)
