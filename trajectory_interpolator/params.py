"""
Parameters for the trajectory interpolator pipeline.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, Mapping, Optional, Union

import yaml

from .time_resampler import MIN_RESAMPLE_DT

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = Path(__file__).resolve().parent.parent / "config" / "trajectory_interpolator_config.yaml"


@dataclass(frozen=True)
class TrajectoryInterpolatorParams:
    """Configuration for one trajectory interpolation cycle."""

    # Nearest point search
    nearest_dist_threshold_m: float = 1.5
    nearest_yaw_threshold_rad: float = 1.0

    # Initial motion
    target_pull_out_speed_mps: float = 1.0
    target_pull_out_acc_mps2: float = 1.0
    max_speed_mps: float = 8.33

    # Ego history
    backward_path_extension_m: float = 10.0

    # Geometry
    spline_interpolation_resolution_m: float = 0.5
    min_point_distance_m: float = 0.01  # merge tolerance for close points
    max_yaw_deviation_rad: float = math.pi / 2.0
    time_resample_interval_s: float = 0.1

    # Stage toggles
    fix_invalid_points: bool = True
    limit_velocity: bool = True
    smooth_velocities: bool = False
    use_akima_spline_interpolation: bool = False
    smooth_trajectories: bool = False
    extend_trajectory_backward: bool = False
    resample_by_time: bool = False


def validate_params(params: TrajectoryInterpolatorParams) -> None:
    """Raise ValueError if any parameter is outside its valid range."""
    resolution = params.spline_interpolation_resolution_m
    if not math.isfinite(resolution) or resolution <= 0.0:
        raise ValueError(
            f"spline_interpolation_resolution_m must be positive and finite, got {resolution}"
        )
    interval = params.time_resample_interval_s
    if not math.isfinite(interval) or interval < MIN_RESAMPLE_DT:
        raise ValueError(
            f"time_resample_interval_s must be finite and >= {MIN_RESAMPLE_DT}, got {interval}"
        )
    for name in (
        "nearest_dist_threshold_m",
        "nearest_yaw_threshold_rad",
        "backward_path_extension_m",
        "min_point_distance_m",
        "max_yaw_deviation_rad",
        "max_speed_mps",
    ):
        value = getattr(params, name)
        if value < 0.0 or math.isnan(value):
            raise ValueError(f"{name} must be non-negative, got {value}")


def _coerce(default: Any, value: Any) -> Any:
    if isinstance(default, bool):
        if isinstance(value, str):
            return value.strip().lower() in {"1", "true", "yes", "on"}
        return bool(value)
    if isinstance(default, float):
        return float(value)
    return value


def update_params(
    params: TrajectoryInterpolatorParams, updates: Mapping[str, Any]
) -> TrajectoryInterpolatorParams:
    """
    Return a copy of ``params`` with ``updates`` applied.

    Unknown keys are logged and ignored. Raises ValueError if the result is
    invalid; ``params`` itself is never modified.
    """
    known = {f.name: getattr(params, f.name) for f in fields(params)}
    changes = {}
    for key, value in updates.items():
        if key not in known:
            logger.warning(f"Ignoring unknown trajectory interpolator parameter: {key}")
            continue
        try:
            changes[key] = _coerce(known[key], value)
        except (TypeError, ValueError) as exc:
            raise ValueError(f"Invalid value for {key}: {value!r}") from exc
    new_params = replace(params, **changes)
    validate_params(new_params)
    return new_params


def build_params(config: Optional[Mapping[str, Any]] = None) -> TrajectoryInterpolatorParams:
    """Build parameters from the ``trajectory_interpolator`` config section."""
    section = (config or {}).get("trajectory_interpolator", {}) or {}
    return update_params(TrajectoryInterpolatorParams(), section)


def load_config(config_path: Optional[Union[str, Path]] = None) -> dict:
    """Load configuration from YAML file or use defaults."""
    if config_path is None:
        config_path = DEFAULT_CONFIG_PATH
    else:
        config_path = Path(config_path)

    if config_path.exists():
        with open(config_path, "r") as f:
            config = yaml.safe_load(f) or {}
        logger.info(f"Loaded configuration from {config_path}")
        return config
    logger.warning(f"Config file not found at {config_path}, using defaults")
    return {}
