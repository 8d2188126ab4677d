"""
Config alignment tests. Uses yaml directly against the shipped config file.
Ensures the interpolator, velocity smoother and elastic band settings agree.
"""

import pytest
import yaml
from pathlib import Path

from trajectory_interpolator.params import TrajectoryInterpolatorParams, build_params
from trajectory_interpolator.smoothers.elastic_band_smoother import build_elastic_band_smoother
from trajectory_interpolator.smoothers.jerk_filtered_smoother import (
    JerkFilteredSmootherConfig,
    build_jerk_filtered_smoother,
)

project_root = Path(__file__).parent.parent
CONFIG_PATH = project_root / 'config' / 'trajectory_interpolator_config.yaml'


def _load_config() -> dict:
    if not CONFIG_PATH.exists():
        return {}
    with open(CONFIG_PATH, 'r') as f:
        return yaml.safe_load(f) or {}


class TestConfigKeys:
    """Every key in the shipped config must map to a real parameter."""

    def test_interpolator_keys_are_known(self):
        config = _load_config()
        if not config:
            pytest.skip('trajectory_interpolator_config.yaml not found')
        known = set(TrajectoryInterpolatorParams.__dataclass_fields__)
        unknown = set(config.get('trajectory_interpolator', {})) - known
        assert not unknown, f'Unknown trajectory_interpolator keys: {sorted(unknown)}'

    def test_smoother_keys_are_known(self):
        config = _load_config()
        if not config:
            pytest.skip('trajectory_interpolator_config.yaml not found')
        known = set(JerkFilteredSmootherConfig.__dataclass_fields__)
        unknown = set(config.get('jerk_filtered_smoother', {})) - known
        assert not unknown, f'Unknown jerk_filtered_smoother keys: {sorted(unknown)}'

    def test_shipped_config_builds(self):
        config = _load_config()
        if not config:
            pytest.skip('trajectory_interpolator_config.yaml not found')
        build_params(config)
        build_jerk_filtered_smoother(config.get('jerk_filtered_smoother', {}))
        build_elastic_band_smoother(config.get('elastic_band', {}))


class TestPullOutAlignment:
    """Pull-out targets must be reachable by the velocity smoother."""

    def test_pull_out_accel_not_exceeds_smoother(self):
        config = _load_config()
        if not config:
            pytest.skip('trajectory_interpolator_config.yaml not found')
        params = build_params(config)
        smoother_cfg = config.get('jerk_filtered_smoother', {})
        max_accel = float(smoother_cfg.get('max_accel', 1.0))
        assert params.target_pull_out_acc_mps2 <= max_accel + 0.01, (
            f'Pull-out acc {params.target_pull_out_acc_mps2} > smoother max_accel {max_accel}'
        )

    def test_pull_out_speed_below_max_speed(self):
        config = _load_config()
        if not config:
            pytest.skip('trajectory_interpolator_config.yaml not found')
        params = build_params(config)
        assert params.target_pull_out_speed_mps <= params.max_speed_mps

    def test_spline_resolution_not_coarser_than_smoother_resampling(self):
        """Spline output should be at least as dense as the smoother's minimum interval."""
        config = _load_config()
        if not config:
            pytest.skip('trajectory_interpolator_config.yaml not found')
        params = build_params(config)
        smoother_cfg = config.get('jerk_filtered_smoother', {})
        min_interval = float(smoother_cfg.get('min_resample_interval_m', 0.5))
        assert params.spline_interpolation_resolution_m <= min_interval + 1e-6
