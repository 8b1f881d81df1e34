"""Tests for the refinement study, its configuration and plotting.

Run with: uv run pytest tests/test_convergence.py -v
"""

from pathlib import Path

import numpy as np
import pandas as pd
import pytest
from omegaconf import OmegaConf

from stable_eval.convergence import (
    compute_convergence_rates,
    fit_convergence_rate,
    run_convergence_study,
    run_level,
)
from stable_eval.datastructures import StudyParameters

CONFIG = Path(__file__).resolve().parents[1] / "conf" / "config.yaml"


class TestRates:
    def test_second_order(self):
        h = np.array([0.5, 0.25, 0.125, 0.0625])
        errors = 3.0 * h**2
        assert np.allclose(compute_convergence_rates(h, errors), 2.0)
        assert np.isclose(fit_convergence_rate(h, errors), 2.0)

    def test_mixed_orders(self):
        h = np.array([1.0, 0.5, 0.25])
        errors = np.array([1.0, 0.5, 0.0625])
        assert np.allclose(compute_convergence_rates(h, errors), [1.0, 3.0])


class TestStudy:
    """Small refinement study on coarse meshes."""

    @pytest.fixture(scope="class")
    def study(self):
        return run_convergence_study(StudyParameters(N_values=[4, 8]))

    def test_columns(self, study):
        assert isinstance(study, pd.DataFrame)
        assert len(study) == 2
        for column in (
            "N",
            "h",
            "ndofs",
            "exact",
            "stable_value",
            "error_point_eval",
            "error_stable",
            "error_interpolation",
            "wall_time_seconds",
        ):
            assert column in study.columns

    def test_values(self, study):
        assert list(study["N"]) == [4, 8]
        assert list(study["ndofs"]) == [25, 81]
        assert np.allclose(study["h"], np.sqrt(2) / np.array([4, 8]))
        assert np.allclose(study["exact"], 0.5 * np.log(1.3**2 + 0.4**2))
        assert np.all(study["error_stable"] < 0.05)
        assert study["error_point_eval"].iloc[1] < study["error_point_eval"].iloc[0]

    def test_single_level(self):
        metrics = run_level(8, StudyParameters(x=(0.45, 0.55)))
        assert metrics.N == 8
        assert np.isclose(metrics.exact, 0.5 * np.log(1.45**2 + 0.55**2))
        assert metrics.error_stable == abs(metrics.exact - metrics.stable_value)
        assert metrics.wall_time_seconds > 0


class TestConfig:
    """The packaged Hydra config maps onto StudyParameters."""

    def test_create_parameters(self):
        from run_study import create_parameters

        cfg = OmegaConf.load(CONFIG)
        params = create_parameters(cfg)
        defaults = StudyParameters()
        assert params.N_values == defaults.N_values
        assert params.x == defaults.x
        assert params.quad_degree == defaults.quad_degree
        assert params.quad_refinements == defaults.quad_refinements
        assert params.quad_min_size == defaults.quad_min_size
        assert np.isclose(params.r_in, defaults.r_in)
        assert params.r_out == defaults.r_out

    def test_overrides(self):
        from run_study import create_parameters

        cfg = OmegaConf.merge(
            OmegaConf.load(CONFIG),
            OmegaConf.from_dotlist(["study.N_values=[8,16]", "study.quad_degree=3"]),
        )
        params = create_parameters(cfg)
        assert params.N_values == [8, 16]
        assert params.quad_degree == 3


class TestPlot:
    def test_plot_convergence(self, tmp_path):
        from stable_eval.plot_style import plot_convergence

        h = np.array([0.25, 0.125, 0.0625])
        df = pd.DataFrame(
            {
                "h": h,
                "error_point_eval": h**2,
                "error_stable": 0.5 * h**2,
                "error_interpolation": 2.0 * h**2,
            }
        )
        path = plot_convergence(df, tmp_path / "plots" / "convergence.pdf")
        assert path.exists()
        assert path.stat().st_size > 0


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
