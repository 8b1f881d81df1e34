"""Tests for the fundamental solution and the cutoff function.

Run with: uv run pytest tests/test_kernels.py -v
"""

import numpy as np
import pytest

from stable_eval.kernels import FundamentalSolution, Psi


def fd_gradient(f, y, eps=1e-6):
    """Central difference gradient of a scalar function at a point."""
    y = np.asarray(y, dtype=float)
    return np.array(
        [(f(y + eps * e) - f(y - eps * e)) / (2 * eps) for e in np.eye(2)]
    )


def fd_laplacian(f, y, eps=1e-4):
    """Five-point Laplacian of a scalar function at a point."""
    y = np.asarray(y, dtype=float)
    total = -4.0 * f(y)
    for e in np.eye(2):
        total += f(y + eps * e) + f(y - eps * e)
    return total / eps**2


class TestFundamentalSolution:
    """Test G_x(y) = -log|x - y| / (2 pi)."""

    def test_value_at_unit_distance(self):
        """G vanishes at distance one from x."""
        G = FundamentalSolution((0.3, 0.4))
        assert np.isclose(G.value((1.3, 0.4)), 0.0, atol=1e-15)
        assert np.isclose(G((0.3, -0.6)), 0.0, atol=1e-15)

    def test_value_formula(self):
        G = FundamentalSolution((0.3, 0.4))
        y = np.array([0.7, 0.1])
        expected = -np.log(np.linalg.norm(y - [0.3, 0.4])) / (2 * np.pi)
        assert np.isclose(G.value(y), expected, rtol=1e-14)

    def test_grad_matches_finite_differences(self):
        """Analytic gradient agrees with central differences away from x."""
        G = FundamentalSolution((0.3, 0.4))
        for y in [(0.0, 0.0), (1.0, 0.5), (0.5, 1.0), (0.35, 0.9), (0.05, 0.41)]:
            grad = G.grad(y)
            fd = fd_gradient(G.value, y)
            assert np.linalg.norm(grad - fd) <= 1e-4 * np.linalg.norm(grad)

    def test_grad_points_towards_x(self):
        G = FundamentalSolution((0.5, 0.5))
        g = G.grad((1.0, 0.5))
        assert g[0] < 0 and np.isclose(g[1], 0.0)
        assert np.isclose(g[0], -1.0 / (2 * np.pi * 0.5))

    def test_vectorized(self):
        """Batches of points give one value per point."""
        G = FundamentalSolution((0.3, 0.4))
        pts = np.random.default_rng(0).uniform(0.5, 1.0, size=(4, 5, 2))
        assert G.value(pts).shape == (4, 5)
        assert G.grad(pts).shape == (4, 5, 2)
        assert np.isclose(G.value(pts)[2, 3], G.value(pts[2, 3]))

    def test_singularity_raises(self):
        G = FundamentalSolution((0.3, 0.4))
        with pytest.raises(ValueError):
            G.value((0.3, 0.4))
        with pytest.raises(ValueError):
            G.grad(np.array([[0.9, 0.9], [0.3, 0.4]]))

    def test_bad_shape_raises(self):
        G = FundamentalSolution((0.3, 0.4))
        with pytest.raises(ValueError):
            G.value((0.1, 0.2, 0.3))

    def test_immutable(self):
        G = FundamentalSolution(np.array([0.3, 0.4]))
        assert G.x == (0.3, 0.4)
        with pytest.raises(AttributeError):
            G.x = (0.0, 0.0)


class TestPsi:
    """Test the radial cutoff function."""

    @pytest.fixture
    def psi(self):
        return Psi()

    def test_defaults(self, psi):
        assert psi.center == (0.5, 0.5)
        assert np.isclose(psi.r_in, 0.25 * np.sqrt(2))
        assert psi.r_out == 0.5

    def test_zero_at_center(self, psi):
        assert psi.value((0.5, 0.5)) == 0.0
        assert np.all(psi.grad((0.5, 0.5)) == 0.0)
        assert psi.lapl((0.5, 0.5)) == 0.0

    def test_one_in_far_field(self, psi):
        """Psi is exactly one at distance >= r_out, in particular on the boundary."""
        for y in [(1.0, 0.5), (0.5, 0.0), (0.0, 0.0), (1.0, 1.0), (0.0, 0.3), (0.9, 0.95)]:
            assert psi.value(y) == 1.0
            assert np.all(psi.grad(y) == 0.0)
            assert psi.lapl(y) == 0.0

    def test_transition_is_monotone(self, psi):
        r = np.linspace(psi.r_in, psi.r_out, 200)
        y = np.column_stack([0.5 + r, np.full_like(r, 0.5)])
        vals = psi.value(y)
        assert np.all(np.diff(vals) >= 0)
        assert np.all((vals >= 0) & (vals <= 1))

    @pytest.mark.parametrize("radius", ["r_in", "r_out"])
    def test_value_continuous_across_radii(self, psi, radius):
        """No jump when sampling densely across r_in and r_out."""
        r0 = getattr(psi, radius)
        r = np.linspace(r0 - 1e-3, r0 + 1e-3, 2001)
        angle = 0.7
        y = 0.5 + np.column_stack([r * np.cos(angle), r * np.sin(angle)])
        vals = psi.value(y)
        # |f'| <= c ~ 10.7, the step in r is 1e-6
        assert np.max(np.abs(np.diff(vals))) < 1e-4

    @pytest.mark.parametrize("radius", ["r_in", "r_out"])
    def test_gradient_continuous_across_radii(self, psi, radius):
        r0 = getattr(psi, radius)
        for r in (r0 - 1e-7, r0 + 1e-7):
            y = (0.5 + r * np.cos(2.0), 0.5 + r * np.sin(2.0))
            assert np.linalg.norm(psi.grad(y)) < 1e-4

    @pytest.mark.parametrize(
        "r, angle",
        [(0.38, 0.0), (0.40, 1.1), (0.43, 2.5), (0.47, 4.0), (0.49, 5.5), (0.2, 0.3), (0.6, 1.0)],
    )
    def test_grad_and_lapl_match_finite_differences(self, psi, r, angle):
        """Gradient and Laplacian agree with finite differences of the value."""
        y = np.array([0.5 + r * np.cos(angle), 0.5 + r * np.sin(angle)])

        assert np.allclose(psi.grad(y), fd_gradient(psi.value, y), rtol=1e-5, atol=1e-6)
        lapl = psi.lapl(y)
        assert np.isclose(lapl, fd_laplacian(psi.value, y), rtol=1e-3, atol=1e-2)

    def test_lapl_radial_formula(self, psi):
        """Laplacian is f'' + f'/r of the cos^2 profile."""
        c = np.pi / (2 * (psi.r_in - psi.r_out))
        r = 0.42
        y = (0.5, 0.5 + r)
        t = c * (r - psi.r_out)
        expected = -2 * c**2 * np.cos(2 * t) - c * np.sin(2 * t) / r
        assert np.isclose(psi.lapl(y), expected, rtol=1e-12)

    def test_vanishes_near(self, psi):
        assert psi.vanishes_near((0.3, 0.4))
        assert psi.vanishes_near((0.5, 0.5))
        assert not psi.vanishes_near((0.1, 0.1))
        assert not psi.vanishes_near((0.5, 0.9))

    def test_custom_center(self):
        psi = Psi(center=(0.2, 0.2), r_in=0.1, r_out=0.15)
        assert psi.value((0.2, 0.2)) == 0.0
        assert psi.value((0.2, 0.36)) == 1.0

    @pytest.mark.parametrize("r_in, r_out", [(0.5, 0.5), (0.6, 0.5), (0.0, 0.5)])
    def test_invalid_radii(self, r_in, r_out):
        with pytest.raises(ValueError):
            Psi(r_in=r_in, r_out=r_out)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
