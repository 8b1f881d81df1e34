"""Tests for the Dirichlet BVP solver.

Run with: uv run pytest tests/test_solvers.py -v
"""

import numpy as np
import pytest

from stable_eval import solvers
from stable_eval.boundary import get_boundary_nodes
from stable_eval.datastructures import Mesh2d
from stable_eval.evaluation import interpolate_fem, u_reference
from stable_eval.solvers import SolverError, solve_bvp


class TestSolveBVP:
    """Test the P1 Galerkin solve of -Laplace(u) = 0."""

    def test_linear_solution_reproduced(self):
        """Linear harmonic functions lie in the P1 space and are recovered exactly."""
        mesh = Mesh2d.unit_square(7)
        u_exact = lambda x, y: 1.0 + 2.0 * x - 3.0 * y  # noqa: E731
        u_h = solve_bvp(mesh, u_exact)
        assert np.allclose(u_h, u_exact(mesh.VX, mesh.VY), atol=1e-12)

    def test_constant_boundary_data_broadcasts(self):
        mesh = Mesh2d.unit_square(4)
        u_h = solve_bvp(mesh, lambda x, y: 2.0)
        assert np.allclose(u_h, 2.0)

    def test_boundary_values_imposed(self):
        mesh = Mesh2d.unit_square(8)
        u_h = solve_bvp(mesh, u_reference)
        idx = get_boundary_nodes(mesh) - 1
        assert np.allclose(u_h[idx], u_reference(mesh.VX[idx], mesh.VY[idx]))

    def test_discrete_maximum_principle(self):
        """Right triangles give an M-matrix, so interior values stay within the boundary range."""
        mesh = Mesh2d.unit_square(8)
        u_h = solve_bvp(mesh, u_reference)
        idx = get_boundary_nodes(mesh) - 1
        u_bd = u_h[idx]
        assert u_h.min() >= u_bd.min() - 1e-12
        assert u_h.max() <= u_bd.max() + 1e-12

    def test_converges_to_reference(self):
        """Nodal error of a smooth harmonic solution decreases under refinement."""
        errors = []
        for N in (4, 8, 16):
            mesh = Mesh2d.unit_square(N)
            u_h = solve_bvp(mesh, u_reference)
            errors.append(np.max(np.abs(u_h - u_reference(mesh.VX, mesh.VY))))
        assert errors[0] > errors[1] > errors[2]
        assert errors[2] < 1e-3

    def test_solution_interpolates(self):
        mesh = Mesh2d.unit_square(16)
        u_h = solve_bvp(mesh, u_reference)
        value = interpolate_fem(mesh, u_h, (0.3, 0.4))[0]
        assert np.isclose(value, u_reference(0.3, 0.4), atol=1e-3)

    def test_factorisation_failure(self, monkeypatch):
        def failing_splu(A):
            raise RuntimeError("Factor is exactly singular")

        monkeypatch.setattr(solvers, "splu", failing_splu)
        with pytest.raises(SolverError, match="LU decomposition failed"):
            solve_bvp(Mesh2d.unit_square(3), u_reference)

    def test_non_finite_solution(self):
        mesh = Mesh2d.unit_square(3)
        with pytest.raises(SolverError, match="Solving LSE failed"):
            solve_bvp(mesh, lambda x, y: np.full_like(x, np.nan))

    def test_solver_error_is_runtime_error(self):
        assert issubclass(SolverError, RuntimeError)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
