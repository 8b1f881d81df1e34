"""Stable point evaluation of harmonic P1 finite element solutions.

A Dirichlet problem for the Laplacian on the unit square is solved with
linear triangular elements, and the solution is evaluated at an interior
point through a regularised Green representation formula instead of by
nodal interpolation.

Main components:
- Mesh2d: 2D triangular mesh carrying the P1 space
- FundamentalSolution, Psi: kernel and cutoff evaluators
- psl, pdl: boundary layer potentials (midpoint rule)
- solve_bvp: Galerkin solve of -Laplace(u) = 0 with Dirichlet data
- jstar, stable_point_evaluation, point_eval: point evaluation
"""

from .datastructures import (
    Mesh2d,
    LEFT,
    RIGHT,
    BOTTOM,
    TOP,
    BOUNDARY_TOL,
    EDGE_VERTICES,
    StudyParameters,
    StudyMetrics,
    outernormal,
    outer_normal_unit_square,
    mesh_size,
)
from .assembly import annulus_quadrature, assembly_2d, assemble_stiffness, triangle_quadrature
from .boundary import (
    dirbc_2d,
    get_boundary_nodes,
    get_boundary_edges,
    get_edge_midpoints,
    boundary_normal_derivative,
)
from .kernels import FundamentalSolution, Psi
from .potentials import psl, pdl
from .solvers import SolverError, solve_bvp
from .evaluation import (
    jstar,
    stable_point_evaluation,
    point_eval,
    stable_point_eval_error,
    interpolate_fem,
)
from .convergence import run_convergence_study, compute_convergence_rates

__all__ = [
    # Mesh
    "Mesh2d",
    "LEFT",
    "RIGHT",
    "BOTTOM",
    "TOP",
    "BOUNDARY_TOL",
    "EDGE_VERTICES",
    "outernormal",
    "outer_normal_unit_square",
    "mesh_size",
    "StudyParameters",
    "StudyMetrics",
    # Assembly
    "assembly_2d",
    "assemble_stiffness",
    "triangle_quadrature",
    "annulus_quadrature",
    # Boundary
    "dirbc_2d",
    "get_boundary_nodes",
    "get_boundary_edges",
    "get_edge_midpoints",
    "boundary_normal_derivative",
    # Kernels and potentials
    "FundamentalSolution",
    "Psi",
    "psl",
    "pdl",
    # Solvers
    "SolverError",
    "solve_bvp",
    # Evaluation
    "jstar",
    "stable_point_evaluation",
    "point_eval",
    "stable_point_eval_error",
    "interpolate_fem",
    "run_convergence_study",
    "compute_convergence_rates",
]
