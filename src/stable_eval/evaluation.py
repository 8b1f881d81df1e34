"""
Point evaluation of harmonic finite element solutions.

For a harmonic u and a cutoff Psi vanishing near x, Green's second identity
applied to u and Psi*G_x gives

    u(x) = P_SL(sigma) - P_DL(tau) + J*(u),
    J*(u) = -∫ u (G_x ΔPsi + 2 ∇G_x·∇Psi) dy,

with boundary densities sigma = (1 - Psi) du/dn + u dPsi/dn and
tau = (1 - Psi) u. The default cutoff equals one with zero gradient on the
whole boundary of the unit square, so both densities vanish and only the
volume term J*, supported on the annulus r_in < |y - center| < r_out, remains.
Neither the kink of u_h at x nor its inaccurate normal derivative enters.
"""

from __future__ import annotations

import logging

import numpy as np
from numpy.typing import ArrayLike, NDArray

from .assembly import annulus_quadrature
from .boundary import boundary_normal_derivative, boundary_trace, get_edge_midpoints
from .datastructures import SIDE_NORMALS, Mesh2d
from .kernels import FundamentalSolution, Psi
from .potentials import pdl, psl
from .solvers import solve_bvp

log = logging.getLogger(__name__)

# Reference problem: u(y) = log|y + (1, 0)| is harmonic on the unit square
REFERENCE_POINT = (0.3, 0.4)


def u_reference(x: NDArray[np.float64], y: NDArray[np.float64]) -> NDArray[np.float64]:
    return 0.5 * np.log((x + 1.0) ** 2 + y**2)


def grad_u_reference(
    x: NDArray[np.float64], y: NDArray[np.float64]
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    r2 = (x + 1.0) ** 2 + y**2
    return (x + 1.0) / r2, y / r2


def check_evaluation_point(x: ArrayLike, cutoff: Psi) -> NDArray[np.float64]:
    """Validate x for the regularised formula and return it as an array."""
    x = np.asarray(x, dtype=np.float64)
    if x.shape != (2,):
        raise ValueError(f"Evaluation point must have shape (2,), got {x.shape}")
    if not np.all((x > 0.0) & (x < 1.0)):
        raise ValueError(f"Evaluation point {tuple(x)} is not inside the unit square")
    if not cutoff.vanishes_near(x):
        raise ValueError(
            f"Cutoff does not vanish near x={tuple(x)}: need |x - {cutoff.center}| < {cutoff.r_in:.6f}"
        )
    return x


def _check_coefficients(mesh: Mesh2d, u_h: NDArray[np.float64]) -> NDArray[np.float64]:
    u_h = np.asarray(u_h, dtype=np.float64)
    if u_h.shape != (mesh.nonodes,):
        raise ValueError(f"u_h must have shape ({mesh.nonodes},), got {u_h.shape}")
    return u_h


def jstar(
    mesh: Mesh2d,
    u_h: NDArray[np.float64],
    x: ArrayLike,
    cutoff: Psi | None = None,
    degree: int = 5,
    refinements: int = 1,
    min_size: float = 1e-3,
) -> float:
    """
    Volume term J*(u_h) of the regularised representation formula.

    Parameters
    ----------
    mesh : Mesh2d
        Triangulation carrying the P1 space.
    u_h : ndarray (nonodes,)
        Nodal coefficients of the finite element function.
    x : array_like (2,)
        Evaluation point; the cutoff must vanish near it.
    cutoff : Psi, optional
        Cutoff function, default centered at (0.5, 0.5).
    degree, refinements, min_size
        Passed to `annulus_quadrature`. The Laplacian of the cutoff jumps
        across both of its radii, so sub-triangles crossing them are refined
        down to `min_size`.

    Returns
    -------
    float
        -∫ u_h (G_x ΔPsi + 2 ∇G_x·∇Psi) dy
    """
    cutoff = cutoff if cutoff is not None else Psi()
    x = check_evaluation_point(x, cutoff)
    u_h = _check_coefficients(mesh, u_h)
    G = FundamentalSolution(x)

    elements, points, weights, bary = annulus_quadrature(
        mesh, np.asarray(cutoff.center), cutoff.r_in, cutoff.r_out, degree, refinements, min_size
    )
    if len(elements) == 0:
        return 0.0

    u_q = np.einsum("mk,mqk->mq", u_h[mesh.EToV[elements] - 1], bary).ravel()
    points = points.reshape(-1, 2)
    weights = weights.ravel()

    # Kernels are only sampled where Psi is non-constant, never at x
    r = np.hypot(points[:, 0] - cutoff.center[0], points[:, 1] - cutoff.center[1])
    active = (r > cutoff.r_in) & (r < cutoff.r_out)
    p = points[active]

    integrand = G.value(p) * cutoff.lapl(p) + 2.0 * np.einsum(
        "qi,qi->q", G.grad(p), cutoff.grad(p)
    )
    value = -float(np.sum(u_q[active] * integrand * weights[active]))
    log.debug(
        f"J* at x={tuple(x)}: {len(np.unique(elements))}/{mesh.noelms} elements, "
        f"{int(active.sum())} active points, value={value:.6e}"
    )
    return value


def stable_point_evaluation(
    mesh: Mesh2d,
    u_h: NDArray[np.float64],
    x: ArrayLike,
    cutoff: Psi | None = None,
    **quadrature,
) -> float:
    """Evaluate the harmonic P1 function u_h at x through the regularised formula.

    Keyword arguments are forwarded to `jstar`.
    """
    cutoff = cutoff if cutoff is not None else Psi()
    x = check_evaluation_point(x, cutoff)
    u_h = _check_coefficients(mesh, u_h)

    midpoints = get_edge_midpoints(mesh.boundary_edges, mesh)
    psi_bd = cutoff.value(midpoints)
    dpsi_dn = np.einsum("ei,ei->e", cutoff.grad(midpoints), SIDE_NORMALS[mesh.boundary_sides])

    trace = boundary_trace(mesh, u_h)
    sigma = (1.0 - psi_bd) * boundary_normal_derivative(mesh, u_h) + trace * dpsi_dn
    tau = (1.0 - psi_bd) * trace

    boundary = psl(mesh, sigma, x) - pdl(mesh, tau, x)
    volume = jstar(mesh, u_h, x, cutoff, **quadrature)
    log.debug(f"Stable evaluation at x={tuple(x)}: boundary={boundary:.6e}, volume={volume:.6e}")
    return boundary + volume


def point_eval(mesh: Mesh2d, x: ArrayLike = REFERENCE_POINT) -> float:
    """
    Error of the plain representation formula with exact Cauchy data.

    Evaluates P_SL(du/dn) - P_DL(u) at x for u(y) = log|y + (1, 0)| with the
    midpoint rule on the boundary edges, and returns |u(x) - value|.
    """
    x = np.asarray(x, dtype=np.float64)
    midpoints = get_edge_midpoints(mesh.boundary_edges, mesh)
    normals = SIDE_NORMALS[mesh.boundary_sides]

    du_dx, du_dy = grad_u_reference(midpoints[:, 0], midpoints[:, 1])
    du_dn = du_dx * normals[:, 0] + du_dy * normals[:, 1]

    value = psl(mesh, du_dn, x) - pdl(mesh, u_reference, x)
    return abs(float(u_reference(x[0], x[1])) - value)


def stable_point_eval_error(mesh: Mesh2d, x: ArrayLike = REFERENCE_POINT, **kwargs) -> float:
    """Solve the reference BVP on mesh and return the stable evaluation error at x."""
    x = np.asarray(x, dtype=np.float64)
    u_h = solve_bvp(mesh, u_reference)
    value = stable_point_evaluation(mesh, u_h, x, **kwargs)
    return abs(float(u_reference(x[0], x[1])) - value)


def interpolate_fem(
    mesh: Mesh2d,
    field: NDArray[np.float64],
    points: ArrayLike,
    tol: float = 1e-8,
) -> NDArray[np.float64]:
    """
    Direct barycentric evaluation of a P1 field at arbitrary points.

    Points outside every element are returned as nan.
    """
    points = np.atleast_2d(np.asarray(points, dtype=np.float64))
    values = np.full(len(points), np.nan)

    v1, v2, v3 = mesh._v1, mesh._v2, mesh._v3
    x1, y1, x2, y2, x3, y3 = mesh.vertex_coords
    det = (y2 - y3) * (x1 - x3) + (x3 - x2) * (y1 - y3)

    for i, (px, py) in enumerate(points):
        lam1 = ((y2 - y3) * (px - x3) + (x3 - x2) * (py - y3)) / det
        lam2 = ((y3 - y1) * (px - x3) + (x1 - x3) * (py - y3)) / det
        lam3 = 1.0 - lam1 - lam2

        inside = (lam1 >= -tol) & (lam2 >= -tol) & (lam3 >= -tol)
        elem_idx = np.flatnonzero(inside)
        if len(elem_idx) > 0:
            e = elem_idx[0]
            values[i] = lam1[e] * field[v1[e]] + lam2[e] * field[v2[e]] + lam3[e] * field[v3[e]]

    return values
