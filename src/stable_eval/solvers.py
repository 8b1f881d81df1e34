from __future__ import annotations

import logging
from typing import Callable

import numpy as np
from numpy.typing import NDArray
from scipy.sparse.linalg import splu

from .assembly import assembly_2d
from .boundary import dirbc_2d, get_boundary_nodes
from .datastructures import Mesh2d

log = logging.getLogger(__name__)


class SolverError(RuntimeError):
    """The discrete system could not be factorised or solved."""


def solve_bvp(
    mesh: Mesh2d,
    u_bd: Callable[[NDArray[np.float64], NDArray[np.float64]], NDArray[np.float64]],
) -> NDArray[np.float64]:
    """
    Solve -Laplace(u) = 0 with u = u_bd on the boundary using P1 elements.

    Parameters
    ----------
    mesh : Mesh2d
        Triangulation carrying the P1 space.
    u_bd : callable
        Dirichlet data u_bd(x, y), evaluated at the boundary nodes.

    Returns
    -------
    u_h : ndarray (nonodes,)
        Nodal coefficients of the discrete solution.

    Raises
    ------
    SolverError
        If the LU factorisation fails or the solution is not finite.
    """
    A, b = assembly_2d(mesh, np.zeros(mesh.nonodes))

    bnodes = get_boundary_nodes(mesh)
    idx = bnodes - 1
    f = np.broadcast_to(
        np.asarray(u_bd(mesh.VX[idx], mesh.VY[idx]), dtype=np.float64), idx.shape
    )
    A, b = dirbc_2d(bnodes, f, A, b)

    try:
        lu = splu(A.tocsc())
    except RuntimeError as exc:
        raise SolverError(f"LU decomposition failed: {exc}") from exc

    u_h = lu.solve(b)
    if not np.all(np.isfinite(u_h)):
        raise SolverError("Solving LSE failed: non-finite entries in solution")

    log.info(f"Solved BVP: {mesh.nonodes} dofs, {len(bnodes)} Dirichlet nodes")
    return u_h
