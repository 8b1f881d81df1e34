from __future__ import annotations

import numpy as np
from numpy.typing import NDArray
from scipy.sparse import spmatrix

from .datastructures import EDGE_VERTICES, Mesh2d


def get_boundary_nodes(mesh: Mesh2d) -> NDArray[np.int64]:
    """Get all boundary node indices (1-based) from mesh boundary edges."""
    if len(mesh.boundary_edges) == 0:
        return np.array([], dtype=np.int64)

    elems = mesh.boundary_edges[:, 0] - 1
    edges = mesh.boundary_edges[:, 1] - 1
    elem_nodes = mesh.EToV[elems]

    rows = np.arange(len(elems))
    n1 = elem_nodes[rows, EDGE_VERTICES[edges, 0]]
    n2 = elem_nodes[rows, EDGE_VERTICES[edges, 1]]
    return np.unique(np.concatenate([n1, n2]))


def get_boundary_edges(
    mesh: Mesh2d,
    side: int | None = None,
) -> NDArray[np.int64]:
    """Get boundary edges, optionally filtered by side (LEFT/RIGHT/BOTTOM/TOP)."""
    if side is None:
        return mesh.boundary_edges
    return mesh.boundary_edges[mesh.boundary_sides == side]


def dirbc_2d(
    bnodes: NDArray[np.int64],
    f: NDArray[np.float64],
    A: spmatrix,
    b: NDArray[np.float64],
) -> tuple[spmatrix, NDArray[np.float64]]:
    """Eliminate Dirichlet nodes (1-based) with values f from A u = b.

    Constrained rows and columns are zeroed and the diagonal set to one,
    the right-hand side is lifted by the known values. b is not modified.
    """
    bnodes_0 = bnodes - 1
    n = A.shape[0]
    A_csr = A.tocsr()

    f_full = np.zeros(n)
    f_full[bnodes_0] = f
    b_new = b - A_csr @ f_full
    b_new[bnodes_0] = f

    scale = np.ones(n)
    scale[bnodes_0] = 0.0
    row_scale = np.repeat(scale, np.diff(A_csr.indptr))
    col_scale = scale[A_csr.indices]

    A_new = A_csr.copy()
    A_new.data *= row_scale * col_scale
    A_new.setdiag(A_new.diagonal() + (scale == 0).astype(float))
    A_new.eliminate_zeros()

    return A_new, b_new


def _get_edge_coords(
    beds: NDArray[np.int64],
    mesh: Mesh2d,
) -> tuple[
    NDArray[np.int64],
    NDArray[np.int64],
    NDArray[np.float64],
    NDArray[np.float64],
    NDArray[np.float64],
    NDArray[np.float64],
]:
    """0-based endpoints i -> j (counter-clockwise) and their coordinates."""
    # Map local edge number (1,2,3) to next vertex in CCW order
    next_local = np.array([0, 2, 3, 1])
    n, r = beds[:, 0], beds[:, 1]
    s = next_local[r]

    i = mesh.EToV[n - 1, r - 1] - 1
    j = mesh.EToV[n - 1, s - 1] - 1

    return i, j, mesh.VX[i], mesh.VY[i], mesh.VX[j], mesh.VY[j]


def get_edge_midpoints(
    beds: NDArray[np.int64],
    mesh: Mesh2d,
) -> NDArray[np.float64]:
    """Midpoint coordinates of each edge, shape (len(beds), 2)."""
    _, _, xi, yi, xj, yj = _get_edge_coords(beds, mesh)
    midpoints = np.empty((len(beds), 2), dtype=np.float64)
    midpoints[:, 0] = (xi + xj) / 2
    midpoints[:, 1] = (yi + yj) / 2
    return midpoints


def get_edge_lengths(
    beds: NDArray[np.int64],
    mesh: Mesh2d,
) -> NDArray[np.float64]:
    _, _, xi, yi, xj, yj = _get_edge_coords(beds, mesh)
    return np.hypot(xj - xi, yj - yi)


def boundary_edge_normals(
    beds: NDArray[np.int64],
    mesh: Mesh2d,
) -> NDArray[np.float64]:
    """Unit outer normal of each edge, from its counter-clockwise orientation."""
    _, _, xi, yi, xj, yj = _get_edge_coords(beds, mesh)
    length = np.hypot(xj - xi, yj - yi)
    normals = np.empty((len(beds), 2), dtype=np.float64)
    normals[:, 0] = (yj - yi) / length
    normals[:, 1] = -(xj - xi) / length
    return normals


def boundary_trace(
    mesh: Mesh2d,
    u: NDArray[np.float64],
) -> NDArray[np.float64]:
    """Value of the P1 function u at each boundary edge midpoint."""
    i, j, *_ = _get_edge_coords(mesh.boundary_edges, mesh)
    return 0.5 * (u[i] + u[j])


def boundary_normal_derivative(
    mesh: Mesh2d,
    u: NDArray[np.float64],
) -> NDArray[np.float64]:
    """Normal derivative of the P1 function u on each boundary edge.

    The gradient is constant per element, taken from the element owning the edge.
    """
    beds = mesh.boundary_edges
    elems = beds[:, 0] - 1

    nodes = mesh.EToV[elems] - 1
    abc = mesh.abc[elems]
    inv_2delta = 1.0 / (2 * mesh.delta[elems])
    du_dx = np.einsum("ek,ek->e", u[nodes], abc[:, :, 1]) * inv_2delta
    du_dy = np.einsum("ek,ek->e", u[nodes], abc[:, :, 2]) * inv_2delta

    normals = boundary_edge_normals(beds, mesh)
    return du_dx * normals[:, 0] + du_dy * normals[:, 1]
