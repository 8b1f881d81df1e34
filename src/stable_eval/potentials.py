"""Single- and double-layer potentials on the boundary of the unit square.

Both use the composite midpoint rule on the boundary edges of the mesh. The
mesh must triangulate [0,1]^2; the outward normal is taken from the side of
the square each edge lies on.
"""

from __future__ import annotations

import logging
from typing import Callable, Union

import numpy as np
from numpy.typing import ArrayLike, NDArray

from .boundary import get_edge_lengths, get_edge_midpoints
from .datastructures import SIDE_NORMALS, Mesh2d
from .kernels import FundamentalSolution

log = logging.getLogger(__name__)

# Boundary density: a function v(x, y) or one value per boundary edge midpoint
Density = Union[Callable[[NDArray, NDArray], NDArray], NDArray[np.float64]]


def _check_unit_square(mesh: Mesh2d) -> None:
    if not mesh.is_unit_square():
        raise ValueError(
            f"Boundary potentials require a mesh of the unit square, got "
            f"[{mesh.x0}, {mesh.x0 + mesh.L1}] x [{mesh.y0}, {mesh.y0 + mesh.L2}]"
        )


def _density_at_midpoints(
    v: Density, midpoints: NDArray[np.float64]
) -> NDArray[np.float64]:
    if callable(v):
        vals = np.asarray(v(midpoints[:, 0], midpoints[:, 1]), dtype=np.float64)
        return np.broadcast_to(vals, (len(midpoints),))
    vals = np.asarray(v, dtype=np.float64)
    if vals.shape != (len(midpoints),):
        raise ValueError(
            f"Density array must hold one value per boundary edge "
            f"({len(midpoints)}), got shape {vals.shape}"
        )
    return vals


def _boundary_rule(mesh: Mesh2d) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Midpoints and lengths of all boundary edges."""
    _check_unit_square(mesh)
    beds = mesh.boundary_edges
    return get_edge_midpoints(beds, mesh), get_edge_lengths(beds, mesh)


def psl(mesh: Mesh2d, v: Density, x: ArrayLike) -> float:
    """Single-layer potential: integral of v(y) G_x(y) over the boundary."""
    midpoints, lengths = _boundary_rule(mesh)
    G = FundamentalSolution(x)

    vals = _density_at_midpoints(v, midpoints)
    value = float(np.sum(vals * G.value(midpoints) * lengths))
    log.debug(f"PSL at x={G.x} over {len(lengths)} edges: {value:.6e}")
    return value


def pdl(mesh: Mesh2d, v: Density, x: ArrayLike) -> float:
    """Double-layer potential: integral of v(y) grad G_x(y) . n(y) over the boundary."""
    midpoints, lengths = _boundary_rule(mesh)
    G = FundamentalSolution(x)
    normals = SIDE_NORMALS[mesh.boundary_sides]

    vals = _density_at_midpoints(v, midpoints)
    dG_dn = np.einsum("ei,ei->e", G.grad(midpoints), normals)
    value = float(np.sum(vals * dG_dn * lengths))
    log.debug(f"PDL at x={G.x} over {len(lengths)} edges: {value:.6e}")
    return value
