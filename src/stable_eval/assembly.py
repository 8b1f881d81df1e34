from __future__ import annotations

import numpy as np
from numba import njit
from numpy.typing import NDArray
from scipy.sparse import csr_matrix

from .datastructures import Mesh2d


def _perm3(a: float) -> list[tuple[float, float, float]]:
    b = 1.0 - 2.0 * a
    return [(a, a, b), (a, b, a), (b, a, a)]


# Symmetric triangle rules (Dunavant), barycentric points, weights summing to 1
_TRIA_QUAD = {
    1: (np.array([[1 / 3, 1 / 3, 1 / 3]]), np.array([1.0])),
    2: (np.array(_perm3(1 / 6)), np.full(3, 1 / 3)),
    3: (
        np.array([(1 / 3, 1 / 3, 1 / 3)] + _perm3(0.2)),
        np.array([-27 / 48, 25 / 48, 25 / 48, 25 / 48]),
    ),
    4: (
        np.array(_perm3(0.445948490915965) + _perm3(0.091576213509771)),
        np.array([0.223381589678011] * 3 + [0.109951743655322] * 3),
    ),
    5: (
        np.array(
            [(1 / 3, 1 / 3, 1 / 3)] + _perm3(0.470142064105115) + _perm3(0.101286507323456)
        ),
        np.array([0.225] + [0.132394152788506] * 3 + [0.125939180544827] * 3),
    ),
}


def _split(tris: NDArray[np.float64]) -> NDArray[np.float64]:
    """Split triangles (M, 3, k), rows are vertices, into four by their edge midpoints."""
    a, b, c = tris[:, 0], tris[:, 1], tris[:, 2]
    ab, bc, ca = (a + b) / 2, (b + c) / 2, (c + a) / 2
    children = np.stack(
        [
            np.stack([a, ab, ca], axis=1),
            np.stack([ab, b, bc], axis=1),
            np.stack([ca, bc, c], axis=1),
            np.stack([bc, ca, ab], axis=1),
        ],
        axis=1,
    )
    return children.reshape(-1, 3, tris.shape[2])


def _subtriangles(refinements: int) -> NDArray[np.float64]:
    """Barycentric vertices (4**refinements, 3, 3) of a uniform refinement."""
    if refinements < 0:
        raise ValueError(f"refinements must be non-negative, got {refinements}")
    subs = np.eye(3)[None]
    for _ in range(refinements):
        subs = _split(subs)
    return subs


def triangle_quadrature(
    degree: int, refinements: int = 0
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """
    Barycentric quadrature rule on a triangle.

    Parameters
    ----------
    degree : int
        Polynomial degree integrated exactly (1-5).
    refinements : int
        Number of uniform red refinements; the rule is applied on each of the
        4**refinements sub-triangles.

    Returns
    -------
    points : ndarray (nq, 3)
        Barycentric coordinates of the quadrature points.
    weights : ndarray (nq,)
        Weights relative to the triangle area (they sum to 1).
    """
    if degree not in _TRIA_QUAD:
        raise ValueError(f"Unsupported degree={degree}. Use 1, 2, 3, 4 or 5.")

    pts_ref, wts_ref = _TRIA_QUAD[degree]
    subs = _subtriangles(refinements)
    points = np.einsum("qk,skj->sqj", pts_ref, subs).reshape(-1, 3)
    weights = np.tile(wts_ref, len(subs)) / len(subs)
    return points, weights


def _distance_range(
    tris: NDArray[np.float64], center: NDArray[np.float64]
) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
    """Smallest and largest distance from center to each triangle (M, 3, 2)."""
    dmax = np.hypot(*(tris - center).transpose(2, 0, 1)).max(axis=1)

    a = tris
    ab = np.roll(tris, -1, axis=1) - a
    t = np.einsum("mki,mki->mk", center - a, ab) / np.einsum("mki,mki->mk", ab, ab)
    closest = a + np.clip(t, 0.0, 1.0)[..., None] * ab
    dmin = np.hypot(*(closest - center).transpose(2, 0, 1)).min(axis=1)

    cross = ab[..., 0] * (center[1] - a[..., 1]) - ab[..., 1] * (center[0] - a[..., 0])
    inside = np.all(cross >= 0, axis=1) | np.all(cross <= 0, axis=1)
    dmin[inside] = 0.0
    return dmin, dmax


def annulus_quadrature(
    mesh: Mesh2d,
    center: NDArray[np.float64],
    r_in: float,
    r_out: float,
    degree: int = 5,
    refinements: int = 1,
    min_size: float = 1e-3,
) -> tuple[
    NDArray[np.int64], NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]
]:
    """
    Quadrature for integrands supported on the annulus r_in < |y - center| < r_out.

    Elements are split uniformly `refinements` times. Sub-triangles outside
    the annulus are dropped, sub-triangles inside it are kept, and those
    crossing one of the two circles are split further until their diameter is
    below `min_size`, so jumps of the integrand across the circles are
    resolved geometrically.

    Returns
    -------
    elements : ndarray (M,)
        0-based parent element of each sub-triangle.
    points : ndarray (M, nq, 2)
        Global quadrature points.
    weights : ndarray (M, nq)
        Physical weights.
    bary : ndarray (M, nq, 3)
        Barycentric coordinates of the points in their parent element, i.e.
        the values of its three P1 basis functions.
    """
    if min_size <= 0.0:
        raise ValueError(f"min_size must be positive, got {min_size}")
    pts_ref, wts_ref = triangle_quadrature(degree)
    center = np.asarray(center, dtype=np.float64)

    nodes = mesh.EToV - 1
    corners = np.stack([mesh.VX[nodes], mesh.VY[nodes]], axis=-1)  # (noelms, 3, 2)

    subs = _subtriangles(refinements)
    elems = np.repeat(np.arange(mesh.noelms), len(subs))
    tri_bary = np.tile(subs, (mesh.noelms, 1, 1))

    kept_elems, kept_bary = [], []
    while len(elems) > 0:
        tris = np.einsum("mkj,mjd->mkd", tri_bary, corners[elems])
        dmin, dmax = _distance_range(tris, center)
        diam = np.hypot(*(tris - np.roll(tris, -1, axis=1)).transpose(2, 0, 1)).max(axis=1)

        outside = (dmax <= r_in) | (dmin >= r_out)
        inside = (dmin >= r_in) & (dmax <= r_out)
        split = ~outside & ~inside & (diam > min_size)
        keep = ~outside & ~split

        kept_elems.append(elems[keep])
        kept_bary.append(tri_bary[keep])
        elems = np.repeat(elems[split], 4)
        tri_bary = _split(tri_bary[split])

    elems = np.concatenate(kept_elems)
    tri_bary = np.concatenate(kept_bary)

    bary = np.einsum("qk,mkj->mqj", pts_ref, tri_bary)
    points = np.einsum("mqj,mjd->mqd", bary, corners[elems])
    area_ratio = np.abs(np.linalg.det(tri_bary))
    weights = (np.abs(mesh.delta[elems]) * area_ratio)[:, None] * wts_ref[None, :]
    return elems, points, weights, bary


@njit
def _stiffness_core(abc, delta):
    """Element matrices K_rs = (b_r b_s + c_r c_s) / (4|delta|), row-major."""
    noelms = len(delta)
    data = np.empty(noelms * 9)
    for e in range(noelms):
        scale = 1.0 / (4.0 * abs(delta[e]))
        for r in range(3):
            for s in range(3):
                data[e * 9 + r * 3 + s] = scale * (
                    abc[e, r, 1] * abc[e, s, 1] + abc[e, r, 2] * abc[e, s, 2]
                )
    return data


@njit
def _load_core(qt, nodes, delta, nonodes):
    b = np.zeros(nonodes)
    for e in range(len(delta)):
        n1, n2, n3 = nodes[e, 0], nodes[e, 1], nodes[e, 2]
        q = abs(delta[e]) / 3.0 * (qt[n1] + qt[n2] + qt[n3]) / 3.0
        b[n1] += q
        b[n2] += q
        b[n3] += q
    return b


def assemble_stiffness(mesh: Mesh2d) -> csr_matrix:
    """Global P1 stiffness matrix for -Laplace."""
    element_data = _stiffness_core(mesh.abc, mesh.delta)

    csr_data = np.zeros(len(mesh._csr_indices), dtype=np.float64)
    np.add.at(csr_data, mesh._csr_data_map, element_data)

    return csr_matrix(
        (csr_data, mesh._csr_indices, mesh._csr_indptr),
        shape=(mesh.nonodes, mesh.nonodes),
    )


def assemble_load(mesh: Mesh2d, qt: NDArray[np.float64]) -> NDArray[np.float64]:
    """Load vector for nodal source values qt (element-averaged source)."""
    qt = np.asarray(qt, dtype=np.float64)
    if qt.shape != (mesh.nonodes,):
        raise ValueError(f"qt must have shape ({mesh.nonodes},), got {qt.shape}")
    return _load_core(qt, mesh.EToV - 1, mesh.delta, mesh.nonodes)


def assembly_2d(
    mesh: Mesh2d, qt: NDArray[np.float64]
) -> tuple[csr_matrix, NDArray[np.float64]]:
    """Assemble the system A u = b for -Laplace(u) = q with P1 elements."""
    return assemble_stiffness(mesh), assemble_load(mesh, qt)
