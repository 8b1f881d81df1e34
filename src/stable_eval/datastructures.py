from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING

import numpy as np
import pandas as pd
from numpy.typing import NDArray

if TYPE_CHECKING:
    import meshio

# Boundary side constants
LEFT, RIGHT, BOTTOM, TOP = 0, 1, 2, 3

# Outward unit normals of an axis-aligned rectangle, indexed by side
SIDE_NORMALS = np.array([[-1.0, 0.0], [1.0, 0.0], [0.0, -1.0], [0.0, 1.0]])

# Tolerance for boundary node detection (floating-point comparison)
BOUNDARY_TOL = 1e-10

# Element configuration (P1 triangles)
N_LOCAL_NODES = 3

# Edge k (1,2,3) connects these vertex positions in EToV
EDGE_VERTICES = np.array([[0, 1], [1, 2], [2, 0]])


@dataclass
class Mesh2d:
    """2D triangular mesh of a rectangle carrying the P1 finite element space.

    Node ``i`` is degree of freedom ``i``, so ``nonodes`` is the dimension of
    the discrete space. ``EToV`` and ``boundary_edges`` are 1-based.
    """

    # Domain parameters (user-provided)
    x0: float
    y0: float
    L1: float
    L2: float
    noelms1: int
    noelms2: int

    # Computed mesh properties
    noelms: int = field(init=False)
    nonodes: int = field(init=False)

    # Mesh arrays
    VX: NDArray[np.float64] = field(init=False)
    VY: NDArray[np.float64] = field(init=False)
    EToV: NDArray[np.int64] = field(init=False)

    # Basis function data: phi_i = (a_i + b_i x + c_i y) / (2 delta)
    abc: NDArray[np.float64] = field(init=False)
    delta: NDArray[np.float64] = field(init=False)

    # Boundary data: rows of [element, local edge], and the side of each row
    boundary_edges: NDArray[np.int64] = field(init=False)
    boundary_sides: NDArray[np.int64] = field(init=False)

    # Internal vertex index arrays (0-based)
    _v1: NDArray[np.int64] = field(init=False, repr=False)
    _v2: NDArray[np.int64] = field(init=False, repr=False)
    _v3: NDArray[np.int64] = field(init=False, repr=False)

    # CSR assembly pattern
    _csr_indptr: NDArray[np.int64] = field(init=False, repr=False)
    _csr_indices: NDArray[np.int64] = field(init=False, repr=False)
    _csr_data_map: NDArray[np.int64] = field(init=False, repr=False)

    def __post_init__(self) -> None:
        if self.noelms1 < 1 or self.noelms2 < 1:
            raise ValueError(
                f"Need at least one element per direction, got {self.noelms1}x{self.noelms2}"
            )
        self.nonodes = (self.noelms1 + 1) * (self.noelms2 + 1)
        self.noelms = 2 * self.noelms1 * self.noelms2
        self._generate_mesh()
        self._finalize()
        self._compute_boundary_edges()

    @classmethod
    def unit_square(cls, N: int) -> Mesh2d:
        """Uniform triangulation of [0,1]^2 with N squares per side."""
        return cls(x0=0.0, y0=0.0, L1=1.0, L2=1.0, noelms1=N, noelms2=N)

    def _generate_mesh(self) -> None:
        nonodes1, nonodes2 = self.noelms1 + 1, self.noelms2 + 1
        temp_x = np.linspace(self.x0, self.x0 + self.L1, nonodes1)
        temp_y = np.linspace(self.y0 + self.L2, self.y0, nonodes2)

        # Column-major numbering, top to bottom within a column
        XX, YY = np.meshgrid(temp_x, temp_y)
        self.VX = XX.flatten(order="F")
        self.VY = YY.flatten(order="F")

        col, row = np.meshgrid(np.arange(self.noelms1), np.arange(self.noelms2))
        col, row = col.flatten(order="F"), row.flatten(order="F")

        UL = row + col * nonodes2
        LL = UL + 1
        UR = UL + nonodes2
        LR = UR + 1

        # Both triangles of a square are counter-clockwise
        self.EToV = np.empty((self.noelms, 3), dtype=np.int64)
        self.EToV[0::2, 0] = UL + 1
        self.EToV[0::2, 1] = LR + 1
        self.EToV[0::2, 2] = UR + 1
        self.EToV[1::2, 0] = LL + 1
        self.EToV[1::2, 1] = LR + 1
        self.EToV[1::2, 2] = UL + 1

    def _finalize(self) -> None:
        """Vertex index arrays, CSR pattern and basis data from VX, VY, EToV."""
        self._v1 = self.EToV[:, 0] - 1
        self._v2 = self.EToV[:, 1] - 1
        self._v3 = self.EToV[:, 2] - 1
        self._compute_assembly_indices()
        self._compute_basis()

    def _compute_assembly_indices(self) -> None:
        """CSR sparsity pattern and the scatter map for the 9 entries per element."""
        nodes = self.EToV - 1

        n = N_LOCAL_NODES
        rows = np.repeat(nodes, n, axis=1).ravel()
        cols = np.tile(nodes, n).ravel()

        sort_order = np.lexsort((cols, rows))
        sorted_rows = rows[sort_order]
        sorted_cols = cols[sort_order]

        is_new_pair = (np.diff(sorted_rows, prepend=-1) != 0) | (
            np.diff(sorted_cols, prepend=-1) != 0
        )
        unique_rows = sorted_rows[is_new_pair]

        self._csr_indptr = np.zeros(self.nonodes + 1, dtype=np.int64)
        np.add.at(self._csr_indptr, unique_rows + 1, 1)
        np.cumsum(self._csr_indptr, out=self._csr_indptr)
        self._csr_indices = sorted_cols[is_new_pair]

        self._csr_data_map = np.empty(len(rows), dtype=np.int64)
        self._csr_data_map[sort_order] = np.cumsum(is_new_pair) - 1

    def _compute_boundary_edges(self) -> None:
        elems_per_col = 2 * self.noelms2
        left_elems = np.arange(2, 2 * self.noelms2 + 1, 2)
        right_start = (self.noelms1 - 1) * elems_per_col + 1
        right_elems = np.arange(right_start, right_start + elems_per_col, 2)
        bottom_elems = np.arange(1, self.noelms1 + 1) * elems_per_col
        top_elems = 1 + np.arange(self.noelms1) * elems_per_col

        sections = [
            (left_elems, 3, LEFT),
            (right_elems, 2, RIGHT),
            (bottom_elems, 1, BOTTOM),
            (top_elems, 3, TOP),
        ]
        self.boundary_edges = np.concatenate(
            [np.column_stack([e, np.full(len(e), k)]) for e, k, _ in sections]
        ).astype(np.int64)
        self.boundary_sides = np.concatenate(
            [np.full(len(e), side) for e, _, side in sections]
        ).astype(np.int64)

    def _compute_basis(self) -> None:
        """Compute delta and basis function coefficients for each element."""
        x1, y1, x2, y2, x3, y3 = self.vertex_coords

        self.delta = 0.5 * (x1 * (y2 - y3) + x2 * (y3 - y1) + x3 * (y1 - y2))

        # Shape: (noelms, 3 basis functions, 3 coefficients [a, b, c])
        self.abc = np.empty((self.noelms, 3, 3), dtype=np.float64)
        self.abc[:, 0, 0] = x2 * y3 - x3 * y2
        self.abc[:, 0, 1] = y2 - y3
        self.abc[:, 0, 2] = x3 - x2
        self.abc[:, 1, 0] = x3 * y1 - x1 * y3
        self.abc[:, 1, 1] = y3 - y1
        self.abc[:, 1, 2] = x1 - x3
        self.abc[:, 2, 0] = x1 * y2 - x2 * y1
        self.abc[:, 2, 1] = y1 - y2
        self.abc[:, 2, 2] = x2 - x1

    @classmethod
    def from_meshio(
        cls,
        mesh: meshio.Mesh | str | Path,
        tol: float = BOUNDARY_TOL,
    ) -> Mesh2d:
        """
        Create Mesh2d from a meshio mesh or mesh file.

        Parameters
        ----------
        mesh : meshio.Mesh or str or Path
            Either a meshio Mesh object or path to a mesh file.
        tol : float
            Tolerance for boundary edge detection on the bounding box.

        Returns
        -------
        Mesh2d
            Mesh with counter-clockwise triangles and detected boundary edges.
        """
        import meshio as mio

        if isinstance(mesh, (str, Path)):
            mesh = mio.read(mesh)

        points = mesh.points[:, :2]
        VX = points[:, 0].astype(np.float64)
        VY = points[:, 1].astype(np.float64)

        triangles = None
        for cell_block in mesh.cells:
            if cell_block.type == "triangle":
                triangles = cell_block.data.astype(np.int64)
                break

        if triangles is None:
            raise ValueError("No triangle cells found in mesh")

        # Flip clockwise triangles so edge i -> j runs counter-clockwise
        x, y = VX[triangles], VY[triangles]
        signed = (x[:, 1] - x[:, 0]) * (y[:, 2] - y[:, 0]) - (x[:, 2] - x[:, 0]) * (
            y[:, 1] - y[:, 0]
        )
        if np.any(np.abs(signed) < tol):
            raise ValueError("Degenerate triangle found in mesh")
        cw = signed < 0
        triangles[cw] = triangles[cw][:, [0, 2, 1]]

        x0, y0 = float(VX.min()), float(VY.min())

        # Create instance without calling __post_init__
        instance = object.__new__(cls)
        instance.x0 = x0
        instance.y0 = y0
        instance.L1 = float(VX.max()) - x0
        instance.L2 = float(VY.max()) - y0
        instance.VX = VX
        instance.VY = VY
        instance.EToV = triangles + 1
        instance.noelms = len(triangles)
        instance.nonodes = len(VX)

        # Nominal resolution, only meaningful for structured input
        avg_elem_size = np.sqrt(2 * instance.L1 * instance.L2 / instance.noelms)
        instance.noelms1 = max(1, int(round(instance.L1 / avg_elem_size)))
        instance.noelms2 = max(1, int(round(instance.L2 / avg_elem_size)))

        instance._finalize()
        instance._compute_boundary_edges_unstructured(tol)
        return instance

    def _compute_boundary_edges_unstructured(self, tol: float = BOUNDARY_TOL) -> None:
        """Find element edges lying on the bounding box of the vertices."""
        x_min, x_max = self.x0, self.x0 + self.L1
        y_min, y_max = self.y0, self.y0 + self.L2

        edges, sides = [], []
        for k in range(3):
            va = self.EToV[:, EDGE_VERTICES[k, 0]] - 1
            vb = self.EToV[:, EDGE_VERTICES[k, 1]] - 1
            xa, ya, xb, yb = self.VX[va], self.VY[va], self.VX[vb], self.VY[vb]

            on_side = [
                (np.abs(xa - x_min) < tol) & (np.abs(xb - x_min) < tol),
                (np.abs(xa - x_max) < tol) & (np.abs(xb - x_max) < tol),
                (np.abs(ya - y_min) < tol) & (np.abs(yb - y_min) < tol),
                (np.abs(ya - y_max) < tol) & (np.abs(yb - y_max) < tol),
            ]
            for side, mask in zip((LEFT, RIGHT, BOTTOM, TOP), on_side):
                elems = np.flatnonzero(mask) + 1
                edges.append(np.column_stack([elems, np.full(len(elems), k + 1)]))
                sides.append(np.full(len(elems), side))

        self.boundary_edges = np.concatenate(edges).astype(np.int64)
        self.boundary_sides = np.concatenate(sides).astype(np.int64)

    @property
    def vertex_coords(
        self,
    ) -> tuple[
        NDArray[np.float64],
        NDArray[np.float64],
        NDArray[np.float64],
        NDArray[np.float64],
        NDArray[np.float64],
        NDArray[np.float64],
    ]:
        """Return (x1, y1, x2, y2, x3, y3) coordinates for all elements."""
        return (
            self.VX[self._v1],
            self.VY[self._v1],
            self.VX[self._v2],
            self.VY[self._v2],
            self.VX[self._v3],
            self.VY[self._v3],
        )

    def is_unit_square(self, tol: float = BOUNDARY_TOL) -> bool:
        """True if the mesh covers exactly [0,1]^2."""
        return bool(
            abs(self.x0) < tol
            and abs(self.y0) < tol
            and abs(self.L1 - 1.0) < tol
            and abs(self.L2 - 1.0) < tol
            and abs(np.sum(np.abs(self.delta)) - 1.0) < 1e3 * tol
        )


def outernormal(
    n: int,
    k: int,
    VX: NDArray[np.float64],
    VY: NDArray[np.float64],
    EToV: NDArray[np.int64],
) -> tuple[float, float]:
    """Compute unit outer normal for element n, edge k (both 1-based)."""
    vertices = EToV[n - 1]
    va, vb = vertices[EDGE_VERTICES[k - 1]]
    dx, dy = VX[vb - 1] - VX[va - 1], VY[vb - 1] - VY[va - 1]
    length = np.hypot(dx, dy)
    return float(dy / length), float(-dx / length)


def outer_normal_unit_square(p: NDArray[np.float64], tol: float = BOUNDARY_TOL) -> NDArray[np.float64]:
    """Outward unit normal of [0,1]^2 at a boundary point.

    Corners belong to the vertical sides.
    """
    px, py = float(p[0]), float(p[1])
    if abs(px) < tol:
        return SIDE_NORMALS[LEFT].copy()
    if abs(px - 1.0) < tol:
        return SIDE_NORMALS[RIGHT].copy()
    if abs(py) < tol:
        return SIDE_NORMALS[BOTTOM].copy()
    if abs(py - 1.0) < tol:
        return SIDE_NORMALS[TOP].copy()
    raise ValueError(f"Point ({px}, {py}) is not on the boundary of the unit square")


def mesh_size(mesh: Mesh2d) -> float:
    """Length of the longest edge in the mesh."""
    x1, y1, x2, y2, x3, y3 = mesh.vertex_coords
    lengths = np.stack(
        [np.hypot(x2 - x1, y2 - y1), np.hypot(x3 - x2, y3 - y2), np.hypot(x1 - x3, y1 - y3)]
    )
    return float(lengths.max())


# ============================================================================
# Parameters / Metrics for convergence studies
# ============================================================================


@dataclass
class StudyParameters:
    """Input configuration of a convergence study on the unit square."""

    N_values: list[int] = field(default_factory=lambda: [4, 8, 16, 32, 64])
    x: tuple[float, float] = (0.3, 0.4)
    quad_degree: int = 5
    quad_refinements: int = 1
    quad_min_size: float = 1e-3
    r_in: float = 0.25 * np.sqrt(2)
    r_out: float = 0.5

    def to_dict(self) -> dict:
        return {
            "N_values": ",".join(str(n) for n in self.N_values),
            "x": f"({self.x[0]}, {self.x[1]})",
            "quad_degree": self.quad_degree,
            "quad_refinements": self.quad_refinements,
            "quad_min_size": self.quad_min_size,
            "r_in": self.r_in,
            "r_out": self.r_out,
        }

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame([self.to_dict()])


@dataclass
class StudyMetrics:
    """Results of one refinement level."""

    N: int = 0
    h: float = 0.0
    ndofs: int = 0
    exact: float = 0.0
    stable_value: float = 0.0
    error_point_eval: float = 0.0
    error_stable: float = 0.0
    error_interpolation: float = 0.0
    wall_time_seconds: float = 0.0

    def to_dataframe(self) -> pd.DataFrame:
        return pd.DataFrame([self.__dict__])
