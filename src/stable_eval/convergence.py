"""Mesh refinement study comparing point evaluation strategies."""

from __future__ import annotations

import logging
import time

import numpy as np
import pandas as pd
from numpy.typing import NDArray

from .datastructures import Mesh2d, StudyMetrics, StudyParameters, mesh_size
from .evaluation import (
    interpolate_fem,
    point_eval,
    stable_point_evaluation,
    u_reference,
)
from .kernels import Psi
from .solvers import solve_bvp

log = logging.getLogger(__name__)


def compute_convergence_rates(
    h: NDArray[np.float64], errors: NDArray[np.float64]
) -> NDArray[np.float64]:
    """Observed orders log(e_i / e_{i+1}) / log(h_i / h_{i+1}) between levels."""
    h = np.asarray(h, dtype=np.float64)
    errors = np.asarray(errors, dtype=np.float64)
    return np.log(errors[:-1] / errors[1:]) / np.log(h[:-1] / h[1:])


def fit_convergence_rate(h: NDArray[np.float64], errors: NDArray[np.float64]) -> float:
    """Least squares slope of log(error) against log(h)."""
    coeffs = np.polyfit(np.log(h), np.log(errors), 1)
    return float(coeffs[0])


def run_level(N: int, params: StudyParameters) -> StudyMetrics:
    """Solve the reference problem on an N x N mesh and evaluate at params.x."""
    start = time.perf_counter()
    x = np.asarray(params.x, dtype=np.float64)
    cutoff = Psi(r_in=params.r_in, r_out=params.r_out)

    mesh = Mesh2d.unit_square(N)
    u_h = solve_bvp(mesh, u_reference)
    exact = float(u_reference(x[0], x[1]))

    stable = stable_point_evaluation(
        mesh,
        u_h,
        x,
        cutoff,
        degree=params.quad_degree,
        refinements=params.quad_refinements,
        min_size=params.quad_min_size,
    )
    nodal = float(interpolate_fem(mesh, u_h, x)[0])

    return StudyMetrics(
        N=N,
        h=mesh_size(mesh),
        ndofs=mesh.nonodes,
        exact=exact,
        stable_value=stable,
        error_point_eval=point_eval(mesh, x),
        error_stable=abs(exact - stable),
        error_interpolation=abs(exact - nodal),
        wall_time_seconds=time.perf_counter() - start,
    )


def run_convergence_study(params: StudyParameters | None = None) -> pd.DataFrame:
    """Run all refinement levels and return one row of metrics per level."""
    params = params if params is not None else StudyParameters()
    log.info(f"Convergence study at x={tuple(params.x)}, N={list(params.N_values)}")

    rows = []
    for N in params.N_values:
        metrics = run_level(N, params)
        log.info(
            f"  N={N:<4d} h={metrics.h:.4e}  point_eval={metrics.error_point_eval:.4e}  "
            f"stable={metrics.error_stable:.4e}  interp={metrics.error_interpolation:.4e}"
        )
        rows.append(metrics.to_dataframe())

    df = pd.concat(rows, ignore_index=True)
    if len(df) > 1:
        for column in ("error_point_eval", "error_stable"):
            rate = fit_convergence_rate(df["h"].to_numpy(), df[column].to_numpy())
            log.info(f"Fitted rate for {column}: {rate:.2f}")
    return df
