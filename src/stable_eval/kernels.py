"""Point-wise kernels of the regularised representation formula.

Both evaluators are small immutable value types: the fundamental solution is
fixed by its singular point x, the cutoff by its center and radii. They accept
a single point of shape (2,) or a batch of shape (..., 2).
"""

from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from numpy.typing import ArrayLike, NDArray


def _as_points(y: ArrayLike) -> NDArray[np.float64]:
    y = np.asarray(y, dtype=np.float64)
    if y.shape[-1:] != (2,):
        raise ValueError(f"Points must have a trailing dimension of 2, got shape {y.shape}")
    return y


@dataclass(frozen=True)
class FundamentalSolution:
    """G_x(y) = -log|x - y| / (2 pi), solving -Laplace(G_x) = delta_x in 2D."""

    x: tuple[float, float]

    def __post_init__(self) -> None:
        object.__setattr__(self, "x", tuple(float(c) for c in np.asarray(self.x).ravel()))

    def _diff(self, y: ArrayLike) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        d = np.asarray(self.x) - _as_points(y)
        r2 = np.einsum("...i,...i->...", d, d)
        if np.any(r2 == 0.0):
            raise ValueError(f"Fundamental solution evaluated at its singularity x={self.x}")
        return d, r2

    def value(self, y: ArrayLike) -> NDArray[np.float64] | float:
        _, r2 = self._diff(y)
        return -np.log(r2) / (4.0 * np.pi)

    def grad(self, y: ArrayLike) -> NDArray[np.float64]:
        """Gradient with respect to y: (x - y) / (2 pi |x - y|^2)."""
        d, r2 = self._diff(y)
        return d / (2.0 * np.pi * r2[..., None])

    __call__ = value


def _radial_profile(
    r: NDArray[np.float64], r_in: float, r_out: float
) -> tuple[NDArray[np.float64], NDArray[np.float64], NDArray[np.float64]]:
    """
    Cutoff profile f(r) and its first two derivatives.

    f = 0 for r <= r_in, f = 1 for r >= r_out and cos^2(c (r - r_out)) in
    between, with c = pi / (2 (r_in - r_out)) so that f(r_in) = 0 and
    f'(r_in) = f'(r_out) = 0.
    """
    c = np.pi / (2.0 * (r_in - r_out))
    t = c * (r - r_out)
    inside = (r > r_in) & (r < r_out)

    f = np.where(r >= r_out, 1.0, np.where(inside, np.cos(t) ** 2, 0.0))
    df = np.where(inside, -c * np.sin(2 * t), 0.0)
    d2f = np.where(inside, -2 * c**2 * np.cos(2 * t), 0.0)
    return f, df, d2f


@dataclass(frozen=True)
class Psi:
    """Radial cutoff: zero within r_in of the center, one beyond r_out.

    The profile is C1 across both radii; its Laplacian jumps there.
    """

    center: tuple[float, float] = (0.5, 0.5)
    r_in: float = 0.25 * np.sqrt(2)
    r_out: float = 0.5

    def __post_init__(self) -> None:
        object.__setattr__(
            self, "center", tuple(float(c) for c in np.asarray(self.center).ravel())
        )
        if not 0.0 < self.r_in < self.r_out:
            raise ValueError(f"Need 0 < r_in < r_out, got r_in={self.r_in}, r_out={self.r_out}")

    def _polar(self, y: ArrayLike) -> tuple[NDArray[np.float64], NDArray[np.float64]]:
        d = _as_points(y) - np.asarray(self.center)
        return d, np.sqrt(np.einsum("...i,...i->...", d, d))

    def value(self, y: ArrayLike) -> NDArray[np.float64] | float:
        _, r = self._polar(y)
        f, _, _ = _radial_profile(r, self.r_in, self.r_out)
        return f

    def grad(self, y: ArrayLike) -> NDArray[np.float64]:
        d, r = self._polar(y)
        _, df, _ = _radial_profile(r, self.r_in, self.r_out)
        # df vanishes wherever r <= r_in, so r is never zero where it is used
        scale = np.divide(df, r, out=np.zeros_like(df), where=df != 0.0)
        return scale[..., None] * d

    def lapl(self, y: ArrayLike) -> NDArray[np.float64] | float:
        _, r = self._polar(y)
        _, df, d2f = _radial_profile(r, self.r_in, self.r_out)
        return d2f + np.divide(df, r, out=np.zeros_like(df), where=df != 0.0)

    def vanishes_near(self, x: ArrayLike) -> bool:
        """True if Psi is identically zero on a neighbourhood of x."""
        _, r = self._polar(x)
        return bool(np.all(r < self.r_in))

    __call__ = value
