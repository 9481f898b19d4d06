"""Finite differences and small dense linear algebra for the search algorithms.

These utilities avoid any dependency on SciPy and provide deterministic,
pure NumPy implementations. The matrices involved are ``n x n`` with ``n`` the
number of calibrated parameters, so clarity wins over blocked kernels: the
cost of a search is dominated by objective evaluations.
"""

from __future__ import annotations

import math
from typing import Callable

import numpy as np

from ..logging import get_logger
from ..objective import Array
from .core import VERY_SMALL

logger = get_logger(__name__)


def forward_gradient(
    fun: Callable[[Array], float], x: Array, fx: float, gradacc: float = 1e-6
) -> Array:
    """Forward-difference gradient approximation.

    Coordinate ``i`` is perturbed by ``gradacc * max(|x[i]|, 1)``, following
    algorithm A5.6.3 (FDGRAD) of Dennis & Schnabel. One evaluation per
    coordinate is spent on top of the already known value ``fx``.

    Parameters
    ----------
    fun:
        Objective returning a scalar given x.
    x:
        Point where the gradient is approximated (scaled coordinates).
    fx:
        Objective value at ``x``.
    gradacc:
        Relative perturbation size.
    """
    if gradacc <= 0:
        raise ValueError("gradacc must be positive")
    x = np.asarray(x, dtype=float)
    grad = np.zeros_like(x)
    trial = x.copy()
    for i in range(x.size):
        # scaled parameter values are expected to stay positive
        if x[i] < 0.0:
            logger.warning("Negative parameter %d (%g) when calculating the gradient", i, x[i])
        h = gradacc * max(abs(x[i]), 1.0)
        trial[i] = x[i] + h
        grad[i] = (fun(trial) - fx) / h
        trial[i] = x[i]
    return grad


def symmetrize(matrix: Array) -> Array:
    """Return ``0.5 * (matrix + matrix.T)``."""
    return 0.5 * (matrix + matrix.T)


def _forward_substitution(lower: Array, rhs: Array) -> Array:
    n = rhs.size
    out = np.zeros(n)
    for i in range(n):
        out[i] = (rhs[i] - lower[i, :i] @ out[:i]) / lower[i, i]
    return out


def _back_substitution(upper: Array, rhs: Array) -> Array:
    n = rhs.size
    out = np.zeros(n)
    for i in range(n - 1, -1, -1):
        out[i] = (rhs[i] - upper[i, i + 1 :] @ out[i + 1 :]) / upper[i, i]
    return out


def smallest_eigenvalue(matrix: Array, sweeps: int = 100) -> float:
    """Estimate the smallest eigenvalue of a symmetric positive definite matrix.

    The matrix is Cholesky-factored as ``L L^T``; inverse iteration then solves
    ``L L^T z = x`` by forward and back substitution, renormalising ``x`` after
    each sweep. The Rayleigh quotient ``x . z`` converges to the largest
    eigenvalue of the inverse, whose reciprocal is returned.

    Returns ``0.0`` (and logs why) when the matrix is not positive definite or
    any division by a near-zero quantity would occur. Used as a convergence
    diagnostic only, so it never raises on numerical trouble.
    """
    mat = np.asarray(matrix, dtype=float)
    if mat.ndim != 2 or mat.shape[0] != mat.shape[1]:
        raise ValueError(f"Expected a square matrix, got shape {mat.shape}")
    n = mat.shape[0]
    if n == 0:
        raise ValueError("Matrix must not be empty")
    if sweeps < 1:
        raise ValueError("sweeps must be at least 1")

    try:
        chol = np.linalg.cholesky(symmetrize(mat))
    except np.linalg.LinAlgError:
        logger.info("Matrix is not positive definite when calculating smallest eigenvalue")
        return 0.0
    if np.any(np.abs(np.diag(chol)) < VERY_SMALL):
        logger.info("Divide by zero when calculating smallest eigenvalue")
        return 0.0

    x = np.full(n, 1.0 / math.sqrt(n))
    rayleigh = 0.0
    for _ in range(sweeps):
        z = _back_substitution(chol.T, _forward_substitution(chol, x))
        norm = float(np.linalg.norm(z))
        if not math.isfinite(norm) or norm < VERY_SMALL:
            logger.info("Divide by zero when calculating smallest eigenvalue")
            return 0.0
        rayleigh = float(x @ z)
        x = z / norm

    if abs(rayleigh) < VERY_SMALL:
        logger.info("Divide by zero when calculating smallest eigenvalue")
        return 0.0
    return 1.0 / rayleigh


def pivoted_solve(matrix: Array, rhs: Array, tol: float = 1e-12) -> tuple[Array, bool]:
    """Solve ``matrix @ x = rhs`` by Gaussian elimination with partial pivoting.

    Returns ``(x, ok)``. ``ok`` is False, and ``x`` is all zeros, when the
    largest available pivot in some column has magnitude below ``tol``.
    """
    a = np.array(matrix, dtype=float, copy=True)
    b = np.array(rhs, dtype=float, copy=True).reshape(-1)
    n = b.size
    if a.shape != (n, n):
        raise ValueError(f"Matrix shape {a.shape} does not match right-hand side of size {n}")

    for k in range(n):
        pivot = k + int(np.argmax(np.abs(a[k:, k])))
        if abs(a[pivot, k]) < tol:
            return np.zeros(n), False
        if pivot != k:
            a[[k, pivot]] = a[[pivot, k]]
            b[[k, pivot]] = b[[pivot, k]]
        factors = a[k + 1 :, k] / a[k, k]
        a[k + 1 :, k:] -= np.outer(factors, a[k, k:])
        b[k + 1 :] -= factors * b[k]

    return _back_substitution(a, b), True


def _clamp(value: float, lower: float, upper: float) -> float:
    lo, hi = min(lower, upper), max(lower, upper)
    if not math.isfinite(value):
        return 0.5 * (lo + hi)
    return min(max(value, lo), hi)


def quadratic_step(
    a: float, fa: float, da: float, b: float, fb: float, lower: float, upper: float
) -> float:
    """Minimiser of the quadratic through ``f(a)``, ``f'(a)`` and ``f(b)``.

    Falls back to the midpoint of ``[lower, upper]`` when the quadratic has no
    minimum; the result is always clamped to that interval.
    """
    width = b - a
    denom = 2.0 * (fb - fa - da * width)
    if width == 0.0 or not math.isfinite(denom) or denom <= VERY_SMALL:
        return _clamp(math.nan, lower, upper)
    return _clamp(a - da * width * width / denom, lower, upper)


def cubic_step(
    a: float,
    fa: float,
    da: float,
    b: float,
    fb: float,
    db: float,
    lower: float,
    upper: float,
) -> float:
    """Minimiser of the cubic Hermite interpolant on ``a``, ``b``.

    Uses the closed form of Nocedal & Wright (3.59). When the cubic has no
    local minimum the quadratic fit of :func:`quadratic_step` is used instead.
    The result is clamped to ``[lower, upper]``.
    """
    if a == b:
        return _clamp(math.nan, lower, upper)
    d1 = da + db - 3.0 * (fa - fb) / (a - b)
    disc = d1 * d1 - da * db
    if not math.isfinite(disc) or disc < 0.0:
        return quadratic_step(a, fa, da, b, fb, lower, upper)
    d2 = math.copysign(math.sqrt(disc), b - a)
    denom = db - da + 2.0 * d2
    if abs(denom) < VERY_SMALL:
        return quadratic_step(a, fa, da, b, fb, lower, upper)
    return _clamp(b - (b - a) * (db + d2 - d1) / denom, lower, upper)


__all__ = [
    "cubic_step",
    "forward_gradient",
    "pivoted_solve",
    "quadratic_step",
    "smallest_eigenvalue",
    "symmetrize",
]
