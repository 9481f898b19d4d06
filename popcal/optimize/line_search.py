"""Line-search routines following Nocedal & Wright and Fletcher.

Both searches return a :class:`LineSearchResult` instead of raising when no
acceptable step exists: a failed line search is an ordinary event for the
BFGS variants, which react by restarting from the identity matrix.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from ..logging import get_logger
from ..objective import Array
from .core import RATHER_SMALL, VERY_SMALL
from .utils import cubic_step, quadratic_step

logger = get_logger(__name__)

Objective = Callable[[Array], float]
# gradient at a point whose objective value is already known
GradientAt = Callable[[Array, float], Array]


@dataclass
class LineSearchResult:
    """Outcome of a line search along ``direction``.

    ``nfev`` counts trial values of the objective only; gradient
    evaluations requested by the Wolfe search are accounted for by the caller.
    """

    alpha: float
    fun: float
    success: bool
    nfev: int
    grad: Optional[Array] = None


def backtracking_armijo(
    f: Objective,
    x: Array,
    fx: float,
    p: Array,
    grad_fx: Array,
    step: float = 1.0,
    beta: float = 0.3,
    sigma: float = 0.01,
    min_step: float = RATHER_SMALL,
) -> LineSearchResult:
    """Armijo backtracking line search.

    Starting from ``step``, the step is multiplied by ``beta`` until the trial
    value is finite, strictly lower than ``fx`` and satisfies
    ``fx - f(x + a p) > -sigma * a * (grad . p)``. Gives up once the step drops
    to ``min_step``. A direction that is not a descent direction fails without
    spending any evaluation.
    """
    if not (0 < sigma < 1):
        raise ValueError("Armijo constant sigma must lie in (0, 1)")
    if not (0 < beta < 1):
        raise ValueError("beta must lie in (0, 1)")
    if step <= 0:
        raise ValueError("Initial step must be positive")

    slope = float(np.dot(grad_fx, p))
    if not math.isfinite(slope) or slope >= 0.0:
        logger.debug("Armijo line search called with a non-descent direction (slope %g)", slope)
        return LineSearchResult(alpha=0.0, fun=fx, success=False, nfev=0)

    alpha = float(step)
    nfev = 0
    while alpha > min_step:
        f_new = f(x + alpha * p)
        nfev += 1
        if math.isfinite(f_new) and f_new < fx and fx - f_new > -sigma * alpha * slope:
            return LineSearchResult(alpha=alpha, fun=f_new, success=True, nfev=nfev)
        alpha *= beta
    logger.debug("Armijo line search failed after %d evaluations", nfev)
    return LineSearchResult(alpha=0.0, fun=fx, success=False, nfev=nfev)


def wolfe_line_search(
    f: Objective,
    grad: GradientAt,
    x: Array,
    fx: float,
    p: Array,
    grad_fx: Array,
    rho: float = 0.01,
    sigma: float = 0.9,
    tau: float = 0.1,
    alpha0: float = 1.0,
    expand: float = 9.0,
    max_iter: int = 40,
) -> LineSearchResult:
    """Strong Wolfe line search with bracketing and polynomial sectioning.

    The bracketing phase extrapolates with :func:`cubic_step` inside
    ``[2 a - a_prev, a + expand (a - a_prev)]`` until an interval containing
    acceptable points is found. The sectioning phase picks trial steps with
    cubic (or quadratic, when the derivative at one end is unknown)
    interpolation restricted to the inner ``1 - 2 tau`` part of the bracket.

    Parameters
    ----------
    f:
        Objective.
    grad:
        ``grad(point, value)`` returning the gradient at ``point``.
    rho, sigma:
        Sufficient-decrease and curvature constants, ``0 < rho < sigma < 1``.
    tau:
        Safeguard fraction keeping sectioning trials away from the bracket
        ends, ``0 < tau < 0.5``.
    """
    if not (0 < rho < sigma < 1):
        raise ValueError("Require 0 < rho < sigma < 1 for Wolfe conditions.")
    if not (0 < tau < 0.5):
        raise ValueError("tau must lie in (0, 0.5)")
    if expand <= 1:
        raise ValueError("expand must be greater than 1")

    nfev = 0

    def phi(alpha: float) -> float:
        nonlocal nfev
        nfev += 1
        return f(x + alpha * p)

    def derivative(alpha: float, value: float) -> tuple[Array, float]:
        g = np.asarray(grad(x + alpha * p, value), dtype=float)
        return g, float(np.dot(g, p))

    der0 = float(np.dot(grad_fx, p))
    if not math.isfinite(der0) or der0 >= 0:
        logger.debug("Wolfe line search called with a non-descent direction (slope %g)", der0)
        return LineSearchResult(alpha=0.0, fun=fx, success=False, nfev=0)

    def sufficient(alpha: float, value: float) -> bool:
        return math.isfinite(value) and value <= fx + rho * alpha * der0

    def section(
        lo: float, f_lo: float, d_lo: float, hi: float, f_hi: float, d_hi: Optional[float], budget: int
    ) -> LineSearchResult:
        for _ in range(budget):
            width = hi - lo
            if abs(width * d_lo) < VERY_SMALL:
                break
            left, right = lo + tau * width, hi - tau * width
            if d_hi is None or not math.isfinite(f_hi):
                trial = quadratic_step(lo, f_lo, d_lo, hi, f_hi, left, right)
            else:
                trial = cubic_step(lo, f_lo, d_lo, hi, f_hi, d_hi, left, right)
            f_trial = phi(trial)
            if not sufficient(trial, f_trial) or f_trial >= f_lo:
                hi, f_hi, d_hi = trial, f_trial, None
                continue
            g_trial, d_trial = derivative(trial, f_trial)
            if abs(d_trial) <= -sigma * der0:
                return LineSearchResult(alpha=trial, fun=f_trial, success=True, nfev=nfev, grad=g_trial)
            if d_trial * (hi - lo) >= 0:
                hi, f_hi, d_hi = lo, f_lo, d_lo
            lo, f_lo, d_lo = trial, f_trial, d_trial
        logger.debug("Wolfe sectioning failed after %d evaluations", nfev)
        return LineSearchResult(alpha=0.0, fun=fx, success=False, nfev=nfev)

    alpha_prev, f_prev, d_prev = 0.0, fx, der0
    alpha = float(alpha0)
    for iteration in range(max_iter):
        f_alpha = phi(alpha)
        if not sufficient(alpha, f_alpha) or f_alpha >= f_prev:
            return section(alpha_prev, f_prev, d_prev, alpha, f_alpha, None, max_iter - iteration)
        g_alpha, d_alpha = derivative(alpha, f_alpha)
        if abs(d_alpha) <= -sigma * der0:
            return LineSearchResult(alpha=alpha, fun=f_alpha, success=True, nfev=nfev, grad=g_alpha)
        if d_alpha >= 0:
            return section(alpha, f_alpha, d_alpha, alpha_prev, f_prev, d_prev, max_iter - iteration)
        width = alpha - alpha_prev
        next_alpha = cubic_step(
            alpha_prev, f_prev, d_prev, alpha, f_alpha, d_alpha, alpha + width, alpha + expand * width
        )
        alpha_prev, f_prev, d_prev = alpha, f_alpha, d_alpha
        alpha = next_alpha
    logger.debug("Wolfe bracketing failed after %d evaluations", nfev)
    return LineSearchResult(alpha=0.0, fun=fx, success=False, nfev=nfev)


__all__ = ["LineSearchResult", "backtracking_armijo", "wolfe_line_search"]
