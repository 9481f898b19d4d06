"""Quasi-Newton searches (BFGS) with finite-difference gradients.

Two interchangeable variants share the same contract and termination codes:

``bfgs``
    The default. Keeps an approximation of the *inverse* Hessian, so the
    search direction is a matrix-vector product, and uses Armijo
    backtracking.
``bfgs_wolfe``
    Keeps an approximation of the Hessian itself, obtains the direction from
    a pivoted linear solve and uses a bracketing strong Wolfe line search
    with cubic/quadratic interpolation.

Neither variant aborts on a bad quadratic model. A failed line search, a
singular or non-descent direction, or an update that would destroy positive
definiteness resets the approximation to the identity, shrinks the
finite-difference step by ``gradstep`` and carries on from the current point.
The search gives up with ``ACCURACY_TOO_SMALL`` once that step drops below
``gradeps``.
"""

from __future__ import annotations

import math
from typing import Callable, Optional

import numpy as np

from ..logging import get_logger
from ..objective import Array, ObjectiveFunction, as_objective
from .core import (
    VERY_SMALL,
    Callback,
    CancellationToken,
    SearchReport,
    SearchState,
    Termination,
    is_cancelled,
)
from .line_search import backtracking_armijo, wolfe_line_search
from .utils import forward_gradient, pivoted_solve, smallest_eigenvalue

logger = get_logger(__name__)


def validate_gradient_settings(
    maxiter: int, eps: float, gradacc: float, gradstep: float, gradeps: float
) -> None:
    """Check the budget, threshold and finite-difference settings shared by both variants."""
    if maxiter < 1:
        raise ValueError("The evaluation budget must be at least 1")
    if eps <= 0:
        raise ValueError("The convergence threshold must be positive")
    if gradacc <= 0:
        raise ValueError("gradacc must be positive")
    if not (0 < gradstep < 1):
        raise ValueError("gradstep must lie in (0, 1)")
    if gradeps <= 0:
        raise ValueError("gradeps must be positive")


def _stop_reason(
    state: SearchState, fx: float, maxiter: int, gradacc: float, gradeps: float, cancel
) -> Optional[tuple[Termination, str]]:
    """Termination checks performed at the top of every BFGS iteration."""
    if fx == 0.0:
        return Termination.DEGENERATE, "Degenerate objective, f(x) = 0"
    if state.nfev > maxiter:
        return (
            Termination.MAX_EVALUATIONS,
            "Maximum number of function evaluations reached; an optimum has NOT been found",
        )
    if gradacc < gradeps:
        return (
            Termination.ACCURACY_TOO_SMALL,
            "Accuracy required for the gradient calculation is too small; "
            "an optimum has NOT been found",
        )
    if is_cancelled(cancel):
        return Termination.INTERRUPTED, "Interrupted; returning the best point found so far"
    return None


def _finish(
    state: SearchState,
    termination: Termination,
    message: str,
    matrix: Array,
    label: str,
    **diagnostics,
) -> SearchReport:
    logger.info("Stopping BFGS optimisation algorithm after %d function evaluations", state.nfev)
    logger.info(message)
    eigen = smallest_eigenvalue(matrix)
    if eigen != 0.0:
        logger.info("The smallest eigenvalue of the %s matrix is %g", label, eigen)
    return state.finish(termination, message, smallest_eigenvalue=eigen, **diagnostics)


def bfgs(
    objective: ObjectiveFunction,
    x0: Array,
    beta: float = 0.3,
    sigma: float = 0.01,
    step: float = 1.0,
    bfgsiter: int = 10000,
    bfgseps: float = 0.01,
    gradacc: float = 1e-6,
    gradstep: float = 0.5,
    gradeps: float = 1e-10,
    callback: Optional[Callback] = None,
    cancel: Optional[CancellationToken] = None,
) -> SearchReport:
    """Inverse-Hessian BFGS with Armijo backtracking.

    Parameters
    ----------
    objective:
        Objective function (or plain callable) in scaled coordinates.
    x0:
        Starting point.
    beta, sigma, step:
        Backtracking factor, Armijo constant and initial step of the line
        search.
    bfgsiter:
        Budget of function evaluations.
    bfgseps:
        Converged once ``||g|| / (1 + |f|) < bfgseps``.
    gradacc, gradstep, gradeps:
        Relative finite-difference step, its reduction factor on restart, and
        the floor below which the search stops.
    callback:
        Called as ``callback(x, f, nfev)`` whenever a new best point is found.
    cancel:
        Token polled once per iteration.
    """
    if not (0 < beta < 1):
        raise ValueError("beta must lie in (0, 1)")
    if not (0 < sigma < 1):
        raise ValueError("sigma must lie in (0, 1)")
    if step <= 0:
        raise ValueError("step must be positive")
    validate_gradient_settings(bfgsiter, bfgseps, gradacc, gradstep, gradeps)

    objective = as_objective(objective)
    if np.asarray(x0).size == 0:
        raise ValueError("x0 must contain at least one parameter")
    state = SearchState(objective, x0, callback=callback)
    x = state.x.copy()
    n = x.size
    inv_hessian = np.eye(n)
    restarts = 0

    logger.info("Starting BFGS optimisation algorithm")
    fx = state.evaluate(x)
    if not math.isfinite(fx):
        logger.warning("Error starting BFGS optimisation with f(x) = %g", fx)
        return _finish(
            state,
            Termination.DEGENERATE,
            f"Degenerate objective at the starting point (f(x) = {fx})",
            inv_hessian,
            "inverse Hessian",
            restarts=0,
            gradacc=gradacc,
            grad_norm=math.nan,
        )

    grad = forward_gradient(state.evaluate, x, fx, gradacc)
    grad_norm = float(np.linalg.norm(grad))
    check = True
    alpha = 1.0

    while True:
        stop = _stop_reason(state, fx, bfgsiter, gradacc, gradeps, cancel)
        if stop is not None:
            return _finish(
                state,
                *stop,
                inv_hessian,
                "inverse Hessian",
                restarts=restarts,
                gradacc=gradacc,
                grad_norm=grad_norm,
            )
        state.nit += 1

        if not check or alpha <= 0.0:
            restarts += 1
            gradacc *= gradstep
            logger.warning(
                "Resetting BFGS search algorithm after %d function evaluations", state.nfev
            )
            inv_hessian = np.eye(n)
            check = True

        search = -inv_hessian @ grad
        result = backtracking_armijo(state.evaluate, x, fx, search, grad, step, beta, sigma)
        alpha = result.alpha
        if not result.success:
            # fresh gradient at the current point, restart on the next pass
            grad = forward_gradient(state.evaluate, x, fx, gradacc)
            grad_norm = float(np.linalg.norm(grad))
            continue

        h = alpha * search
        x = x + h
        fx = result.fun
        new_grad = forward_gradient(state.evaluate, x, fx, gradacc)
        y = new_grad - grad
        grad = new_grad
        grad_norm = float(np.linalg.norm(grad))

        hy = float(h @ y)
        by = inv_hessian @ y
        yby = float(y @ by)
        if not np.all(np.isfinite(grad)) or hy <= VERY_SMALL or yby < VERY_SMALL:
            check = False
        else:
            u = h / hy - by / yby
            inv_hessian = (
                inv_hessian
                + np.outer(h, h) / hy
                - np.outer(by, by) / yby
                + yby * np.outer(u, u)
            )

        logger.info(
            "New optimum found after %d function evaluations, f(x) = %g", state.nfev, fx
        )

        if grad_norm / (1.0 + abs(fx)) < bfgseps:
            return _finish(
                state,
                Termination.CONVERGED,
                "An optimum was found for this run",
                inv_hessian,
                "inverse Hessian",
                restarts=restarts,
                gradacc=gradacc,
                grad_norm=grad_norm,
            )


def bfgs_wolfe(
    objective: ObjectiveFunction,
    x0: Array,
    rho: float = 0.01,
    sigma: float = 0.9,
    tau: float = 0.1,
    maxiter: int = 10000,
    eps: float = 0.01,
    gradacc: float = 1e-6,
    gradstep: float = 0.5,
    gradeps: float = 1e-10,
    callback: Optional[Callback] = None,
    cancel: Optional[CancellationToken] = None,
) -> SearchReport:
    """Hessian BFGS with a pivoted solve and a strong Wolfe line search.

    ``rho`` and ``sigma`` are the Wolfe sufficient-decrease and curvature
    constants, ``tau`` keeps interpolated trial steps away from the ends of
    the bracket. The remaining parameters mean the same as in :func:`bfgs`
    (``maxiter`` is the evaluation budget, ``eps`` the gradient threshold).
    """
    validate_gradient_settings(maxiter, eps, gradacc, gradstep, gradeps)
    if not (0 < rho < sigma < 1):
        raise ValueError("Require 0 < rho < sigma < 1")
    if not (0 < tau < 0.5):
        raise ValueError("tau must lie in (0, 0.5)")

    objective = as_objective(objective)
    if np.asarray(x0).size == 0:
        raise ValueError("x0 must contain at least one parameter")
    state = SearchState(objective, x0, callback=callback)
    x = state.x.copy()
    n = x.size
    hessian = np.eye(n)
    restarts = 0

    def grad_at(point: Array, value: float) -> Array:
        return forward_gradient(state.evaluate, point, value, gradacc)

    logger.info("Starting BFGS optimisation algorithm (Wolfe line search)")
    fx = state.evaluate(x)
    if not math.isfinite(fx):
        logger.warning("Error starting BFGS optimisation with f(x) = %g", fx)
        return _finish(
            state,
            Termination.DEGENERATE,
            f"Degenerate objective at the starting point (f(x) = {fx})",
            hessian,
            "Hessian",
            restarts=0,
            gradacc=gradacc,
            grad_norm=math.nan,
        )

    grad = grad_at(x, fx)
    check = True

    while True:
        grad_norm = float(np.linalg.norm(grad))
        stop = _stop_reason(state, fx, maxiter, gradacc, gradeps, cancel)
        if stop is None and grad_norm / (1.0 + abs(fx)) < eps:
            stop = Termination.CONVERGED, "An optimum was found for this run"
        if stop is not None:
            return _finish(
                state,
                *stop,
                hessian,
                "Hessian",
                restarts=restarts,
                gradacc=gradacc,
                grad_norm=grad_norm,
            )
        state.nit += 1

        if not check:
            restarts += 1
            gradacc *= gradstep
            logger.warning(
                "Resetting BFGS search algorithm after %d function evaluations", state.nfev
            )
            hessian = np.eye(n)
            check = True

        direction, solved = pivoted_solve(hessian, -grad)
        if not solved or not np.all(np.isfinite(direction)) or float(direction @ grad) >= 0.0:
            logger.warning("BFGS search direction is singular or not a descent direction")
            check = False
            grad = grad_at(x, fx)
            continue

        result = wolfe_line_search(
            state.evaluate, grad_at, x, fx, direction, grad, rho=rho, sigma=sigma, tau=tau
        )
        if not result.success:
            check = False
            grad = grad_at(x, fx)
            continue

        s = result.alpha * direction
        x = x + s
        fx = result.fun
        y = result.grad - grad
        grad = result.grad

        ys = float(y @ s)
        bs = hessian @ s
        sbs = float(s @ bs)
        if not np.all(np.isfinite(grad)) or ys <= VERY_SMALL or sbs <= VERY_SMALL:
            check = False
        else:
            hessian = hessian + np.outer(y, y) / ys - np.outer(bs, bs) / sbs

        logger.info(
            "New optimum found after %d function evaluations, f(x) = %g", state.nfev, fx
        )


BFGS_VARIANTS: dict[str, Callable[..., SearchReport]] = {
    "armijo": bfgs,
    "wolfe": bfgs_wolfe,
}


__all__ = ["BFGS_VARIANTS", "bfgs", "bfgs_wolfe", "validate_gradient_settings"]
