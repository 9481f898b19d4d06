"""Hooke and Jeeves direct search with bound handling.

The search needs no derivatives and tolerates discontinuous objectives. It is
adapted from "Algorithm 178: Direct Search" (Kaupe, CACM 6, 1963) with the
improvements of Bell & Pike (CACM 9, 1966) and Tomlin & Smith (CACM 12).

Each iteration explores the coordinates one at a time (``_best_nearby``). When
the exploration improves on the current best, the search extrapolates along
the displacement (``2 newx - oldx``) and explores again from there, as long as
that keeps paying off. When nothing improves, every step is multiplied by
``rho``. The search stops once the step length falls to ``epsilon``.

Points are never evaluated outside ``[lower, upper]``: trial coordinates are
clipped onto the box. Pattern moves that keep pushing a coordinate into a
bound mark it as *trapped*; after two consecutive violations of the same bound
its step is enlarged so the exploration can get away from the bound again.
Once the score has improved by 5% the coordinate is released and gets back the
step it had when it was trapped.
"""

from __future__ import annotations

import math
from typing import Optional

import numpy as np

from ..logging import get_logger
from ..objective import Array, ObjectiveFunction, as_objective
from .core import (
    Callback,
    CancellationToken,
    SearchReport,
    SearchState,
    Termination,
    check_bounds,
    is_cancelled,
)

logger = get_logger(__name__)

# fraction of the trapping score the search must reach to leave a trap
ESCAPE_RATIO = 0.95

# seed of the coordinate re-ordering when none is given
DEFAULT_SEED = 0


class _BoundTracker:
    """Trap counters and clipping for one Hooke-Jeeves run."""

    def __init__(self, lower: Array, upper: Array, rho: float):
        n = lower.size
        self.lower = lower
        self.upper = upper
        self.rho = rho
        self.lower_run = np.zeros(n, dtype=int)
        self.upper_run = np.zeros(n, dtype=int)
        self.lower_hits = np.zeros(n, dtype=int)
        self.upper_hits = np.zeros(n, dtype=int)
        self.trapped = np.zeros(n, dtype=bool)
        self.initial_step = np.zeros(n)
        self.trap_score = np.full(n, math.inf)

    def clip(self, i: int, value: float) -> float:
        return min(max(value, self.lower[i]), self.upper[i])

    def _trap(self, i: int, delta: Array, score: float) -> None:
        if not self.trapped[i]:
            self.trapped[i] = True
            self.initial_step[i] = delta[i]
            self.trap_score[i] = score

    def _enlarge(self, i: int, delta: Array) -> None:
        delta[i] = math.copysign(abs(delta[i]) + self.rho * 10.0, delta[i])

    def clip_pattern(self, raw: Array, delta: Array, score: float) -> Array:
        """Clip an extrapolated point, recording bound violations.

        ``delta`` is updated in place for coordinates that hit the same bound
        twice in a row. The run counters are not reset by an enlargement, so
        every further violation of that bound enlarges the step again.
        """
        for i in range(raw.size):
            if raw[i] < self.lower[i]:
                self.lower_hits[i] += 1
                self.lower_run[i] += 1
                self.upper_run[i] = 0
                self._trap(i, delta, score)
                if self.lower_run[i] >= 2:
                    self._enlarge(i, delta)
            elif raw[i] > self.upper[i]:
                self.upper_hits[i] += 1
                self.upper_run[i] += 1
                self.lower_run[i] = 0
                self._trap(i, delta, score)
                if self.upper_run[i] >= 2:
                    self._enlarge(i, delta)
            else:
                self.lower_run[i] = 0
                self.upper_run[i] = 0
        return np.clip(raw, self.lower, self.upper)

    def release(self, score: float, delta: Array) -> None:
        """Release trapped coordinates once ``score`` beats the trapping score by 5%."""
        escaped = self.trapped & (score < ESCAPE_RATIO * self.trap_score)
        if not np.any(escaped):
            return
        self.trapped[escaped] = False
        self.lower_run[escaped] = 0
        self.upper_run[escaped] = 0
        self.trap_score[escaped] = math.inf
        delta[escaped] = self.initial_step[escaped]

    @property
    def hits(self) -> int:
        return int(self.lower_hits.sum() + self.upper_hits.sum())

    def diagnostics(self) -> dict:
        return {
            "bound_hits": self.hits,
            "lower_hits": self.lower_hits.tolist(),
            "upper_hits": self.upper_hits.tolist(),
        }


def _best_nearby(
    state: SearchState,
    delta: Array,
    point: Array,
    prevbest: float,
    order: Array,
    bounds: _BoundTracker,
) -> tuple[Array, float]:
    """Look for a better point nearby, one coordinate at a time.

    A coordinate tries ``+delta`` then ``-delta``; the sign that was tried
    last is kept in ``delta``. Returns the composed point and its score.
    """
    z = point.copy()
    minf = prevbest
    for i in order:
        z[i] = bounds.clip(i, point[i] + delta[i])
        ftmp = state.evaluate(z) if z[i] != point[i] else math.nan
        if ftmp < minf:
            minf = ftmp
            continue
        delta[i] = -delta[i]
        z[i] = bounds.clip(i, point[i] + delta[i])
        ftmp = state.evaluate(z) if z[i] != point[i] else math.nan
        if ftmp < minf:
            minf = ftmp
        else:
            z[i] = point[i]
    return z, minf


def hooke_jeeves(
    objective: ObjectiveFunction,
    x0: Array,
    lower: Optional[Array] = None,
    upper: Optional[Array] = None,
    rho: float = 0.5,
    lambda_: float = 0.0,
    epsilon: float = 1e-4,
    itermax: int = 1000,
    step: Optional[Array] = None,
    seed: Optional[int] = DEFAULT_SEED,
    callback: Optional[Callback] = None,
    cancel: Optional[CancellationToken] = None,
) -> SearchReport:
    """Minimise ``objective`` with the Hooke and Jeeves pattern search.

    Parameters
    ----------
    objective:
        Objective function (or plain callable) in scaled coordinates.
    x0:
        Starting point. Clipped into the bounds if it lies outside.
    lower, upper:
        Optional box bounds.
    rho:
        Step reduction factor, ``0 < rho < 1``. Larger values examine the
        neighbourhood more carefully at the cost of more evaluations.
    lambda_:
        Initial step length; ``rho`` is used when not positive.
    epsilon:
        The search stops when the step length is at most ``epsilon``.
    itermax:
        Maximum number of iterations.
    step:
        Initial per-coordinate steps; defaults to ``|x0 * rho|`` (``rho``
        for zero coordinates).
    seed:
        Seed of the generator that re-orders the coordinates every
        ``15 n`` iterations. The fixed default makes repeated runs identical;
        ``None`` draws fresh entropy from the operating system.
    callback:
        Called as ``callback(x, f, nfev)`` whenever a new best point is found.
    cancel:
        Token polled at every iteration and at every step of a pattern move.
    """
    if not (0 < rho < 1):
        raise ValueError("rho must lie in (0, 1)")
    if epsilon <= 0:
        raise ValueError("epsilon must be positive")
    if itermax < 1:
        raise ValueError("itermax must be at least 1")

    objective = as_objective(objective)
    x = np.asarray(x0, dtype=float).reshape(-1).copy()
    n = x.size
    if n == 0:
        raise ValueError("x0 must contain at least one parameter")
    lo, hi = check_bounds(x, lower, upper)
    if np.any(x < lo) or np.any(x > hi):
        logger.warning("Starting point lies outside the bounds, clipping it into the box")
        x = np.clip(x, lo, hi)

    if step is None:
        delta = np.abs(x * rho)
    else:
        delta = np.abs(np.asarray(step, dtype=float).reshape(-1)).copy()
        if delta.size != n:
            raise ValueError(f"step must have {n} entries, got {delta.size}")
    delta[delta == 0.0] = rho

    steplength = lambda_ if lambda_ > 0 else rho
    rng = np.random.default_rng(seed)
    order = np.arange(n)
    bounds = _BoundTracker(lo, hi, rho)
    state = SearchState(objective, x, callback=callback)

    logger.info("Starting Hooke and Jeeves")
    fbefore = state.evaluate(x)
    if not math.isfinite(fbefore) or fbefore == 0.0:
        logger.warning(
            "Error in Hooke and Jeeves optimisation after %d function evaluations, f(x) = %g",
            state.nfev,
            fbefore,
        )
        return state.finish(
            Termination.DEGENERATE,
            f"Degenerate objective at the starting point (f(x) = {fbefore})",
            iterations=0,
            step_length=steplength,
            **bounds.diagnostics(),
        )

    xbefore = x.copy()
    newf = fbefore
    interrupted = False
    while state.nit < itermax and steplength > epsilon:
        if is_cancelled(cancel):
            interrupted = True
            break
        state.nit += 1
        logger.debug(
            "Iteration %d: f(x) = %g after %d function evaluations", state.nit, fbefore, state.nfev
        )

        if state.nit % (15 * n) == 0:
            # avoid the coordinate order biasing which changes are accepted
            order = rng.permutation(n)

        newx, newf = _best_nearby(state, delta, xbefore, fbefore, order, bounds)

        keep = True
        while newf < fbefore and keep:
            if is_cancelled(cancel):
                interrupted = True
                break
            bounds.release(newf, delta)

            # point the steps along the improving direction, then move further
            delta = np.where(newx <= xbefore, -np.abs(delta), np.abs(delta))
            raw = 2.0 * newx - xbefore
            xbefore, fbefore = newx, newf
            newx = bounds.clip_pattern(raw, delta, fbefore)
            if np.array_equal(newx, xbefore):
                break

            newf = state.evaluate(newx)
            if not newf < fbefore:
                break

            fbefore = newf
            xbefore = newx.copy()
            newx, newf = _best_nearby(state, delta, xbefore, fbefore, order, bounds)
            if not newf < fbefore:
                break

            # guard against roundoff posing as progress
            keep = bool(np.any(np.abs(newx - xbefore) > 0.5 * np.abs(delta)))

        if interrupted:
            break
        improved = newf < fbefore
        if improved:
            xbefore, fbefore = newx, newf
        elif steplength >= epsilon:
            steplength *= rho
            delta *= rho

    logger.info(
        "Hooke and Jeeves optimisation completed after %d iterations (max %d)", state.nit, itermax
    )
    logger.info("The bounds were hit %d times", bounds.hits)
    logger.info("The steplength was reduced to %g (min %g)", steplength, epsilon)

    if interrupted:
        termination = Termination.INTERRUPTED
        message = "Interrupted; returning the best point found so far"
    elif steplength <= epsilon:
        termination = Termination.CONVERGED
        message = "Converged to an optimum"
    else:
        termination = Termination.MAX_EVALUATIONS
        message = "Maximum number of iterations reached; an optimum has NOT been found"
    logger.info(message)

    return state.finish(
        termination,
        message,
        iterations=state.nit,
        step_length=steplength,
        **bounds.diagnostics(),
    )


__all__ = ["DEFAULT_SEED", "hooke_jeeves"]
