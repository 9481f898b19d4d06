"""Core interfaces shared across the calibration search algorithms.

Every algorithm owns a :class:`SearchState` for the duration of one run. All
objective evaluations go through :meth:`SearchState.evaluate`, which keeps the
evaluation counter and the best point observed so far, so the algorithms never
touch process-wide state and several runs can coexist.
"""

from __future__ import annotations

import math
import signal
import threading
from contextlib import contextmanager
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, Iterator, Optional

import numpy as np

from ..logging import get_logger
from ..objective import Array, ObjectiveFunction

logger = get_logger(__name__)

# Numerical floors shared by the line searches and the BFGS variants
VERY_SMALL = 1e-20
RATHER_SMALL = 1e-10

Callback = Callable[[Array, float, int], None]


class Termination(Enum):
    """Why a search stopped."""

    RUNNING = "running"
    CONVERGED = "converged"
    MAX_EVALUATIONS = "max_evaluations"
    ACCURACY_TOO_SMALL = "accuracy_too_small"
    DEGENERATE = "degenerate"
    INTERRUPTED = "interrupted"

    @property
    def code(self) -> Optional[int]:
        """Numeric result code handed back to the model (None while running)."""
        return _RESULT_CODES.get(self)


_RESULT_CODES = {
    Termination.CONVERGED: 1,
    Termination.ACCURACY_TOO_SMALL: 2,
    Termination.DEGENERATE: -1,
    Termination.MAX_EVALUATIONS: 0,
    Termination.INTERRUPTED: 0,
}


@dataclass(frozen=True)
class SearchReport:
    """Immutable outcome of one search run.

    Attributes:
        x: Best point observed during the run.
        fun: Score at ``x`` (``inf`` when no finite score was seen).
        nfev: Objective evaluations consumed by this run.
        termination: Reason the run stopped.
        nit: Outer iterations performed.
        message: Human-readable termination message.
        diagnostics: Algorithm-specific extras (bound hits, restarts,
            smallest eigenvalue, ...).
    """

    x: Array
    fun: float
    nfev: int
    termination: Termination
    nit: int
    message: str
    diagnostics: Dict[str, Any] = field(default_factory=dict)

    @property
    def code(self) -> Optional[int]:
        return self.termination.code

    @property
    def success(self) -> bool:
        return self.termination is Termination.CONVERGED


@dataclass
class SearchState:
    """Mutable state of a single running search."""

    objective: ObjectiveFunction
    x: Array
    best_x: Optional[Array] = None
    best_f: float = math.inf
    nfev: int = 0
    nit: int = 0
    termination: Termination = Termination.RUNNING
    callback: Optional[Callback] = None

    def __post_init__(self) -> None:
        self.x = np.asarray(self.x, dtype=float).reshape(-1).copy()
        if self.best_x is None:
            self.best_x = self.x.copy()

    @property
    def dim(self) -> int:
        return self.x.size

    def evaluate(self, x: Array) -> float:
        """Score ``x``, counting the call and recording a new best if any."""
        x = np.asarray(x, dtype=float)
        score = float(self.objective.evaluate(x.copy()))
        self.nfev += 1
        if math.isfinite(score) and score < self.best_f:
            self.best_f = score
            self.best_x = x.copy()
            if self.callback is not None:
                self.callback(self.best_x.copy(), score, self.nfev)
        return score

    def finish(
        self,
        termination: Termination,
        message: str,
        **diagnostics: Any,
    ) -> SearchReport:
        """Freeze the state into a :class:`SearchReport`."""
        self.termination = termination
        return SearchReport(
            x=self.best_x.copy(),
            fun=float(self.best_f),
            nfev=self.nfev,
            termination=termination,
            nit=self.nit,
            message=message,
            diagnostics=dict(diagnostics),
        )


class CancellationToken:
    """Cooperative interruption flag polled once per outer iteration.

    The flag is never checked inside a single objective evaluation; a long
    simulation run always completes before the search stops.
    """

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    def reset(self) -> None:
        self._event.clear()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


def is_cancelled(cancel: Optional[CancellationToken]) -> bool:
    return cancel is not None and cancel.cancelled


@contextmanager
def interrupt_on_sigint(token: CancellationToken) -> Iterator[CancellationToken]:
    """Route Ctrl-C to ``token`` instead of raising ``KeyboardInterrupt``.

    The previous handler is restored on exit. Only usable from the main
    thread, as with any ``signal.signal`` call.
    """

    def _handler(signum, frame):
        logger.warning("Interrupt received, stopping at the next iteration")
        token.cancel()

    previous = signal.signal(signal.SIGINT, _handler)
    try:
        yield token
    finally:
        signal.signal(signal.SIGINT, previous)


def check_bounds(
    x: Array, lower: Optional[Array], upper: Optional[Array]
) -> tuple[Array, Array]:
    """Return ``(lower, upper)`` as float arrays matching ``x``.

    Missing bounds become ``-inf``/``+inf``.

    Raises:
        ValueError: On a shape mismatch or when ``lower > upper`` anywhere.
    """
    n = np.asarray(x).size
    lo = np.full(n, -np.inf) if lower is None else np.asarray(lower, dtype=float).reshape(-1)
    hi = np.full(n, np.inf) if upper is None else np.asarray(upper, dtype=float).reshape(-1)
    if lo.size != n or hi.size != n:
        raise ValueError(
            f"Bounds must have the same dimension as x ({n}), got {lo.size} and {hi.size}"
        )
    if np.any(np.isnan(lo)) or np.any(np.isnan(hi)):
        raise ValueError("Bounds must not contain NaN")
    if np.any(lo > hi):
        bad = np.flatnonzero(lo > hi).tolist()
        raise ValueError(f"Lower bound exceeds upper bound for coordinates {bad}")
    return lo, hi


__all__ = [
    "Callback",
    "CancellationToken",
    "RATHER_SMALL",
    "SearchReport",
    "SearchState",
    "Termination",
    "VERY_SMALL",
    "check_bounds",
    "interrupt_on_sigint",
    "is_cancelled",
]
