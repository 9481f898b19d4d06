import math
import os
import signal

import numpy as np
import pytest

from popcal.objective import FunctionObjective
from popcal.optimize import (
    CancellationToken,
    SearchReport,
    SearchState,
    Termination,
    check_bounds,
    interrupt_on_sigint,
    is_cancelled,
)


def test_termination_codes():
    assert Termination.CONVERGED.code == 1
    assert Termination.ACCURACY_TOO_SMALL.code == 2
    assert Termination.DEGENERATE.code == -1
    assert Termination.MAX_EVALUATIONS.code == 0
    assert Termination.INTERRUPTED.code == 0
    assert Termination.RUNNING.code is None


def test_search_state_counts_and_tracks_best():
    seen = []
    state = SearchState(
        FunctionObjective(lambda x: float(np.sum(x**2))),
        np.array([2.0, 0.0]),
        callback=lambda x, f, nfev: seen.append((x.copy(), f, nfev)),
    )
    assert state.evaluate(np.array([2.0, 0.0])) == 4.0
    assert state.evaluate(np.array([3.0, 0.0])) == 9.0
    assert state.evaluate(np.array([1.0, 0.0])) == 1.0
    assert state.nfev == 3
    assert state.best_f == 1.0
    assert np.array_equal(state.best_x, np.array([1.0, 0.0]))
    # callback only fires on improvements
    assert [(f, nfev) for _, f, nfev in seen] == [(4.0, 1), (1.0, 3)]


def test_search_state_ignores_non_finite_scores():
    values = iter([math.nan, math.inf, 5.0])
    state = SearchState(FunctionObjective(lambda x: next(values)), np.zeros(1))
    state.evaluate(np.array([1.0]))
    state.evaluate(np.array([2.0]))
    assert state.nfev == 2
    assert state.best_f == math.inf
    # best point falls back to the starting point
    assert np.array_equal(state.best_x, np.zeros(1))
    state.evaluate(np.array([3.0]))
    assert state.best_f == 5.0


def test_search_state_evaluate_does_not_leak_mutations():
    def mutating(x: np.ndarray) -> float:
        x[:] = 100.0
        return 1.0

    state = SearchState(FunctionObjective(mutating), np.zeros(2))
    point = np.array([1.0, 2.0])
    state.evaluate(point)
    assert np.array_equal(point, np.array([1.0, 2.0]))
    assert np.array_equal(state.best_x, np.array([1.0, 2.0]))


def test_finish_builds_report():
    state = SearchState(FunctionObjective(lambda x: float(x[0])), np.array([3.0]))
    state.evaluate(np.array([3.0]))
    state.nit = 4
    report = state.finish(Termination.CONVERGED, "done", restarts=2)
    assert isinstance(report, SearchReport)
    assert report.success
    assert report.code == 1
    assert report.fun == 3.0
    assert report.nit == 4
    assert report.diagnostics == {"restarts": 2}
    assert state.termination is Termination.CONVERGED
    # the report owns its arrays
    report.x[0] = -1.0
    assert state.best_x[0] == 3.0


def test_cancellation_token():
    token = CancellationToken()
    assert not token.cancelled
    assert not is_cancelled(token)
    assert not is_cancelled(None)
    token.cancel()
    assert token.cancelled and is_cancelled(token)
    token.reset()
    assert not token.cancelled


def test_interrupt_on_sigint_sets_token_and_restores_handler():
    token = CancellationToken()
    previous = signal.getsignal(signal.SIGINT)
    with interrupt_on_sigint(token):
        os.kill(os.getpid(), signal.SIGINT)
    assert token.cancelled
    assert signal.getsignal(signal.SIGINT) is previous


def test_check_bounds_defaults_to_infinite():
    lo, hi = check_bounds(np.zeros(3), None, None)
    assert np.all(np.isneginf(lo))
    assert np.all(np.isposinf(hi))


def test_check_bounds_errors():
    with pytest.raises(ValueError):
        check_bounds(np.zeros(2), np.zeros(3), None)
    with pytest.raises(ValueError):
        check_bounds(np.zeros(2), np.array([0.0, 2.0]), np.array([1.0, 1.0]))
    with pytest.raises(ValueError):
        check_bounds(np.zeros(1), np.array([math.nan]), None)
