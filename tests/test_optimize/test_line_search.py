import math

import numpy as np
import pytest

from popcal.optimize.line_search import backtracking_armijo, wolfe_line_search


def quadratic(x: np.ndarray) -> float:
    return float(np.dot(x, x))


def quadratic_grad(x: np.ndarray, value: float = 0.0) -> np.ndarray:
    return 2 * x


def test_backtracking_armijo_accepts_first_sufficient_step():
    x = np.array([1.0, 1.0])
    g = quadratic_grad(x)
    res = backtracking_armijo(quadratic, x, quadratic(x), -g, g, step=1.0, beta=0.3, sigma=0.01)
    # the full step lands on f = 2 again, the first reduction is accepted
    assert res.success
    assert res.alpha == pytest.approx(0.3)
    assert res.nfev == 2
    assert res.fun == pytest.approx(0.32)


def test_backtracking_armijo_rejects_non_descent_direction():
    x = np.array([1.0, 1.0])
    g = quadratic_grad(x)
    res = backtracking_armijo(quadratic, x, quadratic(x), g, g)
    assert not res.success
    assert res.alpha == 0.0
    assert res.nfev == 0


def test_backtracking_armijo_fails_on_rejected_points():
    x = np.array([1.0])
    g = np.array([2.0])
    res = backtracking_armijo(lambda z: math.nan, x, 1.0, -g, g)
    assert not res.success
    assert res.alpha == 0.0
    assert res.fun == 1.0
    assert res.nfev > 0


def test_backtracking_armijo_invalid_parameters():
    x = np.array([1.0])
    g = np.array([2.0])
    with pytest.raises(ValueError):
        backtracking_armijo(quadratic, x, 1.0, -g, g, sigma=1.5)
    with pytest.raises(ValueError):
        backtracking_armijo(quadratic, x, 1.0, -g, g, beta=0.0)
    with pytest.raises(ValueError):
        backtracking_armijo(quadratic, x, 1.0, -g, g, step=-1.0)


def test_wolfe_line_search_interpolates_minimum():
    x = np.array([1.0, 1.0])
    g = quadratic_grad(x)
    p = -g
    res = wolfe_line_search(quadratic, quadratic_grad, x, quadratic(x), p, g)
    assert res.success
    assert res.alpha == pytest.approx(0.5)
    assert res.fun == pytest.approx(0.0)
    assert np.allclose(res.grad, np.zeros(2))


def test_wolfe_line_search_extrapolates_short_steps():
    def fun(x: np.ndarray) -> float:
        return float((x[0] - 10.0) ** 2)

    def grad(x: np.ndarray, value: float) -> np.ndarray:
        return np.array([2 * (x[0] - 10.0)])

    x = np.zeros(1)
    p = np.ones(1)
    g = grad(x, fun(x))
    res = wolfe_line_search(fun, grad, x, fun(x), p, g, rho=0.01, sigma=0.5)
    assert res.success
    assert res.alpha > 1.0
    der0 = float(g @ p)
    assert res.fun <= fun(x) + 0.01 * res.alpha * der0
    assert abs(float(res.grad @ p)) <= -0.5 * der0


def test_wolfe_line_search_rejects_non_descent_direction():
    x = np.array([1.0])
    g = quadratic_grad(x)
    res = wolfe_line_search(quadratic, quadratic_grad, x, quadratic(x), g, g)
    assert not res.success
    assert res.nfev == 0


def test_wolfe_line_search_invalid_parameters():
    x = np.array([1.0])
    g = quadratic_grad(x)
    with pytest.raises(ValueError):
        wolfe_line_search(quadratic, quadratic_grad, x, 1.0, -g, g, rho=0.9, sigma=0.1)
    with pytest.raises(ValueError):
        wolfe_line_search(quadratic, quadratic_grad, x, 1.0, -g, g, tau=0.6)
