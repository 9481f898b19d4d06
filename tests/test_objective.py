"""Tests for objective function adapters."""

import numpy as np
import pytest
import torch

from popcal.objective import (
    FunctionObjective,
    ObjectiveFunction,
    ScaledObjective,
    SubsetObjective,
    TorchObjective,
    as_objective,
)


class Quadratic(ObjectiveFunction):
    dim = 2

    def evaluate(self, x: np.ndarray) -> float:
        return float(np.dot(x, x))


def test_objective_is_callable():
    obj = Quadratic()
    assert obj(np.array([1.0, 2.0])) == 5.0


def test_as_objective():
    obj = Quadratic()
    assert as_objective(obj) is obj
    wrapped = as_objective(lambda x: float(x[0]))
    assert isinstance(wrapped, FunctionObjective)
    assert wrapped.evaluate(np.array([3.0])) == 3.0
    with pytest.raises(TypeError):
        as_objective(42)


def test_function_objective_requires_callable():
    with pytest.raises(TypeError):
        FunctionObjective("not callable")


def test_scaled_objective_maps_points():
    seen = []

    def model(x: np.ndarray) -> float:
        seen.append(x.copy())
        return 1.0

    scaled = ScaledObjective(model, np.array([200.0, 0.0, -2.0]))
    # zero entries keep their coordinate unscaled
    assert np.array_equal(scaled.scale, np.array([200.0, 1.0, -2.0]))
    assert scaled.dim == 3

    point = np.array([100.0, 3.0, 4.0])
    assert np.allclose(scaled.scale_point(point), np.array([0.5, 3.0, -2.0]))
    assert np.allclose(scaled.unscale_point(scaled.scale_point(point)), point)

    scaled.evaluate(np.array([1.0, 1.0, 1.0]))
    assert np.allclose(seen[0], np.array([200.0, 1.0, -2.0]))


def test_scaled_objective_bounds_follow_sign_of_scale():
    scaled = ScaledObjective(lambda x: 0.0, np.array([2.0, -2.0]))
    lo, hi = scaled.scale_bounds(np.array([0.0, 0.0]), np.array([4.0, 4.0]))
    assert np.allclose(lo, np.array([0.0, -2.0]))
    assert np.allclose(hi, np.array([2.0, 0.0]))

    lo, hi = scaled.scale_bounds(None, np.array([4.0, 4.0]))
    assert lo[0] == -np.inf and hi[0] == 2.0
    assert lo[1] == -2.0 and hi[1] == np.inf
    assert scaled.scale_bounds(None, None) == (None, None)


def test_subset_objective_fills_fixed_parameters():
    seen = []

    def model(x: np.ndarray) -> float:
        seen.append(x.copy())
        return float(np.sum(x))

    subset = SubsetObjective(model, np.array([1.0, 2.0, 3.0]), np.array([1, 0, 1]))
    assert subset.dim == 2
    assert subset.evaluate(np.array([10.0, 30.0])) == 42.0
    assert np.array_equal(seen[0], np.array([10.0, 2.0, 30.0]))
    assert np.array_equal(subset.reduced_point(np.array([4.0, 5.0, 6.0])), np.array([4.0, 6.0]))

    lo, hi = subset.reduce_bounds(np.zeros(3), None)
    assert np.array_equal(lo, np.zeros(2))
    assert hi is None


def test_subset_objective_composes_with_scaling():
    subset = SubsetObjective(lambda x: 0.0, np.array([100.0, 5.0, 0.2]), np.array([True, False, True]))
    scaled = ScaledObjective(subset, subset.reduced_point(subset.values))
    assert np.allclose(scaled.model_point(np.array([0.5, 2.0])), np.array([50.0, 5.0, 0.4]))
    assert np.allclose(scaled.scale_point(np.array([100.0, 0.2])), np.ones(2))


def test_subset_objective_invalid_flags():
    with pytest.raises(ValueError):
        SubsetObjective(lambda x: 0.0, np.ones(3), np.ones(2))
    with pytest.raises(ValueError, match="At least one parameter"):
        SubsetObjective(lambda x: 0.0, np.ones(2), np.zeros(2))


def test_torch_objective_returns_float_without_grad():
    grad_enabled = []

    def model(t: torch.Tensor) -> torch.Tensor:
        grad_enabled.append(torch.is_grad_enabled())
        assert t.dtype == torch.float64
        return (t**2).sum()

    obj = TorchObjective(model, dim=2)
    value = obj.evaluate(np.array([1.0, 2.0]))
    assert isinstance(value, float)
    assert value == pytest.approx(5.0)
    assert grad_enabled == [False]


def test_torch_objective_rejects_non_scalar():
    obj = TorchObjective(lambda t: t * 2)
    with pytest.raises(ValueError):
        obj.evaluate(np.array([1.0, 2.0]))
