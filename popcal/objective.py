"""Objective functions seen by the optimisation engine.

The simulation model is an external collaborator: the engine only needs a
scalar score for a parameter vector. A NaN score means the model rejected the
point (failed or invalid run); such points are never accepted as an
improvement.

The engine always works in scaled coordinates. :class:`ScaledObjective`
divides the model's parameter values by their initial values so that every
coordinate starts near one, which keeps step sizes and finite-difference
perturbations comparable across parameters of very different magnitude.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Optional, Union

import numpy as np
import torch

Array = np.ndarray


class ObjectiveFunction(ABC):
    """A scalar function of a fixed-dimension parameter vector."""

    dim: Optional[int] = None

    @abstractmethod
    def evaluate(self, x: Array) -> float:
        """Return the score at ``x`` (NaN when the point is rejected)."""

    def __call__(self, x: Array) -> float:
        return self.evaluate(x)

    def model_point(self, x: Array) -> Array:
        """Map a point seen by the engine to the full model parameter vector."""
        return np.asarray(x, dtype=float)


class FunctionObjective(ObjectiveFunction):
    """Adapter turning a plain callable into an :class:`ObjectiveFunction`."""

    def __init__(self, fun: Callable[[Array], float], dim: Optional[int] = None):
        if not callable(fun):
            raise TypeError("fun must be callable")
        self.fun = fun
        self.dim = dim

    def evaluate(self, x: Array) -> float:
        return float(self.fun(x))

    def __repr__(self) -> str:
        return f"FunctionObjective({getattr(self.fun, '__name__', self.fun)!r}, dim={self.dim})"


def as_objective(obj: Union[ObjectiveFunction, Callable[[Array], float]]) -> ObjectiveFunction:
    """Return ``obj`` as an :class:`ObjectiveFunction`."""
    if isinstance(obj, ObjectiveFunction):
        return obj
    if callable(obj):
        return FunctionObjective(obj)
    raise TypeError(f"Cannot use {type(obj).__name__} as an objective function")


class ScaledObjective(ObjectiveFunction):
    """Evaluate ``objective`` on scaled coordinates ``x_scaled = x / scale``.

    Zero entries of ``scale`` are replaced by one so the mapping stays
    invertible.
    """

    def __init__(self, objective: Union[ObjectiveFunction, Callable[[Array], float]], scale: Array):
        self.objective = as_objective(objective)
        scale = np.asarray(scale, dtype=float).reshape(-1).copy()
        scale[scale == 0.0] = 1.0
        self.scale = scale
        self.dim = scale.size

    def scale_point(self, x: Array) -> Array:
        return np.asarray(x, dtype=float) / self.scale

    def unscale_point(self, x_scaled: Array) -> Array:
        return np.asarray(x_scaled, dtype=float) * self.scale

    def scale_bounds(
        self, lower: Optional[Array], upper: Optional[Array]
    ) -> tuple[Optional[Array], Optional[Array]]:
        """Map model bounds to scaled coordinates.

        A negative scale flips the orientation of a coordinate, so the lower
        and upper values are re-ordered element-wise.
        """
        if lower is None and upper is None:
            return None, None
        lo = self.scale_point(np.full(self.dim, -np.inf) if lower is None else lower)
        hi = self.scale_point(np.full(self.dim, np.inf) if upper is None else upper)
        flip = self.scale < 0.0
        lo[flip], hi[flip] = hi[flip], lo[flip]
        return lo, hi

    def evaluate(self, x: Array) -> float:
        return self.objective.evaluate(self.unscale_point(x))

    def model_point(self, x: Array) -> Array:
        return self.objective.model_point(self.unscale_point(x))


class SubsetObjective(ObjectiveFunction):
    """Optimise only the parameters flagged in ``optimise``.

    The engine sees a vector holding the flagged parameters, in order; the
    other parameters keep their entries of ``values`` on every evaluation.
    Wrap the result in a :class:`ScaledObjective` to search in scaled
    coordinates.
    """

    def __init__(
        self,
        objective: Union[ObjectiveFunction, Callable[[Array], float]],
        values: Array,
        optimise: Array,
    ):
        self.objective = as_objective(objective)
        self.values = np.asarray(values, dtype=float).reshape(-1).copy()
        mask = np.asarray(optimise, dtype=bool).reshape(-1)
        if mask.size != self.values.size:
            raise ValueError(f"optimise must have {self.values.size} entries, got {mask.size}")
        if not np.any(mask):
            raise ValueError("At least one parameter must be optimised")
        self.optimise = mask
        self.dim = int(mask.sum())

    def reduced_point(self, x: Array) -> Array:
        """The optimised entries of a full parameter vector."""
        return np.asarray(x, dtype=float).reshape(-1)[self.optimise].copy()

    def full_point(self, x_reduced: Array) -> Array:
        full = self.values.copy()
        full[self.optimise] = np.asarray(x_reduced, dtype=float).reshape(-1)
        return full

    def reduce_bounds(
        self, lower: Optional[Array], upper: Optional[Array]
    ) -> tuple[Optional[Array], Optional[Array]]:
        lo = None if lower is None else self.reduced_point(lower)
        hi = None if upper is None else self.reduced_point(upper)
        return lo, hi

    def evaluate(self, x: Array) -> float:
        return self.objective.evaluate(self.full_point(x))

    def model_point(self, x: Array) -> Array:
        return self.objective.model_point(self.full_point(x))


class TorchObjective(ObjectiveFunction):
    """Objective for models written with PyTorch.

    ``fun`` receives a 1-D tensor and returns a scalar tensor. Evaluation runs
    under ``torch.no_grad()``; the engine estimates gradients by finite
    differences and never needs autograd.
    """

    def __init__(
        self,
        fun: Callable[[torch.Tensor], torch.Tensor],
        dim: Optional[int] = None,
        dtype: torch.dtype = torch.float64,
        device: Optional[Union[str, torch.device]] = None,
    ):
        self.fun = fun
        self.dim = dim
        self.dtype = dtype
        self.device = torch.device(device) if device is not None else torch.device("cpu")

    def evaluate(self, x: Array) -> float:
        tensor = torch.as_tensor(np.asarray(x, dtype=float), dtype=self.dtype, device=self.device)
        with torch.no_grad():
            value = self.fun(tensor)
        if isinstance(value, torch.Tensor):
            if value.numel() != 1:
                raise ValueError(
                    f"TorchObjective expects a scalar result, got shape {tuple(value.shape)}"
                )
            return float(value.item())
        return float(value)


__all__ = [
    "Array",
    "FunctionObjective",
    "ObjectiveFunction",
    "ScaledObjective",
    "SubsetObjective",
    "TorchObjective",
    "as_objective",
]
