"""Derivative-free and quasi-Newton searches for model calibration.

Example
-------
>>> import numpy as np
>>> from popcal.optimize import hooke_jeeves, bfgs
>>> def bowl(x):
...     return (x[0] - 1.0) ** 2 + (x[1] + 2.0) ** 2 + 1.0
>>> res = hooke_jeeves(bowl, np.array([3.0, 3.0]), epsilon=1e-6)
>>> res.success
True
>>> res = bfgs(bowl, res.x)
>>> round(res.fun, 4)
1.0
"""

from .core import (
    RATHER_SMALL,
    VERY_SMALL,
    Callback,
    CancellationToken,
    SearchReport,
    SearchState,
    Termination,
    check_bounds,
    interrupt_on_sigint,
    is_cancelled,
)
from .hooke import hooke_jeeves
from .line_search import LineSearchResult, backtracking_armijo, wolfe_line_search
from .quasi_newton import BFGS_VARIANTS, bfgs, bfgs_wolfe, validate_gradient_settings
from .utils import (
    cubic_step,
    forward_gradient,
    pivoted_solve,
    quadratic_step,
    smallest_eigenvalue,
    symmetrize,
)

__all__ = [
    "BFGS_VARIANTS",
    "Callback",
    "CancellationToken",
    "LineSearchResult",
    "RATHER_SMALL",
    "SearchReport",
    "SearchState",
    "Termination",
    "VERY_SMALL",
    "backtracking_armijo",
    "bfgs",
    "bfgs_wolfe",
    "check_bounds",
    "cubic_step",
    "forward_gradient",
    "hooke_jeeves",
    "interrupt_on_sigint",
    "is_cancelled",
    "pivoted_solve",
    "quadratic_step",
    "smallest_eigenvalue",
    "symmetrize",
    "validate_gradient_settings",
    "wolfe_line_search",
]
