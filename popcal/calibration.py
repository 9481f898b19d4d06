"""Run one or more searches against a model objective.

A calibration is usually a sequence of searches: a robust but slow pattern
search first, then BFGS to polish the optimum. Each search starts from the
best point of the previous one.
"""

from __future__ import annotations

from dataclasses import replace
from typing import List, Optional, Sequence

import numpy as np

from .config import BFGSConfig, HookeConfig, SearchConfig, WolfeBFGSConfig
from .logging import get_logger
from .objective import Array, ObjectiveFunction, as_objective
from .optimize import (
    Callback,
    CancellationToken,
    SearchReport,
    Termination,
    bfgs,
    bfgs_wolfe,
    hooke_jeeves,
)

logger = get_logger(__name__)


def run_search(
    config: SearchConfig,
    objective: ObjectiveFunction,
    x0: Array,
    lower: Optional[Array] = None,
    upper: Optional[Array] = None,
    callback: Optional[Callback] = None,
    cancel: Optional[CancellationToken] = None,
    seed: Optional[int] = None,
) -> SearchReport:
    """Run the search described by ``config``.

    Bounds only apply to the pattern search; the BFGS variants are
    unconstrained. ``seed`` is used by the pattern search when its
    configuration carries none.

    Raises:
        TypeError: If ``config`` is not one of the known configurations.
    """
    if isinstance(config, HookeConfig):
        if config.seed is None and seed is not None:
            config = replace(config, seed=seed)
        return hooke_jeeves(
            objective,
            x0,
            lower=lower,
            upper=upper,
            callback=callback,
            cancel=cancel,
            **config.search_kwargs(),
        )
    if isinstance(config, BFGSConfig):
        search = bfgs
    elif isinstance(config, WolfeBFGSConfig):
        search = bfgs_wolfe
    else:
        raise TypeError(f"Unsupported search configuration {type(config).__name__}")
    if lower is not None or upper is not None:
        logger.info("Bounds are ignored by the BFGS search")
    return search(objective, x0, callback=callback, cancel=cancel, **config.search_kwargs())


def calibrate(
    objective: ObjectiveFunction,
    x0: Array,
    searches: Sequence[SearchConfig],
    lower: Optional[Array] = None,
    upper: Optional[Array] = None,
    callback: Optional[Callback] = None,
    cancel: Optional[CancellationToken] = None,
    seed: Optional[int] = None,
) -> List[SearchReport]:
    """Run ``searches`` in order, chaining their best points.

    ``callback`` is shared by every search, so a
    :class:`~popcal.io.BestPointStore` keeps the best point of the whole chain.

    The chain stops early after a search ends with ``DEGENERATE`` or
    ``INTERRUPTED``. Returns one report per search that ran.
    """
    if not searches:
        raise ValueError("At least one search configuration is required")
    objective = as_objective(objective)
    x = np.asarray(x0, dtype=float).reshape(-1).copy()
    reports: List[SearchReport] = []
    for index, config in enumerate(searches, start=1):
        logger.info("Running search %d of %d (%s)", index, len(searches), config.method)
        report = run_search(
            config, objective, x, lower, upper, callback=callback, cancel=cancel, seed=seed
        )
        reports.append(report)
        logger.info(
            "Search %s finished with f(x) = %g after %d function evaluations (%s)",
            config.method,
            report.fun,
            report.nfev,
            report.termination.value,
        )
        if report.termination in (Termination.DEGENERATE, Termination.INTERRUPTED):
            break
        x = report.x
    return reports


__all__ = ["calibrate", "run_search"]
