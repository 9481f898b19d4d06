"""Persistence of the best point found by a calibration.

The only state worth keeping between runs is the best parameter vector: a
later calibration resumes from it. The file is a small JSON document::

    {
        "version": "popcal-best-1.0",
        "score": 1234.5,
        "nfev": 812,
        "parameters": [
            {"name": "growth.k", "value": 0.21},
            ...
        ]
    }

Values are stored in model (unscaled) coordinates.

The starting point of a calibration comes from a parameter table, one line
per model parameter::

    ; growth model
    switch       value   lower   upper   optimise
    growth.linf  150     50      300     1
    growth.k     0.1     0.01    1       1
    growth.t0    0       -1      1       0

Only parameters with a non-zero ``optimise`` flag are searched; the others
keep their value.
"""

from __future__ import annotations

import json
import math
from dataclasses import dataclass, replace
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Sequence, Union

import numpy as np

from .logging import get_logger
from .objective import Array, ObjectiveFunction, ScaledObjective, SubsetObjective

logger = get_logger(__name__)

FORMAT_VERSION = "popcal-best-1.0"

PathLike = Union[str, Path]


def best_point_to_json(
    x: Array,
    fun: float,
    names: Optional[Sequence[str]] = None,
    nfev: Optional[int] = None,
) -> dict:
    """Build the JSON document for a best point."""
    values = np.asarray(x, dtype=float).reshape(-1)
    if names is None:
        names = [f"x{i}" for i in range(values.size)]
    if len(names) != values.size:
        raise ValueError(f"Got {len(names)} names for {values.size} parameters")
    result: Dict[str, Any] = {
        "version": FORMAT_VERSION,
        "score": float(fun) if math.isfinite(fun) else None,
        "parameters": [
            {"name": str(name), "value": float(value)} for name, value in zip(names, values)
        ],
    }
    if nfev is not None:
        result["nfev"] = int(nfev)
    return result


def validate_best_point(obj: dict) -> None:
    """Check the structure of a best-point document.

    Raises:
        ValueError: If the object does not follow the format.
    """
    if not isinstance(obj, dict):
        raise ValueError("Best-point document must be a dictionary object.")
    if obj.get("version") != FORMAT_VERSION:
        raise ValueError(f"Unsupported best-point version {obj.get('version')!r}.")
    params = obj.get("parameters")
    if not isinstance(params, list) or not params:
        raise ValueError("Field 'parameters' must be a non-empty list.")
    for i, entry in enumerate(params):
        if not isinstance(entry, dict) or "name" not in entry or "value" not in entry:
            raise ValueError(f"Parameter entry {i} must have 'name' and 'value'.")
        if not isinstance(entry["value"], (int, float)) or isinstance(entry["value"], bool):
            raise ValueError(f"Parameter '{entry['name']}' has a non-numeric value.")
    score = obj.get("score")
    if score is not None and not isinstance(score, (int, float)):
        raise ValueError("Field 'score' must be a number or null.")


def write_best_point(
    path: PathLike,
    x: Array,
    fun: float,
    names: Optional[Sequence[str]] = None,
    nfev: Optional[int] = None,
) -> None:
    """Write a best point to ``path`` as JSON."""
    obj = best_point_to_json(x, fun, names=names, nfev=nfev)
    with open(path, "w", encoding="utf-8") as f:
        json.dump(obj, f, indent=2, ensure_ascii=False)


def read_best_point(path: PathLike) -> tuple[List[str], Array, float]:
    """Read ``(names, values, score)`` back from a best-point file.

    A missing score is returned as ``inf``.

    Raises:
        ValueError: If the file is not a valid best-point document.
        FileNotFoundError: If the file does not exist.
    """
    with open(path, "r", encoding="utf-8") as f:
        try:
            obj = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in best-point file {path}: {e}") from e
    validate_best_point(obj)
    names = [str(entry["name"]) for entry in obj["parameters"]]
    values = np.array([float(entry["value"]) for entry in obj["parameters"]])
    score = obj.get("score")
    return names, values, math.inf if score is None else float(score)


PARAMETER_COLUMNS = ("switch", "value", "lower", "upper", "optimise")

_COMMENT_MARKERS = (";", "//")


@dataclass(frozen=True, eq=False)
class ParameterTable:
    """Model parameters with their bounds and optimise flags.

    Raises:
        ValueError: If a value lies outside its bounds, a lower bound exceeds
            its upper bound, a name is repeated, or the columns differ in
            length.
    """

    names: List[str]
    values: Array
    lower: Array
    upper: Array
    optimise: Array

    def __post_init__(self) -> None:
        n = len(self.names)
        for field_name in ("values", "lower", "upper"):
            column = np.asarray(getattr(self, field_name), dtype=float).reshape(-1)
            if column.size != n:
                raise ValueError(f"Column '{field_name}' has {column.size} entries for {n} parameters")
            object.__setattr__(self, field_name, column)
        flags = np.asarray(self.optimise, dtype=bool).reshape(-1)
        if flags.size != n:
            raise ValueError(f"Column 'optimise' has {flags.size} entries for {n} parameters")
        object.__setattr__(self, "optimise", flags)
        object.__setattr__(self, "names", [str(name) for name in self.names])

        if n == 0:
            raise ValueError("Parameter table is empty")
        if len(set(self.names)) != n:
            raise ValueError("Parameter names must be unique")
        for name, value, lo, hi in zip(self.names, self.values, self.lower, self.upper):
            if hi < lo:
                raise ValueError(f"Upper bound lower than lower bound for parameter {name}")
            if value < lo or value > hi:
                raise ValueError(f"Initial value outside bounds for parameter {name}")
            if lo < 0.0 < hi:
                logger.warning("Bounds span zero for parameter %s", name)

    def __len__(self) -> int:
        return len(self.names)

    @property
    def free_names(self) -> List[str]:
        return [name for name, flag in zip(self.names, self.optimise) if flag]

    def with_values(self, values: Array) -> "ParameterTable":
        """Copy of the table holding ``values`` (for example a best point).

        The copy is validated again, so values outside the bounds raise
        ``ValueError``.
        """
        return replace(self, values=np.asarray(values, dtype=float).copy())

    def scaled_problem(
        self, model: Union[ObjectiveFunction, Callable[[Array], float]]
    ) -> tuple[ScaledObjective, Array, Array, Array]:
        """Objective, start and bounds of the search over the flagged parameters.

        The objective evaluates ``model`` on the full parameter vector. The
        search runs in scaled coordinates, so the start is one for every
        parameter whose value is not zero.
        """
        subset = SubsetObjective(model, self.values, self.optimise)
        objective = ScaledObjective(subset, subset.reduced_point(self.values))
        lower, upper = objective.scale_bounds(*subset.reduce_bounds(self.lower, self.upper))
        return objective, objective.scale_point(subset.reduced_point(self.values)), lower, upper


def _strip_comment(line: str) -> str:
    for marker in _COMMENT_MARKERS:
        index = line.find(marker)
        if index >= 0:
            line = line[:index]
    return line.strip()


def parse_parameter_table(text: str) -> ParameterTable:
    """Parse the contents of a parameter file.

    Each line holds ``switch value lower upper optimise``; an optional header
    line naming the columns is skipped.

    Raises:
        ValueError: On a malformed line or an invalid table.
    """
    names: List[str] = []
    rows: List[tuple[float, float, float, bool]] = []
    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = _strip_comment(raw)
        if not line:
            continue
        parts = line.split()
        if parts[0].lower() == PARAMETER_COLUMNS[0] and not names:
            continue
        if len(parts) != len(PARAMETER_COLUMNS):
            raise ValueError(
                f"Expected 'switch value lower upper optimise' on line {lineno}, got {raw.strip()!r}"
            )
        try:
            value, lo, hi = (float(part) for part in parts[1:4])
            flag = int(parts[4])
        except ValueError:
            raise ValueError(f"Invalid number on line {lineno}: {raw.strip()!r}") from None
        if flag not in (0, 1):
            raise ValueError(f"Optimise flag must be 0 or 1 on line {lineno}, got {flag}")
        names.append(parts[0])
        rows.append((value, lo, hi, bool(flag)))

    columns = list(zip(*rows)) if rows else [(), (), (), ()]
    return ParameterTable(names, columns[0], columns[1], columns[2], columns[3])


def read_parameter_table(path: PathLike) -> ParameterTable:
    """Read and parse a parameter file from ``path``."""
    with open(path, "r", encoding="utf-8") as f:
        return parse_parameter_table(f.read())


def write_parameter_table(path: PathLike, table: ParameterTable) -> None:
    """Write ``table`` in the format read by :func:`read_parameter_table`."""
    width = max(len(PARAMETER_COLUMNS[0]), *(len(name) for name in table.names))
    lines = [" ".join([PARAMETER_COLUMNS[0].ljust(width), *PARAMETER_COLUMNS[1:]])]
    for name, value, lo, hi, flag in zip(
        table.names, table.values, table.lower, table.upper, table.optimise
    ):
        lines.append(f"{name.ljust(width)} {float(value)!r} {float(lo)!r} {float(hi)!r} {int(flag)}")
    with open(path, "w", encoding="utf-8") as f:
        f.write("\n".join(lines) + "\n")


class BestPointStore:
    """Improvement callback keeping (and optionally persisting) the best point.

    Pass an instance as ``callback`` to any search. When ``objective`` is
    given, the points handed over by the engine are converted back to model
    values (``objective.model_point``) before they are stored, which undoes a
    :class:`ScaledObjective` and fills in the fixed parameters of a
    :class:`SubsetObjective`.
    """

    def __init__(
        self,
        path: Optional[PathLike] = None,
        names: Optional[Sequence[str]] = None,
        objective: Optional[ObjectiveFunction] = None,
    ):
        self.path = Path(path) if path is not None else None
        self.names = list(names) if names is not None else None
        self.objective = objective
        self.x: Optional[Array] = None
        self.fun = math.inf
        self.nfev = 0
        self.updates = 0

    def __call__(self, x: Array, fun: float, nfev: int) -> None:
        if not fun < self.fun:
            # overall best across chained searches
            return
        values = np.asarray(x, dtype=float).copy()
        if self.objective is not None:
            values = self.objective.model_point(values)
        self.x = values
        self.fun = float(fun)
        self.nfev = int(nfev)
        self.updates += 1
        if self.path is not None:
            write_best_point(self.path, values, fun, names=self.names, nfev=nfev)
        logger.debug("Stored new best point, f(x) = %g after %d evaluations", fun, nfev)


__all__ = [
    "BestPointStore",
    "FORMAT_VERSION",
    "PARAMETER_COLUMNS",
    "ParameterTable",
    "best_point_to_json",
    "parse_parameter_table",
    "read_best_point",
    "read_parameter_table",
    "validate_best_point",
    "write_best_point",
    "write_parameter_table",
]
