"""Configuration of the calibration searches.

Each algorithm has a frozen dataclass holding its tuning constants. Options
usually come from a plain-text option file::

    ; optimisation settings
    seed 1234
    [hooke]
    rho      0.5
    lambda   0.0
    epsilon  1e-4
    itermax  2000
    [bfgs]
    beta     0.3
    sigma    0.01
    bfgsiter 10000
    bfgseps  0.01

Keys are case-insensitive and may appear in any order. Unknown keys and sections are
reported as warnings and ignored, so an option file written for a newer
release still runs.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, fields, replace
from pathlib import Path
from typing import Any, ClassVar, Dict, List, Mapping, Optional, Union

from .logging import get_logger
from .optimize.hooke import DEFAULT_SEED
from .optimize.quasi_newton import validate_gradient_settings

logger = get_logger(__name__)

_INT_FIELDS = {"itermax", "bfgsiter", "maxiter", "seed"}


def _coerce(name: str, value: Any) -> Any:
    try:
        if name in _INT_FIELDS:
            if value is None:
                return None
            number = float(value)
            if not number.is_integer():
                raise ValueError
            return int(number)
        return float(value)
    except (TypeError, ValueError):
        raise ValueError(f"Invalid value {value!r} for option '{name}'") from None


class _OptionsMixin:
    """Shared option-parsing behaviour of the search configurations."""

    method: ClassVar[str]
    aliases: ClassVar[Dict[str, str]] = {}

    @classmethod
    def from_options(cls, options: Mapping[str, Any]):
        """Build a configuration from free-form ``key -> value`` pairs."""
        names = {f.name for f in fields(cls)}
        values: Dict[str, Any] = {}
        for key, value in options.items():
            lowered = str(key).strip().lower()
            name = cls.aliases.get(lowered, lowered)
            if name not in names:
                logger.warning("Unknown option '%s' for [%s] ignored", key, cls.method)
                continue
            values[name] = _coerce(name, value)
        return cls(**values)

    def search_kwargs(self) -> Dict[str, Any]:
        """Keyword arguments for the search function."""
        return {f.name: getattr(self, f.name) for f in fields(self)}


@dataclass(frozen=True)
class HookeConfig(_OptionsMixin):
    """Settings of the Hooke and Jeeves pattern search.

    Args:
        rho: Step reduction factor, ``0 < rho < 1``.
        lambda_: Initial step length (``rho`` when not positive).
        epsilon: Stop once the step length is at most ``epsilon``.
        itermax: Maximum number of iterations.
        seed: Seed of the coordinate re-ordering; falls back to the global
            seed of the option file, then to ``DEFAULT_SEED``.
    """

    method: ClassVar[str] = "hooke"
    aliases: ClassVar[Dict[str, str]] = {
        "lambda": "lambda_",
        "hookeiter": "itermax",
        "maxiter": "itermax",
        "hookeeps": "epsilon",
    }

    rho: float = 0.5
    lambda_: float = 0.0
    epsilon: float = 1e-4
    itermax: int = 1000
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        if not (0 < self.rho < 1):
            raise ValueError("rho must lie in (0, 1)")
        if self.epsilon <= 0:
            raise ValueError("epsilon must be positive")
        if self.itermax < 1:
            raise ValueError("itermax must be at least 1")

    def search_kwargs(self) -> Dict[str, Any]:
        kwargs = super().search_kwargs()
        if kwargs["seed"] is None:
            kwargs["seed"] = DEFAULT_SEED
        return kwargs


@dataclass(frozen=True)
class BFGSConfig(_OptionsMixin):
    """Settings of the default BFGS variant (inverse Hessian, Armijo search)."""

    method: ClassVar[str] = "bfgs"
    aliases: ClassVar[Dict[str, str]] = {
        "st": "step",
        "maxiter": "bfgsiter",
        "maxiterations": "bfgsiter",
        "eps": "bfgseps",
    }

    beta: float = 0.3
    sigma: float = 0.01
    step: float = 1.0
    bfgsiter: int = 10000
    bfgseps: float = 0.01
    gradacc: float = 1e-6
    gradstep: float = 0.5
    gradeps: float = 1e-10

    def __post_init__(self) -> None:
        if not (0 < self.beta < 1):
            raise ValueError("beta must lie in (0, 1)")
        if not (0 < self.sigma < 1):
            raise ValueError("sigma must lie in (0, 1)")
        if self.step <= 0:
            raise ValueError("step must be positive")
        validate_gradient_settings(self.bfgsiter, self.bfgseps, self.gradacc, self.gradstep, self.gradeps)


@dataclass(frozen=True)
class WolfeBFGSConfig(_OptionsMixin):
    """Settings of the alternate BFGS variant (Hessian, Wolfe line search)."""

    method: ClassVar[str] = "bfgs-wolfe"
    aliases: ClassVar[Dict[str, str]] = {
        "bfgsiter": "maxiter",
        "maxiterations": "maxiter",
        "bfgseps": "eps",
    }

    rho: float = 0.01
    sigma: float = 0.9
    tau: float = 0.1
    maxiter: int = 10000
    eps: float = 0.01
    gradacc: float = 1e-6
    gradstep: float = 0.5
    gradeps: float = 1e-10

    def __post_init__(self) -> None:
        if not (0 < self.rho < self.sigma < 1):
            raise ValueError("Require 0 < rho < sigma < 1")
        if not (0 < self.tau < 0.5):
            raise ValueError("tau must lie in (0, 0.5)")
        validate_gradient_settings(self.maxiter, self.eps, self.gradacc, self.gradstep, self.gradeps)


SearchConfig = Union[HookeConfig, BFGSConfig, WolfeBFGSConfig]

SECTIONS = {
    "hooke": HookeConfig,
    "bfgs": BFGSConfig,
    "bfgs-wolfe": WolfeBFGSConfig,
}


@dataclass(frozen=True)
class OptInfo:
    """Parsed option file: a global seed and the searches to run in order."""

    seed: Optional[int]
    searches: List[SearchConfig]


_COMMENT = re.compile(r"(;|//).*$")
_SECTION = re.compile(r"^\[\s*([A-Za-z\-_]+)\s*\]$")


def parse_optinfo(text: str) -> OptInfo:
    """Parse the contents of an option file.

    A section for an algorithm this engine does not provide (``[simann]``
    for instance) is reported as a warning and its keys are skipped.

    Raises:
        ValueError: On a line that is not ``key value`` or an invalid value.
    """
    seed: Optional[int] = None
    pending: List[tuple[str, Dict[str, str]]] = []
    skipping = False

    for lineno, raw in enumerate(text.splitlines(), start=1):
        line = _COMMENT.sub("", raw).strip()
        if not line:
            continue
        section = _SECTION.match(line)
        if section:
            name = section.group(1).lower().replace("_", "-")
            skipping = name not in SECTIONS
            if skipping:
                logger.warning("Unknown optimisation section [%s] on line %d ignored", name, lineno)
            else:
                pending.append((name, {}))
            continue
        if skipping:
            continue
        parts = line.split()
        if len(parts) != 2:
            raise ValueError(f"Expected 'key value' on line {lineno}, got {raw.strip()!r}")
        key, value = parts
        if key.lower() == "seed" and not pending:
            seed = _coerce("seed", value)
        elif not pending:
            logger.warning("Option '%s' outside any optimisation section ignored", key)
        else:
            pending[-1][1][key] = value

    searches: List[SearchConfig] = []
    for name, options in pending:
        config = SECTIONS[name].from_options(options)
        if isinstance(config, HookeConfig) and config.seed is None and seed is not None:
            config = replace(config, seed=seed)
        searches.append(config)
    return OptInfo(seed=seed, searches=searches)


def read_optinfo(path: Union[str, Path]) -> OptInfo:
    """Read and parse an option file from ``path``."""
    with open(path, "r", encoding="utf-8") as f:
        return parse_optinfo(f.read())


__all__ = [
    "BFGSConfig",
    "HookeConfig",
    "OptInfo",
    "SECTIONS",
    "SearchConfig",
    "WolfeBFGSConfig",
    "parse_optinfo",
    "read_optinfo",
]
