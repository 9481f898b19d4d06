"""Pytest configuration and shared fixtures for popcal tests.

This module provides:
- Deterministic RNG fixtures for numpy and torch
- Small objective functions shared by the search tests
"""

import os

import numpy as np
import pytest
import torch


@pytest.fixture(scope="function")
def rng() -> np.random.Generator:
    """Provide a deterministic numpy RNG for tests.

    Uses seed from TEST_RNG_SEED environment variable (default: 0).
    This ensures tests are reproducible while allowing override for debugging.

    Returns:
        A seeded numpy.random.Generator instance.
    """
    seed = int(os.environ.get("TEST_RNG_SEED", "0"))
    return np.random.default_rng(seed)


@pytest.fixture(scope="function", autouse=True)
def set_random_seeds() -> None:
    """Auto-use fixture to set global random seeds for reproducibility."""
    seed = int(os.environ.get("TEST_RNG_SEED", "0"))
    np.random.seed(seed)
    torch.manual_seed(seed)


class CountingObjective:
    """Plain callable recording every point it scores and the score it returned."""

    def __init__(self, fun):
        self.fun = fun
        self.points = []
        self.scores = []

    def __call__(self, x: np.ndarray) -> float:
        self.points.append(np.array(x, dtype=float))
        score = float(self.fun(x))
        self.scores.append(score)
        return score


@pytest.fixture
def counting():
    """Factory wrapping a function into a :class:`CountingObjective`."""
    return CountingObjective
