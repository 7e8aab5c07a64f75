"""Beta-Bernoulli posterior helpers used by the adaptive engine.

Each sub-skill keeps a ``Beta(alpha, beta)`` belief over the user's accuracy.
A correct answer adds one to ``alpha``, an incorrect one adds one to ``beta``.
The closed-form mean and variance below drive both the confidence vector and
the exploration bonus during item selection.
"""
from __future__ import annotations

from dataclasses import dataclass

__all__ = [
    "PosteriorBeta",
    "posterior_mean",
    "posterior_var",
    "beta_update",
]

_DEGENERATE_MEAN = 0.5
_DEGENERATE_VAR = 0.25


@dataclass
class PosteriorBeta:
    alpha: float
    beta: float


def posterior_mean(posterior: PosteriorBeta) -> float:
    """Return ``alpha / (alpha + beta)``.

    Falls back to 0.5 when both parameters are zero, which cannot happen with
    positive priors but keeps the function total.
    """

    total = posterior.alpha + posterior.beta
    return posterior.alpha / total if total else _DEGENERATE_MEAN


def posterior_var(posterior: PosteriorBeta) -> float:
    """Return the Beta variance ``ab / ((a+b)^2 (a+b+1))``."""

    a = posterior.alpha
    b = posterior.beta
    denom = (a + b) ** 2 * (a + b + 1)
    return (a * b) / denom if denom else _DEGENERATE_VAR


def beta_update(posterior: PosteriorBeta, correct: bool) -> None:
    """Fold one Bernoulli observation into ``posterior`` in place."""

    if correct:
        posterior.alpha += 1
    else:
        posterior.beta += 1
