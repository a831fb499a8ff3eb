"""Markov market-regime model used to express sequence-of-returns risk."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass, field

import numpy as np

__all__ = [
    "MarketRegime",
    "RegimeModel",
    "DEFAULT_REGIMES",
    "DEFAULT_TRANSITIONS",
    "DEFAULT_INITIAL_PROBABILITIES",
    "default_regime_model",
]


@dataclass(frozen=True)
class MarketRegime:
    """Return characteristics of a single regime.

    Attributes:
      name: Label reported in yearly cash flows.
      mean: Arithmetic mean equity return while the regime holds.
      volatility: Equity volatility while the regime holds.
    """

    name: str
    mean: float
    volatility: float


DEFAULT_REGIMES: tuple[MarketRegime, ...] = (
    MarketRegime("bull", 0.14, 0.12),
    MarketRegime("normal", 0.07, 0.16),
    MarketRegime("bear", -0.12, 0.25),
    MarketRegime("crisis", -0.35, 0.45),
)

# Rows: current regime, columns: next regime (bull, normal, bear, crisis).
DEFAULT_TRANSITIONS: tuple[tuple[float, ...], ...] = (
    (0.70, 0.20, 0.08, 0.02),
    (0.25, 0.50, 0.20, 0.05),
    (0.20, 0.40, 0.30, 0.10),
    (0.05, 0.25, 0.60, 0.10),
)
DEFAULT_INITIAL_PROBABILITIES: tuple[float, ...] = (0.30, 0.50, 0.15, 0.05)


@dataclass(frozen=True)
class RegimeModel:
    """Regime-switching chain with a stressed window around retirement.

    Attributes:
      regimes: Ordered regimes; one of them must be named ``normal``.
      transitions: Row-stochastic transition matrix.
      initial: Probabilities of the first simulated year.
      stressed_regimes: Regimes whose probabilities are inflated inside the
        sequence-risk window.
      sequence_risk_multiplier: Factor applied to stressed probabilities
        before renormalising.
    """

    regimes: tuple[MarketRegime, ...] = DEFAULT_REGIMES
    transitions: tuple[tuple[float, ...], ...] = DEFAULT_TRANSITIONS
    initial: tuple[float, ...] = DEFAULT_INITIAL_PROBABILITIES
    stressed_regimes: tuple[str, ...] = ("bear", "crisis")
    sequence_risk_multiplier: float = 1.5
    _matrix: np.ndarray = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        matrix = np.asarray(self.transitions, dtype="float64")
        size = len(self.regimes)
        if matrix.shape != (size, size):
            raise ValueError("transition matrix must be square and match the regimes")
        if np.any(matrix < 0.0) or not np.allclose(matrix.sum(axis=1), 1.0):
            raise ValueError("transition rows must be non-negative and sum to 1")
        if len(self.initial) != size or not np.isclose(sum(self.initial), 1.0):
            raise ValueError("initial probabilities must match the regimes and sum to 1")
        if "normal" not in self.names:
            raise ValueError("regime model requires a 'normal' regime")
        object.__setattr__(self, "_matrix", matrix)

    @property
    def names(self) -> tuple[str, ...]:
        return tuple(regime.name for regime in self.regimes)

    @property
    def baseline(self) -> MarketRegime:
        return self.regimes[self.names.index("normal")]

    def _stress(self, probabilities: np.ndarray) -> np.ndarray:
        stressed = probabilities.copy()
        for idx, name in enumerate(self.names):
            if name in self.stressed_regimes:
                stressed[idx] *= self.sequence_risk_multiplier
        return stressed / stressed.sum()

    def probabilities(self, current: int | None, stressed: bool) -> np.ndarray:
        """Return next-year probabilities given the current regime index."""

        if current is None:
            base = np.asarray(self.initial, dtype="float64")
        else:
            base = self._matrix[current]
        return self._stress(base) if stressed else base

    def sample_path(self, uniforms: Sequence[float], stressed: Sequence[bool]) -> np.ndarray:
        """Map uniforms onto a regime index path.

        Args:
          uniforms: One uniform draw per simulated year.
          stressed: Flags marking years inside the sequence-risk window.

        Returns:
          Integer array with the regime index of every year.
        """

        path = np.empty(len(uniforms), dtype=int)
        current: int | None = None
        for year, (u, stress) in enumerate(zip(uniforms, stressed, strict=True)):
            cumulative = np.cumsum(self.probabilities(current, bool(stress)))
            current = int(min(np.searchsorted(cumulative, u, side="right"), len(cumulative) - 1))
            path[year] = current
        return path


def default_regime_model(sequence_risk_multiplier: float = 1.5) -> RegimeModel:
    """Return the four-regime model with the given sequence-risk multiplier."""

    return RegimeModel(sequence_risk_multiplier=sequence_risk_multiplier)
