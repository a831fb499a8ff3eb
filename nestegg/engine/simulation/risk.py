"""Tail and path risk metrics over a set of trials."""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

import numpy as np

from nestegg.engine.simulation.scenario import ScenarioOutcome

__all__ = [
    "DANGER_ZONE_THRESHOLD",
    "EARLY_RETIREMENT_YEARS",
    "RiskMetrics",
    "conditional_value_at_risk",
    "max_drawdown",
    "ulcer_index",
    "sequence_risk_score",
    "danger_zone_ages",
    "risk_metrics",
]

DANGER_ZONE_THRESHOLD = 0.2
EARLY_RETIREMENT_YEARS = 5
MIN_EARLY_LOSSES = 2


def conditional_value_at_risk(values: Sequence[float] | np.ndarray, alpha: float = 0.95) -> float:
    """Mean of the worst ``1 - alpha`` share of ``values``."""

    data = np.asarray(values, dtype="float64")
    if data.size == 0:
        return 0.0
    # 1 - 0.95 is not exactly 0.05 in binary; round before the ceiling.
    cutoff = int(np.ceil(round((1 - alpha) * data.size, 9)))
    if cutoff <= 0:
        return float(data.min())
    tail = np.sort(data)[:cutoff]
    return float(np.mean(tail))


def _drawdowns(balances: np.ndarray) -> np.ndarray:
    matrix = np.atleast_2d(np.asarray(balances, dtype="float64"))
    peak = np.maximum.accumulate(matrix, axis=1)
    ratio = np.divide(matrix, peak, out=np.ones_like(matrix), where=peak > 0.0)
    return ratio - 1.0


def max_drawdown(balances: Sequence[float] | np.ndarray) -> float:
    """Deepest peak-to-trough fall of a balance path as a non-positive fraction."""

    data = np.asarray(balances, dtype="float64")
    if data.size == 0:
        return 0.0
    return float(_drawdowns(data).min())


def ulcer_index(balances: Sequence[float] | np.ndarray) -> float:
    """Root mean square drawdown of a balance path."""

    data = np.asarray(balances, dtype="float64")
    if data.size == 0:
        return 0.0
    return float(np.sqrt(np.mean(_drawdowns(data) ** 2)))


def sequence_risk_score(outcomes: Sequence[ScenarioOutcome], retirement_index: int) -> float:
    """Share of failed trials with repeated losses early in retirement.

    A failed trial counts when at least two of the first
    :data:`EARLY_RETIREMENT_YEARS` retired years had negative returns.
    """

    start = max(retirement_index, 0)
    failed = [outcome for outcome in outcomes if outcome.depleted]
    if not failed:
        return 0.0
    hits = 0
    for outcome in failed:
        early = outcome.returns[start : start + EARLY_RETIREMENT_YEARS]
        if int(np.sum(early < 0.0)) >= MIN_EARLY_LOSSES:
            hits += 1
    return hits / len(failed)


def danger_zone_ages(
    depleted_share: Sequence[float] | np.ndarray,
    ages: Sequence[int],
    threshold: float = DANGER_ZONE_THRESHOLD,
) -> tuple[int, ...]:
    """Ages at which more than ``threshold`` of the trials are depleted."""

    share = np.asarray(depleted_share, dtype="float64")
    return tuple(int(age) for age, value in zip(ages, share) if value > threshold)


@dataclass(frozen=True)
class RiskMetrics:
    """Tail and drawdown statistics of a Monte Carlo run.

    Attributes:
      cvar_95: Mean ending balance of the worst 5% of trials.
      cvar_99: Mean ending balance of the worst 1% of trials.
      median_max_drawdown: Median over trials of the deepest balance fall.
      worst_max_drawdown: Deepest balance fall of any trial.
      median_ulcer_index: Median over trials of the RMS drawdown.
      sequence_risk: Share of failures preceded by early retirement losses.
      danger_zone_ages: Ages where the depleted share exceeds
        :data:`DANGER_ZONE_THRESHOLD`.
    """

    cvar_95: float
    cvar_99: float
    median_max_drawdown: float
    worst_max_drawdown: float
    median_ulcer_index: float
    sequence_risk: float
    danger_zone_ages: tuple[int, ...] = ()

    def as_dict(self) -> dict[str, Any]:
        return {
            "cvar_95": self.cvar_95,
            "cvar_99": self.cvar_99,
            "median_max_drawdown": self.median_max_drawdown,
            "worst_max_drawdown": self.worst_max_drawdown,
            "median_ulcer_index": self.median_ulcer_index,
            "sequence_risk": self.sequence_risk,
            "danger_zone_ages": list(self.danger_zone_ages),
        }


def risk_metrics(
    outcomes: Sequence[ScenarioOutcome],
    ages: Sequence[int],
    retirement_index: int,
) -> RiskMetrics:
    """Compute :class:`RiskMetrics` for ``outcomes`` aligned with ``ages``."""

    if not outcomes:
        raise ValueError("at least one outcome is required")
    ending = np.array([outcome.ending_balance for outcome in outcomes], dtype="float64")
    matrix = np.vstack([outcome.balances for outcome in outcomes])
    drawdowns = _drawdowns(matrix)
    per_trial_max = drawdowns.min(axis=1)
    per_trial_ulcer = np.sqrt(np.mean(drawdowns**2, axis=1))
    depleted = np.zeros(matrix.shape[1])
    for outcome in outcomes:
        if outcome.depletion_year is not None:
            depleted[outcome.depletion_year :] += 1
    return RiskMetrics(
        cvar_95=conditional_value_at_risk(ending, 0.95),
        cvar_99=conditional_value_at_risk(ending, 0.99),
        median_max_drawdown=float(np.median(per_trial_max)),
        worst_max_drawdown=float(per_trial_max.min()),
        median_ulcer_index=float(np.median(per_trial_ulcer)),
        sequence_risk=sequence_risk_score(outcomes, retirement_index),
        danger_zone_ages=danger_zone_ages(depleted / len(outcomes), ages),
    )
