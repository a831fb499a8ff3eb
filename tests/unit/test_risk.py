from __future__ import annotations

import numpy as np
import pytest

from nestegg.engine.simulation import (
    ScenarioOutcome,
    conditional_value_at_risk,
    max_drawdown,
    risk_metrics,
)
from nestegg.engine.simulation.risk import danger_zone_ages, sequence_risk_score, ulcer_index


def _outcome(
    balances: list[float], returns: list[float], depletion_year: int | None = None
) -> ScenarioOutcome:
    return ScenarioOutcome(
        trial_index=0,
        ending_balance=balances[-1],
        balances=np.asarray(balances, dtype="float64"),
        returns=np.asarray(returns, dtype="float64"),
        depleted=depletion_year is not None,
        depletion_year=depletion_year,
        depletion_age=None if depletion_year is None else 65 + depletion_year,
    )


def test_cvar_averages_worst_tail() -> None:
    values = np.arange(1.0, 101.0)
    assert conditional_value_at_risk(values, 0.95) == pytest.approx(3.0)
    assert conditional_value_at_risk(values, 0.99) == pytest.approx(1.0)
    assert conditional_value_at_risk([5.0, -2.0], 1.0) == -2.0
    assert conditional_value_at_risk([], 0.95) == 0.0


def test_max_drawdown_tracks_running_peak() -> None:
    assert max_drawdown([100.0, 120.0, 60.0, 90.0]) == pytest.approx(-0.5)
    assert max_drawdown([100.0, 110.0, 130.0]) == 0.0
    assert max_drawdown([0.0, 0.0]) == 0.0
    assert max_drawdown([]) == 0.0


def test_ulcer_index_is_rms_drawdown() -> None:
    expected = np.sqrt((0.0 + 0.0 + 0.25 + 0.0625) / 4.0)
    assert ulcer_index([100.0, 120.0, 60.0, 90.0]) == pytest.approx(expected)


def test_sequence_risk_counts_early_losses_of_failures() -> None:
    early_losses = _outcome([90.0, 70.0, 0.0], [-0.1, -0.2, 0.05], depletion_year=2)
    late_losses = _outcome([110.0, 100.0, 0.0], [0.1, 0.05, -0.3], depletion_year=2)
    survivor = _outcome([90.0, 80.0, 85.0], [-0.1, -0.1, 0.05])
    assert sequence_risk_score([early_losses, late_losses, survivor], 0) == pytest.approx(0.5)
    assert sequence_risk_score([survivor], 0) == 0.0


def test_danger_zone_ages_above_threshold() -> None:
    assert danger_zone_ages([0.0, 0.2, 0.25, 0.6], [70, 71, 72, 73]) == (72, 73)


def test_risk_metrics_over_outcomes() -> None:
    outcomes = [
        _outcome([100.0, 50.0, 0.0], [-0.3, -0.2, 0.0], depletion_year=2),
        _outcome([110.0, 120.0, 130.0], [0.1, 0.1, 0.1]),
        _outcome([100.0, 80.0, 90.0], [0.0, -0.2, 0.1]),
    ]
    metrics = risk_metrics(outcomes, [65, 66, 67], retirement_index=0)
    assert metrics.cvar_95 == 0.0
    assert metrics.worst_max_drawdown == pytest.approx(-1.0)
    assert metrics.median_max_drawdown == pytest.approx(-0.2)
    assert metrics.sequence_risk == 1.0
    assert metrics.danger_zone_ages == (67,)
    assert metrics.as_dict()["danger_zone_ages"] == [67]
    with pytest.raises(ValueError):
        risk_metrics([], [65], retirement_index=0)
