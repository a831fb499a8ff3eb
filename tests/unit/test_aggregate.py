from __future__ import annotations

from typing import Any

import numpy as np
import pytest

from nestegg.engine.errors import SimulationCancelled, ValidationError
from nestegg.engine.markets import cagr_to_aagr
from nestegg.engine.profile import HouseholdProfile
from nestegg.engine.simulation import (
    PERCENTILES,
    MonteCarloAggregator,
    ScenarioRunner,
    SimulationOptions,
    estimate_safe_withdrawal_rate,
    percentile_summary,
    run_monte_carlo,
    yearly_percentile_bands,
)
from nestegg.engine.simulation import swr as swr_module
from nestegg.engine.simulation.swr import success_at_rate


def test_options_validate_ranges() -> None:
    with pytest.raises(ValueError):
        SimulationOptions(trials=0)
    with pytest.raises(ValueError):
        SimulationOptions(batch_size=0)
    with pytest.raises(ValueError):
        SimulationOptions(swr_target=1.5)
    options = SimulationOptions.from_mapping({"trials": "50", "seed": 9, "executor": "thread"})
    assert options.trials == 50
    assert options.resolved_seed() == 9
    assert options.executor == "thread"


def test_percentile_summary_uses_linear_interpolation() -> None:
    summary = percentile_summary([0.0, 10.0, 20.0, 30.0, 40.0])
    assert tuple(summary) == PERCENTILES
    assert summary[10] == pytest.approx(4.0)
    assert summary[50] == pytest.approx(20.0)
    assert summary[90] == pytest.approx(36.0)
    assert percentile_summary([]) == {p: 0.0 for p in PERCENTILES}


def test_yearly_bands_layout() -> None:
    matrix = np.array([[1.0, 2.0, 3.0], [3.0, 4.0, 5.0]])
    bands = yearly_percentile_bands(matrix, [65, 66, 67], 2025)
    assert list(bands.columns) == ["year_index", "year", "age", "p10", "p25", "p50", "p75", "p90", "mean"]
    assert bands["year"].tolist() == [2025, 2026, 2027]
    assert bands["mean"].tolist() == [2.0, 3.0, 4.0]


def test_monte_carlo_summary_is_consistent(base_payload: dict[str, Any]) -> None:
    profile = HouseholdProfile.from_mapping(base_payload)
    result = run_monte_carlo(profile, SimulationOptions(trials=40, seed=7, batch_size=16))
    assert result.trials == 40
    assert 0.0 <= result.probability_of_success <= 1.0
    assert result.successful_trials + result.failed_trials == 40
    values = [result.ending_percentiles[p] for p in PERCENTILES]
    assert values == sorted(values)
    assert result.metadata["seed"] == 7
    assert result.metadata["years"] == 26
    assert result.metadata["version"]
    assert result.metadata["elapsed_ms"] >= 0.0
    assert result.yearly_bands is not None
    assert len(result.yearly_bands) == 26
    assert "depleted_share" in result.yearly_bands.columns
    assert result.yearly_cash_flows is not None
    assert len(result.yearly_cash_flows) == 26
    assert len(result.years_until_depletion) == result.failed_trials
    summary = result.to_summary()
    assert set(summary["ending_percentiles"]) == {"p10", "p25", "p50", "p75", "p90"}


def test_small_runs_carry_statistical_warning(base_payload: dict[str, Any]) -> None:
    profile = HouseholdProfile.from_mapping(base_payload)
    result = run_monte_carlo(
        profile, SimulationOptions(trials=10, seed=1, keep_cash_flows=False)
    )
    assert any("only 10 trials" in str(warning) for warning in result.warnings)
    assert result.yearly_cash_flows is None


def test_same_seed_reproduces_results(base_payload: dict[str, Any]) -> None:
    profile = HouseholdProfile.from_mapping(base_payload)
    options = SimulationOptions(trials=12, seed=99, keep_yearly_bands=False)
    first = run_monte_carlo(profile, options)
    second = run_monte_carlo(profile, options)
    assert first.probability_of_success == second.probability_of_success
    assert first.ending_percentiles == second.ending_percentiles


def test_heavy_withdrawal_fails_quickly() -> None:
    profile = HouseholdProfile.from_mapping(
        {
            "current_age": 65,
            "retirement_age": 65,
            "life_expectancy": 95,
            "current_retirement_assets": 100_000.0,
            "use_guardrails": False,
            "expenses": {"annual_retirement_expenses": 50_000.0},
        }
    )
    result = run_monte_carlo(profile, SimulationOptions(trials=100, seed=3))
    assert result.probability_of_success < 0.5
    assert result.mean_years_until_depletion is not None
    assert result.mean_years_until_depletion < 6


def test_income_only_household_succeeds() -> None:
    profile = HouseholdProfile.from_mapping(
        {
            "current_age": 67,
            "retirement_age": 67,
            "life_expectancy": 90,
            "income": {"social_security_benefit": 4_000.0, "social_security_claim_age": 67},
            "expenses": {"annual_retirement_expenses": 30_000.0},
            "market": {"inflation_rate": 0.02},
        }
    )
    result = run_monte_carlo(profile, SimulationOptions(trials=20, seed=5))
    assert result.probability_of_success == 1.0
    assert result.median_ending_balance == 0.0
    assert result.years_until_depletion == ()


def test_invalid_profile_runs_no_trials(base_payload: dict[str, Any]) -> None:
    profile = HouseholdProfile.from_mapping(dict(base_payload, tax_rate=0.9))
    with pytest.raises(ValidationError):
        run_monte_carlo(profile, SimulationOptions(trials=5, seed=1))


def test_cancelled_aggregator_raises(base_payload: dict[str, Any]) -> None:
    aggregator = MonteCarloAggregator(HouseholdProfile.from_mapping(base_payload))
    aggregator.cancel()
    with pytest.raises(SimulationCancelled):
        aggregator.run(SimulationOptions(trials=5, seed=1))
    result = aggregator.run(SimulationOptions(trials=5, seed=1, keep_cash_flows=False))
    assert result.trials == 5


def test_antithetic_pairs_mirror_shocks(base_payload: dict[str, Any]) -> None:
    profile = HouseholdProfile.from_mapping(base_payload)
    runner = ScenarioRunner(profile, master_seed=17, antithetic=True)
    even, _, even_mirrored = runner.draw_returns(4)
    odd, _, odd_mirrored = runner.draw_returns(5)
    assert not even_mirrored
    assert odd_mirrored
    centre = 2.0 * (np.log1p(cagr_to_aagr(0.06, 0.12)) - 0.12**2 / 2.0)
    np.testing.assert_allclose(np.log1p(even.returns) + np.log1p(odd.returns), centre)

    result = run_monte_carlo(
        profile, SimulationOptions(trials=10, seed=17, antithetic=True, keep_cash_flows=False)
    )
    assert result.metadata["antithetic"] is True


def test_safe_withdrawal_rate_is_bounded(base_payload: dict[str, Any]) -> None:
    profile = HouseholdProfile.from_mapping(base_payload)
    rate = estimate_safe_withdrawal_rate(profile, seed=4, trials=30)
    assert 0.0 <= rate <= 0.15
    stricter = estimate_safe_withdrawal_rate(profile, seed=4, trials=30, target=0.95)
    assert stricter <= rate
    with pytest.raises(ValueError):
        estimate_safe_withdrawal_rate(profile, seed=4, trials=0)
    with pytest.raises(ValueError):
        estimate_safe_withdrawal_rate(profile, seed=4, trials=10, low=0.1, high=0.05)


def test_run_reports_estimated_rate(base_payload: dict[str, Any]) -> None:
    profile = HouseholdProfile.from_mapping(base_payload)
    result = run_monte_carlo(
        profile,
        SimulationOptions(
            trials=20,
            seed=4,
            estimate_safe_withdrawal_rate=True,
            swr_trials=20,
            keep_yearly_bands=False,
            keep_cash_flows=False,
        ),
    )
    expected = estimate_safe_withdrawal_rate(profile, seed=4, trials=20)
    assert result.safe_withdrawal_rate == pytest.approx(expected)


def test_safe_withdrawal_rate_lands_on_tolerance_grid(
    base_payload: dict[str, Any], monkeypatch: pytest.MonkeyPatch
) -> None:
    profile = HouseholdProfile.from_mapping(base_payload)
    calls: list[tuple[float, float]] = []
    brentq = swr_module.optimize.brentq

    def spy(f: Any, a: float, b: float, **kwargs: Any) -> float:
        calls.append((a, b))
        return brentq(f, a, b, **kwargs)

    monkeypatch.setattr(swr_module.optimize, "brentq", spy)
    tolerance = 0.001
    rate = estimate_safe_withdrawal_rate(
        profile, seed=9, trials=25, target=0.8, tolerance=tolerance
    )
    steps = round(rate / tolerance)
    assert rate == pytest.approx(steps * tolerance, abs=1e-12)
    if 0.0 < rate < 0.15:
        assert calls == [(0.0, 0.15)]
        assert success_at_rate(profile, rate, seed=9, trials=25) >= 0.8
        assert success_at_rate(profile, (steps + 1) * tolerance, seed=9, trials=25) < 0.8
    with pytest.raises(ValueError):
        estimate_safe_withdrawal_rate(profile, seed=9, trials=10, tolerance=0.0)


def test_result_carries_risk_metrics(base_payload: dict[str, Any]) -> None:
    profile = HouseholdProfile.from_mapping(base_payload)
    result = run_monte_carlo(profile, SimulationOptions(trials=40, seed=6, keep_cash_flows=False))
    assert result.risk is not None
    assert result.risk.cvar_99 <= result.risk.cvar_95
    assert result.risk.worst_max_drawdown <= result.risk.median_max_drawdown <= 0.0
    assert 0.0 <= result.risk.sequence_risk <= 1.0
    summary = result.to_summary()
    assert summary["risk"]["cvar_95"] == pytest.approx(result.risk.cvar_95)
    assert isinstance(summary["risk"]["danger_zone_ages"], list)
