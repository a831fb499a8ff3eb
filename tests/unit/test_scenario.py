from __future__ import annotations

from typing import Any

import numpy as np
import pytest

from nestegg.engine.errors import ComputationError
from nestegg.engine.profile import HouseholdProfile
from nestegg.engine.simulation import ScenarioRunner, run_scenario
from nestegg.engine.simulation.scenario import CONSERVATION_TOLERANCE
from nestegg.engine.withdrawals import AssetBuckets


def _deterministic_payload(
    principal: float, expenses: float, rate: float, **overrides: Any
) -> dict[str, Any]:
    payload: dict[str, Any] = {
        "current_age": 65,
        "retirement_age": 65,
        "life_expectancy": 70,
        "tax_method": "flat",
        "tax_rate": 0.0,
        "use_guardrails": False,
        "assets": {"tax_free": principal},
        "expenses": {"annual_retirement_expenses": expenses, "annual_healthcare_costs": 0.0},
        "market": {"expected_return": rate, "return_volatility": 0.0, "inflation_rate": 0.0},
    }
    payload.update(overrides)
    return payload


def test_zero_volatility_matches_annuity_formula() -> None:
    principal, spending, rate = 1_000_000.0, 60_000.0, 0.05
    profile = HouseholdProfile.from_mapping(_deterministic_payload(principal, spending, rate))
    outcome = run_scenario(profile, seed=3)
    years = 6
    growth = (1.0 + rate) ** years
    expected = principal * growth - spending * (growth - 1.0) / rate
    assert len(outcome.balances) == years
    assert outcome.ending_balance == pytest.approx(expected, rel=1e-9)
    assert outcome.success


def test_depletion_is_reported_with_year_and_age() -> None:
    profile = HouseholdProfile.from_mapping(_deterministic_payload(100_000.0, 60_000.0, 0.05))
    outcome = run_scenario(profile, seed=3)
    assert outcome.depleted
    assert outcome.depletion_year == 1
    assert outcome.depletion_age == 66
    assert outcome.ending_balance == 0.0
    assert outcome.cash_flows is not None
    assert outcome.cash_flows[1].depleted


def test_contributions_accumulate_before_retirement() -> None:
    payload = _deterministic_payload(
        100_000.0,
        0.0,
        0.0,
        current_age=60,
        contributions={"annual_savings": 10_000.0},
    )
    outcome = run_scenario(HouseholdProfile.from_mapping(payload), seed=1)
    # Five saving years (60-64) before retirement at 65.
    assert outcome.balances[4] == pytest.approx(150_000.0)
    assert outcome.ending_balance == pytest.approx(150_000.0)
    assert outcome.cash_flows is not None
    assert outcome.cash_flows[0].contributions == pytest.approx(10_000.0)
    assert not outcome.cash_flows[0].retired
    assert outcome.cash_flows[5].retired


def test_trials_are_deterministic(base_payload: dict[str, Any]) -> None:
    profile = HouseholdProfile.from_mapping(base_payload)
    runner = ScenarioRunner(profile, master_seed=11)
    first = runner.run(4, keep_cash_flows=True)
    second = ScenarioRunner(profile, master_seed=11).run(4, keep_cash_flows=True)
    other = runner.run(5)
    np.testing.assert_array_equal(first.balances, second.balances)
    assert first.cash_flows == second.cash_flows
    assert not np.array_equal(first.balances, other.balances)
    assert other.cash_flows is None


def test_yearly_balances_are_conserved(base_payload: dict[str, Any]) -> None:
    profile = HouseholdProfile.from_mapping(base_payload)
    outcome = run_scenario(profile, seed=21)
    assert outcome.cash_flows is not None
    previous = profile.total_assets
    for flow in outcome.cash_flows:
        spent = flow.withdrawal - flow.reinvested
        expected = previous * (1.0 + flow.portfolio_return) + flow.contributions - spent
        assert flow.balance == pytest.approx(expected, rel=1e-9, abs=1e-6)
        assert all(value >= 0.0 for value in flow.buckets.values())
        previous = flow.balance


def test_cash_flow_records_are_flat(base_payload: dict[str, Any]) -> None:
    outcome = run_scenario(HouseholdProfile.from_mapping(base_payload), seed=2)
    assert outcome.cash_flows is not None
    record = outcome.cash_flows[0].as_record()
    assert record["year"] == 2025
    assert record["age"] == 65
    assert "withdrawal_tax_deferred" in record
    assert "balance_cash_equivalents" in record


def test_survivor_phase_after_first_death(couple_payload: dict[str, Any]) -> None:
    payload = dict(
        couple_payload,
        use_guardrails=False,
        expenses=dict(couple_payload["expenses"], survivor_expense_ratio=0.7),
        market={"expected_return": 0.05, "return_volatility": 0.0, "inflation_rate": 0.0},
        income=dict(couple_payload["income"], social_security_cola=0.0),
    )
    profile = HouseholdProfile.from_mapping(payload)
    outcome = run_scenario(profile, seed=5)
    assert outcome.cash_flows is not None
    flows = {flow.age: flow for flow in outcome.cash_flows}

    both = flows[84]
    assert not both.survivor
    assert both.core_expenses == pytest.approx(52_000.0)
    assert both.social_security == pytest.approx(2_800.0 * 12 * 1.24 + 1_500.0 * 12)
    assert both.pension == pytest.approx(14_400.0)

    widowed = flows[86]
    assert widowed.survivor
    assert widowed.spouse_age == 84
    assert widowed.core_expenses == pytest.approx(52_000.0 * 0.7)
    # The survivor keeps the larger of the two benefits.
    assert widowed.social_security == pytest.approx(2_800.0 * 12 * 1.24)
    assert widowed.pension == pytest.approx(7_200.0)
    assert widowed.guaranteed_income == pytest.approx(widowed.social_security + 7_200.0)
    assert max(flows) == 94


def test_guardrails_fire_after_crash() -> None:
    payload = _deterministic_payload(
        1_000_000.0,
        50_000.0,
        -0.3,
        use_guardrails=True,
        life_expectancy=68,
    )
    outcome = run_scenario(HouseholdProfile.from_mapping(payload), seed=1)
    assert outcome.guardrail_events
    year_index, rule = outcome.guardrail_events[0]
    assert year_index == 1
    assert rule == "capital_preservation"
    assert outcome.cash_flows is not None
    assert outcome.cash_flows[1].core_expenses == pytest.approx(45_000.0)


def test_withdrawal_rate_override_spends_fixed_share() -> None:
    payload = _deterministic_payload(1_000_000.0, 10_000.0, 0.0, use_guardrails=True)
    profile = HouseholdProfile.from_mapping(payload)
    runner = ScenarioRunner(profile, master_seed=1, withdrawal_rate_override=0.05)
    outcome = runner.run(0, keep_cash_flows=True)
    assert outcome.cash_flows is not None
    assert all(flow.withdrawal == pytest.approx(50_000.0) for flow in outcome.cash_flows)
    assert outcome.ending_balance == pytest.approx(700_000.0)
    assert not outcome.guardrail_events


def test_guardrail_spending_path_ignores_starting_wealth(base_payload: dict[str, Any]) -> None:
    payload = dict(base_payload, use_guardrails=True, state="CA")
    poorer = HouseholdProfile.from_mapping(payload)
    richer = poorer.with_buckets(
        AssetBuckets(
            tax_deferred=poorer.buckets.tax_deferred,
            tax_free=poorer.buckets.tax_free + 750_000.0,
            capital_gains=poorer.buckets.capital_gains,
            cash_equivalents=poorer.buckets.cash_equivalents,
        )
    )
    for trial in range(6):
        low = ScenarioRunner(poorer, master_seed=17).run(trial, keep_cash_flows=True)
        high = ScenarioRunner(richer, master_seed=17).run(trial, keep_cash_flows=True)
        assert low.cash_flows is not None and high.cash_flows is not None
        assert high.guardrail_events == low.guardrail_events
        assert [flow.core_expenses for flow in high.cash_flows] == [
            flow.core_expenses for flow in low.cash_flows
        ]
        assert high.success or not low.success


def test_conservation_tolerance_is_absolute() -> None:
    profile = HouseholdProfile.from_mapping(_deterministic_payload(1_000_000.0, 0.0, 0.0))
    runner = ScenarioRunner(profile, master_seed=1)
    drift = 10 * CONSERVATION_TOLERANCE
    runner._check_conservation(
        0, 1_000_000.0, 0.0, 0.0, 0.0, AssetBuckets(tax_free=1_000_000.0 + drift / 100)
    )
    with pytest.raises(ComputationError):
        runner._check_conservation(
            0, 1_000_000.0, 0.0, 0.0, 0.0, AssetBuckets(tax_free=1_000_000.0 + drift)
        )


def test_income_without_spouse(base_payload: dict[str, Any]) -> None:
    runner = ScenarioRunner(HouseholdProfile.from_mapping(base_payload), master_seed=1)
    income = runner._income(3, 68, None, True, False, 1.0)
    assert income.social_security > 0.0
    assert runner._income(3, 68, None, False, False, 1.0).social_security == 0.0
