from __future__ import annotations

from typing import Any

import pytest

try:
    from hypothesis import given, settings
    from hypothesis import strategies as st
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    pytest.skip("Requires the hypothesis library", allow_module_level=True)

from nestegg.engine.profile import HouseholdProfile
from nestegg.engine.simulation import ScenarioRunner
from nestegg.engine.withdrawals import AssetBuckets


def _profile(tax_free: float, cash: float, expenses: float) -> HouseholdProfile:
    payload: dict[str, Any] = {
        "current_age": 65,
        "retirement_age": 65,
        "life_expectancy": 85,
        "tax_method": "flat",
        "tax_rate": 0.2,
        "use_guardrails": False,
        "assets": {"tax_free": tax_free, "cash_equivalents": cash},
        "expenses": {"annual_retirement_expenses": expenses, "annual_healthcare_costs": 0.0},
    }
    return HouseholdProfile.from_mapping(payload)


@settings(deadline=None, max_examples=20)
@given(
    tax_free=st.floats(min_value=0.0, max_value=2_000_000.0),
    cash=st.floats(min_value=0.0, max_value=200_000.0),
    extra=st.floats(min_value=1.0, max_value=1_000_000.0),
    expenses=st.floats(min_value=10_000.0, max_value=150_000.0),
    seed=st.integers(min_value=0, max_value=10_000),
    trial=st.integers(min_value=0, max_value=50),
)
def test_more_assets_never_hurt(
    tax_free: float, cash: float, extra: float, expenses: float, seed: int, trial: int
) -> None:
    base = _profile(tax_free, cash, expenses)
    richer_profile = base.with_buckets(
        AssetBuckets(tax_free=tax_free + extra, cash_equivalents=cash)
    )
    poorer = ScenarioRunner(base, master_seed=seed).run(trial)
    richer = ScenarioRunner(richer_profile, master_seed=seed).run(trial)
    assert richer.ending_balance >= poorer.ending_balance - 1e-6
    assert richer.success or not poorer.success
    if poorer.depleted and richer.depleted:
        assert richer.depletion_year is not None and poorer.depletion_year is not None
        assert richer.depletion_year >= poorer.depletion_year


def _bracket_profile(deferred: float, taxable: float, expenses: float) -> HouseholdProfile:
    payload: dict[str, Any] = {
        "current_age": 63,
        "retirement_age": 65,
        "life_expectancy": 88,
        "filing_status": "single",
        "state": "CA",
        "tax_method": "brackets",
        "use_guardrails": True,
        "income": {"social_security_benefit": 1_800.0, "social_security_claim_age": 67},
        "assets": {"tax_deferred": deferred, "capital_gains": taxable},
        "expenses": {"annual_retirement_expenses": expenses, "annual_healthcare_costs": 6_000.0},
    }
    return HouseholdProfile.from_mapping(payload)


@settings(deadline=None, max_examples=20)
@given(
    deferred=st.floats(min_value=0.0, max_value=1_500_000.0),
    taxable=st.floats(min_value=0.0, max_value=600_000.0),
    extra=st.floats(min_value=1.0, max_value=1_000_000.0),
    expenses=st.floats(min_value=20_000.0, max_value=120_000.0),
    seed=st.integers(min_value=0, max_value=10_000),
    trial=st.integers(min_value=0, max_value=50),
)
def test_more_assets_never_hurt_with_guardrails_and_brackets(
    deferred: float, taxable: float, extra: float, expenses: float, seed: int, trial: int
) -> None:
    base = _bracket_profile(deferred, taxable, expenses)
    richer_profile = base.with_buckets(
        AssetBuckets(tax_deferred=deferred, tax_free=extra, capital_gains=taxable)
    )
    poorer = ScenarioRunner(base, master_seed=seed).run(trial)
    richer = ScenarioRunner(richer_profile, master_seed=seed).run(trial)
    assert richer.guardrail_events == poorer.guardrail_events
    assert richer.ending_balance >= poorer.ending_balance - 1e-6
    assert richer.success or not poorer.success
    if poorer.depleted and richer.depleted:
        assert richer.depletion_year is not None and poorer.depletion_year is not None
        assert richer.depletion_year >= poorer.depletion_year
