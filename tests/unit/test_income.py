from __future__ import annotations

import numpy as np
import pytest

from nestegg.engine.income import (
    GuaranteedIncome,
    LtcEvent,
    annual_ltc_probability,
    claim_adjustment_factor,
    ltc_cost_for_year,
    part_time_income,
    pension_benefit,
    sample_ltc_event,
    social_security_benefit,
    survivor_benefit,
)


@pytest.mark.parametrize(
    ("claim_age", "factor"),
    [(62, 0.70), (64, 0.80), (67, 1.0), (68, 1.08), (70, 1.24), (75, 1.24), (55, 0.70)],
)
def test_claim_adjustment_factor(claim_age: int, factor: float) -> None:
    assert claim_adjustment_factor(claim_age) == pytest.approx(factor, abs=1e-4)


def test_social_security_benefit_starts_at_claim_age() -> None:
    assert social_security_benefit(2_000.0, 67, 66) == 0.0
    assert social_security_benefit(2_000.0, 67, 67) == pytest.approx(24_000.0)
    assert social_security_benefit(2_000.0, 62, 62) == pytest.approx(16_800.0)


def test_social_security_cola_compounds() -> None:
    benefit = social_security_benefit(1_000.0, 67, 70, 0.02)
    assert benefit == pytest.approx(12_000.0 * 1.02**3)
    from_start = social_security_benefit(1_000.0, 67, 70, 0.02, cola_years=10)
    assert from_start == pytest.approx(12_000.0 * 1.02**10)


def test_survivor_keeps_larger_benefit() -> None:
    assert survivor_benefit(10_000.0, 25_000.0) == 25_000.0
    assert survivor_benefit(30_000.0, 25_000.0) == 30_000.0


def test_pension_survivorship_share() -> None:
    assert pension_benefit(1_000.0, started=True, holder_alive=True, survivorship_pct=50.0) == 12_000.0
    assert pension_benefit(1_000.0, started=True, holder_alive=False, survivorship_pct=50.0) == 6_000.0
    assert pension_benefit(1_000.0, started=False, holder_alive=True, survivorship_pct=50.0) == 0.0


def test_part_time_income_stops_at_end_age() -> None:
    assert part_time_income(1_500.0, 66, 70) == 18_000.0
    assert part_time_income(1_500.0, 70, 70) == 0.0
    assert part_time_income(1_500.0, 90, None) == 18_000.0


def test_guaranteed_income_totals() -> None:
    income = GuaranteedIncome(social_security=20_000.0, pension=10_000.0, part_time=5_000.0, other=1_000.0)
    assert income.ordinary == pytest.approx(16_000.0)
    assert income.total == pytest.approx(36_000.0)


def test_ltc_incidence_rises_with_age() -> None:
    rates = [annual_ltc_probability(age) for age in (60, 65, 70, 75, 80, 85, 90, 95, 100)]
    assert rates == sorted(rates)
    assert annual_ltc_probability(82) == pytest.approx(0.035)


def test_ltc_event_fraction_and_cost() -> None:
    event = LtcEvent(onset_age=80, duration=1.5, setting="home_care", annual_cost=100_000.0)
    assert event.fraction_in_year(79) == 0.0
    assert event.fraction_in_year(80) == 1.0
    assert event.fraction_in_year(81) == pytest.approx(0.5)
    assert event.fraction_in_year(82) == 0.0
    assert ltc_cost_for_year(event, 81, 2.0) == pytest.approx(100_000.0)
    insured = ltc_cost_for_year(event, 80, 1.0, insured=True)
    assert insured == pytest.approx(100_000.0 - 200.0 * 365.0)
    assert ltc_cost_for_year(None, 80, 1.0) == 0.0


def test_sample_ltc_event_is_reproducible_and_bounded() -> None:
    ages = list(range(70, 101))
    first = sample_ltc_event(np.random.default_rng(9), ages)
    second = sample_ltc_event(np.random.default_rng(9), ages)
    assert first == second
    events = [sample_ltc_event(np.random.default_rng(seed), ages) for seed in range(200)]
    sampled = [event for event in events if event is not None]
    assert sampled
    for event in sampled:
        assert 0.5 <= event.duration <= 5.0
        assert event.setting in {"home_care", "assisted_living", "nursing_home"}
        assert event.annual_cost >= 0.0
        assert 70 <= event.onset_age <= 100
    assert sample_ltc_event(np.random.default_rng(1), []) is None
