from __future__ import annotations

from pathlib import Path
from typing import Any

import pytest

from nestegg.engine.errors import ValidationError
from nestegg.engine.profile import HouseholdProfile, load_profile
from nestegg.engine.utils.io import write_yaml


def test_from_mapping_applies_fallbacks() -> None:
    profile = HouseholdProfile.from_mapping(
        {"current_age": 60, "retirement_age": 65, "life_expectancy": 90}
    )
    assert profile.state == "TX"
    assert profile.tax_method == "brackets"
    assert profile.tax_rate == pytest.approx(0.22)
    assert profile.withdrawal_rate == pytest.approx(0.04)
    assert profile.market.inflation_rate == pytest.approx(0.03)
    assert profile.income.social_security_claim_age == 67
    assert profile.income.social_security_cola == pytest.approx(0.025)
    assert profile.expenses.healthcare_inflation_rate == pytest.approx(0.0269)
    assert profile.filing_status == "single"
    assert profile.use_guardrails
    assert not profile.ltc_modeling


def test_total_assets_default_to_tax_deferred() -> None:
    profile = HouseholdProfile.from_mapping(
        {
            "current_age": 60,
            "retirement_age": 65,
            "life_expectancy": 90,
            "current_retirement_assets": 500_000,
        }
    )
    assert profile.buckets.tax_deferred == pytest.approx(500_000.0)
    assert profile.total_assets == pytest.approx(500_000.0)


def test_healthcare_is_carved_out_of_expenses(base_payload: dict[str, Any]) -> None:
    profile = HouseholdProfile.from_mapping(base_payload)
    assert profile.expenses.core == pytest.approx(52_000.0)
    assert profile.expenses.healthcare == pytest.approx(8_000.0)


def test_couple_profile_horizon_and_ages(couple_payload: dict[str, Any]) -> None:
    profile = HouseholdProfile.from_mapping(couple_payload)
    assert profile.filing_status == "married"
    assert profile.spouse is not None
    # Spouse reaches 92 when the primary is 94.
    assert profile.horizon_age == 94
    assert profile.spouse_age_at(70) == 68
    assert profile.birth_year == 2025 - 60
    assert profile.years == 94 - 60 + 1


def test_conversion_errors_are_aggregated() -> None:
    with pytest.raises(ValidationError) as excinfo:
        HouseholdProfile.from_mapping(
            {
                "current_age": "sixty",
                "life_expectancy": 90,
                "market": {"return_volatility": "high"},
                "filing_status": "widowed",
            }
        )
    fields = excinfo.value.fields
    assert "current_age" in fields
    assert "retirement_age" in fields
    assert "market.return_volatility" in fields
    assert "filing_status" in fields


def test_glide_path_section_is_parsed(base_payload: dict[str, Any]) -> None:
    payload = dict(base_payload)
    payload["allocation"] = {
        "stocks": 0.7,
        "bonds": 0.25,
        "cash": 0.05,
        "glide_path": {"end_stock": 0.3},
    }
    profile = HouseholdProfile.from_mapping(payload)
    glide = profile.allocation.glide_path
    assert glide is not None
    assert glide.start_stock == pytest.approx(0.7)
    assert glide.start_age == 65
    assert glide.end_age == 90


def test_guardrail_config_follows_flag(base_payload: dict[str, Any]) -> None:
    payload = dict(base_payload, use_guardrails=False, guardrails={"cut": 0.05})
    profile = HouseholdProfile.from_mapping(payload)
    config = profile.guardrail_config()
    assert not config.enabled
    assert config.cut == pytest.approx(0.05)


def test_load_profile_reads_yaml(tmp_path: Path, base_payload: dict[str, Any]) -> None:
    path = write_yaml(base_payload, tmp_path / "household.yml")
    profile = load_profile(path)
    assert profile.total_assets == pytest.approx(1_000_000.0)
    assert profile.return_assumptions().expected_return == pytest.approx(0.06)


def test_load_profile_rejects_non_mapping(tmp_path: Path) -> None:
    path = tmp_path / "list.yml"
    path.write_text("- 1\n- 2\n", encoding="utf-8")
    with pytest.raises(ValidationError):
        load_profile(path)
