from __future__ import annotations

import pytest

try:
    from hypothesis import given
    from hypothesis import strategies as st
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    pytest.skip("Requires the hypothesis library", allow_module_level=True)

from nestegg.engine.tax import compute_year_taxes, federal_tax

INCOME = st.floats(min_value=0.0, max_value=2_000_000.0, allow_nan=False, allow_infinity=False)
STATUS = st.sampled_from(["single", "married"])


@given(low=INCOME, extra=INCOME, status=STATUS)
def test_federal_tax_is_monotone(low: float, extra: float, status: str) -> None:
    lower = federal_tax(low, status)
    higher = federal_tax(low + extra, status)
    assert 0.0 <= lower <= higher + 1e-9
    assert higher - lower <= extra * 0.37 + 1e-6


@given(
    low=INCOME,
    extra=INCOME,
    gains=st.floats(min_value=0.0, max_value=500_000.0, allow_nan=False),
    status=STATUS,
    state=st.sampled_from(["TX", "CA", "NY", "IL"]),
)
def test_total_tax_is_monotone_in_ordinary_income(
    low: float, extra: float, gains: float, status: str, state: str
) -> None:
    def total(ordinary: float) -> float:
        return compute_year_taxes(
            ordinary_income=ordinary,
            social_security=0.0,
            capital_gains=gains,
            retirement_income=ordinary,
            filing_status=status,
            state=state,
            is_retired=True,
            age=70,
        ).total

    assert total(low) <= total(low + extra) + 1e-6
