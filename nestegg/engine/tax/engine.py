"""Stateless federal, state, capital-gains and Medicare IRMAA tax functions.

All functions return ``0.0`` for non-positive income and extrapolate income
above the top bracket at the top marginal rate. :func:`compute_year_taxes`
combines them for a single simulated year.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from nestegg.engine.logging import setup_logger
from nestegg.engine.tax.states import StateTaxConfig, lookup_state
from nestegg.engine.tax.tables import (
    CAPITAL_GAINS_BRACKETS,
    FEDERAL_BRACKETS,
    IRMAA_TIERS,
    MEDICARE_ELIGIBILITY_AGE,
    MEDICARE_PART_B_BASE,
    NIIT_RATE,
    NIIT_THRESHOLD,
    SENIOR_ADDITIONAL_DEDUCTION,
    SOCIAL_SECURITY_THRESHOLDS,
    STANDARD_DEDUCTION,
    apply_brackets,
    normalise_filing_status,
)

LOG = setup_logger(__name__)

__all__ = [
    "TaxBreakdown",
    "standard_deduction",
    "federal_tax",
    "state_tax",
    "capital_gains_tax",
    "net_investment_income_tax",
    "irmaa_surcharge",
    "taxable_social_security",
    "flat_tax",
    "compute_year_taxes",
    "medicare_enrollees",
]

_UNKNOWN_STATES_REPORTED: set[str] = set()


@dataclass(frozen=True)
class TaxBreakdown:
    """Taxes owed for one simulated year.

    Attributes:
      federal: Federal tax on ordinary income.
      state: State income tax.
      capital_gains: Federal long-term capital-gains tax.
      niit: Net investment income tax.
      taxable_social_security: Portion of benefits included in income.
      magi: Modified adjusted gross income used for the IRMAA lookback.
    """

    federal: float = 0.0
    state: float = 0.0
    capital_gains: float = 0.0
    niit: float = 0.0
    taxable_social_security: float = 0.0
    magi: float = 0.0

    @property
    def total(self) -> float:
        return self.federal + self.state + self.capital_gains + self.niit


def standard_deduction(
    filing_status: str,
    *,
    age: int | None = None,
    spouse_age: int | None = None,
) -> float:
    """Return the standard deduction including the 65+ additions."""

    status = normalise_filing_status(filing_status)
    deduction = STANDARD_DEDUCTION[status]
    senior = SENIOR_ADDITIONAL_DEDUCTION[status]
    if age is not None and age >= 65:
        deduction += senior
    if status == "married" and spouse_age is not None and spouse_age >= 65:
        deduction += senior
    return deduction


def federal_tax(
    taxable_income: float,
    filing_status: str = "single",
    *,
    age: int | None = None,
    spouse_age: int | None = None,
) -> float:
    """Federal tax on ordinary income after the standard deduction.

    Args:
      taxable_income: Gross ordinary income (wages, pensions, tax-deferred
        withdrawals, taxable Social Security) before the deduction.
      filing_status: ``single`` or ``married``.
      age: Age of the primary filer, enabling the senior addition at 65+.
      spouse_age: Age of the spouse for married filers.

    Returns:
      Tax owed in dollars.
    """

    if taxable_income <= 0.0:
        return 0.0
    status = normalise_filing_status(filing_status)
    deduction = standard_deduction(status, age=age, spouse_age=spouse_age)
    return apply_brackets(taxable_income - deduction, FEDERAL_BRACKETS[status])


def state_tax(
    taxable_income: float,
    state: str | None,
    is_retired: bool,
    *,
    filing_status: str = "single",
    retirement_income: float = 0.0,
    tables: Mapping[str, StateTaxConfig] | None = None,
) -> float:
    """State income tax after retiree exclusions and the state deduction.

    Unknown state codes are taxed as no-income-tax states; the first
    occurrence of each code is logged.

    Args:
      taxable_income: Income in the state base (Social Security excluded
        unless the state taxes benefits).
      state: Two-letter state code.
      is_retired: Enables the pension/retirement-income exclusion.
      filing_status: ``single`` or ``married``.
      retirement_income: Pension and retirement-account income eligible for
        the exclusion.
      tables: Optional replacement for the built-in state tables.

    Returns:
      Tax owed in dollars.
    """

    if taxable_income <= 0.0:
        return 0.0
    config = lookup_state(state, tables)
    if config is None:
        code = str(state or "").upper()
        if code not in _UNKNOWN_STATES_REPORTED:
            _UNKNOWN_STATES_REPORTED.add(code)
            LOG.warning("Unknown state %r; assuming no state income tax", state)
        return 0.0
    if not config.has_income_tax:
        return 0.0
    status = normalise_filing_status(filing_status)
    base = taxable_income
    if is_retired and retirement_income > 0.0:
        base -= min(retirement_income, config.pension_exclusion, taxable_income)
    base -= config.standard_deduction.get(status, 0.0)
    brackets = config.brackets.get(status) or config.brackets.get("single", ())
    return apply_brackets(base, brackets)


def net_investment_income_tax(gains: float, magi: float, filing_status: str) -> float:
    """3.8% tax on the lesser of investment income and MAGI above the threshold."""

    if gains <= 0.0:
        return 0.0
    status = normalise_filing_status(filing_status)
    excess = magi - NIIT_THRESHOLD[status]
    if excess <= 0.0:
        return 0.0
    return min(excess, gains) * NIIT_RATE


def _stacked_gains_tax(gains: float, ordinary_taxable: float, status: str) -> float:
    tax = 0.0
    floor = max(ordinary_taxable, 0.0)
    ceiling = floor + gains
    for lower, upper, rate in CAPITAL_GAINS_BRACKETS[status]:
        start = max(lower, floor)
        end = min(upper, ceiling)
        if end > start:
            tax += (end - start) * rate
    return tax


def capital_gains_tax(
    gains: float,
    total_taxable_income: float,
    filing_status: str = "single",
) -> float:
    """Long-term capital-gains tax stacked on ordinary income, plus NIIT.

    Args:
      gains: Realized long-term gains.
      total_taxable_income: Ordinary taxable income (after deductions) on
        top of which the gains are stacked.
      filing_status: ``single`` or ``married``.

    Returns:
      Capital-gains tax including the 3.8% NIIT when applicable.
    """

    if gains <= 0.0:
        return 0.0
    status = normalise_filing_status(filing_status)
    base = _stacked_gains_tax(gains, total_taxable_income, status)
    magi = max(total_taxable_income, 0.0) + gains
    return base + net_investment_income_tax(gains, magi, status)


def irmaa_surcharge(magi: float, filing_status: str = "single") -> float:
    """Annual per-person Medicare Part B and D surcharge for ``magi``.

    The caller supplies MAGI from two years earlier.
    """

    if magi <= 0.0:
        return 0.0
    status = normalise_filing_status(filing_status)
    for lower, upper, part_b, part_d in IRMAA_TIERS[status]:
        if lower <= magi < upper:
            return ((part_b - MEDICARE_PART_B_BASE) + part_d) * 12.0
    _, _, part_b, part_d = IRMAA_TIERS[status][-1]
    return ((part_b - MEDICARE_PART_B_BASE) + part_d) * 12.0


def taxable_social_security(
    benefits: float,
    other_income: float,
    filing_status: str = "single",
) -> float:
    """Portion of Social Security benefits included in taxable income.

    Provisional income is other income plus half the benefits; up to 50% of
    benefits are taxable between the thresholds and up to 85% above.
    """

    if benefits <= 0.0:
        return 0.0
    status = normalise_filing_status(filing_status)
    first, second = SOCIAL_SECURITY_THRESHOLDS[status]
    provisional = max(other_income, 0.0) + 0.5 * benefits
    if provisional <= first:
        return 0.0
    if provisional <= second:
        return min(0.5 * (provisional - first), 0.5 * benefits)
    taxable = 0.85 * (provisional - second) + min(0.5 * (second - first), 0.5 * benefits)
    return min(taxable, 0.85 * benefits)


def flat_tax(amount: float, rate: float) -> float:
    """Tax at a single effective ``rate``."""

    if amount <= 0.0:
        return 0.0
    return amount * rate


def compute_year_taxes(
    *,
    ordinary_income: float,
    social_security: float,
    capital_gains: float,
    retirement_income: float,
    filing_status: str,
    state: str | None,
    is_retired: bool,
    age: int | None = None,
    spouse_age: int | None = None,
    method: str = "brackets",
    flat_rate: float = 0.0,
    state_tables: Mapping[str, StateTaxConfig] | None = None,
) -> TaxBreakdown:
    """Combine every tax component for one simulated year.

    Args:
      ordinary_income: Pensions, wages, annuities and tax-deferred
        withdrawals.
      social_security: Gross Social Security benefits.
      capital_gains: Realized long-term gains.
      retirement_income: Share of ``ordinary_income`` eligible for state
        retirement exclusions.
      filing_status: ``single`` or ``married``.
      state: State of residence.
      is_retired: Whether the household is in the distribution phase.
      age: Primary filer age.
      spouse_age: Spouse age when alive.
      method: ``"brackets"`` or ``"flat"``; the flat method taxes ordinary
        income and gains at ``flat_rate`` and ignores Social Security.
      flat_rate: Effective rate for the flat method.
      state_tables: Optional replacement state tables.

    Returns:
      A :class:`TaxBreakdown` for the year.
    """

    if method == "flat":
        magi = max(ordinary_income, 0.0) + max(capital_gains, 0.0)
        return TaxBreakdown(
            federal=flat_tax(ordinary_income, flat_rate),
            capital_gains=flat_tax(capital_gains, flat_rate),
            magi=magi,
        )
    status = normalise_filing_status(filing_status)
    taxable_ss = taxable_social_security(
        social_security, ordinary_income + capital_gains, status
    )
    gross_ordinary = ordinary_income + taxable_ss
    deduction = standard_deduction(status, age=age, spouse_age=spouse_age)
    ordinary_taxable = gross_ordinary - deduction
    federal = apply_brackets(ordinary_taxable, FEDERAL_BRACKETS[status])
    # Unused deduction shelters gains.
    gains_taxable = capital_gains + min(ordinary_taxable, 0.0)
    magi = max(gross_ordinary, 0.0) + max(capital_gains, 0.0)
    gains_tax = 0.0
    niit = 0.0
    if gains_taxable > 0.0:
        gains_tax = _stacked_gains_tax(gains_taxable, ordinary_taxable, status)
        niit = net_investment_income_tax(capital_gains, magi, status)
    state_base = ordinary_income + capital_gains
    config = lookup_state(state, state_tables)
    if config is not None and config.taxes_social_security:
        state_base += taxable_ss
    state_amount = state_tax(
        state_base,
        state,
        is_retired,
        filing_status=status,
        retirement_income=retirement_income,
        tables=state_tables,
    )
    return TaxBreakdown(
        federal=federal,
        state=state_amount,
        capital_gains=gains_tax,
        niit=niit,
        taxable_social_security=taxable_ss,
        magi=magi,
    )


def medicare_enrollees(age: int | None, spouse_age: int | None) -> int:
    """Number of living household members old enough for Medicare."""

    count = 0
    if age is not None and age >= MEDICARE_ELIGIBILITY_AGE:
        count += 1
    if spouse_age is not None and spouse_age >= MEDICARE_ELIGIBILITY_AGE:
        count += 1
    return count

