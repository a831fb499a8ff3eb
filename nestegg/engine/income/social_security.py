"""Guaranteed income streams: Social Security, pensions and part-time work."""

from __future__ import annotations

from dataclasses import dataclass

__all__ = [
    "FULL_RETIREMENT_AGE",
    "EARLIEST_CLAIM_AGE",
    "LATEST_CREDIT_AGE",
    "claim_adjustment_factor",
    "social_security_benefit",
    "survivor_benefit",
    "pension_benefit",
    "part_time_income",
    "GuaranteedIncome",
]

FULL_RETIREMENT_AGE = 67
EARLIEST_CLAIM_AGE = 62
LATEST_CREDIT_AGE = 70

# Monthly reduction for the first 36 months before FRA, then beyond.
_EARLY_RATE_FIRST = 5.0 / 9.0 / 100.0
_EARLY_RATE_BEYOND = 5.0 / 12.0 / 100.0
_DELAYED_RATE = 2.0 / 3.0 / 100.0


def claim_adjustment_factor(claim_age: int, full_retirement_age: int = FULL_RETIREMENT_AGE) -> float:
    """Multiplier applied to the FRA benefit when claiming at ``claim_age``.

    Claim ages are clamped to ``[62, 70]``; claiming at 62 with an FRA of 67
    yields 0.70 and claiming at 70 yields 1.24.
    """

    age = min(max(int(claim_age), EARLIEST_CLAIM_AGE), LATEST_CREDIT_AGE)
    months = (age - full_retirement_age) * 12
    if months < 0:
        early = -months
        first = min(early, 36)
        return 1.0 - first * _EARLY_RATE_FIRST - (early - first) * _EARLY_RATE_BEYOND
    return 1.0 + months * _DELAYED_RATE


def social_security_benefit(
    monthly_at_fra: float,
    claim_age: int,
    age: int,
    cola: float = 0.0,
    *,
    cola_years: int | None = None,
) -> float:
    """Annual benefit received at ``age``.

    Args:
      monthly_at_fra: Monthly benefit at full retirement age in today's
        dollars.
      claim_age: Age at which benefits start.
      age: Age of the recipient in the simulated year.
      cola: Annual cost-of-living adjustment.
      cola_years: Years of COLA to compound; defaults to the years since
        the claim age. Benefits quoted in today's dollars compound from the
        first simulated year.

    Returns:
      Benefit in dollars for the year, ``0.0`` before the claim age.
    """

    if monthly_at_fra <= 0.0 or age < claim_age:
        return 0.0
    annual = monthly_at_fra * 12.0 * claim_adjustment_factor(claim_age)
    years = age - claim_age if cola_years is None else cola_years
    return annual * (1.0 + cola) ** max(years, 0)


def survivor_benefit(own: float, deceased: float) -> float:
    """The surviving spouse keeps the larger of the two benefits."""

    return max(own, deceased)


def pension_benefit(
    monthly: float,
    *,
    started: bool,
    holder_alive: bool,
    survivorship_pct: float,
) -> float:
    """Annual pension payment, reduced to the survivorship share after death."""

    if monthly <= 0.0 or not started:
        return 0.0
    annual = monthly * 12.0
    if holder_alive:
        return annual
    return annual * min(max(survivorship_pct, 0.0), 100.0) / 100.0


def part_time_income(monthly: float, age: int, end_age: int | None) -> float:
    if monthly <= 0.0 or (end_age is not None and age >= end_age):
        return 0.0
    return monthly * 12.0


@dataclass(frozen=True)
class GuaranteedIncome:
    """Guaranteed income of one simulated year.

    Attributes:
      social_security: Household Social Security benefits.
      pension: Pension payments including survivor continuations.
      part_time: Part-time earnings.
      other: Annuities and other guaranteed income.
    """

    social_security: float = 0.0
    pension: float = 0.0
    part_time: float = 0.0
    other: float = 0.0

    @property
    def ordinary(self) -> float:
        """Income taxed as ordinary income (everything but Social Security)."""

        return self.pension + self.part_time + self.other

    @property
    def total(self) -> float:
        return self.social_security + self.ordinary
