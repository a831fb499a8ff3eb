"""Range validation of household profiles.

:meth:`HouseholdProfile.from_mapping` only converts types. This module checks
that the converted values are plausible, records one diagnostic per offending
field and reports soft issues as warnings. The simulation refuses to start
while any error remains.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from nestegg.engine.errors import FieldError, ValidationError
from nestegg.engine.profile import BUCKET_NAMES, HouseholdProfile
from nestegg.engine.utils.io import read_yaml

__all__ = [
    "ALLOCATION_TOLERANCE",
    "ValidationSummary",
    "validate_profile",
    "validate_profile_file",
    "ensure_valid_profile",
]

ALLOCATION_TOLERANCE = 0.01
MIN_ASSETS_WARNING = 10_000.0
MIN_EXPENSES_WARNING = 20_000.0
MAX_STOCKS_WARNING = 0.95
MIN_TAIL_DEGREES_OF_FREEDOM = 2.0
MAX_TAIL_DEGREES_OF_FREEDOM = 100.0


@dataclass(slots=True)
class ValidationSummary:
    """Diagnostics collected for one profile.

    Attributes:
      errors: Field-level errors; any entry blocks the simulation.
      warnings: Soft diagnostics that do not block the simulation.
      profile: Normalized profile when the payload could be converted.
    """

    errors: list[FieldError] = field(default_factory=list)
    warnings: list[FieldError] = field(default_factory=list)
    profile: HouseholdProfile | None = None

    @property
    def ok(self) -> bool:
        return not self.errors


def _in_range(
    value: float,
    *,
    path: str,
    errors: list[FieldError],
    minimum: float | None = None,
    maximum: float | None = None,
) -> None:
    """Record an error when ``value`` leaves ``[minimum, maximum]``."""

    if minimum is not None and value < minimum:
        errors.append(FieldError(path, f"must be >= {minimum} (got {value})"))
    elif maximum is not None and value > maximum:
        errors.append(FieldError(path, f"must be <= {maximum} (got {value})"))


def _check_ages(profile: HouseholdProfile, errors: list[FieldError]) -> None:
    _in_range(profile.current_age, path="current_age", errors=errors, minimum=18, maximum=100)
    _in_range(profile.retirement_age, path="retirement_age", errors=errors, minimum=50, maximum=80)
    _in_range(
        profile.life_expectancy, path="life_expectancy", errors=errors, minimum=70, maximum=120
    )
    if profile.retirement_age > profile.life_expectancy:
        errors.append(FieldError("retirement_age", "must not exceed life_expectancy"))
    if profile.current_age > profile.life_expectancy:
        errors.append(FieldError("current_age", "must not exceed life_expectancy"))

    spouse = profile.spouse
    if spouse is None:
        return
    _in_range(
        spouse.current_age, path="spouse.current_age", errors=errors, minimum=18, maximum=100
    )
    _in_range(
        spouse.retirement_age, path="spouse.retirement_age", errors=errors, minimum=50, maximum=80
    )
    _in_range(
        spouse.life_expectancy,
        path="spouse.life_expectancy",
        errors=errors,
        minimum=70,
        maximum=120,
    )
    if spouse.retirement_age > spouse.life_expectancy:
        errors.append(FieldError("spouse.retirement_age", "must not exceed life_expectancy"))


def _check_allocation(
    profile: HouseholdProfile, errors: list[FieldError], warnings: list[FieldError]
) -> None:
    allocation = profile.allocation
    for name in ("stocks", "bonds", "cash"):
        _in_range(getattr(allocation, name), path=f"allocation.{name}", errors=errors, minimum=0.0)
    if abs(allocation.total - 1.0) > ALLOCATION_TOLERANCE:
        errors.append(
            FieldError(
                "allocation",
                f"weights must sum to 1 within {ALLOCATION_TOLERANCE} (got {allocation.total:.4f})",
            )
        )
    glide = allocation.glide_path
    if glide is not None:
        for name in ("start_stock", "end_stock"):
            _in_range(
                getattr(glide, name),
                path=f"allocation.glide_path.{name}",
                errors=errors,
                minimum=0.0,
                maximum=1.0,
            )
        if glide.end_age < glide.start_age:
            errors.append(FieldError("allocation.glide_path.end_age", "must be >= start_age"))
    if allocation.stocks > MAX_STOCKS_WARNING:
        warnings.append(
            FieldError(
                "allocation.stocks",
                f"stock allocation above {MAX_STOCKS_WARNING:.0%} is unusually aggressive",
                severity="warning",
            )
        )


def _check_rates(profile: HouseholdProfile, errors: list[FieldError]) -> None:
    market = profile.market
    _in_range(
        market.expected_return, path="market.expected_return", errors=errors,
        minimum=-0.10, maximum=0.20,
    )
    _in_range(
        market.return_volatility, path="market.return_volatility", errors=errors,
        minimum=0.0, maximum=0.50,
    )
    _in_range(
        market.inflation_rate, path="market.inflation_rate", errors=errors,
        minimum=-0.05, maximum=0.15,
    )
    _in_range(profile.tax_rate, path="tax_rate", errors=errors, minimum=0.0, maximum=0.60)
    _in_range(
        profile.withdrawal_rate, path="withdrawal_rate", errors=errors, minimum=0.01, maximum=0.15
    )
    _in_range(
        profile.capital_gains_basis_ratio,
        path="capital_gains_basis_ratio",
        errors=errors,
        minimum=0.0,
        maximum=1.0,
    )
    _in_range(
        profile.expenses.survivor_expense_ratio,
        path="expenses.survivor_expense_ratio",
        errors=errors,
        minimum=0.0,
        maximum=1.0,
    )
    if market.sequence_risk_years < 0:
        errors.append(FieldError("market.sequence_risk_years", "must be >= 0"))
    tail = market.tail_degrees_of_freedom
    if tail is not None and not MIN_TAIL_DEGREES_OF_FREEDOM < tail <= MAX_TAIL_DEGREES_OF_FREEDOM:
        errors.append(
            FieldError(
                "market.tail_degrees_of_freedom",
                f"must lie in ({MIN_TAIL_DEGREES_OF_FREEDOM:g}, {MAX_TAIL_DEGREES_OF_FREEDOM:g}]",
            )
        )


def _check_amounts(
    profile: HouseholdProfile, errors: list[FieldError], warnings: list[FieldError]
) -> None:
    for name in BUCKET_NAMES:
        value = getattr(profile.buckets, name)
        if value < 0.0:
            errors.append(FieldError(f"assets.{name}", f"must be >= 0 (got {value})"))
    for path, value in (
        ("expenses.annual_retirement_expenses", profile.expenses.annual_retirement_expenses),
        ("expenses.annual_healthcare_costs", profile.expenses.annual_healthcare_costs),
        ("income.social_security_benefit", profile.income.social_security_benefit),
        ("income.pension_benefit", profile.income.pension_benefit),
        ("income.part_time_income", profile.income.part_time_income),
        ("contributions.annual_savings", profile.contributions.annual_savings),
    ):
        if value < 0.0:
            errors.append(FieldError(path, f"must be >= 0 (got {value})"))
    for path, claim_age in (
        ("income.social_security_claim_age", profile.income.social_security_claim_age),
        (
            "spouse.social_security_claim_age",
            profile.spouse.social_security_claim_age if profile.spouse else None,
        ),
    ):
        if claim_age is not None:
            _in_range(claim_age, path=path, errors=errors, minimum=62, maximum=70)

    if profile.total_assets < MIN_ASSETS_WARNING:
        warnings.append(
            FieldError(
                "assets",
                f"total assets below ${MIN_ASSETS_WARNING:,.0f}",
                severity="warning",
            )
        )
    if profile.expenses.annual_retirement_expenses < MIN_EXPENSES_WARNING:
        warnings.append(
            FieldError(
                "expenses.annual_retirement_expenses",
                f"annual expenses below ${MIN_EXPENSES_WARNING:,.0f}",
                severity="warning",
            )
        )


def validate_profile(profile: HouseholdProfile | Mapping[str, Any]) -> ValidationSummary:
    """Validate a profile or a raw payload.

    Args:
      profile: A normalized :class:`HouseholdProfile` or the mapping it is
        built from.

    Returns:
      A :class:`ValidationSummary`. Conversion failures of a raw payload are
      reported as errors and leave ``profile`` unset.
    """

    summary = ValidationSummary()
    if not isinstance(profile, HouseholdProfile):
        try:
            profile = HouseholdProfile.from_mapping(profile)
        except ValidationError as exc:
            summary.errors.extend(exc.errors)
            return summary
    summary.profile = profile
    _check_ages(profile, summary.errors)
    _check_allocation(profile, summary.errors, summary.warnings)
    _check_rates(profile, summary.errors)
    _check_amounts(profile, summary.errors, summary.warnings)
    return summary


def validate_profile_file(path: Path | str) -> ValidationSummary:
    """Validate the YAML profile stored at ``path``."""

    payload = read_yaml(path)
    if not isinstance(payload, Mapping):
        return ValidationSummary(errors=[FieldError("profile", f"{path} must contain a mapping")])
    return validate_profile(payload)


def ensure_valid_profile(profile: HouseholdProfile | Mapping[str, Any]) -> HouseholdProfile:
    """Return the validated profile or raise one aggregated error.

    Raises:
      ValidationError: Carrying every field error and warning found.
    """

    summary = validate_profile(profile)
    if summary.errors or summary.profile is None:
        raise ValidationError(summary.errors, summary.warnings)
    return summary.profile
