"""Guaranteed income and long-term-care expense models."""

from .ltc import (
    DEFAULT_LTC_ASSUMPTIONS,
    LtcAssumptions,
    LtcEvent,
    annual_ltc_probability,
    ltc_cost_for_year,
    sample_ltc_event,
)
from .social_security import (
    EARLIEST_CLAIM_AGE,
    FULL_RETIREMENT_AGE,
    LATEST_CREDIT_AGE,
    GuaranteedIncome,
    claim_adjustment_factor,
    part_time_income,
    pension_benefit,
    social_security_benefit,
    survivor_benefit,
)

__all__ = [
    "DEFAULT_LTC_ASSUMPTIONS",
    "LtcAssumptions",
    "LtcEvent",
    "annual_ltc_probability",
    "ltc_cost_for_year",
    "sample_ltc_event",
    "EARLIEST_CLAIM_AGE",
    "FULL_RETIREMENT_AGE",
    "LATEST_CREDIT_AGE",
    "GuaranteedIncome",
    "claim_adjustment_factor",
    "part_time_income",
    "pension_benefit",
    "social_security_benefit",
    "survivor_benefit",
]
