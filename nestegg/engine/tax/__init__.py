"""Stateless tax functions and 2025 rule tables."""

from .engine import (
    TaxBreakdown,
    capital_gains_tax,
    compute_year_taxes,
    federal_tax,
    flat_tax,
    irmaa_surcharge,
    medicare_enrollees,
    net_investment_income_tax,
    standard_deduction,
    state_tax,
    taxable_social_security,
)
from .states import STATE_TAX_TABLES, StateTaxConfig, load_state_tables, lookup_state
from .tables import FilingStatus, apply_brackets, normalise_filing_status

__all__ = [
    "FilingStatus",
    "STATE_TAX_TABLES",
    "StateTaxConfig",
    "TaxBreakdown",
    "apply_brackets",
    "capital_gains_tax",
    "compute_year_taxes",
    "federal_tax",
    "flat_tax",
    "irmaa_surcharge",
    "load_state_tables",
    "lookup_state",
    "medicare_enrollees",
    "net_investment_income_tax",
    "normalise_filing_status",
    "standard_deduction",
    "state_tax",
    "taxable_social_security",
]
