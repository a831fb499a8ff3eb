"""2025 federal tax, capital-gains, Social Security and IRMAA tables.

Brackets are ``(lower, upper, rate)`` tuples in dollars; the last bracket of
every table is open-ended so income above it is taxed at the top marginal rate.
"""

from __future__ import annotations

import math
from collections.abc import Sequence
from typing import Final, Literal

FilingStatus = Literal["single", "married"]
Bracket = tuple[float, float, float]

FILING_STATUSES: Final[tuple[str, ...]] = ("single", "married")
TAX_YEAR: Final[int] = 2025
INF: Final[float] = math.inf

STANDARD_DEDUCTION: Final[dict[str, float]] = {"single": 15_050.0, "married": 30_100.0}
# Additional deduction per person aged 65 or older.
SENIOR_ADDITIONAL_DEDUCTION: Final[dict[str, float]] = {"single": 2_000.0, "married": 1_600.0}

FEDERAL_BRACKETS: Final[dict[str, tuple[Bracket, ...]]] = {
    "single": (
        (0.0, 11_950.0, 0.10),
        (11_950.0, 48_575.0, 0.12),
        (48_575.0, 103_550.0, 0.22),
        (103_550.0, 197_700.0, 0.24),
        (197_700.0, 251_050.0, 0.32),
        (251_050.0, 627_650.0, 0.35),
        (627_650.0, INF, 0.37),
    ),
    "married": (
        (0.0, 23_900.0, 0.10),
        (23_900.0, 97_150.0, 0.12),
        (97_150.0, 207_100.0, 0.22),
        (207_100.0, 395_400.0, 0.24),
        (395_400.0, 502_100.0, 0.32),
        (502_100.0, 753_150.0, 0.35),
        (753_150.0, INF, 0.37),
    ),
}

CAPITAL_GAINS_BRACKETS: Final[dict[str, tuple[Bracket, ...]]] = {
    "single": (
        (0.0, 48_450.0, 0.0),
        (48_450.0, 534_450.0, 0.15),
        (534_450.0, INF, 0.20),
    ),
    "married": (
        (0.0, 96_900.0, 0.0),
        (96_900.0, 601_250.0, 0.15),
        (601_250.0, INF, 0.20),
    ),
}

NIIT_RATE: Final[float] = 0.038
NIIT_THRESHOLD: Final[dict[str, float]] = {"single": 200_000.0, "married": 250_000.0}

# Provisional-income thresholds (not inflation indexed).
SOCIAL_SECURITY_THRESHOLDS: Final[dict[str, tuple[float, float]]] = {
    "single": (25_000.0, 34_000.0),
    "married": (32_000.0, 44_000.0),
}

MEDICARE_ELIGIBILITY_AGE: Final[int] = 65
MEDICARE_PART_B_BASE: Final[float] = 185.00
IRMAA_LOOKBACK_YEARS: Final[int] = 2
# (lower MAGI, upper MAGI, Part B monthly total, Part D monthly add-on)
IRMAA_TIERS: Final[dict[str, tuple[tuple[float, float, float, float], ...]]] = {
    "single": (
        (0.0, 106_000.0, 185.00, 0.0),
        (106_000.0, 133_000.0, 259.00, 13.30),
        (133_000.0, 166_000.0, 370.00, 34.30),
        (166_000.0, 199_000.0, 481.00, 55.40),
        (199_000.0, 515_000.0, 592.00, 76.40),
        (515_000.0, INF, 629.00, 83.40),
    ),
    "married": (
        (0.0, 212_000.0, 185.00, 0.0),
        (212_000.0, 266_000.0, 259.00, 13.30),
        (266_000.0, 332_000.0, 370.00, 34.30),
        (332_000.0, 398_000.0, 481.00, 55.40),
        (398_000.0, 773_000.0, 592.00, 76.40),
        (773_000.0, INF, 629.00, 83.40),
    ),
}


def normalise_filing_status(value: str) -> FilingStatus:
    """Map user supplied filing-status labels onto the modeled statuses.

    ``married_joint``/``mfj`` collapse onto ``married``; head of household is
    taxed with the single schedule.
    """

    text = str(value).strip().lower()
    if text in {"married", "married_joint", "married_filing_jointly", "mfj", "joint"}:
        return "married"
    if text in {"single", "head_of_household", "hoh"}:
        return "single"
    raise ValueError(f"Unsupported filing status: {value!r}")


def apply_brackets(amount: float, brackets: Sequence[Bracket]) -> float:
    """Return the progressive tax owed on ``amount``."""

    if amount <= 0.0:
        return 0.0
    tax = 0.0
    for lower, upper, rate in brackets:
        if amount <= lower:
            break
        tax += (min(amount, upper) - lower) * rate
    return tax


__all__ = [
    "FilingStatus",
    "Bracket",
    "FILING_STATUSES",
    "TAX_YEAR",
    "STANDARD_DEDUCTION",
    "SENIOR_ADDITIONAL_DEDUCTION",
    "FEDERAL_BRACKETS",
    "CAPITAL_GAINS_BRACKETS",
    "NIIT_RATE",
    "NIIT_THRESHOLD",
    "SOCIAL_SECURITY_THRESHOLDS",
    "MEDICARE_ELIGIBILITY_AGE",
    "MEDICARE_PART_B_BASE",
    "IRMAA_LOOKBACK_YEARS",
    "IRMAA_TIERS",
    "normalise_filing_status",
    "apply_brackets",
]
