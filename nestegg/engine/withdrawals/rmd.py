"""Required minimum distributions under SECURE 2.0."""

from __future__ import annotations

import math
from functools import lru_cache

__all__ = [
    "UNIFORM_LIFETIME_TABLE",
    "JOINT_LIFE_AGE_GAP",
    "rmd_start_age",
    "uniform_lifetime_divisor",
    "joint_life_divisor",
    "rmd_divisor",
    "required_minimum_distribution",
]

# IRS Uniform Lifetime Table (2022 and later), ages 72-120.
UNIFORM_LIFETIME_TABLE: dict[int, float] = {
    72: 27.4, 73: 26.5, 74: 25.5, 75: 24.6, 76: 23.7, 77: 22.9,
    78: 22.0, 79: 21.1, 80: 20.2, 81: 19.4, 82: 18.5, 83: 17.7,
    84: 16.9, 85: 16.0, 86: 15.2, 87: 14.4, 88: 13.7, 89: 12.9,
    90: 12.2, 91: 11.5, 92: 10.8, 93: 10.1, 94: 9.5, 95: 8.9,
    96: 8.4, 97: 7.8, 98: 7.3, 99: 6.8, 100: 6.4, 101: 6.0,
    102: 5.6, 103: 5.2, 104: 4.9, 105: 4.6, 106: 4.3, 107: 4.1,
    108: 3.9, 109: 3.7, 110: 3.5, 111: 3.4, 112: 3.3, 113: 3.1,
    114: 3.0, 115: 2.9, 116: 2.8, 117: 2.7, 118: 2.5, 119: 2.3,
    120: 2.0,
}

JOINT_LIFE_AGE_GAP = 10

# Gompertz mortality parameters (modal age, dispersion).
_GOMPERTZ_MODE = 88.0
_GOMPERTZ_DISPERSION = 10.0
_MAX_AGE = 120


def rmd_start_age(birth_year: int) -> int:
    """Age of the first RMD for ``birth_year``: 72, 73 or 75."""

    if birth_year <= 1950:
        return 72
    if birth_year <= 1959:
        return 73
    return 75


def uniform_lifetime_divisor(age: int) -> float:
    """Uniform Lifetime divisor; ages above 120 use the age-120 divisor."""

    if age < min(UNIFORM_LIFETIME_TABLE):
        return UNIFORM_LIFETIME_TABLE[min(UNIFORM_LIFETIME_TABLE)]
    return UNIFORM_LIFETIME_TABLE[min(age, _MAX_AGE)]


def _survival(age: float, years: int) -> float:
    hazard = math.exp((age - _GOMPERTZ_MODE) / _GOMPERTZ_DISPERSION)
    return math.exp(-hazard * (math.exp(years / _GOMPERTZ_DISPERSION) - 1.0))


@lru_cache(maxsize=4096)
def _joint_last_survivor(age: int, spouse_age: int) -> float:
    total = 0.0
    for t in range(1, _MAX_AGE - min(age, spouse_age) + 1):
        first = _survival(age, t)
        second = _survival(spouse_age, t)
        total += first + second - first * second
    return total


def joint_life_divisor(age: int, spouse_age: int) -> float:
    """Joint and last survivor divisor for a spouse more than 10 years younger.

    The Gompertz joint expectancy is scaled so that a spouse exactly ten
    years younger reproduces the Uniform Lifetime divisor.
    """

    base = uniform_lifetime_divisor(age)
    if age - spouse_age <= JOINT_LIFE_AGE_GAP:
        return base
    anchor = _joint_last_survivor(age, age - JOINT_LIFE_AGE_GAP)
    return max(base, base * _joint_last_survivor(age, spouse_age) / anchor)


def rmd_divisor(age: int, spouse_age: int | None = None) -> float:
    """Divisor for ``age``, using the joint table when it applies."""

    if spouse_age is not None and age - spouse_age > JOINT_LIFE_AGE_GAP:
        return joint_life_divisor(age, spouse_age)
    return uniform_lifetime_divisor(age)


def required_minimum_distribution(
    balance: float,
    age: int,
    birth_year: int,
    spouse_age: int | None = None,
) -> float:
    """RMD owed at ``age`` on the prior year-end tax-deferred ``balance``.

    Args:
      balance: Tax-deferred balance at the end of the previous year.
      age: Account owner's age in the distribution year.
      birth_year: Owner's birth year, selecting the start age.
      spouse_age: Age of a living spouse who is the sole beneficiary.

    Returns:
      The minimum distribution, never more than ``balance``.
    """

    if balance <= 0.0 or age < rmd_start_age(birth_year):
        return 0.0
    return min(balance / rmd_divisor(age, spouse_age), balance)
