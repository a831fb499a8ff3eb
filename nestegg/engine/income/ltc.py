"""Long-term-care shock model.

Each household member can experience at most one care episode per trial. The
episode onset is drawn year by year from age-banded incidence rates; its
duration, care setting and cost are drawn once at onset. All draws come from
the trial's ``ltc`` stream so episodes are reproducible.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass

import numpy as np

__all__ = [
    "LtcAssumptions",
    "LtcEvent",
    "DEFAULT_LTC_ASSUMPTIONS",
    "annual_ltc_probability",
    "sample_ltc_event",
    "ltc_cost_for_year",
]

# (minimum age, annual incidence)
_INCIDENCE: tuple[tuple[int, float], ...] = (
    (0, 0.001),
    (65, 0.003),
    (70, 0.008),
    (75, 0.018),
    (80, 0.035),
    (85, 0.065),
    (90, 0.095),
    (95, 0.12),
)


@dataclass(frozen=True)
class LtcAssumptions:
    """Parameters of the care-episode model.

    Attributes:
      mean_duration: Mean episode length in years.
      duration_sd: Standard deviation of the episode length.
      min_duration: Shortest episode in years.
      max_duration: Longest episode in years.
      base_cost: Mean annual cost of home care in today's dollars.
      cost_sd: Standard deviation of the base cost.
      care_mix: Probability of each care setting.
      care_multipliers: Cost multiplier of each setting relative to home care.
      insurance_daily_benefit: Daily benefit paid by an LTC policy.
      insurance_years: Benefit period of the policy.
    """

    mean_duration: float = 2.0
    duration_sd: float = 1.5
    min_duration: float = 0.5
    max_duration: float = 5.0
    base_cost: float = 75_000.0
    cost_sd: float = 20_000.0
    care_mix: tuple[tuple[str, float], ...] = (
        ("home_care", 0.50),
        ("assisted_living", 0.30),
        ("nursing_home", 0.20),
    )
    care_multipliers: tuple[tuple[str, float], ...] = (
        ("home_care", 1.0),
        ("assisted_living", 1.15),
        ("nursing_home", 1.7),
    )
    insurance_daily_benefit: float = 200.0
    insurance_years: float = 3.0


DEFAULT_LTC_ASSUMPTIONS = LtcAssumptions()


@dataclass(frozen=True)
class LtcEvent:
    """A sampled care episode in today's dollars."""

    onset_age: int
    duration: float
    setting: str
    annual_cost: float

    def fraction_in_year(self, age: int) -> float:
        """Share of the year spent in care at ``age``."""

        start = age - self.onset_age
        if start < 0:
            return 0.0
        return float(min(max(self.duration - start, 0.0), 1.0))


def annual_ltc_probability(age: int) -> float:
    probability = _INCIDENCE[0][1]
    for min_age, rate in _INCIDENCE:
        if age >= min_age:
            probability = rate
    return probability


def sample_ltc_event(
    rng: np.random.Generator,
    ages: Sequence[int],
    *,
    assumptions: LtcAssumptions = DEFAULT_LTC_ASSUMPTIONS,
    antithetic: bool = False,
) -> LtcEvent | None:
    """Sample the first care episode over ``ages``.

    Args:
      rng: The trial's ``ltc`` stream.
      ages: Ages of the person over the simulated horizon.
      assumptions: Model parameters.
      antithetic: Mirror uniforms and negate normal draws.

    Returns:
      The episode, or ``None`` when no onset happens within ``ages``.
    """

    if not ages:
        return None
    onset_draws = rng.random(len(ages))
    details = rng.random(1)[0]
    shocks = rng.standard_normal(2)
    if antithetic:
        onset_draws = 1.0 - onset_draws
        details = 1.0 - details
        shocks = -shocks
    onset_age = None
    for age, u in zip(ages, onset_draws):
        if u < annual_ltc_probability(age):
            onset_age = int(age)
            break
    if onset_age is None:
        return None
    duration = float(
        np.clip(
            assumptions.mean_duration + assumptions.duration_sd * shocks[0],
            assumptions.min_duration,
            assumptions.max_duration,
        )
    )
    cumulative = 0.0
    setting = assumptions.care_mix[-1][0]
    for name, weight in assumptions.care_mix:
        cumulative += weight
        if details < cumulative:
            setting = name
            break
    multiplier = dict(assumptions.care_multipliers).get(setting, 1.0)
    base = max(assumptions.base_cost + assumptions.cost_sd * shocks[1], 0.0)
    return LtcEvent(onset_age, duration, setting, base * multiplier)


def ltc_cost_for_year(
    event: LtcEvent | None,
    age: int,
    inflation_factor: float,
    *,
    insured: bool = False,
    assumptions: LtcAssumptions = DEFAULT_LTC_ASSUMPTIONS,
) -> float:
    """Out-of-pocket care cost at ``age`` in nominal dollars."""

    if event is None:
        return 0.0
    fraction = event.fraction_in_year(age)
    if fraction <= 0.0:
        return 0.0
    cost = event.annual_cost * fraction * inflation_factor
    if insured and age - event.onset_age < assumptions.insurance_years:
        benefit = assumptions.insurance_daily_benefit * 365.0 * fraction
        cost = max(cost - benefit, 0.0)
    return cost
