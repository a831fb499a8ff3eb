"""Guyton-Klinger spending guardrails."""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any, Literal

__all__ = [
    "CAPITAL_PRESERVATION",
    "PROSPERITY",
    "GuardrailAdjustment",
    "GuardrailConfig",
    "GuardrailDecision",
    "GuardrailPolicy",
]

CAPITAL_PRESERVATION = "capital_preservation"
PROSPERITY = "prosperity"
GuardrailAdjustment = Literal["capital_preservation", "prosperity"]


@dataclass(frozen=True)
class GuardrailConfig:
    """Thresholds and step sizes of the guardrail rules.

    Attributes:
      enabled: ``False`` keeps a flat inflation-adjusted withdrawal.
      upper_ratio: Capital Preservation fires above ``upper_ratio`` times the
        initial rate.
      lower_ratio: Prosperity fires below ``lower_ratio`` times the initial
        rate.
      cut: Fractional spending cut of the Capital Preservation rule.
      raise_: Fractional spending raise of the Prosperity rule.
      skip_inflation_after_loss: Skip the inflation increase after a negative
        market year.
      min_remaining_years: Suppress the rate rules when fewer years remain.
    """

    enabled: bool = True
    upper_ratio: float = 1.2
    lower_ratio: float = 0.8
    cut: float = 0.10
    raise_: float = 0.10
    skip_inflation_after_loss: bool = True
    min_remaining_years: int = 0

    def __post_init__(self) -> None:
        if self.lower_ratio >= self.upper_ratio:
            raise ValueError("lower_ratio must be below upper_ratio")
        if not 0.0 <= self.cut < 1.0 or self.raise_ < 0.0:
            raise ValueError("guardrail step sizes must be non-negative and cut < 1")

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any] | None, *, enabled: bool = True) -> GuardrailConfig:
        data = dict(payload or {})
        return cls(
            enabled=bool(data.get("enabled", enabled)),
            upper_ratio=float(data.get("upper_ratio", 1.2)),
            lower_ratio=float(data.get("lower_ratio", 0.8)),
            cut=float(data.get("cut", 0.10)),
            raise_=float(data.get("raise", 0.10)),
            skip_inflation_after_loss=bool(data.get("skip_inflation_after_loss", True)),
            min_remaining_years=int(data.get("min_remaining_years", 0)),
        )


@dataclass(frozen=True)
class GuardrailDecision:
    """Outcome of one guardrail evaluation.

    Attributes:
      adjustment: Rule that fired, if any.
      multiplier: Factor applied to real spending.
      current_rate: Withdrawal rate the rules were evaluated on.
    """

    adjustment: GuardrailAdjustment | None = None
    multiplier: float = 1.0
    current_rate: float | None = None


NO_CHANGE = GuardrailDecision()


class GuardrailPolicy:
    """Evaluate the Guyton-Klinger rules once per retired year.

    The inflation rule is applied first through :meth:`skip_inflation`; the
    rate rules are then evaluated on the withdrawal that results. Capital
    Preservation takes precedence over Prosperity.
    """

    def __init__(self, config: GuardrailConfig | None = None) -> None:
        self.config = config or GuardrailConfig()

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def skip_inflation(self, prior_return: float | None) -> bool:
        """Whether this year's inflation increase is skipped."""

        if not self.config.enabled or not self.config.skip_inflation_after_loss:
            return False
        return prior_return is not None and prior_return < 0.0

    def evaluate(
        self,
        *,
        withdrawal: float,
        portfolio: float,
        initial_rate: float,
        remaining_years: int | None = None,
    ) -> GuardrailDecision:
        """Apply the withdrawal-rate rules.

        Args:
          withdrawal: Planned portfolio withdrawal for the year.
          portfolio: Portfolio the rate is measured against, after this year's
            return.
          initial_rate: Target withdrawal rate the rules are anchored to.
          remaining_years: Years left in the horizon, if known.

        Returns:
          The :class:`GuardrailDecision`; ``NO_CHANGE`` when disabled or when
          the initial rate is undefined.
        """

        config = self.config
        if not config.enabled or initial_rate <= 0.0 or not math.isfinite(initial_rate):
            return NO_CHANGE
        if remaining_years is not None and remaining_years < config.min_remaining_years:
            return NO_CHANGE
        if withdrawal <= 0.0:
            return GuardrailDecision(current_rate=0.0)
        current_rate = withdrawal / portfolio if portfolio > 0.0 else math.inf
        if current_rate > config.upper_ratio * initial_rate:
            return GuardrailDecision(CAPITAL_PRESERVATION, 1.0 - config.cut, current_rate)
        if current_rate < config.lower_ratio * initial_rate:
            return GuardrailDecision(PROSPERITY, 1.0 + config.raise_, current_rate)
        return GuardrailDecision(current_rate=current_rate)
