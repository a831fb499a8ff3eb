"""Household profile consumed by the simulation engine.

:meth:`HouseholdProfile.from_mapping` is the single normalization step: it
converts a YAML/JSON payload into typed, immutable records and applies the
documented fallbacks. Range checks live in :mod:`nestegg.engine.validate`.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

from nestegg.engine.errors import FieldError, ValidationError
from nestegg.engine.markets.regime import RegimeModel, default_regime_model
from nestegg.engine.markets.returns import Allocation, GlidePath, ReturnAssumptions
from nestegg.engine.tax.tables import normalise_filing_status
from nestegg.engine.utils.io import read_yaml
from nestegg.engine.withdrawals.buckets import BUCKET_NAMES, AssetBuckets
from nestegg.engine.withdrawals.guardrails import GuardrailConfig

__all__ = [
    "BUCKET_NAMES",
    "CONTRIBUTION_SPLIT",
    "AssetBuckets",
    "SpouseProfile",
    "IncomeSources",
    "ExpenseProfile",
    "Contributions",
    "MarketAssumptions",
    "HouseholdProfile",
    "load_profile",
]

# Share of new savings routed to tax-deferred, tax-free and capital-gains.
CONTRIBUTION_SPLIT: tuple[float, float, float] = (0.70, 0.20, 0.10)

DEFAULT_STATE = "TX"
DEFAULT_TAX_METHOD = "brackets"
DEFAULT_TAX_RATE = 0.22
DEFAULT_WITHDRAWAL_RATE = 0.04
DEFAULT_INFLATION = 0.03
DEFAULT_CLAIM_AGE = 67
DEFAULT_SURVIVORSHIP_PCT = 50.0
DEFAULT_HEALTHCARE_INFLATION = 0.0269
DEFAULT_COLA = 0.025
DEFAULT_BASIS_RATIO = 0.5
DEFAULT_START_YEAR = 2025


class _Reader:
    """Coerce payload fields while collecting conversion errors."""

    def __init__(self, payload: Mapping[str, Any] | None, prefix: str, errors: list[FieldError]):
        self.payload = payload if isinstance(payload, Mapping) else {}
        self.prefix = prefix
        self.errors = errors

    def _path(self, key: str) -> str:
        return f"{self.prefix}.{key}" if self.prefix else key

    def has(self, key: str) -> bool:
        return self.payload.get(key) is not None

    def optional_number(self, key: str) -> float | None:
        value = self.payload.get(key)
        if value is None:
            return None
        if isinstance(value, bool):
            self.errors.append(FieldError(self._path(key), "must be a number"))
            return None
        try:
            return float(value)
        except (TypeError, ValueError):
            self.errors.append(FieldError(self._path(key), "must be a number"))
            return None

    def number(self, key: str, default: float = 0.0) -> float:
        value = self.optional_number(key)
        return default if value is None else value

    def optional_integer(self, key: str) -> int | None:
        value = self.optional_number(key)
        if value is None:
            return None
        if not value.is_integer():
            self.errors.append(FieldError(self._path(key), "must be a whole number"))
            return None
        return int(value)

    def integer(self, key: str, default: int = 0) -> int:
        value = self.optional_integer(key)
        return default if value is None else value

    def flag(self, key: str, default: bool) -> bool:
        value = self.payload.get(key)
        if value is None:
            return default
        if isinstance(value, bool):
            return value
        if isinstance(value, str) and value.strip().lower() in {"true", "yes", "1", "false", "no", "0"}:
            return value.strip().lower() in {"true", "yes", "1"}
        self.errors.append(FieldError(self._path(key), "must be true or false"))
        return default

    def text(self, key: str, default: str) -> str:
        value = self.payload.get(key)
        if value is None or str(value).strip() == "":
            return default
        return str(value).strip()

    def section(self, key: str) -> _Reader:
        value = self.payload.get(key)
        if value is not None and not isinstance(value, Mapping):
            self.errors.append(FieldError(self._path(key), "must be a mapping"))
        return _Reader(value, self._path(key), self.errors)


@dataclass(frozen=True)
class SpouseProfile:
    """Spouse or partner sharing the plan.

    Attributes:
      current_age: Age in the first simulated year.
      retirement_age: Age at which the spouse's pension starts.
      life_expectancy: Planning age of the spouse.
      social_security_benefit: Monthly benefit at full retirement age.
      social_security_claim_age: Claiming age.
      pension_benefit: Monthly pension.
      pension_survivorship_pct: Share of the pension paid to the survivor.
      part_time_income: Monthly part-time earnings in retirement.
      part_time_end_age: Age at which part-time work stops.
    """

    current_age: int
    retirement_age: int
    life_expectancy: int
    social_security_benefit: float = 0.0
    social_security_claim_age: int = DEFAULT_CLAIM_AGE
    pension_benefit: float = 0.0
    pension_survivorship_pct: float = DEFAULT_SURVIVORSHIP_PCT
    part_time_income: float = 0.0
    part_time_end_age: int | None = None


@dataclass(frozen=True)
class IncomeSources:
    """Guaranteed income of the primary person.

    Monthly amounts are in today's dollars.
    """

    social_security_benefit: float = 0.0
    social_security_claim_age: int = DEFAULT_CLAIM_AGE
    social_security_cola: float = DEFAULT_COLA
    pension_benefit: float = 0.0
    pension_start_age: int | None = None
    pension_survivorship_pct: float = DEFAULT_SURVIVORSHIP_PCT
    part_time_income: float = 0.0
    part_time_end_age: int | None = None
    other_income: float = 0.0


@dataclass(frozen=True)
class ExpenseProfile:
    """Retirement spending in today's dollars.

    Attributes:
      annual_retirement_expenses: Household spending per year.
      annual_healthcare_costs: Healthcare spending per year.
      healthcare_inflation_rate: Inflation applied to healthcare only.
      expenses_include_healthcare: ``True`` when healthcare is part of
        ``annual_retirement_expenses``.
      survivor_expense_ratio: Spending after the first death as a share of the
        couple's spending.
    """

    annual_retirement_expenses: float = 0.0
    annual_healthcare_costs: float = 0.0
    healthcare_inflation_rate: float = DEFAULT_HEALTHCARE_INFLATION
    expenses_include_healthcare: bool = True
    survivor_expense_ratio: float = 1.0

    @property
    def core(self) -> float:
        """Non-healthcare spending."""

        if self.expenses_include_healthcare:
            return max(self.annual_retirement_expenses - self.annual_healthcare_costs, 0.0)
        return self.annual_retirement_expenses

    @property
    def healthcare(self) -> float:
        if self.expenses_include_healthcare:
            return min(self.annual_healthcare_costs, self.annual_retirement_expenses)
        return self.annual_healthcare_costs


@dataclass(frozen=True)
class Contributions:
    annual_savings: float = 0.0
    contribution_growth: float = 0.0

    def amount(self, year_index: int) -> float:
        if self.annual_savings <= 0.0:
            return 0.0
        return self.annual_savings * (1.0 + self.contribution_growth) ** year_index


@dataclass(frozen=True)
class MarketAssumptions:
    """Return and inflation assumptions.

    Attributes:
      expected_return: Geometric mean portfolio return.
      return_volatility: Annual portfolio volatility.
      inflation_rate: General price inflation.
      return_model: ``"portfolio"`` or ``"asset_class"``.
      use_regimes: Enable the Markov regime overlay.
      sequence_risk_years: Length of the stressed window after retirement.
      sequence_risk_multiplier: Weight applied to bear/crisis transitions
        inside the window.
      tail_degrees_of_freedom: Student-t degrees of freedom of the return
        shocks; ``None`` keeps normal shocks.
    """

    expected_return: float = 0.07
    return_volatility: float = 0.15
    inflation_rate: float = DEFAULT_INFLATION
    return_model: str = "portfolio"
    use_regimes: bool = False
    sequence_risk_years: int = 5
    sequence_risk_multiplier: float = 1.5
    tail_degrees_of_freedom: float | None = None

    def regime_model(self) -> RegimeModel | None:
        if not self.use_regimes:
            return None
        return default_regime_model(self.sequence_risk_multiplier)


@dataclass(frozen=True)
class HouseholdProfile:
    """Normalized household inputs shared by every trial.

    Attributes:
      current_age: Primary age in the first simulated year.
      retirement_age: Primary retirement age.
      life_expectancy: Primary planning age.
      spouse: Optional spouse record.
      income: Primary guaranteed income.
      expenses: Retirement spending.
      buckets: Starting balances.
      contributions: Pre-retirement savings.
      allocation: Portfolio weights and optional glide path.
      market: Return and inflation assumptions.
      filing_status: ``single`` or ``married``.
      state: State of residence.
      tax_method: ``brackets`` or ``flat``.
      tax_rate: Effective rate for the flat method.
      capital_gains_basis_ratio: Cost-basis share of the taxable bucket.
      prior_magi: MAGI of the years before the simulation, used for IRMAA.
      withdrawal_rate: Planned initial withdrawal rate.
      use_guardrails: Enable the Guyton-Klinger policy.
      guardrails: Guardrail thresholds.
      has_ltc_insurance: LTC policy in force.
      ltc_modeling: Simulate long-term-care shocks.
      start_year: Calendar year of the first simulated year.
    """

    current_age: int
    retirement_age: int
    life_expectancy: int
    spouse: SpouseProfile | None = None
    income: IncomeSources = field(default_factory=IncomeSources)
    expenses: ExpenseProfile = field(default_factory=ExpenseProfile)
    buckets: AssetBuckets = field(default_factory=AssetBuckets)
    contributions: Contributions = field(default_factory=Contributions)
    allocation: Allocation = field(default_factory=Allocation)
    market: MarketAssumptions = field(default_factory=MarketAssumptions)
    filing_status: str = "single"
    state: str = DEFAULT_STATE
    tax_method: str = DEFAULT_TAX_METHOD
    tax_rate: float = DEFAULT_TAX_RATE
    capital_gains_basis_ratio: float = DEFAULT_BASIS_RATIO
    prior_magi: float | None = None
    withdrawal_rate: float = DEFAULT_WITHDRAWAL_RATE
    use_guardrails: bool = True
    guardrails: GuardrailConfig = field(default_factory=GuardrailConfig)
    has_ltc_insurance: bool = False
    ltc_modeling: bool = False
    start_year: int = DEFAULT_START_YEAR

    @property
    def birth_year(self) -> int:
        return self.start_year - self.current_age

    @property
    def spouse_birth_year(self) -> int | None:
        if self.spouse is None:
            return None
        return self.start_year - self.spouse.current_age

    @property
    def horizon_age(self) -> int:
        """Last simulated age on the primary's age axis."""

        horizon = self.life_expectancy
        if self.spouse is not None:
            spouse_years = self.spouse.life_expectancy - self.spouse.current_age
            horizon = max(horizon, self.current_age + spouse_years)
        return horizon

    @property
    def years(self) -> int:
        return max(self.horizon_age - self.current_age + 1, 0)

    @property
    def total_assets(self) -> float:
        return self.buckets.total

    def spouse_age_at(self, age: int) -> int | None:
        if self.spouse is None:
            return None
        return self.spouse.current_age + (age - self.current_age)

    def return_assumptions(self) -> ReturnAssumptions:
        return ReturnAssumptions(
            expected_return=self.market.expected_return,
            volatility=self.market.return_volatility,
            allocation=self.allocation,
            model=self.market.return_model,  # type: ignore[arg-type]
            regime_model=self.market.regime_model(),
            sequence_risk_years=self.market.sequence_risk_years,
            tail_degrees_of_freedom=self.market.tail_degrees_of_freedom,
        )

    def guardrail_config(self) -> GuardrailConfig:
        return replace(self.guardrails, enabled=self.use_guardrails)

    def with_buckets(self, buckets: AssetBuckets) -> HouseholdProfile:
        return replace(self, buckets=buckets)

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> HouseholdProfile:
        """Normalize a raw payload into a :class:`HouseholdProfile`.

        Args:
          payload: Mapping loaded from YAML or JSON. Missing optional fields
            receive the documented fallbacks.

        Returns:
          The normalized profile.

        Raises:
          ValidationError: If required fields are missing or fields cannot be
            converted to the expected type.
        """

        if not isinstance(payload, Mapping):
            raise ValidationError([FieldError("profile", "must be a mapping")])
        errors: list[FieldError] = []
        root = _Reader(payload, "", errors)
        for required in ("current_age", "retirement_age", "life_expectancy"):
            if not root.has(required):
                errors.append(FieldError(required, "is required"))
        current_age = root.integer("current_age")
        retirement_age = root.integer("retirement_age")
        life_expectancy = root.integer("life_expectancy")

        spouse = None
        if payload.get("spouse") is not None:
            raw = root.section("spouse")
            for required in ("current_age", "life_expectancy"):
                if not raw.has(required):
                    errors.append(FieldError(f"spouse.{required}", "is required"))
            spouse = SpouseProfile(
                current_age=raw.integer("current_age"),
                retirement_age=raw.integer("retirement_age", retirement_age),
                life_expectancy=raw.integer("life_expectancy"),
                social_security_benefit=raw.number("social_security_benefit"),
                social_security_claim_age=raw.integer("social_security_claim_age", DEFAULT_CLAIM_AGE),
                pension_benefit=raw.number("pension_benefit"),
                pension_survivorship_pct=raw.number(
                    "pension_survivorship_pct", DEFAULT_SURVIVORSHIP_PCT
                ),
                part_time_income=raw.number("part_time_income"),
                part_time_end_age=raw.optional_integer("part_time_end_age"),
            )

        raw_income = root.section("income")
        income = IncomeSources(
            social_security_benefit=raw_income.number("social_security_benefit"),
            social_security_claim_age=raw_income.integer(
                "social_security_claim_age", DEFAULT_CLAIM_AGE
            ),
            social_security_cola=raw_income.number("social_security_cola", DEFAULT_COLA),
            pension_benefit=raw_income.number("pension_benefit"),
            pension_start_age=raw_income.optional_integer("pension_start_age"),
            pension_survivorship_pct=raw_income.number(
                "pension_survivorship_pct", DEFAULT_SURVIVORSHIP_PCT
            ),
            part_time_income=raw_income.number("part_time_income"),
            part_time_end_age=raw_income.optional_integer("part_time_end_age"),
            other_income=raw_income.number("other_income"),
        )

        raw_expenses = root.section("expenses")
        expenses = ExpenseProfile(
            annual_retirement_expenses=raw_expenses.number("annual_retirement_expenses"),
            annual_healthcare_costs=raw_expenses.number("annual_healthcare_costs"),
            healthcare_inflation_rate=raw_expenses.number(
                "healthcare_inflation_rate", DEFAULT_HEALTHCARE_INFLATION
            ),
            expenses_include_healthcare=raw_expenses.flag("expenses_include_healthcare", True),
            survivor_expense_ratio=raw_expenses.number("survivor_expense_ratio", 1.0),
        )

        raw_assets = root.section("assets")
        buckets = AssetBuckets.from_mapping(
            {name: raw_assets.optional_number(name) for name in BUCKET_NAMES},
            total_assets=root.optional_number("current_retirement_assets"),
        )

        raw_contrib = root.section("contributions")
        contributions = Contributions(
            annual_savings=raw_contrib.number("annual_savings"),
            contribution_growth=raw_contrib.number("contribution_growth"),
        )

        raw_market = root.section("market")
        market = MarketAssumptions(
            expected_return=raw_market.number("expected_return", 0.07),
            return_volatility=raw_market.number("return_volatility", 0.15),
            inflation_rate=raw_market.number("inflation_rate", DEFAULT_INFLATION),
            return_model=raw_market.text("return_model", "portfolio"),
            use_regimes=raw_market.flag("use_regimes", False),
            sequence_risk_years=raw_market.integer("sequence_risk_years", 5),
            sequence_risk_multiplier=raw_market.number("sequence_risk_multiplier", 1.5),
            tail_degrees_of_freedom=raw_market.optional_number("tail_degrees_of_freedom"),
        )
        if market.return_model not in ("portfolio", "asset_class"):
            errors.append(FieldError("market.return_model", "must be 'portfolio' or 'asset_class'"))
            market = replace(market, return_model="portfolio")

        horizon = life_expectancy
        if spouse is not None:
            horizon = max(horizon, current_age + spouse.life_expectancy - spouse.current_age)
        raw_alloc = root.section("allocation")
        stocks = raw_alloc.number("stocks", 0.6)
        glide = None
        if raw_alloc.has("glide_path"):
            raw_glide = raw_alloc.section("glide_path")
            glide = GlidePath(
                start_stock=raw_glide.number("start_stock", stocks),
                end_stock=raw_glide.number("end_stock", 0.3),
                start_age=raw_glide.integer("start_age", current_age),
                end_age=raw_glide.integer("end_age", horizon),
            )
        allocation = Allocation(
            stocks=stocks,
            bonds=raw_alloc.number("bonds", 0.35),
            cash=raw_alloc.number("cash", 0.05),
            glide_path=glide,
        )

        default_status = "married" if spouse is not None else "single"
        status_text = root.text("filing_status", default_status)
        try:
            filing_status: str = normalise_filing_status(status_text)
        except ValueError:
            errors.append(FieldError("filing_status", f"unsupported value {status_text!r}"))
            filing_status = default_status

        tax_method = root.text("tax_method", DEFAULT_TAX_METHOD).lower()
        if tax_method not in ("brackets", "flat"):
            errors.append(FieldError("tax_method", "must be 'brackets' or 'flat'"))
            tax_method = DEFAULT_TAX_METHOD

        use_guardrails = root.flag("use_guardrails", True)
        raw_guardrails = payload.get("guardrails")
        try:
            guardrails = GuardrailConfig.from_mapping(
                raw_guardrails if isinstance(raw_guardrails, Mapping) else None,
                enabled=use_guardrails,
            )
        except (TypeError, ValueError) as exc:
            errors.append(FieldError("guardrails", str(exc)))
            guardrails = GuardrailConfig(enabled=use_guardrails)

        profile = cls(
            current_age=current_age,
            retirement_age=retirement_age,
            life_expectancy=life_expectancy,
            spouse=spouse,
            income=income,
            expenses=expenses,
            buckets=buckets,
            contributions=contributions,
            allocation=allocation,
            market=market,
            filing_status=filing_status,
            state=root.text("state", DEFAULT_STATE).upper(),
            tax_method=tax_method,
            tax_rate=root.number("tax_rate", DEFAULT_TAX_RATE),
            capital_gains_basis_ratio=root.number("capital_gains_basis_ratio", DEFAULT_BASIS_RATIO),
            prior_magi=root.optional_number("prior_magi"),
            withdrawal_rate=root.number("withdrawal_rate", DEFAULT_WITHDRAWAL_RATE),
            use_guardrails=use_guardrails,
            guardrails=guardrails,
            has_ltc_insurance=root.flag("has_ltc_insurance", False),
            ltc_modeling=root.flag("ltc_modeling", False),
            start_year=root.integer("start_year", DEFAULT_START_YEAR),
        )
        if errors:
            raise ValidationError(errors)
        return profile


def load_profile(path: Path | str) -> HouseholdProfile:
    """Load and normalize a profile stored as YAML."""

    payload = read_yaml(path)
    if not isinstance(payload, Mapping):
        raise ValidationError([FieldError("profile", f"{path} must contain a mapping")])
    return HouseholdProfile.from_mapping(payload)
