"""Single-trial lifetime simulation.

A trial walks the household from the current age to the planning horizon one
year at a time. Every year the market return is applied first; before
retirement savings are then added, after retirement guaranteed income,
spending, the guardrail policy and the withdrawal sequencer determine what
leaves the portfolio. A trial is a pure function of the profile, the master
seed and the trial index.
"""

from __future__ import annotations

import math
from collections.abc import Mapping
from dataclasses import dataclass, field, replace
from typing import Any

import numpy as np

from nestegg.engine.errors import ComputationError
from nestegg.engine.income.ltc import LtcEvent, ltc_cost_for_year, sample_ltc_event
from nestegg.engine.income.social_security import (
    GuaranteedIncome,
    part_time_income,
    pension_benefit,
    social_security_benefit,
    survivor_benefit,
)
from nestegg.engine.markets.returns import ReturnGenerator, ReturnPath
from nestegg.engine.profile import CONTRIBUTION_SPLIT, HouseholdProfile
from nestegg.engine.tax.engine import irmaa_surcharge, medicare_enrollees
from nestegg.engine.tax.states import StateTaxConfig
from nestegg.engine.tax.tables import IRMAA_LOOKBACK_YEARS
from nestegg.engine.utils.rand import antithetic_source, trial_generators
from nestegg.engine.withdrawals.buckets import BUCKET_NAMES, AssetBuckets
from nestegg.engine.withdrawals.guardrails import GuardrailPolicy
from nestegg.engine.withdrawals.rmd import required_minimum_distribution
from nestegg.engine.withdrawals.sequencer import TaxContext, WithdrawalResult, WithdrawalSequencer

__all__ = [
    "CONSERVATION_TOLERANCE",
    "YearlyCashFlow",
    "ScenarioState",
    "ScenarioOutcome",
    "ScenarioRunner",
    "run_scenario",
]

CONSERVATION_TOLERANCE = 1e-6
_NEGATIVE_TOLERANCE = 1e-9
_ULP_FLOOR = 64


@dataclass(frozen=True)
class YearlyCashFlow:
    """Cash flows of one simulated year in nominal dollars."""

    year_index: int
    year: int
    age: int
    spouse_age: int | None
    social_security: float
    pension: float
    part_time: float
    other_income: float
    core_expenses: float
    healthcare: float
    ltc: float
    irmaa: float
    contributions: float
    withdrawal: float
    withdrawals: Mapping[str, float]
    rmd: float
    reinvested: float
    federal_tax: float
    state_tax: float
    capital_gains_tax: float
    portfolio_return: float
    balance: float
    buckets: Mapping[str, float]
    guardrail: str | None
    regime: str | None
    depleted: bool
    survivor: bool
    retired: bool

    @property
    def guaranteed_income(self) -> float:
        return self.social_security + self.pension + self.part_time + self.other_income

    @property
    def expenses(self) -> float:
        return self.core_expenses + self.healthcare + self.ltc + self.irmaa

    @property
    def taxes(self) -> float:
        return self.federal_tax + self.state_tax + self.capital_gains_tax

    def as_record(self) -> dict[str, Any]:
        """Flatten into a single-level mapping suitable for a DataFrame row."""

        record: dict[str, Any] = {
            "year_index": self.year_index,
            "year": self.year,
            "age": self.age,
            "spouse_age": self.spouse_age,
            "social_security": self.social_security,
            "pension": self.pension,
            "part_time": self.part_time,
            "other_income": self.other_income,
            "core_expenses": self.core_expenses,
            "healthcare": self.healthcare,
            "ltc": self.ltc,
            "irmaa": self.irmaa,
            "contributions": self.contributions,
            "withdrawal": self.withdrawal,
            "rmd": self.rmd,
            "reinvested": self.reinvested,
            "federal_tax": self.federal_tax,
            "state_tax": self.state_tax,
            "capital_gains_tax": self.capital_gains_tax,
            "portfolio_return": self.portfolio_return,
            "balance": self.balance,
            "guardrail": self.guardrail,
            "regime": self.regime,
            "depleted": self.depleted,
            "survivor": self.survivor,
            "retired": self.retired,
        }
        for name in BUCKET_NAMES:
            record[f"withdrawal_{name}"] = self.withdrawals.get(name, 0.0)
            record[f"balance_{name}"] = self.buckets.get(name, 0.0)
        return record


@dataclass
class ScenarioState:
    """Mutable per-trial state, discarded when the trial ends."""

    buckets: AssetBuckets
    capital_gains_basis: float
    inflation_index: float = 1.0
    healthcare_index: float = 1.0
    spending_index: float = 1.0
    spending_factor: float = 1.0
    plan_portfolio: float | None = None
    retirement_balance: float | None = None
    retirement_inflation_index: float = 1.0
    prior_return: float | None = None
    regime: str | None = None
    real_magi: list[float] = field(default_factory=list)
    guardrail_history: list[tuple[int, str]] = field(default_factory=list)
    depleted: bool = False
    depletion_year: int | None = None
    depletion_age: int | None = None
    clamps: list[str] = field(default_factory=list)


@dataclass(frozen=True)
class ScenarioOutcome:
    """Result of one trial.

    Attributes:
      trial_index: Index of the trial within the run.
      ending_balance: Portfolio value at the end of the horizon.
      balances: End-of-year portfolio value for every simulated year.
      returns: Portfolio return applied in every simulated year.
      depleted: Whether the portfolio ran out with unmet need.
      depletion_year: Years from the first simulated year to depletion.
      depletion_age: Primary age in the depletion year.
      clamps: Numeric edge cases clamped during the trial.
      guardrail_events: ``(year_index, rule)`` pairs of fired guardrails.
      cash_flows: Yearly cash flows when requested.
    """

    trial_index: int
    ending_balance: float
    balances: np.ndarray
    returns: np.ndarray
    depleted: bool
    depletion_year: int | None
    depletion_age: int | None
    clamps: tuple[str, ...] = ()
    guardrail_events: tuple[tuple[int, str], ...] = ()
    cash_flows: tuple[YearlyCashFlow, ...] | None = None

    @property
    def success(self) -> bool:
        return not self.depleted


class ScenarioRunner:
    """Run trials of one profile.

    Args:
      profile: Validated household profile.
      master_seed: Seed shared by every trial of the run.
      antithetic: Pair trials ``(2k, 2k + 1)`` with mirrored shocks.
      withdrawal_rate_override: Replace the expense-driven need by this rate
        times the portfolio at retirement, inflation adjusted.
      sequencer: Optional custom :class:`WithdrawalSequencer`.
      state_tables: Optional replacement state tax tables.
    """

    def __init__(
        self,
        profile: HouseholdProfile,
        *,
        master_seed: int,
        antithetic: bool = False,
        withdrawal_rate_override: float | None = None,
        sequencer: WithdrawalSequencer | None = None,
        state_tables: Mapping[str, StateTaxConfig] | None = None,
    ) -> None:
        self.profile = profile
        self.master_seed = int(master_seed)
        self.antithetic = antithetic
        self.withdrawal_rate_override = withdrawal_rate_override
        self.sequencer = sequencer or WithdrawalSequencer()
        self.state_tables = state_tables
        self.assumptions = profile.return_assumptions()
        guardrails = profile.guardrail_config()
        if withdrawal_rate_override is not None:
            guardrails = replace(guardrails, enabled=False)
        self.policy = GuardrailPolicy(guardrails)
        self.ages = tuple(range(profile.current_age, profile.horizon_age + 1))

    def draw_returns(self, trial_index: int) -> tuple[ReturnPath, dict[str, np.random.Generator], bool]:
        source, mirrored = antithetic_source(trial_index, self.antithetic)
        generators = trial_generators(self.master_seed, source)
        generator = ReturnGenerator.from_generators(
            self.assumptions, generators, antithetic=mirrored
        )
        return generator.draw(self.ages, self.profile.retirement_age), generators, mirrored

    def _ltc_events(
        self, generators: Mapping[str, np.random.Generator], mirrored: bool
    ) -> tuple[LtcEvent | None, LtcEvent | None]:
        profile = self.profile
        if not profile.ltc_modeling:
            return None, None
        rng = generators["ltc"]
        primary_ages = [age for age in self.ages if age <= profile.life_expectancy]
        primary = sample_ltc_event(rng, primary_ages, antithetic=mirrored)
        spouse = None
        if profile.spouse is not None:
            spouse_ages = [
                profile.spouse_age_at(age)
                for age in self.ages
                if profile.spouse_age_at(age) <= profile.spouse.life_expectancy
            ]
            spouse = sample_ltc_event(rng, spouse_ages, antithetic=mirrored)
        return primary, spouse

    def _income(
        self,
        year_index: int,
        age: int,
        spouse_age: int | None,
        primary_alive: bool,
        spouse_alive: bool,
        inflation_index: float,
    ) -> GuaranteedIncome:
        profile = self.profile
        income = profile.income
        spouse = profile.spouse
        cola = income.social_security_cola

        def primary_benefit(at_age: int) -> float:
            return social_security_benefit(
                income.social_security_benefit,
                income.social_security_claim_age,
                at_age,
                cola,
                cola_years=year_index,
            )

        def spouse_benefit(at_age: int) -> float:
            if spouse is None:
                return 0.0
            return social_security_benefit(
                spouse.social_security_benefit,
                spouse.social_security_claim_age,
                at_age,
                cola,
                cola_years=year_index,
            )

        social_security = 0.0
        pension = 0.0
        part_time = 0.0
        if primary_alive:
            own = primary_benefit(age)
            if (
                spouse is not None
                and spouse_age is not None
                and not spouse_alive
                and age >= income.social_security_claim_age
            ):
                deceased = spouse_benefit(max(spouse_age, spouse.social_security_claim_age))
                own = survivor_benefit(own, deceased)
            social_security += own
            part_time += part_time_income(income.part_time_income, age, income.part_time_end_age)
        if spouse is not None and spouse_age is not None and spouse_alive:
            own = spouse_benefit(spouse_age)
            if not primary_alive and spouse_age >= spouse.social_security_claim_age:
                deceased = primary_benefit(max(age, income.social_security_claim_age))
                own = survivor_benefit(own, deceased)
            social_security += own
            if spouse_age >= spouse.retirement_age:
                part_time += part_time_income(
                    spouse.part_time_income, spouse_age, spouse.part_time_end_age
                )
        pension_start = income.pension_start_age or profile.retirement_age
        if primary_alive or spouse_alive:
            pension += pension_benefit(
                income.pension_benefit,
                started=age >= pension_start,
                holder_alive=primary_alive,
                survivorship_pct=income.pension_survivorship_pct,
            )
        if spouse is not None and spouse_age is not None and (primary_alive or spouse_alive):
            pension += pension_benefit(
                spouse.pension_benefit,
                started=spouse_age >= spouse.retirement_age,
                holder_alive=spouse_alive,
                survivorship_pct=spouse.pension_survivorship_pct,
            )
        return GuaranteedIncome(
            social_security=social_security,
            pension=pension,
            part_time=part_time * inflation_index,
            other=income.other_income,
        )

    def _lookback_magi(self, state: ScenarioState, year_index: int) -> float:
        lookback = year_index - IRMAA_LOOKBACK_YEARS
        if lookback < 0 or lookback >= len(state.real_magi):
            return self.profile.prior_magi or 0.0
        return state.real_magi[lookback]

    def run(self, trial_index: int, *, keep_cash_flows: bool = False) -> ScenarioOutcome:
        """Simulate one trial.

        Args:
          trial_index: Index of the trial; selects the random streams.
          keep_cash_flows: Attach the yearly cash flows to the outcome.

        Returns:
          The :class:`ScenarioOutcome`.

        Raises:
          ComputationError: If bucket conservation or non-negativity breaks.
        """

        profile = self.profile
        path, generators, mirrored = self.draw_returns(trial_index)
        ltc_primary, ltc_spouse = self._ltc_events(generators, mirrored)
        buckets = profile.buckets
        state = ScenarioState(
            buckets=buckets,
            capital_gains_basis=buckets.capital_gains * profile.capital_gains_basis_ratio,
        )
        inflation = profile.market.inflation_rate
        healthcare_inflation = profile.expenses.healthcare_inflation_rate
        spouse = profile.spouse
        flows: list[YearlyCashFlow] = []
        balances = np.zeros(len(self.ages), dtype="float64")
        retired_before = False

        for idx, age in enumerate(self.ages):
            spouse_age = profile.spouse_age_at(age)
            primary_alive = age <= profile.life_expectancy
            spouse_alive = (
                spouse is not None
                and spouse_age is not None
                and spouse_age <= spouse.life_expectancy
            )
            survivor = spouse is not None and (primary_alive != spouse_alive)
            if idx > 0:
                state.inflation_index *= 1.0 + inflation
                state.healthcare_index *= 1.0 + healthcare_inflation

            r = float(path.returns[idx])
            state.regime = path.regimes[idx]
            start_total = state.buckets.total
            rmd_base = state.buckets.tax_deferred
            state.buckets = state.buckets.scaled(1.0 + r)
            if state.plan_portfolio is not None:
                state.plan_portfolio *= 1.0 + r
            retired = age >= profile.retirement_age

            if not retired:
                contribution = profile.contributions.amount(idx)
                deferred, free, taxable = CONTRIBUTION_SPLIT
                state.buckets = AssetBuckets(
                    tax_deferred=state.buckets.tax_deferred + contribution * deferred,
                    tax_free=state.buckets.tax_free + contribution * free,
                    capital_gains=state.buckets.capital_gains + contribution * taxable,
                    cash_equivalents=state.buckets.cash_equivalents,
                )
                state.capital_gains_basis += contribution * taxable
                state.spending_index = state.inflation_index
                state.real_magi.append(profile.prior_magi or 0.0)
                self._check_conservation(idx, start_total, r, contribution, 0.0, state.buckets)
                balances[idx] = state.buckets.total
                state.prior_return = r
                if keep_cash_flows:
                    flows.append(
                        self._flow(
                            idx, age, spouse_age, r, state, GuaranteedIncome(), 0.0, 0.0, 0.0, 0.0,
                            contribution, None, None, survivor, retired,
                        )
                    )
                continue

            first_retired_year = not retired_before
            retired_before = True
            if first_retired_year:
                state.spending_index = state.inflation_index
                state.retirement_balance = state.buckets.total
                state.retirement_inflation_index = state.inflation_index
            elif not self.policy.skip_inflation(state.prior_return):
                state.spending_index *= 1.0 + inflation

            income = self._income(
                idx, age, spouse_age, primary_alive, spouse_alive, state.inflation_index
            )
            survivor_ratio = profile.expenses.survivor_expense_ratio if survivor else 1.0
            healthcare = profile.expenses.healthcare * state.healthcare_index * survivor_ratio
            ltc = 0.0
            if primary_alive:
                ltc += ltc_cost_for_year(
                    ltc_primary, age, state.healthcare_index, insured=profile.has_ltc_insurance
                )
            if spouse_alive and spouse_age is not None:
                ltc += ltc_cost_for_year(
                    ltc_spouse, spouse_age, state.healthcare_index, insured=profile.has_ltc_insurance
                )
            filing_status = profile.filing_status if not survivor else "single"
            enrollees = medicare_enrollees(
                age if primary_alive else None, spouse_age if spouse_alive else None
            )
            irmaa = 0.0
            if enrollees:
                irmaa = (
                    irmaa_surcharge(self._lookback_magi(state, idx), filing_status)
                    * enrollees
                    * state.inflation_index
                )

            adjustment = None
            if self.withdrawal_rate_override is not None:
                base = state.retirement_balance or 0.0
                core = (
                    self.withdrawal_rate_override
                    * base
                    * state.inflation_index
                    / state.retirement_inflation_index
                )
                healthcare = ltc = irmaa = 0.0
                expenses = core + income.total
            else:
                core_base = profile.expenses.core * state.spending_index * survivor_ratio
                core = core_base * state.spending_factor
                if first_retired_year:
                    self._open_plan(state, core + healthcare + ltc - income.total)
                elif state.plan_portfolio is not None:
                    decision = self.policy.evaluate(
                        withdrawal=core + healthcare + ltc - income.total,
                        portfolio=state.plan_portfolio,
                        initial_rate=profile.withdrawal_rate,
                        remaining_years=len(self.ages) - idx,
                    )
                    if decision.adjustment is not None:
                        state.spending_factor *= decision.multiplier
                        state.guardrail_history.append((idx, decision.adjustment))
                        adjustment = decision.adjustment
                        core = core_base * state.spending_factor
                if state.plan_portfolio is not None:
                    planned = core + healthcare + ltc - income.total
                    state.plan_portfolio = max(state.plan_portfolio - planned, 0.0)
                expenses = core + healthcare + ltc + irmaa

            owner_age, owner_birth, beneficiary_age = self._rmd_owner(
                age, spouse_age, primary_alive, spouse_alive
            )
            rmd = required_minimum_distribution(rmd_base, owner_age, owner_birth, beneficiary_age)
            context = TaxContext(
                filing_status=filing_status,
                state=profile.state,
                age=owner_age,
                spouse_age=beneficiary_age,
                is_retired=True,
                method=profile.tax_method,
                flat_rate=profile.tax_rate,
                inflation_index=state.inflation_index,
                state_tables=self.state_tables,
            )
            result = self.sequencer.withdraw(
                expenses=expenses,
                income=income,
                buckets=state.buckets,
                capital_gains_basis=state.capital_gains_basis,
                rmd=rmd,
                context=context,
            )
            if not result.converged:
                state.clamps.append(f"year {idx}: gross-up did not converge")
            state.buckets = result.buckets
            state.capital_gains_basis = result.capital_gains_basis
            state.real_magi.append(result.taxes.magi / state.inflation_index)
            self._check_conservation(idx, start_total, r, 0.0, result.spent, state.buckets)
            if result.depleted and not state.depleted:
                state.depleted = True
                state.depletion_year = idx
                state.depletion_age = age
            balances[idx] = state.buckets.total
            state.prior_return = r
            if keep_cash_flows:
                flows.append(
                    self._flow(
                        idx, age, spouse_age, r, state, income, core, healthcare, ltc, irmaa,
                        0.0, result, adjustment, survivor, retired,
                    )
                )

        ending = float(balances[-1]) if len(balances) else state.buckets.total
        return ScenarioOutcome(
            trial_index=trial_index,
            ending_balance=ending,
            balances=balances,
            returns=np.asarray(path.returns, dtype="float64"),
            depleted=state.depleted,
            depletion_year=state.depletion_year,
            depletion_age=state.depletion_age,
            clamps=tuple(state.clamps),
            guardrail_events=tuple(state.guardrail_history),
            cash_flows=tuple(flows) if keep_cash_flows else None,
        )

    def _open_plan(self, state: ScenarioState, planned: float) -> None:
        """Start the plan portfolio the guardrail rules are measured against.

        The plan portfolio is the first retired year's net need divided by the
        profile's withdrawal rate. It then follows the trial's returns and the
        guardrail-adjusted need, independent of the household's actual
        balances, so every starting wealth sees the same spending path.
        """

        if not self.policy.enabled or planned <= 0.0 or self.profile.withdrawal_rate <= 0.0:
            return
        state.plan_portfolio = planned / self.profile.withdrawal_rate

    def _rmd_owner(
        self,
        age: int,
        spouse_age: int | None,
        primary_alive: bool,
        spouse_alive: bool,
    ) -> tuple[int, int, int | None]:
        profile = self.profile
        if primary_alive or profile.spouse is None or spouse_age is None:
            return age, profile.birth_year, spouse_age if spouse_alive else None
        return spouse_age, profile.spouse_birth_year or profile.birth_year, None

    def _check_conservation(
        self,
        year_index: int,
        start_total: float,
        r: float,
        contributions: float,
        spent: float,
        buckets: AssetBuckets,
    ) -> None:
        for name, value in buckets.as_dict().items():
            if value < -_NEGATIVE_TOLERANCE or math.isnan(value):
                raise ComputationError(f"year {year_index}: bucket {name} is negative ({value})")
        expected = start_total * (1.0 + r) + contributions - spent
        # Absolute bound; the ulp floor only matters above roughly $1e8.
        tolerance = max(CONSERVATION_TOLERANCE, _ULP_FLOOR * float(np.spacing(abs(expected))))
        if abs(buckets.total - expected) > tolerance:
            raise ComputationError(
                f"year {year_index}: bucket total {buckets.total:.6f} != expected {expected:.6f}"
            )

    def _flow(
        self,
        idx: int,
        age: int,
        spouse_age: int | None,
        r: float,
        state: ScenarioState,
        income: GuaranteedIncome,
        core: float,
        healthcare: float,
        ltc: float,
        irmaa: float,
        contributions: float,
        result: WithdrawalResult | None,
        adjustment: str | None,
        survivor: bool,
        retired: bool,
    ) -> YearlyCashFlow:
        withdrawals = result.withdrawals.as_dict() if result is not None else {}
        taxes = result.taxes if result is not None else None
        return YearlyCashFlow(
            year_index=idx,
            year=self.profile.start_year + idx,
            age=age,
            spouse_age=spouse_age,
            social_security=income.social_security,
            pension=income.pension,
            part_time=income.part_time,
            other_income=income.other,
            core_expenses=core,
            healthcare=healthcare,
            ltc=ltc,
            irmaa=irmaa,
            contributions=contributions,
            withdrawal=result.total_withdrawal if result is not None else 0.0,
            withdrawals=withdrawals,
            rmd=result.rmd if result is not None else 0.0,
            reinvested=result.reinvested if result is not None else 0.0,
            federal_tax=taxes.federal if taxes is not None else 0.0,
            state_tax=taxes.state if taxes is not None else 0.0,
            capital_gains_tax=(taxes.capital_gains + taxes.niit) if taxes is not None else 0.0,
            portfolio_return=r,
            balance=state.buckets.total,
            buckets=state.buckets.as_dict(),
            guardrail=adjustment,
            regime=state.regime,
            depleted=state.depleted,
            survivor=survivor,
            retired=retired,
        )


def run_scenario(
    profile: HouseholdProfile,
    seed: int,
    trial_index: int = 0,
    *,
    antithetic: bool = False,
    withdrawal_rate_override: float | None = None,
    keep_cash_flows: bool = True,
) -> ScenarioOutcome:
    """Run a single trial of ``profile``."""

    runner = ScenarioRunner(
        profile,
        master_seed=seed,
        antithetic=antithetic,
        withdrawal_rate_override=withdrawal_rate_override,
    )
    return runner.run(trial_index, keep_cash_flows=keep_cash_flows)
