"""Tax-aware withdrawal sequencing across the four asset buckets.

The sequencer takes the required minimum distribution first, then covers the
rest of the year's cash need from cash equivalents, the taxable brokerage
bucket, additional tax-deferred withdrawals and finally tax-free balances. The
taxes caused by the withdrawals are themselves withdrawn: the gross amount is
found by fixed-point iteration.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field

from nestegg.engine.income.social_security import GuaranteedIncome
from nestegg.engine.logging import setup_logger
from nestegg.engine.tax.engine import TaxBreakdown, compute_year_taxes
from nestegg.engine.tax.states import StateTaxConfig
from nestegg.engine.withdrawals.buckets import AssetBuckets

LOG = setup_logger(__name__)

__all__ = [
    "WITHDRAWAL_ORDER",
    "MAX_GROSS_UP_ITERATIONS",
    "GROSS_UP_TOLERANCE",
    "TaxContext",
    "WithdrawalResult",
    "WithdrawalSequencer",
]

WITHDRAWAL_ORDER: tuple[str, ...] = ("cash_equivalents", "capital_gains", "tax_deferred", "tax_free")
MAX_GROSS_UP_ITERATIONS = 20
GROSS_UP_TOLERANCE = 1.0
# Unmet need below one cent is treated as rounding noise.
SHORTFALL_EPSILON = 0.01


@dataclass(frozen=True)
class TaxContext:
    """Household tax situation for one simulated year.

    Attributes:
      filing_status: ``single`` or ``married``.
      state: State of residence.
      age: Age of the account owner.
      spouse_age: Age of the living spouse, if any.
      is_retired: Enables state retirement-income exclusions.
      method: ``brackets`` or ``flat``.
      flat_rate: Effective rate of the flat method.
      inflation_index: Cumulative price level since the first simulated
        year; tax thresholds are indexed by it.
      state_tables: Optional replacement state tables.
    """

    filing_status: str = "single"
    state: str | None = None
    age: int | None = None
    spouse_age: int | None = None
    is_retired: bool = True
    method: str = "brackets"
    flat_rate: float = 0.0
    inflation_index: float = 1.0
    state_tables: Mapping[str, StateTaxConfig] | None = None

    def taxes(
        self,
        *,
        ordinary_income: float,
        social_security: float,
        capital_gains: float,
        retirement_income: float,
    ) -> TaxBreakdown:
        """Taxes on nominal amounts with thresholds indexed to inflation."""

        index = self.inflation_index if self.inflation_index > 0.0 else 1.0
        real = compute_year_taxes(
            ordinary_income=ordinary_income / index,
            social_security=social_security / index,
            capital_gains=capital_gains / index,
            retirement_income=retirement_income / index,
            filing_status=self.filing_status,
            state=self.state,
            is_retired=self.is_retired,
            age=self.age,
            spouse_age=self.spouse_age,
            method=self.method,
            flat_rate=self.flat_rate,
            state_tables=self.state_tables,
        )
        return TaxBreakdown(
            federal=real.federal * index,
            state=real.state * index,
            capital_gains=real.capital_gains * index,
            niit=real.niit * index,
            taxable_social_security=real.taxable_social_security * index,
            magi=real.magi * index,
        )


@dataclass(frozen=True)
class WithdrawalResult:
    """Outcome of sequencing one year's withdrawals.

    Attributes:
      withdrawals: Amount taken from each bucket, RMD included.
      buckets: Balances after withdrawals and RMD reinvestment.
      capital_gains_basis: Cost basis of the taxable bucket afterwards.
      rmd: Required minimum distribution taken.
      reinvested: After-tax RMD excess moved into the taxable bucket.
      ordinary_income: Taxable ordinary income including guaranteed income.
      realized_gains: Long-term gains realized by taxable-bucket sales.
      taxes: Tax breakdown for the year.
      shortfall: Cash need left unmet after every bucket was exhausted.
      iterations: Gross-up iterations used.
      converged: ``False`` when the gross-up hit the iteration cap.
    """

    withdrawals: AssetBuckets
    buckets: AssetBuckets
    capital_gains_basis: float
    rmd: float
    reinvested: float
    ordinary_income: float
    realized_gains: float
    taxes: TaxBreakdown
    shortfall: float
    iterations: int
    converged: bool

    @property
    def total_withdrawal(self) -> float:
        return self.withdrawals.total

    @property
    def spent(self) -> float:
        """Withdrawals that left the portfolio."""

        return self.withdrawals.total - self.reinvested

    @property
    def depleted(self) -> bool:
        return self.shortfall > SHORTFALL_EPSILON


@dataclass
class _Draw:
    amounts: dict[str, float] = field(default_factory=dict)
    realized_gains: float = 0.0
    basis_used: float = 0.0


def _draw(
    cash_needed: float,
    buckets: AssetBuckets,
    basis: float,
    rmd: float,
) -> _Draw:
    """Allocate ``cash_needed`` across buckets after crediting the RMD."""

    draw = _Draw(amounts={name: 0.0 for name in WITHDRAWAL_ORDER})
    draw.amounts["tax_deferred"] = rmd
    remaining = max(cash_needed - rmd, 0.0)
    for name in WITHDRAWAL_ORDER:
        if remaining <= 0.0:
            break
        available = getattr(buckets, name) - draw.amounts[name]
        if available <= 0.0:
            continue
        amount = min(available, remaining)
        draw.amounts[name] += amount
        remaining -= amount
    sold = draw.amounts["capital_gains"]
    if sold > 0.0 and buckets.capital_gains > 0.0:
        basis_share = min(max(basis / buckets.capital_gains, 0.0), 1.0)
        draw.basis_used = sold * basis_share
        draw.realized_gains = sold - draw.basis_used
    return draw


class WithdrawalSequencer:
    """Cover a year's net spending need from the asset buckets.

    Args:
      max_iterations: Cap on gross-up iterations.
      tolerance: Convergence tolerance on taxes in dollars.
    """

    def __init__(
        self,
        *,
        max_iterations: int = MAX_GROSS_UP_ITERATIONS,
        tolerance: float = GROSS_UP_TOLERANCE,
    ) -> None:
        if max_iterations < 1:
            raise ValueError("max_iterations must be >= 1")
        self.max_iterations = max_iterations
        self.tolerance = tolerance

    def withdraw(
        self,
        *,
        expenses: float,
        income: GuaranteedIncome,
        buckets: AssetBuckets,
        capital_gains_basis: float,
        rmd: float,
        context: TaxContext,
    ) -> WithdrawalResult:
        """Sequence withdrawals for one year.

        Args:
          expenses: Total spending for the year including IRMAA and care.
          income: Guaranteed income received during the year.
          buckets: Balances after this year's market return.
          capital_gains_basis: Cost basis of the taxable bucket.
          rmd: Required minimum distribution for the year.
          context: Tax situation of the household.

        Returns:
          The :class:`WithdrawalResult`; the buckets it reports are never
          negative.
        """

        rmd = min(max(rmd, 0.0), max(buckets.tax_deferred, 0.0))
        tax_total = 0.0
        converged = False
        iterations = 0
        draw = _Draw()
        taxes = TaxBreakdown()
        for iterations in range(1, self.max_iterations + 1):
            cash_needed = max(expenses + tax_total - income.total, 0.0)
            draw = _draw(cash_needed, buckets, capital_gains_basis, rmd)
            deferred = draw.amounts["tax_deferred"]
            taxes = context.taxes(
                ordinary_income=income.ordinary + deferred,
                social_security=income.social_security,
                capital_gains=draw.realized_gains,
                retirement_income=income.pension + deferred,
            )
            if abs(taxes.total - tax_total) <= self.tolerance:
                converged = True
                tax_total = taxes.total
                break
            tax_total = taxes.total
        if not converged:
            LOG.debug("Gross-up did not converge after %d iterations", iterations)

        cash_needed = max(expenses + tax_total - income.total, 0.0)
        # Final draw uses the converged tax total.
        draw = _draw(cash_needed, buckets, capital_gains_basis, rmd)
        drawn = sum(draw.amounts.values())
        reinvested = max(drawn - cash_needed, 0.0) if rmd > 0.0 else 0.0
        reinvested = min(reinvested, rmd)
        balances = {
            name: max(getattr(buckets, name) - draw.amounts[name], 0.0) for name in WITHDRAWAL_ORDER
        }
        basis = max(capital_gains_basis - draw.basis_used, 0.0)
        balances["capital_gains"] += reinvested
        basis += reinvested
        shortfall = max(cash_needed - (drawn - reinvested), 0.0)
        return WithdrawalResult(
            withdrawals=AssetBuckets(**draw.amounts),
            buckets=AssetBuckets(**balances),
            capital_gains_basis=basis,
            rmd=rmd,
            reinvested=reinvested,
            ordinary_income=income.ordinary + draw.amounts["tax_deferred"],
            realized_gains=draw.realized_gains,
            taxes=taxes,
            shortfall=shortfall if shortfall > SHORTFALL_EPSILON else 0.0,
            iterations=iterations,
            converged=converged,
        )
