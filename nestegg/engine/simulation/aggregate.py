"""Monte Carlo aggregation of independent retirement trials."""

from __future__ import annotations

import math
import time
from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field, replace
from typing import Any

import numpy as np
import pandas as pd

from nestegg import __version__
from nestegg.engine.errors import SimulationCancelled, StatisticalWarning
from nestegg.engine.logging import setup_logger
from nestegg.engine.profile import HouseholdProfile
from nestegg.engine.simulation.pool import ExecutorKind, TrialPool, make_batches
from nestegg.engine.simulation.risk import RiskMetrics, risk_metrics
from nestegg.engine.simulation.scenario import ScenarioOutcome, ScenarioRunner, YearlyCashFlow
from nestegg.engine.simulation.swr import estimate_safe_withdrawal_rate
from nestegg.engine.tax.states import StateTaxConfig
from nestegg.engine.utils.display import format_probability
from nestegg.engine.utils.rand import seed_for_stream
from nestegg.engine.validate import ensure_valid_profile

LOG = setup_logger(__name__)

__all__ = [
    "PERCENTILES",
    "MIN_RELIABLE_TRIALS",
    "MAX_STANDARD_ERROR",
    "SimulationOptions",
    "SimulationResult",
    "MonteCarloAggregator",
    "percentile_summary",
    "yearly_percentile_bands",
    "run_monte_carlo",
]

PERCENTILES: tuple[int, ...] = (10, 25, 50, 75, 90)
MIN_RELIABLE_TRIALS = 100
MAX_STANDARD_ERROR = 0.05


@dataclass(frozen=True)
class SimulationOptions:
    """Run-level settings of a Monte Carlo simulation.

    Attributes:
      trials: Number of trials, at least one.
      seed: Master seed; ``None`` reads the ``simulation`` stream seed.
      antithetic: Pair trials with mirrored shocks.
      workers: Worker processes or threads; 1 runs inline.
      executor: ``"process"`` or ``"thread"``.
      batch_size: Trials per submitted batch.
      keep_yearly_bands: Retain the trials x years balance matrix for bands.
      keep_cash_flows: Attach the representative trial's yearly cash flows.
      estimate_safe_withdrawal_rate: Run the safe-withdrawal-rate search.
      swr_trials: Trials per success evaluation of the search.
      swr_target: Success probability targeted by the search.
    """

    trials: int = 1000
    seed: int | None = None
    antithetic: bool = False
    workers: int = 1
    executor: ExecutorKind = "process"
    batch_size: int = 250
    keep_yearly_bands: bool = True
    keep_cash_flows: bool = True
    estimate_safe_withdrawal_rate: bool = False
    swr_trials: int = 200
    swr_target: float = 0.80

    def __post_init__(self) -> None:
        if self.trials < 1:
            raise ValueError("trials must be >= 1")
        if self.batch_size < 1:
            raise ValueError("batch_size must be >= 1")
        if not 0.0 < self.swr_target <= 1.0:
            raise ValueError("swr_target must lie in (0, 1]")

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> SimulationOptions:
        """Build options from a YAML mapping using the field names as keys."""

        seed = payload.get("seed")
        return cls(
            trials=int(payload.get("trials", 1000)),
            seed=None if seed is None else int(seed),
            antithetic=bool(payload.get("antithetic", False)),
            workers=int(payload.get("workers", 1)),
            executor=str(payload.get("executor", "process")),  # type: ignore[arg-type]
            batch_size=int(payload.get("batch_size", 250)),
            keep_yearly_bands=bool(payload.get("keep_yearly_bands", True)),
            keep_cash_flows=bool(payload.get("keep_cash_flows", True)),
            estimate_safe_withdrawal_rate=bool(payload.get("estimate_safe_withdrawal_rate", False)),
            swr_trials=int(payload.get("swr_trials", 200)),
            swr_target=float(payload.get("swr_target", 0.80)),
        )

    def resolved_seed(self) -> int:
        return int(self.seed) if self.seed is not None else seed_for_stream()


@dataclass(frozen=True)
class SimulationResult:
    """Aggregated outcome of a Monte Carlo run.

    Attributes:
      probability_of_success: Share of non-depleted trials as a 0-1 decimal.
      trials: Number of trials.
      successful_trials: Trials that never depleted.
      ending_percentiles: Ending-balance percentiles keyed by percentile.
      average_ending_balance: Mean ending balance.
      years_until_depletion: Depletion year of every depleted trial.
      mean_years_until_depletion: Mean of ``years_until_depletion`` or
        ``None`` when no trial depleted.
      safe_withdrawal_rate: Estimated safe withdrawal rate.
      yearly_bands: Per-year balance percentiles, when retained.
      warnings: Statistical caveats of the run.
      metadata: Seed, timing and run settings.
      yearly_cash_flows: Cash flows of the trial closest to the median.
      risk: Tail and drawdown statistics of the trials.
    """

    probability_of_success: float
    trials: int
    successful_trials: int
    ending_percentiles: dict[int, float]
    average_ending_balance: float
    years_until_depletion: tuple[int, ...]
    mean_years_until_depletion: float | None
    safe_withdrawal_rate: float
    yearly_bands: pd.DataFrame | None = None
    warnings: tuple[StatisticalWarning, ...] = ()
    metadata: dict[str, Any] = field(default_factory=dict)
    yearly_cash_flows: tuple[YearlyCashFlow, ...] | None = None
    risk: RiskMetrics | None = None

    @property
    def failed_trials(self) -> int:
        return self.trials - self.successful_trials

    @property
    def median_ending_balance(self) -> float:
        return self.ending_percentiles[50]

    @property
    def success_display(self) -> str:
        return format_probability(self.probability_of_success)

    def cash_flow_frame(self) -> pd.DataFrame:
        if not self.yearly_cash_flows:
            return pd.DataFrame()
        return pd.DataFrame([flow.as_record() for flow in self.yearly_cash_flows])

    def to_summary(self) -> dict[str, Any]:
        """JSON-friendly summary of the result."""

        return {
            "probability_of_success": self.probability_of_success,
            "trials": self.trials,
            "successful_trials": self.successful_trials,
            "failed_trials": self.failed_trials,
            "ending_percentiles": {f"p{key}": value for key, value in self.ending_percentiles.items()},
            "average_ending_balance": self.average_ending_balance,
            "mean_years_until_depletion": self.mean_years_until_depletion,
            "years_until_depletion": list(self.years_until_depletion),
            "safe_withdrawal_rate": self.safe_withdrawal_rate,
            "risk": self.risk.as_dict() if self.risk is not None else None,
            "warnings": [str(warning) for warning in self.warnings],
            "metadata": dict(self.metadata),
        }


def percentile_summary(values: Sequence[float] | np.ndarray) -> dict[int, float]:
    """Linear-interpolated percentiles of ``values`` at :data:`PERCENTILES`."""

    data = np.asarray(values, dtype="float64")
    if data.size == 0:
        return {p: 0.0 for p in PERCENTILES}
    points = np.percentile(data, PERCENTILES, method="linear")
    return {p: float(v) for p, v in zip(PERCENTILES, points, strict=True)}


def yearly_percentile_bands(
    balances: np.ndarray,
    ages: Sequence[int],
    start_year: int,
) -> pd.DataFrame:
    """Per-year balance percentiles over a ``trials x years`` matrix."""

    matrix = np.atleast_2d(np.asarray(balances, dtype="float64"))
    points = np.percentile(matrix, PERCENTILES, axis=0, method="linear")
    frame = pd.DataFrame(
        {
            "year_index": np.arange(matrix.shape[1]),
            "year": start_year + np.arange(matrix.shape[1]),
            "age": list(ages)[: matrix.shape[1]],
        }
    )
    for p, row in zip(PERCENTILES, points, strict=True):
        frame[f"p{p}"] = row
    frame["mean"] = matrix.mean(axis=0)
    return frame


class MonteCarloAggregator:
    """Run independent trials of a profile and aggregate their outcomes.

    Args:
      profile: Household profile; validated before any trial runs.
      state_tables: Optional replacement state tax tables.
    """

    def __init__(
        self,
        profile: HouseholdProfile,
        *,
        state_tables: Mapping[str, StateTaxConfig] | None = None,
    ) -> None:
        self.profile = profile
        self.state_tables = state_tables
        self._pool: TrialPool | None = None
        self._cancelled = False

    def run_trials(
        self,
        options: SimulationOptions,
        *,
        withdrawal_rate_override: float | None = None,
        trials: int | None = None,
    ) -> list[ScenarioOutcome]:
        """Run the trials of ``options`` and return them in index order."""

        count = options.trials if trials is None else trials
        if self._cancelled:
            self._cancelled = False
            raise SimulationCancelled("simulation cancelled before it started")
        with TrialPool(
            self.profile,
            master_seed=options.resolved_seed(),
            antithetic=options.antithetic,
            withdrawal_rate_override=withdrawal_rate_override,
            workers=options.workers,
            executor=options.executor,
            state_tables=self.state_tables,
        ) as pool:
            self._pool = pool
            try:
                return pool.run(make_batches(count, options.batch_size))
            finally:
                self._pool = None
                self._cancelled = False

    def cancel(self) -> None:
        """Cancel the running or next run, which then raises ``SimulationCancelled``.

        The cancellation is consumed by the run it stops; later runs on the same
        aggregator proceed normally.
        """

        self._cancelled = True
        if self._pool is not None:
            self._pool.cancel()

    def run(self, options: SimulationOptions | None = None) -> SimulationResult:
        """Validate the profile, run every trial and aggregate.

        Raises:
          ValidationError: If the profile is invalid; no trial runs.
          SimulationCancelled: If the underlying pool was cancelled.
        """

        options = options or SimulationOptions()
        ensure_valid_profile(self.profile)
        seed = options.resolved_seed()
        options = replace(options, seed=seed)
        started = time.perf_counter()
        outcomes = self.run_trials(options)
        swr = self.profile.withdrawal_rate
        if options.estimate_safe_withdrawal_rate:
            swr = estimate_safe_withdrawal_rate(
                self.profile,
                seed=seed,
                trials=min(options.swr_trials, options.trials) or 1,
                target=options.swr_target,
                workers=options.workers,
                executor=options.executor,
                state_tables=self.state_tables,
            )
        result = self.aggregate(outcomes, options, safe_withdrawal_rate=swr)
        elapsed_ms = (time.perf_counter() - started) * 1000.0
        result.metadata["elapsed_ms"] = elapsed_ms
        LOG.info(
            "Simulated %d trials in %.0f ms: success %s",
            options.trials,
            elapsed_ms,
            format_probability(result.probability_of_success),
            extra={
                "trials": options.trials,
                "elapsed_ms": elapsed_ms,
                "probability": result.probability_of_success,
                "clamped": result.metadata.get("clamped_trials", 0),
            },
        )
        return result

    def aggregate(
        self,
        outcomes: Sequence[ScenarioOutcome],
        options: SimulationOptions,
        *,
        safe_withdrawal_rate: float | None = None,
    ) -> SimulationResult:
        """Combine trial outcomes into a :class:`SimulationResult`."""

        if not outcomes:
            raise ValueError("at least one outcome is required")
        seed = options.resolved_seed()
        trials = len(outcomes)
        ending = np.array([outcome.ending_balance for outcome in outcomes], dtype="float64")
        successes = sum(1 for outcome in outcomes if outcome.success)
        probability = successes / trials
        depletion_years = tuple(
            int(outcome.depletion_year)
            for outcome in outcomes
            if outcome.depleted and outcome.depletion_year is not None
        )
        mean_depletion = float(np.mean(depletion_years)) if depletion_years else None
        percentiles = percentile_summary(ending)
        clamped = [outcome for outcome in outcomes if outcome.clamps]
        warnings = self._warnings(trials, probability, clamped)
        ages = range(self.profile.current_age, self.profile.horizon_age + 1)
        risk = risk_metrics(outcomes, ages, self.profile.retirement_age - self.profile.current_age)

        bands = None
        if options.keep_yearly_bands:
            matrix = np.vstack([outcome.balances for outcome in outcomes])
            bands = yearly_percentile_bands(matrix, ages, self.profile.start_year)
            depleted_by_year = np.zeros(matrix.shape[1])
            for outcome in outcomes:
                if outcome.depletion_year is not None:
                    depleted_by_year[outcome.depletion_year :] += 1
            bands["depleted_share"] = depleted_by_year / trials

        cash_flows = None
        representative = None
        if options.keep_cash_flows:
            representative = int(np.argmin(np.abs(ending - percentiles[50])))
            runner = ScenarioRunner(
                self.profile,
                master_seed=seed,
                antithetic=options.antithetic,
                state_tables=self.state_tables,
            )
            trial_index = outcomes[representative].trial_index
            cash_flows = runner.run(trial_index, keep_cash_flows=True).cash_flows

        metadata: dict[str, Any] = {
            "version": __version__,
            "seed": seed,
            "trials": trials,
            "antithetic": options.antithetic,
            "workers": options.workers,
            "years": len(outcomes[0].balances),
            "horizon_age": self.profile.horizon_age,
            "clamped_trials": len(clamped),
            "guardrail_events": sum(len(outcome.guardrail_events) for outcome in outcomes),
            "representative_trial": (
                outcomes[representative].trial_index if representative is not None else None
            ),
        }
        return SimulationResult(
            probability_of_success=probability,
            trials=trials,
            successful_trials=successes,
            ending_percentiles=percentiles,
            average_ending_balance=float(ending.mean()),
            years_until_depletion=depletion_years,
            mean_years_until_depletion=mean_depletion,
            safe_withdrawal_rate=(
                self.profile.withdrawal_rate
                if safe_withdrawal_rate is None
                else float(safe_withdrawal_rate)
            ),
            yearly_bands=bands,
            warnings=warnings,
            metadata=metadata,
            yearly_cash_flows=cash_flows,
            risk=risk,
        )

    def _warnings(
        self,
        trials: int,
        probability: float,
        clamped: Sequence[ScenarioOutcome],
    ) -> tuple[StatisticalWarning, ...]:
        found: list[StatisticalWarning] = []
        if trials < MIN_RELIABLE_TRIALS:
            found.append(
                StatisticalWarning(
                    f"only {trials} trials; results below {MIN_RELIABLE_TRIALS} trials are noisy"
                )
            )
        if clamped:
            found.append(
                StatisticalWarning(f"{len(clamped)} trial(s) clamped numeric edge cases")
            )
        standard_error = math.sqrt(probability * (1.0 - probability) / trials)
        if standard_error > MAX_STANDARD_ERROR:
            found.append(
                StatisticalWarning(
                    f"standard error of the success probability is {standard_error:.3f}"
                )
            )
        for warning in found:
            LOG.warning("%s", warning)
        return tuple(found)


def run_monte_carlo(
    profile: HouseholdProfile,
    options: SimulationOptions | None = None,
    *,
    state_tables: Mapping[str, StateTaxConfig] | None = None,
) -> SimulationResult:
    """Convenience wrapper around :class:`MonteCarloAggregator`."""

    return MonteCarloAggregator(profile, state_tables=state_tables).run(options)
