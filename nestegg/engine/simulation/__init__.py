"""Trial execution and Monte Carlo aggregation."""

from .aggregate import (
    PERCENTILES,
    MonteCarloAggregator,
    SimulationOptions,
    SimulationResult,
    percentile_summary,
    run_monte_carlo,
    yearly_percentile_bands,
)
from .artifacts import SimulationArtifacts, write_simulation_artifacts
from .pool import TrialPool, make_batches, run_trial_batch
from .risk import RiskMetrics, conditional_value_at_risk, max_drawdown, risk_metrics
from .scenario import (
    ScenarioOutcome,
    ScenarioRunner,
    YearlyCashFlow,
    run_scenario,
)
from .swr import estimate_safe_withdrawal_rate, success_at_rate

__all__ = [
    "PERCENTILES",
    "MonteCarloAggregator",
    "SimulationOptions",
    "SimulationResult",
    "percentile_summary",
    "run_monte_carlo",
    "yearly_percentile_bands",
    "SimulationArtifacts",
    "write_simulation_artifacts",
    "TrialPool",
    "make_batches",
    "run_trial_batch",
    "RiskMetrics",
    "conditional_value_at_risk",
    "max_drawdown",
    "risk_metrics",
    "ScenarioOutcome",
    "ScenarioRunner",
    "YearlyCashFlow",
    "run_scenario",
    "estimate_safe_withdrawal_rate",
    "success_at_rate",
]
