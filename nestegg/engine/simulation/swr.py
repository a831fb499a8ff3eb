"""Safe-withdrawal-rate search with Brent's method."""

from __future__ import annotations

from collections.abc import Mapping

from scipy import optimize

from nestegg.engine.logging import setup_logger
from nestegg.engine.profile import HouseholdProfile
from nestegg.engine.simulation.pool import ExecutorKind, TrialPool, make_batches
from nestegg.engine.tax.states import StateTaxConfig

LOG = setup_logger(__name__)

__all__ = ["SWR_LOW", "SWR_HIGH", "success_at_rate", "estimate_safe_withdrawal_rate"]

SWR_LOW = 0.0
SWR_HIGH = 0.15


def success_at_rate(
    profile: HouseholdProfile,
    rate: float,
    *,
    seed: int,
    trials: int,
    workers: int = 1,
    executor: ExecutorKind = "process",
    batch_size: int = 250,
    state_tables: Mapping[str, StateTaxConfig] | None = None,
) -> float:
    """Probability of success when withdrawing ``rate`` of the retirement balance."""

    with TrialPool(
        profile,
        master_seed=seed,
        withdrawal_rate_override=rate,
        workers=workers,
        executor=executor,
        state_tables=state_tables,
    ) as pool:
        outcomes = pool.run(make_batches(trials, batch_size))
    return sum(1 for outcome in outcomes if outcome.success) / len(outcomes)


def estimate_safe_withdrawal_rate(
    profile: HouseholdProfile,
    *,
    seed: int,
    trials: int,
    target: float = 0.80,
    low: float = SWR_LOW,
    high: float = SWR_HIGH,
    tolerance: float = 0.001,
    max_iterations: int = 50,
    workers: int = 1,
    executor: ExecutorKind = "process",
    state_tables: Mapping[str, StateTaxConfig] | None = None,
) -> float:
    """Highest withdrawal rate in ``[low, high]`` whose success meets ``target``.

    Every evaluation reuses ``seed`` so successive rates see the same return
    paths and success is non-increasing in the rate. ``scipy.optimize.brentq``
    locates the rate where success crosses ``target`` to within ``tolerance``;
    the root is then settled on the ``low + k * tolerance`` grid so the answer
    is the largest grid rate that still meets the target.

    Args:
      profile: Validated household profile.
      seed: Master seed shared by every evaluation.
      trials: Trials per evaluation.
      target: Required probability of success.
      low: Lower end of the search interval.
      high: Upper end of the search interval.
      tolerance: Absolute tolerance on the rate (``xtol``) and grid step.
      max_iterations: Iteration cap passed to ``brentq``.
      workers: Worker count forwarded to the trial pool.
      executor: Executor kind forwarded to the trial pool.
      state_tables: Optional replacement state tax tables.

    Returns:
      The rate as a decimal; ``low`` when even ``low`` misses the target and
      ``high`` when ``high`` still meets it.
    """

    if trials < 1:
        raise ValueError("trials must be >= 1")
    if not low < high:
        raise ValueError("low must be below high")
    if tolerance <= 0.0:
        raise ValueError("tolerance must be positive")

    cache: dict[float, float] = {}

    def success(rate: float) -> float:
        if rate not in cache:
            cache[rate] = success_at_rate(
                profile,
                rate,
                seed=seed,
                trials=trials,
                workers=workers,
                executor=executor,
                state_tables=state_tables,
            )
        return cache[rate]

    def gap(rate: float) -> float:
        # Strictly positive when the target is met, negative otherwise.
        shortfall = success(rate) - target
        return shortfall if shortfall < 0.0 else shortfall + 1.0 / trials

    if gap(high) > 0.0:
        return high
    if gap(low) < 0.0:
        return low
    root = optimize.brentq(gap, low, high, xtol=tolerance, maxiter=max_iterations)

    steps = int((root - low) // tolerance)
    max_steps = int((high - low) // tolerance)
    while steps < max_steps and gap(low + (steps + 1) * tolerance) > 0.0:
        steps += 1
    while steps > 0 and gap(low + steps * tolerance) < 0.0:
        steps -= 1
    rate = low + steps * tolerance
    LOG.debug("Safe withdrawal rate %.4f (root %.4f, %d evaluations)", rate, root, len(cache))
    return rate
