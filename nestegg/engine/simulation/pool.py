"""Fork-join execution of trial batches.

Trials share no mutable state: a worker rebuilds its :class:`ScenarioRunner`
from the profile and the master seed, so batches can run in any order and in
any process. Results are reassembled in trial-index order.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping, Sequence
from concurrent.futures import Executor, Future, ProcessPoolExecutor, ThreadPoolExecutor
from typing import Literal

from nestegg.engine.errors import SimulationCancelled
from nestegg.engine.logging import setup_logger
from nestegg.engine.profile import HouseholdProfile
from nestegg.engine.simulation.scenario import ScenarioOutcome, ScenarioRunner
from nestegg.engine.tax.states import StateTaxConfig

LOG = setup_logger(__name__)

__all__ = ["ExecutorKind", "TrialPool", "run_trial_batch", "make_batches"]

ExecutorKind = Literal["process", "thread"]


def run_trial_batch(
    profile: HouseholdProfile,
    master_seed: int,
    indices: Sequence[int],
    antithetic: bool = False,
    withdrawal_rate_override: float | None = None,
    state_tables: Mapping[str, StateTaxConfig] | None = None,
) -> list[ScenarioOutcome]:
    """Run the trials listed in ``indices``; importable by worker processes."""

    runner = ScenarioRunner(
        profile,
        master_seed=master_seed,
        antithetic=antithetic,
        withdrawal_rate_override=withdrawal_rate_override,
        state_tables=state_tables,
    )
    return [runner.run(index) for index in indices]


def make_batches(trials: int, batch_size: int) -> list[tuple[int, ...]]:
    """Split ``range(trials)`` into consecutive batches of ``batch_size``."""

    size = max(int(batch_size), 1)
    return [tuple(range(start, min(start + size, trials))) for start in range(0, trials, size)]


class TrialPool:
    """Typed task queue running trial batches on a ``concurrent.futures`` executor.

    With ``workers <= 1`` batches run inline and :meth:`submit` returns an
    already completed future.

    Args:
      profile: Validated profile shared by every trial.
      master_seed: Seed of the run.
      antithetic: Enable antithetic pairing.
      withdrawal_rate_override: Fixed withdrawal rate for safe-withdrawal runs.
      workers: Number of worker processes or threads.
      executor: ``"process"`` or ``"thread"``.
      state_tables: Optional replacement state tax tables.
    """

    def __init__(
        self,
        profile: HouseholdProfile,
        *,
        master_seed: int,
        antithetic: bool = False,
        withdrawal_rate_override: float | None = None,
        workers: int = 1,
        executor: ExecutorKind = "process",
        state_tables: Mapping[str, StateTaxConfig] | None = None,
    ) -> None:
        if executor not in ("process", "thread"):
            raise ValueError(f"Unknown executor kind: {executor!r}")
        self.profile = profile
        self.master_seed = int(master_seed)
        self.antithetic = antithetic
        self.withdrawal_rate_override = withdrawal_rate_override
        self.workers = max(int(workers), 1)
        self.executor_kind = executor
        self.state_tables = state_tables
        self._executor: Executor | None = None
        self._futures: list[Future[list[ScenarioOutcome]]] = []
        self._cancelled = False

    def __enter__(self) -> TrialPool:
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def _get_executor(self) -> Executor:
        if self._executor is None:
            if self.executor_kind == "thread":
                self._executor = ThreadPoolExecutor(max_workers=self.workers)
            else:
                self._executor = ProcessPoolExecutor(max_workers=self.workers)
        return self._executor

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def submit(self, batch: Sequence[int]) -> Future[list[ScenarioOutcome]]:
        """Queue ``batch`` and return a future for its outcomes.

        Raises:
          SimulationCancelled: If the pool was cancelled.
        """

        if self._cancelled:
            raise SimulationCancelled("trial pool was cancelled")
        args = (
            self.profile,
            self.master_seed,
            tuple(batch),
            self.antithetic,
            self.withdrawal_rate_override,
            self.state_tables,
        )
        if self.workers <= 1:
            future: Future[list[ScenarioOutcome]] = Future()
            try:
                future.set_result(run_trial_batch(*args))
            except Exception as exc:  # noqa: BLE001
                future.set_exception(exc)
        else:
            future = self._get_executor().submit(run_trial_batch, *args)
        self._futures.append(future)
        return future

    def cancel(self) -> int:
        """Cancel queued batches; returns how many futures were cancelled."""

        self._cancelled = True
        cancelled = sum(1 for future in self._futures if future.cancel())
        LOG.warning("Trial pool cancelled; %d pending batch(es) dropped", cancelled)
        return cancelled

    def run(self, batches: Iterable[Sequence[int]]) -> list[ScenarioOutcome]:
        """Run ``batches`` and return every outcome in trial-index order.

        Raises:
          SimulationCancelled: If any batch was cancelled.
        """

        futures = [self.submit(batch) for batch in batches]
        outcomes: list[ScenarioOutcome] = []
        for future in futures:
            if future.cancelled() or self._cancelled:
                raise SimulationCancelled("simulation cancelled before all trials completed")
            outcomes.extend(future.result())
        outcomes.sort(key=lambda outcome: outcome.trial_index)
        return outcomes

    def close(self) -> None:
        if self._executor is not None:
            self._executor.shutdown(wait=True, cancel_futures=self._cancelled)
            self._executor = None
        self._futures.clear()
