from __future__ import annotations

import numpy as np
import pytest

try:
    from hypothesis import given
    from hypothesis import strategies as st
except ModuleNotFoundError:  # pragma: no cover - optional dependency
    pytest.skip("Requires the hypothesis library", allow_module_level=True)

from nestegg.engine.simulation import PERCENTILES, percentile_summary, yearly_percentile_bands

BALANCES = st.floats(min_value=0.0, max_value=1e8, allow_nan=False, allow_infinity=False)


@given(values=st.lists(BALANCES, min_size=1, max_size=200))
def test_percentiles_are_ordered(values: list[float]) -> None:
    summary = percentile_summary(values)
    ordered = [summary[p] for p in PERCENTILES]
    assert ordered == sorted(ordered)
    assert min(values) <= ordered[0]
    assert ordered[-1] <= max(values)


@given(
    trials=st.integers(min_value=1, max_value=20),
    years=st.integers(min_value=1, max_value=10),
    seed=st.integers(min_value=0, max_value=1_000),
)
def test_yearly_bands_are_ordered(trials: int, years: int, seed: int) -> None:
    matrix = np.random.default_rng(seed).lognormal(12.0, 1.0, size=(trials, years))
    bands = yearly_percentile_bands(matrix, range(65, 65 + years), 2025)
    columns = [f"p{p}" for p in PERCENTILES]
    values = bands[columns].to_numpy()
    assert np.all(np.diff(values, axis=1) >= -1e-6)
    assert len(bands) == years
