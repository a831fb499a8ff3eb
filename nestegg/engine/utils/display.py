"""Probability representation helpers.

Probabilities are stored everywhere as decimals in ``[0, 1]``. The only
conversion to a percentage happens in :func:`format_probability`, which is
meant for display boundaries (CLI output, exported summaries).
"""

from __future__ import annotations

import math

__all__ = ["to_decimal_probability", "format_probability", "format_currency"]


def to_decimal_probability(value: float) -> float:
    """Validate that ``value`` is a decimal probability and return it as float.

    Raises:
      ValueError: If ``value`` is NaN or outside ``[0, 1]``. Percent-scaled
        inputs such as ``87.5`` are rejected rather than silently rescaled.
    """

    number = float(value)
    if math.isnan(number) or number < 0.0 or number > 1.0:
        raise ValueError(f"probability must be a decimal in [0, 1], got {value!r}")
    return number


def format_probability(value: float, *, digits: int = 1) -> str:
    """Render a decimal probability as a percentage string (``0.873 -> '87.3%'``)."""

    return f"{to_decimal_probability(value) * 100.0:.{digits}f}%"


def format_currency(value: float) -> str:
    """Render a dollar amount rounded to whole dollars."""

    return f"${value:,.0f}"
