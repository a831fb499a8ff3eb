"""Main namespace of the nestegg simulation engine."""

from __future__ import annotations

from . import (
    income,
    markets,
    simulation,
    tax,
    withdrawals,
)

__all__ = [
    "income",
    "markets",
    "simulation",
    "tax",
    "withdrawals",
]
