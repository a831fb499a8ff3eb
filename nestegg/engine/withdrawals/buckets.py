"""Tax-segregated asset buckets."""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

__all__ = ["BUCKET_NAMES", "AssetBuckets"]

BUCKET_NAMES: tuple[str, ...] = ("tax_deferred", "tax_free", "capital_gains", "cash_equivalents")


@dataclass(frozen=True)
class AssetBuckets:
    """Balances of the four tax buckets.

    Attributes:
      tax_deferred: Traditional IRA/401(k) balances taxed as ordinary income.
      tax_free: Roth balances.
      capital_gains: Taxable brokerage balances.
      cash_equivalents: Savings, money market and CDs.
    """

    tax_deferred: float = 0.0
    tax_free: float = 0.0
    capital_gains: float = 0.0
    cash_equivalents: float = 0.0

    @property
    def total(self) -> float:
        return self.tax_deferred + self.tax_free + self.capital_gains + self.cash_equivalents

    def as_dict(self) -> dict[str, float]:
        return {name: getattr(self, name) for name in BUCKET_NAMES}

    def scaled(self, factor: float) -> AssetBuckets:
        return AssetBuckets(**{name: value * factor for name, value in self.as_dict().items()})

    @classmethod
    def from_mapping(
        cls,
        payload: Mapping[str, Any] | None,
        *,
        total_assets: float | None = None,
    ) -> AssetBuckets:
        """Build buckets from a mapping.

        Args:
          payload: Mapping keyed by bucket name.
          total_assets: Reported total used when no bucket is given; it is
            assigned entirely to ``tax_deferred``.

        Returns:
          The parsed :class:`AssetBuckets`.
        """

        data = dict(payload or {})
        if not any(data.get(name) is not None for name in BUCKET_NAMES) and total_assets:
            return cls(tax_deferred=float(total_assets))
        return cls(**{name: float(data.get(name) or 0.0) for name in BUCKET_NAMES})

