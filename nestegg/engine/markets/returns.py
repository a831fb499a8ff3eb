"""Annual portfolio return generation.

Two return models are available. The ``portfolio`` model draws a single
lognormal return for the whole portfolio from the profile's geometric mean and
volatility. The ``asset_class`` model draws Cholesky-correlated lognormal
returns for stocks, bonds and cash and weights them with the allocation (or
glide path) in force at that age. Both can be overlaid with a
:class:`~nestegg.engine.markets.regime.RegimeModel`.
Shocks are standard normal unless fat-tailed Student-t shocks are requested.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from dataclasses import dataclass, field
from typing import Literal

import numpy as np

from nestegg.engine.markets.regime import RegimeModel

__all__ = [
    "ReturnModel",
    "AssetClass",
    "DEFAULT_ASSET_CLASSES",
    "DEFAULT_CORRELATION",
    "GlidePath",
    "Allocation",
    "ReturnAssumptions",
    "ReturnPath",
    "ReturnGenerator",
    "cagr_to_aagr",
    "aagr_to_cagr",
    "lognormal_return",
]

ReturnModel = Literal["portfolio", "asset_class"]


def cagr_to_aagr(cagr: float, volatility: float) -> float:
    """Convert a geometric mean return to the arithmetic mean used for draws."""

    return cagr + volatility**2 / 2.0


def aagr_to_cagr(aagr: float, volatility: float) -> float:
    """Inverse of :func:`cagr_to_aagr`."""

    return aagr - volatility**2 / 2.0


def lognormal_return(aagr, volatility, shocks) -> np.ndarray:
    """Return ``exp(ln(1 + aagr) - sigma^2 / 2 + sigma * z) - 1``."""

    sigma = np.asarray(volatility, dtype="float64")
    drift = np.log1p(np.asarray(aagr, dtype="float64")) - sigma**2 / 2.0
    return np.expm1(drift + sigma * np.asarray(shocks, dtype="float64"))


@dataclass(frozen=True)
class AssetClass:
    """Geometric mean return and volatility of one asset class."""

    name: str
    expected_return: float
    volatility: float


DEFAULT_ASSET_CLASSES: tuple[AssetClass, ...] = (
    AssetClass("stocks", 0.10, 0.18),
    AssetClass("bonds", 0.05, 0.05),
    AssetClass("cash", 0.02, 0.01),
)

DEFAULT_CORRELATION: tuple[tuple[float, ...], ...] = (
    (1.00, 0.15, 0.00),
    (0.15, 1.00, 0.30),
    (0.00, 0.30, 1.00),
)


@dataclass(frozen=True)
class GlidePath:
    """Linear stock-weight path between two ages.

    Attributes:
      start_stock: Stock weight at ``start_age`` and before.
      end_stock: Stock weight at ``end_age`` and after.
      start_age: First age of the path, usually the current age.
      end_age: Last age of the path, usually the planning horizon.
    """

    start_stock: float
    end_stock: float
    start_age: int
    end_age: int

    def stock_weight(self, age: int) -> float:
        if self.end_age <= self.start_age or age <= self.start_age:
            return self.start_stock
        if age >= self.end_age:
            return self.end_stock
        share = (age - self.start_age) / (self.end_age - self.start_age)
        return self.start_stock + share * (self.end_stock - self.start_stock)


@dataclass(frozen=True)
class Allocation:
    """Stock/bond/cash weights with an optional glide path."""

    stocks: float = 0.6
    bonds: float = 0.35
    cash: float = 0.05
    glide_path: GlidePath | None = None

    @property
    def total(self) -> float:
        return self.stocks + self.bonds + self.cash

    def weights_at(self, age: int) -> tuple[float, float, float]:
        """Return ``(stocks, bonds, cash)`` weights in force at ``age``.

        With a glide path the non-stock remainder is split between bonds and
        cash in the proportion of the base allocation.
        """

        if self.glide_path is None:
            return (self.stocks, self.bonds, self.cash)
        stock = min(max(self.glide_path.stock_weight(age), 0.0), 1.0)
        rest = 1.0 - stock
        fixed = self.bonds + self.cash
        bond_share = self.bonds / fixed if fixed > 0.0 else 1.0
        return (stock, rest * bond_share, rest * (1.0 - bond_share))


@dataclass(frozen=True)
class ReturnAssumptions:
    """Capital-market assumptions shared by every trial.

    Attributes:
      expected_return: Geometric mean (CAGR) of the portfolio model.
      volatility: Annual volatility of the portfolio model.
      allocation: Weights, optionally age dependent.
      model: ``"portfolio"`` or ``"asset_class"``.
      asset_classes: Per-class assumptions of the asset-class model.
      correlation: Correlation matrix between the asset classes.
      regime_model: Optional regime overlay; ``None`` disables regimes.
      sequence_risk_years: Length of the stressed window starting at the
        retirement age.
      tail_degrees_of_freedom: Draw Student-t shocks with these degrees of
        freedom, rescaled to unit variance; ``None`` draws normal shocks.
    """

    expected_return: float = 0.07
    volatility: float = 0.15
    allocation: Allocation = field(default_factory=Allocation)
    model: ReturnModel = "portfolio"
    asset_classes: tuple[AssetClass, ...] = DEFAULT_ASSET_CLASSES
    correlation: tuple[tuple[float, ...], ...] = DEFAULT_CORRELATION
    regime_model: RegimeModel | None = None
    sequence_risk_years: int = 5
    tail_degrees_of_freedom: float | None = None

    def __post_init__(self) -> None:
        if self.model not in ("portfolio", "asset_class"):
            raise ValueError(f"Unknown return model: {self.model!r}")
        if self.volatility < 0.0:
            raise ValueError("volatility must be non-negative")
        if self.tail_degrees_of_freedom is not None and self.tail_degrees_of_freedom <= 2.0:
            raise ValueError("tail_degrees_of_freedom must exceed 2")


@dataclass(frozen=True)
class ReturnPath:
    """Returns drawn for one trial.

    Attributes:
      returns: One portfolio return per simulated year.
      regimes: Regime label per year, or ``None`` entries without regimes.
    """

    returns: np.ndarray
    regimes: tuple[str | None, ...]

    def __len__(self) -> int:
        return int(self.returns.shape[0])


class ReturnGenerator:
    """Draw annual portfolio returns for one trial.

    Args:
      assumptions: Capital-market assumptions.
      rng: Generator for normal shocks.
      regime_rng: Generator for regime transitions; defaults to ``rng``.
      antithetic: Negate shocks and mirror regime uniforms.
    """

    def __init__(
        self,
        assumptions: ReturnAssumptions,
        rng: np.random.Generator,
        *,
        regime_rng: np.random.Generator | None = None,
        antithetic: bool = False,
    ) -> None:
        self.assumptions = assumptions
        self.rng = rng
        self.regime_rng = regime_rng if regime_rng is not None else rng
        self.antithetic = antithetic
        if assumptions.model == "asset_class":
            corr = np.asarray(assumptions.correlation, dtype="float64")
            size = len(assumptions.asset_classes)
            if corr.shape != (size, size):
                raise ValueError("correlation matrix must match the asset classes")
            self._cholesky = np.linalg.cholesky(corr)
        else:
            self._cholesky = None

    @classmethod
    def from_generators(
        cls,
        assumptions: ReturnAssumptions,
        generators: Mapping[str, np.random.Generator],
        *,
        antithetic: bool = False,
    ) -> ReturnGenerator:
        """Build a generator from the named trial streams."""

        return cls(
            assumptions,
            generators["returns"],
            regime_rng=generators.get("regimes"),
            antithetic=antithetic,
        )

    def _shocks(self, years: int, width: int) -> np.ndarray:
        df = self.assumptions.tail_degrees_of_freedom
        if df is None:
            z = self.rng.standard_normal((years, width))
        else:
            z = self.rng.standard_t(df, (years, width)) * np.sqrt((df - 2.0) / df)
        return -z if self.antithetic else z

    def _regime_path(
        self, ages: Sequence[int], retirement_age: int
    ) -> tuple[np.ndarray | None, tuple[str | None, ...]]:
        model = self.assumptions.regime_model
        if model is None:
            return None, tuple(None for _ in ages)
        uniforms = self.regime_rng.random(len(ages))
        if self.antithetic:
            uniforms = 1.0 - uniforms
        window_end = retirement_age + self.assumptions.sequence_risk_years
        stressed = [retirement_age <= age < window_end for age in ages]
        path = model.sample_path(uniforms, stressed)
        names = model.names
        return path, tuple(names[idx] for idx in path)

    def draw(self, ages: Sequence[int], retirement_age: int) -> ReturnPath:
        """Draw one return per age.

        Args:
          ages: Primary-person age of every simulated year.
          retirement_age: Start of the sequence-risk window.

        Returns:
          A :class:`ReturnPath` aligned with ``ages``.
        """

        years = len(ages)
        if years == 0:
            return ReturnPath(np.zeros(0, dtype="float64"), ())
        assumptions = self.assumptions
        weights = np.array([assumptions.allocation.weights_at(age) for age in ages])
        regime_idx, labels = self._regime_path(ages, retirement_age)
        mean_shift = np.zeros(years)
        vol_scale = np.ones(years)
        model = assumptions.regime_model
        if regime_idx is not None and model is not None:
            baseline = model.baseline
            means = np.array([regime.mean for regime in model.regimes])
            vols = np.array([regime.volatility for regime in model.regimes])
            mean_shift = means[regime_idx] - baseline.mean
            vol_scale = vols[regime_idx] / baseline.volatility

        if assumptions.model == "portfolio":
            shocks = self._shocks(years, 1)[:, 0]
            aagr = cagr_to_aagr(assumptions.expected_return, assumptions.volatility)
            year_mean = aagr + weights[:, 0] * mean_shift
            year_vol = assumptions.volatility * vol_scale
            returns = lognormal_return(year_mean, year_vol, shocks)
        else:
            classes = assumptions.asset_classes
            shocks = self._shocks(years, len(classes)) @ self._cholesky.T
            class_returns = np.empty((years, len(classes)))
            for col, asset in enumerate(classes):
                aagr = np.full(years, cagr_to_aagr(asset.expected_return, asset.volatility))
                vol = np.full(years, asset.volatility)
                if asset.name == "stocks":
                    aagr = aagr + mean_shift
                    vol = vol * vol_scale
                class_returns[:, col] = lognormal_return(aagr, vol, shocks[:, col])
            returns = np.einsum("ij,ij->i", class_returns, weights[:, : len(classes)])
        return ReturnPath(np.asarray(returns, dtype="float64"), labels)

    def expected_return_at(self, age: int) -> float:
        """Geometric mean return of the allocation at ``age`` without shocks."""

        assumptions = self.assumptions
        if assumptions.model == "portfolio":
            return assumptions.expected_return
        weights = assumptions.allocation.weights_at(age)
        return float(
            sum(w * asset.expected_return for w, asset in zip(weights, assumptions.asset_classes))
        )
