"""Capital-market models: lognormal returns, asset classes and regimes."""

from .regime import (
    DEFAULT_INITIAL_PROBABILITIES,
    DEFAULT_REGIMES,
    DEFAULT_TRANSITIONS,
    MarketRegime,
    RegimeModel,
    default_regime_model,
)
from .returns import (
    DEFAULT_ASSET_CLASSES,
    DEFAULT_CORRELATION,
    Allocation,
    AssetClass,
    GlidePath,
    ReturnAssumptions,
    ReturnGenerator,
    ReturnPath,
    aagr_to_cagr,
    cagr_to_aagr,
    lognormal_return,
)

__all__ = [
    "DEFAULT_INITIAL_PROBABILITIES",
    "DEFAULT_REGIMES",
    "DEFAULT_TRANSITIONS",
    "MarketRegime",
    "RegimeModel",
    "default_regime_model",
    "DEFAULT_ASSET_CLASSES",
    "DEFAULT_CORRELATION",
    "Allocation",
    "AssetClass",
    "GlidePath",
    "ReturnAssumptions",
    "ReturnGenerator",
    "ReturnPath",
    "aagr_to_cagr",
    "cagr_to_aagr",
    "lognormal_return",
]
