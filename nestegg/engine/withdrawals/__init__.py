"""Withdrawal policy: buckets, RMDs, guardrails and tax-aware sequencing."""

from .buckets import BUCKET_NAMES, AssetBuckets
from .guardrails import (
    CAPITAL_PRESERVATION,
    PROSPERITY,
    GuardrailConfig,
    GuardrailDecision,
    GuardrailPolicy,
)
from .rmd import (
    UNIFORM_LIFETIME_TABLE,
    joint_life_divisor,
    required_minimum_distribution,
    rmd_divisor,
    rmd_start_age,
    uniform_lifetime_divisor,
)
from .sequencer import TaxContext, WithdrawalResult, WithdrawalSequencer

__all__ = [
    "BUCKET_NAMES",
    "AssetBuckets",
    "CAPITAL_PRESERVATION",
    "PROSPERITY",
    "GuardrailConfig",
    "GuardrailDecision",
    "GuardrailPolicy",
    "UNIFORM_LIFETIME_TABLE",
    "joint_life_divisor",
    "required_minimum_distribution",
    "rmd_divisor",
    "rmd_start_age",
    "uniform_lifetime_divisor",
    "TaxContext",
    "WithdrawalResult",
    "WithdrawalSequencer",
]
