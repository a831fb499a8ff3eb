"""Utility helpers for nestegg."""

from .display import format_currency, format_probability, to_decimal_probability
from .io import (
    ARTIFACTS_ROOT,
    ensure_dir,
    read_yaml,
    safe_path_segment,
    write_json,
    write_yaml,
)
from .rand import (
    DEFAULT_SEED,
    DEFAULT_SEED_PATH,
    DEFAULT_STREAM,
    TRIAL_STREAMS,
    antithetic_source,
    load_seeds,
    save_seeds,
    seed_for_stream,
    trial_generators,
    trial_seed_sequence,
)

__all__ = [
    "ARTIFACTS_ROOT",
    "ensure_dir",
    "safe_path_segment",
    "read_yaml",
    "write_json",
    "write_yaml",
    "format_currency",
    "format_probability",
    "to_decimal_probability",
    "DEFAULT_SEED",
    "DEFAULT_SEED_PATH",
    "DEFAULT_STREAM",
    "TRIAL_STREAMS",
    "antithetic_source",
    "load_seeds",
    "save_seeds",
    "seed_for_stream",
    "trial_generators",
    "trial_seed_sequence",
]
