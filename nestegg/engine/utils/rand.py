"""Deterministic random-number plumbing for Monte Carlo trials.

Every trial owns its own :class:`numpy.random.Generator` objects derived from
the master seed and the trial index, so results never depend on execution
order or on the number of worker processes.
"""

from __future__ import annotations

from collections.abc import Mapping, Sequence
from pathlib import Path

import numpy as np
import yaml

DEFAULT_STREAM = "simulation"
DEFAULT_SEED = 42
DEFAULT_SEED_PATH = Path("audit") / "seeds.yml"
TRIAL_STREAMS: tuple[str, ...] = ("returns", "regimes", "ltc")

__all__ = [
    "DEFAULT_SEED",
    "DEFAULT_SEED_PATH",
    "DEFAULT_STREAM",
    "TRIAL_STREAMS",
    "load_seeds",
    "save_seeds",
    "seed_for_stream",
    "trial_seed_sequence",
    "trial_generators",
    "antithetic_source",
]


def load_seeds(seed_path: Path | str = DEFAULT_SEED_PATH) -> dict[str, int]:
    """Load the ``stream -> seed`` mapping from ``seed_path``.

    A missing file yields the default stream with :data:`DEFAULT_SEED` so
    runs stay deterministic on a fresh checkout.
    """

    path = Path(seed_path)
    if not path.exists():
        return {DEFAULT_STREAM: DEFAULT_SEED}

    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}

    if isinstance(data, dict) and "seeds" in data and isinstance(data["seeds"], dict):
        seeds_section = data["seeds"]
    elif isinstance(data, dict):
        seeds_section = data
    else:
        raise TypeError("Seed file must contain a mapping of stream -> seed")

    seeds: dict[str, int] = {}
    for key, value in seeds_section.items():
        if value is None:
            continue
        seeds[str(key)] = int(value)

    seeds.setdefault(DEFAULT_STREAM, DEFAULT_SEED)
    return seeds


def save_seeds(
    seeds: Mapping[str, int],
    seed_path: Path | str = DEFAULT_SEED_PATH,
) -> Path:
    """Persist a normalised ``stream -> seed`` mapping."""

    path = Path(seed_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = {"seeds": {str(k): int(v) for k, v in seeds.items()}}
    with path.open("w", encoding="utf-8") as handle:
        yaml.safe_dump(payload, handle, sort_keys=True)
    return path


def seed_for_stream(
    stream: str = DEFAULT_STREAM,
    *,
    seeds: Mapping[str, int] | None = None,
    seed_path: Path | str = DEFAULT_SEED_PATH,
) -> int:
    """Return the seed configured for ``stream`` or the default stream seed."""

    seeds_dict = dict(seeds) if seeds is not None else load_seeds(seed_path)
    if DEFAULT_STREAM not in seeds_dict:
        seeds_dict[DEFAULT_STREAM] = DEFAULT_SEED
    return int(seeds_dict.get(stream, seeds_dict[DEFAULT_STREAM]))


def trial_seed_sequence(master_seed: int, trial_index: int) -> np.random.SeedSequence:
    """Return the seed sequence of ``trial_index`` under ``master_seed``.

    The sequence equals ``SeedSequence(master_seed).spawn(n)[trial_index]`` for
    any ``n > trial_index``, so it can be rebuilt inside a worker process from
    two integers.
    """

    if trial_index < 0:
        raise ValueError("trial_index must be >= 0")
    return np.random.SeedSequence(int(master_seed), spawn_key=(int(trial_index),))


def trial_generators(
    master_seed: int,
    trial_index: int,
    streams: Sequence[str] = TRIAL_STREAMS,
) -> dict[str, np.random.Generator]:
    """Return one independent generator per named stream for a trial."""

    children = trial_seed_sequence(master_seed, trial_index).spawn(len(streams))
    return {
        name: np.random.default_rng(child)
        for name, child in zip(streams, children, strict=True)
    }


def antithetic_source(trial_index: int, antithetic: bool) -> tuple[int, bool]:
    """Map a trial to the seed index it draws from and whether it is mirrored.

    With antithetic sampling trials are paired ``(2k, 2k + 1)``: the odd trial
    reuses the even trial's streams and mirrors its shocks.
    """

    if not antithetic:
        return trial_index, False
    return trial_index - (trial_index % 2), bool(trial_index % 2)
