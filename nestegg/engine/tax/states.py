"""State income-tax tables.

Only a handful of states are modeled with brackets; every state listed in
:data:`NO_INCOME_TAX_STATES` and every unknown code is treated as levying no
income tax. Additional tables can be loaded from YAML with
:func:`load_state_tables`.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from nestegg.engine.tax.tables import INF, Bracket
from nestegg.engine.utils.io import read_yaml

__all__ = [
    "StateTaxConfig",
    "NO_INCOME_TAX_STATES",
    "STATE_TAX_TABLES",
    "lookup_state",
    "load_state_tables",
]


@dataclass(frozen=True)
class StateTaxConfig:
    """Income-tax rules of a single state.

    Attributes:
      code: Two-letter postal abbreviation.
      name: Human readable state name.
      has_income_tax: ``False`` for states without a personal income tax.
      standard_deduction: Deduction keyed by filing status.
      brackets: Progressive brackets keyed by filing status.
      pension_exclusion: Retirement income excluded for retirees; ``inf``
        excludes all retirement income.
      taxes_social_security: Whether benefits enter the state base.
    """

    code: str
    name: str
    has_income_tax: bool
    standard_deduction: Mapping[str, float]
    brackets: Mapping[str, tuple[Bracket, ...]]
    pension_exclusion: float = 0.0
    taxes_social_security: bool = False

    @classmethod
    def from_mapping(cls, code: str, payload: Mapping[str, object]) -> StateTaxConfig:
        """Build a config from a YAML mapping.

        Args:
          code: State abbreviation used as the mapping key.
          payload: Mapping with ``brackets`` (per filing status, each a list
            of ``[lower, upper, rate]`` where ``upper`` may be ``null``) and
            optional ``standard_deduction``, ``pension_exclusion``,
            ``taxes_social_security`` and ``name``.

        Returns:
          The parsed :class:`StateTaxConfig`.
        """

        raw_brackets = payload.get("brackets") or {}
        if not isinstance(raw_brackets, Mapping):
            raise ValueError(f"state {code}: brackets must be a mapping")
        brackets: dict[str, tuple[Bracket, ...]] = {}
        for status, rows in raw_brackets.items():
            parsed = []
            for row in rows:
                lower, upper, rate = row
                parsed.append((float(lower), INF if upper is None else float(upper), float(rate)))
            brackets[str(status)] = tuple(parsed)
        deduction = payload.get("standard_deduction") or {}
        exclusion = payload.get("pension_exclusion", 0.0)
        return cls(
            code=code.upper(),
            name=str(payload.get("name", code.upper())),
            has_income_tax=bool(brackets),
            standard_deduction={str(k): float(v) for k, v in dict(deduction).items()},
            brackets=brackets,
            pension_exclusion=INF if exclusion in (None, "all") else float(exclusion),
            taxes_social_security=bool(payload.get("taxes_social_security", False)),
        )


def _no_tax(code: str, name: str) -> StateTaxConfig:
    return StateTaxConfig(
        code=code,
        name=name,
        has_income_tax=False,
        standard_deduction={"single": 0.0, "married": 0.0},
        brackets={},
    )


def _flat(rate: float) -> dict[str, tuple[Bracket, ...]]:
    return {"single": ((0.0, INF, rate),), "married": ((0.0, INF, rate),)}


NO_INCOME_TAX_STATES: dict[str, str] = {
    "AK": "Alaska",
    "FL": "Florida",
    "NV": "Nevada",
    "NH": "New Hampshire",
    "SD": "South Dakota",
    "TN": "Tennessee",
    "TX": "Texas",
    "WA": "Washington",
    "WY": "Wyoming",
}

STATE_TAX_TABLES: dict[str, StateTaxConfig] = {
    code: _no_tax(code, name) for code, name in NO_INCOME_TAX_STATES.items()
}
STATE_TAX_TABLES.update(
    {
        "CA": StateTaxConfig(
            code="CA",
            name="California",
            has_income_tax=True,
            standard_deduction={"single": 5_202.0, "married": 10_404.0},
            brackets={
                "single": (
                    (0.0, 10_099.0, 0.01),
                    (10_099.0, 23_942.0, 0.02),
                    (23_942.0, 37_788.0, 0.04),
                    (37_788.0, 52_455.0, 0.06),
                    (52_455.0, 66_295.0, 0.08),
                    (66_295.0, 338_639.0, 0.093),
                    (338_639.0, 406_364.0, 0.103),
                    (406_364.0, 677_278.0, 0.113),
                    (677_278.0, INF, 0.123),
                ),
                "married": (
                    (0.0, 20_198.0, 0.01),
                    (20_198.0, 47_884.0, 0.02),
                    (47_884.0, 75_576.0, 0.04),
                    (75_576.0, 104_910.0, 0.06),
                    (104_910.0, 132_590.0, 0.08),
                    (132_590.0, 677_278.0, 0.093),
                    (677_278.0, 812_728.0, 0.103),
                    (812_728.0, 1_354_556.0, 0.113),
                    (1_354_556.0, INF, 0.123),
                ),
            },
        ),
        "NY": StateTaxConfig(
            code="NY",
            name="New York",
            has_income_tax=True,
            standard_deduction={"single": 8_000.0, "married": 16_050.0},
            brackets={
                "single": (
                    (0.0, 8_500.0, 0.04),
                    (8_500.0, 11_700.0, 0.045),
                    (11_700.0, 13_900.0, 0.0525),
                    (13_900.0, 80_650.0, 0.0585),
                    (80_650.0, 215_400.0, 0.0625),
                    (215_400.0, 1_077_550.0, 0.0685),
                    (1_077_550.0, 5_000_000.0, 0.0965),
                    (5_000_000.0, 25_000_000.0, 0.103),
                    (25_000_000.0, INF, 0.109),
                ),
                "married": (
                    (0.0, 17_150.0, 0.04),
                    (17_150.0, 23_600.0, 0.045),
                    (23_600.0, 27_900.0, 0.0525),
                    (27_900.0, 161_550.0, 0.0585),
                    (161_550.0, 323_200.0, 0.0625),
                    (323_200.0, 2_155_350.0, 0.0685),
                    (2_155_350.0, 5_000_000.0, 0.0965),
                    (5_000_000.0, 25_000_000.0, 0.103),
                    (25_000_000.0, INF, 0.109),
                ),
            },
            pension_exclusion=20_000.0,
        ),
        "PA": StateTaxConfig(
            code="PA",
            name="Pennsylvania",
            has_income_tax=True,
            standard_deduction={"single": 0.0, "married": 0.0},
            brackets=_flat(0.0307),
            pension_exclusion=INF,
        ),
        "IL": StateTaxConfig(
            code="IL",
            name="Illinois",
            has_income_tax=True,
            standard_deduction={"single": 2_425.0, "married": 4_850.0},
            brackets=_flat(0.0495),
            pension_exclusion=INF,
        ),
        "NC": StateTaxConfig(
            code="NC",
            name="North Carolina",
            has_income_tax=True,
            standard_deduction={"single": 12_750.0, "married": 25_500.0},
            brackets=_flat(0.0475),
        ),
    }
)


def lookup_state(
    state: str | None,
    tables: Mapping[str, StateTaxConfig] | None = None,
) -> StateTaxConfig | None:
    """Return the config for ``state`` or ``None`` when the code is unknown."""

    if not state:
        return None
    source = STATE_TAX_TABLES if tables is None else tables
    return source.get(str(state).strip().upper())


def load_state_tables(
    path: Path | str,
    *,
    base: Mapping[str, StateTaxConfig] | None = None,
) -> dict[str, StateTaxConfig]:
    """Load state tables from YAML and merge them over ``base``.

    Args:
      path: YAML file mapping state codes to :meth:`StateTaxConfig.from_mapping`
        payloads.
      base: Tables to extend; defaults to :data:`STATE_TAX_TABLES`.

    Returns:
      A new mapping containing ``base`` overlaid with the loaded states.

    Raises:
      ValueError: If the document is not a mapping of states.
    """

    payload = read_yaml(path)
    if not isinstance(payload, Mapping):
        raise ValueError(f"{path}: state tax file must contain a mapping")
    merged = dict(STATE_TAX_TABLES if base is None else base)
    for code, entry in payload.items():
        if not isinstance(entry, Mapping):
            raise ValueError(f"{path}: state {code} must be a mapping")
        merged[str(code).upper()] = StateTaxConfig.from_mapping(str(code), entry)
    return merged
