"""Shared pytest configuration for nestegg."""

from __future__ import annotations

import os
import sys
from collections.abc import Iterable
from pathlib import Path
from typing import Any

import pytest


def _insert_repo_root() -> None:
    """Make sure the repository root is on ``sys.path`` for imports."""

    repo_root = Path(__file__).resolve().parents[1]
    if str(repo_root) not in sys.path:
        sys.path.insert(0, str(repo_root))


_insert_repo_root()


def pytest_report_header(config: pytest.Config) -> Iterable[str]:  # pragma: no cover - pytest hook
    """Show diagnostic context for test runs."""

    root = Path.cwd()
    log_level = os.environ.get("NESTEGG_LOG_LEVEL", "INFO")
    return [f"nestegg repo: {root}", f"NESTEGG_LOG_LEVEL={log_level}"]


@pytest.fixture(autouse=True)
def _set_verbose_logging(monkeypatch: pytest.MonkeyPatch) -> None:
    """Pin the default log level to INFO for readable test output."""

    monkeypatch.setenv("NESTEGG_LOG_LEVEL", "INFO")
    monkeypatch.delenv("NESTEGG_JSON_LOGS", raising=False)


@pytest.fixture
def base_payload() -> dict[str, Any]:
    """Single retiree drawing from a mixed portfolio."""

    return {
        "current_age": 65,
        "retirement_age": 65,
        "life_expectancy": 90,
        "filing_status": "single",
        "state": "TX",
        "income": {"social_security_benefit": 2_000.0, "social_security_claim_age": 67},
        "expenses": {
            "annual_retirement_expenses": 60_000.0,
            "annual_healthcare_costs": 8_000.0,
        },
        "assets": {
            "tax_deferred": 600_000.0,
            "tax_free": 150_000.0,
            "capital_gains": 200_000.0,
            "cash_equivalents": 50_000.0,
        },
        "market": {"expected_return": 0.06, "return_volatility": 0.12, "inflation_rate": 0.025},
        "allocation": {"stocks": 0.6, "bonds": 0.35, "cash": 0.05},
    }


@pytest.fixture
def couple_payload(base_payload: dict[str, Any]) -> dict[str, Any]:
    """Married couple with a pension and a two-year age gap."""

    payload = dict(base_payload)
    payload.update(
        {
            "current_age": 60,
            "retirement_age": 62,
            "life_expectancy": 85,
            "filing_status": "married",
            "state": "CA",
            "spouse": {
                "current_age": 58,
                "retirement_age": 62,
                "life_expectancy": 92,
                "social_security_benefit": 1_500.0,
                "social_security_claim_age": 67,
            },
            "income": {
                "social_security_benefit": 2_800.0,
                "social_security_claim_age": 70,
                "pension_benefit": 1_200.0,
                "pension_survivorship_pct": 50.0,
            },
            "contributions": {"annual_savings": 20_000.0, "contribution_growth": 0.02},
        }
    )
    return payload
