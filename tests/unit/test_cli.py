from __future__ import annotations

import json
from pathlib import Path
from typing import Any

import pytest

from nestegg.cli.main import build_parser
from nestegg.cli.main import main as cli_main
from nestegg.engine.utils.io import write_yaml


@pytest.fixture
def profile_path(
    tmp_path: Path, monkeypatch: pytest.MonkeyPatch, base_payload: dict[str, Any]
) -> Path:
    monkeypatch.chdir(tmp_path)
    return write_yaml(dict(base_payload, life_expectancy=80), tmp_path / "smith.yml")


def test_cli_validate_ok(profile_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    cli_main(["validate", "--profile", str(profile_path)])
    captured = capsys.readouterr().out
    assert "[nestegg] validate status=ok" in captured


def test_cli_validate_reports_errors(
    profile_path: Path, base_payload: dict[str, Any], capsys: pytest.CaptureFixture[str]
) -> None:
    bad = write_yaml(dict(base_payload, retirement_age=40), profile_path.parent / "bad.yml")
    with pytest.raises(SystemExit) as excinfo:
        cli_main(["validate", "--profile", str(bad)])
    assert excinfo.value.code == 1
    captured = capsys.readouterr().out
    assert "[nestegg] validate error: retirement_age" in captured


def test_cli_simulate_writes_artifacts(
    profile_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    argv = [
        "simulate",
        "--profile",
        str(profile_path),
        "--trials",
        "12",
        "--seed",
        "3",
        "--output-dir",
        "out",
    ]
    cli_main(argv)
    captured = capsys.readouterr().out
    assert "[nestegg] simulate trials=12" in captured
    assert "simulate warning: only 12 trials" in captured
    summary_path = Path("out") / "simulation" / "smith_summary.json"
    assert summary_path.exists()
    assert json.loads(summary_path.read_text(encoding="utf-8"))["metadata"]["seed"] == 3
    metrics = (Path("artifacts") / "logs" / "metrics.jsonl").read_text(encoding="utf-8")
    assert "simulate_probability_of_success" in metrics


def test_cli_simulate_rejects_invalid_profile(
    profile_path: Path, base_payload: dict[str, Any], capsys: pytest.CaptureFixture[str]
) -> None:
    bad = write_yaml(dict(base_payload, tax_rate=0.95), profile_path.parent / "bad.yml")
    with pytest.raises(SystemExit) as excinfo:
        cli_main(["simulate", "--profile", str(bad), "--trials", "5"])
    assert excinfo.value.code == 1
    assert "[nestegg] simulate error: tax_rate" in capsys.readouterr().out
    assert not (Path("artifacts") / "simulation").exists()


def test_cli_rejects_non_positive_trials() -> None:
    with pytest.raises(SystemExit):
        build_parser().parse_args(["simulate", "--trials", "0"])


def test_cli_parser_defaults() -> None:
    args = build_parser().parse_args(["simulate"])
    assert args.trials == 1000
    assert args.workers == 1
    assert args.executor == "process"
    assert args.antithetic is False
    assert args.profile == Path("configs") / "household.yml"


def _simulate(profile_path: Path, *extra: str) -> dict[str, Any]:
    argv = ["simulate", "--profile", str(profile_path), "--trials", "10", "--output-dir", "out"]
    cli_main([*argv, *extra])
    summary_path = Path("out") / "simulation" / "smith_summary.json"
    return json.loads(summary_path.read_text(encoding="utf-8"))


def test_cli_simulate_applies_state_tables(
    profile_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    tables = profile_path.parent / "states.yml"
    tables.write_text(
        "TX:\n  name: Texas\n  brackets:\n    single: [[0, null, 0.09]]\n",
        encoding="utf-8",
    )
    untaxed = _simulate(profile_path, "--seed", "5")
    taxed = _simulate(profile_path, "--seed", "5", "--state-tables", str(tables))
    assert taxed["average_ending_balance"] < untaxed["average_ending_balance"]
    capsys.readouterr()

    broken = profile_path.parent / "broken.yml"
    broken.write_text("- TX\n- CA\n", encoding="utf-8")
    with pytest.raises(SystemExit) as excinfo:
        _simulate(profile_path, "--state-tables", str(broken))
    assert excinfo.value.code == 1
    assert "[nestegg] simulate error:" in capsys.readouterr().out


def test_cli_simulate_replays_seed_file(profile_path: Path) -> None:
    first = _simulate(profile_path, "--seed", "8")
    seed_file = Path("out") / "simulation" / "smith_seeds.yml"
    assert seed_file.exists()
    replay = _simulate(profile_path, "--seed-file", str(seed_file))
    assert replay["metadata"]["seed"] == 8
    assert replay["ending_percentiles"] == first["ending_percentiles"]
