"""CSV and JSON artefacts of a Monte Carlo run."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import pandas as pd

from nestegg.engine.simulation.aggregate import SimulationResult
from nestegg.engine.utils.io import ARTIFACTS_ROOT, ensure_dir, safe_path_segment, write_json
from nestegg.engine.utils.rand import DEFAULT_STREAM, save_seeds

__all__ = ["SimulationArtifacts", "write_simulation_artifacts"]


@dataclass(frozen=True)
class SimulationArtifacts:
    """Paths of the exported files."""

    summary_json: Path
    percentiles_csv: Path
    bands_csv: Path | None
    cash_flows_csv: Path | None
    seeds_yml: Path | None = None


def write_simulation_artifacts(
    result: SimulationResult,
    *,
    label: str = "household",
    output_dir: Path | str | None = None,
) -> SimulationArtifacts:
    """Write summary, percentile, band, cash-flow and seed files for ``result``.

    Args:
      result: Output of :meth:`MonteCarloAggregator.run`.
      label: Household label used in file names.
      output_dir: Destination root; files land in ``<output_dir>/simulation``.

    Returns:
      Paths to the exported artefacts. Bands and cash flows are ``None`` when
      the result does not carry them. The seed file uses the
      :func:`~nestegg.engine.utils.rand.load_seeds` layout so the run can be
      replayed from it.
    """

    root = Path(output_dir) if output_dir is not None else ARTIFACTS_ROOT
    root = ensure_dir(root / "simulation")
    name = safe_path_segment(label or "household")

    summary_json = write_json(result.to_summary(), root / f"{name}_summary.json")

    percentiles_csv = root / f"{name}_percentiles.csv"
    percentile_frame = pd.DataFrame(
        {
            "percentile": list(result.ending_percentiles),
            "ending_balance": list(result.ending_percentiles.values()),
        }
    )
    percentile_frame.to_csv(percentiles_csv, index=False)

    bands_csv = None
    if result.yearly_bands is not None:
        bands_csv = root / f"{name}_bands.csv"
        result.yearly_bands.to_csv(bands_csv, index=False)

    cash_flows_csv = None
    if result.yearly_cash_flows:
        cash_flows_csv = root / f"{name}_cash_flows.csv"
        result.cash_flow_frame().to_csv(cash_flows_csv, index=False)

    seeds_yml = None
    seed = result.metadata.get("seed")
    if seed is not None:
        seeds_yml = save_seeds({DEFAULT_STREAM: int(seed)}, root / f"{name}_seeds.yml")

    return SimulationArtifacts(
        summary_json=summary_json,
        percentiles_csv=percentiles_csv,
        bands_csv=bands_csv,
        cash_flows_csv=cash_flows_csv,
        seeds_yml=seeds_yml,
    )
