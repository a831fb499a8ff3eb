"""Error taxonomy shared by the simulation engine.

Three families exist. :class:`ValidationError` reports bad input and is raised
once, before any trial runs. :class:`ComputationError` signals a broken internal
invariant and is always fatal. :class:`StatisticalWarning` is never raised by
the engine itself; instances are attached to the simulation result and logged.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass

__all__ = [
    "FieldError",
    "ValidationError",
    "ComputationError",
    "SimulationCancelled",
    "StatisticalWarning",
]


@dataclass(frozen=True)
class FieldError:
    """Diagnostic attached to a single profile field.

    Attributes:
      field: Dotted path of the offending field (``spouse.current_age``).
      message: Human readable description of the problem.
      severity: Either ``"error"`` or ``"warning"``.
    """

    field: str
    message: str
    severity: str = "error"

    def __str__(self) -> str:
        return f"{self.field}: {self.message}"


class ValidationError(ValueError):
    """Aggregated input validation failure.

    Attributes:
      errors: Every field-level error found in the profile.
      warnings: Non-fatal diagnostics collected during the same pass.
    """

    def __init__(
        self,
        errors: Iterable[FieldError],
        warnings: Iterable[FieldError] = (),
    ) -> None:
        self.errors = list(errors)
        self.warnings = list(warnings)
        summary = "; ".join(str(error) for error in self.errors) or "invalid profile"
        super().__init__(f"{len(self.errors)} validation error(s): {summary}")

    @property
    def fields(self) -> list[str]:
        return [error.field for error in self.errors]


class ComputationError(RuntimeError):
    """Internal invariant violated during a trial."""


class SimulationCancelled(ComputationError):
    """Raised when a batch run is cancelled before all trials completed."""


class StatisticalWarning(UserWarning):
    """Non-fatal statistical caveat attached to a simulation result."""
