"""Exception hierarchy for pyvic.

Three failure families are distinguished:
- NonConvergenceError: a bracketed temperature search failed for a cell/time step.
- ConservationError: a water or energy budget did not close within tolerance.
- ParameterDomainError: a static parameter lies outside its physical range.

All of them derive from PyVICError so callers can catch the whole family.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


class PyVICError(Exception):
    """Base exception for all pyvic-specific errors."""

    def __init__(self, message: str, context: dict[str, Any] | None = None) -> None:
        super().__init__(message)
        self.context: dict[str, Any] = dict(context or {})

    def __str__(self) -> str:
        base = super().__str__()
        if not self.context:
            return base
        details = ", ".join(f"{key}={value!r}" for key, value in self.context.items())
        return f"{base} ({details})"


class NonConvergenceError(PyVICError):
    """A bracketed search failed to bracket or converge on a root.

    Fatal for the current cell and time step.

    Attributes:
        variable: Name of the quantity being solved (e.g. "snow_surface_temperature").
        bracket: The last (lower, upper) bracket that was tried.
    """

    def __init__(
        self,
        variable: str,
        bracket: tuple[float, float],
        message: str | None = None,
        context: dict[str, Any] | None = None,
    ) -> None:
        self.variable = variable
        self.bracket = bracket
        msg = message or f"Failed to bracket a root for {variable} in [{bracket[0]:.4f}, {bracket[1]:.4f}]"
        super().__init__(msg, context)


class ConservationError(PyVICError):
    """A water or energy budget error exceeded the fatal tolerance.

    Attributes:
        budget: "water" or "energy".
        error: The unattributed budget error [mm or W/m2].
        tolerance: The fatal tolerance that was exceeded.
    """

    def __init__(
        self,
        budget: str,
        error: float,
        tolerance: float,
        context: dict[str, Any] | None = None,
    ) -> None:
        self.budget = budget
        self.error = error
        self.tolerance = tolerance
        msg = f"{budget} budget error {error:.6g} exceeds fatal tolerance {tolerance:.6g}"
        super().__init__(msg, context)


class ParameterDomainError(PyVICError, ValueError):
    """A static parameter lies outside its physically valid range."""


@dataclass(frozen=True)
class CellFailure:
    """Record of a grid cell whose processing was aborted.

    Attributes:
        cell_id: Identifier of the failed cell.
        record_index: Index of the forcing record being processed, if known.
        error: The fatal exception.
    """

    cell_id: int
    record_index: int | None
    error: PyVICError
