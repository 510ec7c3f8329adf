"""Water and energy budget closure checks.

Budget errors within ``*_tolerance`` pass silently, errors within the fatal
band are logged as warnings, and larger errors raise ConservationError. A
snowpack energy surplus is a reported diagnostic, never a fatal condition.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pyvic.exceptions import ConservationError

if TYPE_CHECKING:
    from pyvic.options import ModelOptions

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BudgetErrors:
    """Unattributed budget errors of one full step.

    Attributes:
        water: Water balance error [mm].
        energy: Energy balance error [W/m2].
        snow_mass: Snowpack mass balance error [mm].
        snow_surplus: Melt energy left once the snowpack was gone [W/m2].
    """

    water: float
    energy: float
    snow_mass: float = 0.0
    snow_surplus: float = 0.0


def check_budget(
    budget: str,
    error: float,
    tolerance: float,
    fatal_tolerance: float,
    context: dict[str, Any] | None = None,
) -> None:
    """Classify one budget error.

    Raises:
        ConservationError: If ``|error|`` exceeds ``fatal_tolerance``.
    """
    magnitude = abs(error)
    if magnitude > fatal_tolerance:
        raise ConservationError(budget, error, fatal_tolerance, context)
    if magnitude > tolerance:
        logger.warning("%s budget error %.6g exceeds tolerance %.6g", budget, error, tolerance)


def check_closure(errors: BudgetErrors, options: ModelOptions, context: dict[str, Any] | None = None) -> None:
    """Check all budgets of a full step against the configured tolerances.

    The snowpack mass error is held to the water tolerances.

    Raises:
        ConservationError: If any budget error exceeds its fatal tolerance.
    """
    check_budget("water", errors.water, options.water_tolerance, options.water_fatal_tolerance, context)
    check_budget("snow_mass", errors.snow_mass, options.water_tolerance, options.water_fatal_tolerance, context)
    check_budget("energy", errors.energy, options.energy_tolerance, options.energy_fatal_tolerance, context)
    if errors.snow_surplus > options.energy_tolerance:
        logger.warning(
            "Snowpack melted out with %.3f W/m2 of melt energy left unabsorbed",
            errors.snow_surplus,
        )
