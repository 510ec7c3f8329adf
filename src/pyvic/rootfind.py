"""Bracket-and-refine root finder shared by all temperature solves.

Canopy, snow, soil and lake temperatures are all found as the root of an energy
balance residual. The residual is first bracketed by stepping outward from an
initial interval, then refined with Brent's method.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from typing import Any

from scipy.optimize import brentq

from .constants import MAX_TRIES, TEMP_TOL
from .exceptions import NonConvergenceError

logger = logging.getLogger(__name__)


def bracket_root(
    residual: Callable[[float], float],
    lower: float,
    upper: float,
    step: float,
    *,
    lower_limit: float = -math.inf,
    upper_limit: float = math.inf,
    max_tries: int = MAX_TRIES,
    xtol: float = TEMP_TOL,
    variable: str = "temperature",
    context: dict[str, Any] | None = None,
) -> float:
    """Find a root of ``residual`` by bracket expansion and Brent refinement.

    While both ends of the interval have residuals of the same sign, the end
    closer to zero (in absolute residual) is moved outward by ``step``. Ends
    are clamped to the hard limits; once a limit is reached the other end is
    expanded instead.

    Args:
        residual: Continuous function of one variable.
        lower: Initial lower end of the interval.
        upper: Initial upper end of the interval.
        step: Outward step applied per expansion.
        lower_limit: Hard lower bound for the search.
        upper_limit: Hard upper bound for the search.
        max_tries: Maximum number of expansions.
        xtol: Absolute tolerance passed to Brent's method.
        variable: Name of the solved quantity, used in errors.
        context: Extra context attached to a NonConvergenceError.

    Returns:
        The root, within ``xtol``.

    Raises:
        NonConvergenceError: If no sign change is found within ``max_tries``
            expansions, the residual is not finite, or refinement fails.
    """
    lower, upper = min(lower, upper), max(lower, upper)
    lower = min(max(lower, lower_limit), upper_limit)
    upper = max(min(upper, upper_limit), lower_limit)
    f_lower = residual(lower)
    f_upper = residual(upper)

    tries = 0
    while True:
        if not (math.isfinite(f_lower) and math.isfinite(f_upper)):
            raise NonConvergenceError(
                variable,
                (lower, upper),
                message=f"Residual for {variable} is not finite in [{lower:.4f}, {upper:.4f}]",
                context=context,
            )
        if f_lower == 0.0:
            return lower
        if f_upper == 0.0:
            return upper
        if (f_lower < 0.0) != (f_upper < 0.0):
            break
        if tries >= max_tries:
            raise NonConvergenceError(variable, (lower, upper), context=context)

        can_lower = lower > lower_limit
        can_upper = upper < upper_limit
        if not (can_lower or can_upper):
            raise NonConvergenceError(variable, (lower, upper), context=context)
        expand_lower = can_lower and (abs(f_lower) < abs(f_upper) or not can_upper)
        if expand_lower:
            lower = max(lower - step, lower_limit)
            f_lower = residual(lower)
        else:
            upper = min(upper + step, upper_limit)
            f_upper = residual(upper)
        tries += 1
        logger.debug("Expanded %s bracket to [%.4f, %.4f]", variable, lower, upper)

    try:
        return float(brentq(residual, lower, upper, xtol=xtol, maxiter=200))
    except RuntimeError as e:
        raise NonConvergenceError(variable, (lower, upper), message=str(e), context=context) from e
