"""Soil moisture process functions.

Numba kernels for the variable infiltration capacity curve, gravity drainage
between layers, the two baseflow laws, and the soil moisture limits applied to
bare-soil evaporation and transpiration. ``update_soil_moisture`` composes
them into one full-step update of a layered column.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from numba import njit

from pyvic.constants import HOURS_PER_DAY, SMALL
from pyvic.options import BaseflowScheme

if TYPE_CHECKING:
    from pyvic.options import ModelOptions
    from pyvic.parameters import SoilParameters


@njit(cache=True)
def arno_runoff(moist: float, max_moist: float, b_infilt: float, inflow: float) -> float:
    """Surface runoff from the variable infiltration capacity curve.

    Args:
        moist: Total moisture of the upper layers [mm].
        max_moist: Maximum moisture of the upper layers [mm].
        b_infilt: Infiltration shape parameter [-]. Zero gives a uniform bucket.
        inflow: Water reaching the soil surface [mm].

    Returns:
        Runoff [mm], within [0, inflow].
    """
    if inflow <= 0.0:
        return 0.0
    if max_moist <= 0.0:
        return inflow
    if moist > max_moist:
        moist = max_moist

    if b_infilt < SMALL:
        runoff = inflow - (max_moist - moist)
    else:
        max_infil = (1.0 + b_infilt) * max_moist
        ex = b_infilt / (1.0 + b_infilt)
        a = 1.0 - (1.0 - moist / max_moist) ** ex
        i_0 = max_infil * (1.0 - (1.0 - a) ** (1.0 / b_infilt))
        if inflow + i_0 >= max_infil:
            runoff = inflow - max_moist + moist
        else:
            basis = 1.0 - (i_0 + inflow) / max_infil
            runoff = inflow - max_moist + moist + max_moist * basis ** (1.0 + b_infilt)

    if runoff < 0.0:
        return 0.0
    if runoff > inflow:
        return inflow
    return runoff


@njit(cache=True)
def saturated_fraction(moist: float, max_moist: float, b_infilt: float) -> float:
    """Fraction of the area at saturation on the infiltration curve [-]."""
    if max_moist <= 0.0 or moist >= max_moist:
        return 1.0
    if b_infilt < SMALL:
        return 0.0
    return 1.0 - (1.0 - moist / max_moist) ** (b_infilt / (1.0 + b_infilt))


@njit(cache=True)
def bare_soil_factor(moist: float, max_moist: float, b_infilt: float) -> float:
    """Ratio of actual to potential bare-soil evaporation [-]."""
    if max_moist <= 0.0:
        return 0.0
    sat = saturated_fraction(moist, max_moist, b_infilt)
    rel = min(max(moist / max_moist, 0.0), 1.0)
    return sat + (1.0 - sat) * rel


@njit(cache=True)
def moisture_stress(liquid: float, wcr: float, wpwp: float) -> float:
    """Transpiration limitation between wilting point and critical moisture [-]."""
    if liquid >= wcr:
        return 1.0
    if liquid <= wpwp:
        return 0.0
    return (liquid - wpwp) / (wcr - wpwp)


@njit(cache=True)
def arno_baseflow(
    liquid: float,
    resid: float,
    max_moist: float,
    ds: float,
    dsmax: float,
    ws: float,
    c: float,
    dt_days: float,
) -> float:
    """ARNO nonlinear baseflow [mm] from the bottom layer.

    Linear in the relative liquid moisture above residual up to ``ws``,
    with an added power-law term above it. Zero at or below residual.
    """
    avail = liquid - resid
    if avail <= 0.0:
        return 0.0
    rel = avail / (max_moist - resid)
    if rel > 1.0:
        rel = 1.0
    rate = ds * dsmax / ws * rel
    if rel > ws:
        rate += dsmax * (1.0 - ds / ws) * ((rel - ws) / (1.0 - ws)) ** c
    flow = rate * dt_days
    if flow > avail:
        return avail
    return flow


@njit(cache=True)
def nijssen_baseflow(
    liquid: float,
    resid: float,
    d1: float,
    d2: float,
    d3: float,
    d4: float,
    dt_days: float,
) -> float:
    """Four-parameter baseflow [mm] of Nijssen et al. (2001).

    Uses the liquid moisture above residual ``w`` [mm]:
    d1 * w + d2 * (w - d3)^d4 for w > d3.
    """
    w = liquid - resid
    if w <= 0.0:
        return 0.0
    rate = d1 * w
    if w > d3:
        rate += d2 * (w - d3) ** d4
    flow = rate * dt_days
    if flow > w:
        return w
    return flow


@njit(cache=True)
def drain_layers(
    liquid: np.ndarray,  # Modified in place
    ice: np.ndarray,
    max_moist: np.ndarray,
    resid: np.ndarray,
    ksat: np.ndarray,
    expt: np.ndarray,
    hours: int,
) -> float:
    """Hourly gravity drainage and saturation-excess cascade.

    Each layer above the bottom drains into the next with a Brooks-Corey
    conductivity applied to liquid water only. Liquid beyond the layer's
    free pore space moves down; excess leaving the bottom layer is returned.

    Returns:
        Water leaving the bottom of the column by saturation excess [mm].
    """
    n = liquid.shape[0]
    leaving = 0.0
    for _ in range(hours):
        for i in range(n - 1):
            avail = liquid[i] - resid[i]
            if avail <= 0.0:
                continue
            rel = avail / (max_moist[i] - resid[i])
            if rel > 1.0:
                rel = 1.0
            q = ksat[i] / HOURS_PER_DAY * rel ** expt[i]
            if q > avail:
                q = avail
            liquid[i] -= q
            liquid[i + 1] += q
        for i in range(n):
            cap = max_moist[i] - ice[i]
            if liquid[i] > cap:
                extra = liquid[i] - cap
                liquid[i] = cap
                if i < n - 1:
                    liquid[i + 1] += extra
                else:
                    leaving += extra
    return leaving


@dataclass(frozen=True)
class SoilMoistureFluxes:
    """Full-step soil moisture fluxes for one column [mm].

    Attributes:
        inflow: Water reaching the soil surface.
        runoff: Surface runoff.
        baseflow: Bottom-layer drainage including saturation excess.
        evaporation: Water extracted per layer by evapotranspiration.
    """

    inflow: float
    runoff: float
    baseflow: float
    evaporation: np.ndarray


def update_soil_moisture(
    moist: np.ndarray,
    ice: np.ndarray,
    inflow: float,
    evap: np.ndarray,
    soil: SoilParameters,
    options: ModelOptions,
) -> tuple[np.ndarray, SoilMoistureFluxes]:
    """Advance layer moisture by one full model step.

    Evaporation is extracted first, surface inflow is split into runoff and
    infiltration over the upper layers, water then drains hourly through the
    column and the bottom layer releases baseflow. Ice is held fixed.

    Args:
        moist: Total (liquid + ice) moisture per layer [mm].
        ice: Ice content per layer [mm].
        inflow: Throughfall, snowmelt and rain reaching the soil [mm].
        evap: Evapotranspiration demand per layer [mm], already limited by liquid.
        soil: Static soil parameters.
        options: Run configuration.

    Returns:
        Tuple of (new_moist, fluxes).
    """
    max_moist = soil.max_moist
    resid = soil.resid_mm
    liquid = moist - ice

    actual_evap = np.minimum(np.maximum(evap, 0.0), np.maximum(liquid, 0.0))
    liquid = liquid - actual_evap

    n = liquid.shape[0]
    n_top = n - 1 if n > 1 else 1
    top_moist = float(np.sum(liquid[:n_top] + ice[:n_top]))
    top_max = float(np.sum(max_moist[:n_top]))
    runoff = arno_runoff(top_moist, top_max, soil.b_infilt, inflow)
    liquid[0] += inflow - runoff

    leaving = drain_layers(
        liquid,
        ice,
        max_moist,
        resid,
        soil.ksat,
        soil.expt,
        options.time_step_hours,
    )

    dt_days = options.time_step_hours / HOURS_PER_DAY
    bottom = n - 1
    if options.baseflow is BaseflowScheme.ARNO:
        baseflow = arno_baseflow(
            liquid[bottom],
            resid[bottom],
            max_moist[bottom],
            soil.ds,
            soil.dsmax,
            soil.ws,
            soil.c,
            dt_days,
        )
    else:
        baseflow = nijssen_baseflow(
            liquid[bottom],
            resid[bottom],
            soil.d1,
            soil.d2,
            soil.d3,
            soil.d4,
            dt_days,
        )
    liquid[bottom] -= baseflow
    baseflow += leaving

    new_moist = np.maximum(liquid, 0.0) + ice
    fluxes = SoilMoistureFluxes(
        inflow=float(inflow),
        runoff=float(runoff),
        baseflow=float(baseflow),
        evaporation=actual_evap,
    )
    return new_moist, fluxes


def transpiration_limits(liquid: np.ndarray, soil: SoilParameters, root: np.ndarray) -> np.ndarray:
    """Root-weighted moisture stress per layer [-]."""
    stress = np.array(
        [moisture_stress(float(liquid[i]), float(soil.wcr_mm[i]), float(soil.wpwp_mm[i])) for i in range(len(liquid))]
    )
    return root * stress
