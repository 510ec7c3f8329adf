"""Atmospheric helper functions shared by the surface energy balances.

Numba-compiled kernels for vapour pressure, latent heats, air properties,
aerodynamic resistance with a bulk Richardson stability correction, and
Penman-Monteith evaporation.
"""

import math

from numba import njit

from pyvic.constants import (
    A_SVP,
    B_SVP,
    C_SVP,
    CP_AIR,
    EPS,
    GRAVITY,
    HUGE_RESIST,
    JOULES_PER_CAL,
    KELVIN,
    SMALL,
    STEFAN_B,
    VON_K,
)

# Critical bulk Richardson number for stable conditions
RI_CRIT: float = 0.2
# Maximum stomatal resistance used by the radiation factor [s/m]
RMAX: float = 5000.0


@njit(cache=True)
def svp(temp: float) -> float:
    """Saturated vapour pressure [kPa] at ``temp`` [C], over ice below 0 C."""
    es = A_SVP * math.exp(B_SVP * temp / (C_SVP + temp))
    if temp < 0.0:
        es *= 1.0 + 0.00972 * temp + 0.000042 * temp * temp
    return es


@njit(cache=True)
def svp_slope(temp: float) -> float:
    """Slope of the saturated vapour pressure curve [kPa/C]."""
    return B_SVP * C_SVP / ((C_SVP + temp) * (C_SVP + temp)) * svp(temp)


@njit(cache=True)
def latent_heat_vaporization(temp: float) -> float:
    """Latent heat of vaporisation [J/kg]."""
    return 2.501e6 - 2361.0 * temp


@njit(cache=True)
def latent_heat_sublimation(temp: float) -> float:
    """Latent heat of sublimation [J/kg]."""
    return (677.0 - 0.07 * temp) * JOULES_PER_CAL * 1000.0


@njit(cache=True)
def air_density(pressure: float, temp: float) -> float:
    """Density of moist air [kg/m3] from pressure [kPa] and temperature [C]."""
    return 3.486 * pressure / (275.0 + temp)


@njit(cache=True)
def psychrometric_constant(pressure: float, lv: float) -> float:
    """Psychrometric constant [kPa/C]."""
    return 1628.6 * pressure / lv


@njit(cache=True)
def longwave_emission(temp: float) -> float:
    """Black-body emission [W/m2] of a surface at ``temp`` [C]."""
    tk = temp + KELVIN
    return STEFAN_B * tk * tk * tk * tk


@njit(cache=True)
def aerodynamic_resistance(wind: float, height: float, displacement: float, roughness: float) -> float:
    """Neutral aerodynamic resistance [s/m].

    Args:
        wind: Wind speed at ``height`` [m/s].
        height: Reference height [m].
        displacement: Zero-plane displacement [m].
        roughness: Roughness length [m].

    Returns:
        Resistance [s/m]; HUGE_RESIST when the wind speed is zero.
    """
    if wind <= 0.0:
        return HUGE_RESIST
    log_term = math.log((height - displacement) / roughness)
    return log_term * log_term / (VON_K * VON_K * wind)


@njit(cache=True)
def stability_correction(
    height: float,
    displacement: float,
    roughness: float,
    surf_temp: float,
    air_temp: float,
    wind: float,
) -> float:
    """Bulk Richardson correction factor applied to the aerodynamic conductance.

    Stable conditions reduce exchange (factor below 1, Ri capped at RI_CRIT);
    unstable conditions enhance it following Louis (1979).

    Returns:
        Multiplicative correction for 1/ra [-].
    """
    if wind <= 0.0:
        return 1.0
    z = height - displacement
    t_mean = 0.5 * (air_temp + surf_temp) + KELVIN
    ri = GRAVITY * (air_temp - surf_temp) * z / (t_mean * wind * wind)
    if ri > 0.0:
        if ri > RI_CRIT:
            ri = RI_CRIT
        return 1.0 / ((1.0 + 4.7 * ri) * (1.0 + 4.7 * ri))
    log_term = math.log(z / roughness)
    c = 7.4 * 9.4 * VON_K * VON_K * math.sqrt(z / roughness) / (log_term * log_term)
    return 1.0 - 9.4 * ri / (1.0 + c * math.sqrt(-ri))


@njit(cache=True)
def corrected_resistance(
    wind: float,
    height: float,
    displacement: float,
    roughness: float,
    surf_temp: float,
    air_temp: float,
) -> float:
    """Aerodynamic resistance [s/m] including the stability correction."""
    ra = aerodynamic_resistance(wind, height, displacement, roughness)
    if ra >= HUGE_RESIST:
        return ra
    return ra / stability_correction(height, displacement, roughness, surf_temp, air_temp, wind)


@njit(cache=True)
def sensible_heat(density: float, surf_temp: float, air_temp: float, ra: float) -> float:
    """Sensible heat flux away from the surface [W/m2]."""
    return density * CP_AIR * (surf_temp - air_temp) / ra


@njit(cache=True)
def vapor_flux(density: float, pressure: float, surf_temp: float, vp: float, ra: float) -> float:
    """Vapour flux from a saturated surface [kg/m2/s]; negative for deposition."""
    return density * EPS / pressure * (svp(surf_temp) - vp) / ra


@njit(cache=True)
def penman_monteith(
    rad: float,
    vpd: float,
    air_temp: float,
    pressure: float,
    ra: float,
    rc: float,
) -> float:
    """Penman-Monteith evaporation rate [kg/m2/s], never negative.

    Args:
        rad: Available energy [W/m2].
        vpd: Vapour pressure deficit [kPa].
        air_temp: Air temperature [C].
        pressure: Air pressure [kPa].
        ra: Aerodynamic resistance [s/m].
        rc: Surface (canopy) resistance [s/m].
    """
    if rc >= HUGE_RESIST or ra >= HUGE_RESIST:
        return 0.0
    lv = latent_heat_vaporization(air_temp)
    slope = svp_slope(air_temp)
    gamma = psychrometric_constant(pressure, lv)
    density = air_density(pressure, air_temp)
    evap = (slope * rad + density * CP_AIR * vpd / ra) / (lv * (slope + gamma * (1.0 + rc / ra)))
    if evap < 0.0:
        return 0.0
    return evap


@njit(cache=True)
def canopy_resistance(
    rmin: float,
    lai: float,
    air_temp: float,
    vpd: float,
    shortwave: float,
    rgl: float,
) -> float:
    """Canopy resistance [s/m] before soil moisture stress.

    ``rmin / lai`` is scaled by temperature, vapour pressure deficit and
    radiation limitation factors.
    """
    if lai <= SMALL:
        return HUGE_RESIST
    tk = air_temp + KELVIN
    dt = 0.0016 * (298.0 - tk) * (298.0 - tk)
    if dt >= 1.0:
        return HUGE_RESIST
    f_temp = 1.0 / (1.0 - dt)
    g_vpd = 1.0 - 0.25 * vpd
    if g_vpd <= SMALL:
        return HUGE_RESIST
    f_vpd = 1.0 / g_vpd
    f = 0.55 * shortwave / rgl * 2.0 / lai
    f_rad = (1.0 + f) / (f + rmin / RMAX)
    return rmin / lai * f_temp * f_vpd * f_rad
