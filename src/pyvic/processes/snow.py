"""Ground snowpack energy and mass balance.

The pack has two layers: a surface layer holding at most MAX_SURFACE_SWE of
ice, whose temperature comes from the surface energy balance, and a pack layer
below that exchanges heat with the ground. Each sub-step:
- ``accumulate_snow`` adds snowfall and updates coverage.
- ``ground_conductance`` gives the heat exchange coefficient seen by the soil
  surface energy balance.
- ``snow_energy_balance`` solves the surface temperature, melt, refreeze,
  sublimation and liquid water drainage.

Snow quantities are stored per unit tile area; the energy balance works per
unit covered area.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

from numba import njit

from pyvic.constants import (
    BLOWING_COEFF,
    CH_ICE,
    CH_WATER,
    GRAVITY,
    LF,
    LIQUID_WATER_CAPACITY,
    MAX_SNOW_DENSITY,
    MAX_SURFACE_SWE,
    NEW_SNOW_ALB,
    SEC_PER_DAY,
    SMALL,
    SNOW_ALB_ACCUM_A,
    SNOW_ALB_ACCUM_B,
    SNOW_ALB_THAW_A,
    SNOW_ALB_THAW_B,
    SNOW_CONDUCT_FACTOR,
    SNOW_DT,
)
from pyvic.processes.atmosphere import (
    corrected_resistance,
    latent_heat_sublimation,
    longwave_emission,
    sensible_heat,
    vapor_flux,
)
from pyvic.rootfind import bracket_root

if TYPE_CHECKING:
    from pyvic.state import SnowState
    from pyvic.types import AtmosphericState

logger = logging.getLogger(__name__)

# Snow below this mass is treated as melted out [mm]
MIN_SWQ: float = 1.0e-9


@njit(cache=True)
def partition_precipitation(
    prec: float,
    air_temp: float,
    max_snow_temp: float,
    min_rain_temp: float,
) -> tuple[float, float]:
    """Split precipitation into rain and snow.

    Linear between ``min_rain_temp`` (all snow) and ``max_snow_temp`` (all rain).

    Returns:
        Tuple of (rain, snow) [mm].
    """
    if air_temp >= max_snow_temp:
        return prec, 0.0
    if air_temp <= min_rain_temp:
        return 0.0, prec
    rain = prec * (air_temp - min_rain_temp) / (max_snow_temp - min_rain_temp)
    return rain, prec - rain


@njit(cache=True)
def new_snow_density(air_temp: float) -> float:
    """Density of freshly fallen snow [kg/m3]."""
    temp = min(air_temp, 0.0)
    return 67.92 + 51.25 * math.exp(temp / 2.59)


@njit(cache=True)
def snow_albedo(last_snow: float, melting: bool) -> float:
    """Snow albedo aged since the last snowfall [-].

    Args:
        last_snow: Time since the last snowfall [days].
        melting: Whether the pack is in its thaw season.
    """
    if last_snow <= 0.0:
        return NEW_SNOW_ALB
    if melting:
        return NEW_SNOW_ALB * SNOW_ALB_THAW_A ** (last_snow**SNOW_ALB_THAW_B)
    return NEW_SNOW_ALB * SNOW_ALB_ACCUM_A ** (last_snow**SNOW_ALB_ACCUM_B)


@njit(cache=True)
def blowing_threshold(air_temp: float) -> float:
    """Threshold wind speed for snow transport [m/s]."""
    return 9.43 + 0.18 * air_temp + 0.0033 * air_temp * air_temp


@njit(cache=True)
def blowing_sublimation(wind: float, air_temp: float, dt: float, available: float) -> float:
    """Blowing-snow sublimation over one sub-step [mm], bounded by ``available``."""
    excess = wind - blowing_threshold(air_temp)
    if excess <= 0.0 or available <= 0.0:
        return 0.0
    loss = BLOWING_COEFF * excess * excess * excess * dt
    return min(loss, available)


@njit(cache=True)
def compact_density(density: float, swq: float, temp: float, wet: bool, dt: float) -> float:
    """Density after destructive metamorphism and overburden compaction [kg/m3]."""
    if density <= 0.0 or swq <= 0.0:
        return density
    c1 = 1.0 if density <= 150.0 else math.exp(-0.046 * (density - 150.0))
    c2 = 2.0 if wet else 1.0
    metamorphism = 2.778e-6 * c1 * c2 * math.exp(-0.04 * (0.0 - temp))
    viscosity = 3.6e6 * math.exp(0.08 * (0.0 - temp) + 0.021 * density)
    overburden = 0.5 * GRAVITY * swq / viscosity
    new_density = density * (1.0 + (metamorphism + overburden) * dt)
    if new_density > MAX_SNOW_DENSITY:
        return MAX_SNOW_DENSITY
    return new_density


def snow_coverage(snow: SnowState, spatial: bool, depth_full: float) -> float:
    """Fraction of the tile covered by snow [-]."""
    if snow.swq <= MIN_SWQ:
        return 0.0
    if not spatial or snow.store_swq > 0.0:
        return 1.0
    return min(1.0, max(snow.depth / depth_full, SMALL))


def _layer_split(ice: float) -> tuple[float, float]:
    surface = min(ice, MAX_SURFACE_SWE)
    return surface, ice - surface


def accumulate_snow(
    snow: SnowState,
    snowfall: float,
    air_temp: float,
    dt: float,
    spatial: bool,
    depth_full: float,
) -> None:
    """Add snowfall to the pack and update coverage.

    New snow enters the surface layer at min(air_temp, 0) and mixes with it
    conserving sensible heat. Mutates ``snow``.

    Args:
        snow: Snowpack state (per tile area).
        snowfall: Snow reaching the ground [mm].
        air_temp: Air temperature [C].
        dt: Sub-step length [s].
        spatial: Fractional coverage enabled.
        depth_full: Depth giving full coverage [m].
    """
    if snowfall <= 0.0:
        if snow.swq > 0.0:
            snow.last_snow += dt / SEC_PER_DAY
        snow.coverage = snow_coverage(snow, spatial, depth_full)
        return

    snow_temp = min(air_temp, 0.0)
    density = new_snow_density(air_temp)
    if snow.swq <= MIN_SWQ:
        snow.reset()
        snow.surf_temp = snow_temp
        snow.pack_temp = snow_temp
        snow.swq = snowfall
        snow.depth = snowfall / density
        snow.density = density
    else:
        cov = max(snow.coverage, SMALL)
        surf_ice, _ = _layer_split(snow.ice / cov)
        heat_old = CH_ICE * surf_ice * cov
        heat_new = CH_ICE * snowfall
        snow.surf_temp = (heat_old * snow.surf_temp + heat_new * snow_temp) / (heat_old + heat_new)
        snow.swq += snowfall
        snow.depth += snowfall / density
        snow.density = snow.swq / snow.depth
    if spatial:
        snow.store_swq += snowfall
    snow.last_snow = 0.0
    snow.albedo = NEW_SNOW_ALB
    snow.coverage = snow_coverage(snow, spatial, depth_full)


def ground_conductance(snow: SnowState, dt: float) -> tuple[float, float]:
    """Heat exchange between the bottom snow layer and the soil surface.

    The bottom layer (pack, or surface layer when there is no pack) is
    coupled to the soil surface through half the snow depth in series with
    its own heat capacity, so the exchanged heat cannot overshoot.

    Returns:
        Tuple of (conductance [W/m2/K] per covered area, bottom layer temperature [C]).
    """
    cov = snow.coverage
    if cov <= 0.0 or snow.swq <= MIN_SWQ or snow.depth <= 0.0:
        return 0.0, 0.0
    surf_ice, pack_ice = _layer_split(snow.ice / cov)
    if pack_ice > 0.0:
        capacity, temp = CH_ICE * pack_ice / 1000.0, snow.pack_temp
    else:
        capacity, temp = CH_ICE * surf_ice / 1000.0, snow.surf_temp
    if capacity <= 0.0:
        return 0.0, temp
    conductivity = SNOW_CONDUCT_FACTOR * snow.density * snow.density
    conduct = conductivity / (0.5 * snow.depth / cov)
    return 1.0 / (1.0 / conduct + dt / capacity), temp


@dataclass(frozen=True)
class SnowFluxes:
    """Snowpack fluxes over one sub-step, per unit tile area.

    Water terms in mm, energy terms in W/m2.

    Attributes:
        outflow: Liquid water released to the soil (reported as melt).
        sublimation: Vapour loss from the surface (negative for deposition).
        blowing: Blowing-snow sublimation.
        net_short: Net shortwave radiation of the snow surface.
        net_long: Net longwave radiation of the snow surface.
        sensible: Sensible heat flux away from the snow.
        latent: Latent heat flux of the actual vapour exchange.
        advection: Heat brought by rain.
        deltacc: Change of snow cold content.
        fusion: Energy used by melt minus energy released by refreeze.
        surplus: Melt energy left after all ice has melted.
        ground_heat: Heat conducted from the soil into the snow.
        surf_temp: Snow surface temperature [C].
    """

    outflow: float = 0.0
    sublimation: float = 0.0
    blowing: float = 0.0
    net_short: float = 0.0
    net_long: float = 0.0
    sensible: float = 0.0
    latent: float = 0.0
    advection: float = 0.0
    deltacc: float = 0.0
    fusion: float = 0.0
    surplus: float = 0.0
    ground_heat: float = 0.0
    surf_temp: float = 0.0

    @property
    def net_rad(self) -> float:
        return self.net_short + self.net_long


def snow_energy_balance(
    snow: SnowState,
    air: AtmosphericState,
    rain: float,
    snow_flux: float,
    height: float,
    roughness: float,
    dt: float,
    blowing: bool = False,
    context: dict | None = None,
) -> SnowFluxes:
    """Solve the snowpack energy and mass balance for one sub-step.

    At a surface temperature of 0 C the available energy melts surface ice,
    then warms and melts the pack; energy left once all ice is gone is
    reported as ``surplus``. With an energy deficit, surface liquid water
    refreezes first and the surface temperature is then solved below 0 C.

    Args:
        snow: Snowpack state after accumulation (per tile area). Mutated.
        air: Forcing seen by the snow surface.
        rain: Rain falling on the snow-covered area, per covered area [mm].
        snow_flux: Heat conducted from the snow into the soil, per covered area [W/m2].
        height: Reference height for the aerodynamic resistance [m].
        roughness: Snow roughness length [m].
        dt: Sub-step length [s].
        blowing: Add blowing-snow sublimation.
        context: Extra context for a NonConvergenceError.

    Returns:
        SnowFluxes per unit tile area.
    """
    cov = snow.coverage
    if snow.swq <= MIN_SWQ or cov <= 0.0:
        return SnowFluxes(surf_temp=snow.surf_temp)

    surf_ice, pack_ice = _layer_split(snow.ice / cov)
    surf_water = snow.surf_water / cov + rain
    pack_water = snow.pack_water / cov
    if pack_ice <= 0.0:
        surf_water += pack_water
        pack_water = 0.0
    has_pack = pack_ice > 0.0

    surf_temp_old = snow.surf_temp
    pack_temp_old = snow.pack_temp
    cap_surf = CH_ICE * surf_ice / 1000.0
    cap_pack = CH_ICE * pack_ice / 1000.0
    ground_to_surface = 0.0 if has_pack else -snow_flux
    advection = CH_WATER * rain / 1000.0 * max(air.air_temp, 0.0) / dt

    melting = surf_temp_old >= 0.0 and surf_water > 0.0
    albedo = snow_albedo(snow.last_snow, melting)
    snow.albedo = albedo
    net_short = (1.0 - albedo) * air.shortwave
    ls = latent_heat_sublimation(air.air_temp)
    density = air.density

    def exchange(temp: float) -> tuple[float, float, float]:
        ra = corrected_resistance(air.wind, height, 0.0, roughness, temp, air.air_temp)
        net_long = air.longwave - longwave_emission(temp)
        sensible = sensible_heat(density, temp, air.air_temp, ra)
        latent = ls * vapor_flux(density, air.pressure, temp, air.vp, ra)
        return net_long, sensible, latent

    def balance(temp: float, capacity: float, refrozen: float) -> float:
        net_long, sensible, latent = exchange(temp)
        storage = (capacity * temp - cap_surf * surf_temp_old) / dt
        return net_short + net_long - sensible - latent + advection + ground_to_surface - storage + LF * refrozen / dt

    melt_surf = refreeze_surf = 0.0
    to_pack = 0.0
    surplus = 0.0
    q0 = balance(0.0, cap_surf, 0.0)
    if q0 >= 0.0:
        temp = 0.0
        capacity = cap_surf
        energy = q0 * dt
        melt_surf = min(surf_ice, energy / LF)
        energy -= melt_surf * LF
        if has_pack:
            to_pack = energy
        else:
            surplus += energy
    else:
        deficit = -q0 * dt
        if surf_water * LF >= deficit:
            temp = 0.0
            refreeze_surf = deficit / LF
            capacity = cap_surf
        else:
            refreeze_surf = surf_water
            capacity = cap_surf + CH_ICE * refreeze_surf / 1000.0
            temp = bracket_root(
                lambda t: balance(t, capacity, refreeze_surf),
                surf_temp_old - SNOW_DT,
                0.0,
                SNOW_DT,
                upper_limit=0.0,
                variable="snow_surface_temperature",
                context=context,
            )
    net_long, sensible, latent_potential = exchange(temp)
    deltacc = (capacity * temp - cap_surf * surf_temp_old) / dt
    surf_ice += refreeze_surf - melt_surf
    surf_water += melt_surf - refreeze_surf

    # Pack layer: ground heat plus any energy passed down from the surface
    melt_pack = refreeze_pack = 0.0
    pack_temp = pack_temp_old
    if has_pack:
        heat = cap_pack * pack_temp_old + to_pack - snow_flux * dt
        if heat > 0.0:
            melt_pack = min(pack_ice, heat / LF)
            surplus += heat - melt_pack * LF
            pack_temp = 0.0
            pack_capacity = cap_pack
        else:
            refreeze_pack = min(pack_water, -heat / LF)
            heat += refreeze_pack * LF
            pack_capacity = cap_pack + CH_ICE * refreeze_pack / 1000.0
            pack_temp = heat / pack_capacity if pack_capacity > 0.0 else 0.0
        deltacc += (pack_capacity * pack_temp - cap_pack * pack_temp_old) / dt
        pack_ice += refreeze_pack - melt_pack
        pack_water += melt_pack - refreeze_pack
    fusion = LF * (melt_surf + melt_pack - refreeze_surf - refreeze_pack) / dt

    # Vapour exchange and blowing snow act on the ice
    vapor = latent_potential / ls * dt
    if vapor >= 0.0:
        sublimation = min(vapor, surf_ice + pack_ice)
        from_surface = min(sublimation, surf_ice)
        surf_ice -= from_surface
        pack_ice -= sublimation - from_surface
    else:
        sublimation = vapor
        surf_ice -= vapor
    blown = 0.0
    if blowing:
        blown = blowing_sublimation(air.wind, air.air_temp, dt, surf_ice + pack_ice)
        from_surface = min(blown, surf_ice)
        surf_ice -= from_surface
        pack_ice -= blown - from_surface

    # Rebalance layers, mixing temperatures with the ice that moves
    ice = surf_ice + pack_ice
    new_surf, new_pack = _layer_split(ice)
    moved = new_surf - surf_ice
    if moved > 0.0:
        temp = (surf_ice * temp + moved * pack_temp) / new_surf
    elif moved < 0.0 and new_pack > 0.0:
        pack_temp = (pack_ice * pack_temp - moved * temp) / new_pack
    if new_pack <= 0.0:
        surf_water += pack_water
        pack_water = 0.0
        pack_temp = temp

    # Liquid water beyond the holding capacity drains
    outflow = 0.0
    excess = surf_water - LIQUID_WATER_CAPACITY * new_surf
    if excess > 0.0:
        surf_water -= excess
        if new_pack > 0.0:
            pack_water += excess
        else:
            outflow += excess
    excess = pack_water - LIQUID_WATER_CAPACITY * new_pack
    if excess > 0.0:
        pack_water -= excess
        outflow += excess

    swq_cov = ice + surf_water + pack_water
    if ice <= MIN_SWQ:
        outflow += swq_cov
        if surplus > 0.0:
            logger.debug("Snowpack melted out with %.3f J/m2 of unused melt energy", surplus)
        swq_cov = 0.0

    losses = (outflow + max(sublimation, 0.0) + blown) * cov
    if swq_cov <= 0.0:
        snow.reset()
    else:
        density_old = snow.density
        snow.swq = swq_cov * cov
        snow.surf_water = surf_water * cov
        snow.pack_water = pack_water * cov
        snow.surf_temp = temp
        snow.pack_temp = pack_temp
        snow.store_swq = max(snow.store_swq - losses, 0.0)
        snow.density = compact_density(density_old, swq_cov, temp, surf_water > 0.0, dt)
        snow.depth = snow.swq / snow.density

    return SnowFluxes(
        outflow=outflow * cov,
        sublimation=sublimation * cov,
        blowing=blown * cov,
        net_short=net_short * cov,
        net_long=net_long * cov,
        sensible=sensible * cov,
        latent=ls * sublimation / dt * cov,
        advection=advection * cov,
        deltacc=deltacc * cov,
        fusion=fusion * cov,
        surplus=surplus / dt * cov,
        ground_heat=-snow_flux * cov,
        surf_temp=temp,
    )
