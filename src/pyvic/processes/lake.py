"""Lake thermodynamics, ice and water balance.

The lake column is split into ``num_nodes`` equal layers over the current
water level. Each sub-step:
- Open water: the skin temperature closes the surface energy balance against
  conduction into the top layer; shortwave penetrates with extinction
  ``eta_a``; layer temperatures diffuse implicitly and unstable layers mix.
- Ice: the surface temperature closes against conduction through ice and
  snow; surplus energy melts snow then ice, and the ice bottom grows or melts
  from the conductive and water heat fluxes.

The basin geometry maps water level to surface area and volume. Water
bookkeeping (land inflow, evaporation, outflow and spill) is applied once per
full step. Fluxes are reported per unit lake footprint, the cell fraction the
lake occupies at its spill level.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from numba import njit

from pyvic.constants import (
    CH_WATER,
    ICE_ALBEDO,
    ICE_DENSITY_RATIO,
    K_ICE,
    K_WATER,
    LAKE_ALBEDO,
    LAKE_EDDY_FACTOR,
    LAKE_SURFACE_ABSORPTION,
    LF,
    MIN_ICE_THICKNESS,
    RHO_ICE,
    SMALL,
    SNOW_CONDUCT_FACTOR,
    SNOW_DT,
    SNOW_ON_ICE_ALBEDO,
    SURF_DT,
)
from pyvic.processes.atmosphere import (
    corrected_resistance,
    latent_heat_sublimation,
    latent_heat_vaporization,
    longwave_emission,
    sensible_heat,
    vapor_flux,
)
from pyvic.processes.soil_thermal import solve_tridiagonal
from pyvic.rootfind import bracket_root

if TYPE_CHECKING:
    from pyvic.parameters import LakeParameters
    from pyvic.state import LakeState
    from pyvic.types import AtmosphericState

logger = logging.getLogger(__name__)

LAKE_ROUGHNESS: float = 0.001  # Open water and ice roughness length [m]
SNOW_ON_ICE_DENSITY: float = 250.0  # [kg/m3]
EDDY_CONDUCTIVITY: float = K_WATER * LAKE_EDDY_FACTOR  # [W/m/K]
MIN_LEVEL: float = 1.0e-3  # Water level below which the lake is treated as dry [m]


@njit(cache=True)
def water_density(temp: float) -> float:
    """Density of fresh water [kg/m3], maximal near 3.84 C."""
    return 1000.0 * (1.0 - 1.9549e-5 * abs(temp - 3.84) ** 1.68)


@njit(cache=True)
def diffuse_lake(temps: np.ndarray, dz: float, conductivity: float, dt: float, sources: np.ndarray) -> np.ndarray:
    """Implicit heat diffusion through equal lake layers with insulated ends.

    Args:
        temps: Layer temperatures, top to bottom [C].
        dz: Layer thickness [m].
        conductivity: Eddy-enhanced conductivity [W/m/K].
        dt: Sub-step length [s].
        sources: Heat added to each layer [W/m2].
    """
    n = temps.shape[0]
    storage = CH_WATER * dz / dt
    cond = conductivity / dz
    a = np.zeros(n)
    b = np.zeros(n)
    c = np.zeros(n)
    d = np.zeros(n)
    for i in range(n):
        b[i] = storage
        if i > 0:
            a[i] = -cond
            b[i] += cond
        if i < n - 1:
            c[i] = -cond
            b[i] += cond
        d[i] = storage * temps[i] + sources[i]
    return solve_tridiagonal(a, b, c, d)


@njit(cache=True)
def convective_mixing(temps: np.ndarray) -> int:
    """Mix layers from the top down until the profile is stable.

    Modifies ``temps`` in place.

    Returns:
        Number of layers in the mixed surface region (0 when already stable).
    """
    n = temps.shape[0]
    mixmax = 0
    changed = True
    while changed:
        changed = False
        for i in range(n - 1):
            if water_density(temps[i]) > water_density(temps[i + 1]):
                mean = 0.0
                for j in range(i + 2):
                    mean += temps[j]
                mean /= i + 2
                for j in range(i + 2):
                    temps[j] = mean
                if i + 2 > mixmax:
                    mixmax = i + 2
                changed = True
                break
    return mixmax


@dataclass(frozen=True, eq=False)
class LakeBasin:
    """Level-area-volume relation of a lake basin.

    Attributes:
        depths: Levels above the basin bottom [m].
        areas: Water surface area at each level [m2].
        volumes: Water volume below each level [m3].
    """

    depths: np.ndarray
    areas: np.ndarray
    volumes: np.ndarray

    @classmethod
    def from_parameters(cls, lake: LakeParameters) -> LakeBasin:
        areas = lake.basin_fractions * lake.cell_area
        layers = 0.5 * (areas[1:] + areas[:-1]) * np.diff(lake.basin_depths)
        volumes = np.concatenate(([0.0], np.cumsum(layers)))
        return cls(depths=lake.basin_depths, areas=areas, volumes=volumes)

    @property
    def footprint_area(self) -> float:
        """Surface area at the spill level [m2]."""
        return float(self.areas[-1])

    @property
    def max_volume(self) -> float:
        return float(self.volumes[-1])

    def area(self, level: float) -> float:
        """Surface area [m2] at ``level``."""
        return float(np.interp(level, self.depths, self.areas))

    def volume(self, level: float) -> float:
        """Volume [m3] below ``level``."""
        if level > self.depths[-1]:
            return self.max_volume + self.footprint_area * (level - float(self.depths[-1]))
        return float(np.interp(level, self.depths, self.volumes))

    def level(self, volume: float) -> float:
        """Level [m] holding ``volume``."""
        if volume > self.max_volume:
            return float(self.depths[-1]) + (volume - self.max_volume) / self.footprint_area
        return float(np.interp(volume, self.volumes, self.depths))

    def storage(self, level: float) -> float:
        """Water held below ``level`` per unit footprint [mm]."""
        return self.volume(level) / self.footprint_area * 1000.0


@dataclass(frozen=True)
class LakeFluxes:
    """Lake exchange over one sub-step, per unit footprint area.

    Energy terms in W/m2, water terms in mm.

    Attributes:
        net_short: Net shortwave radiation.
        net_long: Net longwave radiation.
        sensible: Sensible heat flux.
        latent: Latent heat flux.
        ground_flux: Heat entering the water below the surface.
        fusion: Energy used to melt snow and ice at the surface.
        evaporation: Vapour loss from water and ice (negative for condensation).
        sublimation: Vapour loss from snow on ice.
        water_in: Precipitation and melt reaching the liquid volume.
        surf_temp: Surface temperature [C].
        mixmax: Layers in the convectively mixed surface region.
    """

    net_short: float = 0.0
    net_long: float = 0.0
    sensible: float = 0.0
    latent: float = 0.0
    ground_flux: float = 0.0
    fusion: float = 0.0
    evaporation: float = 0.0
    sublimation: float = 0.0
    water_in: float = 0.0
    surf_temp: float = 0.0
    mixmax: int = 0


@dataclass(frozen=True)
class LakeWaterFluxes:
    """Full-step lake water balance per unit footprint area [mm].

    Attributes:
        inflow: Runoff and baseflow received from the land tiles.
        evaporation: Evaporation removed from the volume.
        outflow: Linear outflow plus spill, leaving the cell as runoff.
    """

    inflow: float
    evaporation: float
    outflow: float


def _surface_exchange(
    air: AtmosphericState, height: float, temp: float, latent_heat: float
) -> tuple[float, float, float]:
    """Net longwave, sensible heat and latent heat of a saturated surface at ``temp``."""
    ra = corrected_resistance(air.wind, height, 0.0, LAKE_ROUGHNESS, temp, air.air_temp)
    density = air.density
    net_long = air.longwave - longwave_emission(temp)
    sensible = sensible_heat(density, temp, air.air_temp, ra)
    latent = latent_heat * vapor_flux(density, air.pressure, temp, air.vp, ra)
    return net_long, sensible, latent


def _absorption(n: int, dz: float, eta_a: float) -> np.ndarray:
    """Fraction of penetrating shortwave absorbed per layer; the bottom takes the rest."""
    tops = np.arange(n) * dz
    absorbed = np.exp(-eta_a * tops) - np.exp(-eta_a * (tops + dz))
    absorbed[-1] = 1.0 - float(np.sum(absorbed[:-1]))
    return absorbed


def _freeze_top(state: LakeState, dz: float) -> None:
    """Turn supercooling of the top layer into ice."""
    if state.temps[0] >= 0.0:
        return
    deficit = -float(state.temps[0]) * CH_WATER * dz
    state.ice_thickness += deficit / (RHO_ICE * LF)
    state.temps[0] = 0.0
    if state.fraci <= 0.0:
        state.fraci = 1.0
        state.surf_temp = 0.0
        logger.debug("Lake ice formed: %.4f m", state.ice_thickness)


def _melt_out(state: LakeState) -> float:
    """Clear ice thinner than MIN_ICE_THICKNESS and return the released snow [mm]."""
    logger.debug("Lake ice melted out")
    released = state.snow
    state.ice_thickness = 0.0
    state.fraci = 0.0
    state.snow = 0.0
    return released


def lake_substep(
    state: LakeState,
    basin: LakeBasin,
    lake: LakeParameters,
    air: AtmosphericState,
    rain: float,
    snowfall: float,
    height: float,
    dt: float,
    context: dict | None = None,
) -> LakeFluxes:
    """Advance lake temperatures and ice over one sub-step.

    Args:
        state: Lake state. Mutated.
        basin: Basin geometry.
        lake: Lake parameters.
        air: Forcing over the lake.
        rain: Rain over the footprint [mm].
        snowfall: Snowfall over the footprint [mm].
        height: Reference height of the forcing [m].
        dt: Sub-step length [s].
        context: Extra context for a NonConvergenceError.

    Returns:
        LakeFluxes per unit footprint area.
    """
    fraction = basin.area(state.level) / basin.footprint_area
    if fraction <= SMALL or state.level < MIN_LEVEL:
        return LakeFluxes(water_in=rain + snowfall, surf_temp=state.surf_temp)

    n = len(state.temps)
    dz = state.level / n
    water_in = rain + snowfall * (1.0 - fraction)
    if state.fraci > 0.0 and state.ice_thickness < MIN_ICE_THICKNESS:
        water_in += _melt_out(state)
    if state.fraci > 0.0:
        surface = _ice_step(state, air, snowfall, fraction, height, dz, dt, context)
    else:
        surface = _open_water_step(state, lake, air, height, dz, dt, context)
        water_in += snowfall * fraction

    mixmax = convective_mixing(state.temps)
    _freeze_top(state, dz)
    if state.fraci > 0.0 and state.ice_thickness < MIN_ICE_THICKNESS:
        water_in += _melt_out(state)
    state.ice_thickness = min(state.ice_thickness, state.level)

    return LakeFluxes(
        net_short=surface["net_short"] * fraction,
        net_long=surface["net_long"] * fraction,
        sensible=surface["sensible"] * fraction,
        latent=surface["latent"] * fraction,
        ground_flux=surface["ground_flux"] * fraction,
        fusion=surface["fusion"] * fraction,
        evaporation=surface["evaporation"] * fraction,
        sublimation=surface["sublimation"] * fraction,
        water_in=water_in + surface["melt"] * fraction,
        surf_temp=state.surf_temp,
        mixmax=mixmax,
    )


def _open_water_step(
    state: LakeState,
    lake: LakeParameters,
    air: AtmosphericState,
    height: float,
    dz: float,
    dt: float,
    context: dict | None,
) -> dict[str, float]:
    absorbed = (1.0 - LAKE_ALBEDO) * air.shortwave
    skin_short = LAKE_SURFACE_ABSORPTION * absorbed
    penetrating = absorbed - skin_short
    t_top = float(state.temps[0])
    lv = latent_heat_vaporization(air.air_temp)
    conduct = EDDY_CONDUCTIVITY / (0.5 * dz)

    def residual(temp: float) -> float:
        net_long, sensible, latent = _surface_exchange(air, height, temp, lv)
        return skin_short + net_long - sensible - latent - conduct * (temp - t_top)

    low = min(air.air_temp, state.surf_temp, t_top)
    high = max(air.air_temp, state.surf_temp, t_top)
    temp = bracket_root(
        residual,
        low - SURF_DT,
        high + SURF_DT,
        SURF_DT,
        variable="lake_surface_temperature",
        context=context,
    )
    net_long, sensible, latent = _surface_exchange(air, height, temp, lv)
    into_water = conduct * (temp - t_top)
    sources = penetrating * _absorption(len(state.temps), dz, lake.eta_a)
    sources[0] += into_water
    state.temps = diffuse_lake(state.temps, dz, EDDY_CONDUCTIVITY, dt, sources)
    state.surf_temp = temp
    return {
        "net_short": absorbed,
        "net_long": net_long,
        "sensible": sensible,
        "latent": latent,
        "ground_flux": into_water + penetrating,
        "fusion": 0.0,
        "evaporation": latent / lv * dt,
        "sublimation": 0.0,
        "melt": 0.0,
    }


def _ice_step(
    state: LakeState,
    air: AtmosphericState,
    snowfall: float,
    fraction: float,
    height: float,
    dz: float,
    dt: float,
    context: dict | None,
) -> dict[str, float]:
    # Snow on ice is stored per footprint; the energy balance works per surface area
    snow = state.snow / fraction + snowfall
    ice = state.ice_thickness
    k_snow = SNOW_CONDUCT_FACTOR * SNOW_ON_ICE_DENSITY * SNOW_ON_ICE_DENSITY
    # Floored at the resistance of the thinnest ice kept
    resistance = max(ice / K_ICE + snow / SNOW_ON_ICE_DENSITY / k_snow, MIN_ICE_THICKNESS / K_ICE)
    albedo = SNOW_ON_ICE_ALBEDO if snow > 0.0 else ICE_ALBEDO
    net_short = (1.0 - albedo) * air.shortwave
    ls = latent_heat_sublimation(air.air_temp)

    def balance(temp: float) -> float:
        net_long, sensible, latent = _surface_exchange(air, height, temp, ls)
        return net_short + net_long - sensible - latent - temp / resistance

    melt_snow = 0.0
    melt_ice = 0.0
    remainder = 0.0
    q0 = balance(0.0)
    if q0 >= 0.0:
        temp = 0.0
        energy = q0 * dt
        melt_snow = min(snow, energy / LF)
        energy -= melt_snow * LF
        melt_ice = min(ice, energy / (RHO_ICE * LF))
        remainder = energy - melt_ice * RHO_ICE * LF
    else:
        temp = bracket_root(
            balance,
            min(air.air_temp, state.surf_temp) - SURF_DT,
            0.0,
            SNOW_DT,
            upper_limit=0.0,
            variable="lake_ice_temperature",
            context=context,
        )
    net_long, sensible, latent = _surface_exchange(air, height, temp, ls)
    conduction = -temp / resistance
    snow -= melt_snow
    ice -= melt_ice

    # Ice bottom grows from heat conducted upward, melts from heat delivered by the water
    t_top = float(state.temps[0])
    from_water = EDDY_CONDUCTIVITY * t_top / (0.5 * dz)
    ice += (conduction - from_water) * dt / (RHO_ICE * LF)
    ice = max(ice, 0.0)

    # Vapour exchange acts on the snow first, then on the ice
    vapor = latent / ls * dt
    sublimation = 0.0
    evaporation = 0.0
    if vapor < 0.0:
        snow -= vapor
        sublimation = vapor
    else:
        sublimation = min(vapor, snow)
        snow -= sublimation
        evaporation = vapor - sublimation
        ice = max(ice - evaporation / 1000.0 / ICE_DENSITY_RATIO, 0.0)

    sources = np.zeros(len(state.temps))
    sources[0] = remainder / dt - from_water
    state.temps = diffuse_lake(state.temps, dz, EDDY_CONDUCTIVITY, dt, sources)
    state.ice_thickness = ice
    state.snow = snow * fraction
    state.surf_temp = temp
    return {
        "net_short": net_short,
        "net_long": net_long,
        "sensible": sensible,
        "latent": latent,
        "ground_flux": remainder / dt - conduction,
        "fusion": (melt_snow * LF + melt_ice * RHO_ICE * LF) / dt,
        "evaporation": evaporation,
        "sublimation": sublimation,
        "melt": melt_snow,
    }


def lake_water_balance(
    state: LakeState,
    basin: LakeBasin,
    lake: LakeParameters,
    water_in: float,
    evaporation: float,
    inflow: float,
    dt_days: float,
) -> LakeWaterFluxes:
    """Apply one full step of lake water bookkeeping.

    Args:
        state: Lake state. ``level`` is updated.
        basin: Basin geometry.
        lake: Lake parameters.
        water_in: Precipitation and melt reaching the water [mm per footprint].
        evaporation: Evaporation demand on the water and ice [mm per footprint].
        inflow: Land runoff and baseflow drained into the lake [mm per footprint].
        dt_days: Full step length [days].

    Returns:
        LakeWaterFluxes per unit footprint area.
    """
    area = basin.footprint_area
    volume = basin.volume(state.level) + (water_in + inflow) / 1000.0 * area
    evaporation = min(evaporation, volume / area * 1000.0)
    volume -= evaporation / 1000.0 * area

    outflow = 0.0
    threshold = basin.volume(lake.min_depth)
    if volume > threshold:
        outflow = min(lake.outflow_coefficient * (volume - threshold) * dt_days, volume - threshold)
        volume -= outflow
    if volume > basin.max_volume:
        logger.debug("Lake spilled %.3f m3", volume - basin.max_volume)
        outflow += volume - basin.max_volume
        volume = basin.max_volume

    state.level = basin.level(volume)
    state.ice_thickness = min(state.ice_thickness, state.level)
    return LakeWaterFluxes(
        inflow=inflow,
        evaporation=evaporation,
        outflow=outflow / area * 1000.0,
    )
