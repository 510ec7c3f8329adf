"""Vegetation canopy interception, evapotranspiration and foliage energy balance.

Rain is intercepted up to Wdmax = 0.2 * LAI. Overstory classes also hold snow
following Hedstrom and Pomeroy (1998), releasing it by melt drip and unloading
above 0 C. Evaporation demand is expressed through ``EvaporationDemand``,
which converts a radiation budget and an aerodynamic resistance into canopy
evaporation, transpiration per soil layer and bare-soil evaporation.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np
from numba import njit

from pyvic.constants import (
    CANOPY_DT,
    SEC_PER_DAY,
    SNOW_INTERCEPT_FACTOR,
    SNOW_UNLOAD_FRACTION,
)
from pyvic.processes.atmosphere import (
    aerodynamic_resistance,
    canopy_resistance,
    latent_heat_sublimation,
    latent_heat_vaporization,
    longwave_emission,
    penman_monteith,
    sensible_heat,
    vapor_flux,
)
from pyvic.processes.soil_moisture import bare_soil_factor, transpiration_limits
from pyvic.rootfind import bracket_root

if TYPE_CHECKING:
    from pyvic.parameters import SoilParameters, VegLibraryEntry, VegTile
    from pyvic.state import CanopyState
    from pyvic.types import AtmosphericState

# Degree-day melt of intercepted snow [mm/C/day]
CANOPY_MELT_FACTOR: float = 2.0


@njit(cache=True)
def intercept_rain(wdew: float, rain: float, wdmax: float) -> tuple[float, float]:
    """Fill canopy storage with rain.

    Args:
        wdew: Current interception storage [mm].
        rain: Rain reaching the canopy [mm].
        wdmax: Storage capacity [mm].

    Returns:
        Tuple of (new storage, throughfall) [mm].
    """
    room = wdmax - wdew
    if room < 0.0:
        room = 0.0
    held = min(rain, room)
    wdew += held
    throughfall = rain - held
    # Capacity shrinks when the monthly LAI drops
    if wdew > wdmax:
        throughfall += wdew - wdmax
        wdew = wdmax
    return wdew, throughfall


@njit(cache=True)
def intercept_snow(
    stored: float,
    snowfall: float,
    lai: float,
    air_temp: float,
    dt: float,
) -> tuple[float, float, float]:
    """Overstory snow interception, melt drip and unloading.

    Args:
        stored: Intercepted snow [mm].
        snowfall: Snow reaching the canopy [mm].
        lai: Leaf area index [-].
        air_temp: Air temperature [C].
        dt: Sub-step length [s].

    Returns:
        Tuple of (new storage, snow reaching the ground, melt drip) [mm].
    """
    capacity = SNOW_INTERCEPT_FACTOR * lai
    intercepted = 0.0
    if snowfall > 0.0 and capacity > stored:
        intercepted = (capacity - stored) * (1.0 - math.exp(-snowfall / capacity))
        intercepted = min(intercepted, snowfall)
    stored += intercepted
    drip = 0.0
    unloaded = 0.0
    if air_temp > 0.0 and stored > 0.0:
        drip = min(stored, CANOPY_MELT_FACTOR * air_temp * dt / SEC_PER_DAY)
        stored -= drip
        unloaded = SNOW_UNLOAD_FRACTION * stored
        stored -= unloaded
    return stored, snowfall - intercepted + unloaded, drip


@dataclass(frozen=True, eq=False)
class EvaporationAmounts:
    """Water evaporated from one surface over a sub-step [mm].

    Attributes:
        canopy: Evaporation of intercepted water.
        transpiration: Transpiration per soil layer.
        soil: Bare-soil evaporation from the top layer.
    """

    canopy: float
    transpiration: np.ndarray
    soil: float

    @property
    def total(self) -> float:
        return self.canopy + float(np.sum(self.transpiration)) + self.soil

    def scaled(self, factor: float) -> EvaporationAmounts:
        """Amounts multiplied by ``factor``."""
        return EvaporationAmounts(
            canopy=self.canopy * factor,
            transpiration=self.transpiration * factor,
            soil=self.soil * factor,
        )

    def soil_extraction(self) -> np.ndarray:
        """Water drawn from each soil layer [mm]."""
        extraction = self.transpiration.copy()
        extraction[0] += self.soil
        return extraction


@dataclass(frozen=True, eq=False)
class EvaporationDemand:
    """Limits on evaporation from one surface during one sub-step.

    Attributes:
        wdew: Intercepted water available [mm].
        wdmax: Interception capacity [mm].
        rc: Canopy resistance [s/m].
        rarc: Architectural resistance added to ra for transpiration [s/m].
        root_stress: Root fraction times moisture stress per layer [-].
        caps: Water available for transpiration per layer [mm].
        soil_factor: Ratio of bare-soil to potential evaporation [-].
        soil_cap: Water available for bare-soil evaporation [mm].
        dt: Sub-step length [s].
    """

    wdew: float
    wdmax: float
    rc: float
    rarc: float
    root_stress: np.ndarray
    caps: np.ndarray
    soil_factor: float
    soil_cap: float
    dt: float

    @classmethod
    def for_vegetation(
        cls,
        entry: VegLibraryEntry,
        tile: VegTile,
        month: int,
        air: AtmosphericState,
        soil: SoilParameters,
        liquid: np.ndarray,
        wdew: float,
        nf: int,
        dt: float,
    ) -> EvaporationDemand:
        """Canopy evaporation and transpiration demand of a vegetation tile."""
        lai = entry.monthly("lai", month)
        rc = canopy_resistance(entry.rmin, lai, air.air_temp, air.vpd, air.shortwave, entry.rgl)
        available = np.maximum(liquid, 0.0)
        return cls(
            wdew=wdew,
            wdmax=entry.wdmax(month),
            rc=rc,
            rarc=entry.rarc,
            root_stress=transpiration_limits(available, soil, tile.root),
            caps=available / nf,
            soil_factor=0.0,
            soil_cap=0.0,
            dt=dt,
        )

    @classmethod
    def for_bare_soil(
        cls,
        soil: SoilParameters,
        moist: np.ndarray,
        liquid: np.ndarray,
        nf: int,
        dt: float,
    ) -> EvaporationDemand:
        """Evaporation demand of bare soil, drawn from the top layer."""
        n = soil.n_layers
        return cls(
            wdew=0.0,
            wdmax=0.0,
            rc=0.0,
            rarc=0.0,
            root_stress=np.zeros(n),
            caps=np.zeros(n),
            soil_factor=bare_soil_factor(float(moist[0]), float(soil.max_moist[0]), soil.b_infilt),
            soil_cap=max(float(liquid[0]), 0.0) / nf,
            dt=dt,
        )

    def amounts(self, rad: float, ra: float, air: AtmosphericState) -> EvaporationAmounts:
        """Evaporation over the sub-step for available energy ``rad`` [W/m2].

        Intercepted water evaporates at the potential rate over the wet part
        of the canopy, (Wdew / Wdmax)^(2/3); transpiration uses the dry part.
        """
        vpd = air.vpd
        potential = penman_monteith(rad, vpd, air.air_temp, air.pressure, ra, 0.0) * self.dt
        wet = 0.0
        if self.wdmax > 0.0:
            wet = min((self.wdew / self.wdmax) ** (2.0 / 3.0), 1.0)
        canopy = min(self.wdew, potential * wet)
        transpiration = np.zeros_like(self.caps)
        if np.any(self.root_stress > 0.0):
            rate = penman_monteith(rad, vpd, air.air_temp, air.pressure, ra + self.rarc, self.rc)
            transpiration = np.minimum(rate * self.dt * (1.0 - wet) * self.root_stress, self.caps)
        soil = min(potential * self.soil_factor, self.soil_cap)
        return EvaporationAmounts(canopy=canopy, transpiration=transpiration, soil=soil)


@dataclass(frozen=True, eq=False)
class FoliageFluxes:
    """Overstory energy exchange over one sub-step [W/m2].

    Attributes:
        temp: Foliage temperature [C].
        net_short: Absorbed shortwave radiation.
        net_long: Net longwave radiation.
        sensible: Sensible heat flux.
        latent: Latent heat flux of evaporation and snow sublimation.
        evaporation: Canopy evaporation and transpiration [mm].
        sublimation: Sublimation of intercepted snow [mm].
    """

    temp: float
    net_short: float
    net_long: float
    sensible: float
    latent: float
    evaporation: EvaporationAmounts
    sublimation: float


def solve_foliage(
    air: AtmosphericState,
    entry: VegLibraryEntry,
    month: int,
    canopy: CanopyState,
    demand: EvaporationDemand,
    ground_emission: float,
    foliage_temp: float,
    dt: float,
    full_energy: bool,
    context: dict | None = None,
) -> FoliageFluxes:
    """Solve the overstory foliage energy balance.

    The foliage absorbs the non-transmitted shortwave, all incoming longwave
    and the ground emission, and emits longwave both up and down. Without
    ``full_energy`` the foliage stays at air temperature and sensible heat
    closes the balance.

    Args:
        air: Forcing above the canopy.
        entry: Vegetation class.
        month: Calendar month (1-12).
        canopy: Interception storage after this sub-step's precipitation.
        demand: Evaporation limits of the tile.
        ground_emission: Longwave emitted by the surface below [W/m2].
        foliage_temp: Foliage temperature of the previous sub-step [C].
        dt: Sub-step length [s].
        full_energy: Solve for the foliage temperature.
        context: Extra context for a NonConvergenceError.
    """
    albedo = entry.monthly("albedo", month)
    net_short = (1.0 - albedo) * (1.0 - entry.rad_atten) * air.shortwave
    ra = aerodynamic_resistance(
        air.wind,
        entry.wind_h,
        entry.monthly("displacement", month),
        entry.monthly("roughness", month),
    )
    density = air.density
    lv = latent_heat_vaporization(air.air_temp)
    ls = latent_heat_sublimation(air.air_temp)

    def exchange(temp: float) -> tuple[float, float, EvaporationAmounts, float]:
        net_long = air.longwave + ground_emission - 2.0 * longwave_emission(temp)
        amounts = demand.amounts(net_short + net_long, ra, air)
        sublimation = 0.0
        if canopy.snow > 0.0:
            sublimation = min(max(vapor_flux(density, air.pressure, temp, air.vp, ra) * dt, 0.0), canopy.snow)
        latent = lv * amounts.total / dt + ls * sublimation / dt
        return net_long, latent, amounts, sublimation

    if full_energy:

        def residual(temp: float) -> float:
            net_long, latent, _, _ = exchange(temp)
            return net_short + net_long - sensible_heat(density, temp, air.air_temp, ra) - latent

        low = min(air.air_temp, foliage_temp)
        high = max(air.air_temp, foliage_temp)
        temp = bracket_root(
            residual,
            low - CANOPY_DT,
            high + CANOPY_DT,
            CANOPY_DT,
            variable="foliage_temperature",
            context=context,
        )
        net_long, latent, amounts, sublimation = exchange(temp)
        sensible = sensible_heat(density, temp, air.air_temp, ra)
    else:
        temp = air.air_temp
        net_long, latent, amounts, sublimation = exchange(temp)
        sensible = net_short + net_long - latent

    return FoliageFluxes(
        temp=temp,
        net_short=net_short,
        net_long=net_long,
        sensible=sensible,
        latent=latent,
        evaporation=amounts,
        sublimation=sublimation,
    )
