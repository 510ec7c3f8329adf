"""Ground surface energy balance.

The surface temperature Ts of a tile closes

    (1 - cov) * (Rn - H - LE) + cov * Keff * (T_snow - Ts) - G = 0

where ``cov`` is the snow-covered fraction, ``Keff`` the snow-ground
conductance of ``pyvic.processes.snow.ground_conductance`` and ``G`` the heat
flux into the soil from the thermal node solution (or the quick-flux
closed form).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING

import numpy as np

from pyvic.constants import SURF_DT
from pyvic.processes.atmosphere import (
    corrected_resistance,
    latent_heat_vaporization,
    longwave_emission,
    sensible_heat,
)
from pyvic.processes.soil_thermal import quick_flux
from pyvic.rootfind import bracket_root

if TYPE_CHECKING:
    from pyvic.parameters import SoilParameters
    from pyvic.processes.canopy import EvaporationAmounts, EvaporationDemand
    from pyvic.processes.soil_thermal import ThermalColumn
    from pyvic.types import AtmosphericState


@dataclass(frozen=True)
class SurfaceDescription:
    """Radiative and aerodynamic properties of a ground surface.

    Attributes:
        albedo: Snow-free albedo [-].
        height: Reference height of the forcing [m].
        displacement: Zero-plane displacement [m].
        roughness: Roughness length [m].
    """

    albedo: float
    height: float
    displacement: float
    roughness: float


@dataclass(frozen=True, eq=False)
class GroundFluxes:
    """Ground surface fluxes per unit tile area [W/m2].

    Attributes:
        surf_temp: Surface temperature [C].
        temps: Node temperatures at the end of the sub-step [C].
        net_short: Net shortwave of the snow-free part.
        net_long: Net longwave of the snow-free part.
        sensible: Sensible heat of the snow-free part.
        latent: Latent heat of the snow-free part.
        ground_flux: Heat flux into the soil.
        snow_flux: Heat flux from the bottom snow layer into the soil, per covered area.
        evaporation: Evaporation of the snow-free part [mm], if the surface evaporates.
    """

    surf_temp: float
    temps: np.ndarray
    net_short: float
    net_long: float
    sensible: float
    latent: float
    ground_flux: float
    snow_flux: float
    evaporation: EvaporationAmounts | None


def solve_ground(
    air: AtmosphericState,
    surface: SurfaceDescription,
    cover: float,
    conductance: float,
    snow_temp: float,
    demand: EvaporationDemand | None,
    column: ThermalColumn,
    temps: np.ndarray,
    soil: SoilParameters,
    full_energy: bool,
    frozen_soil: bool,
    quick: bool,
    context: dict | None = None,
) -> GroundFluxes:
    """Solve the ground surface temperature and soil temperatures for one sub-step.

    Args:
        air: Forcing at the surface (already attenuated by any overstory).
        surface: Surface properties.
        cover: Snow-covered fraction of the tile [-].
        conductance: Snow-ground conductance per covered area [W/m2/K].
        snow_temp: Temperature of the bottom snow layer [C].
        demand: Evaporation limits, or None for a non-evaporating surface.
        column: Thermal properties of the soil column.
        temps: Node temperatures at the start of the sub-step [C].
        soil: Soil parameters.
        full_energy: Solve the energy balance; otherwise Ts = air temperature.
        frozen_soil: Include latent heat of soil freezing in the node solve.
        quick: Use the closed-form two-layer ground flux.
        context: Extra context for a NonConvergenceError.

    Returns:
        GroundFluxes of the tile.
    """
    bare = 1.0 - cover
    net_short = (1.0 - surface.albedo) * air.shortwave
    density = air.density
    lv = latent_heat_vaporization(air.air_temp)
    surf_old = float(temps[0])

    def exchange(ts: float) -> tuple[float, float, float, EvaporationAmounts | None]:
        net_long = air.longwave - longwave_emission(ts)
        ra = corrected_resistance(
            air.wind, surface.height, surface.displacement, surface.roughness, ts, air.air_temp
        )
        sensible = sensible_heat(density, ts, air.air_temp, ra)
        if demand is None:
            return net_long, sensible, 0.0, None
        amounts = demand.amounts(net_short + net_long, ra, air)
        return net_long, sensible, lv * amounts.total / column.dt, amounts

    def quick_ground(ts: float) -> tuple[float, np.ndarray]:
        return quick_flux(
            ts,
            temps,
            column.z,
            float(soil.depth[0]),
            float(column.kappa[0]),
            float(column.kappa[-1]),
            float(column.heat_cap[0]),
            column.bottom_temp,
            column.dt,
            column.noflux,
        )

    if not full_energy:
        ts = air.air_temp
        net_long, _, latent, amounts = exchange(ts)
        new_temps = temps.copy()
        new_temps[0] = ts
        return GroundFluxes(
            surf_temp=ts,
            temps=new_temps,
            net_short=bare * net_short,
            net_long=bare * net_long,
            sensible=bare * (net_short + net_long - latent),
            latent=bare * latent,
            ground_flux=0.0,
            snow_flux=0.0,
            evaporation=amounts.scaled(bare) if amounts is not None else None,
        )

    def balance(ts: float, ground: float) -> float:
        net_long, sensible, latent, _ = exchange(ts)
        return bare * (net_short + net_long - sensible - latent) + cover * conductance * (snow_temp - ts) - ground

    if quick:

        def residual(ts: float) -> float:
            return balance(ts, quick_ground(ts)[0])

    else:

        def residual(ts: float) -> float:
            profile = column.solve_linear(temps, ts)
            return balance(ts, column.ground_flux(ts, surf_old, float(profile[1])))

    low = min(air.air_temp, surf_old)
    high = max(air.air_temp, surf_old)
    ts = bracket_root(
        residual,
        low - SURF_DT,
        high + SURF_DT,
        SURF_DT,
        variable="surface_temperature",
        context=context,
    )

    if quick:
        ground, new_temps = quick_ground(ts)
    elif frozen_soil:
        profile = column.solve_frozen(temps, column.solve_linear(temps, ts), ts)
        below = float(profile[1])

        def fixed_profile(t: float) -> float:
            return balance(t, column.ground_flux(t, surf_old, below))

        ts = bracket_root(
            fixed_profile,
            ts - SURF_DT,
            ts + SURF_DT,
            SURF_DT,
            variable="surface_temperature",
            context=context,
        )
        new_temps = profile
        new_temps[0] = ts
        ground = column.ground_flux(ts, surf_old, below)
    else:
        new_temps = column.solve_linear(temps, ts)
        ground = column.ground_flux(ts, surf_old, float(new_temps[1]))

    net_long, sensible, latent, amounts = exchange(ts)
    return GroundFluxes(
        surf_temp=ts,
        temps=new_temps,
        net_short=bare * net_short,
        net_long=bare * net_long,
        sensible=bare * sensible,
        latent=bare * latent,
        ground_flux=ground,
        snow_flux=conductance * (snow_temp - ts),
        evaporation=amounts.scaled(bare) if amounts is not None else None,
    )
