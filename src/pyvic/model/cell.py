"""Per-cell orchestration of the land-surface processes.

A cell is split into land components indexed by (regime, tile, band):
- regime: wet (fraction mu) and dry (1 - mu) precipitation regimes,
- tile: vegetation tiles plus bare soil,
- band: snow elevation bands.

Each component carries its own soil, thermal, snow and canopy state. Every
snow sub-step runs canopy interception, snow accumulation, the foliage and
ground energy balances and the snowpack energy balance for each component;
soil moisture is integrated once per full step. The optional lake is run once
per sub-step with cell-mean forcing. Component results are area-weighted into
one cell-level OutputRecord and the water and energy budgets are closed.
"""

from __future__ import annotations

import logging
import math
from collections import defaultdict
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

import numpy as np

from pyvic.constants import BARE_SOIL_ALBEDO, HOURS_PER_DAY, STORM_THRES
from pyvic.model.closure import BudgetErrors, check_closure
from pyvic.outputs import OutputRecord, OutputVariable
from pyvic.processes.atmosphere import longwave_emission
from pyvic.processes.canopy import EvaporationDemand, intercept_rain, intercept_snow, solve_foliage
from pyvic.processes.lake import LakeBasin, lake_substep, lake_water_balance
from pyvic.processes.snow import (
    SnowFluxes,
    accumulate_snow,
    ground_conductance,
    partition_precipitation,
    snow_energy_balance,
)
from pyvic.processes.soil_moisture import update_soil_moisture
from pyvic.processes.soil_thermal import ThermalColumn, find_fronts, layer_ice
from pyvic.processes.surface import SurfaceDescription, solve_ground
from pyvic.state import DRY, WET, CellState, ComponentState
from pyvic.utils.elevation import band_precipitation_factors, band_temperature_offsets

if TYPE_CHECKING:
    from pyvic.options import ModelOptions
    from pyvic.parameters import CellParameters, VegLibraryEntry, VegTile
    from pyvic.processes.canopy import FoliageFluxes
    from pyvic.processes.surface import GroundFluxes
    from pyvic.state import SnowState
    from pyvic.types import AtmosphericState, ForcingRecord

logger = logging.getLogger(__name__)

V = OutputVariable
Key = tuple[int, int, int]


def wet_fraction(prec: float, options: ModelOptions) -> float:
    """Fraction of the cell receiving precipitation during a step [-].

    Without distributed precipitation, or outside a storm, the whole cell is wet.
    """
    if not options.dist_prcp or prec <= STORM_THRES:
        return 1.0
    return 1.0 - math.exp(-options.prec_expt * prec)


def _blend(a: ComponentState, weight_a: float, b: ComponentState, weight_b: float) -> ComponentState:
    """Area-weighted average of two component states.

    Front bookkeeping is taken from the component with the larger weight.
    """
    data_a = a.to_dict("")
    data_b = b.to_dict("")
    dominant = data_a if weight_a >= weight_b else data_b
    total = weight_a + weight_b
    mixed = {}
    for key, value in data_a.items():
        if key.startswith("energy/front"):
            mixed[key] = dominant[key].copy()
        else:
            mixed[key] = (weight_a * value + weight_b * data_b[key]) / total
    blended = ComponentState.from_dict(mixed, "")
    if blended.snow.depth > 0.0:
        blended.snow.density = blended.snow.swq / blended.snow.depth
    return blended


def redistribute(state: CellState, mu: float) -> None:
    """Move the wet/dry split of every component to a new wet fraction.

    The regime that grows absorbs the area handed over by the other one, so
    area-weighted storages are unchanged. Mutates ``state``.
    """
    mu_old = state.mu
    if mu > mu_old:
        target, source = WET, DRY
        keep, gained = mu_old, mu - mu_old
    elif mu < mu_old:
        target, source = DRY, WET
        keep, gained = 1.0 - mu_old, mu_old - mu
    else:
        return
    logger.debug("Redistributing wet fraction %.4f -> %.4f", mu_old, mu)
    for t in range(state.n_tiles):
        for b in range(state.n_bands):
            state.components[target][t][b] = _blend(
                state.components[target][t][b],
                keep,
                state.components[source][t][b],
                gained,
            )
    state.mu = mu


@dataclass
class StepContext:
    """Accumulators of one full step.

    Attributes:
        record: Forcing of the step.
        record_index: Position of the record in the run.
        weights: Cell-area weight of every active component.
        storage_start: Cell water storage at the start of the step [mm].
        totals: Weighted sums of reported fluxes.
        soil_inflow: Water reaching each component's soil [mm].
        soil_extraction: Evapotranspiration drawn from each component's layers [mm].
        snow_temp: Weighted sums of snow surface and pack temperatures, and their weight.
        lake_water_in: Precipitation and melt reaching the lake water [mm per footprint].
        lake_evaporation: Evaporation from lake water and ice [mm per footprint].
        lake_sublimation: Sublimation of snow on lake ice [mm per footprint].
    """

    record: ForcingRecord
    record_index: int
    weights: dict[Key, float]
    storage_start: float
    totals: defaultdict[OutputVariable, float] = field(default_factory=lambda: defaultdict(float))
    soil_inflow: defaultdict[Key, float] = field(default_factory=lambda: defaultdict(float))
    soil_extraction: dict[Key, np.ndarray] = field(default_factory=dict)
    snow_temp: np.ndarray = field(default_factory=lambda: np.zeros(3))
    lake_water_in: float = 0.0
    lake_evaporation: float = 0.0
    lake_sublimation: float = 0.0


class Cell:
    """One grid cell: static parameters, run options and dynamic state.

    Args:
        params: Static cell description.
        options: Run configuration.
        state: Initial state; a fresh state is created when None.
    """

    def __init__(self, params: CellParameters, options: ModelOptions, state: CellState | None = None) -> None:
        self.params = params
        self.options = options
        self.state = state if state is not None else CellState.initialize(params)
        self.basin = LakeBasin.from_parameters(params.lake) if options.lakes and params.lake is not None else None
        tiles = params.tiles
        if params.lake is not None and self.basin is None:
            # Without the lake module the lake footprint is modelled as bare soil
            entry, tile, fraction = tiles[-1]
            tiles[-1] = (entry, tile, fraction + params.lake_fraction)
        self.tiles: list[tuple[VegLibraryEntry | None, VegTile | None, float]] = tiles
        self.temp_offsets = band_temperature_offsets(params.bands, params.soil.elevation)
        self.prec_factors = band_precipitation_factors(params.bands, params.soil.elevation)

    @property
    def lake_fraction(self) -> float:
        return self.params.lake_fraction if self.basin is not None else 0.0

    def _weights(self) -> dict[Key, float]:
        mu = self.state.mu
        regimes = ((WET, mu), (DRY, 1.0 - mu))
        weights = {}
        for r, regime_fraction in regimes:
            for t, (_, _, tile_fraction) in enumerate(self.tiles):
                for b, band in enumerate(self.params.bands):
                    weight = regime_fraction * tile_fraction * band.area_fract
                    if weight > 0.0:
                        weights[(r, t, b)] = weight
        return weights

    def water_storage(self, weights: dict[Key, float]) -> float:
        """Water held in the cell per unit cell area [mm]."""
        total = 0.0
        for (r, t, b), weight in weights.items():
            total += weight * self.state.components[r][t][b].water_storage
        if self.basin is not None and self.state.lake is not None:
            lake = self.state.lake
            total += self.lake_fraction * (self.basin.storage(lake.level) + lake.snow)
        return total

    def begin_step(self, record: ForcingRecord, record_index: int) -> StepContext:
        """Set the wet fraction for the step and snapshot the water storage."""
        mu = wet_fraction(record.aggregate.prec, self.options)
        redistribute(self.state, mu)
        weights = self._weights()
        n_layers = self.params.soil.n_layers
        ctx = StepContext(
            record=record,
            record_index=record_index,
            weights=weights,
            storage_start=self.water_storage(weights),
        )
        for key in weights:
            ctx.soil_extraction[key] = np.zeros(n_layers)
        return ctx

    def run_substep(self, ctx: StepContext, j: int) -> None:
        """Run every active component and the lake for sub-step ``j``."""
        options = self.options
        air_cell = ctx.record.at(j)
        air_cell = air_cell.adjusted(wind=max(air_cell.wind, options.min_wind_speed))
        mu = self.state.mu
        multipliers = (1.0 / mu if mu > 0.0 else 0.0, 0.0 if mu > 0.0 else 1.0)
        for (r, t, b), weight in ctx.weights.items():
            entry, tile, _ = self.tiles[t]
            air = air_cell.adjusted(
                air_temp=air_cell.air_temp + float(self.temp_offsets[b]),
                prec=air_cell.prec * multipliers[r] * float(self.prec_factors[b]),
            )
            self._component_substep(ctx, (r, t, b), entry, tile, air, weight, j)
        if self.basin is not None and self.state.lake is not None:
            self._lake_substep(ctx, air_cell, j)

    def _component_substep(
        self,
        ctx: StepContext,
        key: Key,
        entry: VegLibraryEntry | None,
        tile: VegTile | None,
        air: AtmosphericState,
        weight: float,
        j: int,
    ) -> None:
        options = self.options
        soil = self.params.soil
        r, t, b = key
        component = self.state.components[r][t][b]
        canopy = component.canopy
        snow = component.snow
        energy = component.energy
        dt = options.snow_dt
        nf = options.nf
        month = ctx.record.month
        context = {"regime": r, "tile": t, "band": b, "substep": j}
        overstory = entry is not None and entry.overstory

        rain, snowfall = partition_precipitation(air.prec, air.air_temp, options.max_snow_temp, options.min_rain_temp)
        if entry is not None:
            rain_canopy = rain
            snow_ground = snowfall
            if overstory:
                canopy.snow, snow_ground, drip = intercept_snow(
                    canopy.snow, snowfall, entry.monthly("lai", month), air.air_temp, dt
                )
                rain_canopy += drip
            canopy.wdew, rain_ground = intercept_rain(canopy.wdew, rain_canopy, entry.wdmax(month))
        else:
            rain_ground, snow_ground = rain, snowfall

        swq_old = snow.swq
        accumulate_snow(snow, snow_ground, air.air_temp, dt, options.spatial_snow, soil.depth_full_snow_cover)
        cover = snow.coverage
        liquid = component.soil.liquid

        foliage = None
        below = air
        snow_height = options.wind_h
        if overstory:
            demand = EvaporationDemand.for_vegetation(
                entry, tile, month, air, soil, liquid, canopy.wdew, nf, dt
            )
            emission = cover * longwave_emission(snow.surf_temp) + (1.0 - cover) * longwave_emission(energy.surf_temp)
            foliage = solve_foliage(
                air, entry, month, canopy, demand, emission, energy.foliage_temp, dt, options.full_energy, context
            )
            energy.foliage_temp = foliage.temp
            canopy.wdew = max(canopy.wdew - foliage.evaporation.canopy, 0.0)
            canopy.snow = max(canopy.snow - foliage.sublimation, 0.0)
            ctx.soil_extraction[key] += foliage.evaporation.transpiration
            below = air.adjusted(
                shortwave=air.shortwave * entry.rad_atten,
                longwave=longwave_emission(foliage.temp),
                wind=air.wind * entry.wind_atten,
            )
            surface = SurfaceDescription(BARE_SOIL_ALBEDO, options.measure_h, 0.0, soil.rough)
            ground_demand = None
            snow_height = options.measure_h
        elif entry is not None:
            ground_demand = EvaporationDemand.for_vegetation(
                entry, tile, month, air, soil, liquid, canopy.wdew, nf, dt
            )
            surface = SurfaceDescription(
                entry.monthly("albedo", month),
                entry.wind_h,
                entry.monthly("displacement", month),
                entry.monthly("roughness", month),
            )
        else:
            ground_demand = EvaporationDemand.for_bare_soil(soil, component.soil.moist, liquid, nf, dt)
            surface = SurfaceDescription(BARE_SOIL_ALBEDO, options.wind_h, 0.0, soil.rough)

        column = ThermalColumn.build(
            soil, component.soil.moist, energy.temps, dt, options.noflux, options.frozen_soil
        )
        conductance, snow_temp = ground_conductance(snow, dt) if options.full_energy else (0.0, 0.0)
        ground = solve_ground(
            below,
            surface,
            cover,
            conductance,
            snow_temp,
            ground_demand,
            column,
            energy.temps,
            soil,
            options.full_energy,
            options.frozen_soil,
            options.quick_flux,
            context,
        )
        energy.temps = ground.temps
        if ground.evaporation is not None:
            canopy.wdew = max(canopy.wdew - ground.evaporation.canopy, 0.0)
            ctx.soil_extraction[key] += ground.evaporation.soil_extraction()

        if cover > 0.0:
            snow_fluxes = snow_energy_balance(
                snow,
                below,
                rain_ground,
                ground.snow_flux,
                snow_height,
                soil.snow_rough,
                dt,
                options.blowing,
                context,
            )
            soil_water = snow_fluxes.outflow + rain_ground * (1.0 - cover)
            rain_on_snow = rain_ground * cover
        else:
            snow_fluxes = SnowFluxes(surf_temp=snow.surf_temp)
            soil_water = rain_ground
            rain_on_snow = 0.0
        ctx.soil_inflow[key] += soil_water
        mass_error = (
            swq_old
            + snow_ground
            + rain_on_snow
            - snow_fluxes.outflow
            - snow_fluxes.sublimation
            - snow_fluxes.blowing
            - snow.swq
        )

        self._accumulate(ctx, weight, foliage, ground, snow_fluxes, surface.albedo, cover, snow)
        totals = ctx.totals
        totals[V.RAINF] += weight * rain
        totals[V.SNOWF] += weight * snowfall
        totals[V.INFLOW] += weight * soil_water
        totals[V.SNOW_MELT] += weight * snow_fluxes.outflow
        totals[V.SUB_SNOW] += weight * snow_fluxes.sublimation
        totals[V.SUB_BLOWING] += weight * snow_fluxes.blowing
        totals[V.SNOW_MASS_ERROR] += weight * mass_error

    def _accumulate(
        self,
        ctx: StepContext,
        weight: float,
        foliage: FoliageFluxes | None,
        ground: GroundFluxes,
        snow_fluxes: SnowFluxes,
        albedo: float,
        cover: float,
        snow: SnowState,
    ) -> None:
        """Add one component sub-step's energy terms and evaporation to the step totals."""
        totals = ctx.totals
        share = weight / self.options.nf
        net_short = ground.net_short + snow_fluxes.net_short
        net_long = ground.net_long + snow_fluxes.net_long
        sensible = ground.sensible + snow_fluxes.sensible
        latent = ground.latent + snow_fluxes.latent
        if foliage is not None:
            net_short += foliage.net_short
            net_long += foliage.net_long
            sensible += foliage.sensible
            latent += foliage.latent
            totals[V.EVAP_CANOP] += weight * foliage.evaporation.canopy
            totals[V.TRANSP_VEG] += weight * float(np.sum(foliage.evaporation.transpiration))
            totals[V.SUB_CANOP] += weight * foliage.sublimation
        if ground.evaporation is not None:
            totals[V.EVAP_CANOP] += weight * ground.evaporation.canopy
            totals[V.TRANSP_VEG] += weight * float(np.sum(ground.evaporation.transpiration))
            totals[V.EVAP_BARE] += weight * ground.evaporation.soil
        totals[V.NET_SHORT] += share * net_short
        totals[V.NET_LONG] += share * net_long
        totals[V.SENSIBLE] += share * sensible
        totals[V.LATENT] += share * latent
        totals[V.GRND_FLUX] += share * ground.ground_flux
        totals[V.ADVECTION] += share * snow_fluxes.advection
        totals[V.DELTACC] += share * snow_fluxes.deltacc
        totals[V.FUSION] += share * snow_fluxes.fusion
        totals[V.SNOW_ENERGY_SURPLUS] += share * snow_fluxes.surplus
        totals[V.SURF_TEMP] += share * ((1.0 - cover) * ground.surf_temp + cover * snow_fluxes.surf_temp)
        totals[V.ALBEDO] += share * ((1.0 - cover) * albedo + cover * snow.albedo)
        if cover > 0.0:
            ctx.snow_temp += share * cover * np.array([snow.surf_temp, snow.pack_temp, 1.0])

    def _lake_substep(self, ctx: StepContext, air: AtmosphericState, j: int) -> None:
        options = self.options
        lake = self.state.lake
        rain, snowfall = partition_precipitation(air.prec, air.air_temp, options.max_snow_temp, options.min_rain_temp)
        fluxes = lake_substep(
            lake,
            self.basin,
            self.params.lake,
            air,
            rain,
            snowfall,
            options.wind_h,
            options.snow_dt,
            {"lake": True, "substep": j},
        )
        fraction = self.lake_fraction
        share = fraction / options.nf
        totals = ctx.totals
        totals[V.RAINF] += fraction * rain
        totals[V.SNOWF] += fraction * snowfall
        totals[V.NET_SHORT] += share * fluxes.net_short
        totals[V.NET_LONG] += share * fluxes.net_long
        totals[V.SENSIBLE] += share * fluxes.sensible
        totals[V.LATENT] += share * fluxes.latent
        totals[V.GRND_FLUX] += share * fluxes.ground_flux
        totals[V.FUSION] += share * fluxes.fusion
        ctx.lake_water_in += fluxes.water_in
        ctx.lake_evaporation += fluxes.evaporation
        ctx.lake_sublimation += fluxes.sublimation

    def finish_step(self, ctx: StepContext) -> OutputRecord:
        """Integrate soil moisture and the lake, close the budgets and build the output record.

        Raises:
            ConservationError: If a budget error exceeds its fatal tolerance.
        """
        options = self.options
        soil = self.params.soil
        totals = ctx.totals
        runoff_land = 0.0
        baseflow_land = 0.0
        soil_evaporation = 0.0
        for (r, t, b), weight in ctx.weights.items():
            component = self.state.components[r][t][b]
            new_moist, fluxes = update_soil_moisture(
                component.soil.moist,
                component.soil.ice,
                ctx.soil_inflow[(r, t, b)],
                ctx.soil_extraction[(r, t, b)],
                soil,
                options,
            )
            component.soil.moist = new_moist
            if options.frozen_soil:
                energy = component.energy
                column = ThermalColumn.build(soil, new_moist, energy.temps, options.dt, options.noflux, True)
                component.soil.ice = layer_ice(soil, column, energy.temps, new_moist)
                energy.front_depths, energy.front_ages, energy.front_count = find_fronts(
                    soil.node_depths,
                    energy.temps,
                    energy.front_depths,
                    energy.front_ages,
                    energy.front_count,
                    options.dt,
                )
            runoff_land += weight * fluxes.runoff
            baseflow_land += weight * fluxes.baseflow
            soil_evaporation += weight * float(np.sum(fluxes.evaporation))

        runoff = runoff_land
        baseflow = baseflow_land
        lake_evaporation = 0.0
        if self.basin is not None and self.state.lake is not None:
            lake_params = self.params.lake
            fraction = self.lake_fraction
            inflow = (lake_params.rpercent * runoff_land + lake_params.bpercent * baseflow_land) / fraction
            water = lake_water_balance(
                self.state.lake,
                self.basin,
                lake_params,
                ctx.lake_water_in,
                ctx.lake_evaporation,
                inflow,
                options.time_step_hours / HOURS_PER_DAY,
            )
            runoff = (1.0 - lake_params.rpercent) * runoff_land + fraction * water.outflow
            baseflow = (1.0 - lake_params.bpercent) * baseflow_land
            lake_evaporation = fraction * (water.evaporation + ctx.lake_sublimation)

        evaporation = (
            totals[V.EVAP_CANOP]
            + totals[V.SUB_CANOP]
            + totals[V.SUB_SNOW]
            + totals[V.SUB_BLOWING]
            + soil_evaporation
            + lake_evaporation
        )
        prec = ctx.record.aggregate.prec
        storage_end = self.water_storage(ctx.weights)
        water_error = prec - evaporation - runoff - baseflow - (storage_end - ctx.storage_start)

        net_rad = totals[V.NET_SHORT] + totals[V.NET_LONG]
        energy_error = (
            net_rad
            - totals[V.SENSIBLE]
            - totals[V.LATENT]
            - totals[V.GRND_FLUX]
            + totals[V.ADVECTION]
            - totals[V.DELTACC]
            - totals[V.FUSION]
            - totals[V.SNOW_ENERGY_SURPLUS]
        )
        errors = BudgetErrors(
            water=water_error,
            energy=energy_error,
            snow_mass=totals[V.SNOW_MASS_ERROR],
            snow_surplus=totals[V.SNOW_ENERGY_SURPLUS],
        )
        check_closure(errors, options, {"record_index": ctx.record_index})

        totals[V.PREC] = prec
        totals[V.EVAP] = evaporation
        totals[V.EVAP_LAKE] = lake_evaporation
        totals[V.RUNOFF] = runoff
        totals[V.BASEFLOW] = baseflow
        totals[V.WATER_ERROR] = water_error
        totals[V.NET_RAD] = net_rad
        totals[V.ENERGY_ERROR] = energy_error
        return OutputRecord(time=ctx.record.time, values=self._record_values(ctx))

    def _record_values(self, ctx: StepContext) -> dict[OutputVariable, float | np.ndarray]:
        soil = self.params.soil
        totals = ctx.totals
        land = sum(ctx.weights.values())
        n_bands = len(self.params.bands)
        moist = np.zeros(soil.n_layers)
        ice = np.zeros(soil.n_layers)
        temps = np.zeros(len(soil.node_depths))
        fronts = np.zeros_like(self.state.components[WET][0][0].energy.front_depths)
        swe_band = np.zeros(n_bands)
        depth_band = np.zeros(n_bands)
        wdew = canopy_snow = swe = snow_depth = snow_cover = 0.0
        for (r, t, b), weight in ctx.weights.items():
            component = self.state.components[r][t][b]
            moist += weight * component.soil.moist
            ice += weight * component.soil.ice
            temps += weight * component.energy.temps
            fronts += weight * component.energy.front_depths
            wdew += weight * component.canopy.wdew
            canopy_snow += weight * component.canopy.snow
            swe += weight * component.snow.swq
            snow_depth += weight * component.snow.depth
            snow_cover += weight * component.snow.coverage
            band_share = weight / self.params.bands[b].area_fract
            swe_band[b] += band_share * component.snow.swq
            depth_band[b] += band_share * component.snow.depth

        values: dict[OutputVariable, float | np.ndarray] = {variable: 0.0 for variable in OutputVariable}
        values.update(totals)
        values[V.SURF_TEMP] = totals[V.SURF_TEMP] / land if land > 0.0 else 0.0
        values[V.ALBEDO] = totals[V.ALBEDO] / land if land > 0.0 else 0.0
        snow_weight = ctx.snow_temp[2]
        if snow_weight > 0.0:
            values[V.SNOW_SURF_TEMP] = ctx.snow_temp[0] / snow_weight
            values[V.SNOW_PACK_TEMP] = ctx.snow_temp[1] / snow_weight
        values[V.SOIL_MOIST] = moist
        values[V.SOIL_ICE] = ice
        values[V.SOIL_TEMP] = temps / land if land > 0.0 else temps
        values[V.FDEPTH] = fronts / land if land > 0.0 else fronts
        values[V.WDEW] = wdew
        values[V.SNOW_CANOPY] = canopy_snow
        values[V.SWE] = swe
        values[V.SNOW_DEPTH] = snow_depth
        values[V.SNOW_COVER] = snow_cover
        values[V.SWE_BAND] = swe_band
        values[V.SNOW_DEPTH_BAND] = depth_band

        lake = self.state.lake
        if self.basin is not None and lake is not None:
            values[V.LAKE_DEPTH] = lake.level
            values[V.LAKE_ICE] = lake.ice_thickness
            values[V.LAKE_ICE_FRACT] = lake.fraci
            values[V.LAKE_MOIST] = self.basin.storage(lake.level) + lake.snow
            values[V.LAKE_SURF_TEMP] = lake.surf_temp

        aggregate = ctx.record.aggregate
        values[V.AIR_TEMP] = aggregate.air_temp
        values[V.SHORTWAVE] = aggregate.shortwave
        values[V.LONGWAVE] = aggregate.longwave
        values[V.PRESSURE] = aggregate.pressure
        values[V.VP] = aggregate.vp
        values[V.WIND] = aggregate.wind
        values[V.WET_FRACTION] = self.state.mu
        return values


__all__ = ["Cell", "StepContext", "redistribute", "wet_fraction"]
