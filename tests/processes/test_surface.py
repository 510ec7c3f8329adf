"""Tests for the ground surface energy balance."""

import numpy as np
import pytest

from pyvic import SoilParameters
from pyvic.processes.canopy import EvaporationDemand
from pyvic.processes.soil_thermal import ThermalColumn
from pyvic.processes.surface import GroundFluxes, SurfaceDescription, solve_ground
from pyvic.types import AtmosphericState

HOUR = 3600.0


@pytest.fixture
def air() -> AtmosphericState:
    return AtmosphericState(
        air_temp=15.0, prec=0.0, shortwave=450.0, longwave=320.0, pressure=95.0, vp=1.0, wind=2.0
    )


@pytest.fixture
def surface() -> SurfaceDescription:
    return SurfaceDescription(albedo=0.2, height=10.0, displacement=0.0, roughness=0.01)


def residual(f: GroundFluxes) -> float:
    return f.net_short + f.net_long - f.sensible - f.latent - f.ground_flux


class TestSolveGround:
    """Tests for solve_ground()."""

    def _solve(
        self,
        air: AtmosphericState,
        surface: SurfaceDescription,
        soil: SoilParameters,
        *,
        evaporating: bool = True,
        full_energy: bool = True,
        frozen_soil: bool = False,
        quick: bool = False,
        start_temp: float = 10.0,
        cover: float = 0.0,
        conductance: float = 0.0,
        snow_temp: float = 0.0,
    ) -> GroundFluxes:
        temps = np.full(len(soil.node_depths), start_temp)
        column = ThermalColumn.build(soil, soil.wcr_mm, temps, HOUR, False, frozen_soil)
        demand = None
        if evaporating:
            demand = EvaporationDemand.for_bare_soil(soil, soil.wcr_mm, soil.wcr_mm, 1, HOUR)
        return solve_ground(
            air, surface, cover, conductance, snow_temp, demand, column, temps, soil, full_energy, frozen_soil, quick
        )

    def test_water_balance_mode_uses_air_temperature(
        self, air: AtmosphericState, surface: SurfaceDescription, loam_soil: SoilParameters
    ) -> None:
        f = self._solve(air, surface, loam_soil, full_energy=False)

        assert f.surf_temp == 15.0
        assert f.ground_flux == 0.0
        assert residual(f) == pytest.approx(0.0, abs=1e-9)

    def test_energy_balance_closes(
        self, air: AtmosphericState, surface: SurfaceDescription, loam_soil: SoilParameters
    ) -> None:
        f = self._solve(air, surface, loam_soil)

        assert residual(f) == pytest.approx(0.0, abs=1e-3)
        assert f.evaporation is not None
        assert f.evaporation.soil > 0.0

    def test_sunny_dry_surface_warms_above_air(
        self, air: AtmosphericState, surface: SurfaceDescription, loam_soil: SoilParameters
    ) -> None:
        f = self._solve(air, surface, loam_soil, evaporating=False)

        assert f.surf_temp > air.air_temp
        assert f.ground_flux > 0.0
        assert f.latent == 0.0

    def test_quick_flux_closes(
        self, air: AtmosphericState, surface: SurfaceDescription, loam_soil: SoilParameters
    ) -> None:
        f = self._solve(air, surface, loam_soil, quick=True)

        assert residual(f) == pytest.approx(0.0, abs=1e-3)

    def test_frozen_soil_closes(
        self, surface: SurfaceDescription, loam_soil: SoilParameters
    ) -> None:
        cold = AtmosphericState(
            air_temp=-8.0, prec=0.0, shortwave=50.0, longwave=220.0, pressure=95.0, vp=0.2, wind=3.0
        )
        f = self._solve(cold, surface, loam_soil, frozen_soil=True, start_temp=0.5)

        assert residual(f) == pytest.approx(0.0, abs=1e-3)
        assert f.temps[0] == f.surf_temp

    def test_snow_covered_ground_fed_by_snow_flux(
        self, air: AtmosphericState, surface: SurfaceDescription, loam_soil: SoilParameters
    ) -> None:
        f = self._solve(air, surface, loam_soil, cover=1.0, conductance=2.0, snow_temp=0.0, start_temp=2.0)

        assert f.net_short == 0.0
        assert f.ground_flux == pytest.approx(f.snow_flux, abs=1e-3)
