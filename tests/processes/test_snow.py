"""Tests for the ground snowpack."""

import pytest

from pyvic.constants import MAX_SNOW_DENSITY, NEW_SNOW_ALB, SEC_PER_DAY
from pyvic.processes.snow import (
    SnowFluxes,
    accumulate_snow,
    blowing_sublimation,
    compact_density,
    ground_conductance,
    new_snow_density,
    partition_precipitation,
    snow_albedo,
    snow_coverage,
    snow_energy_balance,
)
from pyvic.state import SnowState
from pyvic.types import AtmosphericState

HOUR = 3600.0


def thaw_air() -> AtmosphericState:
    return AtmosphericState(
        air_temp=5.0, prec=0.0, shortwave=400.0, longwave=320.0, pressure=95.0, vp=0.5, wind=3.0
    )


def cold_air() -> AtmosphericState:
    return AtmosphericState(
        air_temp=-15.0, prec=0.0, shortwave=0.0, longwave=200.0, pressure=95.0, vp=0.15, wind=2.0
    )


def pack(swq: float, temp: float = 0.0, surf_water: float = 0.0, density: float = 300.0) -> SnowState:
    return SnowState(
        swq=swq,
        surf_water=surf_water,
        surf_temp=temp,
        pack_temp=temp,
        density=density,
        depth=swq / density,
        coverage=1.0,
    )


def snow_mass_balance(before: float, after: SnowState, fluxes: SnowFluxes, rain: float = 0.0) -> float:
    return before + rain - after.swq - fluxes.outflow - fluxes.sublimation - fluxes.blowing


class TestPartition:
    """Tests for partition_precipitation()."""

    def test_warm_all_rain(self) -> None:
        assert partition_precipitation(10.0, 3.0, 0.5, -0.5) == (10.0, 0.0)

    def test_cold_all_snow(self) -> None:
        assert partition_precipitation(10.0, -3.0, 0.5, -0.5) == (0.0, 10.0)

    def test_linear_between_thresholds(self) -> None:
        rain, snow = partition_precipitation(10.0, 0.0, 0.5, -0.5)

        assert rain == pytest.approx(5.0)
        assert snow == pytest.approx(5.0)


class TestSnowProperties:
    """Tests for density, albedo and blowing snow kernels."""

    def test_new_snow_density_at_freezing(self) -> None:
        assert new_snow_density(0.0) == pytest.approx(67.92 + 51.25)

    def test_colder_snow_is_lighter(self) -> None:
        assert new_snow_density(-10.0) < new_snow_density(-1.0)

    def test_fresh_snow_albedo(self) -> None:
        assert snow_albedo(0.0, False) == NEW_SNOW_ALB

    def test_albedo_decays_with_age(self) -> None:
        assert snow_albedo(10.0, False) < snow_albedo(1.0, False) < NEW_SNOW_ALB
        assert snow_albedo(10.0, True) < NEW_SNOW_ALB

    def test_compaction_increases_density(self) -> None:
        assert compact_density(150.0, 100.0, -2.0, False, SEC_PER_DAY) > 150.0

    def test_compaction_capped(self) -> None:
        assert compact_density(MAX_SNOW_DENSITY, 500.0, 0.0, True, 30 * SEC_PER_DAY) == MAX_SNOW_DENSITY

    def test_no_blowing_in_calm_air(self) -> None:
        assert blowing_sublimation(2.0, -5.0, HOUR, 50.0) == 0.0

    def test_blowing_bounded_by_available(self) -> None:
        assert blowing_sublimation(40.0, -5.0, SEC_PER_DAY, 0.1) == pytest.approx(0.1)


class TestAccumulation:
    """Tests for accumulate_snow() and coverage."""

    def test_first_snowfall_starts_pack(self) -> None:
        snow = SnowState()
        accumulate_snow(snow, 10.0, -5.0, HOUR, False, 0.1)

        assert snow.swq == 10.0
        assert snow.density == pytest.approx(new_snow_density(-5.0))
        assert snow.surf_temp == -5.0
        assert snow.coverage == 1.0
        assert snow.albedo == NEW_SNOW_ALB

    def test_snowfall_mixes_surface_temperature(self) -> None:
        snow = pack(50.0, temp=-10.0)
        accumulate_snow(snow, 50.0, -2.0, HOUR, False, 0.1)

        assert snow.swq == 100.0
        assert -10.0 < snow.surf_temp < -2.0

    def test_no_snowfall_ages_pack(self) -> None:
        snow = pack(50.0)
        snow.last_snow = 1.0
        accumulate_snow(snow, 0.0, -2.0, SEC_PER_DAY, False, 0.1)

        assert snow.last_snow == pytest.approx(2.0)

    def test_partial_coverage_with_spatial_snow(self) -> None:
        snow = pack(15.0, density=300.0)

        assert snow_coverage(snow, True, 0.1) == pytest.approx(0.5)
        assert snow_coverage(snow, False, 0.1) == 1.0

    def test_no_snow_no_coverage(self) -> None:
        assert snow_coverage(SnowState(), True, 0.1) == 0.0


class TestGroundConductance:
    """Tests for ground_conductance()."""

    def test_zero_without_snow(self) -> None:
        assert ground_conductance(SnowState(), HOUR) == (0.0, 0.0)

    def test_pack_layer_couples_to_ground(self) -> None:
        snow = pack(300.0, temp=-4.0)
        conductance, temp = ground_conductance(snow, HOUR)

        assert conductance > 0.0
        assert temp == -4.0


class TestSnowEnergyBalance:
    """Tests for snow_energy_balance()."""

    def test_empty_pack_returns_zero_fluxes(self) -> None:
        fluxes = snow_energy_balance(SnowState(), thaw_air(), 0.0, 0.0, 2.0, 0.001, HOUR)

        assert fluxes.outflow == 0.0
        assert fluxes.fusion == 0.0

    def test_thaw_melts_at_zero(self) -> None:
        snow = pack(50.0)
        fluxes = snow_energy_balance(snow, thaw_air(), 0.0, 0.0, 2.0, 0.001, HOUR)

        assert fluxes.surf_temp == 0.0
        assert fluxes.fusion > 0.0
        assert snow.swq < 50.0
        assert snow_mass_balance(50.0, snow, fluxes) == pytest.approx(0.0, abs=1e-9)

    def test_thaw_energy_closes(self) -> None:
        snow = pack(50.0)
        f = snow_energy_balance(snow, thaw_air(), 0.0, 0.0, 2.0, 0.001, HOUR)

        residual = f.net_rad - f.sensible - f.latent + f.advection + f.ground_heat - f.deltacc - f.fusion - f.surplus
        assert residual == pytest.approx(0.0, abs=1e-6)

    def test_melt_out_reports_surplus(self) -> None:
        snow = pack(0.5)
        fluxes = snow_energy_balance(snow, thaw_air(), 0.0, 0.0, 2.0, 0.001, HOUR)

        assert snow.swq == 0.0
        assert fluxes.surplus > 0.0
        assert snow_mass_balance(0.5, snow, fluxes) == pytest.approx(0.0, abs=1e-9)

    def test_rain_on_snow_conserves_mass(self) -> None:
        snow = pack(40.0)
        fluxes = snow_energy_balance(snow, thaw_air(), 8.0, 0.0, 2.0, 0.001, HOUR)

        assert fluxes.advection > 0.0
        assert snow_mass_balance(40.0, snow, fluxes, rain=8.0) == pytest.approx(0.0, abs=1e-9)

    def test_cold_refreezes_and_cools(self) -> None:
        snow = pack(50.0, temp=-2.0, surf_water=1.0)
        fluxes = snow_energy_balance(snow, cold_air(), 0.0, 0.0, 2.0, 0.001, HOUR)

        assert fluxes.surf_temp < 0.0
        assert snow.surf_water == 0.0
        assert fluxes.outflow == 0.0
        assert fluxes.fusion < 0.0
        assert snow_mass_balance(50.0, snow, fluxes) == pytest.approx(0.0, abs=1e-9)

    def test_deep_pack_conserves_mass(self) -> None:
        snow = pack(300.0, temp=-5.0)
        fluxes = snow_energy_balance(snow, cold_air(), 0.0, 5.0, 2.0, 0.001, HOUR)

        assert fluxes.ground_heat == pytest.approx(-5.0)
        assert snow.pack_temp < -5.0
        assert snow_mass_balance(300.0, snow, fluxes) == pytest.approx(0.0, abs=1e-9)

    def test_ten_mm_pack_melts_out_without_going_negative(self) -> None:
        """A day of thaw melts the whole pack; the leftover energy is reported, not absorbed."""
        snow = pack(10.0)
        fluxes = snow_energy_balance(snow, thaw_air(), 0.0, 0.0, 2.0, 0.001, SEC_PER_DAY)

        assert snow.swq == 0.0
        assert fluxes.outflow <= 10.0
        assert fluxes.surplus > 0.0
        assert snow_mass_balance(10.0, snow, fluxes) == pytest.approx(0.0, abs=1e-9)
