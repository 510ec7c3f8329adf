"""Tests for lake geometry, thermodynamics and water balance."""

import numpy as np
import pytest

from pyvic import LakeParameters
from pyvic.constants import CH_WATER
from pyvic.processes.lake import (
    LakeBasin,
    LakeFluxes,
    convective_mixing,
    diffuse_lake,
    lake_substep,
    lake_water_balance,
    water_density,
)
from pyvic.state import LakeState
from pyvic.types import AtmosphericState

DAY = 86400.0


def summer_air() -> AtmosphericState:
    return AtmosphericState(
        air_temp=20.0, prec=0.0, shortwave=300.0, longwave=340.0, pressure=95.0, vp=1.2, wind=3.0
    )


def winter_air() -> AtmosphericState:
    return AtmosphericState(
        air_temp=-20.0, prec=0.0, shortwave=20.0, longwave=180.0, pressure=95.0, vp=0.1, wind=4.0
    )


def thaw_air() -> AtmosphericState:
    return AtmosphericState(
        air_temp=12.0, prec=0.0, shortwave=400.0, longwave=330.0, pressure=95.0, vp=1.0, wind=3.0
    )


def energy_residual(f: LakeFluxes) -> float:
    return f.net_short + f.net_long - f.sensible - f.latent - f.ground_flux - f.fusion


@pytest.fixture
def basin(lake_params: LakeParameters) -> LakeBasin:
    return LakeBasin.from_parameters(lake_params)


class TestBasin:
    """Tests for the level-area-volume relation."""

    def test_geometry(self, basin: LakeBasin) -> None:
        np.testing.assert_allclose(basin.areas, [0.5e6, 1.5e6, 2.5e6])
        np.testing.assert_allclose(basin.volumes, [0.0, 2.0e6, 6.0e6])
        assert basin.footprint_area == pytest.approx(2.5e6)

    def test_level_inverts_volume(self, basin: LakeBasin) -> None:
        for level in (0.5, 2.0, 3.3, 4.0):
            assert basin.level(basin.volume(level)) == pytest.approx(level)

    def test_volume_above_spill_level(self, basin: LakeBasin) -> None:
        assert basin.volume(5.0) == pytest.approx(8.5e6)
        assert basin.level(8.5e6) == pytest.approx(5.0)

    def test_storage_per_footprint(self, basin: LakeBasin) -> None:
        assert basin.storage(4.0) == pytest.approx(2400.0)


class TestWaterColumn:
    """Tests for density, diffusion and mixing kernels."""

    def test_density_maximum_near_four_degrees(self) -> None:
        assert water_density(3.84) == pytest.approx(1000.0)
        assert water_density(0.0) < water_density(3.84)
        assert water_density(20.0) < water_density(3.84)

    def test_diffusion_conserves_heat(self) -> None:
        temps = np.array([15.0, 10.0, 6.0, 5.0])
        sources = np.array([50.0, 10.0, 0.0, 0.0])
        new = diffuse_lake(temps, 0.5, 20.0, DAY, sources)

        gained = CH_WATER * 0.5 * float(np.sum(new - temps))
        assert gained == pytest.approx(float(np.sum(sources)) * DAY, rel=1e-9)

    def test_stable_profile_not_mixed(self) -> None:
        temps = np.array([20.0, 12.0, 6.0, 4.0])

        assert convective_mixing(temps) == 0
        np.testing.assert_array_equal(temps, [20.0, 12.0, 6.0, 4.0])

    def test_dense_top_layer_mixes(self) -> None:
        temps = np.array([4.0, 10.0, 12.0])

        assert convective_mixing(temps) == 3
        np.testing.assert_allclose(temps, 26.0 / 3.0)


class TestLakeSubstep:
    """Tests for lake_substep()."""

    def test_open_water_energy_closes(self, lake_params: LakeParameters, basin: LakeBasin) -> None:
        state = LakeState.initialize(lake_params, 12.0)
        f = lake_substep(state, basin, lake_params, summer_air(), 2.0, 0.0, 10.0, 3600.0)

        assert energy_residual(f) == pytest.approx(0.0, abs=1e-3)
        assert f.water_in == pytest.approx(2.0)
        assert f.evaporation > 0.0
        assert state.fraci == 0.0

    def test_cold_lake_freezes(self, lake_params: LakeParameters, basin: LakeBasin) -> None:
        state = LakeState(level=3.0, temps=np.full(5, 0.2), surf_temp=0.2)
        lake_substep(state, basin, lake_params, winter_air(), 0.0, 0.0, 10.0, DAY)

        assert state.fraci == 1.0
        assert state.ice_thickness > 0.0

    def test_ice_energy_closes(self, lake_params: LakeParameters, basin: LakeBasin) -> None:
        state = LakeState(
            level=3.0, temps=np.full(5, 2.0), surf_temp=-5.0, ice_thickness=0.3, fraci=1.0, snow=5.0
        )
        f = lake_substep(state, basin, lake_params, winter_air(), 0.0, 2.0, 10.0, 3600.0)

        assert energy_residual(f) == pytest.approx(0.0, abs=1e-3)
        assert f.surf_temp < 0.0
        assert state.ice_thickness > 0.0
        assert state.snow > 5.0

    def test_thin_ice_melts_out(self, lake_params: LakeParameters, basin: LakeBasin) -> None:
        """Thin snow-covered ice melts in a warm day and the lake reopens."""
        state = LakeState(
            level=3.0, temps=np.full(5, 2.0), surf_temp=0.0, ice_thickness=0.005, fraci=1.0, snow=2.0
        )
        f = lake_substep(state, basin, lake_params, thaw_air(), 0.0, 0.0, 10.0, DAY)

        assert energy_residual(f) == pytest.approx(0.0, abs=1e-3)
        assert state.fraci == 0.0
        assert state.ice_thickness == 0.0
        assert state.snow == 0.0
        assert f.water_in + f.sublimation == pytest.approx(2.0)

        reopened = lake_substep(state, basin, lake_params, summer_air(), 0.0, 0.0, 10.0, 3600.0)

        assert energy_residual(reopened) == pytest.approx(0.0, abs=1e-3)
        assert reopened.fusion == 0.0
        assert state.fraci == 0.0

    def test_ice_flag_without_ice_reopens_water(self, lake_params: LakeParameters, basin: LakeBasin) -> None:
        state = LakeState(level=3.0, temps=np.full(5, 2.0), surf_temp=0.0, ice_thickness=0.0, fraci=1.0)
        f = lake_substep(state, basin, lake_params, summer_air(), 0.0, 0.0, 10.0, 3600.0)

        assert state.fraci == 0.0
        assert energy_residual(f) == pytest.approx(0.0, abs=1e-3)

    def test_dry_lake_passes_precipitation(self, lake_params: LakeParameters, basin: LakeBasin) -> None:
        state = LakeState(level=0.0, temps=np.full(5, 4.0), surf_temp=4.0)
        f = lake_substep(state, basin, lake_params, summer_air(), 3.0, 1.0, 10.0, 3600.0)

        assert f.water_in == pytest.approx(4.0)
        assert f.latent == 0.0


class TestLakeWaterBalance:
    """Tests for lake_water_balance()."""

    def test_volume_conserved(self, lake_params: LakeParameters, basin: LakeBasin) -> None:
        state = LakeState.initialize(lake_params, 10.0)
        before = basin.storage(state.level)
        fluxes = lake_water_balance(state, basin, lake_params, 10.0, 2.0, 5.0, 1.0)

        after = basin.storage(state.level)
        assert fluxes.outflow > 0.0
        assert after - before == pytest.approx(10.0 + 5.0 - fluxes.evaporation - fluxes.outflow)

    def test_no_outflow_below_min_depth(self, lake_params: LakeParameters, basin: LakeBasin) -> None:
        state = LakeState(level=0.5, temps=np.full(5, 4.0), surf_temp=4.0)
        fluxes = lake_water_balance(state, basin, lake_params, 0.0, 0.0, 0.0, 1.0)

        assert fluxes.outflow == 0.0
        assert state.level == pytest.approx(0.5)

    def test_spill_keeps_level_at_max(self, lake_params: LakeParameters, basin: LakeBasin) -> None:
        state = LakeState(level=3.9, temps=np.full(5, 4.0), surf_temp=4.0)
        before = basin.storage(3.9)
        fluxes = lake_water_balance(state, basin, lake_params, 2000.0, 0.0, 0.0, 1.0)

        assert state.level == pytest.approx(lake_params.max_depth)
        assert before + 2000.0 - fluxes.outflow == pytest.approx(basin.storage(lake_params.max_depth))

    def test_evaporation_capped_by_volume(self, lake_params: LakeParameters, basin: LakeBasin) -> None:
        state = LakeState(level=0.01, temps=np.full(5, 4.0), surf_temp=4.0)
        available = basin.storage(0.01)
        fluxes = lake_water_balance(state, basin, lake_params, 0.0, 1.0e4, 0.0, 1.0)

        assert fluxes.evaporation == pytest.approx(available)
        assert state.level == pytest.approx(0.0, abs=1e-9)
