"""Tests for soil moisture kernels and the full-step column update."""

import numpy as np
import pytest

from pyvic import ModelOptions, SoilParameters
from pyvic.processes.soil_moisture import (
    arno_baseflow,
    arno_runoff,
    bare_soil_factor,
    drain_layers,
    moisture_stress,
    nijssen_baseflow,
    saturated_fraction,
    transpiration_limits,
    update_soil_moisture,
)


@pytest.fixture
def bucket_soil() -> SoilParameters:
    """Single 1 m layer with a uniform infiltration capacity (b = 0)."""
    return SoilParameters(
        depth=[1.0],
        ksat=[100.0],
        expt=[10.0],
        bubble=[20.0],
        quartz=[0.5],
        bulk_density=[1400.0],
        soil_density=[2650.0],
        resid_moist=[0.02],
        wcr_fract=[0.7],
        wpwp_fract=[0.5],
        b_infilt=0.0,
        dsmax=0.0,
        ds=0.0,
    )


class TestArnoRunoff:
    """Tests for arno_runoff()."""

    def test_no_inflow_no_runoff(self) -> None:
        assert arno_runoff(100.0, 200.0, 0.2, 0.0) == 0.0

    def test_runoff_bounded_by_inflow(self) -> None:
        runoff = arno_runoff(150.0, 200.0, 0.3, 40.0)

        assert 0.0 <= runoff <= 40.0

    def test_saturated_soil_sheds_everything(self) -> None:
        assert arno_runoff(200.0, 200.0, 0.3, 25.0) == pytest.approx(25.0)

    def test_uniform_bucket_fills_before_runoff(self) -> None:
        """With b = 0 nothing runs off until the layer is full."""
        assert arno_runoff(100.0, 200.0, 0.0, 60.0) == 0.0
        assert arno_runoff(100.0, 200.0, 0.0, 130.0) == pytest.approx(30.0)

    def test_runoff_grows_with_wetness(self) -> None:
        dry = arno_runoff(50.0, 200.0, 0.3, 20.0)
        wet = arno_runoff(180.0, 200.0, 0.3, 20.0)

        assert wet > dry


class TestSurfaceFactors:
    """Tests for saturated area and evaporation limits."""

    def test_saturated_fraction_limits(self) -> None:
        assert saturated_fraction(0.0, 100.0, 0.3) == pytest.approx(0.0)
        assert saturated_fraction(100.0, 100.0, 0.3) == 1.0

    def test_bare_soil_factor_within_unit_interval(self) -> None:
        for moist in (0.0, 30.0, 70.0, 100.0):
            factor = bare_soil_factor(moist, 100.0, 0.3)
            assert 0.0 <= factor <= 1.0

    def test_moisture_stress_ramp(self) -> None:
        assert moisture_stress(10.0, 30.0, 20.0) == 0.0
        assert moisture_stress(25.0, 30.0, 20.0) == pytest.approx(0.5)
        assert moisture_stress(40.0, 30.0, 20.0) == 1.0

    def test_transpiration_limits_weighted_by_roots(self, loam_soil: SoilParameters) -> None:
        liquid = loam_soil.max_moist.copy()
        root = np.array([0.2, 0.3, 0.5])

        np.testing.assert_allclose(transpiration_limits(liquid, loam_soil, root), root)


class TestBaseflow:
    """Tests for the two baseflow laws."""

    def test_arno_zero_at_residual(self) -> None:
        assert arno_baseflow(20.0, 20.0, 400.0, 0.001, 10.0, 0.9, 2.0, 1.0) == 0.0

    def test_arno_linear_below_ws(self) -> None:
        flow = arno_baseflow(20.0 + 190.0, 20.0, 400.0, 0.1, 10.0, 0.9, 2.0, 1.0)
        # rel = 0.5: ds * dsmax / ws * rel
        assert flow == pytest.approx(0.1 * 10.0 / 0.9 * 0.5)

    def test_arno_nonlinear_above_ws(self) -> None:
        linear_only = 0.1 * 10.0 / 0.9 * 0.95
        flow = arno_baseflow(20.0 + 0.95 * 380.0, 20.0, 400.0, 0.1, 10.0, 0.9, 2.0, 1.0)

        assert flow > linear_only

    def test_nijssen_linear_term(self) -> None:
        flow = nijssen_baseflow(120.0, 20.0, 0.01, 0.0, 0.0, 2.0, 1.0)

        assert flow == pytest.approx(1.0)

    def test_nijssen_bounded_by_available_water(self) -> None:
        flow = nijssen_baseflow(30.0, 20.0, 5.0, 0.0, 0.0, 2.0, 1.0)

        assert flow == pytest.approx(10.0)


class TestDrainLayers:
    """Tests for drain_layers()."""

    def test_conserves_water(self) -> None:
        liquid = np.array([40.0, 80.0, 200.0])
        before = float(np.sum(liquid))
        leaving = drain_layers(
            liquid,
            np.zeros(3),
            np.array([47.0, 141.0, 450.0]),
            np.array([2.0, 6.0, 20.0]),
            np.array([500.0, 500.0, 500.0]),
            np.array([5.0, 5.0, 5.0]),
            24,
        )

        assert float(np.sum(liquid)) + leaving == pytest.approx(before)

    def test_oversaturation_cascades(self) -> None:
        liquid = np.array([60.0, 10.0])
        leaving = drain_layers(
            liquid,
            np.zeros(2),
            np.array([50.0, 100.0]),
            np.array([0.0, 0.0]),
            np.array([0.0001, 0.0001]),
            np.array([5.0, 5.0]),
            1,
        )

        assert liquid[0] <= 50.0
        assert leaving == 0.0
        assert float(np.sum(liquid)) == pytest.approx(70.0)


class TestUpdateSoilMoisture:
    """Tests for the full-step update."""

    def test_water_conserved(self, loam_soil: SoilParameters) -> None:
        moist = loam_soil.wcr_mm.copy()
        evap = np.array([0.5, 1.0, 0.2])
        new_moist, fluxes = update_soil_moisture(moist, np.zeros(3), 20.0, evap, loam_soil, ModelOptions())

        change = float(np.sum(new_moist - moist))
        balance = 20.0 - fluxes.runoff - fluxes.baseflow - float(np.sum(fluxes.evaporation))
        assert change == pytest.approx(balance, abs=1e-9)

    def test_layers_stay_within_bounds(self, loam_soil: SoilParameters) -> None:
        moist = loam_soil.max_moist * 0.95
        new_moist, _ = update_soil_moisture(moist, np.zeros(3), 200.0, np.zeros(3), loam_soil, ModelOptions())

        assert np.all(new_moist >= 0.0)
        assert np.all(new_moist <= loam_soil.max_moist + 1e-9)

    def test_evaporation_limited_by_liquid(self, loam_soil: SoilParameters) -> None:
        moist = np.array([1.0, 50.0, 300.0])
        demand = np.array([5.0, 0.0, 0.0])
        _, fluxes = update_soil_moisture(moist, np.zeros(3), 0.0, demand, loam_soil, ModelOptions())

        assert fluxes.evaporation[0] == pytest.approx(1.0)

    def test_single_layer_bucket_no_runoff_until_full(self, bucket_soil: SoilParameters) -> None:
        """A b = 0 single layer absorbs inflow up to its capacity."""
        capacity = float(bucket_soil.max_moist[0])
        moist = np.array([capacity - 100.0])
        new_moist, fluxes = update_soil_moisture(moist, np.zeros(1), 60.0, np.zeros(1), bucket_soil, ModelOptions())

        assert fluxes.runoff == 0.0
        assert fluxes.baseflow == pytest.approx(0.0, abs=1e-12)
        assert new_moist[0] == pytest.approx(capacity - 40.0)

    def test_single_layer_bucket_spills_excess(self, bucket_soil: SoilParameters) -> None:
        capacity = float(bucket_soil.max_moist[0])
        moist = np.array([capacity - 10.0])
        new_moist, fluxes = update_soil_moisture(moist, np.zeros(1), 25.0, np.zeros(1), bucket_soil, ModelOptions())

        assert fluxes.runoff == pytest.approx(15.0)
        assert new_moist[0] == pytest.approx(capacity)

    def test_ice_held_fixed(self, loam_soil: SoilParameters) -> None:
        moist = loam_soil.wcr_mm.copy()
        ice = np.array([5.0, 0.0, 0.0])
        new_moist, _ = update_soil_moisture(moist, ice, 10.0, np.zeros(3), loam_soil, ModelOptions())

        assert new_moist[0] >= ice[0]

    def test_nijssen_scheme_selected(self, loam_soil: SoilParameters) -> None:
        soil = SoilParameters(
            depth=loam_soil.depth,
            ksat=loam_soil.ksat,
            expt=loam_soil.expt,
            bubble=loam_soil.bubble,
            quartz=loam_soil.quartz,
            bulk_density=loam_soil.bulk_density,
            soil_density=loam_soil.soil_density,
            resid_moist=loam_soil.resid_moist,
            wcr_fract=loam_soil.wcr_fract,
            wpwp_fract=loam_soil.wpwp_fract,
            dsmax=0.0,
            d1=0.01,
        )
        moist = soil.wcr_mm.copy()
        _, arno = update_soil_moisture(moist, np.zeros(3), 0.0, np.zeros(3), soil, ModelOptions())
        nijssen_options = ModelOptions(baseflow="NIJSSEN2001")
        _, nijssen = update_soil_moisture(moist, np.zeros(3), 0.0, np.zeros(3), soil, nijssen_options)

        assert arno.baseflow == pytest.approx(0.0, abs=1e-9)
        assert nijssen.baseflow > 0.0
