"""Tests for atmospheric helper kernels."""

import pytest

from pyvic.constants import HUGE_RESIST
from pyvic.processes.atmosphere import (
    aerodynamic_resistance,
    air_density,
    canopy_resistance,
    corrected_resistance,
    latent_heat_sublimation,
    latent_heat_vaporization,
    longwave_emission,
    penman_monteith,
    sensible_heat,
    stability_correction,
    svp,
    svp_slope,
)


class TestVapourPressure:
    """Tests for saturation vapour pressure."""

    def test_svp_at_freezing(self) -> None:
        assert svp(0.0) == pytest.approx(0.61078, rel=1e-6)

    def test_svp_increases_with_temperature(self) -> None:
        assert svp(10.0) < svp(20.0) < svp(30.0)

    def test_svp_over_ice_is_lower(self) -> None:
        """Below freezing the ice correction lowers saturation pressure."""
        assert svp(-10.0) < 0.61078 * 2.718281828 ** (17.269 * -10.0 / (237.3 - 10.0))

    def test_slope_matches_finite_difference(self) -> None:
        h = 1e-4
        numeric = (svp(15.0 + h) - svp(15.0 - h)) / (2 * h)

        assert svp_slope(15.0) == pytest.approx(numeric, rel=1e-4)


class TestLatentHeat:
    """Tests for latent heats."""

    def test_vaporization_near_reference(self) -> None:
        assert latent_heat_vaporization(0.0) == pytest.approx(2.501e6)

    def test_sublimation_exceeds_vaporization(self) -> None:
        assert latent_heat_sublimation(-5.0) > latent_heat_vaporization(-5.0)


class TestRadiationAndTransfer:
    """Tests for emission, density and turbulent exchange."""

    def test_longwave_emission_at_freezing(self) -> None:
        assert longwave_emission(0.0) == pytest.approx(5.6696e-8 * 273.15**4)

    def test_air_density_typical(self) -> None:
        assert air_density(101.3, 15.0) == pytest.approx(1.22, abs=0.02)

    def test_aerodynamic_resistance_decreases_with_wind(self) -> None:
        slow = aerodynamic_resistance(1.0, 10.0, 0.0, 0.01)
        fast = aerodynamic_resistance(5.0, 10.0, 0.0, 0.01)

        assert fast == pytest.approx(slow / 5.0)

    def test_calm_air_gives_huge_resistance(self) -> None:
        assert aerodynamic_resistance(0.0, 10.0, 0.0, 0.01) == HUGE_RESIST

    def test_neutral_conditions_uncorrected(self) -> None:
        assert stability_correction(10.0, 0.0, 0.01, 5.0, 5.0, 3.0) == pytest.approx(1.0)

    def test_stable_conditions_increase_resistance(self) -> None:
        neutral = aerodynamic_resistance(2.0, 10.0, 0.0, 0.01)
        stable = corrected_resistance(2.0, 10.0, 0.0, 0.01, -5.0, 5.0)

        assert stable > neutral

    def test_unstable_conditions_decrease_resistance(self) -> None:
        neutral = aerodynamic_resistance(2.0, 10.0, 0.0, 0.01)
        unstable = corrected_resistance(2.0, 10.0, 0.0, 0.01, 20.0, 5.0)

        assert unstable < neutral

    def test_sensible_heat_sign(self) -> None:
        assert sensible_heat(1.2, 10.0, 5.0, 50.0) > 0.0
        assert sensible_heat(1.2, 0.0, 5.0, 50.0) < 0.0


class TestEvaporation:
    """Tests for Penman-Monteith and canopy resistance."""

    def test_penman_monteith_positive_with_energy(self) -> None:
        rate = penman_monteith(200.0, 1.0, 20.0, 100.0, 50.0, 70.0)

        assert rate > 0.0

    def test_penman_monteith_never_negative(self) -> None:
        assert penman_monteith(-300.0, 0.0, 5.0, 100.0, 50.0, 0.0) == 0.0

    def test_surface_resistance_reduces_evaporation(self) -> None:
        open_water = penman_monteith(200.0, 1.0, 20.0, 100.0, 50.0, 0.0)
        canopy = penman_monteith(200.0, 1.0, 20.0, 100.0, 50.0, 200.0)

        assert canopy < open_water

    def test_canopy_resistance_closed_without_leaves(self) -> None:
        assert canopy_resistance(100.0, 0.0, 20.0, 1.0, 200.0, 100.0) == HUGE_RESIST

    def test_canopy_resistance_increases_with_vpd(self) -> None:
        humid = canopy_resistance(100.0, 3.0, 20.0, 0.5, 200.0, 100.0)
        dry = canopy_resistance(100.0, 3.0, 20.0, 2.0, 200.0, 100.0)

        assert dry > humid
