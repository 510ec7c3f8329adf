"""Tests for ModelOptions validation and derived step lengths."""

import pytest
from pydantic import ValidationError

from pyvic import BaseflowScheme, ModelOptions


class TestModelOptionsDefaults:
    """Tests for default configuration."""

    def test_defaults_are_daily_full_energy(self) -> None:
        options = ModelOptions()

        assert options.time_step_hours == 24
        assert options.full_energy is True
        assert options.frozen_soil is False
        assert options.baseflow is BaseflowScheme.ARNO

    def test_single_substep_without_snow_step(self) -> None:
        options = ModelOptions(time_step_hours=6)

        assert options.nf == 1
        assert options.dt == pytest.approx(6 * 3600.0)
        assert options.snow_dt == pytest.approx(options.dt)

    def test_substeps_from_snow_step(self) -> None:
        options = ModelOptions(time_step_hours=24, snow_step_hours=3)

        assert options.nf == 8
        assert options.snow_dt == pytest.approx(3 * 3600.0)

    def test_is_frozen(self) -> None:
        options = ModelOptions()

        with pytest.raises(ValidationError):
            options.full_energy = False  # type: ignore[misc]

    def test_baseflow_accepts_string(self) -> None:
        options = ModelOptions(baseflow="NIJSSEN2001")

        assert options.baseflow is BaseflowScheme.NIJSSEN2001


class TestModelOptionsValidation:
    """Tests for rejected configurations."""

    @pytest.mark.parametrize("hours", [0, 5, 7, 48, -24])
    def test_time_step_must_divide_day(self, hours: int) -> None:
        with pytest.raises(ValidationError, match="divisor of 24"):
            ModelOptions(time_step_hours=hours)

    def test_snow_step_must_divide_time_step(self) -> None:
        with pytest.raises(ValidationError, match="snow_step_hours"):
            ModelOptions(time_step_hours=24, snow_step_hours=5)

    def test_frozen_soil_requires_full_energy(self) -> None:
        with pytest.raises(ValidationError, match="frozen_soil requires full_energy"):
            ModelOptions(frozen_soil=True, full_energy=False)

    def test_frozen_soil_rejects_quick_flux(self) -> None:
        with pytest.raises(ValidationError, match="quick_flux"):
            ModelOptions(frozen_soil=True, quick_flux=True)

    def test_lakes_require_full_energy(self) -> None:
        with pytest.raises(ValidationError, match="lakes require full_energy"):
            ModelOptions(lakes=True, full_energy=False)

    def test_rain_snow_thresholds_ordered(self) -> None:
        with pytest.raises(ValidationError, match="min_rain_temp"):
            ModelOptions(min_rain_temp=1.0, max_snow_temp=0.0)

    def test_tolerances_ordered(self) -> None:
        with pytest.raises(ValidationError, match="water tolerances"):
            ModelOptions(water_tolerance=2.0, water_fatal_tolerance=1.0)

    @pytest.mark.parametrize("name", ["wind_h", "measure_h", "min_wind_speed", "prec_expt"])
    def test_positive_fields(self, name: str) -> None:
        with pytest.raises(ValidationError):
            ModelOptions(**{name: 0.0})

    def test_unknown_baseflow_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ModelOptions(baseflow="LINEAR")
