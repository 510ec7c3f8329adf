"""Tests for budget closure checks."""

import logging

import pytest

from pyvic import ConservationError, ModelOptions
from pyvic.model.closure import BudgetErrors, check_budget, check_closure


class TestCheckBudget:
    """Tests for check_budget()."""

    def test_within_tolerance_is_silent(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="pyvic.model.closure"):
            check_budget("water", 1e-6, 1e-4, 1.0)

        assert caplog.records == []

    def test_between_tolerances_warns(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="pyvic.model.closure"):
            check_budget("water", -0.01, 1e-4, 1.0)

        assert "water budget error" in caplog.text

    def test_beyond_fatal_raises(self) -> None:
        with pytest.raises(ConservationError) as info:
            check_budget("energy", 75.0, 0.5, 50.0, {"record_index": 3})

        assert info.value.budget == "energy"
        assert info.value.error == 75.0
        assert info.value.context == {"record_index": 3}


class TestCheckClosure:
    """Tests for check_closure()."""

    def test_clean_step_passes(self) -> None:
        check_closure(BudgetErrors(water=0.0, energy=0.0), ModelOptions())

    def test_energy_error_raises(self) -> None:
        with pytest.raises(ConservationError, match="energy"):
            check_closure(BudgetErrors(water=0.0, energy=-60.0), ModelOptions())

    def test_snow_mass_error_held_to_water_tolerance(self) -> None:
        with pytest.raises(ConservationError, match="snow_mass"):
            check_closure(BudgetErrors(water=0.0, energy=0.0, snow_mass=2.0), ModelOptions())

    def test_snow_surplus_only_warns(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="pyvic.model.closure"):
            check_closure(BudgetErrors(water=0.0, energy=0.0, snow_surplus=500.0), ModelOptions())

        assert "melted out" in caplog.text
