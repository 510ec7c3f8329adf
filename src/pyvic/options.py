"""Run-time model configuration.

This module defines the options that select among physics variants at run time:
- BaseflowScheme: Choice of bottom-layer drainage law
- ModelOptions: Validated, immutable run configuration
"""

from __future__ import annotations

from enum import Enum

from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from .constants import HOURS_PER_DAY, SEC_PER_HOUR


class BaseflowScheme(str, Enum):
    """Baseflow formulation for the bottom soil layer."""

    ARNO = "ARNO"
    NIJSSEN2001 = "NIJSSEN2001"


class ModelOptions(BaseModel):
    """Validated run configuration for the land-surface core.

    Attributes:
        time_step_hours: Full model time step [h]. Must divide 24.
        snow_step_hours: Snow/energy sub-step [h]. Defaults to the full step.
        full_energy: Solve surface energy balances iteratively.
        frozen_soil: Track soil ice. Requires full_energy and node diffusion.
        quick_flux: Use the closed-form two-layer ground heat flux.
        noflux: Zero-flux lower thermal boundary.
        dist_prcp: Split the cell into wet and dry fractions during storms.
        prec_expt: Exponent of the wet-fraction relation [1/mm].
        lakes: Enable the lake module for cells that carry lake parameters.
        blowing: Add blowing-snow sublimation.
        spatial_snow: Fractional snow coverage.
        baseflow: Baseflow formulation.
        max_snow_temp: Air temperature above which all precipitation is rain [C].
        min_rain_temp: Air temperature below which all precipitation is snow [C].
        wind_h: Height of wind measurement [m].
        measure_h: Height of air temperature / humidity measurement [m].
        min_wind_speed: Lower bound applied to wind speed [m/s].
        energy_tolerance: Energy error reported without a warning [W/m2].
        energy_fatal_tolerance: Energy error beyond which the step fails [W/m2].
        water_tolerance: Water error reported without a warning [mm].
        water_fatal_tolerance: Water error beyond which the step fails [mm].
    """

    model_config = ConfigDict(frozen=True)

    time_step_hours: int = 24
    snow_step_hours: int | None = None
    full_energy: bool = True
    frozen_soil: bool = False
    quick_flux: bool = False
    noflux: bool = False
    dist_prcp: bool = False
    prec_expt: float = 0.6
    lakes: bool = False
    blowing: bool = False
    spatial_snow: bool = False
    baseflow: BaseflowScheme = BaseflowScheme.ARNO
    max_snow_temp: float = 0.5
    min_rain_temp: float = -0.5
    wind_h: float = 10.0
    measure_h: float = 2.0
    min_wind_speed: float = 0.1
    energy_tolerance: float = 0.5
    energy_fatal_tolerance: float = 50.0
    water_tolerance: float = 1.0e-4
    water_fatal_tolerance: float = 1.0

    @field_validator("time_step_hours")
    @classmethod
    def validate_time_step(cls, v: int) -> int:
        """Full step must be a positive divisor of a day."""
        if v <= 0 or HOURS_PER_DAY % v != 0:
            msg = f"time_step_hours must be a positive divisor of 24, got {v}"
            raise ValueError(msg)
        return v

    @field_validator("prec_expt")
    @classmethod
    def validate_prec_expt(cls, v: float) -> float:
        if v <= 0.0:
            msg = f"prec_expt must be positive, got {v}"
            raise ValueError(msg)
        return v

    @field_validator("wind_h", "measure_h", "min_wind_speed")
    @classmethod
    def validate_positive(cls, v: float) -> float:
        if v <= 0.0:
            msg = f"value must be positive, got {v}"
            raise ValueError(msg)
        return v

    @model_validator(mode="after")
    def validate_snow_step(self) -> ModelOptions:
        """Snow sub-step must divide the full step."""
        if self.snow_step_hours is None:
            return self
        if self.snow_step_hours <= 0 or self.time_step_hours % self.snow_step_hours != 0:
            msg = (
                f"snow_step_hours ({self.snow_step_hours}) must be a positive divisor "
                f"of time_step_hours ({self.time_step_hours})"
            )
            raise ValueError(msg)
        return self

    @model_validator(mode="after")
    def validate_physics_combination(self) -> ModelOptions:
        """Reject option combinations that have no consistent physics."""
        if self.frozen_soil and not self.full_energy:
            msg = "frozen_soil requires full_energy"
            raise ValueError(msg)
        if self.frozen_soil and self.quick_flux:
            msg = "frozen_soil requires node diffusion; disable quick_flux"
            raise ValueError(msg)
        if self.lakes and not self.full_energy:
            msg = "lakes require full_energy"
            raise ValueError(msg)
        if self.min_rain_temp > self.max_snow_temp:
            msg = (
                f"min_rain_temp ({self.min_rain_temp}) must not exceed "
                f"max_snow_temp ({self.max_snow_temp})"
            )
            raise ValueError(msg)
        return self

    @model_validator(mode="after")
    def validate_tolerances(self) -> ModelOptions:
        if not 0.0 <= self.energy_tolerance <= self.energy_fatal_tolerance:
            msg = "energy tolerances must satisfy 0 <= energy_tolerance <= energy_fatal_tolerance"
            raise ValueError(msg)
        if not 0.0 <= self.water_tolerance <= self.water_fatal_tolerance:
            msg = "water tolerances must satisfy 0 <= water_tolerance <= water_fatal_tolerance"
            raise ValueError(msg)
        return self

    @property
    def nf(self) -> int:
        """Number of snow sub-steps per full step."""
        if self.snow_step_hours is None:
            return 1
        return self.time_step_hours // self.snow_step_hours

    @property
    def dt(self) -> float:
        """Full step length [s]."""
        return self.time_step_hours * SEC_PER_HOUR

    @property
    def snow_dt(self) -> float:
        """Snow sub-step length [s]."""
        return self.dt / self.nf
