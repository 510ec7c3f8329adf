"""Forcing data structures for the land-surface core.

This module defines the forcing containers read by the core:
- AtmosphericState: Forcing seen by a surface during one snow sub-step
- ForcingRecord: One full model step, NF sub-steps plus the full-step aggregate
- ForcingData: Validated forcing time series at sub-step resolution
"""

from __future__ import annotations

from dataclasses import dataclass, replace

import numpy as np
import pandas as pd
from pydantic import BaseModel, ConfigDict, field_validator, model_validator

from .processes.atmosphere import air_density, svp


@dataclass(frozen=True)
class AtmosphericState:
    """Atmospheric forcing for one sub-step, in model-native units.

    Attributes:
        air_temp: Air temperature [C].
        prec: Precipitation over the sub-step [mm].
        shortwave: Incoming shortwave radiation [W/m2].
        longwave: Incoming longwave radiation [W/m2].
        pressure: Air pressure [kPa].
        vp: Vapour pressure [kPa].
        wind: Wind speed [m/s].
    """

    air_temp: float
    prec: float
    shortwave: float
    longwave: float
    pressure: float
    vp: float
    wind: float

    @property
    def vpd(self) -> float:
        """Vapour pressure deficit [kPa], never negative."""
        return max(svp(self.air_temp) - self.vp, 0.0)

    @property
    def density(self) -> float:
        """Air density [kg/m3]."""
        return air_density(self.pressure, self.air_temp)

    def adjusted(self, **changes: float) -> AtmosphericState:
        """Return a copy with some quantities replaced."""
        return replace(self, **changes)


@dataclass(frozen=True)
class ForcingRecord:
    """Forcing for one full model step.

    Sub-steps are indexed 0..NF-1; index NR == NF addresses the full-step
    aggregate, in which precipitation is summed and all other quantities
    are averaged.

    Attributes:
        time: Start time of the full step.
        substeps: The NF sub-step states.
    """

    time: np.datetime64
    substeps: tuple[AtmosphericState, ...]

    @property
    def nf(self) -> int:
        """Number of sub-steps."""
        return len(self.substeps)

    @property
    def nr(self) -> int:
        """Index of the full-step aggregate slot."""
        return len(self.substeps)

    @property
    def month(self) -> int:
        """Calendar month (1-12) of the step."""
        return pd.Timestamp(self.time).month

    @property
    def aggregate(self) -> AtmosphericState:
        """Full-step aggregate of the sub-steps."""
        n = len(self.substeps)
        return AtmosphericState(
            air_temp=sum(s.air_temp for s in self.substeps) / n,
            prec=sum(s.prec for s in self.substeps),
            shortwave=sum(s.shortwave for s in self.substeps) / n,
            longwave=sum(s.longwave for s in self.substeps) / n,
            pressure=sum(s.pressure for s in self.substeps) / n,
            vp=sum(s.vp for s in self.substeps) / n,
            wind=sum(s.wind for s in self.substeps) / n,
        )

    def at(self, index: int) -> AtmosphericState:
        """Sub-step ``index``, or the aggregate when ``index == nr``."""
        if index == self.nr:
            return self.aggregate
        return self.substeps[index]


_FORCING_FIELDS = ("air_temp", "prec", "shortwave", "longwave", "pressure", "vp", "wind")


class ForcingData(BaseModel):
    """Validated forcing time series at snow sub-step resolution.

    All arrays must be 1D with the same length. NaN values are rejected.
    Numeric arrays are coerced to float64. Unit conversion and gap filling
    are the responsibility of whoever builds this container.

    Attributes:
        time: Datetime array for each sub-step (datetime64), regularly spaced.
        air_temp: Air temperature [C].
        prec: Precipitation per sub-step [mm].
        shortwave: Incoming shortwave radiation [W/m2].
        longwave: Incoming longwave radiation [W/m2].
        pressure: Air pressure [kPa].
        vp: Vapour pressure [kPa].
        wind: Wind speed [m/s].
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    time: np.ndarray  # datetime64
    air_temp: np.ndarray  # [C]
    prec: np.ndarray  # [mm]
    shortwave: np.ndarray  # [W/m2]
    longwave: np.ndarray  # [W/m2]
    pressure: np.ndarray  # [kPa]
    vp: np.ndarray  # [kPa]
    wind: np.ndarray  # [m/s]

    @field_validator("time", mode="before")
    @classmethod
    def validate_time(cls, v: np.ndarray) -> np.ndarray:
        """Validate time array: must be 1D and coerced to datetime64."""
        arr = np.asarray(v)
        if arr.ndim != 1:
            msg = f"time array must be 1D, got {arr.ndim}D"
            raise ValueError(msg)
        return arr.astype("datetime64[ns]")

    @field_validator(*_FORCING_FIELDS, mode="before")
    @classmethod
    def validate_series(cls, v: np.ndarray) -> np.ndarray:
        """Validate a forcing array: must be 1D float64 with no NaN values."""
        arr = np.asarray(v, dtype=np.float64)
        if arr.ndim != 1:
            msg = f"forcing array must be 1D, got {arr.ndim}D"
            raise ValueError(msg)
        if np.any(np.isnan(arr)):
            msg = "forcing array contains NaN values"
            raise ValueError(msg)
        return arr

    @model_validator(mode="after")
    def validate_array_lengths(self) -> ForcingData:
        """Ensure all arrays have the same length."""
        n = len(self.time)
        for name in _FORCING_FIELDS:
            length = len(getattr(self, name))
            if length != n:
                msg = f"{name} length {length} does not match time length {n}"
                raise ValueError(msg)
        return self

    @model_validator(mode="after")
    def validate_physical_ranges(self) -> ForcingData:
        """Reject values that no unit conversion could produce."""
        for name in ("prec", "shortwave", "longwave", "vp", "wind"):
            if np.any(getattr(self, name) < 0.0):
                msg = f"{name} contains negative values"
                raise ValueError(msg)
        if np.any(self.pressure <= 0.0):
            msg = "pressure must be positive"
            raise ValueError(msg)
        return self

    @model_validator(mode="after")
    def validate_time_spacing(self) -> ForcingData:
        """Sub-steps must be regularly spaced in whole hours."""
        if len(self.time) <= 1:
            return self
        gaps = np.diff(self.time) / np.timedelta64(1, "h")
        if not np.allclose(gaps, gaps[0]) or gaps[0] <= 0 or gaps[0] != round(gaps[0]):
            msg = "time must be regularly spaced in whole hours"
            raise ValueError(msg)
        return self

    def __len__(self) -> int:
        """Return the number of sub-steps."""
        return len(self.time)

    @property
    def step_hours(self) -> int | None:
        """Spacing of the series [h], or None for a single entry."""
        if len(self.time) <= 1:
            return None
        return int(round(float((self.time[1] - self.time[0]) / np.timedelta64(1, "h"))))

    def to_records(self, nf: int) -> list[ForcingRecord]:
        """Group consecutive sub-steps into full-step forcing records.

        Args:
            nf: Number of sub-steps per full step.

        Returns:
            One ForcingRecord per full step.

        Raises:
            ValueError: If the series length is not a multiple of ``nf``.
        """
        n = len(self.time)
        if nf <= 0 or n % nf != 0:
            msg = f"forcing length {n} is not a multiple of the {nf} sub-steps per step"
            raise ValueError(msg)
        records = []
        for start in range(0, n, nf):
            substeps = tuple(
                AtmosphericState(**{name: float(getattr(self, name)[i]) for name in _FORCING_FIELDS})
                for i in range(start, start + nf)
            )
            records.append(ForcingRecord(time=self.time[start], substeps=substeps))
        return records
