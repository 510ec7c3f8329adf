"""Output records of the land-surface core.

This module defines the fixed output schema emitted every full step:
- AggregationType: How a variable combines when sub-steps are aggregated
- OutputVariable: Closed catalogue of reported variables with units
- OutputRecord: The values emitted for one full step
- ModelOutput: All records of a run with time index and DataFrame conversion

Water quantities are per unit cell area [mm]; energy fluxes are averages over
the full step [W/m2]; temperatures are land-area averages [C].
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

import numpy as np
import pandas as pd

if TYPE_CHECKING:
    from pyvic.state import CellState


class AggregationType(str, Enum):
    """Rule for combining a variable over several steps."""

    AVG = "AVG"  # Mean
    BEG = "BEG"  # First value
    END = "END"  # Last value
    MAX = "MAX"
    MIN = "MIN"
    SUM = "SUM"


@dataclass(frozen=True)
class VariableInfo:
    """Static description of an output variable.

    Attributes:
        units: Physical units.
        aggregation: Aggregation policy for coarser reporting intervals.
        description: Short description.
        dimension: "layer", "node", "front" or "band" for array variables.
    """

    units: str
    aggregation: AggregationType
    description: str
    dimension: str | None = None


class OutputVariable(str, Enum):
    """Closed catalogue of variables in every output record."""

    # Water balance fluxes
    PREC = "PREC"
    RAINF = "RAINF"
    SNOWF = "SNOWF"
    EVAP = "EVAP"
    EVAP_CANOP = "EVAP_CANOP"
    TRANSP_VEG = "TRANSP_VEG"
    EVAP_BARE = "EVAP_BARE"
    EVAP_LAKE = "EVAP_LAKE"
    SUB_SNOW = "SUB_SNOW"
    SUB_CANOP = "SUB_CANOP"
    SUB_BLOWING = "SUB_BLOWING"
    INFLOW = "INFLOW"
    RUNOFF = "RUNOFF"
    BASEFLOW = "BASEFLOW"
    SNOW_MELT = "SNOW_MELT"
    WATER_ERROR = "WATER_ERROR"
    # Water balance states
    SOIL_MOIST = "SOIL_MOIST"
    SOIL_ICE = "SOIL_ICE"
    WDEW = "WDEW"
    SNOW_CANOPY = "SNOW_CANOPY"
    SWE = "SWE"
    SNOW_DEPTH = "SNOW_DEPTH"
    SNOW_COVER = "SNOW_COVER"
    LAKE_DEPTH = "LAKE_DEPTH"
    LAKE_ICE = "LAKE_ICE"
    LAKE_ICE_FRACT = "LAKE_ICE_FRACT"
    LAKE_MOIST = "LAKE_MOIST"
    SNOW_MASS_ERROR = "SNOW_MASS_ERROR"
    # Energy balance
    NET_SHORT = "NET_SHORT"
    NET_LONG = "NET_LONG"
    NET_RAD = "NET_RAD"
    SENSIBLE = "SENSIBLE"
    LATENT = "LATENT"
    GRND_FLUX = "GRND_FLUX"
    ADVECTION = "ADVECTION"
    DELTACC = "DELTACC"
    FUSION = "FUSION"
    SNOW_ENERGY_SURPLUS = "SNOW_ENERGY_SURPLUS"
    ENERGY_ERROR = "ENERGY_ERROR"
    ALBEDO = "ALBEDO"
    SURF_TEMP = "SURF_TEMP"
    SNOW_SURF_TEMP = "SNOW_SURF_TEMP"
    SNOW_PACK_TEMP = "SNOW_PACK_TEMP"
    LAKE_SURF_TEMP = "LAKE_SURF_TEMP"
    SOIL_TEMP = "SOIL_TEMP"
    FDEPTH = "FDEPTH"
    # Forcing echoes
    AIR_TEMP = "AIR_TEMP"
    SHORTWAVE = "SHORTWAVE"
    LONGWAVE = "LONGWAVE"
    PRESSURE = "PRESSURE"
    VP = "VP"
    WIND = "WIND"
    WET_FRACTION = "WET_FRACTION"
    # Band-specific
    SWE_BAND = "SWE_BAND"
    SNOW_DEPTH_BAND = "SNOW_DEPTH_BAND"

    @property
    def info(self) -> VariableInfo:
        return _CATALOGUE[self]

    @property
    def units(self) -> str:
        return _CATALOGUE[self].units

    @property
    def aggregation(self) -> AggregationType:
        return _CATALOGUE[self].aggregation


_A = AggregationType
_V = OutputVariable

_CATALOGUE: dict[OutputVariable, VariableInfo] = {
    _V.PREC: VariableInfo("mm", _A.SUM, "Total precipitation"),
    _V.RAINF: VariableInfo("mm", _A.SUM, "Rainfall"),
    _V.SNOWF: VariableInfo("mm", _A.SUM, "Snowfall"),
    _V.EVAP: VariableInfo("mm", _A.SUM, "Total evaporation including sublimation"),
    _V.EVAP_CANOP: VariableInfo("mm", _A.SUM, "Evaporation of intercepted water"),
    _V.TRANSP_VEG: VariableInfo("mm", _A.SUM, "Transpiration"),
    _V.EVAP_BARE: VariableInfo("mm", _A.SUM, "Bare soil evaporation"),
    _V.EVAP_LAKE: VariableInfo("mm", _A.SUM, "Lake evaporation"),
    _V.SUB_SNOW: VariableInfo("mm", _A.SUM, "Sublimation from the ground snowpack"),
    _V.SUB_CANOP: VariableInfo("mm", _A.SUM, "Sublimation of intercepted snow"),
    _V.SUB_BLOWING: VariableInfo("mm", _A.SUM, "Blowing-snow sublimation"),
    _V.INFLOW: VariableInfo("mm", _A.SUM, "Water reaching the soil surface"),
    _V.RUNOFF: VariableInfo("mm", _A.SUM, "Surface runoff leaving the cell"),
    _V.BASEFLOW: VariableInfo("mm", _A.SUM, "Baseflow leaving the cell"),
    _V.SNOW_MELT: VariableInfo("mm", _A.SUM, "Liquid water released by the snowpack"),
    _V.WATER_ERROR: VariableInfo("mm", _A.SUM, "Water balance error"),
    _V.SOIL_MOIST: VariableInfo("mm", _A.END, "Total soil moisture", "layer"),
    _V.SOIL_ICE: VariableInfo("mm", _A.END, "Soil ice", "layer"),
    _V.WDEW: VariableInfo("mm", _A.END, "Intercepted water"),
    _V.SNOW_CANOPY: VariableInfo("mm", _A.END, "Intercepted snow"),
    _V.SWE: VariableInfo("mm", _A.END, "Snow water equivalent"),
    _V.SNOW_DEPTH: VariableInfo("m", _A.END, "Snow depth"),
    _V.SNOW_COVER: VariableInfo("-", _A.END, "Snow-covered fraction of the cell"),
    _V.LAKE_DEPTH: VariableInfo("m", _A.END, "Lake water level"),
    _V.LAKE_ICE: VariableInfo("m", _A.END, "Lake ice thickness"),
    _V.LAKE_ICE_FRACT: VariableInfo("-", _A.END, "Ice-covered fraction of the lake"),
    _V.LAKE_MOIST: VariableInfo("mm", _A.END, "Lake water storage"),
    _V.SNOW_MASS_ERROR: VariableInfo("mm", _A.SUM, "Snowpack mass balance error"),
    _V.NET_SHORT: VariableInfo("W/m2", _A.AVG, "Net shortwave radiation"),
    _V.NET_LONG: VariableInfo("W/m2", _A.AVG, "Net longwave radiation"),
    _V.NET_RAD: VariableInfo("W/m2", _A.AVG, "Net radiation"),
    _V.SENSIBLE: VariableInfo("W/m2", _A.AVG, "Sensible heat flux"),
    _V.LATENT: VariableInfo("W/m2", _A.AVG, "Latent heat flux"),
    _V.GRND_FLUX: VariableInfo("W/m2", _A.AVG, "Ground heat flux"),
    _V.ADVECTION: VariableInfo("W/m2", _A.AVG, "Heat advected by rain onto snow"),
    _V.DELTACC: VariableInfo("W/m2", _A.AVG, "Change of snowpack cold content"),
    _V.FUSION: VariableInfo("W/m2", _A.AVG, "Net energy used for melt"),
    _V.SNOW_ENERGY_SURPLUS: VariableInfo("W/m2", _A.AVG, "Melt energy left once the snowpack is gone"),
    _V.ENERGY_ERROR: VariableInfo("W/m2", _A.AVG, "Energy balance error"),
    _V.ALBEDO: VariableInfo("-", _A.AVG, "Surface albedo"),
    _V.SURF_TEMP: VariableInfo("C", _A.AVG, "Surface temperature"),
    _V.SNOW_SURF_TEMP: VariableInfo("C", _A.AVG, "Snow surface temperature"),
    _V.SNOW_PACK_TEMP: VariableInfo("C", _A.AVG, "Snow pack temperature"),
    _V.LAKE_SURF_TEMP: VariableInfo("C", _A.AVG, "Lake surface temperature"),
    _V.SOIL_TEMP: VariableInfo("C", _A.AVG, "Soil temperature", "node"),
    _V.FDEPTH: VariableInfo("m", _A.END, "Freezing/thawing front depth", "front"),
    _V.AIR_TEMP: VariableInfo("C", _A.AVG, "Air temperature"),
    _V.SHORTWAVE: VariableInfo("W/m2", _A.AVG, "Incoming shortwave radiation"),
    _V.LONGWAVE: VariableInfo("W/m2", _A.AVG, "Incoming longwave radiation"),
    _V.PRESSURE: VariableInfo("kPa", _A.AVG, "Air pressure"),
    _V.VP: VariableInfo("kPa", _A.AVG, "Vapour pressure"),
    _V.WIND: VariableInfo("m/s", _A.AVG, "Wind speed"),
    _V.WET_FRACTION: VariableInfo("-", _A.AVG, "Wet fraction of the cell"),
    _V.SWE_BAND: VariableInfo("mm", _A.END, "Snow water equivalent per band", "band"),
    _V.SNOW_DEPTH_BAND: VariableInfo("m", _A.END, "Snow depth per band", "band"),
}


@dataclass(frozen=True, eq=False)
class OutputRecord:
    """Values emitted for one full model step.

    Attributes:
        time: Start time of the step.
        values: Value of every catalogue variable; floats or 1D arrays.
    """

    time: np.datetime64
    values: dict[OutputVariable, float | np.ndarray]

    def __post_init__(self) -> None:
        missing = set(OutputVariable) - set(self.values)
        if missing:
            names = sorted(v.value for v in missing)
            msg = f"output record is missing variables: {names}"
            raise ValueError(msg)

    def __getitem__(self, variable: OutputVariable | str) -> float | np.ndarray:
        return self.values[OutputVariable(variable)]


@dataclass(frozen=True, eq=False)
class ModelOutput:
    """Complete model output of one cell.

    Attributes:
        time: Datetime array, one entry per full step.
        records: One OutputRecord per full step.
        state: Cell state after the last step.
    """

    time: np.ndarray
    records: list[OutputRecord] = field(default_factory=list)
    state: CellState | None = None

    def __len__(self) -> int:
        """Return the number of full steps."""
        return len(self.records)

    def __getitem__(self, variable: OutputVariable | str) -> np.ndarray:
        """Series of one variable; shape (n_steps,) or (n_steps, n) for array variables."""
        variable = OutputVariable(variable)
        return np.array([record.values[variable] for record in self.records], dtype=np.float64)

    def to_dataframe(self) -> pd.DataFrame:
        """Convert to DataFrame with time index.

        Array variables are expanded into numbered columns, e.g.
        ``SOIL_MOIST_1``, ``SOIL_MOIST_2``.

        Returns:
            DataFrame with one column per scalar value and time as index.
        """
        data: dict[str, np.ndarray] = {}
        for variable in OutputVariable:
            series = self[variable]
            if series.ndim == 1:
                data[variable.value] = series
            else:
                for i in range(series.shape[1]):
                    data[f"{variable.value}_{i + 1}"] = series[:, i]

        df = pd.DataFrame(data, index=self.time)
        df.index.name = "time"

        return df
