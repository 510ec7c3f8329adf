"""PyVIC land-surface hydrology model.

A per-grid-cell implementation of the VIC (Variable Infiltration Capacity)
land-surface scheme: multi-layer soil moisture with ARNO runoff and baseflow,
soil thermal diffusion with optional frozen soil, a two-layer snowpack,
overstory canopy interception and energy balance, and an optional lake.
"""

from pyvic.exceptions import (
    CellFailure,
    ConservationError,
    NonConvergenceError,
    ParameterDomainError,
    PyVICError,
)
from pyvic.model import Cell, StepPhase, TimeStepDriver, run, run_grid
from pyvic.options import BaseflowScheme, ModelOptions
from pyvic.outputs import ModelOutput, OutputRecord, OutputVariable
from pyvic.parameters import (
    CellParameters,
    ElevationBand,
    LakeParameters,
    SoilParameters,
    VegLibraryEntry,
    VegTile,
)
from pyvic.state import CellState, load_state, save_state
from pyvic.types import AtmosphericState, ForcingData, ForcingRecord

__all__ = [
    "AtmosphericState",
    "BaseflowScheme",
    "Cell",
    "CellFailure",
    "CellParameters",
    "CellState",
    "ConservationError",
    "ElevationBand",
    "ForcingData",
    "ForcingRecord",
    "LakeParameters",
    "ModelOptions",
    "ModelOutput",
    "NonConvergenceError",
    "OutputRecord",
    "OutputVariable",
    "ParameterDomainError",
    "PyVICError",
    "SoilParameters",
    "StepPhase",
    "TimeStepDriver",
    "VegLibraryEntry",
    "VegTile",
    "load_state",
    "run",
    "run_grid",
    "save_state",
]
