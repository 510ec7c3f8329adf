"""Cell orchestration, budget closure and run drivers."""

from .cell import Cell, StepContext, redistribute, wet_fraction
from .closure import BudgetErrors, check_budget, check_closure
from .driver import StepPhase, TimeStepDriver, run, run_grid

__all__ = [
    "BudgetErrors",
    "Cell",
    "StepContext",
    "StepPhase",
    "TimeStepDriver",
    "check_budget",
    "check_closure",
    "redistribute",
    "run",
    "run_grid",
    "wet_fraction",
]
