"""Model orchestration entry points.

This module provides the time-step state machine and the run functions:
- TimeStepDriver: Advances one cell through one full step
- run(): Execute one cell over a forcing series
- run_grid(): Execute independent cells, optionally skipping failed ones
"""

from __future__ import annotations

import logging
from collections.abc import Mapping, Sequence
from enum import Enum
from typing import TYPE_CHECKING, Literal

import numpy as np
from tqdm.auto import tqdm

from ..exceptions import CellFailure, PyVICError
from ..options import ModelOptions
from ..outputs import ModelOutput
from ..types import ForcingData
from .cell import Cell

if TYPE_CHECKING:
    from ..outputs import OutputRecord
    from ..parameters import CellParameters
    from ..state import CellState
    from ..types import ForcingRecord

logger = logging.getLogger(__name__)


class StepPhase(str, Enum):
    """Phase of a cell within one full time step."""

    AWAIT_FORCING = "await_forcing"
    SUBSTEP_SNOW = "substep_snow"
    AGGREGATE_FULL_STEP = "aggregate_full_step"
    EMIT = "emit"
    FAILED = "failed"


class TimeStepDriver:
    """Drive one cell through the phases of each full step.

    A step runs AWAIT_FORCING -> SUBSTEP_SNOW (once per sub-step) ->
    AGGREGATE_FULL_STEP -> EMIT and returns to AWAIT_FORCING. Any fatal error
    moves the driver to FAILED, after which it refuses further steps.

    Args:
        cell: The cell to advance.
    """

    def __init__(self, cell: Cell) -> None:
        self.cell = cell
        self.phase = StepPhase.AWAIT_FORCING

    def _enter(self, phase: StepPhase) -> None:
        logger.debug("cell %d: %s -> %s", self.cell.params.cell_id, self.phase.value, phase.value)
        self.phase = phase

    def step(self, record: ForcingRecord, record_index: int) -> OutputRecord:
        """Advance the cell by one full step.

        Raises:
            PyVICError: On non-convergence or a fatal budget error. The error
                context carries the cell id and record index.
            RuntimeError: If the driver already failed.
        """
        if self.phase is StepPhase.FAILED:
            msg = f"cell {self.cell.params.cell_id} already failed; no further steps are possible"
            raise RuntimeError(msg)
        try:
            ctx = self.cell.begin_step(record, record_index)
            for j in range(record.nf):
                self._enter(StepPhase.SUBSTEP_SNOW)
                self.cell.run_substep(ctx, j)
            self._enter(StepPhase.AGGREGATE_FULL_STEP)
            output = self.cell.finish_step(ctx)
            self._enter(StepPhase.EMIT)
        except PyVICError as e:
            self._enter(StepPhase.FAILED)
            e.context.setdefault("cell_id", self.cell.params.cell_id)
            e.context.setdefault("record_index", record_index)
            raise
        self._enter(StepPhase.AWAIT_FORCING)
        return output


def run(
    params: CellParameters,
    forcing: ForcingData,
    options: ModelOptions | None = None,
    initial_state: CellState | None = None,
) -> ModelOutput:
    """Run the model for one cell over a forcing series.

    Args:
        params: Static cell description.
        forcing: Forcing at snow sub-step resolution.
        options: Run configuration. Defaults to ModelOptions().
        initial_state: Starting state; left untouched. A fresh state is used when None.

    Returns:
        ModelOutput with one record per full step and the final state.

    Raises:
        ValueError: If the forcing spacing does not match the sub-step length.
        PyVICError: If a step fails.
    """
    options = options if options is not None else ModelOptions()
    nf = options.nf
    spacing = forcing.step_hours
    if spacing is not None and spacing * nf != options.time_step_hours:
        msg = (
            f"forcing spacing of {spacing} h does not match {nf} sub-steps "
            f"per {options.time_step_hours} h step"
        )
        raise ValueError(msg)

    records = forcing.to_records(nf)
    state = initial_state.copy() if initial_state is not None else None
    cell = Cell(params, options, state)
    driver = TimeStepDriver(cell)
    outputs = [driver.step(record, i) for i, record in enumerate(records)]
    logger.info("cell %d: ran %d steps", params.cell_id, len(outputs))

    return ModelOutput(
        time=np.array([record.time for record in records], dtype="datetime64[ns]"),
        records=outputs,
        state=cell.state,
    )


def run_grid(
    cells: Sequence[CellParameters],
    forcing: ForcingData | Mapping[int, ForcingData],
    options: ModelOptions | None = None,
    states: Mapping[int, CellState] | None = None,
    on_error: Literal["raise", "skip"] = "raise",
    progress: bool = False,
) -> tuple[dict[int, ModelOutput], list[CellFailure]]:
    """Run independent cells.

    Cells share no state, so a failure in one cell never affects another.

    Args:
        cells: Cell descriptions.
        forcing: One series shared by all cells, or a series per cell id.
        options: Run configuration shared by all cells.
        states: Initial states by cell id.
        on_error: "raise" re-raises the first failure; "skip" records it and
            continues with the next cell.
        progress: Show a progress bar.

    Returns:
        Tuple of (outputs by cell id, failures).
    """
    if on_error not in ("raise", "skip"):
        msg = f"on_error must be 'raise' or 'skip', got {on_error!r}"
        raise ValueError(msg)
    states = states or {}
    outputs: dict[int, ModelOutput] = {}
    failures: list[CellFailure] = []
    for params in tqdm(cells, desc="Cells", unit="cell", disable=not progress):
        cell_forcing = forcing if isinstance(forcing, ForcingData) else forcing[params.cell_id]
        try:
            outputs[params.cell_id] = run(params, cell_forcing, options, states.get(params.cell_id))
        except PyVICError as e:
            if on_error == "raise":
                raise
            logger.warning("cell %d skipped: %s", params.cell_id, e)
            failures.append(CellFailure(params.cell_id, e.context.get("record_index"), e))
    return outputs, failures
