"""Dynamic state containers.

This module defines the mutable state tracked between time steps:
- SoilState: Layer moisture and ice
- EnergyState: Thermal node temperatures, foliage temperature, soil fronts
- SnowState: Ground snowpack of one tile and band
- CanopyState: Intercepted rain and snow
- ComponentState: The four states above for one (regime, tile, band)
- LakeState: Lake level, temperature profile and ice
- CellState: Everything owned by one grid cell, with checkpoint round-trips
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import TYPE_CHECKING, Any

import numpy as np

from .constants import MAX_FRONTS, NEW_SNOW_ALB
from .exceptions import ParameterDomainError

if TYPE_CHECKING:
    from .parameters import CellParameters, LakeParameters, SoilParameters

N_REGIMES: int = 2  # Wet (0) and dry (1) precipitation regimes
WET: int = 0
DRY: int = 1


def _flatten(obj: Any, prefix: str) -> dict[str, np.ndarray]:
    """Flatten a state dataclass to named float64/int/bool arrays."""
    data = {}
    for f in fields(obj):
        data[f"{prefix}{f.name}"] = np.array(getattr(obj, f.name), copy=True)
    return data


def _restore(cls: type, data: dict[str, np.ndarray], prefix: str) -> Any:
    """Rebuild a state dataclass from arrays written by ``_flatten``."""
    kwargs = {}
    for f in fields(cls):
        value = np.asarray(data[f"{prefix}{f.name}"])
        if f.type == "float":
            kwargs[f.name] = float(value)
        elif f.type == "int":
            kwargs[f.name] = int(value)
        elif f.type == "bool":
            kwargs[f.name] = bool(value)
        else:
            kwargs[f.name] = value.copy()
    return cls(**kwargs)


@dataclass
class SoilState:
    """Moisture of the soil layers.

    Attributes:
        moist: Total (liquid + ice) moisture per layer [mm].
        ice: Ice content per layer [mm].
    """

    moist: np.ndarray
    ice: np.ndarray

    @property
    def liquid(self) -> np.ndarray:
        """Liquid moisture per layer [mm]."""
        return self.moist - self.ice

    @property
    def total(self) -> float:
        """Column moisture [mm]."""
        return float(np.sum(self.moist))


@dataclass
class EnergyState:
    """Thermal state of one column.

    Attributes:
        temps: Node temperatures [C]; temps[0] is the surface temperature.
        foliage_temp: Overstory foliage temperature [C].
        front_depths: Depths of tracked freezing/thawing fronts [m], zero-padded.
        front_ages: Ages of the tracked fronts [days], zero-padded.
        front_count: Number of tracked fronts.
    """

    temps: np.ndarray
    foliage_temp: float
    front_depths: np.ndarray = field(default_factory=lambda: np.zeros(MAX_FRONTS))
    front_ages: np.ndarray = field(default_factory=lambda: np.zeros(MAX_FRONTS))
    front_count: int = 0

    @property
    def surf_temp(self) -> float:
        """Ground surface temperature [C]."""
        return float(self.temps[0])


@dataclass
class SnowState:
    """Ground snowpack, stored per unit tile area.

    Attributes:
        swq: Snow water equivalent including liquid water [mm].
        surf_water: Liquid water in the surface layer [mm].
        pack_water: Liquid water in the pack layer [mm].
        surf_temp: Surface layer temperature [C].
        pack_temp: Pack layer temperature [C].
        depth: Snow depth [m].
        density: Snow density [kg/m3].
        albedo: Surface albedo [-].
        last_snow: Time since the last snowfall [days].
        coverage: Fraction of the tile covered by snow [-].
        store_swq: New snow forcing full coverage until it melts [mm].
    """

    swq: float = 0.0
    surf_water: float = 0.0
    pack_water: float = 0.0
    surf_temp: float = 0.0
    pack_temp: float = 0.0
    depth: float = 0.0
    density: float = 0.0
    albedo: float = NEW_SNOW_ALB
    last_snow: float = 0.0
    coverage: float = 0.0
    store_swq: float = 0.0

    @property
    def ice(self) -> float:
        """Frozen part of the pack [mm]."""
        return self.swq - self.surf_water - self.pack_water

    def reset(self) -> None:
        """Return to the snow-free state."""
        self.swq = 0.0
        self.surf_water = 0.0
        self.pack_water = 0.0
        self.surf_temp = 0.0
        self.pack_temp = 0.0
        self.depth = 0.0
        self.density = 0.0
        self.albedo = NEW_SNOW_ALB
        self.last_snow = 0.0
        self.coverage = 0.0
        self.store_swq = 0.0


@dataclass
class CanopyState:
    """Canopy interception storage.

    Attributes:
        wdew: Intercepted liquid water [mm].
        snow: Intercepted snow [mm].
    """

    wdew: float = 0.0
    snow: float = 0.0


@dataclass
class ComponentState:
    """State of one vegetation tile in one elevation band and one regime."""

    soil: SoilState
    energy: EnergyState
    snow: SnowState
    canopy: CanopyState

    @property
    def water_storage(self) -> float:
        """Water held in soil, snow and canopy [mm]."""
        return self.soil.total + self.snow.swq + self.canopy.wdew + self.canopy.snow

    def to_dict(self, prefix: str) -> dict[str, np.ndarray]:
        data = _flatten(self.soil, f"{prefix}soil/")
        data.update(_flatten(self.energy, f"{prefix}energy/"))
        data.update(_flatten(self.snow, f"{prefix}snow/"))
        data.update(_flatten(self.canopy, f"{prefix}canopy/"))
        return data

    @classmethod
    def from_dict(cls, data: dict[str, np.ndarray], prefix: str) -> ComponentState:
        return cls(
            soil=_restore(SoilState, data, f"{prefix}soil/"),
            energy=_restore(EnergyState, data, f"{prefix}energy/"),
            snow=_restore(SnowState, data, f"{prefix}snow/"),
            canopy=_restore(CanopyState, data, f"{prefix}canopy/"),
        )

    @classmethod
    def initialize(cls, soil: SoilParameters, init_moist: np.ndarray | None = None) -> ComponentState:
        """Snow-free state with a linear temperature profile.

        Layer moisture defaults to the critical moisture point; node
        temperatures run linearly from the damping-depth temperature.
        """
        moist = soil.wcr_mm.copy() if init_moist is None else np.asarray(init_moist, dtype=np.float64).copy()
        if moist.shape != soil.depth.shape:
            msg = f"init_moist must have {len(soil.depth)} layers, got {moist.shape}"
            raise ParameterDomainError(msg)
        if np.any(moist < 0.0) or np.any(moist > soil.max_moist):
            msg = "init_moist must lie within [0, max_moist] for every layer"
            raise ParameterDomainError(msg)
        temps = np.full(len(soil.node_depths), soil.avg_temp, dtype=np.float64)
        return cls(
            soil=SoilState(moist=moist, ice=np.zeros_like(moist)),
            energy=EnergyState(temps=temps, foliage_temp=soil.avg_temp),
            snow=SnowState(),
            canopy=CanopyState(),
        )


@dataclass
class LakeState:
    """Lake thermal and volume state.

    Attributes:
        level: Water level above the basin bottom [m], ice included as water.
        temps: Water temperature per node, top to bottom [C].
        surf_temp: Skin temperature of the open water or ice surface [C].
        ice_thickness: Ice thickness [m].
        fraci: Ice-covered fraction of the lake surface (0 or 1) [-].
        snow: Snow on ice per unit footprint area [mm].
    """

    level: float
    temps: np.ndarray
    surf_temp: float
    ice_thickness: float = 0.0
    fraci: float = 0.0
    snow: float = 0.0

    @classmethod
    def initialize(cls, lake: LakeParameters, temp: float) -> LakeState:
        """Ice-free lake at its initial depth with a uniform temperature."""
        water_temp = max(temp, 4.0)
        return cls(
            level=lake.depth_in,
            temps=np.full(lake.num_nodes, water_temp, dtype=np.float64),
            surf_temp=water_temp,
        )


@dataclass
class CellState:
    """Complete dynamic state of one grid cell.

    Attributes:
        mu: Wet fraction of the cell [-].
        components: Component states indexed [regime][tile][band].
        lake: Lake state, if the cell has a lake.
    """

    mu: float
    components: list[list[list[ComponentState]]]
    lake: LakeState | None = None

    @property
    def n_tiles(self) -> int:
        return len(self.components[WET])

    @property
    def n_bands(self) -> int:
        return len(self.components[WET][0])

    @classmethod
    def initialize(
        cls,
        params: CellParameters,
        init_moist: np.ndarray | None = None,
    ) -> CellState:
        """Create the initial state of a cell.

        Both regimes start identical; the cell starts fully wet (mu = 1).
        """
        template = ComponentState.initialize(params.soil, init_moist)
        n_tiles = len(params.tiles)
        n_bands = len(params.bands)
        components = [
            [[copy.deepcopy(template) for _ in range(n_bands)] for _ in range(n_tiles)] for _ in range(N_REGIMES)
        ]
        lake = None
        if params.lake is not None:
            lake = LakeState.initialize(params.lake, params.soil.avg_temp)
        return cls(mu=1.0, components=components, lake=lake)

    def copy(self) -> CellState:
        """Independent deep copy."""
        return copy.deepcopy(self)

    def to_checkpoint(self) -> dict[str, np.ndarray]:
        """Serialize the full state to named arrays (exact float64 round-trip)."""
        data: dict[str, np.ndarray] = {
            "mu": np.array(self.mu),
            "shape": np.array([self.n_tiles, self.n_bands]),
            "has_lake": np.array(self.lake is not None),
        }
        for r, regime in enumerate(self.components):
            for t, tile in enumerate(regime):
                for b, component in enumerate(tile):
                    data.update(component.to_dict(f"r{r}/t{t}/b{b}/"))
        if self.lake is not None:
            data.update(_flatten(self.lake, "lake/"))
        return data

    @classmethod
    def from_checkpoint(cls, data: dict[str, np.ndarray]) -> CellState:
        """Rebuild a state written by ``to_checkpoint``."""
        n_tiles, n_bands = (int(x) for x in np.asarray(data["shape"]))
        components = [
            [[ComponentState.from_dict(data, f"r{r}/t{t}/b{b}/") for b in range(n_bands)] for t in range(n_tiles)]
            for r in range(N_REGIMES)
        ]
        lake = _restore(LakeState, data, "lake/") if bool(data["has_lake"]) else None
        return cls(mu=float(data["mu"]), components=components, lake=lake)


def save_state(path: str | Path, state: CellState) -> None:
    """Write a cell state checkpoint to an ``.npz`` file."""
    np.savez(path, **state.to_checkpoint())


def load_state(path: str | Path) -> CellState:
    """Read a cell state checkpoint written by ``save_state``."""
    with np.load(path) as data:
        return CellState.from_checkpoint({key: data[key] for key in data.files})
