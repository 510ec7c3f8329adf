"""Static parameter collections for a grid cell.

This module defines the immutable parameter containers loaded once before a
simulation:
- SoilParameters: Soil layers, thermal nodes and runoff parameters
- VegLibraryEntry: Monthly vegetation properties of one vegetation class
- VegTile: A vegetation class occupying part of a cell
- ElevationBand: A snow band of the cell
- LakeParameters: Lake basin geometry and outflow
- CellParameters: Everything describing one grid cell

All parameters are validated in ``__post_init__`` and never clamped: a value
outside its physical range raises ParameterDomainError.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import numpy as np

from .constants import LAI_WATER_FACTOR, MAX_BANDS, MAX_LAKE_NODES, MAX_LAYERS, MAX_NODES, MINSOILDEPTH
from .exceptions import ParameterDomainError

logger = logging.getLogger(__name__)

_LAYER_FIELDS = (
    "depth",
    "ksat",
    "expt",
    "bubble",
    "quartz",
    "bulk_density",
    "soil_density",
    "resid_moist",
    "wcr_fract",
    "wpwp_fract",
)


def _as_array(value: object) -> np.ndarray:
    return np.array(value, dtype=np.float64, ndmin=1)


def _require(condition: bool, msg: str) -> None:
    if not condition:
        raise ParameterDomainError(msg)


@dataclass(frozen=True, eq=False)
class SoilParameters:
    """Soil column parameters.

    Per-layer arrays share one length (1 to MAX_LAYERS).

    Attributes:
        depth: Layer thickness [m].
        ksat: Saturated hydraulic conductivity [mm/day].
        expt: Brooks-Corey exponent, greater than 3 [-].
        bubble: Bubbling pressure [cm].
        quartz: Quartz content [-].
        bulk_density: Bulk density [kg/m3].
        soil_density: Particle density [kg/m3].
        resid_moist: Residual volumetric moisture [-].
        wcr_fract: Critical moisture as a fraction of maximum moisture [-].
        wpwp_fract: Wilting point as a fraction of maximum moisture [-].
        b_infilt: Variable infiltration curve shape parameter [-].
        ds: ARNO fraction of dsmax where nonlinear baseflow begins [-].
        dsmax: ARNO maximum baseflow [mm/day].
        ws: ARNO fraction of maximum moisture where nonlinear baseflow begins [-].
        c: ARNO baseflow exponent [-].
        d1: Nijssen linear baseflow coefficient [1/day].
        d2: Nijssen nonlinear baseflow coefficient [mm^(1-d4)/day].
        d3: Nijssen nonlinear threshold [mm].
        d4: Nijssen nonlinear exponent [-].
        avg_temp: Mean annual soil temperature at the damping depth [C].
        node_depths: Thermal node depths [m], from 0 to the damping depth.
        rough: Bare soil roughness length [m].
        snow_rough: Snow surface roughness length [m].
        elevation: Mean cell elevation [m].
        depth_full_snow_cover: Snow depth giving full coverage [m].
    """

    depth: np.ndarray
    ksat: np.ndarray
    expt: np.ndarray
    bubble: np.ndarray
    quartz: np.ndarray
    bulk_density: np.ndarray
    soil_density: np.ndarray
    resid_moist: np.ndarray
    wcr_fract: np.ndarray
    wpwp_fract: np.ndarray
    b_infilt: float = 0.2
    ds: float = 0.001
    dsmax: float = 10.0
    ws: float = 0.9
    c: float = 2.0
    d1: float = 0.0
    d2: float = 0.0
    d3: float = 0.0
    d4: float = 2.0
    avg_temp: float = 5.0
    node_depths: np.ndarray | None = None
    rough: float = 0.001
    snow_rough: float = 0.0005
    elevation: float = 0.0
    depth_full_snow_cover: float = 0.1

    def __post_init__(self) -> None:
        """Coerce arrays and validate physical ranges."""
        for name in _LAYER_FIELDS:
            object.__setattr__(self, name, _as_array(getattr(self, name)))
        n = len(self.depth)
        _require(1 <= n <= MAX_LAYERS, f"number of soil layers must be within [1, {MAX_LAYERS}], got {n}")
        for name in _LAYER_FIELDS:
            _require(len(getattr(self, name)) == n, f"{name} must have {n} layers")

        _require(bool(np.all(self.depth >= MINSOILDEPTH)), f"layer depth must be at least {MINSOILDEPTH} m")
        _require(bool(np.all(self.ksat > 0.0)), "ksat must be positive")
        _require(bool(np.all(self.expt > 3.0)), "expt must exceed 3")
        _require(bool(np.all(self.bubble > 0.0)), "bubble must be positive")
        _require(bool(np.all((self.quartz >= 0.0) & (self.quartz <= 1.0))), "quartz must lie within [0, 1]")
        _require(bool(np.all(self.bulk_density > 0.0)), "bulk_density must be positive")
        _require(
            bool(np.all(self.bulk_density < self.soil_density)),
            "bulk_density must be less than soil_density",
        )
        porosity = self.porosity
        _require(
            bool(np.all((self.resid_moist >= 0.0) & (self.resid_moist < porosity))),
            "resid_moist must lie within [0, porosity)",
        )
        for name in ("wcr_fract", "wpwp_fract"):
            values = getattr(self, name)
            _require(bool(np.all((values >= 0.0) & (values <= 1.0))), f"{name} must lie within [0, 1]")
        _require(bool(np.all(self.wpwp_fract <= self.wcr_fract)), "wpwp_fract must not exceed wcr_fract")
        _require(
            bool(np.all(self.wpwp_mm >= self.resid_mm)),
            "wilting point must not lie below residual moisture",
        )

        _require(self.b_infilt >= 0.0, f"b_infilt must be non-negative, got {self.b_infilt}")
        _require(0.0 <= self.ds <= 1.0, f"ds must lie within [0, 1], got {self.ds}")
        _require(self.dsmax >= 0.0, f"dsmax must be non-negative, got {self.dsmax}")
        _require(0.0 < self.ws < 1.0, f"ws must lie within (0, 1), got {self.ws}")
        _require(self.ds <= self.ws, "ds must not exceed ws")
        _require(self.c >= 1.0, f"c must be at least 1, got {self.c}")
        for name in ("d1", "d2", "d3"):
            _require(getattr(self, name) >= 0.0, f"{name} must be non-negative")
        _require(self.d4 >= 1.0, f"d4 must be at least 1, got {self.d4}")
        _require(self.rough > 0.0 and self.snow_rough > 0.0, "roughness lengths must be positive")
        _require(self.depth_full_snow_cover > 0.0, "depth_full_snow_cover must be positive")

        column = float(np.sum(self.depth))
        if self.node_depths is None:
            # Nodes at the bottoms of the top two layers, then geometric down to the damping depth
            damping = max(4.0, 2.0 * column)
            upper = np.cumsum(self.depth)[: min(2, n)]
            deep = np.geomspace(upper[-1], damping, 10 - len(upper))[1:]
            nodes = np.concatenate(([0.0], upper, deep))
        else:
            nodes = _as_array(self.node_depths)
        object.__setattr__(self, "node_depths", nodes)
        _require(3 <= len(nodes) <= MAX_NODES, f"number of thermal nodes must be within [3, {MAX_NODES}]")
        _require(nodes[0] == 0.0, "the first thermal node must lie at the surface")
        _require(bool(np.all(np.diff(nodes) > 0.0)), "thermal node depths must increase strictly")

        if self.b_infilt > 1.0:
            logger.warning("b_infilt = %.3f is unusually large (typical range 0-0.5)", self.b_infilt)
        if self.dsmax > 100.0:
            logger.warning("dsmax = %.1f mm/day is unusually large", self.dsmax)

    @property
    def n_layers(self) -> int:
        return len(self.depth)

    @property
    def porosity(self) -> np.ndarray:
        """Volumetric porosity per layer [-]."""
        return 1.0 - self.bulk_density / self.soil_density

    @property
    def max_moist(self) -> np.ndarray:
        """Maximum moisture per layer [mm]."""
        return self.depth * self.porosity * 1000.0

    @property
    def resid_mm(self) -> np.ndarray:
        """Residual moisture per layer [mm]."""
        return self.resid_moist * self.depth * 1000.0

    @property
    def wcr_mm(self) -> np.ndarray:
        """Critical moisture per layer [mm]."""
        return self.wcr_fract * self.max_moist

    @property
    def wpwp_mm(self) -> np.ndarray:
        """Wilting point per layer [mm]."""
        return self.wpwp_fract * self.max_moist

    @property
    def node_layer(self) -> np.ndarray:
        """Index of the moisture layer holding each thermal node."""
        bottoms = np.cumsum(self.depth)
        index = np.searchsorted(bottoms, self.node_depths, side="left")
        return np.minimum(index, self.n_layers - 1)


@dataclass(frozen=True, eq=False)
class VegLibraryEntry:
    """Vegetation class properties.

    Monthly arrays hold 12 values, January first.

    Attributes:
        veg_class: Class identifier.
        overstory: Whether the class has an overstory canopy.
        lai: Leaf area index [-].
        albedo: Canopy albedo [-].
        roughness: Roughness length [m].
        displacement: Zero-plane displacement [m].
        rarc: Architectural resistance [s/m].
        rmin: Minimum stomatal resistance [s/m].
        rgl: Radiation limit for transpiration [W/m2].
        rad_atten: Fraction of shortwave transmitted through the overstory [-].
        wind_atten: Wind attenuation through the overstory [-].
        trunk_ratio: Ratio of trunk height to tree height [-].
        wind_h: Height of the wind measurement over this class [m].
    """

    veg_class: int
    overstory: bool
    lai: np.ndarray
    albedo: np.ndarray
    roughness: np.ndarray
    displacement: np.ndarray
    rarc: float = 25.0
    rmin: float = 100.0
    rgl: float = 100.0
    rad_atten: float = 0.5
    wind_atten: float = 0.5
    trunk_ratio: float = 0.2
    wind_h: float = 10.0

    def __post_init__(self) -> None:
        for name in ("lai", "albedo", "roughness", "displacement"):
            arr = _as_array(getattr(self, name))
            if len(arr) == 1:
                arr = np.full(12, arr[0])
            object.__setattr__(self, name, arr)
            _require(len(arr) == 12, f"{name} must have 12 monthly values")
        _require(bool(np.all(self.lai >= 0.0)), "lai must be non-negative")
        _require(bool(np.all((self.albedo >= 0.0) & (self.albedo <= 1.0))), "albedo must lie within [0, 1]")
        _require(bool(np.all(self.roughness > 0.0)), "roughness must be positive")
        _require(bool(np.all(self.displacement >= 0.0)), "displacement must be non-negative")
        _require(
            bool(np.all(self.wind_h > self.displacement + self.roughness)),
            "wind_h must lie above displacement + roughness in every month",
        )
        _require(self.rarc >= 0.0 and self.rmin > 0.0 and self.rgl > 0.0, "resistances and rgl must be positive")
        for name in ("rad_atten", "wind_atten", "trunk_ratio"):
            value = getattr(self, name)
            _require(0.0 <= value <= 1.0, f"{name} must lie within [0, 1], got {value}")

    def monthly(self, name: str, month: int) -> float:
        """Value of monthly property ``name`` for calendar month 1-12."""
        return float(getattr(self, name)[month - 1])

    def wdmax(self, month: int) -> float:
        """Maximum interception storage [mm]."""
        return LAI_WATER_FACTOR * self.monthly("lai", month)


@dataclass(frozen=True, eq=False)
class VegTile:
    """A vegetation class covering part of a cell.

    Attributes:
        veg_class: Key into the vegetation library.
        cv: Fraction of the cell covered [-].
        root: Root fraction per soil layer, summing to 1 [-].
    """

    veg_class: int
    cv: float
    root: np.ndarray

    def __post_init__(self) -> None:
        object.__setattr__(self, "root", _as_array(self.root))
        _require(0.0 < self.cv <= 1.0, f"cv must lie within (0, 1], got {self.cv}")
        _require(bool(np.all(self.root >= 0.0)), "root fractions must be non-negative")
        _require(abs(float(np.sum(self.root)) - 1.0) < 1.0e-6, "root fractions must sum to 1")


@dataclass(frozen=True)
class ElevationBand:
    """A snow elevation band.

    Attributes:
        area_fract: Fraction of the cell in the band [-].
        elevation: Mean band elevation [m].
        p_factor: Precipitation multiplier; derived from elevation when None.
    """

    area_fract: float
    elevation: float
    p_factor: float | None = None

    def __post_init__(self) -> None:
        _require(0.0 < self.area_fract <= 1.0, f"area_fract must lie within (0, 1], got {self.area_fract}")
        if self.p_factor is not None:
            _require(self.p_factor >= 0.0, f"p_factor must be non-negative, got {self.p_factor}")


@dataclass(frozen=True, eq=False)
class LakeParameters:
    """Lake basin and outflow parameters.

    The basin profile gives the fraction of the cell covered by water when
    the level stands at each of ``basin_depths`` above the bottom. The top of
    the profile is the spill level; its fraction is the lake footprint.

    Attributes:
        basin_depths: Levels above the basin bottom, starting at 0 [m].
        basin_fractions: Cell fraction covered at each level, non-decreasing [-].
        cell_area: Grid cell area [m2].
        depth_in: Initial water level [m].
        num_nodes: Number of lake thermal nodes.
        eta_a: Shortwave extinction coefficient [1/m].
        min_depth: Level below which no outflow occurs [m].
        outflow_coefficient: Linear outflow rate above min_depth [1/day].
        rpercent: Fraction of land runoff draining into the lake [-].
        bpercent: Fraction of land baseflow draining into the lake [-].
    """

    basin_depths: np.ndarray
    basin_fractions: np.ndarray
    cell_area: float
    depth_in: float
    num_nodes: int = 10
    eta_a: float = 0.5
    min_depth: float = 0.0
    outflow_coefficient: float = 0.01
    rpercent: float = 0.0
    bpercent: float = 0.0

    def __post_init__(self) -> None:
        object.__setattr__(self, "basin_depths", _as_array(self.basin_depths))
        object.__setattr__(self, "basin_fractions", _as_array(self.basin_fractions))
        depths, fractions = self.basin_depths, self.basin_fractions
        _require(len(depths) >= 2 and len(depths) == len(fractions), "basin profile needs matching levels")
        _require(depths[0] == 0.0 and bool(np.all(np.diff(depths) > 0.0)), "basin_depths must rise from 0")
        _require(bool(np.all(np.diff(fractions) >= 0.0)), "basin_fractions must not decrease with level")
        _require(fractions[-1] > 0.0 and fractions[-1] < 1.0, "lake footprint must lie within (0, 1)")
        _require(bool(np.all(fractions >= 0.0)), "basin_fractions must be non-negative")
        _require(self.cell_area > 0.0, "cell_area must be positive")
        _require(0.0 < self.depth_in <= self.max_depth, "depth_in must lie within (0, max_depth]")
        _require(1 <= self.num_nodes <= MAX_LAKE_NODES, f"num_nodes must lie within [1, {MAX_LAKE_NODES}]")
        _require(self.eta_a > 0.0, "eta_a must be positive")
        _require(0.0 <= self.min_depth < self.max_depth, "min_depth must lie within [0, max_depth)")
        _require(self.outflow_coefficient >= 0.0, "outflow_coefficient must be non-negative")
        for name in ("rpercent", "bpercent"):
            value = getattr(self, name)
            _require(0.0 <= value <= 1.0, f"{name} must lie within [0, 1], got {value}")

    @property
    def max_depth(self) -> float:
        """Spill level [m]."""
        return float(self.basin_depths[-1])

    @property
    def footprint(self) -> float:
        """Fraction of the cell occupied by the lake at its spill level [-]."""
        return float(self.basin_fractions[-1])


@dataclass(frozen=True, eq=False)
class CellParameters:
    """Static description of one grid cell.

    Land tiles are the listed vegetation tiles plus a bare-soil tile holding
    whatever fraction remains after vegetation and lake.

    Attributes:
        cell_id: Cell identifier.
        soil: Soil parameters.
        veg_library: Vegetation classes by identifier.
        vegetation: Vegetation tiles of the cell.
        bands: Elevation bands; a single band at the soil elevation when empty.
        lake: Lake parameters, if the cell has a lake.
    """

    cell_id: int
    soil: SoilParameters
    veg_library: dict[int, VegLibraryEntry] = field(default_factory=dict)
    vegetation: tuple[VegTile, ...] = ()
    bands: tuple[ElevationBand, ...] = ()
    lake: LakeParameters | None = None

    def __post_init__(self) -> None:
        object.__setattr__(self, "vegetation", tuple(self.vegetation))
        bands = tuple(self.bands) or (ElevationBand(area_fract=1.0, elevation=self.soil.elevation),)
        object.__setattr__(self, "bands", bands)
        _require(len(bands) <= MAX_BANDS, f"at most {MAX_BANDS} elevation bands are supported")
        total_band = sum(b.area_fract for b in bands)
        _require(abs(total_band - 1.0) < 1.0e-6, f"band area fractions must sum to 1, got {total_band}")
        for tile in self.vegetation:
            _require(tile.veg_class in self.veg_library, f"vegetation class {tile.veg_class} is not in the library")
            _require(
                len(tile.root) == self.soil.n_layers,
                f"root fractions of class {tile.veg_class} must cover {self.soil.n_layers} layers",
            )
        _require(self.bare_fraction >= -1.0e-9, "vegetation and lake fractions exceed the cell area")

    @property
    def lake_fraction(self) -> float:
        """Cell fraction reserved for the lake [-]."""
        return self.lake.footprint if self.lake is not None else 0.0

    @property
    def bare_fraction(self) -> float:
        """Cell fraction of the bare-soil tile [-]."""
        return 1.0 - sum(tile.cv for tile in self.vegetation) - self.lake_fraction

    @property
    def tiles(self) -> list[tuple[VegLibraryEntry | None, VegTile | None, float]]:
        """Land tiles as (library entry, tile, cell fraction); bare soil last."""
        tiles: list[tuple[VegLibraryEntry | None, VegTile | None, float]] = [
            (self.veg_library[tile.veg_class], tile, tile.cv) for tile in self.vegetation
        ]
        tiles.append((None, None, max(self.bare_fraction, 0.0)))
        return tiles
