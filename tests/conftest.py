"""Shared fixtures: a loam soil column, two vegetation classes and forcing builders."""

from collections.abc import Callable

import numpy as np
import pandas as pd
import pytest

from pyvic import (
    CellParameters,
    ElevationBand,
    ForcingData,
    LakeParameters,
    SoilParameters,
    VegLibraryEntry,
    VegTile,
)


@pytest.fixture
def loam_soil() -> SoilParameters:
    """Three-layer loam column, 1.4 m deep."""
    return SoilParameters(
        depth=[0.1, 0.3, 1.0],
        ksat=[100.0, 100.0, 50.0],
        expt=[10.0, 10.0, 12.0],
        bubble=[20.0, 20.0, 25.0],
        quartz=[0.5, 0.5, 0.5],
        bulk_density=[1400.0, 1400.0, 1450.0],
        soil_density=[2650.0, 2650.0, 2650.0],
        resid_moist=[0.02, 0.02, 0.02],
        wcr_fract=[0.7, 0.7, 0.7],
        wpwp_fract=[0.5, 0.5, 0.5],
        b_infilt=0.2,
        ds=0.001,
        dsmax=10.0,
        ws=0.9,
        c=2.0,
        avg_temp=5.0,
        elevation=500.0,
    )


@pytest.fixture
def grass() -> VegLibraryEntry:
    """Short vegetation without an overstory."""
    return VegLibraryEntry(
        veg_class=1,
        overstory=False,
        lai=[2.0],
        albedo=[0.2],
        roughness=[0.03],
        displacement=[0.3],
        rarc=25.0,
        rmin=100.0,
        rgl=100.0,
        wind_h=10.0,
    )


@pytest.fixture
def forest() -> VegLibraryEntry:
    """Evergreen forest with an overstory canopy."""
    return VegLibraryEntry(
        veg_class=2,
        overstory=True,
        lai=[5.0],
        albedo=[0.12],
        roughness=[1.2],
        displacement=[10.0],
        rarc=60.0,
        rmin=250.0,
        rgl=30.0,
        rad_atten=0.5,
        wind_atten=0.5,
        wind_h=25.0,
    )


@pytest.fixture
def bare_cell(loam_soil: SoilParameters) -> CellParameters:
    """Cell with bare soil only and a single elevation band."""
    return CellParameters(cell_id=1, soil=loam_soil)


@pytest.fixture
def mixed_cell(loam_soil: SoilParameters, grass: VegLibraryEntry, forest: VegLibraryEntry) -> CellParameters:
    """Cell with grass, forest and bare soil over two elevation bands."""
    return CellParameters(
        cell_id=2,
        soil=loam_soil,
        veg_library={1: grass, 2: forest},
        vegetation=(
            VegTile(veg_class=1, cv=0.4, root=[0.3, 0.5, 0.2]),
            VegTile(veg_class=2, cv=0.4, root=[0.2, 0.4, 0.4]),
        ),
        bands=(
            ElevationBand(area_fract=0.6, elevation=300.0),
            ElevationBand(area_fract=0.4, elevation=800.0),
        ),
    )


@pytest.fixture
def lake_params() -> LakeParameters:
    """Small cone-shaped lake covering 10% of a 25 km2 cell at spill level."""
    return LakeParameters(
        basin_depths=[0.0, 2.0, 4.0],
        basin_fractions=[0.02, 0.06, 0.1],
        cell_area=25.0e6,
        depth_in=3.0,
        num_nodes=5,
        min_depth=1.0,
        outflow_coefficient=0.05,
        rpercent=0.5,
        bpercent=0.5,
    )


@pytest.fixture
def make_forcing() -> Callable[..., ForcingData]:
    """Build a constant forcing series, with per-variable overrides as arrays or scalars."""

    def _make(n: int, freq: str = "D", start: str = "2020-06-01", **overrides: object) -> ForcingData:
        values = {
            "air_temp": 12.0,
            "prec": 0.0,
            "shortwave": 180.0,
            "longwave": 310.0,
            "pressure": 95.0,
            "vp": 0.9,
            "wind": 2.5,
        }
        values.update(overrides)
        series = {name: np.broadcast_to(np.asarray(value, dtype=np.float64), (n,)).copy() for name, value in values.items()}
        return ForcingData(time=pd.date_range(start, periods=n, freq=freq).values, **series)

    return _make
