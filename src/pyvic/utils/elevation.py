"""Elevation band utilities.

Functions to build snow elevation bands from a hypsometric curve and to
adjust cell forcing to each band: a linear temperature lapse rate and
area-normalised precipitation factors.
"""

from __future__ import annotations

import math

import numpy as np

from pyvic.constants import T_LAPSE
from pyvic.parameters import ElevationBand

# Default gradient values
GRAD_T_DEFAULT: float = T_LAPSE / 10.0  # Temperature lapse rate [C/100m]
GRAD_P_DEFAULT: float = 0.00041  # Precipitation gradient [m^-1]
ELEV_CAP_PRECIP: float = 4000.0  # Maximum elevation for precipitation extrapolation [m]


def bands_from_hypsometry(hypsometric_curve: np.ndarray, n_bands: int) -> tuple[ElevationBand, ...]:
    """Derive equal-area elevation bands from a hypsometric curve.

    The representative elevation of each band is the midpoint of the
    elevation range spanned by its percentile bounds.

    Args:
        hypsometric_curve: 101-point array of elevations at percentiles 0-100%
            (index i = elevation at percentile i%) [m].
        n_bands: Number of elevation bands to create.

    Returns:
        Tuple of ElevationBand, each covering 1/n_bands of the cell.
    """
    curve = np.asarray(hypsometric_curve, dtype=np.float64)
    if curve.shape != (101,):
        msg = f"hypsometric_curve must have 101 points, got shape {curve.shape}"
        raise ValueError(msg)
    if n_bands < 1:
        msg = f"n_bands must be at least 1, got {n_bands}"
        raise ValueError(msg)

    percentiles = np.linspace(0, 100, 101)
    bands = []
    for i in range(n_bands):
        lower = float(np.interp(i * 100.0 / n_bands, percentiles, curve))
        upper = float(np.interp((i + 1) * 100.0 / n_bands, percentiles, curve))
        bands.append(ElevationBand(area_fract=1.0 / n_bands, elevation=(lower + upper) / 2.0))
    return tuple(bands)


def extrapolate_temperature(
    input_temp: float,
    input_elevation: float,
    layer_elevation: float,
    gradient: float = GRAD_T_DEFAULT,
) -> float:
    """Extrapolate temperature to a different elevation.

    A positive gradient means temperature decreases with elevation.

    Args:
        input_temp: Temperature at input elevation [C].
        input_elevation: Elevation of input measurement [m].
        layer_elevation: Target elevation for extrapolation [m].
        gradient: Temperature lapse rate [C/100m]. Default is GRAD_T_DEFAULT.

    Returns:
        Extrapolated temperature at target elevation [C].
    """
    return input_temp - gradient * (layer_elevation - input_elevation) / 100.0


def extrapolate_precipitation(
    input_precip: float,
    input_elevation: float,
    layer_elevation: float,
    gradient: float = GRAD_P_DEFAULT,
    elev_cap: float = ELEV_CAP_PRECIP,
) -> float:
    """Extrapolate precipitation to a different elevation using an exponential gradient.

    Both elevations are capped at elev_cap before applying the formula.

    Args:
        input_precip: Precipitation at input elevation [mm].
        input_elevation: Elevation of input measurement [m].
        layer_elevation: Target elevation for extrapolation [m].
        gradient: Precipitation gradient [m^-1]. Default is GRAD_P_DEFAULT.
        elev_cap: Maximum elevation for precipitation extrapolation [m].

    Returns:
        Extrapolated precipitation at target elevation [mm].
    """
    effective_input_elev = min(input_elevation, elev_cap)
    effective_layer_elev = min(layer_elevation, elev_cap)
    return input_precip * math.exp(gradient * (effective_layer_elev - effective_input_elev))


def band_temperature_offsets(
    bands: tuple[ElevationBand, ...],
    cell_elevation: float,
    gradient: float = GRAD_T_DEFAULT,
) -> np.ndarray:
    """Air temperature offset of each band relative to the cell forcing [C]."""
    return np.array([extrapolate_temperature(0.0, cell_elevation, band.elevation, gradient) for band in bands])


def band_precipitation_factors(
    bands: tuple[ElevationBand, ...],
    cell_elevation: float,
    gradient: float = GRAD_P_DEFAULT,
) -> np.ndarray:
    """Precipitation multiplier of each band.

    Given factors are used as they are; missing ones are derived from the
    elevation gradient. Factors are then normalised so that the area-weighted
    factor is 1 and cell precipitation is conserved.

    Returns:
        Array of factors, one per band [-].
    """
    factors = np.array(
        [
            band.p_factor
            if band.p_factor is not None
            else extrapolate_precipitation(1.0, cell_elevation, band.elevation, gradient)
            for band in bands
        ],
        dtype=np.float64,
    )
    fractions = np.array([band.area_fract for band in bands])
    weighted = float(np.sum(fractions * factors))
    if weighted <= 0.0:
        msg = "area-weighted band precipitation factor must be positive"
        raise ValueError(msg)
    return factors / weighted
