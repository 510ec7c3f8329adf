"""Utility modules for pyvic."""

from pyvic.utils.elevation import (
    ELEV_CAP_PRECIP,
    GRAD_P_DEFAULT,
    GRAD_T_DEFAULT,
    band_precipitation_factors,
    band_temperature_offsets,
    bands_from_hypsometry,
    extrapolate_precipitation,
    extrapolate_temperature,
)

__all__ = [
    "ELEV_CAP_PRECIP",
    "GRAD_P_DEFAULT",
    "GRAD_T_DEFAULT",
    "band_precipitation_factors",
    "band_temperature_offsets",
    "bands_from_hypsometry",
    "extrapolate_precipitation",
    "extrapolate_temperature",
]
