"""Participating media."""

from .heterogeneous import (
    MediumSample,
    clear_medium,
    has_medium,
    load_density_grid,
    sample_free_path,
    set_medium,
    transmittance,
)

__all__ = [
    "MediumSample",
    "clear_medium",
    "has_medium",
    "load_density_grid",
    "sample_free_path",
    "set_medium",
    "transmittance",
]
