"""Photon storage for the photon mapper."""

from .photon_map import MAX_PHOTONS, PhotonArena, PhotonMap, auto_photon_radius, count_photons_in_radius

__all__ = [
    "MAX_PHOTONS",
    "PhotonArena",
    "PhotonMap",
    "auto_photon_radius",
    "count_photons_in_radius",
]
