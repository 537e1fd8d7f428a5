"""Radiance estimators.

estimate() is the single entry point used by the render kernel. The
estimator is a compile-time choice: ``kind`` is an IntegratorType value
passed as a template argument, so each variant compiles to its own kernel.

Components:
    av: Average visibility
    direct: Direct, Direct-EMS, Direct-MATS, Direct-MIS
    path: Path-MATS, Path-MIS, VolPath-MATS, VolPath-MIS
    photon: Photon mapping (preprocess plus density estimation)
    common: Shared fields and path-vertex helpers
"""

import taichi as ti
import taichi.math as tm

from ..config import IntegratorType
from ..core.ray import Ray
from .av import estimate_av
from .common import apply_render_config
from .direct import estimate_direct, estimate_direct_ems, estimate_direct_mats, estimate_direct_mis
from .path import estimate_path_mats, estimate_path_mis, estimate_vol_path_mats, estimate_vol_path_mis
from .photon import PhotonMapper, estimate_photon, is_photon_map_ready, reset_photon_map

vec3 = tm.vec3


@ti.func
def estimate(ray: Ray, kind: ti.template()) -> vec3:
    """Radiance along ``ray`` with the estimator selected by ``kind``."""
    result = vec3(0.0, 0.0, 0.0)
    if ti.static(kind == int(IntegratorType.AV)):
        result = estimate_av(ray)
    elif ti.static(kind == int(IntegratorType.DIRECT)):
        result = estimate_direct(ray)
    elif ti.static(kind == int(IntegratorType.DIRECT_EMS)):
        result = estimate_direct_ems(ray)
    elif ti.static(kind == int(IntegratorType.DIRECT_MATS)):
        result = estimate_direct_mats(ray)
    elif ti.static(kind == int(IntegratorType.DIRECT_MIS)):
        result = estimate_direct_mis(ray)
    elif ti.static(kind == int(IntegratorType.PATH_MATS)):
        result = estimate_path_mats(ray)
    elif ti.static(kind == int(IntegratorType.PATH_MIS)):
        result = estimate_path_mis(ray)
    elif ti.static(kind == int(IntegratorType.VOL_PATH_MATS)):
        result = estimate_vol_path_mats(ray)
    elif ti.static(kind == int(IntegratorType.VOL_PATH_MIS)):
        result = estimate_vol_path_mis(ray)
    elif ti.static(kind == int(IntegratorType.PHOTON_MAPPER)):
        result = estimate_photon(ray)
    return result


__all__ = [
    "IntegratorType",
    "PhotonMapper",
    "apply_render_config",
    "estimate",
    "is_photon_map_ready",
    "reset_photon_map",
]
