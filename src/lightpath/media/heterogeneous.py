"""Heterogeneous participating medium on a voxel density grid.

The medium occupies an axis-aligned box. Inside it the extinction
coefficient is ``density(p) * sigma_t`` with ``sigma_t = sigma_a + sigma_s``
and density looked up from the nearest voxel; outside it the medium is
empty. Distances are sampled with delta (Woodcock) tracking against the
majorant ``max_density * max(sigma_t)``, and transmittance is estimated
with ratio tracking over the same tentative collisions.

Collisions are accepted with probability ``density(p) / max_density``, so
every channel is tracked with the extinction ``max(sigma_t)``: media are
expected to have grey extinction. set_medium() logs a warning otherwise.

A scene holds at most one medium. Scattering uses the isotropic phase
function.

Example:
    >>> import numpy as np
    >>> from lightpath.media.heterogeneous import set_medium
    >>> set_medium(np.ones((8, 8, 8)), (-1, -1, -1), (1, 1, 1),
    ...            sigma_a=(0.1, 0.1, 0.1), sigma_s=(0.9, 0.9, 0.9))
"""

import logging
import os

import numpy as np
import taichi as ti
import taichi.math as tm

from ..core.warp import INV_FOUR_PI, square_to_uniform_sphere
from ..errors import ConfigurationError

logger = logging.getLogger(__name__)

vec2 = tm.vec2
vec3 = tm.vec3

MAX_GRID_RES = 128

# Safety cap on tentative collisions per query
MAX_FREE_FLIGHT_STEPS = 4096


@ti.dataclass
class MediumSample:
    """Result of free-flight sampling along a ray.

    Attributes:
        interacted: 1 if a real collision occurred before the distance limit.
        t: Distance of the collision (or the distance limit).
        point: Collision point (or the point at the distance limit).
        weight: ``sigma_s / sigma_t`` on collision, 1 otherwise, 0 when
            the step cap was exceeded.
    """

    interacted: ti.i32
    t: ti.f32
    point: vec3
    weight: vec3


density_grid = ti.field(dtype=ti.f32, shape=(MAX_GRID_RES, MAX_GRID_RES, MAX_GRID_RES))
grid_res = ti.Vector.field(3, dtype=ti.i32, shape=())
medium_bounds_min = ti.Vector.field(3, dtype=ti.f32, shape=())
medium_bounds_max = ti.Vector.field(3, dtype=ti.f32, shape=())
medium_sigma_a = ti.Vector.field(3, dtype=ti.f32, shape=())
medium_sigma_s = ti.Vector.field(3, dtype=ti.f32, shape=())
medium_max_density = ti.field(dtype=ti.f32, shape=())
# Majorant extinction max_density * max(sigma_t); 0 for an empty medium
medium_majorant = ti.field(dtype=ti.f32, shape=())
medium_enabled = ti.field(dtype=ti.i32, shape=())


def clear_medium() -> None:
    medium_enabled[None] = 0
    medium_max_density[None] = 0.0
    medium_majorant[None] = 0.0


def has_medium() -> bool:
    return bool(medium_enabled[None])


def load_density_grid(source) -> np.ndarray:
    """Load a density grid from an array, nested list or ``.npy`` path."""
    if isinstance(source, (str, os.PathLike)):
        data = np.load(os.fspath(source))
    else:
        data = np.asarray(source)
    return np.asarray(data, dtype=np.float32)


def set_medium(
    density,
    bounds_min: tuple[float, float, float],
    bounds_max: tuple[float, float, float],
    sigma_a: tuple[float, float, float],
    sigma_s: tuple[float, float, float],
) -> float:
    """Install the scene's participating medium.

    Args:
        density: 3D density grid indexed (x, y, z), as accepted by
            load_density_grid().
        bounds_min: Lower corner of the medium's box.
        bounds_max: Upper corner of the medium's box.
        sigma_a: Absorption coefficient (RGB).
        sigma_s: Scattering coefficient (RGB). The sum sigma_a + sigma_s
            should be equal across channels; colour belongs in the albedo.

    Returns:
        The grid's maximum density.

    Raises:
        ConfigurationError: On a malformed or negative grid, negative
            coefficients or a box with non-positive extent.
        RuntimeError: If the grid exceeds MAX_GRID_RES along any axis.
    """
    grid = load_density_grid(density)
    if grid.ndim != 3 or min(grid.shape) == 0:
        raise ConfigurationError(f"Density grid must be a non-empty 3D array, got shape {grid.shape}")
    if max(grid.shape) > MAX_GRID_RES:
        raise RuntimeError(f"Density grid {grid.shape} exceeds maximum resolution {MAX_GRID_RES}")
    if not np.all(np.isfinite(grid)):
        raise ConfigurationError("Density grid contains non-finite values")
    if np.any(grid < 0.0):
        raise ConfigurationError("Density grid contains negative values")
    if any(c < 0.0 for c in sigma_a) or any(c < 0.0 for c in sigma_s):
        raise ConfigurationError("Medium coefficients sigma_a and sigma_s must be non-negative")
    lo = np.asarray(bounds_min, dtype=np.float32)
    hi = np.asarray(bounds_max, dtype=np.float32)
    if np.any(hi - lo <= 0.0):
        raise ConfigurationError(f"Medium bounds must have positive size, got {tuple(lo)} .. {tuple(hi)}")

    padded = np.zeros((MAX_GRID_RES, MAX_GRID_RES, MAX_GRID_RES), dtype=np.float32)
    nx, ny, nz = grid.shape
    padded[:nx, :ny, :nz] = grid
    density_grid.from_numpy(padded)

    max_density = float(grid.max())
    max_sigma_t = max(float(a) + float(s) for a, s in zip(sigma_a, sigma_s))
    min_sigma_t = min(float(a) + float(s) for a, s in zip(sigma_a, sigma_s))
    if max_sigma_t - min_sigma_t > 1e-6 * max_sigma_t:
        logger.warning(
            "medium extinction varies by channel (%g .. %g); tracking uses %g for every channel",
            min_sigma_t,
            max_sigma_t,
            max_sigma_t,
        )

    grid_res[None] = [nx, ny, nz]
    medium_bounds_min[None] = lo.tolist()
    medium_bounds_max[None] = hi.tolist()
    medium_sigma_a[None] = [float(c) for c in sigma_a]
    medium_sigma_s[None] = [float(c) for c in sigma_s]
    medium_max_density[None] = max_density
    medium_majorant[None] = max_density * max_sigma_t
    medium_enabled[None] = 1

    if max_density == 0.0 or max_sigma_t == 0.0:
        logger.info("medium is empty; free-flight queries pass straight through")
    logger.debug("medium grid %dx%dx%d, max density %g, majorant %g", nx, ny, nz, max_density, max_density * max_sigma_t)
    return max_density


# =============================================================================
# Kernel-Side Queries
# =============================================================================


@ti.func
def medium_density(p: vec3) -> ti.f32:
    """Nearest-voxel density at ``p``; 0 outside the box."""
    lo = medium_bounds_min[None]
    hi = medium_bounds_max[None]
    res = grid_res[None]
    result = 0.0
    if lo.x <= p.x <= hi.x and lo.y <= p.y <= hi.y and lo.z <= p.z <= hi.z:
        local = (p - lo) / (hi - lo)
        ix = ti.max(0, ti.min(ti.cast(local.x * res.x, ti.i32), res.x - 1))
        iy = ti.max(0, ti.min(ti.cast(local.y * res.y, ti.i32), res.y - 1))
        iz = ti.max(0, ti.min(ti.cast(local.z * res.z, ti.i32), res.z - 1))
        result = density_grid[ix, iy, iz]
    return result


@ti.func
def intersect_medium_bounds(origin: vec3, direction: vec3, max_distance: ti.f32):
    """Slab test of the ray segment ``[0, max_distance]`` against the box.

    Returns:
        Tuple (hit, t_near, t_far) with the overlap clipped to the segment.
    """
    lo = medium_bounds_min[None]
    hi = medium_bounds_max[None]
    t_near = 0.0
    t_far = max_distance
    for k in ti.static(range(3)):
        if ti.abs(direction[k]) < 1e-12:
            if origin[k] < lo[k] or origin[k] > hi[k]:
                t_far = -1.0
        else:
            inv = 1.0 / direction[k]
            t0 = (lo[k] - origin[k]) * inv
            t1 = (hi[k] - origin[k]) * inv
            if t0 > t1:
                tmp = t0
                t0 = t1
                t1 = tmp
            t_near = tm.max(t_near, t0)
            t_far = tm.min(t_far, t1)
    return t_near <= t_far, t_near, t_far


@ti.func
def _medium_active() -> ti.i32:
    return medium_enabled[None] == 1 and medium_majorant[None] > 0.0


@ti.func
def sample_free_path(origin: vec3, direction: vec3, max_distance: ti.f32) -> MediumSample:
    """Delta tracking along a unit direction up to ``max_distance``.

    Rays that miss the box, and empty media, return weight 1 without
    drawing random numbers.
    """
    rec = MediumSample(
        interacted=0,
        t=max_distance,
        point=origin + max_distance * direction,
        weight=vec3(1.0, 1.0, 1.0),
    )
    if _medium_active():
        hit, t_near, t_far = intersect_medium_bounds(origin, direction, max_distance)
        if hit:
            majorant = medium_majorant[None]
            max_density = medium_max_density[None]
            t = t_near
            active = 1
            for _ in range(MAX_FREE_FLIGHT_STEPS):
                if active == 1:
                    t += -ti.log(1.0 - ti.random(ti.f32)) / majorant
                    if t >= t_far:
                        active = 0
                    else:
                        p = origin + t * direction
                        if ti.random(ti.f32) * max_density < medium_density(p):
                            sigma_s = medium_sigma_s[None]
                            sigma_t = medium_sigma_a[None] + sigma_s
                            albedo = vec3(0.0, 0.0, 0.0)
                            for k in ti.static(range(3)):
                                if sigma_t[k] > 0.0:
                                    albedo[k] = sigma_s[k] / sigma_t[k]
                            rec.interacted = 1
                            rec.t = t
                            rec.point = p
                            rec.weight = albedo
                            active = 0
            if active == 1:
                rec.weight = vec3(0.0, 0.0, 0.0)
    return rec


@ti.func
def transmittance(origin: vec3, direction: vec3, max_distance: ti.f32) -> ti.f32:
    """Ratio-tracking estimate of transmittance over ``[0, max_distance]``."""
    tr = 1.0
    if _medium_active():
        hit, t_near, t_far = intersect_medium_bounds(origin, direction, max_distance)
        if hit:
            majorant = medium_majorant[None]
            max_density = medium_max_density[None]
            t = t_near
            active = 1
            for _ in range(MAX_FREE_FLIGHT_STEPS):
                if active == 1:
                    t += -ti.log(1.0 - ti.random(ti.f32)) / majorant
                    if t >= t_far:
                        active = 0
                    else:
                        tr *= 1.0 - medium_density(origin + t * direction) / max_density
                        if tr <= 0.0:
                            active = 0
            if active == 1:
                tr = 0.0
    return tr


# =============================================================================
# Isotropic Phase Function
# =============================================================================


@ti.func
def eval_isotropic_phase(wi: vec3, wo: vec3) -> ti.f32:
    return INV_FOUR_PI


@ti.func
def pdf_isotropic_phase(wi: vec3, wo: vec3) -> ti.f32:
    return INV_FOUR_PI


@ti.func
def sample_isotropic_phase(sample: vec2):
    """Uniform direction on the sphere; the sample weight is exactly 1.

    Returns:
        Tuple (wo, pdf).
    """
    return square_to_uniform_sphere(sample), INV_FOUR_PI
