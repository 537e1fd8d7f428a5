"""Photon mapping: a preprocessing pass followed by density estimation.

PhotonMapper.preprocess() emits particles from the emitters in batches,
deposits a photon at every diffuse surface they reach and freezes the
result into a PhotonMap. estimate_photon() then traces camera paths
through specular surfaces and, at the first diffuse hit, estimates
reflected radiance from the photons within the search radius:

    L = sum(f(wi, photon.wo) * photon.power) / (pi r^2 * emitted)

where ``emitted`` counts every particle launched, including those that
never deposited anything.

Example:
    >>> from lightpath.config import RenderConfig
    >>> from lightpath.integrators.photon import PhotonMapper
    >>> mapper = PhotonMapper(RenderConfig(integrator="photon_mapper", photon_count=100_000))
    >>> photon_map = mapper.preprocess()
"""

import logging

import taichi as ti
import taichi.math as tm

from ..config import IntegratorType, RenderConfig
from ..core.ray import T_MAX, T_MIN, Ray, max_component, to_local, to_world
from ..core.warp import next_2d
from ..emitters.base import get_emitter_count, num_emitters, validate_emitters
from ..emitters.sampling import choose_emitter, eval_escaped, sample_photon
from ..errors import ConfigurationError
from ..materials.bsdf import eval_bsdf, is_diffuse, sample_bsdf
from ..photon.photon_map import (
    MAX_PHOTONS,
    PhotonArena,
    PhotonMap,
    auto_photon_radius,
    cell_count,
    cell_range,
    cell_start,
    deposit_photon,
    map_directions,
    map_photon_count,
    map_positions,
    map_powers,
)
from ..scene.intersection import SceneHitRecord, intersect_ray, update_scene_bounds
from .common import apply_render_config, emission_at, incoming_local, max_depth, russian_roulette, spawn_ray

logger = logging.getLogger(__name__)

vec3 = tm.vec3

# Particles launched per deposited photon before preprocessing gives up
EMISSION_SAFETY_FACTOR = 100
EMISSION_SAFETY_MARGIN = 10_000

photon_radius = ti.field(dtype=ti.f32, shape=())
photon_emitted = ti.field(dtype=ti.f32, shape=())
photon_map_ready = ti.field(dtype=ti.i32, shape=())


def reset_photon_map() -> None:
    """Invalidate the current photon map (call after the scene changes)."""
    photon_map_ready[None] = 0
    photon_emitted[None] = 0.0


def is_photon_map_ready() -> bool:
    return bool(photon_map_ready[None])


# =============================================================================
# Preprocessing
# =============================================================================


@ti.kernel
def _emit_photons(batch: ti.i32):
    n = num_emitters[None]
    depth_limit = max_depth[None]
    for _ in range(batch):
        emitter_id = choose_emitter(ti.random(ti.f32))
        origin, direction, power = sample_photon(emitter_id, next_2d(), next_2d())
        power *= ti.cast(n, ti.f32)
        ray = Ray(origin=origin, direction=direction, mint=T_MIN, maxt=T_MAX)

        # relative throughput drives roulette; power is carried separately
        beta = vec3(1.0, 1.0, 1.0)
        active = 1
        if max_component(power) <= 0.0:
            active = 0
        for depth in range(depth_limit):
            if active == 1:
                hit = intersect_ray(ray)
                if hit.hit == 0:
                    active = 0
                else:
                    if is_diffuse(hit.material_id) == 1:
                        deposit_photon(hit.point, -ray.direction, power * beta)

                    survived, beta = russian_roulette(beta, depth)
                    if survived == 0:
                        active = 0
                    else:
                        wi_local = incoming_local(hit, ray)
                        bs = sample_bsdf(hit.material_id, wi_local, hit.front_face, next_2d())
                        if max_component(bs.weight) <= 0.0:
                            active = 0
                        else:
                            beta *= bs.weight
                            ray = spawn_ray(hit, to_world(bs.wo, hit.normal))


class PhotonMapper:
    """Owns the photon preprocessing pass for one render configuration.

    Args:
        config: Render configuration; photon_count, photon_radius, max_depth
            and the roulette settings are used.

    Raises:
        ConfigurationError: If photon_count plus max_depth exceeds the arena
            capacity.
    """

    def __init__(self, config: RenderConfig | None = None) -> None:
        if config is None:
            config = RenderConfig(integrator=IntegratorType.PHOTON_MAPPER)
        # the last particle may overshoot photon_count by up to max_depth deposits
        if config.photon_count + config.max_depth > MAX_PHOTONS:
            raise ConfigurationError(
                f"photon_count {config.photon_count} plus max_depth {config.max_depth} exceeds maximum ({MAX_PHOTONS})"
            )
        self.config = config
        self.photon_map: PhotonMap | None = None
        self.emitted = 0
        self.dropped = 0
        self.radius: float | None = None

    @property
    def ready(self) -> bool:
        return self.photon_map is not None

    def _resolve_radius(self, lo, hi) -> float:
        radius = self.config.photon_radius
        if not radius:
            radius = auto_photon_radius(lo, hi)
            logger.info("photon radius derived from scene bounds: %g", radius)
        if radius <= 0.0:
            raise ConfigurationError("Cannot derive a photon radius from an empty scene; set photon_radius")
        return float(radius)

    def preprocess(self) -> PhotonMap:
        """Emit photons until ``photon_count`` are deposited, then build the map.

        Returns:
            The frozen PhotonMap.

        Raises:
            ConfigurationError: If the scene has no emitters or no usable radius.
        """
        validate_emitters()
        if get_emitter_count() == 0:
            raise ConfigurationError("The photon mapper requires at least one emitter")

        lo, hi = update_scene_bounds()
        radius = self._resolve_radius(lo, hi)
        apply_render_config(self.config)
        reset_photon_map()

        target = self.config.photon_count
        depth = self.config.max_depth
        emission_cap = EMISSION_SAFETY_FACTOR * target + EMISSION_SAFETY_MARGIN
        arena = PhotonArena(capacity=target + depth)

        logger.info("photon preprocess: target %d photons, max depth %d", target, depth)
        emitted = 0
        deposited = 0
        while deposited < target:
            # each particle deposits at most ``depth`` photons
            batch = max(1, (target - deposited) // depth)
            _emit_photons(batch)
            emitted += batch
            deposited = len(arena)
            logger.debug("photon batch of %d: %d/%d deposited", batch, deposited, target)
            if deposited < target and emitted >= emission_cap:
                logger.warning(
                    "photon emission cap reached after %d particles; only %d of %d photons deposited",
                    emitted,
                    deposited,
                    target,
                )
                break

        if arena.dropped:
            logger.warning("photon arena overflowed; %d deposits dropped", arena.dropped)
        self.photon_map = arena.build(radius)
        self.emitted = emitted
        self.dropped = arena.dropped
        self.radius = radius

        photon_radius[None] = radius
        photon_emitted[None] = float(emitted)
        photon_map_ready[None] = 1
        logger.info("photon preprocess done: %d photons from %d emitted particles", deposited, emitted)
        return self.photon_map


# =============================================================================
# Density Estimation
# =============================================================================


@ti.func
def photon_density(hit: SceneHitRecord, wi_local: vec3, radius: ti.f32) -> vec3:
    """Reflected radiance at ``hit`` estimated from nearby photons."""
    total = vec3(0.0, 0.0, 0.0)
    emitted = photon_emitted[None]
    if map_photon_count[None] > 0 and emitted > 0.0 and radius > 0.0:
        lo, hi = cell_range(hit.point, radius)
        r2 = radius * radius
        for ix in range(lo[0], hi[0] + 1):
            for iy in range(lo[1], hi[1] + 1):
                for iz in range(lo[2], hi[2] + 1):
                    start = cell_start[ix, iy, iz]
                    for j in range(start, start + cell_count[ix, iy, iz]):
                        d = map_positions[j] - hit.point
                        if tm.dot(d, d) <= r2:
                            wo_local = to_local(map_directions[j], hit.normal)
                            total += eval_bsdf(hit.material_id, wi_local, wo_local) * map_powers[j]
        total /= tm.pi * r2 * emitted
    return total


@ti.func
def estimate_photon(camera_ray: Ray) -> vec3:
    radiance = vec3(0.0, 0.0, 0.0)
    throughput = vec3(1.0, 1.0, 1.0)
    ray = camera_ray
    depth_limit = max_depth[None]
    active = 1
    for depth in range(depth_limit + 1):
        if active == 1:
            hit = intersect_ray(ray)
            if hit.hit == 0:
                radiance += throughput * eval_escaped(ray.direction)
                active = 0
            else:
                radiance += throughput * emission_at(hit, ray)
                wi_local = incoming_local(hit, ray)
                if is_diffuse(hit.material_id) == 1:
                    radiance += throughput * photon_density(hit, wi_local, photon_radius[None])
                    active = 0
                elif depth >= depth_limit:
                    active = 0
                else:
                    survived, throughput = russian_roulette(throughput, depth)
                    if survived == 0:
                        active = 0
                    else:
                        bs = sample_bsdf(hit.material_id, wi_local, hit.front_face, next_2d())
                        if max_component(bs.weight) <= 0.0:
                            active = 0
                        else:
                            throughput *= bs.weight
                            ray = spawn_ray(hit, to_world(bs.wo, hit.normal))
    return radiance
