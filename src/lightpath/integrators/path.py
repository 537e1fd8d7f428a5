"""Multi-bounce path tracing, optionally through a participating medium.

Every variant runs the same state machine per vertex:

    TRACE -> EMISSION -> NEE -> RUSSIAN ROULETTE -> BSDF SAMPLE -> TRACE

PATH_MATS
    BSDF sampling only; emission found along the path is added unweighted.
PATH_MIS
    Next event estimation on one uniformly chosen emitter (selection
    probability folded into its pdf) plus BSDF sampling, both weighted with
    the balance heuristic. The pdf of the previous BSDF sample is carried to
    the next vertex, so emission is weighted without re-sampling. After a
    discrete BSDF event the next emission weight is 1; delta emitters
    always get weight 1.
VOL_PATH_MATS / VOL_PATH_MIS
    As above, with free-flight sampling on every segment. The medium is
    authoritative: the free path is sampled up to the surface distance and
    a real collision replaces the surface vertex. Collisions scatter with
    the isotropic phase function (and do NEE with shadow transmittance in
    the MIS variant); surface NEE shadow rays include transmittance too.
"""

import taichi as ti
import taichi.math as tm

from ..core.ray import T_MAX, T_MIN, Ray, max_component, to_world
from ..core.warp import next_2d
from ..emitters.base import num_emitters
from ..emitters.environment import pdf_environment
from ..emitters.sampling import choose_emitter, eval_escaped, has_environment
from ..materials.bsdf import Measure, sample_bsdf
from ..media.heterogeneous import eval_isotropic_phase, sample_free_path, sample_isotropic_phase
from ..scene.intersection import intersect_ray
from .common import (
    balance_heuristic,
    emission_at,
    emitter_hit_pdf,
    incoming_local,
    max_depth,
    medium_nee,
    russian_roulette,
    spawn_ray,
    surface_nee,
)

vec3 = tm.vec3


@ti.func
def _trace_path(camera_ray: Ray, use_nee: ti.template(), volumetric: ti.template()) -> vec3:
    radiance = vec3(0.0, 0.0, 0.0)
    throughput = vec3(1.0, 1.0, 1.0)
    ray = camera_ray

    # pdf of the sampling decision that produced ``ray``; camera rays and
    # discrete events give the emission found next full weight
    prev_pdf = 0.0
    prev_discrete = 1

    n = num_emitters[None]
    selection_pdf = 0.0
    if n > 0:
        selection_pdf = 1.0 / ti.cast(n, ti.f32)

    depth_limit = max_depth[None]
    active = 1
    for depth in range(depth_limit + 1):
        if active == 1:
            hit = intersect_ray(ray)

            in_medium = 0
            if ti.static(volumetric):
                t_limit = T_MAX
                if hit.hit == 1:
                    t_limit = hit.t
                ms = sample_free_path(ray.origin, ray.direction, t_limit)
                throughput *= ms.weight
                if ms.interacted == 1:
                    in_medium = 1
                    if depth >= depth_limit:
                        active = 0
                    else:
                        if ti.static(use_nee):
                            phase = eval_isotropic_phase(-ray.direction, ray.direction)
                            radiance += throughput * medium_nee(ms.point, phase, phase, True)
                        survived, throughput = russian_roulette(throughput, depth)
                        if survived == 0:
                            active = 0
                        else:
                            wo, phase_pdf = sample_isotropic_phase(next_2d())
                            ray = Ray(origin=ms.point, direction=wo, mint=T_MIN, maxt=T_MAX)
                            prev_pdf = phase_pdf
                            prev_discrete = 0

            if in_medium == 0 and active == 1:
                if hit.hit == 0:
                    # EMISSION from the environment
                    le = eval_escaped(ray.direction)
                    w = 1.0
                    if ti.static(use_nee):
                        if prev_discrete == 0 and has_environment() == 1:
                            w = balance_heuristic(prev_pdf, pdf_environment(ray.direction) * selection_pdf)
                    radiance += throughput * le * w
                    active = 0
                else:
                    # EMISSION
                    if hit.emitter_id >= 0:
                        le = emission_at(hit, ray)
                        w = 1.0
                        if ti.static(use_nee):
                            if prev_discrete == 0:
                                w = balance_heuristic(prev_pdf, emitter_hit_pdf(hit, ray) * selection_pdf)
                        radiance += throughput * le * w

                    if depth >= depth_limit:
                        active = 0
                    else:
                        wi_local = incoming_local(hit, ray)

                        # NEE
                        if ti.static(use_nee):
                            if n > 0:
                                emitter_id = choose_emitter(ti.random(ti.f32))
                                radiance += throughput * surface_nee(
                                    emitter_id, hit, wi_local, selection_pdf, True, volumetric
                                )

                        # RUSSIAN ROULETTE
                        survived, throughput = russian_roulette(throughput, depth)
                        if survived == 0:
                            active = 0
                        else:
                            # BSDF SAMPLE
                            bs = sample_bsdf(hit.material_id, wi_local, hit.front_face, next_2d())
                            if max_component(bs.weight) <= 0.0:
                                active = 0
                            else:
                                throughput *= bs.weight
                                ray = spawn_ray(hit, to_world(bs.wo, hit.normal))
                                prev_pdf = bs.pdf
                                prev_discrete = 0
                                if bs.measure == int(Measure.DISCRETE):
                                    prev_discrete = 1

            if max_component(throughput) <= 0.0:
                active = 0
    return radiance


@ti.func
def estimate_path_mats(ray: Ray) -> vec3:
    return _trace_path(ray, False, False)


@ti.func
def estimate_path_mis(ray: Ray) -> vec3:
    return _trace_path(ray, True, False)


@ti.func
def estimate_vol_path_mats(ray: Ray) -> vec3:
    return _trace_path(ray, False, True)


@ti.func
def estimate_vol_path_mis(ray: Ray) -> vec3:
    return _trace_path(ray, True, True)
