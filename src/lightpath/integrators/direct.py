"""Single-bounce direct illumination estimators.

All four variants look only at the first surface a camera ray hits.

DIRECT
    One sample of every emitter, unoccluded ``f * cos * Le / pdf``; no
    emission term.
DIRECT_EMS
    Emission at the first hit plus DIRECT.
DIRECT_MATS
    Emission at the first hit plus one BSDF sample, which contributes the
    radiance of the emitter (or environment) it reaches.
DIRECT_MIS
    Emission plus both of the above, combined with the balance heuristic.
    Every emitter is sampled once, so the light pdf of a BSDF-sampled hit is
    that emitter's own pdf.

Camera rays that leave the scene return environment radiance in every
variant.
"""

import taichi as ti
import taichi.math as tm

from ..core.ray import Ray, to_world
from ..core.warp import next_2d
from ..emitters.base import num_emitters
from ..emitters.environment import pdf_environment
from ..emitters.sampling import eval_escaped, has_environment
from ..materials.bsdf import Measure, sample_bsdf
from ..scene.intersection import intersect_ray
from .common import balance_heuristic, emission_at, emitter_hit_pdf, incoming_local, spawn_ray, surface_nee

vec3 = tm.vec3


@ti.func
def _sample_all_emitters(hit, wi_local: vec3, use_mis: ti.template()) -> vec3:
    result = vec3(0.0, 0.0, 0.0)
    for e in range(num_emitters[None]):
        result += surface_nee(e, hit, wi_local, 1.0, use_mis, False)
    return result


@ti.func
def _bsdf_sample_emitters(hit, wi_local: vec3, use_mis: ti.template()) -> vec3:
    """Radiance found by one BSDF-sampled ray, optionally MIS weighted."""
    result = vec3(0.0, 0.0, 0.0)
    bs = sample_bsdf(hit.material_id, wi_local, hit.front_face, next_2d())
    if bs.weight.x > 0.0 or bs.weight.y > 0.0 or bs.weight.z > 0.0:
        ray = spawn_ray(hit, to_world(bs.wo, hit.normal))
        discrete = bs.measure == int(Measure.DISCRETE)
        nxt = intersect_ray(ray)
        if nxt.hit == 1:
            if nxt.emitter_id >= 0:
                le = emission_at(nxt, ray)
                w = 1.0
                if ti.static(use_mis):
                    if not discrete:
                        w = balance_heuristic(bs.pdf, emitter_hit_pdf(nxt, ray))
                result = bs.weight * le * w
        else:
            le = eval_escaped(ray.direction)
            w = 1.0
            if ti.static(use_mis):
                if not discrete and has_environment() == 1:
                    w = balance_heuristic(bs.pdf, pdf_environment(ray.direction))
            result = bs.weight * le * w
    return result


@ti.func
def _direct(
    ray: Ray,
    emission: ti.template(),
    light_sampling: ti.template(),
    bsdf_sampling: ti.template(),
    use_mis: ti.template(),
) -> vec3:
    """First-hit estimator shared by the four direct variants.

    Args:
        ray: Camera ray.
        emission: Add radiance emitted at the first hit.
        light_sampling: Sample every emitter once.
        bsdf_sampling: Trace one BSDF-sampled ray.
        use_mis: Combine the two strategies with the balance heuristic.
    """
    result = vec3(0.0, 0.0, 0.0)
    hit = intersect_ray(ray)
    if hit.hit == 0:
        result = eval_escaped(ray.direction)
    else:
        if ti.static(emission):
            result += emission_at(hit, ray)
        wi_local = incoming_local(hit, ray)
        if ti.static(light_sampling):
            result += _sample_all_emitters(hit, wi_local, use_mis)
        if ti.static(bsdf_sampling):
            result += _bsdf_sample_emitters(hit, wi_local, use_mis)
    return result


@ti.func
def estimate_direct(ray: Ray) -> vec3:
    return _direct(ray, False, True, False, False)


@ti.func
def estimate_direct_ems(ray: Ray) -> vec3:
    return _direct(ray, True, True, False, False)


@ti.func
def estimate_direct_mats(ray: Ray) -> vec3:
    return _direct(ray, True, False, True, False)


@ti.func
def estimate_direct_mis(ray: Ray) -> vec3:
    return _direct(ray, True, True, True, True)
