"""Building blocks shared by every estimator.

Per-render parameters live in scalar Taichi fields written from Python by
apply_render_config() before each render, so changing them never forces a
kernel recompilation. The helpers cover the steps of the path state
machine that all estimators share: emission at a hit, next event
estimation, Russian roulette and spawning the next ray.
"""

import taichi as ti
import taichi.math as tm

from ..config import RenderConfig
from ..core.ray import T_MAX, T_MIN, Ray, max_component, offset_ray_origin, to_local, to_world
from ..core.warp import next_2d
from ..emitters.base import EmitterSample, num_emitters
from ..emitters.sampling import choose_emitter, eval_emitter, pdf_emitter, sample_emitter
from ..materials.bsdf import eval_bsdf, pdf_bsdf
from ..media.heterogeneous import transmittance
from ..scene.intersection import SceneHitRecord, occluded

vec3 = tm.vec3

max_depth = ti.field(dtype=ti.i32, shape=())
rr_start_depth = ti.field(dtype=ti.i32, shape=())
rr_cap = ti.field(dtype=ti.f32, shape=())
ao_length = ti.field(dtype=ti.f32, shape=())


def apply_render_config(config: RenderConfig) -> None:
    """Upload a RenderConfig's tunables to the kernel-side fields."""
    max_depth[None] = config.max_depth
    rr_start_depth[None] = config.rr_start_depth
    rr_cap[None] = config.effective_rr_cap()
    ao_length[None] = config.ao_length


# =============================================================================
# Weights
# =============================================================================


@ti.func
def balance_heuristic(pdf_a: ti.f32, pdf_b: ti.f32) -> ti.f32:
    """Balance-heuristic weight of strategy ``a``; 0 if both pdfs are 0."""
    w = 0.0
    denom = pdf_a + pdf_b
    if denom > 0.0:
        w = pdf_a / denom
    return w


@ti.func
def russian_roulette(throughput: vec3, depth: ti.i32):
    """Probabilistic path termination.

    Survival probability is ``min(max(throughput), cap)`` once ``depth``
    reaches the configured start depth; earlier bounces always survive.

    Returns:
        Tuple (survived, throughput divided by the survival probability).
    """
    survived = 1
    result = throughput
    if depth >= rr_start_depth[None]:
        q = tm.min(max_component(throughput), rr_cap[None])
        if q <= 0.0 or ti.random(ti.f32) >= q:
            survived = 0
        else:
            result = throughput / q
    return survived, result


# =============================================================================
# Path Vertices
# =============================================================================


@ti.func
def spawn_ray(hit: SceneHitRecord, direction: vec3) -> Ray:
    """Continuation ray leaving a surface hit on the side ``direction`` points to."""
    return Ray(
        origin=offset_ray_origin(hit.point, hit.normal, direction),
        direction=direction,
        mint=T_MIN,
        maxt=T_MAX,
    )


@ti.func
def emission_at(hit: SceneHitRecord, ray: Ray) -> vec3:
    """Radiance emitted by an area emitter at ``hit`` toward the ray origin."""
    result = vec3(0.0, 0.0, 0.0)
    if hit.emitter_id >= 0:
        result = eval_emitter(hit.emitter_id, hit.geo_normal, ray.direction)
    return result


@ti.func
def emitter_hit_pdf(hit: SceneHitRecord, ray: Ray) -> ti.f32:
    """Solid-angle density of NEE producing the direction that reached ``hit``."""
    return pdf_emitter(hit.emitter_id, ray.origin, hit.point, hit.geo_normal, ray.direction)


@ti.func
def visibility(es: EmitterSample, volumetric: ti.template()) -> ti.f32:
    """Fraction of light passing along the emitter sample's shadow ray."""
    vis = 0.0
    if not occluded(es.shadow_ray):
        vis = 1.0
        if ti.static(volumetric):
            vis = transmittance(es.shadow_ray.origin, es.shadow_ray.direction, es.shadow_ray.maxt)
    return vis


@ti.func
def surface_nee(
    emitter_id: ti.i32,
    hit: SceneHitRecord,
    wi_local: vec3,
    selection_pdf: ti.f32,
    use_mis: ti.template(),
    volumetric: ti.template(),
) -> vec3:
    """One emitter sample at a surface vertex.

    Args:
        emitter_id: Emitter to sample.
        hit: Surface vertex.
        wi_local: Direction toward the previous vertex in the shading frame.
        selection_pdf: Probability of having chosen ``emitter_id``.
        use_mis: Weight the sample with the balance heuristic against BSDF sampling.
        volumetric: Include medium transmittance on the shadow ray.

    Returns:
        ``f * cos * Le / pdf`` with the selection probability folded into
        the pdf, times the MIS weight; zero if occluded.
    """
    result = vec3(0.0, 0.0, 0.0)
    es = sample_emitter(emitter_id, hit.point, next_2d())
    if es.pdf > 0.0 and selection_pdf > 0.0:
        wo_local = to_local(es.wi, hit.normal)
        f = eval_bsdf(hit.material_id, wi_local, wo_local)
        if max_component(f) > 0.0:
            vis = visibility(es, volumetric)
            if vis > 0.0:
                w = 1.0
                if ti.static(use_mis):
                    if es.is_delta == 0:
                        w = balance_heuristic(es.pdf * selection_pdf, pdf_bsdf(hit.material_id, wi_local, wo_local))
                result = f * ti.abs(wo_local.z) * es.weight / selection_pdf * w * vis
    return result


@ti.func
def medium_nee(point: vec3, phase_value: ti.f32, phase_pdf: ti.f32, use_mis: ti.template()) -> vec3:
    """One uniformly chosen emitter sample at a medium scattering vertex.

    Shadow rays include medium transmittance.
    """
    result = vec3(0.0, 0.0, 0.0)
    n = num_emitters[None]
    if n > 0:
        selection_pdf = 1.0 / ti.cast(n, ti.f32)
        es = sample_emitter(choose_emitter(ti.random(ti.f32)), point, next_2d())
        if es.pdf > 0.0:
            vis = visibility(es, True)
            if vis > 0.0:
                w = 1.0
                if ti.static(use_mis):
                    if es.is_delta == 0:
                        w = balance_heuristic(es.pdf * selection_pdf, phase_pdf)
                result = phase_value * es.weight / selection_pdf * w * vis
    return result


@ti.func
def incoming_local(hit: SceneHitRecord, ray: Ray) -> vec3:
    """Direction toward the previous vertex in the hit's shading frame."""
    return to_local(-ray.direction, hit.normal)


@ti.func
def local_to_world(hit: SceneHitRecord, local_dir: vec3) -> vec3:
    return to_world(local_dir, hit.normal)
