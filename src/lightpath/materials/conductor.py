"""Conductor (metal) reflection with a GGX microfacet distribution.

The rough lobe is the Torrance-Sparrow model

    f(wi, wo) = F(wi.h) D(h) G(wi, wo) / (4 cos(theta_i) cos(theta_o))

with the Trowbridge-Reitz (GGX) distribution ``D``, the separable Smith
shadowing term ``G`` and Schlick's Fresnel approximation using the albedo
as normal-incidence reflectance. Half vectors are importance sampled from
``D(h) cos(theta_h)``.

A roughness of exactly 0 is a perfect mirror: a DISCRETE event whose
``eval`` and ``pdf`` are zero.
"""

import taichi as ti
import taichi.math as tm

from ..core.warp import ggx_distribution, square_to_ggx

vec2 = tm.vec2
vec3 = tm.vec3

# Smallest GGX alpha used for non-zero roughness
MIN_ALPHA = 1e-3


@ti.func
def schlick_fresnel_color(f0: vec3, cos_theta: ti.f32) -> vec3:
    c = 1.0 - tm.clamp(cos_theta, 0.0, 1.0)
    c5 = c * c * c * c * c
    return f0 + (vec3(1.0, 1.0, 1.0) - f0) * c5


@ti.func
def smith_g1(v: vec3, alpha: ti.f32) -> ti.f32:
    g = 0.0
    if v.z > 0.0:
        cos2 = v.z * v.z
        tan2 = tm.max(0.0, 1.0 - cos2) / cos2
        g = 2.0 / (1.0 + ti.sqrt(1.0 + alpha * alpha * tan2))
    return g


@ti.func
def roughness_to_alpha(roughness: ti.f32) -> ti.f32:
    return tm.max(roughness, MIN_ALPHA)


@ti.func
def eval_conductor(albedo: vec3, roughness: ti.f32, wi: vec3, wo: vec3) -> vec3:
    result = vec3(0.0, 0.0, 0.0)
    if roughness > 0.0 and wi.z > 0.0 and wo.z > 0.0:
        alpha = roughness_to_alpha(roughness)
        h = tm.normalize(wi + wo)
        d = ggx_distribution(h.z, alpha)
        g = smith_g1(wi, alpha) * smith_g1(wo, alpha)
        f = schlick_fresnel_color(albedo, tm.dot(wi, h))
        result = f * d * g / (4.0 * wi.z * wo.z)
    return result


@ti.func
def pdf_conductor(roughness: ti.f32, wi: vec3, wo: vec3) -> ti.f32:
    pdf = 0.0
    if roughness > 0.0 and wi.z > 0.0 and wo.z > 0.0:
        alpha = roughness_to_alpha(roughness)
        h = tm.normalize(wi + wo)
        pdf = ggx_distribution(h.z, alpha) * h.z / (4.0 * ti.abs(tm.dot(wo, h)))
    return pdf


@ti.func
def sample_conductor(albedo: vec3, roughness: ti.f32, wi: vec3, sample: vec2):
    """Sample a reflected direction.

    Returns:
        Tuple (wo, weight, pdf). ``pdf`` is 0 for the mirror case, whose
        weight is the Fresnel reflectance at ``wi``.
    """
    wo = vec3(-wi.x, -wi.y, wi.z)
    weight = vec3(0.0, 0.0, 0.0)
    pdf = 0.0
    if wi.z > 0.0:
        if roughness <= 0.0:
            weight = schlick_fresnel_color(albedo, wi.z)
        else:
            h = square_to_ggx(sample, roughness_to_alpha(roughness))
            wo = 2.0 * tm.dot(wi, h) * h - wi
            if wo.z > 0.0:
                pdf = pdf_conductor(roughness, wi, wo)
                if pdf > 0.0:
                    weight = eval_conductor(albedo, roughness, wi, wo) * wo.z / pdf
    return wo, weight, pdf


# =============================================================================
# Material Field Storage
# =============================================================================

MAX_CONDUCTOR_MATERIALS = 256

conductor_albedos = ti.Vector.field(3, dtype=ti.f32, shape=MAX_CONDUCTOR_MATERIALS)
conductor_roughnesses = ti.field(dtype=ti.f32, shape=MAX_CONDUCTOR_MATERIALS)
num_conductor_materials = ti.field(dtype=ti.i32, shape=())


def clear_conductor_materials() -> None:
    num_conductor_materials[None] = 0


def add_conductor_material(
    albedo: tuple[float, float, float],
    roughness: float = 0.0,
) -> int:
    """Register a conductor.

    Args:
        albedo: Normal-incidence reflectance as (R, G, B), each in [0, 1].
        roughness: GGX alpha in [0, 1]. 0 is a perfect mirror.

    Returns:
        The type-local index of the added material.

    Raises:
        RuntimeError: If the maximum number of materials is exceeded.
        ValueError: If any albedo component or the roughness is outside [0, 1].
    """
    for i, component in enumerate(albedo):
        if component < 0.0 or component > 1.0:
            raise ValueError(
                f"Albedo component {i} = {component} is outside [0, 1]. "
                "This would violate energy conservation."
            )
    if roughness < 0.0 or roughness > 1.0:
        raise ValueError(
            f"Roughness = {roughness} is outside [0, 1]. "
            "Roughness must be between 0 (perfect mirror) and 1."
        )

    idx = num_conductor_materials[None]
    if idx >= MAX_CONDUCTOR_MATERIALS:
        raise RuntimeError(
            f"Maximum number of conductor materials ({MAX_CONDUCTOR_MATERIALS}) exceeded"
        )

    conductor_albedos[idx] = vec3(albedo[0], albedo[1], albedo[2])
    conductor_roughnesses[idx] = roughness
    num_conductor_materials[None] = idx + 1
    return idx


def get_conductor_material_count() -> int:
    return int(num_conductor_materials[None])
