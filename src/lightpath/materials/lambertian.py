"""Lambertian (ideal diffuse) reflection.

    f(wi, wo) = albedo / pi,    pdf(wo) = cos(theta_o) / pi

All directions are expressed in the local shading frame, where the
ray-facing normal is +z. ``wi`` points back toward the previous path
vertex and ``wo`` is the scattered direction.

Sampling is cosine weighted, so the sample weight ``f * cos / pdf`` is
exactly the albedo.
"""

import taichi as ti
import taichi.math as tm

from ..core.warp import square_to_cosine_hemisphere, square_to_cosine_hemisphere_pdf

vec2 = tm.vec2
vec3 = tm.vec3


@ti.func
def eval_lambertian(albedo: vec3, wi: vec3, wo: vec3) -> vec3:
    """BRDF value, zero unless both directions are above the surface."""
    result = vec3(0.0, 0.0, 0.0)
    if wi.z > 0.0 and wo.z > 0.0:
        result = albedo / tm.pi
    return result


@ti.func
def pdf_lambertian(wi: vec3, wo: vec3) -> ti.f32:
    pdf = 0.0
    if wi.z > 0.0 and wo.z > 0.0:
        pdf = square_to_cosine_hemisphere_pdf(wo)
    return pdf


@ti.func
def sample_lambertian(albedo: vec3, wi: vec3, sample: vec2):
    """Cosine-weighted direction above the surface.

    Returns:
        Tuple (wo, weight, pdf). The weight is zero when ``wi`` lies below
        the surface.
    """
    wo = square_to_cosine_hemisphere(sample)
    pdf = square_to_cosine_hemisphere_pdf(wo)
    weight = vec3(0.0, 0.0, 0.0)
    if wi.z > 0.0 and pdf > 0.0:
        weight = albedo
    return wo, weight, pdf


# =============================================================================
# Material Field Storage
# =============================================================================

MAX_LAMBERTIAN_MATERIALS = 256

lambertian_albedos = ti.Vector.field(3, dtype=ti.f32, shape=MAX_LAMBERTIAN_MATERIALS)
num_lambertian_materials = ti.field(dtype=ti.i32, shape=())


def clear_lambertian_materials() -> None:
    num_lambertian_materials[None] = 0


def add_lambertian_material(albedo: tuple[float, float, float]) -> int:
    """Register a Lambertian material.

    Args:
        albedo: Diffuse reflectance as (R, G, B), each component in [0, 1].

    Returns:
        The type-local index of the added material.

    Raises:
        RuntimeError: If the maximum number of materials is exceeded.
        ValueError: If any albedo component is outside [0, 1].
    """
    for i, component in enumerate(albedo):
        if component < 0.0 or component > 1.0:
            raise ValueError(
                f"Albedo component {i} = {component} is outside [0, 1]. "
                "This would violate energy conservation."
            )

    idx = num_lambertian_materials[None]
    if idx >= MAX_LAMBERTIAN_MATERIALS:
        raise RuntimeError(
            f"Maximum number of Lambertian materials ({MAX_LAMBERTIAN_MATERIALS}) exceeded"
        )

    lambertian_albedos[idx] = vec3(albedo[0], albedo[1], albedo[2])
    num_lambertian_materials[None] = idx + 1
    return idx


def get_lambertian_material_count() -> int:
    return int(num_lambertian_materials[None])
