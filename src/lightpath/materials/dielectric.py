"""Smooth dielectric interface (glass, water).

A perfectly smooth boundary between two indices of refraction. The BSDF is
a pair of Dirac deltas (mirror reflection and Snell refraction), so
``eval`` and ``pdf`` are zero and every sample is DISCRETE. The choice
between the two lobes is made with probability equal to the exact
unpolarized Fresnel reflectance, which makes the sample weight 1.

Directions are in the local shading frame whose +z is the ray-facing
normal, so ``wi.z >= 0`` always; ``front_face`` tells which side of the
interface the path arrived from.
"""

import taichi as ti
import taichi.math as tm

from ..core.ray import refract

vec2 = tm.vec2
vec3 = tm.vec3

# Borosilicate glass (BK7) inside, air outside
DEFAULT_INT_IOR = 1.5046
DEFAULT_EXT_IOR = 1.000277


@ti.func
def fresnel_dielectric(cos_theta_i: ti.f32, eta_i: ti.f32, eta_t: ti.f32) -> ti.f32:
    """Exact Fresnel reflectance for unpolarized light.

    Args:
        cos_theta_i: Cosine of the incident angle on the ``eta_i`` side (>= 0).
        eta_i: Index of refraction on the incident side.
        eta_t: Index of refraction on the transmitted side.

    Returns:
        Reflectance in [0, 1]; 1 under total internal reflection.
    """
    result = 0.0
    if eta_i != eta_t:
        cos_i = tm.clamp(cos_theta_i, 0.0, 1.0)
        eta = eta_i / eta_t
        sin2_t = eta * eta * (1.0 - cos_i * cos_i)
        if sin2_t > 1.0:
            result = 1.0
        else:
            cos_t = ti.sqrt(1.0 - sin2_t)
            rs = (eta_i * cos_i - eta_t * cos_t) / (eta_i * cos_i + eta_t * cos_t)
            rp = (eta_t * cos_i - eta_i * cos_t) / (eta_t * cos_i + eta_i * cos_t)
            result = 0.5 * (rs * rs + rp * rp)
    return result


@ti.func
def sample_dielectric(
    int_ior: ti.f32,
    ext_ior: ti.f32,
    wi: vec3,
    front_face: ti.i32,
    sample: vec2,
):
    """Choose reflection or refraction by Fresnel reflectance.

    Args:
        int_ior: Index of refraction inside the object.
        ext_ior: Index of refraction outside the object.
        wi: Local direction toward the previous vertex (``wi.z >= 0``).
        front_face: 1 if the path arrived from outside.
        sample: Uniform sample; only ``sample.x`` is consumed.

    Returns:
        Tuple (wo, weight, eta) where ``eta`` is the relative index of
        refraction ``eta_t / eta_i`` of the chosen event (1 on reflection).
    """
    eta_i = ext_ior
    eta_t = int_ior
    if front_face == 0:
        eta_i = int_ior
        eta_t = ext_ior

    fresnel = fresnel_dielectric(wi.z, eta_i, eta_t)
    wo = vec3(-wi.x, -wi.y, wi.z)
    eta = 1.0
    if sample.x >= fresnel:
        wo = tm.normalize(refract(-wi, vec3(0.0, 0.0, 1.0), eta_i / eta_t))
        eta = eta_t / eta_i
    return wo, vec3(1.0, 1.0, 1.0), eta


# =============================================================================
# Material Field Storage
# =============================================================================

MAX_DIELECTRIC_MATERIALS = 256

dielectric_int_iors = ti.field(dtype=ti.f32, shape=MAX_DIELECTRIC_MATERIALS)
dielectric_ext_iors = ti.field(dtype=ti.f32, shape=MAX_DIELECTRIC_MATERIALS)
num_dielectric_materials = ti.field(dtype=ti.i32, shape=())


def clear_dielectric_materials() -> None:
    num_dielectric_materials[None] = 0


def add_dielectric_material(
    int_ior: float = DEFAULT_INT_IOR,
    ext_ior: float = DEFAULT_EXT_IOR,
) -> int:
    """Register a smooth dielectric.

    Args:
        int_ior: Interior index of refraction. Default is BK7 glass.
        ext_ior: Exterior index of refraction. Default is air.

    Returns:
        The type-local index of the added material.

    Raises:
        RuntimeError: If the maximum number of materials is exceeded.
        ValueError: If either IOR is less than 1.0.
    """
    for name, ior in (("int_ior", int_ior), ("ext_ior", ext_ior)):
        if ior < 1.0:
            raise ValueError(
                f"{name} = {ior} is less than 1.0. "
                "IOR must be >= 1.0 for physically meaningful materials."
            )

    idx = num_dielectric_materials[None]
    if idx >= MAX_DIELECTRIC_MATERIALS:
        raise RuntimeError(
            f"Maximum number of dielectric materials ({MAX_DIELECTRIC_MATERIALS}) exceeded"
        )

    dielectric_int_iors[idx] = int_ior
    dielectric_ext_iors[idx] = ext_ior
    num_dielectric_materials[None] = idx + 1
    return idx


def get_dielectric_material_count() -> int:
    return int(num_dielectric_materials[None])
