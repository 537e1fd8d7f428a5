"""Unified BSDF interface over all material types.

Every material id maps to a (type, type-local index) pair stored in Taichi
fields. The functions below dispatch on the type so that integrators only
ever see the common contract:

    eval_bsdf(material_id, wi, wo)              -> f(wi, wo)
    pdf_bsdf(material_id, wi, wo)               -> solid-angle density of wo
    sample_bsdf(material_id, wi, front, sample) -> BSDFSample
    is_diffuse(material_id)                     -> 1 if photons may be stored

Directions are in the local frame of the ray-facing shading normal.
Discrete (Dirac) events report ``measure == Measure.DISCRETE`` and have
``eval == pdf == 0``; their ``weight`` already accounts for the lobe choice.
"""

from enum import IntEnum

import taichi as ti
import taichi.math as tm

from .conductor import (
    conductor_albedos,
    conductor_roughnesses,
    eval_conductor,
    pdf_conductor,
    sample_conductor,
)
from .dielectric import dielectric_ext_iors, dielectric_int_iors, sample_dielectric
from .lambertian import eval_lambertian, lambertian_albedos, pdf_lambertian, sample_lambertian

vec2 = tm.vec2
vec3 = tm.vec3


class MaterialType(IntEnum):
    """Material kinds understood by the BSDF dispatch."""

    LAMBERTIAN = 0
    CONDUCTOR = 1
    DIELECTRIC = 2


class Measure(IntEnum):
    """Measure a sampled direction's density is expressed in."""

    SOLID_ANGLE = 0
    DISCRETE = 1


@ti.dataclass
class BSDFSample:
    """Result of sampling a BSDF.

    Attributes:
        wo: Sampled local direction.
        weight: ``f * cos(theta_o) / pdf``; zero for a failed sample.
        pdf: Solid-angle density of ``wo`` (0 for discrete events).
        measure: A Measure value.
        eta: Relative index of refraction of the event (1 for reflection).
    """

    wo: vec3
    weight: vec3
    pdf: ti.f32
    measure: ti.i32
    eta: ti.f32


MAX_MATERIALS = 768

# material_types[i] is the MaterialType of material id i, and
# material_type_indices[i] its index in that type's registry
material_types = ti.field(dtype=ti.i32, shape=MAX_MATERIALS)
material_type_indices = ti.field(dtype=ti.i32, shape=MAX_MATERIALS)
num_materials = ti.field(dtype=ti.i32, shape=())


def clear_material_table() -> None:
    num_materials[None] = 0


def register_material(material_type: MaterialType, type_index: int) -> int:
    """Assign the next unified material id to a type-local material.

    Raises:
        RuntimeError: If the maximum number of materials is exceeded.
    """
    material_id = num_materials[None]
    if material_id >= MAX_MATERIALS:
        raise RuntimeError(f"Maximum number of materials ({MAX_MATERIALS}) exceeded")
    material_types[material_id] = int(material_type)
    material_type_indices[material_id] = type_index
    num_materials[None] = material_id + 1
    return material_id


@ti.func
def get_material_type(material_id: ti.i32) -> ti.i32:
    """MaterialType of a material id, or -1 for an invalid id."""
    result = -1
    if 0 <= material_id < num_materials[None]:
        result = material_types[material_id]
    return result


@ti.func
def eval_bsdf(material_id: ti.i32, wi: vec3, wo: vec3) -> vec3:
    mtype = get_material_type(material_id)
    idx = material_type_indices[ti.max(material_id, 0)]
    result = vec3(0.0, 0.0, 0.0)
    if mtype == int(MaterialType.LAMBERTIAN):
        result = eval_lambertian(lambertian_albedos[idx], wi, wo)
    elif mtype == int(MaterialType.CONDUCTOR):
        result = eval_conductor(conductor_albedos[idx], conductor_roughnesses[idx], wi, wo)
    return result


@ti.func
def pdf_bsdf(material_id: ti.i32, wi: vec3, wo: vec3) -> ti.f32:
    mtype = get_material_type(material_id)
    idx = material_type_indices[ti.max(material_id, 0)]
    pdf = 0.0
    if mtype == int(MaterialType.LAMBERTIAN):
        pdf = pdf_lambertian(wi, wo)
    elif mtype == int(MaterialType.CONDUCTOR):
        pdf = pdf_conductor(conductor_roughnesses[idx], wi, wo)
    return pdf


@ti.func
def sample_bsdf(material_id: ti.i32, wi: vec3, front_face: ti.i32, sample: vec2) -> BSDFSample:
    """Importance sample the material's BSDF.

    Args:
        material_id: Unified material id.
        wi: Local direction toward the previous vertex.
        front_face: 1 if the path arrived from the outward side.
        sample: Uniform sample in [0, 1]^2.

    Returns:
        A BSDFSample. Invalid material ids yield a zero-weight sample.
    """
    mtype = get_material_type(material_id)
    idx = material_type_indices[ti.max(material_id, 0)]
    rec = BSDFSample(
        wo=vec3(0.0, 0.0, 1.0),
        weight=vec3(0.0, 0.0, 0.0),
        pdf=0.0,
        measure=int(Measure.SOLID_ANGLE),
        eta=1.0,
    )
    if mtype == int(MaterialType.LAMBERTIAN):
        wo, weight, pdf = sample_lambertian(lambertian_albedos[idx], wi, sample)
        rec.wo = wo
        rec.weight = weight
        rec.pdf = pdf
    elif mtype == int(MaterialType.CONDUCTOR):
        roughness = conductor_roughnesses[idx]
        wo, weight, pdf = sample_conductor(conductor_albedos[idx], roughness, wi, sample)
        rec.wo = wo
        rec.weight = weight
        rec.pdf = pdf
        if roughness <= 0.0:
            rec.measure = int(Measure.DISCRETE)
    elif mtype == int(MaterialType.DIELECTRIC):
        wo, weight, eta = sample_dielectric(
            dielectric_int_iors[idx], dielectric_ext_iors[idx], wi, front_face, sample
        )
        rec.wo = wo
        rec.weight = weight
        rec.measure = int(Measure.DISCRETE)
        rec.eta = eta
    return rec


@ti.func
def is_diffuse(material_id: ti.i32) -> ti.i32:
    """1 for materials with a non-delta lobe, where photons are stored."""
    mtype = get_material_type(material_id)
    idx = material_type_indices[ti.max(material_id, 0)]
    result = 0
    if mtype == int(MaterialType.LAMBERTIAN):
        result = 1
    elif mtype == int(MaterialType.CONDUCTOR):
        if conductor_roughnesses[idx] > 0.0:
            result = 1
    return result
